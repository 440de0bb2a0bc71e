"""
Reconciler: merging paid orders into the sponsorship ledger.

- Merge is idempotent and every flag only ever turns on.
- Existing sponsors are kept on entries and episodes; new ones get the buyer's name.
- Versioned writes retry on conflict and give up after LEDGER_MAX_RETRIES.
"""
import pytest
from datetime import datetime, timezone
from unittest.mock import AsyncMock

from conftest import CREATOR, LONG_MOVIE, SERIES, ledger_for_movie, ledger_for_series, make_buyer
from models import EpisodeRef, LedgerEpisode, LedgerPriority, MediaType, Order, OrderLineItem
from services.sponsor_reconciler import LEDGER_MAX_RETRIES, merge_order_items, reconcile_paid_order
from services.sponsorship_errors import LedgerConflictError

PAID_AT = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def episode_item(season, episode, wants_priority=False):
    return OrderLineItem(
        content=SERIES,
        media_type=MediaType.SERIES,
        episode=EpisodeRef(season=season, episode=episode),
        unit_price=1000,
        priority_price=500 if wants_priority else 0,
        wants_priority=wants_priority,
    )


def movie_item(wants_priority=False, content=LONG_MOVIE):
    return OrderLineItem(
        content=content,
        media_type=MediaType.MOVIE,
        unit_price=4500,
        priority_price=500 if wants_priority else 0,
        wants_priority=wants_priority,
    )


def make_order(items, buyer_name="Bob", code="ABCD1234"):
    subtotal = sum(i.unit_price for i in items)
    priority_total = sum(i.priority_price for i in items)
    return Order(
        order_code=code,
        creator_username=CREATOR,
        items=items,
        buyer_info=make_buyer(name=buyer_name),
        subtotal=subtotal,
        priority_total=priority_total,
        total=subtotal + priority_total,
        paid_at=PAID_AT,
    )


class TestMergeSeries:

    def test_new_entry_from_paid_order(self):
        order = make_order([episode_item(1, 2), episode_item(1, 1, wants_priority=True)])
        entry = merge_order_items(None, order.items, order)

        assert entry.content_id == SERIES.content_id
        assert entry.media_type == MediaType.SERIES
        assert [(e.season, e.episode) for e in entry.episodes] == [(1, 1), (1, 2)]
        assert all(e.is_paid for e in entry.episodes)
        assert entry.find_episode(1, 1).is_priority is True
        assert entry.find_episode(1, 2).is_priority is False
        assert entry.find_episode(1, 2).sponsor_name == "Bob"
        assert entry.is_paid is True
        assert entry.is_priority is True
        assert entry.priority == LedgerPriority.HIGH
        assert entry.sponsor_contact == "instagram: @bob"
        assert entry.sponsor_email == "bob@example.com"
        assert entry.order_code == "ABCD1234"
        assert entry.added_at == PAID_AT

    def test_existing_episode_keeps_sponsor_and_gains_priority(self):
        existing = ledger_for_series(
            LedgerEpisode(season=1, episode=1, is_paid=True, is_priority=False, sponsor_name="Carol"),
        )
        order = make_order([episode_item(1, 1, wants_priority=True), episode_item(1, 3)], buyer_name="Dave")
        entry = merge_order_items(existing, order.items, order)

        first = entry.find_episode(1, 1)
        assert first.sponsor_name == "Carol"
        assert first.is_priority is True
        assert entry.find_episode(1, 3).sponsor_name == "Dave"
        # Input untouched
        assert existing.find_episode(1, 1).is_priority is False
        assert existing.find_episode(1, 3) is None

    def test_priority_never_reverts(self):
        existing = ledger_for_series(
            LedgerEpisode(season=1, episode=1, is_paid=True, is_priority=True, sponsor_name="Carol"),
        )
        order = make_order([episode_item(1, 1, wants_priority=False)])
        entry = merge_order_items(existing, order.items, order)
        assert entry.find_episode(1, 1).is_priority is True
        assert entry.is_priority is True

    def test_merge_is_idempotent(self):
        order = make_order([episode_item(1, 1, wants_priority=True), episode_item(2, 1)])
        once = merge_order_items(None, order.items, order)
        twice = merge_order_items(once, order.items, order)
        assert twice.model_dump() == once.model_dump()


class TestMergeMovie:

    def test_movie_paid_without_priority(self):
        order = make_order([movie_item()])
        entry = merge_order_items(None, order.items, order)
        assert entry.is_paid is True
        assert entry.is_priority is False
        assert entry.priority == LedgerPriority.NORMAL
        assert entry.episodes == []

    def test_priority_added_to_already_paid_movie(self):
        existing = ledger_for_movie(is_paid=True, is_priority=False)
        order = make_order([movie_item(wants_priority=True)])
        entry = merge_order_items(existing, order.items, order)
        assert entry.is_paid is True
        assert entry.is_priority is True
        assert entry.priority == LedgerPriority.HIGH

    def test_priority_top_up_keeps_original_sponsor(self):
        first = make_order([movie_item()], buyer_name="Carol", code="CAROL001")
        existing = merge_order_items(None, first.items, first)

        top_up = make_order([movie_item(wants_priority=True)], buyer_name="Dave", code="DAVE0002")
        entry = merge_order_items(existing, top_up.items, top_up)

        assert entry.is_priority is True
        assert entry.sponsor_name == "Carol"
        assert entry.order_code == "CAROL001"

    def test_movie_priority_never_reverts(self):
        existing = ledger_for_movie(is_paid=True, is_priority=True)
        order = make_order([movie_item(wants_priority=False)])
        assert merge_order_items(existing, order.items, order).is_priority is True

    def test_empty_items_rejected(self):
        order = make_order([movie_item()])
        with pytest.raises(ValueError):
            merge_order_items(None, [], order)


class TestReconcilePaidOrder:

    @pytest.mark.asyncio
    async def test_writes_one_entry_per_content(self, ledger_store):
        order = make_order([movie_item(), episode_item(1, 1), episode_item(1, 2)])
        saved = await reconcile_paid_order(order, ledger_store)

        assert len(saved) == 2
        movie = await ledger_store.get(CREATOR, LONG_MOVIE.content_id)
        series = await ledger_store.get(CREATOR, SERIES.content_id)
        assert movie.is_paid and movie.version == 1
        assert len(series.episodes) == 2

    @pytest.mark.asyncio
    async def test_reconciling_twice_changes_nothing_but_version(self, ledger_store):
        order = make_order([episode_item(1, 1, wants_priority=True)])
        await reconcile_paid_order(order, ledger_store)
        first = await ledger_store.get(CREATOR, SERIES.content_id)
        await reconcile_paid_order(order, ledger_store)
        second = await ledger_store.get(CREATOR, SERIES.content_id)

        assert second.version == first.version + 1
        assert second.model_dump(exclude={"version"}) == first.model_dump(exclude={"version"})

    @pytest.mark.asyncio
    async def test_retries_after_conflict(self, ledger_store):
        order = make_order([movie_item()])
        real_save = ledger_store.save
        calls = {"n": 0}

        async def flaky_save(entry, expected_version):
            calls["n"] += 1
            if calls["n"] == 1:
                raise LedgerConflictError(entry.content_id)
            return await real_save(entry, expected_version)

        ledger_store.save = flaky_save
        saved = await reconcile_paid_order(order, ledger_store)

        assert calls["n"] == 2
        assert saved[0].is_paid is True
        assert (await ledger_store.get(CREATOR, LONG_MOVIE.content_id)).version == 1

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, ledger_store):
        order = make_order([movie_item()])
        ledger_store.save = AsyncMock(side_effect=LedgerConflictError(LONG_MOVIE.content_id))

        with pytest.raises(LedgerConflictError):
            await reconcile_paid_order(order, ledger_store)
        assert ledger_store.save.await_count == LEDGER_MAX_RETRIES

    @pytest.mark.asyncio
    async def test_concurrent_writer_merge_is_preserved(self, ledger_store):
        """A merge that loses the race re-reads and keeps the other writer's episodes."""
        first = make_order([episode_item(1, 1)], buyer_name="Carol", code="FIRST001")
        second = make_order([episode_item(1, 2, wants_priority=True)], buyer_name="Dave", code="SECOND02")
        real_save = ledger_store.save
        raced = {"done": False}

        async def racing_save(entry, expected_version):
            if not raced["done"]:
                raced["done"] = True
                # Another paid order lands between our read and our write
                await reconcile_paid_order_with(first, real_save)
            return await real_save(entry, expected_version)

        async def reconcile_paid_order_with(order, save):
            current = await ledger_store.get(CREATOR, SERIES.content_id)
            merged = merge_order_items(current, order.items, order)
            await save(merged, expected_version=current.version if current else None)

        ledger_store.save = racing_save
        await reconcile_paid_order(second, ledger_store)

        entry = await ledger_store.get(CREATOR, SERIES.content_id)
        assert entry.find_episode(1, 1).sponsor_name == "Carol"
        assert entry.find_episode(1, 2).sponsor_name == "Dave"
        assert entry.find_episode(1, 2).is_priority is True
        assert entry.version == 2
