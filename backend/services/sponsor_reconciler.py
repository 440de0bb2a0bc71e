"""
Sponsor Reconciler
Merges a paid order into the creator's sponsorship ledger.

The reconciler is the only writer of the ledger. Every flag it sets is a
monotonic OR, so merging the same order twice leaves the ledger unchanged and
a later merge never reverts a paid or priority flag.
"""
import logging
from collections import OrderedDict
from datetime import datetime
from typing import Dict, List, Optional

from models import (
    LedgerEpisode,
    LedgerPriority,
    MediaType,
    Order,
    OrderLineItem,
    SponsorshipLedgerEntry,
    utc_now,
)
from services.sponsorship_errors import LedgerConflictError
from stores.interfaces import SponsorshipLedgerStore

logger = logging.getLogger(__name__)

LEDGER_MAX_RETRIES = 3


def group_items_by_content(items: List[OrderLineItem]) -> Dict[int, List[OrderLineItem]]:
    grouped: Dict[int, List[OrderLineItem]] = OrderedDict()
    for item in items:
        grouped.setdefault(item.content.content_id, []).append(item)
    return grouped


def merge_order_items(
    entry: Optional[SponsorshipLedgerEntry],
    items: List[OrderLineItem],
    order: Order,
    merged_at: Optional[datetime] = None,
) -> SponsorshipLedgerEntry:
    """
    Merge the line items of one content id into its ledger entry.
    Pure: returns a new entry and never mutates the one passed in.
    """
    if not items:
        raise ValueError("Cannot merge an empty item list")

    merged_at = merged_at or order.paid_at or utc_now()
    first = items[0]
    buyer = order.buyer_info

    if entry is None:
        merged = SponsorshipLedgerEntry(
            creator_username=order.creator_username,
            content_id=first.content.content_id,
            title=first.content.title,
            media_type=first.media_type,
            poster_path=first.content.poster_path,
            added_at=merged_at,
        )
    else:
        merged = entry.model_copy(deep=True)

    if merged.media_type == MediaType.SERIES:
        episodes = {(ep.season, ep.episode): ep for ep in merged.episodes}
        for item in items:
            if item.episode is None:
                continue
            key = item.episode.key
            existing = episodes.get(key)
            if existing is not None:
                existing.is_paid = True
                existing.is_priority = existing.is_priority or item.wants_priority
                existing.sponsor_name = existing.sponsor_name or buyer.name
                existing.paid_at = existing.paid_at or merged_at
            else:
                episodes[key] = LedgerEpisode(
                    season=item.episode.season,
                    episode=item.episode.episode,
                    is_paid=True,
                    is_priority=item.wants_priority,
                    sponsor_name=buyer.name,
                    paid_at=merged_at,
                )
        merged.episodes = sorted(episodes.values(), key=lambda ep: (ep.season, ep.episode))
        merged.is_paid = merged.is_paid or any(ep.is_paid for ep in merged.episodes)
        merged.is_priority = merged.is_priority or any(ep.is_priority for ep in merged.episodes)
    else:
        merged.is_paid = True
        merged.is_priority = merged.is_priority or any(item.wants_priority for item in items)

    if merged.is_priority:
        merged.priority = LedgerPriority.HIGH

    # The first paying sponsor stays on the entry, like on its episodes
    if not merged.sponsor_name:
        merged.sponsor_name = buyer.name
        merged.sponsor_contact = buyer.contact_display
        merged.sponsor_email = buyer.email
        merged.order_code = order.order_code
    return merged


async def reconcile_paid_order(order: Order, ledger_store: SponsorshipLedgerStore) -> List[SponsorshipLedgerEntry]:
    """
    Apply a paid order to the ledger, one content id at a time.
    Each write is version-checked; a lost race re-reads and merges again.
    """
    results = []
    for content_id, items in group_items_by_content(order.items).items():
        for attempt in range(1, LEDGER_MAX_RETRIES + 1):
            current = await ledger_store.get(order.creator_username, content_id)
            merged = merge_order_items(current, items, order)
            try:
                saved = await ledger_store.save(
                    merged,
                    expected_version=current.version if current else None,
                )
            except LedgerConflictError:
                if attempt == LEDGER_MAX_RETRIES:
                    logger.error(
                        f"Ledger merge for order {order.order_code} gave up on content {content_id} "
                        f"after {attempt} attempts"
                    )
                    raise
                logger.warning(
                    f"Ledger conflict on content {content_id} for order {order.order_code}, retrying"
                )
                continue
            results.append(saved)
            break

    logger.info(
        f"Order {order.order_code} reconciled into {len(results)} ledger entries "
        f"for {order.creator_username}"
    )
    return results
