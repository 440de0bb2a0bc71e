"""In-process implementation of the sponsorship stores.

Used for local runs without MongoDB and by the test suite. Models are copied
on the way in and out so callers never share mutable state with the store.
"""
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from models import CreatorProfile, NotificationEvent, Order, SponsorshipLedgerEntry
from services.sponsor_order_workflow import SponsorOrderStatus
from services.sponsorship_errors import LedgerConflictError
from stores.interfaces import CreatorProfileStore, NotificationStore, OrderStore, SponsorshipLedgerStore


class InMemoryOrderStore(OrderStore):

    def __init__(self) -> None:
        self._orders: Dict[str, Order] = {}

    async def append(self, order: Order) -> None:
        self._orders[order.order_id] = order.model_copy(deep=True)

    async def get(self, creator_username: str, order_id: str) -> Optional[Order]:
        order = self._orders.get(order_id)
        if order is None or order.creator_username != creator_username:
            return None
        return order.model_copy(deep=True)

    async def get_by_code(self, creator_username: str, order_code: str) -> Optional[Order]:
        matches = [
            o for o in self._orders.values()
            if o.creator_username == creator_username and o.order_code == order_code.upper()
        ]
        if not matches:
            return None
        return max(matches, key=lambda o: o.created_at).model_copy(deep=True)

    async def list_for_creator(
        self,
        creator_username: str,
        status: Optional[SponsorOrderStatus] = None,
    ) -> List[Order]:
        orders = [
            o.model_copy(deep=True) for o in self._orders.values()
            if o.creator_username == creator_username and (status is None or o.status == status)
        ]
        return sorted(orders, key=lambda o: o.created_at, reverse=True)

    async def compare_and_set_status(
        self,
        creator_username: str,
        order_id: str,
        expected: SponsorOrderStatus,
        new_status: SponsorOrderStatus,
        paid_at: Optional[datetime] = None,
    ) -> Optional[Order]:
        order = self._orders.get(order_id)
        if order is None or order.creator_username != creator_username or order.status != expected:
            return None
        update = {"status": new_status}
        if paid_at is not None:
            update["paid_at"] = paid_at
        updated = order.model_copy(update=update, deep=True)
        self._orders[order_id] = updated
        return updated.model_copy(deep=True)


class InMemorySponsorshipLedgerStore(SponsorshipLedgerStore):

    def __init__(self) -> None:
        self._entries: Dict[Tuple[str, int], SponsorshipLedgerEntry] = {}

    async def get(self, creator_username: str, content_id: int) -> Optional[SponsorshipLedgerEntry]:
        entry = self._entries.get((creator_username, content_id))
        return entry.model_copy(deep=True) if entry else None

    async def list_for_creator(self, creator_username: str) -> List[SponsorshipLedgerEntry]:
        entries = [
            e.model_copy(deep=True) for (username, _), e in self._entries.items()
            if username == creator_username
        ]
        return sorted(entries, key=lambda e: e.added_at, reverse=True)

    async def save(self, entry: SponsorshipLedgerEntry, expected_version: Optional[int]) -> SponsorshipLedgerEntry:
        key = (entry.creator_username, entry.content_id)
        current = self._entries.get(key)
        if expected_version is None:
            if current is not None:
                raise LedgerConflictError(entry.content_id)
            new_version = 1
        else:
            if current is None or current.version != expected_version:
                raise LedgerConflictError(entry.content_id)
            new_version = expected_version + 1
        stored = entry.model_copy(update={"version": new_version}, deep=True)
        self._entries[key] = stored
        return stored.model_copy(deep=True)


class InMemoryNotificationStore(NotificationStore):

    def __init__(self) -> None:
        self._events: List[NotificationEvent] = []

    async def append(self, event: NotificationEvent) -> None:
        self._events.append(event.model_copy(deep=True))

    async def list_for_creator(
        self,
        creator_username: str,
        unread_only: bool = False,
        since: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[NotificationEvent]:
        events = [
            e for e in self._events
            if e.creator_username == creator_username
            and (not unread_only or not e.read)
            and (since is None or e.created_at > since)
        ]
        events.sort(key=lambda e: e.created_at, reverse=True)
        return [e.model_copy(deep=True) for e in events[:limit]]

    async def count_unread(self, creator_username: str) -> int:
        return sum(1 for e in self._events if e.creator_username == creator_username and not e.read)

    async def mark_read(self, creator_username: str, notification_id: str) -> bool:
        for event in self._events:
            if event.creator_username == creator_username and event.notification_id == notification_id:
                event.read = True
                return True
        return False

    async def mark_all_read(self, creator_username: str) -> int:
        count = 0
        for event in self._events:
            if event.creator_username == creator_username and not event.read:
                event.read = True
                count += 1
        return count

    async def remove(self, creator_username: str, notification_id: str) -> bool:
        before = len(self._events)
        self._events = [
            e for e in self._events
            if not (e.creator_username == creator_username and e.notification_id == notification_id)
        ]
        return len(self._events) < before


class InMemoryCreatorProfileStore(CreatorProfileStore):

    def __init__(self, profiles: Optional[List[CreatorProfile]] = None) -> None:
        self._profiles: Dict[str, CreatorProfile] = {p.username: p for p in profiles or []}

    def put(self, profile: CreatorProfile) -> None:
        self._profiles[profile.username] = profile

    async def get_profile(self, username: str) -> Optional[CreatorProfile]:
        profile = self._profiles.get(username)
        return profile.model_copy(deep=True) if profile else None
