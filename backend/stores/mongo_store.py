"""MongoDB (Motor) implementation of the sponsorship stores.

Collections:
- sponsor_orders         order ledger, one document per order
- sponsorship_ledger     one document per (creator_username, content_id)
- creator_notifications  notification feed
- creator_profiles       creator profiles (read only here)
"""
import logging
from datetime import datetime
from typing import List, Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from models import CreatorProfile, NotificationEvent, Order, SponsorshipLedgerEntry
from services.sponsor_order_workflow import SponsorOrderStatus
from services.sponsorship_errors import LedgerConflictError
from stores.interfaces import CreatorProfileStore, NotificationStore, OrderStore, SponsorshipLedgerStore

logger = logging.getLogger(__name__)


class MongoOrderStore(OrderStore):
    """Order ledger backed by the sponsor_orders collection."""

    def __init__(self, db) -> None:
        self._collection = db.sponsor_orders

    async def append(self, order: Order) -> None:
        await self._collection.insert_one(order.model_dump())

    async def get(self, creator_username: str, order_id: str) -> Optional[Order]:
        doc = await self._collection.find_one(
            {"creator_username": creator_username, "order_id": order_id},
            {"_id": 0},
        )
        return Order.model_validate(doc) if doc else None

    async def get_by_code(self, creator_username: str, order_code: str) -> Optional[Order]:
        doc = await self._collection.find_one(
            {"creator_username": creator_username, "order_code": order_code.upper()},
            {"_id": 0},
            sort=[("created_at", -1)],
        )
        return Order.model_validate(doc) if doc else None

    async def list_for_creator(
        self,
        creator_username: str,
        status: Optional[SponsorOrderStatus] = None,
    ) -> List[Order]:
        query = {"creator_username": creator_username}
        if status:
            query["status"] = status.value
        cursor = self._collection.find(query, {"_id": 0}).sort("created_at", -1)
        docs = await cursor.to_list(length=None)
        return [Order.model_validate(doc) for doc in docs]

    async def compare_and_set_status(
        self,
        creator_username: str,
        order_id: str,
        expected: SponsorOrderStatus,
        new_status: SponsorOrderStatus,
        paid_at: Optional[datetime] = None,
    ) -> Optional[Order]:
        update_fields = {"status": new_status.value}
        if paid_at is not None:
            update_fields["paid_at"] = paid_at

        doc = await self._collection.find_one_and_update(
            {
                "creator_username": creator_username,
                "order_id": order_id,
                "status": expected.value,
            },
            {"$set": update_fields},
            projection={"_id": 0},
            return_document=ReturnDocument.AFTER,
        )
        return Order.model_validate(doc) if doc else None


class MongoSponsorshipLedgerStore(SponsorshipLedgerStore):
    """Sponsorship ledger backed by the sponsorship_ledger collection, version-stamped."""

    def __init__(self, db) -> None:
        self._collection = db.sponsorship_ledger

    async def get(self, creator_username: str, content_id: int) -> Optional[SponsorshipLedgerEntry]:
        doc = await self._collection.find_one(
            {"creator_username": creator_username, "content_id": content_id},
            {"_id": 0},
        )
        return SponsorshipLedgerEntry.model_validate(doc) if doc else None

    async def list_for_creator(self, creator_username: str) -> List[SponsorshipLedgerEntry]:
        cursor = self._collection.find(
            {"creator_username": creator_username},
            {"_id": 0},
        ).sort("added_at", -1)
        docs = await cursor.to_list(length=None)
        return [SponsorshipLedgerEntry.model_validate(doc) for doc in docs]

    async def save(self, entry: SponsorshipLedgerEntry, expected_version: Optional[int]) -> SponsorshipLedgerEntry:
        if expected_version is None:
            stored = entry.model_copy(update={"version": 1})
            try:
                await self._collection.insert_one(stored.model_dump())
            except DuplicateKeyError:
                logger.warning(
                    f"Ledger insert conflict for {entry.creator_username}/{entry.content_id}"
                )
                raise LedgerConflictError(entry.content_id)
            return stored

        stored = entry.model_copy(update={"version": expected_version + 1})
        result = await self._collection.replace_one(
            {
                "creator_username": entry.creator_username,
                "content_id": entry.content_id,
                "version": expected_version,
            },
            stored.model_dump(),
        )
        if result.matched_count == 0:
            logger.warning(
                f"Ledger version conflict for {entry.creator_username}/{entry.content_id} "
                f"(expected v{expected_version})"
            )
            raise LedgerConflictError(entry.content_id)
        return stored


class MongoNotificationStore(NotificationStore):
    """Notification feed backed by the creator_notifications collection."""

    def __init__(self, db) -> None:
        self._collection = db.creator_notifications

    async def append(self, event: NotificationEvent) -> None:
        await self._collection.insert_one(event.model_dump())

    async def list_for_creator(
        self,
        creator_username: str,
        unread_only: bool = False,
        since: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[NotificationEvent]:
        query = {"creator_username": creator_username}
        if unread_only:
            query["read"] = False
        if since is not None:
            query["created_at"] = {"$gt": since}
        cursor = self._collection.find(query, {"_id": 0}).sort("created_at", -1).limit(limit)
        docs = await cursor.to_list(length=None)
        return [NotificationEvent.model_validate(doc) for doc in docs]

    async def count_unread(self, creator_username: str) -> int:
        return await self._collection.count_documents({"creator_username": creator_username, "read": False})

    async def mark_read(self, creator_username: str, notification_id: str) -> bool:
        result = await self._collection.update_one(
            {"creator_username": creator_username, "notification_id": notification_id},
            {"$set": {"read": True}},
        )
        return result.matched_count > 0

    async def mark_all_read(self, creator_username: str) -> int:
        result = await self._collection.update_many(
            {"creator_username": creator_username, "read": False},
            {"$set": {"read": True}},
        )
        return result.modified_count

    async def remove(self, creator_username: str, notification_id: str) -> bool:
        result = await self._collection.delete_one(
            {"creator_username": creator_username, "notification_id": notification_id},
        )
        return result.deleted_count > 0


class MongoCreatorProfileStore(CreatorProfileStore):
    """Creator profiles from the creator_profiles collection."""

    def __init__(self, db) -> None:
        self._collection = db.creator_profiles

    async def get_profile(self, username: str) -> Optional[CreatorProfile]:
        doc = await self._collection.find_one({"username": username}, {"_id": 0})
        return CreatorProfile.model_validate(doc) if doc else None
