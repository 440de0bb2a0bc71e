"""Store interfaces (repository pattern).

Stores must be swappable and return domain models. Every method is scoped by
creator username; a store never reads or writes across creators.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from models import CreatorProfile, NotificationEvent, Order, SponsorshipLedgerEntry
from services.sponsor_order_workflow import SponsorOrderStatus


class OrderStore(ABC):
    """Interface for the order ledger: append-only, status is the only mutable field."""

    @abstractmethod
    async def append(self, order: Order) -> None:
        """Persist a newly submitted order."""
        ...

    @abstractmethod
    async def get(self, creator_username: str, order_id: str) -> Optional[Order]:
        """Return an order by ID, or None if not found."""
        ...

    @abstractmethod
    async def get_by_code(self, creator_username: str, order_code: str) -> Optional[Order]:
        """Return the most recent order carrying a code, or None."""
        ...

    @abstractmethod
    async def list_for_creator(
        self,
        creator_username: str,
        status: Optional[SponsorOrderStatus] = None,
    ) -> List[Order]:
        """Return a creator's orders ordered by created_at descending."""
        ...

    @abstractmethod
    async def compare_and_set_status(
        self,
        creator_username: str,
        order_id: str,
        expected: SponsorOrderStatus,
        new_status: SponsorOrderStatus,
        paid_at: Optional[datetime] = None,
    ) -> Optional[Order]:
        """Move an order from expected to new_status.

        Returns the updated order, or None when the order is missing or its
        status no longer matches expected.
        """
        ...


class SponsorshipLedgerStore(ABC):
    """Interface for per-content sponsorship state (organizer catalogue)."""

    @abstractmethod
    async def get(self, creator_username: str, content_id: int) -> Optional[SponsorshipLedgerEntry]:
        """Return the ledger entry for a content id, or None."""
        ...

    @abstractmethod
    async def list_for_creator(self, creator_username: str) -> List[SponsorshipLedgerEntry]:
        """Return all ledger entries of a creator, newest first."""
        ...

    @abstractmethod
    async def save(self, entry: SponsorshipLedgerEntry, expected_version: Optional[int]) -> SponsorshipLedgerEntry:
        """Insert (expected_version None) or replace (matching version) an entry.

        The stored entry gets version = expected_version + 1 (or 1 on insert).
        Raises LedgerConflictError when another writer got there first.
        """
        ...


class NotificationStore(ABC):
    """Interface for the per-creator notification feed."""

    @abstractmethod
    async def append(self, event: NotificationEvent) -> None:
        ...

    @abstractmethod
    async def list_for_creator(
        self,
        creator_username: str,
        unread_only: bool = False,
        since: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[NotificationEvent]:
        """Return notifications ordered by created_at descending."""
        ...

    @abstractmethod
    async def count_unread(self, creator_username: str) -> int:
        ...

    @abstractmethod
    async def mark_read(self, creator_username: str, notification_id: str) -> bool:
        ...

    @abstractmethod
    async def mark_all_read(self, creator_username: str) -> int:
        ...

    @abstractmethod
    async def remove(self, creator_username: str, notification_id: str) -> bool:
        ...


class CreatorProfileStore(ABC):
    """Read-only access to creator profiles (price list, contact links)."""

    @abstractmethod
    async def get_profile(self, username: str) -> Optional[CreatorProfile]:
        ...
