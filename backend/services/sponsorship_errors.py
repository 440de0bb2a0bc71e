"""Domain error codes for the sponsorship order subsystem."""

from dataclasses import dataclass
from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    ORDER_NOT_FOUND = "ORDER_NOT_FOUND"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    ORDER_NOT_PAID = "ORDER_NOT_PAID"
    ORDER_PERSISTENCE_FAILED = "ORDER_PERSISTENCE_FAILED"
    CREATOR_NOT_FOUND = "CREATOR_NOT_FOUND"
    WIZARD_SESSION_NOT_FOUND = "WIZARD_SESSION_NOT_FOUND"
    WIZARD_TRANSITION_INVALID = "WIZARD_TRANSITION_INVALID"
    CATALOG_LOOKUP_FAILED = "CATALOG_LOOKUP_FAILED"
    LEDGER_CONFLICT = "LEDGER_CONFLICT"


@dataclass(eq=False)
class SponsorshipError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode
    message: str

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class OrderNotFoundError(SponsorshipError):
    """Raised when an order does not exist in the creator's ledger."""

    def __init__(self, order_ref: str) -> None:
        super().__init__(
            code=ErrorCode.ORDER_NOT_FOUND,
            message="Order not found",
        )
        self.order_ref = order_ref


class InvalidStatusTransitionError(SponsorshipError):
    """Raised when an order status change is not allowed."""

    def __init__(self, from_status: str, to_status: str, allowed=None) -> None:
        allowed_text = ", ".join(allowed) if allowed else "none"
        super().__init__(
            code=ErrorCode.INVALID_STATUS_TRANSITION,
            message=f"Invalid transition: {from_status} -> {to_status}. Allowed: {allowed_text}",
        )
        self.from_status = from_status
        self.to_status = to_status


class OrderNotPaidError(SponsorshipError):
    """Raised when a ledger reconcile is requested for an order that was never paid."""

    def __init__(self, status: str) -> None:
        super().__init__(
            code=ErrorCode.ORDER_NOT_PAID,
            message=f"Only paid or completed orders can be reconciled, this one is {status}",
        )
        self.status = status


class OrderPersistenceError(SponsorshipError):
    """Raised when an order could not be written to the order ledger."""

    def __init__(self, detail: str = "") -> None:
        super().__init__(
            code=ErrorCode.ORDER_PERSISTENCE_FAILED,
            message="Order could not be saved",
        )
        self.detail = detail


class CreatorNotFoundError(SponsorshipError):
    """Raised when a creator profile does not exist."""

    def __init__(self, username: str) -> None:
        super().__init__(
            code=ErrorCode.CREATOR_NOT_FOUND,
            message="Creator not found",
        )
        self.username = username


class WizardSessionNotFoundError(SponsorshipError):
    """Raised when a wizard session has expired or never existed."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            code=ErrorCode.WIZARD_SESSION_NOT_FOUND,
            message="Wizard session not found",
        )
        self.session_id = session_id


class WizardTransitionError(SponsorshipError):
    """Raised when an event is not accepted by the current wizard step."""

    def __init__(self, step: str, event: str) -> None:
        super().__init__(
            code=ErrorCode.WIZARD_TRANSITION_INVALID,
            message=f"'{event}' is not available on step '{step}'",
        )
        self.step = step
        self.event = event


class CatalogLookupError(SponsorshipError):
    """Raised when the content catalog cannot be reached or answers with an error."""

    def __init__(self, detail: str = "") -> None:
        super().__init__(
            code=ErrorCode.CATALOG_LOOKUP_FAILED,
            message="Content search is unavailable, please try again",
        )
        self.detail = detail


class LedgerConflictError(SponsorshipError):
    """Raised when a versioned ledger write loses against a concurrent writer."""

    def __init__(self, content_id: int) -> None:
        super().__init__(
            code=ErrorCode.LEDGER_CONFLICT,
            message="Sponsorship ledger was modified concurrently",
        )
        self.content_id = content_id
