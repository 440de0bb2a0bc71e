"""
Sponsor Order Workflow State Machine
Defines the valid states and transitions for sponsorship orders.
This is the single source of truth for order status rules.

NOTE: "paid" is a manual status set by the creator. No payment is processed here.
"""
from enum import Enum
from typing import List, Dict, Set


class SponsorOrderStatus(str, Enum):
    """
    Sponsorship order states - 4 states total
    """
    PENDING = "pending"        # Submitted by the buyer, awaiting payment
    PAID = "paid"              # Creator confirmed payment, ledger reconciled
    COMPLETED = "completed"    # Content produced and delivered
    CANCELLED = "cancelled"    # Dropped before payment


# Valid state transitions - whitelist approach
ALLOWED_TRANSITIONS: Dict[SponsorOrderStatus, List[SponsorOrderStatus]] = {
    SponsorOrderStatus.PENDING: [SponsorOrderStatus.PAID, SponsorOrderStatus.CANCELLED],
    SponsorOrderStatus.PAID: [SponsorOrderStatus.COMPLETED],
    # Terminal states
    SponsorOrderStatus.COMPLETED: [],
    SponsorOrderStatus.CANCELLED: [],
}


# Terminal states - no further transitions possible
TERMINAL_STATES: Set[SponsorOrderStatus] = {
    SponsorOrderStatus.COMPLETED,
    SponsorOrderStatus.CANCELLED,
}


# Transitions that merge the order into the sponsorship ledger
RECONCILING_TRANSITIONS: Set[tuple] = {
    (SponsorOrderStatus.PENDING, SponsorOrderStatus.PAID),
}


def is_valid_transition(from_status: SponsorOrderStatus, to_status: SponsorOrderStatus) -> bool:
    """Check if a state transition is valid"""
    if from_status not in ALLOWED_TRANSITIONS:
        return False
    return to_status in ALLOWED_TRANSITIONS[from_status]


def requires_reconciliation(from_status: SponsorOrderStatus, to_status: SponsorOrderStatus) -> bool:
    """Check if a transition must run the ledger merge"""
    return (from_status, to_status) in RECONCILING_TRANSITIONS


def is_terminal_state(status: SponsorOrderStatus) -> bool:
    """Check if a status is terminal (no further transitions)"""
    return status in TERMINAL_STATES


def get_allowed_transitions(status: SponsorOrderStatus) -> List[SponsorOrderStatus]:
    """Get list of valid next states from current status"""
    return ALLOWED_TRANSITIONS.get(status, [])


def get_creator_actions(status: SponsorOrderStatus) -> Dict[str, SponsorOrderStatus]:
    """Get the actions the creator's order view offers for a status"""
    actions = {
        SponsorOrderStatus.PENDING: {
            "mark_paid": SponsorOrderStatus.PAID,
            "cancel": SponsorOrderStatus.CANCELLED,
        },
        SponsorOrderStatus.PAID: {
            "complete": SponsorOrderStatus.COMPLETED,
        },
    }
    return actions.get(status, {})


# Pipeline columns for the creator's order view (in display order)
PIPELINE_COLUMNS: List[Dict] = [
    {"status": SponsorOrderStatus.PENDING, "label": "Pending", "color": "yellow"},
    {"status": SponsorOrderStatus.PAID, "label": "Paid", "color": "green"},
    {"status": SponsorOrderStatus.COMPLETED, "label": "Completed", "color": "blue"},
    {"status": SponsorOrderStatus.CANCELLED, "label": "Cancelled", "color": "red"},
]
