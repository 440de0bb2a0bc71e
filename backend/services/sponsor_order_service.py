"""
Sponsor Order Service - Business Logic Layer
Handles order submission and the creator-driven status lifecycle.

Status changes go through transition_order_status(), which enforces the
workflow whitelist and writes with a compare-and-set on the current status.
pending -> paid is the only transition that touches the sponsorship ledger;
reconcile_order() re-runs that merge for a paid order when it failed.
"""
import logging
import secrets
import string
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from models import (
    BuyerInfo,
    ContentRef,
    MediaType,
    NotificationEvent,
    Order,
    OrderLineItem,
    SponsorshipLedgerEntry,
    utc_now,
)
from services.creator_notification_service import notify_new_order
from services.sponsor_order_workflow import (
    PIPELINE_COLUMNS,
    SponsorOrderStatus,
    get_allowed_transitions,
    get_creator_actions,
    is_terminal_state,
    is_valid_transition,
    requires_reconciliation,
)
from services.sponsor_pricing import CURRENCY, Quote
from services.sponsor_reconciler import reconcile_paid_order
from services.sponsorship_errors import (
    InvalidStatusTransitionError,
    OrderNotFoundError,
    OrderNotPaidError,
    OrderPersistenceError,
)
from stores.interfaces import NotificationStore, OrderStore, SponsorshipLedgerStore

logger = logging.getLogger(__name__)

ORDER_CODE_LENGTH = 8
ORDER_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_order_code() -> str:
    """Generate a buyer-facing order code: 8 chars of [A-Z0-9]"""
    return "".join(secrets.choice(ORDER_CODE_ALPHABET) for _ in range(ORDER_CODE_LENGTH))


@dataclass(frozen=True)
class SubmissionResult:
    order: Order
    notification: Optional[NotificationEvent]
    notification_failed: bool = False


def build_order(
    creator_username: str,
    content: ContentRef,
    quote: Quote,
    buyer_info: BuyerInfo,
    message: Optional[str] = None,
    order_code: Optional[str] = None,
) -> Order:
    """
    Build a pending order from a priced quote.
    One line item per movie or per quoted episode; totals are summed from the items.
    """
    items = [
        OrderLineItem(
            content=content,
            media_type=content.media_type,
            episode=unit.episode if content.media_type == MediaType.SERIES else None,
            unit_price=unit.base_price,
            priority_price=unit.priority_price,
            wants_priority=unit.wants_priority,
        )
        for unit in quote.units
    ]
    if not items:
        raise ValueError("An order needs at least one line item")

    subtotal = sum(item.unit_price for item in items)
    priority_total = sum(item.priority_price for item in items)

    return Order(
        order_code=order_code or generate_order_code(),
        creator_username=creator_username,
        items=items,
        buyer_info=buyer_info,
        message=(message or "").strip() or None,
        subtotal=subtotal,
        priority_total=priority_total,
        total=subtotal + priority_total,
        currency=CURRENCY,
        status=SponsorOrderStatus.PENDING,
    )


async def submit_order(
    order: Order,
    order_store: OrderStore,
    notification_store: NotificationStore,
) -> SubmissionResult:
    """
    Append the order, then the creator notification.
    The two writes are not atomic: a failed notification is reported on the result.
    """
    try:
        await order_store.append(order)
    except Exception as e:
        logger.error(f"Failed to save order {order.order_code} for {order.creator_username}: {e}")
        raise OrderPersistenceError(str(e)) from e

    logger.info(
        f"Sponsor order created: {order.order_code} for {order.creator_username} "
        f"({len(order.items)} items, total {order.total})"
    )

    try:
        notification = await notify_new_order(order, notification_store)
    except Exception as e:
        logger.error(f"Order {order.order_code} saved but creator notification failed: {e}")
        return SubmissionResult(order=order, notification=None, notification_failed=True)

    return SubmissionResult(order=order, notification=notification)


async def transition_order_status(
    creator_username: str,
    order_id: str,
    new_status: SponsorOrderStatus,
    order_store: OrderStore,
    ledger_store: SponsorshipLedgerStore,
) -> Order:
    """
    Move an order to a new status. This is the ONLY function that changes order status.
    """
    order = await order_store.get(creator_username, order_id)
    if order is None:
        raise OrderNotFoundError(order_id)

    current_status = order.status
    if not is_valid_transition(current_status, new_status):
        allowed = [s.value for s in get_allowed_transitions(current_status)]
        raise InvalidStatusTransitionError(current_status.value, new_status.value, allowed)

    paid_at = utc_now() if new_status == SponsorOrderStatus.PAID else None
    updated = await order_store.compare_and_set_status(
        creator_username, order_id, current_status, new_status, paid_at=paid_at,
    )
    if updated is None:
        # Someone else moved the order first
        latest = await order_store.get(creator_username, order_id)
        latest_status = latest.status.value if latest else current_status.value
        logger.warning(f"Lost status race on order {order.order_code}: now {latest_status}")
        raise InvalidStatusTransitionError(latest_status, new_status.value)

    logger.info(
        f"Order {order.order_code} transitioned: {current_status.value} -> {new_status.value}"
    )

    if requires_reconciliation(current_status, new_status):
        try:
            await reconcile_paid_order(updated, ledger_store)
        except Exception as e:
            # The status change stands; reconcile_order() re-applies it to the ledger
            logger.error(f"Order {order.order_code} is paid but the ledger merge failed: {e}")
            raise

    return updated


async def reconcile_order(
    creator_username: str,
    order_id: str,
    order_store: OrderStore,
    ledger_store: SponsorshipLedgerStore,
) -> List[SponsorshipLedgerEntry]:
    """
    Re-apply a paid order to the sponsorship ledger.
    Used when the merge after pending -> paid failed. The merge is idempotent,
    so running it for an order already in the ledger only bumps versions.
    """
    order = await get_order(creator_username, order_id, order_store)
    if order.status not in (SponsorOrderStatus.PAID, SponsorOrderStatus.COMPLETED):
        raise OrderNotPaidError(order.status.value)

    entries = await reconcile_paid_order(order, ledger_store)
    logger.info(f"Order {order.order_code} reconciled into {len(entries)} ledger entries")
    return entries


# ============================================================================
# CREATOR VIEWS
# ============================================================================

async def list_orders(
    creator_username: str,
    order_store: OrderStore,
    status: Optional[SponsorOrderStatus] = None,
) -> List[Order]:
    return await order_store.list_for_creator(creator_username, status=status)


async def get_order(creator_username: str, order_id: str, order_store: OrderStore) -> Order:
    order = await order_store.get(creator_username, order_id)
    if order is None:
        raise OrderNotFoundError(order_id)
    return order


async def get_order_by_code(creator_username: str, order_code: str, order_store: OrderStore) -> Order:
    """Codes are not guaranteed unique; the newest match wins."""
    order = await order_store.get_by_code(creator_username, order_code.strip().upper())
    if order is None:
        raise OrderNotFoundError(order_code)
    return order


def order_view(order: Order) -> Dict[str, Any]:
    """Order document with the actions the creator may take on it."""
    data = order.model_dump(mode="json")
    data["allowed_actions"] = {
        action: status.value for action, status in get_creator_actions(order.status).items()
    }
    data["is_terminal"] = is_terminal_state(order.status)
    return data


async def get_orders_pipeline(creator_username: str, order_store: OrderStore) -> Dict[str, Any]:
    """
    Grouped view for the creator's order screen.
    'pending' holds pending orders; 'paid' holds paid and completed ones.
    """
    orders = await order_store.list_for_creator(creator_username)

    counts = {column["status"].value: 0 for column in PIPELINE_COLUMNS}
    for order in orders:
        counts[order.status.value] += 1

    return {
        "pending": [
            order_view(o) for o in orders if o.status == SponsorOrderStatus.PENDING
        ],
        "paid": [
            order_view(o) for o in orders
            if o.status in (SponsorOrderStatus.PAID, SponsorOrderStatus.COMPLETED)
        ],
        "counts": counts,
        "columns": [
            {"status": c["status"].value, "label": c["label"], "color": c["color"]}
            for c in PIPELINE_COLUMNS
        ],
        "total": len(orders),
    }
