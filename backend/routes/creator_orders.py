"""
Creator Order Routes
Order screen, status lifecycle, sponsorship ledger and notification feed for a creator.
"""
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional
from datetime import datetime
import logging

from models import MediaType
from routes.dependencies import (
    get_ledger_store,
    get_notification_store,
    get_order_store,
    http_error,
)
from services import creator_notification_service as notifications
from services.sponsor_eligibility import blocked_episode_keys, check_movie
from services.sponsor_order_service import (
    get_order,
    get_order_by_code,
    get_orders_pipeline,
    list_orders,
    order_view,
    reconcile_order,
    transition_order_status,
)
from services.sponsor_order_workflow import SponsorOrderStatus, get_creator_actions
from services.sponsorship_errors import SponsorshipError
from stores.interfaces import NotificationStore, OrderStore, SponsorshipLedgerStore

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/creators/{username}", tags=["creator-orders"])


# ============================================
# MODELS
# ============================================

class TransitionRequest(BaseModel):
    # Either a target status or one of the creator actions (mark_paid, cancel, complete)
    new_status: Optional[str] = None
    action: Optional[str] = None


def _ledger_view(entry) -> dict:
    data = entry.model_dump(mode="json")
    data["blocked"] = entry.media_type == MediaType.MOVIE and check_movie(entry).blocked
    data["blocked_episodes"] = sorted([list(key) for key in blocked_episode_keys(entry)])
    return data


# ============================================
# ORDERS
# ============================================

@router.get("/orders")
async def get_creator_orders(
    username: str,
    status: Optional[str] = None,
    order_store: OrderStore = Depends(get_order_store),
):
    """All orders of the creator, newest first."""
    status_filter = None
    if status:
        try:
            status_filter = SponsorOrderStatus(status)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid status: {status}")

    orders = await list_orders(username, order_store, status=status_filter)
    return {
        "orders": [order_view(o) for o in orders],
        "total": len(orders),
    }


@router.get("/orders/pipeline")
async def get_creator_orders_pipeline(username: str, order_store: OrderStore = Depends(get_order_store)):
    """Orders grouped into pending and paid, with per-status counts."""
    return await get_orders_pipeline(username, order_store)


@router.get("/orders/by-code/{order_code}")
async def get_creator_order_by_code(
    username: str,
    order_code: str,
    order_store: OrderStore = Depends(get_order_store),
):
    try:
        order = await get_order_by_code(username, order_code, order_store)
    except SponsorshipError as e:
        raise http_error(e)
    return order_view(order)


@router.get("/orders/{order_id}")
async def get_creator_order(
    username: str,
    order_id: str,
    order_store: OrderStore = Depends(get_order_store),
):
    try:
        order = await get_order(username, order_id, order_store)
    except SponsorshipError as e:
        raise http_error(e)
    return order_view(order)


@router.post("/orders/{order_id}/transition")
async def transition_creator_order(
    username: str,
    order_id: str,
    request: TransitionRequest,
    order_store: OrderStore = Depends(get_order_store),
    ledger_store: SponsorshipLedgerStore = Depends(get_ledger_store),
):
    """
    Move an order along its lifecycle.
    Marking an order paid merges it into the sponsorship ledger.
    """
    if request.action:
        try:
            order = await get_order(username, order_id, order_store)
        except SponsorshipError as e:
            raise http_error(e)
        actions = get_creator_actions(order.status)
        if request.action not in actions:
            raise HTTPException(
                status_code=400,
                detail={
                    "error_code": "INVALID_STATUS_TRANSITION",
                    "message": f"Action '{request.action}' is not available for a {order.status.value} order",
                },
            )
        new_status = actions[request.action]
    elif request.new_status:
        try:
            new_status = SponsorOrderStatus(request.new_status)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid status: {request.new_status}")
    else:
        raise HTTPException(status_code=400, detail="new_status or action is required")

    try:
        updated = await transition_order_status(username, order_id, new_status, order_store, ledger_store)
    except SponsorshipError as e:
        raise http_error(e)

    return {
        "success": True,
        "order": order_view(updated),
        "message": f"Order transitioned to {new_status.value}",
    }


@router.post("/orders/{order_id}/reconcile")
async def reconcile_creator_order(
    username: str,
    order_id: str,
    order_store: OrderStore = Depends(get_order_store),
    ledger_store: SponsorshipLedgerStore = Depends(get_ledger_store),
):
    """Retry the ledger merge for a paid order whose merge did not go through."""
    try:
        entries = await reconcile_order(username, order_id, order_store, ledger_store)
    except SponsorshipError as e:
        raise http_error(e)

    return {
        "success": True,
        "entries": [_ledger_view(e) for e in entries],
    }


# ============================================
# SPONSORSHIP LEDGER
# ============================================

@router.get("/ledger")
async def get_creator_ledger(username: str, ledger_store: SponsorshipLedgerStore = Depends(get_ledger_store)):
    entries = await ledger_store.list_for_creator(username)
    return {
        "entries": [_ledger_view(e) for e in entries],
        "total": len(entries),
    }


@router.get("/ledger/{content_id}")
async def get_creator_ledger_entry(
    username: str,
    content_id: int,
    ledger_store: SponsorshipLedgerStore = Depends(get_ledger_store),
):
    entry = await ledger_store.get(username, content_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Content not in sponsorship ledger")
    return _ledger_view(entry)


# ============================================
# NOTIFICATIONS
# ============================================

@router.get("/notifications")
async def get_creator_notifications(
    username: str,
    unread_only: bool = False,
    limit: int = 50,
    notification_store: NotificationStore = Depends(get_notification_store),
):
    events = await notifications.list_notifications(
        username, notification_store, unread_only=unread_only, limit=limit,
    )
    unread = await notifications.unread_count(username, notification_store)
    return {
        "notifications": [e.model_dump(mode="json") for e in events],
        "unread_count": unread,
    }


@router.get("/notifications/unread-count")
async def get_unread_count(username: str, notification_store: NotificationStore = Depends(get_notification_store)):
    return {"count": await notifications.unread_count(username, notification_store)}


@router.get("/notifications/poll")
async def poll_notifications(
    username: str,
    since: Optional[datetime] = None,
    notification_store: NotificationStore = Depends(get_notification_store),
):
    """Unread events newer than `since`; has_new tells the dashboard to raise an alert."""
    events = await notifications.poll_new_unread(username, since, notification_store)
    return {
        "has_new": bool(events),
        "notifications": [e.model_dump(mode="json") for e in events],
    }


@router.post("/notifications/read-all")
async def mark_all_notifications_read(
    username: str,
    notification_store: NotificationStore = Depends(get_notification_store),
):
    count = await notifications.mark_all_read(username, notification_store)
    return {"success": True, "count": count}


@router.post("/notifications/{notification_id}/read")
async def mark_notification_read(
    username: str,
    notification_id: str,
    notification_store: NotificationStore = Depends(get_notification_store),
):
    if not await notifications.mark_read(username, notification_id, notification_store):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True}


@router.delete("/notifications/{notification_id}")
async def delete_notification(
    username: str,
    notification_id: str,
    notification_store: NotificationStore = Depends(get_notification_store),
):
    if not await notifications.remove_notification(username, notification_id, notification_store):
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"success": True}
