"""
Creator Notification Service
Append-only feed of events for a creator (currently only new orders).

The feed is read by the creator's dashboard, which polls poll_new_unread()
with the timestamp of its last check to decide whether to raise an alert.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from models import NotificationEvent, NotificationType, Order
from stores.interfaces import NotificationStore

logger = logging.getLogger(__name__)


def new_order_message(order: Order) -> str:
    units = len(order.items)
    noun = "item" if units == 1 else "items"
    title = order.items[0].content.title if order.items else ""
    return f"New order {order.order_code} from {order.buyer_info.name}: {title} ({units} {noun})"


async def notify_new_order(order: Order, notification_store: NotificationStore) -> NotificationEvent:
    event = NotificationEvent(
        creator_username=order.creator_username,
        type=NotificationType.NEW_ORDER,
        order_code=order.order_code,
        message=new_order_message(order),
        buyer_name=order.buyer_info.name,
    )
    await notification_store.append(event)
    logger.info(f"New order notification {event.notification_id} for {order.creator_username}")
    return event


async def list_notifications(
    creator_username: str,
    notification_store: NotificationStore,
    unread_only: bool = False,
    limit: int = 50,
) -> List[NotificationEvent]:
    return await notification_store.list_for_creator(
        creator_username, unread_only=unread_only, limit=limit,
    )


async def unread_count(creator_username: str, notification_store: NotificationStore) -> int:
    return await notification_store.count_unread(creator_username)


async def mark_read(creator_username: str, notification_id: str, notification_store: NotificationStore) -> bool:
    return await notification_store.mark_read(creator_username, notification_id)


async def mark_all_read(creator_username: str, notification_store: NotificationStore) -> int:
    count = await notification_store.mark_all_read(creator_username)
    logger.info(f"Marked {count} notifications read for {creator_username}")
    return count


async def remove_notification(
    creator_username: str,
    notification_id: str,
    notification_store: NotificationStore,
) -> bool:
    return await notification_store.remove(creator_username, notification_id)


async def poll_new_unread(
    creator_username: str,
    since: Optional[datetime],
    notification_store: NotificationStore,
) -> List[NotificationEvent]:
    """Unread events created after `since` (all unread events when since is None)."""
    if since is not None and since.tzinfo is None:
        # Naive timestamps from clients are taken as UTC
        since = since.replace(tzinfo=timezone.utc)
    return await notification_store.list_for_creator(
        creator_username, unread_only=True, since=since,
    )
