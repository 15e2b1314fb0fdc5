"""
Notification sink and inbox.

Notifications are persisted first and pushed afterwards over Redis pub/sub
(channel ``notifications:{user_id}``) for the WebSocket relay. A failed push
is logged and never undoes the stored record.
"""

import json
import uuid
from typing import Any

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.errors import NotFound
from db.models import Notification
from db.store import MarketplaceStore

logger = structlog.get_logger()


def notification_channel(user_id: uuid.UUID | str) -> str:
    return f"notifications:{user_id}"


def _push_payload(notification: Notification) -> str:
    return json.dumps(
        {
            "type": "notification",
            "payload": {
                "notification_id": str(notification.notification_id),
                "type": notification.type,
                "title": notification.title,
                "message": notification.message,
                "order_id": str(notification.order_id) if notification.order_id else None,
                "created_at": notification.created_at.isoformat() if notification.created_at else None,
            },
        }
    )


async def publish_notifications(notifications: list[Notification]) -> int:
    """
    Push already-committed notifications to their recipients.
    Returns number of subscribers reached.
    """
    settings = get_settings()
    if not notifications or not settings.notification_push_enabled:
        return 0

    redis = aioredis.from_url(settings.redis_url)
    total_subs = 0
    try:
        for notification in notifications:
            total_subs += await redis.publish(notification_channel(notification.user_id), _push_payload(notification))
    except (RedisError, OSError) as exc:
        logger.warning("notifications.publish_failed", count=len(notifications), error=str(exc))
    finally:
        await redis.aclose()
    return total_subs


async def notify_user(
    db: AsyncSession,
    *,
    user_id: uuid.UUID,
    type: str,
    title: str,
    message: str,
    order_id: uuid.UUID | None = None,
    offer_id: uuid.UUID | None = None,
    custom_request_id: uuid.UUID | None = None,
) -> Notification | None:
    """
    Store one notification and push it. Used after a business change has
    already committed, so a failed insert is logged and reported as None
    rather than raised into the caller.
    """
    store = MarketplaceStore(db)
    try:
        notification = await store.create_notification(
            {
                "user_id": user_id,
                "type": type,
                "title": title,
                "message": message,
                "order_id": order_id,
                "offer_id": offer_id,
                "custom_request_id": custom_request_id,
            }
        )
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("notifications.create_failed", user_id=str(user_id), type=type, error=str(exc), exc_info=True)
        return None

    await publish_notifications([notification])
    return notification


# ──────────────────────────────────────────────────────────────────────────
# Inbox
# ──────────────────────────────────────────────────────────────────────────


async def unread_count(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(
        select(func.count(Notification.notification_id)).where(
            Notification.user_id == user_id,
            Notification.read.is_(False),
        )
    )
    return int(result.scalar() or 0)


async def list_user_notifications(
    db: AsyncSession,
    user_id: uuid.UUID,
    *,
    unread_only: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> dict[str, Any]:
    filters = [Notification.user_id == user_id]
    if unread_only:
        filters.append(Notification.read.is_(False))

    rows = await db.execute(
        select(Notification).where(*filters).order_by(Notification.created_at.desc()).offset(offset).limit(limit)
    )
    total = await db.execute(select(func.count(Notification.notification_id)).where(*filters))
    return {
        "notifications": list(rows.scalars().all()),
        "total": int(total.scalar() or 0),
        "unread_count": await unread_count(db, user_id),
    }


async def mark_as_read(db: AsyncSession, notification_id: uuid.UUID, user_id: uuid.UUID) -> Notification:
    result = await db.execute(
        select(Notification).where(
            Notification.notification_id == notification_id,
            Notification.user_id == user_id,
        )
    )
    notification = result.scalar_one_or_none()
    if notification is None:
        raise NotFound("Notification not found")

    notification.read = True
    await db.commit()
    return notification


async def mark_all_as_read(db: AsyncSession, user_id: uuid.UUID) -> int:
    result = await db.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
        .values(read=True)
    )
    await db.commit()
    logger.info("notifications.marked_all_read", user_id=str(user_id), count=result.rowcount)
    return result.rowcount


async def delete_notification(db: AsyncSession, notification_id: uuid.UUID, user_id: uuid.UUID) -> None:
    result = await db.execute(
        delete(Notification).where(
            Notification.notification_id == notification_id,
            Notification.user_id == user_id,
        )
    )
    if result.rowcount == 0:
        await db.rollback()
        raise NotFound("Notification not found")
    await db.commit()
