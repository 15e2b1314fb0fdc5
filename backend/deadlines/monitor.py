"""
Deadline Monitor — reminder and overdue notifications for open orders.

Runs hourly from Celery beat (workers/deadlines.py). Each pass:
  1. Select non-terminal orders in the pass's deadline window
  2. Insert-if-absent the notification(s) per order, one savepoint per order
  3. Commit, then push the newly created notifications

Write-once is enforced in the database through ``Notification.dedup_key``,
so overlapping runs can never produce a second notification for the same
(order, threshold). The monitor never changes orders, requests or bids.

Reminder thresholds (designer only):
  - DEADLINE_REMINDER_72H: deadline within 72 hours
  - DEADLINE_REMINDER_24H: deadline within 24 hours
  - DEADLINE_REMINDER_6H:  deadline within 6 hours
Overdue (designer + customer):
  - DEADLINE_OVERDUE: deadline already passed
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.timeutil import utcnow
from db.models import Notification, Order
from db.store import MarketplaceStore
from notifications.service import publish_notifications

logger = structlog.get_logger()

TERMINAL_ORDER_STATUSES = ("DELIVERED", "CANCELLED", "COMPLETED")
OVERDUE_TYPE = "DEADLINE_OVERDUE"


@dataclass(frozen=True)
class ReminderThreshold:
    hours: int
    type: str
    title: str


REMINDER_THRESHOLDS = (
    ReminderThreshold(72, "DEADLINE_REMINDER_72H", "Deadline in 3 days"),
    ReminderThreshold(24, "DEADLINE_REMINDER_24H", "Deadline in 24 hours"),
    ReminderThreshold(6, "DEADLINE_REMINDER_6H", "Urgent: Deadline in 6 hours"),
)


def reminder_message(order_number: str, customer_name: str, hours_remaining: int) -> str:
    """Reminder text, tiered by how close the deadline is."""
    if hours_remaining > 48:
        return (
            f"Order {order_number} for {customer_name} is due in {hours_remaining // 24} days. "
            "Please ensure you're on track!"
        )
    elif hours_remaining > 24:
        return f"Order {order_number} for {customer_name} is due tomorrow. Please ensure completion and shipping!"
    elif hours_remaining > 6:
        return (
            f"⚠️ Order {order_number} for {customer_name} is due in {hours_remaining} hours. "
            "Please complete urgently!"
        )
    return f"🚨 URGENT: Order {order_number} for {customer_name} is due in {hours_remaining} hours!"


def reminder_dedup_key(order_id: uuid.UUID, notification_type: str) -> str:
    return f"{order_id}:{notification_type}"


def overdue_dedup_key(order_id: uuid.UUID, recipient: str) -> str:
    return f"{order_id}:{OVERDUE_TYPE}:{recipient}"


def _customer_name(order: Order) -> str:
    return order.customer.full_name if order.customer else "your customer"


# ──────────────────────────────────────────────────────────────────────────
# Passes
# ──────────────────────────────────────────────────────────────────────────


async def run_upcoming_deadline_pass(db: AsyncSession, now: datetime | None = None) -> dict[str, Any]:
    """
    One reminder per (order, threshold). An order 5 hours out with no prior
    reminders receives all three in the same pass.
    """
    now = now or utcnow()
    store = MarketplaceStore(db)
    created: list[Notification] = []
    summary: dict[str, Any] = {"created": 0, "skipped": 0, "failed": 0, "by_type": {}}

    for threshold in REMINDER_THRESHOLDS:
        orders = await store.find_orders(
            deadline_after=now,
            deadline_until=now + timedelta(hours=threshold.hours),
            exclude_statuses=TERMINAL_ORDER_STATUSES,
        )
        type_created = 0
        for order in orders:
            try:
                hours_remaining = int((order.deadline - now).total_seconds() // 3600)
                async with db.begin_nested():
                    notification = await store.create_notification_if_absent(
                        {
                            "user_id": order.designer_id,
                            "type": threshold.type,
                            "title": threshold.title,
                            "message": reminder_message(order.order_number, _customer_name(order), hours_remaining),
                            "order_id": order.order_id,
                        },
                        dedup_key=reminder_dedup_key(order.order_id, threshold.type),
                    )
            except Exception as exc:  # noqa: BLE001
                summary["failed"] += 1
                logger.error(
                    "deadlines.order_failed",
                    pass_name="upcoming",
                    order_id=str(order.order_id),
                    notification_type=threshold.type,
                    error=str(exc),
                    exc_info=True,
                )
                continue

            if notification is None:
                summary["skipped"] += 1
                continue
            created.append(notification)
            type_created += 1
            logger.info(
                "deadlines.reminder_created",
                order_number=order.order_number,
                notification_type=threshold.type,
                hours_remaining=hours_remaining,
            )
        summary["by_type"][threshold.type] = type_created

    await db.commit()
    summary["created"] = len(created)
    await publish_notifications(created)
    return summary


async def run_overdue_pass(db: AsyncSession, now: datetime | None = None) -> dict[str, Any]:
    """
    Designer and customer are notified together: both records commit in one
    savepoint or neither does. An order whose designer notice already exists
    is skipped.
    """
    now = now or utcnow()
    store = MarketplaceStore(db)
    created: list[Notification] = []
    summary: dict[str, Any] = {"created": 0, "skipped": 0, "failed": 0, "by_type": {OVERDUE_TYPE: 0}}

    orders = await store.find_orders(deadline_before=now, exclude_statuses=TERMINAL_ORDER_STATUSES)
    for order in orders:
        pair: list[Notification] = []
        try:
            days_overdue = (now - order.deadline).days
            async with db.begin_nested():
                designer_notice = await store.create_notification_if_absent(
                    {
                        "user_id": order.designer_id,
                        "type": OVERDUE_TYPE,
                        "title": "Order overdue!",
                        "message": (
                            f"Order {order.order_number} is {days_overdue} day(s) overdue. "
                            "Please complete and ship as soon as possible."
                        ),
                        "order_id": order.order_id,
                    },
                    dedup_key=overdue_dedup_key(order.order_id, "designer"),
                )
                if designer_notice is not None:
                    pair.append(designer_notice)
                    customer_notice = await store.create_notification_if_absent(
                        {
                            "user_id": order.customer_id,
                            "type": OVERDUE_TYPE,
                            "title": "Order deadline passed",
                            "message": (
                                f"Your order {order.order_number} has passed its expected deadline. "
                                "The designer has been notified to expedite completion."
                            ),
                            "order_id": order.order_id,
                        },
                        dedup_key=overdue_dedup_key(order.order_id, "customer"),
                    )
                    if customer_notice is not None:
                        pair.append(customer_notice)
        except Exception as exc:  # noqa: BLE001
            summary["failed"] += 1
            logger.error(
                "deadlines.order_failed",
                pass_name="overdue",
                order_id=str(order.order_id),
                error=str(exc),
                exc_info=True,
            )
            continue

        if not pair:
            summary["skipped"] += 1
            continue
        created.extend(pair)
        logger.warning(
            "deadlines.overdue_created",
            order_number=order.order_number,
            days_overdue=days_overdue,
            notified=len(pair),
        )

    await db.commit()
    summary["created"] = len(created)
    summary["by_type"][OVERDUE_TYPE] = len(created)
    await publish_notifications(created)
    return summary


async def run_monitor_cycle(db: AsyncSession, now: datetime | None = None) -> dict[str, Any]:
    """Upcoming pass, then overdue pass, against the same clock reading."""
    now = now or utcnow()
    logger.info("deadlines.cycle_started", now=now.isoformat())
    upcoming = await run_upcoming_deadline_pass(db, now=now)
    overdue = await run_overdue_pass(db, now=now)
    logger.info(
        "deadlines.cycle_completed",
        reminders=upcoming["created"],
        overdue=overdue["created"],
        failed=upcoming["failed"] + overdue["failed"],
    )
    return {"upcoming": upcoming, "overdue": overdue}


# ──────────────────────────────────────────────────────────────────────────
# Dashboard stats
# ──────────────────────────────────────────────────────────────────────────


async def get_deadline_stats(
    db: AsyncSession,
    designer_id: uuid.UUID,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Upcoming deadlines in the stats window, overdue orders, and the share of
    delivered orders that arrived on time (100 when nothing was delivered yet).
    """
    settings = get_settings()
    now = now or utcnow()
    open_orders = (Order.designer_id == designer_id, Order.status.not_in(TERMINAL_ORDER_STATUSES))

    upcoming = await db.execute(
        select(func.count(Order.order_id)).where(
            *open_orders,
            Order.deadline >= now,
            Order.deadline <= now + timedelta(days=settings.deadline_stats_window_days),
        )
    )
    overdue = await db.execute(select(func.count(Order.order_id)).where(*open_orders, Order.deadline < now))
    delivered = await db.execute(
        select(Order.deadline, Order.delivered_at).where(
            Order.designer_id == designer_id,
            Order.deadline.is_not(None),
            Order.status == "DELIVERED",
        )
    )
    rows = delivered.all()
    on_time = sum(1 for row in rows if row.delivered_at is not None and row.delivered_at <= row.deadline)

    return {
        "upcoming_deadlines": int(upcoming.scalar() or 0),
        "overdue_orders": int(overdue.scalar() or 0),
        "on_time_delivery_rate": (on_time / len(rows)) * 100 if rows else 100.0,
    }
