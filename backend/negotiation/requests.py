"""
Custom request lifecycle — creation, browsing, and owner close/cancel.

A request is created OPEN by its customer. Only the owner may close or
cancel it, and only while it is still OPEN; the move to IN_PROGRESS belongs
to the acceptance transactor.
"""

import math
import uuid
from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.errors import Forbidden, InvalidState, NotFound, ValidationError
from core.timeutil import to_naive_utc, utcnow
from db.models import REQUIRED_MEASUREMENTS, CustomRequest
from db.store import MarketplaceStore
from negotiation.transitions import CLOSING_ACTIONS, RequestStatus, next_request_status

logger = structlog.get_logger()


def missing_measurements(measurements: dict[str, Any] | None) -> list[str]:
    """Required measurement keys that are absent or zero."""
    measurements = measurements or {}
    return [name for name in REQUIRED_MEASUREMENTS if not measurements.get(name)]


async def create_request(
    db: AsyncSession,
    *,
    customer_id: uuid.UUID,
    title: str | None,
    description: str | None,
    category: str | None,
    measurements: dict[str, Any] | None,
    reference_images: list[str] | None = None,
    budget: float | None = None,
    deadline: datetime | str | None = None,
    requirements: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> CustomRequest:
    settings = get_settings()
    now = now or utcnow()

    if not title or not description or not category or not measurements:
        raise ValidationError("Missing required fields: title, description, category, measurements")

    missing = missing_measurements(measurements)
    if missing:
        raise ValidationError(f"Missing required measurements: {', '.join(missing)}")

    deadline_at = None
    if deadline:
        try:
            deadline_at = to_naive_utc(deadline)
        except ValueError:
            raise ValidationError("Invalid deadline format") from None
        earliest = now + timedelta(days=settings.min_request_deadline_days)
        if deadline_at < earliest:
            raise ValidationError(
                f"Deadline must be at least {settings.min_request_deadline_days} days from now "
                "to allow time for production and shipping"
            )

    if budget is not None and budget <= 0:
        raise ValidationError("Budget must be greater than zero")

    store = MarketplaceStore(db)
    request = await store.create_request(
        {
            "customer_id": customer_id,
            "title": title,
            "description": description,
            "category": category,
            "reference_images": list(reference_images or []),
            "budget": budget,
            "deadline": deadline_at,
            "requirements": requirements,
            "measurements": measurements,
            "status": RequestStatus.OPEN.value,
        }
    )
    await db.commit()
    logger.info("requests.created", request_id=str(request.request_id), customer_id=str(customer_id))
    return request


async def list_requests(
    db: AsyncSession,
    *,
    status: str | None = None,
    category: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> dict[str, Any]:
    """Browse requests (designer view), newest first, with pagination metadata."""
    page = max(page, 1)
    store = MarketplaceStore(db)
    requests, total = await store.list_requests(
        status=status,
        category=category,
        offset=(page - 1) * limit,
        limit=limit,
    )
    return {
        "requests": requests,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit) if limit else 0,
        },
    }


async def list_my_requests(db: AsyncSession, customer_id: uuid.UUID) -> list[CustomRequest]:
    requests, _ = await MarketplaceStore(db).list_requests(customer_id=customer_id)
    return requests


async def get_request(db: AsyncSession, request_id: uuid.UUID) -> CustomRequest:
    request = await MarketplaceStore(db).find_request(request_id, with_bids=True)
    if request is None:
        raise NotFound("Custom request not found")
    return request


async def close_or_cancel_request(
    db: AsyncSession,
    *,
    request_id: uuid.UUID,
    customer_id: uuid.UUID,
    status: str,
    now: datetime | None = None,
) -> CustomRequest:
    try:
        target = RequestStatus(status)
        action = CLOSING_ACTIONS[target]
    except (ValueError, KeyError):
        raise ValidationError("status must be CLOSED or CANCELLED") from None

    store = MarketplaceStore(db)
    request = await store.find_request(request_id)
    if request is None:
        raise NotFound("Custom request not found")
    if request.customer_id != customer_id:
        raise Forbidden("Not authorized to update this request")

    next_status = next_request_status(request.status, action)

    updated = await store.update_request(
        request_id,
        {"status": next_status.value, "closed_at": now or utcnow()},
        expected_status=RequestStatus.OPEN.value,
    )
    if not updated:
        # Lost a race with acceptance or another close.
        await db.rollback()
        raise InvalidState("This request is no longer open")
    await db.commit()

    logger.info("requests.closed", request_id=str(request_id), status=next_status.value)
    return await store.find_request(request_id)
