"""
Bid state machine — submission, update, withdrawal and customer-facing listing.

Rules enforced on every write:
  - the request must exist and be OPEN
  - price, completion date and pitch are required; price must be positive
  - completion must be at least ``min_completion_lead_days`` out
  - with a request deadline, completion + ``shipping_buffer_days`` must not pass it,
    and the designer must state explicitly whether they can meet it
  - one bid per (request, designer)
"""

import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.errors import Conflict, Forbidden, InvalidState, NotFound, ValidationError
from core.timeutil import format_display_date, to_naive_utc, utcnow
from db.models import CustomRequest, CustomRequestBid, User
from db.store import MarketplaceStore
from negotiation.transitions import BidAction, RequestAction, next_bid_status, next_request_status

logger = structlog.get_logger()

_UNSET: Any = object()


@dataclass(frozen=True)
class BidTerms:
    price: float
    completion_date: datetime
    pitch: str


def parse_bid_terms(
    price: float | str | None,
    proposed_completion_date: datetime | date | str | None,
    pitch: str | None,
) -> BidTerms:
    """Presence and format checks that need no stored state."""
    if price in (None, "") or not proposed_completion_date or not pitch:
        raise ValidationError("Missing required fields: price, proposed_completion_date, pitch")
    try:
        price_value = float(price)
    except (TypeError, ValueError):
        raise ValidationError("Price must be a number") from None
    if price_value <= 0:
        raise ValidationError("Price must be greater than zero")
    try:
        completion = to_naive_utc(proposed_completion_date)
    except ValueError:
        raise ValidationError("Invalid completion date format") from None
    return BidTerms(price=price_value, completion_date=completion, pitch=pitch)


def check_schedule(
    request: CustomRequest,
    completion_date: datetime,
    can_meet_deadline: bool | None,
    *,
    now: datetime,
) -> None:
    """Lead time, shipping buffer and explicit deadline acknowledgement."""
    settings = get_settings()

    earliest = now + timedelta(days=settings.min_completion_lead_days)
    if completion_date < earliest:
        raise ValidationError(
            f"Completion date must be at least {settings.min_completion_lead_days} days from now"
        )

    if request.deadline is None:
        return

    buffer = timedelta(days=settings.shipping_buffer_days)
    if completion_date + buffer > request.deadline:
        required_ship_date = request.deadline - buffer
        raise ValidationError(
            f"You must complete and ship by {format_display_date(required_ship_date)} "
            f"to allow {settings.shipping_buffer_days} days for delivery before the customer's deadline "
            f"of {format_display_date(request.deadline)}"
        )

    if can_meet_deadline is None:
        raise ValidationError(
            "This request has a deadline. You must indicate if you can meet it by providing can_meet_deadline"
        )


async def submit_bid(
    db: AsyncSession,
    *,
    request_id: uuid.UUID,
    designer: User,
    price: float | str | None,
    proposed_completion_date: datetime | date | str | None,
    pitch: str | None,
    portfolio_images: list[str] | None = None,
    can_meet_deadline: bool | None = None,
    deadline_notes: str | None = None,
    now: datetime | None = None,
) -> CustomRequestBid:
    now = now or utcnow()

    if designer.role != "DESIGNER":
        raise Forbidden("Only designers can submit bids")

    terms = parse_bid_terms(price, proposed_completion_date, pitch)

    store = MarketplaceStore(db)
    request = await store.find_request(request_id)
    if request is None:
        raise NotFound("Custom request not found")
    next_request_status(request.status, RequestAction.RECEIVE_BID)

    check_schedule(request, terms.completion_date, can_meet_deadline, now=now)

    if await store.find_designer_bid(request_id, designer.user_id) is not None:
        raise Conflict("You have already submitted a bid for this request")

    try:
        bid = await store.create_bid(
            {
                "request_id": request_id,
                "designer_id": designer.user_id,
                "price": terms.price,
                "proposed_completion_date": terms.completion_date,
                "pitch": terms.pitch,
                "portfolio_images": list(portfolio_images or []),
                "can_meet_deadline": can_meet_deadline,
                "deadline_notes": deadline_notes or None,
            }
        )
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise Conflict("You have already submitted a bid for this request") from None

    logger.info(
        "bids.submitted",
        bid_id=str(bid.bid_id),
        request_id=str(request_id),
        designer_id=str(designer.user_id),
        price=terms.price,
    )
    return bid


async def _load_owned_bid(
    store: MarketplaceStore,
    request_id: uuid.UUID,
    bid_id: uuid.UUID,
    designer_id: uuid.UUID,
) -> tuple[CustomRequest, CustomRequestBid]:
    bid = await store.find_bid(bid_id)
    if bid is None or bid.request_id != request_id:
        raise NotFound("Bid not found")
    if bid.designer_id != designer_id:
        raise Forbidden("Not authorized to modify this bid")
    request = await store.find_request(request_id)
    if request is None:
        raise NotFound("Custom request not found")
    return request, bid


async def update_bid(
    db: AsyncSession,
    *,
    request_id: uuid.UUID,
    bid_id: uuid.UUID,
    designer_id: uuid.UUID,
    price: float | str | None = _UNSET,
    proposed_completion_date: datetime | date | str | None = _UNSET,
    pitch: str | None = _UNSET,
    portfolio_images: list[str] | None = _UNSET,
    can_meet_deadline: bool | None = _UNSET,
    deadline_notes: str | None = _UNSET,
    now: datetime | None = None,
) -> CustomRequestBid:
    """Edit a PENDING bid on an OPEN request. Omitted fields keep their stored values."""
    now = now or utcnow()
    store = MarketplaceStore(db)
    request, bid = await _load_owned_bid(store, request_id, bid_id, designer_id)

    next_request_status(request.status, RequestAction.RECEIVE_BID)
    next_bid_status(bid.status, BidAction.UPDATE)

    terms = parse_bid_terms(
        bid.price if price is _UNSET else price,
        bid.proposed_completion_date if proposed_completion_date is _UNSET else proposed_completion_date,
        bid.pitch if pitch is _UNSET else pitch,
    )
    meets_deadline = bid.can_meet_deadline if can_meet_deadline is _UNSET else can_meet_deadline
    check_schedule(request, terms.completion_date, meets_deadline, now=now)

    values: dict[str, Any] = {
        "price": terms.price,
        "proposed_completion_date": terms.completion_date,
        "pitch": terms.pitch,
        "can_meet_deadline": meets_deadline,
    }
    if portfolio_images is not _UNSET:
        values["portfolio_images"] = list(portfolio_images or [])
    if deadline_notes is not _UNSET:
        values["deadline_notes"] = deadline_notes or None

    if not await store.update_bid(bid_id, values, expected_status="PENDING"):
        await db.rollback()
        raise InvalidState("Only pending bids can be updated")
    await db.commit()

    logger.info("bids.updated", bid_id=str(bid_id), request_id=str(request_id), fields=sorted(values))
    return await store.find_bid(bid_id)


async def withdraw_bid(
    db: AsyncSession,
    *,
    request_id: uuid.UUID,
    bid_id: uuid.UUID,
    designer_id: uuid.UUID,
) -> CustomRequestBid:
    store = MarketplaceStore(db)
    request, bid = await _load_owned_bid(store, request_id, bid_id, designer_id)

    next_request_status(request.status, RequestAction.RECEIVE_BID)
    target = next_bid_status(bid.status, BidAction.WITHDRAW)

    if not await store.update_bid(bid_id, {"status": target.value}, expected_status="PENDING"):
        await db.rollback()
        raise InvalidState("Only pending bids can be withdrawn")
    await db.commit()

    logger.info("bids.withdrawn", bid_id=str(bid_id), request_id=str(request_id))
    return await store.find_bid(bid_id)


async def list_bids(db: AsyncSession, request_id: uuid.UUID) -> list[CustomRequestBid]:
    """
    Customer-facing bid list. When the request has a deadline, bids whose
    designer did not confirm they can meet it are left out entirely.
    """
    store = MarketplaceStore(db)
    request = await store.find_request(request_id)
    if request is None:
        raise NotFound("Custom request not found")

    if request.deadline is not None:
        return await store.list_bids(request_id=request_id, can_meet_deadline=True)
    return await store.list_bids(request_id=request_id)


async def list_my_bids(db: AsyncSession, designer_id: uuid.UUID) -> list[CustomRequestBid]:
    return await MarketplaceStore(db).list_bids(designer_id=designer_id, include_request=True)
