"""
Acceptance Transactor — turns an accepted bid into a payable Design + Offer.

One atomic unit, applied in order:
  1. target bid      PENDING -> ACCEPTED
  2. sibling bids    PENDING -> REJECTED
  3. request         OPEN -> IN_PROGRESS, selected_bid_id = target
  4. Design          synthesized for the winning designer
  5. Offer           ACCEPTED, priced from the bid, deadline from the request

Step 3 is a conditional update on status = 'OPEN' (after a row lock where the
database supports one), so when two customers' calls race only one can move
the request; the other sees InvalidState and its unit rolls back.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.errors import Forbidden, InvalidState, NotFound
from core.timeutil import utcnow
from db.models import CustomRequest, CustomRequestBid, Offer
from db.store import MarketplaceStore
from negotiation.transitions import (
    BidAction,
    BidStatus,
    RequestAction,
    RequestStatus,
    next_bid_status,
    next_request_status,
)
from notifications.service import notify_user

logger = structlog.get_logger()

DEFAULT_PRODUCTION_STEPS = [
    {"id": "step-1", "title": "Confirm measurements", "estimatedTime": "1 day", "description": ""},
    {"id": "step-2", "title": "Sourcing materials", "estimatedTime": "2 days", "description": ""},
    {"id": "step-3", "title": "Cutting & preparation", "estimatedTime": "1-2 days", "description": ""},
    {"id": "step-4", "title": "Sewing & assembly", "estimatedTime": "3-5 days", "description": ""},
    {"id": "step-5", "title": "Finishing & quality check", "estimatedTime": "1-2 days", "description": ""},
    {"id": "step-6", "title": "Packaging & delivery prep", "estimatedTime": "1 day", "description": ""},
]

CUSTOM_REQUEST_NOTE_PREFIX = "CUSTOM_REQUEST_ID:"


@dataclass(frozen=True)
class AcceptanceResult:
    accepted_bid: CustomRequestBid
    updated_request: CustomRequest
    offer: Offer


def offer_notes_for(request: CustomRequest) -> str:
    return f"{CUSTOM_REQUEST_NOTE_PREFIX}{request.request_id}\n{request.description}"


async def accept_bid(
    db: AsyncSession,
    *,
    request_id: uuid.UUID,
    bid_id: uuid.UUID,
    acting_customer_id: uuid.UUID,
    now: datetime | None = None,
) -> AcceptanceResult:
    settings = get_settings()
    now = now or utcnow()
    store = MarketplaceStore(db)

    request = await store.find_request(request_id)
    if request is None:
        raise NotFound("Custom request not found")
    bid = await store.find_bid(bid_id)
    if bid is None or bid.request_id != request_id:
        raise NotFound("Bid not found")
    if request.customer_id != acting_customer_id:
        raise Forbidden("Not authorized to accept bids for this request")

    next_request_status(request.status, RequestAction.ACCEPT_BID)
    next_bid_status(bid.status, BidAction.ACCEPT)

    async def _accept(tx: MarketplaceStore) -> Offer:
        locked = await tx.find_request(request_id, for_update=True)
        target_request_status = next_request_status(locked.status, RequestAction.ACCEPT_BID)

        # 1. accept the chosen bid
        accepted = next_bid_status(bid.status, BidAction.ACCEPT)
        if not await tx.update_bid(bid_id, {"status": accepted.value}, expected_status=BidStatus.PENDING.value):
            raise InvalidState("Only pending bids can be accepted")

        # 2. reject everything else still pending
        rejected = await tx.update_sibling_bids(
            request_id,
            bid_id,
            {"status": next_bid_status(BidStatus.PENDING, BidAction.REJECT).value},
            expected_status=BidStatus.PENDING.value,
        )

        # 3. move the request; zero rows means another acceptance or a close won
        moved = await tx.update_request(
            request_id,
            {"status": target_request_status.value, "selected_bid_id": bid_id},
            expected_status=RequestStatus.OPEN.value,
        )
        if not moved:
            raise InvalidState("This request is no longer open")

        # 4. design for the winning designer
        design = await tx.create_design(
            {
                "designer_id": bid.designer_id,
                "title": f"Custom Order: {locked.title}",
                "description": locked.description,
                "price": bid.price,
                "images": list(locked.reference_images or []),
                "category": locked.category,
                "colors": [],
                "sizes": [],
                "customizable": True,
                "production_steps": [dict(step) for step in DEFAULT_PRODUCTION_STEPS],
            }
        )

        # 5. accepted offer feeding the payment -> order pipeline
        offer = await tx.create_offer(
            {
                "customer_id": locked.customer_id,
                "designer_id": bid.designer_id,
                "design_id": design.design_id,
                "status": "ACCEPTED",
                "customer_price": bid.price,
                "final_price": bid.price,
                "measurements": locked.measurements,
                "notes": offer_notes_for(locked),
                "designer_notes": bid.pitch,
                "accepted_at": now,
                "deadline": locked.deadline,
            }
        )

        logger.info(
            "acceptance.applied",
            request_id=str(request_id),
            bid_id=str(bid_id),
            rejected_bids=rejected,
            design_id=str(design.design_id),
            offer_id=str(offer.offer_id),
        )
        return offer

    offer = await store.run_atomic(_accept, timeout=settings.acceptance_timeout_seconds, label="accept_bid")

    accepted_bid = await store.find_bid(bid_id)
    updated_request = await store.find_request(request_id, with_selected_bid=True)
    logger.info(
        "acceptance.committed",
        request_id=str(request_id),
        bid_id=str(bid_id),
        offer_id=str(offer.offer_id),
        price=accepted_bid.price,
    )

    await notify_user(
        db,
        user_id=accepted_bid.designer_id,
        type="BID_ACCEPTED",
        title="Your bid was accepted",
        message=f"Your bid of ${accepted_bid.price:.2f} for \"{updated_request.title}\" was accepted.",
        offer_id=offer.offer_id,
        custom_request_id=request_id,
    )
    return AcceptanceResult(accepted_bid=accepted_bid, updated_request=updated_request, offer=offer)
