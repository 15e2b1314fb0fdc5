"""
Custom Request Router — request posting, bidding and bid acceptance.

Flow:
  1. Customer posts a request (measurements, optional deadline) → OPEN
  2. Designers bid; bids that cannot meet a set deadline are hidden from the customer
  3. Customer accepts one bid → request IN_PROGRESS, Design + Offer created
     (the Offer then goes through the normal payment → order pipeline)

Business rules live in negotiation/*; this module only maps HTTP to them.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import current_user_id, get_current_account, get_db
from db.models import CustomRequest, User
from negotiation import bids as bid_service
from negotiation import requests as request_service
from negotiation.acceptance import AcceptanceResult, accept_bid

router = APIRouter(prefix="/api/v1/custom-requests", tags=["custom-requests"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class CustomerBrief(BaseModel):
    user_id: UUID
    full_name: str
    profile_image: str | None

    model_config = {"from_attributes": True}


class DesignerProfile(BaseModel):
    """Public designer card shown next to a bid."""

    user_id: UUID
    full_name: str
    brand_name: str | None
    brand_logo: str | None
    profile_image: str | None
    bio: str | None

    model_config = {"from_attributes": True}


class BidBrief(BaseModel):
    bid_id: UUID
    status: str
    designer_id: UUID

    model_config = {"from_attributes": True}


class BidResponse(BaseModel):
    bid_id: UUID
    request_id: UUID
    designer_id: UUID
    price: float
    proposed_completion_date: datetime
    pitch: str
    portfolio_images: list[str]
    status: str
    can_meet_deadline: bool | None
    deadline_notes: str | None
    created_at: datetime
    updated_at: datetime
    designer: DesignerProfile | None = None

    model_config = {"from_attributes": True}


class CustomRequestResponse(BaseModel):
    request_id: UUID
    customer_id: UUID
    title: str
    description: str
    category: str
    reference_images: list[str]
    budget: float | None
    deadline: datetime | None
    requirements: dict[str, Any] | None
    measurements: dict[str, Any]
    status: str
    selected_bid_id: UUID | None
    created_at: datetime
    updated_at: datetime
    closed_at: datetime | None
    customer: CustomerBrief | None = None

    model_config = {"from_attributes": True}


class CustomRequestListItem(CustomRequestResponse):
    bid_count: int = 0
    bids: list[BidBrief] = []


class CustomRequestDetail(CustomRequestResponse):
    bids: list[BidResponse] = []


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class CustomRequestPage(BaseModel):
    requests: list[CustomRequestListItem]
    pagination: Pagination


class MyBidResponse(BidResponse):
    request: CustomRequestResponse | None = None


class DesignBrief(BaseModel):
    design_id: UUID
    title: str
    images: list[str]
    category: str

    model_config = {"from_attributes": True}


class DesignerContact(BaseModel):
    """Designer identity shared with the customer once a deal is struck."""

    user_id: UUID
    full_name: str
    brand_name: str | None
    email: str

    model_config = {"from_attributes": True}


class OfferResponse(BaseModel):
    offer_id: UUID
    customer_id: UUID
    designer_id: UUID
    design_id: UUID
    status: str
    customer_price: float
    final_price: float | None
    measurements: dict[str, Any] | None
    notes: str | None
    designer_notes: str | None
    accepted_at: datetime | None
    deadline: datetime | None
    design: DesignBrief | None = None
    designer: DesignerContact | None = None

    model_config = {"from_attributes": True}


class SelectedBidResponse(BidResponse):
    designer: DesignerContact | None = None


class AcceptedRequestResponse(CustomRequestResponse):
    selected_bid: SelectedBidResponse | None = None


class AcceptanceResponse(BaseModel):
    accepted_bid: BidResponse
    updated_request: AcceptedRequestResponse
    offer: OfferResponse


class CustomRequestCreate(BaseModel):
    # Presence is checked by the service so missing fields get its message.
    title: str | None = None
    description: str | None = None
    category: str | None = None
    measurements: dict[str, Any] | None = None
    reference_images: list[str] = Field(default_factory=list)
    budget: float | None = None
    deadline: datetime | None = None
    requirements: dict[str, Any] | None = None


class CustomRequestStatusUpdate(BaseModel):
    status: str = Field(..., examples=["CLOSED", "CANCELLED"])


class BidCreate(BaseModel):
    price: float | None = None
    proposed_completion_date: datetime | None = None
    pitch: str | None = None
    portfolio_images: list[str] = Field(default_factory=list)
    can_meet_deadline: bool | None = None
    deadline_notes: str | None = None


class BidUpdate(BaseModel):
    """Only fields present in the body are changed."""

    price: float | None = None
    proposed_completion_date: datetime | None = None
    pitch: str | None = None
    portfolio_images: list[str] | None = None
    can_meet_deadline: bool | None = None
    deadline_notes: str | None = None


def _list_item(request: CustomRequest, viewer_id: UUID) -> CustomRequestListItem:
    item = CustomRequestListItem.model_validate(request)
    item.bid_count = len(request.bids)
    # Browsers only see the winning bid and their own.
    item.bids = [
        BidBrief.model_validate(bid)
        for bid in request.bids
        if bid.status == "ACCEPTED" or bid.designer_id == viewer_id
    ]
    return item


def acceptance_body(result: AcceptanceResult) -> dict[str, Any]:
    """Wrapped ``{"success", "data"}`` shape plus the same fields at top level for older clients."""
    payload = AcceptanceResponse(
        accepted_bid=BidResponse.model_validate(result.accepted_bid),
        updated_request=AcceptedRequestResponse.model_validate(result.updated_request),
        offer=OfferResponse.model_validate(result.offer),
    ).model_dump(mode="json")
    return {"success": True, "data": payload, **payload}


# ─── Requests ───────────────────────────────────────────────────────────────


@router.post("/", response_model=CustomRequestResponse, status_code=201)
async def create_custom_request(
    body: CustomRequestCreate,
    user_id: UUID = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await request_service.create_request(db, customer_id=user_id, **body.model_dump())


@router.get("/", response_model=CustomRequestPage)
async def list_custom_requests(
    status: str | None = None,
    category: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user_id: UUID = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Browse requests (designer view), newest first."""
    result = await request_service.list_requests(db, status=status, category=category, page=page, limit=limit)
    return {
        "requests": [_list_item(request, user_id) for request in result["requests"]],
        "pagination": result["pagination"],
    }


@router.get("/my-requests", response_model=list[CustomRequestListItem])
async def list_my_custom_requests(
    user_id: UUID = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    requests = await request_service.list_my_requests(db, user_id)
    return [_list_item(request, user_id) for request in requests]


@router.get("/my-bids", response_model=list[MyBidResponse])
async def list_my_bids(
    user_id: UUID = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await bid_service.list_my_bids(db, user_id)


@router.get("/{request_id}", response_model=CustomRequestDetail)
async def get_custom_request(
    request_id: UUID,
    user_id: UUID = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await request_service.get_request(db, request_id)


@router.patch("/{request_id}", response_model=CustomRequestResponse)
async def update_custom_request_status(
    request_id: UUID,
    body: CustomRequestStatusUpdate,
    user_id: UUID = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """Owner closes or cancels an OPEN request."""
    return await request_service.close_or_cancel_request(
        db, request_id=request_id, customer_id=user_id, status=body.status
    )


# ─── Bids ───────────────────────────────────────────────────────────────────


@router.post("/{request_id}/bids", response_model=BidResponse, status_code=201)
async def submit_bid(
    request_id: UUID,
    body: BidCreate,
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    return await bid_service.submit_bid(db, request_id=request_id, designer=account, **body.model_dump())


@router.get("/{request_id}/bids", response_model=list[BidResponse])
async def list_request_bids(
    request_id: UUID,
    user_id: UUID = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await bid_service.list_bids(db, request_id)


@router.patch("/{request_id}/bids/{bid_id}", response_model=BidResponse)
async def update_bid(
    request_id: UUID,
    bid_id: UUID,
    body: BidUpdate,
    user_id: UUID = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await bid_service.update_bid(
        db,
        request_id=request_id,
        bid_id=bid_id,
        designer_id=user_id,
        **body.model_dump(exclude_unset=True),
    )


@router.delete("/{request_id}/bids/{bid_id}", response_model=BidResponse)
async def withdraw_bid(
    request_id: UUID,
    bid_id: UUID,
    user_id: UUID = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await bid_service.withdraw_bid(db, request_id=request_id, bid_id=bid_id, designer_id=user_id)


@router.post("/{request_id}/bids/{bid_id}/accept")
async def accept_custom_request_bid(
    request_id: UUID,
    bid_id: UUID,
    user_id: UUID = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    result = await accept_bid(db, request_id=request_id, bid_id=bid_id, acting_customer_id=user_id)
    return acceptance_body(result)
