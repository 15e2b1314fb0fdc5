"""
Notifications Router — the caller's inbox.
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import current_user_id, get_db
from notifications import service

router = APIRouter(prefix="/api/v1/notifications", tags=["notifications"])


class NotificationResponse(BaseModel):
    notification_id: UUID
    type: str
    title: str
    message: str
    order_id: UUID | None
    offer_id: UUID | None
    custom_request_id: UUID | None
    read: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationList(BaseModel):
    notifications: list[NotificationResponse]
    total: int
    unread_count: int


@router.get("/", response_model=NotificationList)
async def list_notifications(
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    user_id: UUID = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await service.list_user_notifications(db, user_id, unread_only=unread_only, limit=limit, offset=offset)


@router.get("/unread-count")
async def get_unread_count(
    user_id: UUID = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return {"count": await service.unread_count(db, user_id)}


@router.patch("/read-all")
async def mark_all_notifications_read(
    user_id: UUID = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    updated = await service.mark_all_as_read(db, user_id)
    return {"status": "ok", "updated": updated}


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: UUID,
    user_id: UUID = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    return await service.mark_as_read(db, notification_id, user_id)


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: UUID,
    user_id: UUID = Depends(current_user_id),
    db: AsyncSession = Depends(get_db),
):
    await service.delete_notification(db, notification_id, user_id)
    return {"status": "deleted", "notification_id": str(notification_id)}
