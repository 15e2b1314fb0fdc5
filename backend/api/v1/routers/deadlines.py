"""
Deadlines Router — designer dashboard figures.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_account, get_db
from core.errors import Forbidden
from db.models import User
from deadlines.monitor import get_deadline_stats

router = APIRouter(prefix="/api/v1/deadlines", tags=["deadlines"])


class DeadlineStats(BaseModel):
    upcoming_deadlines: int
    overdue_orders: int
    on_time_delivery_rate: float


@router.get("/stats", response_model=DeadlineStats)
async def deadline_stats(
    account: User = Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
):
    if account.role != "DESIGNER":
        raise Forbidden("Only designers have deadline stats")
    return await get_deadline_stats(db, account.user_id)
