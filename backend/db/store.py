"""
Store accessor — the narrow persistence surface used by the negotiation
services and the deadline monitor.

Every read goes to the database (no in-process caching) so callers always
observe persisted state. Multi-record writes go through ``run_atomic``.
"""

import asyncio
import uuid
from collections.abc import Awaitable, Callable, Iterable
from datetime import datetime
from typing import Any, TypeVar

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from core.errors import MarketplaceError, TransactionError
from db.models import CustomRequest, CustomRequestBid, Design, Notification, Offer, Order

logger = structlog.get_logger()

T = TypeVar("T")


class MarketplaceStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    # ── Requests ───────────────────────────────────────────────────────────

    async def find_request(
        self,
        request_id: uuid.UUID,
        *,
        with_bids: bool = False,
        with_selected_bid: bool = False,
        for_update: bool = False,
    ) -> CustomRequest | None:
        query = select(CustomRequest).where(CustomRequest.request_id == request_id)
        options = [selectinload(CustomRequest.customer)]
        if with_bids:
            options.append(selectinload(CustomRequest.bids).selectinload(CustomRequestBid.designer))
        if with_selected_bid:
            options.append(selectinload(CustomRequest.selected_bid).selectinload(CustomRequestBid.designer))
        query = query.options(*options).execution_options(populate_existing=True)
        if for_update:
            query = query.with_for_update()
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def list_requests(
        self,
        *,
        status: str | None = None,
        category: str | None = None,
        customer_id: uuid.UUID | None = None,
        offset: int = 0,
        limit: int | None = None,
    ) -> tuple[list[CustomRequest], int]:
        filters = []
        if status:
            filters.append(CustomRequest.status == status)
        if category:
            filters.append(CustomRequest.category == category)
        if customer_id:
            filters.append(CustomRequest.customer_id == customer_id)

        query = (
            select(CustomRequest)
            .where(*filters)
            .options(selectinload(CustomRequest.customer), selectinload(CustomRequest.bids))
            .order_by(CustomRequest.created_at.desc())
            .offset(offset)
        )
        if limit is not None:
            query = query.limit(limit)
        rows = (await self.db.execute(query)).scalars().all()
        total = (await self.db.execute(select(func.count(CustomRequest.request_id)).where(*filters))).scalar() or 0
        return list(rows), int(total)

    async def create_request(self, data: dict[str, Any]) -> CustomRequest:
        request = CustomRequest(**data)
        self.db.add(request)
        await self.db.flush()
        return await self.find_request(request.request_id)

    async def update_request(
        self,
        request_id: uuid.UUID,
        values: dict[str, Any],
        *,
        expected_status: str | None = None,
    ) -> bool:
        """Conditional update. Returns False when no row matched (missing or not in expected_status)."""
        stmt = update(CustomRequest).where(CustomRequest.request_id == request_id)
        if expected_status is not None:
            stmt = stmt.where(CustomRequest.status == expected_status)
        result = await self.db.execute(stmt.values(**values))
        return result.rowcount == 1

    # ── Bids ───────────────────────────────────────────────────────────────

    async def find_bid(self, bid_id: uuid.UUID) -> CustomRequestBid | None:
        result = await self.db.execute(
            select(CustomRequestBid)
            .where(CustomRequestBid.bid_id == bid_id)
            .options(selectinload(CustomRequestBid.designer))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def find_designer_bid(self, request_id: uuid.UUID, designer_id: uuid.UUID) -> CustomRequestBid | None:
        result = await self.db.execute(
            select(CustomRequestBid).where(
                CustomRequestBid.request_id == request_id,
                CustomRequestBid.designer_id == designer_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_bids(
        self,
        *,
        request_id: uuid.UUID | None = None,
        designer_id: uuid.UUID | None = None,
        status: str | None = None,
        can_meet_deadline: bool | None = None,
        include_request: bool = False,
    ) -> list[CustomRequestBid]:
        query = select(CustomRequestBid).options(selectinload(CustomRequestBid.designer))
        if request_id is not None:
            query = query.where(CustomRequestBid.request_id == request_id)
        if designer_id is not None:
            query = query.where(CustomRequestBid.designer_id == designer_id)
        if status is not None:
            query = query.where(CustomRequestBid.status == status)
        if can_meet_deadline is not None:
            query = query.where(CustomRequestBid.can_meet_deadline.is_(can_meet_deadline))
        if include_request:
            query = query.options(selectinload(CustomRequestBid.request).selectinload(CustomRequest.customer))
        query = query.order_by(CustomRequestBid.created_at.desc())
        result = await self.db.execute(query.execution_options(populate_existing=True))
        return list(result.scalars().all())

    async def create_bid(self, data: dict[str, Any]) -> CustomRequestBid:
        bid = CustomRequestBid(**data)
        self.db.add(bid)
        await self.db.flush()
        return await self.find_bid(bid.bid_id)

    async def update_bid(
        self,
        bid_id: uuid.UUID,
        values: dict[str, Any],
        *,
        expected_status: str | None = None,
    ) -> bool:
        stmt = update(CustomRequestBid).where(CustomRequestBid.bid_id == bid_id)
        if expected_status is not None:
            stmt = stmt.where(CustomRequestBid.status == expected_status)
        result = await self.db.execute(stmt.values(**values))
        return result.rowcount == 1

    async def update_sibling_bids(
        self,
        request_id: uuid.UUID,
        keep_bid_id: uuid.UUID,
        values: dict[str, Any],
        *,
        expected_status: str,
    ) -> int:
        result = await self.db.execute(
            update(CustomRequestBid)
            .where(
                CustomRequestBid.request_id == request_id,
                CustomRequestBid.bid_id != keep_bid_id,
                CustomRequestBid.status == expected_status,
            )
            .values(**values)
        )
        return result.rowcount

    # ── Design / Offer ─────────────────────────────────────────────────────

    async def create_design(self, data: dict[str, Any]) -> Design:
        design = Design(**data)
        self.db.add(design)
        await self.db.flush()
        return design

    async def create_offer(self, data: dict[str, Any]) -> Offer:
        offer = Offer(**data)
        self.db.add(offer)
        await self.db.flush()
        result = await self.db.execute(
            select(Offer)
            .where(Offer.offer_id == offer.offer_id)
            .options(selectinload(Offer.design), selectinload(Offer.designer))
        )
        return result.scalar_one()

    # ── Orders ─────────────────────────────────────────────────────────────

    async def find_orders(
        self,
        *,
        deadline_after: datetime | None = None,
        deadline_until: datetime | None = None,
        deadline_before: datetime | None = None,
        exclude_statuses: Iterable[str] = (),
        designer_id: uuid.UUID | None = None,
    ) -> list[Order]:
        """
        Orders with a deadline in the given window:
        ``deadline_after < deadline <= deadline_until`` and/or ``deadline < deadline_before``.
        """
        query = select(Order).where(Order.deadline.is_not(None))
        if deadline_after is not None:
            query = query.where(Order.deadline > deadline_after)
        if deadline_until is not None:
            query = query.where(Order.deadline <= deadline_until)
        if deadline_before is not None:
            query = query.where(Order.deadline < deadline_before)
        excluded = tuple(exclude_statuses)
        if excluded:
            query = query.where(Order.status.not_in(excluded))
        if designer_id is not None:
            query = query.where(Order.designer_id == designer_id)
        query = query.options(selectinload(Order.customer), selectinload(Order.designer)).order_by(Order.deadline)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    # ── Notifications ──────────────────────────────────────────────────────

    async def notification_exists(self, order_id: uuid.UUID, notification_type: str) -> bool:
        result = await self.db.execute(
            select(Notification.notification_id)
            .where(Notification.order_id == order_id, Notification.type == notification_type)
            .limit(1)
        )
        return result.first() is not None

    async def create_notification(self, data: dict[str, Any]) -> Notification:
        notification = Notification(**data)
        self.db.add(notification)
        await self.db.flush()
        return notification

    async def create_notification_if_absent(self, data: dict[str, Any], *, dedup_key: str) -> Notification | None:
        """
        Insert-if-absent keyed on ``dedup_key``. Returns the new record, or
        None when a notification with that key already exists.
        """
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            return await self._create_notification_guarded(data, dedup_key=dedup_key)

        stmt = (
            insert(Notification)
            .values(**data, dedup_key=dedup_key)
            .on_conflict_do_nothing(index_elements=[Notification.dedup_key])
            .returning(Notification.notification_id)
        )
        new_id = (await self.db.execute(stmt)).scalar_one_or_none()
        if new_id is None:
            return None
        return await self.db.get(Notification, new_id)

    async def _create_notification_guarded(self, data: dict[str, Any], *, dedup_key: str) -> Notification | None:
        try:
            async with self.db.begin_nested():
                notification = Notification(**data, dedup_key=dedup_key)
                self.db.add(notification)
        except IntegrityError:
            return None
        return notification

    # ── Transactions ───────────────────────────────────────────────────────

    async def run_atomic(
        self,
        fn: Callable[["MarketplaceStore"], Awaitable[T]],
        *,
        timeout: float | None = None,
        label: str = "atomic",
    ) -> T:
        """
        Run ``fn(store)`` as one all-or-nothing unit and commit it.

        Domain errors raised inside roll the unit back and propagate as-is.
        Anything else (database failures, timeouts, unexpected errors) rolls
        back and surfaces as TransactionError.
        """
        try:
            async with self.db.begin_nested():
                async with asyncio.timeout(timeout or None):
                    result = await fn(self)
            await self.db.commit()
        except MarketplaceError:
            raise
        except asyncio.TimeoutError as exc:
            await self.db.rollback()
            logger.error("store.atomic_timeout", label=label, timeout=timeout)
            raise TransactionError(f"{label} did not complete within {timeout} seconds; nothing was saved") from exc
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("store.atomic_failed", label=label, error=str(exc), exc_info=True)
            raise TransactionError(f"{label} failed; nothing was saved") from exc
        except Exception as exc:  # noqa: BLE001
            await self.db.rollback()
            logger.error("store.atomic_aborted", label=label, error=repr(exc), exc_info=True)
            raise TransactionError(f"{label} failed; nothing was saved") from exc
        return result
