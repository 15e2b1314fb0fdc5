"""
Acceptance Transactor — single winner, all-or-nothing synthesis of Design + Offer.
"""

import asyncio
import uuid

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from core import config as config_module
from core.errors import Forbidden, InvalidState, NotFound, TransactionError
from db.models import CustomRequest, CustomRequestBid, Design, Notification, Offer
from db.store import MarketplaceStore
from negotiation.acceptance import DEFAULT_PRODUCTION_STEPS, accept_bid


async def _count(db, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar()


async def _statuses(db, request_id):
    store = MarketplaceStore(db)
    request = await store.find_request(request_id)
    bids = await store.list_bids(request_id=request_id)
    return request.status, {bid.bid_id: bid.status for bid in bids}


@pytest.mark.asyncio
class TestAcceptBid:
    async def test_accept_moves_everything_together(self, test_db, seeded_db, make_request, make_bid):
        request = await make_request()
        winner = await make_bid(request, seeded_db["designer_a"].user_id, price=450)
        loser = await make_bid(request, seeded_db["designer_b"].user_id, price=520)

        result = await accept_bid(
            test_db,
            request_id=request.request_id,
            bid_id=winner.bid_id,
            acting_customer_id=seeded_db["customer"].user_id,
        )

        assert result.accepted_bid.status == "ACCEPTED"
        assert result.updated_request.status == "IN_PROGRESS"
        assert result.updated_request.selected_bid_id == winner.bid_id
        assert result.updated_request.selected_bid.bid_id == winner.bid_id
        assert result.updated_request.selected_bid.designer.email == "atelier-a@stitchline.test"

        status, bids = await _statuses(test_db, request.request_id)
        assert status == "IN_PROGRESS"
        assert bids == {winner.bid_id: "ACCEPTED", loser.bid_id: "REJECTED"}

        offer = result.offer
        assert offer.status == "ACCEPTED"
        assert offer.customer_price == offer.final_price == 450
        assert offer.deadline == request.deadline
        assert offer.designer_id == seeded_db["designer_a"].user_id
        assert offer.notes.startswith(f"CUSTOM_REQUEST_ID:{request.request_id}\n")
        assert offer.designer_notes == winner.pitch
        assert offer.accepted_at is not None

        design = offer.design
        assert design.title == "Custom Order: Linen wedding suit"
        assert design.customizable is True
        assert design.price == 450
        assert design.images == ["https://img.test/suit.jpg"]
        assert [step["title"] for step in design.production_steps] == [
            step["title"] for step in DEFAULT_PRODUCTION_STEPS
        ]

    async def test_winning_designer_is_notified(self, test_db, seeded_db, make_request, make_bid, published):
        request = await make_request()
        winner = await make_bid(request, seeded_db["designer_a"].user_id, price=450)

        result = await accept_bid(
            test_db,
            request_id=request.request_id,
            bid_id=winner.bid_id,
            acting_customer_id=seeded_db["customer"].user_id,
        )

        rows = (await test_db.execute(select(Notification))).scalars().all()
        assert len(rows) == 1
        notice = rows[0]
        assert notice.user_id == seeded_db["designer_a"].user_id
        assert notice.type == "BID_ACCEPTED"
        assert notice.offer_id == result.offer.offer_id
        assert notice.custom_request_id == request.request_id
        assert "$450.00" in notice.message
        assert published == [notice]

    async def test_notification_failure_keeps_acceptance(self, test_db, seeded_db, make_request, make_bid, monkeypatch):
        request = await make_request()
        winner = await make_bid(request, seeded_db["designer_a"].user_id)

        async def _broken(self, data):
            raise OperationalError("INSERT INTO notifications", {}, Exception("database is locked"))

        monkeypatch.setattr(MarketplaceStore, "create_notification", _broken)

        result = await accept_bid(
            test_db,
            request_id=request.request_id,
            bid_id=winner.bid_id,
            acting_customer_id=seeded_db["customer"].user_id,
        )

        assert result.updated_request.status == "IN_PROGRESS"
        status, bids = await _statuses(test_db, request.request_id)
        assert status == "IN_PROGRESS"
        assert bids[winner.bid_id] == "ACCEPTED"
        assert await _count(test_db, Offer) == 1
        assert await _count(test_db, Notification) == 0

    async def test_withdrawn_bids_stay_withdrawn(self, test_db, seeded_db, make_request, make_bid):
        request = await make_request()
        winner = await make_bid(request, seeded_db["designer_a"].user_id)
        withdrawn = await make_bid(request, seeded_db["designer_b"].user_id, status="WITHDRAWN")

        await accept_bid(
            test_db,
            request_id=request.request_id,
            bid_id=winner.bid_id,
            acting_customer_id=seeded_db["customer"].user_id,
        )

        _, bids = await _statuses(test_db, request.request_id)
        assert bids[withdrawn.bid_id] == "WITHDRAWN"

    async def test_request_without_deadline(self, test_db, seeded_db, make_request, make_bid):
        request = await make_request(deadline_days=None)
        bid = await make_bid(request, seeded_db["designer_a"].user_id, can_meet_deadline=None)

        result = await accept_bid(
            test_db,
            request_id=request.request_id,
            bid_id=bid.bid_id,
            acting_customer_id=seeded_db["customer"].user_id,
        )
        assert result.offer.deadline is None

    async def test_second_acceptance_fails(self, test_db, seeded_db, make_request, make_bid):
        request = await make_request()
        first = await make_bid(request, seeded_db["designer_a"].user_id)
        second = await make_bid(request, seeded_db["designer_b"].user_id)
        customer_id = seeded_db["customer"].user_id

        await accept_bid(test_db, request_id=request.request_id, bid_id=first.bid_id, acting_customer_id=customer_id)
        with pytest.raises(InvalidState, match="no longer open"):
            await accept_bid(
                test_db, request_id=request.request_id, bid_id=second.bid_id, acting_customer_id=customer_id
            )

        assert await _count(test_db, Offer) == 1
        assert await _count(test_db, Design) == 1
        _, bids = await _statuses(test_db, request.request_id)
        assert list(bids.values()).count("ACCEPTED") == 1

    async def test_lost_race_on_request_update(self, test_db, seeded_db, make_request, make_bid, monkeypatch):
        """Another caller moved the request between the pre-checks and the conditional update."""
        request = await make_request()
        bid = await make_bid(request, seeded_db["designer_a"].user_id)

        original = MarketplaceStore.update_request

        async def _raced(self, request_id, values, *, expected_status=None):
            await original(self, request_id, {"status": "CLOSED"})
            return await original(self, request_id, values, expected_status=expected_status)

        monkeypatch.setattr(MarketplaceStore, "update_request", _raced)

        with pytest.raises(InvalidState):
            await accept_bid(
                test_db,
                request_id=request.request_id,
                bid_id=bid.bid_id,
                acting_customer_id=seeded_db["customer"].user_id,
            )

        status, bids = await _statuses(test_db, request.request_id)
        assert status == "OPEN"
        assert bids[bid.bid_id] == "PENDING"
        assert await _count(test_db, Offer) == 0

    async def test_offer_failure_rolls_back_everything(self, test_db, seeded_db, make_request, make_bid, monkeypatch):
        request = await make_request()
        winner = await make_bid(request, seeded_db["designer_a"].user_id)
        loser = await make_bid(request, seeded_db["designer_b"].user_id)

        async def _boom(self, data):
            raise OperationalError("INSERT INTO offers", {}, Exception("disk I/O error"))

        monkeypatch.setattr(MarketplaceStore, "create_offer", _boom)

        with pytest.raises(TransactionError, match="nothing was saved"):
            await accept_bid(
                test_db,
                request_id=request.request_id,
                bid_id=winner.bid_id,
                acting_customer_id=seeded_db["customer"].user_id,
            )

        status, bids = await _statuses(test_db, request.request_id)
        assert status == "OPEN"
        assert bids == {winner.bid_id: "PENDING", loser.bid_id: "PENDING"}
        assert await _count(test_db, Design) == 0
        assert await _count(test_db, Offer) == 0

    async def test_unexpected_error_becomes_transaction_error(
        self, test_db, seeded_db, make_request, make_bid, monkeypatch
    ):
        request = await make_request()
        winner = await make_bid(request, seeded_db["designer_a"].user_id)
        loser = await make_bid(request, seeded_db["designer_b"].user_id)

        async def _bad_data(self, data):
            raise TypeError("unsupported operand type(s) for +: 'NoneType' and 'int'")

        monkeypatch.setattr(MarketplaceStore, "create_design", _bad_data)

        with pytest.raises(TransactionError, match="nothing was saved") as excinfo:
            await accept_bid(
                test_db,
                request_id=request.request_id,
                bid_id=winner.bid_id,
                acting_customer_id=seeded_db["customer"].user_id,
            )

        assert isinstance(excinfo.value.__cause__, TypeError)
        status, bids = await _statuses(test_db, request.request_id)
        assert status == "OPEN"
        assert bids == {winner.bid_id: "PENDING", loser.bid_id: "PENDING"}
        assert await _count(test_db, Design) == 0

    async def test_timeout_rolls_back(self, test_db, seeded_db, make_request, make_bid, monkeypatch):
        request = await make_request()
        bid = await make_bid(request, seeded_db["designer_a"].user_id)

        async def _slow(self, data):
            await asyncio.sleep(5)

        monkeypatch.setattr(MarketplaceStore, "create_design", _slow)
        monkeypatch.setenv("ACCEPTANCE_TIMEOUT_SECONDS", "0.05")
        config_module.get_settings.cache_clear()

        with pytest.raises(TransactionError, match="did not complete"):
            await accept_bid(
                test_db,
                request_id=request.request_id,
                bid_id=bid.bid_id,
                acting_customer_id=seeded_db["customer"].user_id,
            )

        status, bids = await _statuses(test_db, request.request_id)
        assert status == "OPEN"
        assert bids[bid.bid_id] == "PENDING"


@pytest.mark.asyncio
class TestAcceptBidGuards:
    async def test_unknown_request(self, test_db, seeded_db):
        with pytest.raises(NotFound, match="Custom request not found"):
            await accept_bid(
                test_db, request_id=uuid.uuid4(), bid_id=uuid.uuid4(), acting_customer_id=seeded_db["customer"].user_id
            )

    async def test_bid_from_another_request(self, test_db, seeded_db, make_request, make_bid):
        request = await make_request()
        other = await make_request(title="Velvet blazer")
        foreign_bid = await make_bid(other, seeded_db["designer_a"].user_id)

        with pytest.raises(NotFound, match="Bid not found"):
            await accept_bid(
                test_db,
                request_id=request.request_id,
                bid_id=foreign_bid.bid_id,
                acting_customer_id=seeded_db["customer"].user_id,
            )

    async def test_only_owner_accepts(self, test_db, seeded_db, make_request, make_bid):
        request = await make_request()
        bid = await make_bid(request, seeded_db["designer_a"].user_id)

        with pytest.raises(Forbidden):
            await accept_bid(
                test_db,
                request_id=request.request_id,
                bid_id=bid.bid_id,
                acting_customer_id=seeded_db["other_customer"].user_id,
            )

    async def test_rejected_bid_cannot_be_accepted(self, test_db, seeded_db, make_request, make_bid):
        request = await make_request()
        bid = await make_bid(request, seeded_db["designer_a"].user_id, status="REJECTED")

        with pytest.raises(InvalidState, match="Only pending bids"):
            await accept_bid(
                test_db,
                request_id=request.request_id,
                bid_id=bid.bid_id,
                acting_customer_id=seeded_db["customer"].user_id,
            )

        request_row = await test_db.get(CustomRequest, request.request_id)
        assert request_row.status == "OPEN"
        assert await test_db.get(CustomRequestBid, bid.bid_id) is not None
