"""
API Integration Tests — notification inbox and deadline stats.
"""

from datetime import timedelta

import pytest
from httpx import AsyncClient

from core.timeutil import utcnow
from db.models import Notification


@pytest.fixture
async def inbox(test_db, seeded_db):
    customer_id = seeded_db["customer"].user_id
    rows = [
        Notification(
            user_id=customer_id,
            type="DEADLINE_OVERDUE",
            title="Order deadline passed",
            message="Your order ORD-0001 has passed its expected deadline.",
            created_at=utcnow() - timedelta(hours=idx),
            read=idx == 2,
        )
        for idx in range(3)
    ]
    rows.append(
        Notification(
            user_id=seeded_db["designer_a"].user_id,
            type="DEADLINE_REMINDER_24H",
            title="Deadline in 24 hours",
            message="Order ORD-0001 for Ada Lovelace is due tomorrow.",
        )
    )
    test_db.add_all(rows)
    await test_db.commit()
    return rows


@pytest.mark.asyncio
class TestNotificationsAPI:
    async def test_list_is_scoped_to_caller(self, client: AsyncClient, inbox):
        response = await client.get("/api/v1/notifications/")
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert data["unread_count"] == 2
        assert [n["notification_id"] for n in data["notifications"]] == [str(n.notification_id) for n in inbox[:3]]

    async def test_unread_only(self, client: AsyncClient, inbox):
        response = await client.get("/api/v1/notifications/", params={"unread_only": True, "limit": 1})
        data = response.json()
        assert data["total"] == 2
        assert len(data["notifications"]) == 1
        assert data["notifications"][0]["read"] is False

    async def test_mark_one_read(self, client: AsyncClient, inbox):
        target = inbox[0]
        response = await client.patch(f"/api/v1/notifications/{target.notification_id}/read")
        assert response.status_code == 200
        assert response.json()["read"] is True

        count = await client.get("/api/v1/notifications/unread-count")
        assert count.json() == {"count": 1}

    async def test_cannot_touch_someone_elses_notification(self, client: AsyncClient, inbox):
        designer_notice = inbox[3]
        response = await client.patch(f"/api/v1/notifications/{designer_notice.notification_id}/read")
        assert response.status_code == 404

        response = await client.delete(f"/api/v1/notifications/{designer_notice.notification_id}")
        assert response.status_code == 404

    async def test_mark_all_read(self, client: AsyncClient, inbox):
        response = await client.patch("/api/v1/notifications/read-all")
        assert response.json() == {"status": "ok", "updated": 2}

        count = await client.get("/api/v1/notifications/unread-count")
        assert count.json() == {"count": 0}

    async def test_delete(self, client: AsyncClient, inbox):
        target = inbox[1]
        response = await client.delete(f"/api/v1/notifications/{target.notification_id}")
        assert response.status_code == 200

        listing = await client.get("/api/v1/notifications/")
        assert listing.json()["total"] == 2

    async def test_legacy_path(self, client: AsyncClient, inbox):
        response = await client.get("/api/notifications/unread-count")
        assert response.status_code == 200
        assert response.headers["Sunset"]


@pytest.mark.asyncio
class TestDeadlineStatsAPI:
    async def test_designer_stats(self, client: AsyncClient, seeded_db, make_order, mock_user):
        now = utcnow()
        await make_order(deadline=now + timedelta(days=3))
        await make_order(deadline=now - timedelta(days=2))
        mock_user["sub"] = str(seeded_db["designer_a"].user_id)

        response = await client.get("/api/v1/deadlines/stats")
        assert response.status_code == 200
        assert response.json() == {"upcoming_deadlines": 1, "overdue_orders": 1, "on_time_delivery_rate": 100.0}

    async def test_customers_have_no_stats(self, client: AsyncClient, seeded_db):
        response = await client.get("/api/v1/deadlines/stats")
        assert response.status_code == 403

    async def test_unknown_account(self, client: AsyncClient, seeded_db, mock_user):
        mock_user["sub"] = "00000000-0000-0000-0000-000000000999"
        response = await client.get("/api/v1/deadlines/stats")
        assert response.status_code == 401
