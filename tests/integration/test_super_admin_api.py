"""
Integration Tests - Super Admin
"""
import pytest
from sqlalchemy import select

from laundry_api.database.models import Activity, ActivityType, Laundry, LaundryStatus, Order, OrderStatus

pytestmark = pytest.mark.integration

SUPER_ADMIN = "/api/v1/super-admin"


class TestPlatformOverview:
    """Tests for GET /super-admin/dashboard/overview"""

    async def test_totals(self, client, marketplace):
        response = await client.get(f"{SUPER_ADMIN}/dashboard/overview")

        assert response.status_code == 200
        data = response.json()
        assert data["overview"] == {
            "total_laundries": 2,
            "total_users": 3,
            "total_orders": 6,
            "platform_revenue": pytest.approx(238.0),
        }
        assert data["status"] == {"active_laundries": 2, "suspended_laundries": 0, "pending_orders": 1}

    async def test_pending_laundry_is_not_suspended(self, client, marketplace, session_factory):
        async with session_factory() as db:
            db.add(Laundry(id="laundry-3", name="Soon Open", email="soon@open.ma", status=LaundryStatus.PENDING))
            await db.commit()
        await client.post(f"{SUPER_ADMIN}/laundries/laundry-2/suspend")

        response = await client.get(f"{SUPER_ADMIN}/dashboard/overview")

        data = response.json()
        assert data["overview"]["total_laundries"] == 3
        assert data["status"]["active_laundries"] == 1
        assert data["status"]["suspended_laundries"] == 1

    async def test_month_and_growth(self, client, marketplace):
        response = await client.get(f"{SUPER_ADMIN}/dashboard/overview")

        data = response.json()
        assert data["monthly_stats"]["monthly_orders"] == 5
        assert data["monthly_stats"]["monthly_revenue"] == pytest.approx(173.0)
        # order-2 is DELIVERED and counts as completed
        assert data["monthly_stats"]["completed_orders"] == 3
        assert data["monthly_stats"]["new_customers"] == 1
        assert data["growth"]["orders_growth"] == pytest.approx(400.0)
        assert data["growth"]["revenue_growth"] == pytest.approx((173 - 65) / 65 * 100)
        # nobody signed up in May
        assert data["growth"]["user_growth"] == 0


class TestLaundryPerformance:
    """Tests for GET /super-admin/laundries/performance"""

    async def test_sorted_by_revenue(self, client, marketplace):
        response = await client.get(f"{SUPER_ADMIN}/laundries/performance")

        assert response.status_code == 200
        laundries = response.json()["laundries"]
        assert [l["id"] for l in laundries] == ["laundry-2", "laundry-1"]
        fresh = laundries[1]
        assert fresh["location"] == "Casablanca, Casablanca-Settat"
        assert fresh["performance"]["orders_month"] == 4
        assert fresh["performance"]["customers"] == 2
        assert fresh["performance"]["revenue"] == pytest.approx(73.0)
        assert laundries[0]["location"] == "Not specified"

    async def test_sorted_by_orders(self, client, marketplace):
        response = await client.get(f"{SUPER_ADMIN}/laundries/performance", params={"sort_by": "orders_month"})

        assert [l["id"] for l in response.json()["laundries"]] == ["laundry-1", "laundry-2"]

    async def test_pagination(self, client, marketplace):
        response = await client.get(
            f"{SUPER_ADMIN}/laundries/performance", params={"limit": 1, "sort_order": "asc"}
        )

        data = response.json()
        assert [l["id"] for l in data["laundries"]] == ["laundry-1"]
        assert data["pagination"]["total_pages"] == 2

    async def test_invalid_sort(self, client, marketplace):
        response = await client.get(f"{SUPER_ADMIN}/laundries/performance", params={"sort_by": "name"})

        assert response.status_code == 400


class TestLaundryDetail:
    """Tests for GET /super-admin/laundries/{id}"""

    async def test_detail(self, client, marketplace):
        response = await client.get(f"{SUPER_ADMIN}/laundries/laundry-1")

        assert response.status_code == 200
        data = response.json()
        assert data["admin"]["email"] == "admin@fresh.ma"
        assert len(data["services"]) == 3
        assert data["counts"] == {"orders": 5, "reviews": 2, "services": 3}
        assert data["performance"]["monthly_orders"] == 4
        assert data["performance"]["monthly_revenue"] == pytest.approx(73.0)
        assert data["performance"]["unique_customers"] == 2
        assert data["performance"]["average_order_value"] == pytest.approx(27.6)
        assert [a["id"] for a in data["recent_activity"]] == ["order-3", "order-1", "order-5", "order-2", "order-4"]

    async def test_without_admin(self, client, marketplace):
        response = await client.get(f"{SUPER_ADMIN}/laundries/laundry-2")

        data = response.json()
        assert data["admin"] is None
        assert data["addresses"] == []

    async def test_unknown(self, client, marketplace):
        response = await client.get(f"{SUPER_ADMIN}/laundries/missing")

        assert response.status_code == 404


class TestLaundryUpdate:
    """Tests for PATCH /super-admin/laundries/{id}"""

    async def test_partial_update(self, client, marketplace, session_factory):
        response = await client.patch(
            f"{SUPER_ADMIN}/laundries/laundry-1",
            json={
                "name": "Fresh Laundry Plus",
                "operating_hours": {"monday": {"open": "08:00", "close": "20:00", "closed": False}},
            },
        )

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "Fresh Laundry Plus"
        assert data["email"] == "contact@fresh.ma"
        assert data["operating_hours"]["monday"]["open"] == "08:00"

        async with session_factory() as db:
            activity = (
                await db.execute(select(Activity).where(Activity.type == ActivityType.LAUNDRY_UPDATED))
            ).scalar_one()
        assert activity.details["updated_fields"] == ["name", "operating_hours"]

    async def test_duplicate_email(self, client, marketplace):
        response = await client.patch(f"{SUPER_ADMIN}/laundries/laundry-1", json={"email": "hello@clean.ma"})

        assert response.status_code == 409

    async def test_same_email_is_allowed(self, client, marketplace):
        response = await client.patch(f"{SUPER_ADMIN}/laundries/laundry-1", json={"email": "contact@fresh.ma"})

        assert response.status_code == 200

    async def test_invalid_email(self, client, marketplace):
        response = await client.patch(f"{SUPER_ADMIN}/laundries/laundry-1", json={"email": "nope"})

        assert response.status_code == 400

    async def test_unknown(self, client, marketplace):
        response = await client.patch(f"{SUPER_ADMIN}/laundries/missing", json={"name": "X"})

        assert response.status_code == 404


class TestLaundrySuspension:
    """Tests for POST /super-admin/laundries/{id}/suspend"""

    async def test_suspend_cancels_open_orders(self, client, marketplace, session_factory):
        response = await client.post(f"{SUPER_ADMIN}/laundries/laundry-1/suspend", json={"reason": "Complaints"})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "SUSPENDED"
        assert data["canceled_orders"] == 1

        async with session_factory() as db:
            laundry = await db.get(Laundry, "laundry-1")
            order = await db.get(Order, "order-3")
            completed = await db.get(Order, "order-1")
            activity = (
                await db.execute(select(Activity).where(Activity.type == ActivityType.LAUNDRY_SUSPENDED))
            ).scalar_one()
        assert laundry.status.value == "SUSPENDED"
        assert order.status == OrderStatus.CANCELED
        assert completed.status == OrderStatus.COMPLETED
        assert activity.details["reason"] == "Complaints"
        assert activity.details["previous_status"] == "ACTIVE"

    async def test_suspend_without_body(self, client, marketplace):
        response = await client.post(f"{SUPER_ADMIN}/laundries/laundry-2/suspend")

        assert response.status_code == 200
        assert response.json()["canceled_orders"] == 0

    async def test_already_suspended(self, client, marketplace):
        await client.post(f"{SUPER_ADMIN}/laundries/laundry-2/suspend")
        response = await client.post(f"{SUPER_ADMIN}/laundries/laundry-2/suspend")

        assert response.status_code == 400

    async def test_dashboard_reflects_suspension(self, client, marketplace):
        await client.post(f"{SUPER_ADMIN}/laundries/laundry-2/suspend")
        response = await client.get(f"{SUPER_ADMIN}/dashboard/overview")

        status = response.json()["status"]
        assert status["active_laundries"] == 1
        assert status["suspended_laundries"] == 1
