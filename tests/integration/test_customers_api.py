"""
Integration Tests - Admin Customers
"""
import pytest
from sqlalchemy import select

from laundry_api.database.models import Activity, ActivityType, User

pytestmark = pytest.mark.integration

CUSTOMERS = "/api/v1/admin/customers"


class TestCustomersOverview:
    """Tests for GET /admin/customers/overview"""

    async def test_metrics(self, client, marketplace):
        response = await client.get(f"{CUSTOMERS}/overview", params={"laundry_id": "laundry-1"})

        assert response.status_code == 200
        data = response.json()
        metrics = data["metrics"]
        assert metrics["total_customers"] == 2
        assert metrics["active_customers"] == 2
        assert metrics["new_customers_this_period"] == 1
        assert metrics["average_ltv"] == pytest.approx(94.0)
        assert metrics["retention_rate"] == pytest.approx(100.0)
        assert data["period"]["timeframe"] == "month"

    async def test_segments_use_lifetime_orders(self, client, marketplace):
        response = await client.get(f"{CUSTOMERS}/overview", params={"laundry_id": "laundry-1"})

        segments = response.json()["segments"]
        assert len(segments) == 1
        assert segments[0]["segment"] == "Regular"
        assert segments[0]["count"] == 2
        assert segments[0]["revenue"] == pytest.approx(188.0)
        assert segments[0]["percentage"] == pytest.approx(100.0)

    async def test_growth_chart(self, client, marketplace):
        response = await client.get(f"{CUSTOMERS}/overview", params={"laundry_id": "laundry-1"})

        data = response.json()
        chart = data["growth"]["chart_data"]
        assert [p["period"] for p in chart] == ["Week 1", "Week 2", "Week 3", "Week 4"]
        assert chart[-1]["new_customers"] == 1
        assert chart[-1]["total_customers"] == 2
        assert data["insights"]["average_orders_per_customer"] == pytest.approx(2.5)
        assert len(data["insights"]["customer_acquisition_trend"]) == 3

    async def test_year_timeframe(self, client, marketplace):
        response = await client.get(f"{CUSTOMERS}/overview", params={"laundry_id": "laundry-1", "timeframe": "year"})

        data = response.json()
        assert data["metrics"]["new_customers_this_period"] == 2
        assert len(data["growth"]["chart_data"]) == 12

    async def test_other_laundry(self, client, marketplace):
        response = await client.get(f"{CUSTOMERS}/overview", params={"laundry_id": "laundry-2", "timeframe": "week"})

        data = response.json()
        assert data["metrics"]["total_customers"] == 1
        assert data["segments"][0]["segment"] == "New"


class TestCustomerList:
    """Tests for GET /admin/customers"""

    async def test_lists_customers_with_orders(self, client, marketplace):
        response = await client.get(CUSTOMERS, params={"laundry_id": "laundry-1"})

        assert response.status_code == 200
        data = response.json()
        assert [c["id"] for c in data["customers"]] == ["cust-bob", "cust-alice"]
        assert data["summary"]["total_customers"] == 2
        assert data["summary"]["segment_distribution"] == {"Regular": 2}
        assert data["summary"]["total_revenue"] == pytest.approx(188.0)

    async def test_customer_stats(self, client, marketplace):
        response = await client.get(CUSTOMERS, params={"laundry_id": "laundry-1", "search": "alice"})

        [alice] = response.json()["customers"]
        assert alice["segment"] == "Regular"
        assert alice["stats"]["total_orders"] == 3
        assert alice["stats"]["completed_orders"] == 3
        assert alice["stats"]["total_spent"] == pytest.approx(138.0)
        assert alice["stats"]["average_rating"] == pytest.approx(4.5)
        assert alice["last_order"]["id"] == "order-1"
        assert alice["last_order"]["days_since"] == 2
        assert alice["primary_address"]["id"] == "addr-alice"
        assert alice["status"] == "active"

    async def test_segment_counts_only_this_laundry(self, client, marketplace):
        response = await client.get(CUSTOMERS, params={"laundry_id": "laundry-2"})

        data = response.json()
        [alice] = data["customers"]
        assert alice["segment"] == "New"
        assert alice["stats"]["total_orders"] == 1
        assert data["summary"]["segment_distribution"] == {"New": 1}

    async def test_search_is_case_insensitive(self, client, marketplace):
        response = await client.get(CUSTOMERS, params={"laundry_id": "laundry-1", "search": "STONE"})

        assert [c["id"] for c in response.json()["customers"]] == ["cust-bob"]

    async def test_sort_by_total_spent(self, client, marketplace):
        response = await client.get(
            CUSTOMERS, params={"laundry_id": "laundry-1", "sort_by": "total_spent", "sort_order": "asc"}
        )

        assert [c["id"] for c in response.json()["customers"]] == ["cust-bob", "cust-alice"]

    async def test_segment_filter_keeps_distribution(self, client, marketplace):
        response = await client.get(CUSTOMERS, params={"laundry_id": "laundry-1", "segment": "VIP"})

        data = response.json()
        assert data["customers"] == []
        assert data["pagination"]["total_count"] == 0
        assert data["summary"]["segment_distribution"] == {"Regular": 2}

    async def test_pagination(self, client, marketplace):
        response = await client.get(CUSTOMERS, params={"laundry_id": "laundry-1", "limit": 1, "page": 2})

        pagination = response.json()["pagination"]
        assert pagination["total_pages"] == 2
        assert pagination["has_prev_page"] is True
        assert pagination["has_next_page"] is False
        assert pagination["showing"] == 1

    async def test_invalid_segment(self, client, marketplace):
        response = await client.get(CUSTOMERS, params={"laundry_id": "laundry-1", "segment": "Gold"})

        assert response.status_code == 400

    async def test_limit_capped(self, client, marketplace):
        response = await client.get(CUSTOMERS, params={"laundry_id": "laundry-1", "limit": 500})

        assert response.status_code == 400


class TestCreateCustomer:
    """Tests for POST /admin/customers"""

    async def test_creates_customer_and_activity(self, client, marketplace, session_factory):
        response = await client.post(
            CUSTOMERS,
            params={"laundry_id": "laundry-1"},
            json={"first_name": "Dina", "last_name": "Alaoui", "email": "dina@example.com", "phone": "0611111111"},
        )

        assert response.status_code == 201
        created = response.json()
        assert created["name"] == "Dina Alaoui"

        async with session_factory() as db:
            user = (await db.execute(select(User).where(User.email == "dina@example.com"))).scalar_one()
            activity = (
                await db.execute(select(Activity).where(Activity.type == ActivityType.CUSTOMER_ADDED))
            ).scalar_one()
        assert user.role.value == "CUSTOMER"
        assert activity.user_id == created["id"]
        assert activity.laundry_id == "laundry-1"

    async def test_duplicate_email(self, client, marketplace):
        response = await client.post(
            CUSTOMERS,
            params={"laundry_id": "laundry-1"},
            json={"first_name": "Alice", "last_name": "Again", "email": "alice@example.com"},
        )

        assert response.status_code == 409

    async def test_invalid_email(self, client, marketplace):
        response = await client.post(
            CUSTOMERS,
            params={"laundry_id": "laundry-1"},
            json={"first_name": "No", "last_name": "Mail", "email": "not-an-email"},
        )

        assert response.status_code == 400

    async def test_unknown_laundry(self, client, marketplace):
        response = await client.post(
            CUSTOMERS,
            params={"laundry_id": "missing"},
            json={"first_name": "Dina", "last_name": "Alaoui", "email": "dina@example.com"},
        )

        assert response.status_code == 404
