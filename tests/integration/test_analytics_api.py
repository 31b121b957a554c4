"""
Integration Tests - Admin Analytics and Dashboard
"""
import pytest

pytestmark = pytest.mark.integration

OVERVIEW = "/api/v1/admin/analytics/overview"
AOV = "/api/v1/admin/dashboard/average-order-value"


class TestAnalyticsOverview:
    """Tests for GET /admin/analytics/overview"""

    async def test_metrics(self, client, marketplace):
        response = await client.get(
            OVERVIEW, params={"laundry_id": "laundry-1", "start_date": "2025-06-01", "end_date": "2025-06-14"}
        )

        assert response.status_code == 200
        data = response.json()
        metrics = data["metrics"]
        assert metrics["total_orders"] == 4
        assert metrics["total_revenue"] == pytest.approx(123.0)
        assert metrics["completed_orders"] == 2
        assert metrics["completed_revenue"] == pytest.approx(73.0)
        assert metrics["average_order_value"] == pytest.approx(30.75)
        assert metrics["unique_customers"] == 2
        assert metrics["repeat_customers"] == 2
        assert metrics["customer_retention_rate"] == pytest.approx(100.0)
        assert metrics["new_customers"] == 1
        assert data["period"]["days"] == 14

    async def test_breakdowns(self, client, marketplace):
        response = await client.get(
            OVERVIEW, params={"laundry_id": "laundry-1", "start_date": "2025-06-01", "end_date": "2025-06-14"}
        )

        data = response.json()
        breakdowns = data["breakdowns"]
        assert breakdowns["order_status"] == {"COMPLETED": 1, "DELIVERED": 1, "PENDING": 1, "CANCELED": 1}

        categories = breakdowns["service_categories"]
        assert [c["category"] for c in categories] == ["Washing", "Ironing", "Other"]
        assert categories[0]["orders"] == 2
        assert categories[0]["revenue"] == pytest.approx(30.0)
        assert sum(c["percentage"] for c in categories) == pytest.approx(100.0)

        assert len(breakdowns["daily_performance"]) == 14
        assert breakdowns["daily_performance"][0]["day"] == "2025-06-01"
        assert [h["hour"] for h in breakdowns["hourly_distribution"]] == [10, 14]

        performers = data["top_performers"]
        assert performers["top_category"] == "Washing"
        assert [c["id"] for c in performers["customers"]] == ["cust-alice", "cust-bob"]
        assert performers["customers"][0]["total_spent"] == pytest.approx(73.0)

        insights = data["insights"]
        assert insights["busiest_day"]["day"] == "2025-06-10"
        assert insights["highest_revenue_day"]["revenue"] == pytest.approx(38.0)
        assert insights["completion_rate"] == pytest.approx(50.0)

    async def test_growth_against_previous_period(self, client, marketplace):
        response = await client.get(
            OVERVIEW, params={"laundry_id": "laundry-1", "start_date": "2025-05-16", "end_date": "2025-06-14"}
        )

        growth = response.json()["growth"]
        assert growth["previous_period_orders"] == 1
        assert growth["previous_period_revenue"] == pytest.approx(65.0)
        assert growth["order_growth"] == pytest.approx(300.0)
        assert growth["revenue_growth"] == pytest.approx((123 - 65) / 65 * 100)

    async def test_no_previous_activity_means_zero_growth(self, client, marketplace):
        response = await client.get(
            OVERVIEW, params={"laundry_id": "laundry-1", "start_date": "2025-06-01", "end_date": "2025-06-14"}
        )

        growth = response.json()["growth"]
        assert growth["previous_period_orders"] == 0
        assert growth["revenue_growth"] == 0

    async def test_other_laundry_orders_excluded(self, client, marketplace):
        response = await client.get(
            OVERVIEW, params={"laundry_id": "laundry-2", "start_date": "2025-06-01", "end_date": "2025-06-14"}
        )

        metrics = response.json()["metrics"]
        assert metrics["total_orders"] == 1
        assert metrics["total_revenue"] == pytest.approx(100.0)

    async def test_empty_period(self, client, marketplace):
        response = await client.get(
            OVERVIEW, params={"laundry_id": "laundry-1", "start_date": "2024-01-01", "end_date": "2024-01-07"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["metrics"]["total_orders"] == 0
        assert data["metrics"]["average_order_value"] == 0
        assert data["breakdowns"]["service_categories"] == []
        assert data["top_performers"]["top_category"] is None

    async def test_start_after_end(self, client, marketplace):
        response = await client.get(
            OVERVIEW, params={"laundry_id": "laundry-1", "start_date": "2025-06-14", "end_date": "2025-06-01"}
        )

        assert response.status_code == 400

    async def test_missing_dates(self, client, marketplace):
        response = await client.get(OVERVIEW, params={"laundry_id": "laundry-1"})

        assert response.status_code == 400
        assert response.json()["errors"]

    async def test_unknown_laundry(self, client, marketplace):
        response = await client.get(
            OVERVIEW, params={"laundry_id": "missing", "start_date": "2025-06-01", "end_date": "2025-06-14"}
        )

        assert response.status_code == 404


class TestAverageOrderValue:
    """Tests for GET /admin/dashboard/average-order-value"""

    async def test_month(self, client, marketplace):
        response = await client.get(AOV, params={"laundry_id": "laundry-1", "timeframe": "month"})

        assert response.status_code == 200
        data = response.json()
        assert data["current"]["total_orders"] == 4
        assert data["current"]["aov"] == pytest.approx(30.75)
        assert data["comparison"]["previous_aov"] == pytest.approx(65.0)
        assert data["comparison"]["growth_percentage"] == pytest.approx((30.75 - 65) / 65 * 100)
        assert data["comparison"]["improvement_amount"] == pytest.approx(-34.25)

        assert [t["period"] for t in data["trends"]] == ["Week 1", "Week 2", "Week 3", "Week 4"]
        assert data["trends"][-1]["orders"] == 4

    async def test_by_category_and_segment(self, client, marketplace):
        response = await client.get(AOV, params={"laundry_id": "laundry-1", "timeframe": "month"})

        data = response.json()
        assert [c["category"] for c in data["by_category"]] == ["Washing", "Ironing", "Other"]
        assert data["by_category"][0]["aov"] == pytest.approx(15.0)

        segments = {s["segment"]: s for s in data["by_segment"]}
        assert set(segments) == {"New", "Regular", "Premium", "VIP"}
        assert segments["Regular"]["orders"] == 4
        assert segments["VIP"]["aov"] == 0

    async def test_defaults_to_year(self, client, marketplace):
        response = await client.get(AOV, params={"laundry_id": "laundry-1"})

        data = response.json()
        assert data["period"]["timeframe"] == "year"
        assert data["current"]["total_orders"] == 5
        assert data["current"]["growth"] == 0
        assert len(data["trends"]) == 12
        assert data["trends"][-1]["period"] == "May 25"

    async def test_week_labels(self, client, marketplace):
        response = await client.get(AOV, params={"laundry_id": "laundry-1", "timeframe": "week"})

        trends = response.json()["trends"]
        assert len(trends) == 7
        assert trends[-1]["period"] == "Sat"

    async def test_invalid_timeframe(self, client, marketplace):
        response = await client.get(AOV, params={"laundry_id": "laundry-1", "timeframe": "quarter"})

        assert response.status_code == 400


class TestHealth:
    """Tests for health endpoints and middleware headers"""

    async def test_liveness(self, client):
        response = await client.get("/api/v1/health/live")

        assert response.status_code == 200
        assert response.json() == {"status": "alive"}
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert "X-Request-ID" in response.headers

    async def test_readiness_without_database(self, client):
        response = await client.get("/api/v1/health/ready")

        assert response.status_code == 503

    async def test_info(self, client):
        response = await client.get("/api/v1/info")

        assert response.json()["name"] == "laundry-marketplace-api"

    async def test_request_id_is_echoed(self, client):
        response = await client.get("/api/v1/health/live", headers={"X-Request-ID": "abc123"})

        assert response.headers["X-Request-ID"] == "abc123"
