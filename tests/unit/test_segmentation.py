"""
Unit Tests - Customer Segmentation and Ranking
"""
from datetime import datetime, timedelta

import pytest

from laundry_api.analytics.ranking import growth_rate, percentage, rank, retention_rate, safe_ratio
from laundry_api.analytics.segmentation import (
    CustomerSegment,
    CustomerTotals,
    SegmentScope,
    assign_segment,
    customer_activity_status,
    customer_totals,
    loyalty_points,
    segment_aov,
    segment_customers,
    segment_distribution,
    segment_summary,
)

NOW = datetime(2025, 6, 15, 12, 0)


class TestAssignSegment:
    """Tests for segment thresholds"""

    @pytest.mark.parametrize(
        "orders, spent, expected",
        [
            (5, 500.0, CustomerSegment.VIP),
            (5, 499.99, CustomerSegment.PREMIUM),
            (3, 200.0, CustomerSegment.PREMIUM),
            (10, 150.0, CustomerSegment.REGULAR),
            (2, 0.0, CustomerSegment.REGULAR),
            (2, 600.0, CustomerSegment.REGULAR),
            (6, 600.0, CustomerSegment.VIP),
            (4, 499.99, CustomerSegment.PREMIUM),
            (1, 1000.0, CustomerSegment.NEW),
            (0, 0.0, CustomerSegment.NEW),
        ],
    )
    def test_thresholds(self, orders, spent, expected):
        assert assign_segment(orders, spent) == expected


class TestSegmentSummaries:
    """Tests for segment aggregation"""

    def test_customer_totals(self, sample_orders):
        totals = customer_totals(sample_orders, SegmentScope.WINDOW)

        assert [t.customer_id for t in totals] == ["c1", "c2", "c3"]
        assert totals[0].order_count == 2
        assert totals[0].total_spent == pytest.approx(150.0)
        assert all(t.scope == SegmentScope.WINDOW for t in totals)

    def test_mixed_scopes_rejected(self):
        totals = [
            CustomerTotals("c1", 1, 10.0, SegmentScope.LIFETIME),
            CustomerTotals("c2", 1, 10.0, SegmentScope.WINDOW),
        ]

        with pytest.raises(ValueError):
            segment_customers(totals)
        with pytest.raises(ValueError):
            segment_summary(totals)

    def test_summary_sorted_by_average_spending(self):
        totals = [
            CustomerTotals("c1", 6, 900.0, SegmentScope.LIFETIME),
            CustomerTotals("c2", 1, 20.0, SegmentScope.LIFETIME),
            CustomerTotals("c3", 1, 40.0, SegmentScope.LIFETIME),
            CustomerTotals("c4", 2, 60.0, SegmentScope.LIFETIME),
        ]

        summary = segment_summary(totals)

        assert [s.segment for s in summary] == [CustomerSegment.VIP, CustomerSegment.REGULAR, CustomerSegment.NEW]
        new = summary[-1]
        assert new.count == 2
        assert new.average_spending == pytest.approx(30.0)
        assert new.percentage == pytest.approx(50.0)
        assert sum(s.percentage for s in summary) == pytest.approx(100.0)

    def test_distribution_only_lists_present_segments(self):
        totals = [
            CustomerTotals("c1", 1, 20.0, SegmentScope.LIFETIME),
            CustomerTotals("c2", 2, 20.0, SegmentScope.LIFETIME),
            CustomerTotals("c3", 1, 5.0, SegmentScope.LIFETIME),
        ]

        assert segment_distribution(totals) == {"New": 2, "Regular": 1}

    def test_empty(self):
        assert segment_summary([]) == []
        assert segment_distribution([]) == {}


class TestSegmentAOV:
    """Tests for AOV per segment of window customers"""

    def test_all_segments_returned(self, sample_orders):
        result = segment_aov(sample_orders)

        assert [s.segment for s in result] == list(CustomerSegment)
        regular = result[1]
        assert regular.orders == 2
        assert regular.aov == pytest.approx(75.0)
        new = result[0]
        assert new.orders == 2
        assert new.revenue == pytest.approx(50.0)
        assert result[3].aov == 0

    def test_segments_use_window_orders_only(self, order_factory):
        orders = [order_factory(f"o{i}", "c1", NOW - timedelta(days=i), 120.0) for i in range(5)]

        # five orders of 600 in total make c1 a VIP within this window
        result = {s.segment: s for s in segment_aov(orders)}

        assert result[CustomerSegment.VIP].orders == 5
        assert result[CustomerSegment.VIP].revenue == pytest.approx(600.0)


class TestCustomerActivity:
    """Tests for recency status and loyalty points"""

    @pytest.mark.parametrize(
        "days_ago, expected",
        [(0, "active"), (30, "active"), (31, "dormant"), (90, "dormant"), (91, "inactive")],
    )
    def test_activity_status(self, days_ago, expected):
        assert customer_activity_status(NOW - timedelta(days=days_ago), NOW) == expected

    def test_no_orders_is_new(self):
        assert customer_activity_status(None, NOW) == "new"

    def test_loyalty_points_floor(self):
        assert loyalty_points(123.9) == 123
        assert loyalty_points(0) == 0


class TestRanking:
    """Tests for ratio and ranking helpers"""

    def test_safe_ratio(self):
        assert safe_ratio(10, 4) == pytest.approx(2.5)
        assert safe_ratio(10, 0) == 0

    def test_percentage(self):
        assert percentage(1, 4) == pytest.approx(25.0)
        assert percentage(1, 0) == 0

    def test_growth_rate(self):
        assert growth_rate(150, 100) == pytest.approx(50.0)
        assert growth_rate(50, 100) == pytest.approx(-50.0)
        assert growth_rate(100, 0) == 0

    def test_retention_rate(self):
        assert retention_rate(1, 3) == pytest.approx(100 / 3)

    def test_rank_is_stable(self):
        items = [("a", 1), ("b", 3), ("c", 3), ("d", 2)]

        ranked = rank(items, key=lambda i: i[1], limit=3)

        assert [name for name, _ in ranked] == ["b", "c", "d"]
