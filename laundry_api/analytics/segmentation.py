"""
Customer Segmentation

Assigns customers to the New / Regular / Premium / VIP segments from their
order count and spend at one laundry.

Two scopes exist and are never mixed:

- LIFETIME: every order the customer ever placed at the laundry. Used for
  customer profiles, the customer list and the customer overview.
- WINDOW: only the orders inside the reporting window. Used by views of
  customers active in a period, such as AOV by segment.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
import math
from typing import Dict, Iterable, List, Optional

from laundry_api.analytics.ranking import percentage, rank, safe_ratio
from laundry_api.analytics.records import OrderRecord


class CustomerSegment(str, Enum):
    """Customer segment, ordered from lowest to highest value"""
    NEW = "New"
    REGULAR = "Regular"
    PREMIUM = "Premium"
    VIP = "VIP"


class SegmentScope(str, Enum):
    """Which orders the totals were computed from"""
    LIFETIME = "lifetime"
    WINDOW = "window"


VIP_MIN_ORDERS = 5
VIP_MIN_SPEND = 500.0
PREMIUM_MIN_ORDERS = 3
PREMIUM_MIN_SPEND = 200.0
REGULAR_MIN_ORDERS = 2

ACTIVE_WITHIN_DAYS = 30
DORMANT_WITHIN_DAYS = 90


def assign_segment(order_count: int, total_spent: float) -> CustomerSegment:
    """Segment for a customer with ``order_count`` orders totaling ``total_spent``."""
    if order_count >= VIP_MIN_ORDERS and total_spent >= VIP_MIN_SPEND:
        return CustomerSegment.VIP
    if order_count >= PREMIUM_MIN_ORDERS and total_spent >= PREMIUM_MIN_SPEND:
        return CustomerSegment.PREMIUM
    if order_count >= REGULAR_MIN_ORDERS:
        return CustomerSegment.REGULAR
    return CustomerSegment.NEW


@dataclass(frozen=True)
class CustomerTotals:
    """Order count and spend of one customer within one scope"""
    customer_id: str
    order_count: int
    total_spent: float
    scope: SegmentScope

    @property
    def segment(self) -> CustomerSegment:
        return assign_segment(self.order_count, self.total_spent)


@dataclass
class SegmentStats:
    """Customers of one segment"""
    segment: CustomerSegment
    count: int = 0
    revenue: float = 0.0
    average_spending: float = 0.0
    percentage: float = 0.0


@dataclass
class SegmentAOV:
    """Orders placed by customers of one segment"""
    segment: CustomerSegment
    orders: int = 0
    revenue: float = 0.0
    aov: float = 0.0


def customer_totals(orders: Iterable[OrderRecord], scope: SegmentScope) -> List[CustomerTotals]:
    """
    Per-customer totals from flat order rows, in first-seen order.

    The caller states the scope the rows represent: all of the customer's
    orders at the laundry (LIFETIME) or only those in a window (WINDOW).
    """
    counts: Dict[str, int] = {}
    spent: Dict[str, float] = {}
    for order in orders:
        counts[order.customer_id] = counts.get(order.customer_id, 0) + 1
        spent[order.customer_id] = spent.get(order.customer_id, 0.0) + order.final_amount
    return [
        CustomerTotals(customer_id=cid, order_count=counts[cid], total_spent=spent[cid], scope=scope)
        for cid in counts
    ]


def _require_single_scope(totals: List[CustomerTotals]) -> Optional[SegmentScope]:
    scopes = {t.scope for t in totals}
    if len(scopes) > 1:
        raise ValueError("Cannot segment lifetime and windowed customer totals together")
    return next(iter(scopes), None)


def segment_customers(totals: Iterable[CustomerTotals]) -> Dict[str, CustomerSegment]:
    """Map customer id to segment."""
    totals = list(totals)
    _require_single_scope(totals)
    return {t.customer_id: t.segment for t in totals}


def segment_distribution(totals: Iterable[CustomerTotals]) -> Dict[str, int]:
    """Customer count per segment, only for segments that occur."""
    distribution: Dict[str, int] = {}
    for segment in segment_customers(totals).values():
        distribution[segment.value] = distribution.get(segment.value, 0) + 1
    return distribution


def segment_summary(totals: Iterable[CustomerTotals]) -> List[SegmentStats]:
    """
    Count, revenue, average spending and share of customers per segment.

    Only segments with at least one customer are returned, sorted by average
    spending, highest first.
    """
    totals = list(totals)
    _require_single_scope(totals)

    by_segment: Dict[CustomerSegment, SegmentStats] = {}
    for t in totals:
        stats = by_segment.setdefault(t.segment, SegmentStats(segment=t.segment))
        stats.count += 1
        stats.revenue += t.total_spent

    customer_count = len(totals)
    for stats in by_segment.values():
        stats.average_spending = safe_ratio(stats.revenue, stats.count)
        stats.percentage = percentage(stats.count, customer_count)

    return rank(by_segment.values(), key=lambda s: s.average_spending)


def segment_aov(orders: Iterable[OrderRecord]) -> List[SegmentAOV]:
    """
    AOV per segment of the customers active in the given orders.

    Segments come from WINDOW-scoped totals: only the orders passed in count.
    All four segments are returned, lowest segment first.
    """
    orders = list(orders)
    segments = segment_customers(customer_totals(orders, SegmentScope.WINDOW))

    result = {segment: SegmentAOV(segment=segment) for segment in CustomerSegment}
    for order in orders:
        entry = result[segments[order.customer_id]]
        entry.orders += 1
        entry.revenue += order.final_amount

    for entry in result.values():
        entry.aov = safe_ratio(entry.revenue, entry.orders)
    return list(result.values())


def customer_activity_status(last_order_at: Optional[datetime], now: datetime) -> str:
    """
    Recency bucket of a customer: "new" without orders, "active" within 30
    days of the last order, "dormant" within 90 days, "inactive" beyond.
    """
    if last_order_at is None:
        return "new"
    days = days_since(last_order_at, now)
    if days <= ACTIVE_WITHIN_DAYS:
        return "active"
    if days <= DORMANT_WITHIN_DAYS:
        return "dormant"
    return "inactive"


def days_since(moment: datetime, now: datetime) -> int:
    """Whole days elapsed between ``moment`` and ``now``."""
    return (now - moment).days


def loyalty_points(completed_spend: float) -> int:
    """One point per currency unit spent on completed orders."""
    return math.floor(completed_spend or 0)
