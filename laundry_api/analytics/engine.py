"""
Order Aggregation Engine

Reduces a snapshot of orders into the metrics shared by every reporting
endpoint:

- Scalar totals (orders, revenue, completed revenue, AOV, customers)
- Status distribution
- Category performance (distinct orders, revenue, quantity, share)
- Hourly distribution and peak hours
- Per-customer spending and per-product performance

Orders are loaded into polars frames and grouped there; results are returned
as plain dataclasses. The engine is stateless and never raises for empty
input: every ratio falls back to 0 and every ranking to an empty list.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

import polars as pl
import structlog

from laundry_api.analytics.ranking import percentage, rank, retention_rate, safe_ratio
from laundry_api.analytics.records import (
    CustomerRef,
    OrderRecord,
    category_label,
    filter_orders,
)
from laundry_api.database.models import COMPLETED_STATUSES, OrderStatus

logger = structlog.get_logger(__name__)

ORDER_SCHEMA = {
    "order_id": pl.Utf8,
    "customer_id": pl.Utf8,
    "status": pl.Utf8,
    "final_amount": pl.Float64,
    "created_at": pl.Datetime("us"),
}

ITEM_SCHEMA = {
    "order_id": pl.Utf8,
    "category": pl.Utf8,
    "product_id": pl.Utf8,
    "product_name": pl.Utf8,
    "quantity": pl.Int64,
    "line_total": pl.Float64,
}

_COMPLETED_VALUES = [s.value for s in COMPLETED_STATUSES]


@dataclass
class CategoryStats:
    """Performance of one product category"""
    category: str
    orders: int
    revenue: float
    quantity: int
    percentage: float = 0.0

    @property
    def aov(self) -> float:
        return safe_ratio(self.revenue, self.orders)


@dataclass
class HourStats:
    """Orders placed during one hour of the day"""
    hour: int
    orders: int
    revenue: float


@dataclass
class CustomerSpending:
    """Orders and spend of one customer within the aggregated orders"""
    customer_id: str
    orders: int
    total_spent: float
    customer: Optional[CustomerRef] = None

    @property
    def average_order_value(self) -> float:
        return safe_ratio(self.total_spent, self.orders)

    @property
    def name(self) -> Optional[str]:
        return self.customer.display_name if self.customer else None

    @property
    def email(self) -> Optional[str]:
        return self.customer.email if self.customer else None


@dataclass
class ProductStats:
    """Sales of one product"""
    product_id: str
    quantity_sold: int = 0
    revenue: float = 0.0
    orders: int = 0

    @property
    def average_order_value(self) -> float:
        return safe_ratio(self.revenue, self.orders)


@dataclass
class OrderMetrics:
    """Scalar and grouped metrics of a set of orders"""
    total_orders: int = 0
    total_revenue: float = 0.0
    completed_orders: int = 0
    completed_revenue: float = 0.0
    average_order_value: float = 0.0
    unique_customers: int = 0
    repeat_customers: int = 0
    retention_rate: float = 0.0
    status_distribution: Dict[str, int] = field(default_factory=dict)
    categories: List[CategoryStats] = field(default_factory=list)

    @property
    def completion_rate(self) -> float:
        return percentage(self.completed_orders, self.total_orders)

    @property
    def top_category(self) -> Optional[str]:
        return self.categories[0].category if self.categories else None


# =============================================================================
# FRAMES
# =============================================================================

def orders_frame(orders: Sequence[OrderRecord]) -> pl.DataFrame:
    """One row per order."""
    return pl.DataFrame(
        {
            "order_id": [o.id for o in orders],
            "customer_id": [o.customer_id for o in orders],
            "status": [OrderStatus(o.status).value for o in orders],
            "final_amount": [float(o.final_amount) for o in orders],
            "created_at": [o.created_at for o in orders],
        },
        schema=ORDER_SCHEMA,
    )


def items_frame(orders: Sequence[OrderRecord]) -> pl.DataFrame:
    """One row per line item, categories normalized to their grouping label."""
    rows = [(o.id, item) for o in orders for item in o.items]
    return pl.DataFrame(
        {
            "order_id": [order_id for order_id, _ in rows],
            "category": [category_label(item.category) for _, item in rows],
            "product_id": [item.product_id for _, item in rows],
            "product_name": [item.product_name for _, item in rows],
            "quantity": [int(item.quantity) for _, item in rows],
            "line_total": [float(item.line_total) for _, item in rows],
        },
        schema=ITEM_SCHEMA,
    )


def _sum(frame: pl.DataFrame, column: str) -> float:
    if frame.height == 0:
        return 0.0
    return float(frame[column].sum() or 0)


# =============================================================================
# AGGREGATIONS
# =============================================================================

def summarize(
    orders: Iterable[OrderRecord],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    statuses: Optional[Iterable[OrderStatus]] = None,
) -> OrderMetrics:
    """
    Aggregate orders inside ``[start, end)`` (and matching ``statuses`` when
    given) into an :class:`OrderMetrics`.

    Total revenue covers every status; completed revenue only COMPLETED and
    DELIVERED orders.
    """
    selected = filter_orders(orders, start=start, end=end, statuses=statuses)
    frame = orders_frame(selected)

    total_orders = frame.height
    total_revenue = _sum(frame, "final_amount")
    completed = frame.filter(pl.col("status").is_in(_COMPLETED_VALUES))

    per_customer = frame.group_by("customer_id").agg(pl.len().alias("orders"))
    unique_customers = per_customer.height
    repeat_customers = per_customer.filter(pl.col("orders") > 1).height

    metrics = OrderMetrics(
        total_orders=total_orders,
        total_revenue=total_revenue,
        completed_orders=completed.height,
        completed_revenue=_sum(completed, "final_amount"),
        average_order_value=safe_ratio(total_revenue, total_orders),
        unique_customers=unique_customers,
        repeat_customers=repeat_customers,
        retention_rate=retention_rate(repeat_customers, unique_customers),
        status_distribution=status_distribution(frame),
        categories=category_breakdown(selected),
    )
    logger.debug(
        "Orders summarized",
        orders=metrics.total_orders,
        revenue=metrics.total_revenue,
        customers=metrics.unique_customers,
    )
    return metrics


def status_distribution(frame: pl.DataFrame) -> Dict[str, int]:
    """Order count per status, in first-seen order."""
    counts = frame.group_by("status", maintain_order=True).agg(pl.len().alias("count"))
    return {row["status"]: row["count"] for row in counts.iter_rows(named=True)}


def category_breakdown(orders: Sequence[OrderRecord], completed_only: bool = False) -> List[CategoryStats]:
    """
    Category performance, highest revenue first.

    Revenue and quantity accumulate per line item; an order is counted once
    per category however many of its lines share that category. Percentages
    are shares of the summed category revenue, so they add up to 100 (or to
    0 when there is no revenue). Orders without items do not appear.
    """
    if completed_only:
        orders = [o for o in orders if o.is_completed]
    items = items_frame(orders)
    if items.height == 0:
        return []

    grouped = items.group_by("category", maintain_order=True).agg(
        pl.col("order_id").n_unique().alias("orders"),
        pl.col("line_total").sum().alias("revenue"),
        pl.col("quantity").sum().alias("quantity"),
    )
    grand_total = _sum(grouped, "revenue")

    stats = [
        CategoryStats(
            category=row["category"],
            orders=row["orders"],
            revenue=float(row["revenue"]),
            quantity=int(row["quantity"]),
            percentage=percentage(float(row["revenue"]), grand_total),
        )
        for row in grouped.iter_rows(named=True)
    ]
    return rank(stats, key=lambda c: c.revenue)


def category_aov(orders: Sequence[OrderRecord]) -> List[CategoryStats]:
    """Categories ordered by revenue per distinct order, highest first."""
    return rank(category_breakdown(orders), key=lambda c: c.aov)


def hourly_distribution(orders: Sequence[OrderRecord]) -> List[HourStats]:
    """Orders and revenue per hour of day, hours without orders omitted, ascending."""
    frame = orders_frame(orders)
    if frame.height == 0:
        return []
    grouped = (
        frame.with_columns(pl.col("created_at").dt.hour().alias("hour"))
        .group_by("hour")
        .agg(
            pl.len().alias("orders"),
            pl.col("final_amount").sum().alias("revenue"),
        )
        .sort("hour")
    )
    return [
        HourStats(hour=int(row["hour"]), orders=int(row["orders"]), revenue=float(row["revenue"]))
        for row in grouped.iter_rows(named=True)
    ]


def peak_hours(orders: Sequence[OrderRecord], limit: int = 5) -> List[HourStats]:
    """Busiest hours by order count; ties keep ascending hour order."""
    return rank(hourly_distribution(orders), key=lambda h: h.orders, limit=limit)


def customer_spending(orders: Sequence[OrderRecord]) -> List[CustomerSpending]:
    """Per-customer order count and spend, in first-seen order."""
    spending: Dict[str, CustomerSpending] = {}
    for order in orders:
        entry = spending.get(order.customer_id)
        if entry is None:
            entry = spending[order.customer_id] = CustomerSpending(
                customer_id=order.customer_id, orders=0, total_spent=0.0, customer=order.customer
            )
        entry.orders += 1
        entry.total_spent += order.final_amount
    return list(spending.values())


def top_customers(orders: Sequence[OrderRecord], limit: int = 10) -> List[CustomerSpending]:
    """Customers ranked by spend within the given orders."""
    return rank(customer_spending(orders), key=lambda c: c.total_spent, limit=limit)


def product_performance(orders: Sequence[OrderRecord], completed_only: bool = True) -> Dict[str, ProductStats]:
    """
    Quantity, revenue and distinct orders per product id.

    By default only COMPLETED and DELIVERED orders count, as on the products
    overview.
    """
    if completed_only:
        orders = [o for o in orders if o.is_completed]
    items = items_frame(orders).filter(pl.col("product_id").is_not_null())
    if items.height == 0:
        return {}

    grouped = items.group_by("product_id", maintain_order=True).agg(
        pl.col("quantity").sum().alias("quantity_sold"),
        pl.col("line_total").sum().alias("revenue"),
        pl.col("order_id").n_unique().alias("orders"),
    )
    return {
        row["product_id"]: ProductStats(
            product_id=row["product_id"],
            quantity_sold=int(row["quantity_sold"]),
            revenue=float(row["revenue"]),
            orders=int(row["orders"]),
        )
        for row in grouped.iter_rows(named=True)
    }
