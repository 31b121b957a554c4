"""
Analytics Input Records

Plain, immutable snapshots of the rows the analytics pipeline consumes. The
storage layer converts ORM objects into these records once per request so the
aggregation code never touches a database session.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple

from laundry_api.database.models import COMPLETED_STATUSES, OrderStatus

DEFAULT_CATEGORY = "Other"


def naive_utc(value: datetime) -> datetime:
    """Drop timezone info after converting to UTC; naive values are assumed UTC."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def category_label(category: Optional[str]) -> str:
    """Category used for grouping: missing or blank categories become "Other"."""
    if category is None or not category.strip():
        return DEFAULT_CATEGORY
    return category


@dataclass(frozen=True)
class CustomerRef:
    """Minimal customer projection embedded in orders"""
    id: str
    email: str
    name: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def display_name(self) -> str:
        return self.name or self.email.split("@")[0]


@dataclass(frozen=True)
class LineItemRecord:
    """One line of an order"""
    quantity: int
    line_total: float
    category: Optional[str] = None
    product_id: Optional[str] = None
    product_name: Optional[str] = None


@dataclass(frozen=True)
class OrderRecord:
    """An order with its line items, as fetched for one request"""
    id: str
    customer_id: str
    status: OrderStatus
    final_amount: float
    created_at: datetime
    laundry_id: Optional[str] = None
    items: Tuple[LineItemRecord, ...] = field(default_factory=tuple)
    customer: Optional[CustomerRef] = None
    pickup_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None

    @property
    def is_completed(self) -> bool:
        return self.status in COMPLETED_STATUSES


def filter_orders(
    orders: Iterable[OrderRecord],
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    statuses: Optional[Iterable[OrderStatus]] = None,
) -> List[OrderRecord]:
    """
    Restrict orders to the half-open window ``[start, end)`` and to a set of
    statuses. ``None`` disables the corresponding filter.
    """
    allowed = frozenset(statuses) if statuses is not None else None
    selected = []
    for order in orders:
        if start is not None and order.created_at < start:
            continue
        if end is not None and order.created_at >= end:
            continue
        if allowed is not None and order.status not in allowed:
            continue
        selected.append(order)
    return selected
