"""
Period Bucketing

Partitions a reporting window into equal-length buckets counted backwards
from a reference "now" and assigns orders to them.

Buckets are left-closed and right-open, except the most recent bucket which
also contains orders created exactly at "now". Assignment is a single pass
that computes each order's bucket index from its timestamp.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
import math
from typing import Dict, Iterable, List, Optional, Tuple

from laundry_api.analytics.ranking import safe_ratio
from laundry_api.analytics.records import OrderRecord


class Timeframe(str, Enum):
    """Reporting granularity selectable by the dashboards"""
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"

    @property
    def window_days(self) -> int:
        return _TIMEFRAME_SHAPES[self][0]

    @property
    def bucket_count(self) -> int:
        return _TIMEFRAME_SHAPES[self][1]

    @property
    def bucket_days(self) -> int:
        return _TIMEFRAME_SHAPES[self][2]

    def window(self, now: datetime) -> Tuple[datetime, datetime]:
        """Scalar-metric window ``[now - window_days, now)``."""
        return now - timedelta(days=self.window_days), now

    def buckets(self, now: datetime) -> List["PeriodBucket"]:
        """Trend buckets ending at ``now``."""
        return make_buckets(now, self.bucket_count, self.bucket_days)


# window length in days, number of trend buckets, bucket length in days
_TIMEFRAME_SHAPES = {
    Timeframe.WEEK: (7, 7, 1),
    Timeframe.MONTH: (30, 4, 7),
    Timeframe.YEAR: (365, 12, 30),
}


@dataclass(frozen=True)
class PeriodBucket:
    """
    One sub-interval of a window.

    ``position`` is 0 for the oldest bucket. ``closed_end`` is set on the most
    recent bucket only, which then also holds orders created exactly at ``end``.
    """
    position: int
    start: datetime
    end: datetime
    closed_end: bool = False

    def contains(self, moment: datetime) -> bool:
        if moment < self.start:
            return False
        if self.closed_end:
            return moment <= self.end
        return moment < self.end


@dataclass
class BucketStats:
    """Order activity within one bucket"""
    bucket: PeriodBucket
    orders: int = 0
    revenue: float = 0.0
    customers: int = 0
    average_order_value: float = 0.0
    new_customers: Optional[int] = None
    cumulative_customers: Optional[int] = None


def make_buckets(now: datetime, count: int, length_days: int) -> List[PeriodBucket]:
    """
    ``count`` buckets of ``length_days`` days counting back from ``now``.

    Bucket ``i`` (counted from the most recent) covers
    ``[now - (i+1)*L, now - i*L)``; the result is in chronological order.
    """
    if count <= 0:
        return []
    length = timedelta(days=length_days)
    buckets = []
    for i in range(count - 1, -1, -1):
        buckets.append(
            PeriodBucket(
                position=count - 1 - i,
                start=now - (i + 1) * length,
                end=now - i * length,
                closed_end=(i == 0),
            )
        )
    return buckets


def buckets_for_window(start: datetime, end: datetime, length_days: int) -> List[PeriodBucket]:
    """
    Buckets of ``length_days`` covering ``[start, end]``: ``ceil(W / L)``
    buckets counted back from ``end``. When W is not a multiple of L the
    oldest bucket starts before ``start``.
    """
    if end <= start:
        return []
    length = timedelta(days=length_days)
    count = math.ceil((end - start) / length)
    return make_buckets(end, count, length_days)


def bucket_index(buckets: List[PeriodBucket], moment: datetime) -> Optional[int]:
    """Index of the bucket containing ``moment``, or None outside the buckets."""
    if not buckets:
        return None
    first, last = buckets[0], buckets[-1]
    if moment < first.start or moment > last.end:
        return None
    if moment == last.end:
        return len(buckets) - 1
    length = first.end - first.start
    return (moment - first.start) // length


def assign_orders(buckets: List[PeriodBucket], orders: Iterable[OrderRecord]) -> List[List[OrderRecord]]:
    """
    Group orders by bucket in one pass. Orders outside every bucket are
    dropped; each remaining order lands in exactly one bucket.
    """
    assigned: List[List[OrderRecord]] = [[] for _ in buckets]
    for order in orders:
        index = bucket_index(buckets, order.created_at)
        if index is not None:
            assigned[index].append(order)
    return assigned


def first_order_times(orders: Iterable[OrderRecord]) -> Dict[str, datetime]:
    """Earliest order timestamp per customer."""
    first_seen: Dict[str, datetime] = {}
    for order in orders:
        current = first_seen.get(order.customer_id)
        if current is None or order.created_at < current:
            first_seen[order.customer_id] = order.created_at
    return first_seen


def bucket_series(
    buckets: List[PeriodBucket],
    orders: Iterable[OrderRecord],
    first_seen: Optional[Dict[str, datetime]] = None,
) -> List[BucketStats]:
    """
    Per-bucket order count, revenue, distinct customers and AOV.

    With ``first_seen`` (customer id -> first order timestamp, usually from
    the customer's lifetime orders) each bucket also reports the customers
    whose first order falls inside it and the running total of customers
    acquired up to the bucket's end.
    """
    series = []
    for bucket, bucket_orders in zip(buckets, assign_orders(buckets, orders)):
        revenue = sum(o.final_amount for o in bucket_orders)
        stats = BucketStats(
            bucket=bucket,
            orders=len(bucket_orders),
            revenue=revenue,
            customers=len({o.customer_id for o in bucket_orders}),
            average_order_value=safe_ratio(revenue, len(bucket_orders)),
        )
        if first_seen is not None:
            stats.new_customers = sum(1 for t in first_seen.values() if bucket.contains(t))
            stats.cumulative_customers = sum(
                1 for t in first_seen.values()
                if t < bucket.end or (bucket.closed_end and t == bucket.end)
            )
        series.append(stats)
    return series


def previous_window(start: datetime, end: datetime) -> Tuple[datetime, datetime]:
    """The window of equal length immediately preceding ``[start, end)``."""
    return start - (end - start), start


def calendar_month_start(moment: datetime) -> datetime:
    """Midnight of the first day of ``moment``'s month."""
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def shift_months(month_start: datetime, months: int) -> datetime:
    """First day of the month ``months`` away from ``month_start`` (may be negative)."""
    index = month_start.year * 12 + (month_start.month - 1) + months
    return month_start.replace(year=index // 12, month=index % 12 + 1, day=1)


def previous_calendar_month(moment: datetime) -> Tuple[datetime, datetime]:
    """``[start, end)`` of the calendar month before ``moment``'s month."""
    this_month = calendar_month_start(moment)
    return shift_months(this_month, -1), this_month


def calendar_months(moment: datetime, count: int) -> List[PeriodBucket]:
    """
    The last ``count`` calendar months up to and including ``moment``'s
    month, oldest first. Unlike ``make_buckets`` these have uneven lengths.
    """
    this_month = calendar_month_start(moment)
    months = []
    for offset in range(count - 1, -1, -1):
        start = shift_months(this_month, -offset)
        months.append(
            PeriodBucket(
                position=count - 1 - offset,
                start=start,
                end=shift_months(start, 1),
            )
        )
    return months
