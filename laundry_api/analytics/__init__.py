"""
Order and Customer Analytics

Pure aggregation over order snapshots: metrics, period buckets, segments
and rankings shared by every reporting endpoint.
"""
from .engine import OrderMetrics, CategoryStats, summarize, category_breakdown
from .periods import PeriodBucket, Timeframe, make_buckets, bucket_series
from .records import CustomerRef, LineItemRecord, OrderRecord
from .segmentation import CustomerSegment, CustomerTotals, SegmentScope, assign_segment
from .ranking import growth_rate, rank, retention_rate

__all__ = [
    "OrderMetrics",
    "CategoryStats",
    "summarize",
    "category_breakdown",
    "PeriodBucket",
    "Timeframe",
    "make_buckets",
    "bucket_series",
    "CustomerRef",
    "LineItemRecord",
    "OrderRecord",
    "CustomerSegment",
    "CustomerTotals",
    "SegmentScope",
    "assign_segment",
    "growth_rate",
    "rank",
    "retention_rate",
]
