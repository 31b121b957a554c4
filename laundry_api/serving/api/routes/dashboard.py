"""
Dashboard API Endpoints

Average order value analysis for the laundry admin dashboard.
"""

from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from laundry_api.analytics.engine import category_aov, summarize
from laundry_api.analytics.periods import Timeframe, bucket_series, previous_window
from laundry_api.analytics.ranking import growth_rate
from laundry_api.analytics.segmentation import segment_aov
from laundry_api.database.connection import get_db_dependency, get_session_factory
from laundry_api.serving.api.dependencies import (
    bucket_label,
    fetch_orders_concurrently,
    get_now,
    require_laundry,
)

router = APIRouter()
logger = structlog.get_logger(__name__)


class CurrentAOV(BaseModel):
    aov: float
    total_orders: int
    total_revenue: float
    growth: float


class AOVComparison(BaseModel):
    previous_aov: float
    growth_percentage: float
    improvement_amount: float


class AOVTrendPoint(BaseModel):
    period: str
    aov: float
    orders: int
    revenue: float


class CategoryAOV(BaseModel):
    category: str
    aov: float
    orders: int
    revenue: float


class SegmentAOVItem(BaseModel):
    segment: str
    aov: float
    orders: int
    revenue: float


class TimeframePeriod(BaseModel):
    timeframe: Timeframe
    start_date: datetime
    end_date: datetime


class AOVAnalysis(BaseModel):
    """Average order value analysis response"""
    current: CurrentAOV
    comparison: AOVComparison
    trends: List[AOVTrendPoint]
    by_category: List[CategoryAOV]
    by_segment: List[SegmentAOVItem]
    period: TimeframePeriod


@router.get("/average-order-value", response_model=AOVAnalysis)
async def get_average_order_value(
    laundry_id: str = Query(..., min_length=1),
    timeframe: Timeframe = Query(Timeframe.YEAR),
    db: AsyncSession = Depends(get_db_dependency),
    session_factory: async_sessionmaker = Depends(get_session_factory),
    now: datetime = Depends(get_now),
) -> AOVAnalysis:
    """
    AOV over the timeframe's window, its growth against the preceding
    window, an AOV trend, and AOV per service category and per segment of
    the customers active in the window.
    """
    logger.info("get_average_order_value called", laundry_id=laundry_id, timeframe=timeframe.value)
    await require_laundry(db, laundry_id)

    start, end = timeframe.window(now)
    prev_start, prev_end = previous_window(start, end)
    try:
        # The current window runs up to the request time, so it has no upper bound
        orders, previous_orders = await fetch_orders_concurrently(
            session_factory,
            {"laundry_id": laundry_id, "start": start},
            {"laundry_id": laundry_id, "start": prev_start, "end": prev_end},
        )
    except Exception as e:
        logger.error("Error in get_average_order_value", error=str(e), error_type=type(e).__name__)
        raise

    current = summarize(orders)
    previous = summarize(previous_orders)
    aov_growth = growth_rate(current.average_order_value, previous.average_order_value)

    trends = [
        AOVTrendPoint(
            period=bucket_label(timeframe, stats.bucket, with_year=True),
            aov=stats.average_order_value,
            orders=stats.orders,
            revenue=stats.revenue,
        )
        for stats in bucket_series(timeframe.buckets(now), orders)
    ]

    return AOVAnalysis(
        current=CurrentAOV(
            aov=current.average_order_value,
            total_orders=current.total_orders,
            total_revenue=current.total_revenue,
            growth=aov_growth,
        ),
        comparison=AOVComparison(
            previous_aov=previous.average_order_value,
            growth_percentage=aov_growth,
            improvement_amount=current.average_order_value - previous.average_order_value,
        ),
        trends=trends,
        by_category=[
            CategoryAOV(category=c.category, aov=c.aov, orders=c.orders, revenue=c.revenue)
            for c in category_aov(orders)
        ],
        by_segment=[
            SegmentAOVItem(segment=s.segment.value, aov=s.aov, orders=s.orders, revenue=s.revenue)
            for s in segment_aov(orders)
        ],
        period=TimeframePeriod(timeframe=timeframe, start_date=start, end_date=end),
    )
