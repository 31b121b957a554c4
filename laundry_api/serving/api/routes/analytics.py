"""
Analytics API Endpoints

Per-laundry performance overview for an explicit date range.
"""

from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
import structlog

from laundry_api.analytics.engine import hourly_distribution, peak_hours, summarize, top_customers
from laundry_api.analytics.periods import bucket_series, buckets_for_window, previous_window
from laundry_api.analytics.ranking import growth_rate, rank, safe_ratio
from laundry_api.config import get_settings
from laundry_api.database.connection import get_db_dependency, get_session_factory
from laundry_api.database.repositories import count_new_customers
from laundry_api.serving.api.dependencies import date_window, fetch_orders_concurrently, require_laundry

router = APIRouter()
logger = structlog.get_logger(__name__)
settings = get_settings()

logger.info("Analytics router initialized")


class PeriodInfo(BaseModel):
    start_date: datetime
    end_date: datetime
    days: int


class OverviewMetrics(BaseModel):
    """Key performance metrics of the period"""
    total_orders: int
    total_revenue: float
    completed_orders: int
    completed_revenue: float
    average_order_value: float
    unique_customers: int
    new_customers: int
    repeat_customers: int
    customer_retention_rate: float


class GrowthComparison(BaseModel):
    """Period-over-period comparison with the preceding window of equal length"""
    revenue_growth: float
    order_growth: float
    previous_period_revenue: float
    previous_period_orders: int


class CategoryPerformance(BaseModel):
    category: str
    orders: int
    revenue: float
    quantity: int
    percentage: float

    class Config:
        from_attributes = True


class DailyPerformance(BaseModel):
    day: date
    orders: int
    revenue: float
    customers: int
    average_order_value: float


class HourlyOrders(BaseModel):
    hour: int
    orders: int
    revenue: float

    class Config:
        from_attributes = True


class TopCustomer(BaseModel):
    id: str
    name: Optional[str]
    email: Optional[str]
    orders: int
    total_spent: float
    average_order_value: float


class Breakdowns(BaseModel):
    order_status: Dict[str, int]
    service_categories: List[CategoryPerformance]
    daily_performance: List[DailyPerformance]
    hourly_distribution: List[HourlyOrders]


class TopPerformers(BaseModel):
    customers: List[TopCustomer]
    peak_hours: List[HourlyOrders]
    top_category: Optional[str]


class Insights(BaseModel):
    busiest_day: Optional[DailyPerformance]
    highest_revenue_day: Optional[DailyPerformance]
    completion_rate: float
    average_daily_orders: float


class AnalyticsOverview(BaseModel):
    """Analytics overview response"""
    period: PeriodInfo
    metrics: OverviewMetrics
    growth: GrowthComparison
    breakdowns: Breakdowns
    top_performers: TopPerformers
    insights: Insights


@router.get("/overview", response_model=AnalyticsOverview)
async def get_analytics_overview(
    laundry_id: str = Query(..., min_length=1),
    start_date: date = Query(...),
    end_date: date = Query(...),
    db: AsyncSession = Depends(get_db_dependency),
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> AnalyticsOverview:
    """
    Performance of a laundry between ``start_date`` and ``end_date``
    (both inclusive), compared with the equally long period before it.
    """
    logger.info(
        "get_analytics_overview called",
        laundry_id=laundry_id,
        start_date=str(start_date),
        end_date=str(end_date),
    )
    start, end = date_window(start_date, end_date)
    await require_laundry(db, laundry_id)

    try:
        prev_start, prev_end = previous_window(start, end)
        orders, previous_orders = await fetch_orders_concurrently(
            session_factory,
            {"laundry_id": laundry_id, "start": start, "end": end},
            {"laundry_id": laundry_id, "start": prev_start, "end": prev_end},
        )
        new_customers = await count_new_customers(db, laundry_id, start, end)
    except Exception as e:
        logger.error("Error in get_analytics_overview", error=str(e), error_type=type(e).__name__)
        raise

    metrics = summarize(orders)
    previous = summarize(previous_orders)

    daily = [
        DailyPerformance(
            day=stats.bucket.start.date(),
            orders=stats.orders,
            revenue=stats.revenue,
            customers=stats.customers,
            average_order_value=stats.average_order_value,
        )
        for stats in bucket_series(buckets_for_window(start, end, 1), orders)
    ]
    busiest = rank(daily, key=lambda d: d.orders, limit=1)
    highest_revenue = rank(daily, key=lambda d: d.revenue, limit=1)

    customers = [
        TopCustomer(
            id=c.customer_id,
            name=c.name,
            email=c.email,
            orders=c.orders,
            total_spent=c.total_spent,
            average_order_value=c.average_order_value,
        )
        for c in top_customers(orders, limit=settings.analytics.top_customers_limit)
    ]

    logger.info(
        "Analytics overview computed",
        laundry_id=laundry_id,
        orders=metrics.total_orders,
        previous_orders=previous.total_orders,
    )

    return AnalyticsOverview(
        period=PeriodInfo(start_date=start, end_date=end, days=len(daily)),
        metrics=OverviewMetrics(
            total_orders=metrics.total_orders,
            total_revenue=metrics.total_revenue,
            completed_orders=metrics.completed_orders,
            completed_revenue=metrics.completed_revenue,
            average_order_value=metrics.average_order_value,
            unique_customers=metrics.unique_customers,
            new_customers=new_customers,
            repeat_customers=metrics.repeat_customers,
            customer_retention_rate=metrics.retention_rate,
        ),
        growth=GrowthComparison(
            revenue_growth=growth_rate(metrics.total_revenue, previous.total_revenue),
            order_growth=growth_rate(metrics.total_orders, previous.total_orders),
            previous_period_revenue=previous.total_revenue,
            previous_period_orders=previous.total_orders,
        ),
        breakdowns=Breakdowns(
            order_status=metrics.status_distribution,
            service_categories=[CategoryPerformance.model_validate(c) for c in metrics.categories],
            daily_performance=daily,
            hourly_distribution=[HourlyOrders.model_validate(h) for h in hourly_distribution(orders)],
        ),
        top_performers=TopPerformers(
            customers=customers,
            peak_hours=[
                HourlyOrders.model_validate(h)
                for h in peak_hours(orders, limit=settings.analytics.peak_hours_limit)
            ],
            top_category=metrics.top_category,
        ),
        insights=Insights(
            busiest_day=busiest[0] if busiest else None,
            highest_revenue_day=highest_revenue[0] if highest_revenue else None,
            completion_rate=metrics.completion_rate,
            average_daily_orders=safe_ratio(metrics.total_orders, len(daily)),
        ),
    )
