"""
Customers API Endpoints

Customer base analytics, customer list and customer creation for a laundry.
Segments on these endpoints are computed from each customer's lifetime
orders at the laundry.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import and_, exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
import structlog

from laundry_api.analytics.periods import Timeframe, bucket_series, first_order_times
from laundry_api.analytics.ranking import percentage, retention_rate, safe_ratio
from laundry_api.analytics.records import OrderRecord
from laundry_api.analytics.segmentation import (
    CustomerSegment,
    CustomerTotals,
    SegmentScope,
    customer_activity_status,
    customer_totals,
    days_since,
    segment_distribution,
    segment_summary,
)
from laundry_api.database.connection import get_db_dependency
from laundry_api.database.models import ActivityType, Order, Review, User, UserRole
from laundry_api.database.repositories import fetch_orders, get_user_by_email, log_activity
from laundry_api.serving.api.dependencies import (
    Pagination,
    bucket_label,
    get_now,
    paginate,
    require_laundry,
)

router = APIRouter()
logger = structlog.get_logger(__name__)

logger.info("Customers router initialized")


# =============================================================================
# OVERVIEW
# =============================================================================

class CustomerMetrics(BaseModel):
    """Customer base metrics"""
    total_customers: int
    active_customers: int
    new_customers_this_period: int
    average_ltv: float
    retention_rate: float


class GrowthPoint(BaseModel):
    period: str
    new_customers: int
    active_customers: int
    total_customers: int


class CustomerGrowth(BaseModel):
    period_growth: int
    growth_rate: float
    chart_data: List[GrowthPoint]


class SegmentItem(BaseModel):
    segment: str
    count: int
    revenue: float
    average_spending: float
    percentage: float


class CustomerInsights(BaseModel):
    average_orders_per_customer: float
    top_spending_segment: Optional[SegmentItem]
    customer_acquisition_trend: List[int]


class OverviewPeriod(BaseModel):
    timeframe: Timeframe
    start_date: datetime
    end_date: datetime


class CustomerOverview(BaseModel):
    """Customer overview response"""
    metrics: CustomerMetrics
    growth: CustomerGrowth
    segments: List[SegmentItem]
    insights: CustomerInsights
    period: OverviewPeriod


@router.get("/overview", response_model=CustomerOverview)
async def get_customers_overview(
    laundry_id: str = Query(..., min_length=1),
    timeframe: Timeframe = Query(Timeframe.MONTH),
    db: AsyncSession = Depends(get_db_dependency),
    now: datetime = Depends(get_now),
) -> CustomerOverview:
    """Customer base of a laundry: size, activity, acquisition and segments."""
    logger.info("get_customers_overview called", laundry_id=laundry_id, timeframe=timeframe.value)
    await require_laundry(db, laundry_id)

    try:
        orders = await fetch_orders(db, laundry_id=laundry_id)
    except Exception as e:
        logger.error("Error in get_customers_overview", error=str(e), error_type=type(e).__name__)
        raise

    start, end = timeframe.window(now)
    totals = customer_totals(orders, SegmentScope.LIFETIME)
    first_seen = first_order_times(orders)

    total_customers = len(totals)
    active_customers = len({o.customer_id for o in orders if o.created_at >= start})
    new_customers = sum(1 for t in first_seen.values() if t >= start)
    repeat_customers = sum(1 for t in totals if t.order_count > 1)
    lifetime_revenue = sum(t.total_spent for t in totals)

    chart = [
        GrowthPoint(
            period=bucket_label(timeframe, stats.bucket),
            new_customers=stats.new_customers,
            active_customers=stats.customers,
            total_customers=stats.cumulative_customers,
        )
        for stats in bucket_series(timeframe.buckets(now), orders, first_seen)
    ]

    segments = [
        SegmentItem(
            segment=s.segment.value,
            count=s.count,
            revenue=s.revenue,
            average_spending=s.average_spending,
            percentage=s.percentage,
        )
        for s in segment_summary(totals)
    ]

    return CustomerOverview(
        metrics=CustomerMetrics(
            total_customers=total_customers,
            active_customers=active_customers,
            new_customers_this_period=new_customers,
            average_ltv=safe_ratio(lifetime_revenue, total_customers),
            retention_rate=retention_rate(repeat_customers, total_customers),
        ),
        growth=CustomerGrowth(
            period_growth=new_customers,
            growth_rate=percentage(new_customers, total_customers),
            chart_data=chart,
        ),
        segments=segments,
        insights=CustomerInsights(
            average_orders_per_customer=safe_ratio(len(orders), total_customers),
            top_spending_segment=segments[0] if segments else None,
            customer_acquisition_trend=[point.new_customers for point in chart[-3:]],
        ),
        period=OverviewPeriod(timeframe=timeframe, start_date=start, end_date=end),
    )


# =============================================================================
# LIST
# =============================================================================

class CustomerSortField(str, Enum):
    NAME = "name"
    EMAIL = "email"
    TOTAL_SPENT = "total_spent"
    TOTAL_ORDERS = "total_orders"
    LAST_ORDER = "last_order"
    CREATED_AT = "created_at"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class CustomerStats(BaseModel):
    total_orders: int
    completed_orders: int
    total_spent: float
    average_order_value: float
    average_rating: float


class LastOrder(BaseModel):
    id: str
    amount: float
    placed_at: datetime
    status: str
    days_since: int


class AddressSummary(BaseModel):
    id: str
    street: str
    city: str
    state: str
    is_default: bool

    class Config:
        from_attributes = True


class CustomerSummary(BaseModel):
    """Customer with lifetime statistics at one laundry"""
    id: str
    name: str
    email: str
    phone: Optional[str]
    avatar: Optional[str]
    member_since: datetime
    segment: CustomerSegment
    stats: CustomerStats
    last_order: Optional[LastOrder]
    primary_address: Optional[AddressSummary]
    status: str


class CustomerListSummary(BaseModel):
    total_customers: int
    segment_distribution: Dict[str, int]
    average_order_value: float
    total_revenue: float


class CustomerFilters(BaseModel):
    search: Optional[str]
    segment: Optional[CustomerSegment]
    sort_by: CustomerSortField
    sort_order: SortOrder


class CustomerListResponse(BaseModel):
    """Paginated customer list"""
    customers: List[CustomerSummary]
    pagination: Pagination
    summary: CustomerListSummary
    filters: CustomerFilters


def _summarize_customer(
    user: User,
    totals: CustomerTotals,
    orders: List[OrderRecord],
    average_rating: float,
    now: datetime,
) -> CustomerSummary:
    orders = sorted(orders, key=lambda o: o.created_at, reverse=True)
    total_orders = totals.order_count
    total_spent = totals.total_spent
    last = orders[0] if orders else None

    addresses = sorted(user.addresses, key=lambda a: (a.is_default, a.created_at), reverse=True)

    return CustomerSummary(
        id=user.id,
        name=user.name or user.email.split("@")[0],
        email=user.email,
        phone=user.phone,
        avatar=user.avatar,
        member_since=user.created_at,
        segment=totals.segment,
        stats=CustomerStats(
            total_orders=total_orders,
            completed_orders=sum(1 for o in orders if o.is_completed),
            total_spent=total_spent,
            average_order_value=safe_ratio(total_spent, total_orders),
            average_rating=round(average_rating, 1),
        ),
        last_order=LastOrder(
            id=last.id,
            amount=last.final_amount,
            placed_at=last.created_at,
            status=last.status.value,
            days_since=days_since(last.created_at, now),
        ) if last else None,
        primary_address=AddressSummary.model_validate(addresses[0]) if addresses else None,
        status=customer_activity_status(last.created_at if last else None, now),
    )


_SORT_KEYS = {
    CustomerSortField.NAME: lambda c: c.name.lower(),
    CustomerSortField.EMAIL: lambda c: c.email.lower(),
    CustomerSortField.TOTAL_SPENT: lambda c: c.stats.total_spent,
    CustomerSortField.TOTAL_ORDERS: lambda c: c.stats.total_orders,
    CustomerSortField.LAST_ORDER: lambda c: c.last_order.placed_at if c.last_order else datetime.min,
    CustomerSortField.CREATED_AT: lambda c: c.member_since,
}


@router.get("", response_model=CustomerListResponse)
async def list_customers(
    laundry_id: str = Query(..., min_length=1),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    search: Optional[str] = None,
    segment: Optional[CustomerSegment] = None,
    sort_by: CustomerSortField = Query(CustomerSortField.CREATED_AT),
    sort_order: SortOrder = Query(SortOrder.DESC),
    db: AsyncSession = Depends(get_db_dependency),
    now: datetime = Depends(get_now),
) -> CustomerListResponse:
    """List the customers who ordered from a laundry, with filtering and sorting."""
    logger.info(
        "list_customers called",
        laundry_id=laundry_id,
        page=page,
        limit=limit,
        search=search,
        segment=segment.value if segment else None,
    )
    await require_laundry(db, laundry_id)

    try:
        conditions = [
            User.role == UserRole.CUSTOMER,
            exists().where(and_(Order.customer_id == User.id, Order.laundry_id == laundry_id)),
        ]
        if search:
            pattern = f"%{search.lower()}%"
            conditions.append(or_(func.lower(User.name).like(pattern), func.lower(User.email).like(pattern)))

        users = (
            await db.execute(
                select(User).where(and_(*conditions)).options(selectinload(User.addresses))
            )
        ).scalars().all()

        ratings = dict(
            (
                await db.execute(
                    select(Review.user_id, func.avg(Review.rating))
                    .where(Review.laundry_id == laundry_id)
                    .group_by(Review.user_id)
                )
            ).all()
        )

        orders = await fetch_orders(db, laundry_id=laundry_id)
    except Exception as e:
        logger.error("Error in list_customers", error=str(e), error_type=type(e).__name__)
        raise

    orders_by_customer: Dict[str, List[OrderRecord]] = {}
    for order in orders:
        orders_by_customer.setdefault(order.customer_id, []).append(order)
    totals = {t.customer_id: t for t in customer_totals(orders, SegmentScope.LIFETIME)}
    listed = [
        totals.get(user.id, CustomerTotals(user.id, 0, 0.0, SegmentScope.LIFETIME)) for user in users
    ]

    customers = [
        _summarize_customer(user, lifetime, orders_by_customer.get(user.id, []), float(ratings.get(user.id) or 0), now)
        for user, lifetime in zip(users, listed)
    ]
    distribution = segment_distribution(listed)

    filtered = [c for c in customers if segment is None or c.segment == segment]
    filtered.sort(key=_SORT_KEYS[sort_by], reverse=sort_order == SortOrder.DESC)
    page_items, pagination = paginate(filtered, page, limit)

    logger.info("Customers retrieved successfully", count=len(page_items), total=len(filtered))

    return CustomerListResponse(
        customers=page_items,
        pagination=pagination,
        summary=CustomerListSummary(
            total_customers=len(customers),
            segment_distribution=distribution,
            average_order_value=safe_ratio(sum(c.stats.average_order_value for c in customers), len(customers)),
            total_revenue=sum(c.stats.total_spent for c in customers),
        ),
        filters=CustomerFilters(search=search, segment=segment, sort_by=sort_by, sort_order=sort_order),
    )


# =============================================================================
# CREATE
# =============================================================================

class CustomerCreate(BaseModel):
    """Customer creation request"""
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: EmailStr
    phone: Optional[str] = None


class CustomerCreated(BaseModel):
    id: str
    name: Optional[str]
    email: str
    phone: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


@router.post("", response_model=CustomerCreated, status_code=201)
async def create_customer(
    payload: CustomerCreate,
    laundry_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db_dependency),
) -> CustomerCreated:
    """Register a new customer on behalf of a laundry."""
    await require_laundry(db, laundry_id)

    if await get_user_by_email(db, payload.email) is not None:
        raise HTTPException(status_code=409, detail="Customer with this email already exists")

    customer = User(
        name=f"{payload.first_name} {payload.last_name}",
        email=payload.email,
        phone=payload.phone,
        role=UserRole.CUSTOMER,
    )
    db.add(customer)
    await db.flush()

    log_activity(
        db,
        ActivityType.CUSTOMER_ADDED,
        "New customer added",
        description=f"Customer {customer.name} was added to the system",
        laundry_id=laundry_id,
        user_id=customer.id,
        details={"customer_name": customer.name, "customer_email": customer.email, "added_by": "admin"},
    )
    logger.info("Customer created", laundry_id=laundry_id, customer_id=customer.id)
    return CustomerCreated.model_validate(customer)
