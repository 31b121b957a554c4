"""
Super Admin API Endpoints

Platform dashboard and laundry management. Month figures cover the current
calendar month up to the request time; growth compares them with the whole
previous calendar month.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
import structlog

from laundry_api.analytics.engine import summarize
from laundry_api.analytics.periods import calendar_month_start, previous_calendar_month
from laundry_api.analytics.ranking import growth_rate, safe_ratio
from laundry_api.analytics.records import OrderRecord
from laundry_api.config import get_settings
from laundry_api.database.connection import get_db_dependency
from laundry_api.database.models import (
    BACKLOG_STATUSES,
    CANCELABLE_STATUSES,
    COMPLETED_STATUSES,
    ActivityType,
    Laundry,
    LaundryStatus,
    Order,
    OrderStatus,
    Product,
    Review,
    User,
    UserRole,
    utcnow,
)
from laundry_api.database.repositories import fetch_orders, log_activity
from laundry_api.serving.api.dependencies import Pagination, get_now, paginate, require_laundry

router = APIRouter()
logger = structlog.get_logger(__name__)
settings = get_settings()

logger.info("Super admin router initialized")


async def _scalar(db: AsyncSession, query) -> float:
    return (await db.execute(query)).scalar() or 0


# =============================================================================
# PLATFORM DASHBOARD
# =============================================================================

class PlatformTotals(BaseModel):
    total_laundries: int
    total_users: int
    total_orders: int
    platform_revenue: float


class MonthlyStats(BaseModel):
    monthly_orders: int
    monthly_revenue: float
    completed_orders: int
    new_customers: int


class PlatformStatus(BaseModel):
    active_laundries: int
    suspended_laundries: int
    pending_orders: int


class PlatformGrowth(BaseModel):
    """Current month against the previous calendar month, in percent"""
    orders_growth: float
    revenue_growth: float
    user_growth: float


class PlatformOverview(BaseModel):
    """Super admin dashboard response"""
    overview: PlatformTotals
    monthly_stats: MonthlyStats
    status: PlatformStatus
    growth: PlatformGrowth


@router.get("/dashboard/overview", response_model=PlatformOverview)
async def get_platform_overview(
    db: AsyncSession = Depends(get_db_dependency),
    now: datetime = Depends(get_now),
) -> PlatformOverview:
    """Platform-wide totals, this month's activity and month-over-month growth."""
    logger.info("get_platform_overview called")
    month_start = calendar_month_start(now)
    prev_start, prev_end = previous_calendar_month(now)

    completed = Order.status.in_(list(COMPLETED_STATUSES))

    def in_window(column, start, end=None):
        return and_(column >= start, column < end) if end is not None else column >= start

    try:
        total_laundries = await _scalar(db, select(func.count(Laundry.id)))
        active_laundries = await _scalar(
            db, select(func.count(Laundry.id)).where(Laundry.status == LaundryStatus.ACTIVE)
        )
        suspended_laundries = await _scalar(
            db, select(func.count(Laundry.id)).where(Laundry.status == LaundryStatus.SUSPENDED)
        )
        total_users = await _scalar(db, select(func.count(User.id)).where(User.role == UserRole.CUSTOMER))
        total_orders = await _scalar(db, select(func.count(Order.id)))
        platform_revenue = await _scalar(db, select(func.sum(Order.final_amount)).where(completed))
        pending_orders = await _scalar(
            db, select(func.count(Order.id)).where(Order.status.in_(list(BACKLOG_STATUSES)))
        )

        month_orders = await fetch_orders(db, start=month_start)
        prev_orders = await fetch_orders(db, start=prev_start, end=prev_end)

        new_customers = await _scalar(
            db,
            select(func.count(User.id)).where(
                and_(User.role == UserRole.CUSTOMER, in_window(User.created_at, month_start))
            ),
        )
        prev_new_customers = await _scalar(
            db,
            select(func.count(User.id)).where(
                and_(User.role == UserRole.CUSTOMER, in_window(User.created_at, prev_start, prev_end))
            ),
        )
    except Exception as e:
        logger.error("Error in get_platform_overview", error=str(e), error_type=type(e).__name__)
        raise

    month = summarize(month_orders)
    previous = summarize(prev_orders)

    return PlatformOverview(
        overview=PlatformTotals(
            total_laundries=total_laundries,
            total_users=total_users,
            total_orders=total_orders,
            platform_revenue=float(platform_revenue),
        ),
        monthly_stats=MonthlyStats(
            monthly_orders=month.total_orders,
            monthly_revenue=month.completed_revenue,
            completed_orders=month.completed_orders,
            new_customers=new_customers,
        ),
        status=PlatformStatus(
            active_laundries=active_laundries,
            suspended_laundries=suspended_laundries,
            pending_orders=pending_orders,
        ),
        growth=PlatformGrowth(
            orders_growth=growth_rate(month.total_orders, previous.total_orders),
            revenue_growth=growth_rate(month.completed_revenue, previous.completed_revenue),
            user_growth=growth_rate(new_customers, prev_new_customers),
        ),
    )


# =============================================================================
# LAUNDRY PERFORMANCE
# =============================================================================

class PerformanceSortField(str, Enum):
    ORDERS_MONTH = "orders_month"
    CUSTOMERS = "customers"
    REVENUE = "revenue"
    RATING = "rating"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class LaundryPerformanceStats(BaseModel):
    orders_month: int
    customers: int
    revenue: float
    rating: float
    total_reviews: int
    total_orders: int
    total_revenue: float


class LaundryPerformance(BaseModel):
    """One laundry with this month's performance"""
    id: str
    name: str
    email: str
    phone: Optional[str]
    logo: Optional[str]
    status: LaundryStatus
    location: str
    performance: LaundryPerformanceStats
    joined_at: datetime


class LaundryPerformanceList(BaseModel):
    laundries: List[LaundryPerformance]
    pagination: Pagination


_PERFORMANCE_SORT_KEYS = {
    PerformanceSortField.ORDERS_MONTH: lambda l: l.performance.orders_month,
    PerformanceSortField.CUSTOMERS: lambda l: l.performance.customers,
    PerformanceSortField.REVENUE: lambda l: l.performance.revenue,
    PerformanceSortField.RATING: lambda l: l.performance.rating,
}


@router.get("/laundries/performance", response_model=LaundryPerformanceList)
async def get_laundries_performance(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: PerformanceSortField = Query(PerformanceSortField.REVENUE),
    sort_order: SortOrder = Query(SortOrder.DESC),
    db: AsyncSession = Depends(get_db_dependency),
    now: datetime = Depends(get_now),
) -> LaundryPerformanceList:
    """Month orders, customers and completed revenue of every laundry, sorted and paginated."""
    logger.info("get_laundries_performance called", page=page, limit=limit, sort_by=sort_by.value)
    month_start = calendar_month_start(now)

    try:
        laundries = (
            await db.execute(
                select(Laundry).options(selectinload(Laundry.addresses)).order_by(Laundry.created_at.desc(), Laundry.id)
            )
        ).scalars().all()
        month_orders = await fetch_orders(db, start=month_start)
    except Exception as e:
        logger.error("Error in get_laundries_performance", error=str(e), error_type=type(e).__name__)
        raise

    orders_by_laundry: Dict[str, List[OrderRecord]] = {}
    for order in month_orders:
        orders_by_laundry.setdefault(order.laundry_id, []).append(order)

    rows = []
    for laundry in laundries:
        month = summarize(orders_by_laundry.get(laundry.id, []))
        address = laundry.addresses[0] if laundry.addresses else None
        rows.append(
            LaundryPerformance(
                id=laundry.id,
                name=laundry.name,
                email=laundry.email,
                phone=laundry.phone,
                logo=laundry.logo,
                status=laundry.status,
                location=f"{address.city}, {address.state}" if address else "Not specified",
                performance=LaundryPerformanceStats(
                    orders_month=month.total_orders,
                    customers=month.unique_customers,
                    revenue=month.completed_revenue,
                    rating=laundry.rating,
                    total_reviews=laundry.total_reviews,
                    total_orders=laundry.total_orders,
                    total_revenue=laundry.total_revenue,
                ),
                joined_at=laundry.created_at,
            )
        )

    rows.sort(key=_PERFORMANCE_SORT_KEYS[sort_by], reverse=sort_order == SortOrder.DESC)
    page_rows, pagination = paginate(rows, page, limit)
    return LaundryPerformanceList(laundries=page_rows, pagination=pagination)


# =============================================================================
# LAUNDRY DETAIL
# =============================================================================

class LaundryAdmin(BaseModel):
    id: str
    name: Optional[str]
    email: str
    phone: Optional[str]
    avatar: Optional[str]

    class Config:
        from_attributes = True


class LaundryAddress(BaseModel):
    id: str
    street: str
    city: str
    state: str
    zip_code: str
    country: str

    class Config:
        from_attributes = True


class LaundryService(BaseModel):
    id: str
    name: str
    price: float
    category: Optional[str]
    unit: Optional[str]

    class Config:
        from_attributes = True


class LaundryDetailPerformance(BaseModel):
    rating: float
    total_reviews: int
    total_orders: int
    total_revenue: float
    monthly_orders: int
    monthly_revenue: float
    unique_customers: int
    average_order_value: float


class LaundryCounts(BaseModel):
    orders: int
    reviews: int
    services: int


class RecentActivity(BaseModel):
    id: str
    type: str
    title: str
    description: str
    amount: float
    status: OrderStatus
    created_at: datetime


class LaundryDetail(BaseModel):
    """Laundry detail response"""
    id: str
    name: str
    email: str
    phone: Optional[str]
    description: Optional[str]
    logo: Optional[str]
    status: LaundryStatus
    operating_hours: Optional[Dict[str, Any]]
    admin: Optional[LaundryAdmin]
    addresses: List[LaundryAddress]
    services: List[LaundryService]
    performance: LaundryDetailPerformance
    counts: LaundryCounts
    recent_activity: List[RecentActivity]
    created_at: datetime
    updated_at: datetime


@router.get("/laundries/{laundry_id}", response_model=LaundryDetail)
async def get_laundry_detail(
    laundry_id: str,
    db: AsyncSession = Depends(get_db_dependency),
    now: datetime = Depends(get_now),
) -> LaundryDetail:
    """Laundry profile with this month's performance and its latest orders."""
    logger.info("get_laundry_detail called", laundry_id=laundry_id)
    result = await db.execute(
        select(Laundry)
        .where(Laundry.id == laundry_id)
        .options(
            selectinload(Laundry.admin),
            selectinload(Laundry.addresses),
            selectinload(Laundry.products),
        )
    )
    laundry = result.scalar_one_or_none()
    if laundry is None:
        raise HTTPException(status_code=404, detail="Laundry not found")

    try:
        month_orders = await fetch_orders(db, laundry_id=laundry_id, start=calendar_month_start(now))
        order_count = await _scalar(db, select(func.count(Order.id)).where(Order.laundry_id == laundry_id))
        review_count = await _scalar(db, select(func.count(Review.id)).where(Review.laundry_id == laundry_id))
        recent = (
            await db.execute(
                select(Order)
                .where(Order.laundry_id == laundry_id)
                .options(selectinload(Order.customer))
                .order_by(Order.created_at.desc(), Order.id)
                .limit(settings.analytics.recent_orders_limit)
            )
        ).scalars().all()
    except Exception as e:
        logger.error("Error in get_laundry_detail", error=str(e), error_type=type(e).__name__)
        raise

    month = summarize(month_orders)
    active_products = [p for p in laundry.products if p.is_active]

    return LaundryDetail(
        id=laundry.id,
        name=laundry.name,
        email=laundry.email,
        phone=laundry.phone,
        description=laundry.description,
        logo=laundry.logo,
        status=laundry.status,
        operating_hours=laundry.operating_hours,
        admin=LaundryAdmin.model_validate(laundry.admin) if laundry.admin else None,
        addresses=[LaundryAddress.model_validate(a) for a in laundry.addresses],
        services=[LaundryService.model_validate(p) for p in active_products],
        performance=LaundryDetailPerformance(
            rating=laundry.rating,
            total_reviews=laundry.total_reviews,
            total_orders=laundry.total_orders,
            total_revenue=laundry.total_revenue,
            monthly_orders=month.total_orders,
            monthly_revenue=month.completed_revenue,
            unique_customers=month.unique_customers,
            average_order_value=safe_ratio(laundry.total_revenue, laundry.total_orders),
        ),
        counts=LaundryCounts(orders=order_count, reviews=review_count, services=len(laundry.products)),
        recent_activity=[
            RecentActivity(
                id=order.id,
                type=ActivityType.ORDER_CREATED.value,
                title=f"New order {order.order_number}",
                description=f"Order from {order.customer.name or order.customer.email}",
                amount=order.final_amount,
                status=order.status,
                created_at=order.created_at,
            )
            for order in recent
        ],
        created_at=laundry.created_at,
        updated_at=laundry.updated_at,
    )


# =============================================================================
# LAUNDRY MANAGEMENT
# =============================================================================

class OperatingHours(BaseModel):
    open: str
    close: str
    closed: bool


class LaundryUpdate(BaseModel):
    """Partial laundry update; omitted fields are left unchanged"""
    name: Optional[str] = Field(None, min_length=1)
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    description: Optional[str] = None
    logo: Optional[str] = None
    operating_hours: Optional[Dict[str, OperatingHours]] = None


class LaundryUpdated(BaseModel):
    id: str
    name: str
    email: str
    phone: Optional[str]
    description: Optional[str]
    logo: Optional[str]
    status: LaundryStatus
    operating_hours: Optional[Dict[str, Any]]
    updated_at: datetime

    class Config:
        from_attributes = True


@router.patch("/laundries/{laundry_id}", response_model=LaundryUpdated)
async def update_laundry(
    laundry_id: str,
    payload: LaundryUpdate,
    db: AsyncSession = Depends(get_db_dependency),
) -> LaundryUpdated:
    """Update a laundry's profile."""
    laundry = await require_laundry(db, laundry_id)
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}

    if changes.get("email") and changes["email"] != laundry.email:
        taken = (await db.execute(select(Laundry.id).where(Laundry.email == changes["email"]))).first()
        if taken is not None:
            raise HTTPException(status_code=409, detail="Email already exists")

    for field, value in changes.items():
        setattr(laundry, field, value)
    laundry.updated_at = utcnow()

    log_activity(
        db,
        ActivityType.LAUNDRY_UPDATED,
        "Laundry information updated",
        description=f"Laundry {laundry.name} information has been updated",
        laundry_id=laundry_id,
        details={"updated_fields": sorted(changes), "updated_by": "super_admin"},
    )
    await db.flush()
    logger.info("Laundry updated", laundry_id=laundry_id, fields=sorted(changes))
    return LaundryUpdated.model_validate(laundry)


class SuspendRequest(BaseModel):
    reason: Optional[str] = None


class LaundrySuspended(BaseModel):
    id: str
    name: str
    status: LaundryStatus
    suspended_at: datetime
    canceled_orders: int


@router.post("/laundries/{laundry_id}/suspend", response_model=LaundrySuspended)
async def suspend_laundry(
    laundry_id: str,
    payload: Optional[SuspendRequest] = Body(None),
    db: AsyncSession = Depends(get_db_dependency),
) -> LaundrySuspended:
    """Suspend a laundry and cancel its orders that have not started processing."""
    laundry = await require_laundry(db, laundry_id)
    if laundry.status == LaundryStatus.SUSPENDED:
        raise HTTPException(status_code=400, detail="Laundry is already suspended")

    previous_status = laundry.status
    suspended_at = utcnow()
    laundry.status = LaundryStatus.SUSPENDED
    laundry.updated_at = suspended_at

    result = await db.execute(
        update(Order)
        .where(and_(Order.laundry_id == laundry_id, Order.status.in_(list(CANCELABLE_STATUSES))))
        .values(status=OrderStatus.CANCELED, updated_at=suspended_at)
        .execution_options(synchronize_session=False)
    )

    log_activity(
        db,
        ActivityType.LAUNDRY_SUSPENDED,
        "Laundry suspended",
        description=f"Laundry {laundry.name} has been suspended",
        laundry_id=laundry_id,
        details={
            "reason": (payload.reason if payload else None) or "No reason provided",
            "suspended_by": "super_admin",
            "previous_status": previous_status.value,
        },
    )
    await db.flush()
    logger.warning("Laundry suspended", laundry_id=laundry_id, canceled_orders=result.rowcount)

    return LaundrySuspended(
        id=laundry.id,
        name=laundry.name,
        status=laundry.status,
        suspended_at=suspended_at,
        canceled_orders=result.rowcount,
    )
