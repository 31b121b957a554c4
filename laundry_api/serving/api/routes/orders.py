"""
Orders API Endpoints

Paginated order management list for a laundry admin.
"""

from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import and_, exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
import structlog

from laundry_api.analytics.records import category_label
from laundry_api.analytics.segmentation import days_since
from laundry_api.database.connection import get_db_dependency
from laundry_api.database.models import (
    CANCELABLE_STATUSES,
    CLOSED_STATUSES,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    User,
)
from laundry_api.serving.api.dependencies import (
    Pagination,
    date_window,
    get_now,
    pagination_info,
    require_laundry,
)

router = APIRouter()
logger = structlog.get_logger(__name__)

logger.info("Orders router initialized")


class OrderSortField(str, Enum):
    CREATED_AT = "created_at"
    FINAL_AMOUNT = "final_amount"
    STATUS = "status"
    ORDER_NUMBER = "order_number"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class OrderCustomer(BaseModel):
    id: str
    name: str
    email: str
    avatar: Optional[str]


class DeliveryAddress(BaseModel):
    street: str
    city: str
    state: str

    class Config:
        from_attributes = True


class OrderDates(BaseModel):
    order_date: datetime
    pickup_date: Optional[datetime]
    delivery_date: Optional[datetime]
    days_since_order: int


class OrderSummary(BaseModel):
    """Order row of the management list"""
    id: str
    order_number: str
    customer: OrderCustomer
    status: OrderStatus
    primary_service: str
    services: List[str]
    total_items: int
    total_amount: float
    delivery_fee: float
    delivery_address: Optional[DeliveryAddress]
    dates: OrderDates
    is_overdue: bool
    priority: str


class OrderListSummary(BaseModel):
    status_counts: Dict[str, int]
    total_orders: int


class OrderFilters(BaseModel):
    status: Optional[OrderStatus]
    service: Optional[str]
    search: Optional[str]
    start_date: Optional[date]
    end_date: Optional[date]


class OrderListResponse(BaseModel):
    """Paginated order list"""
    orders: List[OrderSummary]
    pagination: Pagination
    summary: OrderListSummary
    filters: OrderFilters


_SORT_COLUMNS = {
    OrderSortField.CREATED_AT: Order.created_at,
    OrderSortField.FINAL_AMOUNT: Order.final_amount,
    OrderSortField.STATUS: Order.status,
    OrderSortField.ORDER_NUMBER: Order.order_number,
}


def _format_order(order: Order, now: datetime) -> OrderSummary:
    services: List[str] = []
    for item in order.items:
        label = category_label(item.product.category if item.product else None)
        if label not in services:
            services.append(label)

    is_overdue = (
        order.delivery_date is not None
        and order.delivery_date < now
        and order.status not in CLOSED_STATUSES
    )
    if is_overdue:
        priority = "high"
    elif order.status in CANCELABLE_STATUSES:
        priority = "medium"
    else:
        priority = "normal"

    return OrderSummary(
        id=order.id,
        order_number=order.order_number,
        customer=OrderCustomer(
            id=order.customer.id,
            name=order.customer.name or order.customer.email.split("@")[0],
            email=order.customer.email,
            avatar=order.customer.avatar,
        ),
        status=order.status,
        primary_service=services[0] if services else "General Service",
        services=services,
        total_items=sum(item.quantity for item in order.items),
        total_amount=order.final_amount,
        delivery_fee=order.delivery_fee,
        delivery_address=DeliveryAddress.model_validate(order.address) if order.address else None,
        dates=OrderDates(
            order_date=order.created_at,
            pickup_date=order.pickup_date,
            delivery_date=order.delivery_date,
            days_since_order=days_since(order.created_at, now),
        ),
        is_overdue=is_overdue,
        priority=priority,
    )


@router.get("", response_model=OrderListResponse)
async def list_orders(
    laundry_id: str = Query(..., min_length=1),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[OrderStatus] = None,
    service: Optional[str] = None,
    search: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    sort_by: OrderSortField = Query(OrderSortField.CREATED_AT),
    sort_order: SortOrder = Query(SortOrder.DESC),
    db: AsyncSession = Depends(get_db_dependency),
    now: datetime = Depends(get_now),
) -> OrderListResponse:
    """List a laundry's orders with filtering, search and sorting."""
    logger.info(
        "list_orders called",
        laundry_id=laundry_id,
        page=page,
        limit=limit,
        status=status.value if status else None,
        service=service,
        search=search,
    )
    await require_laundry(db, laundry_id)

    conditions = [Order.laundry_id == laundry_id]
    if status:
        conditions.append(Order.status == status)
    if service:
        conditions.append(
            exists().where(
                and_(
                    OrderItem.order_id == Order.id,
                    Product.id == OrderItem.product_id,
                    func.lower(Product.category).like(f"%{service.lower()}%"),
                )
            )
        )
    if start_date and end_date:
        window_start, window_end = date_window(start_date, end_date)
        conditions.extend([Order.created_at >= window_start, Order.created_at < window_end])
    elif start_date:
        conditions.append(Order.created_at >= datetime.combine(start_date, time.min))
    elif end_date:
        conditions.append(Order.created_at < datetime.combine(end_date + timedelta(days=1), time.min))
    if search:
        pattern = f"%{search.lower()}%"
        conditions.append(
            or_(
                func.lower(Order.order_number).like(pattern),
                exists().where(
                    and_(
                        User.id == Order.customer_id,
                        or_(func.lower(User.name).like(pattern), func.lower(User.email).like(pattern)),
                    )
                ),
            )
        )

    try:
        total = (await db.execute(select(func.count(Order.id)).where(and_(*conditions)))).scalar() or 0

        column = _SORT_COLUMNS[sort_by]
        ordering = column.asc() if sort_order == SortOrder.ASC else column.desc()
        query = (
            select(Order)
            .where(and_(*conditions))
            .options(
                selectinload(Order.items).selectinload(OrderItem.product),
                selectinload(Order.customer),
                selectinload(Order.address),
            )
            .order_by(ordering, Order.id)
            .offset((page - 1) * limit)
            .limit(limit)
        )
        orders = (await db.execute(query)).scalars().all()

        status_rows = (
            await db.execute(
                select(Order.status, func.count(Order.id))
                .where(Order.laundry_id == laundry_id)
                .group_by(Order.status)
            )
        ).all()
    except Exception as e:
        logger.error("Error in list_orders", error=str(e), error_type=type(e).__name__)
        raise

    formatted = [_format_order(order, now) for order in orders]
    logger.info("Orders retrieved successfully", count=len(formatted), total=total)

    return OrderListResponse(
        orders=formatted,
        pagination=pagination_info(total, page, limit, len(formatted)),
        summary=OrderListSummary(
            status_counts={OrderStatus(s).value: count for s, count in status_rows},
            total_orders=total,
        ),
        filters=OrderFilters(
            status=status,
            service=service,
            search=search,
            start_date=start_date,
            end_date=end_date,
        ),
    )
