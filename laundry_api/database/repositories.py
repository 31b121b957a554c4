"""
Order Repositories

Queries that feed the analytics pipeline. Orders are loaded with their line
items, products and customer eagerly (async sessions cannot lazy-load) and
converted to immutable :class:`OrderRecord` snapshots before aggregation.
"""

from datetime import datetime
from typing import Iterable, List, Optional

import structlog
from sqlalchemy import and_, exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from laundry_api.analytics.records import CustomerRef, LineItemRecord, OrderRecord
from laundry_api.analytics.segmentation import CustomerTotals, SegmentScope
from laundry_api.database.models import (
    Activity,
    ActivityType,
    Laundry,
    Order,
    OrderItem,
    OrderStatus,
    User,
    UserRole,
)

logger = structlog.get_logger(__name__)


def customer_to_ref(user: User) -> CustomerRef:
    return CustomerRef(id=user.id, email=user.email, name=user.name, created_at=user.created_at)


def order_to_record(order: Order) -> OrderRecord:
    """Snapshot an ORM order (items, products and customer must be loaded)."""
    items = tuple(
        LineItemRecord(
            quantity=item.quantity,
            line_total=item.total_price,
            category=item.product.category if item.product else None,
            product_id=item.product_id,
            product_name=item.product.name if item.product else None,
        )
        for item in order.items
    )
    return OrderRecord(
        id=order.id,
        customer_id=order.customer_id,
        status=OrderStatus(order.status),
        final_amount=float(order.final_amount or 0),
        created_at=order.created_at,
        laundry_id=order.laundry_id,
        items=items,
        customer=customer_to_ref(order.customer) if order.customer else None,
        pickup_date=order.pickup_date,
        delivery_date=order.delivery_date,
    )


def _order_conditions(
    laundry_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    statuses: Optional[Iterable[OrderStatus]] = None,
    customer_id: Optional[str] = None,
) -> list:
    conditions = []
    if laundry_id is not None:
        conditions.append(Order.laundry_id == laundry_id)
    if start is not None:
        conditions.append(Order.created_at >= start)
    if end is not None:
        conditions.append(Order.created_at < end)
    if statuses is not None:
        conditions.append(Order.status.in_(list(statuses)))
    if customer_id is not None:
        conditions.append(Order.customer_id == customer_id)
    return conditions


async def fetch_orders(
    db: AsyncSession,
    laundry_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    statuses: Optional[Iterable[OrderStatus]] = None,
    customer_id: Optional[str] = None,
) -> List[OrderRecord]:
    """
    Orders of a laundry created in ``[start, end)``, oldest first.

    Every filter is optional; ``laundry_id=None`` spans the whole platform.
    """
    query = (
        select(Order)
        .options(
            selectinload(Order.items).selectinload(OrderItem.product),
            selectinload(Order.customer),
        )
        .order_by(Order.created_at, Order.id)
    )
    conditions = _order_conditions(laundry_id, start, end, statuses, customer_id)
    if conditions:
        query = query.where(and_(*conditions))

    result = await db.execute(query)
    records = [order_to_record(order) for order in result.scalars().all()]
    logger.debug(
        "Orders fetched",
        laundry_id=laundry_id,
        start=str(start) if start else None,
        end=str(end) if end else None,
        count=len(records),
    )
    return records


async def fetch_customer_totals(
    db: AsyncSession,
    laundry_id: Optional[str] = None,
    customer_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    statuses: Optional[Iterable[OrderStatus]] = None,
) -> List[CustomerTotals]:
    """
    Per-customer order count and spend, grouped by the database instead of
    loading every order.

    Without a window the totals are LIFETIME-scoped, with one they are
    WINDOW-scoped. Customers without matching orders are absent.
    """
    scope = SegmentScope.LIFETIME if start is None and end is None else SegmentScope.WINDOW
    query = (
        select(
            Order.customer_id,
            func.count(Order.id).label("order_count"),
            func.coalesce(func.sum(Order.final_amount), 0).label("total_spent"),
        )
        .group_by(Order.customer_id)
        .order_by(Order.customer_id)
    )
    conditions = _order_conditions(laundry_id, start, end, statuses, customer_id)
    if conditions:
        query = query.where(and_(*conditions))

    result = await db.execute(query)
    return [
        CustomerTotals(
            customer_id=row.customer_id,
            order_count=row.order_count,
            total_spent=float(row.total_spent),
            scope=scope,
        )
        for row in result.all()
    ]


async def get_laundry(db: AsyncSession, laundry_id: str) -> Optional[Laundry]:
    result = await db.execute(select(Laundry).where(Laundry.id == laundry_id))
    return result.scalar_one_or_none()


async def get_user(db: AsyncSession, user_id: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.id == user_id))
    return result.scalar_one_or_none()


async def get_user_by_email(db: AsyncSession, email: str) -> Optional[User]:
    result = await db.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def count_new_customers(
    db: AsyncSession,
    laundry_id: str,
    start: datetime,
    end: datetime,
) -> int:
    """Customer accounts created in ``[start, end)`` with at least one order at the laundry."""
    has_order = exists().where(and_(Order.customer_id == User.id, Order.laundry_id == laundry_id))
    result = await db.execute(
        select(func.count(User.id)).where(
            and_(
                User.role == UserRole.CUSTOMER,
                User.created_at >= start,
                User.created_at < end,
                has_order,
            )
        )
    )
    return result.scalar() or 0


def log_activity(
    db: AsyncSession,
    activity_type: ActivityType,
    title: str,
    description: Optional[str] = None,
    laundry_id: Optional[str] = None,
    user_id: Optional[str] = None,
    order_id: Optional[str] = None,
    details: Optional[dict] = None,
) -> Activity:
    """Add an audit trail entry to the session; committed with the request."""
    activity = Activity(
        type=activity_type,
        title=title,
        description=description,
        laundry_id=laundry_id,
        user_id=user_id,
        order_id=order_id,
        details=details,
    )
    db.add(activity)
    logger.info("Activity recorded", type=activity_type.value, laundry_id=laundry_id, user_id=user_id)
    return activity
