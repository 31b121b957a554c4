"""
User API Endpoints

Customer-facing operations: placing orders, tracking active orders, profile
and address book.
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy import and_, exists, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
import structlog

from laundry_api.analytics.records import naive_utc
from laundry_api.analytics.segmentation import CustomerSegment, CustomerTotals, SegmentScope, loyalty_points
from laundry_api.config import get_settings
from laundry_api.database.connection import get_db_dependency
from laundry_api.database.models import (
    ACTIVE_STATUSES,
    COMPLETED_STATUSES,
    ActivityType,
    Address,
    Laundry,
    LaundryStatus,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    Review,
    generate_order_number,
    utcnow,
)
from laundry_api.database.repositories import fetch_customer_totals, log_activity
from laundry_api.serving.api.dependencies import require_customer

router = APIRouter()
logger = structlog.get_logger(__name__)
settings = get_settings()

logger.info("User router initialized")


class AddressOut(BaseModel):
    id: str
    street: str
    city: str
    state: str
    zip_code: str
    country: str
    is_default: bool
    latitude: Optional[float]
    longitude: Optional[float]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class OrderLaundry(BaseModel):
    name: str
    logo: Optional[str]
    phone: Optional[str]

    class Config:
        from_attributes = True


# =============================================================================
# ORDERS
# =============================================================================

class OrderItemIn(BaseModel):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)


class OrderCreate(BaseModel):
    """Order placement request"""
    user_id: str = Field(..., min_length=1)
    laundry_id: str = Field(..., min_length=1)
    address_id: str = Field(..., min_length=1)
    items: List[OrderItemIn] = Field(..., min_length=1)
    pickup_date: Optional[datetime] = None
    delivery_date: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator("pickup_date", "delivery_date")
    @classmethod
    def to_naive_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        # columns hold naive UTC
        return naive_utc(v) if v is not None else None


class OrderItemOut(BaseModel):
    id: str
    product_id: str
    product_name: str
    category: Optional[str]
    unit: Optional[str]
    quantity: int
    price: float
    total_price: float


class OrderCreated(BaseModel):
    """Placed order with its line items"""
    id: str
    order_number: str
    status: OrderStatus
    total_amount: float
    delivery_fee: float
    discount: float
    final_amount: float
    pickup_date: Optional[datetime]
    delivery_date: Optional[datetime]
    notes: Optional[str]
    items: List[OrderItemOut]
    laundry: OrderLaundry
    address: AddressOut
    created_at: datetime


@router.post("/orders", response_model=OrderCreated, status_code=201)
async def create_order(
    payload: OrderCreate,
    db: AsyncSession = Depends(get_db_dependency),
) -> OrderCreated:
    """
    Place an order.

    Line prices are taken from the laundry's catalogue. The final amount is
    the item subtotal plus the flat delivery fee minus the discount. The
    order, its items and the activity entry are committed together.
    """
    logger.info("create_order called", user_id=payload.user_id, laundry_id=payload.laundry_id)
    await require_customer(db, payload.user_id)

    laundry = (
        await db.execute(
            select(Laundry).where(and_(Laundry.id == payload.laundry_id, Laundry.status == LaundryStatus.ACTIVE))
        )
    ).scalar_one_or_none()
    if laundry is None:
        raise HTTPException(status_code=404, detail="Laundry not found or inactive")

    address = (
        await db.execute(
            select(Address).where(and_(Address.id == payload.address_id, Address.user_id == payload.user_id))
        )
    ).scalar_one_or_none()
    if address is None:
        raise HTTPException(status_code=404, detail="Address not found or does not belong to customer")

    product_ids = {item.product_id for item in payload.items}
    products = {
        p.id: p
        for p in (
            await db.execute(
                select(Product).where(and_(Product.id.in_(product_ids), Product.laundry_id == payload.laundry_id))
            )
        ).scalars().all()
    }
    if set(products) != product_ids:
        raise HTTPException(status_code=400, detail="Some products not found or not from the selected laundry")

    items = [
        OrderItem(
            product_id=line.product_id,
            quantity=line.quantity,
            price=products[line.product_id].price,
            total_price=products[line.product_id].price * line.quantity,
        )
        for line in payload.items
    ]
    total_amount = sum(item.total_price for item in items)
    delivery_fee = settings.analytics.delivery_fee
    discount = 0.0

    order = Order(
        order_number=generate_order_number(),
        customer_id=payload.user_id,
        laundry_id=payload.laundry_id,
        address_id=payload.address_id,
        status=OrderStatus.PENDING,
        total_amount=total_amount,
        delivery_fee=delivery_fee,
        discount=discount,
        final_amount=total_amount + delivery_fee - discount,
        pickup_date=payload.pickup_date,
        delivery_date=payload.delivery_date,
        notes=payload.notes,
        items=items,
    )
    db.add(order)
    await db.flush()

    log_activity(
        db,
        ActivityType.ORDER_CREATED,
        "Order Created",
        description=f"New order {order.order_number} created by customer",
        laundry_id=payload.laundry_id,
        user_id=payload.user_id,
        order_id=order.id,
    )
    await db.flush()
    logger.info("Order created", order_id=order.id, order_number=order.order_number, amount=order.final_amount)

    return OrderCreated(
        id=order.id,
        order_number=order.order_number,
        status=order.status,
        total_amount=order.total_amount,
        delivery_fee=order.delivery_fee,
        discount=order.discount,
        final_amount=order.final_amount,
        pickup_date=order.pickup_date,
        delivery_date=order.delivery_date,
        notes=order.notes,
        items=[
            OrderItemOut(
                id=item.id,
                product_id=item.product_id,
                product_name=products[item.product_id].name,
                category=products[item.product_id].category,
                unit=products[item.product_id].unit,
                quantity=item.quantity,
                price=item.price,
                total_price=item.total_price,
            )
            for item in items
        ],
        laundry=OrderLaundry.model_validate(laundry),
        address=AddressOut.model_validate(address),
        created_at=order.created_at,
    )


class ActiveOrder(BaseModel):
    id: str
    order_number: str
    status: OrderStatus
    placed_date: datetime
    item_count: int
    total_cost: float
    estimated_delivery: Optional[datetime]
    laundry: OrderLaundry
    delivery_address: Optional[str]


@router.get("/orders/active", response_model=List[ActiveOrder])
async def get_active_orders(
    user_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db_dependency),
) -> List[ActiveOrder]:
    """Orders of a customer that are still in progress, newest first."""
    result = await db.execute(
        select(Order)
        .where(and_(Order.customer_id == user_id, Order.status.in_(list(ACTIVE_STATUSES))))
        .options(selectinload(Order.items), selectinload(Order.laundry), selectinload(Order.address))
        .order_by(Order.created_at.desc(), Order.id)
    )
    orders = result.scalars().all()
    logger.info("Active orders retrieved", user_id=user_id, count=len(orders))

    return [
        ActiveOrder(
            id=order.id,
            order_number=order.order_number,
            status=order.status,
            placed_date=order.created_at,
            item_count=len(order.items),
            total_cost=order.final_amount,
            estimated_delivery=order.delivery_date,
            laundry=OrderLaundry.model_validate(order.laundry),
            delivery_address=(
                f"{order.address.street}, {order.address.city}, {order.address.state}" if order.address else None
            ),
        )
        for order in orders
    ]


# =============================================================================
# PROFILE
# =============================================================================

class ProfileStats(BaseModel):
    total_orders: int
    completed_orders: int
    total_spent: float
    total_reviews: int
    loyalty_points: int


class LaundrySegment(BaseModel):
    """Segment of the customer at one laundry, from that laundry's orders only"""
    laundry_id: str
    laundry_name: str
    total_orders: int
    total_spent: float
    segment: CustomerSegment


class ProfileOrder(BaseModel):
    id: str
    order_number: str
    status: OrderStatus
    final_amount: float
    created_at: datetime
    laundry_name: str


class Profile(BaseModel):
    """Customer profile with lifetime statistics"""
    id: str
    name: Optional[str]
    email: str
    phone: Optional[str]
    avatar: Optional[str]
    member_since: datetime
    addresses: List[AddressOut]
    stats: ProfileStats
    segments: List[LaundrySegment]
    recent_orders: List[ProfileOrder]


class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1)
    phone: Optional[str] = None
    avatar: Optional[str] = None


class ProfileUpdated(BaseModel):
    id: str
    name: Optional[str]
    email: str
    phone: Optional[str]
    avatar: Optional[str]
    updated_at: datetime

    class Config:
        from_attributes = True


async def _addresses_of(db: AsyncSession, user_id: str) -> List[Address]:
    result = await db.execute(
        select(Address)
        .where(Address.user_id == user_id)
        .order_by(Address.is_default.desc(), Address.created_at.desc(), Address.id)
    )
    return list(result.scalars().all())


async def _segments_of(db: AsyncSession, user_id: str) -> List[LaundrySegment]:
    """Lifetime segment per laundry the customer ordered from, by laundry name."""
    laundries = (
        await db.execute(
            select(Laundry.id, Laundry.name)
            .where(exists().where(and_(Order.laundry_id == Laundry.id, Order.customer_id == user_id)))
            .order_by(Laundry.name, Laundry.id)
        )
    ).all()

    segments = []
    for laundry_id, laundry_name in laundries:
        [totals] = await fetch_customer_totals(db, laundry_id=laundry_id, customer_id=user_id)
        segments.append(
            LaundrySegment(
                laundry_id=laundry_id,
                laundry_name=laundry_name,
                total_orders=totals.order_count,
                total_spent=totals.total_spent,
                segment=totals.segment,
            )
        )
    return segments


@router.get("/profile", response_model=Profile)
async def get_profile(
    user_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db_dependency),
) -> Profile:
    """
    Profile, addresses, order statistics and the five latest orders.

    Counts, spend and loyalty points cover every laundry. Segments are per
    laundry, so orders at one laundry never move the segment at another.
    """
    user = await require_customer(db, user_id)

    try:
        addresses = await _addresses_of(db, user_id)
        lifetime = await fetch_customer_totals(db, customer_id=user_id)
        completed = await fetch_customer_totals(db, customer_id=user_id, statuses=COMPLETED_STATUSES)
        segments = await _segments_of(db, user_id)
        total_reviews = (
            await db.execute(select(func.count(Review.id)).where(Review.user_id == user_id))
        ).scalar() or 0
        recent = (
            await db.execute(
                select(Order)
                .where(Order.customer_id == user_id)
                .options(selectinload(Order.laundry))
                .order_by(Order.created_at.desc(), Order.id)
                .limit(settings.analytics.recent_orders_limit)
            )
        ).scalars().all()
    except Exception as e:
        logger.error("Error in get_profile", error=str(e), error_type=type(e).__name__)
        raise

    # a customer without orders has no grouped row
    lifetime = lifetime[0] if lifetime else CustomerTotals(user_id, 0, 0.0, SegmentScope.LIFETIME)
    completed = completed[0] if completed else CustomerTotals(user_id, 0, 0.0, SegmentScope.LIFETIME)

    return Profile(
        id=user.id,
        name=user.name,
        email=user.email,
        phone=user.phone,
        avatar=user.avatar,
        member_since=user.created_at,
        addresses=[AddressOut.model_validate(a) for a in addresses],
        stats=ProfileStats(
            total_orders=lifetime.order_count,
            completed_orders=completed.order_count,
            total_spent=completed.total_spent,
            total_reviews=total_reviews,
            loyalty_points=loyalty_points(completed.total_spent),
        ),
        segments=segments,
        recent_orders=[
            ProfileOrder(
                id=order.id,
                order_number=order.order_number,
                status=order.status,
                final_amount=order.final_amount,
                created_at=order.created_at,
                laundry_name=order.laundry.name,
            )
            for order in recent
        ],
    )


@router.put("/profile", response_model=ProfileUpdated)
async def update_profile(
    payload: ProfileUpdate,
    user_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db_dependency),
) -> ProfileUpdated:
    """Update the fields present in the request body."""
    user = await require_customer(db, user_id)
    changes = {k: v for k, v in payload.model_dump(exclude_unset=True).items() if v is not None}
    for field, value in changes.items():
        setattr(user, field, value)
    user.updated_at = utcnow()
    await db.flush()
    logger.info("Profile updated", user_id=user_id, fields=sorted(changes))
    return ProfileUpdated.model_validate(user)


# =============================================================================
# ADDRESSES
# =============================================================================

class AddressCreate(BaseModel):
    street: str = Field(..., min_length=1)
    city: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)
    zip_code: str = Field(..., min_length=1)
    country: str = "Morocco"
    is_default: bool = False
    latitude: Optional[float] = None
    longitude: Optional[float] = None


@router.get("/addresses", response_model=List[AddressOut])
async def list_addresses(
    user_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db_dependency),
) -> List[AddressOut]:
    """Addresses of a user, default address first, then newest first."""
    return [AddressOut.model_validate(a) for a in await _addresses_of(db, user_id)]


@router.post("/addresses", response_model=AddressOut, status_code=201)
async def create_address(
    payload: AddressCreate,
    user_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db_dependency),
) -> AddressOut:
    """Add an address; a new default address clears the previous default."""
    await require_customer(db, user_id)

    if payload.is_default:
        await db.execute(
            update(Address)
            .where(and_(Address.user_id == user_id, Address.is_default.is_(True)))
            .values(is_default=False)
            .execution_options(synchronize_session=False)
        )

    address = Address(user_id=user_id, **payload.model_dump())
    db.add(address)
    await db.flush()
    logger.info("Address created", user_id=user_id, address_id=address.id, is_default=address.is_default)
    return AddressOut.model_validate(address)
