"""
Database Models - Marketplace Schema

This module defines the relational model of the laundry marketplace:

Accounts:
- User: customers, laundry administrators and super administrators
- Address: delivery/pickup addresses owned by users

Tenants:
- Laundry: a laundry business; every order, product and review is scoped to one
- Product: a service offered by a laundry (wash & fold, dry cleaning, ...)

Transactions:
- Order / OrderItem: customer orders with their line items
- Review: customer ratings of a laundry
- Activity: audit trail of notable events

Column types are kept portable so the same models run on PostgreSQL (asyncpg)
and on SQLite (aiosqlite) in the test suite.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, List
import secrets
import string
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum as SQLEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


def generate_id() -> str:
    return str(uuid.uuid4())


def generate_order_number() -> str:
    """Human-facing order reference, e.g. ``ORD-1718000000000-K3QZ``."""
    millis = int(datetime.now(timezone.utc).timestamp() * 1000)
    suffix = "".join(secrets.choice(string.ascii_uppercase + string.digits) for _ in range(4))
    return f"ORD-{millis}-{suffix}"


def utcnow() -> datetime:
    """Naive UTC timestamp, the convention used by every DateTime column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# =============================================================================
# ENUMERATIONS
# =============================================================================

class OrderStatus(str, Enum):
    """Order status enumeration"""
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    READY_FOR_PICKUP = "READY_FOR_PICKUP"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    COMPLETED = "COMPLETED"
    CANCELED = "CANCELED"
    REFUNDED = "REFUNDED"


# Orders whose revenue counts as earned
COMPLETED_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.DELIVERED})

# Orders still moving through the laundry
ACTIVE_STATUSES = frozenset({
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.IN_PROGRESS,
    OrderStatus.READY_FOR_PICKUP,
    OrderStatus.OUT_FOR_DELIVERY,
})

# Statuses shown as "pending" on the platform dashboard
BACKLOG_STATUSES = frozenset({
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.IN_PROGRESS,
})

# Orders canceled when their laundry gets suspended
CANCELABLE_STATUSES = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})

# Orders that can no longer be overdue
CLOSED_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.COMPLETED, OrderStatus.CANCELED})


class UserRole(str, Enum):
    """User role enumeration"""
    CUSTOMER = "CUSTOMER"
    LAUNDRY_ADMIN = "LAUNDRY_ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class LaundryStatus(str, Enum):
    """Laundry status enumeration"""
    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"


class ActivityType(str, Enum):
    """Audit trail event types"""
    ORDER_CREATED = "ORDER_CREATED"
    CUSTOMER_ADDED = "CUSTOMER_ADDED"
    LAUNDRY_UPDATED = "LAUNDRY_UPDATED"
    LAUNDRY_SUSPENDED = "LAUNDRY_SUSPENDED"


# =============================================================================
# ACCOUNTS
# =============================================================================

class User(Base):
    """
    User Table

    Customers place orders; laundry admins manage one laundry; super admins
    manage the platform.
    """
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    name: Mapped[Optional[str]] = mapped_column(String(200))
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    avatar: Mapped[Optional[str]] = mapped_column(String(500))
    role: Mapped[UserRole] = mapped_column(SQLEnum(UserRole), default=UserRole.CUSTOMER, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    orders: Mapped[List["Order"]] = relationship(back_populates="customer")
    addresses: Mapped[List["Address"]] = relationship(
        back_populates="user", foreign_keys="Address.user_id"
    )
    reviews: Mapped[List["Review"]] = relationship(back_populates="user")

    __table_args__ = (
        Index("ix_users_role", "role"),
        Index("ix_users_created_at", "created_at"),
    )


class Address(Base):
    """User address used for pickup and delivery"""
    __tablename__ = "addresses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    user_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.id"))
    laundry_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("laundries.id"))

    street: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str] = mapped_column(String(100), nullable=False)
    zip_code: Mapped[str] = mapped_column(String(20), nullable=False)
    country: Mapped[str] = mapped_column(String(100), default="Morocco", nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    latitude: Mapped[Optional[float]] = mapped_column(Float)
    longitude: Mapped[Optional[float]] = mapped_column(Float)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    user: Mapped[Optional["User"]] = relationship(back_populates="addresses", foreign_keys=[user_id])
    laundry: Mapped[Optional["Laundry"]] = relationship(back_populates="addresses", foreign_keys=[laundry_id])

    __table_args__ = (
        Index("ix_addresses_user", "user_id"),
        Index("ix_addresses_laundry", "laundry_id"),
    )


# =============================================================================
# TENANTS
# =============================================================================

class Laundry(Base):
    """
    Laundry Table

    The tenant of the marketplace. Running totals (orders, revenue, reviews)
    are maintained alongside the orders for cheap listing queries.
    """
    __tablename__ = "laundries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    description: Mapped[Optional[str]] = mapped_column(Text)
    logo: Mapped[Optional[str]] = mapped_column(String(500))
    status: Mapped[LaundryStatus] = mapped_column(
        SQLEnum(LaundryStatus), default=LaundryStatus.ACTIVE, nullable=False
    )
    operating_hours: Mapped[Optional[dict]] = mapped_column(JSON)

    rating: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    total_reviews: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_orders: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_revenue: Mapped[float] = mapped_column(Float, default=0, nullable=False)

    admin_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.id"))

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    admin: Mapped[Optional["User"]] = relationship(foreign_keys=[admin_id])
    addresses: Mapped[List["Address"]] = relationship(
        back_populates="laundry", foreign_keys="Address.laundry_id"
    )
    products: Mapped[List["Product"]] = relationship(back_populates="laundry")
    orders: Mapped[List["Order"]] = relationship(back_populates="laundry")

    __table_args__ = (
        Index("ix_laundries_status", "status"),
    )


class Product(Base):
    """A service offered by a laundry, priced per unit"""
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    laundry_id: Mapped[str] = mapped_column(String(36), ForeignKey("laundries.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    category: Mapped[Optional[str]] = mapped_column(String(100))
    unit: Mapped[Optional[str]] = mapped_column(String(50))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    laundry: Mapped["Laundry"] = relationship(back_populates="products")
    order_items: Mapped[List["OrderItem"]] = relationship(back_populates="product")

    __table_args__ = (
        Index("ix_products_laundry", "laundry_id"),
        Index("ix_products_category", "category"),
    )


# =============================================================================
# TRANSACTIONS
# =============================================================================

class Order(Base):
    """
    Order Table

    Grain is one customer order at one laundry. ``final_amount`` is the
    amount charged: item subtotal plus delivery fee minus discount.
    """
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    order_number: Mapped[str] = mapped_column(String(50), unique=True, nullable=False)

    customer_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    laundry_id: Mapped[str] = mapped_column(String(36), ForeignKey("laundries.id"), nullable=False)
    address_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("addresses.id"))

    status: Mapped[OrderStatus] = mapped_column(
        SQLEnum(OrderStatus), default=OrderStatus.PENDING, nullable=False
    )

    total_amount: Mapped[float] = mapped_column(Float, nullable=False)
    delivery_fee: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    discount: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    final_amount: Mapped[float] = mapped_column(Float, nullable=False)

    pickup_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    delivery_date: Mapped[Optional[datetime]] = mapped_column(DateTime)
    notes: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    # Relationships
    customer: Mapped["User"] = relationship(back_populates="orders")
    laundry: Mapped["Laundry"] = relationship(back_populates="orders")
    address: Mapped[Optional["Address"]] = relationship()
    items: Mapped[List["OrderItem"]] = relationship(back_populates="order")

    __table_args__ = (
        Index("ix_orders_laundry_created", "laundry_id", "created_at"),
        Index("ix_orders_customer", "customer_id"),
        Index("ix_orders_status", "status"),
    )


class OrderItem(Base):
    """Order line item; grain is one product within one order"""
    __tablename__ = "order_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("orders.id"), nullable=False)
    product_id: Mapped[str] = mapped_column(String(36), ForeignKey("products.id"), nullable=False)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    price: Mapped[float] = mapped_column(Float, nullable=False)
    total_price: Mapped[float] = mapped_column(Float, nullable=False)

    order: Mapped["Order"] = relationship(back_populates="items")
    product: Mapped["Product"] = relationship(back_populates="order_items")

    __table_args__ = (
        Index("ix_order_items_order", "order_id"),
        Index("ix_order_items_product", "product_id"),
    )


class Review(Base):
    """Customer review of a laundry"""
    __tablename__ = "reviews"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    laundry_id: Mapped[str] = mapped_column(String(36), ForeignKey("laundries.id"), nullable=False)
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[Optional[str]] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    user: Mapped["User"] = relationship(back_populates="reviews")

    __table_args__ = (
        Index("ix_reviews_laundry", "laundry_id"),
    )


class Activity(Base):
    """Audit trail entry"""
    __tablename__ = "activities"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=generate_id)
    type: Mapped[ActivityType] = mapped_column(SQLEnum(ActivityType), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    laundry_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("laundries.id"))
    user_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("users.id"))
    order_id: Mapped[Optional[str]] = mapped_column(String(36), ForeignKey("orders.id"))

    # "metadata" is reserved on declarative classes
    details: Mapped[Optional[dict]] = mapped_column(JSON)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_activities_laundry", "laundry_id"),
        Index("ix_activities_type", "type"),
    )
