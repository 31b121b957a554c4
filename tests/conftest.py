"""
Test Suite Configuration

Every test gets its own SQLite database file. Routes that fetch in parallel
open several sessions at once, which an in-memory database shared through a
single connection cannot serve.
"""
from datetime import datetime
from typing import AsyncGenerator, Dict

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from laundry_api.analytics.records import CustomerRef, LineItemRecord, OrderRecord
from laundry_api.config import Settings
from laundry_api.database.connection import get_db_dependency, get_session_factory
from laundry_api.database.models import (
    Address,
    Base,
    Laundry,
    LaundryStatus,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    Review,
    User,
    UserRole,
)
from laundry_api.serving.api import create_api_app
from laundry_api.serving.api.dependencies import get_now

# Reference "now" of every request made through the test client
NOW = datetime(2025, 6, 15, 12, 0, 0)


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
    )


@pytest.fixture
async def test_engine(tmp_path):
    """Create test database engine"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def test_db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app, wired to the test database and NOW"""
    app = create_api_app()

    async def override_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_dependency] = override_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_now] = lambda: NOW

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


def _order(
    order_id: str,
    customer_id: str,
    laundry_id: str,
    created_at: datetime,
    status: OrderStatus,
    lines,
    address_id: str = None,
    delivery_date: datetime = None,
) -> Order:
    items = [
        OrderItem(product_id=product.id, quantity=qty, price=product.price, total_price=product.price * qty)
        for product, qty in lines
    ]
    subtotal = sum(item.total_price for item in items)
    return Order(
        id=order_id,
        order_number=f"ORD-{order_id.upper()}",
        customer_id=customer_id,
        laundry_id=laundry_id,
        address_id=address_id,
        status=status,
        total_amount=subtotal,
        delivery_fee=15.0,
        discount=0.0,
        final_amount=subtotal + 15.0,
        delivery_date=delivery_date,
        items=items,
        created_at=created_at,
        updated_at=created_at,
    )


@pytest.fixture
async def marketplace(session_factory) -> Dict[str, str]:
    """
    Two laundries and three customers.

    Laundry ``laundry-1`` (all amounts include the 15.00 delivery fee):

    ============  ========  ===================  ==========  =====
    order         customer  created_at           status      final
    ============  ========  ===================  ==========  =====
    order-1       alice     2025-06-13 10:00     COMPLETED   35.0
    order-2       alice     2025-06-10 10:30     DELIVERED   38.0
    order-3       bob       2025-06-14 14:00     PENDING     25.0
    order-4       alice     2025-05-06 09:00     COMPLETED   65.0
    order-5       bob       2025-06-12 14:15     CANCELED    25.0
    ============  ========  ===================  ==========  =====

    Laundry ``laundry-2`` has one COMPLETED order of 100.0 by alice on
    2025-06-14. Carol never ordered.
    """
    async with session_factory() as db:
        admin = User(id="admin-1", name="Laundry Admin", email="admin@fresh.ma", role=UserRole.LAUNDRY_ADMIN,
                     created_at=datetime(2024, 1, 1))
        alice = User(id="cust-alice", name="Alice Martin", email="alice@example.com", phone="0600000001",
                     role=UserRole.CUSTOMER, created_at=datetime(2024, 11, 27))
        bob = User(id="cust-bob", name="Bob Stone", email="bob@example.com",
                   role=UserRole.CUSTOMER, created_at=datetime(2025, 6, 5))
        carol = User(id="cust-carol", name="Carol White", email="carol@example.com",
                     role=UserRole.CUSTOMER, created_at=datetime(2024, 5, 11))

        fresh = Laundry(id="laundry-1", name="Fresh Laundry", email="contact@fresh.ma", phone="0522000000",
                        status=LaundryStatus.ACTIVE, admin_id="admin-1", total_orders=5, total_revenue=138.0,
                        rating=4.5, total_reviews=2, created_at=datetime(2024, 1, 1))
        clean = Laundry(id="laundry-2", name="Clean Corner", email="hello@clean.ma",
                        status=LaundryStatus.ACTIVE, total_orders=1, total_revenue=100.0,
                        created_at=datetime(2024, 3, 1))

        wash = Product(id="prod-wash", laundry_id="laundry-1", name="Wash & Fold", category="Washing",
                       unit="kg", price=10.0, created_at=datetime(2024, 1, 1))
        iron = Product(id="prod-iron", laundry_id="laundry-1", name="Shirt Ironing", category="Ironing",
                       unit="piece", price=5.0, created_at=datetime(2024, 1, 2))
        stain = Product(id="prod-stain", laundry_id="laundry-1", name="Stain Removal", category=None,
                        unit="piece", price=8.0, created_at=datetime(2024, 1, 3))
        duvet = Product(id="prod-duvet", laundry_id="laundry-2", name="Duvet Cleaning", category="Bedding",
                        unit="piece", price=85.0, created_at=datetime(2024, 3, 1))

        addresses = [
            Address(id="addr-fresh", laundry_id="laundry-1", street="1 Rue de Fes", city="Casablanca",
                    state="Casablanca-Settat", zip_code="20000"),
            Address(id="addr-alice", user_id="cust-alice", street="12 Avenue Hassan II", city="Rabat",
                    state="Rabat-Sale-Kenitra", zip_code="10000", is_default=True,
                    created_at=datetime(2024, 11, 27)),
            Address(id="addr-bob", user_id="cust-bob", street="4 Rue Atlas", city="Marrakech",
                    state="Marrakech-Safi", zip_code="40000", is_default=True, created_at=datetime(2025, 6, 5)),
        ]

        db.add_all([admin, alice, bob, carol, fresh, clean, wash, iron, stain, duvet, *addresses])
        await db.flush()

        db.add_all([
            _order("order-1", "cust-alice", "laundry-1", datetime(2025, 6, 13, 10, 0), OrderStatus.COMPLETED,
                   [(wash, 2)], address_id="addr-alice"),
            _order("order-2", "cust-alice", "laundry-1", datetime(2025, 6, 10, 10, 30), OrderStatus.DELIVERED,
                   [(iron, 3), (stain, 1)], address_id="addr-alice"),
            _order("order-3", "cust-bob", "laundry-1", datetime(2025, 6, 14, 14, 0), OrderStatus.PENDING,
                   [(wash, 1)], address_id="addr-bob", delivery_date=datetime(2025, 6, 15, 10, 0)),
            _order("order-4", "cust-alice", "laundry-1", datetime(2025, 5, 6, 9, 0), OrderStatus.COMPLETED,
                   [(wash, 5)], address_id="addr-alice"),
            _order("order-5", "cust-bob", "laundry-1", datetime(2025, 6, 12, 14, 15), OrderStatus.CANCELED,
                   [(iron, 2)]),
            _order("order-6", "cust-alice", "laundry-2", datetime(2025, 6, 14, 9, 0), OrderStatus.COMPLETED,
                   [(duvet, 1)], address_id="addr-alice"),
            Review(user_id="cust-alice", laundry_id="laundry-1", rating=4, created_at=datetime(2025, 6, 13)),
            Review(user_id="cust-alice", laundry_id="laundry-1", rating=5, created_at=datetime(2025, 6, 14)),
        ])
        await db.commit()

    return {"laundry": "laundry-1", "other_laundry": "laundry-2", "alice": "cust-alice", "bob": "cust-bob"}


# =============================================================================
# IN-MEMORY RECORDS
# =============================================================================

def make_order(
    order_id: str,
    customer_id: str,
    created_at: datetime,
    amount: float,
    status: OrderStatus = OrderStatus.COMPLETED,
    items=(),
) -> OrderRecord:
    return OrderRecord(
        id=order_id,
        customer_id=customer_id,
        status=status,
        final_amount=amount,
        created_at=created_at,
        laundry_id="laundry-1",
        items=tuple(items),
        customer=CustomerRef(id=customer_id, email=f"{customer_id}@example.com"),
    )


@pytest.fixture
def sample_orders():
    """Orders of three customers in June 2025 with mixed categories and statuses"""
    return [
        make_order("o1", "c1", datetime(2025, 6, 1, 9, 15), 100.0, items=[
            LineItemRecord(quantity=2, line_total=60.0, category="Washing", product_id="p-wash", product_name="Wash"),
            LineItemRecord(quantity=1, line_total=25.0, category="Ironing", product_id="p-iron", product_name="Iron"),
        ]),
        make_order("o2", "c1", datetime(2025, 6, 3, 9, 45), 50.0, OrderStatus.DELIVERED, items=[
            LineItemRecord(quantity=1, line_total=35.0, category="Washing", product_id="p-wash", product_name="Wash"),
        ]),
        make_order("o3", "c2", datetime(2025, 6, 3, 18, 0), 40.0, OrderStatus.PENDING, items=[
            LineItemRecord(quantity=1, line_total=25.0, category=None, product_id="p-stain", product_name="Stain"),
        ]),
        make_order("o4", "c3", datetime(2025, 6, 7, 18, 30), 10.0, OrderStatus.CANCELED),
    ]


@pytest.fixture
def order_factory():
    """Build an :class:`OrderRecord`: ``order_factory(id, customer, created_at, amount, status, items)``"""
    return make_order
