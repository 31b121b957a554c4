"""
Demo Data Seeding

Generates a small, realistic marketplace with Faker:
- Laundries with their admins, addresses and service catalogue
- Customers with delivery addresses
- A year of orders with line items, spread over statuses and hours
- Reviews

Run with ``python -m laundry_api.database.seed``.
"""

import asyncio
import random
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from faker import Faker
import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from laundry_api.config.logging import configure_logging
from laundry_api.config import get_settings
from laundry_api.database.connection import close_database, get_db, init_database
from laundry_api.database.models import (
    COMPLETED_STATUSES,
    Address,
    Laundry,
    LaundryStatus,
    Order,
    OrderItem,
    OrderStatus,
    Product,
    Review,
    User,
    UserRole,
    generate_order_number,
    utcnow,
)

logger = structlog.get_logger(__name__)
settings = get_settings()


# =============================================================================
# CONFIGURATION
# =============================================================================

SERVICES = [
    ("Wash & Fold", "Washing", "kg", 12.0),
    ("Express Wash", "Washing", "kg", 20.0),
    ("Shirt Ironing", "Ironing", "piece", 8.0),
    ("Suit Dry Cleaning", "Dry Cleaning", "piece", 45.0),
    ("Dress Dry Cleaning", "Dry Cleaning", "piece", 40.0),
    ("Duvet Cleaning", "Bedding", "piece", 70.0),
    ("Curtain Cleaning", "Home", "m2", 25.0),
    ("Stain Removal", None, "piece", 15.0),
]

CITIES = ["Casablanca", "Rabat", "Marrakech", "Tangier", "Fes"]

ORDER_STATUSES = [
    (OrderStatus.COMPLETED, 0.45),
    (OrderStatus.DELIVERED, 0.20),
    (OrderStatus.PENDING, 0.06),
    (OrderStatus.CONFIRMED, 0.06),
    (OrderStatus.IN_PROGRESS, 0.06),
    (OrderStatus.READY_FOR_PICKUP, 0.04),
    (OrderStatus.OUT_FOR_DELIVERY, 0.04),
    (OrderStatus.CANCELED, 0.06),
    (OrderStatus.REFUNDED, 0.03),
]

# Opening hours skew order creation towards the morning and early evening
ORDER_HOURS = [8, 9, 9, 10, 10, 11, 12, 13, 14, 16, 17, 18, 18, 19, 20]


class MarketplaceGenerator:
    """Build a consistent set of marketplace rows from one random seed"""

    def __init__(self, seed: int = 42, now: Optional[datetime] = None):
        self.rng = random.Random(seed)
        self.fake = Faker()
        self.fake.seed_instance(seed)
        self.now = now or utcnow()

    def _address(self, user: Optional[User] = None, laundry: Optional[Laundry] = None, is_default: bool = False) -> Address:
        return Address(
            user=user,
            laundry=laundry,
            street=self.fake.street_address(),
            city=self.rng.choice(CITIES),
            state=self.fake.state(),
            zip_code=self.fake.postcode(),
            is_default=is_default,
            latitude=float(self.fake.latitude()),
            longitude=float(self.fake.longitude()),
        )

    def laundry(self, index: int) -> Laundry:
        admin = User(
            name=self.fake.name(),
            email=f"admin{index}@{self.fake.domain_name()}",
            role=UserRole.LAUNDRY_ADMIN,
            created_at=self.now - timedelta(days=400),
        )
        laundry = Laundry(
            name=f"{self.fake.last_name()} Laundry",
            email=f"contact{index}@{self.fake.domain_name()}",
            phone=self.fake.phone_number(),
            description=self.fake.catch_phrase(),
            status=LaundryStatus.ACTIVE,
            operating_hours={"mon-sat": "08:00-20:00", "sun": "closed"},
            admin=admin,
            created_at=self.now - timedelta(days=400),
        )
        self._address(laundry=laundry)
        for name, category, unit, price in SERVICES:
            laundry.products.append(
                Product(name=name, category=category, unit=unit, price=price, is_active=True)
            )
        return laundry

    def customer(self, index: int) -> User:
        customer = User(
            name=self.fake.name() if self.rng.random() > 0.1 else None,
            email=f"customer{index}.{self.fake.user_name()}@example.com",
            phone=self.fake.phone_number(),
            role=UserRole.CUSTOMER,
            created_at=self.now - timedelta(days=self.rng.randint(0, 420)),
        )
        self._address(user=customer, is_default=True)
        return customer

    def _status(self) -> OrderStatus:
        statuses = [s for s, _ in ORDER_STATUSES]
        weights = [w for _, w in ORDER_STATUSES]
        return self.rng.choices(statuses, weights=weights, k=1)[0]

    def order(self, customer: User, laundry: Laundry, delivery_fee: float) -> Order:
        earliest = max(customer.created_at, self.now - timedelta(days=365))
        span_days = max((self.now - earliest).days, 0)
        day = self.now - timedelta(days=self.rng.randint(0, span_days))
        created_at = day.replace(
            hour=self.rng.choice(ORDER_HOURS),
            minute=self.rng.randint(0, 59),
            second=self.rng.randint(0, 59),
            microsecond=0,
        )
        if created_at > self.now:
            created_at -= timedelta(days=1)

        products = self.rng.sample(laundry.products, k=self.rng.randint(1, 3))
        items = []
        for product in products:
            quantity = self.rng.randint(1, 5)
            items.append(
                OrderItem(product=product, quantity=quantity, price=product.price, total_price=product.price * quantity)
            )
        subtotal = sum(item.total_price for item in items)

        status = self._status()
        return Order(
            order_number=generate_order_number(),
            customer=customer,
            laundry=laundry,
            address=customer.addresses[0],
            status=status,
            total_amount=subtotal,
            delivery_fee=delivery_fee,
            discount=0.0,
            final_amount=subtotal + delivery_fee,
            pickup_date=created_at + timedelta(days=1),
            delivery_date=created_at + timedelta(days=self.rng.randint(2, 5)),
            items=items,
            created_at=created_at,
            updated_at=created_at,
        )

    def review(self, customer: User, laundry: Laundry) -> Review:
        return Review(
            user=customer,
            laundry_id=laundry.id,
            rating=self.rng.randint(3, 5),
            comment=self.fake.sentence(),
        )


async def seed_marketplace(
    db: AsyncSession,
    laundries: int = 3,
    customers: int = 40,
    orders: int = 400,
    seed: int = 42,
    now: Optional[datetime] = None,
) -> Dict[str, int]:
    """
    Add a generated marketplace to ``db`` and flush it.

    Laundry running totals (orders, completed revenue, reviews, rating) are
    filled in from the generated rows.
    """
    generator = MarketplaceGenerator(seed=seed, now=now)
    delivery_fee = settings.analytics.delivery_fee

    laundry_rows: List[Laundry] = [generator.laundry(i) for i in range(laundries)]
    customer_rows: List[User] = [generator.customer(i) for i in range(customers)]
    db.add_all(laundry_rows)
    db.add_all(customer_rows)
    await db.flush()

    order_rows = []
    for _ in range(orders):
        laundry = generator.rng.choice(laundry_rows)
        customer = generator.rng.choice(customer_rows)
        order = generator.order(customer, laundry, delivery_fee)
        order_rows.append(order)
        laundry.total_orders += 1
        if order.status in COMPLETED_STATUSES:
            laundry.total_revenue += order.final_amount
    db.add_all(order_rows)

    review_rows = []
    for order in generator.rng.sample(order_rows, k=min(len(order_rows), orders // 5)):
        review = generator.review(order.customer, order.laundry)
        review_rows.append(review)
        laundry = order.laundry
        laundry.rating = (laundry.rating * laundry.total_reviews + review.rating) / (laundry.total_reviews + 1)
        laundry.total_reviews += 1
    db.add_all(review_rows)
    await db.flush()

    counts = {
        "laundries": len(laundry_rows),
        "customers": len(customer_rows),
        "orders": len(order_rows),
        "reviews": len(review_rows),
    }
    logger.info("Marketplace seeded", **counts)
    return counts


async def main():
    configure_logging()
    logger.info("Starting database seeding...")
    await init_database(create_tables=True)

    try:
        async with get_db() as db:
            await seed_marketplace(db)
        logger.info("Database seeding completed successfully!")
    except Exception as e:
        logger.error("Seeding failed", error=str(e), error_type=type(e).__name__)
        raise
    finally:
        await close_database()


def run():
    """Console entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
