"""
Products API Endpoints

Service catalogue performance of a laundry. Only COMPLETED and DELIVERED
orders count towards revenue and quantities.
"""

from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy import distinct, select
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from laundry_api.analytics.engine import ProductStats, product_performance
from laundry_api.analytics.periods import calendar_months
from laundry_api.analytics.ranking import percentage, rank, safe_ratio
from laundry_api.analytics.records import category_label
from laundry_api.config import get_settings
from laundry_api.database.connection import get_db_dependency
from laundry_api.database.models import COMPLETED_STATUSES, OrderItem, Product
from laundry_api.database.repositories import fetch_orders
from laundry_api.serving.api.dependencies import get_now, require_laundry

router = APIRouter()
logger = structlog.get_logger(__name__)
settings = get_settings()

logger.info("Products router initialized")


class ProductMetrics(BaseModel):
    total_products: int
    total_revenue: float
    total_quantity_sold: int
    average_product_price: float


class CategoryRevenue(BaseModel):
    category: str
    product_count: int
    revenue: float
    percentage: float


class CategoryAnalysis(BaseModel):
    breakdown: List[CategoryRevenue]
    most_popular: Optional[str]
    total_categories: int


class ProductSales(BaseModel):
    quantity_sold: int
    revenue: float
    orders: int
    average_order_value: float


class ProductPerformance(BaseModel):
    """Product with its sales over completed orders"""
    id: str
    name: str
    category: Optional[str]
    price: float
    stats: ProductSales


class MonthlyRevenue(BaseModel):
    month: str
    revenue: float


class RevenueTrends(BaseModel):
    monthly_revenue: List[MonthlyRevenue]
    revenue_change: float


class ProductInsights(BaseModel):
    average_revenue_per_product: float
    average_quantity_per_product: float
    conversion_rate: float


class ProductsOverview(BaseModel):
    """Products overview response"""
    metrics: ProductMetrics
    categories: CategoryAnalysis
    top_products: List[ProductPerformance]
    trends: RevenueTrends
    insights: ProductInsights


@router.get("/overview", response_model=ProductsOverview)
async def get_products_overview(
    laundry_id: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db_dependency),
    now: datetime = Depends(get_now),
) -> ProductsOverview:
    """Revenue per product and category, top products and a monthly revenue trend."""
    logger.info("get_products_overview called", laundry_id=laundry_id)
    await require_laundry(db, laundry_id)

    try:
        products = (
            await db.execute(
                select(Product).where(Product.laundry_id == laundry_id).order_by(Product.created_at, Product.id)
            )
        ).scalars().all()
        ordered_product_ids = set(
            (
                await db.execute(
                    select(distinct(OrderItem.product_id))
                    .join(Product, Product.id == OrderItem.product_id)
                    .where(Product.laundry_id == laundry_id)
                )
            ).scalars().all()
        )
        orders = await fetch_orders(db, laundry_id=laundry_id, statuses=COMPLETED_STATUSES)
    except Exception as e:
        logger.error("Error in get_products_overview", error=str(e), error_type=type(e).__name__)
        raise

    performance = product_performance(orders)
    sales = {p.id: performance.get(p.id, ProductStats(product_id=p.id)) for p in products}
    total_revenue = sum(s.revenue for s in sales.values())
    total_quantity = sum(s.quantity_sold for s in sales.values())

    by_category: Dict[str, CategoryRevenue] = {}
    for product in products:
        label = category_label(product.category)
        entry = by_category.setdefault(
            label, CategoryRevenue(category=label, product_count=0, revenue=0.0, percentage=0.0)
        )
        entry.product_count += 1
        entry.revenue += sales[product.id].revenue
    for entry in by_category.values():
        entry.percentage = percentage(entry.revenue, total_revenue)
    breakdown = rank(by_category.values(), key=lambda c: c.revenue)

    product_rows = [
        ProductPerformance(
            id=product.id,
            name=product.name,
            category=product.category,
            price=product.price,
            stats=ProductSales(
                quantity_sold=sales[product.id].quantity_sold,
                revenue=sales[product.id].revenue,
                orders=sales[product.id].orders,
                average_order_value=sales[product.id].average_order_value,
            ),
        )
        for product in products
    ]
    top_products = rank(product_rows, key=lambda p: p.stats.revenue, limit=settings.analytics.top_products_limit)

    monthly = []
    for month in calendar_months(now, settings.analytics.product_trend_months):
        revenue = sum(
            item.line_total
            for order in orders if month.contains(order.created_at)
            for item in order.items
        )
        monthly.append(MonthlyRevenue(month=month.start.strftime("%b %y"), revenue=revenue))
    revenue_change = monthly[-1].revenue - monthly[-2].revenue if len(monthly) >= 2 else 0.0

    return ProductsOverview(
        metrics=ProductMetrics(
            total_products=len(products),
            total_revenue=total_revenue,
            total_quantity_sold=total_quantity,
            average_product_price=safe_ratio(sum(p.price for p in products), len(products)),
        ),
        categories=CategoryAnalysis(
            breakdown=breakdown,
            most_popular=breakdown[0].category if breakdown else None,
            total_categories=len(breakdown),
        ),
        top_products=top_products,
        trends=RevenueTrends(monthly_revenue=monthly, revenue_change=revenue_change),
        insights=ProductInsights(
            average_revenue_per_product=safe_ratio(total_revenue, len(products)),
            average_quantity_per_product=safe_ratio(total_quantity, len(products)),
            conversion_rate=percentage(
                sum(1 for p in products if p.id in ordered_product_ids), len(products)
            ),
        ),
    )
