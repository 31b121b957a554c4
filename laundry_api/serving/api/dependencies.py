"""
Shared Route Dependencies

Lookups, date-window parsing, bucket labels and pagination used by several
routers.
"""

import asyncio
from datetime import date, datetime, time, timedelta
import math
from typing import List, Sequence, Tuple

from fastapi import HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from laundry_api.analytics.periods import PeriodBucket, Timeframe
from laundry_api.analytics.records import OrderRecord
from laundry_api.database.models import Laundry, User, UserRole, utcnow
from laundry_api.database.repositories import fetch_orders, get_laundry, get_user


def get_now() -> datetime:
    """Reference time of a request (naive UTC)."""
    return utcnow()


async def require_laundry(db: AsyncSession, laundry_id: str) -> Laundry:
    laundry = await get_laundry(db, laundry_id)
    if laundry is None:
        raise HTTPException(status_code=404, detail="Laundry not found")
    return laundry


async def require_customer(db: AsyncSession, user_id: str) -> User:
    user = await get_user(db, user_id)
    if user is None or user.role != UserRole.CUSTOMER:
        raise HTTPException(status_code=404, detail="Customer not found")
    return user


def date_window(start_date: date, end_date: date) -> Tuple[datetime, datetime]:
    """
    ``[start, end)`` covering whole days from ``start_date`` through
    ``end_date`` inclusive.
    """
    if start_date > end_date:
        raise HTTPException(status_code=400, detail="start_date must not be after end_date")
    start = datetime.combine(start_date, time.min)
    end = datetime.combine(end_date + timedelta(days=1), time.min)
    return start, end


async def fetch_orders_concurrently(
    session_factory: async_sessionmaker,
    *queries: dict,
) -> List[List[OrderRecord]]:
    """
    Run independent ``fetch_orders`` calls in parallel, one session each.

    Each positional argument holds the keyword arguments of one call.
    Results are returned in argument order.
    """
    async def run(kwargs: dict) -> List[OrderRecord]:
        async with session_factory() as session:
            return await fetch_orders(session, **kwargs)

    return list(await asyncio.gather(*(run(q) for q in queries)))


def bucket_label(timeframe: Timeframe, bucket: PeriodBucket, with_year: bool = False) -> str:
    """Display label of a trend bucket: weekday, week number or month."""
    if timeframe == Timeframe.YEAR:
        return bucket.start.strftime("%b %y" if with_year else "%b")
    if timeframe == Timeframe.MONTH:
        return f"Week {bucket.position + 1}"
    return bucket.start.strftime("%a")


class Pagination(BaseModel):
    """Pagination block of list responses"""
    current_page: int
    total_pages: int
    total_count: int
    limit: int
    has_next_page: bool
    has_prev_page: bool
    showing: int


def paginate(items: Sequence, page: int, limit: int) -> Tuple[list, Pagination]:
    """Slice one page out of ``items``."""
    total = len(items)
    offset = (page - 1) * limit
    page_items = list(items[offset:offset + limit])
    return page_items, pagination_info(total, page, limit, len(page_items))


def pagination_info(total: int, page: int, limit: int, showing: int) -> Pagination:
    total_pages = math.ceil(total / limit) if limit else 0
    return Pagination(
        current_page=page,
        total_pages=total_pages,
        total_count=total,
        limit=limit,
        has_next_page=page < total_pages,
        has_prev_page=page > 1,
        showing=showing,
    )

