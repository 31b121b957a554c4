"""
Ranking and Rate Helpers

Ratios used across the reporting endpoints. Every ratio floors to 0 when its
denominator is 0; a growth rate of 0 therefore also means "no previous
activity to compare against".
"""

from typing import Callable, Iterable, List, Optional, TypeVar

T = TypeVar("T")


def safe_ratio(numerator: float, denominator: float) -> float:
    """numerator / denominator, or 0 when the denominator is 0."""
    if not denominator:
        return 0.0
    return numerator / denominator


def percentage(part: float, whole: float) -> float:
    """part as a percentage of whole, or 0 when whole is 0."""
    return safe_ratio(part, whole) * 100


def growth_rate(current: float, previous: float) -> float:
    """
    Period-over-period growth in percent.

    Returns 0 when ``previous`` is 0, including the case where ``current`` is
    positive. Callers that need to tell "no growth" from "no baseline" must
    look at ``previous`` themselves.
    """
    if not previous:
        return 0.0
    return (current - previous) / previous * 100


def retention_rate(repeat_customers: int, total_customers: int) -> float:
    """Share of customers with more than one order, in percent."""
    return percentage(repeat_customers, total_customers)


def rank(
    items: Iterable[T],
    key: Callable[[T], float],
    limit: Optional[int] = None,
) -> List[T]:
    """
    Sort descending by ``key`` and keep the first ``limit`` items.

    The sort is stable: items with equal keys keep their input order.
    """
    ranked = sorted(items, key=key, reverse=True)
    if limit is not None:
        return ranked[:limit]
    return ranked
