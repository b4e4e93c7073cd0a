"""
Domain: Sales statistics (pure aggregation).

Aggregates a set of sales records into totals and per-type / per-status
breakdowns. An empty input yields a zeroed result rather than a division
error.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable

from .sales_record import ZERO, SalesRecord


@dataclass(frozen=True, slots=True)
class StatsBucket:
    count: int
    revenue: Decimal


@dataclass(frozen=True, slots=True)
class SalesStats:
    total_sales: int = 0
    total_revenue: Decimal = ZERO
    total_items: int = 0
    avg_sale_value: Decimal = ZERO
    by_type: Dict[str, StatsBucket] = field(default_factory=dict)
    by_status: Dict[str, StatsBucket] = field(default_factory=dict)


def _add(buckets: Dict[str, StatsBucket], key: str, revenue: Decimal) -> None:
    current = buckets.get(key, StatsBucket(count=0, revenue=ZERO))
    buckets[key] = StatsBucket(count=current.count + 1, revenue=current.revenue + revenue)


def summarize_sales(records: Iterable[SalesRecord]) -> SalesStats:
    """
    Aggregate sales records.

    Returns:
        SalesStats with:
        - total_sales: number of records
        - total_revenue: sum of record totals
        - total_items: sum of item quantities over all records
        - avg_sale_value: total_revenue / total_sales, or 0 when there are no records
    """

    total_sales = 0
    total_revenue = ZERO
    total_items = 0
    by_type: Dict[str, StatsBucket] = {}
    by_status: Dict[str, StatsBucket] = {}

    for record in records:
        total_sales += 1
        total_revenue += record.total
        total_items += record.total_items
        _add(by_type, record.sales_type.value, record.total)
        _add(by_status, record.status.value, record.total)

    if total_sales == 0:
        return SalesStats()

    avg_sale_value = (total_revenue / total_sales).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    return SalesStats(
        total_sales=total_sales,
        total_revenue=total_revenue,
        total_items=total_items,
        avg_sale_value=avg_sale_value,
        by_type=by_type,
        by_status=by_status,
    )


__all__ = ["SalesStats", "StatsBucket", "summarize_sales"]
