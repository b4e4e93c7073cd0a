"""
Tests for `domain/sales_stats.py`.

Covers contract rules:
- An empty range produces zeroed statistics (no division by zero).
- Totals, item counts and breakdowns aggregate record totals.
"""

from __future__ import annotations

from decimal import Decimal

from domain.sales_record import RecordStatus, SalesType
from domain.sales_stats import SalesStats, summarize_sales
from factories import line_item, sales_record


def test_summarize_sales_of_nothing_is_zeroed() -> None:
    stats = summarize_sales([])

    assert stats == SalesStats()
    assert stats.total_sales == 0
    assert stats.total_revenue == Decimal("0")
    assert stats.avg_sale_value == Decimal("0")
    assert stats.by_type == {}
    assert stats.by_status == {}


def test_summarize_sales_aggregates_totals_and_breakdowns() -> None:
    records = [
        sales_record(),  # 48.60, 1 item
        sales_record(
            sales_type=SalesType.PRODUCT,
            items=(line_item("Wiper blade", quantity=3, unit_price="10.00"),),
            tax=Decimal("0"),
            status=RecordStatus.COMPLETED,
        ),  # 30.00, 3 items
        sales_record(status=RecordStatus.COMPLETED),  # 48.60, 1 item
    ]

    stats = summarize_sales(records)

    assert stats.total_sales == 3
    assert stats.total_revenue == Decimal("127.20")
    assert stats.total_items == 5
    assert stats.avg_sale_value == Decimal("42.40")

    assert stats.by_type["service"].count == 2
    assert stats.by_type["service"].revenue == Decimal("97.20")
    assert stats.by_type["product"].count == 1
    assert stats.by_status["draft"].revenue == Decimal("48.60")
    assert stats.by_status["completed"].count == 2


def test_summarize_sales_rounds_average_to_cents() -> None:
    records = [
        sales_record(items=(line_item(unit_price="10.00"),), tax=Decimal("0")),
        sales_record(items=(line_item(unit_price="10.00"),), tax=Decimal("0")),
        sales_record(items=(line_item(unit_price="0.01"),), tax=Decimal("0")),
    ]

    assert summarize_sales(records).avg_sale_value == Decimal("6.67")


def test_summarize_sales_is_repeatable() -> None:
    records = [sales_record(), sales_record(status=RecordStatus.CANCELLED)]

    assert summarize_sales(records) == summarize_sales(records)
