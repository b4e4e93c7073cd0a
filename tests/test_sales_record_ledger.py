"""
Tests for `services/sales_record_ledger.py`.

Runs the ledger against the in-memory Supabase double.

Covers contract rules:
- Record numbers are unique and increase by one per sale within a calendar
  month of the sale date; each month starts again at 0001.
- Concurrent creates never share a record number.
- A duplicate number (counter behind the table) is retried; exhausting the
  attempts raises ConflictError and persists nothing.
- Totals are derived on every save; record numbers never change on update.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from domain.errors import ConflictError, NotFoundError, ValidationError
from domain.sales_record import FollowUpStatus, PaymentMethod, PaymentStatus, RecordStatus
from factories import CUSTOMER_ID, FEB_03, JAN_15, SALES_PERSON_ID, line_item, new_record, sales_record
from fake_supabase import FakeSupabase
from repositories.sales_record_repository import SalesRecordFilters, insert_sales_record
from services.sales_record_ledger import Pagination, SalesRecordChanges, SalesRecordLedger

AUTHOR_ID = UUID("00000000-0000-0000-0000-0000000000b1")


@pytest.fixture
def fixed_ledger(fake_db: FakeSupabase) -> SalesRecordLedger:
    """Ledger whose clock is pinned to 2025-01-15 10:30 UTC."""
    return SalesRecordLedger(db=fake_db, clock=lambda: JAN_15)


def test_create_record_assigns_first_number_of_the_month_and_derives_total(
    fixed_ledger: SalesRecordLedger,
) -> None:
    """Verify one oil change (45.00) with 3.60 tax: total 48.60, number SR-202501-0001."""

    record = fixed_ledger.create_record(new_record())

    assert record.record_number == "SR-202501-0001"
    assert record.subtotal == Decimal("45.00")
    assert record.total == Decimal("48.60")
    assert record.sale_date == JAN_15
    assert record.created_at == JAN_15


def test_create_record_without_sale_date_uses_current_month(ledger: SalesRecordLedger) -> None:
    before = datetime.now(timezone.utc)
    record = ledger.create_record(new_record())
    after = datetime.now(timezone.utc)

    expected = {f"SR-{before:%Y%m}-0001", f"SR-{after:%Y%m}-0001"}
    assert record.record_number in expected


def test_create_record_persists_the_record(fixed_ledger: SalesRecordLedger, fake_db: FakeSupabase) -> None:
    record = fixed_ledger.create_record(new_record(notes="First visit"))

    rows = fake_db.tables["sales_records"]
    assert len(rows) == 1
    assert rows[0]["record_number"] == "SR-202501-0001"
    assert rows[0]["total"] == "48.60"
    assert fixed_ledger.get_record(record.record_id) == record


def test_sequential_creates_number_consecutively(fixed_ledger: SalesRecordLedger) -> None:
    numbers = [fixed_ledger.create_record(new_record()).record_number for _ in range(3)]

    assert numbers == ["SR-202501-0001", "SR-202501-0002", "SR-202501-0003"]


def test_each_month_has_its_own_sequence(fixed_ledger: SalesRecordLedger) -> None:
    january = fixed_ledger.create_record(new_record(sale_date=JAN_15))
    february = fixed_ledger.create_record(new_record(sale_date=FEB_03))
    january_again = fixed_ledger.create_record(new_record(sale_date=JAN_15 + timedelta(days=1)))

    assert january.record_number == "SR-202501-0001"
    assert february.record_number == "SR-202502-0001"
    assert january_again.record_number == "SR-202501-0002"


def test_concurrent_creates_never_share_a_record_number(fixed_ledger: SalesRecordLedger) -> None:
    """Verify N simultaneous creates in one month get N distinct, gap-free numbers."""

    count = 25
    with ThreadPoolExecutor(max_workers=8) as pool:
        records = list(pool.map(lambda _: fixed_ledger.create_record(new_record()), range(count)))

    numbers = [record.record_number for record in records]
    assert len(set(numbers)) == count
    assert set(numbers) == {f"SR-202501-{n:04d}" for n in range(1, count + 1)}


def test_duplicate_number_is_retried_with_a_fresh_number(
    fixed_ledger: SalesRecordLedger,
    fake_db: FakeSupabase,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Verify a number already present in the table (counter behind) is skipped."""

    insert_sales_record(sales_record(record_number="SR-202501-0001"), db=fake_db)

    with caplog.at_level(logging.WARNING, logger="services.sales_record_ledger"):
        record = fixed_ledger.create_record(new_record())

    assert record.record_number == "SR-202501-0002"
    assert fake_db.sequences["202501"] == 2
    assert "already taken" in caplog.text


def test_create_raises_conflict_after_max_attempts(fake_db: FakeSupabase) -> None:
    """Verify exhausted retries raise ConflictError and persist nothing new."""

    for n in range(1, 4):
        insert_sales_record(sales_record(record_number=f"SR-202501-{n:04d}"), db=fake_db)
    ledger = SalesRecordLedger(db=fake_db, max_attempts=3, clock=lambda: JAN_15)

    with pytest.raises(ConflictError):
        ledger.create_record(new_record())

    assert len(fake_db.tables["sales_records"]) == 3


def test_create_requires_an_existing_customer(fixed_ledger: SalesRecordLedger, fake_db: FakeSupabase) -> None:
    with pytest.raises(NotFoundError):
        fixed_ledger.create_record(new_record(customer_id=uuid4()))

    assert fake_db.tables["sales_records"] == []
    assert fake_db.sequences == {}


def test_create_rejects_negative_total_without_consuming_a_number(
    fixed_ledger: SalesRecordLedger,
    fake_db: FakeSupabase,
) -> None:
    with pytest.raises(ValidationError) as exc_info:
        fixed_ledger.create_record(new_record(discount=Decimal("100.00")))

    assert exc_info.value.field == "discount"
    assert fake_db.sequences == {}
    assert fake_db.tables["sales_records"] == []


def test_create_rejects_tax_beyond_storage_precision_without_consuming_a_number(
    fixed_ledger: SalesRecordLedger,
    fake_db: FakeSupabase,
) -> None:
    with pytest.raises(ValidationError) as exc_info:
        fixed_ledger.create_record(new_record(tax=Decimal("10000000000.00")))

    assert exc_info.value.field == "tax"
    assert fake_db.sequences == {}
    assert fake_db.tables["sales_records"] == []


def test_max_attempts_must_be_positive(fake_db: FakeSupabase) -> None:
    with pytest.raises(ValueError):
        SalesRecordLedger(db=fake_db, max_attempts=0)


def test_recompute_totals_matches_domain_rule() -> None:
    totals = SalesRecordLedger.recompute_totals([line_item(quantity=2)], Decimal("1.00"), Decimal("0.50"))

    assert totals.subtotal == Decimal("90.00")
    assert totals.total == Decimal("90.50")


def test_update_rederives_totals_and_keeps_record_number(
    fixed_ledger: SalesRecordLedger,
    fake_db: FakeSupabase,
) -> None:
    record = fixed_ledger.create_record(new_record())

    updated = fixed_ledger.update_record(
        record.record_id,
        SalesRecordChanges(items=[line_item(quantity=2)], notes="Second bottle of oil"),
    )

    assert updated.record_number == record.record_number
    assert updated.subtotal == Decimal("90.00")
    assert updated.total == Decimal("93.60")
    assert updated.notes == "Second bottle of oil"
    assert fake_db.tables["sales_records"][0]["total"] == "93.60"
    assert fixed_ledger.get_record(record.record_id).total == Decimal("93.60")


def test_update_rejects_unknown_customer(fixed_ledger: SalesRecordLedger) -> None:
    record = fixed_ledger.create_record(new_record())

    with pytest.raises(NotFoundError):
        fixed_ledger.update_record(record.record_id, SalesRecordChanges(customer_id=uuid4()))


def test_update_rejects_discount_that_makes_total_negative(fixed_ledger: SalesRecordLedger) -> None:
    record = fixed_ledger.create_record(new_record())

    with pytest.raises(ValidationError):
        fixed_ledger.update_record(record.record_id, SalesRecordChanges(discount=Decimal("50.00")))

    assert fixed_ledger.get_record(record.record_id).total == Decimal("48.60")


def test_get_and_delete_unknown_record_raise_not_found(fixed_ledger: SalesRecordLedger) -> None:
    with pytest.raises(NotFoundError):
        fixed_ledger.get_record(uuid4())

    with pytest.raises(NotFoundError):
        fixed_ledger.delete_record(uuid4())


def test_delete_removes_record(fixed_ledger: SalesRecordLedger) -> None:
    record = fixed_ledger.create_record(new_record())

    fixed_ledger.delete_record(record.record_id)

    with pytest.raises(NotFoundError):
        fixed_ledger.get_record(record.record_id)


def test_update_payment_status_changes_only_payment_fields(fixed_ledger: SalesRecordLedger) -> None:
    """Verify a pending record becomes paid by credit card with the given date."""

    record = fixed_ledger.create_record(new_record(notes="Oil change"))
    paid_at = JAN_15 + timedelta(hours=2)

    fixed_ledger.update_payment_status(record.record_id, PaymentStatus.PAID, PaymentMethod.CREDIT_CARD, paid_at)
    stored = fixed_ledger.get_record(record.record_id)

    assert stored.payment_status is PaymentStatus.PAID
    assert stored.payment_method is PaymentMethod.CREDIT_CARD
    assert stored.payment_date == paid_at
    assert stored.record_number == record.record_number
    assert stored.items == record.items
    assert stored.total == record.total
    assert stored.notes == "Oil change"
    assert stored.status is record.status


def test_update_payment_status_returns_the_stored_record(fixed_ledger: SalesRecordLedger) -> None:
    record = fixed_ledger.create_record(new_record())

    result = fixed_ledger.update_payment_status(record.record_id, PaymentStatus.PARTIAL)

    assert result == fixed_ledger.get_record(record.record_id)
    assert result.payment_status is PaymentStatus.PARTIAL
    assert result.updated_at == JAN_15


def test_update_payment_status_to_paid_without_method_is_rejected(fixed_ledger: SalesRecordLedger) -> None:
    record = fixed_ledger.create_record(new_record())

    with pytest.raises(ValidationError):
        fixed_ledger.update_payment_status(record.record_id, PaymentStatus.PAID)


def test_failed_payment_result_leaves_record_unchanged(fixed_ledger: SalesRecordLedger) -> None:
    record = fixed_ledger.create_record(new_record())

    result = fixed_ledger.apply_payment_result(record.record_id, False, Decimal("48.60"), PaymentMethod.ONLINE)

    assert result == record
    assert fixed_ledger.get_record(record.record_id).payment_status is PaymentStatus.PENDING


def test_payment_result_below_total_is_partial(fixed_ledger: SalesRecordLedger) -> None:
    record = fixed_ledger.create_record(new_record())

    result = fixed_ledger.apply_payment_result(
        record.record_id, True, Decimal("20.00"), PaymentMethod.DEBIT_CARD, payment_reference="GW-77"
    )

    assert result.payment_status is PaymentStatus.PARTIAL
    assert result.payment_method is PaymentMethod.DEBIT_CARD
    assert result.payment_reference == "GW-77"


def test_payment_result_covering_total_is_paid(fixed_ledger: SalesRecordLedger) -> None:
    record = fixed_ledger.create_record(new_record())

    result = fixed_ledger.apply_payment_result(record.record_id, True, Decimal("48.60"), PaymentMethod.ONLINE)

    assert result.payment_status is PaymentStatus.PAID
    assert result.payment_date == JAN_15
    assert fixed_ledger.get_record(record.record_id).payment_status is PaymentStatus.PAID


def test_payment_result_requires_positive_amount(fixed_ledger: SalesRecordLedger) -> None:
    record = fixed_ledger.create_record(new_record())

    with pytest.raises(ValidationError):
        fixed_ledger.apply_payment_result(record.record_id, True, Decimal("0"), PaymentMethod.CASH)


def test_add_follow_up_note_rejects_blank_content(fixed_ledger: SalesRecordLedger) -> None:
    record = fixed_ledger.create_record(new_record())

    with pytest.raises(ValidationError):
        fixed_ledger.add_follow_up_note(record.record_id, "   ", AUTHOR_ID)

    assert fixed_ledger.get_record(record.record_id).follow_up_notes == ()


def test_add_follow_up_note_is_persisted(fixed_ledger: SalesRecordLedger) -> None:
    record = fixed_ledger.create_record(new_record())

    fixed_ledger.add_follow_up_note(record.record_id, "Asked about winter tyres", AUTHOR_ID)
    stored = fixed_ledger.get_record(record.record_id)

    assert len(stored.follow_up_notes) == 1
    assert stored.follow_up_notes[0].content == "Asked about winter tyres"
    assert stored.follow_up_notes[0].author_id == AUTHOR_ID
    assert stored.follow_up_notes[0].created_at == JAN_15


def test_scheduled_follow_ups_become_due(fixed_ledger: SalesRecordLedger) -> None:
    record = fixed_ledger.create_record(new_record())
    follow_up_at = JAN_15 + timedelta(days=5)

    scheduled = fixed_ledger.schedule_follow_up(record.record_id, follow_up_at)

    assert scheduled.next_follow_up == follow_up_at
    assert scheduled.follow_up_status is FollowUpStatus.SCHEDULED
    assert fixed_ledger.list_due_follow_ups(follow_up_at - timedelta(minutes=1)) == []
    due = fixed_ledger.list_due_follow_ups(follow_up_at)
    assert [r.record_id for r in due] == [record.record_id]


def test_record_customer_satisfaction_for_completed_sale(fixed_ledger: SalesRecordLedger) -> None:
    record = fixed_ledger.create_record(new_record(status=RecordStatus.COMPLETED, completion_date=JAN_15))

    fixed_ledger.record_customer_satisfaction(record.record_id, 5, "Great work")
    stored = fixed_ledger.get_record(record.record_id)

    assert stored.customer_satisfaction is not None
    assert stored.customer_satisfaction.rating == 5
    assert stored.customer_satisfaction.feedback == "Great work"
    with pytest.raises(ConflictError):
        fixed_ledger.record_customer_satisfaction(record.record_id, 3)


def test_list_records_paginates_and_filters(fixed_ledger: SalesRecordLedger, fake_db: FakeSupabase) -> None:
    for day in range(3):
        fixed_ledger.create_record(new_record(sale_date=JAN_15 + timedelta(days=day)))
    other_customer = uuid4()
    fake_db.add_customer(other_customer, business_name="Other Fleet Ltd")
    fixed_ledger.create_record(new_record(customer_id=other_customer))

    page_one, pagination = fixed_ledger.list_records(SalesRecordFilters(customer_id=CUSTOMER_ID), page=1, limit=2)

    assert [r.record_number for r in page_one] == ["SR-202501-0003", "SR-202501-0002"]
    assert pagination == Pagination(
        current_page=1, total_pages=2, total_records=3, has_next_page=True, has_prev_page=False
    )

    page_two, pagination = fixed_ledger.list_records(SalesRecordFilters(customer_id=CUSTOMER_ID), page=2, limit=2)
    assert [r.record_number for r in page_two] == ["SR-202501-0001"]
    assert not pagination.has_next_page
    assert pagination.has_prev_page


def test_list_records_searches_record_number_and_notes(fixed_ledger: SalesRecordLedger) -> None:
    fixed_ledger.create_record(new_record())
    fixed_ledger.create_record(new_record(notes="Customer mentioned a rattle"))

    by_number, _ = fixed_ledger.list_records(SalesRecordFilters(search="0001"))
    by_notes, _ = fixed_ledger.list_records(SalesRecordFilters(search="RATTLE"))

    assert [r.record_number for r in by_number] == ["SR-202501-0001"]
    assert [r.record_number for r in by_notes] == ["SR-202501-0002"]


def test_list_customer_records_returns_history(fixed_ledger: SalesRecordLedger) -> None:
    fixed_ledger.create_record(new_record())

    records, pagination = fixed_ledger.list_customer_records(CUSTOMER_ID)

    assert len(records) == 1
    assert pagination.total_records == 1
    assert fixed_ledger.customers_for(records)[CUSTOMER_ID].business_name == "Test Garage Client"


def test_sales_stats_for_empty_range_are_zero(fixed_ledger: SalesRecordLedger) -> None:
    stats = fixed_ledger.get_sales_stats(
        datetime(2024, 1, 1, tzinfo=timezone.utc), datetime(2024, 12, 31, tzinfo=timezone.utc)
    )

    assert stats.total_sales == 0
    assert stats.total_revenue == Decimal("0")
    assert stats.avg_sale_value == Decimal("0")


def test_sales_stats_cover_only_the_inclusive_range(fixed_ledger: SalesRecordLedger) -> None:
    fixed_ledger.create_record(new_record(sale_date=JAN_15))
    fixed_ledger.create_record(new_record(sale_date=FEB_03, sales_person_id=uuid4()))
    start = datetime(2025, 1, 1, tzinfo=timezone.utc)

    january = fixed_ledger.get_sales_stats(start, JAN_15)
    both = fixed_ledger.get_sales_stats(start, FEB_03)
    mine = fixed_ledger.get_sales_stats(start, FEB_03, sales_person_id=SALES_PERSON_ID)

    assert january.total_sales == 1
    assert january.total_revenue == Decimal("48.60")
    assert both.total_sales == 2
    assert both.avg_sale_value == Decimal("48.60")
    assert mine.total_sales == 1
    assert fixed_ledger.get_sales_stats(start, FEB_03) == both


def test_sales_stats_reject_inverted_range(fixed_ledger: SalesRecordLedger) -> None:
    with pytest.raises(ValidationError):
        fixed_ledger.get_sales_stats(FEB_03, JAN_15)
