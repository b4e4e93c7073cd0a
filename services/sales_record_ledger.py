"""
Sales record ledger.

Owns creation and financial derivation of sales records:
- Sequential record numbers (SR-YYYYMM-NNNN) per calendar month of the sale date
- Server-side subtotal/total derivation on every save
- Follow-up notes and scheduling, payment status, customer satisfaction
- Sales statistics over a date range

Record numbers come from an atomic per-month counter in the database. The
insert is additionally guarded by the unique index on record_number: on a
conflict the ledger reserves a fresh number and retries, a bounded number of
times, before surfacing a ConflictError. Each create or update is a single
row write, so a failed operation leaves nothing partially persisted.
"""

from __future__ import annotations

import logging
import math
import os
from dataclasses import dataclass, fields, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple
from uuid import UUID, uuid4

from supabase import Client  # type: ignore[import-not-found]

from domain.customer import Customer
from domain.errors import ConflictError, DuplicateRecordNumberError, NotFoundError, ValidationError
from domain.sales_record import (
    LineItem,
    PaymentMethod,
    PaymentStatus,
    RecordStatus,
    SalesRecord,
    SalesSource,
    SalesType,
    Totals,
    Warranty,
    compute_totals,
    format_record_number,
    record_period,
    to_money,
)
from domain.sales_stats import SalesStats, summarize_sales
from domain.time import require_utc_timestamp, utc_now
from repositories.customer_repository import customer_exists, get_customers_by_ids
from repositories.sales_record_repository import (
    SalesRecordFilters,
    delete_sales_record,
    get_sales_record_by_id,
    insert_sales_record,
    list_due_follow_ups,
    list_sales_records,
    list_sales_records_in_range,
    reserve_record_sequence,
    update_sales_record,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS: int = int(os.getenv("SALES_RECORD_NUMBER_MAX_ATTEMPTS", "5"))


@dataclass(frozen=True, slots=True)
class NewSalesRecord:
    """
    Request to create a sales record.

    There is no subtotal, total or record_number here: the ledger derives them.
    """
    customer_id: UUID
    sales_person_id: UUID
    created_by: UUID
    sales_type: SalesType
    items: List[LineItem]
    tax: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    sale_date: Optional[datetime] = None  # defaults to now
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_method: Optional[PaymentMethod] = None
    payment_date: Optional[datetime] = None
    payment_reference: Optional[str] = None
    sales_source: SalesSource = SalesSource.WALK_IN
    converted_from_lead: bool = False
    original_lead_id: Optional[UUID] = None
    status: RecordStatus = RecordStatus.DRAFT
    completion_date: Optional[datetime] = None
    notes: Optional[str] = None
    next_follow_up: Optional[datetime] = None
    warranty: Optional[Warranty] = None


@dataclass(frozen=True, slots=True)
class SalesRecordChanges:
    """Partial update. Fields left as None are not changed."""
    customer_id: Optional[UUID] = None
    sales_type: Optional[SalesType] = None
    items: Optional[List[LineItem]] = None
    tax: Optional[Decimal] = None
    discount: Optional[Decimal] = None
    payment_status: Optional[PaymentStatus] = None
    payment_method: Optional[PaymentMethod] = None
    payment_date: Optional[datetime] = None
    payment_reference: Optional[str] = None
    sales_source: Optional[SalesSource] = None
    status: Optional[RecordStatus] = None
    sale_date: Optional[datetime] = None
    completion_date: Optional[datetime] = None
    notes: Optional[str] = None
    next_follow_up: Optional[datetime] = None
    warranty: Optional[Warranty] = None

    def as_dict(self) -> Dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }


@dataclass(frozen=True, slots=True)
class Pagination:
    current_page: int
    total_pages: int
    total_records: int
    has_next_page: bool
    has_prev_page: bool

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Pagination":
        return cls(
            current_page=page,
            total_pages=math.ceil(total / limit) if limit else 0,
            total_records=total,
            has_next_page=page * limit < total,
            has_prev_page=page > 1,
        )


class SalesRecordLedger:
    """
    Entry point for every create/update of a sales record.

    Args:
        db: Supabase client; the shared client is used when omitted
        max_attempts: Record-number reservations tried before giving up
        clock: Source of "now" (UTC)

    Example:
        ledger = SalesRecordLedger()
        record = ledger.create_record(NewSalesRecord(
            customer_id=customer_id,
            sales_person_id=user_id,
            created_by=user_id,
            sales_type=SalesType.SERVICE,
            items=[LineItem(name="Oil change", quantity=1,
                            unit_price=Decimal("45.00"), total_price=Decimal("45.00"))],
            tax=Decimal("3.60"),
        ))
        print(record.record_number, record.total)   # SR-202501-0001 48.60
    """

    def __init__(
        self,
        db: Optional[Client] = None,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._db = db
        self._max_attempts = max_attempts
        self._clock = clock

    # ------------------------------------------------------------------
    # Numbering and totals
    # ------------------------------------------------------------------

    def assign_record_number(self, sale_date: Optional[datetime] = None) -> str:
        """
        Reserve the next record number for the calendar month of `sale_date`.

        Each call consumes a sequence value, so call it only for a record that
        does not have a number yet.
        """

        sale_date = sale_date or self._clock()
        sequence = reserve_record_sequence(record_period(sale_date), db=self._db)
        return format_record_number(sale_date, sequence)

    @staticmethod
    def recompute_totals(items: List[LineItem], tax: Any, discount: Any) -> Totals:
        """subtotal = sum(item.total_price); total = subtotal + tax - discount."""
        return compute_totals(items, tax, discount)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create_record(self, request: NewSalesRecord) -> SalesRecord:
        """
        Create a sales record.

        Process:
        1. Verify the customer exists
        2. Build the record (validates fields, derives subtotal/total)
        3. Reserve a record number and insert; retry on a duplicate number

        Raises:
            NotFoundError: customer does not exist
            ValidationError: invalid fields or a negative total
            ConflictError: no unique record number after max_attempts
        """

        if not customer_exists(request.customer_id, db=self._db):
            raise NotFoundError(f"Customer not found: {request.customer_id}")

        now = self._clock()
        record = SalesRecord(
            record_id=uuid4(),
            customer_id=request.customer_id,
            sales_person_id=request.sales_person_id,
            created_by=request.created_by,
            sales_type=request.sales_type,
            items=tuple(request.items),
            sale_date=request.sale_date or now,
            tax=request.tax,
            discount=request.discount,
            payment_status=request.payment_status,
            payment_method=request.payment_method,
            payment_date=request.payment_date,
            payment_reference=request.payment_reference,
            sales_source=request.sales_source,
            converted_from_lead=request.converted_from_lead,
            original_lead_id=request.original_lead_id,
            status=request.status,
            completion_date=request.completion_date,
            notes=request.notes,
            next_follow_up=request.next_follow_up,
            warranty=request.warranty,
            created_at=now,
            updated_at=now,
        )

        return self._insert_with_record_number(record)

    def _insert_with_record_number(self, record: SalesRecord) -> SalesRecord:
        for attempt in range(1, self._max_attempts + 1):
            numbered = record.with_record_number(self.assign_record_number(record.sale_date))
            try:
                insert_sales_record(numbered, db=self._db)
            except DuplicateRecordNumberError as e:
                logger.warning(
                    f"Record number {e.record_number} already taken, retrying",
                    extra={"record_number": e.record_number, "attempt": attempt, "max_attempts": self._max_attempts},
                )
                continue

            logger.info(
                f"Created sales record {numbered.record_number}",
                extra={"record_id": str(numbered.record_id), "total": str(numbered.total)},
            )
            return numbered

        logger.error(
            "Could not assign a unique record number",
            extra={"record_id": str(record.record_id), "attempts": self._max_attempts},
        )
        raise ConflictError(
            f"Could not assign a unique record number after {self._max_attempts} attempts"
        )

    def get_record(self, record_id: UUID) -> SalesRecord:
        record = get_sales_record_by_id(record_id, db=self._db)
        if record is None:
            raise NotFoundError(f"Sales record not found: {record_id}")
        return record

    def update_record(self, record_id: UUID, changes: SalesRecordChanges) -> SalesRecord:
        """
        Apply a partial update.

        The record number is never touched. Subtotal and total are re-derived
        from the merged items, tax and discount.
        """

        record = self.get_record(record_id)
        change_map = changes.as_dict()

        new_customer = change_map.get("customer_id")
        if new_customer is not None and new_customer != record.customer_id:
            if not customer_exists(new_customer, db=self._db):
                raise NotFoundError(f"Customer not found: {new_customer}")

        if "items" in change_map:
            change_map["items"] = tuple(change_map["items"])

        updated = replace(record, updated_at=self._clock(), **change_map)
        return update_sales_record(updated, db=self._db)

    def delete_record(self, record_id: UUID) -> None:
        if not delete_sales_record(record_id, db=self._db):
            raise NotFoundError(f"Sales record not found: {record_id}")
        logger.info(f"Deleted sales record {record_id}")

    def list_records(
        self,
        filters: SalesRecordFilters,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "sale_date",
        descending: bool = True,
    ) -> Tuple[List[SalesRecord], Pagination]:
        records, total = list_sales_records(
            filters, page=page, limit=limit, sort_by=sort_by, descending=descending, db=self._db
        )
        return records, Pagination.build(page, limit, total)

    def list_customer_records(
        self,
        customer_id: UUID,
        page: int = 1,
        limit: int = 10,
    ) -> Tuple[List[SalesRecord], Pagination]:
        """A customer's sales history, newest sale first."""
        return self.list_records(SalesRecordFilters(customer_id=customer_id), page=page, limit=limit)

    def customers_for(self, records: List[SalesRecord]) -> Dict[UUID, Customer]:
        """Resolve the customers referenced by `records` (application-level join)."""
        return get_customers_by_ids((record.customer_id for record in records), db=self._db)

    # ------------------------------------------------------------------
    # Follow-up, payment and satisfaction
    # ------------------------------------------------------------------

    def add_follow_up_note(self, record_id: UUID, content: str, author_id: UUID) -> SalesRecord:
        if not content or not content.strip():
            raise ValidationError("Follow-up content is required", field="content")

        record = self.get_record(record_id)
        now = self._clock()
        updated = replace(record.with_follow_up_note(content, author_id, now), updated_at=now)
        return update_sales_record(updated, db=self._db)

    def schedule_follow_up(self, record_id: UUID, follow_up_at: datetime) -> SalesRecord:
        require_utc_timestamp("follow_up_at", follow_up_at)
        record = self.get_record(record_id)
        updated = replace(record.with_follow_up_scheduled(follow_up_at), updated_at=self._clock())
        return update_sales_record(updated, db=self._db)

    def list_due_follow_ups(self, as_of: Optional[datetime] = None) -> List[SalesRecord]:
        return list_due_follow_ups(as_of or self._clock(), db=self._db)

    def update_payment_status(
        self,
        record_id: UUID,
        payment_status: PaymentStatus,
        payment_method: Optional[PaymentMethod] = None,
        payment_date: Optional[datetime] = None,
    ) -> SalesRecord:
        """
        Set the payment status, and the method/date when given.

        No transition rules: any status may follow any other.
        """

        record = self.get_record(record_id)
        updated = replace(
            record.with_payment_status(payment_status, payment_method, payment_date),
            updated_at=self._clock(),
        )
        saved = update_sales_record(updated, db=self._db)

        logger.info(
            f"Payment status of {record.record_number} set to {payment_status.value}",
            extra={"record_id": str(record_id), "previous_status": record.payment_status.value},
        )
        return saved

    def apply_payment_result(
        self,
        record_id: UUID,
        succeeded: bool,
        amount: Any,
        payment_method: PaymentMethod,
        payment_reference: Optional[str] = None,
    ) -> SalesRecord:
        """
        Apply the outcome reported by the payment gateway.

        - Failed payment: the record is returned unchanged
        - Succeeded, amount >= total: paid
        - Succeeded, 0 < amount < total: partial
        """

        record = self.get_record(record_id)

        if not succeeded:
            logger.info(
                f"Payment for {record.record_number} did not succeed; record unchanged",
                extra={"record_id": str(record_id)},
            )
            return record

        paid_amount = to_money(amount, "amount")
        if paid_amount <= 0:
            raise ValidationError("Payment amount must be greater than zero", field="amount")

        status = PaymentStatus.PAID if paid_amount >= record.total else PaymentStatus.PARTIAL
        now = self._clock()
        updated = record.with_payment_status(status, payment_method, now)
        if payment_reference:
            updated = replace(updated, payment_reference=payment_reference)
        updated = replace(updated, updated_at=now)

        saved = update_sales_record(updated, db=self._db)
        logger.info(
            f"Payment of {paid_amount} applied to {record.record_number}: {status.value}",
            extra={"record_id": str(record_id), "total": str(record.total)},
        )
        return saved

    def record_customer_satisfaction(
        self,
        record_id: UUID,
        rating: int,
        feedback: Optional[str] = None,
    ) -> SalesRecord:
        record = self.get_record(record_id)
        now = self._clock()
        updated = replace(record.with_customer_satisfaction(rating, now, feedback), updated_at=now)
        return update_sales_record(updated, db=self._db)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def get_sales_stats(
        self,
        start_date: datetime,
        end_date: datetime,
        sales_person_id: Optional[UUID] = None,
    ) -> SalesStats:
        """
        Aggregate sales with start_date <= sale_date <= end_date.

        Returns a zeroed SalesStats when nothing matches.
        """

        require_utc_timestamp("start_date", start_date)
        require_utc_timestamp("end_date", end_date)
        if start_date > end_date:
            raise ValidationError("start_date must not be after end_date", field="start_date")

        records = list_sales_records_in_range(start_date, end_date, sales_person_id, db=self._db)
        return summarize_sales(records)


__all__ = [
    "NewSalesRecord",
    "Pagination",
    "SalesRecordChanges",
    "SalesRecordLedger",
]
