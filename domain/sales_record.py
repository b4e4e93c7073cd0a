"""
Domain: Sales records.

A SalesRecord is one completed or in-progress sale to a shop customer.

Rules implemented here:
- record_number has the form SR-YYYYMM-NNNN, where NNNN counts sales per
  calendar month of the sale date. It is assigned once and never reassigned.
- subtotal is always the sum of line-item total_price values and total is
  subtotal + tax - discount. Both are derived on construction; callers cannot
  supply them.
- A total below zero is rejected rather than persisted.
- A paid record carries a payment method and a payment date.

This module contains only pure domain entities and functions: no I/O.
Timestamps must be UTC.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Any, Iterable, Optional, Tuple
from uuid import UUID

from .errors import ConflictError, ValidationError
from .time import require_utc_timestamp

RECORD_NUMBER_PREFIX = "SR"
RECORD_NUMBER_PATTERN = re.compile(r"^SR-\d{6}-\d{4,}$")

_CENTS = Decimal("0.01")
ZERO = Decimal("0.00")

# Money columns are numeric(12, 2)
MAX_MONEY = Decimal("9999999999.99")


class SalesType(str, Enum):
    PRODUCT = "product"
    SERVICE = "service"
    PACKAGE = "package"
    CONSULTATION = "consultation"
    OTHER = "other"


class SalesSource(str, Enum):
    WALK_IN = "walk_in"
    PHONE = "phone"
    ONLINE = "online"
    REFERRAL = "referral"
    MARKETING_CAMPAIGN = "marketing_campaign"
    REPEAT_CUSTOMER = "repeat_customer"
    OTHER = "other"


class RecordStatus(str, Enum):
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    REFUNDED = "refunded"


class PaymentMethod(str, Enum):
    CASH = "cash"
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    CHECK = "check"
    BANK_TRANSFER = "bank_transfer"
    ONLINE = "online"
    OTHER = "other"


class FollowUpStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    OVERDUE = "overdue"


def to_money(value: Any, name: str) -> Decimal:
    """Convert a numeric value to a Decimal rounded to cents."""

    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number", field=name)
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{name} must be a number", field=name) from None
    if not amount.is_finite():
        raise ValidationError(f"{name} must be a finite number", field=name)
    try:
        amount = amount.quantize(_CENTS, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        raise ValidationError(f"{name} exceeds the maximum of {MAX_MONEY}", field=name) from None
    _require_money_range(amount, name)
    return amount


def _require_money_range(amount: Decimal, name: str) -> None:
    if abs(amount) > MAX_MONEY:
        raise ValidationError(f"{name} exceeds the maximum of {MAX_MONEY}", field=name)


def _require_non_negative(value: Any, name: str) -> Decimal:
    amount = to_money(value, name)
    if amount < 0:
        raise ValidationError(f"{name} cannot be negative", field=name)
    return amount


def _require_max_length(value: Optional[str], name: str, limit: int) -> None:
    if value is not None and len(value) > limit:
        raise ValidationError(f"{name} cannot exceed {limit} characters", field=name)


@dataclass(frozen=True, slots=True)
class LineItem:
    """One row of a sale. total_price is supplied by the caller."""

    name: str
    quantity: int
    unit_price: Decimal
    total_price: Decimal
    description: Optional[str] = None
    category: Optional[str] = None
    inventory_item_id: Optional[UUID] = None
    service_id: Optional[UUID] = None

    def __post_init__(self) -> None:
        name = (self.name or "").strip()
        if not name:
            raise ValidationError("Item name is required", field="items.name")
        _require_max_length(name, "items.name", 200)
        _require_max_length(self.description, "items.description", 500)
        _require_max_length(self.category, "items.category", 100)

        if isinstance(self.quantity, bool) or not isinstance(self.quantity, int):
            raise ValidationError("Quantity must be a whole number", field="items.quantity")
        if self.quantity < 1:
            raise ValidationError("Quantity must be at least 1", field="items.quantity")

        object.__setattr__(self, "name", name)
        object.__setattr__(self, "unit_price", _require_non_negative(self.unit_price, "items.unit_price"))
        object.__setattr__(self, "total_price", _require_non_negative(self.total_price, "items.total_price"))


@dataclass(frozen=True, slots=True)
class FollowUpNote:
    content: str
    author_id: UUID
    created_at: datetime

    def __post_init__(self) -> None:
        if not self.content or not self.content.strip():
            raise ValidationError("Follow-up content is required", field="content")
        require_utc_timestamp("created_at", self.created_at)


@dataclass(frozen=True, slots=True)
class CustomerSatisfaction:
    rating: int
    recorded_at: datetime
    feedback: Optional[str] = None

    def __post_init__(self) -> None:
        if isinstance(self.rating, bool) or not isinstance(self.rating, int):
            raise ValidationError("Rating must be a whole number", field="rating")
        if not 1 <= self.rating <= 5:
            raise ValidationError("Rating must be between 1 and 5", field="rating")
        require_utc_timestamp("recorded_at", self.recorded_at)


@dataclass(frozen=True, slots=True)
class Warranty:
    has_warranty: bool = False
    warranty_period_months: Optional[int] = None
    warranty_expiry: Optional[datetime] = None
    warranty_notes: Optional[str] = None

    def __post_init__(self) -> None:
        if self.warranty_period_months is not None and self.warranty_period_months < 0:
            raise ValidationError("Warranty period cannot be negative", field="warranty.warranty_period_months")
        if self.warranty_expiry is not None:
            require_utc_timestamp("warranty_expiry", self.warranty_expiry)
        _require_max_length(self.warranty_notes, "warranty.warranty_notes", 500)


@dataclass(frozen=True, slots=True)
class Totals:
    subtotal: Decimal
    total: Decimal


def compute_totals(items: Iterable[LineItem], tax: Any, discount: Any) -> Totals:
    """
    Derive subtotal and total from line items.

    subtotal = sum(item.total_price), total = subtotal + tax - discount.

    Raises:
        ValidationError: tax or discount is negative, or the discount exceeds
            subtotal + tax, or an amount exceeds MAX_MONEY.
    """

    tax_amount = _require_non_negative(tax, "tax")
    discount_amount = _require_non_negative(discount, "discount")

    subtotal = sum((item.total_price for item in items), ZERO)
    _require_money_range(subtotal, "subtotal")
    total = subtotal + tax_amount - discount_amount
    if total < 0:
        raise ValidationError(
            f"Discount {discount_amount} exceeds subtotal plus tax ({subtotal + tax_amount})",
            field="discount",
        )
    _require_money_range(total, "total")
    return Totals(subtotal=subtotal.quantize(_CENTS), total=total.quantize(_CENTS))


def record_period(sale_date: datetime) -> str:
    """Sequence key for the calendar month of a sale: YYYYMM."""

    require_utc_timestamp("sale_date", sale_date)
    return f"{sale_date.year:04d}{sale_date.month:02d}"


def format_record_number(sale_date: datetime, sequence: int) -> str:
    """
    Format a record number: SR-{year}{2-digit month}-{sequence, 4-digit zero padded}.

    Example:
        format_record_number(datetime(2025, 3, 9, tzinfo=timezone.utc), 7)
        # Returns "SR-202503-0007"
    """

    if sequence < 1:
        raise ValueError("sequence must be at least 1")
    return f"{RECORD_NUMBER_PREFIX}-{record_period(sale_date)}-{sequence:04d}"


@dataclass(frozen=True, slots=True)
class SalesRecord:
    """
    A sale to a customer with its line items, money fields and follow-up state.

    Immutability:
    - State changes return a new instance via the `with_*` methods.
    - subtotal and total are not constructor arguments; they are derived from
      items, tax and discount every time an instance is built.
    """

    record_id: UUID
    customer_id: UUID
    sales_person_id: UUID
    created_by: UUID
    sales_type: SalesType
    items: Tuple[LineItem, ...]
    sale_date: datetime

    record_number: Optional[str] = None
    tax: Decimal = ZERO
    discount: Decimal = ZERO

    # Payment
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_method: Optional[PaymentMethod] = None
    payment_date: Optional[datetime] = None
    payment_reference: Optional[str] = None

    # Source tracking
    sales_source: SalesSource = SalesSource.WALK_IN
    converted_from_lead: bool = False
    original_lead_id: Optional[UUID] = None

    status: RecordStatus = RecordStatus.DRAFT
    completion_date: Optional[datetime] = None

    # Notes and follow-up
    notes: Optional[str] = None
    follow_up_notes: Tuple[FollowUpNote, ...] = ()
    next_follow_up: Optional[datetime] = None
    follow_up_status: FollowUpStatus = FollowUpStatus.SCHEDULED

    customer_satisfaction: Optional[CustomerSatisfaction] = None
    warranty: Optional[Warranty] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    subtotal: Decimal = field(init=False)
    total: Decimal = field(init=False)

    def __post_init__(self) -> None:
        require_utc_timestamp("sale_date", self.sale_date)
        for name in ("payment_date", "completion_date", "next_follow_up", "created_at", "updated_at"):
            value = getattr(self, name)
            if value is not None:
                require_utc_timestamp(name, value)

        if self.record_number is not None and not RECORD_NUMBER_PATTERN.match(self.record_number):
            raise ValidationError(f"Invalid record number: {self.record_number}", field="record_number")

        items = tuple(self.items)
        if not items:
            raise ValidationError("At least one item is required", field="items")
        object.__setattr__(self, "items", items)
        object.__setattr__(self, "follow_up_notes", tuple(self.follow_up_notes))

        _require_max_length(self.notes, "notes", 1000)
        _require_max_length(self.payment_reference, "payment_reference", 100)

        if self.payment_status is PaymentStatus.PAID:
            if self.payment_method is None:
                raise ValidationError("Payment method is required when payment is paid", field="payment_method")
            if self.payment_date is None:
                raise ValidationError("Payment date is required when payment is paid", field="payment_date")

        totals = compute_totals(items, self.tax, self.discount)
        object.__setattr__(self, "tax", to_money(self.tax, "tax"))
        object.__setattr__(self, "discount", to_money(self.discount, "discount"))
        object.__setattr__(self, "subtotal", totals.subtotal)
        object.__setattr__(self, "total", totals.total)

    @property
    def total_items(self) -> int:
        """Sum of quantities across all line items."""
        return sum(item.quantity for item in self.items)

    def with_record_number(self, record_number: str) -> "SalesRecord":
        """Return a copy carrying `record_number`. An assigned number is never replaced."""

        if self.record_number is not None:
            raise ConflictError(f"Record number already assigned: {self.record_number}")
        return replace(self, record_number=record_number)

    def with_follow_up_note(self, content: str, author_id: UUID, created_at: datetime) -> "SalesRecord":
        note = FollowUpNote(content=(content or "").strip(), author_id=author_id, created_at=created_at)
        return replace(self, follow_up_notes=self.follow_up_notes + (note,))

    def with_follow_up_scheduled(self, follow_up_at: datetime) -> "SalesRecord":
        return replace(self, next_follow_up=follow_up_at, follow_up_status=FollowUpStatus.SCHEDULED)

    def with_payment_status(
        self,
        payment_status: PaymentStatus,
        payment_method: Optional[PaymentMethod] = None,
        payment_date: Optional[datetime] = None,
    ) -> "SalesRecord":
        """
        Set the payment status and, when given, method and date.

        Any status may follow any other; other fields are left as they are.
        """

        changes: dict[str, Any] = {"payment_status": payment_status}
        if payment_method is not None:
            changes["payment_method"] = payment_method
        if payment_date is not None:
            changes["payment_date"] = payment_date
        return replace(self, **changes)

    def with_customer_satisfaction(
        self,
        rating: int,
        recorded_at: datetime,
        feedback: Optional[str] = None,
    ) -> "SalesRecord":
        """Record satisfaction once, after the sale is completed."""

        if self.status is not RecordStatus.COMPLETED:
            raise ValidationError(
                "Customer satisfaction can only be recorded for completed sales",
                field="status",
            )
        if self.customer_satisfaction is not None:
            raise ConflictError("Customer satisfaction has already been recorded")
        satisfaction = CustomerSatisfaction(rating=rating, recorded_at=recorded_at, feedback=feedback)
        return replace(self, customer_satisfaction=satisfaction)


__all__ = [
    "CustomerSatisfaction",
    "FollowUpNote",
    "FollowUpStatus",
    "LineItem",
    "MAX_MONEY",
    "PaymentMethod",
    "PaymentStatus",
    "RECORD_NUMBER_PATTERN",
    "RecordStatus",
    "SalesRecord",
    "SalesSource",
    "SalesType",
    "Totals",
    "Warranty",
    "compute_totals",
    "format_record_number",
    "record_period",
    "to_money",
]
