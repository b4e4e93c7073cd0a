"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from domain.sales_record import (
    MAX_MONEY,
    FollowUpStatus,
    LineItem,
    PaymentMethod,
    PaymentStatus,
    RecordStatus,
    SalesRecord,
    SalesSource,
    SalesType,
    Warranty,
)
from domain.sales_stats import SalesStats
from domain.time import ensure_utc


def optional_utc(value: Optional[datetime]) -> Optional[datetime]:
    return ensure_utc(value) if value is not None else None


# ============================================================================
# Shared payloads
# ============================================================================

class LineItemPayload(BaseModel):
    """One line of a sale."""
    name: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=500)
    category: Optional[str] = Field(None, max_length=100)
    quantity: int = Field(..., ge=1)
    unit_price: Decimal = Field(..., ge=0, le=MAX_MONEY)
    total_price: Decimal = Field(..., ge=0, le=MAX_MONEY)
    inventory_item_id: Optional[UUID] = None
    service_id: Optional[UUID] = None

    def to_domain(self) -> LineItem:
        return LineItem(
            name=self.name,
            description=self.description,
            category=self.category,
            quantity=self.quantity,
            unit_price=self.unit_price,
            total_price=self.total_price,
            inventory_item_id=self.inventory_item_id,
            service_id=self.service_id,
        )

    @classmethod
    def from_domain(cls, item: LineItem) -> "LineItemPayload":
        return cls(
            name=item.name,
            description=item.description,
            category=item.category,
            quantity=item.quantity,
            unit_price=item.unit_price,
            total_price=item.total_price,
            inventory_item_id=item.inventory_item_id,
            service_id=item.service_id,
        )


class WarrantyPayload(BaseModel):
    has_warranty: bool = False
    warranty_period_months: Optional[int] = Field(None, ge=0)
    warranty_expiry: Optional[datetime] = None
    warranty_notes: Optional[str] = Field(None, max_length=500)

    def to_domain(self) -> Warranty:
        return Warranty(
            has_warranty=self.has_warranty,
            warranty_period_months=self.warranty_period_months,
            warranty_expiry=optional_utc(self.warranty_expiry),
            warranty_notes=self.warranty_notes,
        )


# ============================================================================
# Sales Record Requests
# ============================================================================

class SalesRecordCreateRequest(BaseModel):
    """
    Request to create a sales record.

    subtotal and total are accepted for compatibility with existing clients but
    ignored: the server derives both from items, tax and discount.
    """
    customer_id: UUID
    sales_person_id: UUID
    created_by: Optional[UUID] = Field(None, description="Defaults to sales_person_id")
    sales_type: SalesType
    items: List[LineItemPayload] = Field(..., min_length=1)
    subtotal: Optional[Decimal] = Field(None, description="Ignored; derived server-side")
    tax: Decimal = Field(Decimal("0"), ge=0, le=MAX_MONEY)
    discount: Decimal = Field(Decimal("0"), ge=0, le=MAX_MONEY)
    total: Optional[Decimal] = Field(None, description="Ignored; derived server-side")
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_method: Optional[PaymentMethod] = None
    payment_date: Optional[datetime] = None
    payment_reference: Optional[str] = Field(None, max_length=100)
    sales_source: SalesSource = SalesSource.WALK_IN
    converted_from_lead: bool = False
    original_lead_id: Optional[UUID] = None
    status: RecordStatus = RecordStatus.DRAFT
    sale_date: Optional[datetime] = None
    completion_date: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=1000)
    next_follow_up: Optional[datetime] = None
    warranty: Optional[WarrantyPayload] = None

    class Config:
        json_schema_extra = {
            "example": {
                "customer_id": "123e4567-e89b-12d3-a456-426614174002",
                "sales_person_id": "123e4567-e89b-12d3-a456-426614174010",
                "sales_type": "service",
                "items": [
                    {"name": "Oil change", "quantity": 1, "unit_price": "45.00", "total_price": "45.00"}
                ],
                "tax": "3.60",
                "discount": "0"
            }
        }


class SalesRecordUpdateRequest(BaseModel):
    """Partial update; omitted fields are unchanged. Record numbers cannot be changed."""
    customer_id: Optional[UUID] = None
    sales_type: Optional[SalesType] = None
    items: Optional[List[LineItemPayload]] = Field(None, min_length=1)
    subtotal: Optional[Decimal] = Field(None, description="Ignored; derived server-side")
    tax: Optional[Decimal] = Field(None, ge=0, le=MAX_MONEY)
    discount: Optional[Decimal] = Field(None, ge=0, le=MAX_MONEY)
    total: Optional[Decimal] = Field(None, description="Ignored; derived server-side")
    payment_status: Optional[PaymentStatus] = None
    payment_method: Optional[PaymentMethod] = None
    payment_date: Optional[datetime] = None
    payment_reference: Optional[str] = Field(None, max_length=100)
    sales_source: Optional[SalesSource] = None
    status: Optional[RecordStatus] = None
    sale_date: Optional[datetime] = None
    completion_date: Optional[datetime] = None
    notes: Optional[str] = Field(None, max_length=1000)
    next_follow_up: Optional[datetime] = None
    warranty: Optional[WarrantyPayload] = None


class FollowUpNoteRequest(BaseModel):
    content: str
    author_id: UUID


class ScheduleFollowUpRequest(BaseModel):
    follow_up_at: datetime


class PaymentStatusRequest(BaseModel):
    payment_status: PaymentStatus
    payment_method: Optional[PaymentMethod] = None
    payment_date: Optional[datetime] = None

    class Config:
        json_schema_extra = {
            "example": {
                "payment_status": "paid",
                "payment_method": "credit_card",
                "payment_date": "2025-01-15T10:30:00Z"
            }
        }


class PaymentResultRequest(BaseModel):
    """Outcome reported by the payment gateway."""
    succeeded: bool
    amount: Decimal = Field(..., ge=0, le=MAX_MONEY)
    payment_method: PaymentMethod
    payment_reference: Optional[str] = Field(None, max_length=100)


class CustomerSatisfactionRequest(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    feedback: Optional[str] = Field(None, max_length=1000)


# ============================================================================
# Sales Record Responses
# ============================================================================

class FollowUpNoteResponse(BaseModel):
    content: str
    author_id: UUID
    created_at: datetime


class CustomerSatisfactionResponse(BaseModel):
    rating: int
    feedback: Optional[str] = None
    recorded_at: datetime


class WarrantyResponse(BaseModel):
    has_warranty: bool
    warranty_period_months: Optional[int] = None
    warranty_expiry: Optional[datetime] = None
    warranty_notes: Optional[str] = None


class SalesRecordResponse(BaseModel):
    """A sales record as returned by the API."""
    record_id: UUID
    record_number: Optional[str]
    customer_id: UUID
    sales_person_id: UUID
    created_by: UUID
    sales_type: SalesType
    items: List[LineItemPayload]
    total_items: int
    subtotal: Decimal
    tax: Decimal
    discount: Decimal
    total: Decimal
    payment_status: PaymentStatus
    payment_method: Optional[PaymentMethod] = None
    payment_date: Optional[datetime] = None
    payment_reference: Optional[str] = None
    sales_source: SalesSource
    converted_from_lead: bool
    original_lead_id: Optional[UUID] = None
    status: RecordStatus
    sale_date: datetime
    completion_date: Optional[datetime] = None
    notes: Optional[str] = None
    follow_up_notes: List[FollowUpNoteResponse]
    next_follow_up: Optional[datetime] = None
    follow_up_status: FollowUpStatus
    customer_satisfaction: Optional[CustomerSatisfactionResponse] = None
    warranty: Optional[WarrantyResponse] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, record: SalesRecord) -> "SalesRecordResponse":
        satisfaction = record.customer_satisfaction
        warranty = record.warranty
        return cls(
            record_id=record.record_id,
            record_number=record.record_number,
            customer_id=record.customer_id,
            sales_person_id=record.sales_person_id,
            created_by=record.created_by,
            sales_type=record.sales_type,
            items=[LineItemPayload.from_domain(item) for item in record.items],
            total_items=record.total_items,
            subtotal=record.subtotal,
            tax=record.tax,
            discount=record.discount,
            total=record.total,
            payment_status=record.payment_status,
            payment_method=record.payment_method,
            payment_date=record.payment_date,
            payment_reference=record.payment_reference,
            sales_source=record.sales_source,
            converted_from_lead=record.converted_from_lead,
            original_lead_id=record.original_lead_id,
            status=record.status,
            sale_date=record.sale_date,
            completion_date=record.completion_date,
            notes=record.notes,
            follow_up_notes=[
                FollowUpNoteResponse(content=note.content, author_id=note.author_id, created_at=note.created_at)
                for note in record.follow_up_notes
            ],
            next_follow_up=record.next_follow_up,
            follow_up_status=record.follow_up_status,
            customer_satisfaction=None if satisfaction is None else CustomerSatisfactionResponse(
                rating=satisfaction.rating,
                feedback=satisfaction.feedback,
                recorded_at=satisfaction.recorded_at,
            ),
            warranty=None if warranty is None else WarrantyResponse(
                has_warranty=warranty.has_warranty,
                warranty_period_months=warranty.warranty_period_months,
                warranty_expiry=warranty.warranty_expiry,
                warranty_notes=warranty.warranty_notes,
            ),
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class PaginationResponse(BaseModel):
    current_page: int
    total_pages: int
    total_records: int
    has_next_page: bool
    has_prev_page: bool


class SalesRecordListResponse(BaseModel):
    sales_records: List[SalesRecordResponse]
    pagination: PaginationResponse


class MessageResponse(BaseModel):
    success: bool
    message: str


# ============================================================================
# Statistics Models
# ============================================================================

class StatsBucketResponse(BaseModel):
    count: int
    revenue: Decimal


class SalesOverviewResponse(BaseModel):
    total_sales: int
    total_revenue: Decimal
    total_items: int
    avg_sale_value: Decimal


class SalesStatsResponse(BaseModel):
    """Sales statistics over a date range."""
    start_date: datetime
    end_date: datetime
    overview: SalesOverviewResponse
    sales_by_type: Dict[str, StatsBucketResponse]
    sales_by_status: Dict[str, StatsBucketResponse]

    @classmethod
    def from_domain(cls, stats: SalesStats, start_date: datetime, end_date: datetime) -> "SalesStatsResponse":
        return cls(
            start_date=start_date,
            end_date=end_date,
            overview=SalesOverviewResponse(
                total_sales=stats.total_sales,
                total_revenue=stats.total_revenue,
                total_items=stats.total_items,
                avg_sale_value=stats.avg_sale_value,
            ),
            sales_by_type={
                key: StatsBucketResponse(count=bucket.count, revenue=bucket.revenue)
                for key, bucket in stats.by_type.items()
            },
            sales_by_status={
                key: StatsBucketResponse(count=bucket.count, revenue=bucket.revenue)
                for key, bucket in stats.by_status.items()
            },
        )

    class Config:
        json_schema_extra = {
            "example": {
                "start_date": "2025-01-01T00:00:00Z",
                "end_date": "2025-01-31T23:59:59Z",
                "overview": {
                    "total_sales": 3,
                    "total_revenue": "145.80",
                    "total_items": 4,
                    "avg_sale_value": "48.60"
                },
                "sales_by_type": {"service": {"count": 3, "revenue": "145.80"}},
                "sales_by_status": {"completed": {"count": 3, "revenue": "145.80"}}
            }
        }


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    error: str
    detail: Optional[str] = None
    status_code: int
    field: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "error": "Not found",
                "detail": "Sales record not found: 123e4567-e89b-12d3-a456-426614174003",
                "status_code": 404
            }
        }
