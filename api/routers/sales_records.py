"""
Sales Records API Endpoints.

CRUD, follow-ups, payment status, customer satisfaction, statistics and CSV
export for sales records. Domain errors are translated to HTTP responses by
the handlers registered in api.main.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response

from api.dependencies import get_ledger
from api.models import (
    CustomerSatisfactionRequest,
    FollowUpNoteRequest,
    MessageResponse,
    PaginationResponse,
    PaymentResultRequest,
    PaymentStatusRequest,
    SalesRecordCreateRequest,
    SalesRecordListResponse,
    SalesRecordResponse,
    SalesRecordUpdateRequest,
    SalesStatsResponse,
    ScheduleFollowUpRequest,
    optional_utc,
)
from domain.sales_record import PaymentStatus, RecordStatus, SalesRecord, SalesSource, SalesType
from domain.time import ensure_utc
from repositories.sales_record_repository import SORT_COLUMNS, SalesRecordFilters
from services.csv_export_service import generate_csv_for_sales_records
from services.sales_record_ledger import NewSalesRecord, Pagination, SalesRecordChanges, SalesRecordLedger

router = APIRouter()


def _list_response(records: list[SalesRecord], pagination: Pagination) -> SalesRecordListResponse:
    return SalesRecordListResponse(
        sales_records=[SalesRecordResponse.from_domain(record) for record in records],
        pagination=PaginationResponse(
            current_page=pagination.current_page,
            total_pages=pagination.total_pages,
            total_records=pagination.total_records,
            has_next_page=pagination.has_next_page,
            has_prev_page=pagination.has_prev_page,
        ),
    )


def _filters(
    customer_id: Optional[UUID] = Query(None),
    sales_person_id: Optional[UUID] = Query(None),
    sales_type: Optional[SalesType] = Query(None),
    status: Optional[RecordStatus] = Query(None),
    payment_status: Optional[PaymentStatus] = Query(None),
    sales_source: Optional[SalesSource] = Query(None),
    start_date: Optional[datetime] = Query(None, description="Inclusive lower bound on sale date"),
    end_date: Optional[datetime] = Query(None, description="Inclusive upper bound on sale date"),
    search: Optional[str] = Query(None, description="Matches record number or notes"),
) -> SalesRecordFilters:
    return SalesRecordFilters(
        customer_id=customer_id,
        sales_person_id=sales_person_id,
        sales_type=sales_type,
        status=status,
        payment_status=payment_status,
        sales_source=sales_source,
        start_date=optional_utc(start_date),
        end_date=optional_utc(end_date),
        search=search,
    )


@router.get(
    "/sales-records",
    response_model=SalesRecordListResponse,
    summary="List Sales Records",
    description="List sales records with filters, search, sorting and pagination."
)
def list_sales_records(
    filters: SalesRecordFilters = Depends(_filters),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    sort_by: str = Query("sale_date", description=f"One of: {', '.join(SORT_COLUMNS)}"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    ledger: SalesRecordLedger = Depends(get_ledger),
):
    """
    **Example usage:**
    - Newest first: `GET /api/v1/sales-records`
    - Paid service sales: `GET /api/v1/sales-records?sales_type=service&payment_status=paid`
    - Search: `GET /api/v1/sales-records?search=SR-202501`
    """
    if sort_by not in SORT_COLUMNS:
        raise HTTPException(status_code=400, detail=f"Invalid sort_by. Must be one of: {', '.join(SORT_COLUMNS)}")

    records, pagination = ledger.list_records(
        filters, page=page, limit=limit, sort_by=sort_by, descending=sort_order == "desc"
    )
    return _list_response(records, pagination)


@router.post(
    "/sales-records",
    response_model=SalesRecordResponse,
    status_code=201,
    summary="Create Sales Record",
    description="Create a sales record. The record number, subtotal and total are assigned by the server."
)
def create_sales_record(request: SalesRecordCreateRequest, ledger: SalesRecordLedger = Depends(get_ledger)):
    """
    **Example request:**
    ```json
    {
      "customer_id": "123e4567-e89b-12d3-a456-426614174002",
      "sales_person_id": "123e4567-e89b-12d3-a456-426614174010",
      "sales_type": "service",
      "items": [{"name": "Oil change", "quantity": 1, "unit_price": "45.00", "total_price": "45.00"}],
      "tax": "3.60"
    }
    ```

    **Response (excerpt):**
    ```json
    {"record_number": "SR-202501-0001", "subtotal": "45.00", "total": "48.60"}
    ```
    """
    record = ledger.create_record(NewSalesRecord(
        customer_id=request.customer_id,
        sales_person_id=request.sales_person_id,
        created_by=request.created_by or request.sales_person_id,
        sales_type=request.sales_type,
        items=[item.to_domain() for item in request.items],
        tax=request.tax,
        discount=request.discount,
        sale_date=optional_utc(request.sale_date),
        payment_status=request.payment_status,
        payment_method=request.payment_method,
        payment_date=optional_utc(request.payment_date),
        payment_reference=request.payment_reference,
        sales_source=request.sales_source,
        converted_from_lead=request.converted_from_lead,
        original_lead_id=request.original_lead_id,
        status=request.status,
        completion_date=optional_utc(request.completion_date),
        notes=request.notes,
        next_follow_up=optional_utc(request.next_follow_up),
        warranty=request.warranty.to_domain() if request.warranty else None,
    ))
    return SalesRecordResponse.from_domain(record)


@router.get(
    "/sales-records/stats/overview",
    response_model=SalesStatsResponse,
    summary="Sales Statistics",
    description="Totals and per-type / per-status breakdowns over an inclusive date range."
)
def get_sales_stats(
    start_date: Optional[datetime] = Query(None, description="Defaults to January 1st of the current year"),
    end_date: Optional[datetime] = Query(None, description="Defaults to now"),
    sales_person_id: Optional[UUID] = Query(None),
    ledger: SalesRecordLedger = Depends(get_ledger),
):
    now = datetime.now(timezone.utc)
    start = ensure_utc(start_date) if start_date else datetime(now.year, 1, 1, tzinfo=timezone.utc)
    end = ensure_utc(end_date) if end_date else now

    stats = ledger.get_sales_stats(start, end, sales_person_id)
    return SalesStatsResponse.from_domain(stats, start, end)


@router.get(
    "/sales-records/follow-ups/due",
    response_model=list[SalesRecordResponse],
    summary="Due Follow-ups",
    description="Records with a scheduled follow-up at or before `as_of` (default: now)."
)
def get_due_follow_ups(
    as_of: Optional[datetime] = Query(None),
    ledger: SalesRecordLedger = Depends(get_ledger),
):
    records = ledger.list_due_follow_ups(optional_utc(as_of))
    return [SalesRecordResponse.from_domain(record) for record in records]


@router.get(
    "/sales-records/export",
    summary="Export Sales Records CSV",
    description="Download matching sales records as CSV.",
    response_class=Response
)
def export_sales_records(
    filters: SalesRecordFilters = Depends(_filters),
    limit: int = Query(1000, ge=1, le=10000),
    ledger: SalesRecordLedger = Depends(get_ledger),
):
    """
    **Security:**
    - CSV injection prevention (dangerous leading characters stripped)
    - Stripped characters are logged for audit

    **Response:**
    CSV file download with filename: `sales_records.csv`
    """
    records, _ = ledger.list_records(filters, page=1, limit=limit)
    csv_content = generate_csv_for_sales_records(records, ledger.customers_for(records))

    return Response(
        content=csv_content,
        media_type="text/csv",
        headers={
            "Content-Disposition": "attachment; filename=sales_records.csv"
        }
    )


@router.get(
    "/sales-records/customer/{customer_id}",
    response_model=SalesRecordListResponse,
    summary="Customer Sales History",
)
def get_customer_sales_records(
    customer_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    ledger: SalesRecordLedger = Depends(get_ledger),
):
    records, pagination = ledger.list_customer_records(customer_id, page=page, limit=limit)
    return _list_response(records, pagination)


@router.get(
    "/sales-records/{record_id}",
    response_model=SalesRecordResponse,
    summary="Get Sales Record",
)
def get_sales_record(record_id: UUID, ledger: SalesRecordLedger = Depends(get_ledger)):
    return SalesRecordResponse.from_domain(ledger.get_record(record_id))


@router.put(
    "/sales-records/{record_id}",
    response_model=SalesRecordResponse,
    summary="Update Sales Record",
    description="Partial update. Subtotal and total are re-derived; the record number never changes."
)
def update_sales_record(
    record_id: UUID,
    request: SalesRecordUpdateRequest,
    ledger: SalesRecordLedger = Depends(get_ledger),
):
    changes = SalesRecordChanges(
        customer_id=request.customer_id,
        sales_type=request.sales_type,
        items=[item.to_domain() for item in request.items] if request.items is not None else None,
        tax=request.tax,
        discount=request.discount,
        payment_status=request.payment_status,
        payment_method=request.payment_method,
        payment_date=optional_utc(request.payment_date),
        payment_reference=request.payment_reference,
        sales_source=request.sales_source,
        status=request.status,
        sale_date=optional_utc(request.sale_date),
        completion_date=optional_utc(request.completion_date),
        notes=request.notes,
        next_follow_up=optional_utc(request.next_follow_up),
        warranty=request.warranty.to_domain() if request.warranty else None,
    )
    return SalesRecordResponse.from_domain(ledger.update_record(record_id, changes))


@router.delete(
    "/sales-records/{record_id}",
    response_model=MessageResponse,
    summary="Delete Sales Record",
)
def delete_sales_record(record_id: UUID, ledger: SalesRecordLedger = Depends(get_ledger)):
    ledger.delete_record(record_id)
    return MessageResponse(success=True, message="Sales record deleted successfully")


@router.post(
    "/sales-records/{record_id}/follow-up",
    response_model=SalesRecordResponse,
    summary="Add Follow-up Note",
)
def add_follow_up_note(
    record_id: UUID,
    request: FollowUpNoteRequest,
    ledger: SalesRecordLedger = Depends(get_ledger),
):
    record = ledger.add_follow_up_note(record_id, request.content, request.author_id)
    return SalesRecordResponse.from_domain(record)


@router.put(
    "/sales-records/{record_id}/follow-up/schedule",
    response_model=SalesRecordResponse,
    summary="Schedule Follow-up",
)
def schedule_follow_up(
    record_id: UUID,
    request: ScheduleFollowUpRequest,
    ledger: SalesRecordLedger = Depends(get_ledger),
):
    record = ledger.schedule_follow_up(record_id, ensure_utc(request.follow_up_at))
    return SalesRecordResponse.from_domain(record)


@router.put(
    "/sales-records/{record_id}/payment",
    response_model=SalesRecordResponse,
    summary="Update Payment Status",
    description="Set payment status and optionally the method and date. Any status may follow any other."
)
def update_payment_status(
    record_id: UUID,
    request: PaymentStatusRequest,
    ledger: SalesRecordLedger = Depends(get_ledger),
):
    record = ledger.update_payment_status(
        record_id,
        request.payment_status,
        request.payment_method,
        optional_utc(request.payment_date),
    )
    return SalesRecordResponse.from_domain(record)


@router.post(
    "/sales-records/{record_id}/payment-result",
    response_model=SalesRecordResponse,
    summary="Apply Payment Result",
    description="Apply the outcome reported by the payment gateway (paid, partial or unchanged)."
)
def apply_payment_result(
    record_id: UUID,
    request: PaymentResultRequest,
    ledger: SalesRecordLedger = Depends(get_ledger),
):
    record = ledger.apply_payment_result(
        record_id,
        succeeded=request.succeeded,
        amount=request.amount,
        payment_method=request.payment_method,
        payment_reference=request.payment_reference,
    )
    return SalesRecordResponse.from_domain(record)


@router.post(
    "/sales-records/{record_id}/satisfaction",
    response_model=SalesRecordResponse,
    summary="Record Customer Satisfaction",
    description="Record a 1-5 rating once the sale is completed. Can only be set once."
)
def record_customer_satisfaction(
    record_id: UUID,
    request: CustomerSatisfactionRequest,
    ledger: SalesRecordLedger = Depends(get_ledger),
):
    record = ledger.record_customer_satisfaction(record_id, request.rating, request.feedback)
    return SalesRecordResponse.from_domain(record)
