"""
Sales record repository (persistence).

This module provides *only* persistence operations for the SalesRecord domain
entity: row conversion, inserts, updates, lookups, filtered listing and the
per-month record-number sequence. Business rules (numbering retries, totals,
follow-up rules) live in the domain model and the ledger service.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple
from uuid import UUID

from postgrest.exceptions import APIError
from supabase import Client  # type: ignore[import-not-found]

from domain.errors import DuplicateRecordNumberError, RepositoryError
from domain.sales_record import (
    CustomerSatisfaction,
    FollowUpNote,
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
from domain.time import require_utc_timestamp
from repositories.client import resolve_client

# Supabase table and RPC names.
# Keep these aligned with sql/sales_records.sql.
_SALES_RECORDS_TABLE: str = "sales_records"
_NEXT_SEQUENCE_RPC: str = "next_sales_record_sequence"

# PostgreSQL unique_violation
_UNIQUE_VIOLATION: str = "23505"

# API sort field -> column
SORT_COLUMNS: Dict[str, str] = {
    "sale_date": "sale_date_utc",
    "record_number": "record_number",
    "total": "total",
    "status": "status",
    "payment_status": "payment_status",
    "created_at": "created_at_utc",
}


@dataclass(frozen=True, slots=True)
class SalesRecordFilters:
    """Filter criteria for sales record listings. Date bounds are inclusive."""
    customer_id: Optional[UUID] = None
    sales_person_id: Optional[UUID] = None
    sales_type: Optional[SalesType] = None
    status: Optional[RecordStatus] = None
    payment_status: Optional[PaymentStatus] = None
    sales_source: Optional[SalesSource] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    search: Optional[str] = None


def _to_iso_utc(dt: Optional[datetime], *, name: str) -> Optional[str]:
    """Serialize a UTC datetime to ISO-8601 (timezone-aware, offset 0)."""

    if dt is None:
        return None
    require_utc_timestamp(name, dt)
    return dt.astimezone(timezone.utc).isoformat()


def _parse_utc_datetime(value: Any) -> datetime:
    """
    Parse a Supabase timestamp into a timezone-aware UTC datetime.

    Supabase commonly returns ISO-8601 strings, sometimes with a trailing 'Z'.
    """

    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")

    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _optional_datetime(value: Any) -> Optional[datetime]:
    return _parse_utc_datetime(value) if value else None


def _optional_uuid(value: Any) -> Optional[UUID]:
    return UUID(str(value)) if value else None


def _optional_str(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def _item_to_json(item: LineItem) -> Dict[str, Any]:
    return {
        "name": item.name,
        "description": item.description,
        "category": item.category,
        "quantity": item.quantity,
        "unit_price": str(item.unit_price),
        "total_price": str(item.total_price),
        "inventory_item_id": _optional_str(item.inventory_item_id),
        "service_id": _optional_str(item.service_id),
    }


def _item_from_json(data: Mapping[str, Any]) -> LineItem:
    return LineItem(
        name=str(data["name"]),
        description=data.get("description"),
        category=data.get("category"),
        quantity=int(data["quantity"]),
        unit_price=Decimal(str(data["unit_price"])),
        total_price=Decimal(str(data["total_price"])),
        inventory_item_id=_optional_uuid(data.get("inventory_item_id")),
        service_id=_optional_uuid(data.get("service_id")),
    )


def _record_to_row(record: SalesRecord) -> Dict[str, Any]:
    """Convert a SalesRecord into a Supabase row payload."""

    satisfaction = record.customer_satisfaction
    warranty = record.warranty

    return {
        "record_id": str(record.record_id),
        "record_number": record.record_number,
        "customer_id": str(record.customer_id),
        "sales_type": record.sales_type.value,
        "items": [_item_to_json(item) for item in record.items],
        "subtotal": str(record.subtotal),
        "tax": str(record.tax),
        "discount": str(record.discount),
        "total": str(record.total),
        "payment_status": record.payment_status.value,
        "payment_method": record.payment_method.value if record.payment_method else None,
        "payment_date_utc": _to_iso_utc(record.payment_date, name="payment_date"),
        "payment_reference": record.payment_reference,
        "sales_person_id": str(record.sales_person_id),
        "sales_source": record.sales_source.value,
        "converted_from_lead": record.converted_from_lead,
        "original_lead_id": _optional_str(record.original_lead_id),
        "status": record.status.value,
        "sale_date_utc": _to_iso_utc(record.sale_date, name="sale_date"),
        "completion_date_utc": _to_iso_utc(record.completion_date, name="completion_date"),
        "notes": record.notes,
        "follow_up_notes": [
            {
                "content": note.content,
                "author_id": str(note.author_id),
                "created_at_utc": _to_iso_utc(note.created_at, name="follow_up_notes.created_at"),
            }
            for note in record.follow_up_notes
        ],
        "next_follow_up_utc": _to_iso_utc(record.next_follow_up, name="next_follow_up"),
        "follow_up_status": record.follow_up_status.value,
        "customer_satisfaction": None if satisfaction is None else {
            "rating": satisfaction.rating,
            "feedback": satisfaction.feedback,
            "recorded_at_utc": _to_iso_utc(satisfaction.recorded_at, name="customer_satisfaction.recorded_at"),
        },
        "warranty": None if warranty is None else {
            "has_warranty": warranty.has_warranty,
            "warranty_period_months": warranty.warranty_period_months,
            "warranty_expiry_utc": _to_iso_utc(warranty.warranty_expiry, name="warranty.warranty_expiry"),
            "warranty_notes": warranty.warranty_notes,
        },
        "created_by": str(record.created_by),
        "created_at_utc": _to_iso_utc(record.created_at, name="created_at"),
        "updated_at_utc": _to_iso_utc(record.updated_at, name="updated_at"),
    }


def _row_to_record(row: Mapping[str, Any]) -> SalesRecord:
    """Convert a Supabase row into a SalesRecord. Stored subtotal/total are re-derived."""

    satisfaction = row.get("customer_satisfaction")
    warranty = row.get("warranty")

    return SalesRecord(
        record_id=UUID(str(row["record_id"])),
        record_number=row.get("record_number"),
        customer_id=UUID(str(row["customer_id"])),
        sales_person_id=UUID(str(row["sales_person_id"])),
        created_by=UUID(str(row["created_by"])),
        sales_type=SalesType(str(row["sales_type"])),
        items=tuple(_item_from_json(item) for item in row.get("items") or []),
        sale_date=_parse_utc_datetime(row["sale_date_utc"]),
        tax=Decimal(str(row.get("tax") or "0")),
        discount=Decimal(str(row.get("discount") or "0")),
        payment_status=PaymentStatus(str(row.get("payment_status") or PaymentStatus.PENDING.value)),
        payment_method=PaymentMethod(str(row["payment_method"])) if row.get("payment_method") else None,
        payment_date=_optional_datetime(row.get("payment_date_utc")),
        payment_reference=row.get("payment_reference"),
        sales_source=SalesSource(str(row.get("sales_source") or SalesSource.WALK_IN.value)),
        converted_from_lead=bool(row.get("converted_from_lead", False)),
        original_lead_id=_optional_uuid(row.get("original_lead_id")),
        status=RecordStatus(str(row.get("status") or RecordStatus.DRAFT.value)),
        completion_date=_optional_datetime(row.get("completion_date_utc")),
        notes=row.get("notes"),
        follow_up_notes=tuple(
            FollowUpNote(
                content=str(note["content"]),
                author_id=UUID(str(note["author_id"])),
                created_at=_parse_utc_datetime(note["created_at_utc"]),
            )
            for note in row.get("follow_up_notes") or []
        ),
        next_follow_up=_optional_datetime(row.get("next_follow_up_utc")),
        follow_up_status=FollowUpStatus(str(row.get("follow_up_status") or FollowUpStatus.SCHEDULED.value)),
        customer_satisfaction=None if not satisfaction else CustomerSatisfaction(
            rating=int(satisfaction["rating"]),
            feedback=satisfaction.get("feedback"),
            recorded_at=_parse_utc_datetime(satisfaction["recorded_at_utc"]),
        ),
        warranty=None if not warranty else Warranty(
            has_warranty=bool(warranty.get("has_warranty", False)),
            warranty_period_months=warranty.get("warranty_period_months"),
            warranty_expiry=_optional_datetime(warranty.get("warranty_expiry_utc")),
            warranty_notes=warranty.get("warranty_notes"),
        ),
        created_at=_optional_datetime(row.get("created_at_utc")),
        updated_at=_optional_datetime(row.get("updated_at_utc")),
    )


def _execute(query: Any, action: str) -> Any:
    """Run a query builder, turning PostgREST failures into RepositoryError."""

    try:
        response = query.execute()
    except APIError as e:
        raise RepositoryError(f"Failed to {action}: {e.message or e}") from e

    error = getattr(response, "error", None)
    if error:
        raise RepositoryError(f"Failed to {action}: {error}")
    return response


def _rows(response: Any) -> List[Mapping[str, Any]]:
    return getattr(response, "data", None) or []


def reserve_record_sequence(period: str, db: Optional[Client] = None) -> int:
    """
    Atomically reserve the next sequence value for a YYYYMM period.

    Backed by the next_sales_record_sequence() PostgreSQL function, which
    upserts the period's counter row and increments it in one statement, so
    concurrent callers never receive the same value.

    Returns:
        The reserved value (1 for the first sale of the period)
    """

    response = _execute(
        resolve_client(db).rpc(_NEXT_SEQUENCE_RPC, {"p_period": period}),
        f"reserve record sequence for {period}",
    )

    # Scalar functions come back bare; some client versions wrap them.
    value = getattr(response, "data", None)
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, Mapping):
        value = next(iter(value.values()), None)
    if value is None:
        raise RepositoryError(f"Record sequence RPC returned no value for {period}")

    return int(value)


def insert_sales_record(record: SalesRecord, db: Optional[Client] = None) -> SalesRecord:
    """
    Insert a new sales record.

    Raises:
        DuplicateRecordNumberError: record_number violates the unique index
        RepositoryError: any other storage failure
    """

    if record.record_number is None:
        raise ValueError("record_number must be assigned before insert")

    try:
        response = resolve_client(db).table(_SALES_RECORDS_TABLE).insert(_record_to_row(record)).execute()
    except APIError as e:
        if e.code == _UNIQUE_VIOLATION:
            raise DuplicateRecordNumberError(record.record_number) from e
        raise RepositoryError(f"Failed to insert sales record: {e.message or e}") from e

    if getattr(response, "error", None):
        raise RepositoryError(f"Failed to insert sales record: {response.error}")
    return record


def update_sales_record(record: SalesRecord, db: Optional[Client] = None) -> SalesRecord:
    """
    Persist the mutable fields of an existing record.

    record_id, record_number, created_by and created_at are never written.

    Returns:
        The record as stored, or the given record when the update returned
        no representation.
    """

    payload = _record_to_row(record)
    for immutable in ("record_id", "record_number", "created_by", "created_at_utc"):
        payload.pop(immutable, None)

    response = _execute(
        resolve_client(db).table(_SALES_RECORDS_TABLE)
        .update(payload)
        .eq("record_id", str(record.record_id)),
        "update sales record",
    )
    rows = _rows(response)
    return _row_to_record(rows[0]) if rows else record


def get_sales_record_by_id(record_id: UUID, db: Optional[Client] = None) -> Optional[SalesRecord]:
    """
    Retrieve a single sales record by its ID.

    Returns:
        SalesRecord or None if not found
    """

    response = _execute(
        resolve_client(db).table(_SALES_RECORDS_TABLE)
        .select("*")
        .eq("record_id", str(record_id))
        .limit(1),
        "get sales record",
    )
    rows = _rows(response)

    if not rows:
        return None

    return _row_to_record(rows[0])


def delete_sales_record(record_id: UUID, db: Optional[Client] = None) -> bool:
    """
    Delete a sales record.

    Returns:
        True if a row was deleted, False if none matched
    """

    response = _execute(
        resolve_client(db).table(_SALES_RECORDS_TABLE)
        .delete()
        .eq("record_id", str(record_id)),
        "delete sales record",
    )
    rows = _rows(response)
    return bool(rows)


def _search_clause(term: str) -> Optional[str]:
    # PostgREST or() syntax reserves commas and parentheses
    cleaned = "".join(ch for ch in term if ch not in ",()").strip()
    if not cleaned:
        return None
    return f"record_number.ilike.%{cleaned}%,notes.ilike.%{cleaned}%"


def list_sales_records(
    filters: SalesRecordFilters,
    page: int = 1,
    limit: int = 10,
    sort_by: str = "sale_date",
    descending: bool = True,
    db: Optional[Client] = None,
) -> Tuple[List[SalesRecord], int]:
    """
    List sales records with filters, sorting and pagination.

    Args:
        filters: Query filters
        page: 1-based page number
        limit: Page size
        sort_by: One of SORT_COLUMNS
        descending: Sort direction

    Returns:
        (records on the requested page, total matching count)
    """

    if page < 1 or limit < 1:
        raise ValueError("page and limit must be positive")
    if sort_by not in SORT_COLUMNS:
        raise ValueError(f"Unsupported sort field: {sort_by}")

    query = resolve_client(db).table(_SALES_RECORDS_TABLE).select("*", count="exact")

    if filters.customer_id:
        query = query.eq("customer_id", str(filters.customer_id))
    if filters.sales_person_id:
        query = query.eq("sales_person_id", str(filters.sales_person_id))
    if filters.sales_type:
        query = query.eq("sales_type", filters.sales_type.value)
    if filters.status:
        query = query.eq("status", filters.status.value)
    if filters.payment_status:
        query = query.eq("payment_status", filters.payment_status.value)
    if filters.sales_source:
        query = query.eq("sales_source", filters.sales_source.value)
    if filters.start_date:
        query = query.gte("sale_date_utc", _to_iso_utc(filters.start_date, name="start_date"))
    if filters.end_date:
        query = query.lte("sale_date_utc", _to_iso_utc(filters.end_date, name="end_date"))
    if filters.search:
        clause = _search_clause(filters.search)
        if clause:
            query = query.or_(clause)

    offset = (page - 1) * limit
    query = query.order(SORT_COLUMNS[sort_by], desc=descending).range(offset, offset + limit - 1)

    response = _execute(query, "list sales records")
    rows = _rows(response)
    total = getattr(response, "count", None)

    return [_row_to_record(row) for row in rows], int(total if total is not None else len(rows))


def list_sales_records_in_range(
    start: datetime,
    end: datetime,
    sales_person_id: Optional[UUID] = None,
    db: Optional[Client] = None,
) -> List[SalesRecord]:
    """
    All sales records with start <= sale_date <= end, optionally for one sales person.
    """

    query = (
        resolve_client(db).table(_SALES_RECORDS_TABLE)
        .select("*")
        .gte("sale_date_utc", _to_iso_utc(start, name="start"))
        .lte("sale_date_utc", _to_iso_utc(end, name="end"))
    )
    if sales_person_id:
        query = query.eq("sales_person_id", str(sales_person_id))

    rows = _rows(_execute(query, "list sales records in range"))
    return [_row_to_record(row) for row in rows]


def list_due_follow_ups(as_of: datetime, db: Optional[Client] = None) -> List[SalesRecord]:
    """Scheduled follow-ups whose next_follow_up is at or before `as_of`, oldest first."""

    response = _execute(
        resolve_client(db).table(_SALES_RECORDS_TABLE)
        .select("*")
        .eq("follow_up_status", FollowUpStatus.SCHEDULED.value)
        .lte("next_follow_up_utc", _to_iso_utc(as_of, name="as_of"))
        .order("next_follow_up_utc"),
        "list due follow-ups",
    )
    rows = _rows(response)
    return [_row_to_record(row) for row in rows]


__all__ = [
    "SORT_COLUMNS",
    "SalesRecordFilters",
    "reserve_record_sequence",
    "insert_sales_record",
    "update_sales_record",
    "get_sales_record_by_id",
    "delete_sales_record",
    "list_sales_records",
    "list_sales_records_in_range",
    "list_due_follow_ups",
]
