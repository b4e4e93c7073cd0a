"""
Customer repository.

Read-only lookups used to resolve the customer reference of a sales record.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional
from uuid import UUID

from postgrest.exceptions import APIError
from supabase import Client  # type: ignore[import-not-found]

from domain.customer import Customer
from domain.errors import RepositoryError
from repositories.client import resolve_client

_CUSTOMERS_TABLE: str = "customers"


def _execute(query: Any, action: str) -> Any:
    try:
        response = query.execute()
    except APIError as e:
        raise RepositoryError(f"Failed to {action}: {e.message or e}") from e

    error = getattr(response, "error", None)
    if error:
        raise RepositoryError(f"Failed to {action}: {error}")
    return response


def _parse_utc_datetime(value: Any) -> datetime:
    """Parse a Supabase timestamp into a timezone-aware UTC datetime."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.replace("Z", "+00:00")
        dt = datetime.fromisoformat(text)
    else:
        raise TypeError(f"Unsupported timestamp type: {type(value)!r}")

    if dt.tzinfo is None or dt.utcoffset() is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def _row_to_customer(row: Mapping[str, Any]) -> Customer:
    return Customer(
        customer_id=UUID(str(row["customer_id"])),
        business_name=row.get("business_name"),
        contact_name=row.get("contact_name"),
        email=row.get("email"),
        phone=row.get("phone"),
        created_at=_parse_utc_datetime(row["created_at_utc"]) if row.get("created_at_utc") else None,
    )


def get_customer_by_id(customer_id: UUID, db: Optional[Client] = None) -> Optional[Customer]:
    """
    Get a customer by ID.

    Returns:
        Customer domain model or None if not found
    """
    response = _execute(
        resolve_client(db).table(_CUSTOMERS_TABLE)
        .select("*")
        .eq("customer_id", str(customer_id))
        .limit(1),
        "fetch customer",
    )

    rows = getattr(response, "data", None) or []

    if not rows:
        return None

    return _row_to_customer(rows[0])


def get_customers_by_ids(customer_ids: Iterable[UUID], db: Optional[Client] = None) -> Dict[UUID, Customer]:
    """
    Fetch several customers at once.

    Returns:
        Mapping of customer_id -> Customer; unknown IDs are absent.
    """
    ids = sorted({str(customer_id) for customer_id in customer_ids})
    if not ids:
        return {}

    response = _execute(
        resolve_client(db).table(_CUSTOMERS_TABLE).select("*").in_("customer_id", ids),
        "fetch customers",
    )

    rows = getattr(response, "data", None) or []
    customers = [_row_to_customer(row) for row in rows]
    return {customer.customer_id: customer for customer in customers}


def customer_exists(customer_id: UUID, db: Optional[Client] = None) -> bool:
    return get_customer_by_id(customer_id, db=db) is not None


__all__ = [
    "get_customer_by_id",
    "get_customers_by_ids",
    "customer_exists",
]
