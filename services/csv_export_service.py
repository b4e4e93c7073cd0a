"""
CSV export service for sales records.

Generates CSV files with one row per sales record: record number, dates,
customer, type and status, payment details and money fields.

Security:
- CSV Injection Prevention: Sanitizes all free-text fields to prevent formula execution
- Security Logging: Logs when dangerous characters are stripped
"""

from __future__ import annotations

import csv
import logging
from io import StringIO
from typing import Iterable, Mapping, Optional
from uuid import UUID

from domain.customer import Customer
from domain.sales_record import SalesRecord

logger = logging.getLogger(__name__)

CSV_HEADER = [
    "Record Number",
    "Sale Date",
    "Customer",
    "Sales Type",
    "Status",
    "Payment Status",
    "Payment Method",
    "Items",
    "Subtotal",
    "Tax",
    "Discount",
    "Total",
    "Sales Source",
    "Sales Person ID",
    "Notes",
]


def sanitize_csv_field(value: str | None, field_name: str = "unknown") -> str:
    """
    Sanitize field to prevent CSV injection attacks with security logging.

    Strips leading characters that can trigger formula execution in Excel/Sheets:
    =, +, -, @, tab, carriage return

    If dangerous characters are found and stripped, a warning is logged for
    security monitoring.

    Example:
        sanitize_csv_field("=HYPERLINK(...)", "notes")
        # Returns "HYPERLINK(...)" and logs warning about stripped "=" character

        sanitize_csv_field("Brake pads", "notes")
        # Returns "Brake pads" (unchanged, no logging)
    """
    if value is None or value == "":
        return ""

    text = str(value).strip()
    original_text = text
    dangerous_chars = {'=', '+', '-', '@', '\t', '\r'}

    stripped_chars = []
    while text and text[0] in dangerous_chars:
        stripped_chars.append(text[0])
        text = text[1:]

    if stripped_chars:
        logger.warning(
            f"CSV injection character(s) stripped from field '{field_name}'",
            extra={
                "field_name": field_name,
                "stripped_characters": "".join(stripped_chars),
                "original_value": original_text[:100],
                "sanitized_value": text[:100],
                "modification_type": "csv_injection_prevention"
            }
        )

    return text


def _customer_label(customer_id: UUID, customers: Mapping[UUID, Customer]) -> str:
    customer: Optional[Customer] = customers.get(customer_id)
    if customer is None:
        return str(customer_id)
    return sanitize_csv_field(customer.display_name, "customer")


def generate_csv_for_sales_records(
    records: Iterable[SalesRecord],
    customers: Optional[Mapping[UUID, Customer]] = None,
) -> str:
    """
    Generate CSV content for the given sales records.

    Args:
        records: Sales records to export, in output order
        customers: Optional customer lookup used to label the Customer column;
            records whose customer is missing fall back to the customer ID

    Returns:
        CSV content as a string (header row always present)
    """
    customers = customers or {}

    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(CSV_HEADER)

    for record in records:
        writer.writerow([
            record.record_number or "",
            record.sale_date.isoformat(),
            _customer_label(record.customer_id, customers),
            record.sales_type.value,
            record.status.value,
            record.payment_status.value,
            record.payment_method.value if record.payment_method else "",
            record.total_items,
            str(record.subtotal),
            str(record.tax),
            str(record.discount),
            str(record.total),
            record.sales_source.value,
            str(record.sales_person_id),
            sanitize_csv_field(record.notes, "notes"),
        ])

    return output.getvalue()


__all__ = [
    "CSV_HEADER",
    "generate_csv_for_sales_records",
    "sanitize_csv_field",
]
