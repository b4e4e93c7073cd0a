#!/usr/bin/env python3
"""
Sample Sales Records Script

Creates a handful of realistic sales records for an existing customer. Records
go through the ledger, so record numbers and totals are assigned exactly as in
production.

Usage:
    python scripts/generate_sample_sales_records.py --customer-id <uuid> --sales-person-id <uuid>
    python scripts/generate_sample_sales_records.py --customer-id <uuid> --sales-person-id <uuid> --dry-run
"""

from __future__ import annotations

import argparse
import sys
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from pathlib import Path
from uuid import UUID

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.sales_record import (
    LineItem,
    PaymentMethod,
    PaymentStatus,
    RecordStatus,
    SalesSource,
    SalesType,
    Warranty,
    compute_totals,
)
from services.sales_record_ledger import NewSalesRecord, SalesRecordLedger


def build_sample_records(customer_id: UUID, sales_person_id: UUID, now: datetime) -> list[NewSalesRecord]:
    """Three sales: a paid oil change, a brake package, and a draft consultation."""

    oil_change_day = now - timedelta(days=14)
    brake_day = now - timedelta(days=3)

    return [
        NewSalesRecord(
            customer_id=customer_id,
            sales_person_id=sales_person_id,
            created_by=sales_person_id,
            sales_type=SalesType.SERVICE,
            items=[
                LineItem(
                    name="Full Synthetic Oil Change",
                    description="Premium full synthetic oil change with filter replacement",
                    category="Maintenance",
                    quantity=1,
                    unit_price=Decimal("89.99"),
                    total_price=Decimal("89.99"),
                ),
            ],
            tax=Decimal("9.00"),
            payment_status=PaymentStatus.PAID,
            payment_method=PaymentMethod.CREDIT_CARD,
            payment_date=oil_change_day,
            payment_reference="TXN-CC-001234",
            status=RecordStatus.COMPLETED,
            sale_date=oil_change_day,
            completion_date=oil_change_day,
            notes="Customer requested full synthetic oil. Vehicle in good condition.",
            next_follow_up=oil_change_day + timedelta(days=90),
            warranty=Warranty(
                has_warranty=True,
                warranty_period_months=12,
                warranty_expiry=oil_change_day + timedelta(days=365),
                warranty_notes="12-month warranty on parts and labor",
            ),
        ),
        NewSalesRecord(
            customer_id=customer_id,
            sales_person_id=sales_person_id,
            created_by=sales_person_id,
            sales_type=SalesType.PACKAGE,
            items=[
                LineItem(
                    name="Front Brake Pad Replacement",
                    category="Brakes",
                    quantity=1,
                    unit_price=Decimal("189.99"),
                    total_price=Decimal("189.99"),
                ),
                LineItem(
                    name="Brake Rotor Resurfacing",
                    category="Brakes",
                    quantity=2,
                    unit_price=Decimal("45.00"),
                    total_price=Decimal("90.00"),
                ),
            ],
            tax=Decimal("22.40"),
            discount=Decimal("15.00"),
            payment_status=PaymentStatus.PARTIAL,
            payment_method=PaymentMethod.CASH,
            sales_source=SalesSource.REPEAT_CUSTOMER,
            status=RecordStatus.CONFIRMED,
            sale_date=brake_day,
        ),
        NewSalesRecord(
            customer_id=customer_id,
            sales_person_id=sales_person_id,
            created_by=sales_person_id,
            sales_type=SalesType.CONSULTATION,
            items=[
                LineItem(
                    name="Pre-purchase Inspection Consultation",
                    quantity=1,
                    unit_price=Decimal("60.00"),
                    total_price=Decimal("60.00"),
                ),
            ],
            sales_source=SalesSource.PHONE,
            sale_date=now,
        ),
    ]


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Create sample sales records for an existing customer",
    )
    parser.add_argument("--customer-id", type=UUID, required=True, help="Existing customer ID")
    parser.add_argument("--sales-person-id", type=UUID, required=True, help="Sales person (user) ID")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the records and their totals without inserting"
    )

    args = parser.parse_args()
    now = datetime.now(timezone.utc)
    samples = build_sample_records(args.customer_id, args.sales_person_id, now)

    try:
        if args.dry_run:
            for sample in samples:
                totals = compute_totals(sample.items, sample.tax, sample.discount)
                print(f"[DRY RUN] {sample.sales_type.value}: subtotal {totals.subtotal}, total {totals.total}")
            return 0

        ledger = SalesRecordLedger()
        for sample in samples:
            record = ledger.create_record(sample)
            print(f"[SUCCESS] {record.record_number}: {record.sales_type.value}, total {record.total}")
        return 0

    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        return 130

    except Exception as e:
        print(f"\nFATAL ERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
