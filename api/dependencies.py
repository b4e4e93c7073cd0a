"""
FastAPI dependencies.

Routers receive the ledger through `Depends(get_ledger)`; tests override it
with a ledger bound to an in-memory client.
"""

from services.sales_record_ledger import SalesRecordLedger


def get_ledger() -> SalesRecordLedger:
    return SalesRecordLedger()
