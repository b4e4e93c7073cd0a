"""
Pytest configuration.

Adds the project root to the Python path so that tests can import domain,
repositories, services and api, and provides an in-memory Supabase double so
the ledger can be exercised without a database.
"""

import sys
from pathlib import Path

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))
sys.path.insert(0, str(Path(__file__).parent))

from factories import CUSTOMER_ID  # noqa: E402
from fake_supabase import FakeSupabase  # noqa: E402
from services.sales_record_ledger import SalesRecordLedger  # noqa: E402


@pytest.fixture
def fake_db() -> FakeSupabase:
    db = FakeSupabase()
    db.add_customer(CUSTOMER_ID)
    return db


@pytest.fixture
def ledger(fake_db: FakeSupabase) -> SalesRecordLedger:
    return SalesRecordLedger(db=fake_db)
