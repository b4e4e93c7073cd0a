"""
Domain: Customer (shop client) accounts.

Only the fields needed to resolve a sales record's customer reference and to
label exports. Everything else about customers lives outside this service.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from .time import require_utc_timestamp


@dataclass(frozen=True, slots=True)
class Customer:
    """
    Customer referenced by sales records.

    Business customers carry a business_name; walk-in customers usually only a
    contact_name.
    """

    customer_id: UUID

    business_name: Optional[str] = None
    contact_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)

    @property
    def display_name(self) -> str:
        """Name shown on exports: business name first, then contact name."""
        return self.business_name or self.contact_name or self.email or str(self.customer_id)
