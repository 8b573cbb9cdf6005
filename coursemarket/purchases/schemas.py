"""Pydantic schemas for purchases."""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from .models import Purchase, PurchaseStatus


class PurchaseResponse(BaseModel):
    """Purchase as shown to its buyer."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    course_id: UUID
    amount: Decimal
    currency: str
    status: PurchaseStatus
    paid_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_purchase(cls, purchase: Purchase) -> "PurchaseResponse":
        return cls.model_validate(purchase)


class PurchaseListResponse(BaseModel):
    """Caller's purchases, newest first."""

    items: list[PurchaseResponse]
    total: int
