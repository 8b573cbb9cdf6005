"""Purchase models and Cassandra schema.

The purchase ledger is the single source of truth for paid access. It keeps
exactly one row per (user, course): repeated checkout attempts reuse the row
while it is pending or failed, and a paid row is never modified again.

Status transitions:
- (none)    -> pending   checkout initiation
- (none)    -> paid      webhook for a checkout we never saw start
- pending   -> paid      webhook checkout.session.completed
- failed    -> paid      webhook checkout.session.completed (retry succeeded)
- pending   -> failed    webhook payment_intent.payment_failed
- failed    -> pending   checkout initiation retried
"""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4


if TYPE_CHECKING:
    from cassandra.cluster import Row


class PurchaseStatus(str, Enum):
    """Persisted purchase status."""

    PENDING = "pending"  # Checkout started, awaiting provider confirmation
    PAID = "paid"  # Terminal, grants access
    FAILED = "failed"  # Provider reported failure, retry allowed


# Statuses a paid transition may start from
PAYABLE_STATUSES = (PurchaseStatus.PENDING.value, PurchaseStatus.FAILED.value)

DEFAULT_CURRENCY = "usd"
DEFAULT_PROVIDER = "stripe"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

PURCHASES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.purchases (
    user_id UUID,
    course_id UUID,
    purchase_id UUID,
    amount DECIMAL,
    currency TEXT,
    status TEXT,
    payment_provider TEXT,
    provider_session_id TEXT,
    paid_at TIMESTAMP,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY ((user_id), course_id)
)
"""

# Mirror for per-course reporting (sales stats)
PURCHASES_BY_COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.purchases_by_course (
    course_id UUID,
    user_id UUID,
    purchase_id UUID,
    amount DECIMAL,
    currency TEXT,
    status TEXT,
    payment_provider TEXT,
    provider_session_id TEXT,
    paid_at TIMESTAMP,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY ((course_id), user_id)
)
"""

PURCHASES_TABLES_CQL = [
    PURCHASES_TABLE_CQL,
    PURCHASES_BY_COURSE_TABLE_CQL,
]


# ==============================================================================
# Entity
# ==============================================================================


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


@dataclass
class Purchase:
    """A user's purchase of a course."""

    user_id: UUID
    course_id: UUID
    amount: Decimal
    status: PurchaseStatus = PurchaseStatus.PENDING
    currency: str = DEFAULT_CURRENCY
    id: UUID = field(default_factory=uuid4)
    payment_provider: str = DEFAULT_PROVIDER
    provider_session_id: str | None = None
    paid_at: datetime | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_row(cls, row: "Row") -> "Purchase":
        """Create instance from Cassandra row."""
        return cls(
            user_id=row.user_id,
            course_id=row.course_id,
            id=row.purchase_id,
            amount=row.amount if row.amount is not None else Decimal("0.00"),
            currency=row.currency or DEFAULT_CURRENCY,
            status=PurchaseStatus(row.status),
            payment_provider=row.payment_provider or DEFAULT_PROVIDER,
            provider_session_id=row.provider_session_id,
            paid_at=ensure_utc_aware(row.paid_at),
            created_at=ensure_utc_aware(row.created_at) or datetime.now(UTC),
            updated_at=ensure_utc_aware(row.updated_at) or datetime.now(UTC),
        )

    @property
    def is_paid(self) -> bool:
        return self.status == PurchaseStatus.PAID
