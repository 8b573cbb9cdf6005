"""Database models for users.

Users are managed by the identity service; this service only reads them to
authorise requests and to attribute payments arriving from the webhook.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from coursemarket.auth.permissions import UserRole


USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.users (
    id UUID PRIMARY KEY,
    email TEXT,
    name TEXT,
    role TEXT,
    is_active BOOLEAN,
    created_at TIMESTAMP
)
"""

USER_EMAIL_INDEX_CQL = """
CREATE INDEX IF NOT EXISTS users_email_idx ON {keyspace}.users (email)
"""

AUTH_TABLES_CQL = [
    USER_TABLE_CQL,
    USER_EMAIL_INDEX_CQL,
]


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


class User:
    """User entity.

    Attributes:
        id: Unique identifier (UUID)
        email: Unique, lower-cased email address
        name: Display name
        role: student, instructor or admin
        is_active: Account status
        created_at: Account creation timestamp
    """

    def __init__(
        self,
        id: UUID | None = None,
        email: str = "",
        name: str = "",
        role: str = UserRole.STUDENT.value,
        is_active: bool = True,
        created_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.email = email.lower().strip()
        self.name = name
        self.role = role
        self.is_active = is_active
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)

    @classmethod
    def from_row(cls, row: Any) -> "User":
        """Create User instance from Cassandra row."""
        return cls(
            id=row.id,
            email=row.email or "",
            name=row.name or "",
            role=row.role or UserRole.STUDENT.value,
            is_active=row.is_active if row.is_active is not None else True,
            created_at=row.created_at,
        )

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role})>"
