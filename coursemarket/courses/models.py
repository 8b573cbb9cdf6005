"""Database models for the course catalogue.

Cassandra table definitions for:
- Courses: Main course table, price stored in minor units
- Lookup tables: Courses by instructor for the instructor dashboard, and the
  whole catalogue clustered by creation time for listing

Courses are never hard-deleted. ``material_ids`` keeps the upload order of the
course's files and is maintained by the files module.
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from coursemarket.auth.permissions import is_admin


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses (
    id UUID PRIMARY KEY,
    title TEXT,
    description TEXT,
    price_cents INT,
    instructor_id UUID,
    material_ids LIST<UUID>,
    created_at TIMESTAMP,
    updated_at TIMESTAMP
)
"""

COURSES_BY_INSTRUCTOR_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses_by_instructor (
    instructor_id UUID,
    created_at TIMESTAMP,
    course_id UUID,
    PRIMARY KEY (instructor_id, created_at, course_id)
) WITH CLUSTERING ORDER BY (created_at DESC, course_id ASC)
"""

# Single catalogue partition, newest first
COURSES_BY_RECENCY_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.courses_by_recency (
    catalog TEXT,
    created_at TIMESTAMP,
    course_id UUID,
    PRIMARY KEY (catalog, created_at, course_id)
) WITH CLUSTERING ORDER BY (created_at DESC, course_id ASC)
"""

CATALOG_PARTITION = "all"

COURSES_TABLES_CQL = [
    COURSE_TABLE_CQL,
    COURSES_BY_INSTRUCTOR_TABLE_CQL,
    COURSES_BY_RECENCY_TABLE_CQL,
]


# ==============================================================================
# Helper Functions
# ==============================================================================


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def cents_to_amount(cents: int) -> Decimal:
    """Convert minor units to a two-decimal major-unit amount (2500 -> 25.00)."""
    return (Decimal(cents) / 100).quantize(Decimal("0.01"))


# ==============================================================================
# Entity Classes
# ==============================================================================


class Course:
    """Course entity.

    Attributes:
        id: Unique identifier (UUID)
        title: Course title
        description: Course description
        price_cents: Price in minor currency units, never negative
        instructor_id: Owning instructor
        material_ids: Ordered file ids attached to the course
        created_at: Creation timestamp
        updated_at: Last update timestamp
    """

    def __init__(
        self,
        id: UUID | None = None,
        title: str = "",
        description: str = "",
        price_cents: int = 0,
        instructor_id: UUID | None = None,
        material_ids: list[UUID] | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ):
        if price_cents < 0:
            msg = "price_cents must be >= 0"
            raise ValueError(msg)
        self.id = id or uuid4()
        self.title = title.strip()
        self.description = description
        self.price_cents = price_cents
        self.instructor_id = instructor_id
        self.material_ids = list(material_ids or [])
        self.created_at = ensure_utc_aware(created_at) or datetime.now(UTC)
        self.updated_at = ensure_utc_aware(updated_at)

    @classmethod
    def from_row(cls, row: Any) -> "Course":
        """Create Course instance from Cassandra row."""
        return cls(
            id=row.id,
            title=row.title or "",
            description=row.description or "",
            price_cents=row.price_cents or 0,
            instructor_id=row.instructor_id,
            material_ids=row.material_ids,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @property
    def price(self) -> Decimal:
        """Price in major units."""
        return cents_to_amount(self.price_cents)

    def is_owned_by(self, user_id: UUID | None) -> bool:
        return user_id is not None and self.instructor_id == user_id

    def __repr__(self) -> str:
        return f"<Course {self.title!r} ({self.price_cents})>"


def can_manage_course(user: Any, course: Course) -> bool:
    """Owner or admin."""
    return is_admin(user.role) or course.is_owned_by(user.id)
