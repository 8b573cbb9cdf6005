"""Database models for course files.

Cassandra table definitions for:
- Course files: Main file table
- Lookup table: Files by course, in upload order

A file row is written only after its object exists in storage. The storage
path is unique per upload and never reused.
"""

from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

COURSE_FILE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.course_files (
    id UUID PRIMARY KEY,
    course_id UUID,
    instructor_id UUID,
    storage_path TEXT,
    filename TEXT,
    mime_type TEXT,
    size_bytes BIGINT,
    uploaded_at TIMESTAMP
)
"""

FILES_BY_COURSE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.files_by_course (
    course_id UUID,
    uploaded_at TIMESTAMP,
    file_id UUID,
    PRIMARY KEY (course_id, uploaded_at, file_id)
) WITH CLUSTERING ORDER BY (uploaded_at ASC, file_id ASC)
"""

FILES_TABLES_CQL = [
    COURSE_FILE_TABLE_CQL,
    FILES_BY_COURSE_TABLE_CQL,
]


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


# ==============================================================================
# Entity
# ==============================================================================


class CourseFile:
    """Uploaded course material.

    Attributes:
        id: Unique identifier (UUID)
        course_id: Owning course
        instructor_id: Uploader
        storage_path: Object key in storage
        filename: Original display name
        mime_type: Declared content type
        size_bytes: Content length
        uploaded_at: Upload timestamp
    """

    def __init__(
        self,
        course_id: UUID,
        storage_path: str,
        filename: str,
        mime_type: str,
        size_bytes: int,
        instructor_id: UUID | None = None,
        id: UUID | None = None,
        uploaded_at: datetime | None = None,
    ):
        self.id = id or uuid4()
        self.course_id = course_id
        self.instructor_id = instructor_id
        self.storage_path = storage_path
        self.filename = filename
        self.mime_type = mime_type
        self.size_bytes = size_bytes
        self.uploaded_at = ensure_utc_aware(uploaded_at) or datetime.now(UTC)

    @classmethod
    def from_row(cls, row: Any) -> "CourseFile":
        """Create CourseFile instance from Cassandra row."""
        return cls(
            id=row.id,
            course_id=row.course_id,
            instructor_id=row.instructor_id,
            storage_path=row.storage_path,
            filename=row.filename or "",
            mime_type=row.mime_type or "application/octet-stream",
            size_bytes=row.size_bytes or 0,
            uploaded_at=row.uploaded_at,
        )

    def __repr__(self) -> str:
        return f"<CourseFile {self.filename!r} in {self.course_id}>"
