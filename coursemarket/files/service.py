# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Course file service.

Business logic for:
- Upload commit: permission, type and size checks, then storage, then ledger
- File access: fresh short-lived signed URL per request
- Listing and deletion of course files

Course access (admin, instructor or paid purchase) is enforced by the HTTP
boundary before the read operations here are called.
"""

import re
import unicodedata
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING
from uuid import UUID

from coursemarket.core.errors import (
    FileTooLargeError,
    ForbiddenError,
    MismatchError,
    NotFoundError,
    UnsupportedTypeError,
)
from coursemarket.core.logging import get_logger
from coursemarket.courses.models import can_manage_course
from coursemarket.files.models import CourseFile
from coursemarket.storage.service import StorageError


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from coursemarket.auth.schemas import UserResponse
    from coursemarket.courses.models import Course
    from coursemarket.courses.service import CourseService
    from coursemarket.storage.service import ObjectStorage


logger = get_logger(__name__)

FILE_URL_TTL = timedelta(minutes=15)
MAX_FILENAME_LENGTH = 200

_UNSAFE_FILENAME_CHARS = re.compile(r'[\x00-\x1f\x7f-\x9f/\\?<>:*|"\']')
_WHITESPACE = re.compile(r"\s+")


def sanitize_filename(name: str) -> str:
    """Make an uploaded filename safe to embed in a storage key.

    Collapses whitespace to ``_``, drops path separators and characters that
    are unsafe in object keys or on common filesystems, and strips leading
    dots so the result can never address a parent or hidden path.
    """
    cleaned = unicodedata.normalize("NFC", name)
    cleaned = _WHITESPACE.sub("_", cleaned.strip())
    cleaned = _UNSAFE_FILENAME_CHARS.sub("", cleaned)
    cleaned = cleaned.lstrip(".").rstrip(". ")
    cleaned = cleaned[:MAX_FILENAME_LENGTH]
    return cleaned or "file"


def build_storage_path(course_id: UUID, original_name: str, now: datetime | None = None) -> str:
    """Format: courses/{course_id}/{epoch_millis}_{sanitized_name}"""
    now = now or datetime.now(UTC)
    epoch_millis = int(now.timestamp() * 1000)
    return f"courses/{course_id}/{epoch_millis}_{sanitize_filename(original_name)}"


@dataclass(frozen=True)
class FileAccessGrant:
    """Signed URL issued for one file."""

    url: str
    expires_at: datetime
    filename: str
    mime_type: str


class FileService:
    """Service for course files."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        storage: "ObjectStorage",
        course_service: "CourseService",
        allowed_types: list[str],
        max_file_size: int,
    ):
        """Initialize with Cassandra session and collaborators."""
        self.session = session
        self.keyspace = keyspace
        self.storage = storage
        self.course_service = course_service
        self.allowed_types = allowed_types
        self.max_file_size = max_file_size
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient queries."""
        self._insert_file = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.course_files
            (id, course_id, instructor_id, storage_path, filename, mime_type,
             size_bytes, uploaded_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._insert_file_by_course = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.files_by_course
            (course_id, uploaded_at, file_id)
            VALUES (?, ?, ?)
        """)

        self._get_file = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.course_files WHERE id = ?"
        )

        self._get_files_by_course = self.session.prepare(f"""
            SELECT file_id FROM {self.keyspace}.files_by_course
            WHERE course_id = ?
        """)

        self._delete_file = self.session.prepare(
            f"DELETE FROM {self.keyspace}.course_files WHERE id = ?"
        )

        self._delete_file_by_course = self.session.prepare(f"""
            DELETE FROM {self.keyspace}.files_by_course
            WHERE course_id = ? AND uploaded_at = ? AND file_id = ?
        """)

    # --------------------------------------------------------------------------
    # Upload
    # --------------------------------------------------------------------------

    def check_upload_allowed(
        self,
        course: "Course",
        uploader: "UserResponse",
        mime_type: str,
        size: int,
    ) -> None:
        """Validate an upload before any byte is written.

        Order: permission, content type, size.

        Raises:
            ForbiddenError: Uploader is neither the course instructor nor admin
            UnsupportedTypeError: MIME type not in the allow-list
            FileTooLargeError: Size above the cap
        """
        if not can_manage_course(uploader, course):
            raise ForbiddenError("Only the course instructor can upload files")
        if mime_type not in self.allowed_types:
            raise UnsupportedTypeError(mime_type, self.allowed_types)
        if size > self.max_file_size:
            raise FileTooLargeError(size, self.max_file_size)

    async def commit_upload(
        self,
        course: "Course",
        content: bytes,
        original_name: str,
        mime_type: str,
        uploader: "UserResponse",
    ) -> CourseFile:
        """Store an uploaded file and attach it to the course.

        The object is written first; the file row and the course material
        reference follow. If recording fails after the object was written,
        the object is logged as orphaned and the error propagates.
        """
        size = len(content)
        self.check_upload_allowed(course, uploader, mime_type, size)

        storage_path = build_storage_path(course.id, original_name)
        await self.storage.put(storage_path, content, mime_type)

        course_file = CourseFile(
            course_id=course.id,
            instructor_id=uploader.id,
            storage_path=storage_path,
            filename=original_name,
            mime_type=mime_type,
            size_bytes=size,
        )

        try:
            await self.session.aexecute(
                self._insert_file,
                [
                    course_file.id,
                    course_file.course_id,
                    course_file.instructor_id,
                    course_file.storage_path,
                    course_file.filename,
                    course_file.mime_type,
                    course_file.size_bytes,
                    course_file.uploaded_at,
                ],
            )
            await self.session.aexecute(
                self._insert_file_by_course,
                [course_file.course_id, course_file.uploaded_at, course_file.id],
            )
            await self.course_service.add_material(course.id, course_file.id)
        except Exception as e:
            logger.error(
                "orphaned_storage_object",
                storage_path=storage_path,
                course_id=str(course.id),
                file_id=str(course_file.id),
                error=str(e),
            )
            raise

        logger.info(
            "file_uploaded",
            file_id=str(course_file.id),
            course_id=str(course.id),
            storage_path=storage_path,
            mime_type=mime_type,
            file_size=size,
        )
        return course_file

    # --------------------------------------------------------------------------
    # Read
    # --------------------------------------------------------------------------

    async def get_file(self, file_id: UUID) -> CourseFile | None:
        """Get file by ID."""
        result = await self.session.aexecute(self._get_file, [file_id])
        row = result.one()
        return CourseFile.from_row(row) if row else None

    async def get_course_file(self, course_id: UUID, file_id: UUID) -> CourseFile:
        """Get a file and check it belongs to the course.

        Raises:
            NotFoundError: File does not exist
            MismatchError: File belongs to a different course
        """
        course_file = await self.get_file(file_id)
        if course_file is None:
            raise NotFoundError("File not found")
        if course_file.course_id != course_id:
            logger.warning(
                "file_course_mismatch",
                file_id=str(file_id),
                course_id=str(course_id),
                file_course_id=str(course_file.course_id),
            )
            raise MismatchError("File does not belong to this course")
        return course_file

    async def get_file_access_url(self, course_id: UUID, file_id: UUID) -> FileAccessGrant:
        """Issue a fresh signed URL for a course file."""
        course_file = await self.get_course_file(course_id, file_id)

        expires_at = datetime.now(UTC) + FILE_URL_TTL
        url = await self.storage.signed_get(
            course_file.storage_path, int(FILE_URL_TTL.total_seconds())
        )

        logger.info("file_url_issued", file_id=str(file_id), course_id=str(course_id))
        return FileAccessGrant(
            url=url,
            expires_at=expires_at,
            filename=course_file.filename,
            mime_type=course_file.mime_type,
        )

    async def list_course_files(self, course_id: UUID) -> list[CourseFile]:
        """Files of a course in upload order."""
        rows = await self.session.aexecute(self._get_files_by_course, [course_id])
        files = []
        for row in rows:
            course_file = await self.get_file(row.file_id)
            if course_file:
                files.append(course_file)
        return files

    # --------------------------------------------------------------------------
    # Delete
    # --------------------------------------------------------------------------

    async def delete_file(
        self, course_id: UUID, file_id: UUID, user: "UserResponse"
    ) -> bool:
        """Delete a course file. Owner or admin only.

        Storage removal is best effort; the file row and the course material
        reference are removed regardless.

        Returns:
            True if the storage object was removed.
        """
        course = await self.course_service.require_course(course_id)
        if not can_manage_course(user, course):
            raise ForbiddenError("Not authorized to delete files of this course")

        course_file = await self.get_course_file(course_id, file_id)

        storage_deleted = True
        try:
            await self.storage.delete(course_file.storage_path)
        except StorageError as e:
            storage_deleted = False
            logger.warning(
                "storage_delete_failed",
                storage_path=course_file.storage_path,
                file_id=str(file_id),
                code=e.code,
                error=e.message,
            )

        await self.session.aexecute(self._delete_file, [file_id])
        await self.session.aexecute(
            self._delete_file_by_course,
            [course_id, course_file.uploaded_at, file_id],
        )
        await self.course_service.remove_material(course_id, file_id)

        logger.info(
            "file_deleted",
            file_id=str(file_id),
            course_id=str(course_id),
            storage_deleted=storage_deleted,
        )
        return storage_deleted
