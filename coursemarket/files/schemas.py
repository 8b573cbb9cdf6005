"""Pydantic schemas for course file operations."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class FileResponse(BaseModel):
    """Course file metadata. The storage path is never exposed."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    course_id: UUID
    filename: str
    mime_type: str
    size_bytes: int
    uploaded_at: datetime


class FileListResponse(BaseModel):
    """Files attached to a course."""

    items: list[FileResponse]
    total: int


class SignedUrlResponse(BaseModel):
    """Short-lived download link for a course file."""

    url: str = Field(..., description="Signed URL, valid until expires_at")
    expires_at: datetime
    filename: str
    mime_type: str


class FileDeletedResponse(BaseModel):
    """Result of a file deletion."""

    id: UUID
    deleted: bool = True
    storage_deleted: bool = Field(
        ..., description="False when the storage object could not be removed"
    )
