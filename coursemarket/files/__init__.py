"""Course files: upload commit, access gate, listing and deletion."""

from coursemarket.files.models import CourseFile
from coursemarket.files.service import (
    FILE_URL_TTL,
    FileAccessGrant,
    FileService,
    sanitize_filename,
)


__all__ = [
    "FILE_URL_TTL",
    "CourseFile",
    "FileAccessGrant",
    "FileService",
    "sanitize_filename",
]
