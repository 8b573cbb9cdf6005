"""FastAPI dependencies for course files."""

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends

from coursemarket.files.service import FileService


_file_service_getter: Callable[[], FileService] | None = None


def set_file_service_getter(getter: Callable[[], FileService]) -> None:
    """Set the file service getter function."""
    global _file_service_getter  # noqa: PLW0603 - Required for DI pattern
    _file_service_getter = getter


def get_file_service() -> FileService:
    """Get FileService instance from app state."""
    if _file_service_getter is None:
        msg = "FileService not configured"
        raise RuntimeError(msg)
    return _file_service_getter()


FileServiceDep = Annotated[FileService, Depends(get_file_service)]
