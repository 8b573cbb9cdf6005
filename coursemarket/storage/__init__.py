"""Object storage capability for course materials."""

from coursemarket.storage.service import (
    DisabledStorage,
    FirebaseStorage,
    ObjectStorage,
    StorageError,
    StorageNotConfiguredError,
    create_storage,
)


__all__ = [
    "DisabledStorage",
    "FirebaseStorage",
    "ObjectStorage",
    "StorageError",
    "StorageNotConfiguredError",
    "create_storage",
]
