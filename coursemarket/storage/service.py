"""Object storage for course materials.

Objects are private. Reads go through short-lived V4 signed URLs and writes
are create-only, so an existing key is never overwritten.

Two implementations of the ``ObjectStorage`` capability exist:
- ``FirebaseStorage``: Firebase Admin SDK / Google Cloud Storage bucket
- ``DisabledStorage``: every call raises ``StorageNotConfiguredError``

``create_storage`` picks one at startup from settings.
"""

import asyncio
from datetime import timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import structlog

from coursemarket.config.settings import Settings
from coursemarket.core.errors import MarketplaceError


if TYPE_CHECKING:
    from google.cloud.storage import Blob, Bucket


logger = structlog.get_logger(__name__)


class StorageError(MarketplaceError):
    """Storage backend call failed."""

    def __init__(self, message: str, code: str = "storage_error") -> None:
        super().__init__(message, code)


class StorageNotConfiguredError(StorageError):
    """Storage backend is not configured."""

    def __init__(self, message: str = "File storage is not configured") -> None:
        super().__init__(message, "storage_not_configured")


class ObjectStorage(Protocol):
    """Storage capability used by the files module."""

    async def put(self, key: str, content: bytes, content_type: str) -> None: ...

    async def signed_get(self, key: str, ttl_seconds: int) -> str: ...

    async def delete(self, key: str) -> None: ...


# Firebase app singleton
_firebase_app = None
_storage_bucket: "Bucket | None" = None


def _init_firebase(settings: Settings) -> "Bucket":
    """Initialize Firebase Admin SDK and get storage bucket.

    Raises:
        StorageNotConfiguredError: If Firebase is not configured.
    """
    global _firebase_app, _storage_bucket  # noqa: PLW0603

    if _storage_bucket is not None:
        return _storage_bucket

    if not settings.firebase_configured:
        raise StorageNotConfiguredError

    # Lazy import to avoid loading Firebase SDK unless needed
    import firebase_admin  # noqa: PLC0415
    from firebase_admin import credentials, storage  # noqa: PLC0415

    creds_path = settings.firebase_credentials_path
    if creds_path and not Path(creds_path).is_absolute():
        # Relative to project root
        project_root = Path(__file__).parent.parent.parent
        creds_path = str(project_root / creds_path)

    if not creds_path or not Path(creds_path).exists():
        raise StorageNotConfiguredError(
            f"Firebase credentials file not found: {creds_path}"
        )

    try:
        if _firebase_app is None:
            cred = credentials.Certificate(creds_path)
            _firebase_app = firebase_admin.initialize_app(
                cred,
                {
                    "storageBucket": settings.firebase_storage_bucket,
                    "projectId": settings.firebase_project_id,
                },
            )
            logger.info(
                "firebase_initialized",
                project_id=settings.firebase_project_id,
                bucket=settings.firebase_storage_bucket,
            )

        _storage_bucket = storage.bucket()
        return _storage_bucket

    except Exception as e:
        logger.exception("firebase_init_failed", error=str(e))
        raise StorageNotConfiguredError(f"Failed to initialize Firebase: {e}") from e


class FirebaseStorage:
    """Firebase Storage bucket behind the ``ObjectStorage`` capability.

    The google-cloud-storage client is blocking, so each call runs in a
    worker thread under ``storage_request_timeout``.
    """

    def __init__(self, settings: Settings, bucket: "Bucket | None" = None) -> None:
        self.settings = settings
        self.timeout = settings.storage_request_timeout
        self._bucket = bucket

    def _get_bucket(self) -> "Bucket":
        """Get Firebase Storage bucket (lazy initialization)."""
        if self._bucket is None:
            self._bucket = _init_firebase(self.settings)
        return self._bucket

    async def _call(self, operation: str, key: str, func, *args, **kwargs):
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(func, *args, **kwargs), timeout=self.timeout
            )
        except StorageError:
            raise
        except TimeoutError as e:
            logger.error("storage_timeout", operation=operation, storage_path=key)
            raise StorageError(f"Storage {operation} timed out") from e
        except Exception as e:
            logger.exception(
                "storage_call_failed", operation=operation, storage_path=key, error=str(e)
            )
            raise StorageError(f"Storage {operation} failed: {e}") from e

    def _put_sync(self, key: str, content: bytes, content_type: str) -> None:
        blob: Blob = self._get_bucket().blob(key)
        # Materials are private, never publicly cached
        blob.cache_control = "private, max-age=0"
        # Generation 0 means "only if the object does not exist yet"
        blob.upload_from_string(content, content_type=content_type, if_generation_match=0)

    def _signed_get_sync(self, key: str, ttl_seconds: int) -> str:
        blob: Blob = self._get_bucket().blob(key)
        return blob.generate_signed_url(
            version="v4",
            expiration=timedelta(seconds=ttl_seconds),
            method="GET",
        )

    def _delete_sync(self, key: str) -> None:
        self._get_bucket().blob(key).delete()

    async def put(self, key: str, content: bytes, content_type: str) -> None:
        await self._call("put", key, self._put_sync, key, content, content_type)
        logger.info(
            "storage_object_written",
            storage_path=key,
            content_type=content_type,
            file_size=len(content),
        )

    async def signed_get(self, key: str, ttl_seconds: int) -> str:
        return await self._call("signed_get", key, self._signed_get_sync, key, ttl_seconds)

    async def delete(self, key: str) -> None:
        await self._call("delete", key, self._delete_sync, key)
        logger.info("storage_object_deleted", storage_path=key)


class DisabledStorage:
    """Storage used when no backend is configured."""

    async def put(self, key: str, content: bytes, content_type: str) -> None:
        raise StorageNotConfiguredError

    async def signed_get(self, key: str, ttl_seconds: int) -> str:
        raise StorageNotConfiguredError

    async def delete(self, key: str) -> None:
        raise StorageNotConfiguredError


def create_storage(settings: Settings) -> ObjectStorage:
    """Select the storage implementation for this process."""
    if settings.firebase_configured:
        logger.info("storage_selected", backend="firebase", bucket=settings.firebase_storage_bucket)
        return FirebaseStorage(settings)

    logger.warning("storage_selected", backend="disabled")
    return DisabledStorage()
