"""Tests for the object storage capability."""

from datetime import timedelta
from unittest.mock import Mock

import pytest

from coursemarket.config import Settings
from coursemarket.storage.service import (
    DisabledStorage,
    FirebaseStorage,
    StorageError,
    StorageNotConfiguredError,
    create_storage,
)


@pytest.fixture
def bucket() -> Mock:
    """Mock google-cloud-storage bucket."""
    bucket = Mock()
    bucket.blob = Mock(return_value=Mock())
    return bucket


@pytest.fixture
def storage(bucket) -> FirebaseStorage:
    return FirebaseStorage(Settings(storage_request_timeout=1.0), bucket=bucket)


class TestFirebaseStorage:
    """Tests for FirebaseStorage with a mocked bucket."""

    @pytest.mark.asyncio
    async def test_put_is_create_only_and_private(self, storage, bucket) -> None:
        await storage.put("courses/c/1_notes.pdf", b"%PDF", "application/pdf")

        bucket.blob.assert_called_once_with("courses/c/1_notes.pdf")
        blob = bucket.blob.return_value
        blob.upload_from_string.assert_called_once_with(
            b"%PDF", content_type="application/pdf", if_generation_match=0
        )
        assert blob.cache_control.startswith("private")

    @pytest.mark.asyncio
    async def test_signed_get_uses_ttl(self, storage, bucket) -> None:
        blob = bucket.blob.return_value
        blob.generate_signed_url = Mock(return_value="https://signed")

        url = await storage.signed_get("courses/c/1_notes.pdf", 900)

        assert url == "https://signed"
        blob.generate_signed_url.assert_called_once_with(
            version="v4", expiration=timedelta(seconds=900), method="GET"
        )

    @pytest.mark.asyncio
    async def test_backend_failure_becomes_storage_error(self, storage, bucket) -> None:
        bucket.blob.return_value.delete = Mock(side_effect=OSError("connection reset"))

        with pytest.raises(StorageError) as exc_info:
            await storage.delete("courses/c/1_notes.pdf")
        assert exc_info.value.code == "storage_error"


class TestDisabledStorage:
    """Tests for the unconfigured backend."""

    @pytest.mark.asyncio
    async def test_every_call_fails(self) -> None:
        storage = DisabledStorage()
        with pytest.raises(StorageNotConfiguredError):
            await storage.put("k", b"", "text/plain")
        with pytest.raises(StorageNotConfiguredError):
            await storage.signed_get("k", 900)
        with pytest.raises(StorageNotConfiguredError):
            await storage.delete("k")

    def test_selected_without_firebase(self) -> None:
        assert isinstance(create_storage(Settings(firebase_enabled=False)), DisabledStorage)
