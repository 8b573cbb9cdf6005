"""Error taxonomy shared by every module.

Each error carries a stable ``code`` (the kind tag surfaced to clients) and
maps to one HTTP status in ``STATUS_BY_CODE``. Webhook-only errors
(``unverified``, ``unattributed``) are logged by the reconciler and never
rendered to the payment provider.
"""

from fastapi import status


class MarketplaceError(Exception):
    """Base error for marketplace operations."""

    def __init__(self, message: str, code: str = "marketplace_error") -> None:
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(MarketplaceError):
    """Course, file or user does not exist."""

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message, "not_found")


class ForbiddenError(MarketplaceError):
    """Role or ownership check failed."""

    def __init__(self, message: str = "Permission denied") -> None:
        super().__init__(message, "forbidden")


class MismatchError(MarketplaceError):
    """File does not belong to the named course."""

    def __init__(self, message: str = "Course/file mismatch") -> None:
        super().__init__(message, "mismatch")


class AlreadyOwnedError(MarketplaceError):
    """User already holds a paid purchase for the course."""

    def __init__(self, message: str = "Course already purchased") -> None:
        super().__init__(message, "already_owned")


class FileTooLargeError(MarketplaceError):
    """Upload exceeds the size cap."""

    def __init__(self, size: int, max_size: int) -> None:
        message = (
            f"File size ({size / 1024 / 1024:.2f} MB) exceeds "
            f"maximum allowed ({max_size / 1024 / 1024:.2f} MB)"
        )
        super().__init__(message, "too_large")


class UnsupportedTypeError(MarketplaceError):
    """Upload MIME type is not in the allow-list."""

    def __init__(self, content_type: str, allowed: list[str]) -> None:
        message = (
            f"Content type '{content_type}' is not allowed. "
            f"Allowed: {', '.join(allowed)}"
        )
        super().__init__(message, "unsupported_type")


class LedgerContentionError(MarketplaceError):
    """Conditional write kept losing to concurrent writers."""

    def __init__(self, message: str = "Purchase is being updated concurrently") -> None:
        super().__init__(message, "ledger_contention")


class UnverifiedEventError(MarketplaceError):
    """Webhook payload failed signature verification."""

    def __init__(self, message: str = "Webhook signature verification failed") -> None:
        super().__init__(message, "unverified")


class UnattributedEventError(MarketplaceError):
    """Payment succeeded externally but no local user/course resolves."""

    def __init__(self, message: str = "Payment could not be attributed") -> None:
        super().__init__(message, "unattributed")


STATUS_BY_CODE: dict[str, int] = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "forbidden": status.HTTP_403_FORBIDDEN,
    "mismatch": status.HTTP_400_BAD_REQUEST,
    "already_owned": status.HTTP_409_CONFLICT,
    "ledger_contention": status.HTTP_409_CONFLICT,
    "too_large": status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    "unsupported_type": status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    "storage_not_configured": status.HTTP_503_SERVICE_UNAVAILABLE,
    "payments_not_configured": status.HTTP_503_SERVICE_UNAVAILABLE,
    "storage_error": status.HTTP_502_BAD_GATEWAY,
    "payment_gateway_error": status.HTTP_502_BAD_GATEWAY,
}


def status_for(error: MarketplaceError) -> int:
    """HTTP status for an error, defaulting to 400."""
    return STATUS_BY_CODE.get(error.code, status.HTTP_400_BAD_REQUEST)
