# Core infrastructure
from coursemarket.core.context import (
    clear_context,
    get_context,
    get_request_id,
    set_course_id,
    set_request_id,
    set_user_id,
)
from coursemarket.core.errors import MarketplaceError, status_for
from coursemarket.core.logging import configure_structlog, get_logger
from coursemarket.core.middleware import RequestContextMiddleware


__all__ = [
    "MarketplaceError",
    "RequestContextMiddleware",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_logger",
    "get_request_id",
    "set_course_id",
    "set_request_id",
    "set_user_id",
    "status_for",
]
