"""Request context middleware."""

import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import Request, Response, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from coursemarket.core.context import clear_context, set_request_id, set_trace_id


logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
TRACE_ID_HEADER = "X-Trace-ID"
TRACEPARENT_HEADER = "traceparent"


def trace_id_from_headers(request: Request) -> str | None:
    """Explicit X-Trace-ID, else the trace-id field of a W3C traceparent.

    traceparent format: {version}-{trace-id}-{parent-id}-{trace-flags}
    """
    explicit = request.headers.get(TRACE_ID_HEADER)
    if explicit:
        return explicit
    parts = (request.headers.get(TRACEPARENT_HEADER) or "").split("-")
    return parts[1] if len(parts) == 4 else None


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Binds request id and trace id for the request and logs its outcome.

    Access denials (403), ownership conflicts (409) and the like are normal
    outcomes in this API, so only 5xx responses are logged above info.
    """

    def __init__(
        self,
        app: ASGIApp,
        log_requests: bool = True,
        exclude_paths: list[str] | None = None,
    ) -> None:
        super().__init__(app)
        self.log_requests = log_requests
        self.exclude_paths = tuple(exclude_paths or ["/health"])

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        start = time.perf_counter()
        request_id = set_request_id(request.headers.get(REQUEST_ID_HEADER))
        set_trace_id(trace_id_from_headers(request))
        request.state.request_id = request_id

        path = request.url.path
        should_log = self.log_requests and not path.startswith(self.exclude_paths)
        if should_log:
            logger.info("request_started", method=request.method, path=path)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "request_failed",
                method=request.method,
                path=path,
                error_type=type(e).__name__,
                duration_ms=_elapsed_ms(start),
            )
            raise
        finally:
            clear_context()

        if should_log:
            log = (
                logger.error
                if response.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR
                else logger.info
            )
            log(
                "request_completed",
                method=request.method,
                path=path,
                status_code=response.status_code,
                duration_ms=_elapsed_ms(start),
                request_id=request_id,
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
