"""Course Marketplace API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from coursemarket.auth.service import UserService
from coursemarket.config import get_settings
from coursemarket.core.context import get_request_id
from coursemarket.core.database import init_async_cassandra, shutdown_async_cassandra
from coursemarket.core.errors import MarketplaceError, status_for
from coursemarket.core.logging import configure_structlog, get_logger
from coursemarket.core.middleware import RequestContextMiddleware
from coursemarket.courses.router import router as courses_router
from coursemarket.courses.service import CourseService
from coursemarket.files.router import router as files_router
from coursemarket.files.service import FileService
from coursemarket.health import router as health_router
from coursemarket.payments.checkout import CheckoutService
from coursemarket.payments.gateway import PaymentGateway, create_payment_gateway
from coursemarket.payments.router import router as checkout_router
from coursemarket.payments.router import webhook_router
from coursemarket.payments.webhooks import WebhookReconciler
from coursemarket.purchases.access import AccessPolicy
from coursemarket.purchases.ledger import PurchaseLedger
from coursemarket.purchases.router import router as purchases_router
from coursemarket.storage.service import ObjectStorage, create_storage


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


# Application state for dependency injection
class AppState:
    """Application state container."""

    cassandra_session: Any = None
    storage: ObjectStorage | None = None
    payment_gateway: PaymentGateway | None = None
    user_service: UserService | None = None
    ledger: PurchaseLedger | None = None
    access_policy: AccessPolicy | None = None
    course_service: CourseService | None = None
    file_service: FileService | None = None
    checkout_service: CheckoutService | None = None
    webhook_reconciler: WebhookReconciler | None = None


app_state = AppState()


def _require(service: Any, name: str) -> Any:
    if service is None:
        msg = f"{name} not initialized"
        raise RuntimeError(msg)
    return service


def get_ledger() -> PurchaseLedger:
    """Get PurchaseLedger instance from app state."""
    return _require(app_state.ledger, "PurchaseLedger")


def get_access_policy() -> AccessPolicy:
    """Get AccessPolicy instance from app state."""
    return _require(app_state.access_policy, "AccessPolicy")


def get_course_service() -> CourseService:
    """Get CourseService instance from app state."""
    return _require(app_state.course_service, "CourseService")


def get_file_service() -> FileService:
    """Get FileService instance from app state."""
    return _require(app_state.file_service, "FileService")


def get_checkout_service() -> CheckoutService:
    """Get CheckoutService instance from app state."""
    return _require(app_state.checkout_service, "CheckoutService")


def get_webhook_reconciler() -> WebhookReconciler:
    """Get WebhookReconciler instance from app state."""
    return _require(app_state.webhook_reconciler, "WebhookReconciler")


def init_services(session: Any, storage: ObjectStorage, gateway: PaymentGateway) -> None:
    """Build every service on top of one Cassandra session."""
    settings = get_settings()
    keyspace = settings.cassandra_keyspace

    app_state.user_service = UserService(session=session, keyspace=keyspace)
    app_state.ledger = PurchaseLedger(session=session, keyspace=keyspace)
    app_state.access_policy = AccessPolicy(app_state.ledger)
    app_state.course_service = CourseService(
        session=session,
        keyspace=keyspace,
        ledger=app_state.ledger,
        user_service=app_state.user_service,
        currency=settings.payment_currency,
    )
    app_state.file_service = FileService(
        session=session,
        keyspace=keyspace,
        storage=storage,
        course_service=app_state.course_service,
        allowed_types=settings.upload_allowed_types,
        max_file_size=settings.upload_max_file_size,
    )
    app_state.checkout_service = CheckoutService(
        course_service=app_state.course_service,
        ledger=app_state.ledger,
        gateway=gateway,
        currency=settings.payment_currency,
    )
    app_state.webhook_reconciler = WebhookReconciler(
        gateway=gateway,
        ledger=app_state.ledger,
        user_service=app_state.user_service,
        course_service=app_state.course_service,
        currency=settings.payment_currency,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    # External collaborators are chosen once per process
    app_state.storage = create_storage(settings)
    app_state.payment_gateway = create_payment_gateway(settings)

    try:
        app_state.cassandra_session = await init_async_cassandra()
        logger.info("cassandra_initialized")

        init_services(app_state.cassandra_session, app_state.storage, app_state.payment_gateway)
        logger.info("services_initialized")
    except Exception as e:
        logger.warning(
            "database_init_skipped",
            error=str(e),
            message="Running without database connection",
        )

    yield

    # Shutdown
    logger.info("shutting_down_application")
    await shutdown_async_cassandra()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # SECURITY: Always set debug=False to prevent Starlette's ServerErrorMiddleware
    # from exposing stack traces in responses.
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Course Marketplace - API",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    # Request context middleware (must be added first - outermost)
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _get_request_id_safe(request: Request) -> str | None:
        """Get request_id from request state or context."""
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    @app.exception_handler(MarketplaceError)
    async def marketplace_exception_handler(
        request: Request, exc: MarketplaceError
    ) -> ORJSONResponse:
        """Render domain errors with their stable code."""
        request_id = _get_request_id_safe(request)
        status_code = status_for(exc)

        log = logger.error if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR else logger.info
        log(
            "marketplace_error",
            code=exc.code,
            status_code=status_code,
            detail=exc.message,
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status_code,
            content={
                "error": True,
                "code": exc.code,
                "message": exc.message,
                "status_code": status_code,
                "request_id": request_id,
            },
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Handle HTTP exceptions with safe error messages."""
        request_id = _get_request_id_safe(request)

        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=exc.status_code,
            content={
                "error": True,
                "message": str(exc.detail)
                if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
                else "Internal server error",
                "status_code": exc.status_code,
                "request_id": request_id,
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle validation errors with safe error messages."""
        request_id = _get_request_id_safe(request)

        logger.warning(
            "validation_error",
            errors=exc.errors(),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": True,
                "message": "Validation error",
                "status_code": 422,
                "request_id": request_id,
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in err.get("loc", [])),
                        "message": err.get("msg", "Invalid value"),
                    }
                    for err in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Catch-all handler for unhandled exceptions.

        SECURITY: Never expose stack traces or internal error details to users.
        """
        request_id = _get_request_id_safe(request)

        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": True,
                "message": "An unexpected error occurred. Please try again later.",
                "status_code": 500,
                "request_id": request_id,
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(courses_router)
    app.include_router(files_router)
    app.include_router(checkout_router)
    app.include_router(webhook_router)
    app.include_router(purchases_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "Course Marketplace API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


# Configure router dependencies before creating app
from coursemarket.courses.dependencies import set_course_service_getter  # noqa: E402
from coursemarket.files.dependencies import set_file_service_getter  # noqa: E402
from coursemarket.payments.dependencies import (  # noqa: E402
    set_checkout_service_getter,
    set_webhook_reconciler_getter,
)
from coursemarket.purchases.dependencies import (  # noqa: E402
    set_access_policy_getter,
    set_ledger_getter,
)


set_ledger_getter(get_ledger)
set_access_policy_getter(get_access_policy)
set_course_service_getter(get_course_service)
set_file_service_getter(get_file_service)
set_checkout_service_getter(get_checkout_service)
set_webhook_reconciler_getter(get_webhook_reconciler)


app = create_app()
