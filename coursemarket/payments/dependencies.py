"""FastAPI dependencies for payments."""

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends

from coursemarket.payments.checkout import CheckoutService
from coursemarket.payments.webhooks import WebhookReconciler


# ==============================================================================
# Service Getters (set by main.py)
# ==============================================================================

_checkout_service_getter: Callable[[], CheckoutService] | None = None
_webhook_reconciler_getter: Callable[[], WebhookReconciler] | None = None


def set_checkout_service_getter(getter: Callable[[], CheckoutService]) -> None:
    """Set the checkout service getter function."""
    global _checkout_service_getter  # noqa: PLW0603 - Required for DI pattern
    _checkout_service_getter = getter


def set_webhook_reconciler_getter(getter: Callable[[], WebhookReconciler]) -> None:
    """Set the webhook reconciler getter function."""
    global _webhook_reconciler_getter  # noqa: PLW0603 - Required for DI pattern
    _webhook_reconciler_getter = getter


def get_checkout_service() -> CheckoutService:
    """Get CheckoutService instance from app state."""
    if _checkout_service_getter is None:
        msg = "CheckoutService not configured"
        raise RuntimeError(msg)
    return _checkout_service_getter()


def get_webhook_reconciler() -> WebhookReconciler:
    """Get WebhookReconciler instance from app state."""
    if _webhook_reconciler_getter is None:
        msg = "WebhookReconciler not configured"
        raise RuntimeError(msg)
    return _webhook_reconciler_getter()


CheckoutServiceDep = Annotated[CheckoutService, Depends(get_checkout_service)]
WebhookReconcilerDep = Annotated[WebhookReconciler, Depends(get_webhook_reconciler)]
