"""Payments: checkout initiation and webhook reconciliation."""

from coursemarket.payments.checkout import CheckoutService
from coursemarket.payments.gateway import (
    CheckoutSession,
    DisabledPaymentGateway,
    PaymentEvent,
    PaymentGateway,
    PaymentGatewayError,
    PaymentsNotConfiguredError,
    StripeGateway,
    create_payment_gateway,
)
from coursemarket.payments.webhooks import ReconcileOutcome, WebhookReconciler


__all__ = [
    "CheckoutService",
    "CheckoutSession",
    "DisabledPaymentGateway",
    "PaymentEvent",
    "PaymentGateway",
    "PaymentGatewayError",
    "PaymentsNotConfiguredError",
    "ReconcileOutcome",
    "StripeGateway",
    "WebhookReconciler",
    "create_payment_gateway",
]
