"""Payment provider capability.

``PaymentGateway`` is what checkout and the webhook endpoint talk to:
- ``StripeGateway``: Stripe Checkout sessions and signed webhook events
- ``DisabledPaymentGateway``: checkout fails with ``payments_not_configured``,
  every webhook fails verification

``create_payment_gateway`` picks one at startup from settings.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import UUID

import orjson
import stripe
import structlog

from coursemarket.config.settings import Settings
from coursemarket.core.errors import MarketplaceError, UnverifiedEventError


logger = structlog.get_logger(__name__)


class PaymentsNotConfiguredError(MarketplaceError):
    """No payment provider is configured."""

    def __init__(self, message: str = "Payments are not configured") -> None:
        super().__init__(message, "payments_not_configured")


class PaymentGatewayError(MarketplaceError):
    """Payment provider call failed."""

    def __init__(self, message: str = "Payment provider request failed") -> None:
        super().__init__(message, "payment_gateway_error")


@dataclass(frozen=True)
class CheckoutSession:
    """Hosted checkout page created by the provider."""

    url: str
    session_id: str


@dataclass(frozen=True)
class PaymentEvent:
    """Verified provider event."""

    id: str
    type: str
    data_object: dict[str, Any] = field(default_factory=dict)

    @property
    def metadata(self) -> dict[str, Any]:
        metadata = self.data_object.get("metadata")
        return metadata if isinstance(metadata, dict) else {}


class PaymentGateway(Protocol):
    async def create_checkout_session(
        self,
        *,
        course_id: UUID,
        course_title: str,
        unit_amount: int,
        currency: str,
        buyer_email: str,
        user_id: UUID | None = None,
    ) -> CheckoutSession: ...

    def verify_event(self, payload: bytes, signature: str | None) -> PaymentEvent: ...


def correlation_metadata(course_id: UUID, user_id: UUID | None) -> dict[str, str]:
    """Metadata echoed back by the provider on every related event."""
    metadata = {"courseId": str(course_id)}
    if user_id is not None:
        metadata["userId"] = str(user_id)
    return metadata


def parse_event(payload: bytes) -> PaymentEvent:
    """Build a PaymentEvent from a verified JSON payload."""
    try:
        data = orjson.loads(payload)
        data_object = (data.get("data") or {}).get("object") or {}
        if not isinstance(data_object, dict):
            raise UnverifiedEventError("Webhook data.object is not an object")
        return PaymentEvent(
            id=str(data["id"]),
            type=str(data["type"]),
            data_object=dict(data_object),
        )
    except (orjson.JSONDecodeError, KeyError, TypeError, AttributeError) as e:
        raise UnverifiedEventError("Malformed webhook payload") from e


class StripeGateway:
    """Stripe Checkout and webhook verification.

    The stripe client is blocking, so session creation runs in a worker
    thread under ``payment_request_timeout``.
    """

    provider = "stripe"

    def __init__(self, settings: Settings) -> None:
        self.api_key = settings.stripe_secret_key
        self.webhook_secret = settings.stripe_webhook_secret
        self.tolerance = settings.stripe_webhook_tolerance_seconds
        self.timeout = settings.payment_request_timeout
        self.frontend_url = settings.frontend_url.rstrip("/")

    async def create_checkout_session(
        self,
        *,
        course_id: UUID,
        course_title: str,
        unit_amount: int,
        currency: str,
        buyer_email: str,
        user_id: UUID | None = None,
    ) -> CheckoutSession:
        """Create a one-item payment-mode Checkout Session."""
        metadata = correlation_metadata(course_id, user_id)
        params: dict[str, Any] = {
            "api_key": self.api_key,
            "payment_method_types": ["card"],
            "mode": "payment",
            "customer_email": buyer_email,
            "line_items": [
                {
                    "price_data": {
                        "currency": currency,
                        "product_data": {"name": course_title},
                        "unit_amount": unit_amount,
                    },
                    "quantity": 1,
                }
            ],
            "metadata": metadata,
            # Copied to the PaymentIntent so failure events carry it too
            "payment_intent_data": {"metadata": metadata},
            "success_url": f"{self.frontend_url}/success?session_id={{CHECKOUT_SESSION_ID}}",
            "cancel_url": f"{self.frontend_url}/cancel",
        }

        try:
            session = await asyncio.wait_for(
                asyncio.to_thread(stripe.checkout.Session.create, **params),
                timeout=self.timeout,
            )
        except TimeoutError as e:
            logger.error("stripe_checkout_timeout", course_id=str(course_id))
            raise PaymentGatewayError("Payment provider timed out") from e
        except stripe.StripeError as e:
            logger.error(
                "stripe_checkout_failed",
                course_id=str(course_id),
                error=str(e),
                stripe_code=getattr(e, "code", None),
            )
            raise PaymentGatewayError("Failed to create checkout session") from e

        logger.info(
            "stripe_checkout_created",
            course_id=str(course_id),
            session_id=session.id,
            unit_amount=unit_amount,
            currency=currency,
        )
        return CheckoutSession(url=session.url, session_id=session.id)

    def verify_event(self, payload: bytes, signature: str | None) -> PaymentEvent:
        """Verify the Stripe-Signature header and parse the event.

        Raises:
            UnverifiedEventError: Missing header, missing secret, bad signature
                or malformed payload
        """
        if not signature:
            raise UnverifiedEventError("Missing Stripe-Signature header")
        if not self.webhook_secret:
            raise UnverifiedEventError("Webhook secret not configured")

        try:
            stripe.WebhookSignature.verify_header(
                payload.decode("utf-8"), signature, self.webhook_secret, self.tolerance
            )
        except stripe.SignatureVerificationError as e:
            raise UnverifiedEventError("Invalid webhook signature") from e
        except UnicodeDecodeError as e:
            raise UnverifiedEventError("Webhook payload is not UTF-8") from e

        return parse_event(payload)


class DisabledPaymentGateway:
    """Gateway used when no provider is configured."""

    provider = "disabled"

    async def create_checkout_session(
        self,
        *,
        course_id: UUID,
        course_title: str,
        unit_amount: int,
        currency: str,
        buyer_email: str,
        user_id: UUID | None = None,
    ) -> CheckoutSession:
        raise PaymentsNotConfiguredError

    def verify_event(self, payload: bytes, signature: str | None) -> PaymentEvent:
        raise UnverifiedEventError("Payments are not configured")


def create_payment_gateway(settings: Settings) -> PaymentGateway:
    """Select the payment gateway for this process."""
    if settings.stripe_configured:
        logger.info(
            "payment_gateway_selected",
            provider="stripe",
            webhook_secret_configured=bool(settings.stripe_webhook_secret),
        )
        return StripeGateway(settings)

    logger.warning("payment_gateway_selected", provider="disabled")
    return DisabledPaymentGateway()
