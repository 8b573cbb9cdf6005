"""Tests for the Stripe gateway."""

import hashlib
import hmac
import time
from types import SimpleNamespace
from uuid import uuid4

import orjson
import pytest
import stripe

from coursemarket.config import Settings
from coursemarket.core.errors import UnverifiedEventError
from coursemarket.payments.gateway import (
    DisabledPaymentGateway,
    PaymentGatewayError,
    PaymentsNotConfiguredError,
    StripeGateway,
    correlation_metadata,
    create_payment_gateway,
)


WEBHOOK_SECRET = "whsec_test_secret"


def stripe_signature(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int | None = None) -> str:
    """Build a Stripe-Signature header value for a payload."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode() + payload
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=WEBHOOK_SECRET,
        frontend_url="https://courses.example.com/",
        payment_request_timeout=0.2,
    )


@pytest.fixture
def gateway(settings) -> StripeGateway:
    return StripeGateway(settings)


@pytest.fixture
def payload() -> bytes:
    return orjson.dumps(
        {
            "id": "evt_1",
            "type": "checkout.session.completed",
            "data": {"object": {"id": "cs_1", "metadata": {"courseId": str(uuid4())}}},
        }
    )


class TestVerifyEvent:
    """Tests for webhook signature verification."""

    def test_valid_signature(self, gateway, payload) -> None:
        event = gateway.verify_event(payload, stripe_signature(payload))

        assert event.id == "evt_1"
        assert event.type == "checkout.session.completed"
        assert event.data_object["id"] == "cs_1"
        assert "courseId" in event.metadata

    def test_missing_header(self, gateway, payload) -> None:
        with pytest.raises(UnverifiedEventError, match="Missing"):
            gateway.verify_event(payload, None)

    def test_wrong_secret(self, gateway, payload) -> None:
        with pytest.raises(UnverifiedEventError, match="Invalid"):
            gateway.verify_event(payload, stripe_signature(payload, secret="whsec_other"))

    def test_tampered_payload(self, gateway, payload) -> None:
        signature = stripe_signature(payload)
        with pytest.raises(UnverifiedEventError):
            gateway.verify_event(payload.replace(b"cs_1", b"cs_2"), signature)

    def test_stale_timestamp(self, gateway, payload) -> None:
        signature = stripe_signature(payload, timestamp=int(time.time()) - 3600)
        with pytest.raises(UnverifiedEventError):
            gateway.verify_event(payload, signature)

    def test_secret_not_configured(self, settings, payload) -> None:
        settings.stripe_webhook_secret = None
        with pytest.raises(UnverifiedEventError, match="not configured"):
            StripeGateway(settings).verify_event(payload, stripe_signature(payload))

    def test_data_object_must_be_an_object(self, gateway) -> None:
        payload = orjson.dumps(
            {"id": "evt_1", "type": "checkout.session.completed", "data": {"object": "abc"}}
        )
        with pytest.raises(UnverifiedEventError, match="not an object"):
            gateway.verify_event(payload, stripe_signature(payload))

    def test_non_object_metadata_reads_as_empty(self, gateway) -> None:
        payload = orjson.dumps(
            {"id": "evt_1", "type": "checkout.session.completed", "data": {"object": {"metadata": "x"}}}
        )
        assert gateway.verify_event(payload, stripe_signature(payload)).metadata == {}


class TestCreateCheckoutSession:
    """Tests for Checkout Session creation."""

    @pytest.mark.asyncio
    async def test_session_params(self, gateway, monkeypatch) -> None:
        captured = {}

        def fake_create(**params):
            captured.update(params)
            return SimpleNamespace(id="cs_test_1", url="https://checkout.stripe.com/c/cs_test_1")

        monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)
        course_id, user_id = uuid4(), uuid4()

        session = await gateway.create_checkout_session(
            course_id=course_id,
            course_title="Intro to Sourdough",
            unit_amount=2500,
            currency="usd",
            buyer_email="buyer@example.com",
            user_id=user_id,
        )

        assert session.session_id == "cs_test_1"
        assert captured["api_key"] == "sk_test_123"
        assert captured["mode"] == "payment"
        assert captured["customer_email"] == "buyer@example.com"
        assert captured["line_items"][0]["price_data"]["unit_amount"] == 2500
        assert captured["metadata"] == {"courseId": str(course_id), "userId": str(user_id)}
        assert captured["payment_intent_data"]["metadata"] == captured["metadata"]
        assert captured["success_url"] == (
            "https://courses.example.com/success?session_id={CHECKOUT_SESSION_ID}"
        )
        assert captured["cancel_url"] == "https://courses.example.com/cancel"

    @pytest.mark.asyncio
    async def test_provider_error(self, gateway, monkeypatch) -> None:
        def fake_create(**params):
            raise stripe.StripeError("card declined")

        monkeypatch.setattr(stripe.checkout.Session, "create", fake_create)

        with pytest.raises(PaymentGatewayError):
            await gateway.create_checkout_session(
                course_id=uuid4(),
                course_title="Course",
                unit_amount=100,
                currency="usd",
                buyer_email="buyer@example.com",
            )

    @pytest.mark.asyncio
    async def test_provider_timeout(self, gateway, monkeypatch) -> None:
        def slow_create(**params):
            time.sleep(1)

        monkeypatch.setattr(stripe.checkout.Session, "create", slow_create)

        with pytest.raises(PaymentGatewayError, match="timed out"):
            await gateway.create_checkout_session(
                course_id=uuid4(),
                course_title="Course",
                unit_amount=100,
                currency="usd",
                buyer_email="buyer@example.com",
            )


class TestGatewaySelection:
    """Tests for create_payment_gateway."""

    def test_stripe_when_configured(self, settings) -> None:
        assert isinstance(create_payment_gateway(settings), StripeGateway)

    def test_disabled_without_key(self) -> None:
        gateway = create_payment_gateway(Settings(stripe_secret_key=None))
        assert isinstance(gateway, DisabledPaymentGateway)

    @pytest.mark.asyncio
    async def test_disabled_gateway(self) -> None:
        gateway = DisabledPaymentGateway()
        with pytest.raises(PaymentsNotConfiguredError):
            await gateway.create_checkout_session(
                course_id=uuid4(),
                course_title="Course",
                unit_amount=100,
                currency="usd",
                buyer_email="buyer@example.com",
            )
        with pytest.raises(UnverifiedEventError):
            gateway.verify_event(b"{}", "t=1,v1=abc")


def test_correlation_metadata_without_user() -> None:
    course_id = uuid4()
    assert correlation_metadata(course_id, None) == {"courseId": str(course_id)}
