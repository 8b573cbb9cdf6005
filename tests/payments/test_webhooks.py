"""Tests for webhook reconciliation.

Deliveries are at least once and unordered; these tests replay duplicate,
concurrent and reordered events against the in-memory ledger and check the
ledger converges on one row per (user, course).
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import orjson
import pytest

from coursemarket.auth.permissions import UserRole
from coursemarket.auth.schemas import UserResponse
from coursemarket.payments.webhooks import ReconcileOutcome, WebhookReconciler
from coursemarket.purchases.access import AccessPolicy
from coursemarket.purchases.models import PurchaseStatus

from tests.fakes import (
    FakeCourseService,
    FakeGateway,
    FakeUserService,
    InMemoryPurchaseLedger,
    make_course,
    make_user,
)


SIGNATURE = "good-signature"


def completed_event(
    course_id: UUID | str | None,
    user_id: UUID | None = None,
    email: str | None = None,
    amount_total: int | None = 2500,
    session_id: str = "cs_test_1",
    event_id: str = "evt_1",
) -> bytes:
    metadata = {}
    if course_id is not None:
        metadata["courseId"] = str(course_id)
    if user_id is not None:
        metadata["userId"] = str(user_id)
    session = {
        "id": session_id,
        "object": "checkout.session",
        "currency": "usd",
        "customer_details": {"email": email},
        "metadata": metadata,
    }
    if amount_total is not None:
        session["amount_total"] = amount_total
    return orjson.dumps(
        {"id": event_id, "type": "checkout.session.completed", "data": {"object": session}}
    )


def failed_event(course_id: UUID | None, user_id: UUID | None, event_id: str = "evt_f") -> bytes:
    metadata = {}
    if course_id is not None:
        metadata["courseId"] = str(course_id)
    if user_id is not None:
        metadata["userId"] = str(user_id)
    return orjson.dumps(
        {
            "id": event_id,
            "type": "payment_intent.payment_failed",
            "data": {"object": {"id": "pi_1", "object": "payment_intent", "metadata": metadata}},
        }
    )


@pytest.fixture
def ledger() -> InMemoryPurchaseLedger:
    return InMemoryPurchaseLedger()


@pytest.fixture
def buyer():
    return make_user(email="buyer@example.com")


@pytest.fixture
def course():
    return make_course(price_cents=2500)


@pytest.fixture
def reconciler(ledger, buyer, course) -> WebhookReconciler:
    return WebhookReconciler(
        gateway=FakeGateway(SIGNATURE),
        ledger=ledger,
        user_service=FakeUserService([buyer]),
        course_service=FakeCourseService([course]),
    )


class TestVerification:
    """Unverified deliveries never reach the ledger."""

    @pytest.mark.asyncio
    async def test_bad_signature_dropped(self, reconciler, ledger, buyer, course) -> None:
        payload = completed_event(course.id, buyer.id)

        assert await reconciler.process(payload, "forged") is None
        assert await reconciler.process(payload, None) is None
        assert ledger.rows == {}

    @pytest.mark.asyncio
    async def test_malformed_payload_dropped(self, reconciler, ledger) -> None:
        assert await reconciler.process(b"not json", SIGNATURE) is None
        assert await reconciler.process(b'{"type": "x"}', SIGNATURE) is None
        assert ledger.rows == {}


class TestCheckoutCompleted:
    """Tests for checkout.session.completed."""

    @pytest.mark.asyncio
    async def test_pending_purchase_becomes_paid(self, reconciler, ledger, buyer, course) -> None:
        await ledger.upsert_pending(buyer.id, course.id, Decimal("25.00"))

        outcome = await reconciler.process(completed_event(course.id, buyer.id), SIGNATURE)

        assert outcome == ReconcileOutcome.PAID_UPDATED
        purchase = await ledger.get(buyer.id, course.id)
        assert purchase.status == PurchaseStatus.PAID
        assert purchase.amount == Decimal("25.00")
        assert purchase.provider_session_id == "cs_test_1"
        assert purchase.paid_at is not None

    @pytest.mark.asyncio
    async def test_price_2500_cents_grants_access(self, reconciler, ledger, buyer, course) -> None:
        """A 2500 cent course settles as 25.00 and unlocks the course."""
        student = UserResponse(id=buyer.id, email=buyer.email, role=UserRole.STUDENT)
        policy = AccessPolicy(ledger)
        assert await policy.has_access(student, course) is False

        outcome = await reconciler.process(completed_event(course.id, buyer.id), SIGNATURE)

        assert outcome == ReconcileOutcome.PAID_CREATED
        purchase = await ledger.get(buyer.id, course.id)
        assert purchase.amount == Decimal("25.00")
        assert await policy.has_access(student, course) is True

    @pytest.mark.asyncio
    async def test_duplicate_delivery_is_idempotent(self, reconciler, ledger, buyer, course) -> None:
        payload = completed_event(course.id, buyer.id)

        first = await reconciler.process(payload, SIGNATURE)
        paid_at = (await ledger.get(buyer.id, course.id)).paid_at
        second = await reconciler.process(payload, SIGNATURE)

        assert first == ReconcileOutcome.PAID_CREATED
        assert second == ReconcileOutcome.ALREADY_PAID
        assert len(ledger.rows) == 1
        assert (await ledger.get(buyer.id, course.id)).paid_at == paid_at

    @pytest.mark.asyncio
    async def test_concurrent_duplicates_converge(self, reconciler, ledger, buyer, course) -> None:
        payload = completed_event(course.id, buyer.id)

        outcomes = await asyncio.gather(
            *(reconciler.process(payload, SIGNATURE) for _ in range(5))
        )

        assert outcomes.count(ReconcileOutcome.PAID_CREATED) == 1
        assert outcomes.count(ReconcileOutcome.ALREADY_PAID) == 4
        assert len(ledger.paid_rows()) == 1

    @pytest.mark.asyncio
    async def test_concurrent_with_checkout_retry(self, reconciler, ledger, buyer, course) -> None:
        """A checkout retry racing the webhook never reverts a paid row."""
        await ledger.upsert_pending(buyer.id, course.id, Decimal("25.00"))

        await asyncio.gather(
            reconciler.process(completed_event(course.id, buyer.id), SIGNATURE),
            ledger.upsert_pending(buyer.id, course.id, Decimal("25.00")),
            return_exceptions=True,
        )

        assert (await ledger.get(buyer.id, course.id)).status == PurchaseStatus.PAID

    @pytest.mark.asyncio
    async def test_falls_back_to_customer_email(self, reconciler, ledger, buyer, course) -> None:
        payload = completed_event(course.id, email="Buyer@Example.com")

        outcome = await reconciler.process(payload, SIGNATURE)

        assert outcome == ReconcileOutcome.PAID_CREATED
        assert await ledger.has_paid(buyer.id, course.id)

    @pytest.mark.asyncio
    async def test_unknown_metadata_user_falls_back_to_email(
        self, reconciler, ledger, buyer, course
    ) -> None:
        payload = completed_event(course.id, user_id=uuid4(), email=buyer.email)

        assert await reconciler.process(payload, SIGNATURE) == ReconcileOutcome.PAID_CREATED
        assert await ledger.has_paid(buyer.id, course.id)

    @pytest.mark.asyncio
    async def test_unattributed_payment_dropped(self, reconciler, ledger, course) -> None:
        payload = completed_event(course.id, email="stranger@example.com")

        assert await reconciler.process(payload, SIGNATURE) == ReconcileOutcome.DROPPED_UNATTRIBUTED
        assert ledger.rows == {}

    @pytest.mark.asyncio
    async def test_inactive_email_user_not_attributed(self, reconciler, ledger, buyer, course) -> None:
        buyer.is_active = False
        payload = completed_event(course.id, email=buyer.email)

        assert await reconciler.process(payload, SIGNATURE) == ReconcileOutcome.DROPPED_UNATTRIBUTED
        assert ledger.rows == {}

    @pytest.mark.asyncio
    async def test_missing_course_metadata_dropped(self, reconciler, ledger, buyer) -> None:
        payload = completed_event(None, buyer.id)

        assert (
            await reconciler.process(payload, SIGNATURE)
            == ReconcileOutcome.DROPPED_MISSING_METADATA
        )
        assert ledger.rows == {}

    @pytest.mark.asyncio
    async def test_malformed_course_id_dropped(self, reconciler, ledger, buyer) -> None:
        payload = completed_event("not-a-uuid", buyer.id)

        assert (
            await reconciler.process(payload, SIGNATURE)
            == ReconcileOutcome.DROPPED_MISSING_METADATA
        )

    @pytest.mark.asyncio
    async def test_unknown_course_dropped(self, reconciler, ledger, buyer) -> None:
        payload = completed_event(uuid4(), buyer.id)

        assert (
            await reconciler.process(payload, SIGNATURE)
            == ReconcileOutcome.DROPPED_UNKNOWN_COURSE
        )
        assert ledger.rows == {}

    @pytest.mark.asyncio
    async def test_missing_amount_uses_course_price(self, reconciler, ledger, buyer, course) -> None:
        payload = completed_event(course.id, buyer.id, amount_total=None)

        await reconciler.process(payload, SIGNATURE)

        assert (await ledger.get(buyer.id, course.id)).amount == Decimal("25.00")


class TestPaymentFailed:
    """Tests for payment_intent.payment_failed."""

    @pytest.mark.asyncio
    async def test_pending_becomes_failed(self, reconciler, ledger, buyer, course) -> None:
        await ledger.upsert_pending(buyer.id, course.id, Decimal("25.00"))

        outcome = await reconciler.process(failed_event(course.id, buyer.id), SIGNATURE)

        assert outcome == ReconcileOutcome.FAILED_MARKED
        assert (await ledger.get(buyer.id, course.id)).status == PurchaseStatus.FAILED

    @pytest.mark.asyncio
    async def test_without_row_is_noop(self, reconciler, ledger, buyer, course) -> None:
        outcome = await reconciler.process(failed_event(course.id, buyer.id), SIGNATURE)

        assert outcome == ReconcileOutcome.FAILED_NO_PENDING
        assert ledger.rows == {}

    @pytest.mark.asyncio
    async def test_failure_after_success_does_not_revert(
        self, reconciler, ledger, buyer, course
    ) -> None:
        """Events delivered out of order: completed first, stale failure second."""
        await ledger.upsert_pending(buyer.id, course.id, Decimal("25.00"))
        await reconciler.process(completed_event(course.id, buyer.id), SIGNATURE)

        outcome = await reconciler.process(failed_event(course.id, buyer.id), SIGNATURE)

        assert outcome == ReconcileOutcome.FAILED_NO_PENDING
        assert (await ledger.get(buyer.id, course.id)).status == PurchaseStatus.PAID

    @pytest.mark.asyncio
    async def test_success_after_failure_pays(self, reconciler, ledger, buyer, course) -> None:
        await ledger.upsert_pending(buyer.id, course.id, Decimal("25.00"))
        await reconciler.process(failed_event(course.id, buyer.id), SIGNATURE)

        outcome = await reconciler.process(completed_event(course.id, buyer.id), SIGNATURE)

        assert outcome == ReconcileOutcome.PAID_UPDATED
        assert len(ledger.paid_rows()) == 1

    @pytest.mark.asyncio
    async def test_missing_user_metadata_dropped(self, reconciler, ledger, course) -> None:
        outcome = await reconciler.process(failed_event(course.id, None), SIGNATURE)
        assert outcome == ReconcileOutcome.DROPPED_MISSING_METADATA


class TestRobustness:
    """Reconciliation never raises."""

    @pytest.mark.asyncio
    async def test_other_event_types_ignored(self, reconciler, ledger) -> None:
        payload = orjson.dumps(
            {"id": "evt_x", "type": "customer.created", "data": {"object": {"id": "cus_1"}}}
        )
        assert await reconciler.process(payload, SIGNATURE) == ReconcileOutcome.IGNORED

    @pytest.mark.asyncio
    async def test_ledger_failure_returns_error(self, reconciler, buyer, course) -> None:
        reconciler.ledger.mark_paid = AsyncMock(side_effect=RuntimeError("cassandra unavailable"))

        outcome = await reconciler.process(completed_event(course.id, buyer.id), SIGNATURE)

        assert outcome == ReconcileOutcome.ERROR

    @pytest.mark.asyncio
    async def test_non_object_metadata_dropped(self, reconciler, ledger) -> None:
        payload = orjson.dumps(
            {
                "id": "evt_m",
                "type": "checkout.session.completed",
                "data": {"object": {"id": "cs_1", "metadata": "courseId", "customer_details": "x"}},
            }
        )

        outcome = await reconciler.process(payload, SIGNATURE)

        assert outcome == ReconcileOutcome.DROPPED_MISSING_METADATA
        assert ledger.rows == {}

    @pytest.mark.asyncio
    async def test_non_object_data_dropped(self, reconciler, ledger) -> None:
        payload = orjson.dumps(
            {"id": "evt_1", "type": "checkout.session.completed", "data": {"object": "abc"}}
        )

        assert await reconciler.process(payload, SIGNATURE) is None
        assert ledger.rows == {}


class TestWebhookEndpoint:
    """POST /v1/webhooks/stripe always acknowledges."""

    def test_verified_event_reconciled(self, client, services) -> None:
        buyer = services.users.add(make_user())
        course = services.courses.add(make_course(price_cents=2500))

        response = client.post(
            "/v1/webhooks/stripe",
            content=completed_event(course.id, buyer.id),
            headers={"Stripe-Signature": SIGNATURE, "Content-Type": "application/json"},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}
        assert services.ledger.rows[(buyer.id, course.id)].status == PurchaseStatus.PAID

    def test_bad_signature_still_200(self, client, services) -> None:
        buyer = services.users.add(make_user())
        course = services.courses.add(make_course())

        response = client.post(
            "/v1/webhooks/stripe",
            content=completed_event(course.id, buyer.id),
            headers={"Stripe-Signature": "forged"},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}
        assert services.ledger.rows == {}

    def test_missing_signature_still_200(self, client, services) -> None:
        response = client.post("/v1/webhooks/stripe", content=b"{}")

        assert response.status_code == 200
        assert services.ledger.rows == {}

    def test_unattributed_event_still_200(self, client, services) -> None:
        course = services.courses.add(make_course())

        response = client.post(
            "/v1/webhooks/stripe",
            content=completed_event(course.id, email="nobody@example.com"),
            headers={"Stripe-Signature": SIGNATURE},
        )

        assert response.status_code == 200
        assert services.ledger.rows == {}

    def test_non_object_data_still_200(self, client, services) -> None:
        response = client.post(
            "/v1/webhooks/stripe",
            content=b'{"id":"evt_1","type":"checkout.session.completed","data":{"object":"abc"}}',
            headers={"Stripe-Signature": SIGNATURE},
        )

        assert response.status_code == 200
        assert response.json() == {"received": True}
        assert services.ledger.rows == {}
