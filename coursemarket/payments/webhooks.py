"""Payment webhook reconciliation.

The provider delivers events at least once and in any order. Verification
happens synchronously on the request path; reconciliation runs afterwards as
a background task and never raises. Every ledger change goes through the
ledger's conditional transitions, so duplicates and concurrent deliveries
converge on the same state.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog

from coursemarket.core.errors import UnattributedEventError, UnverifiedEventError
from coursemarket.core.logging import get_logger
from coursemarket.courses.models import cents_to_amount
from coursemarket.purchases.ledger import MarkPaidResult


if TYPE_CHECKING:
    from coursemarket.auth.models import User
    from coursemarket.auth.service import UserService
    from coursemarket.courses.service import CourseService
    from coursemarket.payments.gateway import PaymentEvent, PaymentGateway
    from coursemarket.purchases.ledger import PurchaseLedger


logger = get_logger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
PAYMENT_FAILED = "payment_intent.payment_failed"


class ReconcileOutcome(str, Enum):
    """Result of processing one webhook event."""

    PAID_CREATED = "paid_created"
    PAID_UPDATED = "paid_updated"
    ALREADY_PAID = "already_paid"
    FAILED_MARKED = "failed_marked"
    FAILED_NO_PENDING = "failed_no_pending"
    IGNORED = "ignored"
    DROPPED_MISSING_METADATA = "dropped_missing_metadata"
    DROPPED_UNATTRIBUTED = "dropped_unattributed"
    DROPPED_UNKNOWN_COURSE = "dropped_unknown_course"
    ERROR = "error"


_PAID_OUTCOMES = {
    MarkPaidResult.CREATED: ReconcileOutcome.PAID_CREATED,
    MarkPaidResult.UPDATED: ReconcileOutcome.PAID_UPDATED,
    MarkPaidResult.ALREADY_PAID: ReconcileOutcome.ALREADY_PAID,
}


def _parse_uuid(value: Any) -> UUID | None:
    if not value:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


def _customer_email(session: dict[str, Any]) -> str | None:
    details = session.get("customer_details")
    if not isinstance(details, dict):
        details = {}
    return session.get("customer_email") or details.get("email")


class WebhookReconciler:
    """Applies verified payment events to the purchase ledger."""

    def __init__(
        self,
        gateway: "PaymentGateway",
        ledger: "PurchaseLedger",
        user_service: "UserService",
        course_service: "CourseService",
        currency: str = "usd",
        provider: str = "stripe",
    ):
        self.gateway = gateway
        self.ledger = ledger
        self.user_service = user_service
        self.course_service = course_service
        self.currency = currency
        self.provider = provider

    def verify(self, payload: bytes, signature: str | None) -> "PaymentEvent | None":
        """Verify a delivery. Returns None (and logs) when it must be dropped."""
        try:
            event = self.gateway.verify_event(payload, signature)
        except UnverifiedEventError as e:
            logger.warning(
                "webhook_unverified",
                reason=e.message,
                signature_present=bool(signature),
                payload_size=len(payload),
            )
            return None

        logger.info("webhook_received", event_id=event.id, event_type=event.type)
        return event

    async def reconcile(self, event: "PaymentEvent") -> ReconcileOutcome:
        """Process one verified event. Never raises."""
        with structlog.contextvars.bound_contextvars(
            event_id=event.id,
            event_type=event.type,
            course_id=event.metadata.get("courseId"),
            metadata_user_id=event.metadata.get("userId"),
            provider_object_id=event.data_object.get("id"),
        ):
            try:
                if event.type == CHECKOUT_COMPLETED:
                    outcome = await self._handle_checkout_completed(event)
                elif event.type == PAYMENT_FAILED:
                    outcome = await self._handle_payment_failed(event)
                else:
                    logger.debug("webhook_event_ignored")
                    outcome = ReconcileOutcome.IGNORED
            except Exception as e:
                logger.exception(
                    "webhook_processing_failed",
                    customer_email=_customer_email(event.data_object),
                    error=str(e),
                )
                return ReconcileOutcome.ERROR

            logger.info("webhook_processed", outcome=outcome.value)
            return outcome

    async def process(self, payload: bytes, signature: str | None) -> ReconcileOutcome | None:
        """Verify and reconcile in one call. None when verification failed."""
        event = self.verify(payload, signature)
        if event is None:
            return None
        return await self.reconcile(event)

    # --------------------------------------------------------------------------
    # Handlers
    # --------------------------------------------------------------------------

    async def _resolve_user(self, user_id: UUID | None, email: str | None) -> "User":
        if user_id is not None:
            user = await self.user_service.get_user_by_id(user_id)
            if user is not None:
                return user
            logger.warning("webhook_metadata_user_not_found", user_id=str(user_id))

        if email:
            user = await self.user_service.get_user_by_email(email)
            if user is not None:
                if user.is_active:
                    return user
                logger.warning("webhook_email_user_inactive", user_id=str(user.id))

        raise UnattributedEventError(
            f"No user for id={user_id} email={email}"
        )

    async def _handle_checkout_completed(self, event: "PaymentEvent") -> ReconcileOutcome:
        session = event.data_object
        course_id = _parse_uuid(event.metadata.get("courseId"))
        if course_id is None:
            logger.error("webhook_missing_course_metadata")
            return ReconcileOutcome.DROPPED_MISSING_METADATA

        email = _customer_email(session)
        try:
            user = await self._resolve_user(_parse_uuid(event.metadata.get("userId")), email)
        except UnattributedEventError as e:
            logger.error(
                "webhook_unattributed_payment",
                customer_email=email,
                session_id=session.get("id"),
                reason=e.message,
            )
            return ReconcileOutcome.DROPPED_UNATTRIBUTED

        course = await self.course_service.get_course(course_id)
        if course is None:
            logger.error("webhook_course_not_found", user_id=str(user.id))
            return ReconcileOutcome.DROPPED_UNKNOWN_COURSE

        amount_total = session.get("amount_total")
        amount = (
            cents_to_amount(int(amount_total))
            if amount_total is not None
            else course.price
        )
        currency = str(session.get("currency") or self.currency).lower()

        result = await self.ledger.mark_paid(
            user.id,
            course.id,
            amount=amount,
            currency=currency,
            provider=self.provider,
            session_id=session.get("id"),
            paid_at=datetime.now(UTC),
        )
        return _PAID_OUTCOMES[result]

    async def _handle_payment_failed(self, event: "PaymentEvent") -> ReconcileOutcome:
        course_id = _parse_uuid(event.metadata.get("courseId"))
        user_id = _parse_uuid(event.metadata.get("userId"))
        if course_id is None or user_id is None:
            logger.info("webhook_payment_failed_without_metadata")
            return ReconcileOutcome.DROPPED_MISSING_METADATA

        if await self.ledger.mark_failed(user_id, course_id):
            return ReconcileOutcome.FAILED_MARKED
        return ReconcileOutcome.FAILED_NO_PENDING
