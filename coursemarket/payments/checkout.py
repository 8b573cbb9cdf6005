"""Checkout initiation."""

from typing import TYPE_CHECKING
from uuid import UUID

from coursemarket.core.errors import AlreadyOwnedError
from coursemarket.core.logging import get_logger
from coursemarket.courses.models import cents_to_amount


if TYPE_CHECKING:
    from coursemarket.auth.schemas import UserResponse
    from coursemarket.courses.service import CourseService
    from coursemarket.payments.gateway import CheckoutSession, PaymentGateway
    from coursemarket.purchases.ledger import PurchaseLedger


logger = get_logger(__name__)


class CheckoutService:
    """Starts a provider checkout for a course."""

    def __init__(
        self,
        course_service: "CourseService",
        ledger: "PurchaseLedger",
        gateway: "PaymentGateway",
        currency: str = "usd",
    ):
        self.course_service = course_service
        self.ledger = ledger
        self.gateway = gateway
        self.currency = currency

    async def initiate_checkout(
        self,
        course_id: UUID,
        buyer_email: str,
        user: "UserResponse | None" = None,
    ) -> "CheckoutSession":
        """Create a checkout session for a course.

        For a signed-in buyer the pending purchase is recorded before the
        provider is contacted, and the provider session id is attached to it
        afterwards. Anonymous checkouts leave the ledger to the webhook.

        Raises:
            NotFoundError: Unknown course
            AlreadyOwnedError: The buyer already paid for the course
            PaymentsNotConfiguredError / PaymentGatewayError: Provider side
        """
        course = await self.course_service.require_course(course_id)

        if user is not None:
            if await self.ledger.has_paid(user.id, course.id):
                logger.info(
                    "checkout_already_owned", course_id=str(course.id), user_id=str(user.id)
                )
                raise AlreadyOwnedError("You already own this course")

            await self.ledger.upsert_pending(
                user.id,
                course.id,
                amount=cents_to_amount(course.price_cents),
                currency=self.currency,
            )

        session = await self.gateway.create_checkout_session(
            course_id=course.id,
            course_title=course.title,
            unit_amount=course.price_cents,
            currency=self.currency,
            buyer_email=buyer_email,
            user_id=user.id if user else None,
        )

        if user is not None:
            attached = await self.ledger.attach_session(user.id, course.id, session.session_id)
            if not attached:
                # Webhook already settled the row
                logger.info(
                    "checkout_session_not_attached",
                    course_id=str(course.id),
                    user_id=str(user.id),
                    session_id=session.session_id,
                )

        logger.info(
            "checkout_initiated",
            course_id=str(course.id),
            user_id=str(user.id) if user else None,
            session_id=session.session_id,
            anonymous=user is None,
        )
        return session
