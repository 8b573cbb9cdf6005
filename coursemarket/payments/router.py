"""HTTP endpoints for payments.

Provides:
- POST /v1/checkout/sessions - Start a checkout for a course
- POST /v1/webhooks/stripe   - Provider event delivery
"""

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Header, Request, status

from coursemarket.auth.dependencies import OptionalUser

from .dependencies import CheckoutServiceDep, WebhookReconcilerDep
from .schemas import CheckoutRequest, CheckoutResponse, WebhookAck


router = APIRouter(prefix="/v1/checkout", tags=["checkout"])
webhook_router = APIRouter(prefix="/v1/webhooks", tags=["webhooks"])


@router.post(
    "/sessions",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a checkout session",
)
async def create_checkout_session(
    data: CheckoutRequest,
    service: CheckoutServiceDep,
    current_user: OptionalUser,
) -> CheckoutResponse:
    """Create a hosted checkout page for a course.

    Signed-in buyers get a pending purchase recorded first. Returns 409
    ``already_owned`` when the buyer has already paid for the course.
    """
    session = await service.initiate_checkout(
        course_id=data.course_id,
        buyer_email=data.buyer_email,
        user=current_user,
    )
    return CheckoutResponse(url=session.url, session_id=session.session_id)


@webhook_router.post(
    "/stripe",
    response_model=WebhookAck,
    summary="Stripe webhook",
)
async def stripe_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    reconciler: WebhookReconcilerDep,
    stripe_signature: Annotated[str | None, Header(alias="Stripe-Signature")] = None,
) -> WebhookAck:
    """Acknowledge a provider event.

    Always answers 200. The signature is checked before anything else;
    unverified deliveries are logged and dropped. Verified events are
    reconciled after the response is sent.
    """
    payload = await request.body()
    event = reconciler.verify(payload, stripe_signature)
    if event is not None:
        background_tasks.add_task(reconciler.reconcile, event)
    return WebhookAck()
