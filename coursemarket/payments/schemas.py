"""Pydantic schemas for checkout and webhooks."""

from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class CheckoutRequest(BaseModel):
    """Start a checkout for a course."""

    course_id: UUID
    buyer_email: EmailStr = Field(..., description="Receipt email, also used to attribute anonymous payments")


class CheckoutResponse(BaseModel):
    """Hosted checkout page to redirect the buyer to."""

    url: str
    session_id: str


class WebhookAck(BaseModel):
    """Acknowledgement returned for every webhook delivery."""

    received: bool = True
