"""Pydantic schemas for the course catalogue.

Request and response models for:
- Courses: create, update, list, detail
- Sales statistics for instructors
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from coursemarket.auth.schemas import UserSummary
from coursemarket.files.schemas import FileResponse


# ==============================================================================
# Course Schemas
# ==============================================================================


class CreateCourseRequest(BaseModel):
    """Course creation request."""

    title: str = Field(..., min_length=3, max_length=200, description="Course title")
    description: str = Field("", max_length=5000, description="Course description")
    price_cents: int = Field(
        ..., ge=0, description="Price in minor currency units (2500 = 25.00)"
    )


class UpdateCourseRequest(BaseModel):
    """Course update request."""

    title: str | None = Field(
        None, min_length=3, max_length=200, description="Course title"
    )
    description: str | None = Field(
        None, max_length=5000, description="Course description"
    )
    price_cents: int | None = Field(None, ge=0, description="Price in minor units")


class CourseResponse(BaseModel):
    """Course summary, safe to show to anyone."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    description: str
    price_cents: int
    price: Decimal
    currency: str
    instructor_id: UUID | None = None
    created_at: datetime
    updated_at: datetime | None = None
    material_count: int = 0
    has_access: bool = False


class CourseDetailResponse(CourseResponse):
    """Course detail. ``materials`` is omitted unless the caller has access."""

    materials: list[FileResponse] | None = None


class CourseListResponse(BaseModel):
    """Course list response."""

    items: list[CourseResponse]
    total: int


# ==============================================================================
# Sales Schemas
# ==============================================================================


class SaleEntry(BaseModel):
    """One paid purchase in the sales report."""

    purchase_id: UUID
    buyer: UserSummary | None = None
    amount: Decimal
    currency: str
    paid_at: datetime | None = None


class SalesStatsResponse(BaseModel):
    """Paid sales of a course."""

    course_id: UUID
    course_title: str
    total_sales: int
    total_revenue: Decimal
    currency: str
    recent_sales: list[SaleEntry]
