"""HTTP endpoints for the course catalogue.

Provides:
- GET  /v1/courses              - List courses with the caller's access flag
- POST /v1/courses              - Create course (instructor/admin)
- GET  /v1/courses/{id}         - Course detail, materials only with access
- PUT  /v1/courses/{id}         - Update course (owner/admin)
- GET  /v1/courses/{id}/sales   - Sales statistics (owner/admin)
"""

from uuid import UUID

from fastapi import APIRouter, Query, status

from coursemarket.auth.dependencies import InstructorUser, OptionalUser
from coursemarket.files.dependencies import FileServiceDep
from coursemarket.files.schemas import FileResponse
from coursemarket.purchases.dependencies import AccessPolicyDep

from .dependencies import CourseServiceDep
from .schemas import (
    CourseDetailResponse,
    CourseListResponse,
    CourseResponse,
    CreateCourseRequest,
    SalesStatsResponse,
    UpdateCourseRequest,
)


router = APIRouter(prefix="/v1/courses", tags=["courses"])


@router.get(
    "",
    response_model=CourseListResponse,
    summary="List courses",
)
async def list_courses(
    service: CourseServiceDep,
    access: AccessPolicyDep,
    current_user: OptionalUser,
    instructor_id: UUID | None = Query(None, description="Only courses of this instructor"),
    limit: int = Query(100, ge=1, le=500),
) -> CourseListResponse:
    """List courses. ``has_access`` reflects the caller (false when anonymous)."""
    if instructor_id is not None:
        courses = await service.list_courses_by_instructor(instructor_id, limit)
    else:
        courses = await service.list_courses(limit)

    flags = await access.access_flags(current_user, courses)
    return CourseListResponse(
        items=[service.to_response(c, has_access=flags[c.id]) for c in courses],
        total=len(courses),
    )


@router.post(
    "",
    response_model=CourseResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a course",
)
async def create_course(
    data: CreateCourseRequest,
    service: CourseServiceDep,
    current_user: InstructorUser,
) -> CourseResponse:
    """Create a course owned by the current instructor."""
    course = await service.create_course(data, current_user.id)
    return service.to_response(course, has_access=True)


@router.get(
    "/{course_id}",
    response_model=CourseDetailResponse,
    response_model_exclude_none=True,
    summary="Get course detail",
)
async def get_course(
    course_id: UUID,
    service: CourseServiceDep,
    file_service: FileServiceDep,
    access: AccessPolicyDep,
    current_user: OptionalUser,
) -> CourseDetailResponse:
    """Course detail.

    With access (admin, instructor or paid purchase) the materials are
    included; otherwise a summary with ``has_access = false`` is returned.
    """
    course = await service.require_course(course_id)
    has_access = await access.has_access(current_user, course)

    summary = service.to_response(course, has_access=has_access)
    if not has_access:
        return CourseDetailResponse(**summary.model_dump())

    files = await file_service.list_course_files(course.id)
    return CourseDetailResponse(
        **summary.model_dump(),
        materials=[FileResponse.model_validate(f) for f in files],
    )


@router.put(
    "/{course_id}",
    response_model=CourseResponse,
    summary="Update a course",
)
async def update_course(
    course_id: UUID,
    data: UpdateCourseRequest,
    service: CourseServiceDep,
    current_user: InstructorUser,
) -> CourseResponse:
    """Update title, description or price. Owner or admin only."""
    course = await service.update_course(course_id, data, current_user)
    return service.to_response(course, has_access=True)


@router.get(
    "/{course_id}/sales",
    response_model=SalesStatsResponse,
    summary="Course sales statistics",
)
async def get_sales_stats(
    course_id: UUID,
    service: CourseServiceDep,
    current_user: InstructorUser,
) -> SalesStatsResponse:
    """Paid sales count, revenue and the five most recent buyers."""
    return await service.get_sales_stats(course_id, current_user)
