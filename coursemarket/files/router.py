"""HTTP endpoints for course files.

Provides:
- POST   /v1/courses/{course_id}/files                       - Upload material
- GET    /v1/courses/{course_id}/files                       - List files (access required)
- GET    /v1/courses/{course_id}/files/{file_id}/signed-url  - Signed URL (access required)
- DELETE /v1/courses/{course_id}/files/{file_id}             - Delete file (owner/admin)
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, File, UploadFile, status

from coursemarket.auth.dependencies import InstructorUser
from coursemarket.courses.dependencies import CourseServiceDep
from coursemarket.purchases.dependencies import AccessibleCourse

from .dependencies import FileServiceDep
from .schemas import FileDeletedResponse, FileListResponse, FileResponse, SignedUrlResponse


router = APIRouter(prefix="/v1/courses/{course_id}/files", tags=["files"])


@router.post(
    "",
    response_model=FileResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a course file",
)
async def upload_file(
    course_id: UUID,
    file: Annotated[UploadFile, File(description="Material to upload")],
    service: FileServiceDep,
    course_service: CourseServiceDep,
    current_user: InstructorUser,
) -> FileResponse:
    """Upload a material to a course.

    Permission, content type and declared size are checked before the file
    body is read.
    """
    course = await course_service.require_course(course_id)
    content_type = file.content_type or "application/octet-stream"

    service.check_upload_allowed(course, current_user, content_type, file.size or 0)

    content = await file.read()
    course_file = await service.commit_upload(
        course=course,
        content=content,
        original_name=file.filename or "file",
        mime_type=content_type,
        uploader=current_user,
    )
    return FileResponse.model_validate(course_file)


@router.get(
    "",
    response_model=FileListResponse,
    summary="List course files",
)
async def list_files(
    course: AccessibleCourse,
    service: FileServiceDep,
) -> FileListResponse:
    """List the files of a course the caller has access to."""
    files = await service.list_course_files(course.id)
    return FileListResponse(
        items=[FileResponse.model_validate(f) for f in files],
        total=len(files),
    )


@router.get(
    "/{file_id}/signed-url",
    response_model=SignedUrlResponse,
    summary="Get a signed download URL",
)
async def get_signed_url(
    file_id: UUID,
    course: AccessibleCourse,
    service: FileServiceDep,
) -> SignedUrlResponse:
    """Issue a fresh 15-minute download URL for a course file."""
    grant = await service.get_file_access_url(course.id, file_id)
    return SignedUrlResponse(
        url=grant.url,
        expires_at=grant.expires_at,
        filename=grant.filename,
        mime_type=grant.mime_type,
    )


@router.delete(
    "/{file_id}",
    response_model=FileDeletedResponse,
    summary="Delete a course file",
)
async def delete_file(
    course_id: UUID,
    file_id: UUID,
    service: FileServiceDep,
    current_user: InstructorUser,
) -> FileDeletedResponse:
    """Delete a file from a course and from storage."""
    storage_deleted = await service.delete_file(course_id, file_id, current_user)
    return FileDeletedResponse(id=file_id, storage_deleted=storage_deleted)
