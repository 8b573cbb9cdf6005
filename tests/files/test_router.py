"""API tests for course file endpoints."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock
from uuid import uuid4

from fastapi.testclient import TestClient

from coursemarket.auth.permissions import UserRole
from coursemarket.core.errors import MismatchError
from coursemarket.files.service import FileAccessGrant
from coursemarket.purchases.models import PurchaseStatus

from tests.fakes import Services, auth_headers, make_course, make_user


def _grant() -> FileAccessGrant:
    return FileAccessGrant(
        url="https://storage.example.com/signed",
        expires_at=datetime.now(UTC) + timedelta(minutes=15),
        filename="notes.pdf",
        mime_type="application/pdf",
    )


class TestSignedUrl:
    """GET /v1/courses/{course_id}/files/{file_id}/signed-url"""

    def test_requires_authentication(self, client: TestClient, services: Services) -> None:
        course = services.courses.add(make_course())

        response = client.get(f"/v1/courses/{course.id}/files/{uuid4()}/signed-url")

        assert response.status_code == 401

    def test_forbidden_without_purchase(self, client: TestClient, services: Services) -> None:
        course = services.courses.add(make_course())
        student = make_user()

        response = client.get(
            f"/v1/courses/{course.id}/files/{uuid4()}/signed-url",
            headers=auth_headers(student),
        )

        assert response.status_code == 403
        assert response.json()["code"] == "forbidden"
        services.files.get_file_access_url.assert_not_called()

    def test_pending_purchase_is_not_enough(self, client: TestClient, services: Services) -> None:
        course = services.courses.add(make_course())
        student = make_user()
        services.files.get_file_access_url = AsyncMock(return_value=_grant())
        services.ledger.seed(student.id, course.id, PurchaseStatus.PENDING)
        response = client.get(
            f"/v1/courses/{course.id}/files/{uuid4()}/signed-url",
            headers=auth_headers(student),
        )

        assert response.status_code == 403

    def test_paid_purchase_gets_url(self, client: TestClient, services: Services) -> None:
        course = services.courses.add(make_course())
        student = make_user()
        file_id = uuid4()
        services.files.get_file_access_url = AsyncMock(return_value=_grant())
        services.ledger.seed(student.id, course.id, PurchaseStatus.PAID)
        response = client.get(
            f"/v1/courses/{course.id}/files/{file_id}/signed-url",
            headers=auth_headers(student),
        )

        assert response.status_code == 200
        assert response.json()["url"] == "https://storage.example.com/signed"
        services.files.get_file_access_url.assert_awaited_once_with(course.id, file_id)

    def test_instructor_and_admin_without_purchase(
        self, client: TestClient, services: Services
    ) -> None:
        instructor = make_user(role=UserRole.INSTRUCTOR.value)
        admin = make_user(role=UserRole.ADMIN.value)
        course = services.courses.add(make_course(instructor_id=instructor.id))
        services.files.get_file_access_url = AsyncMock(return_value=_grant())

        for user in (instructor, admin):
            response = client.get(
                f"/v1/courses/{course.id}/files/{uuid4()}/signed-url",
                headers=auth_headers(user),
            )
            assert response.status_code == 200

    def test_file_of_other_course_is_400(self, client: TestClient, services: Services) -> None:
        instructor = make_user(role=UserRole.INSTRUCTOR.value)
        course = services.courses.add(make_course(instructor_id=instructor.id))
        services.files.get_file_access_url = AsyncMock(side_effect=MismatchError())

        response = client.get(
            f"/v1/courses/{course.id}/files/{uuid4()}/signed-url",
            headers=auth_headers(instructor),
        )

        assert response.status_code == 400
        assert response.json()["code"] == "mismatch"

    def test_unknown_course_is_404(self, client: TestClient, services: Services) -> None:
        response = client.get(
            f"/v1/courses/{uuid4()}/files/{uuid4()}/signed-url",
            headers=auth_headers(make_user()),
        )

        assert response.status_code == 404


class TestUpload:
    """POST /v1/courses/{course_id}/files"""

    def test_student_cannot_upload(self, client: TestClient, services: Services) -> None:
        course = services.courses.add(make_course())

        response = client.post(
            f"/v1/courses/{course.id}/files",
            files={"file": ("notes.pdf", b"%PDF", "application/pdf")},
            headers=auth_headers(make_user()),
        )

        assert response.status_code == 403
        services.files.commit_upload.assert_not_called()
