# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Course catalogue service layer.

Business logic for:
- Course create/update (owner or admin)
- Listing with per-caller access flags
- Material list maintenance for uploaded files
- Sales statistics from the purchase ledger
"""

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from coursemarket.auth.schemas import UserSummary
from coursemarket.core.errors import ForbiddenError, NotFoundError
from coursemarket.core.logging import get_logger
from coursemarket.courses.models import CATALOG_PARTITION, Course, can_manage_course
from coursemarket.courses.schemas import (
    CourseResponse,
    CreateCourseRequest,
    SaleEntry,
    SalesStatsResponse,
    UpdateCourseRequest,
)


if TYPE_CHECKING:
    from collections.abc import Iterable

    from cassandra.cluster import Session

    from coursemarket.auth.schemas import UserResponse
    from coursemarket.auth.service import UserService
    from coursemarket.purchases.ledger import PurchaseLedger


logger = get_logger(__name__)

RECENT_SALES_LIMIT = 5


class CourseService:
    """Service for course management."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        ledger: "PurchaseLedger",
        user_service: "UserService",
        currency: str = "usd",
    ):
        """Initialize with Cassandra session and collaborators."""
        self.session = session
        self.keyspace = keyspace
        self.ledger = ledger
        self.user_service = user_service
        self.currency = currency
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient queries."""
        self._insert_course = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.courses
            (id, title, description, price_cents, instructor_id, material_ids,
             created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._insert_course_by_instructor = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.courses_by_instructor
            (instructor_id, created_at, course_id)
            VALUES (?, ?, ?)
        """)

        self._get_course = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.courses WHERE id = ?"
        )

        self._insert_course_by_recency = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.courses_by_recency
            (catalog, created_at, course_id)
            VALUES (?, ?, ?)
        """)

        self._get_courses_by_recency = self.session.prepare(f"""
            SELECT course_id FROM {self.keyspace}.courses_by_recency
            WHERE catalog = ?
            LIMIT ?
        """)

        self._get_courses_by_instructor = self.session.prepare(f"""
            SELECT course_id FROM {self.keyspace}.courses_by_instructor
            WHERE instructor_id = ?
            LIMIT ?
        """)

        self._update_course = self.session.prepare(f"""
            UPDATE {self.keyspace}.courses
            SET title = ?, description = ?, price_cents = ?, updated_at = ?
            WHERE id = ?
        """)

        self._append_material = self.session.prepare(f"""
            UPDATE {self.keyspace}.courses
            SET material_ids = material_ids + ?, updated_at = ?
            WHERE id = ?
        """)

        self._remove_material = self.session.prepare(f"""
            UPDATE {self.keyspace}.courses
            SET material_ids = material_ids - ?, updated_at = ?
            WHERE id = ?
        """)

    # --------------------------------------------------------------------------
    # Courses
    # --------------------------------------------------------------------------

    async def create_course(self, data: CreateCourseRequest, instructor_id: UUID) -> Course:
        """Create a course owned by ``instructor_id``."""
        course = Course(
            title=data.title,
            description=data.description,
            price_cents=data.price_cents,
            instructor_id=instructor_id,
        )

        await self.session.aexecute(
            self._insert_course,
            [
                course.id,
                course.title,
                course.description,
                course.price_cents,
                course.instructor_id,
                course.material_ids,
                course.created_at,
                course.updated_at,
            ],
        )
        await self.session.aexecute(
            self._insert_course_by_instructor,
            [course.instructor_id, course.created_at, course.id],
        )
        await self.session.aexecute(
            self._insert_course_by_recency,
            [CATALOG_PARTITION, course.created_at, course.id],
        )

        logger.info(
            "course_created",
            course_id=str(course.id),
            instructor_id=str(instructor_id),
            price_cents=course.price_cents,
        )
        return course

    async def get_course(self, course_id: UUID) -> Course | None:
        """Get course by ID."""
        result = await self.session.aexecute(self._get_course, [course_id])
        row = result.one()
        return Course.from_row(row) if row else None

    async def require_course(self, course_id: UUID) -> Course:
        """Get course by ID or raise NotFoundError."""
        course = await self.get_course(course_id)
        if course is None:
            raise NotFoundError("Course not found")
        return course

    async def update_course(
        self, course_id: UUID, data: UpdateCourseRequest, user: "UserResponse"
    ) -> Course:
        """Update course fields. Only the owner or an admin may update."""
        course = await self.require_course(course_id)
        if not can_manage_course(user, course):
            raise ForbiddenError("Not authorized to update this course")

        if data.title is not None:
            course.title = data.title.strip()
        if data.description is not None:
            course.description = data.description
        if data.price_cents is not None:
            course.price_cents = data.price_cents

        course.updated_at = datetime.now(UTC)

        await self.session.aexecute(
            self._update_course,
            [course.title, course.description, course.price_cents, course.updated_at, course.id],
        )

        logger.info("course_updated", course_id=str(course.id), user_id=str(user.id))
        return course

    async def list_courses(self, limit: int = 100) -> list[Course]:
        """List the newest ``limit`` courses, newest first."""
        rows = await self.session.aexecute(
            self._get_courses_by_recency, [CATALOG_PARTITION, limit]
        )
        return await self._load_courses(row.course_id for row in rows)

    async def list_courses_by_instructor(
        self, instructor_id: UUID, limit: int = 100
    ) -> list[Course]:
        """List courses of one instructor."""
        rows = await self.session.aexecute(
            self._get_courses_by_instructor, [instructor_id, limit]
        )
        return await self._load_courses(row.course_id for row in rows)

    async def _load_courses(self, course_ids: "Iterable[UUID]") -> list[Course]:
        """Fetch courses in index order, skipping ids with no course row."""
        courses = []
        for course_id in course_ids:
            course = await self.get_course(course_id)
            if course:
                courses.append(course)
        return courses

    # --------------------------------------------------------------------------
    # Materials
    # --------------------------------------------------------------------------

    async def add_material(self, course_id: UUID, file_id: UUID) -> None:
        """Append a file reference to the course's material list."""
        await self.session.aexecute(
            self._append_material, [[file_id], datetime.now(UTC), course_id]
        )

    async def remove_material(self, course_id: UUID, file_id: UUID) -> None:
        """Detach a file reference from the course's material list."""
        await self.session.aexecute(
            self._remove_material, [[file_id], datetime.now(UTC), course_id]
        )

    # --------------------------------------------------------------------------
    # Sales
    # --------------------------------------------------------------------------

    async def get_sales_stats(
        self, course_id: UUID, user: "UserResponse"
    ) -> SalesStatsResponse:
        """Paid sales totals and the most recent buyers. Owner or admin only."""
        course = await self.require_course(course_id)
        if not can_manage_course(user, course):
            raise ForbiddenError("Not authorized to view sales stats for this course")

        paid = await self.ledger.list_paid_for_course(course_id)
        total_revenue = sum((p.amount for p in paid), Decimal("0.00"))

        recent = paid[:RECENT_SALES_LIMIT]
        buyers = await self.user_service.get_users_by_ids([p.user_id for p in recent])

        recent_sales = []
        for purchase in recent:
            buyer = buyers.get(purchase.user_id)
            recent_sales.append(
                SaleEntry(
                    purchase_id=purchase.id,
                    buyer=(
                        UserSummary(id=buyer.id, name=buyer.name, email=buyer.email)
                        if buyer
                        else None
                    ),
                    amount=purchase.amount,
                    currency=purchase.currency,
                    paid_at=purchase.paid_at,
                )
            )

        return SalesStatsResponse(
            course_id=course.id,
            course_title=course.title,
            total_sales=len(paid),
            total_revenue=total_revenue,
            currency=self.currency,
            recent_sales=recent_sales,
        )

    def to_response(self, course: Course, has_access: bool = False) -> CourseResponse:
        """Convert Course entity to response."""
        return CourseResponse(
            id=course.id,
            title=course.title,
            description=course.description,
            price_cents=course.price_cents,
            price=course.price,
            currency=self.currency,
            instructor_id=course.instructor_id,
            created_at=course.created_at,
            updated_at=course.updated_at,
            material_count=len(course.material_ids),
            has_access=has_access,
        )
