"""Course access decision.

Access hierarchy, first match wins:
1. ADMIN role
2. The course's instructor
3. A paid purchase for (user, course)

The decision has no side effects. An anonymous caller never has access and
never causes a ledger read.
"""

from typing import TYPE_CHECKING, Protocol
from uuid import UUID

from coursemarket.auth.permissions import is_admin


if TYPE_CHECKING:
    from coursemarket.auth.schemas import UserResponse
    from coursemarket.courses.models import Course
    from coursemarket.purchases.ledger import PurchaseLedger


class AccessSubject(Protocol):
    id: UUID
    role: str


def decide_access(user: "AccessSubject | None", course: "Course", has_paid: bool) -> bool:
    """Pure access rule given whether a paid purchase exists."""
    if user is None:
        return False
    if is_admin(user.role):
        return True
    if course.is_owned_by(user.id):
        return True
    return has_paid


def grants_without_purchase(user: "AccessSubject", course: "Course") -> bool:
    return decide_access(user, course, has_paid=False)


class AccessPolicy:
    """Evaluates course access against the purchase ledger."""

    def __init__(self, ledger: "PurchaseLedger"):
        self.ledger = ledger

    async def has_access(self, user: "UserResponse | None", course: "Course") -> bool:
        if user is None:
            return False
        if grants_without_purchase(user, course):
            return True
        return await self.ledger.has_paid(user.id, course.id)

    async def access_flags(
        self, user: "UserResponse | None", courses: list["Course"]
    ) -> dict[UUID, bool]:
        """Access flag per course for a listing, with one ledger query."""
        if user is None:
            return {course.id: False for course in courses}

        if is_admin(user.role):
            return {course.id: True for course in courses}

        paid = await self.ledger.paid_course_ids(user.id)
        return {course.id: decide_access(user, course, course.id in paid) for course in courses}
