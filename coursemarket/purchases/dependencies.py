"""FastAPI dependencies for purchases and course access."""

from collections.abc import Callable
from typing import Annotated
from uuid import UUID

from fastapi import Depends

from coursemarket.auth.dependencies import CurrentUser
from coursemarket.core.context import set_course_id
from coursemarket.core.errors import ForbiddenError
from coursemarket.core.logging import get_logger
from coursemarket.courses.dependencies import CourseServiceDep
from coursemarket.courses.models import Course
from coursemarket.purchases.access import AccessPolicy
from coursemarket.purchases.ledger import PurchaseLedger


logger = get_logger(__name__)


# ==============================================================================
# Service Getters (set by main.py)
# ==============================================================================

_ledger_getter: Callable[[], PurchaseLedger] | None = None
_access_policy_getter: Callable[[], AccessPolicy] | None = None


def set_ledger_getter(getter: Callable[[], PurchaseLedger]) -> None:
    """Set the purchase ledger getter function."""
    global _ledger_getter  # noqa: PLW0603 - Required for DI pattern
    _ledger_getter = getter


def set_access_policy_getter(getter: Callable[[], AccessPolicy]) -> None:
    """Set the access policy getter function."""
    global _access_policy_getter  # noqa: PLW0603 - Required for DI pattern
    _access_policy_getter = getter


def get_ledger() -> PurchaseLedger:
    """Get PurchaseLedger instance from app state."""
    if _ledger_getter is None:
        msg = "PurchaseLedger not configured"
        raise RuntimeError(msg)
    return _ledger_getter()


def get_access_policy() -> AccessPolicy:
    """Get AccessPolicy instance from app state."""
    if _access_policy_getter is None:
        msg = "AccessPolicy not configured"
        raise RuntimeError(msg)
    return _access_policy_getter()


LedgerDep = Annotated[PurchaseLedger, Depends(get_ledger)]
AccessPolicyDep = Annotated[AccessPolicy, Depends(get_access_policy)]


# ==============================================================================
# Course Access
# ==============================================================================


async def require_course_access(
    course_id: UUID,
    current_user: CurrentUser,
    course_service: CourseServiceDep,
    access: AccessPolicyDep,
) -> Course:
    """Resolve the path course and require the caller to have access.

    Raises:
        NotFoundError: Unknown course
        ForbiddenError: Not admin, not instructor, no paid purchase
    """
    set_course_id(course_id)
    course = await course_service.require_course(course_id)
    if not await access.has_access(current_user, course):
        logger.info("course_access_denied", role=current_user.role.value)
        raise ForbiddenError("Purchase required to access this course")
    return course


AccessibleCourse = Annotated[Course, Depends(require_course_access)]
