"""Course catalogue."""

from coursemarket.courses.models import Course
from coursemarket.courses.service import CourseService


__all__ = [
    "Course",
    "CourseService",
]
