"""Authentication boundary: token verification, roles and user lookup."""

from coursemarket.auth.dependencies import CurrentUser, InstructorUser, OptionalUser
from coursemarket.auth.models import User
from coursemarket.auth.permissions import UserRole
from coursemarket.auth.schemas import UserResponse
from coursemarket.auth.service import UserService


__all__ = [
    "CurrentUser",
    "InstructorUser",
    "OptionalUser",
    "User",
    "UserResponse",
    "UserRole",
    "UserService",
]
