# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""User lookup service.

Read-only access to the users table: by id for authorisation and reporting,
by email for attributing anonymous checkouts in the webhook reconciler.
"""

from typing import TYPE_CHECKING
from uuid import UUID

from coursemarket.auth.models import User
from coursemarket.core.logging import get_logger


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = get_logger(__name__)


class UserService:
    """Service for user lookups."""

    def __init__(self, session: "Session", keyspace: str):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        self._get_user_by_id = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.users WHERE id = ?"
        )
        self._get_user_by_email = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.users WHERE email = ?"
        )

    async def get_user_by_id(self, user_id: UUID) -> User | None:
        """Get user by ID."""
        result = await self.session.aexecute(self._get_user_by_id, [user_id])
        row = result.one()
        return User.from_row(row) if row else None

    async def get_user_by_email(self, email: str) -> User | None:
        """Get user by email (case-insensitive, emails are stored lower-cased)."""
        normalized = email.lower().strip()
        if not normalized:
            return None
        result = await self.session.aexecute(self._get_user_by_email, [normalized])
        row = result.one()
        return User.from_row(row) if row else None

    async def get_users_by_ids(self, user_ids: list[UUID]) -> dict[UUID, User]:
        """Get several users, skipping ids that no longer resolve."""
        users: dict[UUID, User] = {}
        for user_id in dict.fromkeys(user_ids):
            user = await self.get_user_by_id(user_id)
            if user is not None:
                users[user_id] = user
            else:
                logger.warning("user_not_found", user_id=str(user_id))
        return users
