# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Purchase ledger: reads and atomic status transitions.

Every mutation is a Cassandra lightweight transaction so that concurrent
checkouts and duplicate webhook deliveries serialize on the (user, course)
row. ``purchases_by_course`` is a reporting mirror refreshed after each
applied transition; it is never consulted for access decisions.
"""

from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from coursemarket.core.errors import AlreadyOwnedError, LedgerContentionError
from coursemarket.core.logging import get_logger

from .models import (
    DEFAULT_CURRENCY,
    DEFAULT_PROVIDER,
    PAYABLE_STATUSES,
    Purchase,
    PurchaseStatus,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session


logger = get_logger(__name__)

DEFAULT_MAX_CAS_ATTEMPTS = 5


class MarkPaidResult(str, Enum):
    """What a paid transition actually did."""

    CREATED = "created"  # No prior row, inserted as paid
    UPDATED = "updated"  # pending/failed row moved to paid
    ALREADY_PAID = "already_paid"  # Row was paid, left untouched


def _existing_status(result: Any) -> str | None:
    """Current status reported by a conditional write that was not applied."""
    row = result.one()
    return getattr(row, "status", None) if row is not None else None


def _write_time(updated_at: datetime) -> int:
    """Mirror write timestamp, in microseconds, so the newest row state wins."""
    return int(updated_at.timestamp() * 1_000_000)


class PurchaseLedger:
    """Cassandra-backed purchase ledger."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        max_cas_attempts: int = DEFAULT_MAX_CAS_ATTEMPTS,
    ):
        """Initialize with Cassandra session."""
        self.session = session
        self.keyspace = keyspace
        self.max_cas_attempts = max_cas_attempts
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient queries."""
        self._get_purchase = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.purchases
            WHERE user_id = ? AND course_id = ?
        """)

        self._get_user_purchases = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.purchases
            WHERE user_id = ?
        """)

        self._get_course_purchases = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.purchases_by_course
            WHERE course_id = ?
        """)

        # Conditional writes
        self._insert_if_absent = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.purchases
            (user_id, course_id, purchase_id, amount, currency, status,
             payment_provider, provider_session_id, paid_at, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

        self._refresh_pending = self.session.prepare(f"""
            UPDATE {self.keyspace}.purchases
            SET status = ?, amount = ?, currency = ?, provider_session_id = null,
                updated_at = ?
            WHERE user_id = ? AND course_id = ?
            IF status IN (?, ?)
        """)

        self._attach_session = self.session.prepare(f"""
            UPDATE {self.keyspace}.purchases
            SET provider_session_id = ?, updated_at = ?
            WHERE user_id = ? AND course_id = ?
            IF status = ?
        """)

        self._mark_paid = self.session.prepare(f"""
            UPDATE {self.keyspace}.purchases
            SET status = ?, amount = ?, currency = ?, payment_provider = ?,
                provider_session_id = ?, paid_at = ?, updated_at = ?
            WHERE user_id = ? AND course_id = ?
            IF status IN (?, ?)
        """)

        self._mark_failed = self.session.prepare(f"""
            UPDATE {self.keyspace}.purchases
            SET status = ?, updated_at = ?
            WHERE user_id = ? AND course_id = ?
            IF status = ?
        """)

        self._upsert_course_mirror = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.purchases_by_course
            (course_id, user_id, purchase_id, amount, currency, status,
             payment_provider, provider_session_id, paid_at, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            USING TIMESTAMP ?
        """)

    # ==========================================================================
    # Reads
    # ==========================================================================

    async def get(self, user_id: UUID, course_id: UUID) -> Purchase | None:
        """Get the purchase row for a (user, course) pair."""
        result = await self.session.aexecute(self._get_purchase, [user_id, course_id])
        row = result.one()
        return Purchase.from_row(row) if row else None

    async def has_paid(self, user_id: UUID, course_id: UUID) -> bool:
        purchase = await self.get(user_id, course_id)
        return purchase is not None and purchase.is_paid

    async def list_for_user(self, user_id: UUID) -> list[Purchase]:
        """All purchases of a user, any status."""
        rows = await self.session.aexecute(self._get_user_purchases, [user_id])
        return [Purchase.from_row(row) for row in rows]

    async def paid_course_ids(self, user_id: UUID) -> set[UUID]:
        """Ids of every course the user has paid for."""
        return {p.course_id for p in await self.list_for_user(user_id) if p.is_paid}

    async def list_paid_for_course(self, course_id: UUID) -> list[Purchase]:
        """Paid purchases of a course, most recent first."""
        rows = await self.session.aexecute(self._get_course_purchases, [course_id])
        paid = [
            Purchase.from_row(row)
            for row in rows
            if row.status == PurchaseStatus.PAID.value
        ]
        epoch = datetime.min.replace(tzinfo=UTC)
        return sorted(paid, key=lambda p: p.paid_at or epoch, reverse=True)

    # ==========================================================================
    # Transitions
    # ==========================================================================

    async def upsert_pending(
        self,
        user_id: UUID,
        course_id: UUID,
        amount: Decimal,
        currency: str = DEFAULT_CURRENCY,
    ) -> Purchase:
        """Create or reuse the pending row for a checkout attempt.

        A pending or failed row is reset to pending with the new amount; a
        missing row is created.

        Raises:
            AlreadyOwnedError: The pair is already paid
            LedgerContentionError: Concurrent writers won every attempt
        """
        for _ in range(self.max_cas_attempts):
            now = datetime.now(UTC)
            result = await self.session.aexecute(
                self._insert_if_absent,
                [
                    user_id, course_id, uuid4(), amount, currency,
                    PurchaseStatus.PENDING.value, DEFAULT_PROVIDER, None, None, now, now,
                ],
            )
            if result.was_applied:
                return await self._after_transition(user_id, course_id, "purchase_pending_created")

            if _existing_status(result) == PurchaseStatus.PAID.value:
                raise AlreadyOwnedError

            result = await self.session.aexecute(
                self._refresh_pending,
                [
                    PurchaseStatus.PENDING.value, amount, currency, now,
                    user_id, course_id, *PAYABLE_STATUSES,
                ],
            )
            if result.was_applied:
                return await self._after_transition(user_id, course_id, "purchase_pending_reused")

            if _existing_status(result) == PurchaseStatus.PAID.value:
                raise AlreadyOwnedError

        logger.warning(
            "purchase_pending_contention",
            user_id=str(user_id),
            course_id=str(course_id),
        )
        raise LedgerContentionError

    async def attach_session(self, user_id: UUID, course_id: UUID, session_id: str) -> bool:
        """Record the provider session id on a still-pending row."""
        result = await self.session.aexecute(
            self._attach_session,
            [session_id, datetime.now(UTC), user_id, course_id, PurchaseStatus.PENDING.value],
        )
        if result.was_applied:
            await self._after_transition(user_id, course_id, None)
        return bool(result.was_applied)

    async def mark_paid(
        self,
        user_id: UUID,
        course_id: UUID,
        amount: Decimal,
        currency: str = DEFAULT_CURRENCY,
        provider: str = DEFAULT_PROVIDER,
        session_id: str | None = None,
        paid_at: datetime | None = None,
    ) -> MarkPaidResult:
        """Idempotently record a successful payment.

        Moves a pending/failed row to paid, inserts a paid row when none
        exists, and leaves an already-paid row untouched. Each step is a
        conditional write; a lost race is re-evaluated against the new state.

        Raises:
            LedgerContentionError: Concurrent writers won every attempt
        """
        paid_at = paid_at or datetime.now(UTC)

        for _ in range(self.max_cas_attempts):
            now = datetime.now(UTC)
            result = await self.session.aexecute(
                self._mark_paid,
                [
                    PurchaseStatus.PAID.value, amount, currency, provider,
                    session_id, paid_at, now,
                    user_id, course_id, *PAYABLE_STATUSES,
                ],
            )
            if result.was_applied:
                await self._after_transition(user_id, course_id, "purchase_marked_paid")
                return MarkPaidResult.UPDATED

            existing = _existing_status(result)
            if existing == PurchaseStatus.PAID.value:
                return MarkPaidResult.ALREADY_PAID

            if existing is None:
                result = await self.session.aexecute(
                    self._insert_if_absent,
                    [
                        user_id, course_id, uuid4(), amount, currency,
                        PurchaseStatus.PAID.value, provider, session_id, paid_at,
                        now, now,
                    ],
                )
                if result.was_applied:
                    await self._after_transition(user_id, course_id, "purchase_created_paid")
                    return MarkPaidResult.CREATED
                if _existing_status(result) == PurchaseStatus.PAID.value:
                    return MarkPaidResult.ALREADY_PAID

        logger.warning(
            "purchase_paid_contention",
            user_id=str(user_id),
            course_id=str(course_id),
        )
        raise LedgerContentionError

    async def mark_failed(self, user_id: UUID, course_id: UUID) -> bool:
        """Move a pending row to failed. Returns False when nothing was pending."""
        result = await self.session.aexecute(
            self._mark_failed,
            [
                PurchaseStatus.FAILED.value, datetime.now(UTC),
                user_id, course_id, PurchaseStatus.PENDING.value,
            ],
        )
        if result.was_applied:
            await self._after_transition(user_id, course_id, "purchase_marked_failed")
        return bool(result.was_applied)

    async def _after_transition(
        self, user_id: UUID, course_id: UUID, event: str | None
    ) -> Purchase:
        """Re-read the row, refresh the course mirror and log the transition.

        The mirror is written with the row's ``updated_at`` as its write time;
        a stale snapshot from an overlapping transition cannot overwrite a newer one.
        """
        result = await self.session.aexecute(self._get_purchase, [user_id, course_id])
        purchase = Purchase.from_row(result.one())

        await self.session.aexecute(
            self._upsert_course_mirror,
            [
                purchase.course_id, purchase.user_id, purchase.id, purchase.amount,
                purchase.currency, purchase.status.value, purchase.payment_provider,
                purchase.provider_session_id, purchase.paid_at,
                purchase.created_at, purchase.updated_at,
                _write_time(purchase.updated_at),
            ],
        )

        if event:
            logger.info(
                event,
                purchase_id=str(purchase.id),
                user_id=str(user_id),
                course_id=str(course_id),
                status=purchase.status.value,
                amount=str(purchase.amount),
            )
        return purchase
