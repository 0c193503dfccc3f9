"""Notification Service: persists notification records and serves the inbox.

Dispatch is best-effort. Each insert runs in its own savepoint, so one failed
insert is rolled back alone and never undoes the state transition (or the
other recipients' notifications) written in the same unit of work.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from bharose_pe.domain.exceptions import NotificationNotFoundError, SideEffectFailure
from bharose_pe.infrastructure.change_feed import ChangeFeed, serialize_row
from bharose_pe.infrastructure.database.repositories import NotificationRepository
from bharose_pe.logging_config import get_logger

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession

    from bharose_pe.domain.models import ActorContext
    from bharose_pe.domain.notifications import NotificationRecord
    from bharose_pe.infrastructure.database.orm_models import Notification

logger = get_logger(__name__)


class NotificationDispatcher:
    """Inserts notification records produced by lifecycle transitions."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._repo = NotificationRepository(session)

    async def dispatch(
        self, records: Iterable[NotificationRecord]
    ) -> tuple[list[Notification], list[SideEffectFailure]]:
        """Insert every record; return the stored rows and the failures."""
        stored: list[Notification] = []
        failures: list[SideEffectFailure] = []
        for record in records:
            try:
                async with self._session.begin_nested():
                    notification = await self._repo.insert(record.to_row())
            except SQLAlchemyError as exc:
                failure = SideEffectFailure(record.type.value, record.user_id, str(exc))
                failures.append(failure)
                logger.warning(
                    "notification.insert_failed",
                    type=record.type.value,
                    recipient_id=record.user_id,
                    transaction_id=record.transaction_id,
                    error=str(exc),
                )
                continue
            stored.append(notification)
            ChangeFeed.stage(self._session, "notifications", serialize_row(notification), op="insert")
            logger.debug(
                "notification.inserted",
                type=record.type.value,
                recipient_id=record.user_id,
            )
        return stored, failures


class NotificationService:
    """Read side of a user's notifications."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._repo = NotificationRepository(session)

    async def list_notifications(
        self, actor: ActorContext, unread_only: bool = False
    ) -> list[Notification]:
        return await self._repo.list_for_user(actor.user_id, unread_only=unread_only)

    async def unread_count(self, actor: ActorContext) -> int:
        return await self._repo.count_unread(actor.user_id)

    async def mark_read(
        self, actor: ActorContext, notification_id: uuid.UUID | str
    ) -> Notification:
        """Mark one notification read. Other users' notifications are invisible."""
        notification = await self._repo.get_by_id(notification_id)
        if notification is None or notification.user_id != actor.user_id:
            raise NotificationNotFoundError(str(notification_id))
        return await self._repo.mark_read(notification)

    async def mark_all_read(self, actor: ActorContext) -> int:
        count = await self._repo.mark_all_read(actor.user_id)
        logger.info("notification.marked_all_read", user_id=actor.user_id, count=count)
        return count
