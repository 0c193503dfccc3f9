"""Row-change feed over Redis pub/sub.

Writers stage changes on the session while the unit of work is open; the
request scope flushes them to Redis only after the commit succeeded, so a
subscriber never sees a row that was rolled back. Each message is a JSON
object ``{"table", "op", "row"}`` published on ``<prefix>:<table>``.

Subscribers filter by column equality, e.g. ``{"user_id": "u-1"}`` for a
user's notification stream. Delivery is best-effort: a Redis outage is
logged and never fails the write that produced the change.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from bharose_pe.config import get_settings
from bharose_pe.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    import redis.asyncio as aioredis
    from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)

PENDING_KEY = "bharose.pending_changes"


def matches(row: dict[str, Any], filters: dict[str, Any] | None) -> bool:
    """True when every filter column equals the row's value (compared as strings)."""
    if not filters:
        return True
    return all(str(row.get(column)) == str(value) for column, value in filters.items())


class ChangeFeed:
    """Publishes committed row changes and streams them to subscribers."""

    def __init__(self, client: aioredis.Redis | None, prefix: str | None = None) -> None:
        self._client = client
        self._prefix = prefix or get_settings().change_feed_prefix

    def channel(self, table: str) -> str:
        return f"{self._prefix}:{table}"

    @staticmethod
    def stage(session: AsyncSession, table: str, row: dict[str, Any], op: str = "update") -> None:
        """Queue a change on the session; published by `flush` after commit."""
        session.info.setdefault(PENDING_KEY, []).append({"table": table, "op": op, "row": row})

    @staticmethod
    def discard(session: AsyncSession) -> None:
        session.info.pop(PENDING_KEY, None)

    async def flush(self, session: AsyncSession) -> int:
        """Publish every change staged on the session. Returns the number sent."""
        pending = session.info.pop(PENDING_KEY, [])
        sent = 0
        for change in pending:
            if await self.publish(change["table"], change["row"], op=change["op"]):
                sent += 1
        return sent

    async def publish(self, table: str, row: dict[str, Any], op: str = "update") -> bool:
        if self._client is None:
            logger.debug("change_feed.disabled", table=table)
            return False
        message = json.dumps({"table": table, "op": op, "row": row}, default=str)
        try:
            await self._client.publish(self.channel(table), message)
        except Exception as exc:
            logger.warning("change_feed.publish_failed", table=table, error=str(exc))
            return False
        return True

    async def subscribe(
        self, table: str, filters: dict[str, Any] | None = None
    ) -> AsyncIterator[dict[str, Any]]:
        """Yield changes on `table` whose row matches `filters`, until cancelled."""
        if self._client is None:
            raise RuntimeError("Change feed has no Redis client")
        pubsub = self._client.pubsub()
        await pubsub.subscribe(self.channel(table))
        logger.info("change_feed.subscribed", table=table, filters=filters)
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                change = json.loads(message["data"])
                if matches(change.get("row", {}), filters):
                    yield change
        finally:
            await pubsub.unsubscribe(self.channel(table))
            await pubsub.aclose()


def serialize_row(instance: Any) -> dict[str, Any]:
    """Column values of an ORM row, as published on the feed."""
    return {column.key: getattr(instance, column.key) for column in instance.__table__.columns}
