"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database sessions,
the authenticated actor, the change feed, the blob store, and configuration.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from functools import lru_cache

from fastapi import Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from bharose_pe.config import Settings, get_settings
from bharose_pe.domain.models import ActorContext
from bharose_pe.infrastructure.blob_store import LocalBlobStore
from bharose_pe.infrastructure.change_feed import ChangeFeed
from bharose_pe.infrastructure.database.engine import _get_session_factory
from bharose_pe.infrastructure.redis_client import get_redis, redis_available


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()


def get_change_feed() -> ChangeFeed:
    """Provide the change feed (a no-op publisher when Redis is down)."""
    return ChangeFeed(get_redis() if redis_available() else None)


@lru_cache(maxsize=1)
def get_blob_store() -> LocalBlobStore:
    return LocalBlobStore()


async def get_db_session(
    feed: ChangeFeed = Depends(get_change_feed),
) -> AsyncGenerator[AsyncSession, None]:
    """Yield a session per request; commit on success, then publish changes.

    Staged change-feed events are dropped on rollback, so subscribers only
    ever see committed rows.
    """
    factory = _get_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            ChangeFeed.discard(session)
            raise
        await feed.flush(session)


def get_actor(
    x_user_id: str | None = Header(default=None, alias="X-User-Id"),
    x_user_roles: str = Header(default="", alias="X-User-Roles"),
    settings: Settings = Depends(get_app_settings),
) -> ActorContext:
    """Build the ActorContext from the identity headers set by the auth gateway.

    Any role listed in `arbiter_roles` is normalized to `arbiter`.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing X-User-Id header")
    roles = {r.strip() for r in x_user_roles.split(",") if r.strip()}
    if roles & settings.arbiter_role_set:
        roles.add("arbiter")
    return ActorContext(user_id=x_user_id.strip(), roles=frozenset(roles))
