"""Fixtures for API tests: the FastAPI app wired to the in-memory database."""

from __future__ import annotations

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from bharose_pe.api.deps import get_blob_store, get_db_session
from bharose_pe.infrastructure.blob_store import LocalBlobStore
from bharose_pe.main import create_app


@pytest.fixture
def app(session_factory, tmp_path):
    app = create_app()

    async def _test_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = _test_session
    app.dependency_overrides[get_blob_store] = lambda: LocalBlobStore(
        root=tmp_path, public_base_url="https://files.test"
    )
    return app


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def as_user():
    """Identity headers as set by the auth gateway."""

    def headers(actor) -> dict[str, str]:
        result = {"X-User-Id": actor.user_id}
        if actor.roles:
            result["X-User-Roles"] = ",".join(sorted(actor.roles))
        return result

    return headers
