"""Shared test fixtures for the Bharose Pe test suite.

Provides:
    - Actors (buyer, seller, arbiter, outsider)
    - Domain views for engine tests
    - An in-memory SQLite database (aiosqlite) with the full schema
    - Factory functions for persisted transactions, contracts, disputes
"""

from __future__ import annotations

import uuid

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from bharose_pe.domain.enums import ContractStatus, DisputeStatus, TransactionStatus
from bharose_pe.domain.models import ActorContext, TransactionView
from bharose_pe.infrastructure.database.engine import enable_sqlite_savepoints
from bharose_pe.infrastructure.database.orm_models import (
    Base,
    Contract,
    Dispute,
    Profile,
    Transaction,
)

BUYER_ID = "buyer-asha"
SELLER_ID = "seller-ravi"
ARBITER_ID = "arbiter-meera"
OUTSIDER_ID = "outsider-kiran"

# ---------------------------------------------------------------------------
# Domain Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def buyer() -> ActorContext:
    return ActorContext(user_id=BUYER_ID)


@pytest.fixture
def seller() -> ActorContext:
    return ActorContext(user_id=SELLER_ID)


@pytest.fixture
def arbiter() -> ActorContext:
    return ActorContext(user_id=ARBITER_ID, roles=frozenset({"arbiter"}))


@pytest.fixture
def outsider() -> ActorContext:
    return ActorContext(user_id=OUTSIDER_ID)


def _make_view(status: str = "created", amount: int = 1000, **overrides) -> TransactionView:
    """Build a TransactionView between the standard buyer and seller."""
    data = {
        "id": "12345678-1234-5678-1234-567812345678",
        "buyer_id": BUYER_ID,
        "seller_id": SELLER_ID,
        "amount": amount,
        "status": status,
        "title": "Refurbished laptop",
        "buyer_name": "Asha Verma",
        "seller_name": "Ravi Kumar",
    }
    data.update(overrides)
    return TransactionView(**data)


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine():
    """A fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    enable_sqlite_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def profiles(session) -> None:
    session.add_all(
        [
            Profile(user_id=BUYER_ID, full_name="Asha Verma"),
            Profile(user_id=SELLER_ID, full_name="Ravi Kumar"),
        ]
    )
    await session.commit()


async def _create_transaction(
    session: AsyncSession,
    status: TransactionStatus | str = TransactionStatus.CREATED,
    amount: int = 1000,
) -> Transaction:
    """Insert a transaction directly at any status."""
    transaction = Transaction(
        buyer_id=BUYER_ID,
        seller_id=SELLER_ID,
        title="Refurbished laptop",
        amount=amount,
        status=str(status),
    )
    session.add(transaction)
    await session.commit()
    return transaction


async def _create_contract(
    session: AsyncSession,
    transaction: Transaction,
    created_by: str = BUYER_ID,
    recipient_id: str = SELLER_ID,
) -> Contract:
    contract = Contract(
        transaction_id=transaction.id,
        content="Sale of one refurbished laptop.",
        created_by=created_by,
        recipient_id=recipient_id,
        status=ContractStatus.PENDING.value,
        is_active=True,
    )
    session.add(contract)
    await session.commit()
    return contract


async def _create_dispute(
    session: AsyncSession,
    transaction: Transaction,
    disputing_party_id: str = BUYER_ID,
    status: DisputeStatus = DisputeStatus.ACTIVE,
) -> Dispute:
    dispute = Dispute(
        transaction_id=transaction.id,
        disputing_party_id=disputing_party_id,
        dispute_reason="not delivered",
        description="",
        evidence_files=[],
        status=status.value,
    )
    session.add(dispute)
    await session.commit()
    return dispute


@pytest.fixture
def make_view():
    return _make_view


@pytest.fixture
def make_transaction(session):
    async def factory(status=TransactionStatus.CREATED, amount=1000):
        return await _create_transaction(session, status, amount)

    return factory


@pytest.fixture
def make_contract(session):
    async def factory(transaction, created_by=BUYER_ID, recipient_id=SELLER_ID):
        return await _create_contract(session, transaction, created_by, recipient_id)

    return factory


@pytest.fixture
def make_dispute(session):
    async def factory(transaction, disputing_party_id=BUYER_ID, status=DisputeStatus.ACTIVE):
        return await _create_dispute(session, transaction, disputing_party_id, status)

    return factory


@pytest.fixture
def random_id() -> str:
    return str(uuid.uuid4())
