#!/usr/bin/env python3
"""Bharose Pe: End-to-End Simulation.

Drives the lifecycle service through four scenarios between a buyer (Asha)
and a seller (Ravi):

    Scenario 1: Happy Path
        - Contract sent and accepted, payment made, work completed
        - Buyer confirms delivery -> COMPLETED, full amount released

    Scenario 2: Negotiated Settlement
        - Buyer disputes after paying
        - Seller proposes a partial refund, buyer accepts -> COMPLETED

    Scenario 3: Escalation
        - Dispute chat stalls, seller escalates -> ESCALATED
        - Arbiter assigns and resolves the escalation; the snapshot stays frozen

    Scenario 4: Arbiter Resolution
        - Arbiter resolves the dispute directly with a 400 / 600 split

Usage:
    # Option A: Against the configured database (DATABASE_URL):
    python simulation.py

    # Option B: SQLite in-memory, no services needed:
    python simulation.py --sqlite

    # Run a specific scenario:
    python simulation.py --sqlite --scenario 2
"""

from __future__ import annotations

import argparse
import asyncio
from typing import Any

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from bharose_pe.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from bharose_pe.domain.enums import LifecycleEvent, ProposalType  # noqa: E402
from bharose_pe.domain.models import (  # noqa: E402
    ActorContext,
    DeliveryPayload,
    DisputePayload,
    EscalationPayload,
    PaymentPayload,
    ProposalPayload,
    ProposalResponsePayload,
    ResolutionPayload,
)

BUYER = ActorContext(user_id="asha")
SELLER = ActorContext(user_id="ravi")
ARBITER = ActorContext(user_id="meera", roles=frozenset({"arbiter"}))

# Module-level state
_sqlite_engine = None
_sqlite_session_factory = None


# ---------------------------------------------------------------------------
# Database lifecycle helpers
# ---------------------------------------------------------------------------
async def init_database(use_sqlite: bool = False) -> None:
    """Initialize database engine and create tables."""
    global _sqlite_engine, _sqlite_session_factory

    if use_sqlite:
        from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

        from bharose_pe.infrastructure.database.engine import enable_sqlite_savepoints
        from bharose_pe.infrastructure.database.orm_models import Base

        _sqlite_engine = create_async_engine("sqlite+aiosqlite:///:memory:", echo=False)
        enable_sqlite_savepoints(_sqlite_engine)
        _sqlite_session_factory = async_sessionmaker(
            bind=_sqlite_engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        async with _sqlite_engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("database.sqlite_initialized")
    else:
        from bharose_pe.infrastructure.database.engine import init_db

        await init_db()


def get_session() -> Any:
    """Get a fresh database session."""
    if _sqlite_session_factory is not None:
        return _sqlite_session_factory()

    from bharose_pe.infrastructure.database.engine import _get_session_factory

    return _get_session_factory()()


async def shutdown_database() -> None:
    """Close database connections."""
    global _sqlite_engine, _sqlite_session_factory

    if _sqlite_engine is not None:
        await _sqlite_engine.dispose()
        _sqlite_engine = None
        _sqlite_session_factory = None
    else:
        from bharose_pe.infrastructure.database.engine import close_db

        await close_db()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def section(title: str) -> None:
    print(f"\n{'─' * 70}\n  {title}\n{'─' * 70}")


async def fire(session: Any, transaction_id: str, event: LifecycleEvent, actor: ActorContext,
               payload: Any = None, **kwargs: Any) -> Any:
    """Apply one event and commit, printing the transition."""
    from bharose_pe.services.lifecycle_service import LifecycleService

    result = await LifecycleService(session).apply_event(
        transaction_id, event, actor, payload, **kwargs
    )
    await session.commit()
    t = result.transition
    print(f"  {actor.user_id:>6} │ {event.value:<22} {t.old_status} -> {t.new_status}")
    for n in result.notifications:
        print(f"         │   ✉  {n.user_id}: [{n.type}] {n.message}")
    return result


async def open_deal(session: Any, title: str, amount: int) -> str:
    """Profiles, transaction, contract: everything up to contract_accepted."""
    from bharose_pe.infrastructure.database.repositories import ProfileRepository
    from bharose_pe.services.contract_service import ContractService
    from bharose_pe.services.lifecycle_service import LifecycleService

    profiles = ProfileRepository(session)
    await profiles.upsert(BUYER.user_id, "Asha Verma")
    await profiles.upsert(SELLER.user_id, "Ravi Kumar")

    transaction = await LifecycleService(session).create_transaction(
        BUYER, seller_id=SELLER.user_id, title=title, amount=amount
    )
    await ContractService(session).send_contract(
        BUYER, transaction.id, content=f"Sale of {title} for ₹{amount:,}."
    )
    await session.commit()
    transaction_id = str(transaction.id)
    print(f"  Transaction {transaction_id} opened for ₹{amount:,}")

    await fire(session, transaction_id, LifecycleEvent.CONTRACT_ACCEPTED, SELLER)
    await fire(session, transaction_id, LifecycleEvent.PAYMENT_MADE, BUYER,
               PaymentPayload(amount=amount, payment_reference="UPI-SIM-001"))
    return transaction_id


async def print_breakdown(session: Any, transaction_id: str) -> None:
    from bharose_pe.services.lifecycle_service import LifecycleService

    transaction = await LifecycleService(session).get_transaction(BUYER, transaction_id)
    print(f"\n  Final status: {transaction.status}")
    print(f"  Resolution breakdown: {transaction.resolution_breakdown}")


# ===========================================================================
# Scenarios
# ===========================================================================
async def scenario_1_happy_path() -> None:
    section("SCENARIO 1: Happy Path")
    async with get_session() as session:
        tx = await open_deal(session, "Handloom saree", 2500)
        await fire(session, tx, LifecycleEvent.WORK_COMPLETED, SELLER,
                   DeliveryPayload(notes="Shipped via India Post"))
        await fire(session, tx, LifecycleEvent.DELIVERY_CONFIRMED, BUYER)
        await print_breakdown(session, tx)


async def scenario_2_negotiated_settlement() -> None:
    section("SCENARIO 2: Negotiated Settlement")
    async with get_session() as session:
        tx = await open_deal(session, "Refurbished laptop", 1000)
        await fire(session, tx, LifecycleEvent.DISPUTE_RAISED, BUYER,
                   DisputePayload(reason="Battery does not hold charge"))
        proposed = await fire(session, tx, LifecycleEvent.PROPOSAL_CREATED, SELLER,
                              ProposalPayload(ProposalType.REFUND_PARTIAL, amount=300,
                                              description="Refund for the battery"))
        proposal_id = str(proposed.created["proposal"].id)
        await fire(session, tx, LifecycleEvent.PROPOSAL_ACCEPTED, BUYER,
                   ProposalResponsePayload(proposal_id=proposal_id))
        await print_breakdown(session, tx)


async def scenario_3_escalation() -> None:
    section("SCENARIO 3: Escalation")
    from bharose_pe.services.dispute_service import DisputeService
    from bharose_pe.services.escalation_service import EscalationService

    async with get_session() as session:
        tx = await open_deal(session, "Vintage camera", 4000)
        raised = await fire(session, tx, LifecycleEvent.DISPUTE_RAISED, BUYER,
                            DisputePayload(reason="Lens is scratched"))
        dispute_id = raised.created["dispute"].id

        disputes = DisputeService(session)
        await disputes.post_message(BUYER, dispute_id, "The photos did not show this.")
        await disputes.post_message(SELLER, dispute_id, "It was in perfect condition.")
        await session.commit()

        escalated = await fire(session, tx, LifecycleEvent.ESCALATION_REQUESTED, SELLER,
                               EscalationPayload(reason="We cannot agree"))
        escalation = escalated.created["escalation"]
        frozen = len(escalation.dispute_data["messages"])

        await disputes.post_message(BUYER, dispute_id, "Adding this after escalation.")
        escalations = EscalationService(session)
        await escalations.assign(ARBITER, escalation.id)
        await escalations.resolve(ARBITER, escalation.id, "Seller to accept a return.")
        await session.commit()

        escalation = await escalations.get_escalation(ARBITER, escalation.id)
        print(f"\n  Escalation status: {escalation.status} (assigned to {escalation.assigned_to})")
        print(f"  Snapshot messages: {len(escalation.dispute_data['messages'])} (captured {frozen})")


async def scenario_4_arbiter_resolution() -> None:
    section("SCENARIO 4: Arbiter Resolution")
    async with get_session() as session:
        tx = await open_deal(session, "Custom furniture", 1000)
        await fire(session, tx, LifecycleEvent.DISPUTE_RAISED, BUYER,
                   DisputePayload(reason="Wrong dimensions"))
        await fire(session, tx, LifecycleEvent.DISPUTE_RESOLVED, ARBITER,
                   ResolutionPayload(buyer_refund=400, seller_release=600,
                                     resolution_notes="Partial rework credit to buyer"))
        await print_breakdown(session, tx)


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_negotiated_settlement,
    3: scenario_3_escalation,
    4: scenario_4_arbiter_resolution,
}


async def run(scenario: int = 0, use_sqlite: bool = False) -> None:
    await init_database(use_sqlite=use_sqlite)
    try:
        if scenario and scenario not in SCENARIOS:
            print(f"Unknown scenario {scenario}. Available: {', '.join(map(str, SCENARIOS))}")
            return
        selected = [SCENARIOS[scenario]] if scenario else list(SCENARIOS.values())
        for fn in selected:
            await fn()
        print("\n" + "=" * 70)
        print("  ✅ SIMULATION COMPLETE")
        print("=" * 70 + "\n")
    finally:
        await shutdown_database()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Bharose Pe Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1-4). Default: run all.",
    )
    parser.add_argument(
        "--sqlite",
        action="store_true",
        help="Use SQLite in-memory instead of the configured database.",
    )
    args = parser.parse_args()
    asyncio.run(run(args.scenario, use_sqlite=args.sqlite))
