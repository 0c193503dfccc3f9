"""Tests for domain enumerations."""

from __future__ import annotations

from bharose_pe.domain.enums import (
    LifecycleEvent,
    NotificationType,
    ProposalType,
    TransactionStatus,
)
from bharose_pe.domain.notifications import NOTIFICATION_VARIANTS
from bharose_pe.domain.state_machine import TransactionStateMachine


class TestTransactionStatus:
    def test_all_statuses_exist(self) -> None:
        expected = {
            "created", "contract_accepted", "payment_made", "work_completed",
            "completed", "disputed", "escalated", "contract_rejected",
        }
        actual = {s.value for s in TransactionStatus}
        assert actual == expected

    def test_status_is_str_enum(self) -> None:
        assert isinstance(TransactionStatus.CREATED, str)
        assert TransactionStatus.PAYMENT_MADE == "payment_made"

    def test_every_status_is_a_machine_state(self) -> None:
        machine_states = {s.value for s in TransactionStateMachine.states}
        assert machine_states == {s.value for s in TransactionStatus}


class TestLifecycleEvent:
    def test_all_events_exist(self) -> None:
        # 2 contract + 3 payment/delivery + 3 dispute + 3 proposal
        assert len(LifecycleEvent) == 11

    def test_events_match_machine_event_names(self) -> None:
        assert {e.value for e in LifecycleEvent} == set(TransactionStateMachine.event_names)


class TestProposalType:
    def test_partial_types(self) -> None:
        assert ProposalType.RELEASE_PARTIAL.is_partial
        assert ProposalType.REFUND_PARTIAL.is_partial
        assert not ProposalType.RELEASE_FULL.is_partial
        assert not ProposalType.REFUND_FULL.is_partial


class TestNotificationType:
    def test_each_type_has_one_variant(self) -> None:
        assert set(NOTIFICATION_VARIANTS) == set(NotificationType)
        for notification_type, variant in NOTIFICATION_VARIANTS.items():
            assert variant.type is notification_type
