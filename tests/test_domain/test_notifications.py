"""Tests for notification records and recipient resolution."""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from bharose_pe.domain import notifications as notices
from bharose_pe.domain.enums import NotificationType, ProposalType
from bharose_pe.domain.exceptions import UnauthorizedActorError
from bharose_pe.domain.models import TransactionView
from bharose_pe.domain.settlement import Settlement

party_ids = st.text(alphabet="abcdefghijklmnopqrstuvwxyz0123456789-", min_size=1, max_size=12)


class TestResolveCounterparty:
    @given(buyer_id=party_ids, seller_id=party_ids)
    def test_counterparty_is_the_other_party(self, buyer_id: str, seller_id: str) -> None:
        if buyer_id == seller_id:
            return
        tx = TransactionView(id="t", buyer_id=buyer_id, seller_id=seller_id, amount=1, status="created")
        assert notices.resolve_counterparty(tx, buyer_id) == seller_id
        assert notices.resolve_counterparty(tx, seller_id) == buyer_id

    def test_outsider_is_rejected(self, make_view) -> None:
        with pytest.raises(UnauthorizedActorError):
            notices.resolve_counterparty(make_view(), "someone-else")


class TestBuilders:
    def test_payment_received(self, make_view, buyer, seller) -> None:
        n = notices.payment_received(make_view(amount=1000), buyer.user_id)
        assert n.type is NotificationType.PAYMENT_RECEIVED
        assert n.user_id == seller.user_id
        assert n.sender_id == buyer.user_id
        assert n.title == "Payment Received!"
        assert "₹1,000" in n.message
        assert "Asha Verma" in n.message

    def test_funds_released_goes_to_seller(self, make_view, buyer, seller) -> None:
        n = notices.funds_released(make_view(), buyer.user_id)
        assert n.user_id == seller.user_id
        assert n.title == "Funds Released"

    def test_display_name_falls_back_to_role(self, make_view, buyer) -> None:
        n = notices.dispute_raised(make_view(buyer_name=None), buyer.user_id, "late")
        assert n.message.startswith("Buyer has raised a dispute")
        assert n.dispute_reason == "late"

    def test_contract_sent_variants(self, make_view, buyer, seller) -> None:
        fresh = notices.contract_sent(make_view(), buyer.user_id, "c-2")
        assert fresh.type is NotificationType.CONTRACT_RECEIVED
        assert fresh.title == "New Contract Received"
        assert fresh.user_id == seller.user_id

        revised = notices.contract_sent(make_view(), buyer.user_id, "c-2", "c-1")
        assert revised.type is NotificationType.CONTRACT_UPDATED
        assert revised.superseded_contract_id == "c-1"

    def test_contract_rejected_carries_message(self, make_view, seller, buyer) -> None:
        n = notices.contract_response(
            make_view(), seller.user_id, "c-1", accepted=False, response_message="Too expensive"
        )
        assert n.type is NotificationType.CONTRACT_REJECTED
        assert n.user_id == buyer.user_id
        assert n.message.endswith(": Too expensive")

    def test_proposal_created_label(self, make_view, seller) -> None:
        n = notices.proposal_created(
            make_view(), seller.user_id, ProposalType.REFUND_PARTIAL, 300
        )
        assert "Refund Partial Amount (₹300)" in n.message

    def test_dispute_resolved_notifies_both_parties(self, make_view, arbiter, buyer, seller) -> None:
        settlement = Settlement(400, 600, "split", 1000)
        pair = notices.dispute_resolved(make_view(), arbiter.user_id, settlement)
        assert [n.user_id for n in pair] == [buyer.user_id, seller.user_id]
        assert "₹400 of ₹1,000 will be refunded" in pair[0].message
        assert "₹600 of ₹1,000 will be released" in pair[1].message


class TestToRow:
    def test_payload_holds_variant_fields(self, make_view, buyer) -> None:
        n = notices.proposal_accepted(
            make_view(), buyer.user_id, "p-1", Settlement(300, 700, "refund_partial", 1000)
        )
        row = n.to_row()
        assert row["type"] == "proposal_accepted"
        assert row["contract_id"] is None
        assert row["payload"] == {"proposal_id": "p-1", "buyer_refund": 300, "seller_release": 700}

    def test_contract_id_is_a_column(self, make_view, seller) -> None:
        row = notices.contract_response(make_view(), seller.user_id, "c-9", accepted=True).to_row()
        assert row["contract_id"] == "c-9"
        assert row["payload"] is None

    def test_format_rupees(self) -> None:
        assert notices.format_rupees(1000) == "₹1,000"
        assert notices.format_rupees(1250000) == "₹1,250,000"
