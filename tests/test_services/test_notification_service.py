"""Tests for notification dispatch and the notification inbox."""

from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from bharose_pe.domain import notifications as notices
from bharose_pe.domain.enums import LifecycleEvent, TransactionStatus
from bharose_pe.domain.exceptions import NotificationNotFoundError
from bharose_pe.domain.models import PaymentPayload
from bharose_pe.infrastructure.database.repositories import (
    NotificationRepository,
    TransactionRepository,
)
from bharose_pe.services.lifecycle_service import LifecycleService, transaction_view
from bharose_pe.services.notification_service import (
    NotificationDispatcher,
    NotificationService,
)


class TestDispatcher:
    @pytest.mark.asyncio
    async def test_stores_records(self, session, make_transaction, buyer, seller) -> None:
        tx = await make_transaction()
        view = transaction_view(tx)
        stored, failures = await NotificationDispatcher(session).dispatch(
            [notices.payment_received(view, buyer.user_id)]
        )
        assert failures == []
        assert stored[0].user_id == seller.user_id
        assert stored[0].payload == {"amount": 1000}
        assert stored[0].read is False

    @pytest.mark.asyncio
    async def test_failed_insert_does_not_undo_transition(
        self, session, make_transaction, buyer, seller, monkeypatch
    ) -> None:
        tx = await make_transaction(TransactionStatus.CONTRACT_ACCEPTED)

        async def broken_insert(self, row):
            raise OperationalError("INSERT INTO notifications", {}, Exception("disk full"))

        monkeypatch.setattr(NotificationRepository, "insert", broken_insert)
        result = await LifecycleService(session).apply_event(
            tx.id, LifecycleEvent.PAYMENT_MADE, buyer, PaymentPayload(amount=1000)
        )
        await session.commit()

        assert result.new_status == "payment_made"
        assert result.notifications == []
        (failure,) = result.failed_side_effects
        assert failure.effect == "payment_received"
        assert failure.recipient_id == seller.user_id
        assert "disk full" in failure.reason
        assert await TransactionRepository(session).get_status(tx.id) == "payment_made"


class TestInbox:
    async def _seed(self, session, tx, buyer) -> None:
        view = transaction_view(tx)
        await NotificationDispatcher(session).dispatch(
            [
                notices.payment_received(view, buyer.user_id),
                notices.dispute_raised(view, buyer.user_id, "late"),
            ]
        )
        await session.commit()

    @pytest.mark.asyncio
    async def test_unread_count_and_mark_read(self, session, make_transaction, buyer, seller) -> None:
        tx = await make_transaction()
        await self._seed(session, tx, buyer)
        service = NotificationService(session)

        assert await service.unread_count(seller) == 2
        assert await service.unread_count(buyer) == 0

        first = (await service.list_notifications(seller))[0]
        marked = await service.mark_read(seller, first.id)
        await session.commit()
        assert marked.read is True
        assert await service.unread_count(seller) == 1
        assert len(await service.list_notifications(seller, unread_only=True)) == 1

    @pytest.mark.asyncio
    async def test_cannot_mark_someone_elses(self, session, make_transaction, buyer, seller) -> None:
        tx = await make_transaction()
        await self._seed(session, tx, buyer)
        service = NotificationService(session)
        notification = (await service.list_notifications(seller))[0]
        with pytest.raises(NotificationNotFoundError):
            await service.mark_read(buyer, notification.id)

    @pytest.mark.asyncio
    async def test_mark_all_read(self, session, make_transaction, buyer, seller) -> None:
        tx = await make_transaction()
        await self._seed(session, tx, buyer)
        service = NotificationService(session)
        assert await service.mark_all_read(seller) == 2
        await session.commit()
        assert await service.unread_count(seller) == 0
        assert await service.mark_all_read(seller) == 0
