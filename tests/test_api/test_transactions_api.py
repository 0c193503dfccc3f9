"""API tests for transactions, contracts and lifecycle events."""

from __future__ import annotations

import pytest


async def _open_transaction(client, as_user, buyer, seller, amount: int = 1000) -> str:
    response = await client.post(
        "/api/v1/transactions",
        json={"seller_id": seller.user_id, "title": "Refurbished laptop", "amount": amount},
        headers=as_user(buyer),
    )
    assert response.status_code == 201
    return response.json()["id"]


async def _fire(client, as_user, actor, tx_id, event, payload=None, **extra):
    body = {"event": event, "payload": payload or {}, **extra}
    return await client.post(
        f"/api/v1/transactions/{tx_id}/events", json=body, headers=as_user(actor)
    )


class TestAuth:
    @pytest.mark.asyncio
    async def test_missing_identity(self, client) -> None:
        response = await client.get("/api/v1/transactions")
        assert response.status_code == 401
        assert response.json() == {
            "error": "UNAUTHENTICATED",
            "message": "Missing X-User-Id header",
        }

    @pytest.mark.asyncio
    async def test_request_id_echoed(self, client, as_user, buyer) -> None:
        response = await client.get(
            "/api/v1/transactions", headers={**as_user(buyer), "X-Request-ID": "req-42"}
        )
        assert response.status_code == 200
        assert response.headers["X-Request-ID"] == "req-42"


class TestTransactionsApi:
    @pytest.mark.asyncio
    async def test_create_and_read(self, client, as_user, profiles, buyer, seller, outsider) -> None:
        tx_id = await _open_transaction(client, as_user, buyer, seller)

        response = await client.get(f"/api/v1/transactions/{tx_id}", headers=as_user(seller))
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "created"
        assert body["buyer_id"] == buyer.user_id

        response = await client.get(f"/api/v1/transactions/{tx_id}", headers=as_user(outsider))
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

        response = await client.get(f"/api/v1/transactions/{tx_id}/status", headers=as_user(buyer))
        assert response.json() == {
            "transaction_id": tx_id,
            "status": "created",
            "is_terminal": False,
            "allowed_events": ["contract_accepted", "contract_rejected"],
        }

    @pytest.mark.asyncio
    async def test_create_validation(self, client, as_user, profiles, buyer, seller) -> None:
        response = await client.post(
            "/api/v1/transactions",
            json={"seller_id": seller.user_id, "title": "Laptop", "amount": -5},
            headers=as_user(buyer),
        )
        assert response.status_code == 422
        assert response.json()["error"] == "VALIDATION_ERROR"
        assert response.json()["message"].startswith("amount:")

        response = await client.post(
            "/api/v1/transactions",
            json={"seller_id": "ghost", "title": "Laptop", "amount": 5},
            headers=as_user(buyer),
        )
        assert response.status_code == 422
        assert response.json() == {
            "error": "VALIDATION_ERROR",
            "message": "Seller profile not found",
        }

    @pytest.mark.asyncio
    async def test_happy_path(self, client, as_user, profiles, buyer, seller) -> None:
        tx_id = await _open_transaction(client, as_user, buyer, seller)

        response = await client.post(
            f"/api/v1/transactions/{tx_id}/contracts",
            json={"content": "One laptop, 16GB RAM"},
            headers=as_user(buyer),
        )
        assert response.status_code == 201
        assert response.json()["superseded_contract_id"] is None

        response = await _fire(client, as_user, seller, tx_id, "contract_accepted")
        assert response.status_code == 200
        assert response.json()["new_status"] == "contract_accepted"
        assert response.json()["notifications_sent"] == 1

        response = await _fire(client, as_user, buyer, tx_id, "payment_made", {"amount": 1000},
                               expected_status="contract_accepted")
        assert response.status_code == 200

        response = await _fire(client, as_user, buyer, tx_id, "delivery_confirmed")
        body = response.json()
        assert body["old_status"] == "payment_made"
        assert body["new_status"] == "completed"
        assert body["settlement"]["seller_release"] == 1000
        assert body["transaction"]["resolution_breakdown"]["resolution_type"] == "release_full"

    @pytest.mark.asyncio
    async def test_error_mapping(self, client, as_user, profiles, buyer, seller) -> None:
        tx_id = await _open_transaction(client, as_user, buyer, seller)

        response = await _fire(client, as_user, buyer, tx_id, "payment_made", {"amount": 1000})
        assert response.status_code == 409
        assert response.json()["error"] == "INVALID_GUARD"

        response = await _fire(client, as_user, buyer, tx_id, "contract_accepted",
                               expected_status="payment_made")
        assert response.status_code == 409
        assert response.json()["error"] == "STALE_STATE"

        response = await _fire(client, as_user, buyer, tx_id, "payment_made", {"amount": "lots"})
        assert response.status_code == 422
        body = response.json()
        assert set(body) == {"error", "message"}
        assert body["error"] == "VALIDATION_ERROR"
        assert "Invalid payload for payment_made" in body["message"]

        response = await _fire(client, as_user, buyer, tx_id, "teleport")
        assert response.status_code == 422
        assert response.json()["error"] == "VALIDATION_ERROR"
        assert response.json()["message"].startswith("event:")

    @pytest.mark.asyncio
    async def test_wrong_party(self, client, as_user, profiles, buyer, seller) -> None:
        tx_id = await _open_transaction(client, as_user, buyer, seller)
        await client.post(
            f"/api/v1/transactions/{tx_id}/contracts",
            json={"content": "Terms"},
            headers=as_user(buyer),
        )
        # Only the recipient may accept.
        response = await _fire(client, as_user, buyer, tx_id, "contract_accepted")
        assert response.status_code == 403
        assert response.json()["error"] == "UNAUTHORIZED_ACTOR"

        status = await client.get(f"/api/v1/transactions/{tx_id}/status", headers=as_user(buyer))
        assert status.json()["status"] == "created"


class TestDisputeApi:
    @pytest.mark.asyncio
    async def test_dispute_to_arbiter_split(
        self, client, as_user, profiles, buyer, seller, arbiter
    ) -> None:
        tx_id = await _open_transaction(client, as_user, buyer, seller)
        await client.post(
            f"/api/v1/transactions/{tx_id}/contracts",
            json={"content": "Terms"},
            headers=as_user(buyer),
        )
        await _fire(client, as_user, seller, tx_id, "contract_accepted")
        await _fire(client, as_user, buyer, tx_id, "payment_made", {"amount": 1000})

        response = await _fire(client, as_user, buyer, tx_id, "dispute_raised",
                               {"reason": "Screen cracked"})
        assert response.status_code == 200
        dispute_id = response.json()["created"]["dispute"]

        response = await client.post(
            f"/api/v1/disputes/{dispute_id}/messages",
            json={"message": "Photos attached"},
            headers=as_user(buyer),
        )
        assert response.status_code == 201

        response = await client.post(
            f"/api/v1/disputes/{dispute_id}/evidence",
            files={"file": ("crack.jpg", b"jpeg-bytes", "image/jpeg")},
            headers=as_user(buyer),
        )
        assert response.status_code == 201
        evidence_url = response.json()["url"]

        response = await client.get(f"/api/v1/disputes/{dispute_id}", headers=as_user(seller))
        assert response.json()["evidence_files"] == [evidence_url]

        response = await _fire(
            client, as_user, arbiter, tx_id, "dispute_resolved",
            {"buyer_refund": 400, "seller_release": 600, "resolution_notes": "Partial refund"},
        )
        assert response.status_code == 200
        assert response.json()["notifications_sent"] == 2
        assert response.json()["settlement"]["resolution_type"] == "split"

        response = await client.post(
            f"/api/v1/disputes/{dispute_id}/messages",
            json={"message": "Thanks"},
            headers=as_user(buyer),
        )
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_admin_header_counts_as_arbiter(
        self, client, profiles, as_user, buyer, seller
    ) -> None:
        tx_id = await _open_transaction(client, as_user, buyer, seller)
        response = await client.get(
            f"/api/v1/transactions/{tx_id}",
            headers={"X-User-Id": "ops-1", "X-User-Roles": "support, admin"},
        )
        assert response.status_code == 200
