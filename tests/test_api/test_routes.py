"""HTTP-level tests: routes, dependency wiring and error mapping.

The app is built with an injected SyncEngine over an InMemoryLedger, and
driven through Starlette's TestClient so the lifespan runs.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from conftest import BUYER, CREATOR, V1, X
from supplychain_escrow.config import Settings
from supplychain_escrow.ledger.memory import InMemoryLedger
from supplychain_escrow.main import create_app
from supplychain_escrow.services.bootstrap import build_engine
from supplychain_escrow.services.sync_engine import SyncEngine

pytestmark = pytest.mark.integration

LOT_BODY = {
    "title": "Arabica beans, batch 12",
    "description": "Washed, 1600 masl",
    "quantity": 250,
    "unit": "kg",
    "origin": "Huila",
    "price": 2,
    "steps": [
        {"description": "Harvest"},
        {"description": "Certify", "validators": [V1.account]},
    ],
}


def _as(signer) -> dict[str, str]:
    return {"X-Account": signer.account}


@pytest.fixture
def client(engine: SyncEngine) -> Iterator[TestClient]:
    with TestClient(create_app(engine)) as test_client:
        yield test_client


def _create_lot(client: TestClient) -> int:
    response = client.post("/api/v1/lots", json=LOT_BODY, headers=_as(CREATOR))
    assert response.status_code == 201
    return response.json()["lot_id"]


class TestHealth:
    def test_healthy(self, client: TestClient) -> None:
        response = client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "ok"
        assert body["binding"] == "verified"
        assert body["snapshot_generation"] >= 1

    def test_request_id_echoed(self, client: TestClient) -> None:
        response = client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"


class TestLots:
    def test_create_and_list(self, client: TestClient) -> None:
        response = client.post("/api/v1/lots", json=LOT_BODY, headers=_as(CREATOR))

        assert response.status_code == 201
        body = response.json()
        assert body["intent"] == "create_lot"
        assert body["lot_id"] == 0
        assert body["confirmed"] is True

        lots = client.get("/api/v1/lots").json()
        assert [lot["id"] for lot in lots] == [0]
        assert lots[0]["creator"] == CREATOR.account
        assert lots[0]["next_step"] == 0
        assert lots[0]["is_complete"] is False

    def test_write_requires_account(self, client: TestClient) -> None:
        response = client.post("/api/v1/lots", json=LOT_BODY)
        assert response.status_code == 422
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_malformed_body(self, client: TestClient) -> None:
        response = client.post("/api/v1/lots", json={**LOT_BODY, "steps": []}, headers=_as(CREATOR))
        assert response.status_code == 422

    @pytest.mark.parametrize("price", [0, None])
    def test_price_must_be_positive(self, client: TestClient, price: int | None) -> None:
        body = {key: value for key, value in LOT_BODY.items() if key != "price"}
        if price is not None:
            body["price"] = price

        response = client.post("/api/v1/lots", json=body, headers=_as(CREATOR))

        assert response.status_code == 422
        assert client.get("/api/v1/lots").json() == []

    def test_validation_flow(self, client: TestClient) -> None:
        lot_id = _create_lot(client)

        response = client.post(f"/api/v1/lots/{lot_id}/steps/1/validate", headers=_as(V1))
        assert response.status_code == 409
        assert response.json()["error"] == "INVALID_TRANSITION"

        response = client.post(f"/api/v1/lots/{lot_id}/steps/0/validate", headers=_as(X))
        assert response.status_code == 200
        assert response.json()["lot"]["steps"][0]["validated_by"] == X.account

        detail = client.get(f"/api/v1/lots/{lot_id}", headers=_as(X)).json()
        assert detail["can_validate_next"] is False
        detail = client.get(f"/api/v1/lots/{lot_id}", headers=_as(V1)).json()
        assert detail["can_validate_next"] is True
        assert detail["payment_state"] == "NO_PAYMENT"

    def test_unknown_lot(self, client: TestClient) -> None:
        response = client.get("/api/v1/lots/99")
        assert response.status_code == 404
        assert response.json()["error"] == "LOT_NOT_FOUND"


class TestPayments:
    def test_deposit_and_release(self, client: TestClient) -> None:
        lot_id = _create_lot(client)

        response = client.post(f"/api/v1/payments/{lot_id}/deposit", json={}, headers=_as(BUYER))
        assert response.status_code == 200

        response = client.post(f"/api/v1/payments/{lot_id}/release", headers=_as(BUYER))
        assert response.status_code == 409

        client.post(f"/api/v1/lots/{lot_id}/steps/0/validate", headers=_as(X))
        client.post(f"/api/v1/lots/{lot_id}/steps/1/validate", headers=_as(V1))
        response = client.post(f"/api/v1/payments/{lot_id}/release", headers=_as(BUYER))
        assert response.status_code == 200

        payments = client.get("/api/v1/payments", params={"role": "buyer"}, headers=_as(BUYER)).json()
        assert [p["state"] for p in payments] == ["RELEASED"]

        stats = client.get("/api/v1/payments/stats", headers=_as(CREATOR)).json()
        assert stats["total_received"] == 2
        assert stats["contract_balance"] == 0

    def test_wrong_amount(self, client: TestClient) -> None:
        lot_id = _create_lot(client)
        response = client.post(
            f"/api/v1/payments/{lot_id}/deposit", json={"amount": 5}, headers=_as(BUYER)
        )
        assert response.status_code == 409

    def test_zero_amount_rejected(self, client: TestClient, ledger: InMemoryLedger) -> None:
        lot_id = _create_lot(client)
        response = client.post(
            f"/api/v1/payments/{lot_id}/deposit", json={"amount": 0}, headers=_as(BUYER)
        )
        assert response.status_code == 422
        assert ledger.writes_for("depositPayment") == []

    def test_role_filter_needs_account(self, client: TestClient) -> None:
        response = client.get("/api/v1/payments", params={"role": "seller"})
        assert response.status_code == 422

    def test_refund_and_pending(self, client: TestClient) -> None:
        lot_id = _create_lot(client)
        client.post(f"/api/v1/payments/{lot_id}/deposit", json={}, headers=_as(BUYER))

        pending = client.get("/api/v1/payments", params={"pending": True}).json()
        assert [p["lot_id"] for p in pending] == [lot_id]

        response = client.post(f"/api/v1/payments/{lot_id}/refund", headers=_as(CREATOR))
        assert response.status_code == 200
        assert client.get("/api/v1/payments", params={"pending": True}).json() == []


class TestSnapshot:
    def test_snapshot_and_refresh(self, client: TestClient) -> None:
        _create_lot(client)
        before = client.get("/api/v1/snapshot").json()

        after = client.post("/api/v1/snapshot/refresh").json()

        assert after["generation"] == before["generation"] + 1
        assert [lot["id"] for lot in after["lots"]] == [0]
        assert after["failures"] == []

    def test_partial_failures_listed(self, client: TestClient, ledger: InMemoryLedger) -> None:
        _create_lot(client)
        _create_lot(client)
        ledger.fail_reads("getLot", (1,))

        body = client.post("/api/v1/snapshot/refresh").json()

        assert [lot["id"] for lot in body["lots"]] == [0]
        assert body["failures"][0]["source"] == "lot"
        assert body["failures"][0]["key"] == 1


class TestMiswiredDeployment:
    def test_payment_writes_unavailable(
        self, miswired_ledger: InMemoryLedger, settings: Settings
    ) -> None:
        engine = build_engine(miswired_ledger, settings)
        with TestClient(create_app(engine)) as client:
            lot_id = _create_lot(client)

            response = client.post(f"/api/v1/payments/{lot_id}/deposit", json={}, headers=_as(BUYER))
            assert response.status_code == 503
            assert response.json()["error"] == "CONFIGURATION_MISMATCH"

            health = client.get("/health").json()
            assert health["status"] == "degraded"

        assert miswired_ledger.writes_for("depositPayment") == []
