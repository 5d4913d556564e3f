"""
Monitoring API Tests
Router endpoints against an in-memory (not started) monitoring service.

Run: python -m pytest tests/test_monitoring_api.py -v --tb=short
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi import FastAPI
from fastapi.testclient import TestClient

from agents.errors import StorageError
from api.monitoring_router import router
from services.deposit_service import DepositMonitorService

from conftest import ALICE_WALLET, FakeSubscriber, FakeYieldSource


@pytest.fixture
def service(store, directory, balances, adapter, notifier):
    return DepositMonitorService(
        store=store,
        directory=directory,
        resolver=MagicMock(),
        subscriber=FakeSubscriber(),
        balance_reader=balances,
        yield_source=FakeYieldSource(),
        adapter=adapter,
        notifier=notifier,
    )


@pytest.fixture
def client(service):
    app = FastAPI()
    app.include_router(router)
    with patch("api.monitoring_router.get_deposit_service", return_value=service):
        yield TestClient(app)


class TestWindowEndpoints:

    def test_start_and_stop(self, client, service):
        resp = client.post("/api/monitoring/start", json={"user_id": "alice", "context": "onboarding", "ttl_minutes": 5})
        assert resp.status_code == 200
        assert service.store._windows["alice"].context.value == "onboarding"

        resp = client.post("/api/monitoring/stop", json={"user_id": "alice"})
        assert resp.json() == {"success": True, "was_active": True}

        resp = client.post("/api/monitoring/stop", json={"user_id": "alice"})
        assert resp.json()["was_active"] is False

    def test_invalid_context_rejected(self, client):
        resp = client.post("/api/monitoring/start", json={"user_id": "alice", "context": "forever"})
        assert resp.status_code == 422

    def test_refresh(self, client):
        assert client.post("/api/monitoring/refresh").json() == {"success": True}

    def test_status(self, client):
        status = client.get("/api/monitoring/status").json()["status"]
        assert status["state"] == "idle"
        assert status["watching"] == 0


class TestCheckEndpoints:

    def test_check_not_found(self, client):
        resp = client.post("/api/monitoring/check", json={"user_id": "alice"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["outcome"] == "not_found"
        assert ALICE_WALLET in body["message"]

    def test_check_unknown_user(self, client):
        resp = client.post("/api/monitoring/check", json={"user_id": "ghost"})
        assert resp.status_code == 404

    def test_pending_flow(self, client, balances):
        resp = client.post("/api/monitoring/pending", json={
            "user_id": "alice", "amount": 100, "protocol": "Aave", "apy": 5.69, "current_balance": 40,
        })
        assert resp.json()["shortage"] == "60.00"

        resp = client.post("/api/monitoring/pending/complete", json={"user_id": "alice"})
        assert resp.status_code == 400

        balances.set(ALICE_WALLET, "100")
        check = client.post("/api/monitoring/check", json={"user_id": "alice"}).json()
        assert check["outcome"] == "ready"
        assert check["shortage"] == "0"

        resp = client.post("/api/monitoring/pending/complete", json={"user_id": "alice"})
        assert resp.status_code == 200
        assert resp.json()["tx_hash"] == "0xdeploy"

    def test_cancel(self, client, service):
        client.post("/api/monitoring/pending", json={"user_id": "alice", "amount": 100, "protocol": "Aave"})

        assert client.post("/api/monitoring/pending/cancel", json={"user_id": "alice"}).status_code == 200
        assert service.store._pending == {}


class TestStorageOutage:

    @pytest.fixture
    def broken_store(self, service):
        outage = StorageError("POST /pending_transactions", "HTTP 503")
        service.store.save_pending = AsyncMock(side_effect=outage)
        service.store.get_pending = AsyncMock(side_effect=outage)
        service.store.clear_pending = AsyncMock(side_effect=outage)
        return service.store

    def test_begin_pending_returns_503(self, client, broken_store):
        resp = client.post("/api/monitoring/pending", json={"user_id": "alice", "amount": 100, "protocol": "Aave"})

        assert resp.status_code == 503
        assert "pending_transactions" in resp.json()["detail"]

    @pytest.mark.parametrize("path", ["/pending/complete", "/pending/invest-available", "/pending/cancel"])
    def test_pending_actions_return_503(self, client, broken_store, balances, path):
        balances.set(ALICE_WALLET, "100")

        resp = client.post(f"/api/monitoring{path}", json={"user_id": "alice"})

        assert resp.status_code == 503
