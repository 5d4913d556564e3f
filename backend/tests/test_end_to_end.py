"""
End-to-End Deposit Flow
=======================

start window -> controller opens subscription -> Transfer log arrives ->
dispatcher claims -> pipeline deploys -> exactly one success notification.

Real components throughout; only the websocket, chain reads, yields,
executor and Telegram are faked.

Run: python -m pytest tests/test_end_to_end.py -v --tb=short
"""

import pytest
from decimal import Decimal
from unittest.mock import MagicMock

from agents.event_subscriber import EventSubscriber
from agents.monitoring_types import ConnectionState, MonitoringContext
from services.deposit_service import DepositMonitorService

from conftest import (
    ALICE_WALLET,
    BOB_WALLET,
    FakeWebSocket,
    FakeYieldSource,
    subscription_message,
    transfer_log,
    wait_until,
)


@pytest.fixture
def sockets():
    return []


@pytest.fixture
def service(store, directory, balances, adapter, notifier, sockets):
    def connect(url, **kwargs):
        ws = FakeWebSocket()
        sockets.append(ws)
        return ws

    subscriber = EventSubscriber(ws_url="wss://test", connect=connect, ping_interval=30)
    service = DepositMonitorService(
        store=store,
        directory=directory,
        resolver=MagicMock(),
        subscriber=subscriber,
        balance_reader=balances,
        yield_source=FakeYieldSource(),
        adapter=adapter,
        notifier=notifier,
    )
    service.monitor.fast_interval = 0.05
    service.monitor.slow_interval = 0.05
    return service


class TestDepositToDeployment:

    @pytest.mark.asyncio
    async def test_deposit_deployed_once(self, service, store, adapter, notifier, sockets):
        await service.start()
        assert service.monitor.state is ConnectionState.IDLE

        await store.start("alice", MonitoringContext.ONBOARDING, 5)
        service.force_refresh()
        await wait_until(lambda: service.subscriber.is_live)

        message = subscription_message(transfer_log(ALICE_WALLET, 12_500_000, tx_hash="0xdep"))
        sockets[-1].feed(message)
        sockets[-1].feed(message)  # duplicate delivery

        await wait_until(lambda: len(notifier.messages) >= 1)
        await service.dispatcher.drain()

        assert len(notifier.messages) == 1
        user_id, text = notifier.messages[0]
        assert user_id == "alice"
        assert "$12.50" in text
        assert adapter.calls == [("alice", "fluid", Decimal("12.50"))]
        assert await store.list_active() == []

        # Nobody left to watch: the connection is released
        await wait_until(lambda: service.monitor.state is ConnectionState.IDLE)

        await service.shutdown()

    @pytest.mark.asyncio
    async def test_unwatched_deposit_ignored(self, service, store, adapter, notifier, sockets):
        await service.start()
        await store.start("alice", MonitoringContext.ONBOARDING, 5)
        service.force_refresh()
        await wait_until(lambda: service.subscriber.is_live)

        sockets[-1].feed(subscription_message(transfer_log(BOB_WALLET, 5_000_000)))
        await wait_until(lambda: service.subscriber.events_seen == 1)

        assert adapter.calls == []
        assert notifier.messages == []
        assert len(await store.list_active()) == 1

        await service.shutdown()

    @pytest.mark.asyncio
    async def test_failed_deployment_not_retried(self, service, store, adapter, notifier, sockets):
        adapter.result.success = False
        adapter.result.error = "UserOperation reverted"
        await service.start()
        await store.start("alice", MonitoringContext.ONBOARDING, 5)
        service.force_refresh()
        await wait_until(lambda: service.subscriber.is_live)

        sockets[-1].feed(subscription_message(transfer_log(ALICE_WALLET, 12_500_000)))
        await wait_until(lambda: len(notifier.messages) == 1)
        await service.dispatcher.drain()

        assert len(adapter.calls) == 1
        assert "UserOperation reverted" in notifier.messages[0][1]
        assert await store.list_active() == []

        await service.shutdown()


class TestModuleEntryPoints:

    @pytest.mark.asyncio
    async def test_force_refresh_wallets_wakes_controller(self, service, store, monkeypatch):
        import services.deposit_service as deposit_service
        monkeypatch.setattr(deposit_service, "_deposit_service", service)
        service.monitor.slow_interval = 30

        await deposit_service.start_deposit_monitoring()
        await store.start("alice", MonitoringContext.BALANCE_CHECK, 5)
        await deposit_service.force_refresh_wallets()

        await wait_until(lambda: service.monitor.state is ConnectionState.ACTIVE)
        assert service.monitor.watch_set.match(ALICE_WALLET) is not None

        await deposit_service.stop_deposit_monitoring()
