"""
Deposit Dispatcher Tests
========================

- the window is stopped before the pipeline runs
- duplicate deliveries are ignored
- pending_investment windows are routed to the pending handler
- storage failures skip the deposit instead of deploying unclaimed

Run: python -m pytest tests/test_deposit_dispatcher.py -v --tb=short
"""

import asyncio
import pytest
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from agents.deposit_dispatcher import DepositDispatcher
from agents.errors import StorageError
from agents.event_subscriber import EventSubscriber
from agents.monitoring_types import DepositMatch, MonitoringContext, WatchedWallet, WatchSet

from conftest import ALICE_WALLET, subscription_message, transfer_log


@pytest.fixture
def match():
    wallet = WatchedWallet(address=ALICE_WALLET, user_id="alice")
    return DepositMatch(wallet=wallet, amount=Decimal("12.50"), tx_hash="0xdeposit")


@pytest.fixture
def pipeline():
    pipeline = MagicMock()
    pipeline.run = AsyncMock()
    return pipeline


class TestClaim:
    """stop() is the claim"""

    @pytest.mark.asyncio
    async def test_window_stopped_before_pipeline(self, store, pipeline, match):
        await store.start("alice", MonitoringContext.ONBOARDING, 5)
        seen_active = []

        async def run(m):
            seen_active.append(await store.get_active("alice"))
        pipeline.run.side_effect = run

        dispatcher = DepositDispatcher(store, pipeline)
        assert await dispatcher.on_deposit(match)
        await dispatcher.drain()

        assert seen_active == [None], "❌ Pipeline ran while the window was still active"

    @pytest.mark.asyncio
    async def test_duplicate_delivery_ignored(self, store, pipeline, match):
        await store.start("alice", MonitoringContext.ONBOARDING, 5)
        dispatcher = DepositDispatcher(store, pipeline)

        first = await dispatcher.on_deposit(match)
        second = await dispatcher.on_deposit(match)
        await dispatcher.drain()

        assert first is True
        assert second is False
        pipeline.run.assert_awaited_once_with(match)
        assert dispatcher.ignored == 1

    @pytest.mark.asyncio
    async def test_concurrent_deliveries_deploy_once(self, store, pipeline, match):
        await store.start("alice", MonitoringContext.ONBOARDING, 5)
        dispatcher = DepositDispatcher(store, pipeline)

        results = await asyncio.gather(*(dispatcher.on_deposit(match) for _ in range(5)))
        await dispatcher.drain()

        assert results.count(True) == 1
        assert pipeline.run.await_count == 1

    @pytest.mark.asyncio
    async def test_no_window_no_deploy(self, store, pipeline, match):
        dispatcher = DepositDispatcher(store, pipeline)

        assert await dispatcher.on_deposit(match) is False
        pipeline.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_refresh_requested(self, store, pipeline, match):
        await store.start("alice", MonitoringContext.ONBOARDING, 5)
        refresh = MagicMock()
        dispatcher = DepositDispatcher(store, pipeline, refresh=refresh)

        await dispatcher.on_deposit(match)
        await dispatcher.drain()

        refresh.assert_called_once()

    @pytest.mark.asyncio
    async def test_storage_failure_skips_deposit(self, pipeline, match):
        store = MagicMock()
        store.stop = AsyncMock(side_effect=StorageError("PATCH /monitoring_windows", "HTTP 503"))
        dispatcher = DepositDispatcher(store, pipeline)

        assert await dispatcher.on_deposit(match) is False
        pipeline.run.assert_not_awaited()


class TestRouting:

    @pytest.mark.asyncio
    async def test_pending_window_goes_to_pending_handler(self, store, pipeline, match):
        await store.start("alice", MonitoringContext.PENDING_INVESTMENT, 5)
        handler = MagicMock()
        handler.on_deposit = AsyncMock()
        dispatcher = DepositDispatcher(store, pipeline, pending_handler=handler)

        await dispatcher.on_deposit(match)
        await dispatcher.drain()

        handler.on_deposit.assert_awaited_once_with(match)
        pipeline.run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pipeline_error_contained(self, store, pipeline, match):
        await store.start("alice", MonitoringContext.BALANCE_CHECK, 5)
        pipeline.run.side_effect = RuntimeError("unexpected")
        dispatcher = DepositDispatcher(store, pipeline)

        assert await dispatcher.on_deposit(match)
        await dispatcher.drain()
        assert dispatcher.in_flight == 0


class TestFromSubscriber:
    """Listener wired straight into the dispatcher"""

    def _wire(self, store, pipeline):
        dispatcher = DepositDispatcher(store, pipeline)
        subscriber = EventSubscriber(ws_url="wss://test", on_deposit=dispatcher.on_deposit)
        subscriber.update_watch_set(WatchSet.build([WatchedWallet(address=ALICE_WALLET, user_id="alice")]))
        return subscriber, dispatcher

    @pytest.mark.asyncio
    async def test_zero_value_transfer_keeps_window_open(self, store, pipeline):
        await store.start("alice", MonitoringContext.ONBOARDING, 5)
        subscriber, dispatcher = self._wire(store, pipeline)

        await subscriber.handle_message(subscription_message(transfer_log(ALICE_WALLET, 0)))
        await dispatcher.drain()

        pipeline.run.assert_not_awaited()
        assert [w.user_id for w in await store.list_active()] == ["alice"]

    @pytest.mark.asyncio
    async def test_real_deposit_after_dust_still_deployed(self, store, pipeline):
        await store.start("alice", MonitoringContext.ONBOARDING, 5)
        subscriber, dispatcher = self._wire(store, pipeline)

        await subscriber.handle_message(subscription_message(transfer_log(ALICE_WALLET, 5_000, tx_hash="0xspam")))
        await subscriber.handle_message(subscription_message(transfer_log(ALICE_WALLET, 12_500_000, tx_hash="0xreal")))
        await dispatcher.drain()

        pipeline.run.assert_awaited_once()
        assert pipeline.run.await_args.args[0].tx_hash == "0xreal"
        assert await store.list_active() == []
