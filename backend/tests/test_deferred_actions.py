"""
Deferred Action Scheduler Tests

Run: python -m pytest tests/test_deferred_actions.py -v --tb=short
"""

import asyncio
import pytest
from unittest.mock import AsyncMock

from agents.deferred_actions import DeferredActionScheduler


class TestDeferredActions:

    @pytest.mark.asyncio
    async def test_runs_after_delay(self):
        scheduler = DeferredActionScheduler()
        action = AsyncMock()

        scheduler.schedule("alice", 0.05, action)
        assert scheduler.pending("alice")
        action.assert_not_awaited()

        await asyncio.sleep(0.1)
        action.assert_awaited_once()
        assert not scheduler.pending("alice")

    @pytest.mark.asyncio
    async def test_cancel_before_firing(self):
        scheduler = DeferredActionScheduler()
        action = AsyncMock()

        scheduler.schedule("alice", 0.05, action)
        assert scheduler.cancel("alice") is True

        await asyncio.sleep(0.1)
        action.assert_not_awaited()
        assert scheduler.cancel("alice") is False

    @pytest.mark.asyncio
    async def test_reschedule_replaces(self):
        scheduler = DeferredActionScheduler()
        first, second = AsyncMock(), AsyncMock()

        scheduler.schedule("alice", 0.05, first)
        scheduler.schedule("alice", 0.05, second)

        await asyncio.sleep(0.1)
        first.assert_not_awaited()
        second.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_fired_action_not_cancelled_by_its_own_claim(self):
        scheduler = DeferredActionScheduler()
        finished = asyncio.Event()

        async def action():
            # e.g. the action stops the user's window, which cancels pending actions
            scheduler.cancel("alice")
            await asyncio.sleep(0)
            finished.set()

        scheduler.schedule("alice", 0.01, action)

        await asyncio.wait_for(finished.wait(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_failing_action_logged(self):
        scheduler = DeferredActionScheduler()
        task = scheduler.schedule("alice", 0.01, AsyncMock(side_effect=RuntimeError("boom")))

        await task  # does not raise

    @pytest.mark.asyncio
    async def test_shutdown_cancels_all(self):
        scheduler = DeferredActionScheduler()
        actions = [AsyncMock() for _ in range(3)]
        for i, action in enumerate(actions):
            scheduler.schedule(f"user{i}", 0.05, action)

        await scheduler.shutdown()
        await asyncio.sleep(0.1)

        for action in actions:
            action.assert_not_awaited()
