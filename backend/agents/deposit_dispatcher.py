"""
Deposit Dispatcher
Claims a matched deposit and hands it to the deployment pipeline.
"""

import asyncio
import logging
from typing import Callable, Optional, Set

from agents.errors import StorageError
from agents.monitoring_types import DepositMatch, MonitoringContext, MonitoringWindow

logger = logging.getLogger(__name__)


class DepositDispatcher:
    """
    Order matters:
    1. stop the user's window (the claim, nothing else runs before it)
    2. ask the controller to refresh so the wallet leaves the live set
    3. run the pipeline in its own task so the listener is never blocked

    A match whose window is already stopped is ignored, which is what keeps
    a duplicate delivery or a second transfer from deploying twice.
    """

    def __init__(
        self,
        store,
        pipeline,
        refresh: Optional[Callable[[], None]] = None,
        pending_handler=None
    ):
        self.store = store
        self.pipeline = pipeline
        self.refresh = refresh
        self.pending_handler = pending_handler
        self._tasks: Set[asyncio.Task] = set()

        self.dispatched = 0
        self.ignored = 0

    async def on_deposit(self, match: DepositMatch) -> bool:
        try:
            window = await self.store.stop(match.user_id)
        except StorageError as e:
            logger.error(f"[Dispatcher] Could not claim deposit for {match.user_id}, skipping: {e}")
            return False

        if window is None:
            self.ignored += 1
            logger.info(f"[Dispatcher] No active window for {match.user_id}, deposit {match.tx_hash} ignored")
            return False

        if self.refresh is not None:
            self.refresh()

        self.dispatched += 1
        task = asyncio.create_task(
            self._route(match, window),
            name=f"deploy-{match.user_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def _route(self, match: DepositMatch, window: MonitoringWindow):
        try:
            if window.context is MonitoringContext.PENDING_INVESTMENT and self.pending_handler is not None:
                await self.pending_handler.on_deposit(match)
            else:
                await self.pipeline.run(match)
        except Exception as e:
            logger.error(f"[Dispatcher] Deployment task for {match.user_id} failed: {e}")

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def drain(self):
        """Wait for in-flight deployment tasks (tests, graceful shutdown)"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
