"""
Deferred Actions
"Do X for this user in N seconds" as cancellable asyncio tasks.

One pending action per user. Scheduling again replaces the previous one,
and stopping the user's monitoring window cancels it.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict

logger = logging.getLogger(__name__)


class DeferredActionScheduler:
    def __init__(self):
        self._tasks: Dict[str, asyncio.Task] = {}

    def schedule(
        self,
        user_id: str,
        delay: float,
        factory: Callable[[], Awaitable[None]],
        label: str = "action"
    ) -> asyncio.Task:
        user_id = str(user_id)
        self.cancel(user_id)

        async def _run():
            try:
                await asyncio.sleep(delay)
            except asyncio.CancelledError:
                logger.info(f"[Deferred] {label} for {user_id} cancelled")
                raise
            # Once fired the action is committed; cancel() no longer reaches it
            if self._tasks.get(user_id) is task:
                del self._tasks[user_id]
            try:
                await factory()
            except Exception as e:
                logger.error(f"[Deferred] {label} for {user_id} failed: {e}")

        task = asyncio.create_task(_run(), name=f"deferred-{label}-{user_id}")
        self._tasks[user_id] = task
        logger.debug(f"[Deferred] Scheduled {label} for {user_id} in {delay}s")
        return task

    def cancel(self, user_id: str) -> bool:
        task = self._tasks.pop(str(user_id), None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def pending(self, user_id: str) -> bool:
        task = self._tasks.get(str(user_id))
        return task is not None and not task.done()

    async def shutdown(self):
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
