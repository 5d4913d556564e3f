"""
Deposit Monitor - Connection Lifecycle Controller
Opens the live Transfer subscription only while someone is expected to
deposit, and falls back to balance polling while it is down.

Flow:
1. Every cycle: list active windows -> resolve watch set snapshot
2. Non-empty -> ACTIVE (subscription open), empty -> IDLE (closed)
3. Fast cycle while watching, slow cycle while idle
4. Subscription drop -> IDLE, fixed back-off, re-evaluate
5. While watching without a live subscription, poll balances
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from agents.monitoring_types import (
    ConnectionState,
    DepositMatch,
    MonitoringWindow,
    WatchSet,
    utc_now,
)
from config.monitoring import FAST_INTERVAL, RECONNECT_DELAY, SLOW_INTERVAL

logger = logging.getLogger(__name__)


class DepositMonitor:
    """
    Demand-driven owner of the EventSubscriber.

    The watch set is recomputed from scratch each cycle and swapped into
    the subscriber by reference; nothing mutates a shared set.
    """

    def __init__(
        self,
        store,
        loader,
        subscriber,
        balance_reader=None,
        on_deposit: Optional[Callable[[DepositMatch], Awaitable[Any]]] = None,
        fast_interval: float = FAST_INTERVAL,
        slow_interval: float = SLOW_INTERVAL,
        reconnect_delay: float = RECONNECT_DELAY
    ):
        self.store = store
        self.loader = loader
        self.subscriber = subscriber
        self.balance_reader = balance_reader
        self.on_deposit = on_deposit
        self.fast_interval = fast_interval
        self.slow_interval = slow_interval
        self.reconnect_delay = reconnect_delay

        self.running = False
        self.state = ConnectionState.IDLE
        self.watch_set = WatchSet()
        self.last_check: Optional[datetime] = None
        self.reconnects = 0

        self._refresh = asyncio.Event()
        self._loop_task: Optional[asyncio.Task] = None
        self._listener_task: Optional[asyncio.Task] = None
        self._backoff_until = 0.0
        self._backoff_timer: Optional[asyncio.TimerHandle] = None

    # ==========================================
    # LIFECYCLE
    # ==========================================

    async def start(self):
        """Start the evaluation loop"""
        if self.running:
            return
        self.running = True
        logger.info("[DepositMonitor] Starting demand-driven deposit monitoring...")
        self._loop_task = asyncio.create_task(self._run(), name="deposit-monitor")

    async def stop(self):
        """Cancel the loop, the subscription and its keepalive together"""
        self.running = False
        if self._backoff_timer is not None:
            self._backoff_timer.cancel()
            self._backoff_timer = None

        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        await self._close_subscription()
        logger.info("[DepositMonitor] Stopped")

    def force_refresh(self):
        """
        Re-evaluate now instead of at the next scheduled check.
        Safe to call any number of times; pending calls collapse into one.
        """
        self._refresh.set()

    @property
    def interval(self) -> float:
        return self.fast_interval if self.watch_set else self.slow_interval

    @property
    def subscription_live(self) -> bool:
        return (
            self._listener_task is not None
            and not self._listener_task.done()
            and self.subscriber.is_live
        )

    async def _run(self):
        while self.running:
            self._refresh.clear()
            try:
                await self.evaluate()
            except Exception as e:
                logger.error(f"[DepositMonitor] Evaluation error (retrying next cycle): {e}")

            try:
                await asyncio.wait_for(self._refresh.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass

    # ==========================================
    # EVALUATION
    # ==========================================

    async def evaluate(self):
        """One refresh cycle: recompute the snapshot and reconcile the connection"""
        windows = await self.store.list_active()
        snapshot = await self.loader.snapshot(windows)

        self.watch_set = snapshot
        self.subscriber.update_watch_set(snapshot)
        self.last_check = utc_now()

        if not snapshot:
            if self.state is ConnectionState.ACTIVE or self._listener_task is not None:
                logger.info("[DepositMonitor] No wallets to watch - closing subscription (IDLE)")
                await self._close_subscription()
            return

        if self._listener_task is None or self._listener_task.done():
            if self._in_backoff():
                logger.debug("[DepositMonitor] Waiting out reconnect back-off")
            else:
                logger.info(f"[DepositMonitor] Watching {len(snapshot)} wallet(s) - opening subscription (ACTIVE)")
                self._open_subscription()

        await self._track_balances(snapshot, windows, detect=not self.subscription_live)

    def _in_backoff(self) -> bool:
        return asyncio.get_running_loop().time() < self._backoff_until

    # ==========================================
    # SUBSCRIPTION
    # ==========================================

    def _open_subscription(self):
        self.state = ConnectionState.ACTIVE
        self._listener_task = asyncio.create_task(self._listen(), name="deposit-subscription")

    async def _listen(self):
        try:
            await self.subscriber.run()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"[DepositMonitor] Subscription terminated: {e}")
            self._on_dropped()

    def _on_dropped(self):
        """Unexpected termination: IDLE now, re-evaluate after the back-off"""
        self.state = ConnectionState.IDLE
        self.reconnects += 1
        loop = asyncio.get_running_loop()
        self._backoff_until = loop.time() + self.reconnect_delay
        if self._backoff_timer is not None:
            self._backoff_timer.cancel()
        if self.running:
            logger.info(f"[DepositMonitor] Reconnecting in {self.reconnect_delay}s...")
            self._backoff_timer = loop.call_later(self.reconnect_delay, self.force_refresh)
            self.force_refresh()

    async def _close_subscription(self):
        task = self._listener_task
        self._listener_task = None
        self.state = ConnectionState.IDLE
        if task is None:
            return

        try:
            await self.subscriber.close()
        except Exception as e:
            logger.warning(f"[DepositMonitor] Error closing subscription: {e}")

        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug(f"[DepositMonitor] Subscription task ended with: {e}")

    # ==========================================
    # POLLING FALLBACK
    # ==========================================

    async def _track_balances(self, snapshot: WatchSet, windows: List[MonitoringWindow], detect: bool):
        """
        Keep each window's last-seen balance current.

        A window's first reading only sets its baseline. Increases are
        dispatched as deposits only when detect is set (no live subscription).
        """
        if self.balance_reader is None:
            return

        by_user: Dict[str, MonitoringWindow] = {w.user_id: w for w in windows}
        for wallet in snapshot.wallets:
            window = by_user.get(wallet.user_id)
            if window is None:
                continue
            previous = window.last_seen_balance
            if previous is not None and not detect:
                continue

            try:
                balance = await self.balance_reader.get_balance(wallet.address)
            except Exception as e:
                logger.warning(f"[DepositMonitor] Balance check error for {wallet.address[:10]}: {e}")
                continue

            if previous == balance:
                continue
            await self.store.record_balance(wallet.user_id, balance)

            if previous is None or balance < previous:
                continue

            amount = balance - previous
            logger.info(f"[DepositMonitor] Polling detected +{amount} USDC for {wallet.address[:10]}...")
            if self.on_deposit is not None:
                await self.on_deposit(DepositMatch(wallet=wallet, amount=amount, tx_hash=None))

    def get_status(self) -> dict:
        return {
            "running": self.running,
            "state": self.state.value,
            "watching": len(self.watch_set),
            "subscription_live": self.subscription_live,
            "reconnects": self.reconnects,
            "last_check": self.last_check.isoformat() if self.last_check else None,
        }
