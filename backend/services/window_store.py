"""
Monitoring Window Store

Durable record of which users are currently expected to receive a deposit,
plus the per-window last-seen balance and the user's pending investment.

Backed by Supabase when configured, in-memory otherwise.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from agents.errors import StorageError
from agents.monitoring_types import (
    MonitoringContext,
    MonitoringWindow,
    PendingTransaction,
    ttl_deadline,
    utc_now,
)
from config.monitoring import DEFAULT_TTL_MINUTES
from infrastructure.supabase_client import SupabaseClient, supabase

logger = logging.getLogger(__name__)


class MonitoringWindowStore:
    """
    Start/stop/list monitoring windows.

    At most one active window per user: start() replaces whatever the user
    had before. stop() is the only cancellation primitive in the system.
    """

    def __init__(self, db: Optional[SupabaseClient] = None, scheduler=None):
        self.db = db if db is not None else supabase
        self.scheduler = scheduler
        self._windows: Dict[str, MonitoringWindow] = {}
        self._pending: Dict[str, PendingTransaction] = {}

    @property
    def persistent(self) -> bool:
        return self.db is not None and self.db.is_available

    # ==========================================
    # WINDOWS
    # ==========================================

    async def start(
        self,
        user_id: str,
        context: MonitoringContext,
        ttl_minutes: float = DEFAULT_TTL_MINUTES,
        metadata: Optional[dict] = None,
        now: Optional[datetime] = None
    ) -> None:
        """Create or refresh the user's window. Re-calling extends the deadline."""
        now = now or utc_now()
        context = MonitoringContext(context)
        window = MonitoringWindow(
            user_id=str(user_id),
            context=context,
            expires_at=ttl_deadline(now, ttl_minutes),
            metadata=dict(metadata or {}),
            started_at=now,
        )

        try:
            if self.persistent:
                await self.db.upsert_window(window.to_row())
            else:
                self._windows[window.user_id] = window
        except StorageError as e:
            logger.error(f"[WindowStore] start({user_id}) failed: {e}")
            raise

        logger.info(
            f"[WindowStore] Monitoring {user_id} ({context.value}) "
            f"until {window.expires_at.isoformat()}"
        )

    async def stop(self, user_id: str, now: Optional[datetime] = None) -> Optional[MonitoringWindow]:
        """
        Mark the user's window inactive.

        Returns the window only to the call that actually deactivated it, so
        concurrent callers can use it as a claim. Calling again is a no-op
        returning None.
        """
        user_id = str(user_id)
        now = now or utc_now()

        if self.scheduler is not None:
            self.scheduler.cancel(user_id)

        try:
            if self.persistent:
                rows = await self.db.stop_active_window(user_id, now.isoformat())
                stopped = MonitoringWindow.from_row(rows[0]) if rows else None
            else:
                window = self._windows.get(user_id)
                stopped = window if window is not None and window.is_active(now) else None
                if window is not None:
                    window.stopped = True
        except StorageError as e:
            logger.error(f"[WindowStore] stop({user_id}) failed: {e}")
            raise

        if stopped is not None:
            logger.info(f"[WindowStore] Stopped monitoring {user_id}")
        return stopped

    async def list_active(self, now: Optional[datetime] = None) -> List[MonitoringWindow]:
        now = now or utc_now()
        try:
            if self.persistent:
                rows = await self.db.get_active_windows(now.isoformat())
                windows = [MonitoringWindow.from_row(r) for r in rows]
            else:
                windows = list(self._windows.values())
        except StorageError as e:
            logger.error(f"[WindowStore] list_active failed: {e}")
            raise
        return [w for w in windows if w.is_active(now)]

    async def get_active(self, user_id: str, now: Optional[datetime] = None) -> Optional[MonitoringWindow]:
        now = now or utc_now()
        user_id = str(user_id)
        if self.persistent:
            row = await self.db.get_window(user_id)
            window = MonitoringWindow.from_row(row) if row else None
        else:
            window = self._windows.get(user_id)
        if window is not None and window.is_active(now):
            return window
        return None

    async def record_balance(self, user_id: str, balance: Decimal) -> None:
        """Remember the last balance seen for the user's window (polling fallback)"""
        user_id = str(user_id)
        if self.persistent:
            await self.db.update_window(user_id, {"last_seen_balance": str(balance)})
            return
        window = self._windows.get(user_id)
        if window is not None:
            window.last_seen_balance = balance

    # ==========================================
    # PENDING TRANSACTIONS
    # ==========================================

    async def save_pending(self, pending: PendingTransaction) -> None:
        if self.persistent:
            await self.db.upsert_pending(pending.to_row())
        else:
            self._pending[pending.user_id] = pending
        logger.info(
            f"[WindowStore] Pending investment for {pending.user_id}: "
            f"${pending.amount} into {pending.protocol_hint} (short ${pending.shortage})"
        )

    async def get_pending(
        self, user_id: str, now: Optional[datetime] = None
    ) -> Optional[PendingTransaction]:
        """Live pending investment for the user; expired entries are cleared"""
        now = now or utc_now()
        user_id = str(user_id)
        if self.persistent:
            row = await self.db.get_pending(user_id)
            pending = PendingTransaction.from_row(row) if row else None
        else:
            pending = self._pending.get(user_id)

        if pending is not None and not pending.is_live(now):
            await self.clear_pending(user_id)
            return None
        return pending

    async def clear_pending(self, user_id: str) -> None:
        user_id = str(user_id)
        if self.persistent:
            await self.db.delete_pending(user_id)
        elif self._pending.pop(user_id, None) is not None:
            logger.info(f"[WindowStore] Cleared pending investment for {user_id}")
