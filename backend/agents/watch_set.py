"""
Watch Set Loader
Turns active monitoring windows into the concrete addresses to watch.
"""

import asyncio
import logging
from typing import Iterable, List, Optional

from agents.monitoring_types import MonitoringWindow, WalletRecord, WatchedWallet, WatchSet

logger = logging.getLogger(__name__)


class WatchSetLoader:
    """
    Resolves each window's user to a settlement address.

    Resolution order:
    1. Smart account factory lookup for the wallet owner
    2. Last-known settlement address stored on the wallet record
    3. Raw stored wallet address

    Never mutates anything. A failure for one user is logged and does not
    affect the others.
    """

    def __init__(self, directory, resolver=None):
        self.directory = directory
        self.resolver = resolver

    async def resolve(self, windows: Iterable[MonitoringWindow]) -> List[WatchedWallet]:
        windows = list(windows)
        results = await asyncio.gather(
            *(self.resolve_user(w.user_id) for w in windows),
            return_exceptions=True
        )

        wallets: List[WatchedWallet] = []
        seen = set()
        for window, result in zip(windows, results):
            if isinstance(result, BaseException):
                logger.warning(f"[WatchSet] Could not load wallet for {window.user_id}: {result}")
                continue
            if result is None or result.address in seen:
                continue
            seen.add(result.address)
            wallets.append(result)
        return wallets

    async def snapshot(self, windows: Iterable[MonitoringWindow]) -> WatchSet:
        return WatchSet.build(await self.resolve(windows))

    async def resolve_user(self, user_id: str) -> Optional[WatchedWallet]:
        """Settlement wallet for a single user, or None if they have no wallet"""
        record = await self.directory.get_wallet(user_id)
        if record is None:
            logger.warning(f"[WatchSet] No wallet on record for {user_id}")
            return None

        return WatchedWallet(
            address=await self._settlement_address(record),
            user_id=record.user_id,
            display_name=record.display_name or "there",
        )

    async def _settlement_address(self, record: WalletRecord) -> str:
        fallback = (record.settlement_address or record.address).lower()
        if self.resolver is None or not record.owner_address:
            return fallback

        try:
            return await asyncio.to_thread(
                self.resolver.resolve_settlement_address, record.owner_address
            )
        except Exception as e:
            logger.warning(
                f"[WatchSet] Settlement lookup failed for {record.user_id}, "
                f"using {fallback[:10]}...: {e}"
            )
            return fallback
