"""
Wallet Directory
Read access to the user -> wallet records owned by the account service.
"""

import logging
from typing import Dict, Optional

from agents.monitoring_types import WalletRecord
from infrastructure.supabase_client import SupabaseClient, supabase

logger = logging.getLogger(__name__)


class WalletDirectory:
    """Supabase `wallets` table, or an in-memory registry when not configured"""

    def __init__(self, db: Optional[SupabaseClient] = None):
        self.db = db if db is not None else supabase
        self._records: Dict[str, WalletRecord] = {}

    def register(self, record: WalletRecord) -> None:
        self._records[str(record.user_id)] = record

    async def get_wallet(self, user_id: str) -> Optional[WalletRecord]:
        user_id = str(user_id)
        if user_id in self._records:
            return self._records[user_id]
        if self.db is None or not self.db.is_available:
            return None

        row = await self.db.get_wallet(user_id)
        if not row:
            return None
        return WalletRecord(
            user_id=user_id,
            address=row["address"],
            owner_address=row.get("owner_address"),
            settlement_address=row.get("settlement_address"),
            display_name=row.get("display_name") or "there",
        )
