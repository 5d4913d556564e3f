"""
Supabase Database Integration for the Deposit Monitor
Persistent storage for monitoring windows, pending investments and wallet lookups.

Uses REST API directly via httpx (no native dependencies).
"""

import os
import httpx
from typing import Dict, List, Optional, Any
import logging

from agents.errors import StorageError

logger = logging.getLogger(__name__)


class SupabaseClient:
    """
    Supabase REST API client for the deposit monitor.

    Tables:
    - monitoring_windows: one row per user, the latest deposit window
    - pending_transactions: investments waiting for more funds
    - wallets: user wallet records (read-only here)
    """

    def __init__(self, url: str = None, key: str = None, timeout: float = 10.0):
        self.url = (url if url is not None else os.getenv("SUPABASE_URL", "")).rstrip("/")
        self.key = key if key is not None else os.getenv("SUPABASE_KEY", "")
        self.timeout = timeout
        self._initialized = bool(self.url and self.key)

        if self._initialized:
            logger.info(f"[Supabase] Configured for {self.url[:40]}...")
        else:
            logger.warning("[Supabase] Missing SUPABASE_URL or SUPABASE_KEY - using in-memory fallback")

    @property
    def is_available(self) -> bool:
        return self._initialized

    def _headers(self, upsert: bool = False) -> dict:
        headers = {
            "apikey": self.key,
            "Authorization": f"Bearer {self.key}",
            "Content-Type": "application/json",
            "Prefer": "return=representation"
        }
        if upsert:
            headers["Prefer"] = "return=representation,resolution=merge-duplicates"
        return headers

    async def _request(
        self,
        method: str,
        table: str,
        data: dict = None,
        params: dict = None,
        upsert: bool = False
    ) -> List[dict]:
        """
        Make async request to Supabase REST API.

        Raises StorageError on transport failure or non-2xx status so the
        caller decides whether to retry on the next cycle.
        """
        if not self.is_available:
            raise StorageError(f"{method} /{table}", "Supabase not configured")

        url = f"{self.url}/rest/v1/{table}"

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                resp = await client.request(
                    method,
                    url,
                    headers=self._headers(upsert=upsert),
                    json=data,
                    params=params
                )
            except httpx.HTTPError as e:
                logger.error(f"[Supabase] {method} {table} request failed: {e}")
                raise StorageError(f"{method} /{table}", str(e)) from e

        if resp.status_code not in (200, 201, 204):
            logger.error(f"[Supabase] {method} {table}: {resp.status_code} - {resp.text[:200]}")
            raise StorageError(f"{method} /{table}", f"HTTP {resp.status_code}")

        return resp.json() if resp.text else []

    # ==========================================
    # MONITORING WINDOWS
    # ==========================================

    async def upsert_window(self, row: Dict[str, Any]) -> Optional[dict]:
        """Insert or replace the window row for a user"""
        result = await self._request(
            "POST", "monitoring_windows",
            data=row,
            params={"on_conflict": "user_id"},
            upsert=True
        )
        return result[0] if result else None

    async def update_window(self, user_id: str, data: Dict[str, Any]) -> List[dict]:
        return await self._request(
            "PATCH", "monitoring_windows",
            data=data,
            params={"user_id": f"eq.{user_id}"}
        )

    async def stop_active_window(self, user_id: str, now_iso: str) -> List[dict]:
        """Stop the user's window; returns rows only if it was still active"""
        return await self._request(
            "PATCH", "monitoring_windows",
            data={"stopped": True},
            params={
                "user_id": f"eq.{user_id}",
                "stopped": "eq.false",
                "expires_at": f"gt.{now_iso}"
            }
        )

    async def get_window(self, user_id: str) -> Optional[dict]:
        result = await self._request(
            "GET", "monitoring_windows",
            params={"user_id": f"eq.{user_id}", "select": "*", "limit": "1"}
        )
        return result[0] if result else None

    async def get_active_windows(self, now_iso: str) -> List[dict]:
        """Windows not stopped and not yet expired"""
        return await self._request(
            "GET", "monitoring_windows",
            params={
                "stopped": "eq.false",
                "expires_at": f"gt.{now_iso}",
                "select": "*",
                "order": "started_at.asc"
            }
        )

    # ==========================================
    # PENDING TRANSACTIONS
    # ==========================================

    async def upsert_pending(self, row: Dict[str, Any]) -> Optional[dict]:
        result = await self._request(
            "POST", "pending_transactions",
            data=row,
            params={"on_conflict": "user_id"},
            upsert=True
        )
        return result[0] if result else None

    async def get_pending(self, user_id: str) -> Optional[dict]:
        result = await self._request(
            "GET", "pending_transactions",
            params={"user_id": f"eq.{user_id}", "select": "*", "limit": "1"}
        )
        return result[0] if result else None

    async def delete_pending(self, user_id: str) -> None:
        await self._request(
            "DELETE", "pending_transactions",
            params={"user_id": f"eq.{user_id}"}
        )

    # ==========================================
    # WALLETS (owned by the account service)
    # ==========================================

    async def get_wallet(self, user_id: str) -> Optional[dict]:
        result = await self._request(
            "GET", "wallets",
            params={"user_id": f"eq.{user_id}", "select": "*", "limit": "1"}
        )
        return result[0] if result else None


# Global instance
supabase = SupabaseClient()


# ==========================================
# SQL SCHEMA - Run in Supabase SQL Editor
# ==========================================
SCHEMA_SQL = """
-- Monitoring Windows (one row per user, superseded on re-trigger)
CREATE TABLE IF NOT EXISTS monitoring_windows (
    user_id TEXT PRIMARY KEY,
    context TEXT NOT NULL,
    expires_at TIMESTAMPTZ NOT NULL,
    started_at TIMESTAMPTZ DEFAULT NOW(),
    stopped BOOLEAN DEFAULT FALSE,
    last_seen_balance DECIMAL,
    metadata JSONB DEFAULT '{}'
);

-- Pending Transactions (insufficient balance flow)
CREATE TABLE IF NOT EXISTS pending_transactions (
    user_id TEXT PRIMARY KEY,
    amount DECIMAL NOT NULL,
    protocol_hint TEXT NOT NULL,
    pool_id TEXT,
    apy DECIMAL,
    shortage DECIMAL NOT NULL,
    last_balance DECIMAL DEFAULT 0,
    expires_at TIMESTAMPTZ NOT NULL
);

-- Wallets (written by the account service)
CREATE TABLE IF NOT EXISTS wallets (
    user_id TEXT PRIMARY KEY,
    address TEXT NOT NULL,
    owner_address TEXT,
    settlement_address TEXT,
    display_name TEXT
);

-- Indexes
CREATE INDEX IF NOT EXISTS idx_windows_active ON monitoring_windows(stopped, expires_at);
"""
