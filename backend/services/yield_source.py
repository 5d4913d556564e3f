"""
Yield Source - USDC lending rates on Base from DefiLlama

Returns the tracked venues in a fixed order (Aave, Fluid, Compound).
A venue missing from the API response, or the whole API being down,
yields its fallback APY instead of an error.
"""

import logging
import time
from typing import Dict, List, Optional

import httpx

from agents.monitoring_types import Venue
from config.monitoring import YIELDS_URL

logger = logging.getLogger(__name__)

# DefiLlama pool ids for USDC lending on Base
POOL_IDS = {
    "Aave": "7e0661bf-8cf3-45e6-9424-31916d4c7b84",
    "Fluid": "7372edda-f07f-4598-83e5-4edec48c4039",
    "Compound": "0c8567f8-ba5b-41ad-80de-00a71895eb19",
}

FALLBACK_APY = {
    "Aave": 5.69,
    "Fluid": 7.72,
    "Compound": 7.65,
}

CACHE_TTL = 60  # seconds


class DefiLlamaYieldSource:
    def __init__(self, url: str = YIELDS_URL, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self.timeout = timeout
        self._client = client
        self._cache: Dict[str, object] = {"data": None, "timestamp": None}

    async def _fetch_pools(self) -> List[dict]:
        if self._client is not None:
            response = await self._client.get(self.url)
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(self.url)
        response.raise_for_status()
        return response.json().get("data", [])

    async def list_venues(self) -> List[Venue]:
        cached_at = self._cache["timestamp"]
        if cached_at is not None and time.time() - cached_at < CACHE_TTL:
            return list(self._cache["data"])

        try:
            pools = await self._fetch_pools()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"[YieldSource] DefiLlama fetch failed, using fallback APYs: {e}")
            return self._fallback()

        by_id = {p.get("pool"): p for p in pools}
        venues = []
        for name, pool_id in POOL_IDS.items():
            pool = by_id.get(pool_id)
            if pool is None or pool.get("apy") is None:
                logger.warning(f"[YieldSource] {name} missing from DefiLlama, using fallback {FALLBACK_APY[name]}%")
                apy = FALLBACK_APY[name]
            else:
                apy = round(float(pool["apy"]), 2)
            venues.append(Venue(name=name, apy=apy, pool_id=pool_id))

        self._cache = {"data": venues, "timestamp": time.time()}
        return list(venues)

    def _fallback(self) -> List[Venue]:
        return [Venue(name=name, apy=FALLBACK_APY[name], pool_id=pool_id) for name, pool_id in POOL_IDS.items()]
