"""
Sponsored Deployment Adapter

Asks the execution service to supply USDC into a lending venue on the
user's behalf with paymaster-sponsored gas. The call structure of each
venue lives behind that service; this side only knows venue + amount.
"""

import logging
from decimal import Decimal

import httpx

from agents.monitoring_types import DeployResult
from config.monitoring import DEPLOY_EXECUTOR_URL, DEPLOY_TIMEOUT

logger = logging.getLogger(__name__)


class SponsoredDeploymentAdapter:
    def __init__(self, base_url: str = DEPLOY_EXECUTOR_URL, timeout: float = DEPLOY_TIMEOUT, transport=None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._transport = transport

    async def deploy(self, user_id: str, venue: str, amount: Decimal) -> DeployResult:
        payload = {
            "user_id": str(user_id),
            "venue": venue,
            "amount": str(amount),
            "token": "USDC",
            "sponsored": True,
        }

        try:
            async with httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport
            ) as client:
                resp = await client.post("/api/deploy", json=payload)
        except httpx.HTTPError as e:
            logger.error(f"[Deploy] Executor unreachable: {e}")
            return DeployResult(success=False, error=f"Executor unreachable: {e}")

        try:
            body = resp.json()
        except ValueError:
            body = {}

        if resp.status_code != 200:
            error = body.get("error") or body.get("detail") or f"HTTP {resp.status_code}"
            logger.error(f"[Deploy] {venue} for {user_id} rejected: {error}")
            return DeployResult(success=False, error=str(error))

        return DeployResult(
            success=bool(body.get("success")),
            tx_hash=body.get("tx_hash"),
            error=body.get("error"),
        )
