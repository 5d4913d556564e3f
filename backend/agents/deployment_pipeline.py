"""
Deployment Pipeline
Routes a detected deposit into the highest-yielding lending venue via a
gas-sponsored transaction, then tells the user what happened.

Failure policy: funds stay in the user's wallet, the error is surfaced
verbatim, nothing is retried automatically. The user re-triggers manually.
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional

from agents.monitoring_types import DeployResult, DepositMatch, DeploymentTarget, Venue
from config.contracts import DEPOSIT_TOKEN, tx_link

logger = logging.getLogger(__name__)


# Canonical venue name -> (display name, deploy capability)
VENUE_CAPABILITIES: Dict[str, tuple] = {
    "aave": ("Aave V3", "aave_v3"),
    "fluid": ("Fluid", "fluid"),
    "compound": ("Compound V3", "compound_v3"),
    "morpho": ("Morpho PYTH/USDC", "morpho"),
    "spark": ("Spark Protocol", "spark"),
    "seamless": ("Seamless Protocol", "seamless"),
    "moonwell": ("Moonwell USDC", "moonwell"),
    "moonwell usdc": ("Moonwell USDC", "moonwell"),
}

# Used when the best venue has no capability or no venues are known
DEFAULT_TARGET = DeploymentTarget(
    protocol_name="Compound V3",
    apy=7.65,
    deploy_capability="compound_v3",
)

US_SAVINGS_APY = 0.45


def select_best_venue(venues: List[Venue]) -> Optional[Venue]:
    """Highest APY; ties go to the venue listed first"""
    ranked = sorted(venues, key=lambda v: v.apy, reverse=True)
    return ranked[0] if ranked else None


def resolve_target(venue: Optional[Venue]) -> DeploymentTarget:
    if venue is None:
        return DEFAULT_TARGET
    mapping = VENUE_CAPABILITIES.get(venue.name.strip().lower())
    if mapping is None:
        logger.warning(f"[Pipeline] No deploy capability for {venue.name}, using {DEFAULT_TARGET.protocol_name}")
        return DEFAULT_TARGET
    display_name, capability = mapping
    return DeploymentTarget(protocol_name=display_name, apy=venue.apy, deploy_capability=capability)


def project_earnings(amount: Decimal, apy: float) -> Dict[str, str]:
    """Simple-interest projection used in the success message"""
    yearly = float(amount) * apy / 100
    return {
        "daily": f"${yearly / 365:.4f}",
        "monthly": f"${yearly / 12:.2f}",
        "yearly": f"${yearly:.2f}",
        "vs_savings": f"{apy / US_SAVINGS_APY:.0f}x" if apy > 0 else "n/a",
    }


class DeploymentPipeline:
    """
    select venue -> sponsored deploy -> notify

    Collaborators:
    - yield_source.list_venues() -> list[Venue]
    - adapter.deploy(user_id, venue, amount) -> DeployResult
    - notifier.send(user_id, message)
    """

    def __init__(self, yield_source, adapter, notifier):
        self.yield_source = yield_source
        self.adapter = adapter
        self.notifier = notifier

        self.deployments = 0
        self.failures = 0

    async def select_target(self, protocol_hint: Optional[str] = None) -> DeploymentTarget:
        """Best venue right now, or the hinted venue when it can be deployed to"""
        try:
            venues = list(await self.yield_source.list_venues())
        except Exception as e:
            logger.error(f"[Pipeline] Yield source unavailable: {e}")
            venues = []

        if protocol_hint:
            for venue in venues:
                if venue.name.strip().lower() == protocol_hint.strip().lower():
                    return resolve_target(venue)
            hinted = VENUE_CAPABILITIES.get(protocol_hint.strip().lower())
            if hinted is not None:
                return DeploymentTarget(protocol_name=hinted[0], apy=0.0, deploy_capability=hinted[1])

        return resolve_target(select_best_venue(venues))

    async def run(self, match: DepositMatch) -> DeployResult:
        """Deploy a deposit detected on-chain"""
        logger.info(f"[Pipeline] Deploying {match.amount} {DEPOSIT_TOKEN} for {match.user_id}")
        return await self.deploy_amount(
            match.user_id,
            match.amount,
            deposit_tx=match.tx_hash,
            display_name=match.wallet.display_name,
        )

    async def deploy_amount(
        self,
        user_id: str,
        amount: Decimal,
        protocol_hint: Optional[str] = None,
        deposit_tx: Optional[str] = None,
        display_name: str = "there"
    ) -> DeployResult:
        target = await self.select_target(protocol_hint)

        try:
            result = await self.adapter.deploy(user_id, target.deploy_capability, amount)
        except Exception as e:
            logger.error(f"[Pipeline] Adapter error for {user_id} on {target.protocol_name}: {e}")
            result = DeployResult(success=False, error=str(e))

        if result.success:
            self.deployments += 1
            logger.info(
                f"[Pipeline] ✓ {amount} {DEPOSIT_TOKEN} -> {target.protocol_name} "
                f"({target.apy}% APY) tx={result.tx_hash}"
            )
            await self._notify(user_id, self.success_message(display_name, amount, target, deposit_tx, result))
        else:
            self.failures += 1
            logger.warning(f"[Pipeline] ✗ Deployment failed for {user_id}: {result.error}")
            await self._notify(user_id, self.failure_message(amount, target, deposit_tx, result))

        return result

    async def _notify(self, user_id: str, message: str):
        try:
            await self.notifier.send(user_id, message)
        except Exception as e:
            logger.error(f"[Pipeline] Notification to {user_id} failed: {e}")

    @staticmethod
    def success_message(
        display_name: str,
        amount: Decimal,
        target: DeploymentTarget,
        deposit_tx: Optional[str],
        result: DeployResult
    ) -> str:
        earnings = project_earnings(amount, target.apy)
        lines = [
            f"🎉 *Deposit confirmed {display_name}!*",
            "",
            f"💰 Invested: ${amount} {DEPOSIT_TOKEN} into {target.protocol_name}",
            f"📈 APY: {target.apy}% (auto-compounding, gas sponsored)",
            "",
            f"• Daily: {earnings['daily']}",
            f"• Monthly: {earnings['monthly']}",
            f"• Yearly: {earnings['yearly']}",
            f"• {earnings['vs_savings']} better than US savings ({US_SAVINGS_APY}%)",
            "",
        ]
        if deposit_tx:
            lines.append(f"📥 [Deposit]({tx_link(deposit_tx)})")
        if result.tx_hash:
            lines.append(f"📝 [Investment]({tx_link(result.tx_hash)})")
        else:
            lines.append("📝 Investment completed successfully")
        return "\n".join(lines)

    @staticmethod
    def failure_message(
        amount: Decimal,
        target: DeploymentTarget,
        deposit_tx: Optional[str],
        result: DeployResult
    ) -> str:
        lines = [
            "⚠️ *Deployment failed*",
            "",
            f"{amount} {DEPOSIT_TOKEN} arrived safely but couldn't be deployed to {target.protocol_name}.",
            "Your funds are still in your wallet.",
            "",
            f"Error: {result.error or 'Unknown error'}",
            "",
            "Please try again from the menu when you're ready.",
        ]
        if deposit_tx:
            lines.insert(3, f"📥 [Deposit]({tx_link(deposit_tx)})")
        return "\n".join(lines)
