"""
Manual Deposit Check
On-demand "did my deposit arrive?" path, plus the insufficient-balance
(pending investment) flow.

Outcomes with a pending investment:
- READY         balance covers the target -> offer to complete
- PARTIAL       new funds but still short -> offer partial invest or wait
- NO_NEW_FUNDS  nothing changed           -> repeat deposit guidance

Without one (onboarding): FOUND / NOT_FOUND.

Only a successful complete()/invest_available() or cancel() ends monitoring.
A failed deployment keeps the pending investment and restarts its window.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from agents.monitoring_types import (
    CheckOutcome,
    CheckResult,
    DeployResult,
    DepositMatch,
    MonitoringContext,
    PendingTransaction,
    to_amount,
    ttl_deadline,
    utc_now,
)
from config.contracts import DEPOSIT_TOKEN
from config.monitoring import DUST_THRESHOLD, ONBOARDING_DEPLOY_DELAY, PENDING_TTL_MINUTES

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


class ManualCheckService:
    def __init__(
        self,
        store,
        loader,
        balance_reader,
        pipeline,
        notifier=None,
        refresh: Optional[Callable[[], None]] = None,
        scheduler=None
    ):
        self.store = store
        self.loader = loader
        self.balance_reader = balance_reader
        self.pipeline = pipeline
        self.notifier = notifier
        self.refresh = refresh
        self.scheduler = scheduler

    # ==========================================
    # ENTRY POINTS
    # ==========================================

    async def begin_pending(
        self,
        user_id: str,
        amount: Decimal,
        protocol: str,
        pool_id: str = "",
        apy: float = 0.0,
        current_balance: Decimal = ZERO,
        now: Optional[datetime] = None
    ) -> PendingTransaction:
        """User asked to invest more than they hold: remember it and watch for funds"""
        now = now or utc_now()
        amount = to_amount(amount)
        balance = to_amount(current_balance)
        pending = PendingTransaction(
            user_id=str(user_id),
            amount=amount,
            protocol_hint=protocol,
            pool_id=pool_id,
            apy=apy,
            shortage=max(amount - balance, ZERO),
            expires_at=ttl_deadline(now, PENDING_TTL_MINUTES),
            last_balance=balance,
        )
        await self.store.save_pending(pending)
        await self.store.start(
            user_id,
            MonitoringContext.PENDING_INVESTMENT,
            PENDING_TTL_MINUTES,
            {"trigger": "insufficient_balance", "protocol": protocol},
            now=now,
        )
        self._refresh()
        logger.info(f"💳 Smart recovery flow for {user_id}: ${pending.shortage} short for {protocol}")
        return pending

    async def check(self, user_id: str, first_time: bool = False) -> CheckResult:
        """Explicit "check for my deposit" from the user"""
        user_id = str(user_id)
        wallet = await self.loader.resolve_user(user_id)
        if wallet is None:
            raise LookupError(f"No wallet found for user {user_id}")

        pending = await self.store.get_pending(user_id)
        if pending is not None:
            context = MonitoringContext.PENDING_INVESTMENT
        elif first_time:
            context = MonitoringContext.ONBOARDING
        else:
            context = MonitoringContext.BALANCE_CHECK
        await self.store.start(user_id, context, metadata={"trigger": "manual_balance_check"})
        self._refresh()

        balance = await self.balance_reader.get_balance(wallet.address)

        if pending is not None:
            return await self.evaluate_pending(pending, balance)

        if balance > Decimal(DUST_THRESHOLD):
            result = CheckResult(
                outcome=CheckOutcome.FOUND,
                balance=balance,
                message=f"💰 *Deposit confirmed!*\n\n${balance} {DEPOSIT_TOKEN} found in your wallet.",
                actions=["invest_available", "view_portfolio"],
            )
            if first_time:
                self._schedule_onboarding_deploy(user_id, balance, wallet.display_name)
                result.message += "\n\nAuto-deploying to the best venue with sponsored gas..."
                result.actions = []
            return result

        return CheckResult(
            outcome=CheckOutcome.NOT_FOUND,
            balance=balance,
            message=(
                f"🔍 *Monitoring your address...*\n\n`{wallet.address}`\n\n"
                f"No deposits detected yet. Send {DEPOSIT_TOKEN} on Base and I'll pick it up."
            ),
            actions=["check_again", "deposit_help"],
        )

    async def evaluate_pending(self, pending: PendingTransaction, balance: Decimal) -> CheckResult:
        """Compare the balance with the pending target and persist the new shortage"""
        balance = to_amount(balance)
        target = pending.amount
        previous = pending.last_balance

        if balance >= target:
            pending.shortage = ZERO
            outcome = CheckOutcome.READY
            message = completion_message(balance, pending)
            actions = ["complete", "cancel"]
        elif ZERO < balance and balance > previous:
            pending.shortage = target - balance
            outcome = CheckOutcome.PARTIAL
            message = partial_message(balance - previous, pending)
            actions = ["invest_available", "wait", "cancel"]
        else:
            pending.shortage = max(target - balance, ZERO)
            outcome = CheckOutcome.NO_NEW_FUNDS
            message = (
                f"🔍 No new funds yet.\n\n"
                f"You still need *${pending.shortage}* {DEPOSIT_TOKEN} for "
                f"{pending.protocol_hint} ({pending.apy}% APY)."
            )
            actions = ["check_again", "deposit_help", "cancel"]

        pending.last_balance = balance
        await self.store.save_pending(pending)
        return CheckResult(
            outcome=outcome,
            balance=balance,
            message=message,
            shortage=pending.shortage,
            pending=pending,
            actions=actions,
        )

    async def complete(self, user_id: str) -> DeployResult:
        """Finish a pending investment once the balance covers it"""
        user_id = str(user_id)
        pending = await self.store.get_pending(user_id)
        if pending is None:
            return DeployResult(success=False, error="No pending investment")

        wallet = await self.loader.resolve_user(user_id)
        if wallet is None:
            return DeployResult(success=False, error="No wallet found")
        balance = await self.balance_reader.get_balance(wallet.address)
        if balance < pending.amount:
            result = await self.evaluate_pending(pending, balance)
            return DeployResult(success=False, error=f"Still ${result.shortage} short")

        return await self._deploy_claimed(user_id, pending.amount, pending, wallet)

    async def invest_available(self, user_id: str) -> DeployResult:
        """Invest whatever is in the wallet now instead of waiting for the full amount"""
        user_id = str(user_id)
        wallet = await self.loader.resolve_user(user_id)
        if wallet is None:
            return DeployResult(success=False, error="No wallet found")

        balance = await self.balance_reader.get_balance(wallet.address)
        if balance <= Decimal(DUST_THRESHOLD):
            return DeployResult(success=False, error="No funds available")

        pending = await self.store.get_pending(user_id)
        return await self._deploy_claimed(user_id, balance, pending, wallet)

    async def cancel(self, user_id: str) -> None:
        await self.store.clear_pending(user_id)
        await self.store.stop(user_id)
        self._refresh()

    # ==========================================
    # LIVE DEPOSITS FOR PENDING INVESTMENTS
    # ==========================================

    async def on_deposit(self, match: DepositMatch) -> Optional[CheckResult]:
        """
        Dispatcher route for pending_investment windows. Does not invest on
        its own; tells the user where they stand.
        """
        user_id = match.user_id
        pending = await self.store.get_pending(user_id)
        if pending is None:
            await self.pipeline.run(match)
            return None

        try:
            balance = await self.balance_reader.get_balance(match.wallet.address)
        except Exception as e:
            logger.warning(f"[ManualCheck] Balance read failed for {user_id}, estimating: {e}")
            balance = pending.last_balance + match.amount

        result = await self.evaluate_pending(pending, balance)
        if result.outcome is not CheckOutcome.READY:
            # Still short: keep watching for the rest
            await self._watch_pending(user_id, "partial_deposit")

        if self.notifier is not None:
            try:
                await self.notifier.send(user_id, result.message)
            except Exception as e:
                logger.error(f"[ManualCheck] Notification to {user_id} failed: {e}")
        return result

    # ==========================================
    # HELPERS
    # ==========================================

    async def _deploy_claimed(self, user_id: str, amount: Decimal, pending, wallet) -> DeployResult:
        # Window stays claimed while deploying; a failed deployment reopens it
        await self.store.stop(user_id)
        result = await self.pipeline.deploy_amount(
            user_id, amount,
            protocol_hint=pending.protocol_hint if pending else None,
            display_name=wallet.display_name,
        )
        if result.success:
            await self.store.clear_pending(user_id)
            self._refresh()
        elif pending is not None:
            logger.warning(f"[ManualCheck] Deployment failed for {user_id}, still watching for funds")
            await self._watch_pending(user_id, "deploy_failed")
        return result

    async def _watch_pending(self, user_id: str, trigger: str):
        await self.store.start(
            user_id,
            MonitoringContext.PENDING_INVESTMENT,
            PENDING_TTL_MINUTES,
            {"trigger": trigger},
        )
        self._refresh()

    def _refresh(self):
        if self.refresh is not None:
            self.refresh()

    def _schedule_onboarding_deploy(self, user_id: str, amount: Decimal, display_name: str):
        async def _deploy():
            # Claim the window; the live listener may have got there first
            window = await self.store.stop(user_id)
            if window is None:
                logger.info(f"[ManualCheck] Onboarding deposit for {user_id} already handled")
                return
            await self.pipeline.deploy_amount(user_id, amount, display_name=display_name)

        if self.scheduler is None:
            logger.warning("[ManualCheck] No scheduler configured - skipping onboarding auto-deploy")
            return
        self.scheduler.schedule(user_id, ONBOARDING_DEPLOY_DELAY, _deploy, label="onboarding-deploy")


def completion_message(balance: Decimal, pending: PendingTransaction) -> str:
    return (
        f"🎉 *You now have enough for your investment!*\n\n"
        f"Balance: ${balance} {DEPOSIT_TOKEN}\n\n"
        f"*Ready to complete:*\n"
        f"• Protocol: {pending.protocol_hint}\n"
        f"• Amount: ${pending.amount}\n"
        f"• APY: {pending.apy}%\n\n"
        f"Shall I complete your investment now?"
    )


def partial_message(received: Decimal, pending: PendingTransaction) -> str:
    return (
        f"💰 *Partial deposit received*\n\n"
        f"+${received} {DEPOSIT_TOKEN} received\n"
        f"You still need *${pending.shortage}* more\n\n"
        f"*Your pending investment:*\n"
        f"• {pending.protocol_hint} at {pending.apy}% APY\n"
        f"• Total needed: ${pending.amount}\n\n"
        f"Invest what you have now, or wait for the rest?"
    )
