"""
Deposit Monitoring Service
Wires the monitoring components together and owns their lifecycle.

    window store -> watch set loader -> lifecycle controller -> event listener
                                                                      |
                             deployment pipeline <- dispatcher <------+
"""

import logging
from typing import Optional

from agents.deferred_actions import DeferredActionScheduler
from agents.deployment_pipeline import DeploymentPipeline
from agents.deposit_dispatcher import DepositDispatcher
from agents.deposit_monitor import DepositMonitor
from agents.event_subscriber import EventSubscriber
from agents.watch_set import WatchSetLoader
from config.contracts import WS_URL
from services.deployment_adapter import SponsoredDeploymentAdapter
from services.manual_check import ManualCheckService
from services.telegram_notifier import TelegramNotifier
from services.token_balance import TokenBalanceReader
from services.wallet_directory import WalletDirectory
from services.window_store import MonitoringWindowStore
from services.yield_source import DefiLlamaYieldSource

logger = logging.getLogger(__name__)


class DepositMonitorService:
    """
    Any collaborator can be injected; the rest are built from config.
    """

    def __init__(
        self,
        store: Optional[MonitoringWindowStore] = None,
        directory: Optional[WalletDirectory] = None,
        resolver=None,
        subscriber: Optional[EventSubscriber] = None,
        balance_reader=None,
        yield_source=None,
        adapter=None,
        notifier=None,
        ws_url: str = WS_URL
    ):
        self.scheduler = DeferredActionScheduler()
        self.store = store or MonitoringWindowStore(scheduler=self.scheduler)
        if self.store.scheduler is None:
            self.store.scheduler = self.scheduler
        else:
            self.scheduler = self.store.scheduler

        self.directory = directory or WalletDirectory()
        if resolver is None:
            resolver = _default_resolver()
        self.loader = WatchSetLoader(self.directory, resolver)

        self.balance_reader = balance_reader or TokenBalanceReader()
        self.notifier = notifier or TelegramNotifier()
        self.pipeline = DeploymentPipeline(
            yield_source or DefiLlamaYieldSource(),
            adapter or SponsoredDeploymentAdapter(),
            self.notifier,
        )

        self.subscriber = subscriber or EventSubscriber(ws_url=ws_url)
        self.monitor = DepositMonitor(
            self.store,
            self.loader,
            self.subscriber,
            balance_reader=self.balance_reader,
        )
        self.manual_check = ManualCheckService(
            self.store,
            self.loader,
            self.balance_reader,
            self.pipeline,
            notifier=self.notifier,
            refresh=self.monitor.force_refresh,
            scheduler=self.scheduler,
        )
        self.dispatcher = DepositDispatcher(
            self.store,
            self.pipeline,
            refresh=self.monitor.force_refresh,
            pending_handler=self.manual_check,
        )

        # Live events and polling fallback both go through the same claim
        self.subscriber.on_deposit = self.dispatcher.on_deposit
        self.monitor.on_deposit = self.dispatcher.on_deposit

        self.started = False

    async def start(self):
        """
        Probe the websocket endpoint, then start the controller loop.
        Raises MonitorConfigError when the endpoint is missing or unreachable.
        """
        if self.started:
            return
        await self.subscriber.check_endpoint()
        await self.monitor.start()
        self.started = True
        logger.info("✅ Deposit monitoring started")

    async def shutdown(self):
        if not self.started:
            return
        self.started = False
        await self.monitor.stop()
        await self.scheduler.shutdown()
        await self.dispatcher.drain()
        logger.info("Deposit monitoring stopped")

    def force_refresh(self):
        self.monitor.force_refresh()

    def get_status(self) -> dict:
        status = self.monitor.get_status()
        status.update({
            "persistent_store": self.store.persistent,
            "deployments_in_flight": self.dispatcher.in_flight,
            "dispatched": self.dispatcher.dispatched,
            "ignored": self.dispatcher.ignored,
            "deployments": self.pipeline.deployments,
            "deployment_failures": self.pipeline.failures,
            "events_seen": self.subscriber.events_seen,
            "events_dropped": self.subscriber.events_dropped,
        })
        return status


def _default_resolver():
    from config.contracts import FACTORY_ADDRESS
    if not FACTORY_ADDRESS:
        logger.warning("TECHNE_FACTORY_ADDRESS not set - using stored wallet addresses")
        return None
    from services.smart_account_service import get_smart_account_service
    return get_smart_account_service()


# Singleton
_deposit_service = None

def get_deposit_service() -> DepositMonitorService:
    global _deposit_service
    if _deposit_service is None:
        _deposit_service = DepositMonitorService()
    return _deposit_service


async def start_deposit_monitoring():
    await get_deposit_service().start()


async def stop_deposit_monitoring():
    if _deposit_service is not None:
        await _deposit_service.shutdown()


async def force_refresh_wallets():
    """Re-evaluate the watch set now (call after starting a window)"""
    get_deposit_service().force_refresh()
