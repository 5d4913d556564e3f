"""
Techne Deposit Monitor - Agents

Detection side of the deposit auto-deploy flow:
- DepositMonitor: opens the live subscription only while someone is watched
- EventSubscriber: USDC Transfer logs over eth_subscribe
- DepositDispatcher: claims a deposit (stops its window) and hands it off
- DeploymentPipeline: best venue -> sponsored deploy -> notify
"""

from .errors import MonitorError, StorageError, SubscriptionError, DecodeError, MonitorConfigError
from .monitoring_types import MonitoringContext, MonitoringWindow, WatchSet, WatchedWallet, DepositMatch
from .deferred_actions import DeferredActionScheduler
from .deployment_pipeline import DeploymentPipeline
from .deposit_dispatcher import DepositDispatcher
from .deposit_monitor import DepositMonitor
from .event_subscriber import EventSubscriber
from .watch_set import WatchSetLoader

__all__ = [
    # Components
    "DepositMonitor",
    "EventSubscriber",
    "DepositDispatcher",
    "DeploymentPipeline",
    "WatchSetLoader",
    "DeferredActionScheduler",

    # Types
    "MonitoringContext",
    "MonitoringWindow",
    "WatchSet",
    "WatchedWallet",
    "DepositMatch",

    # Errors
    "MonitorError",
    "StorageError",
    "SubscriptionError",
    "DecodeError",
    "MonitorConfigError",
]
