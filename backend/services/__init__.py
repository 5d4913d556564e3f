"""
Deposit Monitor Services
Storage, chain reads, yields, execution and notifications
"""

from .window_store import MonitoringWindowStore
from .wallet_directory import WalletDirectory
from .deposit_service import (
    DepositMonitorService,
    get_deposit_service,
    force_refresh_wallets,
    start_deposit_monitoring,
    stop_deposit_monitoring,
)

__all__ = [
    "MonitoringWindowStore",
    "WalletDirectory",
    "DepositMonitorService",
    "get_deposit_service",
    "force_refresh_wallets",
    "start_deposit_monitoring",
    "stop_deposit_monitoring",
]
