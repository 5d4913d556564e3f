"""
Smart Account Service for ERC-4337 Integration

Resolves the settlement address of a user's smart account. Funds sent to
this address are the ones the deployment executor can move, so it is the
address the deposit monitor watches (not necessarily the one shown to the
user).
"""

import logging
from typing import Optional

from web3 import Web3

from config.contracts import FACTORY_ABI, FACTORY_ADDRESS, RPC_URL, ZERO_ADDRESS

logger = logging.getLogger(__name__)


class SmartAccountService:
    """Read-only view of the smart account factory"""

    def __init__(self, rpc_url: str = RPC_URL, factory_address: str = FACTORY_ADDRESS, w3: Web3 = None):
        self.w3 = w3 or Web3(Web3.HTTPProvider(rpc_url))

        self.factory = self.w3.eth.contract(
            address=Web3.to_checksum_address(factory_address),
            abi=FACTORY_ABI
        ) if factory_address and factory_address != ZERO_ADDRESS else None

        if self.factory is None:
            logger.warning("[SmartAccount] Factory not configured - settlement addresses fall back to stored wallets")

    def get_account_address(self, owner_address: str) -> str:
        """
        Get deterministic smart account address for an owner.
        Works even if account not deployed yet (counterfactual).
        """
        if not self.factory:
            raise ValueError("Factory not configured")

        owner = Web3.to_checksum_address(owner_address)
        return self.factory.functions.getAddress(owner).call()

    def get_account(self, owner_address: str) -> Optional[str]:
        """Get deployed account address, or None if not deployed"""
        if not self.factory:
            return None

        owner = Web3.to_checksum_address(owner_address)
        account = self.factory.functions.accountOf(owner).call()

        if account == ZERO_ADDRESS:
            return None
        return account

    def resolve_settlement_address(self, owner_address: str) -> str:
        """Deployed account if any, else the counterfactual address (lowercase)"""
        account = self.get_account(owner_address)
        if account is None:
            account = self.get_account_address(owner_address)
        if not account or account == ZERO_ADDRESS:
            raise ValueError(f"No smart account for {owner_address}")
        return account.lower()


# Singleton
_smart_account_service = None

def get_smart_account_service() -> SmartAccountService:
    global _smart_account_service
    if _smart_account_service is None:
        _smart_account_service = SmartAccountService()
    return _smart_account_service
