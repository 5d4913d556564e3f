"""
USDC balance reads for watched wallets.
"""

import asyncio
import logging
from decimal import Decimal

from web3 import Web3

from agents.monitoring_types import to_amount
from config.contracts import DEPOSIT_TOKEN_ADDRESS, DEPOSIT_TOKEN_DECIMALS, ERC20_ABI, RPC_URL

logger = logging.getLogger(__name__)


def format_units(raw: int, decimals: int = DEPOSIT_TOKEN_DECIMALS) -> Decimal:
    """Raw integer token amount -> 2-decimal Decimal"""
    return to_amount(Decimal(raw) / (Decimal(10) ** decimals))


class TokenBalanceReader:
    """ERC20 balanceOf for the deposit token"""

    def __init__(self, rpc_url: str = RPC_URL, token_address: str = DEPOSIT_TOKEN_ADDRESS, w3: Web3 = None):
        self.rpc_url = rpc_url
        self.token_address = token_address
        self.w3 = w3

    def _get_web3(self) -> Web3:
        """Get Web3 instance (lazy init)"""
        if not self.w3:
            self.w3 = Web3(Web3.HTTPProvider(self.rpc_url))
        return self.w3

    def get_raw_balance(self, address: str) -> int:
        w3 = self._get_web3()
        contract = w3.eth.contract(
            address=Web3.to_checksum_address(self.token_address),
            abi=ERC20_ABI
        )
        return contract.functions.balanceOf(Web3.to_checksum_address(address)).call()

    async def get_balance(self, address: str) -> Decimal:
        """USDC balance of address; RPC errors propagate to the caller"""
        raw = await asyncio.to_thread(self.get_raw_balance, address)
        return format_units(raw)
