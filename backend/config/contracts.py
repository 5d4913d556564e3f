"""
Deposit Monitor Contract Configuration
Centralized config for chain constants and contract addresses
Update here after deploying new contracts
"""

import os

from dotenv import load_dotenv

load_dotenv()

# ============================================
# CHAIN
# ============================================

CHAIN_ID = 8453  # Base mainnet
EXPLORER_TX_URL = "https://basescan.org/tx/"

# ============================================
# TOKEN ADDRESSES (Base Mainnet)
# ============================================

TOKENS = {
    "USDC": "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
}

# Token decimals
DECIMALS = {"USDC": 6}

# Stablecoin watched for deposits
DEPOSIT_TOKEN = "USDC"
DEPOSIT_TOKEN_ADDRESS = TOKENS[DEPOSIT_TOKEN]
DEPOSIT_TOKEN_DECIMALS = DECIMALS[DEPOSIT_TOKEN]

# keccak256("Transfer(address,address,uint256)")
TRANSFER_EVENT_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

# ============================================
# SMART ACCOUNT FACTORY (ERC-4337)
# ============================================

FACTORY_ADDRESS = os.getenv(
    "TECHNE_FACTORY_ADDRESS",
    "0xc1ee3090330ad3f946eee995f975e9fe541aa676"
)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# ============================================
# RPC CONFIGURATION
# ============================================

RPC_URL = os.getenv("ALCHEMY_RPC_URL", "https://mainnet.base.org")

WS_URL = os.getenv("ALCHEMY_WS_URL", "")

# ============================================
# ABIs (Key functions)
# ============================================

ERC20_ABI = [
    {"constant": True, "inputs": [{"name": "_owner", "type": "address"}],
     "name": "balanceOf", "outputs": [{"name": "balance", "type": "uint256"}],
     "type": "function"}
]

FACTORY_ABI = [
    {
        "inputs": [{"name": "owner", "type": "address"}],
        "name": "getAddress",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function"
    },
    {
        "inputs": [{"name": "", "type": "address"}],
        "name": "accountOf",
        "outputs": [{"name": "", "type": "address"}],
        "stateMutability": "view",
        "type": "function"
    }
]


def get_token_address(symbol: str) -> str:
    """Get token address by symbol"""
    return TOKENS.get(symbol.upper(), None)


def tx_link(tx_hash: str) -> str:
    """Explorer link for a transaction hash"""
    return f"{EXPLORER_TX_URL}{tx_hash}"
