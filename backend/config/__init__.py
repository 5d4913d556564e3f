# Config package
from config.contracts import (
    CHAIN_ID,
    TOKENS,
    DEPOSIT_TOKEN,
    DEPOSIT_TOKEN_ADDRESS,
    DEPOSIT_TOKEN_DECIMALS,
    TRANSFER_EVENT_TOPIC,
    FACTORY_ADDRESS,
    RPC_URL,
    WS_URL,
    get_token_address,
    tx_link,
)
