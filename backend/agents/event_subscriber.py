"""
WebSocket Event Subscription for Real-time Deposit Detection

Subscribes to USDC Transfer logs over JSON-RPC (eth_subscribe), decodes
each log and hands deposits to watched wallets to the dispatcher.
The set of watched wallets is an immutable snapshot swapped in by the
connection controller.
"""

import asyncio
import json
import logging
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, Tuple

import websockets
from websockets.exceptions import ConnectionClosed

from agents.errors import DecodeError, MonitorConfigError, SubscriptionError
from agents.monitoring_types import ChainLogEvent, DepositMatch, WatchSet, to_amount
from config.contracts import (
    DEPOSIT_TOKEN_ADDRESS,
    DEPOSIT_TOKEN_DECIMALS,
    TRANSFER_EVENT_TOPIC,
    WS_URL,
)
from config.monitoring import DUST_THRESHOLD, PING_INTERVAL, SUBSCRIBE_TIMEOUT

logger = logging.getLogger(__name__)

SUBSCRIBE_REQUEST_ID = 1


# ============================================
# DECODING
# ============================================

def decode_amount(data: str, decimals: int = DEPOSIT_TOKEN_DECIMALS) -> Decimal:
    """uint256 payload -> token amount with 2 decimal places"""
    if not isinstance(data, str) or not data.startswith("0x") or len(data) < 3:
        raise DecodeError(f"Bad amount payload: {data!r}")
    try:
        raw = int(data, 16)
    except ValueError as e:
        raise DecodeError(f"Bad amount payload: {data[:20]}") from e
    return to_amount(Decimal(raw) / (Decimal(10) ** decimals))


def format_amount(raw: int, decimals: int = DEPOSIT_TOKEN_DECIMALS) -> str:
    """12_500_000 -> '12.50' for a 6-decimal token"""
    return str(to_amount(Decimal(raw) / (Decimal(10) ** decimals)))


def decode_recipient(topic: str) -> str:
    """32-byte left-padded address topic -> lowercase 0x address"""
    if not isinstance(topic, str):
        raise DecodeError("Recipient topic missing")
    body = topic[2:] if topic.startswith("0x") else topic
    if len(body) != 64:
        raise DecodeError(f"Recipient topic has {len(body)} hex chars")
    try:
        int(body, 16)
    except ValueError as e:
        raise DecodeError("Recipient topic is not hex") from e
    return "0x" + body[-40:].lower()


def decode_transfer(event: ChainLogEvent) -> Tuple[str, Decimal]:
    """Transfer(from, to, value): recipient from topics[2], value from data"""
    if len(event.topics) < 3:
        raise DecodeError(f"Transfer log has {len(event.topics)} topics")
    return decode_recipient(event.topics[2]), decode_amount(event.data)


# ============================================
# SUBSCRIBER
# ============================================

class EventSubscriber:
    """
    One live log subscription.

    run() connects, subscribes and reads until close() is called (returns
    normally) or the connection drops (raises). The controller decides
    when to run it and when to reconnect.
    """

    def __init__(
        self,
        ws_url: str = WS_URL,
        on_deposit: Optional[Callable[[DepositMatch], Awaitable[Any]]] = None,
        token_address: str = DEPOSIT_TOKEN_ADDRESS,
        ping_interval: float = PING_INTERVAL,
        subscribe_timeout: float = SUBSCRIBE_TIMEOUT,
        connect=None
    ):
        self.ws_url = ws_url
        self.on_deposit = on_deposit
        self.token_address = token_address.lower()
        self.ping_interval = ping_interval
        self.subscribe_timeout = subscribe_timeout
        self._connect = connect or websockets.connect
        self.min_amount = Decimal(DUST_THRESHOLD)

        self.watch_set = WatchSet()
        self.ws = None
        self.subscription_id: Optional[str] = None
        self._closing = False
        self._keepalive_task: Optional[asyncio.Task] = None

        # Stats
        self.events_seen = 0
        self.events_dropped = 0
        self.deposits_matched = 0

    @property
    def is_live(self) -> bool:
        return self.ws is not None and self.subscription_id is not None

    def update_watch_set(self, snapshot: WatchSet):
        """Swap in a freshly computed snapshot"""
        self.watch_set = snapshot

    # ==========================================
    # CONNECTION
    # ==========================================

    async def check_endpoint(self):
        """Startup probe: the websocket endpoint must be reachable"""
        if not self.ws_url:
            raise MonitorConfigError("ALCHEMY_WS_URL is not set")
        try:
            async with self._connect(self.ws_url, ping_interval=None) as ws:
                await ws.close()
        except MonitorConfigError:
            raise
        except Exception as e:
            raise MonitorConfigError(f"Cannot reach {self.ws_url[:50]}: {e}") from e

    async def run(self):
        """Connect, subscribe and process messages until closed"""
        self._closing = False
        logger.info(f"[EventSubscriber] Connecting to {self.ws_url[:50]}...")

        async with self._connect(self.ws_url, ping_interval=None) as ws:
            self.ws = ws
            try:
                self.subscription_id = await self._subscribe(ws)
                self._keepalive_task = asyncio.create_task(self._keepalive(ws))

                async for raw in ws:
                    await self.handle_message(raw)
            except ConnectionClosed as e:
                if not self._closing:
                    raise SubscriptionError(f"Connection dropped: {e}") from e
            finally:
                await self._stop_keepalive()
                self.ws = None
                self.subscription_id = None

        if not self._closing:
            raise SubscriptionError("Subscription closed by upstream")
        logger.info("[EventSubscriber] Closed")

    async def close(self):
        """Close the subscription; run() returns normally"""
        self._closing = True
        ws = self.ws
        if ws is not None:
            await ws.close()

    async def _subscribe(self, ws) -> str:
        subscribe_msg = {
            "jsonrpc": "2.0",
            "id": SUBSCRIBE_REQUEST_ID,
            "method": "eth_subscribe",
            "params": [
                "logs",
                {
                    "address": self.token_address,
                    "topics": [TRANSFER_EVENT_TOPIC]
                }
            ]
        }
        await ws.send(json.dumps(subscribe_msg))

        # Wait for subscription confirmation
        while True:
            raw = await asyncio.wait_for(ws.recv(), timeout=self.subscribe_timeout)
            data = json.loads(raw)
            if data.get("id") != SUBSCRIBE_REQUEST_ID:
                continue
            if "result" in data:
                logger.info(f"[EventSubscriber] Subscribed to Transfer logs with ID: {data['result']}")
                return data["result"]
            raise SubscriptionError(f"Subscription failed: {data.get('error', data)}")

    async def _keepalive(self, ws):
        """Ping on a fixed interval; a missing pong closes the socket"""
        while True:
            await asyncio.sleep(self.ping_interval)
            try:
                pong = await ws.ping()
                await asyncio.wait_for(pong, timeout=self.ping_interval)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"[EventSubscriber] Keepalive failed: {e}")
                await ws.close()
                return

    async def _stop_keepalive(self):
        task = self._keepalive_task
        self._keepalive_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    # ==========================================
    # MESSAGES
    # ==========================================

    async def handle_message(self, raw):
        """Handle incoming WebSocket message"""
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"[EventSubscriber] Unreadable message dropped: {e}")
            self.events_dropped += 1
            return

        if not isinstance(data, dict):
            logger.warning(f"[EventSubscriber] Non-object message dropped: {str(raw)[:80]}")
            self.events_dropped += 1
            return
        if data.get("method") != "eth_subscription":
            return
        params = data.get("params") or {}
        if not isinstance(params, dict):
            logger.warning("[EventSubscriber] Notification without params object dropped")
            self.events_dropped += 1
            return
        if self.subscription_id and params.get("subscription") not in (None, self.subscription_id):
            return

        match = self.match_log(params.get("result") or {})
        if match is None or self.on_deposit is None:
            return

        try:
            await self.on_deposit(match)
        except Exception as e:
            logger.error(f"[EventSubscriber] Deposit handler error for {match.user_id}: {e}")

    def match_log(self, log: dict) -> Optional[DepositMatch]:
        """Decode a Transfer log and match its recipient against the snapshot"""
        self.events_seen += 1
        try:
            event = ChainLogEvent.from_rpc(log)
            if event.contract_address and event.contract_address != self.token_address:
                return None
            if not event.topics or event.topics[0].lower() != TRANSFER_EVENT_TOPIC:
                return None
            recipient, amount = decode_transfer(event)
        except (DecodeError, ValueError, TypeError, AttributeError) as e:
            self.events_dropped += 1
            logger.warning(f"[EventSubscriber] Malformed log dropped: {e}")
            return None

        if amount <= self.min_amount:
            # zero-value and sub-cent transfers never count as deposits
            self.events_dropped += 1
            logger.debug(f"[EventSubscriber] Dust transfer ignored: {amount} USDC to {recipient[:10]}...")
            return None

        wallet = self.watch_set.match(recipient)
        if wallet is None:
            return None

        self.deposits_matched += 1
        logger.info(
            f"[EventSubscriber] USDC deposit detected: {amount} USDC to {recipient[:10]}... "
            f"({(event.transaction_hash or '')[:10]}...)"
        )
        return DepositMatch(wallet=wallet, amount=amount, tx_hash=event.transaction_hash or None)
