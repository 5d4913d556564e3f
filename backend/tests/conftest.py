"""
Shared fixtures and fakes for the deposit monitor tests.

Run: python -m pytest tests/ -v --tb=short
"""

import asyncio
import json
from decimal import Decimal
from typing import Dict, List

import pytest
from unittest.mock import MagicMock
from websockets.exceptions import ConnectionClosed

from agents.errors import SubscriptionError
from agents.monitoring_types import DeployResult, Venue, WalletRecord, WatchSet
from agents.watch_set import WatchSetLoader
from services.wallet_directory import WalletDirectory
from services.window_store import MonitoringWindowStore


USDC = "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

ALICE_WALLET = "0x1111111111111111111111111111111111111111"
BOB_WALLET = "0x2222222222222222222222222222222222222222"


# =============================================================================
# HELPERS
# =============================================================================

def address_topic(address: str) -> str:
    return "0x" + "0" * 24 + address[2:].lower()


def transfer_log(to: str, raw_amount: int, tx_hash: str = "0xabc123", contract: str = USDC) -> dict:
    """eth_subscription `result` for a USDC Transfer"""
    return {
        "address": contract,
        "topics": [TRANSFER_TOPIC, address_topic("0x" + "9" * 40), address_topic(to)],
        "data": hex(raw_amount),
        "transactionHash": tx_hash,
        "blockNumber": "0x10",
    }


def subscription_message(log: dict, subscription: str = "0xsub") -> str:
    return json.dumps({
        "jsonrpc": "2.0",
        "method": "eth_subscription",
        "params": {"subscription": subscription, "result": log},
    })


async def wait_until(condition, timeout: float = 1.0, step: float = 0.01):
    """Poll until condition() is truthy or fail the test"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("❌ Condition not met before timeout")
        await asyncio.sleep(step)


def offline_db():
    db = MagicMock()
    db.is_available = False
    return db


# =============================================================================
# FAKES
# =============================================================================

class FakeBalanceReader:
    def __init__(self, balances: Dict[str, Decimal] = None):
        self.balances = {k.lower(): Decimal(str(v)) for k, v in (balances or {}).items()}
        self.calls: List[str] = []

    def set(self, address: str, amount):
        self.balances[address.lower()] = Decimal(str(amount))

    async def get_balance(self, address: str) -> Decimal:
        self.calls.append(address)
        return self.balances.get(address.lower(), Decimal("0"))


class FakeNotifier:
    def __init__(self):
        self.messages: List[tuple] = []

    async def send(self, user_id: str, message: str) -> None:
        self.messages.append((user_id, message))


class FakeYieldSource:
    def __init__(self, venues=None):
        self.venues = venues if venues is not None else [
            Venue("Aave", 5.69), Venue("Fluid", 7.72), Venue("Compound", 7.65)
        ]

    async def list_venues(self):
        return list(self.venues)


class FakeAdapter:
    def __init__(self, result: DeployResult = None):
        self.result = result or DeployResult(success=True, tx_hash="0xdeploy")
        self.calls: List[tuple] = []

    async def deploy(self, user_id, venue, amount):
        self.calls.append((user_id, venue, amount))
        return self.result


class FakeSubscriber:
    """Stands in for EventSubscriber inside the lifecycle controller"""

    def __init__(self, fail_on_connect: bool = False):
        self.watch_set = WatchSet()
        self.on_deposit = None
        self.fail_on_connect = fail_on_connect
        self.is_live = False
        self.runs = 0
        self.closes = 0
        self.events_seen = 0
        self.events_dropped = 0
        self._stop = None
        self._fail = False

    def update_watch_set(self, snapshot):
        self.watch_set = snapshot

    async def check_endpoint(self):
        pass

    async def run(self):
        self.runs += 1
        if self.fail_on_connect:
            raise SubscriptionError("connection refused")
        self._stop = asyncio.Event()
        self._fail = False
        self.is_live = True
        try:
            await self._stop.wait()
        finally:
            self.is_live = False
        if self._fail:
            raise SubscriptionError("Connection dropped")

    async def close(self):
        self.closes += 1
        if self._stop is not None:
            self._stop.set()

    def drop(self):
        self._fail = True
        self._stop.set()


_CLOSED = object()
_DROPPED = object()


class FakeWebSocket:
    """Minimal websockets client connection: queue-fed, async-iterable"""

    def __init__(self, confirm: bool = True, subscription_id: str = "0xsub"):
        self.sent: List[dict] = []
        self.closed = False
        self.pings = 0
        self._queue: asyncio.Queue = asyncio.Queue()
        if confirm:
            self.feed(json.dumps({"jsonrpc": "2.0", "id": 1, "result": subscription_id}))

    def feed(self, raw):
        self._queue.put_nowait(raw)

    def drop(self):
        self._queue.put_nowait(_DROPPED)

    async def send(self, raw):
        self.sent.append(json.loads(raw))

    async def recv(self):
        item = await self._queue.get()
        if item is _CLOSED or item is _DROPPED:
            raise ConnectionClosed(None, None)
        return item

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        if item is _DROPPED:
            raise ConnectionClosed(None, None)
        return item

    async def ping(self):
        self.pings += 1
        pong = asyncio.get_running_loop().create_future()
        pong.set_result(0.0)
        return pong

    async def close(self):
        if not self.closed:
            self.closed = True
            self._queue.put_nowait(_CLOSED)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.closed = True
        return False


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def store():
    return MonitoringWindowStore(db=offline_db())


@pytest.fixture
def directory():
    directory = WalletDirectory(db=offline_db())
    directory.register(WalletRecord(user_id="alice", address=ALICE_WALLET, display_name="Alice"))
    directory.register(WalletRecord(user_id="bob", address=BOB_WALLET, display_name="Bob"))
    return directory


@pytest.fixture
def loader(directory):
    return WatchSetLoader(directory)


@pytest.fixture
def balances():
    return FakeBalanceReader()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def adapter():
    return FakeAdapter()
