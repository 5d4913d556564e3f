"""
Deposit Monitor Data Model
Monitoring windows, watched wallets, decoded deposits and pending investments
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_DOWN
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple


TWO_PLACES = Decimal("0.01")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_amount(value: Any) -> Decimal:
    """Normalize a USDC amount to a 2-decimal Decimal (truncating)"""
    if isinstance(value, Decimal):
        amount = value
    else:
        amount = Decimal(str(value))
    return amount.quantize(TWO_PLACES, rounding=ROUND_DOWN)


class MonitoringContext(Enum):
    ONBOARDING = "onboarding"
    BALANCE_CHECK = "balance_check"
    PENDING_INVESTMENT = "pending_investment"


class ConnectionState(Enum):
    IDLE = "idle"
    ACTIVE = "active"


class CheckOutcome(Enum):
    READY = "ready"                # balance covers the pending amount
    PARTIAL = "partial"            # new funds, still short
    NO_NEW_FUNDS = "no_new_funds"  # nothing changed since last check
    FOUND = "found"                # onboarding: funds present
    NOT_FOUND = "not_found"        # onboarding: nothing yet


@dataclass
class MonitoringWindow:
    """Time-boxed expectation that a user's wallet receives a deposit"""
    user_id: str
    context: MonitoringContext
    expires_at: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)
    stopped: bool = False
    started_at: datetime = field(default_factory=utc_now)
    last_seen_balance: Optional[Decimal] = None

    def is_active(self, now: datetime) -> bool:
        return not self.stopped and self.expires_at > now

    def to_row(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "context": self.context.value,
            "expires_at": self.expires_at.isoformat(),
            "metadata": self.metadata,
            "stopped": self.stopped,
            "started_at": self.started_at.isoformat(),
            "last_seen_balance": (
                str(self.last_seen_balance) if self.last_seen_balance is not None else None
            ),
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "MonitoringWindow":
        balance = row.get("last_seen_balance")
        return cls(
            user_id=str(row["user_id"]),
            context=MonitoringContext(row["context"]),
            expires_at=_parse_ts(row["expires_at"]),
            metadata=row.get("metadata") or {},
            stopped=bool(row.get("stopped", False)),
            started_at=_parse_ts(row.get("started_at")) if row.get("started_at") else utc_now(),
            last_seen_balance=Decimal(str(balance)) if balance is not None else None,
        )


@dataclass(frozen=True)
class WatchedWallet:
    address: str  # lowercase settlement address
    user_id: str
    display_name: str = "there"


@dataclass(frozen=True)
class WatchSet:
    """
    Immutable snapshot of the wallets being watched.

    Built fresh every refresh cycle and swapped by reference, so the
    event-matching path never sees a half-updated set.
    """
    wallets: Tuple[WatchedWallet, ...] = ()
    by_address: Dict[str, WatchedWallet] = field(default_factory=dict, compare=False)

    @classmethod
    def build(cls, wallets: Iterable[WatchedWallet]) -> "WatchSet":
        ordered = tuple(wallets)
        index: Dict[str, WatchedWallet] = {}
        for wallet in ordered:
            index.setdefault(wallet.address.lower(), wallet)
        return cls(wallets=ordered, by_address=index)

    @property
    def addresses(self) -> FrozenSet[str]:
        return frozenset(self.by_address)

    def match(self, address: str) -> Optional[WatchedWallet]:
        if not address:
            return None
        return self.by_address.get(address.lower())

    def __len__(self) -> int:
        return len(self.by_address)

    def __bool__(self) -> bool:
        return bool(self.by_address)


@dataclass(frozen=True)
class ChainLogEvent:
    contract_address: str
    topics: Tuple[str, ...]
    data: str
    transaction_hash: str
    block_number: Optional[int] = None

    @classmethod
    def from_rpc(cls, log: Dict[str, Any]) -> "ChainLogEvent":
        block = log.get("blockNumber")
        if isinstance(block, str):
            block = int(block, 16)
        return cls(
            contract_address=(log.get("address") or "").lower(),
            topics=tuple(log.get("topics") or ()),
            data=log.get("data") or "0x",
            transaction_hash=log.get("transactionHash") or "",
            block_number=block,
        )


@dataclass(frozen=True)
class DepositMatch:
    wallet: WatchedWallet
    amount: Decimal
    tx_hash: Optional[str] = None

    @property
    def user_id(self) -> str:
        return self.wallet.user_id


@dataclass
class PendingTransaction:
    """An investment the user asked for but could not fund yet"""
    user_id: str
    amount: Decimal
    protocol_hint: str
    pool_id: str = ""
    apy: float = 0.0
    shortage: Decimal = Decimal("0")
    expires_at: datetime = field(default_factory=utc_now)
    last_balance: Decimal = Decimal("0")

    def is_live(self, now: datetime) -> bool:
        return self.expires_at > now

    def to_row(self) -> Dict[str, Any]:
        row = asdict(self)
        row["amount"] = str(self.amount)
        row["shortage"] = str(self.shortage)
        row["last_balance"] = str(self.last_balance)
        row["expires_at"] = self.expires_at.isoformat()
        return row

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "PendingTransaction":
        return cls(
            user_id=str(row["user_id"]),
            amount=Decimal(str(row["amount"])),
            protocol_hint=row.get("protocol_hint") or "",
            pool_id=row.get("pool_id") or "",
            apy=float(row.get("apy") or 0),
            shortage=Decimal(str(row.get("shortage") or "0")),
            expires_at=_parse_ts(row["expires_at"]),
            last_balance=Decimal(str(row.get("last_balance") or "0")),
        )


@dataclass(frozen=True)
class Venue:
    name: str
    apy: float
    pool_id: str = ""


@dataclass(frozen=True)
class DeploymentTarget:
    protocol_name: str
    apy: float
    deploy_capability: str


@dataclass
class DeployResult:
    success: bool
    tx_hash: Optional[str] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class WalletRecord:
    """User wallet as known to the account store"""
    user_id: str
    address: str
    owner_address: Optional[str] = None
    settlement_address: Optional[str] = None
    display_name: str = "there"


@dataclass
class CheckResult:
    outcome: CheckOutcome
    balance: Decimal
    message: str
    shortage: Decimal = Decimal("0")
    pending: Optional[PendingTransaction] = None
    actions: List[str] = field(default_factory=list)


def ttl_deadline(now: datetime, ttl_minutes: float) -> datetime:
    return now + timedelta(minutes=ttl_minutes)


def _parse_ts(value: Any) -> datetime:
    """ISO timestamp or datetime -> aware UTC datetime (naive values are taken as UTC)"""
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)
