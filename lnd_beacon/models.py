"""Immutable records mirrored from the payment daemon and the derived snapshot."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum

PUBLIC_KEY_LENGTH = 33


@dataclass(frozen=True)
class PublicKey:
    data: bytes

    def __post_init__(self) -> None:
        if len(self.data) != PUBLIC_KEY_LENGTH:
            raise ValueError(
                f"public key must be {PUBLIC_KEY_LENGTH} bytes, got {len(self.data)}"
            )

    @classmethod
    def from_hex(cls, value: str) -> "PublicKey":
        """Parse a hex encoded key. Raises ValueError on bad hex or length."""
        if not isinstance(value, str):
            raise ValueError("public key must be a hex string")
        return cls(bytes.fromhex(value.strip()))

    @property
    def hex_encoded(self) -> str:
        return self.data.hex()

    def short(self, length: int = 12) -> str:
        return self.hex_encoded[:length]

    def __str__(self) -> str:
        return self.hex_encoded


class ChannelState(str, Enum):
    OPENING = "opening"
    ACTIVE = "active"
    CLOSING = "closing"


class ConnectionStatus(str, Enum):
    OFFLINE = "Offline"
    CONNECTING = "Connecting"
    ONLINE = "Online"
    CLOSING = "Closing"


class InvoiceState(str, Enum):
    PENDING = "pending"
    SETTLED = "settled"


class Unit(str, Enum):
    NATIVE = "native"
    FIAT = "fiat"


@dataclass(frozen=True)
class CurrencyAmount:
    """Either native Tokens (int) or fiat cents (Decimal)."""

    unit: Unit
    value: int | Decimal

    @classmethod
    def native(cls, tokens: int) -> "CurrencyAmount":
        return cls(Unit.NATIVE, int(tokens))

    @classmethod
    def fiat(cls, cents: int | Decimal) -> "CurrencyAmount":
        return cls(Unit.FIAT, Decimal(cents))


@dataclass(frozen=True)
class Peer:
    public_key: PublicKey
    host: str
    ping_ms: int | None = None


@dataclass(frozen=True)
class Channel:
    id: str
    partner_public_key: PublicKey
    balance: int
    state: ChannelState


@dataclass(frozen=True)
class Connection:
    """Peers and channels sharing one counterparty key."""

    public_key: PublicKey
    peers: tuple[Peer, ...] = ()
    channels: tuple[Channel, ...] = ()

    @property
    def balance(self) -> int:
        return sum(channel.balance for channel in self.channels)

    @property
    def best_ping(self) -> int | None:
        pings = [peer.ping_ms for peer in self.peers if peer.ping_ms is not None]
        return min(pings) if pings else None

    @property
    def channel_states(self) -> frozenset[ChannelState]:
        return frozenset(channel.state for channel in self.channels)


@dataclass(frozen=True)
class Invoice:
    id: str
    payment_request: str
    created_at: datetime
    tokens: int
    memo: str | None = None


@dataclass(frozen=True)
class PaymentRequest:
    """A decoded request someone else created for us to pay."""

    payment_request: str
    id: str
    destination: PublicKey
    tokens: int


@dataclass(frozen=True)
class Transaction:
    id: str
    tokens: int
    created_at: datetime


@dataclass(frozen=True)
class ChainTransaction(Transaction):
    chain_address: str


@dataclass(frozen=True)
class SentTransaction(Transaction):
    to: str

    @property
    def amount(self) -> int:
        return self.tokens


@dataclass(frozen=True)
class ReceivedTransaction(Transaction):
    memo: str
    confirmed: bool


@dataclass(frozen=True)
class Wallet:
    transactions: tuple[Transaction, ...] = ()
    cents_per_coin: int | None = None


@dataclass(frozen=True)
class ResolvedConnection:
    connection: Connection
    status: ConnectionStatus


@dataclass(frozen=True)
class Snapshot:
    """One fully reconciled refresh cycle. Replaced wholesale, never patched."""

    sequence: int
    refreshed_at: datetime
    connections: tuple[ResolvedConnection, ...] = ()
    outstanding_invoices: tuple[Invoice, ...] = ()
    settled_invoices: tuple[tuple[Invoice, ReceivedTransaction], ...] = ()
    wallet: Wallet = field(default_factory=Wallet)

    @property
    def settled_invoice(self) -> tuple[Invoice, ReceivedTransaction] | None:
        return self.settled_invoices[0] if self.settled_invoices else None

    @property
    def balance(self) -> int:
        return sum(item.connection.balance for item in self.connections)

    def find_connection(self, public_key: PublicKey) -> Connection | None:
        for item in self.connections:
            if item.connection.public_key == public_key:
                return item.connection
        return None
