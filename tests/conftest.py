"""Shared fixtures: daemon record builders and an in-memory gateway."""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from typing import Any

import pytest

from lnd_beacon.errors import DaemonError
from lnd_beacon.models import (
    Channel,
    ChannelState,
    Connection,
    Invoice,
    PaymentRequest,
    Peer,
    PublicKey,
    ReceivedTransaction,
    Transaction,
)

KEY_A = "02" + "aa" * 32
KEY_B = "03" + "bb" * 32
KEY_C = "02" + "cc" * 32

CREATED_AT = datetime(2017, 5, 6, 12, 0, tzinfo=timezone.utc)


def pk(hex_key: str) -> PublicKey:
    return PublicKey.from_hex(hex_key)


def peer(hex_key: str = KEY_A, host: str = "10.0.0.1:9735", ping_ms: int | None = None) -> Peer:
    return Peer(pk(hex_key), host, ping_ms)


def channel(
    channel_id: str = "c1",
    state: ChannelState = ChannelState.ACTIVE,
    balance: int = 0,
    hex_key: str = KEY_A,
) -> Channel:
    return Channel(channel_id, pk(hex_key), balance, state)


def connection(hex_key: str = KEY_A, peers=(), channels=()) -> Connection:
    return Connection(pk(hex_key), tuple(peers), tuple(channels))


def invoice(invoice_id: str = "inv-1", tokens: int = 1000, memo: str | None = "coffee") -> Invoice:
    return Invoice(invoice_id, f"lntb{invoice_id}", CREATED_AT, tokens, memo)


def received(tx_id: str, tokens: int = 1000, confirmed: bool = True, memo: str = "coffee") -> ReceivedTransaction:
    return ReceivedTransaction(tx_id, tokens, CREATED_AT, memo, confirmed)


def as_body(data: Any) -> bytes:
    return json.dumps(data).encode("utf-8")


class FakeGateway:
    """In-memory stand-in for DaemonGateway."""

    def __init__(self) -> None:
        self.connections: list[Connection] = []
        self.peers: list[Peer] = []
        self.transactions: list[Transaction] = []
        self.fail_with: DaemonError | None = None
        self.close_failures: dict[str, DaemonError] = {}
        self.calls: list[tuple] = []
        self.invoice_counter = 0
        self._lock = threading.Lock()

    def _record(self, *call: Any) -> None:
        with self._lock:
            self.calls.append(call)

    def list_connections(self) -> list[Connection]:
        self._record("list_connections")
        if self.fail_with:
            raise self.fail_with
        return list(self.connections)

    def list_peers(self) -> list[Peer]:
        self._record("list_peers")
        return list(self.peers)

    def list_transactions(self) -> list[Transaction]:
        self._record("list_transactions")
        return list(self.transactions)

    def add_peer(self, host: str, public_key: Any) -> None:
        self._record("add_peer", host, public_key)

    def open_channel(self, partner_public_key: PublicKey) -> None:
        self._record("open_channel", partner_public_key)

    def close_channel(self, channel_id: str) -> None:
        self._record("close_channel", channel_id)
        if channel_id in self.close_failures:
            raise self.close_failures[channel_id]

    def create_invoice(self, tokens: int, memo: str | None = None) -> Invoice:
        self._record("create_invoice", tokens, memo)
        self.invoice_counter += 1
        return invoice(f"inv-{self.invoice_counter}", tokens, memo)

    def decode_payment_request(self, payment_request: str) -> PaymentRequest:
        self._record("decode_payment_request", payment_request)
        return PaymentRequest(payment_request, "req-1", pk(KEY_B), 2500)

    def send_payment(self, payment_request: str) -> None:
        self._record("send_payment", payment_request)

    def names(self) -> list[str]:
        return [call[0] for call in self.calls]


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()
