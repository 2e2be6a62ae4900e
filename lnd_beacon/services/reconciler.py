"""Refresh cycle that turns daemon records into one published Snapshot.

All state lives on the event loop thread. Daemon calls are blocking
``requests`` calls pushed to an executor; their results are applied after
the ``await`` resumes on the loop, so only one writer ever touches the
snapshot or the invoice set.
"""

import asyncio
import functools
import logging
from collections.abc import Callable, Iterable
from concurrent.futures import Executor
from datetime import datetime, timezone
from typing import Any, TypeVar

from lnd_beacon.errors import DaemonError, ValidationFailure
from lnd_beacon.models import (
    Channel,
    Connection,
    Invoice,
    PaymentRequest,
    Peer,
    PublicKey,
    ResolvedConnection,
    Snapshot,
    Transaction,
    Wallet,
)
from lnd_beacon.services.gateway import DaemonGateway
from lnd_beacon.services.invoices import InvoiceLifecycleManager
from lnd_beacon.services.pricing import PricingClient
from lnd_beacon.services.status import resolve

logger = logging.getLogger(__name__)

T = TypeVar("T")
Subscriber = Callable[[Snapshot], None]


def merge_connections(
    connections: Iterable[Connection], peers: Iterable[Peer]
) -> list[Connection]:
    """Group connection records and the peer feed by public key.

    Daemon order is kept; keys only seen in the peer feed are appended in feed order.
    """
    order: list[PublicKey] = []
    grouped_peers: dict[PublicKey, dict[str, Peer]] = {}
    grouped_channels: dict[PublicKey, dict[str, Channel]] = {}

    def _slot(key: PublicKey) -> None:
        if key not in grouped_peers:
            order.append(key)
            grouped_peers[key] = {}
            grouped_channels[key] = {}

    for connection in connections:
        _slot(connection.public_key)
        for peer in connection.peers:
            grouped_peers[connection.public_key][peer.host] = peer
        for channel in connection.channels:
            grouped_channels[connection.public_key][channel.id] = channel
    # The peer feed is fresher than the embedded copies
    for peer in peers:
        _slot(peer.public_key)
        grouped_peers[peer.public_key][peer.host] = peer

    return [
        Connection(
            public_key=key,
            peers=tuple(grouped_peers[key].values()),
            channels=tuple(grouped_channels[key].values()),
        )
        for key in order
    ]


class WalletReconciler:
    def __init__(
        self,
        gateway: DaemonGateway,
        pricing: PricingClient | None = None,
        invoices: InvoiceLifecycleManager | None = None,
        executor: Executor | None = None,
    ) -> None:
        self.gateway = gateway
        self.pricing = pricing
        self.invoices = invoices or InvoiceLifecycleManager()
        self._executor = executor
        self._subscribers: list[Subscriber] = []
        self._snapshot: Snapshot | None = None
        self._started = 0
        self._published = 0
        self.last_error: DaemonError | None = None

    @property
    def snapshot(self) -> Snapshot | None:
        return self._snapshot

    # --- subscriptions (event loop thread only) ---

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback`` for every published snapshot. Returns an unsubscribe function."""
        if callback not in self._subscribers:
            self._subscribers.append(callback)
        return functools.partial(self.unsubscribe, callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def _publish(self, snapshot: Snapshot) -> None:
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                logger.exception("Snapshot subscriber %r failed", callback)

    # --- refresh cycle ---

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        return await asyncio.get_event_loop().run_in_executor(
            self._executor, functools.partial(func, *args)
        )

    async def _fetch_cents_per_coin(self) -> int | None:
        if self.pricing is None or not self.pricing.enabled:
            return None
        return await self._run(self.pricing.fetch_cents_per_coin)

    def _is_stale(self, sequence: int) -> bool:
        return sequence < self._published

    async def refresh(self, reason: str = "timer") -> Snapshot | None:
        """Run one reconciliation cycle.

        Returns the published snapshot, or None when a newer cycle already
        published first. Raises TransportFailure/DecodeFailure when a fetch
        fails; the previous snapshot is kept and nothing is published.
        """
        self._started += 1
        sequence = self._started
        logger.debug("Refresh %d started (%s)", sequence, reason)
        try:
            connections, peers, transactions, cents_per_coin = await asyncio.gather(
                self._run(self.gateway.list_connections),
                self._run(self.gateway.list_peers),
                self._run(self.gateway.list_transactions),
                self._fetch_cents_per_coin(),
            )
        except DaemonError as exc:
            if self._is_stale(sequence):
                logger.debug("Discarding failed stale refresh %d: %s", sequence, exc)
                return None
            logger.warning("Refresh %d (%s) failed: %s", sequence, reason, exc)
            self.last_error = exc
            raise

        if self._is_stale(sequence):
            logger.debug(
                "Discarding stale refresh %d, %d already published", sequence, self._published
            )
            return None

        snapshot = self._build_snapshot(sequence, connections, peers, transactions, cents_per_coin)
        self._snapshot = snapshot
        self._published = sequence
        self.last_error = None
        self._publish(snapshot)
        return snapshot

    def _build_snapshot(
        self,
        sequence: int,
        connections: list[Connection],
        peers: list[Peer],
        transactions: list[Transaction],
        cents_per_coin: int | None,
    ) -> Snapshot:
        merged = merge_connections(connections, peers)
        settled = self.invoices.reconcile(transactions)
        return Snapshot(
            sequence=sequence,
            refreshed_at=datetime.now(timezone.utc),
            connections=tuple(ResolvedConnection(c, resolve(c)) for c in merged),
            outstanding_invoices=self.invoices.pending,
            settled_invoices=settled,
            wallet=Wallet(transactions=tuple(transactions), cents_per_coin=cents_per_coin),
        )

    async def _refresh_after(self, reason: str) -> None:
        # The action itself succeeded; a failed follow-up refresh stays in last_error.
        try:
            await self.refresh(reason)
        except DaemonError:
            pass

    async def poll(self, interval: float, stop: asyncio.Event) -> None:
        """Refresh every ``interval`` seconds until ``stop`` is set."""
        while not stop.is_set():
            try:
                await self.refresh("timer")
            except DaemonError:
                pass
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue

    # --- operator actions ---

    def _connection(self, public_key: PublicKey) -> Connection:
        connection = self._snapshot.find_connection(public_key) if self._snapshot else None
        if connection is None:
            raise ValidationFailure(f"Unknown connection {public_key.short()}")
        return connection

    async def add_peer(self, host: str, public_key: PublicKey | str) -> None:
        await self._run(self.gateway.add_peer, host, public_key)
        await self._refresh_after("add peer")

    async def open_channel(self, partner_public_key: PublicKey) -> None:
        await self._run(self.gateway.open_channel, partner_public_key)
        await self._refresh_after("open channel")

    async def close_channel(self, channel_id: str) -> None:
        await self._run(self.gateway.close_channel, channel_id)
        await self._refresh_after("close channel")

    async def increase_channel_balance(self, public_key: PublicKey) -> None:
        connection = self._connection(public_key)
        if not connection.peers:
            raise ValidationFailure("Connect to the peer before opening a channel")
        await self.open_channel(public_key)

    async def decrease_channel_balance(self, public_key: PublicKey) -> dict[str, DaemonError | None]:
        """Close every channel with ``public_key``, best effort.

        Each channel is attempted regardless of the others; the result maps
        channel id to None (accepted) or the failure. One refresh follows if
        any close was accepted.
        """
        connection = self._connection(public_key)
        if not connection.channels:
            raise ValidationFailure("Connection has no channels to close")
        results: dict[str, DaemonError | None] = {}
        for channel in connection.channels:
            try:
                await self._run(self.gateway.close_channel, channel.id)
            except DaemonError as exc:
                logger.warning("Closing channel %s failed: %s", channel.id, exc)
                results[channel.id] = exc
            else:
                results[channel.id] = None
        if any(error is None for error in results.values()):
            await self._refresh_after("close channels")
        return results

    async def create_invoice(self, tokens: int, memo: str | None = None) -> Invoice:
        if isinstance(tokens, bool) or not isinstance(tokens, int) or tokens <= 0:
            raise ValidationFailure("Invoice amount must be a positive number of tokens")
        invoice = await self._run(self.gateway.create_invoice, tokens, memo)
        self.invoices.track(invoice)
        await self._refresh_after("create invoice")
        return invoice

    async def decode_payment_request(self, payment_request: str) -> PaymentRequest:
        return await self._run(self.gateway.decode_payment_request, payment_request)

    async def send_payment(self, payment_request: str) -> None:
        await self._run(self.gateway.send_payment, payment_request)
        await self._refresh_after("send payment")
