import json
import logging
from datetime import datetime, timezone
from typing import Any, Protocol
from urllib.parse import quote

from lnd_beacon.errors import DecodeFailure, ValidationFailure
from lnd_beacon.models import (
    Channel,
    ChannelState,
    ChainTransaction,
    Connection,
    Invoice,
    PaymentRequest,
    Peer,
    PublicKey,
    ReceivedTransaction,
    SentTransaction,
    Transaction,
)

logger = logging.getLogger(__name__)

CONNECTIONS_PATH = "/v0/connections/"
PEERS_PATH = "/v0/peers/"
CHANNELS_PATH = "/v0/channels/"
INVOICES_PATH = "/v0/invoices/"
PAYMENTS_PATH = "/v0/payments/"
PAYMENT_REQUEST_PATH = "/v0/payment_request/"
TRANSACTIONS_PATH = "/v0/transactions/"


class Transport(Protocol):
    def fetch(self, path: str) -> bytes: ...

    def send(self, path: str, payload: dict[str, Any]) -> bytes: ...

    def delete(self, path: str) -> bytes: ...


# --- record decoding ---


def _load_json(body: bytes, what: str) -> Any:
    try:
        return json.loads(body)
    except (TypeError, ValueError, UnicodeDecodeError) as exc:
        raise DecodeFailure(f"{what}: response is not valid JSON") from exc


def _load_json_list(body: bytes, what: str) -> list[dict[str, Any]]:
    data = _load_json(body, what)
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise DecodeFailure(f"{what}: expected an array of records")
    return data


def _require(record: dict[str, Any], key: str, what: str) -> Any:
    if key not in record or record[key] is None:
        raise DecodeFailure(f"{what}: missing required field '{key}'")
    return record[key]


def _parse_public_key(value: Any, what: str) -> PublicKey:
    try:
        return PublicKey.from_hex(value)
    except ValueError as exc:
        raise DecodeFailure(f"{what}: invalid public key {value!r}") from exc


def _parse_tokens(value: Any, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise DecodeFailure(f"{what}: tokens must be a non-negative integer, got {value!r}")
    return value


def _parse_timestamp(value: Any, what: str) -> datetime:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError as exc:
            raise DecodeFailure(f"{what}: invalid timestamp {value!r}") from exc
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise DecodeFailure(f"{what}: invalid timestamp {value!r}")


def decode_peer(record: dict[str, Any]) -> Peer:
    ping = record.get("ping_ms")
    if ping is not None and (isinstance(ping, bool) or not isinstance(ping, (int, float))):
        raise DecodeFailure(f"peer: invalid ping_ms {ping!r}")
    return Peer(
        public_key=_parse_public_key(_require(record, "public_key", "peer"), "peer"),
        host=str(_require(record, "host", "peer")),
        ping_ms=int(ping) if ping is not None else None,
    )


def decode_channel(record: dict[str, Any], partner: PublicKey | None = None) -> Channel:
    state = _require(record, "state", "channel")
    try:
        channel_state = ChannelState(state)
    except ValueError as exc:
        raise DecodeFailure(f"channel: unknown state {state!r}") from exc
    partner_hex = record.get("partner_public_key")
    if partner_hex is not None:
        partner = _parse_public_key(partner_hex, "channel")
    if partner is None:
        raise DecodeFailure("channel: missing required field 'partner_public_key'")
    return Channel(
        id=str(_require(record, "id", "channel")),
        partner_public_key=partner,
        balance=_parse_tokens(_require(record, "balance", "channel"), "channel"),
        state=channel_state,
    )


def decode_connection(record: dict[str, Any]) -> Connection:
    public_key = _parse_public_key(_require(record, "public_key", "connection"), "connection")
    channels = record.get("channels") or []
    peers = record.get("peers") or []
    if not isinstance(channels, list) or not isinstance(peers, list):
        raise DecodeFailure("connection: channels and peers must be arrays")
    return Connection(
        public_key=public_key,
        peers=tuple(decode_peer(peer) for peer in peers),
        channels=tuple(decode_channel(channel, public_key) for channel in channels),
    )


def decode_transaction(record: dict[str, Any]) -> Transaction:
    """Pick exactly one variant from the discriminator fields present."""
    tx_id = str(_require(record, "id", "transaction"))
    tokens = _parse_tokens(_require(record, "tokens", "transaction"), "transaction")
    created_at = _parse_timestamp(_require(record, "created_at", "transaction"), "transaction")
    if record.get("chain_address") is not None:
        return ChainTransaction(tx_id, tokens, created_at, str(record["chain_address"]))
    if record.get("destination") is not None:
        return SentTransaction(tx_id, tokens, created_at, str(record["destination"]))
    if "memo" in record or "confirmed" in record:
        confirmed = record.get("confirmed", False)
        if not isinstance(confirmed, bool):
            raise DecodeFailure(f"transaction: confirmed must be a boolean, got {confirmed!r}")
        return ReceivedTransaction(tx_id, tokens, created_at, str(record.get("memo") or ""), confirmed)
    raise DecodeFailure(f"transaction {tx_id}: no known variant discriminator")


def decode_invoice(record: dict[str, Any], tokens: int, memo: str | None) -> Invoice:
    created_at = record.get("created_at")
    return Invoice(
        id=str(_require(record, "id", "invoice")),
        payment_request=str(_require(record, "payment_request", "invoice")),
        created_at=(
            _parse_timestamp(created_at, "invoice")
            if created_at is not None
            else datetime.now(timezone.utc)
        ),
        tokens=_parse_tokens(record.get("tokens", tokens), "invoice"),
        memo=record.get("memo", memo),
    )


# --- gateway ---


class DaemonGateway:
    """One method per daemon capability.

    Holds no state beyond the transport. Mutating calls only report that the
    daemon accepted the request; the resulting state shows up on a later poll.
    Nothing is retried here.
    """

    def __init__(self, transport: Transport) -> None:
        self.transport = transport

    def list_connections(self) -> list[Connection]:
        body = self.transport.fetch(CONNECTIONS_PATH)
        return [decode_connection(record) for record in _load_json_list(body, "connections")]

    def list_peers(self) -> list[Peer]:
        body = self.transport.fetch(PEERS_PATH)
        return [decode_peer(record) for record in _load_json_list(body, "peers")]

    def list_transactions(self) -> list[Transaction]:
        body = self.transport.fetch(TRANSACTIONS_PATH)
        return [decode_transaction(record) for record in _load_json_list(body, "transactions")]

    def add_peer(self, host: str, public_key: PublicKey | str) -> None:
        host = (host or "").strip()
        if not host:
            raise ValidationFailure("Peer host is required")
        if not isinstance(public_key, PublicKey):
            try:
                public_key = PublicKey.from_hex(public_key)
            except ValueError as exc:
                raise ValidationFailure(f"Invalid public key: {exc}") from exc
        logger.info("Adding peer %s at %s", public_key.short(), host)
        self.transport.send(PEERS_PATH, {"host": host, "public_key": public_key.hex_encoded})

    def open_channel(self, partner_public_key: PublicKey) -> None:
        logger.info("Opening channel with %s", partner_public_key.short())
        self.transport.send(
            CHANNELS_PATH, {"partner_public_key": partner_public_key.hex_encoded}
        )

    def close_channel(self, channel_id: str) -> None:
        if not channel_id:
            raise ValidationFailure("Channel id is required")
        logger.info("Closing channel %s", channel_id)
        self.transport.delete(f"{CHANNELS_PATH}{quote(str(channel_id), safe='')}")

    def create_invoice(self, tokens: int, memo: str | None = None) -> Invoice:
        if isinstance(tokens, bool) or not isinstance(tokens, int) or tokens <= 0:
            raise ValidationFailure("Invoice amount must be a positive number of tokens")
        memo = memo or ""
        logger.info("Creating invoice for %d tokens", tokens)
        body = self.transport.send(INVOICES_PATH, {"memo": memo, "tokens": tokens})
        record = _load_json(body, "invoice")
        if not isinstance(record, dict):
            raise DecodeFailure("invoice: expected a JSON object")
        return decode_invoice(record, tokens, memo or None)

    def decode_payment_request(self, payment_request: str) -> PaymentRequest:
        payment_request = (payment_request or "").strip()
        if not payment_request:
            raise ValidationFailure("Payment request is required")
        body = self.transport.fetch(f"{PAYMENT_REQUEST_PATH}{quote(payment_request, safe='')}")
        record = _load_json(body, "payment request")
        if not isinstance(record, dict):
            raise DecodeFailure("payment request: expected a JSON object")
        return PaymentRequest(
            payment_request=payment_request,
            id=str(_require(record, "id", "payment request")),
            destination=_parse_public_key(
                _require(record, "destination", "payment request"), "payment request"
            ),
            tokens=_parse_tokens(_require(record, "tokens", "payment request"), "payment request"),
        )

    def send_payment(self, payment_request: str) -> None:
        payment_request = (payment_request or "").strip()
        if not payment_request:
            raise ValidationFailure("Payment request is required")
        logger.info("Sending payment")
        self.transport.send(PAYMENTS_PATH, {"payment_request": payment_request})
