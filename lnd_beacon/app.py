from datetime import datetime

from rich.console import Group
from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Container, VerticalScroll
from textual.widgets import Button, DataTable, Footer, Input, Static, TabbedContent, TabPane

from lnd_beacon import __version__ as LND_BEACON_VERSION
from lnd_beacon.config import DaemonConfig
from lnd_beacon.errors import DaemonError, RateUnavailable
from lnd_beacon.log import DEFAULT_LOG_PATH, setup_logger
from lnd_beacon.models import (
    ChainTransaction,
    ConnectionStatus,
    Invoice,
    PaymentRequest,
    PublicKey,
    ReceivedTransaction,
    SentTransaction,
    Snapshot,
)
from lnd_beacon.services.currency import format_fiat, format_tokens, parse_coin_amount, to_fiat
from lnd_beacon.services.gateway import DaemonGateway
from lnd_beacon.services.pricing import PricingClient
from lnd_beacon.services.reconciler import WalletReconciler
from lnd_beacon.services.transport import HttpTransport

COIN_LABEL = "tBTC"
STATUS_EMOJI = {
    ConnectionStatus.ONLINE: "🟢",
    ConnectionStatus.CONNECTING: "🟡",
    ConnectionStatus.CLOSING: "🟠",
    ConnectionStatus.OFFLINE: "🔴",
}


class CustomHeader(Static):
    """Title, daemon reachability and local time."""

    DEFAULT_CSS = """
    CustomHeader {
        dock: top;
        width: 100%;
        background: $boost;
        color: $text;
        height: 1;
    }
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.daemon_status = "unknown"

    def on_mount(self) -> None:
        self.update_clock()
        self.set_interval(1.0, self.update_clock)

    def update_clock(self) -> None:
        time_str = datetime.now().strftime("%A, %B %d, %Y  %I:%M:%S %p")
        if self.daemon_status == "running":
            status = "🟢 Daemon: Online"
        elif self.daemon_status == "refreshing":
            status = "⏳ Daemon: Checking..."
        else:
            status = "🔴 Daemon: unreachable"
        title = self.app.title if hasattr(self.app, "title") else "lnd-beacon"
        try:
            width = self.size.width
            left = f"{status}  {title}"
            pad = max(1, width - len(left) - len(time_str) - 2)
            self.update(f"{left}{' ' * pad}{time_str}")
        except Exception:
            self.update(f"{status}  {title}  {time_str}")


class CardPanel(Static):
    def __init__(self, title: str, accent_class: str, **kwargs: object) -> None:
        super().__init__(**kwargs)
        self.border_title = title
        self.lines: list[str] = []
        self.add_class("card")
        self.add_class(accent_class)

    def update_lines(self, lines: list[str]) -> None:
        self.lines = lines
        if not lines:
            self.update("... loading")
            return
        self.update(Group(*[
            Text(line, style="dim" if i % 2 == 1 else "")
            for i, line in enumerate(lines)
        ]))


class ConnectionsPanel(VerticalScroll):
    """Connections table with one row per counterparty."""

    def __init__(self, **kwargs: object) -> None:
        super().__init__(**kwargs)
        self.border_title = "🔌 Connections"
        self.border_subtitle = "o: increase balance  d: decrease balance  a: add peer"
        self.border_title_align = ("left", "top")
        self.border_subtitle_align = ("left", "bottom")
        self.add_class("card")
        self.add_class("network")
        self._table = DataTable(id="connections-table", cursor_type="row", zebra_stripes=True)
        self._keys: list[PublicKey] = []

    def compose(self) -> ComposeResult:
        yield self._table

    def on_mount(self) -> None:
        self._table.add_columns("Public Key", "Status", f"Balance ({COIN_LABEL})", "Ping")

    def update_connections(self, snapshot: Snapshot) -> None:
        cursor = self._table.cursor_row
        self._table.clear()
        self._keys = []
        for item in snapshot.connections:
            connection = item.connection
            ping = connection.best_ping
            self._table.add_row(
                connection.public_key.hex_encoded,
                f"{STATUS_EMOJI[item.status]} {item.status.value}",
                format_tokens(connection.balance),
                f"{ping}ms" if ping is not None else " ",
            )
            self._keys.append(connection.public_key)
        self.border_title = f"🔌 Connections ({len(self._keys)})"
        if self._keys:
            self._table.move_cursor(row=min(cursor, len(self._keys) - 1))

    def selected_public_key(self) -> PublicKey | None:
        row = self._table.cursor_row
        if 0 <= row < len(self._keys):
            return self._keys[row]
        return None


class TransactionsPanel(VerticalScroll):
    def __init__(self, **kwargs: object) -> None:
        super().__init__(**kwargs)
        self.border_title = "🧾 Transactions"
        self.border_title_align = ("left", "top")
        self.add_class("card")
        self.add_class("activity")
        self._content = Static("... loading", classes="row-text")

    def compose(self) -> ComposeResult:
        yield self._content

    @staticmethod
    def _describe(tx: object) -> str:
        if isinstance(tx, ReceivedTransaction):
            state = "confirmed" if tx.confirmed else "pending"
            return f"received  {tx.memo[:30]:<30} {state}"
        if isinstance(tx, SentTransaction):
            return f"sent      {tx.to[:30]:<30}"
        if isinstance(tx, ChainTransaction):
            return f"chain     {tx.chain_address[:30]:<30}"
        return "-"

    def update_transactions(self, snapshot: Snapshot) -> None:
        transactions = snapshot.wallet.transactions
        self.border_title = f"🧾 Transactions ({len(transactions)})"
        if not transactions:
            self._content.update("No transactions yet")
            return
        lines = [
            f"{tx.created_at:%Y-%m-%d %H:%M}  {format_tokens(tx.tokens):>18}  {self._describe(tx)}"
            for tx in sorted(transactions, key=lambda t: t.created_at, reverse=True)
        ]
        self._content.update(Group(*[
            Text(line, style="dim" if i % 2 == 1 else "")
            for i, line in enumerate(lines)
        ]))


class ReceiveCard(VerticalScroll):
    """Create an invoice and watch for its payment."""

    def __init__(self, **kwargs: object) -> None:
        super().__init__(**kwargs)
        self.border_title = "📥 Receive"
        self.border_title_align = ("left", "top")
        self.add_class("card")
        self.add_class("wallet")
        self._amount_input = Input(placeholder=f"Amount ({COIN_LABEL})", id="receive-amount")
        self._memo_input = Input(placeholder="Memo", id="receive-memo")
        self._fiat_hint = Static("", id="receive-fiat")
        self._request = Static("", id="receive-request")
        self._received = Static("", id="receive-received")
        self._status = Static("", id="receive-status")
        self.invoice: Invoice | None = None

    def compose(self) -> ComposeResult:
        with Container(id="receive-inputs-row"):
            yield self._amount_input
            yield self._memo_input
            yield Button("Create Invoice", id="receive-button", variant="primary")
            yield Button("Clear", id="receive-clear")
        yield self._fiat_hint
        yield self._status
        yield self._request
        yield self._received

    def get_amount(self) -> str:
        return self._amount_input.value

    def get_memo(self) -> str:
        return self._memo_input.value

    def set_fiat_hint(self, text: str) -> None:
        self._fiat_hint.update(text)

    def set_status(self, text: str) -> None:
        self._status.update(text)

    def set_busy(self, busy: bool) -> None:
        button = self.query_one("#receive-button", Button)
        button.disabled = busy
        button.label = "Creating Invoice" if busy else "Create Invoice"

    def show_invoice(self, invoice: Invoice) -> None:
        self.invoice = invoice
        self._request.update(f"Payment Request:\n{invoice.payment_request}")

    def show_received(self, invoice: Invoice, tx: ReceivedTransaction) -> None:
        memo = f"  {tx.memo}" if tx.memo else ""
        self._received.update(f"✅ Payment received: {format_tokens(tx.tokens)} {COIN_LABEL}{memo}")
        if self.invoice is not None and self.invoice.id == invoice.id:
            self.clear_form()

    def hide_received(self) -> None:
        self._received.update("")

    def clear_form(self) -> None:
        self.invoice = None
        self._amount_input.value = ""
        self._memo_input.value = ""
        self._fiat_hint.update("")
        self._request.update("")
        self._status.update("")


class SendCard(VerticalScroll):
    """Look up a payment request and pay it."""

    def __init__(self, **kwargs: object) -> None:
        super().__init__(**kwargs)
        self.border_title = "📤 Send"
        self.border_title_align = ("left", "top")
        self.add_class("card")
        self.add_class("wallet")
        self._request_input = Input(placeholder="Payment request", id="send-request")
        self._details = Static("", id="send-details")
        self._status = Static("", id="send-status")
        self.decoded: PaymentRequest | None = None

    def compose(self) -> ComposeResult:
        with Container(id="send-inputs-row"):
            yield self._request_input
            yield Button("Decode", id="send-decode")
            yield Button("Pay", id="send-button", variant="primary", disabled=True)
        yield self._details
        yield self._status

    def get_request(self) -> str:
        return self._request_input.value.strip()

    def set_status(self, text: str) -> None:
        self._status.update(text)

    def set_busy(self, busy: bool) -> None:
        button = self.query_one("#send-button", Button)
        button.disabled = busy or self.decoded is None
        button.label = "Paying" if busy else "Pay"

    def show_decoded(self, request: PaymentRequest, fiat: str | None) -> None:
        self.decoded = request
        value = f"{format_tokens(request.tokens)} {COIN_LABEL}"
        if fiat:
            value = f"{value} ≈ {fiat}"
        self._details.update(f"To:     {request.destination.hex_encoded}\nAmount: {value}")
        self.query_one("#send-button", Button).disabled = False

    def forget_decoded(self) -> None:
        self.decoded = None
        self._details.update("")
        self.query_one("#send-button", Button).disabled = True

    def clear_form(self) -> None:
        self._request_input.value = ""
        self.forget_decoded()
        self._status.update("")


class AddPeerCard(VerticalScroll):
    def __init__(self, **kwargs: object) -> None:
        super().__init__(**kwargs)
        self.border_title = "➕ Add Peer"
        self.border_title_align = ("left", "top")
        self.add_class("card")
        self.add_class("network")
        self._host_input = Input(placeholder="host:port", id="peer-host")
        self._key_input = Input(placeholder="Public key (hex)", id="peer-key")
        self._status = Static("", id="peer-status")

    def compose(self) -> ComposeResult:
        with Container(id="peer-inputs-row"):
            yield self._host_input
            yield self._key_input
            yield Button("Add Peer", id="peer-button", variant="primary")
        yield self._status

    def get_host(self) -> str:
        return self._host_input.value

    def get_public_key(self) -> str:
        return self._key_input.value

    def set_status(self, text: str) -> None:
        self._status.update(text)

    def clear_form(self) -> None:
        self._host_input.value = ""
        self._key_input.value = ""
        self._status.update("")


class LndBeaconApp(App):
    BINDINGS = [
        ("q", "quit", "Quit"),
        ("r", "refresh_all", "Refresh"),
        ("o", "increase_channel_balance", "Increase Balance"),
        ("d", "decrease_channel_balance", "Decrease Balance"),
        ("a", "toggle_add_peer_card", "Add Peer"),
        ("i", "toggle_receive_card", "Receive"),
    ]

    CSS = """
    Screen {
        layout: vertical;
    }
    TabbedContent,
    TabPane {
        width: 1fr;
    }
    #connections-body {
        layout: grid;
        grid-size: 3;
        grid-gutter: 0 1;
        grid-rows: 1fr auto;
        height: 1fr;
    }
    #connections-panel {
        column-span: 2;
        height: 1fr;
    }
    #value-card {
        height: 1fr;
    }
    #add-peer-card {
        column-span: 3;
        height: 9;
    }
    #receive-card,
    #send-card {
        height: 1fr;
        padding: 1 2;
    }
    #receive-inputs-row,
    #send-inputs-row,
    #peer-inputs-row {
        layout: horizontal;
        height: auto;
    }
    #receive-amount {
        width: 20;
        margin-right: 1;
    }
    #receive-memo,
    #send-request,
    #peer-key {
        width: 1fr;
        margin-right: 1;
    }
    #peer-host {
        width: 28;
        margin-right: 1;
    }
    #receive-request,
    #receive-received,
    #receive-status,
    #receive-fiat,
    #send-details,
    #send-status {
        height: auto;
        margin-top: 1;
    }
    #transactions-panel {
        height: 1fr;
    }
    .card {
        padding: 1 1;
        border: round $primary-darken-2;
        height: auto;
        min-height: 6;
    }
    .card.wallet {
        color: $success-lighten-2;
    }
    .card.network {
        color: $secondary-lighten-2;
    }
    .card.activity {
        color: $accent-lighten-2;
    }
    .card.pricing {
        color: $accent-lighten-2;
    }
    .row-text {
        width: 1fr;
        text-wrap: nowrap;
        overflow: hidden;
    }
    """

    def __init__(self, config: DaemonConfig | None = None) -> None:
        super().__init__()
        self.config = config or DaemonConfig.from_env()
        self.reconciler = WalletReconciler(
            DaemonGateway(HttpTransport(self.config)),
            pricing=PricingClient(self.config.price_endpoint),
        )
        self.title = f"lnd-beacon v{LND_BEACON_VERSION}"
        self.header = CustomHeader()
        self.connections_panel = ConnectionsPanel(id="connections-panel")
        self.value_card = CardPanel("💵 Value", "pricing", id="value-card")
        self.add_peer_card = AddPeerCard(id="add-peer-card")
        self.add_peer_card.display = False  # Hidden by default, press a to show
        self.receive_card = ReceiveCard(id="receive-card")
        self.send_card = SendCard(id="send-card")
        self.transactions_panel = TransactionsPanel(id="transactions-panel")
        self._unsubscribe = None

    def compose(self) -> ComposeResult:
        yield self.header
        with TabbedContent(initial="connections-tab"):
            with TabPane("Connections", id="connections-tab"):
                with Container(id="connections-body"):
                    yield self.connections_panel
                    yield self.value_card
                    yield self.add_peer_card
            with TabPane("Receive", id="receive-tab"):
                yield self.receive_card
            with TabPane("Send", id="send-tab"):
                yield self.send_card
            with TabPane("Transactions", id="transactions-tab"):
                yield self.transactions_panel
        yield Footer()

    def on_mount(self) -> None:
        self._unsubscribe = self.reconciler.subscribe(self.on_snapshot)
        self.set_timer(0.1, self.refresh_data)
        self.set_interval(self.config.refresh_interval, self.refresh_data)

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()

    def on_snapshot(self, snapshot: Snapshot) -> None:
        self.header.daemon_status = "running"
        self.header.update_clock()
        self.connections_panel.update_connections(snapshot)
        self.transactions_panel.update_transactions(snapshot)
        self.value_card.update_lines(self._value_lines(snapshot))
        for invoice, tx in snapshot.settled_invoices:
            self.receive_card.show_received(invoice, tx)
            self.notify(f"Payment received: {format_tokens(tx.tokens)} {COIN_LABEL}")

    def _value_lines(self, snapshot: Snapshot) -> list[str]:
        balance = snapshot.balance
        rate = snapshot.wallet.cents_per_coin
        lines = [f"Channel Balance: {format_tokens(balance)} {COIN_LABEL}"]
        try:
            lines.append(f"Value:           {format_fiat(to_fiat(balance, rate), self.config.currency_symbol)}")
            lines.append(f"Price per Coin:  {format_fiat(rate, self.config.currency_symbol)}")
        except RateUnavailable:
            lines.append("Value:           -")
            lines.append("Price per Coin:  unavailable")
        lines.append(f"Pending Invoices: {len(snapshot.outstanding_invoices)}")
        return lines

    async def refresh_data(self, reason: str = "timer") -> None:
        self.header.daemon_status = "refreshing"
        self.header.update_clock()
        try:
            await self.reconciler.refresh(reason)
        except DaemonError as exc:
            self.header.daemon_status = "unknown"
            self.header.update_clock()
            if reason != "timer":
                self.notify(f"Refresh failed: {exc}", severity="error", timeout=5)

    async def action_refresh_all(self) -> None:
        await self.refresh_data("user")

    async def on_tabbed_content_tab_activated(self, event: TabbedContent.TabActivated) -> None:
        if event.tabbed_content.active != "receive-tab":
            self.receive_card.hide_received()
        await self.refresh_data("view")

    def action_toggle_add_peer_card(self) -> None:
        self.add_peer_card.display = not self.add_peer_card.display
        if self.add_peer_card.display:
            self.add_peer_card.clear_form()

    def action_toggle_receive_card(self) -> None:
        tabs = self.query_one(TabbedContent)
        tabs.active = "connections-tab" if tabs.active == "receive-tab" else "receive-tab"

    async def action_increase_channel_balance(self) -> None:
        public_key = self.connections_panel.selected_public_key()
        if public_key is None:
            return
        try:
            await self.reconciler.increase_channel_balance(public_key)
        except DaemonError as exc:
            self.notify(f"Open channel failed: {exc}", severity="error", timeout=5)
            return
        self.notify(f"Opening channel with {public_key.short()}")

    async def action_decrease_channel_balance(self) -> None:
        public_key = self.connections_panel.selected_public_key()
        if public_key is None:
            return
        try:
            results = await self.reconciler.decrease_channel_balance(public_key)
        except DaemonError as exc:
            self.notify(f"Close channels failed: {exc}", severity="error", timeout=5)
            return
        failed = {cid: err for cid, err in results.items() if err is not None}
        if failed:
            detail = ", ".join(f"{cid}: {err}" for cid, err in failed.items())
            self.notify(f"Some channels failed to close: {detail}", severity="warning", timeout=8)
        else:
            self.notify(f"Closing {len(results)} channel(s) with {public_key.short()}")

    def on_input_changed(self, event: Input.Changed) -> None:
        if event.input.id == "send-request":
            if self.send_card.decoded is not None and self.send_card.decoded.payment_request != event.value.strip():
                self.send_card.forget_decoded()
            return
        if event.input.id != "receive-amount":
            return
        tokens = parse_coin_amount(event.value)
        hint = f"{format_tokens(tokens)} {COIN_LABEL}"
        fiat = self._fiat_for(tokens)
        self.receive_card.set_fiat_hint(f"{hint} ≈ {fiat}" if fiat else hint)

    async def _handle_create_invoice(self) -> None:
        tokens = parse_coin_amount(self.receive_card.get_amount())
        if tokens <= 0:
            self.receive_card.set_status("Enter an amount to request")
            return
        self.receive_card.hide_received()
        self.receive_card.set_busy(True)
        try:
            invoice = await self.reconciler.create_invoice(tokens, self.receive_card.get_memo())
        except DaemonError as exc:
            self.receive_card.set_status(f"Create invoice failed: {exc}")
            return
        finally:
            self.receive_card.set_busy(False)
        self.receive_card.set_status("")
        self.receive_card.show_invoice(invoice)

    def _fiat_for(self, tokens: int) -> str | None:
        snapshot = self.reconciler.snapshot
        rate = snapshot.wallet.cents_per_coin if snapshot else None
        try:
            return format_fiat(to_fiat(tokens, rate), self.config.currency_symbol)
        except RateUnavailable:
            return None

    async def _handle_decode_request(self) -> None:
        payment_request = self.send_card.get_request()
        if not payment_request:
            self.send_card.set_status("Paste a payment request")
            return
        self.send_card.set_status("Decoding...")
        try:
            request = await self.reconciler.decode_payment_request(payment_request)
        except DaemonError as exc:
            self.send_card.forget_decoded()
            self.send_card.set_status(f"Decode failed: {exc}")
            return
        self.send_card.set_status("")
        self.send_card.show_decoded(request, self._fiat_for(request.tokens))

    async def _handle_send_payment(self) -> None:
        request = self.send_card.decoded
        if request is None:
            return
        self.send_card.set_busy(True)
        try:
            await self.reconciler.send_payment(request.payment_request)
        except DaemonError as exc:
            self.send_card.set_status(f"Payment failed: {exc}")
            return
        finally:
            self.send_card.set_busy(False)
        self.send_card.clear_form()
        self.notify(f"Sent {format_tokens(request.tokens)} {COIN_LABEL} to {request.destination.short()}")

    async def _handle_add_peer(self) -> None:
        self.add_peer_card.set_status("Adding peer...")
        try:
            await self.reconciler.add_peer(
                self.add_peer_card.get_host(), self.add_peer_card.get_public_key()
            )
        except DaemonError as exc:
            self.add_peer_card.set_status(f"Add peer failed: {exc}")
            return
        self.add_peer_card.clear_form()
        self.add_peer_card.display = False
        self.notify("Peer added")

    async def on_button_pressed(self, event: Button.Pressed) -> None:
        if event.button.id == "receive-button":
            await self._handle_create_invoice()
        elif event.button.id == "receive-clear":
            self.receive_card.clear_form()
            self.receive_card.hide_received()
        elif event.button.id == "peer-button":
            await self._handle_add_peer()
        elif event.button.id == "send-decode":
            await self._handle_decode_request()
        elif event.button.id == "send-button":
            await self._handle_send_payment()


def run() -> None:
    setup_logger(log_file=DEFAULT_LOG_PATH, stream=False)
    LndBeaconApp().run()
