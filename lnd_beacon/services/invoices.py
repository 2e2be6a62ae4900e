import logging
from collections import deque
from collections.abc import Iterable

from lnd_beacon.models import Invoice, InvoiceState, ReceivedTransaction, Transaction

logger = logging.getLogger(__name__)


class InvoiceLifecycleManager:
    """Tracks locally created invoices until the transaction feed shows them paid.

    Pending -> Settled only; settled invoices never go back. Each invoice is
    reported as settled once, by the reconcile call that first sees its
    confirmed payment. Pending invoices never expire; only the most recent
    ``max_settled`` settled invoices are remembered.
    """

    def __init__(self, max_settled: int = 256) -> None:
        self.max_settled = max_settled
        self._settled_order: deque[str] = deque()
        self._invoices: dict[str, Invoice] = {}
        self._states: dict[str, InvoiceState] = {}
        self._settlements: dict[str, ReceivedTransaction] = {}

    def track(self, invoice: Invoice) -> None:
        if invoice.id in self._states:
            return
        self._invoices[invoice.id] = invoice
        self._states[invoice.id] = InvoiceState.PENDING

    def state_of(self, invoice_id: str) -> InvoiceState | None:
        return self._states.get(invoice_id)

    def settlement_for(self, invoice_id: str) -> ReceivedTransaction | None:
        return self._settlements.get(invoice_id)

    @property
    def pending(self) -> tuple[Invoice, ...]:
        return tuple(
            invoice
            for invoice_id, invoice in self._invoices.items()
            if self._states[invoice_id] is InvoiceState.PENDING
        )

    def reconcile(
        self, transactions: Iterable[Transaction]
    ) -> tuple[tuple[Invoice, ReceivedTransaction], ...]:
        """Settle pending invoices matched by the feed; return the newly settled pairs."""
        pending_ids = {invoice.id for invoice in self.pending}
        if not pending_ids:
            return ()
        settled: list[tuple[Invoice, ReceivedTransaction]] = []
        for tx in transactions:
            if not isinstance(tx, ReceivedTransaction) or not tx.confirmed:
                continue
            if tx.id not in pending_ids:
                continue
            pending_ids.discard(tx.id)
            invoice = self._invoices[tx.id]
            self._states[tx.id] = InvoiceState.SETTLED
            self._settlements[tx.id] = tx
            self._settled_order.append(tx.id)
            settled.append((invoice, tx))
            logger.info("Invoice %s settled for %d tokens", invoice.id, tx.tokens)
        self._prune_settled()
        return tuple(settled)

    def _prune_settled(self) -> None:
        while len(self._settled_order) > self.max_settled:
            invoice_id = self._settled_order.popleft()
            self._invoices.pop(invoice_id, None)
            self._states.pop(invoice_id, None)
            self._settlements.pop(invoice_id, None)
