"""
Tests for the invoice lifecycle: pending until a confirmed receipt shows up.
"""

from __future__ import annotations

from lnd_beacon.models import ChainTransaction, InvoiceState, SentTransaction
from lnd_beacon.services.invoices import InvoiceLifecycleManager

from conftest import CREATED_AT, invoice, received


def test_tracked_invoice_is_pending() -> None:
    manager = InvoiceLifecycleManager()
    manager.track(invoice("x"))
    assert manager.state_of("x") is InvoiceState.PENDING
    assert [i.id for i in manager.pending] == ["x"]


def test_confirmed_receipt_settles_once() -> None:
    """Settlement is reported on the first matching poll and never again."""
    manager = InvoiceLifecycleManager()
    inv = invoice("x")
    manager.track(inv)
    feed = [received("x", confirmed=True)]

    first = manager.reconcile(feed)
    second = manager.reconcile(feed)

    assert first == ((inv, feed[0]),)
    assert second == ()
    assert manager.state_of("x") is InvoiceState.SETTLED
    assert manager.pending == ()
    assert manager.settlement_for("x") == feed[0]


def test_unconfirmed_receipt_does_not_settle() -> None:
    manager = InvoiceLifecycleManager()
    manager.track(invoice("x"))
    assert manager.reconcile([received("x", confirmed=False)]) == ()
    assert manager.state_of("x") is InvoiceState.PENDING


def test_other_variants_with_same_id_do_not_settle() -> None:
    manager = InvoiceLifecycleManager()
    manager.track(invoice("x"))
    feed = [
        SentTransaction("x", 1000, CREATED_AT, "someone"),
        ChainTransaction("x", 1000, CREATED_AT, "2N..."),
    ]
    assert manager.reconcile(feed) == ()


def test_settled_never_regresses() -> None:
    manager = InvoiceLifecycleManager()
    manager.track(invoice("x"))
    manager.reconcile([received("x")])
    manager.reconcile([])
    manager.track(invoice("x"))
    assert manager.state_of("x") is InvoiceState.SETTLED


def test_multiple_pending_invoices_are_independent() -> None:
    manager = InvoiceLifecycleManager()
    a, b, c = invoice("a"), invoice("b"), invoice("c")
    for inv in (a, b, c):
        manager.track(inv)

    settled = manager.reconcile([received("b"), received("zzz"), received("a", confirmed=False)])

    assert [pair[0].id for pair in settled] == ["b"]
    assert [i.id for i in manager.pending] == ["a", "c"]


def test_first_matching_receipt_wins() -> None:
    manager = InvoiceLifecycleManager()
    manager.track(invoice("x"))
    first, duplicate = received("x", tokens=1000), received("x", tokens=2000)
    settled = manager.reconcile([first, duplicate])
    assert settled == ((invoice("x"), first),)


def test_unknown_invoice_has_no_state() -> None:
    assert InvoiceLifecycleManager().state_of("nope") is None


def test_settled_history_is_bounded() -> None:
    manager = InvoiceLifecycleManager(max_settled=2)
    for invoice_id in ("a", "b", "c"):
        manager.track(invoice(invoice_id))
    manager.track(invoice("d"))

    settled = manager.reconcile([received("a"), received("b"), received("c")])

    assert [inv.id for inv, _ in settled] == ["a", "b", "c"]
    assert manager.state_of("a") is None
    assert manager.settlement_for("a") is None
    assert manager.state_of("b") is InvoiceState.SETTLED
    assert manager.state_of("c") is InvoiceState.SETTLED
    assert [inv.id for inv in manager.pending] == ["d"]
