"""Payment application engine.

Invoices (receivables) and purchases (payables) share one set of balance
rules; the only differences are where the payment records live and which
status labels apply. Those differences are isolated in two small
:class:`PayableBook` implementations so that applying, editing and deleting
a payment is written exactly once.

Balance rules:

* a payment must be positive;
* a payment covering at least 95% of the outstanding balance settles it and
  is recorded as exactly the outstanding balance;
* a payment may never exceed the outstanding balance by more than a cent;
* undoing a payment adds its amount back to the balance, capped at the
  parent's current total.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional, Tuple

from . import log
from .constants import FULL_SETTLEMENT_THRESHOLD
from .context import LedgerContext, LockKey, _resolve_timestamp, invoice_key, purchase_key
from .errors import ExceedsBalance, MissingReferenceError
from .models import Invoice, Payment, Purchase
from .money import (
    ZERO,
    Numeric,
    exceeds,
    invoice_status,
    is_settled,
    purchase_status,
    require_positive_money,
    to_money,
)

DEFAULT_METHOD = "cash"


@dataclass(frozen=True)
class PaymentResult:
    """A recorded payment together with the parent it was applied to."""

    payment: Payment
    parent: Any


class PayableBook:
    """Storage adapter for one kind of payable parent."""

    label: str = ""
    id_prefix: str = ""

    def key(self, parent_id: str) -> LockKey:
        raise NotImplementedError

    def parent(self, context: LedgerContext, parent_id: str) -> Any:
        raise NotImplementedError

    def total(self, parent: Any) -> Decimal:
        raise NotImplementedError

    def balance(self, parent: Any) -> Decimal:
        return parent.balance_hard

    def parent_id_of(self, context: LedgerContext, payment_id: str) -> str:
        raise NotImplementedError

    def payment(self, context: LedgerContext, parent: Any, payment_id: str) -> Payment:
        raise NotImplementedError

    def store(
        self,
        context: LedgerContext,
        parent: Any,
        balance: Decimal,
        *,
        upsert: Optional[Payment] = None,
        remove: Optional[str] = None,
    ) -> Any:
        """Commit ``parent`` with its new balance and payment change; return it."""

        raise NotImplementedError


class InvoiceBook(PayableBook):
    label = "invoice"
    id_prefix = "PAY"

    def key(self, parent_id: str) -> LockKey:
        return invoice_key(parent_id)

    def parent(self, context: LedgerContext, parent_id: str) -> Invoice:
        return context.lookup("invoices", parent_id)

    def total(self, parent: Invoice) -> Decimal:
        return parent.total_hard

    def parent_id_of(self, context: LedgerContext, payment_id: str) -> str:
        return context.lookup("invoice_payments", payment_id).parent_id

    def payment(self, context: LedgerContext, parent: Invoice, payment_id: str) -> Payment:
        return context.lookup("invoice_payments", payment_id)

    def store(self, context, parent, balance, *, upsert=None, remove=None) -> Invoice:
        updated = replace(parent, balance_hard=balance, status=invoice_status(parent.total_hard, balance))
        context.commit(
            invoices=[updated],
            invoice_payments=[upsert] if upsert is not None else [],
            removed=[("invoice_payments", remove)] if remove is not None else [],
        )
        return updated


class PurchaseBook(PayableBook):
    label = "purchase"
    id_prefix = "PPAY"

    def key(self, parent_id: str) -> LockKey:
        return purchase_key(parent_id)

    def parent(self, context: LedgerContext, parent_id: str) -> Purchase:
        return context.lookup("purchases", parent_id)

    def total(self, parent: Purchase) -> Decimal:
        return parent.total_debt_hard

    def parent_id_of(self, context: LedgerContext, payment_id: str) -> str:
        for purchase in context.values("purchases"):
            if any(payment.payment_id == payment_id for payment in purchase.payments):
                return purchase.purchase_id
        log.warning("Lookup failed for purchase payment id '%s'", payment_id)
        raise MissingReferenceError(f"Unknown purchase payment id: {payment_id}")

    def payment(self, context: LedgerContext, parent: Purchase, payment_id: str) -> Payment:
        for payment in parent.payments:
            if payment.payment_id == payment_id:
                return payment
        raise MissingReferenceError(f"Unknown purchase payment id: {payment_id}")

    def store(self, context, parent, balance, *, upsert=None, remove=None) -> Purchase:
        payments: List[Payment] = [
            payment
            for payment in parent.payments
            if payment.payment_id != remove and (upsert is None or payment.payment_id != upsert.payment_id)
        ]
        if upsert is not None:
            payments.append(upsert)
            payments.sort(key=lambda payment: (payment.timestamp, payment.payment_id))
        updated = replace(
            parent,
            payments=tuple(payments),
            balance_hard=balance,
            status=purchase_status(parent.total_debt_hard, balance),
        )
        context.commit(purchases=[updated])
        return updated


INVOICES = InvoiceBook()
PURCHASES = PurchaseBook()


# ---------------------------------------------------------------------------
# Balance rules
# ---------------------------------------------------------------------------


def settle_amount(amount: Numeric, balance: Decimal, parent_id: Optional[str] = None) -> Decimal:
    """Validate ``amount`` against ``balance`` and apply the settlement clamp.

    Args:
        amount: Requested payment in hard currency.
        balance (Decimal): Outstanding balance the payment is applied to.
        parent_id (str | None): Parent id, used in error reporting.

    Returns:
        Decimal: The amount to record; equals ``balance`` when the request
            covers at least 95% of it.

    Raises:
        InvalidAmount: If the amount is zero or negative.
        ExceedsBalance: If the parent is already settled or the amount is
            larger than the balance beyond tolerance.
    """

    amount = to_money(amount)
    require_positive_money(amount, label="Payment amount")
    if is_settled(balance):
        log.warning("Payment of %s rejected: '%s' is already settled", amount, parent_id)
        raise ExceedsBalance(amount, balance, parent_id)
    if amount >= FULL_SETTLEMENT_THRESHOLD * balance:
        if amount != balance:
            log.info("Payment of %s treated as full settlement of %s", amount, balance)
        amount = balance
    if exceeds(amount, balance):
        log.warning("Payment of %s exceeds balance %s on '%s'", amount, balance, parent_id)
        raise ExceedsBalance(amount, balance, parent_id)
    return amount


def unwind_amount(balance: Decimal, amount: Decimal, total: Decimal) -> Decimal:
    """Balance as if a payment of ``amount`` had never been applied."""

    return to_money(min(total, balance + amount))


def reduce_balance(balance: Decimal, amount: Decimal) -> Decimal:
    return to_money(max(ZERO, balance - amount))


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def apply_payment(
    context: LedgerContext,
    book: PayableBook,
    parent_id: str,
    amount: Numeric,
    method: str = DEFAULT_METHOD,
    *,
    reference: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> PaymentResult:
    """Record a payment against a parent and update its balance and status."""

    when = _resolve_timestamp(timestamp)
    with context.locked(book.key(parent_id)):
        parent = book.parent(context, parent_id)
        balance = book.balance(parent)
        recorded = settle_amount(amount, balance, parent_id)
        rate = context.rates.current_rate()
        payment = Payment(
            payment_id=context.next_id(book.id_prefix, when=when),
            parent_id=parent_id,
            timestamp=when,
            amount_hard=recorded,
            local_rate_at_time=rate,
            amount_local=to_money(recorded * rate),
            method=method,
            reference=reference,
        )
        updated = book.store(context, parent, reduce_balance(balance, recorded), upsert=payment)

    log.info(
        "Applied payment '%s' of %s to %s '%s' (balance=%s)",
        payment.payment_id,
        recorded,
        book.label,
        parent_id,
        updated.balance_hard,
    )
    return PaymentResult(payment=payment, parent=updated)


def _locate(context: LedgerContext, book: PayableBook, payment_id: str):
    def load() -> Tuple[Payment, Any]:
        parent = book.parent(context, book.parent_id_of(context, payment_id))
        return book.payment(context, parent, payment_id), parent

    def keys_for(snapshot: Tuple[Payment, Any]):
        return [book.key(snapshot[0].parent_id)]

    return load, keys_for


def edit_payment(
    context: LedgerContext,
    book: PayableBook,
    payment_id: str,
    new_amount: Numeric,
    method: Optional[str] = None,
) -> PaymentResult:
    """Replace the amount of an existing payment.

    The old payment is unwound first and the new amount is validated against
    the reconstructed balance. The payment keeps its id, timestamp, and the
    exchange rate captured when it was first recorded.
    """

    load, keys_for = _locate(context, book, payment_id)

    def action(snapshot: Tuple[Payment, Any]) -> PaymentResult:
        payment, parent = snapshot
        restored = unwind_amount(book.balance(parent), payment.amount_hard, book.total(parent))
        recorded = settle_amount(new_amount, restored, payment.parent_id)
        edited = replace(
            payment,
            amount_hard=recorded,
            amount_local=to_money(recorded * payment.local_rate_at_time),
            method=method if method is not None else payment.method,
        )
        updated = book.store(context, parent, reduce_balance(restored, recorded), upsert=edited)
        return PaymentResult(payment=edited, parent=updated)

    result = context.run_locked(load, keys_for, action)
    log.info(
        "Edited payment '%s' on %s '%s' to %s (balance=%s)",
        payment_id,
        book.label,
        result.payment.parent_id,
        result.payment.amount_hard,
        result.parent.balance_hard,
    )
    return result


def delete_payment(context: LedgerContext, book: PayableBook, payment_id: str) -> PaymentResult:
    """Remove a payment and restore the balance it had settled."""

    load, keys_for = _locate(context, book, payment_id)

    def action(snapshot: Tuple[Payment, Any]) -> PaymentResult:
        payment, parent = snapshot
        restored = unwind_amount(book.balance(parent), payment.amount_hard, book.total(parent))
        updated = book.store(context, parent, restored, remove=payment.payment_id)
        return PaymentResult(payment=payment, parent=updated)

    result = context.run_locked(load, keys_for, action)
    log.info(
        "Deleted payment '%s' of %s from %s '%s' (balance=%s)",
        payment_id,
        result.payment.amount_hard,
        book.label,
        result.payment.parent_id,
        result.parent.balance_hard,
    )
    return result


# ---------------------------------------------------------------------------
# Public wrappers
# ---------------------------------------------------------------------------


def apply_invoice_payment(
    context: LedgerContext,
    invoice_id: str,
    amount: Numeric,
    method: str = DEFAULT_METHOD,
    *,
    reference: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> PaymentResult:
    """Collect a client payment against an invoice.

    Raises:
        InvalidAmount: If ``amount`` is zero or negative.
        ExceedsBalance: If the invoice is settled or the amount is too large.
        MissingReferenceError: If the invoice is unknown.
    """

    return apply_payment(context, INVOICES, invoice_id, amount, method, reference=reference, timestamp=timestamp)


def edit_invoice_payment(
    context: LedgerContext, payment_id: str, new_amount: Numeric, method: Optional[str] = None
) -> PaymentResult:
    return edit_payment(context, INVOICES, payment_id, new_amount, method)


def delete_invoice_payment(context: LedgerContext, payment_id: str) -> PaymentResult:
    return delete_payment(context, INVOICES, payment_id)


def apply_purchase_payment(
    context: LedgerContext,
    purchase_id: str,
    amount: Numeric,
    method: str = DEFAULT_METHOD,
    *,
    reference: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> PaymentResult:
    """Pay down a supplier debt."""

    return apply_payment(context, PURCHASES, purchase_id, amount, method, reference=reference, timestamp=timestamp)


def edit_purchase_payment(
    context: LedgerContext, payment_id: str, new_amount: Numeric, method: Optional[str] = None
) -> PaymentResult:
    return edit_payment(context, PURCHASES, payment_id, new_amount, method)


def delete_purchase_payment(context: LedgerContext, payment_id: str) -> PaymentResult:
    return delete_payment(context, PURCHASES, payment_id)
