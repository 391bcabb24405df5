"""Commission payout ledger.

Earned commission is derived from the invoices attributed to a seller; paid
commission is the append-only log of payouts stored on the seller record.
The ledger only ever appends payouts, so the pending amount can shrink
through payouts and grow through new invoices, never the other way round.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from . import log
from .constants import EPSILON
from .context import LedgerContext, _resolve_timestamp, seller_key
from .errors import InvalidAmount, ValidationError
from .models import CommissionPayment, Invoice
from .money import ZERO, Numeric, require_positive_money, to_money


@dataclass(frozen=True)
class CommissionStatement:
    seller_id: str
    earned: Decimal
    paid: Decimal
    pending: Decimal
    invoices: Tuple[Invoice, ...]
    payments: Tuple[CommissionPayment, ...]


def _commission_invoices(context: LedgerContext, seller_id: str) -> List[Invoice]:
    invoices = [
        invoice
        for invoice in context.values("invoices")
        if invoice.seller_id == seller_id and invoice.commission_total > 0
    ]
    return sorted(invoices, key=lambda invoice: (invoice.created_at, invoice.invoice_id))


def total_commission_earned(context: LedgerContext, seller_id: str) -> Decimal:
    context.lookup("sellers", seller_id)
    return to_money(sum((invoice.commission_total for invoice in _commission_invoices(context, seller_id)), ZERO))


def total_commission_paid(context: LedgerContext, seller_id: str) -> Decimal:
    seller = context.lookup("sellers", seller_id)
    return to_money(sum((payment.amount_hard for payment in seller.commission_payments), ZERO))


def get_pending_commission(context: LedgerContext, seller_id: str) -> Decimal:
    """Commission earned by the seller and not yet paid out, never negative."""

    earned = total_commission_earned(context, seller_id)
    paid = total_commission_paid(context, seller_id)
    return to_money(max(ZERO, earned - paid))


def pay_commission(
    context: LedgerContext,
    seller_id: str,
    amount: Numeric,
    reference: str,
    *,
    timestamp: Optional[datetime] = None,
) -> CommissionPayment:
    """Record a commission payout to a seller.

    Args:
        context (LedgerContext): Ledger to mutate.
        seller_id (str): Seller receiving the payout.
        amount: Payout in hard currency.
        reference (str): Mandatory transfer or receipt reference.
        timestamp (datetime | None): Payout time; defaults to now.

    Returns:
        CommissionPayment: The appended payout record.

    Raises:
        ValidationError: If ``reference`` is blank.
        InvalidAmount: If the amount is not positive or exceeds the pending
            commission.
        MissingReferenceError: If the seller is unknown.
    """

    if reference is None or not str(reference).strip():
        log.error("Commission payout for seller '%s' rejected: missing reference", seller_id)
        raise ValidationError("A payment reference is required")
    amount = to_money(amount)
    require_positive_money(amount, label="Commission payout")
    when = _resolve_timestamp(timestamp)

    with context.locked(seller_key(seller_id)):
        seller = context.lookup("sellers", seller_id)
        pending = get_pending_commission(context, seller_id)
        if amount - pending > EPSILON:
            log.error("Commission payout of %s exceeds pending %s for seller '%s'", amount, pending, seller_id)
            raise InvalidAmount(f"Payout of {amount} exceeds pending commission of {pending}")

        rate = context.rates.current_rate()
        payout = CommissionPayment(
            payment_id=context.next_id("COM", when=when),
            seller_id=seller_id,
            timestamp=when,
            amount_hard=amount,
            local_rate_at_time=rate,
            amount_local=to_money(amount * rate),
            reference=str(reference).strip(),
            invoice_ids=tuple(invoice.invoice_id for invoice in _commission_invoices(context, seller_id)),
        )
        context.commit(sellers=[replace(seller, commission_payments=seller.commission_payments + (payout,))])

    log.info("Paid commission of %s to seller '%s' (reference=%s)", amount, seller_id, payout.reference)
    return payout


def commission_statement(context: LedgerContext, seller_id: str) -> CommissionStatement:
    """Earned, paid and pending commission of a seller with supporting records."""

    seller = context.lookup("sellers", seller_id)
    invoices = tuple(_commission_invoices(context, seller_id))
    earned = to_money(sum((invoice.commission_total for invoice in invoices), ZERO))
    paid = to_money(sum((payment.amount_hard for payment in seller.commission_payments), ZERO))
    return CommissionStatement(
        seller_id=seller_id,
        earned=earned,
        paid=paid,
        pending=to_money(max(ZERO, earned - paid)),
        invoices=invoices,
        payments=seller.commission_payments,
    )
