"""Read-only summaries derived from the ledger collections."""

from __future__ import annotations

from decimal import Decimal
from typing import Dict

from . import log
from .context import LedgerContext
from .money import ZERO, is_settled, to_money
from .purchases import get_purchase_debt_total


def calculate_inventory(context: LedgerContext) -> Dict[str, Decimal]:
    """Return the on-hand stock of every product.

    Args:
        context (LedgerContext): Ledger to read.

    Returns:
        dict[str, Decimal]: Mapping of product id to stock quantity in kg,
            ordered by product id.
    """

    inventory = {
        product.product_id: product.stock_qty
        for product in sorted(context.values("products"), key=lambda product: product.product_id)
    }
    log.debug("Calculated inventory balances for %d products", len(inventory))
    return inventory


def calculate_receivables(context: LedgerContext) -> Dict[str, Decimal]:
    """Outstanding invoice balance per client.

    Returns:
        dict[str, Decimal]: Client id mapped to the sum of its unsettled
            invoice balances, plus a ``"total"`` entry across all clients.
            Clients with nothing outstanding are omitted.
    """

    receivables: Dict[str, Decimal] = {}
    for invoice in context.values("invoices"):
        if is_settled(invoice.balance_hard):
            continue
        receivables[invoice.client_id] = receivables.get(invoice.client_id, ZERO) + invoice.balance_hard
    summary = {client_id: to_money(amount) for client_id, amount in sorted(receivables.items())}
    summary["total"] = to_money(sum(summary.values(), ZERO))
    log.debug("Calculated receivables for %d clients: total=%s", len(summary) - 1, summary["total"])
    return summary


def calculate_sales_summary(context: LedgerContext) -> Dict[str, Decimal]:
    """Produce aggregate sales, collection, debt and commission figures.

    ``commission_pending`` is the sum over sellers of their unpaid commission,
    so overpaid sellers never offset the others.
    """

    invoices = context.values("invoices")
    invoiced = to_money(sum((invoice.total_hard for invoice in invoices), ZERO))
    outstanding = to_money(sum((invoice.balance_hard for invoice in invoices), ZERO))
    commission_earned = to_money(
        sum((invoice.commission_total for invoice in invoices if invoice.seller_id is not None), ZERO)
    )

    commission_paid = ZERO
    commission_pending = ZERO
    for seller in context.values("sellers"):
        earned = sum(
            (invoice.commission_total for invoice in invoices if invoice.seller_id == seller.seller_id),
            ZERO,
        )
        paid = sum((payment.amount_hard for payment in seller.commission_payments), ZERO)
        commission_paid += paid
        commission_pending += max(ZERO, earned - paid)

    summary = {
        "invoiced": invoiced,
        "collected": to_money(invoiced - outstanding),
        "outstanding": outstanding,
        "purchase_debt": get_purchase_debt_total(context),
        "commission_earned": commission_earned,
        "commission_paid": to_money(commission_paid),
        "commission_pending": to_money(commission_pending),
    }
    log.debug("Calculated sales summary: %s", summary)
    return summary
