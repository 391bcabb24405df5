"""Commission calculator.

Commission terms are resolved once per invoice line and stored on the line
itself, so the totals computed here depend only on the invoice's own items.
Later changes to a product's default commission or to a seller's
configuration never alter invoices that already exist.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional, Tuple

from . import log
from .constants import CommissionType
from .models import CommissionConfig, CommissionLine, InvoiceItem, Product, Seller
from .money import ZERO, to_money


@dataclass(frozen=True)
class CommissionBreakdown:
    """Per-line commissions plus their sum."""

    detail: Tuple[CommissionLine, ...]
    total: Decimal


EMPTY_BREAKDOWN = CommissionBreakdown(detail=(), total=ZERO)


def line_commission(item: InvoiceItem) -> Decimal:
    """Commission earned on a single line under its snapshotted terms."""

    if item.commission_type is CommissionType.PERCENT:
        return to_money(item.subtotal * item.commission_value / Decimal("100"))
    return to_money(item.commission_value * item.quantity)


def compute_commissions(items: Iterable[InvoiceItem], seller: Optional[Seller]) -> CommissionBreakdown:
    """Compute the commission detail and total for an invoice.

    Lines with no commission configured are left out of the detail. Invoices
    without a seller earn nothing.

    Args:
        items: Invoice lines carrying their commission snapshot.
        seller (Seller | None): Seller the invoice is attributed to.

    Returns:
        CommissionBreakdown: Detail lines in item order and their total.
    """

    if seller is None:
        return EMPTY_BREAKDOWN

    detail = tuple(
        CommissionLine(
            product_id=item.product_id,
            commission_type=item.commission_type,
            commission_value=item.commission_value,
            commission=line_commission(item),
        )
        for item in items
        if item.commission_value > 0
    )
    total = to_money(sum((line.commission for line in detail), ZERO))
    log.debug("Computed commissions for seller '%s': total=%s over %d lines", seller.seller_id, total, len(detail))
    return CommissionBreakdown(detail=detail, total=total)


def resolve_commission_terms(
    product: Product,
    seller: Optional[Seller],
    *,
    override: Optional[CommissionConfig] = None,
    previous: Optional[CommissionConfig] = None,
) -> CommissionConfig:
    """Pick the commission terms to snapshot onto a new invoice line.

    Priority order: an explicit ``override`` for the line, the terms the same
    product already carried on the invoice being edited, the seller's
    configuration for the product, and finally the product default.
    """

    if override is not None:
        return override
    if previous is not None:
        return previous
    if seller is not None and product.product_id in seller.commissions:
        return seller.commissions[product.product_id]
    return product.commission
