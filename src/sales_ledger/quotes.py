"""Customer quotes awaiting conversion into invoices.

Quotes record what a client asked for and when it should be delivered. They
never touch stock; availability is only checked when a quote is converted,
through the same path as any other invoice.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import List, Optional, Sequence, Tuple

from . import log
from .constants import PricingMode
from .context import LedgerContext, _resolve_timestamp, quote_key
from .errors import ValidationError
from .invoices import CreateInvoiceCommand, ItemRequest, create_invoice
from .models import Invoice, Quote, QuoteItem
from .money import Numeric, require_positive_quantity, to_quantity

QuoteLine = Tuple[str, Numeric]


def _build_items(context: LedgerContext, lines: Sequence[QuoteLine]) -> Tuple[QuoteItem, ...]:
    if not lines:
        log.error("Quote validation failed: no items supplied")
        raise ValidationError("A quote needs at least one item")
    items = []
    for product_id, quantity in lines:
        context.lookup("products", product_id)
        quantity = to_quantity(quantity)
        require_positive_quantity(quantity)
        items.append(QuoteItem(product_id=product_id, quantity=quantity))
    return tuple(items)


def create_quote(
    context: LedgerContext,
    client_id: str,
    lines: Sequence[QuoteLine],
    *,
    delivery_date: Optional[date] = None,
    notes: Optional[str] = None,
    timestamp: Optional[datetime] = None,
) -> Quote:
    """Register a client order; delivery defaults to the next day."""

    context.lookup("clients", client_id)
    items = _build_items(context, lines)
    created_at = _resolve_timestamp(timestamp)
    quote = Quote(
        quote_id=context.next_id("QUO", when=created_at),
        client_id=client_id,
        created_at=created_at,
        items=items,
        delivery_date=delivery_date or created_at.date() + timedelta(days=1),
        notes=notes,
    )
    with context.locked(quote_key(quote.quote_id)):
        context.commit(quotes=[quote])
    log.info("Created quote '%s' for client '%s' with %d items", quote.quote_id, client_id, len(items))
    return quote


def edit_quote(
    context: LedgerContext,
    quote_id: str,
    lines: Sequence[QuoteLine],
    *,
    client_id: Optional[str] = None,
    delivery_date: Optional[date] = None,
    notes: Optional[str] = None,
) -> Quote:
    """Replace the items of a quote; other fields change only when given."""

    items = _build_items(context, lines)
    if client_id is not None:
        context.lookup("clients", client_id)
    with context.locked(quote_key(quote_id)):
        quote = context.lookup("quotes", quote_id)
        updated = replace(
            quote,
            items=items,
            client_id=client_id or quote.client_id,
            delivery_date=delivery_date or quote.delivery_date,
            notes=notes if notes is not None else quote.notes,
        )
        context.commit(quotes=[updated])
    log.info("Edited quote '%s'", quote_id)
    return updated


def delete_quote(context: LedgerContext, quote_id: str) -> Quote:
    with context.locked(quote_key(quote_id)):
        quote = context.lookup("quotes", quote_id)
        context.commit(removed=[("quotes", quote_id)])
    log.info("Deleted quote '%s'", quote_id)
    return quote


def get_quote(context: LedgerContext, quote_id: str) -> Quote:
    return context.lookup("quotes", quote_id)


def list_quotes(context: LedgerContext, *, client_id: Optional[str] = None) -> List[Quote]:
    """Quotes ordered by delivery date, then creation time."""

    quotes = [quote for quote in context.values("quotes") if client_id is None or quote.client_id == client_id]
    return sorted(quotes, key=lambda quote: (quote.delivery_date or date.max, quote.created_at, quote.quote_id))


def convert_quote_to_invoice(
    context: LedgerContext,
    quote_id: str,
    seller_id: Optional[str],
    pricing_mode: PricingMode = PricingMode.CASH,
    *,
    timestamp: Optional[datetime] = None,
) -> Invoice:
    """Issue an invoice for a quote's items and consume the quote.

    Prices and commissions come from the current catalog. The quote is
    removed in the same commit that stores the invoice, so a conversion that
    fails (for example on :class:`~sales_ledger.errors.InsufficientStock`)
    leaves the quote in place.
    """

    quote = context.lookup("quotes", quote_id)
    command = CreateInvoiceCommand(
        client_id=quote.client_id,
        items=[ItemRequest(product_id=item.product_id, quantity=item.quantity) for item in quote.items],
        seller_id=seller_id,
        pricing_mode=PricingMode(pricing_mode),
        timestamp=timestamp,
        quote_id=quote_id,
    )
    invoice = create_invoice(context, command)
    log.info("Converted quote '%s' into invoice '%s'", quote_id, invoice.invoice_id)
    return invoice
