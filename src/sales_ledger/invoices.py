"""Invoice ledger.

Owns the invoice lifecycle and its side effects on stock and commissions::

    create -> Pending -(partial payment)-> Partial -(full payment)-> Paid
    Pending/Partial -(edit)-> Pending/Partial/Paid (recomputed)
    Pending/Partial -(delete)-> removed

Every operation validates the whole request before the first write: prices,
commission snapshots, and stock feasibility are all computed against staged
copies, and the invoice, its products, and any removed payments are
committed together.
"""

from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Deque, Dict, Iterable, List, Optional, Sequence, Tuple

from . import log
from .commissions import compute_commissions, resolve_commission_terms
from .constants import CommissionType, InvoiceStatus, PricingMode, StockDirection
from .context import (
    LedgerContext,
    LedgerPolicy,
    _resolve_timestamp,
    invoice_key,
    product_key,
    quote_key,
)
from .errors import InvoiceLocked, ValidationError
from .inventory import StockMovement, reconcile_stock, touched_product_keys
from .models import CommissionConfig, Invoice, InvoiceItem, Payment, Product, Seller
from .money import (
    ZERO,
    Numeric,
    invoice_status,
    is_settled,
    require_positive_money,
    require_positive_quantity,
    to_decimal,
    to_money,
    to_quantity,
)


@dataclass(frozen=True)
class ItemRequest:
    """A line the caller wants on an invoice.

    Unit price, pricing mode, and commission terms are optional overrides;
    omitted values fall back to the product catalog and seller configuration.
    """

    product_id: str
    quantity: Numeric
    unit_price_hard: Optional[Numeric] = None
    pricing_mode: Optional[PricingMode] = None
    commission_type: Optional[CommissionType] = None
    commission_value: Optional[Numeric] = None


@dataclass(frozen=True)
class CreateInvoiceCommand:
    """User intent for issuing a new invoice."""

    client_id: str
    items: Sequence[ItemRequest]
    seller_id: Optional[str] = None
    pricing_mode: PricingMode = PricingMode.CASH
    timestamp: Optional[datetime] = None
    quote_id: Optional[str] = None


@dataclass(frozen=True)
class EditInvoiceCommand:
    """User intent for replacing an invoice's items and seller.

    ``seller_id`` is always applied (``None`` removes the seller);
    ``client_id`` and ``pricing_mode`` keep their current values when omitted.
    """

    invoice_id: str
    items: Sequence[ItemRequest]
    seller_id: Optional[str]
    client_id: Optional[str] = None
    pricing_mode: Optional[PricingMode] = None


def list_price(product: Product, mode: PricingMode, policy: LedgerPolicy) -> Decimal:
    """Catalog price of ``product``; credit sales carry the configured surcharge."""

    if mode is PricingMode.CREDIT:
        factor = Decimal("1") + policy.credit_surcharge_percent / Decimal("100")
        return to_money(product.sale_price_hard * factor)
    return product.sale_price_hard


def _commission_override(request: ItemRequest) -> Optional[CommissionConfig]:
    if request.commission_type is None and request.commission_value is None:
        return None
    value = to_decimal(request.commission_value if request.commission_value is not None else 0)
    if value < Decimal("0"):
        log.error("Commission override validation failed: %s", value)
        raise ValidationError("Commission value must be zero or positive")
    return CommissionConfig(
        type=CommissionType(request.commission_type or CommissionType.PERCENT),
        value=value,
    )


def _build_items(
    context: LedgerContext,
    requests: Sequence[ItemRequest],
    *,
    seller: Optional[Seller],
    default_mode: Optional[PricingMode],
    previous_items: Iterable[InvoiceItem] = (),
    keep_commissions: bool = False,
) -> Tuple[InvoiceItem, ...]:
    """Price and snapshot the requested lines.

    Lines for products the invoice already carried keep their unit price
    (when the pricing mode is unchanged) and, when the seller is unchanged,
    their commission terms. Several lines of one product are matched to the
    previous lines of that product in order.
    """

    if not requests:
        log.error("Invoice validation failed: no items supplied")
        raise ValidationError("An invoice needs at least one item")

    previous: Dict[str, Deque[InvoiceItem]] = defaultdict(deque)
    for item in previous_items:
        previous[item.product_id].append(item)
    items: List[InvoiceItem] = []
    for request in requests:
        product = context.lookup("products", request.product_id)
        quantity = to_quantity(request.quantity)
        require_positive_quantity(quantity)
        pending = previous.get(product.product_id)
        prior = pending.popleft() if pending else None

        mode = request.pricing_mode or default_mode or (prior.pricing_mode if prior else None) or PricingMode.CASH
        mode = PricingMode(mode)
        if request.unit_price_hard is not None:
            price = to_money(request.unit_price_hard)
        elif prior is not None and prior.pricing_mode is mode:
            price = prior.unit_price_hard
        else:
            price = list_price(product, mode, context.policy)
        require_positive_money(price, label="Unit price")

        prior_terms = None
        if keep_commissions and prior is not None:
            prior_terms = CommissionConfig(type=prior.commission_type, value=prior.commission_value)
        terms = resolve_commission_terms(
            product,
            seller,
            override=_commission_override(request),
            previous=prior_terms,
        )

        items.append(
            InvoiceItem(
                product_id=product.product_id,
                quantity=quantity,
                unit_price_hard=price,
                pricing_mode=mode,
                commission_type=terms.type,
                commission_value=terms.value,
                subtotal=to_money(quantity * price),
            )
        )
    return tuple(items)


def _invoice_total(items: Iterable[InvoiceItem]) -> Decimal:
    total = to_money(sum((item.subtotal for item in items), ZERO))
    require_positive_money(total, label="Invoice total")
    return total


def _optional_seller(context: LedgerContext, seller_id: Optional[str]) -> Optional[Seller]:
    if seller_id is None:
        return None
    return context.lookup("sellers", seller_id)


def create_invoice(context: LedgerContext, command: CreateInvoiceCommand) -> Invoice:
    """Issue an invoice and take its items out of stock.

    The stock of every product is checked against the summed quantities of
    all lines before anything is reserved, so a failing line leaves the
    whole ledger untouched. Commission terms are snapshotted onto the lines.
    When the command names a quote, that quote is consumed in the same
    commit.

    Args:
        context (LedgerContext): Ledger to mutate.
        command (CreateInvoiceCommand): Structured invoice intent.

    Returns:
        Invoice: The stored invoice in ``Pending`` status.

    Raises:
        ValidationError: If the items or amounts are malformed.
        MissingReferenceError: If the client, seller, product, or quote is
            unknown.
        InsufficientStock: If any product lacks stock for the requested total.
    """

    context.lookup("clients", command.client_id)
    seller = _optional_seller(context, command.seller_id)
    timestamp = _resolve_timestamp(command.timestamp)

    keys = [product_key(request.product_id) for request in command.items]
    if command.quote_id is not None:
        keys.append(quote_key(command.quote_id))

    with context.locked(*keys):
        removed = []
        if command.quote_id is not None:
            context.lookup("quotes", command.quote_id)
            removed.append(("quotes", command.quote_id))

        items = _build_items(context, command.items, seller=seller, default_mode=command.pricing_mode)
        total = _invoice_total(items)
        movement = StockMovement(context)
        reconcile_stock(movement, (), items, StockDirection.SALE)
        breakdown = compute_commissions(items, seller)

        invoice = Invoice(
            invoice_id=context.next_id("INV", when=timestamp),
            client_id=command.client_id,
            seller_id=command.seller_id,
            created_at=timestamp,
            due_date=timestamp.date() + timedelta(days=context.policy.credit_days),
            items=items,
            total_hard=total,
            balance_hard=total,
            status=InvoiceStatus.PENDING,
            commission_detail=breakdown.detail,
            commission_total=breakdown.total,
            quote_id=command.quote_id,
        )
        context.commit(products=movement.products, invoices=[invoice], removed=removed)

    log.info(
        "Created invoice '%s' for client '%s' (total=%s, commission=%s)",
        invoice.invoice_id,
        invoice.client_id,
        invoice.total_hard,
        invoice.commission_total,
    )
    return invoice


def edit_invoice(context: LedgerContext, command: EditInvoiceCommand) -> Invoice:
    """Replace an invoice's items and seller, reconciling stock by delta.

    Only the per-product difference between the old and new lines touches
    stock. Amounts already paid survive the edit: the new balance is the new
    total minus what had been paid, floored at zero. The creation timestamp
    never changes.

    Raises:
        InvoiceLocked: If the invoice is fully paid.
        InsufficientStock: If a product's quantity grows beyond its stock.
        ValidationError: If the new items are malformed.
        MissingReferenceError: If the invoice or a referenced record is unknown.
    """

    def load() -> Invoice:
        return context.lookup("invoices", command.invoice_id)

    def keys_for(invoice: Invoice):
        return [invoice_key(invoice.invoice_id), *touched_product_keys(invoice.items, command.items)]

    def action(invoice: Invoice) -> Invoice:
        if invoice.status is InvoiceStatus.PAID:
            log.error("Cannot edit invoice '%s' because it is paid", invoice.invoice_id)
            raise InvoiceLocked(f"Invoice {invoice.invoice_id} is paid and can no longer be edited")

        client_id = command.client_id if command.client_id is not None else invoice.client_id
        context.lookup("clients", client_id)
        seller = _optional_seller(context, command.seller_id)

        items = _build_items(
            context,
            command.items,
            seller=seller,
            default_mode=command.pricing_mode,
            previous_items=invoice.items,
            keep_commissions=command.seller_id == invoice.seller_id,
        )
        total = _invoice_total(items)
        movement = StockMovement(context)
        reconcile_stock(movement, invoice.items, items, StockDirection.SALE)
        breakdown = compute_commissions(items, seller)

        paid = invoice.total_hard - invoice.balance_hard
        balance = to_money(max(ZERO, total - paid))
        if paid > total:
            log.warning(
                "Invoice '%s' total %s is below the %s already paid; balance floored at zero",
                invoice.invoice_id,
                total,
                paid,
            )

        updated = replace(
            invoice,
            client_id=client_id,
            seller_id=command.seller_id,
            items=items,
            total_hard=total,
            balance_hard=balance,
            status=invoice_status(total, balance),
            commission_detail=breakdown.detail,
            commission_total=breakdown.total,
        )
        context.commit(products=movement.products, invoices=[updated])
        return updated

    updated = context.run_locked(load, keys_for, action)
    log.info(
        "Edited invoice '%s' (total=%s, balance=%s, status=%s)",
        updated.invoice_id,
        updated.total_hard,
        updated.balance_hard,
        updated.status.value,
    )
    return updated


def delete_invoice(context: LedgerContext, invoice_id: str, *, discard_payments: bool = False) -> Invoice:
    """Remove an unpaid invoice and return its items to stock.

    Invoices that already received payments are only deleted when
    ``discard_payments`` is set or the ledger policy allows it; their payment
    records are removed in the same commit.

    Raises:
        InvoiceLocked: If the invoice is paid, or has payments and discarding
            them was not allowed.
        MissingReferenceError: If the invoice is unknown.
    """

    def load() -> Invoice:
        return context.lookup("invoices", invoice_id)

    def keys_for(invoice: Invoice):
        return [invoice_key(invoice.invoice_id), *touched_product_keys(invoice.items)]

    def action(invoice: Invoice) -> Invoice:
        if invoice.status is InvoiceStatus.PAID:
            log.error("Cannot delete invoice '%s' because it is paid", invoice_id)
            raise InvoiceLocked(f"Invoice {invoice_id} is paid and can no longer be deleted")
        payments = list_invoice_payments(context, invoice_id)
        if payments and not (discard_payments or context.policy.allow_delete_with_payments):
            log.error("Cannot delete invoice '%s' with %d recorded payments", invoice_id, len(payments))
            raise InvoiceLocked(
                f"Invoice {invoice_id} has {len(payments)} payment(s); delete them first"
            )

        movement = StockMovement(context)
        reconcile_stock(movement, invoice.items, (), StockDirection.SALE)
        removed = [("invoices", invoice_id)]
        removed.extend(("invoice_payments", payment.payment_id) for payment in payments)
        context.commit(products=movement.products, removed=removed)
        if payments:
            log.warning(
                "Discarded %d payment(s) totalling %s with invoice '%s'",
                len(payments),
                sum((payment.amount_hard for payment in payments), ZERO),
                invoice_id,
            )
        return invoice

    deleted = context.run_locked(load, keys_for, action)
    log.info("Deleted invoice '%s' and released its stock", invoice_id)
    return deleted


# ---------------------------------------------------------------------------
# Read accessors
# ---------------------------------------------------------------------------


def get_invoice(context: LedgerContext, invoice_id: str) -> Invoice:
    return context.lookup("invoices", invoice_id)


def list_invoices(
    context: LedgerContext,
    *,
    client_id: Optional[str] = None,
    seller_id: Optional[str] = None,
    status: Optional[InvoiceStatus] = None,
) -> List[Invoice]:
    """Return invoices oldest first, optionally filtered."""

    invoices = [
        invoice
        for invoice in context.values("invoices")
        if (client_id is None or invoice.client_id == client_id)
        and (seller_id is None or invoice.seller_id == seller_id)
        and (status is None or invoice.status is status)
    ]
    return sorted(invoices, key=lambda invoice: (invoice.created_at, invoice.invoice_id))


def get_invoice_balance(context: LedgerContext, invoice_id: str) -> Decimal:
    return get_invoice(context, invoice_id).balance_hard


def get_pending_invoices_for_client(context: LedgerContext, client_id: str) -> List[Invoice]:
    """Unsettled invoices of a client, oldest first."""

    context.lookup("clients", client_id)
    return [invoice for invoice in list_invoices(context, client_id=client_id) if not is_settled(invoice.balance_hard)]


def list_overdue_invoices(context: LedgerContext, as_of: Optional[date] = None) -> List[Invoice]:
    """Unsettled invoices whose due date is before ``as_of`` (today by default)."""

    as_of = as_of or _resolve_timestamp(None).date()
    return [
        invoice
        for invoice in list_invoices(context)
        if not is_settled(invoice.balance_hard) and invoice.due_date < as_of
    ]


def list_invoice_payments(context: LedgerContext, invoice_id: str) -> List[Payment]:
    """Payments recorded against an invoice, oldest first."""

    payments = [payment for payment in context.values("invoice_payments") if payment.parent_id == invoice_id]
    return sorted(payments, key=lambda payment: (payment.timestamp, payment.payment_id))
