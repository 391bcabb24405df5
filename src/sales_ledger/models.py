"""Immutable records owned by the ledger context.

Every entity is a frozen dataclass. The ledger never edits a record in place:
operations build replacement records with :func:`dataclasses.replace` and
commit them to the context in one step, which keeps readers from observing a
half-applied change.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import List, Mapping, Optional, Tuple

from .constants import CommissionType, InvoiceStatus, PricingMode, PurchaseStatus


@dataclass(frozen=True)
class CommissionConfig:
    """Commission scheme attached to a product or a seller/product pair."""

    type: CommissionType = CommissionType.PERCENT
    value: Decimal = Decimal("0")


@dataclass(frozen=True)
class Product:
    """Catalog entry together with the stock counter owned by the ledger."""

    product_id: str
    name: str
    sale_price_hard: Decimal
    stock_qty: Decimal = Decimal("0.000")
    purchase_cost_local: Decimal = Decimal("0.00")
    commission: CommissionConfig = field(default_factory=CommissionConfig)


@dataclass(frozen=True)
class Client:
    """Read-only client directory entry."""

    client_id: str
    name: str
    phone: Optional[str] = None


@dataclass(frozen=True)
class CommissionPayment:
    """Append-only record of a commission paid out to a seller."""

    payment_id: str
    seller_id: str
    timestamp: datetime
    amount_hard: Decimal
    local_rate_at_time: Decimal
    amount_local: Decimal
    reference: str
    invoice_ids: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Seller:
    """Seller directory entry with per-product commission overrides."""

    seller_id: str
    name: str
    commissions: Mapping[str, CommissionConfig] = field(default_factory=dict)
    commission_payments: Tuple[CommissionPayment, ...] = ()


@dataclass(frozen=True)
class InvoiceItem:
    """A priced invoice line carrying its commission snapshot."""

    product_id: str
    quantity: Decimal
    unit_price_hard: Decimal
    pricing_mode: PricingMode
    commission_type: CommissionType
    commission_value: Decimal
    subtotal: Decimal


@dataclass(frozen=True)
class CommissionLine:
    """Commission earned on one invoice line."""

    product_id: str
    commission_type: CommissionType
    commission_value: Decimal
    commission: Decimal


@dataclass(frozen=True)
class Payment:
    """Money received against an invoice or paid against a purchase."""

    payment_id: str
    parent_id: str
    timestamp: datetime
    amount_hard: Decimal
    local_rate_at_time: Decimal
    amount_local: Decimal
    method: str
    reference: Optional[str] = None


@dataclass(frozen=True)
class Invoice:
    """Sales invoice with balance tracked in the hard currency."""

    invoice_id: str
    client_id: str
    seller_id: Optional[str]
    created_at: datetime
    due_date: date
    items: Tuple[InvoiceItem, ...]
    total_hard: Decimal
    balance_hard: Decimal
    status: InvoiceStatus
    commission_detail: Tuple[CommissionLine, ...] = ()
    commission_total: Decimal = Decimal("0.00")
    quote_id: Optional[str] = None

    @property
    def paid_hard(self) -> Decimal:
        return self.total_hard - self.balance_hard


@dataclass(frozen=True)
class PurchaseItem:
    """Incoming goods line; cost is entered in the local currency."""

    product_id: str
    quantity: Decimal
    unit_cost_local: Decimal
    subtotal_local: Decimal
    subtotal_hard: Decimal


@dataclass(frozen=True)
class Purchase:
    """Supplier purchase and the payable it creates."""

    purchase_id: str
    timestamp: datetime
    items: Tuple[PurchaseItem, ...]
    total_local: Decimal
    total_debt_hard: Decimal
    balance_hard: Decimal
    status: PurchaseStatus
    payments: Tuple[Payment, ...] = ()
    supplier: Optional[str] = None

    @property
    def paid_hard(self) -> Decimal:
        return sum((payment.amount_hard for payment in self.payments), Decimal("0.00"))


@dataclass(frozen=True)
class QuoteItem:
    product_id: str
    quantity: Decimal


@dataclass(frozen=True)
class Quote:
    """Customer order awaiting conversion into an invoice."""

    quote_id: str
    client_id: str
    created_at: datetime
    items: Tuple[QuoteItem, ...]
    delivery_date: Optional[date] = None
    notes: Optional[str] = None


@dataclass
class LedgerData:
    """Plain snapshot of every collection, used for persistence and export."""

    products: List[Product] = field(default_factory=list)
    clients: List[Client] = field(default_factory=list)
    sellers: List[Seller] = field(default_factory=list)
    invoices: List[Invoice] = field(default_factory=list)
    invoice_payments: List[Payment] = field(default_factory=list)
    purchases: List[Purchase] = field(default_factory=list)
    quotes: List[Quote] = field(default_factory=list)


__all__ = [
    "CommissionConfig",
    "Product",
    "Client",
    "CommissionPayment",
    "Seller",
    "InvoiceItem",
    "CommissionLine",
    "Payment",
    "Invoice",
    "PurchaseItem",
    "Purchase",
    "QuoteItem",
    "Quote",
    "LedgerData",
]
