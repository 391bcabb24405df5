"""Enumerations and numeric policy shared across the sales ledger modules.

Centralises domain constants so that the data access layer (DAL), the ledger
components, and the CLI rely on a single source of truth for status labels,
sheet names, and the monetary tolerance used in every balance comparison.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "2.0.0"

# Balances at or below this amount (hard currency) count as settled.
EPSILON = Decimal("0.01")

# A payment covering at least this share of the balance settles it in full.
FULL_SETTLEMENT_THRESHOLD = Decimal("0.95")

DEFAULT_SELLER_ID = "default-direct-sale"
DEFAULT_CREDIT_SURCHARGE_PERCENT = Decimal("10")
DEFAULT_CREDIT_DAYS = 15


class InvoiceStatus(str, Enum):
    """Enumerate the lifecycle labels of a sales invoice."""

    PENDING = "Pending"
    PARTIAL = "Partial"
    PAID = "Paid"


class PurchaseStatus(str, Enum):
    """Enumerate the lifecycle labels of a supplier purchase."""

    PENDING = "Pending"
    PAID = "Paid"


class PricingMode(str, Enum):
    """Enumerate how an invoice line was priced."""

    CASH = "cash"
    CREDIT = "credit"


class CommissionType(str, Enum):
    """Enumerate supported commission schemes."""

    PERCENT = "percent"
    FIXED = "fixed"


class StockDirection(Enum):
    """Whether reconciled items leave stock (sales) or enter it (receipts)."""

    SALE = "sale"
    RECEIPT = "receipt"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    META = "Meta"
    PRODUCTS = "Products"
    CLIENTS = "Clients"
    SELLERS = "Sellers"
    SELLER_COMMISSIONS = "SellerCommissions"
    INVOICES = "Invoices"
    INVOICE_ITEMS = "InvoiceItems"
    COMMISSION_DETAIL = "CommissionDetail"
    INVOICE_PAYMENTS = "InvoicePayments"
    PURCHASES = "Purchases"
    PURCHASE_ITEMS = "PurchaseItems"
    PURCHASE_PAYMENTS = "PurchasePayments"
    COMMISSION_PAYMENTS = "CommissionPayments"
    QUOTES = "Quotes"
    QUOTE_ITEMS = "QuoteItems"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "EPSILON",
    "FULL_SETTLEMENT_THRESHOLD",
    "DEFAULT_SELLER_ID",
    "DEFAULT_CREDIT_SURCHARGE_PERCENT",
    "DEFAULT_CREDIT_DAYS",
    "InvoiceStatus",
    "PurchaseStatus",
    "PricingMode",
    "CommissionType",
    "StockDirection",
    "SheetName",
]
