"""Exception taxonomy for the sales ledger.

Every rejected operation raises a subclass of :class:`BusinessRuleViolation`
before the first state write, so callers can treat all of them as recoverable
at the call boundary.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Optional


class BusinessRuleViolation(Exception):
    """Raised when a requested operation violates a domain constraint."""


class ValidationError(BusinessRuleViolation, ValueError):
    """Raised for malformed input such as non-positive quantities."""


class InvalidAmount(ValidationError):
    """Raised when a monetary amount is zero, negative, or out of range."""


class MissingReferenceError(BusinessRuleViolation, KeyError):
    """Raised when a referenced product, client, seller, or record is unknown."""

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message.
        return str(self.args[0]) if self.args else ""


class InsufficientStock(BusinessRuleViolation):
    """Raised when a reservation exceeds the available stock of a product."""

    def __init__(self, product_id: str, requested: Decimal, available: Decimal) -> None:
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Insufficient stock for product '{product_id}': "
            f"requested {requested}, available {available}"
        )


class ExceedsBalance(BusinessRuleViolation):
    """Raised when a payment is larger than the remaining balance."""

    def __init__(self, amount: Decimal, balance: Decimal, parent_id: Optional[str] = None) -> None:
        self.amount = amount
        self.balance = balance
        self.parent_id = parent_id
        super().__init__(f"Payment of {amount} exceeds the outstanding balance of {balance}")


class RecordLocked(BusinessRuleViolation):
    """Raised when a record can no longer be edited or deleted."""


class InvoiceLocked(RecordLocked):
    """Raised when editing or deleting an invoice that is fully paid."""


class PurchaseLocked(RecordLocked):
    """Raised when editing or deleting a purchase that is fully paid."""


__all__ = [
    "BusinessRuleViolation",
    "ValidationError",
    "InvalidAmount",
    "MissingReferenceError",
    "InsufficientStock",
    "ExceedsBalance",
    "RecordLocked",
    "InvoiceLocked",
    "PurchaseLocked",
]
