"""Fixed-precision arithmetic helpers for money and quantities.

All balances are tracked in the hard currency as :class:`~decimal.Decimal`
values quantized to cents. Quantities are weights in kilograms quantized to
grams. Comparisons against zero go through :data:`constants.EPSILON` so that
residue from repeated subtraction never leaves a record half-settled.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from . import log
from .constants import EPSILON, InvoiceStatus, PurchaseStatus
from .errors import InvalidAmount, ValidationError

CENT = Decimal("0.01")
GRAM = Decimal("0.001")
ZERO = Decimal("0.00")

Numeric = Union[Decimal, int, float, str]


def to_decimal(value: Numeric) -> Decimal:
    """Coerce ``value`` into a :class:`Decimal` without binary float noise.

    Floats are routed through ``str`` so that ``5.8`` becomes ``Decimal("5.8")``
    rather than its binary expansion.

    Raises:
        ValidationError: If ``value`` cannot be interpreted as a number, or is
            NaN or infinite.
    """

    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value))
        except (InvalidOperation, ValueError) as exc:
            log.error("Numeric conversion failed for value %r", value)
            raise ValidationError(f"Not a valid number: {value!r}") from exc
    if not result.is_finite():
        log.error("Numeric conversion rejected non-finite value %r", value)
        raise ValidationError(f"Not a finite number: {value!r}")
    return result


def to_money(value: Numeric) -> Decimal:
    """Quantize ``value`` to cents using half-up rounding."""

    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def to_quantity(value: Numeric) -> Decimal:
    """Quantize ``value`` to three decimal places (grams)."""

    return to_decimal(value).quantize(GRAM, rounding=ROUND_HALF_UP)


def is_settled(balance: Decimal) -> bool:
    return balance <= EPSILON


def exceeds(amount: Decimal, limit: Decimal) -> bool:
    """Return ``True`` when ``amount`` is larger than ``limit`` beyond tolerance."""

    return amount - limit > EPSILON


def invoice_status(total: Decimal, balance: Decimal) -> InvoiceStatus:
    """Derive the invoice status label from its total and remaining balance."""

    if is_settled(balance):
        return InvoiceStatus.PAID
    if balance < total:
        return InvoiceStatus.PARTIAL
    return InvoiceStatus.PENDING


def purchase_status(total: Decimal, balance: Decimal) -> PurchaseStatus:
    """Derive the binary purchase status; partial debts remain ``Pending``."""

    return PurchaseStatus.PAID if is_settled(balance) else PurchaseStatus.PENDING


def require_positive_quantity(quantity: Decimal) -> None:
    """Validate that a quantity is strictly positive.

    Raises:
        ValidationError: If ``quantity`` is zero or negative.
    """

    if quantity <= Decimal("0"):
        log.error("Quantity validation failed: %s", quantity)
        raise ValidationError("Quantity must be greater than zero")


def require_positive_money(amount: Decimal, *, label: str = "Amount") -> None:
    """Validate that a monetary value is strictly positive.

    Raises:
        InvalidAmount: If ``amount`` is zero or negative.
    """

    if amount <= Decimal("0"):
        log.error("%s validation failed: %s", label, amount)
        raise InvalidAmount(f"{label} must be greater than zero")


def require_nonnegative_money(amount: Decimal, *, label: str = "Amount") -> None:
    """Validate that a monetary value is zero or positive."""

    if amount < Decimal("0"):
        log.error("%s validation failed: %s", label, amount)
        raise InvalidAmount(f"{label} must be zero or positive")
