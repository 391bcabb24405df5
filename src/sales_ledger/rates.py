"""Exchange-rate collaborator interface.

The ledger never depends on the rate for balance math. It only reads the
current hard-to-local rate when a payment or purchase line is recorded, to
capture display amounts in the local currency.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol

from . import log
from .errors import ValidationError
from .money import Numeric, to_decimal


class ExchangeRateProvider(Protocol):
    """Anything able to report the current local units per hard unit."""

    def current_rate(self) -> Decimal:
        ...


class FixedRateProvider:
    """Rate provider returning a manually configured value."""

    def __init__(self, rate: Numeric) -> None:
        self._rate = _validated(rate)

    def current_rate(self) -> Decimal:
        return self._rate

    def update(self, rate: Numeric) -> None:
        """Replace the configured rate; already recorded payments keep theirs."""

        self._rate = _validated(rate)
        log.info("Exchange rate updated to %s", self._rate)


def _validated(rate: Numeric) -> Decimal:
    value = to_decimal(rate)
    if value <= Decimal("0"):
        log.error("Exchange rate validation failed: %s", value)
        raise ValidationError("Exchange rate must be greater than zero")
    return value
