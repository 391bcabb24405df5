"""Inventory store and delta reconciliation.

Stock lives on :class:`~sales_ledger.models.Product` records and is only
changed through this module. Ledgers stage stock movements on a
:class:`StockMovement`, which validates every change against the staged
state and hands back replacement product records; the caller commits those
together with the invoice or purchase they belong to.

Delta reconciliation compares the per-product quantities of an old and a new
item set and applies only the difference. It is the single algorithm behind
creating (old set empty), editing, and deleting (new set empty) both invoices
and purchases; the direction decides whether stock leaves (sales) or enters
(purchases).
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import replace
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Protocol

from . import log
from .constants import StockDirection
from .context import LedgerContext, LockKey, product_key
from .errors import InsufficientStock
from .models import Product
from .money import Numeric, require_positive_quantity, to_money, to_quantity

ZERO_QTY = Decimal("0.000")


class StockLine(Protocol):
    product_id: str
    quantity: Decimal


class StockMovement:
    """Staged stock changes against the current product records."""

    def __init__(self, context: LedgerContext) -> None:
        self._context = context
        self._staged: Dict[str, Product] = {}

    def product(self, product_id: str) -> Product:
        staged = self._staged.get(product_id)
        if staged is not None:
            return staged
        return self._context.lookup("products", product_id)

    def stock_of(self, product_id: str) -> Decimal:
        return self.product(product_id).stock_qty

    def reserve(self, product_id: str, quantity: Decimal) -> Decimal:
        """Take ``quantity`` out of stock or raise :class:`InsufficientStock`."""

        require_positive_quantity(quantity)
        product = self.product(product_id)
        if quantity > product.stock_qty:
            log.warning(
                "Reservation of %s on product '%s' exceeds stock %s",
                quantity,
                product_id,
                product.stock_qty,
            )
            raise InsufficientStock(product_id, quantity, product.stock_qty)
        return self._set_stock(product, product.stock_qty - quantity)

    def release(self, product_id: str, quantity: Decimal) -> Decimal:
        """Return ``quantity`` to stock."""

        require_positive_quantity(quantity)
        product = self.product(product_id)
        new_stock = product.stock_qty + quantity
        if new_stock < ZERO_QTY:
            log.warning("Stock of product '%s' was negative; flooring at zero", product_id)
            new_stock = ZERO_QTY
        return self._set_stock(product, new_stock)

    def receive(self, product_id: str, quantity: Decimal, new_unit_cost: Optional[Decimal] = None) -> Decimal:
        """Add received goods and optionally record their unit cost."""

        require_positive_quantity(quantity)
        product = self.product(product_id)
        new_stock = self._set_stock(product, product.stock_qty + quantity)
        if new_unit_cost is not None:
            self.update_unit_cost(product_id, new_unit_cost)
        return new_stock

    def withdraw(self, product_id: str, quantity: Decimal) -> Decimal:
        """Remove previously received goods, clamping stock at zero.

        Goods may already have been sold by the time a purchase is reversed;
        in that case the stock bottoms out at zero instead of failing.
        """

        require_positive_quantity(quantity)
        product = self.product(product_id)
        new_stock = product.stock_qty - quantity
        if new_stock < ZERO_QTY:
            log.warning(
                "Reversing %s of product '%s' exceeds stock %s; clamping at zero",
                quantity,
                product_id,
                product.stock_qty,
            )
            new_stock = ZERO_QTY
        return self._set_stock(product, new_stock)

    def update_unit_cost(self, product_id: str, unit_cost: Decimal) -> None:
        product = self.product(product_id)
        self._staged[product_id] = replace(product, purchase_cost_local=to_money(unit_cost))

    def _set_stock(self, product: Product, stock: Decimal) -> Decimal:
        stock = to_quantity(stock)
        self._staged[product.product_id] = replace(product, stock_qty=stock)
        return stock

    @property
    def products(self) -> List[Product]:
        """Replacement records for every product touched so far."""

        return list(self._staged.values())


def quantities_by_product(items: Iterable[StockLine]) -> Dict[str, Decimal]:
    """Sum item quantities per product id."""

    totals: Dict[str, Decimal] = defaultdict(lambda: ZERO_QTY)
    for item in items:
        totals[item.product_id] += item.quantity
    return dict(totals)


def stock_deltas(old_items: Iterable[StockLine], new_items: Iterable[StockLine]) -> Dict[str, Decimal]:
    """Return ``new - old`` quantity per product, omitting unchanged products."""

    old_counts = quantities_by_product(old_items)
    new_counts = quantities_by_product(new_items)
    deltas: Dict[str, Decimal] = {}
    for product_id in sorted(set(old_counts) | set(new_counts)):
        delta = new_counts.get(product_id, ZERO_QTY) - old_counts.get(product_id, ZERO_QTY)
        if delta != 0:
            deltas[product_id] = delta
    return deltas


def reconcile_stock(
    movement: StockMovement,
    old_items: Iterable[StockLine],
    new_items: Iterable[StockLine],
    direction: StockDirection,
) -> Mapping[str, Decimal]:
    """Apply the stock effect of replacing ``old_items`` with ``new_items``.

    For sales, every product whose quantity grows is checked against its
    available stock before anything is staged, so an infeasible edit fails
    as a whole with :class:`InsufficientStock`. Products whose quantity
    shrinks are released back to stock.

    For receipts, growth is received and shrinkage is withdrawn with the
    stock clamped at zero; receipts never fail on stock.

    Args:
        movement (StockMovement): Staging area the changes are recorded on.
        old_items: Items the entity held before the change (empty on create).
        new_items: Items the entity holds after the change (empty on delete).
        direction (StockDirection): ``SALE`` or ``RECEIPT``.

    Returns:
        Mapping[str, Decimal]: The applied ``new - old`` delta per product.

    Raises:
        InsufficientStock: When a sale needs more stock than is available.
        MissingReferenceError: When an item references an unknown product.
    """

    deltas = stock_deltas(old_items, new_items)
    for product_id in deltas:
        movement.product(product_id)

    if direction is StockDirection.SALE:
        for product_id, delta in deltas.items():
            available = movement.stock_of(product_id)
            if delta > 0 and delta > available:
                log.warning(
                    "Stock check failed for product '%s': needs %s more, %s available",
                    product_id,
                    delta,
                    available,
                )
                raise InsufficientStock(product_id, delta, available)
        for product_id, delta in deltas.items():
            if delta > 0:
                movement.reserve(product_id, delta)
            else:
                movement.release(product_id, -delta)
    else:
        for product_id, delta in deltas.items():
            if delta > 0:
                movement.receive(product_id, delta)
            else:
                movement.withdraw(product_id, -delta)

    log.debug("Reconciled stock deltas (%s): %s", direction.name, deltas)
    return deltas


def touched_product_keys(*item_sets: Iterable[StockLine]) -> List[LockKey]:
    """Lock keys for every product referenced by the given item sets."""

    return [product_key(product_id) for items in item_sets for product_id in {item.product_id for item in items}]


# ---------------------------------------------------------------------------
# Stand-alone store operations
# ---------------------------------------------------------------------------


def stock_of(context: LedgerContext, product_id: str) -> Decimal:
    return context.lookup("products", product_id).stock_qty


def reserve(context: LedgerContext, product_id: str, quantity: Numeric) -> Decimal:
    """Decrement stock atomically; fails with :class:`InsufficientStock`."""

    return _single(context, product_id, lambda movement: movement.reserve(product_id, to_quantity(quantity)))


def release(context: LedgerContext, product_id: str, quantity: Numeric) -> Decimal:
    """Increment stock atomically."""

    return _single(context, product_id, lambda movement: movement.release(product_id, to_quantity(quantity)))


def receive(
    context: LedgerContext,
    product_id: str,
    quantity: Numeric,
    new_unit_cost: Optional[Numeric] = None,
) -> Decimal:
    """Increment stock and update the product's last unit cost."""

    cost = to_money(new_unit_cost) if new_unit_cost is not None else None
    return _single(context, product_id, lambda movement: movement.receive(product_id, to_quantity(quantity), cost))


def withdraw(context: LedgerContext, product_id: str, quantity: Numeric) -> Decimal:
    """Take received goods back out of stock, bottoming out at zero."""

    return _single(context, product_id, lambda movement: movement.withdraw(product_id, to_quantity(quantity)))


def _single(context: LedgerContext, product_id: str, operation: Callable[[StockMovement], Decimal]) -> Decimal:
    with context.locked(product_key(product_id)):
        movement = StockMovement(context)
        new_stock = operation(movement)
        context.commit(products=movement.products)
    log.info("Stock of product '%s' is now %s", product_id, new_stock)
    return new_stock
