"""Purchase ledger.

Mirror of the invoice ledger for incoming goods. Purchases add stock through
the receipt direction of delta reconciliation and record a debt in the hard
currency that is paid down through :mod:`sales_ledger.payments`. Costs are
entered in the local currency; the hard-currency debt of each line is either
given explicitly or converted at the current rate.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from . import log
from .constants import PurchaseStatus, StockDirection
from .context import LedgerContext, _resolve_timestamp, purchase_key
from .errors import PurchaseLocked, ValidationError
from .inventory import StockMovement, reconcile_stock, touched_product_keys
from .models import Purchase, PurchaseItem
from .money import (
    ZERO,
    Numeric,
    is_settled,
    purchase_status,
    require_positive_money,
    require_positive_quantity,
    to_money,
    to_quantity,
)


@dataclass(frozen=True)
class PurchaseItemRequest:
    product_id: str
    quantity: Numeric
    unit_cost_local: Numeric
    subtotal_hard: Optional[Numeric] = None


@dataclass(frozen=True)
class CreatePurchaseCommand:
    items: Sequence[PurchaseItemRequest]
    supplier: Optional[str] = None
    timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class EditPurchaseCommand:
    """Replacement items for a purchase; ``supplier`` is kept when omitted."""

    purchase_id: str
    items: Sequence[PurchaseItemRequest]
    supplier: Optional[str] = None


def _build_items(context: LedgerContext, requests: Sequence[PurchaseItemRequest]) -> Tuple[PurchaseItem, ...]:
    if not requests:
        log.error("Purchase validation failed: no items supplied")
        raise ValidationError("A purchase needs at least one item")

    rate: Optional[Decimal] = None
    items: List[PurchaseItem] = []
    for request in requests:
        context.lookup("products", request.product_id)
        quantity = to_quantity(request.quantity)
        require_positive_quantity(quantity)
        unit_cost = to_money(request.unit_cost_local)
        require_positive_money(unit_cost, label="Unit cost")
        subtotal_local = to_money(quantity * unit_cost)
        if request.subtotal_hard is not None:
            subtotal_hard = to_money(request.subtotal_hard)
        else:
            if rate is None:
                rate = context.rates.current_rate()
            subtotal_hard = to_money(subtotal_local / rate)
        require_positive_money(subtotal_hard, label="Hard-currency subtotal")
        items.append(
            PurchaseItem(
                product_id=request.product_id,
                quantity=quantity,
                unit_cost_local=unit_cost,
                subtotal_local=subtotal_local,
                subtotal_hard=subtotal_hard,
            )
        )
    return tuple(items)


def _totals(items: Iterable[PurchaseItem]) -> Tuple[Decimal, Decimal]:
    items = list(items)
    total_local = to_money(sum((item.subtotal_local for item in items), ZERO))
    total_hard = to_money(sum((item.subtotal_hard for item in items), ZERO))
    return total_local, total_hard


def _record_unit_costs(movement: StockMovement, items: Iterable[PurchaseItem]) -> None:
    for item in items:
        movement.update_unit_cost(item.product_id, item.unit_cost_local)


def create_purchase(context: LedgerContext, command: CreatePurchaseCommand) -> Purchase:
    """Receive goods into stock and open the matching supplier debt.

    Args:
        context (LedgerContext): Ledger to mutate.
        command (CreatePurchaseCommand): Items and optional supplier.

    Returns:
        Purchase: The stored purchase in ``Pending`` status.

    Raises:
        ValidationError: If the items are malformed.
        MissingReferenceError: If a product is unknown.
    """

    timestamp = _resolve_timestamp(command.timestamp)
    keys = touched_product_keys(command.items)
    with context.locked(*keys):
        items = _build_items(context, command.items)
        total_local, total_hard = _totals(items)
        movement = StockMovement(context)
        reconcile_stock(movement, (), items, StockDirection.RECEIPT)
        _record_unit_costs(movement, items)
        purchase = Purchase(
            purchase_id=context.next_id("PUR", when=timestamp),
            timestamp=timestamp,
            items=items,
            total_local=total_local,
            total_debt_hard=total_hard,
            balance_hard=total_hard,
            status=PurchaseStatus.PENDING,
            supplier=command.supplier,
        )
        context.commit(products=movement.products, purchases=[purchase])

    log.info(
        "Created purchase '%s' (total_local=%s, debt=%s)",
        purchase.purchase_id,
        purchase.total_local,
        purchase.total_debt_hard,
    )
    return purchase


def edit_purchase(context: LedgerContext, command: EditPurchaseCommand) -> Purchase:
    """Replace the items of an unpaid purchase.

    Stock moves by the per-product difference; reductions of goods that were
    already sold bottom out at zero. Payments made so far are kept and the new
    balance is the new debt minus their sum, floored at zero.

    Raises:
        PurchaseLocked: If the purchase is fully paid.
    """

    def load() -> Purchase:
        return context.lookup("purchases", command.purchase_id)

    def keys_for(purchase: Purchase):
        return [purchase_key(purchase.purchase_id), *touched_product_keys(purchase.items, command.items)]

    def action(purchase: Purchase) -> Purchase:
        if purchase.status is PurchaseStatus.PAID:
            log.error("Cannot edit purchase '%s' because it is paid", purchase.purchase_id)
            raise PurchaseLocked(f"Purchase {purchase.purchase_id} is paid and can no longer be edited")

        items = _build_items(context, command.items)
        total_local, total_hard = _totals(items)
        movement = StockMovement(context)
        reconcile_stock(movement, purchase.items, items, StockDirection.RECEIPT)
        _record_unit_costs(movement, items)

        paid = purchase.paid_hard
        balance = to_money(max(ZERO, total_hard - paid))
        if paid > total_hard:
            log.warning(
                "Purchase '%s' debt %s is below the %s already paid; balance floored at zero",
                purchase.purchase_id,
                total_hard,
                paid,
            )
        updated = replace(
            purchase,
            items=items,
            total_local=total_local,
            total_debt_hard=total_hard,
            balance_hard=balance,
            status=purchase_status(total_hard, balance),
            supplier=command.supplier if command.supplier is not None else purchase.supplier,
        )
        context.commit(products=movement.products, purchases=[updated])
        return updated

    updated = context.run_locked(load, keys_for, action)
    log.info("Edited purchase '%s' (debt=%s, balance=%s)", updated.purchase_id, updated.total_debt_hard, updated.balance_hard)
    return updated


def delete_purchase(context: LedgerContext, purchase_id: str, *, discard_payments: bool = False) -> Purchase:
    """Remove an unpaid purchase and take its goods back out of stock.

    Raises:
        PurchaseLocked: If the purchase is paid, or has payments and
            discarding them was not allowed.
    """

    def load() -> Purchase:
        return context.lookup("purchases", purchase_id)

    def keys_for(purchase: Purchase):
        return [purchase_key(purchase.purchase_id), *touched_product_keys(purchase.items)]

    def action(purchase: Purchase) -> Purchase:
        if purchase.status is PurchaseStatus.PAID:
            log.error("Cannot delete purchase '%s' because it is paid", purchase_id)
            raise PurchaseLocked(f"Purchase {purchase_id} is paid and can no longer be deleted")
        if purchase.payments and not (discard_payments or context.policy.allow_delete_with_payments):
            log.error("Cannot delete purchase '%s' with %d recorded payments", purchase_id, len(purchase.payments))
            raise PurchaseLocked(
                f"Purchase {purchase_id} has {len(purchase.payments)} payment(s); delete them first"
            )
        movement = StockMovement(context)
        reconcile_stock(movement, purchase.items, (), StockDirection.RECEIPT)
        context.commit(products=movement.products, removed=[("purchases", purchase_id)])
        if purchase.payments:
            log.warning(
                "Discarded %d payment(s) totalling %s with purchase '%s'",
                len(purchase.payments),
                purchase.paid_hard,
                purchase_id,
            )
        return purchase

    deleted = context.run_locked(load, keys_for, action)
    log.info("Deleted purchase '%s' and reversed its stock", purchase_id)
    return deleted


def get_purchase(context: LedgerContext, purchase_id: str) -> Purchase:
    return context.lookup("purchases", purchase_id)


def list_purchases(context: LedgerContext, *, status: Optional[PurchaseStatus] = None) -> List[Purchase]:
    purchases = [
        purchase for purchase in context.values("purchases") if status is None or purchase.status is status
    ]
    return sorted(purchases, key=lambda purchase: (purchase.timestamp, purchase.purchase_id))


def get_purchase_debt_total(context: LedgerContext) -> Decimal:
    """Outstanding supplier debt across every unsettled purchase."""

    total = sum(
        (purchase.balance_hard for purchase in context.values("purchases") if not is_settled(purchase.balance_hard)),
        ZERO,
    )
    return to_money(total)
