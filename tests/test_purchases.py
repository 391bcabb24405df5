"""Unit tests for the purchase ledger."""

from __future__ import annotations

from decimal import Decimal

import pytest

from sales_ledger import inventory, payments, purchases
from sales_ledger.constants import PurchaseStatus
from sales_ledger.errors import MissingReferenceError, PurchaseLocked, ValidationError
from sales_ledger.purchases import CreatePurchaseCommand, EditPurchaseCommand, PurchaseItemRequest


def _purchase(context, *items: PurchaseItemRequest, supplier: str | None = None):
    return purchases.create_purchase(context, CreatePurchaseCommand(items=list(items), supplier=supplier))


def test_create_purchase_receives_stock_and_opens_debt(context):
    """Stock grows, unit cost is recorded, and the debt is converted at the current rate."""

    purchase = _purchase(
        context,
        PurchaseItemRequest("P1", "10", "200.00"),
        PurchaseItemRequest("P2", "5", "300.00", subtotal_hard="40.00"),
        supplier="Dairy Co",
    )

    assert purchase.purchase_id.startswith("PUR")
    assert purchase.total_local == Decimal("3500.00")
    # 2000 / 40 + explicit 40.00
    assert purchase.total_debt_hard == Decimal("90.00")
    assert purchase.balance_hard == purchase.total_debt_hard
    assert purchase.status is PurchaseStatus.PENDING
    assert purchase.supplier == "Dairy Co"
    assert inventory.stock_of(context, "P1") == Decimal("60.000")
    assert inventory.stock_of(context, "P2") == Decimal("25.000")
    assert context.lookup("products", "P1").purchase_cost_local == Decimal("200.00")


@pytest.mark.parametrize(
    "request_",
    [
        PurchaseItemRequest("P1", "0", "10"),
        PurchaseItemRequest("P1", "1", "0"),
        PurchaseItemRequest("P1", "1", "10", subtotal_hard="0"),
    ],
)
def test_create_purchase_rejects_invalid_lines(context, request_):
    with pytest.raises(ValidationError):
        _purchase(context, request_)

    assert purchases.list_purchases(context) == []
    assert inventory.stock_of(context, "P1") == Decimal("50.000")


def test_create_purchase_rejects_empty_and_unknown(context):
    with pytest.raises(ValidationError):
        _purchase(context)
    with pytest.raises(MissingReferenceError):
        _purchase(context, PurchaseItemRequest("NOPE", "1", "10"))


def test_edit_purchase_moves_stock_by_delta(context):
    purchase = _purchase(context, PurchaseItemRequest("P1", "10", "200.00"))

    updated = purchases.edit_purchase(
        context,
        EditPurchaseCommand(purchase.purchase_id, [PurchaseItemRequest("P1", "4", "200.00")]),
    )

    assert inventory.stock_of(context, "P1") == Decimal("54.000")
    assert updated.total_debt_hard == Decimal("20.00")
    assert updated.balance_hard == Decimal("20.00")


def test_edit_purchase_reversal_bottoms_out_at_zero(context):
    """Goods already sold cannot push stock negative when a receipt shrinks."""

    purchase = _purchase(context, PurchaseItemRequest("P2", "10", "400.00"))
    inventory.reserve(context, "P2", "28")

    purchases.edit_purchase(
        context,
        EditPurchaseCommand(purchase.purchase_id, [PurchaseItemRequest("P1", "1", "400.00")]),
    )

    assert inventory.stock_of(context, "P2") == Decimal("0.000")
    assert inventory.stock_of(context, "P1") == Decimal("51.000")


def test_edit_purchase_keeps_payments_and_supplier(context):
    purchase = _purchase(context, PurchaseItemRequest("P1", "10", "400.00"), supplier="Dairy Co")
    payments.apply_purchase_payment(context, purchase.purchase_id, "30")

    updated = purchases.edit_purchase(
        context,
        EditPurchaseCommand(purchase.purchase_id, [PurchaseItemRequest("P1", "20", "400.00")]),
    )

    assert updated.total_debt_hard == Decimal("200.00")
    assert updated.balance_hard == Decimal("170.00")
    assert len(updated.payments) == 1
    assert updated.supplier == "Dairy Co"


def test_edit_purchase_below_paid_floors_balance(context):
    purchase = _purchase(context, PurchaseItemRequest("P1", "10", "400.00"))
    payments.apply_purchase_payment(context, purchase.purchase_id, "60")

    updated = purchases.edit_purchase(
        context,
        EditPurchaseCommand(purchase.purchase_id, [PurchaseItemRequest("P1", "5", "400.00")]),
    )

    assert updated.balance_hard == Decimal("0.00")
    assert updated.status is PurchaseStatus.PAID


def test_paid_purchase_is_locked(context):
    purchase = _purchase(context, PurchaseItemRequest("P1", "10", "400.00"))
    payments.apply_purchase_payment(context, purchase.purchase_id, "100")

    with pytest.raises(PurchaseLocked):
        purchases.edit_purchase(
            context,
            EditPurchaseCommand(purchase.purchase_id, [PurchaseItemRequest("P1", "1", "400.00")]),
        )
    with pytest.raises(PurchaseLocked):
        purchases.delete_purchase(context, purchase.purchase_id)


def test_delete_purchase_withdraws_stock(context):
    purchase = _purchase(context, PurchaseItemRequest("P1", "10", "400.00"))

    purchases.delete_purchase(context, purchase.purchase_id)

    assert inventory.stock_of(context, "P1") == Decimal("50.000")
    with pytest.raises(MissingReferenceError):
        purchases.get_purchase(context, purchase.purchase_id)


def test_delete_purchase_with_payments_requires_discard(context):
    """Payments block deletion unless the caller discards them."""

    purchase = _purchase(context, PurchaseItemRequest("P1", "10", "400.00"))
    payments.apply_purchase_payment(context, purchase.purchase_id, "10")

    with pytest.raises(PurchaseLocked):
        purchases.delete_purchase(context, purchase.purchase_id)

    purchases.delete_purchase(context, purchase.purchase_id, discard_payments=True)
    assert purchases.list_purchases(context) == []


def test_purchase_debt_total_ignores_settled(context):
    first = _purchase(context, PurchaseItemRequest("P1", "10", "400.00"))
    second = _purchase(context, PurchaseItemRequest("P2", "2", "400.00"))
    payments.apply_purchase_payment(context, first.purchase_id, "100")
    payments.apply_purchase_payment(context, second.purchase_id, "5")

    assert purchases.get_purchase_debt_total(context) == Decimal("15.00")
    assert [p.purchase_id for p in purchases.list_purchases(context, status=PurchaseStatus.PENDING)] == [
        second.purchase_id
    ]
