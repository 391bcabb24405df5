"""Unit tests for the commission calculator."""

from __future__ import annotations

from decimal import Decimal

from sales_ledger.commissions import compute_commissions, line_commission, resolve_commission_terms
from sales_ledger.constants import CommissionType, PricingMode
from sales_ledger.models import CommissionConfig, InvoiceItem, Product, Seller


def _item(product_id: str, quantity: str, price: str, commission_type: CommissionType, value: str) -> InvoiceItem:
    quantity_d = Decimal(quantity)
    price_d = Decimal(price)
    return InvoiceItem(
        product_id=product_id,
        quantity=quantity_d,
        unit_price_hard=price_d,
        pricing_mode=PricingMode.CASH,
        commission_type=commission_type,
        commission_value=Decimal(value),
        subtotal=(quantity_d * price_d).quantize(Decimal("0.01")),
    )


SELLER = Seller(seller_id="S1", name="Maria")


def test_percent_commission_is_rounded_to_cents():
    """Percent commissions apply to the line subtotal and round half up."""

    item = _item("P1", "3", "3.35", CommissionType.PERCENT, "7")
    # 10.05 * 7% = 0.7035
    assert line_commission(item) == Decimal("0.70")


def test_fixed_commission_scales_with_quantity():
    """Fixed commissions are paid per unit of quantity."""

    item = _item("P1", "2.5", "5.80", CommissionType.FIXED, "0.50")
    assert line_commission(item) == Decimal("1.25")


def test_compute_commissions_skips_zero_lines():
    """Lines without a commission are left out of the detail."""

    items = [
        _item("P1", "10", "5.80", CommissionType.FIXED, "0.50"),
        _item("P2", "1", "10.00", CommissionType.PERCENT, "0"),
        _item("P3", "2", "10.00", CommissionType.PERCENT, "5"),
    ]

    breakdown = compute_commissions(items, SELLER)

    assert [line.product_id for line in breakdown.detail] == ["P1", "P3"]
    assert breakdown.total == Decimal("6.00")


def test_compute_commissions_without_seller_is_empty():
    """Invoices with no seller earn nothing."""

    items = [_item("P1", "10", "5.80", CommissionType.FIXED, "0.50")]
    breakdown = compute_commissions(items, None)

    assert breakdown.detail == ()
    assert breakdown.total == Decimal("0.00")


def test_resolve_commission_terms_priority():
    """Override beats previous snapshot, which beats seller config and product default."""

    product = Product(
        product_id="P1",
        name="Cheese",
        sale_price_hard=Decimal("5.80"),
        commission=CommissionConfig(CommissionType.PERCENT, Decimal("2")),
    )
    seller = Seller(
        seller_id="S1",
        name="Maria",
        commissions={"P1": CommissionConfig(CommissionType.FIXED, Decimal("0.50"))},
    )
    override = CommissionConfig(CommissionType.PERCENT, Decimal("9"))
    previous = CommissionConfig(CommissionType.PERCENT, Decimal("4"))

    assert resolve_commission_terms(product, seller, override=override, previous=previous) is override
    assert resolve_commission_terms(product, seller, previous=previous) is previous
    assert resolve_commission_terms(product, seller).value == Decimal("0.50")
    assert resolve_commission_terms(product, None) == product.commission
