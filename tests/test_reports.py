"""Unit tests for read-only ledger summaries."""

from __future__ import annotations

from decimal import Decimal

from sales_ledger import commission_payouts, payments, purchases, reports
from sales_ledger.purchases import CreatePurchaseCommand, PurchaseItemRequest


def test_calculate_inventory_reports_every_product(context, make_invoice):
    make_invoice(("P1", "7.5"))

    assert reports.calculate_inventory(context) == {
        "P1": Decimal("42.500"),
        "P2": Decimal("20.000"),
    }


def test_calculate_receivables_groups_by_client(context, make_invoice):
    """Settled invoices drop out and the total spans every client."""

    first = make_invoice(("P1", "10"))
    make_invoice(("P2", "2"))
    make_invoice(("P2", "3"), client_id="C2")
    settled = make_invoice(("P1", "1"), client_id="C2")
    payments.apply_invoice_payment(context, first.invoice_id, "8")
    payments.apply_invoice_payment(context, settled.invoice_id, "5.80")

    assert reports.calculate_receivables(context) == {
        "C1": Decimal("70.00"),
        "C2": Decimal("30.00"),
        "total": Decimal("100.00"),
    }


def test_calculate_receivables_when_nothing_is_owed(context):
    assert reports.calculate_receivables(context) == {"total": Decimal("0.00")}


def test_calculate_sales_summary(context, make_invoice):
    invoice = make_invoice(("P1", "10"))  # 58.00, commission 5.00
    make_invoice(("P2", "4"), seller_id="S2")  # 40.00, commission 2.00
    payments.apply_invoice_payment(context, invoice.invoice_id, "20")
    purchases.create_purchase(context, CreatePurchaseCommand(items=[PurchaseItemRequest("P1", "10", "120.00")]))
    commission_payouts.pay_commission(context, "S1", "4.00", "TRX-1")

    summary = reports.calculate_sales_summary(context)

    assert summary == {
        "invoiced": Decimal("98.00"),
        "collected": Decimal("20.00"),
        "outstanding": Decimal("78.00"),
        "purchase_debt": Decimal("30.00"),
        "commission_earned": Decimal("7.00"),
        "commission_paid": Decimal("4.00"),
        "commission_pending": Decimal("3.00"),
    }
