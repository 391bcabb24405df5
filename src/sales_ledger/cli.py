"""Command-line entry points for the sales ledger.

All orchestration in this module is limited to argparse wiring and translating
command-line arguments into the command objects consumed by the ledger
modules. Keeping the CLI thin ensures the same parser configuration can be
reused by tests, scripts, or any alternative front-end that wants to expose
the package capabilities.
"""

from __future__ import annotations

import argparse
import logging
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, MutableMapping, Optional, Sequence

from . import commission_payouts, context as ledger, invoices, log, payments, purchases, quotes, reports, set_console_level
from .constants import CommissionType, PricingMode
from .errors import BusinessRuleViolation
from .money import to_decimal

Subparsers = argparse._SubParsersAction


@dataclass(frozen=True)
class CommandSpec:
    """Describe how a CLI sub-command is configured and executed.

    Commands with ``mutates`` set persist the workbook after a successful run.
    """

    name: str
    help_text: str
    register: Callable[[Subparsers], argparse.ArgumentParser]
    execute: Callable[[ledger.LedgerContext, argparse.Namespace], int]
    mutates: bool = True


def build_parser() -> argparse.ArgumentParser:
    """Construct the top-level CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="ledger-cli",
        description="Command-line tools for the sales ledger workbook.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Optional path to config.ini (defaults to the nearest config.ini).",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Echo informational log records to stderr.",
    )
    return parser


def configure_subcommands(parser: argparse.ArgumentParser) -> Mapping[str, CommandSpec]:
    """Wire all CLI sub-commands onto the supplied parser."""
    subparsers = parser.add_subparsers(dest="command", required=True, title="commands")
    write_specs = register_write_commands(subparsers)
    read_specs = register_read_commands(subparsers)
    return build_command_table([*write_specs.values(), *read_specs.values()])


def _simple_spec(
    name: str,
    help_text: str,
    arguments: Callable[[argparse.ArgumentParser], None],
    execute: Callable[[ledger.LedgerContext, argparse.Namespace], int],
    *,
    mutates: bool = True,
) -> CommandSpec:
    def registrar(action: Subparsers) -> argparse.ArgumentParser:
        parser = action.add_parser(name, help=help_text)
        arguments(parser)
        parser.set_defaults(command=name)
        return parser

    return CommandSpec(name=name, help_text=help_text, register=registrar, execute=execute, mutates=mutates)


def register_write_commands(subparsers: Subparsers) -> Dict[str, CommandSpec]:
    """Declare mutating CLI commands such as invoices and payments."""
    specs = {
        "add-product": register_add_product_command(),
        "add-client": register_add_client_command(),
        "add-seller": register_add_seller_command(),
        "set-commission": register_set_commission_command(),
        "invoice": register_invoice_command(),
        "edit-invoice": register_edit_invoice_command(),
        "delete-invoice": register_delete_invoice_command(),
        "pay-invoice": register_pay_command("pay-invoice", "Collect a payment against an invoice.", run_pay_invoice),
        "purchase": register_purchase_command(),
        "edit-purchase": register_edit_purchase_command(),
        "delete-purchase": register_delete_purchase_command(),
        "pay-purchase": register_pay_command("pay-purchase", "Pay down a supplier purchase.", run_pay_purchase),
        "edit-payment": register_edit_payment_command(),
        "delete-payment": register_delete_payment_command(),
        "pay-commission": register_pay_commission_command(),
        "quote": register_quote_command(),
        "edit-quote": register_edit_quote_command(),
        "convert-quote": register_convert_quote_command(),
        "delete-quote": register_delete_quote_command(),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


def register_read_commands(subparsers: Subparsers) -> Dict[str, CommandSpec]:
    """Declare read-only CLI commands such as reports."""
    specs = {
        "stock": _simple_spec("stock", "Display current stock levels.", _no_arguments, run_stock_report, mutates=False),
        "invoices": _simple_spec(
            "invoices", "List invoices, optionally for one client.", _client_filter, run_list_invoices, mutates=False
        ),
        "overdue": _simple_spec(
            "overdue", "List unpaid invoices past their due date.", _as_of_argument, run_overdue_report, mutates=False
        ),
        "receivables": _simple_spec(
            "receivables", "Display outstanding balances per client.", _no_arguments, run_receivables_report, mutates=False
        ),
        "debts": _simple_spec(
            "debts", "Display outstanding supplier debt.", _no_arguments, run_debts_report, mutates=False
        ),
        "summary": _simple_spec(
            "summary", "Display sales, collection and commission totals.", _no_arguments, run_summary_report, mutates=False
        ),
        "commission": _simple_spec(
            "commission", "Display a seller's commission statement.", _seller_argument, run_commission_report, mutates=False
        ),
        "quotes": _simple_spec("quotes", "List open quotes.", _no_arguments, run_list_quotes, mutates=False),
    }
    for spec in specs.values():
        spec.register(subparsers)
    return specs


# ---------------------------------------------------------------------------
# Argument helpers
# ---------------------------------------------------------------------------


def parse_item_spec(raw: str) -> Dict[str, str]:
    """Parse ``PRODUCT:QTY[:PRICE]`` into its parts."""
    parts = raw.split(":")
    if len(parts) not in (2, 3) or not all(parts):
        raise argparse.ArgumentTypeError(f"Expected PRODUCT:QTY[:PRICE], got '{raw}'")
    item = {"product_id": parts[0], "quantity": parts[1]}
    if len(parts) == 3:
        item["price"] = parts[2]
    return item


def parse_purchase_item_spec(raw: str) -> Dict[str, str]:
    """Parse ``PRODUCT:QTY:UNIT_COST_LOCAL[:SUBTOTAL_HARD]`` into its parts."""
    parts = raw.split(":")
    if len(parts) not in (3, 4) or not all(parts):
        raise argparse.ArgumentTypeError(f"Expected PRODUCT:QTY:UNIT_COST[:SUBTOTAL_HARD], got '{raw}'")
    item = {"product_id": parts[0], "quantity": parts[1], "unit_cost": parts[2]}
    if len(parts) == 4:
        item["subtotal_hard"] = parts[3]
    return item


def _no_arguments(parser: argparse.ArgumentParser) -> None:
    return None


def _client_filter(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--client-id", default=None)


def _as_of_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--as-of", type=date.fromisoformat, default=None, help="Date in YYYY-MM-DD format.")


def _seller_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--seller-id", required=True)


def _invoice_items(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--item",
        dest="items",
        action="append",
        type=parse_item_spec,
        required=True,
        help="Invoice line as PRODUCT:QTY[:PRICE]; repeat for several lines.",
    )
    parser.add_argument("--pricing-mode", choices=[member.value for member in PricingMode], default=None)


def _purchase_items(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--item",
        dest="items",
        action="append",
        type=parse_purchase_item_spec,
        required=True,
        help="Purchase line as PRODUCT:QTY:UNIT_COST[:SUBTOTAL_HARD].",
    )
    parser.add_argument("--supplier", default=None)


def _quote_details(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--item", dest="items", action="append", type=parse_item_spec, required=True)
    parser.add_argument("--delivery-date", type=date.fromisoformat, default=None)
    parser.add_argument("--notes", default=None)


def _pay_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--id", dest="parent_id", required=True)
    parser.add_argument("--amount", required=True)
    parser.add_argument("--method", default=payments.DEFAULT_METHOD)
    parser.add_argument("--reference", default=None)


def _payment_kind(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--payment-id", required=True)
    parser.add_argument("--kind", choices=["invoice", "purchase"], default="invoice")


# ---------------------------------------------------------------------------
# Command registration
# ---------------------------------------------------------------------------


def register_add_product_command() -> CommandSpec:
    """Register the parser and executor for ``add-product``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--name", required=True)
        parser.add_argument("--sale-price", required=True)
        parser.add_argument("--stock", default="0")
        parser.add_argument("--unit-cost", default="0")
        parser.add_argument("--commission-type", choices=[member.value for member in CommissionType], default="percent")
        parser.add_argument("--commission-value", default="0")

    return _simple_spec("add-product", "Register a new product.", arguments, run_add_product)


def register_add_client_command() -> CommandSpec:
    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--client-id", required=True)
        parser.add_argument("--name", required=True)
        parser.add_argument("--phone", default=None)

    return _simple_spec("add-client", "Register a new client.", arguments, run_add_client)


def register_add_seller_command() -> CommandSpec:
    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--seller-id", required=True)
        parser.add_argument("--name", required=True)

    return _simple_spec("add-seller", "Register a new seller.", arguments, run_add_seller)


def register_set_commission_command() -> CommandSpec:
    """Register ``set-commission``: seller-specific when ``--seller-id`` is given."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--product-id", required=True)
        parser.add_argument("--seller-id", default=None)
        parser.add_argument("--type", dest="commission_type", choices=[member.value for member in CommissionType], required=True)
        parser.add_argument("--value", dest="commission_value", required=True)

    return _simple_spec(
        "set-commission", "Configure the commission earned on a product.", arguments, run_set_commission
    )


def register_invoice_command() -> CommandSpec:
    """Register the parser and executor for ``invoice``."""

    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--client-id", required=True)
        parser.add_argument("--seller-id", default=None, help="Defaults to the configured seller.")
        _invoice_items(parser)

    return _simple_spec("invoice", "Issue an invoice and reserve its stock.", arguments, run_create_invoice)


def register_edit_invoice_command() -> CommandSpec:
    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--invoice-id", required=True)
        parser.add_argument("--client-id", default=None)
        seller = parser.add_mutually_exclusive_group()
        seller.add_argument("--seller-id", default=None, help="Defaults to the invoice's current seller.")
        seller.add_argument("--no-seller", action="store_true")
        _invoice_items(parser)

    return _simple_spec("edit-invoice", "Replace the items of an unpaid invoice.", arguments, run_edit_invoice)


def register_delete_invoice_command() -> CommandSpec:
    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--invoice-id", required=True)
        parser.add_argument("--discard-payments", action="store_true")

    return _simple_spec("delete-invoice", "Delete an unpaid invoice and release its stock.", arguments, run_delete_invoice)


def register_pay_command(
    name: str, help_text: str, execute: Callable[[ledger.LedgerContext, argparse.Namespace], int]
) -> CommandSpec:
    return _simple_spec(name, help_text, _pay_arguments, execute)


def register_purchase_command() -> CommandSpec:
    return _simple_spec("purchase", "Receive goods and record the supplier debt.", _purchase_items, run_create_purchase)


def register_edit_purchase_command() -> CommandSpec:
    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--purchase-id", required=True)
        _purchase_items(parser)

    return _simple_spec("edit-purchase", "Replace the items of an unpaid purchase.", arguments, run_edit_purchase)


def register_delete_purchase_command() -> CommandSpec:
    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--purchase-id", required=True)
        parser.add_argument("--discard-payments", action="store_true")

    return _simple_spec("delete-purchase", "Delete an unpaid purchase and reverse its stock.", arguments, run_delete_purchase)


def register_edit_payment_command() -> CommandSpec:
    def arguments(parser: argparse.ArgumentParser) -> None:
        _payment_kind(parser)
        parser.add_argument("--amount", required=True)
        parser.add_argument("--method", default=None)

    return _simple_spec("edit-payment", "Change the amount of a recorded payment.", arguments, run_edit_payment)


def register_delete_payment_command() -> CommandSpec:
    return _simple_spec("delete-payment", "Remove a recorded payment.", _payment_kind, run_delete_payment)


def register_pay_commission_command() -> CommandSpec:
    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--seller-id", required=True)
        parser.add_argument("--amount", required=True)
        parser.add_argument("--reference", required=True)

    return _simple_spec("pay-commission", "Pay out commission to a seller.", arguments, run_pay_commission)


def register_quote_command() -> CommandSpec:
    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--client-id", required=True)
        _quote_details(parser)

    return _simple_spec("quote", "Record a client quote.", arguments, run_create_quote)


def register_edit_quote_command() -> CommandSpec:
    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--quote-id", required=True)
        parser.add_argument("--client-id", default=None)
        _quote_details(parser)

    return _simple_spec("edit-quote", "Replace the items of a quote.", arguments, run_edit_quote)


def register_convert_quote_command() -> CommandSpec:
    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--quote-id", required=True)
        parser.add_argument("--seller-id", default=None, help="Defaults to the configured seller.")
        parser.add_argument("--pricing-mode", choices=[member.value for member in PricingMode], default="cash")

    return _simple_spec("convert-quote", "Turn a quote into an invoice.", arguments, run_convert_quote)


def register_delete_quote_command() -> CommandSpec:
    def arguments(parser: argparse.ArgumentParser) -> None:
        parser.add_argument("--quote-id", required=True)

    return _simple_spec("delete-quote", "Delete a quote.", arguments, run_delete_quote)


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------


def load_runtime_context(config_path: Optional[Path] = None) -> ledger.LedgerContext:
    """Resolve the runtime context for CLI operations and check its schema."""
    context = ledger.load_runtime_context(Path(config_path) if config_path is not None else None)
    ledger.ensure_schema_version(context)
    return context


def dispatch_command(
    context: ledger.LedgerContext,
    args: argparse.Namespace,
    command_table: Mapping[str, CommandSpec],
) -> int:
    """Dispatch the parsed arguments to the configured executor."""
    if not hasattr(args, "command") or args.command is None:
        raise KeyError("No command specified")
    spec = command_table.get(args.command)
    if spec is None:
        raise KeyError(f"Unknown command: {args.command}")
    return spec.execute(context, args)


def build_command_table(specs: Iterable[CommandSpec]) -> MutableMapping[str, CommandSpec]:
    """Build an index of command specifications keyed by command name."""
    table: Dict[str, CommandSpec] = {}
    for spec in specs:
        if spec.name in table:
            raise ValueError(f"Duplicate command name: {spec.name}")
        table[spec.name] = spec
    return table


# ---------------------------------------------------------------------------
# Translation
# ---------------------------------------------------------------------------


def _default_seller(context: ledger.LedgerContext, seller_id: Optional[str]) -> Optional[str]:
    if seller_id is not None:
        return seller_id
    return context.settings.default_seller_id if context.settings is not None else None


def translate_items(raw_items: Sequence[Mapping[str, str]], pricing_mode: Optional[str]) -> List[invoices.ItemRequest]:
    """Translate parsed ``--item`` values into invoice item requests."""
    mode = PricingMode(pricing_mode) if pricing_mode else None
    return [
        invoices.ItemRequest(
            product_id=item["product_id"],
            quantity=to_decimal(item["quantity"]),
            unit_price_hard=to_decimal(item["price"]) if "price" in item else None,
            pricing_mode=mode,
        )
        for item in raw_items
    ]


def translate_create_invoice(context: ledger.LedgerContext, args: argparse.Namespace) -> invoices.CreateInvoiceCommand:
    """Translate CLI args into an invoice creation command."""
    return invoices.CreateInvoiceCommand(
        client_id=args.client_id,
        items=translate_items(args.items, args.pricing_mode),
        seller_id=_default_seller(context, args.seller_id),
        pricing_mode=PricingMode(args.pricing_mode or PricingMode.CASH.value),
    )


def translate_edit_invoice(context: ledger.LedgerContext, args: argparse.Namespace) -> invoices.EditInvoiceCommand:
    """Translate CLI args into an invoice edit command.

    The current seller is kept unless ``--seller-id`` or ``--no-seller`` is given.
    """
    if getattr(args, "no_seller", False):
        seller_id = None
    elif args.seller_id is not None:
        seller_id = args.seller_id
    else:
        seller_id = invoices.get_invoice(context, args.invoice_id).seller_id
    return invoices.EditInvoiceCommand(
        invoice_id=args.invoice_id,
        items=translate_items(args.items, args.pricing_mode),
        seller_id=seller_id,
        client_id=args.client_id,
        pricing_mode=PricingMode(args.pricing_mode) if args.pricing_mode else None,
    )


def translate_purchase_items(raw_items: Sequence[Mapping[str, str]]) -> List[purchases.PurchaseItemRequest]:
    """Translate parsed purchase ``--item`` values into item requests."""
    return [
        purchases.PurchaseItemRequest(
            product_id=item["product_id"],
            quantity=to_decimal(item["quantity"]),
            unit_cost_local=to_decimal(item["unit_cost"]),
            subtotal_hard=to_decimal(item["subtotal_hard"]) if "subtotal_hard" in item else None,
        )
        for item in raw_items
    ]


def translate_create_purchase(args: argparse.Namespace) -> purchases.CreatePurchaseCommand:
    return purchases.CreatePurchaseCommand(items=translate_purchase_items(args.items), supplier=args.supplier)


def _quote_lines(raw_items: Sequence[Mapping[str, str]]) -> List[quotes.QuoteLine]:
    return [(item["product_id"], to_decimal(item["quantity"])) for item in raw_items]


# ---------------------------------------------------------------------------
# Executors
# ---------------------------------------------------------------------------


def run_add_product(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    ledger.add_product(
        context,
        product_id=args.product_id,
        name=args.name,
        sale_price_hard=args.sale_price,
        stock_qty=args.stock,
        purchase_cost_local=args.unit_cost,
        commission_type=args.commission_type,
        commission_value=args.commission_value,
    )
    return 0


def run_add_client(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    ledger.add_client(context, client_id=args.client_id, name=args.name, phone=args.phone)
    return 0


def run_add_seller(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    ledger.add_seller(context, seller_id=args.seller_id, name=args.name)
    return 0


def run_set_commission(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    if args.seller_id:
        ledger.set_seller_commission(context, args.seller_id, args.product_id, args.commission_type, args.commission_value)
    else:
        ledger.set_product_commission(context, args.product_id, args.commission_type, args.commission_value)
    return 0


def run_create_invoice(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    """Execute the invoice creation workflow."""
    invoice = invoices.create_invoice(context, translate_create_invoice(context, args))
    print(f"{invoice.invoice_id} total={invoice.total_hard} due={invoice.due_date.isoformat()}")
    return 0


def run_edit_invoice(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    invoice = invoices.edit_invoice(context, translate_edit_invoice(context, args))
    print(f"{invoice.invoice_id} total={invoice.total_hard} balance={invoice.balance_hard} status={invoice.status.value}")
    return 0


def run_delete_invoice(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    invoices.delete_invoice(context, args.invoice_id, discard_payments=args.discard_payments)
    return 0


def _print_payment(result: payments.PaymentResult) -> None:
    print(
        f"{result.payment.payment_id} amount={result.payment.amount_hard} "
        f"balance={result.parent.balance_hard} status={result.parent.status.value}"
    )


def run_pay_invoice(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    """Execute the invoice payment workflow."""
    result = payments.apply_invoice_payment(
        context, args.parent_id, to_decimal(args.amount), args.method, reference=args.reference
    )
    _print_payment(result)
    return 0


def run_pay_purchase(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    result = payments.apply_purchase_payment(
        context, args.parent_id, to_decimal(args.amount), args.method, reference=args.reference
    )
    _print_payment(result)
    return 0


def run_edit_payment(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    edit = payments.edit_invoice_payment if args.kind == "invoice" else payments.edit_purchase_payment
    _print_payment(edit(context, args.payment_id, to_decimal(args.amount), args.method))
    return 0


def run_delete_payment(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    delete = payments.delete_invoice_payment if args.kind == "invoice" else payments.delete_purchase_payment
    _print_payment(delete(context, args.payment_id))
    return 0


def run_create_purchase(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    purchase = purchases.create_purchase(context, translate_create_purchase(args))
    print(f"{purchase.purchase_id} debt={purchase.total_debt_hard}")
    return 0


def run_edit_purchase(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    purchase = purchases.edit_purchase(
        context,
        purchases.EditPurchaseCommand(
            purchase_id=args.purchase_id,
            items=translate_purchase_items(args.items),
            supplier=args.supplier,
        ),
    )
    print(f"{purchase.purchase_id} debt={purchase.total_debt_hard} balance={purchase.balance_hard} status={purchase.status.value}")
    return 0


def run_delete_purchase(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    purchases.delete_purchase(context, args.purchase_id, discard_payments=args.discard_payments)
    return 0


def run_pay_commission(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    payout = commission_payouts.pay_commission(context, args.seller_id, to_decimal(args.amount), args.reference)
    print(f"{payout.payment_id} amount={payout.amount_hard} local={payout.amount_local}")
    return 0


def run_create_quote(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    quote = quotes.create_quote(
        context,
        args.client_id,
        _quote_lines(args.items),
        delivery_date=args.delivery_date,
        notes=args.notes,
    )
    print(quote.quote_id)
    return 0


def run_edit_quote(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    quotes.edit_quote(
        context,
        args.quote_id,
        _quote_lines(args.items),
        client_id=args.client_id,
        delivery_date=args.delivery_date,
        notes=args.notes,
    )
    return 0


def run_convert_quote(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    invoice = quotes.convert_quote_to_invoice(
        context, args.quote_id, _default_seller(context, args.seller_id), PricingMode(args.pricing_mode)
    )
    print(f"{invoice.invoice_id} total={invoice.total_hard}")
    return 0


def run_delete_quote(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    quotes.delete_quote(context, args.quote_id)
    return 0


def _print_mapping(values: Mapping[str, Any]) -> None:
    for key, value in values.items():
        print(f"{key}: {value}")


def run_stock_report(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    _print_mapping(reports.calculate_inventory(context))
    return 0


def run_list_invoices(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    for invoice in invoices.list_invoices(context, client_id=args.client_id):
        print(f"{invoice.invoice_id} {invoice.client_id} total={invoice.total_hard} balance={invoice.balance_hard} {invoice.status.value}")
    return 0


def run_overdue_report(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    for invoice in invoices.list_overdue_invoices(context, args.as_of):
        print(f"{invoice.invoice_id} {invoice.client_id} due={invoice.due_date.isoformat()} balance={invoice.balance_hard}")
    return 0


def run_receivables_report(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    _print_mapping(reports.calculate_receivables(context))
    return 0


def run_debts_report(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    print(f"total: {purchases.get_purchase_debt_total(context)}")
    return 0


def run_summary_report(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    _print_mapping(reports.calculate_sales_summary(context))
    return 0


def run_commission_report(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    statement = commission_payouts.commission_statement(context, args.seller_id)
    _print_mapping({"earned": statement.earned, "paid": statement.paid, "pending": statement.pending})
    return 0


def run_list_quotes(context: ledger.LedgerContext, args: argparse.Namespace) -> int:
    for quote in quotes.list_quotes(context):
        delivery = quote.delivery_date.isoformat() if quote.delivery_date else "-"
        print(f"{quote.quote_id} {quote.client_id} delivery={delivery} items={len(quote.items)}")
    return 0


def handle_cli_error(error: Exception) -> int:
    """Convert raised exceptions into user-friendly exit codes."""
    if isinstance(error, BusinessRuleViolation):
        log.error("%s", error)
        return 2
    if isinstance(error, FileNotFoundError):
        log.error("%s", error)
        return 3
    log.error("%s", error)
    return 1


def persist_workbook(context: ledger.LedgerContext) -> None:
    """Persist workbook changes after successful execution."""
    try:
        ledger.persist_context(context)
    except PermissionError as error:
        raise RuntimeError(str(error)) from error


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point that orchestrates parsing and execution."""
    parser = build_parser()
    command_table = configure_subcommands(parser)
    args = parser.parse_args(argv)
    if getattr(args, "verbose", False):
        set_console_level(logging.INFO)
    try:
        context = load_runtime_context(getattr(args, "config", None))
        exit_code = dispatch_command(context, args, command_table)
        if exit_code == 0 and command_table[args.command].mutates:
            persist_workbook(context)
        return exit_code
    except Exception as error:  # pragma: no cover - centralised error handler tested separately
        return handle_cli_error(error)
