"""Unit tests describing the CLI presentation layer contract."""

from __future__ import annotations

import argparse
import logging
from decimal import Decimal
from pathlib import Path
from typing import Iterable

import pytest

import sales_ledger
from sales_ledger import cli, context as ledger, invoices, purchases, quotes
from sales_ledger.constants import PricingMode
from sales_ledger.errors import BusinessRuleViolation, InsufficientStock


WRITE_COMMANDS = {
    "add-product",
    "add-client",
    "add-seller",
    "set-commission",
    "invoice",
    "edit-invoice",
    "delete-invoice",
    "pay-invoice",
    "purchase",
    "edit-purchase",
    "delete-purchase",
    "pay-purchase",
    "edit-payment",
    "delete-payment",
    "pay-commission",
    "quote",
    "edit-quote",
    "convert-quote",
    "delete-quote",
}

READ_COMMANDS = {
    "stock",
    "invoices",
    "overdue",
    "receivables",
    "debts",
    "summary",
    "commission",
    "quotes",
}

# ---------------------------------------------------------------------------
# Parser construction
# ---------------------------------------------------------------------------


def test_build_parser_sets_program_metadata():
    """build_parser should set user-facing program metadata."""

    parser = cli.build_parser()
    assert isinstance(parser, argparse.ArgumentParser)
    assert parser.prog == "ledger-cli"
    assert "ledger" in (parser.description or "")


def test_configure_subcommands_registers_every_command(cli_parser):
    """configure_subcommands should wire all write and read sub-commands."""

    command_table = cli.configure_subcommands(cli_parser)

    assert set(command_table) == WRITE_COMMANDS | READ_COMMANDS
    assert _registered_choices(cli_parser) == WRITE_COMMANDS | READ_COMMANDS


def test_register_write_commands_returns_mutating_specs(subparsers_action):
    specs = cli.register_write_commands(subparsers_action)

    assert set(specs) == WRITE_COMMANDS
    for name, spec in specs.items():
        assert isinstance(spec, cli.CommandSpec)
        assert spec.mutates is True
        assert name in subparsers_action.choices


def test_register_read_commands_returns_read_only_specs(subparsers_action):
    specs = cli.register_read_commands(subparsers_action)

    assert set(specs) == READ_COMMANDS
    for spec in specs.values():
        assert spec.mutates is False
        assert spec.help_text


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def _parse(argv: list[str]) -> argparse.Namespace:
    parser = cli.build_parser()
    cli.configure_subcommands(parser)
    return parser.parse_args(argv)


def test_invoice_command_collects_repeated_items():
    namespace = _parse(
        [
            "invoice",
            "--client-id",
            "C1",
            "--item",
            "P1:2.5",
            "--item",
            "P2:1:9.50",
            "--pricing-mode",
            "credit",
        ]
    )

    assert namespace.command == "invoice"
    assert namespace.client_id == "C1"
    assert namespace.seller_id is None
    assert namespace.items == [
        {"product_id": "P1", "quantity": "2.5"},
        {"product_id": "P2", "quantity": "1", "price": "9.50"},
    ]
    assert namespace.pricing_mode == "credit"


@pytest.mark.parametrize("raw", ["P1", "P1:", ":2", "P1:2:3:4"])
def test_parse_item_spec_rejects_malformed_values(raw):
    with pytest.raises(argparse.ArgumentTypeError):
        cli.parse_item_spec(raw)


def test_parse_purchase_item_spec_accepts_optional_hard_subtotal():
    assert cli.parse_purchase_item_spec("P1:10:200") == {"product_id": "P1", "quantity": "10", "unit_cost": "200"}
    assert cli.parse_purchase_item_spec("P1:10:200:45.5")["subtotal_hard"] == "45.5"
    with pytest.raises(argparse.ArgumentTypeError):
        cli.parse_purchase_item_spec("P1:10")


def test_edit_invoice_seller_flags_are_exclusive():
    with pytest.raises(SystemExit):
        _parse(["edit-invoice", "--invoice-id", "I1", "--item", "P1:1", "--seller-id", "S1", "--no-seller"])


def test_edit_purchase_and_edit_quote_parse_their_items():
    purchase = _parse(["edit-purchase", "--purchase-id", "PUR1", "--item", "P1:5:210", "--supplier", "Farm"])
    quote = _parse(["edit-quote", "--quote-id", "QUO1", "--item", "P2:3", "--delivery-date", "2024-07-01"])

    assert purchase.items == [{"product_id": "P1", "quantity": "5", "unit_cost": "210"}]
    assert purchase.supplier == "Farm"
    assert quote.items == [{"product_id": "P2", "quantity": "3"}]
    assert quote.client_id is None
    assert quote.delivery_date.isoformat() == "2024-07-01"


def test_overdue_command_parses_iso_date():
    namespace = _parse(["overdue", "--as-of", "2024-06-30"])
    assert namespace.as_of.isoformat() == "2024-06-30"


def test_config_option_precedes_the_command(tmp_path):
    namespace = _parse(["--config", str(tmp_path / "config.ini"), "stock"])
    assert namespace.config == tmp_path / "config.ini"
    assert namespace.command == "stock"


# ---------------------------------------------------------------------------
# Runtime context helpers
# ---------------------------------------------------------------------------


def test_load_runtime_context_uses_provided_path(config_file, monkeypatch):
    """load_runtime_context should load settings from the specified config path."""

    loaded = {}
    real_loader = ledger.load_runtime_context

    def spy_loader(path: Path | None) -> ledger.LedgerContext:
        loaded["path"] = path
        return real_loader(path)

    monkeypatch.setattr(ledger, "load_runtime_context", spy_loader)
    context = cli.load_runtime_context(config_file)

    assert loaded["path"] == config_file
    assert context.settings.default_seller_id == "S-DEFAULT"


def test_load_runtime_context_rejects_schema_mismatch(config_factory):
    bundle = config_factory(schema_version="0.9.0")

    with pytest.raises(RuntimeError, match="schema"):
        cli.load_runtime_context(bundle.config_path)


# ---------------------------------------------------------------------------
# Dispatch helpers
# ---------------------------------------------------------------------------


def test_dispatch_command_invokes_executor(context):
    """dispatch_command should call the executor associated with the command."""

    called = {}

    def execute(ctx: ledger.LedgerContext, args: argparse.Namespace) -> int:
        called["context"] = ctx
        return 0

    table = {"alpha": cli.CommandSpec("alpha", "A", lambda s: s.add_parser("alpha"), execute)}
    assert cli.dispatch_command(context, argparse.Namespace(command="alpha"), table) == 0
    assert called["context"] is context


def test_dispatch_command_handles_unknown_commands(context):
    with pytest.raises(KeyError):
        cli.dispatch_command(context, argparse.Namespace(command="unknown"), {})


def test_build_command_table_indexes_specs(command_spec_iterable):
    table = cli.build_command_table(command_spec_iterable)
    assert set(table) == {spec.name for spec in command_spec_iterable}


def test_build_command_table_detects_duplicate_commands():
    """build_command_table should guard against duplicate command names."""

    specs = [
        cli.CommandSpec("alpha", "A", lambda s: s.add_parser("alpha"), lambda c, a: 0),
        cli.CommandSpec("alpha", "Duplicate", lambda s: s.add_parser("alpha"), lambda c, a: 0),
    ]
    with pytest.raises(ValueError):
        cli.build_command_table(specs)


# ---------------------------------------------------------------------------
# Translation helpers
# ---------------------------------------------------------------------------


def test_translate_create_invoice_defaults_to_configured_seller(runtime_context):
    args = argparse.Namespace(
        client_id="C1",
        seller_id=None,
        items=[{"product_id": "P1", "quantity": "2"}, {"product_id": "P2", "quantity": "1", "price": "9.5"}],
        pricing_mode=None,
    )

    command = cli.translate_create_invoice(runtime_context, args)

    assert command.seller_id == "S-DEFAULT"
    assert command.pricing_mode is PricingMode.CASH
    assert command.items[0] == invoices.ItemRequest(product_id="P1", quantity=Decimal("2"))
    assert command.items[1].unit_price_hard == Decimal("9.5")


def test_translate_edit_invoice_keeps_current_seller(context, make_invoice):
    invoice = make_invoice(("P1", "1"), seller_id="S2")
    base = dict(invoice_id=invoice.invoice_id, items=[{"product_id": "P1", "quantity": "3"}], client_id=None, pricing_mode=None)

    kept = cli.translate_edit_invoice(context, argparse.Namespace(seller_id=None, no_seller=False, **base))
    cleared = cli.translate_edit_invoice(context, argparse.Namespace(seller_id=None, no_seller=True, **base))
    changed = cli.translate_edit_invoice(context, argparse.Namespace(seller_id="S1", no_seller=False, **base))

    assert kept.seller_id == "S2"
    assert cleared.seller_id is None
    assert changed.seller_id == "S1"
    assert kept.items[0].quantity == Decimal("3")


def test_translate_create_purchase_builds_item_requests():
    args = argparse.Namespace(
        items=[{"product_id": "P1", "quantity": "10", "unit_cost": "200", "subtotal_hard": "45"}],
        supplier="Dairy Co",
    )

    command = cli.translate_create_purchase(args)

    assert command.supplier == "Dairy Co"
    assert command.items[0].unit_cost_local == Decimal("200")
    assert command.items[0].subtotal_hard == Decimal("45")


def test_run_edit_purchase_replaces_items(context, capsys):
    create = argparse.Namespace(items=[{"product_id": "P1", "quantity": "10", "unit_cost": "200"}], supplier="Farm")
    assert cli.run_create_purchase(context, create) == 0
    purchase_id = capsys.readouterr().out.split()[0]

    edit = argparse.Namespace(purchase_id=purchase_id, items=[{"product_id": "P1", "quantity": "4", "unit_cost": "200"}], supplier=None)
    assert cli.run_edit_purchase(context, edit) == 0

    assert "debt=20.00" in capsys.readouterr().out
    assert purchases.get_purchase(context, purchase_id).supplier == "Farm"
    assert ledger.get_product(context, "P1").stock_qty == Decimal("54.000")


def test_run_edit_quote_keeps_unspecified_fields(context):
    quote = quotes.create_quote(context, "C2", [("P1", "2")], notes="Morning delivery")
    args = argparse.Namespace(
        quote_id=quote.quote_id,
        items=[{"product_id": "P2", "quantity": "1.5"}],
        client_id=None,
        delivery_date=None,
        notes=None,
    )

    assert cli.run_edit_quote(context, args) == 0

    edited = quotes.get_quote(context, quote.quote_id)
    assert [(item.product_id, item.quantity) for item in edited.items] == [("P2", Decimal("1.500"))]
    assert edited.client_id == "C2"
    assert edited.notes == "Morning delivery"
    assert edited.delivery_date == quote.delivery_date


# ---------------------------------------------------------------------------
# Error handling and persistence
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "error, expected",
    [
        (BusinessRuleViolation("invalid"), 2),
        (InsufficientStock("P1", Decimal("5"), Decimal("1")), 2),
        (FileNotFoundError("missing"), 3),
        (ValueError("bad value"), 1),
    ],
)
def test_handle_cli_error_returns_exit_code(error: Exception, expected: int, caplog: pytest.LogCaptureFixture):
    """handle_cli_error should convert exceptions into exit codes."""

    caplog.set_level("ERROR")
    assert cli.handle_cli_error(error) == expected
    assert caplog.records


def test_handle_cli_error_logs_human_readable_message(caplog: pytest.LogCaptureFixture):
    caplog.set_level("ERROR")
    cli.handle_cli_error(BusinessRuleViolation("invalid"))
    assert any("invalid" in record.getMessage() for record in caplog.records)


def test_persist_workbook_handles_read_only_workbooks(runtime_context, monkeypatch):
    """persist_workbook should surface permission problems as RuntimeError."""

    def fake_persist(_: ledger.LedgerContext) -> None:
        raise PermissionError("read-only")

    monkeypatch.setattr(cli.ledger, "persist_context", fake_persist)
    with pytest.raises(RuntimeError, match="read-only"):
        cli.persist_workbook(runtime_context)


# ---------------------------------------------------------------------------
# Program entry point
# ---------------------------------------------------------------------------


def _stub_main(monkeypatch, runtime_context, command: str, *, mutates: bool, execute=lambda *_: 0) -> dict:
    parser = _stub_parser(command=command)
    table = {command: cli.CommandSpec(command, "help", lambda _: parser, execute, mutates=mutates)}
    monkeypatch.setattr(cli, "build_parser", lambda: parser)
    monkeypatch.setattr(cli, "configure_subcommands", lambda _: table)
    monkeypatch.setattr(cli, "load_runtime_context", lambda path=None: runtime_context)
    persisted: dict = {}
    monkeypatch.setattr(cli, "persist_workbook", lambda ctx: persisted.setdefault("context", ctx))
    return persisted


def test_main_persists_after_mutating_commands(monkeypatch, runtime_context):
    persisted = _stub_main(monkeypatch, runtime_context, "invoice", mutates=True)

    assert cli.main(["invoice"]) == 0
    assert persisted["context"] is runtime_context


def test_main_skips_persistence_for_reports(monkeypatch, runtime_context):
    persisted = _stub_main(monkeypatch, runtime_context, "summary", mutates=False)

    assert cli.main(["summary"]) == 0
    assert persisted == {}


def test_main_handles_business_errors(monkeypatch, runtime_context):
    """main should surface business rule violations as exit code 2 without saving."""

    def failing(*_: object) -> int:
        raise BusinessRuleViolation("invalid")

    persisted = _stub_main(monkeypatch, runtime_context, "invoice", mutates=True, execute=failing)

    assert cli.main(["invoice"]) == 2
    assert persisted == {}


def test_main_runs_against_a_real_workbook(config_factory, capsys):
    """Commands persist to the workbook and later invocations see the changes."""

    bundle = config_factory()
    config = ["--config", str(bundle.config_path)]

    assert cli.main([*config, "add-product", "--product-id", "P1", "--name", "Cheese", "--sale-price", "5.80", "--stock", "50"]) == 0
    assert cli.main([*config, "add-client", "--client-id", "C1", "--name", "Ana"]) == 0
    capsys.readouterr()

    assert cli.main([*config, "invoice", "--client-id", "C1", "--item", "P1:10"]) == 0
    invoice_id = capsys.readouterr().out.split()[0]

    assert cli.main([*config, "pay-invoice", "--id", invoice_id, "--amount", "nan"]) == 2
    assert cli.main([*config, "pay-invoice", "--id", invoice_id, "--amount", "56"]) == 0
    assert "status=Paid" in capsys.readouterr().out

    assert cli.main([*config, "edit-invoice", "--invoice-id", invoice_id, "--item", "P1:1"]) == 2

    assert cli.main([*config, "stock"]) == 0
    assert "P1: 40.000" in capsys.readouterr().out

    reloaded = ledger.load_runtime_context(bundle.config_path)
    invoice = invoices.get_invoice(reloaded, invoice_id)
    assert invoice.seller_id == "S-DEFAULT"
    assert invoice.balance_hard == Decimal("0.00")


def test_main_reports_missing_configuration(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert cli.main(["stock"]) == 3


def test_main_verbose_echoes_info_records(tmp_path, monkeypatch):
    levels: list[int] = []
    monkeypatch.setattr(cli, "set_console_level", levels.append)
    monkeypatch.chdir(tmp_path)

    assert cli.main(["--verbose", "stock"]) == 3
    assert levels == [logging.INFO]


def test_set_console_level_only_touches_the_stderr_handler():
    console = [handler for handler in sales_ledger.log.handlers if handler.get_name() == "console"]
    others = {handler: handler.level for handler in sales_ledger.log.handlers if handler.get_name() != "console"}
    try:
        sales_ledger.set_console_level(logging.DEBUG)
        assert [handler.level for handler in console] == [logging.DEBUG]
        assert {handler: handler.level for handler in others} == others
    finally:
        sales_ledger.set_console_level(logging.WARNING)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _registered_choices(parser: argparse.ArgumentParser) -> set[str]:
    """Return the set of registered sub-command names for assertion helpers."""

    actions = getattr(parser, "_subparsers", None)
    if not actions:
        return set()
    group_actions = actions._group_actions  # type: ignore[attr-defined]
    if not group_actions:
        return set()
    return set(group_actions[0].choices)  # type: ignore[index]


def _stub_parser(command: str) -> argparse.ArgumentParser:
    """Create a stub parser that always returns the supplied command."""

    class _Stub(argparse.ArgumentParser):
        def parse_args(self, args: Iterable[str] | None = None, namespace: argparse.Namespace | None = None):  # type: ignore[override]
            return argparse.Namespace(command=command)

    return _Stub(prog="test")
