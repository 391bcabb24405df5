"""Shared pytest fixtures and utilities for sales ledger tests."""

from __future__ import annotations

import argparse
import sys
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterator

import pytest

# Ensure source packages are importable without installation.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from sales_ledger import cli, constants, context as ledger, invoices  # noqa: E402
from sales_ledger.constants import CommissionType, PricingMode  # noqa: E402
from sales_ledger.rates import FixedRateProvider  # noqa: E402
from sales_ledger.setup_excel import create_master_workbook  # noqa: E402

DEFAULT_SCHEMA_VERSION = constants.EXPECTED_SCHEMA_VERSION
DEFAULT_SELLER_ID = "S-DEFAULT"
EXCHANGE_RATE = Decimal("40")
_CONFIG_TEMPLATE = (
    "[System]\n"
    "DataFile = {data_file}\n"
    "BusinessName = {business_name}\n"
    "SchemaVersion = {schema_version}\n\n"
    "[Defaults]\n"
    "DefaultSeller = {default_seller_id}\n"
    "ExchangeRate = {exchange_rate}\n"
    "CreditSurchargePercent = 10\n"
    "CreditDays = 15\n\n"
    "[Policy]\n"
    "AllowDeleteWithPayments = {allow_delete}\n"
)


@dataclass(frozen=True)
class ConfigBundle:
    """Container bundling together config metadata for tests."""

    directory: Path
    config_path: Path
    workbook_path: Path
    default_seller_id: str
    schema_version: str
    business_name: str


@pytest.fixture(scope="session", autouse=True)
def _restore_sys_path() -> Iterator[None]:
    """Ensure sys.path modifications are undone after the test session."""

    original = sys.path.copy()
    try:
        yield
    finally:
        sys.path[:] = original


@pytest.fixture
def workbook_factory(tmp_path: Path) -> Callable[..., Path]:
    """Factory that creates an initialized master workbook in a temp folder."""

    def _create_workbook(
        *,
        subdir: str | None = None,
        default_seller_id: str = DEFAULT_SELLER_ID,
        filename: str = "master_workbook.xlsx",
    ) -> Path:
        base_dir = tmp_path if subdir is None else tmp_path / subdir
        base_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = base_dir / filename
        create_master_workbook(workbook_path, default_seller_id=default_seller_id, overwrite=True)
        return workbook_path

    return _create_workbook


@pytest.fixture
def config_factory(tmp_path: Path, workbook_factory: Callable[..., Path]) -> Callable[..., ConfigBundle]:
    """Provide a callable that creates config/workbook bundles on demand."""

    def _create_config(
        *,
        make_relative: bool = False,
        business_name: str = "Test Shop",
        schema_version: str = DEFAULT_SCHEMA_VERSION,
        default_seller_id: str = DEFAULT_SELLER_ID,
        allow_delete: bool = False,
    ) -> ConfigBundle:
        bundle_id = uuid.uuid4().hex
        bundle_dir = tmp_path / f"bundle_{bundle_id}"
        bundle_dir.mkdir(parents=True, exist_ok=True)
        workbook_path = workbook_factory(subdir=f"bundle_{bundle_id}", default_seller_id=default_seller_id)
        data_file_entry = workbook_path.name if make_relative else str(workbook_path)
        config_path = bundle_dir / "config.ini"
        config_path.write_text(
            _CONFIG_TEMPLATE.format(
                data_file=data_file_entry,
                business_name=business_name,
                schema_version=schema_version,
                default_seller_id=default_seller_id,
                exchange_rate=EXCHANGE_RATE,
                allow_delete="yes" if allow_delete else "no",
            )
        )
        return ConfigBundle(
            directory=bundle_dir,
            config_path=config_path,
            workbook_path=workbook_path,
            default_seller_id=default_seller_id,
            schema_version=schema_version,
            business_name=business_name,
        )

    return _create_config


@pytest.fixture
def config_file(config_factory: Callable[..., ConfigBundle]) -> Path:
    """Convenience fixture returning only the config path."""

    return config_factory().config_path


@pytest.fixture
def runtime_context(config_file: Path) -> ledger.LedgerContext:
    """Load the runtime context for tests through the public API."""

    context = ledger.load_runtime_context(config_file)
    ledger.ensure_schema_version(context)
    return context


# ---------------------------------------------------------------------------
# In-memory ledger fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def rates() -> FixedRateProvider:
    return FixedRateProvider(EXCHANGE_RATE)


@pytest.fixture
def context(rates: FixedRateProvider) -> ledger.LedgerContext:
    """Ledger stocked with two products, two clients, and two sellers.

    ``P1`` sells at 5.80 with 50 kg in stock and no default commission.
    ``P2`` sells at 10.00 with 20 kg in stock and a 5% default commission.
    Seller ``S1`` earns a fixed 0.50 per kg on ``P1``.
    """

    ctx = ledger.LedgerContext(rates=rates)
    ledger.add_product(ctx, product_id="P1", name="Cheese", sale_price_hard="5.80", stock_qty=50)
    ledger.add_product(
        ctx,
        product_id="P2",
        name="Ham",
        sale_price_hard="10.00",
        stock_qty=20,
        commission_type=CommissionType.PERCENT,
        commission_value=5,
    )
    ledger.add_client(ctx, client_id="C1", name="Ana", phone="555-0101")
    ledger.add_client(ctx, client_id="C2", name="Luis")
    ledger.add_seller(ctx, seller_id="S1", name="Maria")
    ledger.add_seller(ctx, seller_id="S2", name="Pedro")
    ledger.set_seller_commission(ctx, "S1", "P1", CommissionType.FIXED, "0.50")
    return ctx


@pytest.fixture
def make_invoice(context: ledger.LedgerContext) -> Callable[..., invoices.Invoice]:
    """Create an invoice from ``(product_id, quantity)`` pairs."""

    def _make(
        *lines: tuple[str, str],
        client_id: str = "C1",
        seller_id: str | None = "S1",
        pricing_mode: PricingMode = PricingMode.CASH,
        timestamp: datetime | None = None,
    ) -> invoices.Invoice:
        command = invoices.CreateInvoiceCommand(
            client_id=client_id,
            items=[invoices.ItemRequest(product_id=pid, quantity=qty) for pid, qty in lines],
            seller_id=seller_id,
            pricing_mode=pricing_mode,
            timestamp=timestamp,
        )
        return invoices.create_invoice(context, command)

    return _make


@pytest.fixture
def set_fixed_datetime(monkeypatch: pytest.MonkeyPatch) -> Callable[[datetime], datetime]:
    """Patch the ledger clock to return a predetermined moment."""

    def _apply(moment: datetime) -> datetime:
        class _FixedDateTime:
            @staticmethod
            def now(tz=None):
                assert tz is UTC
                return moment

        monkeypatch.setattr(ledger, "datetime", _FixedDateTime)
        return moment

    return _apply


# ---------------------------------------------------------------------------
# CLI layer fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_parser() -> argparse.ArgumentParser:
    """Return a fresh CLI parser instance for tests."""

    return argparse.ArgumentParser(prog="ledger-cli", description="Ledger CLI")


@pytest.fixture
def subparsers_action(cli_parser: argparse.ArgumentParser) -> argparse._SubParsersAction:
    """Return the subparser action used to register commands."""

    return cli_parser.add_subparsers(dest="command")


@pytest.fixture
def command_spec_iterable() -> list[cli.CommandSpec]:
    """Provide a list of command specs for indexing tests."""

    def _make_spec(name: str) -> cli.CommandSpec:
        return cli.CommandSpec(
            name,
            f"{name} help",
            lambda subparsers: subparsers.add_parser(name),
            lambda *_: 0,
        )

    return [_make_spec("alpha"), _make_spec("beta"), _make_spec("gamma")]
