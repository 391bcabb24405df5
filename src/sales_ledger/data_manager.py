"""Data access layer for the sales ledger.

This module reads and writes the master workbook that persists the ledger.
Business logic belongs elsewhere; the functions here only translate between
worksheet rows and the records in :mod:`sales_ledger.models`.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening, validating, and persisting the Excel file.
3. Sheet operations: converting whole collections to and from rows.

Collections are written as a full snapshot. Nested records (invoice items,
commission lines, payments, quote items, seller commissions) live on their own
sheets keyed by the parent id.
"""


from __future__ import annotations

import configparser
from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import openpyxl
from openpyxl.styles import Font
from openpyxl.workbook import Workbook

from . import log
from .constants import (
    DEFAULT_CREDIT_DAYS,
    DEFAULT_CREDIT_SURCHARGE_PERCENT,
    EXPECTED_SCHEMA_VERSION,
    CommissionType,
    InvoiceStatus,
    PricingMode,
    PurchaseStatus,
    SheetName,
)
from .models import (
    Client,
    CommissionConfig,
    CommissionLine,
    CommissionPayment,
    Invoice,
    InvoiceItem,
    LedgerData,
    Payment,
    Product,
    Purchase,
    PurchaseItem,
    Quote,
    QuoteItem,
    Seller,
)
from .money import to_decimal, to_money, to_quantity


CONFIG_FILE_NAME = "config.ini"

SHEET_COLUMNS: Mapping[str, Sequence[str]] = {
    SheetName.META.value: ["Key", "Value"],
    SheetName.PRODUCTS.value: [
        "ProductID",
        "Name",
        "SalePriceHard",
        "StockQty",
        "PurchaseCostLocal",
        "CommissionType",
        "CommissionValue",
    ],
    SheetName.CLIENTS.value: ["ClientID", "Name", "Phone"],
    SheetName.SELLERS.value: ["SellerID", "Name"],
    SheetName.SELLER_COMMISSIONS.value: ["SellerID", "ProductID", "CommissionType", "CommissionValue"],
    SheetName.INVOICES.value: [
        "InvoiceID",
        "ClientID",
        "SellerID",
        "CreatedAt",
        "DueDate",
        "TotalHard",
        "BalanceHard",
        "Status",
        "CommissionTotal",
        "QuoteID",
    ],
    SheetName.INVOICE_ITEMS.value: [
        "InvoiceID",
        "ProductID",
        "Quantity",
        "UnitPriceHard",
        "PricingMode",
        "CommissionType",
        "CommissionValue",
        "Subtotal",
    ],
    SheetName.COMMISSION_DETAIL.value: ["InvoiceID", "ProductID", "CommissionType", "CommissionValue", "Commission"],
    SheetName.INVOICE_PAYMENTS.value: [
        "PaymentID",
        "InvoiceID",
        "Timestamp",
        "AmountHard",
        "LocalRate",
        "AmountLocal",
        "Method",
        "Reference",
    ],
    SheetName.PURCHASES.value: [
        "PurchaseID",
        "Timestamp",
        "Supplier",
        "TotalLocal",
        "TotalDebtHard",
        "BalanceHard",
        "Status",
    ],
    SheetName.PURCHASE_ITEMS.value: [
        "PurchaseID",
        "ProductID",
        "Quantity",
        "UnitCostLocal",
        "SubtotalLocal",
        "SubtotalHard",
    ],
    SheetName.PURCHASE_PAYMENTS.value: [
        "PaymentID",
        "PurchaseID",
        "Timestamp",
        "AmountHard",
        "LocalRate",
        "AmountLocal",
        "Method",
        "Reference",
    ],
    SheetName.COMMISSION_PAYMENTS.value: [
        "PaymentID",
        "SellerID",
        "Timestamp",
        "AmountHard",
        "LocalRate",
        "AmountLocal",
        "Reference",
        "InvoiceIDs",
    ],
    SheetName.QUOTES.value: ["QuoteID", "ClientID", "CreatedAt", "DeliveryDate", "Notes"],
    SheetName.QUOTE_ITEMS.value: ["QuoteID", "ProductID", "Quantity"],
}


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    business_name: str
    schema_version: str
    default_seller_id: str
    exchange_rate: Decimal = Decimal("1")
    credit_surcharge_percent: Decimal = DEFAULT_CREDIT_SURCHARGE_PERCENT
    credit_days: int = DEFAULT_CREDIT_DAYS
    allow_delete_with_payments: bool = False


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. Otherwise the function walks up from the current
    working directory toward the filesystem root looking for a file named
    ``CONFIG_FILE_NAME``; the first match is considered authoritative.

    Args:
        explicit_path (Path | None): Optional path to use instead of performing
            the upward search.

    Returns:
        Path: The path provided by the caller or the discovered configuration
            file.

    Raises:
        FileNotFoundError: If no ``CONFIG_FILE_NAME`` exists in the working
            directory or any of its parents.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Validation of required entries happens in :func:`parse_settings`.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = Path(config_path).expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path, encoding="utf-8")
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    ``[System] DataFile``, ``BusinessName`` and ``SchemaVersion`` plus
    ``[Defaults] DefaultSeller`` are required. The exchange rate, credit
    surcharge, credit days, and the ``[Policy]`` section fall back to their
    defaults. Relative data paths are expanded against ``base_path`` (or the
    current working directory) and resolved.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Anchor directory for relative ``DataFile``
            entries.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If one of the required sections or options is missing.
        ValueError: If an optional numeric or boolean entry is malformed.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        business_name = parser.get("System", "BusinessName")
        schema_version = parser.get("System", "SchemaVersion")
        default_seller = parser.get("Defaults", "DefaultSeller")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        log.error("Configuration is missing a required entry: %s", exc)
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    exchange_rate = to_decimal(parser.get("Defaults", "ExchangeRate", fallback="1"))
    surcharge = to_decimal(
        parser.get("Defaults", "CreditSurchargePercent", fallback=str(DEFAULT_CREDIT_SURCHARGE_PERCENT))
    )
    credit_days = parser.getint("Defaults", "CreditDays", fallback=DEFAULT_CREDIT_DAYS)
    allow_delete = parser.getboolean("Policy", "AllowDeleteWithPayments", fallback=False)

    data_file_path = Path(data_file_raw).expanduser()
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        business_name=business_name,
        schema_version=schema_version,
        default_seller_id=default_seller,
        exchange_rate=exchange_rate,
        credit_surcharge_percent=surcharge,
        credit_days=credit_days,
        allow_delete_with_payments=allow_delete,
    )


# ---------------------------------------------------------------------------
# Workbook lifecycle
# ---------------------------------------------------------------------------


def open_workbook(data_file: Path) -> Workbook:
    """Open the master Excel workbook and return a live ``openpyxl`` workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    return openpyxl.load_workbook(data_file)


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook at ``destination``, creating parent folders."""

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding any unsaved in-memory changes."""

    return open_workbook(data_file)


def new_workbook(sheet_columns: Mapping[str, Sequence[str]] = SHEET_COLUMNS) -> Workbook:
    """Create an empty workbook with one bold header row per sheet.

    The ``Meta`` sheet is stamped with :data:`EXPECTED_SCHEMA_VERSION`.
    """

    workbook = openpyxl.Workbook()
    # Remove the default sheet openpyxl generates so we can create ours.
    if workbook.active is not None and workbook.active.title == "Sheet":
        workbook.remove(workbook.active)

    bold_font = Font(bold=True)
    for sheet_name, columns in sheet_columns.items():
        worksheet = workbook.create_sheet(title=sheet_name)
        for column_index, column_name in enumerate(columns, start=1):
            cell = worksheet.cell(row=1, column=column_index)
            cell.value = column_name
            cell.font = bold_font

    if SheetName.META.value in workbook.sheetnames:
        workbook[SheetName.META.value].append(["SchemaVersion", EXPECTED_SCHEMA_VERSION])
    return workbook


def validate_workbook(workbook: Workbook) -> None:
    """Ensure every sheet in :data:`SHEET_COLUMNS` is present.

    Raises:
        KeyError: If a worksheet is missing.
    """

    missing = [name for name in SHEET_COLUMNS if name not in workbook.sheetnames]
    if missing:
        log.error("Workbook is missing worksheets: %s", ", ".join(missing))
        raise KeyError(f"Workbook is missing worksheets: {', '.join(missing)}")


def workbook_schema_version(workbook: Workbook) -> Optional[str]:
    """Return the schema version recorded on the ``Meta`` sheet, if any."""

    for key, value in iter_rows(workbook, SheetName.META.value):
        if key == "SchemaVersion":
            return None if value is None else str(value)
    return None


def iter_rows(workbook: Workbook, sheet_name: str) -> Iterable[Tuple[Any, ...]]:
    """Yield the data rows of ``sheet_name`` padded to its declared width.

    The header row and fully empty rows are skipped.
    """

    width = len(SHEET_COLUMNS[sheet_name])
    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, max_col=width, values_only=True):
        if any(cell is not None for cell in raw):
            yield tuple(raw) + (None,) * (width - len(raw))


# ---------------------------------------------------------------------------
# Whole-ledger snapshot
# ---------------------------------------------------------------------------


def read_ledger(workbook: Workbook) -> LedgerData:
    """Load every collection stored in ``workbook``.

    Args:
        workbook (Workbook): Workbook laid out as :data:`SHEET_COLUMNS`.

    Returns:
        LedgerData: Records rebuilt with their nested items and payments.

    Raises:
        KeyError: If a worksheet is missing.
    """

    validate_workbook(workbook)

    seller_commissions: Dict[str, Dict[str, CommissionConfig]] = defaultdict(dict)
    for raw in iter_rows(workbook, SheetName.SELLER_COMMISSIONS.value):
        seller_id, product_id, config = deserialize_seller_commission(raw)
        seller_commissions[seller_id][product_id] = config

    commission_payments = _group(
        deserialize_commission_payment(raw) for raw in iter_rows(workbook, SheetName.COMMISSION_PAYMENTS.value)
    )
    invoice_items = _group(deserialize_invoice_item(raw) for raw in iter_rows(workbook, SheetName.INVOICE_ITEMS.value))
    commission_detail = _group(
        deserialize_commission_line(raw) for raw in iter_rows(workbook, SheetName.COMMISSION_DETAIL.value)
    )
    purchase_items = _group(
        deserialize_purchase_item(raw) for raw in iter_rows(workbook, SheetName.PURCHASE_ITEMS.value)
    )
    purchase_payments = _group(
        (payment.parent_id, payment)
        for payment in (deserialize_payment(raw) for raw in iter_rows(workbook, SheetName.PURCHASE_PAYMENTS.value))
    )
    quote_items = _group(deserialize_quote_item(raw) for raw in iter_rows(workbook, SheetName.QUOTE_ITEMS.value))

    data = LedgerData(
        products=[deserialize_product(raw) for raw in iter_rows(workbook, SheetName.PRODUCTS.value)],
        clients=[deserialize_client(raw) for raw in iter_rows(workbook, SheetName.CLIENTS.value)],
        sellers=[
            deserialize_seller(
                raw,
                commissions=seller_commissions.get(str(raw[0]), {}),
                payments=commission_payments.get(str(raw[0]), ()),
            )
            for raw in iter_rows(workbook, SheetName.SELLERS.value)
        ],
        invoices=[
            deserialize_invoice(
                raw,
                items=invoice_items.get(str(raw[0]), ()),
                detail=commission_detail.get(str(raw[0]), ()),
            )
            for raw in iter_rows(workbook, SheetName.INVOICES.value)
        ],
        invoice_payments=[deserialize_payment(raw) for raw in iter_rows(workbook, SheetName.INVOICE_PAYMENTS.value)],
        purchases=[
            deserialize_purchase(
                raw,
                items=purchase_items.get(str(raw[0]), ()),
                payments=purchase_payments.get(str(raw[0]), ()),
            )
            for raw in iter_rows(workbook, SheetName.PURCHASES.value)
        ],
        quotes=[
            deserialize_quote(raw, items=quote_items.get(str(raw[0]), ()))
            for raw in iter_rows(workbook, SheetName.QUOTES.value)
        ],
    )
    log.debug(
        "Read ledger workbook: %d products, %d invoices, %d purchases",
        len(data.products),
        len(data.invoices),
        len(data.purchases),
    )
    return data


def build_workbook(data: LedgerData) -> Workbook:
    """Render ``data`` into a fresh workbook without touching disk."""

    workbook = new_workbook()

    def append(sheet: SheetName, rows: Iterable[List[object]]) -> None:
        worksheet = workbook[sheet.value]
        for row in rows:
            worksheet.append(row)

    append(SheetName.PRODUCTS, (serialize_product(product) for product in data.products))
    append(SheetName.CLIENTS, (serialize_client(client) for client in data.clients))
    append(SheetName.SELLERS, (serialize_seller(seller) for seller in data.sellers))
    append(
        SheetName.SELLER_COMMISSIONS,
        (
            serialize_seller_commission(seller.seller_id, product_id, config)
            for seller in data.sellers
            for product_id, config in sorted(seller.commissions.items())
        ),
    )
    append(
        SheetName.COMMISSION_PAYMENTS,
        (serialize_commission_payment(payment) for seller in data.sellers for payment in seller.commission_payments),
    )
    append(SheetName.INVOICES, (serialize_invoice(invoice) for invoice in data.invoices))
    append(
        SheetName.INVOICE_ITEMS,
        (serialize_invoice_item(invoice.invoice_id, item) for invoice in data.invoices for item in invoice.items),
    )
    append(
        SheetName.COMMISSION_DETAIL,
        (
            serialize_commission_line(invoice.invoice_id, line)
            for invoice in data.invoices
            for line in invoice.commission_detail
        ),
    )
    append(SheetName.INVOICE_PAYMENTS, (serialize_payment(payment) for payment in data.invoice_payments))
    append(SheetName.PURCHASES, (serialize_purchase(purchase) for purchase in data.purchases))
    append(
        SheetName.PURCHASE_ITEMS,
        (serialize_purchase_item(purchase.purchase_id, item) for purchase in data.purchases for item in purchase.items),
    )
    append(
        SheetName.PURCHASE_PAYMENTS,
        (serialize_payment(payment) for purchase in data.purchases for payment in purchase.payments),
    )
    append(SheetName.QUOTES, (serialize_quote(quote) for quote in data.quotes))
    append(
        SheetName.QUOTE_ITEMS,
        (serialize_quote_item(quote.quote_id, item) for quote in data.quotes for item in quote.items),
    )
    return workbook


def save_ledger(data: LedgerData, destination: Path) -> None:
    """Write the full ledger snapshot to ``destination``, replacing its content."""

    save_workbook(build_workbook(data), destination)
    log.debug("Saved ledger workbook to '%s'", destination)


def _group(pairs: Iterable[Tuple[str, Any]]) -> Dict[str, Tuple[Any, ...]]:
    grouped: Dict[str, List[Any]] = defaultdict(list)
    for parent_id, record in pairs:
        grouped[parent_id].append(record)
    return {parent_id: tuple(records) for parent_id, records in grouped.items()}


# ---------------------------------------------------------------------------
# Cell conversions
# ---------------------------------------------------------------------------


def _text(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value)
    return text if text != "" else None


def _money(value: object) -> Decimal:
    return to_money(value) if value is not None else Decimal("0.00")


def _quantity(value: object) -> Decimal:
    return to_quantity(value) if value is not None else Decimal("0.000")


def _timestamp(value: object) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _date(value: object) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


# ---------------------------------------------------------------------------
# Per-sheet serializers
# ---------------------------------------------------------------------------


def serialize_product(record: Product) -> List[object]:
    """Arrange a product as ``[ProductID, Name, SalePriceHard, StockQty,
    PurchaseCostLocal, CommissionType, CommissionValue]``."""

    return [
        record.product_id,
        record.name,
        record.sale_price_hard,
        record.stock_qty,
        record.purchase_cost_local,
        record.commission.type.value,
        record.commission.value,
    ]


def deserialize_product(raw_row: Sequence[object]) -> Product:
    """Convert a ``Products`` row into a :class:`Product`.

    Identifiers are coerced to ``str`` so that Excel's numeric guessing never
    leaks into lookups.
    """

    product_id, name, price, stock, cost, commission_type, commission_value = raw_row
    return Product(
        product_id=str(product_id),
        name=str(name),
        sale_price_hard=_money(price),
        stock_qty=_quantity(stock),
        purchase_cost_local=_money(cost),
        commission=CommissionConfig(
            type=CommissionType(commission_type or CommissionType.PERCENT.value),
            value=to_decimal(commission_value) if commission_value is not None else Decimal("0"),
        ),
    )


def serialize_client(record: Client) -> List[object]:
    return [record.client_id, record.name, record.phone]


def deserialize_client(raw_row: Sequence[object]) -> Client:
    client_id, name, phone = raw_row
    return Client(client_id=str(client_id), name=str(name), phone=_text(phone))


def serialize_seller(record: Seller) -> List[object]:
    return [record.seller_id, record.name]


def deserialize_seller(
    raw_row: Sequence[object],
    *,
    commissions: Mapping[str, CommissionConfig],
    payments: Sequence[CommissionPayment],
) -> Seller:
    seller_id, name = raw_row
    return Seller(
        seller_id=str(seller_id),
        name=str(name),
        commissions=dict(commissions),
        commission_payments=tuple(payments),
    )


def serialize_seller_commission(seller_id: str, product_id: str, config: CommissionConfig) -> List[object]:
    return [seller_id, product_id, config.type.value, config.value]


def deserialize_seller_commission(raw_row: Sequence[object]) -> Tuple[str, str, CommissionConfig]:
    seller_id, product_id, commission_type, commission_value = raw_row
    config = CommissionConfig(type=CommissionType(commission_type), value=to_decimal(commission_value or 0))
    return str(seller_id), str(product_id), config


def serialize_commission_payment(record: CommissionPayment) -> List[object]:
    return [
        record.payment_id,
        record.seller_id,
        record.timestamp.isoformat(),
        record.amount_hard,
        record.local_rate_at_time,
        record.amount_local,
        record.reference,
        ",".join(record.invoice_ids),
    ]


def deserialize_commission_payment(raw_row: Sequence[object]) -> Tuple[str, CommissionPayment]:
    payment_id, seller_id, timestamp, amount, rate, amount_local, reference, invoice_ids = raw_row
    payment = CommissionPayment(
        payment_id=str(payment_id),
        seller_id=str(seller_id),
        timestamp=_timestamp(timestamp),
        amount_hard=_money(amount),
        local_rate_at_time=to_decimal(rate),
        amount_local=_money(amount_local),
        reference=str(reference),
        invoice_ids=tuple(part for part in str(invoice_ids or "").split(",") if part),
    )
    return payment.seller_id, payment


def serialize_invoice(record: Invoice) -> List[object]:
    return [
        record.invoice_id,
        record.client_id,
        record.seller_id,
        record.created_at.isoformat(),
        record.due_date.isoformat(),
        record.total_hard,
        record.balance_hard,
        record.status.value,
        record.commission_total,
        record.quote_id,
    ]


def deserialize_invoice(
    raw_row: Sequence[object],
    *,
    items: Sequence[InvoiceItem],
    detail: Sequence[CommissionLine],
) -> Invoice:
    """Rebuild an invoice from its header row and its child rows."""

    (
        invoice_id,
        client_id,
        seller_id,
        created_at,
        due_date,
        total,
        balance,
        status,
        commission_total,
        quote_id,
    ) = raw_row
    return Invoice(
        invoice_id=str(invoice_id),
        client_id=str(client_id),
        seller_id=_text(seller_id),
        created_at=_timestamp(created_at),
        due_date=_date(due_date),
        items=tuple(items),
        total_hard=_money(total),
        balance_hard=_money(balance),
        status=InvoiceStatus(status),
        commission_detail=tuple(detail),
        commission_total=_money(commission_total),
        quote_id=_text(quote_id),
    )


def serialize_invoice_item(invoice_id: str, record: InvoiceItem) -> List[object]:
    return [
        invoice_id,
        record.product_id,
        record.quantity,
        record.unit_price_hard,
        record.pricing_mode.value,
        record.commission_type.value,
        record.commission_value,
        record.subtotal,
    ]


def deserialize_invoice_item(raw_row: Sequence[object]) -> Tuple[str, InvoiceItem]:
    invoice_id, product_id, quantity, price, mode, commission_type, commission_value, subtotal = raw_row
    item = InvoiceItem(
        product_id=str(product_id),
        quantity=_quantity(quantity),
        unit_price_hard=_money(price),
        pricing_mode=PricingMode(mode),
        commission_type=CommissionType(commission_type),
        commission_value=to_decimal(commission_value or 0),
        subtotal=_money(subtotal),
    )
    return str(invoice_id), item


def serialize_commission_line(invoice_id: str, record: CommissionLine) -> List[object]:
    return [invoice_id, record.product_id, record.commission_type.value, record.commission_value, record.commission]


def deserialize_commission_line(raw_row: Sequence[object]) -> Tuple[str, CommissionLine]:
    invoice_id, product_id, commission_type, commission_value, commission = raw_row
    line = CommissionLine(
        product_id=str(product_id),
        commission_type=CommissionType(commission_type),
        commission_value=to_decimal(commission_value or 0),
        commission=_money(commission),
    )
    return str(invoice_id), line


def serialize_payment(record: Payment) -> List[object]:
    """Shared row layout of the ``InvoicePayments`` and ``PurchasePayments`` sheets."""

    return [
        record.payment_id,
        record.parent_id,
        record.timestamp.isoformat(),
        record.amount_hard,
        record.local_rate_at_time,
        record.amount_local,
        record.method,
        record.reference,
    ]


def deserialize_payment(raw_row: Sequence[object]) -> Payment:
    payment_id, parent_id, timestamp, amount, rate, amount_local, method, reference = raw_row
    return Payment(
        payment_id=str(payment_id),
        parent_id=str(parent_id),
        timestamp=_timestamp(timestamp),
        amount_hard=_money(amount),
        local_rate_at_time=to_decimal(rate),
        amount_local=_money(amount_local),
        method=str(method) if method is not None else "",
        reference=_text(reference),
    )


def serialize_purchase(record: Purchase) -> List[object]:
    return [
        record.purchase_id,
        record.timestamp.isoformat(),
        record.supplier,
        record.total_local,
        record.total_debt_hard,
        record.balance_hard,
        record.status.value,
    ]


def deserialize_purchase(
    raw_row: Sequence[object],
    *,
    items: Sequence[PurchaseItem],
    payments: Sequence[Payment],
) -> Purchase:
    purchase_id, timestamp, supplier, total_local, total_debt, balance, status = raw_row
    return Purchase(
        purchase_id=str(purchase_id),
        timestamp=_timestamp(timestamp),
        items=tuple(items),
        total_local=_money(total_local),
        total_debt_hard=_money(total_debt),
        balance_hard=_money(balance),
        status=PurchaseStatus(status),
        payments=tuple(sorted(payments, key=lambda payment: (payment.timestamp, payment.payment_id))),
        supplier=_text(supplier),
    )


def serialize_purchase_item(purchase_id: str, record: PurchaseItem) -> List[object]:
    return [
        purchase_id,
        record.product_id,
        record.quantity,
        record.unit_cost_local,
        record.subtotal_local,
        record.subtotal_hard,
    ]


def deserialize_purchase_item(raw_row: Sequence[object]) -> Tuple[str, PurchaseItem]:
    purchase_id, product_id, quantity, unit_cost, subtotal_local, subtotal_hard = raw_row
    item = PurchaseItem(
        product_id=str(product_id),
        quantity=_quantity(quantity),
        unit_cost_local=_money(unit_cost),
        subtotal_local=_money(subtotal_local),
        subtotal_hard=_money(subtotal_hard),
    )
    return str(purchase_id), item


def serialize_quote(record: Quote) -> List[object]:
    return [
        record.quote_id,
        record.client_id,
        record.created_at.isoformat(),
        record.delivery_date.isoformat() if record.delivery_date else None,
        record.notes,
    ]


def deserialize_quote(raw_row: Sequence[object], *, items: Sequence[QuoteItem]) -> Quote:
    quote_id, client_id, created_at, delivery_date, notes = raw_row
    return Quote(
        quote_id=str(quote_id),
        client_id=str(client_id),
        created_at=_timestamp(created_at),
        items=tuple(items),
        delivery_date=_date(delivery_date),
        notes=_text(notes),
    )


def serialize_quote_item(quote_id: str, record: QuoteItem) -> List[object]:
    return [quote_id, record.product_id, record.quantity]


def deserialize_quote_item(raw_row: Sequence[object]) -> Tuple[str, QuoteItem]:
    quote_id, product_id, quantity = raw_row
    return str(quote_id), QuoteItem(product_id=str(product_id), quantity=_quantity(quantity))
