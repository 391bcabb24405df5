"""Ledger context: the single owner of every collection.

The context keeps products, clients, sellers, invoices, invoice payments,
purchases, and quotes behind typed operations. Ledger modules read records
through the lookup helpers below and write them back through
:meth:`LedgerContext.commit`, which swaps every replacement record in one
step. Compound operations hold per-entity locks (one per invoice, purchase,
product, seller, or quote) acquired in a stable order, so two edits touching
the same entity are serialized while unrelated work proceeds in parallel.

Directory records (products, clients, sellers) are supplied by external
collaborators; the helpers here register them and expose read-only lookups.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from decimal import Decimal
from pathlib import Path
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Tuple,
    TypeVar,
)

from . import data_manager, log
from .constants import (
    DEFAULT_CREDIT_DAYS,
    DEFAULT_CREDIT_SURCHARGE_PERCENT,
    EXPECTED_SCHEMA_VERSION,
    CommissionType,
)
from .errors import MissingReferenceError, ValidationError
from .models import (
    Client,
    CommissionConfig,
    Invoice,
    LedgerData,
    Payment,
    Product,
    Purchase,
    Quote,
    Seller,
)
from .money import Numeric, require_nonnegative_money, to_money, to_quantity, to_decimal
from .rates import ExchangeRateProvider, FixedRateProvider

T = TypeVar("T")
LockKey = Tuple[str, str]

# Collection name -> attribute holding the record id.
_COLLECTIONS: Mapping[str, str] = {
    "products": "product_id",
    "clients": "client_id",
    "sellers": "seller_id",
    "invoices": "invoice_id",
    "invoice_payments": "payment_id",
    "purchases": "purchase_id",
    "quotes": "quote_id",
}


@dataclass(frozen=True)
class LedgerPolicy:
    """Business policy knobs that shape ledger behavior."""

    credit_surcharge_percent: Decimal = DEFAULT_CREDIT_SURCHARGE_PERCENT
    credit_days: int = DEFAULT_CREDIT_DAYS
    allow_delete_with_payments: bool = False

    @classmethod
    def from_settings(cls, settings: data_manager.ConfigSettings) -> "LedgerPolicy":
        return cls(
            credit_surcharge_percent=settings.credit_surcharge_percent,
            credit_days=settings.credit_days,
            allow_delete_with_payments=settings.allow_delete_with_payments,
        )


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` or the current UTC time when it is ``None``."""

    return candidate if candidate is not None else datetime.now(UTC)


class LedgerContext:
    """In-memory owner of the ledger collections.

    Args:
        rates (ExchangeRateProvider | None): Source of the current hard-to-local
            rate. Defaults to a fixed rate of ``1``.
        policy (LedgerPolicy | None): Business policy; defaults apply when
            omitted.
        settings (data_manager.ConfigSettings | None): Settings the context was
            loaded from, required only for persistence.
    """

    def __init__(
        self,
        *,
        rates: Optional[ExchangeRateProvider] = None,
        policy: Optional[LedgerPolicy] = None,
        settings: Optional[data_manager.ConfigSettings] = None,
    ) -> None:
        self.rates: ExchangeRateProvider = rates if rates is not None else FixedRateProvider(Decimal("1"))
        self.policy = policy if policy is not None else LedgerPolicy()
        self.settings = settings
        self._products: Dict[str, Product] = {}
        self._clients: Dict[str, Client] = {}
        self._sellers: Dict[str, Seller] = {}
        self._invoices: Dict[str, Invoice] = {}
        self._invoice_payments: Dict[str, Payment] = {}
        self._purchases: Dict[str, Purchase] = {}
        self._quotes: Dict[str, Quote] = {}
        self._store_lock = threading.RLock()
        self._registry_lock = threading.Lock()
        self._entity_locks: Dict[LockKey, threading.RLock] = {}
        self._issued_ids: set[str] = set()

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def _lock_for(self, key: LockKey) -> threading.RLock:
        with self._registry_lock:
            lock = self._entity_locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._entity_locks[key] = lock
            return lock

    @contextmanager
    def locked(self, *keys: LockKey) -> Iterator[None]:
        """Hold the locks of every entity in ``keys`` for the block.

        Locks are taken in sorted order so that overlapping lock sets never
        deadlock against each other.
        """

        ordered = sorted(set(keys))
        acquired: List[threading.RLock] = []
        try:
            for key in ordered:
                lock = self._lock_for(key)
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    def run_locked(
        self,
        load: Callable[[], T],
        keys_for: Callable[[T], Iterable[LockKey]],
        action: Callable[[T], Any],
    ) -> Any:
        """Run ``action`` on a snapshot while holding the locks it depends on.

        ``load`` reads the records the operation starts from and ``keys_for``
        derives the lock set from them. After locking, the snapshot is read
        again; if another writer replaced any record in between, the cycle
        restarts with the fresh snapshot.
        """

        while True:
            snapshot = load()
            with self.locked(*keys_for(snapshot)):
                current = load()
                if _same_records(current, snapshot):
                    return action(current)
            log.debug("Snapshot changed while acquiring locks; retrying")

    # ------------------------------------------------------------------
    # Store access
    # ------------------------------------------------------------------

    def _collection(self, name: str) -> Dict[str, Any]:
        if name not in _COLLECTIONS:
            raise KeyError(f"Unknown collection: {name}")
        return getattr(self, f"_{name}")

    def lookup(self, collection: str, record_id: str) -> Any:
        """Return the stored record or raise :class:`MissingReferenceError`."""

        with self._store_lock:
            record = self._collection(collection).get(record_id)
        if record is None:
            label = collection[:-1].replace("_", " ")
            log.warning("Lookup failed for %s id '%s'", label, record_id)
            raise MissingReferenceError(f"Unknown {label} id: {record_id}")
        return record

    def find(self, collection: str, record_id: Optional[str]) -> Any:
        if record_id is None:
            return None
        with self._store_lock:
            return self._collection(collection).get(record_id)

    def values(self, collection: str) -> List[Any]:
        with self._store_lock:
            return list(self._collection(collection).values())

    def commit(
        self,
        *,
        removed: Iterable[Tuple[str, str]] = (),
        **upserts: Iterable[Any],
    ) -> None:
        """Apply replacement records and removals as a single visible change.

        Args:
            removed: ``(collection, record_id)`` pairs to drop.
            **upserts: Collection name mapped to the records to store.
        """

        with self._store_lock:
            for name, records in upserts.items():
                store = self._collection(name)
                id_attr = _COLLECTIONS[name]
                for record in records:
                    store[getattr(record, id_attr)] = record
            for name, record_id in removed:
                self._collection(name).pop(record_id, None)

    def next_id(self, prefix: str, *, when: Optional[datetime] = None) -> str:
        """Allocate a sortable identifier such as ``INV20250101120000123456``.

        The timestamp keeps identifiers in chronological order; a numeric
        suffix is appended when two records are created within the same
        microsecond.
        """

        when = _resolve_timestamp(when)
        base = f"{prefix}{when.strftime('%Y%m%d%H%M%S%f')}"
        with self._registry_lock:
            candidate = base
            suffix = 1
            while candidate in self._issued_ids:
                suffix += 1
                candidate = f"{base}-{suffix}"
            self._issued_ids.add(candidate)
        return candidate

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def load(self, data: LedgerData) -> None:
        """Replace every collection with the contents of ``data``."""

        with self._store_lock:
            for name, id_attr in _COLLECTIONS.items():
                store = self._collection(name)
                store.clear()
                for record in getattr(data, name):
                    store[getattr(record, id_attr)] = record
            with self._registry_lock:
                self._issued_ids = {
                    record_id
                    for name in _COLLECTIONS
                    for record_id in self._collection(name)
                }
                for purchase in self._purchases.values():
                    self._issued_ids.update(p.payment_id for p in purchase.payments)
                for seller in self._sellers.values():
                    self._issued_ids.update(p.payment_id for p in seller.commission_payments)
        log.info(
            "Loaded ledger with %d products, %d invoices, %d purchases",
            len(data.products),
            len(data.invoices),
            len(data.purchases),
        )

    def export(self) -> LedgerData:
        """Return a snapshot of every collection for persistence or display."""

        with self._store_lock:
            return LedgerData(**{name: list(self._collection(name).values()) for name in _COLLECTIONS})


def _same_records(current: Any, snapshot: Any) -> bool:
    if isinstance(snapshot, tuple) and isinstance(current, tuple):
        return len(current) == len(snapshot) and all(a is b for a, b in zip(current, snapshot))
    return current is snapshot


def product_key(product_id: str) -> LockKey:
    return ("product", product_id)


def invoice_key(invoice_id: str) -> LockKey:
    return ("invoice", invoice_id)


def purchase_key(purchase_id: str) -> LockKey:
    return ("purchase", purchase_id)


def seller_key(seller_id: str) -> LockKey:
    return ("seller", seller_id)


def quote_key(quote_id: str) -> LockKey:
    return ("quote", quote_id)


# ---------------------------------------------------------------------------
# Runtime bootstrap
# ---------------------------------------------------------------------------


def load_runtime_context(
    config_path: Optional[Path] = None,
    *,
    rates: Optional[ExchangeRateProvider] = None,
) -> LedgerContext:
    """Load configuration and the persisted ledger into a fresh context.

    Args:
        config_path (Path | None): Optional override path for ``config.ini``.
            When omitted the data layer searches upwards from the working
            directory.
        rates (ExchangeRateProvider | None): Rate provider to use instead of the
            fixed rate declared in the configuration.

    Returns:
        LedgerContext: Context populated from the configured workbook.

    Raises:
        FileNotFoundError: If the configuration file or workbook is missing.
        KeyError: When mandatory configuration options are missing.
    """

    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    context = LedgerContext(
        rates=rates if rates is not None else FixedRateProvider(settings.exchange_rate),
        policy=LedgerPolicy.from_settings(settings),
        settings=settings,
    )
    context.load(data_manager.read_ledger(workbook))
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return context


def ensure_schema_version(context: LedgerContext) -> None:
    """Validate that the configured schema matches ``EXPECTED_SCHEMA_VERSION``.

    Raises:
        RuntimeError: If the versions differ or the context has no settings.
    """

    if context.settings is None:
        raise RuntimeError("Context was not loaded from a configuration file")
    if context.settings.schema_version != EXPECTED_SCHEMA_VERSION:
        log.error(
            "Workbook schema mismatch: expected %s, found %s",
            EXPECTED_SCHEMA_VERSION,
            context.settings.schema_version,
        )
        raise RuntimeError(
            "Workbook schema mismatch: expected %s, found %s"
            % (EXPECTED_SCHEMA_VERSION, context.settings.schema_version)
        )
    log.debug("Schema version '%s' validated", context.settings.schema_version)


def persist_context(context: LedgerContext) -> None:
    """Write every collection back to the configured workbook."""

    if context.settings is None:
        raise RuntimeError("Context was not loaded from a configuration file")
    data_manager.save_ledger(context.export(), context.settings.data_file)
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: LedgerContext) -> LedgerContext:
    """Reload the workbook into a new context, discarding unsaved changes."""

    if context.settings is None:
        raise RuntimeError("Context was not loaded from a configuration file")
    workbook = data_manager.refresh_workbook(context.settings.data_file)
    fresh = LedgerContext(rates=context.rates, policy=context.policy, settings=context.settings)
    fresh.load(data_manager.read_ledger(workbook))
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return fresh


# ---------------------------------------------------------------------------
# Directories
# ---------------------------------------------------------------------------


def _require_text(value: Optional[str], label: str) -> str:
    if value is None or not str(value).strip():
        log.error("%s validation failed: value is blank", label)
        raise ValidationError(f"{label} is required")
    return str(value).strip()


def _commission_config(type_: CommissionType | str, value: Numeric) -> CommissionConfig:
    commission_value = to_decimal(value)
    if commission_value < Decimal("0"):
        log.error("Commission validation failed: %s", commission_value)
        raise ValidationError("Commission value must be zero or positive")
    return CommissionConfig(type=CommissionType(type_), value=commission_value)


def add_product(
    context: LedgerContext,
    *,
    product_id: str,
    name: str,
    sale_price_hard: Numeric,
    stock_qty: Numeric = 0,
    purchase_cost_local: Numeric = 0,
    commission_type: CommissionType | str = CommissionType.PERCENT,
    commission_value: Numeric = 0,
) -> Product:
    """Register a catalog product with its opening stock.

    Raises:
        ValidationError: If the id is already used or a value is invalid.
    """

    product_id = _require_text(product_id, "Product id")
    price = to_money(sale_price_hard)
    require_nonnegative_money(price, label="Sale price")
    stock = to_quantity(stock_qty)
    if stock < Decimal("0"):
        log.error("Opening stock validation failed: %s", stock)
        raise ValidationError("Opening stock must be zero or positive")
    product = Product(
        product_id=product_id,
        name=_require_text(name, "Product name"),
        sale_price_hard=price,
        stock_qty=stock,
        purchase_cost_local=to_money(purchase_cost_local),
        commission=_commission_config(commission_type, commission_value),
    )
    with context.locked(product_key(product_id)):
        if context.find("products", product_id) is not None:
            log.error("Duplicate product id '%s'", product_id)
            raise ValidationError(f"Product id already exists: {product_id}")
        context.commit(products=[product])
    log.info("Registered product '%s' (stock=%s)", product_id, stock)
    return product


def set_product_commission(
    context: LedgerContext,
    product_id: str,
    commission_type: CommissionType | str,
    commission_value: Numeric,
) -> Product:
    """Change a product's default commission for future invoices."""

    config = _commission_config(commission_type, commission_value)
    with context.locked(product_key(product_id)):
        product = replace(context.lookup("products", product_id), commission=config)
        context.commit(products=[product])
    log.info("Updated default commission of product '%s' to %s %s", product_id, config.value, config.type.value)
    return product


def add_client(context: LedgerContext, *, client_id: str, name: str, phone: Optional[str] = None) -> Client:
    client_id = _require_text(client_id, "Client id")
    client = Client(client_id=client_id, name=_require_text(name, "Client name"), phone=phone)
    with context.locked(("client", client_id)):
        if context.find("clients", client_id) is not None:
            log.error("Duplicate client id '%s'", client_id)
            raise ValidationError(f"Client id already exists: {client_id}")
        context.commit(clients=[client])
    log.info("Registered client '%s'", client_id)
    return client


def add_seller(context: LedgerContext, *, seller_id: str, name: str) -> Seller:
    seller_id = _require_text(seller_id, "Seller id")
    seller = Seller(seller_id=seller_id, name=_require_text(name, "Seller name"))
    with context.locked(seller_key(seller_id)):
        if context.find("sellers", seller_id) is not None:
            log.error("Duplicate seller id '%s'", seller_id)
            raise ValidationError(f"Seller id already exists: {seller_id}")
        context.commit(sellers=[seller])
    log.info("Registered seller '%s'", seller_id)
    return seller


def set_seller_commission(
    context: LedgerContext,
    seller_id: str,
    product_id: str,
    commission_type: CommissionType | str,
    commission_value: Numeric,
) -> Seller:
    """Configure the commission a seller earns on one product.

    Existing invoices keep the terms they were created with.
    """

    config = _commission_config(commission_type, commission_value)
    get_product(context, product_id)
    with context.locked(seller_key(seller_id)):
        seller = context.lookup("sellers", seller_id)
        commissions = dict(seller.commissions)
        commissions[product_id] = config
        updated = replace(seller, commissions=commissions)
        context.commit(sellers=[updated])
    log.info("Seller '%s' now earns %s %s on product '%s'", seller_id, config.value, config.type.value, product_id)
    return updated


def get_product(context: LedgerContext, product_id: str) -> Product:
    return context.lookup("products", product_id)


def get_client(context: LedgerContext, client_id: str) -> Client:
    return context.lookup("clients", client_id)


def get_seller(context: LedgerContext, seller_id: str) -> Seller:
    return context.lookup("sellers", seller_id)


def list_products(context: LedgerContext) -> List[Product]:
    return sorted(context.values("products"), key=lambda product: product.product_id)


def list_clients(context: LedgerContext) -> List[Client]:
    return sorted(context.values("clients"), key=lambda client: client.client_id)


def list_sellers(context: LedgerContext) -> List[Seller]:
    return sorted(context.values("sellers"), key=lambda seller: seller.seller_id)
