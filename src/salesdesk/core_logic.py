"""Business logic layer for salesdesk.

This module owns the runtime context and the stock adjustment engine: every
sale that is recorded, revised, or removed passes through here so that product
stock and the ``Sales`` sheet stay consistent. It consumes the Data Access
Layer (DAL) for all I/O.
"""

from __future__ import annotations

import threading
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from openpyxl.workbook import Workbook

from . import data_manager, log
from .constants import EXPECTED_SCHEMA_VERSION
from .errors import (
    BusinessRuleViolation,
    InsufficientStockError,
    InvalidRequestError,
    NotFoundError,
)
from .mailer import SmtpDeliveryChannel


@dataclass(frozen=True)
class RuntimeContext:
    """Container for configuration, workbook and collaborators used by the BLL."""

    settings: data_manager.ConfigSettings
    workbook: Workbook
    delivery_channel: Optional[Any] = None
    _cache: Dict[str, Dict[str, Any]] = field(default_factory=dict, repr=False, compare=False)
    _locks: Dict[str, threading.Lock] = field(default_factory=dict, repr=False, compare=False)
    _locks_guard: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)
    _workbook_lock: threading.RLock = field(default_factory=threading.RLock, repr=False, compare=False)


@dataclass(frozen=True)
class SaleCommand:
    """User intent for recording a sale.

    The product and customer are bound by identity when ``product_id`` /
    ``customer_id`` are given, otherwise by their exact name within the owner's
    records.
    """

    owner_id: str
    quantity: int
    total_price: Decimal
    product_name: Optional[str] = None
    customer_name: Optional[str] = None
    product_id: Optional[str] = None
    customer_id: Optional[str] = None
    sale_date: Optional[datetime] = None


@dataclass(frozen=True)
class ReviseSaleCommand:
    """User intent for replacing the details of an existing sale."""

    quantity: int
    total_price: Decimal
    product_name: Optional[str] = None
    customer_name: Optional[str] = None
    product_id: Optional[str] = None
    customer_id: Optional[str] = None
    sale_date: Optional[datetime] = None


@dataclass(frozen=True)
class SaleView:
    """Public projection of a sale returned to callers and listed in reports."""

    sale_id: str
    product_name: str
    customer_name: str
    quantity: int
    total_price: Decimal
    sale_date: datetime


def _resolve_timestamp(candidate: Optional[datetime]) -> datetime:
    """Return ``candidate`` as an aware datetime, defaulting to now (UTC)."""

    if candidate is None:
        return datetime.now(UTC)
    return to_utc(candidate)


def to_utc(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""

    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC)


def parse_sale_date(raw: str) -> datetime:
    """Parse a stored ``SaleDate`` cell into an aware datetime."""

    return to_utc(datetime.fromisoformat(raw))


@contextmanager
def workbook_lock(context: RuntimeContext) -> Iterator[None]:
    """Serialize workbook reads and writes across every product of this context.

    openpyxl sheets are not safe for concurrent appends, so ID allocation, row
    writes and cache rebuilds all run under this lock. It is reentrant and is
    always taken after any product lock.
    """

    with context._workbook_lock:
        yield


def _get_cache_bucket(context: RuntimeContext, name: str) -> Dict[str, Any]:
    bucket = context._cache.get(name)
    if bucket is None:
        log.debug("Initializing cache bucket '%s'", name)
        bucket = {}
        context._cache[name] = bucket
    return bucket


def _invalidate_cache(context: RuntimeContext, *names: str) -> None:
    """Evict one or more cache buckets after mutating workbook state."""

    if not names:
        return

    log.debug("Invalidating cache buckets: %s", ", ".join(names))

    with workbook_lock(context):
        for name in names:
            context._cache.pop(name, None)


def _ensure_products_cache(context: RuntimeContext) -> Dict[str, Any]:
    """Populate the product cache bucket on demand.

    Returns:
        dict[str, Any]: Bucket containing ``all`` products, ``active``
            (non-deleted) products, and a ``by_id`` lookup dictionary.
    """

    with workbook_lock(context):
        bucket = _get_cache_bucket(context, "products")
        if "all" not in bucket:
            all_products = list(data_manager.iter_products(context.workbook))
            bucket.update(
                all=all_products,
                active=[product for product in all_products if not product.is_deleted],
                by_id={product.product_id: product for product in all_products},
            )
            log.debug(
                "Populated products cache with %d entries (%d active)",
                len(all_products),
                len(bucket["active"]),
            )
    return bucket


def _ensure_customers_cache(context: RuntimeContext) -> Dict[str, Any]:
    with workbook_lock(context):
        bucket = _get_cache_bucket(context, "customers")
        if "all" not in bucket:
            all_customers = list(data_manager.iter_customers(context.workbook))
            bucket.update(
                all=all_customers,
                by_id={customer.customer_id: customer for customer in all_customers},
            )
            log.debug("Populated customers cache with %d entries", len(all_customers))
    return bucket


def _ensure_sales_cache(context: RuntimeContext) -> Dict[str, Any]:
    """Populate the sale ledger cache bucket on demand.

    Sales stay in sheet order, which is also the order reports iterate them in.
    """

    with workbook_lock(context):
        bucket = _get_cache_bucket(context, "sales")
        if "all" not in bucket:
            all_sales = list(data_manager.iter_sales(context.workbook))
            bucket.update(
                all=all_sales,
                active=[sale for sale in all_sales if not sale.is_deleted],
                by_id={sale.sale_id: sale for sale in all_sales},
            )
            log.debug(
                "Populated sales cache with %d entries (%d active)",
                len(all_sales),
                len(bucket["active"]),
            )
    return bucket


def load_runtime_context(config_path: Optional[Path] = None) -> RuntimeContext:
    """Load configuration settings, the store workbook, and the mail channel.

    When ``config.ini`` declares a ``[Mail]`` section the SMTP delivery channel
    is constructed and validated here, so a broken mail setup is reported at
    start-up rather than on the first email export.

    Raises:
        FileNotFoundError: If the configuration file or workbook cannot be
            located.
        KeyError: When mandatory configuration options are missing.
        ValueError: When the mail configuration is incomplete.
    """
    located_config = data_manager.find_config_file(config_path)
    resolved_config = Path(located_config).expanduser().resolve()
    parser = data_manager.read_config(resolved_config)
    settings = data_manager.parse_settings(parser, base_path=resolved_config.parent)
    workbook = data_manager.open_workbook(settings.data_file)
    channel = SmtpDeliveryChannel.from_settings(settings.mail) if settings.mail is not None else None
    log.info("Loaded runtime context for workbook '%s'", settings.data_file)
    return RuntimeContext(settings=settings, workbook=workbook, delivery_channel=channel)


def ensure_schema_version(context: RuntimeContext) -> None:
    """Validate workbook compatibility before mutating state.

    Raises:
        RuntimeError: If the schema version declared in the configuration does
            not match ``EXPECTED_SCHEMA_VERSION``.
    """
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


def list_products(
    context: RuntimeContext,
    owner_id: Optional[str] = None,
    *,
    include_deleted: bool = False,
) -> List[data_manager.ProductRow]:
    """Return cached product rows, optionally scoped to one owner.

    Soft-deleted products are hidden unless ``include_deleted`` is set.
    """
    cache = _ensure_products_cache(context)
    source = cache["all"] if include_deleted else cache["active"]
    return [product for product in source if owner_id is None or product.owner_id == owner_id]


def list_customers(context: RuntimeContext, owner_id: Optional[str] = None) -> List[data_manager.CustomerRow]:
    cache = _ensure_customers_cache(context)
    return [customer for customer in cache["all"] if owner_id is None or customer.owner_id == owner_id]


def list_sales(
    context: RuntimeContext,
    owner_id: Optional[str] = None,
    *,
    include_deleted: bool = False,
) -> List[data_manager.SaleRow]:
    """Return sale rows in sheet order, optionally scoped to one owner."""
    cache = _ensure_sales_cache(context)
    source = cache["all"] if include_deleted else cache["active"]
    return [sale for sale in source if owner_id is None or sale.owner_id == owner_id]


def find_sales_in_range(
    context: RuntimeContext,
    owner_id: str,
    start: datetime,
    end: datetime,
) -> List[data_manager.SaleRow]:
    """Return the owner's active sales whose date lies in ``[start, end]``.

    Both bounds are inclusive and compared as UTC datetimes.
    """
    start, end = to_utc(start), to_utc(end)
    matches = [
        sale
        for sale in list_sales(context, owner_id)
        if start <= parse_sale_date(sale.sale_date_iso) <= end
    ]
    log.debug(
        "Found %d sales for owner '%s' between %s and %s",
        len(matches),
        owner_id,
        start.isoformat(),
        end.isoformat(),
    )
    return matches


def get_product(context: RuntimeContext, product_id: str) -> data_manager.ProductRow:
    """Resolve a product record by its identifier.

    Raises:
        NotFoundError: If ``product_id`` is absent from the workbook.
    """
    cache = _ensure_products_cache(context)
    try:
        return cache["by_id"][product_id]
    except KeyError as exc:
        log.warning("Product lookup failed for id '%s'", product_id)
        raise NotFoundError(f"Product not found: {product_id}") from exc


def get_customer(context: RuntimeContext, customer_id: str) -> data_manager.CustomerRow:
    """Resolve a customer record by its identifier.

    Raises:
        NotFoundError: If ``customer_id`` cannot be located.
    """
    cache = _ensure_customers_cache(context)
    try:
        return cache["by_id"][customer_id]
    except KeyError as exc:
        log.warning("Customer lookup failed for id '%s'", customer_id)
        raise NotFoundError(f"Customer not found: {customer_id}") from exc


def get_sale(context: RuntimeContext, sale_id: str) -> data_manager.SaleRow:
    """Resolve an active sale by its identifier.

    Soft-deleted sales are treated as absent because deletion is terminal.

    Raises:
        NotFoundError: If the sale is unknown or has been removed.
    """
    cache = _ensure_sales_cache(context)
    sale = cache["by_id"].get(sale_id)
    if sale is None or sale.is_deleted:
        log.warning("Sale lookup failed for id '%s'", sale_id)
        raise NotFoundError(f"Sale not found: {sale_id}")
    return sale


def find_product_by_name(context: RuntimeContext, owner_id: str, product_name: str) -> data_manager.ProductRow:
    """Resolve one of the owner's active products by its exact name.

    Raises:
        NotFoundError: If no active product carries ``product_name``.
        InvalidRequestError: If several products share the name, in which case
            the caller must supply the product id.
    """
    matches = [product for product in list_products(context, owner_id) if product.product_name == product_name]
    if not matches:
        log.warning("Product lookup failed for name '%s'", product_name)
        raise NotFoundError(f"Product not found: {product_name}")
    if len(matches) > 1:
        log.warning("Product name '%s' is ambiguous (%d matches)", product_name, len(matches))
        raise InvalidRequestError(f"Product name '{product_name}' is ambiguous; supply the product id")
    return matches[0]


def find_customer_by_name(context: RuntimeContext, owner_id: str, customer_name: str) -> data_manager.CustomerRow:
    """Resolve one of the owner's customers by exact name.

    Raises:
        NotFoundError: If no customer carries ``customer_name``.
        InvalidRequestError: If the name matches several customers.
    """
    matches = [customer for customer in list_customers(context, owner_id) if customer.customer_name == customer_name]
    if not matches:
        log.warning("Customer lookup failed for name '%s'", customer_name)
        raise NotFoundError(f"Customer not found: {customer_name}")
    if len(matches) > 1:
        log.warning("Customer name '%s' is ambiguous (%d matches)", customer_name, len(matches))
        raise InvalidRequestError(f"Customer name '{customer_name}' is ambiguous; supply the customer id")
    return matches[0]


def _resolve_product(
    context: RuntimeContext,
    owner_id: str,
    product_id: Optional[str],
    product_name: Optional[str],
) -> data_manager.ProductRow:
    if product_id:
        product = get_product(context, product_id)
        if product.owner_id != owner_id or product.is_deleted:
            log.warning("Product '%s' is not available to owner '%s'", product_id, owner_id)
            raise NotFoundError(f"Product not found: {product_id}")
        return product
    if product_name:
        return find_product_by_name(context, owner_id, product_name)
    raise InvalidRequestError("A product id or product name is required")


def _resolve_customer(
    context: RuntimeContext,
    owner_id: str,
    customer_id: Optional[str],
    customer_name: Optional[str],
) -> data_manager.CustomerRow:
    if customer_id:
        customer = get_customer(context, customer_id)
        if customer.owner_id != owner_id:
            log.warning("Customer '%s' is not available to owner '%s'", customer_id, owner_id)
            raise NotFoundError(f"Customer not found: {customer_id}")
        return customer
    if customer_name:
        return find_customer_by_name(context, owner_id, customer_name)
    raise InvalidRequestError("A customer id or customer name is required")


@contextmanager
def product_lock(context: RuntimeContext, product_id: str) -> Iterator[None]:
    """Serialize stock mutations for one product within this context."""

    with context._locks_guard:
        lock = context._locks.setdefault(product_id, threading.Lock())
    with lock:
        yield


def _write_stock(context: RuntimeContext, product: data_manager.ProductRow, new_stock: int) -> None:
    if new_stock < 0:
        log.error("Refusing to set negative stock %d for product '%s'", new_stock, product.product_id)
        raise BusinessRuleViolation(f"Stock for '{product.product_name}' cannot become negative")
    data_manager.update_product(context.workbook, product.product_id, field_values={"Stock": new_stock})
    _invalidate_cache(context, "products")


def register_product(
    context: RuntimeContext,
    *,
    owner_id: str,
    product_name: str,
    description: str,
    stock: int,
    price: Decimal,
) -> data_manager.ProductRow:
    """Append a product to the catalog so it can be sold and reported on."""
    if stock < 0:
        raise InvalidRequestError("Stock must be zero or positive")
    if price <= Decimal("0"):
        raise InvalidRequestError("Price must be greater than zero")
    with workbook_lock(context):
        product = data_manager.ProductRow(
            product_id=_allocate_id(context, "P", _ensure_products_cache(context)["by_id"]),
            owner_id=owner_id,
            product_name=product_name,
            description=description,
            stock=stock,
            price=price,
            is_deleted=False,
        )
        data_manager.append_product(context.workbook, product)
        _invalidate_cache(context, "products")
    log.info("Registered product '%s' (%s) with stock %d", product.product_name, product.product_id, stock)
    return product


def register_customer(
    context: RuntimeContext,
    *,
    owner_id: str,
    customer_name: str,
    email: str,
    phone_number: str,
    address: str,
) -> data_manager.CustomerRow:
    """Append a customer to the directory.

    Raises:
        InvalidRequestError: If another customer already uses ``email``.
    """
    with workbook_lock(context):
        if any(existing.email.lower() == email.lower() for existing in list_customers(context)):
            log.warning("Customer email '%s' is already registered", email)
            raise InvalidRequestError(f"Customer email already registered: {email}")
        customer = data_manager.CustomerRow(
            customer_id=_allocate_id(context, "C", _ensure_customers_cache(context)["by_id"]),
            owner_id=owner_id,
            customer_name=customer_name,
            email=email,
            phone_number=phone_number,
            address=address,
        )
        data_manager.append_customer(context.workbook, customer)
        _invalidate_cache(context, "customers")
    log.info("Registered customer '%s' (%s)", customer.customer_name, customer.customer_id)
    return customer


def record_sale(context: RuntimeContext, command: SaleCommand) -> SaleView:
    """Validate a sale, deduct stock, and append it to the ``Sales`` sheet.

    The stock check, the stock decrement, and the sale append happen while the
    product's lock is held; the writes also take :func:`workbook_lock` because
    every product shares the ``Sales`` sheet. If appending the sale fails the
    decrement is undone before the error propagates, so either both writes
    land or neither does.

    Args:
        context (RuntimeContext): Runtime context providing workbook access and
            caches.
        command (SaleCommand): Structured intent describing the sale request.

    Returns:
        SaleView: Projection of the newly recorded sale.

    Raises:
        NotFoundError: If the product or customer cannot be resolved.
        InsufficientStockError: If the product holds fewer units than
            ``command.quantity``. Nothing is written in that case.
        InvalidRequestError: When quantity or price validations fail.
    """
    require_positive_quantity(command.quantity)
    require_nonnegative_money(command.total_price)
    product = _resolve_product(context, command.owner_id, command.product_id, command.product_name)
    customer = _resolve_customer(context, command.owner_id, command.customer_id, command.customer_name)
    sale_date = _resolve_timestamp(command.sale_date)

    with product_lock(context, product.product_id):
        product = get_product(context, product.product_id)
        if product.stock < command.quantity:
            log.warning(
                "Rejected sale of %d x '%s': only %d in stock",
                command.quantity,
                product.product_name,
                product.stock,
            )
            raise InsufficientStockError(product.product_name, product.stock, command.quantity)

        with workbook_lock(context):
            sale = data_manager.SaleRow(
                sale_id=_allocate_id(context, "S", _ensure_sales_cache(context)["by_id"]),
                owner_id=command.owner_id,
                product_id=product.product_id,
                customer_id=customer.customer_id,
                product_name=product.product_name,
                customer_name=customer.customer_name,
                quantity=command.quantity,
                total_price=command.total_price,
                sale_date_iso=sale_date.isoformat(),
                is_deleted=False,
            )
            _write_stock(context, product, product.stock - command.quantity)
            try:
                data_manager.append_sale(context.workbook, sale)
            except Exception:
                log.error("Appending sale '%s' failed; restoring stock of '%s'", sale.sale_id, product.product_id)
                _write_stock(context, product, product.stock)
                raise
            _invalidate_cache(context, "sales")

    log.info(
        "Recorded sale '%s' of %d x '%s' for '%s' (total=%s)",
        sale.sale_id,
        sale.quantity,
        sale.product_name,
        sale.customer_name,
        sale.total_price,
    )
    return to_sale_view(sale)


def revise_sale(context: RuntimeContext, sale_id: str, command: ReviseSaleCommand) -> SaleView:
    """Replace the details of an active sale, rebalancing stock.

    The old quantity goes back to the product the sale originally referenced;
    the new quantity is then deducted from the product named by ``command``,
    which may be a different one. Availability is checked before any write,
    so a rejected revision leaves stock and the sale untouched.

    Raises:
        NotFoundError: If the sale or either product cannot be resolved.
        InsufficientStockError: If the new product cannot cover the new
            quantity once the old quantity has been returned.
        InvalidRequestError: When quantity or price validations fail.
    """
    require_positive_quantity(command.quantity)
    require_nonnegative_money(command.total_price)
    sale = get_sale(context, sale_id)
    old_product = get_product(context, sale.product_id)
    if command.product_id or command.product_name:
        new_product = _resolve_product(context, sale.owner_id, command.product_id, command.product_name)
    else:
        new_product = old_product
    if command.customer_id or command.customer_name:
        customer = _resolve_customer(context, sale.owner_id, command.customer_id, command.customer_name)
        customer_id, customer_name = customer.customer_id, customer.customer_name
    else:
        customer_id, customer_name = sale.customer_id, sale.customer_name
    sale_date = _resolve_timestamp(command.sale_date) if command.sale_date else parse_sale_date(sale.sale_date_iso)

    with ExitStack() as stack:
        # Fixed lock order keeps two crossing revisions from deadlocking.
        for product_id in sorted({old_product.product_id, new_product.product_id}):
            stack.enter_context(product_lock(context, product_id))
        old_product = get_product(context, old_product.product_id)
        new_product = get_product(context, new_product.product_id)
        same_product = old_product.product_id == new_product.product_id

        restored = old_product.stock + sale.quantity
        available = restored if same_product else new_product.stock
        if available < command.quantity:
            log.warning(
                "Rejected revision of sale '%s': %d x '%s' requested, %d available",
                sale_id,
                command.quantity,
                new_product.product_name,
                available,
            )
            raise InsufficientStockError(new_product.product_name, available, command.quantity)

        with workbook_lock(context):
            if same_product:
                _write_stock(context, old_product, restored - command.quantity)
            else:
                _write_stock(context, old_product, restored)
                _write_stock(context, new_product, new_product.stock - command.quantity)

            data_manager.update_sale(
                context.workbook,
                sale_id,
                field_values={
                    "ProductID": new_product.product_id,
                    "ProductName": new_product.product_name,
                    "CustomerID": customer_id,
                    "CustomerName": customer_name,
                    "Quantity": command.quantity,
                    "TotalPrice": command.total_price,
                    "SaleDate": sale_date.isoformat(),
                },
            )
            _invalidate_cache(context, "sales")

    log.info(
        "Revised sale '%s': %d x '%s' -> %d x '%s'",
        sale_id,
        sale.quantity,
        sale.product_name,
        command.quantity,
        new_product.product_name,
    )
    return to_sale_view(get_sale(context, sale_id))


def remove_sale(context: RuntimeContext, sale_id: str, *, restore_stock: Optional[bool] = None) -> None:
    """Soft-delete a sale.

    Whether the sold quantity goes back to stock is decided by ``restore_stock``
    or, when omitted, by ``[Sales] RestoreStockOnDelete`` (default: it does not).

    Raises:
        NotFoundError: If the sale is unknown or already removed.
    """
    sale = get_sale(context, sale_id)
    if restore_stock is None:
        restore_stock = context.settings.restore_stock_on_delete

    with product_lock(context, sale.product_id), workbook_lock(context):
        # A concurrent removal may have won the race; only one may restore stock.
        sale = get_sale(context, sale_id)
        if restore_stock:
            product = get_product(context, sale.product_id)
            _write_stock(context, product, product.stock + sale.quantity)
        data_manager.update_sale(context.workbook, sale_id, field_values={"IsDeleted": True})
        _invalidate_cache(context, "sales")
    log.info("Removed sale '%s' (stock restored: %s)", sale_id, restore_stock)


def to_sale_view(sale: data_manager.SaleRow) -> SaleView:
    return SaleView(
        sale_id=sale.sale_id,
        product_name=sale.product_name,
        customer_name=sale.customer_name,
        quantity=sale.quantity,
        total_price=sale.total_price,
        sale_date=parse_sale_date(sale.sale_date_iso),
    )


def generate_id(*, prefix: str, when: Optional[datetime] = None) -> str:
    """Generate a sortable identifier formed as ``{prefix}{YYYYMMDDHHMMSSffffff}``."""
    when = when or _resolve_timestamp(None)
    return f"{prefix}{when.strftime('%Y%m%d%H%M%S%f')}"


def _allocate_id(context: RuntimeContext, prefix: str, existing: Dict[str, Any]) -> str:
    when = _resolve_timestamp(None)
    candidate = generate_id(prefix=prefix, when=when)
    while candidate in existing:
        when += timedelta(microseconds=1)
        candidate = generate_id(prefix=prefix, when=when)
    return candidate


def require_positive_quantity(quantity: int) -> None:
    """Validate that a quantity is a whole number of at least one unit.

    Raises:
        InvalidRequestError: If ``quantity`` is not an integer or is below one.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        log.error("Quantity validation failed: %s", quantity)
        raise InvalidRequestError("Quantity must be a whole number greater than zero")


def require_nonnegative_money(amount: Decimal) -> None:
    """Validate that a monetary value is nonnegative.

    Raises:
        InvalidRequestError: If ``amount`` is less than zero.
    """
    if amount < Decimal("0"):
        log.error("Monetary value validation failed: %s", amount)
        raise InvalidRequestError("Amount must be zero or positive")


def persist_context(context: RuntimeContext) -> None:
    """Persist any in-memory workbook changes to the configured data file."""
    with workbook_lock(context):
        data_manager.save_workbook(
            context.workbook,
            destination=context.settings.data_file,
        )
    log.info("Persisted workbook '%s'", context.settings.data_file)


def refresh_context(context: RuntimeContext) -> RuntimeContext:
    """Reload the workbook to discard unsaved modifications.

    Returns:
        RuntimeContext: Fresh context containing a newly opened workbook and
            an empty cache. The delivery channel is carried over.
    """
    workbook = data_manager.refresh_workbook(context.settings.data_file)
    log.info("Reloaded workbook '%s'", context.settings.data_file)
    return RuntimeContext(
        settings=context.settings,
        workbook=workbook,
        delivery_channel=context.delivery_channel,
    )
