"""Data access layer for salesdesk.

This module provides low-level helpers that read from and write to the store
workbook. Business logic belongs elsewhere.

The public API is designed around three responsibilities:

1. Configuration handling: finding and parsing ``config.ini``.
2. Workbook lifecycle: opening, validating, and persisting the Excel file.
3. Sheet operations: loading structured records and appending or updating
   individual rows of the ``Products``, ``Customers`` and ``Sales`` sheets.
"""


from __future__ import annotations

import configparser
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Iterable, Optional, Sequence, Any

from openpyxl.workbook import Workbook
import openpyxl

from . import log
from .constants import SheetName


CONFIG_FILE_NAME = "config.ini"
PRODUCTS_SHEET = SheetName.PRODUCTS.value
CUSTOMERS_SHEET = SheetName.CUSTOMERS.value
SALES_SHEET = SheetName.SALES.value
CENT = Decimal("0.01")


@dataclass(frozen=True)
class MailSettings:
    """SMTP options read from the optional ``[Mail]`` section."""

    host: str
    port: int
    use_tls: bool
    username: str
    sender: str


@dataclass(frozen=True)
class ConfigSettings:
    """Typed representation of the ``config.ini`` settings we care about."""

    data_file: Path
    store_name: str
    schema_version: str
    default_owner_id: str
    restore_stock_on_delete: bool = False
    mail: Optional[MailSettings] = None


@dataclass(frozen=True)
class ProductRow:
    """In-memory view of a row from the ``Products`` sheet."""

    product_id: str
    owner_id: str
    product_name: str
    description: str
    stock: int
    price: Decimal
    is_deleted: bool = False


@dataclass(frozen=True)
class CustomerRow:
    """In-memory view of a row from the ``Customers`` sheet."""

    customer_id: str
    owner_id: str
    customer_name: str
    email: str
    phone_number: str
    address: str


@dataclass(frozen=True)
class SaleRow:
    """In-memory view of a row from the ``Sales`` sheet."""

    sale_id: str
    owner_id: str
    product_id: str
    customer_id: str
    product_name: str
    customer_name: str
    quantity: int
    total_price: Decimal
    sale_date_iso: str
    is_deleted: bool = False


def find_config_file(explicit_path: Optional[Path] = None) -> Path:
    """Locate the configuration file that controls how the data layer behaves.

    If the caller provides ``explicit_path`` the value is returned immediately
    without any verification. When no explicit path is given the function walks
    up from the current working directory toward the filesystem root looking
    for a file named ``CONFIG_FILE_NAME``. The first match wins.

    Raises:
        FileNotFoundError: If the search exhausts all parent directories without
            finding ``CONFIG_FILE_NAME``.
    """

    if explicit_path:
        return explicit_path

    current = Path.cwd()
    for p in (current, *current.parents):
        candidate = p / CONFIG_FILE_NAME
        if candidate.exists():
            return candidate

    raise FileNotFoundError(
        f"Configuration file not found: {CONFIG_FILE_NAME}")


def read_config(config_path: Path) -> configparser.ConfigParser:
    """Load ``config.ini`` and return a populated ``ConfigParser`` instance.

    Raises:
        FileNotFoundError: If ``config_path`` does not exist after expansion and
            resolution.
    """

    config_path = config_path.expanduser().resolve()
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    parser = configparser.ConfigParser()
    parser.read(config_path)
    return parser


def parse_settings(parser: configparser.ConfigParser, *, base_path: Optional[Path] = None) -> ConfigSettings:
    """Convert a ``ConfigParser`` into strongly typed :class:`ConfigSettings`.

    Relative ``DataFile`` entries are expanded against ``base_path`` when
    provided, or against the current working directory as a fallback. The
    ``[Sales]`` and ``[Mail]`` sections are optional; when ``[Mail]`` is present
    every option it declares is mandatory.

    Args:
        parser (configparser.ConfigParser): Parsed configuration data.
        base_path (Path | None): Directory used as the anchor for relative
            ``DataFile`` entries.

    Returns:
        ConfigSettings: Immutable settings container.

    Raises:
        KeyError: If one of the required sections or options is missing.
        ValueError: If a boolean or integer option cannot be parsed.
    """

    try:
        data_file_raw = parser.get("System", "DataFile")
        store_name = parser.get("System", "StoreName")
        schema_version = parser.get("System", "SchemaVersion")
        default_owner = parser.get("Defaults", "DefaultOwner")
    except (configparser.NoSectionError, configparser.NoOptionError) as exc:
        raise KeyError(f"Missing required configuration entry: {exc}") from exc

    restore_on_delete = parser.getboolean("Sales", "RestoreStockOnDelete", fallback=False)

    mail: Optional[MailSettings] = None
    if parser.has_section("Mail"):
        try:
            mail = MailSettings(
                host=parser.get("Mail", "Host"),
                port=parser.getint("Mail", "Port"),
                use_tls=parser.getboolean("Mail", "UseTLS", fallback=True),
                username=parser.get("Mail", "Username"),
                sender=parser.get("Mail", "Sender"),
            )
        except configparser.NoOptionError as exc:
            raise KeyError(f"Missing required configuration entry: {exc}") from exc

    data_file_path = Path(data_file_raw)
    if not data_file_path.is_absolute():
        if base_path is None:
            base_path = Path.cwd()
        data_file_path = (base_path / data_file_path).resolve()

    return ConfigSettings(
        data_file=data_file_path,
        store_name=store_name,
        schema_version=schema_version,
        default_owner_id=default_owner,
        restore_stock_on_delete=restore_on_delete,
        mail=mail,
    )


def open_workbook(data_file: Path) -> Workbook:
    """Open the store workbook and return a live ``openpyxl`` workbook.

    Raises:
        FileNotFoundError: If ``data_file`` does not exist after expansion and
            resolution.
    """

    data_file = Path(data_file).expanduser().resolve()
    if not data_file.exists():
        raise FileNotFoundError(f"Workbook not found: {data_file}")

    wb = openpyxl.load_workbook(data_file)
    return wb


def save_workbook(workbook: Workbook, destination: Path) -> None:
    """Persist the workbook to disk at an explicitly provided destination.

    Parent directories are created on demand.
    """

    dest = Path(destination).expanduser().resolve()
    dest.parent.mkdir(parents=True, exist_ok=True)
    workbook.save(dest)


def refresh_workbook(data_file: Path) -> Workbook:
    """Reload the workbook from disk, discarding any unsaved in-memory changes."""

    return open_workbook(data_file)


def _iter_sheet(workbook: Workbook, sheet_name: str) -> Iterable[Sequence[object]]:
    sheet = workbook[sheet_name]
    for raw in sheet.iter_rows(min_row=2, values_only=True):
        # skip fully empty rows
        if any(cell is not None for cell in raw):
            yield raw


def iter_products(workbook: Workbook) -> Iterable[ProductRow]:
    """Iterate over product records stored on the ``Products`` worksheet.

    The header row and fully empty rows are skipped.
    """

    for raw in _iter_sheet(workbook, PRODUCTS_SHEET):
        yield deserialize_product(raw)


def iter_customers(workbook: Workbook) -> Iterable[CustomerRow]:
    """Iterate over the ``Customers`` worksheet and yield typed records."""

    for raw in _iter_sheet(workbook, CUSTOMERS_SHEET):
        yield deserialize_customer(raw)


def iter_sales(workbook: Workbook) -> Iterable[SaleRow]:
    """Stream sale records from the ``Sales`` worksheet in sheet order.

    Numeric columns become ``int``/:class:`~decimal.Decimal` values and the
    soft-delete flag is coerced to ``bool``.
    """

    for raw in _iter_sheet(workbook, SALES_SHEET):
        yield deserialize_sale(raw)


def append_product(workbook: Workbook, record: ProductRow) -> None:
    """Append a product record to the ``Products`` worksheet."""

    sheet = workbook[PRODUCTS_SHEET]
    sheet.append(serialize_product(record))


def append_customer(workbook: Workbook, record: CustomerRow) -> None:
    """Append a customer record to the ``Customers`` worksheet."""

    sheet = workbook[CUSTOMERS_SHEET]
    sheet.append(serialize_customer(record))


def append_sale(workbook: Workbook, record: SaleRow) -> None:
    """Append a sale record to the ``Sales`` worksheet.

    Monetary values remain :class:`~decimal.Decimal` instances after
    serialization so Excel keeps the precision when the workbook is saved.
    """

    sheet = workbook[SALES_SHEET]
    sheet.append(serialize_sale(record))


def update_product(workbook: Workbook, product_id: str, *, field_values: dict[str, Any]) -> None:
    """Update selected columns for an existing product.

    Only the specified fields are modified, leaving other columns untouched.

    Raises:
        KeyError: If the product or any referenced column cannot be found.
    """

    _update_row(workbook, PRODUCTS_SHEET, "ProductID", product_id, field_values)


def update_sale(workbook: Workbook, sale_id: str, *, field_values: dict[str, Any]) -> None:
    """Update selected columns for an existing sale.

    Raises:
        KeyError: If the sale or any referenced column is missing.
    """

    _update_row(workbook, SALES_SHEET, "SaleID", sale_id, field_values)


def _update_row(
    workbook: Workbook,
    sheet_name: str,
    key_column: str,
    key_value: str,
    field_values: dict[str, Any],
) -> None:
    row_index = locate_row(workbook, sheet_name, key_column, key_value)
    if row_index is None:
        raise KeyError(f"{sheet_name} row not found: {key_value}")

    sheet = workbook[sheet_name]
    headers = list(sheet[1])
    header_map = {cell.value: idx + 1 for idx, cell in enumerate(headers)}

    # Validate every column before writing so a bad field leaves the row intact.
    unknown = [field for field in field_values if field not in header_map]
    if unknown:
        raise KeyError(f"Unknown {sheet_name} field: {unknown[0]}")

    for field, value in field_values.items():
        sheet.cell(row=row_index, column=header_map[field], value=value)
    log.debug("Updated %s row %d (%s)", sheet_name, row_index, ", ".join(field_values))


def locate_row(workbook: Workbook, sheet_name: str, key_column: str, key_value: str) -> Optional[int]:
    """Find a row by matching a key value within the specified worksheet.

    Returns:
        int | None: 1-based Excel row index when a match is found, otherwise
            ``None``.

    Raises:
        KeyError: If ``key_column`` is not present in the worksheet header.
    """

    sheet = workbook[sheet_name]
    header_cells = list(sheet[1])
    header_map = {cell.value: idx + 1 for idx, cell in enumerate(header_cells)}
    if key_column not in header_map:
        raise KeyError(f"Unknown column: {key_column}")

    key_col_index = header_map[key_column]

    for row_idx, row in enumerate(sheet.iter_rows(min_row=2, values_only=True), start=2):
        cell_value = row[key_col_index - 1]
        if cell_value == key_value:
            return row_idx

    return None


def serialize_product(record: ProductRow) -> list[object]:
    """Convert a product dataclass into the worksheet column ordering."""

    return [
        record.product_id,
        record.owner_id,
        record.product_name,
        record.description,
        record.stock,
        record.price,
        record.is_deleted,
    ]


def serialize_customer(record: CustomerRow) -> list[object]:
    """Convert a customer dataclass into the worksheet column ordering."""

    return [
        record.customer_id,
        record.owner_id,
        record.customer_name,
        record.email,
        record.phone_number,
        record.address,
    ]


def serialize_sale(record: SaleRow) -> list[object]:
    """Convert a sale dataclass into the ``Sales`` column order."""

    return [
        record.sale_id,
        record.owner_id,
        record.product_id,
        record.customer_id,
        record.product_name,
        record.customer_name,
        record.quantity,
        record.total_price,
        record.sale_date_iso,
        record.is_deleted,
    ]


def _to_decimal(raw: object, default: str) -> Decimal:
    # Saved cells come back as int or float; money is kept to the cent.
    value = Decimal(str(raw)) if raw is not None else Decimal(default)
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _to_text(raw: object) -> str:
    return str(raw) if raw is not None else ""


def deserialize_product(raw_row: Sequence[object]) -> ProductRow:
    """Convert a raw worksheet row into a strongly typed product record.

    Excel hands numbers back as floats, so stock is coerced to ``int`` and the
    price to :class:`~decimal.Decimal`.
    """

    product_id, owner_id, product_name, description, stock_raw, price_raw, is_deleted = raw_row[:7]
    return ProductRow(
        product_id=str(product_id),
        owner_id=_to_text(owner_id),
        product_name=_to_text(product_name),
        description=_to_text(description),
        stock=int(stock_raw) if stock_raw is not None else 0,
        price=_to_decimal(price_raw, "0.00"),
        is_deleted=bool(is_deleted),
    )


def deserialize_customer(raw_row: Sequence[object]) -> CustomerRow:
    """Convert a raw worksheet row into a strongly typed customer record."""

    customer_id, owner_id, customer_name, email, phone_number, address = raw_row[:6]
    return CustomerRow(
        customer_id=str(customer_id),
        owner_id=_to_text(owner_id),
        customer_name=_to_text(customer_name),
        email=_to_text(email),
        phone_number=_to_text(phone_number),
        address=_to_text(address),
    )


def deserialize_sale(raw_row: Sequence[object]) -> SaleRow:
    """Convert a raw worksheet row into a strongly typed sale record.

    Optional text columns default to empty strings so downstream code that
    expects text never sees ``None``.
    """

    (
        sale_id,
        owner_id,
        product_id,
        customer_id,
        product_name,
        customer_name,
        quantity_raw,
        total_price_raw,
        sale_date_iso,
        is_deleted,
    ) = raw_row[:10]

    return SaleRow(
        sale_id=str(sale_id),
        owner_id=_to_text(owner_id),
        product_id=_to_text(product_id),
        customer_id=_to_text(customer_id),
        product_name=_to_text(product_name),
        customer_name=_to_text(customer_name),
        quantity=int(quantity_raw) if quantity_raw is not None else 0,
        total_price=_to_decimal(total_price_raw, "0.00"),
        sale_date_iso=_to_text(sale_date_iso),
        is_deleted=bool(is_deleted),
    )
