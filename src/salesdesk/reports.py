"""Report aggregation over the sale ledger and the product catalog.

Every function here is read-only: it takes a snapshot of cached rows from
:mod:`salesdesk.core_logic` and folds it into one of three report shapes. An
empty selection is a valid result and yields a zeroed report.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import UTC, date, datetime, time
from decimal import Decimal
from typing import ClassVar, Dict, List, Optional, Union

from . import core_logic, data_manager, log
from .constants import LOW_STOCK_THRESHOLD, ZERO_MONEY, ReportType
from .errors import InvalidRangeError


@dataclass(frozen=True)
class DateRange:
    """Inclusive, day-aligned reporting window in UTC."""

    start: datetime
    end: datetime

    @property
    def first_day(self) -> date:
        return self.start.date()

    @property
    def last_day(self) -> date:
        return self.end.date()


@dataclass(frozen=True)
class SalesReport:
    report_type: ClassVar[ReportType] = ReportType.SALES

    total_sales: int
    total_revenue: Decimal
    total_quantity: int
    top_selling_product: Optional[str]
    unique_customers: int
    sales: List[core_logic.SaleView] = field(default_factory=list)


@dataclass(frozen=True)
class ItemsReport:
    total_products: int
    total_stock: int
    total_inventory_value: Decimal
    low_stock_count: int


@dataclass(frozen=True)
class ProductView:
    product_id: str
    name: str
    description: str
    stock: int
    price: Decimal

    @property
    def stock_value(self) -> Decimal:
        return self.price * self.stock


@dataclass(frozen=True)
class ItemsReportExportData:
    """Items report bundled with the product list it was computed from."""

    report_type: ClassVar[ReportType] = ReportType.ITEMS

    report: ItemsReport
    products: List[ProductView] = field(default_factory=list)


@dataclass(frozen=True)
class LedgerTransaction:
    product_name: str
    quantity: int
    total_price: Decimal
    sale_date: datetime
    product_id: str


@dataclass(frozen=True)
class CustomerLedgerEntry:
    """One customer's aggregated purchases within a reporting window."""

    customer_id: str
    customer_name: str
    email: str
    phone_number: str
    address: str
    total_purchases: int
    total_amount: Decimal
    total_quantity: int
    first_purchase: datetime
    last_purchase: datetime
    average_order_value: Decimal
    transactions: List[LedgerTransaction] = field(default_factory=list)


@dataclass(frozen=True)
class CustomerLedgerSummary:
    total_customers: int
    total_revenue: Decimal
    total_transactions: int
    average_customer_value: Decimal
    top_customer: Optional[str]


@dataclass(frozen=True)
class CustomerLedgerReport:
    report_type: ClassVar[ReportType] = ReportType.CUSTOMER_LEDGER

    summary: CustomerLedgerSummary
    customers: List[CustomerLedgerEntry] = field(default_factory=list)


ReportData = Union[SalesReport, ItemsReportExportData, CustomerLedgerReport]


def parse_report_date(value: Union[str, date, datetime]) -> date:
    """Interpret ``value`` as a calendar day.

    Accepts ``date``/``datetime`` objects, ``YYYY-MM-DD`` strings and full ISO
    datetime strings; the time part of a datetime is ignored.

    Raises:
        InvalidRangeError: If ``value`` cannot be parsed.
    """
    if isinstance(value, datetime):
        return core_logic.to_utc(value).date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidRangeError(f"Invalid date: {value!r}")
    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return core_logic.to_utc(datetime.fromisoformat(text.replace("Z", "+00:00"))).date()
    except ValueError as exc:
        log.error("Unparseable report date '%s'", value)
        raise InvalidRangeError(f"Invalid date: {value!r}") from exc


def build_date_range(date_from: Union[str, date, datetime], date_to: Union[str, date, datetime]) -> DateRange:
    """Expand two calendar days into ``[from 00:00:00, to 23:59:59.999999]``.

    Raises:
        InvalidRangeError: If either value is unparseable or ``from`` falls
            after ``to``.
    """
    first_day = parse_report_date(date_from)
    last_day = parse_report_date(date_to)
    if first_day > last_day:
        log.error("Rejected inverted report range %s > %s", first_day, last_day)
        raise InvalidRangeError(f"Start date {first_day.isoformat()} is after end date {last_day.isoformat()}")
    return DateRange(
        start=datetime.combine(first_day, time.min, tzinfo=UTC),
        end=datetime.combine(last_day, time.max, tzinfo=UTC),
    )


def compute_sales_report(
    context: core_logic.RuntimeContext,
    owner_id: str,
    date_from: Union[str, date, datetime],
    date_to: Union[str, date, datetime],
) -> SalesReport:
    """Summarise the owner's active sales inside the given days.

    The top-selling product is the name with the largest summed quantity. On a
    tie the product whose first sale appears earliest in the ledger wins.
    """
    window = build_date_range(date_from, date_to)
    sales = core_logic.find_sales_in_range(context, owner_id, window.start, window.end)
    if not sales:
        return SalesReport(
            total_sales=0,
            total_revenue=ZERO_MONEY,
            total_quantity=0,
            top_selling_product=None,
            unique_customers=0,
            sales=[],
        )

    total_revenue = ZERO_MONEY
    total_quantity = 0
    quantity_by_product: Dict[str, int] = {}
    customers = set()
    for sale in sales:
        total_revenue += sale.total_price
        total_quantity += sale.quantity
        quantity_by_product[sale.product_name] = quantity_by_product.get(sale.product_name, 0) + sale.quantity
        customers.add(sale.customer_id)

    # max() keeps the first maximal key, i.e. the earliest inserted product.
    top_selling_product = max(quantity_by_product, key=quantity_by_product.__getitem__)

    report = SalesReport(
        total_sales=len(sales),
        total_revenue=total_revenue,
        total_quantity=total_quantity,
        top_selling_product=top_selling_product,
        unique_customers=len(customers),
        sales=[core_logic.to_sale_view(sale) for sale in sales],
    )
    log.debug(
        "Sales report for '%s': %d sales, revenue=%s, top=%s",
        owner_id,
        report.total_sales,
        report.total_revenue,
        report.top_selling_product,
    )
    return report


def compute_items_report(context: core_logic.RuntimeContext, owner_id: str) -> ItemsReport:
    """Summarise stock and inventory value over the owner's active products."""
    products = core_logic.list_products(context, owner_id)
    total_stock = 0
    total_value = ZERO_MONEY
    low_stock = 0
    for product in products:
        total_stock += product.stock
        total_value += product.stock * product.price
        if product.stock < LOW_STOCK_THRESHOLD:
            low_stock += 1
    return ItemsReport(
        total_products=len(products),
        total_stock=total_stock,
        total_inventory_value=total_value,
        low_stock_count=low_stock,
    )


def build_items_export(context: core_logic.RuntimeContext, owner_id: str) -> ItemsReportExportData:
    """Pair the items report with the product rows shown in exports."""
    products = [
        ProductView(
            product_id=product.product_id,
            name=product.product_name,
            description=product.description,
            stock=product.stock,
            price=product.price,
        )
        for product in core_logic.list_products(context, owner_id)
    ]
    return ItemsReportExportData(report=compute_items_report(context, owner_id), products=products)


def group_sales_by_customer(
    context: core_logic.RuntimeContext,
    owner_id: str,
    window: DateRange,
) -> List[CustomerLedgerEntry]:
    """Group the owner's active sales in ``window`` into per-customer entries.

    Contact details are joined from the customer directory. Sales whose
    customer is missing from the directory are left out. Entries come back
    sorted by total amount, largest first, with ties kept in the order their
    first sale appears in the ``Sales`` sheet.
    """
    groups: Dict[str, List[data_manager.SaleRow]] = {}
    for sale in core_logic.find_sales_in_range(context, owner_id, window.start, window.end):
        groups.setdefault(sale.customer_id, []).append(sale)

    directory = {customer.customer_id: customer for customer in core_logic.list_customers(context)}
    entries: List[CustomerLedgerEntry] = []
    for customer_id, sales in groups.items():
        customer = directory.get(customer_id)
        if customer is None:
            log.warning(
                "Skipping %d sale(s) of customer '%s': missing from the directory", len(sales), customer_id
            )
            continue
        transactions = sorted(
            (
                LedgerTransaction(
                    product_name=sale.product_name,
                    quantity=sale.quantity,
                    total_price=sale.total_price,
                    sale_date=core_logic.parse_sale_date(sale.sale_date_iso),
                    product_id=sale.product_id,
                )
                for sale in sales
            ),
            key=lambda transaction: transaction.sale_date,
        )
        total_amount = sum((sale.total_price for sale in sales), ZERO_MONEY)
        entries.append(
            CustomerLedgerEntry(
                customer_id=customer_id,
                customer_name=sales[0].customer_name,
                email=customer.email,
                phone_number=customer.phone_number,
                address=customer.address,
                total_purchases=len(sales),
                total_amount=total_amount,
                total_quantity=sum(sale.quantity for sale in sales),
                first_purchase=transactions[0].sale_date,
                last_purchase=transactions[-1].sale_date,
                average_order_value=total_amount / len(sales),
                transactions=transactions,
            )
        )

    entries.sort(key=lambda entry: entry.total_amount, reverse=True)
    return entries


def summarize_ledger(entries: List[CustomerLedgerEntry]) -> CustomerLedgerSummary:
    """Derive the ledger summary from already sorted customer entries."""
    total_revenue = sum((entry.total_amount for entry in entries), ZERO_MONEY)
    return CustomerLedgerSummary(
        total_customers=len(entries),
        total_revenue=total_revenue,
        total_transactions=sum(entry.total_purchases for entry in entries),
        average_customer_value=total_revenue / len(entries) if entries else ZERO_MONEY,
        top_customer=entries[0].customer_name if entries else None,
    )


def compute_customer_ledger(
    context: core_logic.RuntimeContext,
    owner_id: str,
    date_from: Union[str, date, datetime],
    date_to: Union[str, date, datetime],
) -> CustomerLedgerReport:
    """Build the per-customer ledger and its summary for the given days."""
    window = build_date_range(date_from, date_to)
    entries = group_sales_by_customer(context, owner_id, window)
    summary = summarize_ledger(entries)
    log.debug(
        "Customer ledger for '%s': %d customers, revenue=%s",
        owner_id,
        summary.total_customers,
        summary.total_revenue,
    )
    return CustomerLedgerReport(summary=summary, customers=entries)


def report_to_dict(report: ReportData) -> Dict[str, object]:
    """Flatten a report into plain containers, e.g. for JSON output."""
    return asdict(report)
