"""Rendering of computed reports into downloadable artifacts.

Each report type is first flattened into a :class:`ReportLayout` (title,
period line, summary metrics and one data table). The format renderers only
ever see layouts, so every ``(report type, format)`` pair is the composition of
one layout builder and one renderer. The email format renders the spreadsheet
and hands it to the delivery channel held by the runtime context.
"""

from __future__ import annotations

import html
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from decimal import ROUND_HALF_UP, Decimal
from io import BytesIO
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import openpyxl
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from . import core_logic, log, reports
from .constants import (
    EXCEL_MIME_TYPE,
    HTML_MIME_TYPE,
    PDF_MIME_TYPE,
    PLAIN_MIME_TYPE,
    ExportFormat,
    ReportType,
)
from .errors import DeliveryFailedError, InvalidRequestError
from .pdf_tables import PdfReportWriter

CellValue = Union[str, int]

FILENAME_PREFIXES: Dict[ReportType, str] = {
    ReportType.SALES: "SalesReport",
    ReportType.ITEMS: "ItemsReport",
    ReportType.CUSTOMER_LEDGER: "CustomerLedger",
}

SALES_PDF_WIDTHS = (150, 120, 50, 80, 90)
ITEMS_PDF_WIDTHS = (200, 80, 80, 120)
LEDGER_PDF_WIDTHS = (100, 120, 70, 70, 70, 90)

MIN_EXCEL_COLUMN_WIDTH = 10

HTML_STYLE = """
      body { font-family: Arial, sans-serif; margin: 20px; }
      h1 { color: #333; }
      table { width: 100%; border-collapse: collapse; margin-top: 20px; }
      th, td { border: 1px solid #ccc; padding: 8px; text-align: left; }
      th { background-color: #f4f4f4; }
      .summary { margin-bottom: 20px; }
"""


@dataclass(frozen=True)
class ExportRequest:
    """Validated parameters of a single export."""

    report_type: ReportType
    export_format: ExportFormat
    date_from: Optional[str] = None
    date_to: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class ExportResult:
    content: Union[bytes, str]
    filename: str
    mime_type: str


@dataclass(frozen=True)
class TableSection:
    heading: str
    headers: List[str]
    pdf_headers: List[str]
    pdf_column_widths: Sequence[float]
    rows: List[List[CellValue]] = field(default_factory=list)
    empty_message: Optional[str] = None


@dataclass(frozen=True)
class ReportLayout:
    """Format-neutral content of a rendered report."""

    report_type: ReportType
    title: str
    period: Optional[str]
    summary: List[Tuple[str, CellValue]]
    table: TableSection

    @property
    def shows_table(self) -> bool:
        return bool(self.table.rows) or self.table.empty_message is None


@dataclass(frozen=True)
class FormatRenderer:
    render: Callable[[ReportLayout], Union[bytes, str]]
    mime_type: str
    extension: str


def format_money(amount: Decimal) -> str:
    return f"${Decimal(amount).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)}"


def format_day(moment: Union[date, datetime]) -> str:
    return moment.strftime("%m/%d/%Y")


def parse_export_request(
    report_type: Union[str, ReportType],
    export_format: Union[str, ExportFormat],
    *,
    date_from: Optional[str] = None,
    date_to: Optional[str] = None,
    email: Optional[str] = None,
) -> ExportRequest:
    """Build an :class:`ExportRequest` from loosely typed input.

    Raises:
        InvalidRequestError: For an unknown report type or format, a missing
            date range on a dated report, or a missing recipient for email.
        InvalidRangeError: If a supplied date cannot be parsed.
    """
    try:
        report_type = ReportType(report_type)
    except ValueError as exc:
        raise InvalidRequestError("Invalid report type. Must be sales, items, or customer-ledger") from exc
    try:
        export_format = ExportFormat(export_format)
    except ValueError as exc:
        raise InvalidRequestError("Invalid format. Must be print, excel, pdf, or email") from exc

    request = ExportRequest(
        report_type=report_type,
        export_format=export_format,
        date_from=date_from or None,
        date_to=date_to or None,
        email=email or None,
    )
    validate_export_request(request)
    return request


def validate_export_request(request: ExportRequest) -> None:
    if not isinstance(request.report_type, ReportType):
        raise InvalidRequestError(f"Invalid report type: {request.report_type!r}")
    if not isinstance(request.export_format, ExportFormat):
        raise InvalidRequestError(f"Invalid format: {request.export_format!r}")
    if request.export_format is ExportFormat.EMAIL and not request.email:
        raise InvalidRequestError("Email address is required for email export")
    if request.report_type.requires_date_range:
        if not request.date_from or not request.date_to:
            raise InvalidRequestError(
                f"A start and end date are required for the {request.report_type.value} report"
            )
        reports.build_date_range(request.date_from, request.date_to)


def _period_line(request: ExportRequest) -> Optional[str]:
    if not request.date_from or not request.date_to:
        return None
    first_day = reports.parse_report_date(request.date_from)
    last_day = reports.parse_report_date(request.date_to)
    return f"Period: {format_day(first_day)} - {format_day(last_day)}"


# ---------------------------------------------------------------------------
# Report data and layouts
# ---------------------------------------------------------------------------


def build_report_data(
    context: core_logic.RuntimeContext,
    owner_id: str,
    request: ExportRequest,
) -> reports.ReportData:
    if request.report_type is ReportType.SALES:
        return reports.compute_sales_report(context, owner_id, request.date_from, request.date_to)
    if request.report_type is ReportType.ITEMS:
        return reports.build_items_export(context, owner_id)
    if request.report_type is ReportType.CUSTOMER_LEDGER:
        return reports.compute_customer_ledger(context, owner_id, request.date_from, request.date_to)
    raise InvalidRequestError(f"Invalid report type: {request.report_type!r}")


def _sales_layout(data: reports.SalesReport, period: Optional[str]) -> ReportLayout:
    summary: List[Tuple[str, CellValue]] = [
        ("Total Revenue", format_money(data.total_revenue)),
        ("Total Sales", data.total_sales),
        ("Total Quantity", data.total_quantity),
        ("Unique Customers", data.unique_customers),
    ]
    if data.top_selling_product:
        summary.append(("Top Selling Product", data.top_selling_product))

    rows: List[List[CellValue]] = [
        [
            sale.product_name,
            sale.customer_name,
            sale.quantity,
            format_money(sale.total_price),
            format_day(sale.sale_date),
        ]
        for sale in data.sales
    ]
    return ReportLayout(
        report_type=ReportType.SALES,
        title=f"{ReportType.SALES.display_name} Report",
        period=period,
        summary=summary,
        table=TableSection(
            heading="Transactions",
            headers=["Product Name", "Customer", "Quantity", "Total Price", "Sale Date"],
            pdf_headers=["Product Name", "Customer", "Qty", "Total Price", "Sale Date"],
            pdf_column_widths=SALES_PDF_WIDTHS,
            rows=rows,
        ),
    )


def _items_layout(data: reports.ItemsReportExportData, period: Optional[str]) -> ReportLayout:
    summary: List[Tuple[str, CellValue]] = [
        ("Total Products", data.report.total_products),
        ("Total Stock", data.report.total_stock),
        ("Inventory Value", format_money(data.report.total_inventory_value)),
        ("Low Stock Count", data.report.low_stock_count),
    ]
    rows: List[List[CellValue]] = [
        [product.name, format_money(product.price), product.stock, format_money(product.stock_value)]
        for product in data.products
    ]
    headers = ["Product Name", "Price", "Stock", "Stock Value"]
    return ReportLayout(
        report_type=ReportType.ITEMS,
        title=f"{ReportType.ITEMS.display_name} Report",
        period=period,
        summary=summary,
        table=TableSection(
            heading="Products",
            headers=headers,
            pdf_headers=headers,
            pdf_column_widths=ITEMS_PDF_WIDTHS,
            rows=rows,
            empty_message="No products available.",
        ),
    )


def _ledger_layout(data: reports.CustomerLedgerReport, period: Optional[str]) -> ReportLayout:
    summary: List[Tuple[str, CellValue]] = [
        ("Total Customers", data.summary.total_customers),
        ("Total Revenue", format_money(data.summary.total_revenue)),
        ("Total Transactions", data.summary.total_transactions),
        ("Average Customer Value", format_money(data.summary.average_customer_value)),
    ]
    if data.summary.top_customer:
        summary.append(("Top Customer", data.summary.top_customer))

    rows: List[List[CellValue]] = [
        [
            entry.customer_name,
            entry.email,
            entry.total_purchases,
            format_money(entry.total_amount),
            format_money(entry.average_order_value),
            format_day(entry.last_purchase),
        ]
        for entry in data.customers
    ]
    return ReportLayout(
        report_type=ReportType.CUSTOMER_LEDGER,
        title=f"{ReportType.CUSTOMER_LEDGER.display_name} Report",
        period=period,
        summary=summary,
        table=TableSection(
            heading="Customers",
            headers=["Customer Name", "Email", "Total Purchases", "Total Amount", "Avg. Order Value", "Last Purchase"],
            pdf_headers=["Customer Name", "Email", "Purchases", "Amount", "Avg. Order", "Last Purchase"],
            pdf_column_widths=LEDGER_PDF_WIDTHS,
            rows=rows,
        ),
    )


LAYOUT_BUILDERS: Dict[ReportType, Callable[..., ReportLayout]] = {
    ReportType.SALES: _sales_layout,
    ReportType.ITEMS: _items_layout,
    ReportType.CUSTOMER_LEDGER: _ledger_layout,
}


def build_layout(data: reports.ReportData, period: Optional[str] = None) -> ReportLayout:
    """Flatten report data into a layout, dispatching on its report type tag."""
    try:
        builder = LAYOUT_BUILDERS[data.report_type]
    except (AttributeError, KeyError) as exc:
        raise InvalidRequestError(f"No layout for report data {type(data).__name__}") from exc
    return builder(data, period)


# ---------------------------------------------------------------------------
# Format renderers
# ---------------------------------------------------------------------------


def _escape(value: object) -> str:
    return html.escape(str(value))


def render_html(layout: ReportLayout) -> str:
    """Render a print-ready HTML document with every value escaped."""
    parts = [
        "<html>",
        "  <head>",
        f"    <title>{_escape(layout.title)}</title>",
        f"    <style>{HTML_STYLE}    </style>",
        "  </head>",
        "  <body>",
        f"    <h1>{_escape(layout.title)}</h1>",
    ]
    if layout.period:
        parts.append(f"    <p>{_escape(layout.period)}</p>")

    parts.append('    <div class="summary">')
    parts.extend(f"      <p>{_escape(label)}: {_escape(value)}</p>" for label, value in layout.summary)
    parts.append("    </div>")

    if layout.shows_table:
        parts.append("    <table>")
        parts.append("      <tr>" + "".join(f"<th>{_escape(header)}</th>" for header in layout.table.headers) + "</tr>")
        for row in layout.table.rows:
            parts.append("      <tr>" + "".join(f"<td>{_escape(cell)}</td>" for cell in row) + "</tr>")
        parts.append("    </table>")
    else:
        parts.append(f"    <p>{_escape(layout.table.empty_message)}</p>")

    parts.extend(["  </body>", "</html>", ""])
    return "\n".join(parts)


def render_excel(layout: ReportLayout) -> bytes:
    """Render the report into a single-sheet ``.xlsx`` workbook."""
    workbook = openpyxl.Workbook()
    worksheet = workbook.active
    worksheet.title = layout.report_type.display_name

    worksheet.append([layout.title])
    worksheet.cell(row=1, column=1).font = Font(bold=True, size=14)
    if layout.period:
        worksheet.append([layout.period])
    worksheet.append([])

    worksheet.append(["Summary"])
    worksheet.cell(row=worksheet.max_row, column=1).font = Font(bold=True)
    for label, value in layout.summary:
        worksheet.append([label, value])
    worksheet.append([])

    if layout.shows_table:
        worksheet.append([layout.table.heading])
        worksheet.cell(row=worksheet.max_row, column=1).font = Font(bold=True)
        worksheet.append(layout.table.headers)
        header_row = worksheet.max_row
        for column_index in range(1, len(layout.table.headers) + 1):
            worksheet.cell(row=header_row, column=column_index).font = Font(bold=True)
        for row in layout.table.rows:
            worksheet.append(row)
    else:
        worksheet.append([layout.table.empty_message])

    _autosize_columns(worksheet)

    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def _autosize_columns(worksheet) -> None:
    for column_index, column in enumerate(worksheet.iter_cols(), start=1):
        longest = max(
            (len(str(cell.value)) if cell.value is not None else MIN_EXCEL_COLUMN_WIDTH for cell in column),
            default=MIN_EXCEL_COLUMN_WIDTH,
        )
        worksheet.column_dimensions[get_column_letter(column_index)].width = max(longest, MIN_EXCEL_COLUMN_WIDTH)


def render_pdf(layout: ReportLayout) -> bytes:
    """Render the report as a paginated Letter-size PDF."""
    writer = PdfReportWriter(title=layout.title)
    writer.title(layout.title)
    if layout.period:
        writer.centered_line(layout.period)
    writer.move_down(24)

    writer.heading("Summary")
    for label, value in layout.summary:
        writer.line(f"{label}: {value}")
    writer.move_down(20)

    if layout.shows_table:
        writer.heading(layout.table.heading, space_after=30)
        writer.table(
            layout.table.pdf_headers,
            [[str(cell) for cell in row] for row in layout.table.rows],
            layout.table.pdf_column_widths,
        )
    else:
        writer.line(layout.table.empty_message, font_size=12)

    content = writer.finish()
    log.debug("Rendered %s PDF with %d page(s)", layout.report_type.value, writer.page_count)
    return content


RENDERERS: Dict[ExportFormat, FormatRenderer] = {
    ExportFormat.PRINT: FormatRenderer(render_html, HTML_MIME_TYPE, "html"),
    ExportFormat.EXCEL: FormatRenderer(render_excel, EXCEL_MIME_TYPE, "xlsx"),
    ExportFormat.PDF: FormatRenderer(render_pdf, PDF_MIME_TYPE, "pdf"),
}


# ---------------------------------------------------------------------------
# Export entry points
# ---------------------------------------------------------------------------


def build_email(
    report_type: ReportType,
    store_name: str,
    today: date,
) -> Tuple[str, str, str]:
    """Return ``(subject, text body, html body)`` for an emailed report."""
    report_name = report_type.display_name
    subject = f"{report_name} Report - {format_day(today)}"
    text_body = (
        f"Dear User,\n\nAttached is your {report_name} report.\n\n"
        f"Best regards,\n{store_name}"
    )
    html_body = (
        "<p>Dear User,</p>\n"
        f"<p>Attached is your <strong>{html.escape(report_name)}</strong> report.</p>\n"
        f"<p>Best regards,<br>{html.escape(store_name)}</p>\n"
    )
    return subject, text_body, html_body


def deliver_report_email(
    context: core_logic.RuntimeContext,
    request: ExportRequest,
    attachment: bytes,
    attachment_filename: str,
    today: date,
) -> None:
    """Send the spreadsheet attachment through the context's delivery channel.

    Raises:
        DeliveryFailedError: If no channel is configured or sending fails.
    """
    channel = context.delivery_channel
    if channel is None:
        log.error("Email export requested but no delivery channel is configured")
        raise DeliveryFailedError("Email delivery is not configured; add a [Mail] section to config.ini")

    subject, text_body, html_body = build_email(request.report_type, context.settings.store_name, today)
    channel.send_attachment_email(
        request.email,
        subject,
        text_body,
        attachment,
        attachment_filename,
        html_body=html_body,
    )


def export_report(
    context: core_logic.RuntimeContext,
    owner_id: str,
    request: ExportRequest,
    *,
    today: Optional[date] = None,
) -> ExportResult:
    """Compute and render one report.

    Args:
        context: Runtime context providing data and the delivery channel.
        owner_id: Owner whose records are reported on.
        request: Report type, format and their parameters.
        today: Date stamped into filenames and email subjects. Defaults to the
            current UTC date.

    Returns:
        ExportResult: Rendered content with its filename and MIME type. Email
        exports return empty content with a ``text/plain`` MIME type.

    Raises:
        InvalidRequestError: If the request is incomplete or malformed.
        DeliveryFailedError: If an email export cannot be sent.
    """
    validate_export_request(request)
    today = today or datetime.now(UTC).date()
    data = build_report_data(context, owner_id, request)
    layout = build_layout(data, _period_line(request))
    base_name = f"{FILENAME_PREFIXES[request.report_type]}_{today.strftime('%Y%m%d')}"

    if request.export_format is ExportFormat.EMAIL:
        attachment_filename = f"{base_name}.xlsx"
        deliver_report_email(context, request, render_excel(layout), attachment_filename, today)
        log.info("Emailed %s report to '%s'", request.report_type.value, request.email)
        return ExportResult(content="", filename="", mime_type=PLAIN_MIME_TYPE)

    renderer = RENDERERS[request.export_format]
    content = renderer.render(layout)
    filename = f"{base_name}.{renderer.extension}"
    log.info("Exported %s report as '%s'", request.report_type.value, filename)
    return ExportResult(content=content, filename=filename, mime_type=renderer.mime_type)
