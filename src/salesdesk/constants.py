"""Enumerations and fixed values shared across the salesdesk modules.

The data access layer, the stock engine, the report aggregator and the
renderers all key off these identifiers, so they live in one place.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# Products with fewer units than this are counted as low stock.
LOW_STOCK_THRESHOLD = 5

ZERO_MONEY = Decimal("0.00")

EXCEL_MIME_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
PDF_MIME_TYPE = "application/pdf"
HTML_MIME_TYPE = "text/html"
PLAIN_MIME_TYPE = "text/plain"

SMTP_PASSWORD_ENV = "SALESDESK_SMTP_PASSWORD"


class ReportType(str, Enum):
    """Enumerate the report shapes the aggregator can produce."""

    SALES = "sales"
    ITEMS = "items"
    CUSTOMER_LEDGER = "customer-ledger"

    @property
    def display_name(self) -> str:
        """Upper-case label used in titles, e.g. ``CUSTOMER LEDGER``."""

        return self.value.replace("-", " ").upper()

    @property
    def requires_date_range(self) -> bool:
        return self is not ReportType.ITEMS


class ExportFormat(str, Enum):
    """Enumerate the artifact formats supported by the export renderer."""

    PRINT = "print"
    EXCEL = "excel"
    PDF = "pdf"
    EMAIL = "email"


class SheetName(str, Enum):
    """Enumerate the workbook sheet names managed by the DAL."""

    PRODUCTS = "Products"
    CUSTOMERS = "Customers"
    SALES = "Sales"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "LOW_STOCK_THRESHOLD",
    "ZERO_MONEY",
    "EXCEL_MIME_TYPE",
    "PDF_MIME_TYPE",
    "HTML_MIME_TYPE",
    "PLAIN_MIME_TYPE",
    "SMTP_PASSWORD_ENV",
    "ReportType",
    "ExportFormat",
    "SheetName",
]
