"""PDF page layout helpers built on the reportlab canvas.

Layout code works in top-down coordinates (``y`` grows towards the bottom of
the page, starting at the top edge) and converts to reportlab's bottom-up
coordinates only when drawing. ``draw_table`` is the shared primitive every
report uses: it paginates rows, repeats the header band on each new page,
shades every other row and clips cell text with an ellipsis.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from io import BytesIO
from typing import Optional, Sequence

from reportlab.lib.colors import HexColor, black
from reportlab.lib.pagesizes import LETTER
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfgen import canvas as pdf_canvas

PAGE_WIDTH, PAGE_HEIGHT = LETTER
PAGE_MARGIN = 50
# Rows that would end below this line move to the next page.
PAGE_BOTTOM_LIMIT = 750

HEADER_HEIGHT = 30
ROW_HEIGHT = 25
CELL_PADDING = 5
TABLE_GAP_AFTER = 10

HEADER_FONT = "Helvetica-Bold"
HEADER_FONT_SIZE = 10
BODY_FONT = "Helvetica"
BODY_FONT_SIZE = 9

HEADER_FILL = HexColor("#f0f0f0")
STRIPE_FILL = HexColor("#f9f9f9")
GRID_COLOR = HexColor("#cccccc")

ELLIPSIS = "..."


def text_width(text: str, font_name: str = BODY_FONT, font_size: float = BODY_FONT_SIZE) -> float:
    return pdfmetrics.stringWidth(text, font_name, font_size)


def fit_text(
    text: str,
    max_width: float,
    font_name: str = BODY_FONT,
    font_size: float = BODY_FONT_SIZE,
) -> str:
    """Clip ``text`` so that it renders within ``max_width`` points.

    Text that already fits is returned unchanged. Otherwise characters are
    dropped from the end until the remainder plus an ellipsis fits. If not even
    the ellipsis fits, an empty string is returned.
    """
    if text_width(text, font_name, font_size) <= max_width:
        return text
    if text_width(ELLIPSIS, font_name, font_size) > max_width:
        return ""
    trimmed = text
    while trimmed and text_width(trimmed + ELLIPSIS, font_name, font_size) > max_width:
        trimmed = trimmed[:-1]
    return trimmed.rstrip() + ELLIPSIS


def is_numeric_cell(text: str) -> bool:
    """Currency-prefixed or numeric cells are right-aligned."""
    if text.startswith("$"):
        return True
    stripped = text.strip()
    if not stripped:
        return False
    try:
        return Decimal(stripped).is_finite()
    except InvalidOperation:
        return False


def _bottom(y: float, height: float = 0) -> float:
    return PAGE_HEIGHT - y - height


def draw_header_band(
    canvas: pdf_canvas.Canvas,
    headers: Sequence[str],
    column_widths: Sequence[float],
    y: float,
    start_x: float = PAGE_MARGIN,
) -> float:
    """Draw the shaded, ruled header band at ``y`` and return the y below it."""
    total_width = sum(column_widths)

    canvas.setFillColor(HEADER_FILL)
    canvas.rect(start_x, _bottom(y, HEADER_HEIGHT), total_width, HEADER_HEIGHT, stroke=0, fill=1)
    canvas.setStrokeColor(black)
    canvas.setLineWidth(1)
    canvas.rect(start_x, _bottom(y, HEADER_HEIGHT), total_width, HEADER_HEIGHT, stroke=1, fill=0)

    canvas.setFillColor(black)
    canvas.setFont(HEADER_FONT, HEADER_FONT_SIZE)
    x = start_x
    for index, (header, width) in enumerate(zip(headers, column_widths)):
        if index > 0:
            canvas.line(x, _bottom(y), x, _bottom(y, HEADER_HEIGHT))
        label = fit_text(header, width - 2 * CELL_PADDING, HEADER_FONT, HEADER_FONT_SIZE)
        canvas.drawCentredString(x + width / 2, _bottom(y, 19), label)
        x += width

    return y + HEADER_HEIGHT


def _draw_row(
    canvas: pdf_canvas.Canvas,
    row: Sequence[str],
    row_index: int,
    column_widths: Sequence[float],
    y: float,
    start_x: float,
) -> None:
    total_width = sum(column_widths)

    if row_index % 2 == 1:
        canvas.setFillColor(STRIPE_FILL)
        canvas.rect(start_x, _bottom(y, ROW_HEIGHT), total_width, ROW_HEIGHT, stroke=0, fill=1)

    canvas.setStrokeColor(GRID_COLOR)
    canvas.setLineWidth(1)
    canvas.rect(start_x, _bottom(y, ROW_HEIGHT), total_width, ROW_HEIGHT, stroke=1, fill=0)

    canvas.setFillColor(black)
    canvas.setFont(BODY_FONT, BODY_FONT_SIZE)
    x = start_x
    for index, (value, width) in enumerate(zip(row, column_widths)):
        if index > 0:
            canvas.line(x, _bottom(y), x, _bottom(y, ROW_HEIGHT))
        text = fit_text(value, width - 2 * CELL_PADDING)
        baseline = _bottom(y, 16)
        if is_numeric_cell(value):
            canvas.drawRightString(x + width - CELL_PADDING, baseline, text)
        else:
            canvas.drawString(x + CELL_PADDING, baseline, text)
        x += width


def draw_table(
    canvas: pdf_canvas.Canvas,
    headers: Sequence[str],
    rows: Sequence[Sequence[str]],
    start_y: float,
    column_widths: Sequence[float],
    start_x: float = PAGE_MARGIN,
) -> float:
    """Draw a ruled table and return the y position after it.

    Before each row the remaining space is checked against
    ``PAGE_BOTTOM_LIMIT``; when the row would not fit a new page is started
    and the header band is drawn again at the top margin.

    Args:
        canvas: Target reportlab canvas.
        headers: Column labels, centred in the header band.
        rows: Cell strings, one sequence per row.
        start_y: Top-down y at which the header band starts.
        column_widths: Fixed width of every column in points.
        start_x: Left edge of the table.

    Returns:
        float: Top-down y just below the last row plus a small gap.
    """
    y = start_y
    first_block = HEADER_HEIGHT + (ROW_HEIGHT if rows else 0)
    if y + first_block > PAGE_BOTTOM_LIMIT:
        canvas.showPage()
        y = PAGE_MARGIN
    y = draw_header_band(canvas, headers, column_widths, y, start_x)

    for row_index, row in enumerate(rows):
        if y + ROW_HEIGHT > PAGE_BOTTOM_LIMIT:
            canvas.showPage()
            y = draw_header_band(canvas, headers, column_widths, PAGE_MARGIN, start_x)
        _draw_row(canvas, [str(value) for value in row], row_index, column_widths, y, start_x)
        y += ROW_HEIGHT

    return y + TABLE_GAP_AFTER


class PdfReportWriter:
    """Flowing top-down writer for a single report document."""

    def __init__(self, title: str = "") -> None:
        self._buffer = BytesIO()
        self.canvas = pdf_canvas.Canvas(self._buffer, pagesize=LETTER)
        if title:
            self.canvas.setTitle(title)
        self.y: float = PAGE_MARGIN
        self._pages_saved: Optional[int] = None

    @property
    def page_count(self) -> int:
        # Canvas.save() bumps the page number.
        if self._pages_saved is not None:
            return self._pages_saved
        return self.canvas.getPageNumber()

    def _ensure_space(self, height: float) -> None:
        if self.y + height > PAGE_BOTTOM_LIMIT:
            self.canvas.showPage()
            self.y = PAGE_MARGIN

    def _draw_text(self, text: str, font_name: str, font_size: float, *, centered: bool) -> None:
        self._ensure_space(font_size)
        self.canvas.setFillColor(black)
        self.canvas.setFont(font_name, font_size)
        baseline = _bottom(self.y, font_size)
        if centered:
            self.canvas.drawCentredString(PAGE_WIDTH / 2, baseline, text)
        else:
            self.canvas.drawString(PAGE_MARGIN, baseline, text)

    def title(self, text: str) -> None:
        self._draw_text(text, HEADER_FONT, 18, centered=True)
        self.y += 24

    def centered_line(self, text: str) -> None:
        self._draw_text(text, BODY_FONT, 12, centered=True)
        self.y += 18

    def heading(self, text: str, *, space_after: float = 25) -> None:
        self._draw_text(text, HEADER_FONT, 14, centered=False)
        self.y += space_after

    def line(self, text: str, *, font_size: float = 11) -> None:
        self._draw_text(text, BODY_FONT, font_size, centered=False)
        self.y += 18

    def move_down(self, points: float) -> None:
        self.y += points

    def table(self, headers: Sequence[str], rows: Sequence[Sequence[str]], column_widths: Sequence[float]) -> None:
        self.y = draw_table(self.canvas, headers, rows, self.y, column_widths)

    def finish(self) -> bytes:
        self._pages_saved = self.canvas.getPageNumber()
        self.canvas.save()
        return self._buffer.getvalue()
