"""Tests for the PDF table primitive: pagination, header repeats, clipping."""

from __future__ import annotations

from unittest.mock import Mock

import pytest

from salesdesk import pdf_tables

WIDTHS = [150, 120, 50, 80, 90]
HEADERS = ["Product Name", "Customer", "Qty", "Total Price", "Sale Date"]


def _rows(count: int) -> list[list[str]]:
    return [[f"Product {i}", "Alice", "1", "$5.00", "03/01/2025"] for i in range(count)]


def _calls(canvas: Mock, name: str) -> list[tuple]:
    return [args for call_name, args, _ in canvas.mock_calls if call_name == name]


def _headers_per_page(canvas: Mock) -> list[list[str]]:
    pages: list[list[str]] = [[]]
    for call_name, args, _ in canvas.mock_calls:
        if call_name == "showPage":
            pages.append([])
        elif call_name == "drawCentredString":
            pages[-1].append(args)
    return pages


# ---------------------------------------------------------------------------
# Cell helpers
# ---------------------------------------------------------------------------


def test_fit_text_returns_short_text_unchanged():
    assert pdf_tables.fit_text("Alice", 100) == "Alice"


def test_fit_text_truncates_with_ellipsis_within_width():
    text = "An extraordinarily long product name that cannot fit"
    max_width = 150 - 2 * pdf_tables.CELL_PADDING

    clipped = pdf_tables.fit_text(text, max_width)

    assert clipped.endswith(pdf_tables.ELLIPSIS)
    assert text.startswith(clipped[: -len(pdf_tables.ELLIPSIS)])
    assert pdf_tables.text_width(clipped) <= max_width


def test_fit_text_gives_up_when_even_ellipsis_does_not_fit():
    assert pdf_tables.fit_text("Something", 2) == ""


@pytest.mark.parametrize("value", ["$5.00", "12", "-3.5", " 7 ", "1e3"])
def test_numeric_cells_are_right_aligned(value):
    assert pdf_tables.is_numeric_cell(value) is True


@pytest.mark.parametrize("value", ["Widget", "", "03/01/2025", "NaN", "12 units"])
def test_text_cells_are_left_aligned(value):
    assert pdf_tables.is_numeric_cell(value) is False


# ---------------------------------------------------------------------------
# Table drawing
# ---------------------------------------------------------------------------


def test_draw_table_returns_position_after_last_row():
    canvas = Mock(name="canvas")

    next_y = pdf_tables.draw_table(canvas, HEADERS, _rows(3), 100, WIDTHS)

    expected = 100 + pdf_tables.HEADER_HEIGHT + 3 * pdf_tables.ROW_HEIGHT + 10
    assert next_y == expected
    canvas.showPage.assert_not_called()


def test_draw_table_paginates_and_repeats_identical_header():
    canvas = Mock(name="canvas")

    next_y = pdf_tables.draw_table(canvas, HEADERS, _rows(40), 100, WIDTHS)

    pages = _headers_per_page(canvas)
    assert len(pages) == 2
    header_labels = [[args[2] for args in page] for page in pages]
    assert header_labels == [HEADERS, HEADERS]
    # Same x positions on every page; only the vertical position differs.
    assert [args[0] for args in pages[0]] == [args[0] for args in pages[1]]
    # 24 rows fit under a header starting at y=100, the other 16 follow the
    # repeated header at the top margin.
    assert next_y == pdf_tables.PAGE_MARGIN + pdf_tables.HEADER_HEIGHT + 16 * pdf_tables.ROW_HEIGHT + 10


def test_draw_table_never_draws_rows_below_page_limit():
    canvas = Mock(name="canvas")

    pdf_tables.draw_table(canvas, HEADERS, _rows(120), 300, WIDTHS)

    row_baselines = [args[1] for args in _calls(canvas, "drawString")]
    lowest_allowed = pdf_tables.PAGE_HEIGHT - pdf_tables.PAGE_BOTTOM_LIMIT
    assert min(row_baselines) >= lowest_allowed
    assert canvas.showPage.call_count >= 4


def test_draw_table_starts_new_page_when_first_row_cannot_fit():
    canvas = Mock(name="canvas")

    next_y = pdf_tables.draw_table(canvas, HEADERS, _rows(1), 720, WIDTHS)

    canvas.showPage.assert_called_once()
    assert next_y == pdf_tables.PAGE_MARGIN + pdf_tables.HEADER_HEIGHT + pdf_tables.ROW_HEIGHT + 10


def test_draw_table_shades_every_other_row():
    canvas = Mock(name="canvas")

    pdf_tables.draw_table(canvas, HEADERS, _rows(5), 100, WIDTHS)

    stripe_fills = [args for args in _calls(canvas, "setFillColor") if args[0] is pdf_tables.STRIPE_FILL]
    assert len(stripe_fills) == 2


def test_draw_table_aligns_and_clips_cells():
    canvas = Mock(name="canvas")
    long_name = "An extraordinarily long product name that cannot fit"

    pdf_tables.draw_table(canvas, HEADERS, [[long_name, "Alice", "3", "$15.00", "03/01/2025"]], 100, WIDTHS)

    left = {args[2]: args[0] for args in _calls(canvas, "drawString")}
    right = {args[2]: args[0] for args in _calls(canvas, "drawRightString")}

    clipped = next(text for text in left if text.endswith(pdf_tables.ELLIPSIS))
    assert pdf_tables.text_width(clipped) <= WIDTHS[0] - 2 * pdf_tables.CELL_PADDING
    assert left["Alice"] == pdf_tables.PAGE_MARGIN + WIDTHS[0] + pdf_tables.CELL_PADDING
    assert "03/01/2025" in left
    assert right["3"] == pdf_tables.PAGE_MARGIN + sum(WIDTHS[:3]) - pdf_tables.CELL_PADDING
    assert right["$15.00"] == pdf_tables.PAGE_MARGIN + sum(WIDTHS[:4]) - pdf_tables.CELL_PADDING


def test_report_writer_produces_multi_page_pdf():
    writer = pdf_tables.PdfReportWriter(title="SALES Report")
    writer.title("SALES Report")
    writer.heading("Transactions", space_after=30)
    writer.table(HEADERS, _rows(60), WIDTHS)

    pages = writer.page_count
    assert pages >= 2
    content = writer.finish()
    assert content.startswith(b"%PDF")
    assert writer.page_count == pages


def test_report_writer_page_count_is_stable_after_finish():
    writer = pdf_tables.PdfReportWriter()
    writer.title("ITEMS Report")
    writer.table(HEADERS, _rows(3), WIDTHS)

    writer.finish()

    assert writer.page_count == 1
