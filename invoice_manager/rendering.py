"""Invoice PDF rendering."""

from __future__ import annotations

from typing import Any, Dict, List, Tuple

from fpdf import FPDF

from .calculator import currency_symbol
from .fonts import FontManager
from .formatting import fmt_date, fmt_money, fmt_qty, round_rect, split_lines, wrap_text
from .models import Invoice, LineItem
from .pdf_constants import (
    ADDR_LINE_H,
    BALANCE_BOX_H,
    BALANCE_BOX_W,
    BALANCE_BOX_X,
    BALANCE_BOX_Y,
    BALANCE_Y,
    BAR_H,
    BAR_RADIUS,
    BAR_TEXT_Y_CONT,
    BAR_TEXT_Y_FIRST,
    BAR_W,
    BAR_Y_CONT,
    BAR_Y_FIRST,
    BILL_TO_ADDR_Y,
    BILL_TO_LABEL_Y,
    BILL_TO_MAX_LINES,
    BILL_TO_NAME_Y,
    BOX_RADIUS,
    COLOR_BAR,
    COLOR_BAR_TEXT,
    COLOR_BILLTO,
    COLOR_BOX,
    COLOR_INVOICE_NUM,
    COLOR_ITEM,
    COLOR_LABEL,
    COLOR_NOTES,
    COLOR_NUM,
    COLOR_TEXT,
    COLOR_TEXT_ALT,
    COLOR_TITLE,
    COLOR_TOTALS_LABEL,
    CONTINUATION_TOP,
    DATE_LABEL_RIGHT,
    DATE_Y,
    DUE_DATE_Y,
    FIRST_PAGE_CAPACITY,
    FONT_SIZE_NORMAL,
    FONT_SIZE_SMALL,
    FONT_SIZE_TITLE,
    ITEM_ROW_H,
    ITEM_TO_QTY_GUTTER,
    ITEMS_START_Y_CONT,
    ITEMS_START_Y_FIRST,
    LABEL_RIGHT,
    LAST_PAGE_CAPACITY,
    MID_PAGE_CAPACITY,
    NAME_LINE_H,
    NOTES_GAP,
    NOTES_LABEL_Y_CONT,
    NOTES_LINE_H,
    NOTES_TEXT_OFFSET,
    NUMBER_RIGHT,
    NUMBER_Y,
    PAGE_BOTTOM_MARGIN,
    PAGE_H,
    RATE_RIGHT,
    RIGHT_AMOUNT,
    STATUS_COLORS,
    STATUS_Y,
    TITLE_RIGHT,
    TITLE_Y,
    TOTAL_ROW_H_CONT,
    TOTAL_ROW_H_FIRST,
    TOTALS_START_Y_CONT,
    TOTALS_START_Y_FIRST,
    X_BAR,
    X_ITEM,
    X_LEFT,
)


class InvoiceRenderer:
    qty_center = 375
    rate_center = 457
    amount_center = 531

    def __init__(self, data: Dict[str, Any]) -> None:
        self.invoice = Invoice.from_dict(data)
        self.symbol = currency_symbol(self.invoice.currency)
        self.pdf = FPDF(unit="pt", format="letter")
        self.pdf.set_auto_page_break(False)
        self.pdf.set_title(f"Invoice {self.invoice.invoice_number}")
        self.pdf.add_page()

        self.fonts = FontManager(self.pdf)
        self.items = self.invoice.items

    def money(self, amount: float) -> str:
        return fmt_money(amount, self.symbol)

    def _draw_table_header(self, bar_y: float, text_y: float) -> None:
        self.pdf.set_fill_color(*COLOR_BAR)
        round_rect(self.pdf, X_BAR, bar_y, BAR_W, BAR_H, BAR_RADIUS, fill=True)

        self.fonts.draw_text(X_ITEM, text_y, "Description", FONT_SIZE_SMALL, COLOR_BAR_TEXT, bold=True)
        for center, label in (
            (self.qty_center, "Quantity"),
            (self.rate_center, "Unit Price"),
            (self.amount_center, "Amount"),
        ):
            self.fonts.draw_centered(center, text_y, label, FONT_SIZE_SMALL, COLOR_BAR_TEXT, bold=True)

    def _description_lines(self, item: LineItem) -> List[Tuple[str, bool]]:
        max_width = self.qty_center - X_ITEM - ITEM_TO_QTY_GUTTER
        lines: List[Tuple[str, bool]] = []
        for index, paragraph in enumerate(item.description.split("\n")):
            paragraph = paragraph.strip()
            if not paragraph:
                continue
            # the first paragraph is the item title
            is_title = index == 0
            for line in wrap_text(self.fonts, paragraph, max_width, FONT_SIZE_NORMAL, bold=is_title):
                lines.append((line, is_title))
        return lines

    def _draw_items(self, start_y: float, page_items: List[LineItem], row_h: float) -> float:
        y = start_y
        for item in page_items:
            lines = self._description_lines(item)
            for i, (line, is_bold) in enumerate(lines):
                self.fonts.draw_text(X_ITEM, y + i * NAME_LINE_H, line, FONT_SIZE_NORMAL, COLOR_ITEM, bold=is_bold)

            self.fonts.draw_centered(self.qty_center, y, fmt_qty(item.quantity), FONT_SIZE_NORMAL, COLOR_NUM)
            self.fonts.draw_right(RATE_RIGHT, y, self.money(item.unit_price), FONT_SIZE_NORMAL, COLOR_NUM)
            self.fonts.draw_right(RIGHT_AMOUNT, y, self.money(item.line_total), FONT_SIZE_NORMAL, COLOR_NUM)

            y += (max(len(lines), 1) - 1) * NAME_LINE_H + row_h
        return y

    def _tax_label(self) -> str:
        rate = self.invoice.tax_rate
        display = int(rate) if float(rate).is_integer() else rate
        return f"Tax ({display}%):"

    def _draw_totals(self, start_y: float, row_h: float) -> float:
        rows = (
            ("Subtotal:", self.invoice.subtotal),
            (self._tax_label(), self.invoice.tax_amount),
            ("Total:", self.invoice.total),
        )
        y = start_y
        for label, amount in rows:
            self.fonts.draw_right(LABEL_RIGHT, y, label, FONT_SIZE_NORMAL, COLOR_TOTALS_LABEL)
            self.fonts.draw_right(RIGHT_AMOUNT, y, self.money(amount), FONT_SIZE_NORMAL, COLOR_NUM)
            y += row_h
        return y - row_h

    def _draw_notes(self, label_y: float) -> None:
        notes = (self.invoice.notes or "").strip()
        if not notes:
            return

        page_bottom = PAGE_H - PAGE_BOTTOM_MARGIN
        if label_y > page_bottom:
            self.pdf.add_page()
            label_y = CONTINUATION_TOP

        self.fonts.draw_text(X_ITEM, label_y, "Notes:", FONT_SIZE_NORMAL, COLOR_TEXT)
        y = label_y + NOTES_TEXT_OFFSET
        for line in split_lines(notes):
            if y > page_bottom:
                self.pdf.add_page()
                y = CONTINUATION_TOP
            self.fonts.draw_text(X_ITEM, y, line, FONT_SIZE_NORMAL, COLOR_NOTES)
            y += NOTES_LINE_H

    def _bill_to_lines(self) -> List[str]:
        client = self.invoice.client
        lines = split_lines(client.address)
        lines.append(client.email)
        if client.phone:
            lines.append(client.phone)
        return [line.strip() for line in lines if line.strip()][:BILL_TO_MAX_LINES]

    def _draw_header_full(self) -> None:
        invoice = self.invoice
        self.fonts.draw_right(TITLE_RIGHT, TITLE_Y, "INVOICE", FONT_SIZE_TITLE, COLOR_TITLE)

        if invoice.invoice_number:
            self.fonts.draw_right(
                NUMBER_RIGHT, NUMBER_Y, f"# {invoice.invoice_number}", FONT_SIZE_NORMAL, COLOR_INVOICE_NUM
            )

        status = invoice.status.upper()
        self.fonts.draw_right(
            NUMBER_RIGHT, STATUS_Y, status, FONT_SIZE_SMALL, STATUS_COLORS.get(invoice.status, COLOR_LABEL), bold=True
        )

        self.fonts.draw_text(X_LEFT, BILL_TO_LABEL_Y, "Bill To:", FONT_SIZE_SMALL, COLOR_BILLTO)
        self.fonts.draw_text(X_LEFT, BILL_TO_NAME_Y, invoice.client.name, FONT_SIZE_NORMAL, COLOR_TEXT, bold=True)
        for i, line in enumerate(self._bill_to_lines()):
            self.fonts.draw_text(X_LEFT, BILL_TO_ADDR_Y + ADDR_LINE_H * i, line, FONT_SIZE_SMALL, COLOR_TEXT_ALT)

        for label, raw, y in (("Date:", invoice.date, DATE_Y), ("Due Date:", invoice.due_date, DUE_DATE_Y)):
            value = fmt_date(raw)
            if not value:
                continue
            self.fonts.draw_right(DATE_LABEL_RIGHT, y, label, FONT_SIZE_NORMAL, COLOR_LABEL)
            self.fonts.draw_right(RIGHT_AMOUNT, y, value, FONT_SIZE_NORMAL, COLOR_LABEL)

        self.pdf.set_fill_color(*COLOR_BOX)
        round_rect(self.pdf, BALANCE_BOX_X, BALANCE_BOX_Y, BALANCE_BOX_W, BALANCE_BOX_H, BOX_RADIUS, fill=True)

        balance = 0.0 if invoice.status == "paid" else invoice.total
        self.fonts.draw_right(DATE_LABEL_RIGHT, BALANCE_Y, "Balance Due:", FONT_SIZE_NORMAL, COLOR_TITLE, bold=True)
        self.fonts.draw_right(RIGHT_AMOUNT, BALANCE_Y, self.money(balance), FONT_SIZE_NORMAL, COLOR_TITLE, bold=True)

    def _draw_single_page_layout(self) -> None:
        self._draw_header_full()
        self._draw_table_header(BAR_Y_FIRST, BAR_TEXT_Y_FIRST)
        items_end_y = self._draw_items(ITEMS_START_Y_FIRST, self.items, ITEM_ROW_H)

        totals_y = max(TOTALS_START_Y_FIRST, items_end_y + ITEM_ROW_H)
        totals_end_y = self._draw_totals(totals_y, TOTAL_ROW_H_FIRST)
        self._draw_notes(totals_end_y + NOTES_GAP)

    def _draw_multi_page_layout(self) -> None:
        self._draw_header_full()
        self._draw_table_header(BAR_Y_FIRST, BAR_TEXT_Y_FIRST)
        self._draw_items(ITEMS_START_Y_FIRST, self.items[:FIRST_PAGE_CAPACITY], ITEM_ROW_H)

        cursor = FIRST_PAGE_CAPACITY
        last_page_start = len(self.items) - LAST_PAGE_CAPACITY
        while cursor < last_page_start:
            take = min(MID_PAGE_CAPACITY, last_page_start - cursor)
            self.pdf.add_page()
            self._draw_table_header(BAR_Y_CONT, BAR_TEXT_Y_CONT)
            self._draw_items(ITEMS_START_Y_CONT, self.items[cursor : cursor + take], ITEM_ROW_H)
            cursor += take

        self.pdf.add_page()
        self._draw_table_header(BAR_Y_CONT, BAR_TEXT_Y_CONT)
        items_end_y = self._draw_items(ITEMS_START_Y_CONT, self.items[cursor:], ITEM_ROW_H)
        totals_y = max(TOTALS_START_Y_CONT, items_end_y + ITEM_ROW_H)
        totals_end_y = self._draw_totals(totals_y, TOTAL_ROW_H_CONT)
        notes_y = max(NOTES_LABEL_Y_CONT, totals_end_y + NOTES_GAP)
        self._draw_notes(notes_y)

    def render(self) -> bytes:
        if len(self.items) <= FIRST_PAGE_CAPACITY:
            self._draw_single_page_layout()
        else:
            self._draw_multi_page_layout()

        pdf_blob = self.pdf.output()
        if isinstance(pdf_blob, (bytes, bytearray)):
            return bytes(pdf_blob)
        raise RuntimeError(f"Unexpected PDF output type: {type(pdf_blob).__name__}")


def render_invoice(data: Dict[str, Any]) -> bytes:
    return InvoiceRenderer(data).render()
