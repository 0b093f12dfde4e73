"""Formatting, date parsing and drawing helpers shared by exports and PDFs."""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, List, Optional, Protocol, Union

from dateutil import parser as dateutil_parser

DateLike = Union[str, date, datetime, None]


class TextWidthProvider(Protocol):
    def text_width(self, text: str, size: int, bold: bool = False) -> float:
        ...


class PdfPathCanvas(Protocol):
    k: float
    h: float

    def rect(self, x: float, y: float, w: float, h: float, style: str) -> None:
        ...

    def _out(self, value: str) -> None:
        ...


def fmt_money(amount: float, symbol: str) -> str:
    if amount < 0:
        return f"-{symbol}{abs(amount):,.2f}"
    return f"{symbol}{amount:,.2f}"


def fmt_qty(qty: Any) -> str:
    try:
        quantity = float(qty)
    except (TypeError, ValueError):
        return str(qty)
    if quantity.is_integer():
        return str(int(quantity))
    return f"{quantity:g}"


def safe_float(value: Any, default: float = 0.0) -> float:
    if isinstance(value, bool):
        return default
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_date(raw: DateLike) -> Optional[date]:
    """Leniently parse ``raw`` into a calendar date; None when it can't be read."""
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    text = str(raw).strip()
    if not text:
        return None
    try:
        return dateutil_parser.parse(text).date()
    except (ValueError, OverflowError):
        return None


def fmt_date(raw: DateLike) -> str:
    """Return a date formatted as 'Mar 14, 2025', or the input when unparseable."""
    parsed = parse_date(raw)
    if parsed is None:
        return "" if raw is None else str(raw).strip()
    return parsed.strftime("%b %d, %Y")


def iso_date(value: date) -> str:
    return value.strftime("%Y-%m-%d")


def safe_filename_part(value: str, pattern: str = r"[^a-zA-Z0-9_-]", replacement: str = "-") -> str:
    return re.sub(pattern, replacement, value or "")


def split_lines(text: str) -> List[str]:
    if not text:
        return []
    return [line for line in text.split("\n") if line.strip() != ""]


def wrap_text(
    fonts_obj: TextWidthProvider,
    text: str,
    max_width: float,
    font_size: int,
    bold: bool = False,
) -> List[str]:
    def line_width(value: str) -> float:
        return fonts_obj.text_width(value, font_size, bold=bold)

    def wrap_paragraph(paragraph: str) -> List[str]:
        words = paragraph.split()
        if not words:
            return [paragraph]

        lines: List[str] = []
        current = ""
        for word in words:
            candidate = word if not current else f"{current} {word}"
            if line_width(candidate) <= max_width:
                current = candidate
                continue

            if current:
                lines.append(current)
                current = ""

            # a single word wider than the column is split by characters
            chunk = ""
            for char in word:
                if chunk and line_width(chunk + char) > max_width:
                    lines.append(chunk)
                    chunk = char
                else:
                    chunk += char
            current = chunk

        if current:
            lines.append(current)
        return lines

    result: List[str] = []
    for paragraph in text.split("\n"):
        result.extend(wrap_paragraph(paragraph))
    return result if result else [text]


def round_rect(
    pdf: PdfPathCanvas,
    x: float,
    y: float,
    width: float,
    height: float,
    radius: float,
    fill: bool = True,
) -> None:
    radius = max(0.0, min(radius, width / 2.0, height / 2.0))
    if radius == 0:
        pdf.rect(x, y, width, height, "F" if fill else "D")
        return

    k = pdf.k
    hp = pdf.h
    kappa = 0.5522847498307936  # circle approximation constant
    bend = radius * kappa

    def point(px: float, py: float) -> str:
        return "%.2f %.2f" % (px * k, (hp - py) * k)

    def arc(x1: float, y1: float, x2: float, y2: float, x3: float, y3: float) -> None:
        pdf._out(f"{point(x1, y1)} {point(x2, y2)} {point(x3, y3)} c")

    right = x + width
    bottom = y + height
    pdf._out(f"{point(x + radius, y)} m")
    pdf._out(f"{point(right - radius, y)} l")
    arc(right - radius + bend, y, right, y + radius - bend, right, y + radius)
    pdf._out(f"{point(right, bottom - radius)} l")
    arc(right, bottom - radius + bend, right - radius + bend, bottom, right - radius, bottom)
    pdf._out(f"{point(x + radius, bottom)} l")
    arc(x + radius - bend, bottom, x, bottom - radius + bend, x, bottom - radius)
    pdf._out(f"{point(x, y + radius)} l")
    arc(x, y + radius - bend, x + radius - bend, y, x + radius, y)

    pdf._out("f" if fill else "S")
