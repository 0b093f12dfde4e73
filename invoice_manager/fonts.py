"""Font discovery and text drawing on an fpdf canvas."""

from __future__ import annotations

import logging
import os
import threading
from typing import List, Optional, Tuple

from fpdf import FPDF

logger = logging.getLogger(__name__)

_PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

FONT_INIT_LOCK = threading.Lock()


def find_font_path(env_var: str, candidates: List[str]) -> Optional[str]:
    override = os.getenv(env_var)
    if override and os.path.exists(override):
        return override

    for path in candidates:
        if os.path.exists(path):
            return path
    return None


class FontManager:
    """Registers a Unicode TTF family when one is available.

    Without a TTF the built-in Helvetica core font is used, which only covers
    Latin-1; other characters are replaced with '?'.
    """

    FAMILY = "InvoiceFont"
    CORE_FAMILY = "Helvetica"
    BUNDLED_REGULAR = os.path.join(_PROJECT_ROOT, "fonts", "DejaVuSans.ttf")
    BUNDLED_BOLD = os.path.join(_PROJECT_ROOT, "fonts", "DejaVuSans-Bold.ttf")
    SYSTEM_REGULAR_CANDIDATES = [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf",
        "/usr/share/fonts/dejavu/DejaVuSans.ttf",
        "/Library/Fonts/DejaVuSans.ttf",
    ]
    SYSTEM_BOLD_CANDIDATES = [
        "/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf",
        "/usr/share/fonts/dejavu/DejaVuSans-Bold.ttf",
        "/Library/Fonts/DejaVuSans-Bold.ttf",
    ]

    def __init__(self, pdf: FPDF) -> None:
        self.pdf = pdf
        self.family = self.CORE_FAMILY
        self.unicode = False
        self.has_bold = True

        regular_path = find_font_path(
            "INVOICE_FONT_PATH",
            [self.BUNDLED_REGULAR, *self.SYSTEM_REGULAR_CANDIDATES],
        )
        if not regular_path:
            logger.debug("No Unicode TTF found; falling back to %s", self.CORE_FAMILY)
            return

        bold_path = find_font_path(
            "INVOICE_FONT_BOLD_PATH",
            [self.BUNDLED_BOLD, *self.SYSTEM_BOLD_CANDIDATES],
        )

        with FONT_INIT_LOCK:
            self.pdf.add_font(self.FAMILY, "", regular_path)
            self.has_bold = False
            if bold_path:
                self.pdf.add_font(self.FAMILY, "B", bold_path)
                self.has_bold = True
        self.family = self.FAMILY
        self.unicode = True

    def _prepare(self, text: str) -> str:
        if self.unicode:
            return text
        return text.encode("latin-1", "replace").decode("latin-1")

    def _use(self, size: int, bold: bool) -> None:
        style = "B" if bold and self.has_bold else ""
        self.pdf.set_font(self.family, style, size)

    def text_width(self, text: str, size: int, bold: bool = False) -> float:
        self._use(size, bold)
        return self.pdf.get_string_width(self._prepare(text))

    def draw_text(
        self,
        x: float,
        y: float,
        text: str,
        size: int,
        color: Tuple[int, int, int],
        bold: bool = False,
    ) -> None:
        text = self._prepare(text)
        self.pdf.set_text_color(*color)
        self._use(size, bold)
        self.pdf.text(x, y, text)
        if bold and not self.has_bold:
            self.pdf.text(x + 0.4, y, text)

    def draw_right(
        self,
        right: float,
        y: float,
        text: str,
        size: int,
        color: Tuple[int, int, int],
        bold: bool = False,
    ) -> None:
        self.draw_text(right - self.text_width(text, size, bold=bold), y, text, size, color, bold=bold)

    def draw_centered(
        self,
        center: float,
        y: float,
        text: str,
        size: int,
        color: Tuple[int, int, int],
        bold: bool = False,
    ) -> None:
        width = self.text_width(text, size, bold=bold)
        self.draw_text(center - width / 2.0, y, text, size, color, bold=bold)
