import unittest
from datetime import date, datetime

from invoice_manager.formatting import (
    fmt_date,
    fmt_money,
    fmt_qty,
    iso_date,
    parse_date,
    safe_filename_part,
    safe_float,
    split_lines,
)


class FormattingTests(unittest.TestCase):
    def test_fmt_date_formats_valid_dates(self) -> None:
        self.assertEqual(fmt_date("2026-01-15"), "Jan 15, 2026")

    def test_fmt_date_returns_original_for_invalid_input(self) -> None:
        raw = "not-a-date"
        self.assertEqual(fmt_date(raw), raw)

    def test_fmt_date_accepts_date_objects(self) -> None:
        self.assertEqual(fmt_date(date(2025, 3, 14)), "Mar 14, 2025")
        self.assertEqual(fmt_date(None), "")

    def test_parse_date_handles_datetimes_and_garbage(self) -> None:
        self.assertEqual(parse_date(datetime(2026, 2, 1, 13, 30)), date(2026, 2, 1))
        self.assertEqual(parse_date("2026-02-01"), date(2026, 2, 1))
        self.assertIsNone(parse_date("   "))
        self.assertIsNone(parse_date("not-a-date"))

    def test_iso_date(self) -> None:
        self.assertEqual(iso_date(date(2026, 1, 5)), "2026-01-05")

    def test_fmt_qty_handles_integer_and_float_values(self) -> None:
        self.assertEqual(fmt_qty(3), "3")
        self.assertEqual(fmt_qty(2.5), "2.5")
        self.assertEqual(fmt_qty("n/a"), "n/a")

    def test_fmt_money_groups_thousands_and_signs_negatives(self) -> None:
        self.assertEqual(fmt_money(1234.5, "$"), "$1,234.50")
        self.assertEqual(fmt_money(-5, "$"), "-$5.00")

    def test_safe_float_uses_default_for_non_numeric_values(self) -> None:
        self.assertEqual(safe_float("abc", 7.5), 7.5)
        self.assertEqual(safe_float(True, 1.0), 1.0)
        self.assertEqual(safe_float("2.25"), 2.25)

    def test_safe_filename_part_replaces_unsafe_characters(self) -> None:
        self.assertEqual(safe_filename_part("INV/2026 01"), "INV-2026-01")
        self.assertEqual(safe_filename_part("Acme Co.", r"[^a-zA-Z0-9]", "_"), "Acme_Co_")
        self.assertEqual(safe_filename_part(""), "")

    def test_split_lines_ignores_blank_lines(self) -> None:
        self.assertEqual(split_lines("a\n\n b \n"), ["a", " b "])


if __name__ == "__main__":
    unittest.main()
