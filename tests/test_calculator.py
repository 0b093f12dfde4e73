import unittest

from invoice_manager.calculator import (
    calculate_invoice_totals,
    calculate_line_total,
    calculate_subtotal,
    calculate_tax,
    calculate_total,
    format_currency,
    round_money,
)


class CalculatorTests(unittest.TestCase):
    def test_invoice_totals_round_each_figure_to_cents(self) -> None:
        totals = calculate_invoice_totals(
            [{"quantity": 2, "unitPrice": 50}, {"quantity": 1, "unitPrice": 25.5}],
            10,
        )

        self.assertEqual(totals.line_totals, [100.0, 25.5])
        self.assertEqual(totals.subtotal, 125.5)
        self.assertEqual(totals.tax_amount, 12.55)
        self.assertEqual(totals.total, 138.05)

    def test_total_equals_rounded_subtotal_plus_rounded_tax(self) -> None:
        totals = calculate_invoice_totals([{"quantity": 3, "unitPrice": 33.333}], 7.25)

        self.assertEqual(totals.subtotal, 100.0)
        self.assertEqual(totals.tax_amount, 7.25)
        self.assertEqual(totals.total, totals.subtotal + totals.tax_amount)

    def test_zero_tax_rate(self) -> None:
        totals = calculate_invoice_totals([{"quantity": 1.5, "unitPrice": 10}], 0)

        self.assertEqual(totals.tax_amount, 0.0)
        self.assertEqual(totals.total, 15.0)

    def test_largest_accepted_values_stay_exact(self) -> None:
        totals = calculate_invoice_totals([{"quantity": 1e9, "unitPrice": 1e12}] * 3, 100)

        self.assertEqual(totals.line_totals, [1e21, 1e21, 1e21])
        self.assertEqual(totals.subtotal, 3e21)
        self.assertEqual(totals.total, 6e21)

    def test_round_money_rounds_half_up(self) -> None:
        self.assertEqual(round_money(2.675), 2.68)
        self.assertEqual(round_money(0.125), 0.13)
        self.assertEqual(round_money(None), 0.0)

    def test_component_helpers(self) -> None:
        self.assertEqual(calculate_line_total(3, 19.99), 59.97)
        self.assertEqual(calculate_subtotal([{"lineTotal": 10}, {"quantity": 2, "unitPrice": 3}]), 16.0)
        self.assertEqual(calculate_tax(100, 8.5), 8.5)
        self.assertEqual(calculate_total(100, 8.5), 108.5)

    def test_format_currency_uses_known_symbols(self) -> None:
        self.assertEqual(format_currency(1234.5), "$1,234.50")
        self.assertEqual(format_currency(10, "eur"), "€10.00")
        self.assertEqual(format_currency(10, "GBP"), "£10.00")

    def test_format_currency_falls_back_to_code_prefix(self) -> None:
        self.assertEqual(format_currency(99.999, "JPY"), "JPY 100.00")


if __name__ == "__main__":
    unittest.main()
