"""Invoice arithmetic: line totals, subtotal, tax and grand total."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Context, Decimal, localcontext
from typing import Any, Dict, Iterable, List

from .formatting import fmt_money

_CENTS = Decimal("0.01")
# 60 digits holds any sum of bounded quantity x unit price lines to the cent
_MONEY_CONTEXT = Context(prec=60, rounding=ROUND_HALF_UP)

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
}


def _to_decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    return Decimal(str(value))


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(_CENTS, rounding=ROUND_HALF_UP, context=_MONEY_CONTEXT)


def round_money(value: Any) -> float:
    return float(_quantize(_to_decimal(value)))


def calculate_line_total(quantity: float, unit_price: float) -> float:
    return float(_to_decimal(quantity) * _to_decimal(unit_price))


def calculate_subtotal(items: Iterable[Dict[str, Any]]) -> float:
    subtotal = Decimal("0")
    for item in items:
        if "lineTotal" in item:
            subtotal += _to_decimal(item["lineTotal"])
        else:
            subtotal += _to_decimal(item.get("quantity", 0)) * _to_decimal(item.get("unitPrice", 0))
    return float(subtotal)


def calculate_tax(subtotal: float, tax_rate: float) -> float:
    return float(_to_decimal(subtotal) * _to_decimal(tax_rate) / Decimal("100"))


def calculate_total(subtotal: float, tax_amount: float) -> float:
    return float(_to_decimal(subtotal) + _to_decimal(tax_amount))


@dataclass(frozen=True)
class InvoiceTotals:
    line_totals: List[float]
    subtotal: float
    tax_amount: float
    total: float


def calculate_invoice_totals(items: Iterable[Dict[str, Any]], tax_rate: Any = 0) -> InvoiceTotals:
    """Compute rounded totals for a list of ``{quantity, unitPrice}`` items.

    Each figure is rounded half-up to cents, and the total is built from the
    rounded subtotal and rounded tax so ``total == subtotal + tax_amount``
    holds on the stored values.
    """
    line_totals: List[Decimal] = []
    with localcontext(_MONEY_CONTEXT):
        for item in items:
            qty = _to_decimal(item.get("quantity", 0))
            unit_price = _to_decimal(item.get("unitPrice", 0))
            line_totals.append(_quantize(qty * unit_price))

        subtotal = _quantize(sum(line_totals, Decimal("0")))
        tax_amount = _quantize(subtotal * _to_decimal(tax_rate or 0) / Decimal("100"))
        total = subtotal + tax_amount
    return InvoiceTotals(
        line_totals=[float(value) for value in line_totals],
        subtotal=float(subtotal),
        tax_amount=float(tax_amount),
        total=float(total),
    )


def currency_symbol(currency: str) -> str:
    code = (currency or "USD").upper()
    return CURRENCY_SYMBOLS.get(code, f"{code} ")


def format_currency(amount: float, currency: str = "USD") -> str:
    return fmt_money(round_money(amount), currency_symbol(currency))
