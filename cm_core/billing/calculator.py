# cm_core/billing/calculator.py
"""
Invoice money math.

Pure functions over Decimal. Items and payments may be model instances,
dataclasses or plain dicts; anything exposing the named fields works.
"""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping

ZERO = Decimal("0")
CENT = Decimal("0.01")


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    total_discount: Decimal
    tax: Decimal
    total: Decimal


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if value is None:
        return ZERO
    return Decimal(str(value))


def _field(obj: Any, name: str) -> Decimal:
    if isinstance(obj, Mapping):
        return to_decimal(obj.get(name))
    return to_decimal(getattr(obj, name, None))


def _cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _gross(item: Any) -> Decimal:
    # fractional quantities can produce sub-cent amounts; a line is billed in whole cents
    return _cents(_field(item, "quantity") * _field(item, "unit_price"))


def _discount(item: Any) -> Decimal:
    return _cents(_field(item, "discount"))


def calculate_item_total(item: Any) -> Decimal:
    return _gross(item) - _discount(item)


def calculate_invoice_totals(items: Iterable[Any]) -> InvoiceTotals:
    items = list(items)

    subtotal = sum((_gross(i) for i in items), ZERO)
    total_discount = sum((_discount(i) for i in items), ZERO)
    # no tax rules yet; kept in the formula so totals stay general
    tax = ZERO
    total = subtotal - total_discount + tax

    return InvoiceTotals(
        subtotal=subtotal,
        total_discount=total_discount,
        tax=tax,
        total=total,
    )


def calculate_total_paid(payments: Iterable[Any]) -> Decimal:
    return sum((_field(p, "amount") for p in payments), ZERO)


def calculate_balance(total: Any, total_paid: Any) -> Decimal:
    # negative means overpaid; left for the operator to resolve
    return to_decimal(total) - to_decimal(total_paid)
