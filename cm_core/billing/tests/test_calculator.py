# cm_core/billing/tests/test_calculator.py
from dataclasses import dataclass
from decimal import Decimal

from cm_core.billing.calculator import (
    calculate_balance,
    calculate_invoice_totals,
    calculate_item_total,
    calculate_total_paid,
)


@dataclass
class Line:
    quantity: Decimal
    unit_price: Decimal
    discount: Decimal = Decimal("0")


def test_item_total_is_quantity_times_price_minus_discount():
    item = {"quantity": Decimal("2"), "unit_price": Decimal("500.00"), "discount": Decimal("100.00")}
    assert calculate_item_total(item) == Decimal("900.00")


def test_item_total_accepts_objects_and_strings():
    assert calculate_item_total(Line(quantity=Decimal("3"), unit_price=Decimal("10.50"))) == Decimal("31.50")
    assert calculate_item_total({"quantity": "1", "unit_price": "99.99", "discount": "0"}) == Decimal("99.99")


def test_invoice_totals_follow_the_lines():
    totals = calculate_invoice_totals(
        [
            {"quantity": 2, "unit_price": "500.00", "discount": "100.00"},
            {"quantity": 1, "unit_price": "300.00", "discount": "0"},
        ]
    )
    assert totals.subtotal == Decimal("1300.00")
    assert totals.total_discount == Decimal("100.00")
    assert totals.tax == Decimal("0")
    assert totals.total == Decimal("1200.00")
    assert totals.total == totals.subtotal - totals.total_discount + totals.tax


def test_invoice_totals_of_no_items_are_zero():
    totals = calculate_invoice_totals([])
    assert totals.subtotal == Decimal("0")
    assert totals.total == Decimal("0")


def test_decimal_math_has_no_float_drift():
    totals = calculate_invoice_totals([{"quantity": 3, "unit_price": "0.10", "discount": "0"}])
    assert totals.total == Decimal("0.30")


def test_total_paid_sums_amounts():
    assert calculate_total_paid([]) == Decimal("0")
    assert calculate_total_paid([{"amount": "200.00"}, {"amount": Decimal("300.00")}]) == Decimal("500.00")


def test_total_paid_does_not_depend_on_payment_order():
    payments = [{"amount": "0.10"}, {"amount": "1000.05"}, {"amount": "0.20"}, {"amount": "33.33"}]

    forward = calculate_total_paid(payments)
    assert forward == Decimal("1033.68")
    assert calculate_total_paid(list(reversed(payments))) == forward
    assert calculate_total_paid(sorted(payments, key=lambda p: Decimal(p["amount"]))) == forward


def test_fractional_quantity_line_is_billed_in_whole_cents():
    line = {"quantity": "1.5", "unit_price": "10.33", "discount": "0.01"}

    # 1.5 * 10.33 = 15.495, rounded half up
    assert calculate_item_total(line) == Decimal("15.49")

    totals = calculate_invoice_totals([line, {"quantity": "2", "unit_price": "5.00", "discount": "0"}])
    assert totals.subtotal == Decimal("25.50")
    assert totals.total_discount == Decimal("0.01")
    assert totals.total == Decimal("25.49")
    assert totals.total == totals.subtotal - totals.total_discount + totals.tax


def test_balance_is_not_clamped():
    assert calculate_balance(Decimal("500.00"), Decimal("200.00")) == Decimal("300.00")
    assert calculate_balance(Decimal("500.00"), Decimal("600.00")) == Decimal("-100.00")
