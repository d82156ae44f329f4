from decimal import Decimal
from types import SimpleNamespace

import pytest

from sales_engine.core.exceptions import ValidationFailed
from sales_engine.services.financials import (
    calculate_line,
    calculate_totals,
    quantize,
    sum_item_totals,
    to_decimal,
    validate_line,
)


def item(quantity, unit_price, discount=0, tax=0):
    return SimpleNamespace(quantity=quantity, unit_price=unit_price, discount=discount, tax=tax)


def test_line_with_discount_and_tax():
    figures = calculate_line(2, Decimal("100"), Decimal("10"), Decimal("18"))
    assert figures.gross == Decimal("200.00")
    assert figures.net == Decimal("190.00")
    assert figures.tax == Decimal("34.20")
    assert figures.total == Decimal("224.20")


def test_document_totals():
    totals = calculate_totals([item(2, "100", "10", "18"), item(1, "50", "0", "18")])
    assert totals.subtotal == Decimal("240.00")
    assert totals.tax_total == Decimal("43.20")
    assert totals.discount_total == Decimal("10.00")
    assert totals.grand_total == Decimal("283.20")
    assert totals.grand_total == totals.subtotal + totals.tax_total


def test_empty_document_is_zero():
    totals = calculate_totals([])
    assert totals.as_dict() == {
        "subtotal": Decimal("0.00"),
        "tax_total": Decimal("0.00"),
        "discount_total": Decimal("0.00"),
        "grand_total": Decimal("0.00"),
    }


def test_rounding_is_half_up_per_line():
    # 3 × 0.35 = 1.05，税 7.5% → 0.07875 → 0.08
    figures = calculate_line(3, "0.35", 0, "7.5")
    assert figures.tax == Decimal("0.08")
    assert figures.total == Decimal("1.13")
    assert quantize(Decimal("0.125")) == Decimal("0.13")


def test_float_input_converted_through_str():
    assert to_decimal(0.1) == Decimal("0.1")
    assert to_decimal(None) == Decimal("0.00")


@pytest.mark.parametrize(
    "quantity, unit_price, discount, tax, field",
    [
        (0, 10, 0, 0, "quantity"),
        (-1, 10, 0, 0, "quantity"),
        (1.5, 10, 0, 0, "quantity"),
        (1, 0, 0, 0, "unit_price"),
        (1, -5, 0, 0, "unit_price"),
        (1, 10, -1, 0, "discount"),
        (10, 50, 101, 0, "discount"),
        (1, 10, 20, 0, "discount"),
        (1, 10, 0, -1, "tax"),
    ],
)
def test_invalid_lines_rejected(quantity, unit_price, discount, tax, field):
    with pytest.raises(ValidationFailed) as exc_info:
        validate_line(quantity, unit_price, discount, tax)
    assert exc_info.value.field == field


def test_totals_reports_row_position():
    with pytest.raises(ValidationFailed) as exc_info:
        calculate_totals([item(1, "10"), item(0, "10")])
    assert "第 2 行" in exc_info.value.message


def test_sum_item_totals():
    rows = [SimpleNamespace(total=Decimal("224.20")), SimpleNamespace(total=Decimal("59.00"))]
    assert sum_item_totals(rows) == Decimal("283.20")
