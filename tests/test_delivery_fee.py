from decimal import Decimal

import pytest

from freshcart.pricing.delivery_fee import (
    InvalidSubtotalError,
    calculate_delivery_fee,
    calculate_subtotal,
    calculate_total,
    delivery_fee_rate,
    free_delivery_gap,
)


@pytest.mark.parametrize(
    "subtotal, fee",
    [
        (0, 0.0),
        (100, 40.0),
        (200, 80.0),
        (200.01, 40.0),
        (300, 60.0),
        (400, 80.0),
        (400.01, 40.0),
        (450, 45.0),
        (499, 49.9),
        (499.01, 0.0),
        (500, 0.0),
        (2500, 0.0),
    ],
)
def test_fee_bands(subtotal, fee):
    assert calculate_delivery_fee(subtotal) == fee


def test_band_rates_at_boundaries():
    assert delivery_fee_rate(0) == Decimal("0")
    assert delivery_fee_rate(0.01) == Decimal("0.40")
    assert delivery_fee_rate(200) == Decimal("0.40")
    assert delivery_fee_rate(400) == Decimal("0.20")
    assert delivery_fee_rate(499) == Decimal("0.10")
    assert delivery_fee_rate(499.5) == Decimal("0")


def test_fee_for_small_cart():
    assert calculate_delivery_fee(150) == 60.0


@pytest.mark.parametrize(
    "subtotal, total",
    [
        (0, 0.0),
        (150, 210.0),
        (300, 360.0),
        (450, 495.0),
        (500, 500.0),
    ],
)
def test_calculate_total(subtotal, total):
    assert calculate_total(subtotal).total_amount == total


def test_total_is_subtotal_plus_fee():
    breakdown = calculate_total(499)
    assert breakdown.subtotal == 499.0
    assert breakdown.delivery_fee == 49.9
    assert breakdown.total_amount == 548.9


def test_total_is_not_monotonic_across_free_threshold():
    assert calculate_total(499).total_amount > calculate_total(500).total_amount


def test_fee_rounds_half_up_to_the_paisa():
    assert calculate_delivery_fee(450.05) == 45.01
    assert calculate_delivery_fee(0.01) == 0.0
    assert calculate_delivery_fee(0.02) == 0.01


def test_fee_and_total_agree_for_sub_paisa_subtotals():
    breakdown = calculate_total(0.125)
    assert breakdown.subtotal == 0.13
    assert breakdown.delivery_fee == calculate_delivery_fee(0.125)
    assert breakdown.total_amount == round(breakdown.subtotal + breakdown.delivery_fee, 2)


def test_numeric_strings_and_decimals_are_accepted():
    assert calculate_delivery_fee("250") == 50.0
    assert calculate_delivery_fee(Decimal("150.50")) == 60.2


@pytest.mark.parametrize("bad", [-1, -0.01, float("nan"), float("inf"), True, None, "abc", "", [], {}])
def test_invalid_subtotals_are_rejected(bad):
    with pytest.raises(InvalidSubtotalError):
        calculate_total(bad)


def test_invalid_subtotal_is_a_value_error():
    with pytest.raises(ValueError):
        calculate_delivery_fee(-5)


def test_subtotal_from_line_items():
    items = [{"price": 45.5, "quantity": 2}, {"price": 0.1, "quantity": 3}]
    assert calculate_subtotal(items) == 91.3
    assert calculate_subtotal([]) == 0.0


@pytest.mark.parametrize("quantity", [0, -1, 1.5, True, None])
def test_subtotal_rejects_bad_quantities(quantity):
    with pytest.raises(InvalidSubtotalError):
        calculate_subtotal([{"price": 10, "quantity": quantity}])


def test_free_delivery_gap_counts_up_to_500():
    assert free_delivery_gap(0) == 500.0
    assert free_delivery_gap(450) == 50.0
    assert free_delivery_gap(499) == 1.0
    assert free_delivery_gap(499.01) == 0.0
    assert free_delivery_gap(499.5) == 0.0
    assert free_delivery_gap(800) == 0.0
