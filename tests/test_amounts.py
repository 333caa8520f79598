import pytest

from zapbridge.core.amounts import (
    apply_slippage_bps,
    apply_swap_safety_margin,
    bps_of,
    split_amount,
    to_base_units,
)


@pytest.mark.parametrize(
    "amount,expected",
    [
        (10_000, 9_800),
        (1, 1),
        (0, 0),
        (50, 49),
        (1_000_000, 980_000),
    ],
)
def test_swap_safety_margin(amount, expected):
    assert apply_swap_safety_margin(amount) == expected


def test_swap_safety_margin_custom_bps():
    assert apply_swap_safety_margin(10_000, 50) == 9_950
    assert apply_swap_safety_margin(10_000, 0) == 9_999


def test_bps_of_rounds_down():
    assert bps_of(999, 100) == 9
    with pytest.raises(ValueError):
        bps_of(100, 10_001)


def test_apply_slippage_bps():
    assert apply_slippage_bps(1_000_000, 50) == 995_000


def test_to_base_units():
    assert to_base_units("1.5") == 1_500_000
    assert to_base_units("0.0000019") == 1
    assert to_base_units(2, decimals=18) == 2 * 10**18
    with pytest.raises(ValueError):
        to_base_units("-1")


def test_split_amount_second_half_takes_remainder():
    assert split_amount(1_000_001) == (500_000, 500_001)
    assert sum(split_amount(7)) == 7
