"""Amount helpers: basis-point math and the swap safety margin."""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal

BPS_DENOMINATOR = 10_000

# Aggregator routes are signed, so the swap amount cannot be patched at execution
# time. Requesting less than the estimate keeps a slightly short redeem from
# reverting the swap on insufficient balance.
SWAP_SAFETY_MARGIN_BPS = 200


def _check_bps(bps: int) -> None:
    if bps < 0 or bps > BPS_DENOMINATOR:
        raise ValueError(f"basis points must be within [0, {BPS_DENOMINATOR}], got {bps}")


def bps_of(amount: int, bps: int) -> int:
    """Return ``amount * bps / 10_000`` rounded down."""
    if amount < 0:
        raise ValueError("amount must be non-negative")
    _check_bps(bps)
    return amount * bps // BPS_DENOMINATOR


def apply_slippage_bps(amount: int, bps: int) -> int:
    """Minimum acceptable output after ``bps`` of slippage."""
    return amount - bps_of(amount, bps)


def apply_swap_safety_margin(amount: int, margin_bps: int = SWAP_SAFETY_MARGIN_BPS) -> int:
    """Shave ``margin_bps`` off an estimated swap input.

    Amounts of 0 or 1 are returned unchanged. When the margin rounds down to zero
    the amount is still reduced by one unit.
    """
    if amount <= 1:
        return amount

    margin = bps_of(amount, margin_bps)
    if margin == 0:
        return amount - 1
    return amount - margin


def to_base_units(value, decimals: int = 6) -> int:
    """Convert a human amount (``"1.5"`` USDC) to the token's smallest unit, rounding down."""
    scaled = Decimal(str(value)) * (Decimal(10) ** decimals)
    units = int(scaled.quantize(Decimal("1"), rounding=ROUND_DOWN))
    if units < 0:
        raise ValueError("amount must be non-negative")
    return units


def split_amount(amount: int) -> tuple:
    """Split ``amount`` in two halves; the second half absorbs the odd unit."""
    first = amount // 2
    return first, amount - first


__all__ = [
    "BPS_DENOMINATOR",
    "SWAP_SAFETY_MARGIN_BPS",
    "apply_slippage_bps",
    "apply_swap_safety_margin",
    "bps_of",
    "split_amount",
    "to_base_units",
]
