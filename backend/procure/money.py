# Overview: Integer-cent arithmetic helpers (basis points for rates).

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP

BPS_PER_UNIT = 10_000  # 10000 bps = 100%


def round_cents(value: Decimal) -> int:
    """Round a Decimal amount of cents half-up to a whole cent."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def apply_bps(amount_cents: int, bps: int) -> int:
    """Return `bps` basis points of `amount_cents`, rounded to a whole cent."""
    return round_cents(Decimal(amount_cents) * Decimal(bps) / Decimal(BPS_PER_UNIT))


def discounted_cents(amount_cents: int, discount_bps: int) -> int:
    """unit * (1 - percent/100), rounded half-up to a whole cent."""
    return round_cents(
        Decimal(amount_cents) * Decimal(BPS_PER_UNIT - discount_bps) / Decimal(BPS_PER_UNIT)
    )


def bps_to_percent(bps: int) -> Decimal:
    """500 -> Decimal('5.00')"""
    return (Decimal(bps) / Decimal(100)).quantize(Decimal("0.01"))
