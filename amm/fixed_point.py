"""
Signed 64.64 fixed point, the settlement contract's number format.

An int128 whose low 64 bits are the fraction: value = raw / 2**64.
Every 64.64 value has a finite binary, hence finite decimal, expansion,
so from_int128 is exact. to_int128 floors toward -infinity; integers
convert exactly.
"""

from collections.abc import Mapping
from decimal import Decimal, localcontext, ROUND_FLOOR

from amm.market_maker import LiquiditySensitiveEngine
from amm.models import to_decimal


ONE_64X64 = 2 ** 64
INT128_MIN = -(2 ** 127)
INT128_MAX = 2 ** 127 - 1

# 2**127 / 2**64 has 20 integer digits and the fraction 64 more
_EXACT_PRECISION = 90


def from_int128(raw: int) -> Decimal:
    """Raw 64.64 integer (as read from the chain) -> exact Decimal."""
    if not INT128_MIN <= raw <= INT128_MAX:
        raise OverflowError(f"{raw} is outside the int128 range")
    with localcontext() as ctx:
        ctx.prec = _EXACT_PRECISION
        return Decimal(raw) / ONE_64X64


def to_int128(value) -> int:
    """Decimal (or int/str/float) -> raw 64.64 integer, floored."""
    with localcontext() as ctx:
        ctx.prec = _EXACT_PRECISION
        scaled = to_decimal(value) * ONE_64X64
        raw = int(scaled.to_integral_value(rounding=ROUND_FLOOR))
    if not INT128_MIN <= raw <= INT128_MAX:
        raise OverflowError(f"{value} does not fit in 64.64 fixed point")
    return raw


def balances_from_int128(raw: Mapping) -> dict[str, Decimal]:
    """{outcome: raw int128 balance} -> {outcome: Decimal}."""
    return {outcome: from_int128(v) for outcome, v in raw.items()}


def engine_from_chain(raw_balances: Mapping,
                      raw_alpha: int) -> LiquiditySensitiveEngine:
    """
    Rebuild an LS-LMSR engine from raw on-chain balances and alpha.
    Goes through from_state(), so its loss bound is not authoritative.
    """
    return LiquiditySensitiveEngine.from_state(
        balances_from_int128(raw_balances), from_int128(raw_alpha))
