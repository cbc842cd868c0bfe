from __future__ import annotations

from decimal import ROUND_CEILING, ROUND_DOWN, Decimal, localcontext

UINT256_MAX = 2**256 - 1
DECIMAL_PRECISION = 18

# Built from its digit tuple: the default 28-digit context would round it.
MAX_DECIMAL = Decimal((0, tuple(int(digit) for digit in str(UINT256_MAX)), -DECIMAL_PRECISION))
CLOSE_DEBT_CHANGE = MAX_DECIMAL.copy_negate()

_WIDE_PRECISION = 100


def to_decimal(value: object) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("Cannot parse decimal from bool")
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value))
    if isinstance(value, str):
        normalized = value.strip().replace("_", "")
        return Decimal(normalized)
    raise TypeError(f"Cannot parse decimal from {type(value)!r}")


def to_base_units(amount: Decimal, decimals: int) -> int:
    """Scale a non-negative token amount to integer base units, truncating dust."""

    if amount < 0:
        raise ValueError(f"amount must be >= 0, got {amount}")
    with localcontext() as ctx:
        ctx.prec = _WIDE_PRECISION
        scaled = amount.scaleb(decimals)
        return int(scaled.to_integral_value(rounding=ROUND_DOWN))


def from_base_units(value: int, decimals: int) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = _WIDE_PRECISION
        return Decimal(value).scaleb(-decimals)


def apply_gas_multiplier(gas_estimate: int, multiplier: Decimal) -> int:
    if multiplier < 1:
        raise ValueError(f"gas limit multiplier must be >= 1, got {multiplier}")
    with localcontext() as ctx:
        ctx.prec = _WIDE_PRECISION
        scaled = Decimal(gas_estimate) * multiplier
        return int(scaled.to_integral_value(rounding=ROUND_CEILING))
