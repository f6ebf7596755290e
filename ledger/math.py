"""
ledger.math
===========

Checked unsigned 128-bit arithmetic for balances and allowances.

- Integer-only; never floats.
- **Checked**: every result outside [0, U128_MAX] raises
  ArithmeticOverflow / ArithmeticUnderflow. Nothing wraps or truncates.
- `operation` names the ledger step so the raised error says where it failed.
"""

from __future__ import annotations

from typing import Any, Final

from .errors import ArithmeticOverflow, ArithmeticUnderflow, InvalidAmount

U128_BITS: Final[int] = 128
U128_MAX: Final[int] = (1 << U128_BITS) - 1


def is_u128(x: Any) -> bool:
    # bool is an int subclass; amounts are never booleans
    return isinstance(x, int) and not isinstance(x, bool) and 0 <= x <= U128_MAX


def require_u128(amount: Any) -> int:
    """Return `amount` unchanged if it is a valid u128, else raise InvalidAmount."""
    if isinstance(amount, bool) or not isinstance(amount, int):
        raise InvalidAmount(amount, reason="amount must be an integer")
    if amount < 0:
        raise InvalidAmount(amount, reason="amount must be non-negative")
    if amount > U128_MAX:
        raise InvalidAmount(amount, reason="amount exceeds 2**128-1")
    return amount


def u128_add(x: int, y: int, *, operation: str = "add", **ctx: Any) -> int:
    """Checked add: raises ArithmeticOverflow when x + y > U128_MAX."""
    r = x + y
    if r > U128_MAX:
        raise ArithmeticOverflow(operation, value=x, amount=y, limit=U128_MAX, **ctx)
    return r


def u128_sub(x: int, y: int, *, operation: str = "sub", **ctx: Any) -> int:
    """Checked subtract: raises ArithmeticUnderflow when y > x."""
    if y > x:
        raise ArithmeticUnderflow(operation, value=x, amount=y, **ctx)
    return x - y


__all__ = [
    "U128_BITS",
    "U128_MAX",
    "is_u128",
    "require_u128",
    "u128_add",
    "u128_sub",
]
