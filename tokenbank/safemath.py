"""
safemath.py - Checked unsigned integer arithmetic

Every ledger quantity is an unsigned 256-bit integer. These helpers make each
arithmetic step explicit and fail loudly instead of wrapping, going negative or
silently turning into a float:

- add / sub / mul: result must stay within [0, UINT256_MAX]
- div: floor division, divisor must be non-zero
- mul_div: a * b // c with the intermediate product checked

All failures raise MathError.
"""

from __future__ import annotations

from .core import UINT256_MAX, MathError


def require_uint(value: int, name: str = "value") -> int:
    """
    Validate that value is an int in the unsigned 256-bit range.

    bool is rejected even though it subclasses int.

    Raises:
        MathError: If value is not an int or is out of range.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise MathError(f"{name} must be an int, got {type(value).__name__}")
    if value < 0:
        raise MathError(f"{name} underflow: {value} < 0")
    if value > UINT256_MAX:
        raise MathError(f"{name} overflow: {value} > UINT256_MAX")
    return value


def add(a: int, b: int) -> int:
    return require_uint(require_uint(a, "a") + require_uint(b, "b"), "a + b")


def sub(a: int, b: int) -> int:
    """a - b, raising MathError instead of going negative."""
    require_uint(a, "a")
    require_uint(b, "b")
    if b > a:
        raise MathError(f"subtraction underflow: {a} - {b}")
    return a - b


def mul(a: int, b: int) -> int:
    return require_uint(require_uint(a, "a") * require_uint(b, "b"), "a * b")


def div(a: int, b: int) -> int:
    """Floor division, rounding toward zero for unsigned operands."""
    require_uint(a, "a")
    require_uint(b, "b")
    if b == 0:
        raise MathError(f"division by zero: {a} / 0")
    return a // b


def mul_div(a: int, b: int, c: int) -> int:
    """a * b // c with the product checked for overflow before dividing."""
    return div(mul(a, b), c)
