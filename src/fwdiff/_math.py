"""Value-level elementary functions following IEEE 754 semantics.

Domain errors give not-a-number instead of raising, so that they are reported by the
finiteness check of the rule that called them. Overflow still raises
:class:`OverflowError` where :mod:`math` does.
"""

import math
from typing import Any

import mpmath
import mpmath.ctx_mp_python

mpnumeric = mpmath.ctx_mp_python.mpnumeric


def sin(x: Any, /) -> Any:
    match x:
        case mpnumeric():
            return mpmath.sin(x)

        case float() | int():
            return math.sin(x) if math.isfinite(x) else math.nan

        case _:
            raise TypeError(f"unsupported operand type: {type(x).__name__}")


def cos(x: Any, /) -> Any:
    match x:
        case mpnumeric():
            return mpmath.cos(x)

        case float() | int():
            return math.cos(x) if math.isfinite(x) else math.nan

        case _:
            raise TypeError(f"unsupported operand type: {type(x).__name__}")


def tan(x: Any, /) -> Any:
    match x:
        case mpnumeric():
            return mpmath.tan(x)

        case float() | int():
            return math.tan(x) if math.isfinite(x) else math.nan

        case _:
            raise TypeError(f"unsupported operand type: {type(x).__name__}")


def exp(x: Any, /) -> Any:
    match x:
        case mpnumeric():
            return mpmath.exp(x)

        case float() | int():
            return math.exp(x)

        case _:
            raise TypeError(f"unsupported operand type: {type(x).__name__}")


def log(x: Any, /) -> Any:
    match x:
        case mpnumeric():
            return mpmath.log(x) if x >= 0 else mpmath.nan

        case float() | int():
            if x > 0:
                return math.log(x)

            return -math.inf if x == 0 else math.nan

        case _:
            raise TypeError(f"unsupported operand type: {type(x).__name__}")


def sqrt(x: Any, /) -> Any:
    match x:
        case mpnumeric():
            return mpmath.sqrt(x) if x >= 0 else mpmath.nan

        case float() | int():
            return math.sqrt(x) if x >= 0 else math.nan

        case _:
            raise TypeError(f"unsupported operand type: {type(x).__name__}")


def pow(x: Any, y: Any, /) -> Any:
    match x, y:
        case (mpnumeric(), _) | (_, mpnumeric()):
            if x < 0 and y != mpmath.floor(y):
                return mpmath.nan

            return mpmath.power(x, y)

        case (float() | int(), float() | int()):
            if x < 0 and not float(y).is_integer():
                return math.nan

            return x**y

        case _:
            raise TypeError(
                f"unsupported operand types: {type(x).__name__}, {type(y).__name__}"
            )
