"""
###############################################
Mathematical functions (:mod:`fwdiff.function`)
###############################################

.. currentmodule:: fwdiff.function

This module provides elementary functions as primitives. Each of them accepts
:class:`float`, :class:`int`, :mod:`mpmath` numbers, and
:class:`~fwdiff.autodiff.Dual`.

Trigonometric functions
=======================

.. autosummary::
    :toctree: generated/

    cos
    sin
    tan

Power, exponents, and logarithmic functions
===========================================

.. autosummary::
    :toctree: generated/

    exp
    log
    pow
    sqrt

"""

from fwdiff import _math
from fwdiff.autodiff.dual import Primitive, pow
from fwdiff.autodiff.registry import default_registry

sin = Primitive(
    "sin",
    """Sine.

    Examples
    --------
    >>> from fwdiff.autodiff import Dual
    >>> print(format(sin(1.0), ".6f"))
    0.841471
    >>> print(format(sin(Dual(0.0, 2.0)).tangent, ".6f"))
    2.000000
    """,
)

cos = Primitive("cos", "Cosine.")

tan = Primitive("tan", "Tangent.")

exp = Primitive(
    "exp",
    """Exponential.

    Examples
    --------
    >>> print(format(exp(2), ".6f"))
    7.389056
    """,
)

log = Primitive(
    "log",
    """Natural logarithm.

    The logarithm of zero is ``-inf`` and that of a negative number is not-a-number,
    so both are reported as :class:`~fwdiff.errors.NumericalInstability`.
    """,
)

sqrt = Primitive("sqrt", "Square root.")


def _sin_rule(_, dx, x):
    return _math.sin(x), _math.cos(x) * dx


def _cos_rule(_, dx, x):
    return _math.cos(x), -_math.sin(x) * dx


def _tan_rule(_, dx, x):
    value = _math.tan(x)
    return value, (1 + value * value) * dx


def _exp_rule(_, dx, x):
    value = _math.exp(x)
    return value, value * dx


def _log_rule(_, dx, x):
    return _math.log(x), dx / x


def _sqrt_rule(_, dx, x):
    value = _math.sqrt(x)
    return value, dx / (2 * value)


_registry = default_registry()
_registry.register(sin, 1, _sin_rule)
_registry.register(cos, 1, _cos_rule)
_registry.register(tan, 1, _tan_rule)
_registry.register(exp, 1, _exp_rule)
_registry.register(log, 1, _log_rule)
_registry.register(sqrt, 1, _sqrt_rule)

__all__ = ["cos", "exp", "log", "pow", "sin", "sqrt", "tan"]
