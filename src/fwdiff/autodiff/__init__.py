"""
##################################################
Automatic differentiation (:mod:`fwdiff.autodiff`)
##################################################

.. currentmodule:: fwdiff.autodiff

This module provides forward-mode automatic differentiation by two strategies sharing
one table of differentiation rules: evaluation at dual numbers, and transformation of
straight-line functions into functions threading tangents alongside values.

Differential operators
----------------------

.. autosummary::
    :toctree: generated/

    deriv
    grad
    gradient
    jvp

Evaluation at dual numbers
--------------------------

.. autosummary::
    :toctree: generated/

    Dual
    Parametric
    evaluate_with_tangent

Source transformation
---------------------

.. autosummary::
    :toctree: generated/

    Assign
    Function
    Return
    TransformedFunction
    parse
    source_transform
    transform

Differentiation rules
---------------------

.. autosummary::
    :toctree: generated/

    Primitive
    Registry
    Rule
    check_rule
    default_registry
    register_rule

"""

from .autodiff import check_rule, deriv, grad, gradient, jvp, register_rule
from .dual import Dual, Primitive
from .evaluator import Parametric, evaluate_with_tangent
from .frontend import parse
from .ir import Assign, Function, Return
from .registry import Registry, Rule, default_registry
from .transform import TransformedFunction, source_transform, transform

__all__ = [
    "check_rule",
    "deriv",
    "grad",
    "gradient",
    "jvp",
    "register_rule",
    "Dual",
    "Primitive",
    "Parametric",
    "evaluate_with_tangent",
    "parse",
    "Assign",
    "Function",
    "Return",
    "Registry",
    "Rule",
    "default_registry",
    "TransformedFunction",
    "source_transform",
    "transform",
]
