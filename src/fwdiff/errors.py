"""
#################################
Exceptions (:mod:`fwdiff.errors`)
#################################

.. currentmodule:: fwdiff.errors

Every failure reported by the engine derives from :class:`AutodiffError` and from the
builtin exception it refines, so callers may catch either.

.. autosummary::
    :toctree: generated/

    AutodiffError
    DuplicateRule
    RegistryFrozen
    UnsupportedOperation
    UnsupportedExpression
    IncompatibleFunctionSignature
    NumericalInstability

"""


class AutodiffError(Exception):
    """Base class for errors raised by :mod:`fwdiff`."""


class DuplicateRule(AutodiffError, ValueError):
    """Raised when a rule is registered for an operation that already has one."""


class RegistryFrozen(AutodiffError, RuntimeError):
    """Raised when a rule is registered after the registry has been frozen."""


class UnsupportedOperation(AutodiffError, LookupError):
    """Raised when an operation has no registered rule, or is applied to the wrong
    number of operands."""


class UnsupportedExpression(AutodiffError, ValueError):
    """Raised when a statement cannot be rewritten by the transformer."""


class IncompatibleFunctionSignature(AutodiffError, TypeError):
    """Raised when a function declares parameter types that exclude dual numbers."""


class NumericalInstability(AutodiffError, ArithmeticError):
    """Raised when a value or a tangent becomes infinite or not-a-number."""
