import dataclasses
from collections.abc import Sequence
from typing import Any, Self

import mpmath.ctx_mp_python

from fwdiff import _math
from fwdiff.autodiff.registry import default_registry
from fwdiff.context import getcontext
from fwdiff.errors import UnsupportedOperation
from fwdiff.typing import Scalar

_NUMBER = float | int | mpmath.ctx_mp_python.mpnumeric


@dataclasses.dataclass(frozen=True, slots=True)
class Dual[T: Scalar]:
    r"""Dual number.

    Instances behave like elements of :math:`T[\varepsilon]/(\varepsilon^2)`: `value`
    is the primal value and `tangent` its derivative along the direction seeded by
    the caller. Every arithmetic operation on dual numbers is dispatched to the rule
    registered for it.

    Parameters
    ----------
    value : T
    tangent : T

    Examples
    --------
    >>> x = Dual(3.0, 1.0)
    >>> x**2 + x
    Dual(value=12.0, tangent=7.0)
    >>> 1 / x
    Dual(value=0.3333333333333333, tangent=-0.1111111111111111)
    """

    value: T
    tangent: T

    @classmethod
    def constant(cls, value: T) -> Self:
        """Return a dual number whose tangent is zero."""
        return cls(value, value * 0)

    @classmethod
    def seed(cls, point: Sequence[T], argnum: int) -> tuple[Self, ...]:
        """Return dual numbers whose tangent is one at `argnum` and zero elsewhere.

        Examples
        --------
        >>> Dual.seed((1.0, 2.0), 1)
        (Dual(value=1.0, tangent=0.0), Dual(value=2.0, tangent=1.0))
        """
        if not 0 <= argnum < len(point):
            raise IndexError(f"argnum {argnum} out of range for {len(point)} inputs")

        return tuple(
            cls(x, x * 0 + 1) if i == argnum else cls(x, x * 0)
            for i, x in enumerate(point)
        )

    def __bool__(self) -> bool:
        raise TypeError("control flow on dual numbers is not differentiable")

    def __add__(self, rhs: Self | T | int) -> Self:
        if not isinstance(rhs, Dual | _NUMBER):
            return NotImplemented

        return add(self, rhs)

    def __sub__(self, rhs: Self | T | int) -> Self:
        if not isinstance(rhs, Dual | _NUMBER):
            return NotImplemented

        return sub(self, rhs)

    def __mul__(self, rhs: Self | T | int) -> Self:
        if not isinstance(rhs, Dual | _NUMBER):
            return NotImplemented

        return mul(self, rhs)

    def __truediv__(self, rhs: Self | T | int) -> Self:
        if not isinstance(rhs, Dual | _NUMBER):
            return NotImplemented

        return div(self, rhs)

    def __pow__(self, rhs: Self | T | int) -> Self:
        if not isinstance(rhs, Dual | _NUMBER):
            return NotImplemented

        return pow(self, rhs)

    def __mod__(self, rhs: Self | T | int) -> Self:
        if not isinstance(rhs, Dual | _NUMBER):
            return NotImplemented

        return mod(self, rhs)

    def __floordiv__(self, rhs: Self | T | int) -> Self:
        if not isinstance(rhs, Dual | _NUMBER):
            return NotImplemented

        return floordiv(self, rhs)

    def __neg__(self) -> Self:
        return neg(self)

    def __pos__(self) -> Self:
        return self

    def __abs__(self) -> Self:
        return absolute(self)

    def __radd__(self, lhs: T | int) -> Self:
        if not isinstance(lhs, _NUMBER):
            return NotImplemented

        return add(lhs, self)

    def __rsub__(self, lhs: T | int) -> Self:
        if not isinstance(lhs, _NUMBER):
            return NotImplemented

        return sub(lhs, self)

    def __rmul__(self, lhs: T | int) -> Self:
        if not isinstance(lhs, _NUMBER):
            return NotImplemented

        return mul(lhs, self)

    def __rtruediv__(self, lhs: T | int) -> Self:
        if not isinstance(lhs, _NUMBER):
            return NotImplemented

        return div(lhs, self)

    def __rpow__(self, lhs: T | int) -> Self:
        if not isinstance(lhs, _NUMBER):
            return NotImplemented

        return pow(lhs, self)

    def __rmod__(self, lhs: T | int) -> Self:
        if not isinstance(lhs, _NUMBER):
            return NotImplemented

        return mod(lhs, self)

    def __rfloordiv__(self, lhs: T | int) -> Self:
        if not isinstance(lhs, _NUMBER):
            return NotImplemented

        return floordiv(lhs, self)


class Primitive:
    """Identifier of an elementary operation.

    A primitive is looked up by identity, so two primitives never share a rule even
    if their names coincide. Calling a primitive applies the rule registered for it
    in the active registry; the result is a :class:`Dual` if any operand is one, and
    the primal value otherwise.

    Parameters
    ----------
    name : str
        Name used in error messages and generated source.
    doc : str | None, default=None
        Docstring of the primitive.
    """

    def __init__(self, name: str, doc: str | None = None):
        self.name = name
        self.__doc__ = doc

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"

    def __call__(self, *args):
        return apply(self, args)


def apply(op: Any, args: Sequence[Any], callee: Any = None) -> Any:
    """Apply the rule of `op` to `args`.

    Plain numbers among `args` are treated as constants. `callee` is the state of a
    stateful operation; its tangent is passed to the rule as ``dcallee``.

    Raises
    ------
    UnsupportedOperation
        If `op` has no rule, or `args` does not match its arity.
    NumericalInstability
        If the result is not finite.
    """
    rule = getcontext().registry.lookup(op)

    if len(args) != rule.arity:
        raise UnsupportedOperation(
            f"{rule.name!r} takes {rule.arity} operand(s), got {len(args)}"
        )

    if rule.stateful != (callee is not None):
        kind = "requires" if rule.stateful else "does not take"
        raise UnsupportedOperation(f"{rule.name!r} {kind} a state")

    if isinstance(callee, Dual):
        state, dstate = callee.value, callee.tangent
    elif callee is None:
        state, dstate = None, 0.0
    else:
        state, dstate = callee, callee * 0

    if not isinstance(callee, Dual) and not any(isinstance(x, Dual) for x in args):
        return rule(dstate, *(x * 0 for x in args), *args, state=state)[0]

    duals = [x if isinstance(x, Dual) else Dual.constant(x) for x in args]
    tangents = (x.tangent for x in duals)
    values = (x.value for x in duals)
    return Dual(*rule(dstate, *tangents, *values, state=state))


add = Primitive("add", "Sum of two numbers.")
sub = Primitive("sub", "Difference of two numbers.")
mul = Primitive("mul", "Product of two numbers.")
div = Primitive("div", "Quotient of two numbers.")
neg = Primitive("neg", "Negation of a number.")
pow = Primitive("pow", "`x` raised to the power `y`.")

# no built-in rule; reported as unsupported until one is registered
absolute = Primitive("abs", "Absolute value.")
mod = Primitive("mod", "Remainder of the division of two numbers.")
floordiv = Primitive("floordiv", "Floor of the quotient of two numbers.")


def _add_rule(_, dx, dy, x, y):
    return x + y, dx + dy


def _sub_rule(_, dx, dy, x, y):
    return x - y, dx - dy


def _mul_rule(_, dx, dy, x, y):
    return x * y, dx * y + x * dy


def _div_rule(_, dx, dy, x, y):
    value = x / y
    return value, (dx - value * dy) / y


def _neg_rule(_, dx, x):
    return -x, -dx


def _pow_rule(_, dx, dy, x, y):
    value = _math.pow(x, y)
    tangent = dx * 0 if y == 0 else y * _math.pow(x, y - 1) * dx

    if dy != 0:
        tangent = tangent + value * _math.log(x) * dy

    return value, tangent


_registry = default_registry()
_registry.register(add, 2, _add_rule)
_registry.register(sub, 2, _sub_rule)
_registry.register(mul, 2, _mul_rule)
_registry.register(div, 2, _div_rule)
_registry.register(neg, 1, _neg_rule)
_registry.register(pow, 2, _pow_rule)
