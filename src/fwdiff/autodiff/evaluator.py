import inspect
import types
import typing
from collections.abc import Callable, Sequence
from typing import Any, TypeVar

from fwdiff.autodiff.dual import _NUMBER, Dual, apply
from fwdiff.autodiff.registry import isfinite
from fwdiff.errors import IncompatibleFunctionSignature, NumericalInstability


class Parametric:
    """Operation carrying a state of its own.

    Calling an instance applies the stateful rule of `op` to the operands. If `state`
    is a :class:`Dual`, its tangent is passed to the rule as the tangent of the callee,
    so derivatives with respect to the state propagate like those of operands.

    Parameters
    ----------
    op : Primitive
        Operation whose rule was registered with ``stateful=True``.
    state : Any
        Number or dual number held by the callee.

    Examples
    --------
    >>> from fwdiff.autodiff import register_rule
    >>> from fwdiff.autodiff.dual import Primitive
    >>> from fwdiff.autodiff.registry import Registry
    >>> from fwdiff.context import localcontext
    >>> scale = Primitive("scale")
    >>> with localcontext(registry=Registry()):
    ...     register_rule(
    ...         scale, 1, lambda ds, dx, x, *, state: (state * x, ds * x + state * dx),
    ...         stateful=True,
    ...     )
    ...     print(Parametric(scale, Dual(3.0, 1.0))(2.0))
    Dual(value=6.0, tangent=2.0)
    """

    __slots__ = ("op", "state")

    def __init__(self, op: Any, state: Any):
        self.op = op
        self.state = state

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.op!r}, {self.state!r})"

    def __call__(self, *args):
        return apply(self.op, args, callee=self.state)


def _accepts_dual(annotation: Any) -> bool:
    if annotation is inspect.Parameter.empty or annotation is Any:
        return True

    # unresolved forward reference
    if isinstance(annotation, str):
        return True

    if isinstance(annotation, TypeVar):
        if annotation.__constraints__:
            return any(_accepts_dual(x) for x in annotation.__constraints__)

        return annotation.__bound__ is None or _accepts_dual(annotation.__bound__)

    origin = typing.get_origin(annotation)

    if origin is typing.Union or origin is types.UnionType:
        return any(_accepts_dual(x) for x in typing.get_args(annotation))

    if origin is not None:
        annotation = origin

    if not isinstance(annotation, type):
        return True

    try:
        return issubclass(Dual, annotation)
    except TypeError:
        # protocols that cannot be checked at runtime
        return True


def check_signature(fun: Callable) -> None:
    """Check that the declared types of `fun` admit dual numbers.

    Raises
    ------
    IncompatibleFunctionSignature
        If a parameter or the return value is annotated with a type excluding
        :class:`Dual`.
    """
    try:
        signature = inspect.signature(fun, eval_str=True)
    except NameError:
        signature = inspect.signature(fun)
    except ValueError:
        return

    for param in signature.parameters.values():
        if not _accepts_dual(param.annotation):
            raise IncompatibleFunctionSignature(
                f"parameter {param.name!r} of {_name(fun)} is declared as "
                f"{param.annotation!r}, which excludes dual numbers"
            )

    if not _accepts_dual(signature.return_annotation):
        raise IncompatibleFunctionSignature(
            f"return value of {_name(fun)} is declared as "
            f"{signature.return_annotation!r}, which excludes dual numbers"
        )


def _name(fun: Callable) -> str:
    return getattr(fun, "__qualname__", None) or repr(fun)


def evaluate_with_tangent(fun: Callable, dual_inputs: Sequence[Any]) -> Dual:
    """Evaluate `fun` at dual numbers.

    Every elementary operation performed by `fun` is dispatched to the registered rule.
    Plain numbers among `dual_inputs` are treated as constants.

    Parameters
    ----------
    fun : Callable
        Scalar-valued function whose parameters admit :class:`Dual`.
    dual_inputs : Sequence
        Arguments of `fun`.

    Returns
    -------
    Dual
        Value of `fun` and its derivative along the seeded direction.

    Raises
    ------
    IncompatibleFunctionSignature
        If `fun` declares types excluding :class:`Dual`.
    UnsupportedOperation
        If `fun` performs an operation without a rule.
    NumericalInstability
        If a value or a tangent becomes non-finite.

    Examples
    --------
    >>> from fwdiff import function as fwf
    >>> y = evaluate_with_tangent(lambda x, y: x**2 + fwf.sin(x + y),
    ...                           (Dual(1.0, 1.0), Dual(2.0, 0.0)))
    >>> print(format(y.value, ".5f"), format(y.tangent, ".5f"))
    1.14112 1.01001
    """
    check_signature(fun)
    args = tuple(x if isinstance(x, Dual) else Dual.constant(x) for x in dual_inputs)
    result = fun(*args)

    if isinstance(result, _NUMBER):
        result = Dual.constant(result)
    elif not isinstance(result, Dual):
        raise TypeError(
            f"{_name(fun)} returned {type(result).__name__}, expected a scalar"
        )

    if not (isfinite(result.value) and isfinite(result.tangent)):
        raise NumericalInstability(f"{_name(fun)} returned {result!r}")

    return result
