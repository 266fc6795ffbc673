import contextvars
import functools
from collections.abc import Callable, Hashable, Sequence
from concurrent import futures
from typing import Any

import mpmath

from fwdiff.autodiff.dual import Dual
from fwdiff.autodiff.evaluator import evaluate_with_tangent
from fwdiff.autodiff.transform import TransformedFunction
from fwdiff.context import getcontext
from fwdiff.errors import UnsupportedOperation


def register_rule(
    op_id: Hashable,
    arity: int,
    compute: Callable[..., tuple[Any, Any]],
    *,
    stateful: bool = False,
) -> None:
    """Register a differentiation rule in the active registry.

    Once registered, the operation is supported by both :func:`evaluate_with_tangent`
    and :func:`transform` without any further change.

    Parameters
    ----------
    op_id : Hashable
        Operation identifier, usually a :class:`Primitive`.
    arity : int
        Number of operands.
    compute : Callable
        Function mapping ``(dcallee, d1, ..., dn, v1, ..., vn)`` to ``(value,
        tangent)``. It must be pure.
    stateful : bool, default=False
        If ``True``, `compute` also receives the state of the callee as the keyword
        argument ``state`` (cf. :class:`Parametric`).

    Raises
    ------
    DuplicateRule
        If `op_id` is already registered.
    RegistryFrozen
        If the active registry has already served a lookup.

    Examples
    --------
    >>> from fwdiff.autodiff.dual import Primitive
    >>> from fwdiff.autodiff.registry import Registry
    >>> from fwdiff.context import localcontext
    >>> cube = Primitive("cube")
    >>> with localcontext(registry=Registry()):
    ...     register_rule(cube, 1, lambda _, dx, x: (x**3, 3 * x**2 * dx))
    ...     print(cube(Dual(2.0, 1.0)))
    Dual(value=8.0, tangent=12.0)
    """
    getcontext().registry.register(op_id, arity, compute, stateful=stateful)


def jvp(
    fun: Callable | TransformedFunction, point: Sequence[Any], seed: Sequence[Any]
) -> tuple[Any, Any]:
    """Return the value of `fun` at `point` and its derivative along `seed`.

    `fun` is either a function evaluated at dual numbers, or a
    :class:`TransformedFunction`.
    """
    if len(point) != len(seed):
        raise ValueError("point and seed must have the same length")

    if isinstance(fun, TransformedFunction):
        return fun.jvp(point, seed)

    result = evaluate_with_tangent(fun, [Dual(x, s) for x, s in zip(point, seed)])
    return result.value, result.tangent


def gradient(
    fun: Callable | TransformedFunction, point: Sequence[Any]
) -> tuple[Any, ...]:
    """Return the gradient of the scalar-valued function `fun` at `point`.

    The partial derivatives are obtained by one evaluation per input, seeding the
    tangent of that input with one and the others with zero. If the active context
    has ``max_workers > 1``, the evaluations run concurrently; the result is ordered
    as `point` in either case.

    Parameters
    ----------
    fun : Callable | TransformedFunction
        Function evaluated at dual numbers, or the output of :func:`transform`.
    point : Sequence
        Point at which the gradient is evaluated.

    Returns
    -------
    tuple
        Partial derivatives of `fun`.

    Warnings
    --------
    `fun` must not contain conditional branches.

    Examples
    --------
    >>> from fwdiff import function as fwf
    >>> c = gradient(lambda x, y: x**2 + fwf.sin(x + y), (1.0, 2.0))
    >>> print(format(c[0], ".6f"), format(c[1], ".6f"))
    1.010008 -0.989992
    """
    point = tuple(point)

    def partial(argnum: int) -> Any:
        seed = [x.tangent for x in Dual.seed(point, argnum)]
        return jvp(fun, point, seed)[1]

    max_workers = min(getcontext().max_workers, len(point))

    if max_workers <= 1:
        return tuple(partial(i) for i in range(len(point)))

    with futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
        jobs = [
            executor.submit(contextvars.copy_context().run, partial, i)
            for i in range(len(point))
        ]
        return tuple(job.result() for job in jobs)


def deriv[T](fun: Callable[[T], Any]) -> Callable[[T], T]:
    """Return a function that evaluates the derivative of the univariate scalar-valued
    function.

    Examples
    --------
    >>> from fwdiff import function as fwf
    >>> df = deriv(lambda x: x**2 + fwf.sqrt(x + 3))
    >>> print(format(df(1.2), ".6g"))
    2.64398
    """

    @functools.wraps(fun)
    def result(x):
        return jvp(fun, (x,), (x * 0 + 1,))[1]

    return result


def grad(fun: Callable) -> Callable[..., tuple[Any, ...]]:
    """Return a function that evaluates the gradient of the multivariate scalar-valued
    function.

    Examples
    --------
    >>> from fwdiff import function as fwf
    >>> df = grad(lambda x, y: fwf.sqrt(x * y + 3))
    >>> c = df(0.5, 1.0)
    >>> print(format(c[0], ".6g"), format(c[1], ".6g"))
    0.267261 0.133631
    """

    @functools.wraps(fun)
    def result(*args):
        return gradient(fun, args)

    return result


def check_rule(op_id: Hashable, *values: Any, tol: float = 1e-6) -> None:
    """Check the rule of `op_id` against numerical differentiation.

    For each operand, the tangent computed by the rule with a one-hot seed is compared
    with a central difference computed by :func:`mpmath.diff`.

    Raises
    ------
    AssertionError
        If the relative error exceeds `tol` for some operand.
    UnsupportedOperation
        If `op_id` has no rule, or `values` does not match its arity.
    ValueError
        If the rule is stateful.
    """
    rule = getcontext().registry.lookup(op_id)

    if rule.stateful:
        raise ValueError(f"cannot check stateful rule {rule.name!r}")

    if len(values) != rule.arity:
        raise UnsupportedOperation(
            f"{rule.name!r} takes {rule.arity} operand(s), got {len(values)}"
        )

    zeros = tuple(x * 0 for x in values)

    for argnum, x in enumerate(values):

        def primal(t, argnum=argnum):
            args = values[:argnum] + (t,) + values[argnum + 1 :]
            return rule(0.0, *zeros, *args)[0]

        seed = [x.tangent for x in Dual.seed(values, argnum)]
        _, tangent = rule(0.0, *seed, *values)
        expected = mpmath.diff(primal, mpmath.mpf(x), h=mpmath.mpf("1e-6"))

        if abs(tangent - expected) > tol * max(1, abs(expected)):
            raise AssertionError(
                f"rule {rule.name!r} gives tangent {tangent!r} for operand {argnum}, "
                f"but numerical differentiation gives {float(expected)!r}"
            )
