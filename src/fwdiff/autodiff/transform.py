import keyword
import logging
from collections.abc import Callable, Sequence
from typing import Any

from fwdiff.autodiff.frontend import parse
from fwdiff.autodiff.ir import Assign, Function, Return
from fwdiff.autodiff.registry import isfinite
from fwdiff.context import getcontext
from fwdiff.errors import (
    NumericalInstability,
    UnsupportedExpression,
    UnsupportedOperation,
)

logger = logging.getLogger(__name__)


class TransformedFunction:
    """Function threading tangents alongside values.

    Instances are produced by :func:`transform`. The rules were looked up when the
    instance was created, so calling it performs no dispatch.

    Attributes
    ----------
    name : str
        Name of the source function.
    params : tuple[str, ...]
        Parameters of the source function.
    tangent_params : tuple[str, ...]
        Tangent parameters paired with `params`.
    source : str
        Generated Python source.
    """

    __slots__ = ("name", "params", "tangent_params", "source", "_fun")

    def __init__(
        self,
        name: str,
        params: tuple[str, ...],
        tangent_params: tuple[str, ...],
        source: str,
        fun: Callable[..., tuple[Any, Any]],
    ):
        self.name = name
        self.params = params
        self.tangent_params = tangent_params
        self.source = source
        self._fun = fun

    def __repr__(self) -> str:
        args = ", ".join(self.params + self.tangent_params)
        return f"<{type(self).__name__} {self.name}({args})>"

    def __call__(self, *args: Any) -> tuple[Any, Any]:
        """Evaluate the function at values followed by their tangents.

        Returns
        -------
        tuple
            Value of the source function and its tangent.

        Raises
        ------
        NumericalInstability
            If a value or a tangent becomes non-finite.
        """
        if len(args) != 2 * len(self.params):
            raise TypeError(
                f"{self.name} takes {2 * len(self.params)} arguments "
                f"(values, then tangents), got {len(args)}"
            )

        value, tangent = self._fun(*args)

        if not (isfinite(value) and isfinite(tangent)):
            raise NumericalInstability(f"{self.name} returned ({value!r}, {tangent!r})")

        return value, tangent

    def jvp(self, point: Sequence[Any], seed: Sequence[Any]) -> tuple[Any, Any]:
        """Return the value at `point` and the derivative along `seed`."""
        if len(point) != len(seed):
            raise ValueError("point and seed must have the same length")

        return self(*point, *seed)


def _check_name(name: Any) -> None:
    if (
        not isinstance(name, str)
        or not name.isidentifier()
        or keyword.iskeyword(name)
        or name.startswith("__")
    ):
        raise UnsupportedExpression(f"invalid variable name {name!r}")


def _tangent_prefix(names: set[str]) -> str:
    prefix = "d"

    while any(prefix + x in names for x in names):
        prefix = "d" + prefix

    return prefix


def transform(fun: Function) -> TransformedFunction:
    """Rewrite a statement list into a function threading tangents.

    Each parameter ``v`` gains a tangent parameter ``dv``, each
    ``lhs = op(*args)`` becomes an assignment of both ``lhs`` and ``dlhs`` through
    the rule of ``op``, and the terminal ``return var`` returns ``(var, dvar)``.

    Parameters
    ----------
    fun : Function
        Straight-line function in static single assignment form.

    Returns
    -------
    TransformedFunction

    Raises
    ------
    UnsupportedExpression
        If a statement cannot be rewritten: an operation without a rule, a statement
        other than an assignment or the terminal return, an unbound or rebound
        variable, or an operand count that does not match the rule.

    Examples
    --------
    >>> from fwdiff import function as fwf
    >>> from fwdiff.autodiff.dual import add, pow
    >>> ir = Function("f", ("x", "y"), (
    ...     Assign("a", pow, ("x", 2)),
    ...     Assign("b", add, ("x", "y")),
    ...     Assign("c", fwf.sin, ("b",)),
    ...     Assign("z", add, ("a", "c")),
    ...     Return("z"),
    ... ))
    >>> f = transform(ir)
    >>> value, tangent = f(1.0, 2.0, 0.0, 1.0)
    >>> print(format(value, ".5f"), format(tangent, ".5f"))
    1.14112 -0.98999
    """
    if not isinstance(fun, Function):
        raise TypeError(f"expected Function, got {type(fun).__name__}")

    registry = getcontext().registry
    name = fun.name

    if not name.isidentifier() or keyword.iskeyword(name) or name.startswith("__"):
        name = "f"

    for param in fun.params:
        _check_name(param)

    if len(set(fun.params)) != len(fun.params):
        raise UnsupportedExpression(f"duplicate parameters in {fun.params!r}")

    if not fun.body or not isinstance(fun.body[-1], Return):
        raise UnsupportedExpression(f"{fun.name} does not end with a return statement")

    names = set(fun.params)

    for stmt in fun.body:
        if isinstance(stmt, Assign) and isinstance(stmt.lhs, str):
            names.add(stmt.lhs)

    prefix = _tangent_prefix(names)
    tangent_params = tuple(prefix + x for x in fun.params)
    bound = set(fun.params)
    namespace: dict[str, Any] = {}
    lines = [f"def {name}({', '.join(fun.params + tangent_params)}):"]

    def operand(atom: Any, stmt: Any) -> tuple[str, str]:
        if isinstance(atom, str):
            if atom not in bound:
                raise UnsupportedExpression(f"unbound variable {atom!r} in '{stmt}'")

            return atom, prefix + atom

        if isinstance(atom, int | float) and not isinstance(atom, bool):
            # bound by name since repr of inf and nan is not valid source
            const = f"__const{len(namespace)}"
            namespace[const] = atom
            return const, "0" if isinstance(atom, int) else "0.0"

        raise UnsupportedExpression(f"invalid operand {atom!r} in '{stmt}'")

    for i, stmt in enumerate(fun.body):
        match stmt:
            case Return(var=var):
                if i != len(fun.body) - 1:
                    raise UnsupportedExpression(
                        f"'{stmt}' is not the terminal statement of {fun.name}"
                    )

                if not isinstance(var, str):
                    raise UnsupportedExpression(f"'{stmt}' does not return a variable")

                value, tangent = operand(var, stmt)
                lines.append(f"    return {value}, {tangent}")

            case Assign(lhs=lhs, op=op, args=args, callee=callee):
                _check_name(lhs)

                if lhs in bound:
                    raise UnsupportedExpression(f"'{stmt}' rebinds {lhs!r}")

                try:
                    rule = registry.lookup(op)
                except UnsupportedOperation as exc:
                    raise UnsupportedExpression(f"{exc} in '{stmt}'") from exc

                if len(args) != rule.arity:
                    raise UnsupportedExpression(
                        f"{rule.name!r} takes {rule.arity} operand(s) in '{stmt}'"
                    )

                if rule.stateful != (callee is not None):
                    kind = "requires" if rule.stateful else "does not take"
                    raise UnsupportedExpression(
                        f"{rule.name!r} {kind} a state in '{stmt}'"
                    )

                pairs = [operand(x, stmt) for x in args]
                values = [x for x, _ in pairs]
                tangents = [x for _, x in pairs]

                if callee is None:
                    dcallee = "0.0"
                else:
                    state, dcallee = operand(callee, stmt)
                    values.append(f"state={state}")

                rulename = f"__rule{i}"
                namespace[rulename] = rule
                call = ", ".join([dcallee, *tangents, *values])
                lines.append(f"    {lhs}, {prefix}{lhs} = {rulename}({call})")
                bound.add(lhs)

            case _:
                raise UnsupportedExpression(f"cannot transform statement {stmt!r}")

    source = "\n".join(lines) + "\n"
    logger.debug("transformed %s:\n%s", fun.name, source)
    code = compile(source, f"<fwdiff.transform:{fun.name}>", "exec")
    exec(code, namespace)
    return TransformedFunction(
        fun.name, fun.params, tangent_params, source, namespace[name]
    )


def source_transform(fun: Callable) -> TransformedFunction:
    """Transform a Python function given by its source.

    This is a shorthand for ``transform(parse(fun))``.
    """
    return transform(parse(fun))
