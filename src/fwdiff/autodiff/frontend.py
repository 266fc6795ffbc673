import ast
import inspect
import itertools
import textwrap
from collections.abc import Callable
from typing import Any

from fwdiff.autodiff.dual import (
    Primitive,
    absolute,
    add,
    div,
    floordiv,
    mod,
    mul,
    neg,
    pow,
    sub,
)
from fwdiff.autodiff.ir import Assign, Atom, Function, Return
from fwdiff.errors import UnsupportedExpression

_BINOPS: dict[type[ast.operator], Primitive] = {
    ast.Add: add,
    ast.Sub: sub,
    ast.Mult: mul,
    ast.Div: div,
    ast.Pow: pow,
    ast.Mod: mod,
    ast.FloorDiv: floordiv,
}


class _Builder:
    __slots__ = ("_env", "_scope", "_body", "_used", "_counter")

    def __init__(self, params: list[str], scope: dict[str, Any], used: set[str]):
        self._env: dict[str, Atom] = {x: x for x in params}
        self._scope = scope
        self._body: list[Any] = []
        self._used = used
        self._counter = itertools.count(1)

    @property
    def body(self) -> list[Any]:
        return self._body

    def fresh(self, hint: str = "_t") -> str:
        while True:
            name = f"{hint}{next(self._counter)}"

            if name not in self._used:
                self._used.add(name)
                return name

    def bind(self, target: str, node: ast.expr) -> None:
        # rebinding gets a fresh name to keep single assignment
        lhs = target if target not in self._env else self.fresh(f"{target}_")
        self._env[target] = self.expr(node, lhs)

    def ret(self, node: ast.expr) -> None:
        var = self.expr(node, None)

        if not isinstance(var, str):
            raise UnsupportedExpression(f"constant return at line {node.lineno}")

        self._body.append(Return(var))

    def expr(self, node: ast.expr, lhs: str | None) -> Atom:
        """Flatten `node` into assignments and return the atom holding its value."""
        match node:
            case ast.Constant(value=bool()):
                pass

            case ast.Constant(value=int() | float() as value):
                return value

            case ast.Name(id=name) if name in self._env:
                return self._env[name]

            case ast.Name() | ast.Attribute():
                value = self.resolve(node)

                if isinstance(value, int | float) and not isinstance(value, bool):
                    return value

            case ast.UnaryOp(op=ast.UAdd(), operand=operand):
                return self.expr(operand, lhs)

            case ast.UnaryOp(op=ast.USub(), operand=operand):
                return self.emit(lhs, neg, [self.expr(operand, None)])

            case ast.BinOp(left=left, op=op, right=right) if type(op) in _BINOPS:
                args = [self.expr(left, None), self.expr(right, None)]
                return self.emit(lhs, _BINOPS[type(op)], args)

            case ast.Call(func=func, args=args, keywords=[]):
                op = self.resolve(func)

                if op is abs:
                    op = absolute

                if isinstance(op, Primitive) and not any(
                    isinstance(x, ast.Starred) for x in args
                ):
                    return self.emit(lhs, op, [self.expr(x, None) for x in args])

        raise UnsupportedExpression(
            f"unsupported expression {ast.unparse(node)!r} at line {node.lineno}"
        )

    def emit(self, lhs: str | None, op: Primitive, args: list[Atom]) -> str:
        if lhs is None:
            lhs = self.fresh()

        self._body.append(Assign(lhs, op, args))
        return lhs

    def resolve(self, node: ast.expr) -> Any:
        match node:
            case ast.Name(id=name) if name not in self._env:
                try:
                    return self._scope[name]
                except KeyError:
                    raise UnsupportedExpression(
                        f"undefined name {name!r} at line {node.lineno}"
                    ) from None

            case ast.Attribute(value=value, attr=attr):
                try:
                    return getattr(self.resolve(value), attr)
                except AttributeError as exc:
                    raise UnsupportedExpression(
                        f"{exc} at line {node.lineno}"
                    ) from exc

        raise UnsupportedExpression(
            f"unsupported expression {ast.unparse(node)!r} at line {node.lineno}"
        )


def parse(fun: Callable) -> Function:
    """Build the statement list of a Python function from its source.

    Nested arithmetic and calls of :class:`~fwdiff.autodiff.dual.Primitive` objects are
    flattened into assignments to fresh variables, and rebound names are renamed so
    that the result is in static single assignment form. Names other than parameters
    and local variables are resolved in the closure and globals of `fun`; numbers
    found there become literals.

    Parameters
    ----------
    fun : Callable
        Function whose body consists of assignments and a final return statement.

    Returns
    -------
    Function

    Raises
    ------
    UnsupportedExpression
        If the source is unavailable, or the body contains anything else, e.g. a
        conditional, a loop, or a comparison.

    Warnings
    --------
    Only positional parameters are supported.
    """
    try:
        tree = ast.parse(textwrap.dedent(inspect.getsource(fun)))
    except (OSError, TypeError, SyntaxError) as exc:
        raise UnsupportedExpression(f"source of {fun!r} is unavailable") from exc

    match tree.body:
        case [ast.FunctionDef() as node]:
            pass

        case _:
            raise UnsupportedExpression(f"{fun!r} is not defined by a def statement")

    params = node.args

    if params.vararg or params.kwarg or params.kwonlyargs or params.defaults:
        raise UnsupportedExpression(f"{node.name} must take positional parameters only")

    names = [x.arg for x in params.posonlyargs + params.args]
    closure = inspect.getclosurevars(fun)
    scope = {**closure.builtins, **closure.globals, **closure.nonlocals}
    used = {x.id for x in ast.walk(node) if isinstance(x, ast.Name)}
    builder = _Builder(names, scope, used | set(names))
    body = node.body

    # docstring
    match body:
        case [ast.Expr(value=ast.Constant(value=str())), *rest]:
            body = rest

    for i, stmt in enumerate(body):
        match stmt:
            case ast.Assign(targets=[ast.Name(id=target)], value=value):
                builder.bind(target, value)

            case ast.AnnAssign(target=ast.Name(id=target), value=ast.expr() as value):
                builder.bind(target, value)

            case ast.Return(value=ast.expr() as value) if i == len(body) - 1:
                builder.ret(value)

            case _:
                raise UnsupportedExpression(
                    f"unsupported statement {type(stmt).__name__} at line "
                    f"{stmt.lineno} of {node.name}"
                )

    if not builder.body or not isinstance(builder.body[-1], Return):
        raise UnsupportedExpression(f"{node.name} does not end with a return statement")

    return Function(node.name, names, builder.body)
