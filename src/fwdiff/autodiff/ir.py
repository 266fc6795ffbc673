"""Straight-line intermediate representation consumed by the transformer.

A function is a list of parameters followed by assignments in static single
assignment form, ending with a single return::

    x, y ->
      t1 = pow(x, 2)
      t2 = add(x, y)
      t3 = sin(t2)
      t4 = add(t1, t3)
    t4
"""

import dataclasses
from typing import Any

# Operands are variable names or numeric literals.
type Atom = str | int | float


@dataclasses.dataclass(frozen=True, slots=True)
class Assign:
    """Statement ``lhs = op(*args)``.

    Attributes
    ----------
    lhs : str
        Variable bound by the statement.
    op : Primitive
        Operation applied to `args`.
    args : tuple[str | int | float, ...]
        Operands, either bound variables or numeric literals.
    callee : str | None
        Variable holding the state of a stateful operation.
    """

    lhs: str
    op: Any
    args: tuple[Atom, ...]
    callee: str | None = None

    def __post_init__(self):
        object.__setattr__(self, "args", tuple(self.args))

    def __str__(self) -> str:
        name = getattr(self.op, "name", None) or str(self.op)
        args = ", ".join(str(x) for x in self.args)

        if self.callee is not None:
            return f"{self.lhs} = {name}[{self.callee}]({args})"

        return f"{self.lhs} = {name}({args})"


@dataclasses.dataclass(frozen=True, slots=True)
class Return:
    """Terminal statement returning `var`."""

    var: str

    def __str__(self) -> str:
        return f"return {self.var}"


@dataclasses.dataclass(frozen=True, slots=True)
class Function:
    """Function given as a statement list.

    Attributes
    ----------
    name : str
    params : tuple[str, ...]
    body : tuple
        Statements, normally :class:`Assign` instances followed by one
        :class:`Return`. Other statement kinds may appear here; they are rejected by
        :func:`~fwdiff.autodiff.transform`.
    """

    name: str
    params: tuple[str, ...]
    body: tuple[Any, ...]

    def __post_init__(self):
        object.__setattr__(self, "params", tuple(self.params))
        object.__setattr__(self, "body", tuple(self.body))

    def __str__(self) -> str:
        lines = [", ".join(self.params) + " ->"]
        lines.extend(f"  {stmt}" for stmt in self.body)
        return "\n".join(lines)
