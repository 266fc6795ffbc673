import dataclasses
import logging
import math
import threading
from collections.abc import Callable, Hashable
from typing import Any, Self

import mpmath
import mpmath.ctx_mp_python

from fwdiff.errors import (
    DuplicateRule,
    NumericalInstability,
    RegistryFrozen,
    UnsupportedOperation,
)

logger = logging.getLogger(__name__)


def isfinite(x: Any) -> bool:
    """Return ``True`` if `x` is neither infinite nor not-a-number."""
    match x:
        case mpmath.ctx_mp_python.mpnumeric():
            return bool(mpmath.isfinite(x))

        case float() | int():
            # integers beyond the range of float are not finite either
            try:
                return math.isfinite(float(x))
            except OverflowError:
                return False

        case _:
            return math.isfinite(float(x))


@dataclasses.dataclass(frozen=True, slots=True)
class Rule:
    """Differentiation rule of an operation.

    Attributes
    ----------
    name : str
        Name of the operation, used in error messages.
    arity : int
        Number of operands.
    compute : Callable
        Function mapping ``(dcallee, d1, ..., dn, v1, ..., vn)`` to ``(value,
        tangent)``. If `stateful` is ``True``, it also receives the value of the
        callee's state as the keyword argument ``state``.
    stateful : bool
        Whether the callee carries a state of its own.
    """

    name: str
    arity: int
    compute: Callable[..., tuple[Any, Any]]
    stateful: bool = False

    def __call__(self, dcallee: Any, *operands: Any, state: Any = None) -> tuple:
        """Apply the rule to ``(d1, ..., dn, v1, ..., vn)``.

        Raises
        ------
        UnsupportedOperation
            If the number of operands does not match `arity`.
        NumericalInstability
            If the resulting value or tangent is not finite.
        """
        if len(operands) != 2 * self.arity:
            raise UnsupportedOperation(
                f"{self.name!r} takes {self.arity} operand(s), "
                f"got {len(operands) // 2}"
            )

        try:
            if self.stateful:
                value, tangent = self.compute(dcallee, *operands, state=state)
            else:
                value, tangent = self.compute(dcallee, *operands)
        except (OverflowError, ZeroDivisionError) as exc:
            raise NumericalInstability(f"{self.name!r}: {exc}") from exc

        if not isfinite(value):
            raise NumericalInstability(f"{self.name!r} produced value {value!r}")

        if not isfinite(tangent):
            raise NumericalInstability(f"{self.name!r} produced tangent {tangent!r}")

        return value, tangent


class Registry:
    """Table from operation identifiers to differentiation rules.

    A registry is open for registration until it is frozen, either explicitly by
    :meth:`freeze` or implicitly by the first :meth:`lookup`. A frozen registry only
    serves reads, which makes it safe to share between threads.

    Examples
    --------
    >>> registry = Registry()
    >>> registry.register("twice", 1, lambda _, dx, x: (2 * x, 2 * dx))
    >>> registry.lookup("twice")(0.0, 1.0, 3.0)
    (6.0, 2.0)
    >>> registry.frozen
    True
    """

    __slots__ = ("_rules", "_frozen", "_lock")
    _rules: dict[Hashable, Rule]
    _frozen: bool
    _lock: threading.Lock

    def __init__(self, rules: dict[Hashable, Rule] | None = None):
        self._rules = dict(rules) if rules else {}
        self._frozen = False
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        return self._frozen

    def copy(self) -> Self:
        """Return an open registry holding the same rules."""
        return self.__class__(self._rules)

    def freeze(self) -> None:
        with self._lock:
            if not self._frozen:
                self._frozen = True
                logger.debug("registry frozen with %d rule(s)", len(self._rules))

    def register(
        self,
        op_id: Hashable,
        arity: int,
        compute: Callable[..., tuple[Any, Any]],
        *,
        stateful: bool = False,
    ) -> None:
        """Register the rule of `op_id`.

        Raises
        ------
        DuplicateRule
            If `op_id` already has a rule.
        RegistryFrozen
            If the registry no longer accepts registrations.
        """
        if arity < 0:
            raise ValueError(f"arity must be non-negative, got {arity}")

        name = getattr(op_id, "name", None) or str(op_id)

        with self._lock:
            if self._frozen:
                raise RegistryFrozen(f"cannot register {name!r}: registry is frozen")

            if op_id in self._rules:
                raise DuplicateRule(f"{name!r} is already registered")

            self._rules[op_id] = Rule(name, arity, compute, stateful)

        logger.debug("registered rule %r (arity=%d)", name, arity)

    def lookup(self, op_id: Hashable) -> Rule:
        """Return the rule of `op_id`.

        Raises
        ------
        UnsupportedOperation
            If `op_id` has no rule.
        """
        if not self._frozen:
            self.freeze()

        try:
            return self._rules[op_id]
        except KeyError:
            name = getattr(op_id, "name", None) or str(op_id)
            raise UnsupportedOperation(f"no rule registered for {name!r}") from None

    def __contains__(self, op_id: Hashable) -> bool:
        return op_id in self._rules

    def __len__(self) -> int:
        return len(self._rules)


_default = Registry()


def default_registry() -> Registry:
    """Return the process-wide registry."""
    return _default
