"""
###############################
Context (:mod:`fwdiff.context`)
###############################

.. currentmodule:: fwdiff.context

This module provides the configuration shared by the evaluator, the transformer and
the gradient driver.

.. autosummary::
    :toctree: generated/

    Context
    getcontext
    localcontext
    setcontext

"""

import contextlib
import contextvars
from typing import Self

from fwdiff.autodiff.registry import Registry, default_registry


class Context:
    """Create a new context.

    Parameters
    ----------
    registry : Registry | None, default=None
        Registry consulted for differentiation rules. If `registry` is ``None``, the
        process-wide registry returned by :func:`default_registry` is used.
    max_workers : int, default=1
        Number of threads on which :func:`fwdiff.autodiff.gradient` distributes the
        seeded evaluations. If `max_workers` is 1, they run sequentially.
    """

    __slots__ = ("_registry", "_max_workers")
    _registry: Registry | None
    _max_workers: int

    def __init__(self, registry: Registry | None = None, max_workers: int = 1):
        if max_workers < 1:
            raise ValueError(f"max_workers must be positive, got {max_workers}")

        self._registry = registry
        self._max_workers = max_workers

    @property
    def registry(self) -> Registry:
        if self._registry is None:
            return default_registry()

        return self._registry

    @property
    def max_workers(self) -> int:
        return self._max_workers

    def copy(self) -> Self:
        return self.__class__(self._registry, self._max_workers)

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(registry={self._registry!r}, "
            f"max_workers={self._max_workers!r})"
        )

    def __copy__(self) -> Self:
        return self.copy()


_var: contextvars.ContextVar[Context] = contextvars.ContextVar("fwdiff")


def getcontext() -> Context:
    """Return the current context for the active thread."""
    if context := _var.get(None):
        return context

    context = Context()
    _var.set(context)
    return context


def setcontext(ctx: Context) -> None:
    """Set the current context for the active thread to `ctx`."""
    _var.set(ctx)


@contextlib.contextmanager
def localcontext(
    ctx: Context | None = None,
    *,
    registry: Registry | None = None,
    max_workers: int | None = None,
):
    """Return a context manager that will set the current context for the active thread
    to a copy of `ctx` on entry to the with-statement and restore the previous context
    when exiting the with-statement.

    Examples
    --------
    >>> from fwdiff.autodiff.registry import default_registry
    >>> with localcontext(registry=default_registry().copy()) as ctx:
    ...     ctx.registry is default_registry()
    False
    """
    if ctx is None:
        ctx = getcontext()

    if registry is None:
        registry = ctx._registry

    if max_workers is None:
        max_workers = ctx._max_workers

    ctx = Context(registry, max_workers)
    token = _var.set(ctx)

    try:
        yield ctx
    finally:
        _var.reset(token)
