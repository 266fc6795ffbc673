from . import function
from .autodiff import (
    Dual,
    evaluate_with_tangent,
    gradient,
    register_rule,
    transform,
)
from .context import Context, getcontext, localcontext, setcontext

__all__ = [
    "function",
    "Dual",
    "evaluate_with_tangent",
    "gradient",
    "register_rule",
    "transform",
    "Context",
    "getcontext",
    "localcontext",
    "setcontext",
]
