import ast
import math

import pytest

from fwdiff import function as fwf
from fwdiff import localcontext
from fwdiff.autodiff import (
    Assign,
    Dual,
    Function,
    Primitive,
    Return,
    default_registry,
    evaluate_with_tangent,
    parse,
    register_rule,
    source_transform,
    transform,
)
from fwdiff.autodiff.dual import absolute, add, mod, mul, pow
from fwdiff.errors import NumericalInstability, UnsupportedExpression

cube = Primitive("cube")
scale = Primitive("scale")

SCENARIO = Function(
    "f",
    ("x", "y"),
    (
        Assign("a", pow, ("x", 2)),
        Assign("b", add, ("x", "y")),
        Assign("c", fwf.sin, ("b",)),
        Assign("z", add, ("a", "c")),
        Return("z"),
    ),
)


def uses_cube(x):
    return cube(x) + x


def plus_inf(x):
    return x + math.inf


def remainder(x):
    return abs(x) % 2.0


def rebinding(x, y):
    """Docstrings are skipped."""
    z = x * y
    z = z + 1
    w: float = -z
    return +w * math.pi


def branching(x):
    if x:
        return x

    return -x


def looping(x):
    for _ in range(3):
        x = x * 2

    return x


def comparing(x):
    return x < 1


def calling_math(x):
    return math.sin(x)


def constant(x):
    return 1.0


def keywords(x, *, y):
    return x + y


def test_transform():
    f = transform(SCENARIO)
    assert f.params == ("x", "y")
    assert f.tangent_params == ("dx", "dy")
    assert "return z, dz" in f.source

    value, tangent = f(1.0, 2.0, 1.0, 0.0)
    assert pytest.approx(value, abs=1e-6) == 1 + math.sin(3)
    assert pytest.approx(tangent, abs=1e-6) == 2 + math.cos(3)

    value, tangent = f.jvp((1.0, 2.0), (0.0, 1.0))
    assert pytest.approx(tangent, abs=1e-6) == math.cos(3)


def test_transformed_is_independent():
    body = list(SCENARIO.body)
    f = transform(Function("f", SCENARIO.params, body))
    body.clear()
    assert f(1.0, 2.0, 0.0, 0.0)[1] == 0


def test_agreement_with_evaluator():
    f = transform(SCENARIO)

    def g(x, y):
        return x**2 + fwf.sin(x + y)

    for point, seed in [((1.0, 2.0), (1.0, 0.0)), ((-0.4, 0.9), (0.3, 2.0))]:
        y = evaluate_with_tangent(g, [Dual(x, s) for x, s in zip(point, seed)])
        assert f(*point, *seed) == pytest.approx((y.value, y.tangent), abs=1e-9)


def test_tangent_names():
    fun = Function(
        "f", ("x", "dx"), (Assign("y", mul, ("x", "dx")), Return("y"))
    )
    f = transform(fun)
    assert f.tangent_params == ("ddx", "dddx")
    assert f(2.0, 3.0, 1.0, 0.0) == (6.0, 3.0)


def test_return_parameter():
    f = transform(Function("identity", ("x",), (Return("x"),)))
    assert f(2.0, 1.0) == (2.0, 1.0)

    with pytest.raises(NumericalInstability):
        f(math.inf, 1.0)


def test_stateful():
    fun = Function(
        "f", ("k", "x"), (Assign("y", scale, ("x",), callee="k"), Return("y"))
    )

    with localcontext(registry=default_registry().copy()):
        register_rule(
            scale,
            1,
            lambda dk, dx, x, *, state: (state * x, dk * x + state * dx),
            stateful=True,
        )
        f = transform(fun)
        assert f(3.0, 2.0, 1.0, 0.0) == (6.0, 2.0)
        assert f(3.0, 2.0, 0.0, 1.0) == (6.0, 3.0)

        with pytest.raises(UnsupportedExpression, match="requires a state"):
            transform(Function("g", ("x",), (Assign("y", scale, ("x",)), Return("y"))))


@pytest.mark.parametrize(
    "body",
    [
        (ast.parse("if x: pass").body[0], Return("x")),
        (Return("x"), Assign("y", add, ("x", 1)), Return("y")),
        (Assign("y", add, ("x", "w")), Return("y")),
        (Assign("x", add, ("x", 1)), Return("x")),
        (Assign("y", add, ("x",)), Return("y")),
        (Assign("y", add, ("x", True)), Return("y")),
        (Assign("y z", add, ("x", 1)), Return("y z")),
        (Assign("__y", add, ("x", 1)), Return("__y")),
        (Assign("y", add, ("x", 1)),),
        (Assign("y", add, ("x", 1)), Return(1.0)),
        (),
    ],
)
def test_unsupported(body):
    with pytest.raises(UnsupportedExpression):
        transform(Function("f", ("x",), body))


def test_extension():
    with localcontext(registry=default_registry().copy()):
        with pytest.raises(UnsupportedExpression, match="cube"):
            source_transform(uses_cube)

    with localcontext(registry=default_registry().copy()):
        register_rule(cube, 1, lambda _, dx, x: (x**3, 3 * x**2 * dx))
        f = source_transform(uses_cube)
        assert f(2.0, 1.0) == (10.0, 13.0)


def test_parse():
    fun = parse(rebinding)
    assert fun.name == "rebinding"
    assert fun.params == ("x", "y")
    lhs = [x.lhs for x in fun.body if isinstance(x, Assign)]
    assert len(lhs) == len(set(lhs))
    assert isinstance(fun.body[-1], Return)

    f = transform(fun)
    x, y = 0.5, 2.0
    expected = -(x * y + 1) * math.pi
    value, tangent = f(x, y, 1.0, 0.0)
    assert pytest.approx(value) == expected
    assert pytest.approx(tangent) == -y * math.pi

    result = evaluate_with_tangent(rebinding, (Dual(x, 1.0), Dual(y, 0.0)))
    assert pytest.approx(result.value) == value
    assert pytest.approx(result.tangent) == tangent


@pytest.mark.parametrize(
    "fun",
    [branching, looping, comparing, calling_math, constant, keywords, lambda x: x],
)
def test_parse_unsupported(fun):
    with pytest.raises(UnsupportedExpression):
        parse(fun)


def test_nonfinite_literal():
    f = source_transform(plus_inf)

    with pytest.raises(NumericalInstability):
        f(1.0, 1.0)

    g = transform(Function("g", ("x",), (Assign("y", mul, ("x", 1e300)), Return("y"))))
    assert g(2.0, 1.0) == (2e300, 1e300)


def test_operators_without_rules():
    with localcontext(registry=default_registry().copy()):
        with pytest.raises(UnsupportedExpression, match="abs"):
            source_transform(remainder)

    with localcontext(registry=default_registry().copy()):
        register_rule(absolute, 1, lambda _, dx, x: (abs(x), dx if x >= 0 else -dx))
        register_rule(mod, 2, lambda _, dx, dy, x, y: (x % y, dx - (x // y) * dy))
        f = source_transform(remainder)
        assert f(-3.5, 1.0) == (1.5, -1.0)
