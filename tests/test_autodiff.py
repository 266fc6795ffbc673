import math

import pytest

from fwdiff import function as fwf
from fwdiff import localcontext
from fwdiff.autodiff import (
    Dual,
    Primitive,
    autodiff,
    evaluate_with_tangent,
    source_transform,
)
from fwdiff.autodiff.dual import div, pow
from fwdiff.autodiff.registry import default_registry
from fwdiff.errors import NumericalInstability


def scenario(x, y):
    return x**2 + fwf.sin(x + y)


def mixed(x, y):
    a = x * y
    b = fwf.exp(a / 3.0)
    return fwf.log(b + x**2) - fwf.cos(y) / fwf.sqrt(x + 4)


def exponential_logdensity(y):
    lam = 2.5
    x = fwf.exp(y)
    logp = fwf.log(lam) - lam * x
    logabsdetjac = y
    return logp + logabsdetjac


def normal_logpdf(x, mu, sigma):
    z = (x - mu) / sigma
    return -0.5 * z**2 - fwf.log(sigma) - 0.5 * fwf.log(2 * math.pi)


def overflowing(x):
    return fwf.exp(x) * x


def power400(x):
    return x**400


def test_scenario_evaluator():
    y = evaluate_with_tangent(scenario, (Dual(1.0, 1.0), Dual(2.0, 0.0)))
    assert pytest.approx(y.value, abs=1e-6) == 1.14112
    assert pytest.approx(y.tangent, abs=1e-6) == 2 + math.cos(3)

    y = evaluate_with_tangent(scenario, (Dual(1.0, 0.0), Dual(2.0, 1.0)))
    assert pytest.approx(y.tangent, abs=1e-6) == math.cos(3)


def test_scenario_transform():
    f = source_transform(scenario)
    assert pytest.approx(f(1.0, 2.0, 1.0, 0.0), abs=1e-6) == (
        1 + math.sin(3),
        2 + math.cos(3),
    )
    assert pytest.approx(autodiff.gradient(f, (1.0, 2.0)), abs=1e-6) == (
        1.0100075,
        -0.9899925,
    )


def test_agreement():
    f = source_transform(mixed)

    for point in [(1.0, 2.0), (0.3, -1.7), (2.5, 0.4)]:
        for seed in [(1.0, 0.0), (0.0, 1.0), (0.5, -2.0)]:
            y = evaluate_with_tangent(mixed, [Dual(x, s) for x, s in zip(point, seed)])
            value, tangent = f(*point, *seed)
            assert pytest.approx(y.value, abs=1e-9) == value
            assert pytest.approx(y.tangent, abs=1e-9) == tangent


def test_gradient():
    expected = (2 + math.cos(3), math.cos(3))
    assert pytest.approx(autodiff.gradient(scenario, (1.0, 2.0))) == expected
    assert pytest.approx(autodiff.grad(scenario)(1.0, 2.0)) == expected


def test_gradient_parallel():
    def f(a, b, c, d, e):
        return a * b + fwf.sin(c) * d**3 - e / a

    point = (1.5, -0.5, 0.25, 2.0, 3.0)
    expected = autodiff.gradient(f, point)

    with localcontext(max_workers=4):
        assert autodiff.gradient(f, point) == expected
        assert autodiff.gradient(source_transform(mixed), (1.0, 2.0)) == pytest.approx(
            autodiff.gradient(mixed, (1.0, 2.0)), abs=1e-9
        )

        with pytest.raises(NumericalInstability):
            autodiff.gradient(lambda x, y: fwf.exp(x * y), (1000.0, 1000.0))


def test_deriv():
    df = autodiff.deriv(lambda x: (x + fwf.sin(x**2)) / x)
    assert pytest.approx(df(1.4), 1e-5) == -1.23095


def test_jvp():
    value, tangent = autodiff.jvp(scenario, (1.0, 2.0), (1.0, 1.0))
    assert pytest.approx(value) == 1 + math.sin(3)
    assert pytest.approx(tangent) == 2 + 2 * math.cos(3)

    value, tangent = autodiff.jvp(scenario, (1.0, 2.0), (0.0, 0.0))
    assert tangent == 0

    with pytest.raises(ValueError):
        autodiff.jvp(scenario, (1.0, 2.0), (1.0,))


def test_logdensity_with_jacobian():
    for y in [-1.0, 0.0, 0.7]:
        expected = -2.5 * math.exp(y) + 1
        assert pytest.approx(autodiff.deriv(exponential_logdensity)(y)) == expected

        f = source_transform(exponential_logdensity)
        assert pytest.approx(autodiff.gradient(f, (y,))[0]) == expected

    x, mu, sigma = 1.3, 0.4, 2.0
    expected = (
        -(x - mu) / sigma**2,
        (x - mu) / sigma**2,
        (x - mu) ** 2 / sigma**3 - 1 / sigma,
    )
    assert pytest.approx(autodiff.gradient(normal_logpdf, (x, mu, sigma))) == expected

    f = source_transform(normal_logpdf)
    assert pytest.approx(autodiff.gradient(f, (x, mu, sigma))) == expected


def test_instability():
    with pytest.raises(NumericalInstability):
        autodiff.gradient(overflowing, (1000.0,))

    with pytest.raises(NumericalInstability):
        autodiff.gradient(source_transform(overflowing), (1000.0,))

    with pytest.raises(NumericalInstability):
        autodiff.gradient(lambda x, y: x + y, (1.7e308, 1.7e308))

    with pytest.raises(NumericalInstability):
        autodiff.deriv(fwf.log)(-1.0)


def test_integer_overflow():
    with pytest.raises(NumericalInstability):
        autodiff.gradient(power400, (10,))

    with pytest.raises(NumericalInstability):
        autodiff.gradient(source_transform(power400), (10,))

    assert autodiff.gradient(power400, (1,)) == (400,)


def test_check_rule():
    autodiff.check_rule(fwf.sin, 0.7)
    autodiff.check_rule(fwf.exp, -1.2)
    autodiff.check_rule(pow, 1.5, 3)
    autodiff.check_rule(pow, 1.5, 0.5)
    autodiff.check_rule(div, 2.0, 3.0)

    square = Primitive("square")

    with localcontext(registry=default_registry().copy()):
        autodiff.register_rule(square, 1, lambda _, dx, x: (x * x, x * dx))

        with pytest.raises(AssertionError, match="square"):
            autodiff.check_rule(square, 1.5)
