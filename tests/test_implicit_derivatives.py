"""
Tests for implicit differentiation.
"""

from sympy import Symbol

import expression_adapter as cas
from calculus_results import StepLog
from implicit_derivatives import (
    ERROR_RESULT, RULE_IMPLICIT, RULE_PRODUCT,
    _ImplicitContext, differentiate_implicit, isolate_linear,
)


def same(actual, expected):
    return cas.simplify(cas.parse(actual) - cas.parse(expected)) == 0


class TestImplicitDifferentiation:

    def test_circle(self):
        result = differentiate_implicit("x^2 + y^2 = 25")
        assert same(result.result, "-x/y")
        assert result.isolated
        assert RULE_IMPLICIT in result.rules
        assert result.steps[-1].final
        assert result.steps[-1].content.startswith("dy/dx = ")

    def test_product_of_x_and_y(self):
        result = differentiate_implicit("x*y = 1")
        assert same(result.result, "-y/x")
        assert RULE_PRODUCT in result.rules

    def test_product_written_without_operator(self):
        result = differentiate_implicit("xy = 1")
        assert same(result.result, "-y/x")
        assert result.isolated
        assert RULE_PRODUCT in result.rules
        assert result.steps[-1].final

    def test_power_of_y(self):
        result = differentiate_implicit("y^3 + x = 0")
        assert same(result.result, "-1/(3*y^2)")

    def test_function_of_y(self):
        result = differentiate_implicit("sin(y) = x")
        assert same(result.result, "1/cos(y)")

    def test_missing_equals_means_zero(self):
        result = differentiate_implicit("x^2 + y^2 - 25")
        assert same(result.result, "-x/y")

    def test_multiple_equals_signs_are_rejected(self):
        result = differentiate_implicit("x = y = 1")
        assert result.result == ERROR_RESULT
        assert result.steps[-1].error
        assert not result.isolated

    def test_not_isolable(self):
        result = differentiate_implicit("x^2 = 4")
        assert not result.isolated
        assert result.result.endswith("= 0")
        assert result.steps[-1].final


class TestManualIsolation:

    def test_isolate_linear(self):
        ctx = _ImplicitContext('x', 'y')
        x, y = Symbol('x'), Symbol('y')
        log = StepLog()
        solution = isolate_linear(2 * x + 2 * y * ctx.prime, ctx, log)
        assert cas.simplify(solution + x / y) == 0
        assert len(log) == 1

    def test_isolate_without_placeholder(self):
        ctx = _ImplicitContext('x', 'y')
        log = StepLog()
        assert isolate_linear(2 * Symbol('x'), ctx, log) is None
        assert log.freeze()[0].title == "Cannot isolate y'"
