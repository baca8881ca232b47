"""
Tests for rule-based differentiation and its step trace.
"""

import pytest

import expression_adapter as cas
from derivatives import (
    RULE_CHAIN, RULE_CONSTANT, RULE_CONSTANT_MULTIPLE, RULE_EXPONENTIAL, RULE_GENERIC,
    RULE_LOGARITHMIC, RULE_POWER, RULE_PRODUCT, RULE_QUOTIENT, RULE_SUM,
    calculate_derivative, differentiate, prime_notation,
)
from result_cache import ResultCache


def same(actual, expected):
    return cas.simplify(cas.parse(actual) - cas.parse(expected)) == 0


def assert_well_formed(result):
    """Non-empty steps ending in exactly one of final / error."""
    assert result.steps
    last = result.steps[-1]
    assert last.final != last.error
    assert not any(step.final or step.error for step in result.steps[:-1])


class TestBasicRules:

    def test_polynomial_sum(self):
        result = differentiate("x^3 + 2*x^2 + x")
        assert same(result.result, "3*x^2 + 4*x + 1")
        assert RULE_SUM in result.rules
        assert result.steps[-1].final
        assert_well_formed(result)

    def test_product_rule(self):
        result = differentiate("x^2 * sin(x)")
        assert same(result.result, "2*x*sin(x) + x^2*cos(x)")
        assert RULE_PRODUCT in result.rules

    def test_product_with_constant_factor(self):
        result = differentiate("(3*x^2) * (2*x + 1)")
        assert same(result.result, "18*x^2 + 6*x")
        assert {RULE_PRODUCT, RULE_CONSTANT_MULTIPLE} <= result.rules

    def test_quotient_rule(self):
        result = differentiate("(x + 1)/(x - 1)")
        assert same(result.result, "-2/(x - 1)^2")
        assert RULE_QUOTIENT in result.rules

    def test_quotient_by_constant(self):
        result = differentiate("x^2/4")
        assert same(result.result, "x/2")
        assert RULE_QUOTIENT not in result.rules

    def test_chain_rule(self):
        result = differentiate("sin(x^2)")
        assert same(result.result, "2*x*cos(x^2)")
        assert RULE_CHAIN in result.rules

    def test_power_rule(self):
        result = differentiate("x^5")
        assert same(result.result, "5*x^4")
        assert RULE_POWER in result.rules

    def test_power_of_inner_function(self):
        result = differentiate("(2*x + 1)^3")
        assert same(result.result, "6*(2*x + 1)^2")
        assert {RULE_POWER, RULE_CHAIN} <= result.rules

    def test_exponential_rule(self):
        result = differentiate("2^x")
        assert same(result.result, "2^x*ln(2)")
        assert RULE_EXPONENTIAL in result.rules

    def test_variable_base_and_exponent(self):
        result = differentiate("x^x")
        assert same(result.result, "x^x*(ln(x) + 1)")
        assert RULE_LOGARITHMIC in result.rules

    def test_constant(self):
        result = differentiate("5")
        assert result.result == "0"
        assert RULE_CONSTANT in result.rules

    def test_leading_minus(self):
        result = differentiate("-x^2")
        assert same(result.result, "-2*x")
        assert RULE_CONSTANT_MULTIPLE in result.rules

    def test_function_prefix(self):
        result = differentiate("f(x) = x^2")
        assert same(result.result, "2*x")

    def test_other_variable(self):
        result = differentiate("t^2 + x", variable='t')
        assert same(result.result, "2*t")


class TestFallback:

    def test_three_variable_factors_use_direct_differentiation(self):
        result = differentiate("x*sin(x)*exp(x)")
        assert RULE_GENERIC in result.rules
        assert same(result.result, "sin(x)*exp(x) + x*cos(x)*exp(x) + x*sin(x)*exp(x)")
        assert any(step.title == "Direct differentiation" for step in result.steps)

    def test_invalid_expression_gives_error_step(self):
        result = differentiate("2*(x")
        assert result.result is None
        assert result.steps[-1].error
        assert not result.ok
        assert_well_formed(result)

    @pytest.mark.parametrize("order", [0, -1, 1.5, True])
    def test_invalid_order(self, order):
        result = differentiate("x^2", order=order)
        assert result.result is None
        assert result.steps[-1].error


class TestHigherOrder:

    def test_third_derivative(self):
        result = differentiate("x^4", order=3)
        assert same(result.result, "24*x")
        titles = [step.title for step in result.steps]
        assert "Derivative of order 1" in titles
        assert "Derivative of order 2" in titles
        assert "Derivative of order 3" in titles
        assert_well_formed(result)

    def test_higher_order_matches_repeated_first_order(self):
        second = differentiate("sin(x)*x^3", order=2).result
        first = differentiate("sin(x)*x^3").result
        assert same(second, differentiate(first).result)

    def test_prime_notation(self):
        assert prime_notation(1, 'x') == "f'(x)"
        assert prime_notation(3, 'x') == "f'''(x)"
        assert prime_notation(4, 'x') == "f⁽⁴⁾(x)"


class TestNumericAgreement:
    """Polynomial derivatives agree with central differences."""

    @pytest.mark.parametrize("text", ["3*x^4 - 2*x^3 + x - 7", "x^3 + 2*x^2 + x", "(x + 2)^3"])
    def test_central_difference(self, text):
        derivative = differentiate(text).result
        h = 1e-5
        for point in (-2.0, -0.5, 0.0, 1.0, 3.0):
            numeric = (cas.evaluate(text, {'x': point + h}) - cas.evaluate(text, {'x': point - h})) / (2 * h)
            exact = cas.evaluate(derivative, {'x': point})
            assert exact == pytest.approx(numeric, rel=1e-5, abs=1e-4)


class TestCalculateDerivative:

    def test_results_are_cached(self):
        cache = ResultCache(8)
        first = calculate_derivative("x^2", cache=cache)
        second = calculate_derivative("x^2", cache=cache)
        assert first is second
        assert cache.hits == 1
        assert len(cache) == 1

    def test_failures_are_not_cached(self):
        cache = ResultCache(8)
        calculate_derivative("2*(x", cache=cache)
        assert len(cache) == 0

    def test_dispatches_to_implicit(self):
        result = calculate_derivative("x^2 + y^2 = 25", implicit=True)
        assert result.implicit
        assert same(result.result, "-x/y")

    def test_to_dict(self):
        data = calculate_derivative("x^2").to_dict()
        assert data['rules'] == sorted(data['rules'])
        assert data['steps'][-1]['final'] is True
        assert data['order'] == 1
        assert data['display'] == '2x'


class TestImplicitMultiplicationInput:
    """Adjacent letters and a function name glued to a factor multiply."""

    def test_adjacent_symbols(self):
        result = differentiate("2xy")
        assert same(result.result, "2*y")
        assert RULE_CONSTANT_MULTIPLE in result.rules
        assert_well_formed(result)

    def test_symbol_before_function(self):
        result = differentiate("xsin(x)")
        assert same(result.result, "sin(x) + x*cos(x)")
        assert RULE_PRODUCT in result.rules

    def test_power_before_function(self):
        result = differentiate("3x^2sin(x)")
        assert same(result.result, "6*x*sin(x) + 3*x^2*cos(x)")
        assert RULE_PRODUCT in result.rules
        assert_well_formed(result)

    def test_higher_order_of_glued_input(self):
        result = differentiate("xe^x", order=2)
        assert same(result.result, "(x + 2)*exp(x)")
