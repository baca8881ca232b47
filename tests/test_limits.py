"""
Tests for limit resolution: direct evaluation, indetermination classification
and every resolution strategy.
"""

import math

import pytest

from expression_adapter import CalculusError
from limits import (
    INFINITY_OVER_INFINITY, METHOD_COMMON_FACTOR, METHOD_DEFINED_SIDE, METHOD_DEGREES,
    METHOD_DIFFERENCE_OF_SQUARES, METHOD_NUMERICAL, METHOD_ONE_SIDED, METHOD_RATIONALIZATION,
    METHOD_SIMPLIFICATION, NONZERO_OVER_ZERO, ONE_SIDED_DOMAIN, UNDEFINED, ZERO_OVER_ZERO,
    LimitProblem, calculate_limit, classify_indetermination, parse_point, polynomial_profile,
)


def assert_well_formed(result):
    assert result.steps
    last = result.steps[-1]
    assert last.final != last.error
    assert not any(step.final or step.error for step in result.steps[:-1])


class TestLimitPoint:

    @pytest.mark.parametrize("point, expected", [
        ("infinity", math.inf), ("∞", math.inf), ("oo", math.inf), ("inf", math.inf),
        ("-infinity", -math.inf), ("-oo", -math.inf), (float("inf"), math.inf),
        ("2.5", 2.5), (3, 3.0), (" 0 ", 0.0),
    ])
    def test_parse_point(self, point, expected):
        assert parse_point(point) == expected

    @pytest.mark.parametrize("point", ["abc", True, None, float("nan")])
    def test_invalid_point(self, point):
        with pytest.raises(CalculusError):
            parse_point(point)

    def test_invalid_point_gives_error_step(self):
        result = calculate_limit("x^2", point="abc")
        assert result.result is None
        assert result.point is None
        assert result.steps[-1].error


class TestDirectEvaluation:

    def test_polynomial(self):
        result = calculate_limit("x^2 + 1", point=2)
        assert result.result == 5.0
        assert result.indetermination is None
        assert result.factorization_method is None
        assert [step.title for step in result.steps] == ["Original expression", "Direct evaluation", "Final result"]
        assert_well_formed(result)

    def test_string_point(self):
        assert calculate_limit("3*x", point="-1").result == -3.0


class TestClassification:

    @pytest.mark.parametrize("text, point, form", [
        ("(x^2 - 4)/(x - 2)", 2.0, ZERO_OVER_ZERO),
        ("sin(x)/x", 0.0, ZERO_OVER_ZERO),
        ("1/x", 0.0, NONZERO_OVER_ZERO),
        ("sqrt(x)", -1.0, UNDEFINED),
        ("x^2/x", math.inf, INFINITY_OVER_INFINITY),
        ("x*ln(x)", 0.0, ONE_SIDED_DOMAIN),
    ])
    def test_classify(self, text, point, form):
        assert classify_indetermination(LimitProblem(text, 'x', point)) == form


class TestZeroOverZero:

    def test_difference_of_squares(self):
        result = calculate_limit("(x^2 - 4)/(x - 2)", point=2)
        assert result.result == pytest.approx(4.0)
        assert result.indetermination == ZERO_OVER_ZERO
        assert result.factorization_method == METHOD_DIFFERENCE_OF_SQUARES
        assert_well_formed(result)

    def test_common_factor(self):
        result = calculate_limit("(x^2 - 3*x + 2)/(x - 1)", point=1)
        assert result.result == pytest.approx(-1.0)
        assert result.factorization_method == METHOD_COMMON_FACTOR
        titles = [step.title for step in result.steps]
        assert "Trying difference of squares" in titles

    def test_radical(self):
        result = calculate_limit("(sqrt(x + 4) - 2)/x", point=0)
        assert result.result == pytest.approx(0.25)
        assert result.factorization_method in (METHOD_RATIONALIZATION, METHOD_COMMON_FACTOR)

    def test_radical_with_two_roots(self):
        result = calculate_limit("(sqrt(x + 3) - sqrt(3))/x", point=0)
        assert result.result == pytest.approx(1 / (2 * math.sqrt(3)))

    def test_numerical_approximation(self):
        result = calculate_limit("sin(x)/x", point=0)
        assert result.result == pytest.approx(1.0)
        assert result.factorization_method == METHOD_NUMERICAL
        assert_well_formed(result)

    def test_non_fraction_simplification(self):
        result = calculate_limit("(x^2 - 1)*(1/(x - 1))", point=1)
        assert result.result == pytest.approx(2.0)
        assert result.factorization_method == METHOD_SIMPLIFICATION

    def test_implicit_multiplication_input(self):
        result = calculate_limit("(2x^2 - 8)/(x - 2)", point=2)
        assert result.result == pytest.approx(8.0)
        assert result.indetermination == ZERO_OVER_ZERO


class TestNonZeroOverZero:

    def test_same_sign_sides(self):
        result = calculate_limit("1/x^2", point=0)
        assert result.result == math.inf
        assert result.indetermination == NONZERO_OVER_ZERO
        assert result.factorization_method == METHOD_ONE_SIDED

    def test_opposite_sign_sides(self):
        result = calculate_limit("1/x", point=0)
        assert result.result is None
        assert result.steps[-1].final
        assert "does not exist" in result.steps[-1].content
        assert_well_formed(result)


class TestUndefined:

    def test_not_real_near_point(self):
        result = calculate_limit("sqrt(x)", point=-1)
        assert result.result is None
        assert result.indetermination == UNDEFINED
        assert result.steps[-1].error


class TestOneSidedDomain:
    """Expressions defined on only one side of the point."""

    def test_product_with_logarithm(self):
        result = calculate_limit("x*ln(x)", point=0)
        assert result.result == pytest.approx(0.0)
        assert result.indetermination == ONE_SIDED_DOMAIN
        assert result.factorization_method == METHOD_DEFINED_SIDE
        assert "Limit from the right" in [step.title for step in result.steps]
        assert_well_formed(result)

    def test_logarithm_diverges(self):
        result = calculate_limit("ln(x)", point=0)
        assert result.result == -math.inf
        assert result.steps[-1].final


class TestInfinity:

    def test_equal_degrees(self):
        result = calculate_limit("(4*x^2 + 2)/(x^2 + 1)", point="infinity")
        assert result.result == pytest.approx(4.0)
        assert result.indetermination == INFINITY_OVER_INFINITY
        assert result.factorization_method == METHOD_DEGREES
        assert_well_formed(result)

    def test_lower_numerator_degree(self):
        assert calculate_limit("1/x", point="infinity").result == 0.0

    def test_higher_numerator_degree_at_minus_infinity(self):
        assert calculate_limit("x^2/x", point="-infinity").result == -math.inf
        assert calculate_limit("x^3/x", point="-infinity").result == math.inf

    def test_unbounded_growth(self):
        result = calculate_limit("x^2", point="∞")
        assert result.result == math.inf
        assert result.to_dict()['result'] == 'infinity'

    def test_numeric_surrogate(self):
        result = calculate_limit("sqrt(x^2 + x) - x", point="infinity")
        assert result.result == pytest.approx(0.5, abs=1e-3)

    def test_polynomial_profile(self):
        assert polynomial_profile("3*x^2 - x + 7", "x") == (2, 3.0)
        assert polynomial_profile("(x + 1)^2", "x") == (2, 1.0)
        assert polynomial_profile("sin(x)", "x") is None


class TestSerialization:

    def test_to_dict(self):
        data = calculate_limit("(x^2 - 4)/(x - 2)", point=2).to_dict()
        assert data['factorizationMethod'] == METHOD_DIFFERENCE_OF_SQUARES
        assert data['indetermination'] == '0/0'
        assert data['point'] == 2.0
        assert data['steps'][-1]['final'] is True
