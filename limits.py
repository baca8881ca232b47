# limits.py
# Limit resolution with narrated steps: direct evaluation, degree analysis at
# infinity, indetermination classification and the algebraic / numeric
# strategies that resolve it.

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

from sympy import Add, Rational, S, Symbol as SympySymbol, expand, factor, sqrt

import expression_adapter as cas
from calculus_results import LimitResult, StepLog
from expression_adapter import CalculusError, EvaluationError, format_number, to_text
from expression_tree import BinaryOp, parse_tree

logger = logging.getLogger(__name__)

# --- Numeric constants ---
SURROGATES = (1_000_000, 10_000, 1_000)
INFINITY_THRESHOLD = 100_000
CLASSIFY_EPSILON = 1e-4
APPROXIMATION_EPSILON = 1e-5
INTEGER_TOLERANCE = 1e-6
ZERO_TOLERANCE = 1e-12

POSITIVE_INFINITY = {'infinity', '+infinity', 'inf', '+inf', 'oo', '+oo', '∞', '+∞'}
NEGATIVE_INFINITY = {'-infinity', '-inf', '-oo', '-∞'}

# --- Indeterminate forms ---
ZERO_OVER_ZERO = '0/0'
INFINITY_OVER_INFINITY = '∞/∞'
INFINITY_MINUS_INFINITY = '∞-∞'
NONZERO_OVER_ZERO = 'k/0'
UNDEFINED = 'undefined'
ONE_SIDED_DOMAIN = 'one-sided'

# --- Resolution methods ---
METHOD_DEGREES = 'comparison of degrees'
METHOD_DIFFERENCE_OF_SQUARES = 'difference of squares'
METHOD_COMMON_FACTOR = 'common factor cancellation'
METHOD_RATIONALIZATION = 'rationalization'
METHOD_SIMPLIFICATION = 'algebraic simplification'
METHOD_NUMERICAL = 'numerical approximation'
METHOD_LARGE_VALUES = 'evaluation at large values'
METHOD_ONE_SIDED = 'one-sided limits'
METHOD_DEFINED_SIDE = 'limit from the defined side'

_DESCRIPTIONS = {
    ZERO_OVER_ZERO: "Direct substitution gives the indeterminate form 0/0",
    INFINITY_OVER_INFINITY: "The expression takes the indeterminate form ∞/∞",
    INFINITY_MINUS_INFINITY: "The expression takes the indeterminate form ∞-∞",
    NONZERO_OVER_ZERO: "The numerator tends to a non-zero value while the denominator tends to 0 (k/0)",
    UNDEFINED: "The expression is not defined in the real numbers around the point",
    ONE_SIDED_DOMAIN: "The expression is defined on only one side of the point",
}


def parse_point(point):
    """
    Converts the limit point to a float, accepting numbers, numeric strings and
    the infinity markers ('infinity', 'inf', 'oo', '∞', optionally signed).
    """
    if isinstance(point, bool):
        raise CalculusError(f"Invalid limit point: {point!r}")
    if isinstance(point, (int, float)):
        if math.isnan(point):
            raise CalculusError("The limit point cannot be NaN")
        return float(point)
    if isinstance(point, str):
        text = point.strip().lower().replace(' ', '')
        if text in POSITIVE_INFINITY:
            return math.inf
        if text in NEGATIVE_INFINITY:
            return -math.inf
        try:
            value = float(text)
        except ValueError:
            raise CalculusError(f"Invalid limit point: '{point}'")
        if math.isnan(value):
            raise CalculusError("The limit point cannot be NaN")
        return value
    raise CalculusError(f"Invalid limit point: {point!r}")


def _is_zero(value):
    return abs(value) < ZERO_TOLERANCE


def _round_near_integer(value):
    nearest = round(value)
    if abs(value - nearest) < INTEGER_TOLERANCE:
        return float(nearest)
    return value


class LimitProblem:
    """Everything the strategies need to know about one limit."""

    def __init__(self, text, variable, point):
        self.text = text
        self.variable = variable
        self.point = point
        self.expression = cas.parse(text)
        self.numerator = self.denominator = None
        try:
            tree = parse_tree(text)
        except CalculusError as e:
            logger.debug("No structural tree for %r: %s", text, e)
            tree = None
        if isinstance(tree, BinaryOp) and tree.op == '/':
            self.numerator = cas.parse(str(tree.left))
            self.denominator = cas.parse(str(tree.right))

    @property
    def is_fraction(self):
        return self.numerator is not None

    @property
    def at_infinity(self):
        return math.isinf(self.point)

    @property
    def exact_point(self):
        # 2.0 -> 2, 0.5 -> 1/2, so that substitution stays exact
        return Rational(repr(self.point))

    @property
    def approach(self):
        return f"{self.variable} → {format_number(self.point)}"

    def at(self, value, expression=None, finite=True):
        if expression is None:
            expression = self.expression
        return cas.evaluate(expression, {self.variable: value}, finite=finite)

    def try_at(self, value, expression=None):
        try:
            return self.at(value, expression, finite=False)
        except EvaluationError:
            return None


@dataclass(frozen=True)
class Resolution:
    """Outcome of a strategy. A None value means the limit does not exist."""
    value: Optional[float]
    steps: Tuple[Tuple[str, str], ...]
    form: Optional[str] = None


# --- Degree analysis at infinity ---

def _term_profile(term, x):
    """(degree, coefficient) of a monomial in x, or None for any other shape."""
    if term == x:
        return 1, 1.0
    if term.is_number:
        try:
            return 0, float(term)
        except TypeError:
            return None
    if term.is_Pow and term.base == x and term.exp.is_Integer and term.exp >= 0:
        return int(term.exp), 1.0
    if term.is_Mul:
        degree, coefficient = 0, 1.0
        for factor_ in term.args:
            profile = _term_profile(factor_, x)
            if profile is None:
                return None
            degree += profile[0]
            coefficient *= profile[1]
        return degree, coefficient
    return None


def polynomial_profile(expression, variable):
    """
    Degree and leading coefficient of a polynomial in `variable`, computed from
    its expanded additive terms. Returns None when it is not a polynomial.
    """
    x = SympySymbol(variable)
    best_degree, best_coefficient = None, 0.0
    for term in Add.make_args(expand(cas.parse(expression))):
        profile = _term_profile(term, x)
        if profile is None:
            return None
        degree, coefficient = profile
        if best_degree is None or degree > best_degree:
            best_degree, best_coefficient = degree, coefficient
        elif degree == best_degree:
            best_coefficient += coefficient
    if best_degree is None or best_coefficient == 0:
        return None
    return best_degree, best_coefficient


def rational_limit_at_infinity(problem):
    """
    Limit of a ratio of polynomials at ±∞ from the degrees and leading
    coefficients. Returns a Resolution, or None when either side is not a
    polynomial.
    """
    if not problem.is_fraction:
        return None
    numerator = polynomial_profile(problem.numerator, problem.variable)
    denominator = polynomial_profile(problem.denominator, problem.variable)
    if numerator is None or denominator is None:
        return None

    (n_degree, n_lead), (d_degree, d_lead) = numerator, denominator
    x = problem.variable
    steps = [
        ("Degree analysis",
         f"Numerator: {to_text(problem.numerator)} (degree {n_degree}, leading coefficient {format_number(n_lead)})\n"
         f"Denominator: {to_text(problem.denominator)} (degree {d_degree}, leading coefficient {format_number(d_lead)})"),
        ("Dividing by the highest power",
         f"Divide numerator and denominator by {x}^{max(n_degree, d_degree)}; "
         f"every lower power tends to 0 as {problem.approach}"),
    ]

    if n_degree == d_degree:
        value = _round_near_integer(n_lead / d_lead)
        steps.append(("Equal degrees",
                      f"The limit is the ratio of the leading coefficients: "
                      f"{format_number(n_lead)}/{format_number(d_lead)} = {format_number(value)}"))
    elif n_degree < d_degree:
        value = 0.0
        steps.append(("Denominator dominates",
                      "The degree of the denominator is greater, so the fraction tends to 0"))
    else:
        sign = 1 if n_lead / d_lead > 0 else -1
        if problem.point < 0 and (n_degree - d_degree) % 2:
            sign = -sign
        value = math.copysign(math.inf, sign)
        steps.append(("Numerator dominates",
                      f"The degree of the numerator is greater, so the fraction grows without bound: "
                      f"{format_number(value)}"))
    form = INFINITY_OVER_INFINITY if n_degree > 0 and d_degree > 0 else None
    return Resolution(value, tuple(steps), form)


# --- Indetermination classification ---

def classify_indetermination(problem):
    if problem.at_infinity:
        return INFINITY_OVER_INFINITY if problem.is_fraction else INFINITY_MINUS_INFINITY

    if problem.is_fraction:
        numerator = problem.try_at(problem.exact_point, problem.numerator)
        denominator = problem.try_at(problem.exact_point, problem.denominator)
        if numerator is not None and denominator is not None:
            if _is_zero(numerator) and _is_zero(denominator):
                return ZERO_OVER_ZERO
            if math.isinf(numerator) and math.isinf(denominator):
                return INFINITY_OVER_INFINITY
            if _is_zero(denominator) and math.isfinite(numerator):
                return NONZERO_OVER_ZERO

    left = problem.try_at(problem.point - CLASSIFY_EPSILON)
    right = problem.try_at(problem.point + CLASSIFY_EPSILON)
    if left is None and right is None:
        return UNDEFINED
    if left is None or right is None:
        return ONE_SIDED_DOMAIN
    if math.isinf(left) and math.isinf(right):
        return INFINITY_OVER_INFINITY
    return ZERO_OVER_ZERO


# --- Resolution strategies ---
# Each takes a LimitProblem and returns (Resolution, None) or (None, reason).

def _evaluate_simplified(problem, simplified):
    try:
        return problem.at(problem.exact_point, simplified), None
    except EvaluationError:
        return None, f"the simplified expression is still undefined at {problem.variable} = {format_number(problem.point)}"


def _difference_of_squares(problem):
    terms = Add.make_args(expand(problem.numerator))
    if len(terms) != 2:
        return None, "the numerator is not a difference of two terms"
    square = next((t for t in terms if t.is_Pow and t.exp == 2), None)
    if square is None:
        return None, "the numerator has no squared term"
    other = terms[1] if terms[0] is square else terms[0]
    if not other.could_extract_minus_sign():
        return None, "the numerator is a sum, not a difference"

    subtracted = -other
    if subtracted.is_Pow and subtracted.exp == 2:
        root = subtracted.base
    elif subtracted.is_number and subtracted.is_positive:
        root = sqrt(subtracted)
    else:
        return None, "the subtracted term is not a perfect square"

    base = square.base
    factored = (base + root) * (base - root)
    simplified = cas.simplify(factored / problem.denominator)
    value, reason = _evaluate_simplified(problem, simplified)
    if reason:
        return None, reason
    steps = (
        ("Difference of squares",
         f"{to_text(problem.numerator)} = ({to_text(base + root)})({to_text(base - root)})"),
        ("Simplifying the fraction",
         f"({to_text(base + root)})({to_text(base - root)})/({to_text(problem.denominator)}) = {to_text(simplified)}"),
        ("Evaluating the simplified expression",
         f"Substituting {problem.variable} = {format_number(problem.point)}: {format_number(value)}"),
    )
    return Resolution(value, steps), None


def _common_factor(problem):
    simplified = cas.simplify(problem.numerator / problem.denominator)
    value, reason = _evaluate_simplified(problem, simplified)
    if reason:
        return None, reason
    steps = (
        ("Factoring",
         f"Numerator: {to_text(factor(problem.numerator))}\n"
         f"Denominator: {to_text(factor(problem.denominator))}"),
        ("Cancelling common factors", f"The fraction simplifies to {to_text(simplified)}"),
        ("Evaluating the simplified expression",
         f"Substituting {problem.variable} = {format_number(problem.point)}: {format_number(value)}"),
    )
    return Resolution(value, steps), None


def _radicand(term):
    if term.is_Pow and term.exp == S.Half:
        return term.base
    # a bare constant c is read as sqrt(c^2)
    if term.is_number and term.is_nonnegative:
        return term**2
    return None


def _rationalization(problem):
    terms = Add.make_args(expand(problem.numerator))
    if len(terms) != 2:
        return None, "the numerator is not a difference of two terms"
    positive = [t for t in terms if not t.could_extract_minus_sign()]
    negative = [-t for t in terms if t.could_extract_minus_sign()]
    if len(positive) != 1 or len(negative) != 1:
        return None, "the numerator is not a difference"
    first, second = _radicand(positive[0]), _radicand(negative[0])
    if first is None or second is None or not (positive[0].is_Pow or negative[0].is_Pow):
        return None, "the numerator is not of the form sqrt(A) - sqrt(B)"

    conjugate = sqrt(first) + sqrt(second)
    numerator = expand(first - second)
    simplified = cas.simplify(numerator / (problem.denominator * conjugate))
    value, reason = _evaluate_simplified(problem, simplified)
    if reason:
        return None, reason
    steps = (
        ("Multiplying by the conjugate",
         f"Multiply numerator and denominator by {to_text(conjugate)}"),
        ("Rationalized numerator",
         f"({to_text(problem.numerator)})({to_text(conjugate)}) = {to_text(numerator)}"),
        ("Simplifying the fraction",
         f"{to_text(numerator)}/(({to_text(problem.denominator)})({to_text(conjugate)})) = {to_text(simplified)}"),
        ("Evaluating the simplified expression",
         f"Substituting {problem.variable} = {format_number(problem.point)}: {format_number(value)}"),
    )
    return Resolution(value, steps), None


def _simplification(problem):
    simplified = cas.simplify(problem.expression)
    if simplified == problem.expression:
        return None, "the expression does not simplify"
    value, reason = _evaluate_simplified(problem, simplified)
    if reason:
        return None, reason
    steps = (
        ("Simplifying the expression", f"{to_text(problem.expression)} = {to_text(simplified)}"),
        ("Evaluating the simplified expression",
         f"Substituting {problem.variable} = {format_number(problem.point)}: {format_number(value)}"),
    )
    return Resolution(value, steps), None


def _numerical(problem):
    try:
        right = problem.at(problem.point + APPROXIMATION_EPSILON, finite=False)
        left = problem.at(problem.point - APPROXIMATION_EPSILON, finite=False)
    except EvaluationError as e:
        return None, str(e)

    h = APPROXIMATION_EPSILON
    sides = (f"From the right ({problem.variable} = {format_number(problem.point)} + {h:g}): {right:.6f}\n"
             f"From the left ({problem.variable} = {format_number(problem.point)} - {h:g}): {left:.6f}")
    if abs(left) > INFINITY_THRESHOLD and abs(right) > INFINITY_THRESHOLD:
        if (left > 0) != (right > 0):
            return None, "the one-sided values grow with opposite signs"
        value = math.copysign(math.inf, right)
        return Resolution(value, (("Evaluating near the point", sides),
                                  ("Unbounded growth", f"Both sides grow without bound: {format_number(value)}"))), None
    if abs(left - right) > INFINITY_THRESHOLD * APPROXIMATION_EPSILON:
        return None, "the one-sided values do not agree"

    value = round((left + right) / 2, 4)
    steps = (
        ("Evaluating near the point", sides),
        ("Averaging both sides", f"The limit is approximately {format_number(value)}"),
    )
    return Resolution(value, steps), None


def _large_values(problem):
    direction = 1 if problem.point > 0 else -1
    for magnitude in SURROGATES:
        surrogate = direction * magnitude
        try:
            value = problem.at(surrogate, finite=False)
        except EvaluationError as e:
            logger.debug("Surrogate %s failed for %s: %s", surrogate, problem.text, e)
            continue
        content = f"Evaluating at {problem.variable} = {surrogate}: {value:.6g}"
        if abs(value) > INFINITY_THRESHOLD:
            value = math.copysign(math.inf, value)
            return Resolution(value, (("Evaluation at large values", content),
                                      ("Unbounded growth",
                                       f"The magnitude exceeds {INFINITY_THRESHOLD}, so the limit is {format_number(value)}"))), None
        value = _round_near_integer(value)
        return Resolution(value, (("Evaluation at large values", content),)), None
    return None, f"{problem.text} cannot be evaluated for large values of {problem.variable}"


def _one_sided(problem):
    right = problem.try_at(problem.point + APPROXIMATION_EPSILON)
    left = problem.try_at(problem.point - APPROXIMATION_EPSILON)
    if right is None or left is None:
        return None, "the expression is not defined on both sides of the point"
    sides = (f"From the right: {right:.6g}\n"
             f"From the left: {left:.6g}")
    if right > 0 and left > 0:
        return Resolution(math.inf, (("One-sided limits", sides),
                                     ("Same sign", "Both sides tend to +∞"))), None
    if right < 0 and left < 0:
        return Resolution(-math.inf, (("One-sided limits", sides),
                                      ("Same sign", "Both sides tend to -∞"))), None
    return Resolution(None, (("One-sided limits", sides),
                             ("Opposite signs", "The one-sided limits are +∞ and -∞"))), None



def _defined_side(problem):
    right_defined = problem.try_at(problem.point + CLASSIFY_EPSILON) is not None
    direction, side = ('+', 'right') if right_defined else ('-', 'left')
    relation = '>' if right_defined else '<'
    try:
        value = cas.one_sided_limit(problem.expression, problem.variable, problem.exact_point, direction)
    except EvaluationError as e:
        return None, str(e)
    value = _round_near_integer(value) if math.isfinite(value) else value
    steps = (
        ("Domain near the point",
         f"{problem.text} is only defined for {problem.variable} {relation} {format_number(problem.point)} "
         f"close to the point, so the limit is the {side}-hand limit"),
        (f"Limit from the {side}",
         f"lim ({problem.approach}{direction}) {problem.text} = {format_number(value)}"),
    )
    return Resolution(value, steps), None


FRACTION_STRATEGIES = (
    (METHOD_DIFFERENCE_OF_SQUARES, _difference_of_squares),
    (METHOD_COMMON_FACTOR, _common_factor),
    (METHOD_RATIONALIZATION, _rationalization),
    (METHOD_NUMERICAL, _numerical),
)

EXPRESSION_STRATEGIES = (
    (METHOD_SIMPLIFICATION, _simplification),
    (METHOD_NUMERICAL, _numerical),
)


def strategies_for(problem, indetermination):
    if indetermination == UNDEFINED:
        return ()
    if indetermination == ONE_SIDED_DOMAIN:
        return ((METHOD_DEFINED_SIDE, _defined_side),)
    if indetermination == NONZERO_OVER_ZERO:
        return ((METHOD_ONE_SIDED, _one_sided),)
    if problem.at_infinity:
        return ((METHOD_LARGE_VALUES, _large_values),)
    if indetermination == ZERO_OVER_ZERO:
        return FRACTION_STRATEGIES if problem.is_fraction else EXPRESSION_STRATEGIES
    return ((METHOD_NUMERICAL, _numerical),)


def resolve_indetermination(problem, indetermination, log):
    """
    Tries the strategies for the form in order, narrating each attempt.
    Returns (Resolution, method) or (None, None).
    """
    for method, strategy in strategies_for(problem, indetermination):
        try:
            resolution, reason = strategy(problem)
        except Exception as e:
            logger.warning("Strategy %r failed on %r: %s", method, problem.text, e)
            resolution, reason = None, str(e)
        if resolution is None:
            logger.debug("Strategy %r not applicable to %r: %s", method, problem.text, reason)
            log.add(f"Trying {method}", f"Not applicable: {reason}")
            continue
        log.add(f"Applying {method}", f"Resolving the {indetermination} form by {method}")
        log.extend(resolution.steps)
        return resolution, method
    return None, None


# --- Direct evaluation ---

def _direct_substitution(problem, log):
    try:
        value = problem.at(problem.exact_point)
    except EvaluationError as e:
        logger.debug("Direct substitution failed: %s", e)
        log.add("Direct evaluation",
                f"Substituting {problem.variable} = {format_number(problem.point)} does not give a finite value")
        return None
    log.add("Direct evaluation",
            f"Substituting {problem.variable} = {format_number(problem.point)}: {format_number(value)}",
            result=format_number(value))
    return value


def _evaluate_at_infinity(problem, log):
    """Returns (value, indetermination, method) or None when evaluation fails."""
    analysis = rational_limit_at_infinity(problem)
    if analysis is not None:
        log.extend(analysis.steps)
        return analysis.value, analysis.form, METHOD_DEGREES

    surrogate = math.copysign(SURROGATES[0], problem.point)
    try:
        value = problem.at(surrogate, finite=False)
    except EvaluationError as e:
        logger.debug("Evaluation at %s failed: %s", surrogate, e)
        log.add("Numerical evaluation",
                f"{problem.text} cannot be evaluated at {problem.variable} = {surrogate:g}")
        return None
    if abs(value) > INFINITY_THRESHOLD:
        value = math.copysign(math.inf, value)
        log.add("Numerical evaluation",
                f"At {problem.variable} = {surrogate:g} the magnitude exceeds {INFINITY_THRESHOLD}: "
                f"the expression grows without bound", result=format_number(value))
        return value, None, None
    value = _round_near_integer(value)
    log.add("Numerical evaluation",
            f"Evaluating at {problem.variable} = {surrogate:g}: {format_number(value)}",
            result=format_number(value))
    return value, None, None


def calculate_limit(expression, variable='x', point=0):
    """
    Computes lim (variable → point) expression with narrated steps.
    The result is a float (±inf allowed), or None when the limit does not
    exist or could not be resolved.
    """
    log = StepLog()
    target = None
    indetermination = None
    method = None
    try:
        target = parse_point(point)
        text = cas.strip_function_prefix(expression)
        problem = LimitProblem(text, variable, target)
        log.add("Original expression", f"lim ({problem.approach}) {text}")

        if problem.at_infinity:
            outcome = _evaluate_at_infinity(problem, log)
        else:
            value = _direct_substitution(problem, log)
            outcome = None if value is None else (value, None, None)

        if outcome is not None:
            result, indetermination, method = outcome
            log.add("Final result", f"lim ({problem.approach}) {text} = {format_number(result)}",
                    result=format_number(result), final=True)
        else:
            indetermination = classify_indetermination(problem)
            log.add("Indetermination detected", f"{_DESCRIPTIONS[indetermination]}: {indetermination}")
            resolution, method = resolve_indetermination(problem, indetermination, log)
            if resolution is None:
                result = None
                if indetermination == UNDEFINED:
                    log.error("No real limit",
                              f"{text} is not defined for real values of {variable} near {format_number(target)}")
                else:
                    log.error("No result", f"The {indetermination} form of {text} could not be resolved")
            elif resolution.value is None:
                result = None
                log.add("Final result", f"lim ({problem.approach}) {text} does not exist", final=True)
            else:
                result = resolution.value
                log.add("Final result", f"lim ({problem.approach}) {text} = {format_number(result)}",
                        result=format_number(result), final=True)
    except Exception as e:
        logger.warning("Limit of %r failed: %s", expression, e)
        log.error("Error", f"Could not compute the limit of '{expression}': {e}")
        result = None

    return LimitResult(
        result=result, steps=log.freeze(), expression=expression, variable=variable,
        point=target, indetermination=indetermination, factorization_method=method,
    )
