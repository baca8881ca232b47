# derivatives.py
# Rule-based differentiation with a step-by-step trace (sum, product, quotient,
# chain and power rules), higher-order derivatives and the cached entry point.

import logging
from dataclasses import dataclass

from sympy import S, Integer, cos, exp, log, sec, sin, sqrt

import expression_adapter as cas
from calculus_results import DerivationResult, StepLog
from classifier import (
    CHAIN, POWER, PRODUCT, QUOTIENT, SIMPLE, SUM,
    classify, split_factors, split_terms, unwrap_negation,
)
from expression_adapter import CalculusError, superscript, to_text
from expression_tree import Symbol, parse_tree, product_of
from implicit_derivatives import differentiate_implicit
from result_cache import ResultCache

logger = logging.getLogger(__name__)

RULE_SUM = 'sum rule'
RULE_PRODUCT = 'product rule'
RULE_QUOTIENT = 'quotient rule'
RULE_CHAIN = 'chain rule'
RULE_POWER = 'power rule'
RULE_CONSTANT = 'constant rule'
RULE_CONSTANT_MULTIPLE = 'constant multiple rule'
RULE_IDENTITY = 'identity rule'
RULE_EXPONENTIAL = 'exponential rule'
RULE_LOGARITHMIC = 'logarithmic differentiation'
RULE_GENERIC = 'direct differentiation'

# d/du of each outer function, as (sympy builder, narration)
OUTER_DERIVATIVES = {
    'sin': (lambda u: cos(u), 'cos(u)'),
    'cos': (lambda u: -sin(u), '-sin(u)'),
    'tan': (lambda u: sec(u)**2, 'sec(u)^2'),
    'ln': (lambda u: 1/u, '1/u'),
    'log': (lambda u: 1/u, '1/u'),
    'exp': (lambda u: exp(u), 'exp(u)'),
    'sqrt': (lambda u: 1/(2*sqrt(u)), '1/(2*sqrt(u))'),
}

_TAG_RULES = {
    SUM: RULE_SUM, PRODUCT: RULE_PRODUCT, QUOTIENT: RULE_QUOTIENT,
    CHAIN: RULE_CHAIN, POWER: RULE_POWER, SIMPLE: 'basic rules',
}


@dataclass(frozen=True)
class RuleApplication:
    """Successful outcome of a rule strategy: the raw derivative, the rules used, and narration drafts."""
    derivative: object
    rules: frozenset
    steps: tuple


def _d(variable, expression):
    return f"d/d{variable}[{expression}]"


def prime_notation(order, variable, name='f'):
    if order <= 3:
        return f"{name}{chr(39) * order}({variable})"
    return f"{name}⁽{superscript(order)}⁾({variable})"


def _wrap(text):
    return f"({text})" if any(op in text for op in '+-') else text


def join_signed(parts):
    """Joins (sign, text) pairs with '+', collapsing '+ -' into '-'."""
    pieces = [text if sign > 0 else f"-{_wrap(text)}" for sign, text in parts]
    return ' + '.join(pieces).replace('+ -', '- ')


def _primitive(node, variable):
    return cas.differentiate(str(node), variable)


# --- Rule strategies: each returns (RuleApplication, None) or (None, reason) ---

def _sum_rule(node, variable):
    terms = split_terms(node)
    if len(terms) < 2:
        return None, "the expression has a single term"

    derivative = S.Zero
    lines = []
    derived_parts = []
    for sign, term in terms:
        term_derivative = _primitive(term, variable)
        derivative += sign * term_derivative
        lines.append(f"{_d(variable, term)} = {to_text(term_derivative)}")
        derived_parts.append((sign, to_text(term_derivative)))

    split = join_signed([(sign, _d(variable, term)) for sign, term in terms])
    steps = (
        ("Sum rule", f"The derivative of a sum is the sum of the derivatives:\n{_d(variable, node)} = {split}"),
        ("Differentiating each term", '\n'.join(lines)),
        ("Combining the terms", f"{prime_notation(1, variable)} = {join_signed(derived_parts)}"),
    )
    return RuleApplication(derivative, frozenset([RULE_SUM]), steps), None


def _product_rule(node, variable):
    factors = split_factors(node)
    constants = [f for f in factors if not f.contains(variable)]
    variables = [f for f in factors if f.contains(variable)]

    if not variables:
        return RuleApplication(S.Zero, frozenset([RULE_CONSTANT]), (
            ("Constant rule", f"{node} does not depend on {variable}, so its derivative is 0"),
        )), None
    if len(variables) > 2:
        return None, f"{len(variables)} factors depend on {variable}"

    coefficient = cas.parse(str(product_of(constants))) if constants else Integer(1)
    rules = set()
    steps = []
    if constants:
        rules.add(RULE_CONSTANT_MULTIPLE)
        steps.append(("Constant multiple rule",
                      f"The constant factor {product_of(constants)} is kept and multiplies the derivative of the rest"))

    if len(variables) == 1:
        inner = variables[0]
        inner_derivative = _primitive(inner, variable)
        steps.append(("Differentiating the variable factor",
                      f"{_d(variable, inner)} = {to_text(inner_derivative)}"))
        derivative = coefficient * inner_derivative
        return RuleApplication(derivative, frozenset(rules), tuple(steps)), None

    f, g = variables
    f_expr, g_expr = cas.parse(str(f)), cas.parse(str(g))
    f_prime, g_prime = _primitive(f, variable), _primitive(g, variable)
    rules.add(RULE_PRODUCT)
    steps.extend([
        ("Product rule", f"(f·g)' = f'·g + f·g'\nf = {f}\ng = {g}"),
        ("Derivatives of the factors", f"f' = {to_text(f_prime)}\ng' = {to_text(g_prime)}"),
        ("Applying the product rule",
         f"({to_text(f_prime)})·({g}) + ({f})·({to_text(g_prime)})"),
    ])
    derivative = coefficient * (f_prime * g_expr + f_expr * g_prime)
    return RuleApplication(derivative, frozenset(rules), tuple(steps)), None


def _quotient_rule(node, variable):
    numerator, denominator = node.left, node.right
    f_expr, g_expr = cas.parse(str(numerator)), cas.parse(str(denominator))
    f_prime = _primitive(numerator, variable)

    if not denominator.contains(variable):
        steps = (
            ("Constant denominator", f"{denominator} does not depend on {variable}: {_d(variable, node)} = {_d(variable, numerator)}/{_wrap(str(denominator))}"),
            ("Differentiating the numerator", f"{_d(variable, numerator)} = {to_text(f_prime)}"),
        )
        return RuleApplication(f_prime / g_expr, frozenset([RULE_CONSTANT_MULTIPLE]), steps), None

    g_prime = _primitive(denominator, variable)
    derivative = (f_prime * g_expr - f_expr * g_prime) / g_expr**2
    steps = (
        ("Quotient rule", f"(f/g)' = (f'·g - f·g')/g^2\nf = {numerator}\ng = {denominator}"),
        ("Derivatives of numerator and denominator", f"f' = {to_text(f_prime)}\ng' = {to_text(g_prime)}"),
        ("Applying the quotient rule",
         f"(({to_text(f_prime)})·({denominator}) - ({numerator})·({to_text(g_prime)}))/({denominator})^2"),
    )
    return RuleApplication(derivative, frozenset([RULE_QUOTIENT]), steps), None


def _chain_rule(node, variable):
    if node.name not in OUTER_DERIVATIVES:
        return None, f"no derivative table entry for {node.name}"
    builder, narration = OUTER_DERIVATIVES[node.name]
    inner = cas.parse(str(node.argument))
    inner_derivative = _primitive(node.argument, variable)
    outer_derivative = builder(inner)
    derivative = outer_derivative * inner_derivative
    steps = (
        ("Chain rule", f"(f(g({variable})))' = f'(g({variable}))·g'({variable})\n"
                       f"Outer function: {node.name}(u), inner function: u = {node.argument}"),
        ("Derivative of the outer function",
         f"d/du[{node.name}(u)] = {narration}, with u = {node.argument}: {to_text(outer_derivative)}"),
        ("Derivative of the inner function", f"{_d(variable, node.argument)} = {to_text(inner_derivative)}"),
        ("Applying the chain rule", f"({to_text(outer_derivative)})·({to_text(inner_derivative)})"),
    )
    return RuleApplication(derivative, frozenset([RULE_CHAIN]), steps), None


def _power_rule(node, variable):
    base, exponent = node.left, node.right
    base_varies = base.contains(variable)
    exponent_varies = exponent.contains(variable)
    base_expr, exponent_expr = cas.parse(str(base)), cas.parse(str(exponent))

    if not base_varies and not exponent_varies:
        return RuleApplication(S.Zero, frozenset([RULE_CONSTANT]), (
            ("Constant rule", f"{node} does not depend on {variable}, so its derivative is 0"),
        )), None

    if not exponent_varies:
        n = exponent_expr
        if base == Symbol(variable):
            derivative = n * base_expr**(n - 1)
            steps = (
                ("Power rule", f"d/d{variable}[{variable}^n] = n·{variable}^(n-1), with n = {exponent}"),
                ("Applying the power rule", f"{to_text(n)}·{variable}^({to_text(n - 1)}) = {to_text(derivative)}"),
            )
            return RuleApplication(derivative, frozenset([RULE_POWER]), steps), None

        base_derivative = _primitive(base, variable)
        derivative = n * base_expr**(n - 1) * base_derivative
        steps = (
            ("Power rule with the chain rule",
             f"d/d{variable}[u^n] = n·u^(n-1)·u', with u = {base} and n = {exponent}"),
            ("Derivative of the base", f"{_d(variable, base)} = {to_text(base_derivative)}"),
            ("Applying the rule",
             f"{to_text(n)}·({base})^({to_text(n - 1)})·({to_text(base_derivative)})"),
        )
        return RuleApplication(derivative, frozenset([RULE_POWER, RULE_CHAIN]), steps), None

    exponent_derivative = _primitive(exponent, variable)
    if not base_varies:
        derivative = base_expr**exponent_expr * log(base_expr) * exponent_derivative
        steps = (
            ("Exponential rule", f"d/d{variable}[a^u] = a^u·ln(a)·u', with a = {base} and u = {exponent}"),
            ("Derivative of the exponent", f"{_d(variable, exponent)} = {to_text(exponent_derivative)}"),
            ("Applying the rule", f"{node}·ln({base})·({to_text(exponent_derivative)})"),
        )
        return RuleApplication(derivative, frozenset([RULE_EXPONENTIAL]), steps), None

    # variable base and variable exponent: y = f^g, ln(y) = g·ln(f)
    base_derivative = _primitive(base, variable)
    log_derivative = exponent_derivative * log(base_expr) + exponent_expr * base_derivative / base_expr
    derivative = base_expr**exponent_expr * log_derivative
    steps = (
        ("Logarithmic differentiation",
         f"The exponent depends on {variable}. Let y = {node}, then ln(y) = ({exponent})·ln({base})"),
        ("Differentiating both sides",
         f"y'/y = {to_text(log_derivative)}"),
        ("Solving for y'", f"y' = ({node})·({to_text(log_derivative)})"),
    )
    return RuleApplication(derivative, frozenset([RULE_LOGARITHMIC, RULE_CHAIN]), steps), None


def _simple_rule(node, variable):
    if node == Symbol(variable):
        return RuleApplication(Integer(1), frozenset([RULE_IDENTITY]), (
            ("Identity rule", f"d/d{variable}[{variable}] = 1"),
        )), None
    if not node.contains(variable):
        return RuleApplication(S.Zero, frozenset([RULE_CONSTANT]), (
            ("Constant rule", f"{node} does not depend on {variable}, so its derivative is 0"),
        )), None
    derivative = _primitive(node, variable)
    return RuleApplication(derivative, frozenset([RULE_GENERIC]), (
        ("Direct differentiation", f"{_d(variable, node)} = {to_text(derivative)}"),
    )), None


STRATEGIES = {
    SUM: _sum_rule,
    PRODUCT: _product_rule,
    QUOTIENT: _quotient_rule,
    CHAIN: _chain_rule,
    POWER: _power_rule,
    SIMPLE: _simple_rule,
}


def apply_rule(node, variable):
    """
    Classifies the node and runs the matching strategy.
    Returns (tag, RuleApplication or None, reason or None).
    """
    sign, core = unwrap_negation(node)
    tag = classify(core, variable)
    try:
        application, reason = STRATEGIES[tag](core, variable)
    except Exception as e:
        logger.warning("The %s strategy failed on %s: %s", tag, core, e)
        return tag, None, str(e)
    if application is None or sign > 0:
        return tag, application, reason

    negated = RuleApplication(
        -application.derivative,
        application.rules | {RULE_CONSTANT_MULTIPLE},
        application.steps + (("Constant multiple rule",
                              f"The leading minus sign multiplies the result: -({to_text(application.derivative)})"),),
    )
    return tag, negated, None


def _differentiate_once(expression, variable, log, rules):
    """One order level: select a rule, apply it (or fall back) and simplify."""
    try:
        node = parse_tree(expression)
    except CalculusError as e:
        logger.debug("No structural parse for %s: %s", expression, e)
        tag, application, reason = None, None, str(e)
    else:
        tag, application, reason = apply_rule(node, variable)
        log.add("Identifying the structure",
                f"{expression} is classified as '{tag}', so the {_TAG_RULES[tag]} applies")

    if application is None:
        log.add("Direct differentiation",
                f"The {_TAG_RULES.get(tag, 'structural analysis')} could not be used ({reason}); "
                f"differentiating {expression} directly")
        raw = cas.differentiate(expression, variable)
        log.add("Result of direct differentiation", f"{_d(variable, expression)} = {to_text(raw)}")
        rules.add(RULE_GENERIC)
    else:
        log.extend(application.steps)
        rules.update(application.rules)
        raw = application.derivative

    simplified = cas.simplify(raw)
    if to_text(simplified) != to_text(raw):
        log.add("Simplification", f"{to_text(raw)} = {to_text(simplified)}")
    return simplified


def _validate_order(order):
    if isinstance(order, bool) or not isinstance(order, int) or order < 1:
        raise CalculusError(f"Differentiation order must be a positive integer, got {order!r}")


def differentiate(expression, variable='x', order=1):
    """
    Differentiates `expression` `order` times with respect to `variable`,
    narrating every rule applied. Never raises: failures are reported as an
    error step with a null result.
    """
    log = StepLog()
    rules = set()
    clean = expression
    try:
        _validate_order(order)
        clean = cas.strip_function_prefix(expression)
        if '=' in clean:
            clean = clean.split('=')[-1].strip()
        log.add("Original expression", f"Differentiate: f({variable}) = {clean}")

        current = clean
        for level in range(1, order + 1):
            if level > 1:
                log.add("Differentiating again",
                        f"Differentiate {prime_notation(level - 1, variable)} = {current}")
            derivative = _differentiate_once(current, variable, log, rules)
            current = to_text(derivative)
            log.add(f"Derivative of order {level}",
                    f"{prime_notation(level, variable)} = {current}", result=current)

        result = cas.simplify_text(current)
        log.add("Final result", f"{prime_notation(order, variable)} = {result}", result=result, final=True)
        return DerivationResult(
            result=result, steps=log.freeze(), rules=frozenset(rules),
            expression=expression, variable=variable, order=order,
            implicit=False, latex=cas.to_latex(result),
        )
    except Exception as e:
        logger.warning("Differentiation of %r failed: %s", expression, e)
        log.error("Error", f"Could not differentiate '{clean}': {e}")
        return DerivationResult(
            result=None, steps=log.freeze(), rules=frozenset(),
            expression=expression, variable=variable, order=order, implicit=False,
        )


def calculate_derivative(expression, variable='x', order=1, implicit=False, cache=None):
    """
    Entry point used by the API: dispatches to explicit or implicit
    differentiation and memoizes successful results in `cache` when given.
    """
    key = ResultCache.key(expression, variable, order, implicit)
    if cache is not None:
        cached = cache.get(key)
        if cached is not None:
            logger.debug("Cache hit for %s", key)
            return cached

    if implicit:
        result = differentiate_implicit(expression, variable)
    else:
        result = differentiate(expression, variable, order)

    if cache is not None and result.ok:
        cache.put(key, result)
    return result
