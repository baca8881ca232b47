# implicit_derivatives.py
# Implicit differentiation of an equation F(x, y) = G(x, y), treating y as a
# function of x, followed by isolation of y'.

import logging

from sympy import Add, Integer, S, Symbol as SympySymbol, expand

import expression_adapter as cas
from calculus_results import DerivationResult, StepLog
from classifier import split_factors, split_terms, unwrap_negation
from expression_adapter import CalculusError, to_text
from expression_tree import BinaryOp, Symbol, parse_tree, product_of

logger = logging.getLogger(__name__)

RULE_IMPLICIT = 'implicit differentiation'
RULE_CHAIN = 'chain rule'
RULE_PRODUCT = 'product rule'

ERROR_RESULT = "Error"


def prime_placeholder(dependent):
    """Symbol standing in for y' so that it never collides with SymPy's own derivative notation."""
    return SympySymbol(f"__{dependent}_prime")


class _ImplicitContext:
    """Names shared by the helpers of one implicit differentiation."""

    def __init__(self, variable, dependent):
        self.variable = variable
        self.dependent = dependent
        self.prime = prime_placeholder(dependent)
        self.rules = {RULE_IMPLICIT, RULE_CHAIN}

    def render(self, expression):
        return to_text(expression).replace(str(self.prime), f"{self.dependent}'")


def _derive_term(term, ctx):
    """
    Differentiates one additive term with respect to x, y being a function of x.
    Returns (derivative, how) where the derivative carries the y' placeholder.
    """
    x, y = ctx.variable, ctx.dependent
    if not term.contains(y):
        return cas.differentiate(str(term), x), "ordinary derivative"

    factors = split_factors(term)
    y_factors = [f for f in factors if f.contains(y)]
    others = [f for f in factors if not f.contains(y)]

    if any(f.contains(x) for f in others):
        ctx.rules.add(RULE_PRODUCT)
        x_part = product_of(others)
        y_part = product_of(y_factors)
        x_part_derivative = cas.differentiate(str(x_part), x)
        y_part_derivative, _ = _derive_term(y_part, ctx)
        derivative = x_part_derivative * cas.parse(str(y_part)) + cas.parse(str(x_part)) * y_part_derivative
        return derivative, f"product rule with u = {x_part}, v = {y_part}"

    coefficient = cas.parse(str(product_of(others))) if others else Integer(1)
    if len(y_factors) == 1:
        sign, core = unwrap_negation(y_factors[0])
        if core == Symbol(y):
            return sign * coefficient * ctx.prime, f"linear in {y}"
        if (isinstance(core, BinaryOp) and core.op == '^' and core.left == Symbol(y)
                and not core.right.symbols()):
            n = cas.parse(str(core.right))
            return sign * n * coefficient * SympySymbol(y)**(n - 1) * ctx.prime, "chain rule on a power of " + y

    derivative = cas.differentiate_with_dependent(str(term), x, y, ctx.prime)
    return derivative, f"chain rule with {y} = {y}({x})"


def _derive_side(side, ctx, log, side_name):
    node = parse_tree(side)
    total = S.Zero
    lines = []
    for sign, term in split_terms(node):
        derivative, how = _derive_term(term, ctx)
        total += sign * derivative
        lines.append(f"d/d{ctx.variable}[{term}] = {ctx.render(derivative)}   ({how})")
    log.add(f"Differentiating the {side_name} side",
            f"d/d{ctx.variable}[{side}] = {ctx.render(total)}\n" + '\n'.join(lines))
    return total


def isolate_linear(equation, ctx, log):
    """
    Manual isolation of y' in `equation = 0`: terms carrying the placeholder
    form the coefficient (placeholder set to 1), the others the constant part,
    and y' = -constant/coefficient. Returns None when y' does not appear.
    """
    terms = Add.make_args(expand(equation))
    with_prime = [t for t in terms if t.has(ctx.prime)]
    without_prime = [t for t in terms if not t.has(ctx.prime)]
    if not with_prime:
        log.add(f"Cannot isolate {ctx.dependent}'",
                f"No term of {ctx.render(equation)} = 0 contains {ctx.dependent}', "
                f"so it cannot be isolated automatically")
        return None

    coefficient = cas.simplify(Add(*[t.subs(ctx.prime, 1) for t in with_prime]))
    constant = cas.simplify(Add(*without_prime))
    if coefficient == 0:
        log.add(f"Cannot isolate {ctx.dependent}'",
                f"The coefficient of {ctx.dependent}' simplifies to 0")
        return None

    solution = cas.simplify(-constant / coefficient)
    log.add(f"Isolating {ctx.dependent}' manually",
            f"Coefficient of {ctx.dependent}': {to_text(coefficient)}\n"
            f"Remaining terms: {to_text(constant)}\n"
            f"{ctx.dependent}' = -({to_text(constant)})/({to_text(coefficient)}) = {to_text(solution)}")
    return solution


def _solve_for_prime(equation, ctx, log):
    log.add(f"Solving for {ctx.dependent}'",
            f"Substitute {ctx.dependent}' with a placeholder and solve {ctx.render(equation)} = 0 for it")
    try:
        solutions = cas.solve_for(equation, ctx.prime)
    except Exception as e:
        logger.debug("Automatic solve failed for %s: %s", equation, e)
        solutions = []

    if solutions:
        solution = cas.simplify(solutions[0])
        log.add(f"Solution for {ctx.dependent}'", f"{ctx.dependent}' = {to_text(solution)}")
        return solution

    log.add("Automatic solve unavailable", f"Falling back to collecting the coefficient of {ctx.dependent}'")
    return isolate_linear(equation, ctx, log)


def _split_equation(equation):
    clean = cas.strip_function_prefix(equation)
    if clean.count('=') > 1:
        raise CalculusError(f"An implicit equation must contain at most one '=' sign: '{clean}'")
    if '=' in clean:
        lhs, rhs = (side.strip() for side in clean.split('='))
    else:
        lhs, rhs = clean, '0'
    if not lhs:
        raise CalculusError("The left side of the equation is empty")
    return lhs, rhs or '0'


def differentiate_implicit(equation, variable='x', dependent='y'):
    """
    Differentiates both sides of `equation` with respect to `variable`,
    treating `dependent` as a function of it, and isolates the derivative.
    A missing '=' means 'expression = 0'.
    """
    log = StepLog()
    ctx = _ImplicitContext(variable, dependent)
    try:
        lhs, rhs = _split_equation(equation)
        log.add("Original equation", f"{lhs} = {rhs}")
        log.add("Implicit differentiation",
                f"Differentiate both sides with respect to {variable}, treating {dependent} as {dependent}({variable}): "
                f"every {dependent} term picks up a factor {dependent}' = d{dependent}/d{variable}")

        left = _derive_side(lhs, ctx, log, "left")
        right = _derive_side(rhs, ctx, log, "right")
        log.add("Derivatives of both sides",
                f"d/d{variable}[{lhs}] = {ctx.render(left)}\nd/d{variable}[{rhs}] = {ctx.render(right)}")

        combined = cas.simplify(left - right)
        zero_form = f"{ctx.render(combined)} = 0"
        log.add("Derived equation", zero_form)

        solution = _solve_for_prime(combined, ctx, log)
        if solution is None:
            log.add("Result", f"Derived equation (d{dependent}/d{variable} not isolated): {zero_form}",
                    result=zero_form, final=True)
            return DerivationResult(
                result=zero_form, steps=log.freeze(), rules=frozenset(ctx.rules),
                expression=equation, variable=variable, order=1, implicit=True,
                latex=None, isolated=False,
            )

        result = ctx.render(solution)
        log.add("Final result", f"d{dependent}/d{variable} = {result}", result=result, final=True)
        return DerivationResult(
            result=result, steps=log.freeze(), rules=frozenset(ctx.rules),
            expression=equation, variable=variable, order=1, implicit=True,
            latex=cas.to_latex(solution),
        )
    except Exception as e:
        logger.warning("Implicit differentiation of %r failed: %s", equation, e)
        log.error("Error", f"Error in implicit differentiation of '{equation}': {e}")
        return DerivationResult(
            result=ERROR_RESULT, steps=log.freeze(), rules=frozenset(ctx.rules),
            expression=equation, variable=variable, order=1, implicit=True,
            isolated=False,
        )
