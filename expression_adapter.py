# expression_adapter.py
# Thin layer over SymPy: parsing / normalization of user input, simplification,
# primitive differentiation, numeric evaluation, solving and output formatting.

import logging
import math
import re

from sympy import (
    S, Basic, Expr, Symbol, Function, Derivative, sympify, latex as sympy_latex,
    simplify as sympy_simplify, diff as sympy_diff, solve as sympy_solve,
    limit as sympy_limit, Limit, AccumBounds,
    sin, cos, tan, cot, sec, csc,
    asin, acos, atan, sinh, cosh, tanh,
    exp, log, sqrt, Abs, sign, pi, E,
)
from sympy.parsing.sympy_parser import (
    parse_expr, standard_transformations,
    implicit_multiplication_application, convert_xor
)

logger = logging.getLogger(__name__)


class CalculusError(Exception):
    """Base class for failures reported by the calculus engine."""


class ExpressionParseError(CalculusError):
    """The input string could not be turned into an expression."""


class EvaluationError(CalculusError):
    """An expression did not evaluate to a finite real number."""


# --- Unicode superscript conversion maps ---
unicode_sup_map = str.maketrans("⁰¹²³⁴⁵⁶⁷⁸⁹⁻", "0123456789-")
superscript_map = {
    '0': '⁰', '1': '¹', '2': '²', '3': '³', '4': '⁴',
    '5': '⁵', '6': '⁶', '7': '⁷', '8': '⁸', '9': '⁹',
    '-': '⁻'
}

FUNCTION_NAMES = [
    'sin', 'cos', 'tan', 'cot', 'sec', 'csc', 'asin', 'acos', 'atan',
    'arcsin', 'arccos', 'arctan', 'sinh', 'cosh', 'tanh',
    'exp', 'log', 'ln', 'sqrt', 'Abs', 'abs', 'sign'
]

ALLOWED_LOCALS = {
    'sin': sin, 'cos': cos, 'tan': tan, 'cot': cot, 'sec': sec, 'csc': csc,
    'asin': asin, 'acos': acos, 'atan': atan,
    'arcsin': asin, 'arccos': acos, 'arctan': atan,
    'sinh': sinh, 'cosh': cosh, 'tanh': tanh,
    'exp': exp, 'log': log, 'ln': log, 'sqrt': sqrt, 'Abs': Abs, 'abs': Abs, 'sign': sign,
    'pi': pi, 'E': E, 'e': E,
}

SYMBOL_CONSTANTS = ('pi',)

TRANSFORMATIONS = standard_transformations + (implicit_multiplication_application, convert_xor)


def unicode_to_normal_expr(expr):
    """
    Replace occurrences like x² or 2⁻³ to x^2 or 2^-3
    """
    def replace(match):
        base = match.group(1)
        supers = match.group(2).translate(unicode_sup_map)
        return f"{base}^{supers}"
    return re.sub(r'([a-zA-Z0-9)])([⁰¹²³⁴⁵⁶⁷⁸⁹⁻]+)', replace, expr)


def superscript(n):
    """Renders an integer as unicode superscript digits (3 -> ³)."""
    return ''.join(superscript_map.get(ch, ch) for ch in str(n))


def normal_to_unicode_expr(expr):
    """
    Convert '^n' / '**n' to unicode superscript and remove '*' for nicer output.
    """
    # Compound exponents such as ^(n+1) are left as they are
    expr = expr.replace('**', '^')

    def numeric_power_to_unicode(match):
        power = match.group(1)
        if power.isdigit() or (power.startswith('-') and power[1:].isdigit()):
            return superscript(power)
        return f"^{power}"

    expr = re.sub(r'\^([a-zA-Z0-9\.\-]+)', numeric_power_to_unicode, expr)
    expr = expr.replace('*', '')
    return expr


def split_symbol_runs(expr_str):
    """
    Splits runs of letters into single-letter symbols joined by '*' ('xy' ->
    'x*y', 'xsin(x)' -> 'x*sin(x)') and puts '*' after a leading digit ('3sin(x)').
    Function names followed by '(', 'pi' and whole function names are kept.
    """
    def split(match):
        run = match.group(0)
        if run in FUNCTION_NAMES or run in SYMBOL_CONSTANTS:
            return run
        followed_by_call = expr_str[match.end():].lstrip().startswith('(')
        pieces = []
        i = 0
        while i < len(run):
            if followed_by_call and run[i:] in FUNCTION_NAMES:
                pieces.append(run[i:])
                break
            if run.startswith('pi', i):
                pieces.append('pi')
                i += 2
                continue
            pieces.append(run[i])
            i += 1
        joined = '*'.join(pieces)
        if match.start() > 0 and expr_str[match.start() - 1].isdigit():
            return '*' + joined
        return joined

    return re.sub(r'(?<![A-Za-z_])[A-Za-z]+(?![A-Za-z_])', split, expr_str)


def insert_implicit_multiplication_rules(expr_str):
    """
    Inserts explicit multiplication so that '2x', '3sin(x)' and ')(' parse reliably.
    Function names are protected by placeholders while the general rules run.
    """
    func_pattern = r'\b(' + '|'.join(FUNCTION_NAMES) + r')\b'
    expr_str = re.sub(rf'(\d+\.?\d*)\s*({func_pattern})', r'\1*\2', expr_str)

    placeholder_map = {}
    for i, name in enumerate(FUNCTION_NAMES):
        token = f"__FN{i}__"
        placeholder_map[token] = name
        expr_str = re.sub(rf'\b{name}\s*\(', f'{token}(', expr_str)

    expr_str = re.sub(r'(\d)([a-zA-Z(])', r'\1*\2', expr_str)
    expr_str = re.sub(r'(\))([a-zA-Z0-9(])', r'\1*\2', expr_str)
    expr_str = re.sub(r'([a-zA-Z0-9])(\()', r'\1*\2', expr_str)

    for token, name in placeholder_map.items():
        expr_str = expr_str.replace(token + '(', name + '(')

    return expr_str


def normalize_expression(expression_string):
    """
    Normalizes a user-supplied expression string: unicode superscripts, '**'
    to '^', canonical 'Abs' and explicit multiplication.
    """
    expr_str = expression_string.strip()
    if not expr_str:
        raise ExpressionParseError("Expression cannot be empty.")
    expr_str = unicode_to_normal_expr(expr_str)
    expr_str = expr_str.replace('**', '^').replace('√', 'sqrt')
    expr_str = re.sub(r'\babs\(', 'Abs(', expr_str)
    expr_str = split_symbol_runs(expr_str)
    return insert_implicit_multiplication_rules(expr_str)


def strip_function_prefix(expression_string):
    """Removes a leading 'f(x) =' so that only the function body remains."""
    return re.sub(r'^\s*[a-zA-Z]\s*\(\s*[a-zA-Z]\s*\)\s*=\s*', '', expression_string).strip()


# --- Core adapter operations ---

def parse(expression_string):
    """
    Parses a user expression into a SymPy expression.
    Raises ExpressionParseError on malformed input.
    """
    if isinstance(expression_string, Basic):
        return expression_string
    if not isinstance(expression_string, str):
        expression_string = str(expression_string)
    expr_processed = normalize_expression(expression_string)
    try:
        parsed = parse_expr(expr_processed, transformations=TRANSFORMATIONS, local_dict=ALLOWED_LOCALS)
    except Exception as e:
        raise ExpressionParseError(f"Could not parse '{expression_string.strip()}': {e}") from e
    if not isinstance(parsed, Expr):
        raise ExpressionParseError(f"'{expression_string.strip()}' is not a mathematical expression")
    return parsed


def _symbol(variable):
    return variable if isinstance(variable, Symbol) else Symbol(variable)


def simplify(expression):
    return sympy_simplify(parse(expression))


def simplify_text(expression_string):
    """Simplifies a string expression and returns its text form."""
    return to_text(simplify(expression_string))


def differentiate(expression, variable, order=1):
    """Generic symbolic derivative of an expression with respect to `variable`."""
    try:
        return sympy_diff(parse(expression), _symbol(variable), order)
    except ExpressionParseError:
        raise
    except Exception as e:
        raise CalculusError(f"Could not differentiate '{expression}': {e}") from e


def differentiate_with_dependent(expression, variable, dependent, placeholder):
    """
    Differentiates with respect to `variable` while treating `dependent` as a
    function of it: the dependent symbol is replaced by dependent(variable),
    differentiated, and every Derivative(dependent(variable), variable) is
    rewritten as the `placeholder` symbol.
    """
    t = _symbol(variable)
    dependent_symbol = _symbol(dependent)
    as_function = Function(str(dependent_symbol))(t)
    try:
        derived = sympy_diff(parse(expression).subs(dependent_symbol, as_function), t)
    except ExpressionParseError:
        raise
    except Exception as e:
        raise CalculusError(f"Could not differentiate '{expression}': {e}") from e
    derived = derived.subs(Derivative(as_function, t), _symbol(placeholder))
    return derived.subs(as_function, dependent_symbol)


def evaluate(expression, bindings, finite=True):
    """
    Numerically evaluates an expression for the given {name: value} bindings.
    Returns a finite float; raises EvaluationError for NaN, infinities,
    non-real values or unbound symbols. With finite=False a real value too
    large for a float is returned as +-inf instead.
    """
    expr = parse(expression)
    substitutions = {_symbol(name): sympify(value) for name, value in bindings.items()}
    try:
        value = expr.subs(substitutions)
        if value.has(S.NaN, S.ComplexInfinity, S.Infinity, S.NegativeInfinity):
            raise EvaluationError(f"'{to_text(expr)}' is undefined for {_describe(bindings)}")
        value = value.evalf()
    except EvaluationError:
        raise
    except Exception as e:
        raise EvaluationError(f"Could not evaluate '{to_text(expr)}' for {_describe(bindings)}: {e}") from e

    if value.free_symbols:
        names = ', '.join(sorted(str(s) for s in value.free_symbols))
        raise EvaluationError(f"Unbound symbols in '{to_text(expr)}': {names}")
    if value.has(S.NaN, S.ComplexInfinity, S.Infinity, S.NegativeInfinity):
        raise EvaluationError(f"'{to_text(expr)}' is undefined for {_describe(bindings)}")

    real_part, imaginary_part = value.as_real_imag()
    try:
        real_value = float(real_part)
        imaginary_value = float(imaginary_part)
    except (TypeError, ValueError) as e:
        raise EvaluationError(f"Could not evaluate '{to_text(expr)}' for {_describe(bindings)}: {e}") from e
    if abs(imaginary_value) > 1e-12:
        raise EvaluationError(f"'{to_text(expr)}' is not real for {_describe(bindings)}")
    if math.isinf(real_value) and not finite:
        return real_value
    if not math.isfinite(real_value):
        raise EvaluationError(f"'{to_text(expr)}' is not finite for {_describe(bindings)}")
    return real_value


def one_sided_limit(expression, variable, point, direction):
    """
    Limit of an expression as `variable` approaches `point` from one side
    ('+' or '-'). Returns a float, +-inf allowed; raises EvaluationError when
    SymPy finds no real limit.
    """
    expr = parse(expression)
    bindings = {variable: point}
    try:
        value = sympy_limit(expr, _symbol(variable), sympify(point), dir=direction)
    except Exception as e:
        raise EvaluationError(f"Could not compute the limit of '{to_text(expr)}' for {_describe(bindings)}: {e}") from e
    if value == S.Infinity:
        return math.inf
    if value == S.NegativeInfinity:
        return -math.inf
    if isinstance(value, AccumBounds) or value.has(S.NaN, S.ComplexInfinity, Limit):
        raise EvaluationError(f"'{to_text(expr)}' has no limit for {_describe(bindings)}")
    return evaluate(value, {})


def solve_for(expression, placeholder):
    """Solves `expression = 0` for `placeholder`; returns a (possibly empty) list."""
    return list(sympy_solve(parse(expression), _symbol(placeholder)))


def _describe(bindings):
    return ', '.join(f"{name} = {value}" for name, value in bindings.items())


# --- Helpers for Formatting Output ---

def to_text(expression):
    """Plain text form of an expression using '^' for powers."""
    return str(expression).replace('**', '^')


def to_display(expression):
    """Display form with unicode superscripts."""
    return normal_to_unicode_expr(to_text(expression))


def to_latex(expression):
    try:
        return sympy_latex(parse(expression))
    except Exception:
        return to_text(expression)


def format_number(value):
    """Formats a numeric result for step narration."""
    if value is None:
        return "undefined"
    if math.isinf(value):
        return "∞" if value > 0 else "-∞"
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.6g}"


def latex_preview(expression_string):
    """
    Parses a string and attempts to convert it directly to LaTeX format.
    Returns (latex_string, error_message_or_None).
    """
    if not expression_string.strip():
        return "", None

    if '=' in expression_string:
        lhs_str, rhs_str = expression_string.split('=', 1)
        try:
            lhs = parse(lhs_str)
            rhs = parse(rhs_str) if rhs_str.strip() else S.Zero
        except ExpressionParseError as e:
            return None, f"❌ Error parsing equation: {e}"
        return f"{sympy_latex(lhs)} = {sympy_latex(rhs)}", None

    try:
        parsed = parse(expression_string)
    except ExpressionParseError as e:
        return None, f"❌ Error parsing expression: {e}"
    return sympy_latex(parsed), None
