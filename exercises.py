# exercises.py
# Random practice exercises for the derivative and limit calculators.

import random

_default_rng = random.Random()


def _rng(rng):
    return rng if rng is not None else _default_rng


# --- Derivative exercises ---

def _derivative(expression, description, category, implicit=False):
    return {
        'expression': expression,
        'variable': 'x',
        'order': 1,
        'implicit': implicit,
        'description': description,
        'category': category,
    }


def _polynomial_derivative(rng):
    a, b, c = (rng.randint(1, 10) for _ in range(3))
    return _derivative(f"{a}*x^3 + {b}*x^2 + {c}*x", "Derivative of a polynomial", 'polynomial')


def _product_derivative(rng):
    a, b = rng.randint(1, 5), rng.randint(1, 5)
    return _derivative(f"({a}*x^2) * ({b}*x + 1)", "Derivative of a product (product rule)", 'product')


def _quotient_derivative(rng):
    a, b = rng.randint(1, 5), rng.randint(1, 5)
    return _derivative(f"({a}*x + {b}) / (x^2 + 1)", "Derivative of a quotient (quotient rule)", 'quotient')


def _chain_derivative(rng):
    func = rng.choice(['sin', 'cos', 'sqrt', 'ln'])
    a = rng.randint(1, 5)
    return _derivative(f"{func}({a}*x^2)", "Derivative of a composite function (chain rule)", 'chain')


def _trigonometric_derivative(rng):
    a = rng.randint(1, 5)
    return _derivative(f"sin({a}*x) * cos(x)", "Derivative of trigonometric functions", 'trigonometric')


def _exponential_derivative(rng):
    a = rng.randint(1, 5)
    return _derivative(f"exp({a}*x)", "Derivative of an exponential function", 'exponential')


def _logarithmic_derivative(rng):
    a = rng.randint(1, 5)
    return _derivative(f"ln({a}*x^2 + 1)", "Derivative of a logarithmic function", 'logarithmic')


def _implicit_derivative(rng):
    a = rng.randint(1, 5)
    return _derivative(f"x^2 + y^2 = {a}", "Implicit derivative (circle)", 'implicit', implicit=True)


DERIVATIVE_GENERATORS = {
    'polynomial': _polynomial_derivative,
    'product': _product_derivative,
    'quotient': _quotient_derivative,
    'chain': _chain_derivative,
    'trigonometric': _trigonometric_derivative,
    'exponential': _exponential_derivative,
    'logarithmic': _logarithmic_derivative,
    'implicit': _implicit_derivative,
}


# --- Limit exercises ---

def _limit(expression, point, description, category):
    return {
        'expression': expression,
        'variable': 'x',
        'point': point,
        'description': description,
        'category': category,
    }


def _polynomial_limit(rng):
    a, b = rng.randint(1, 10), rng.randint(1, 10)
    c = rng.randint(0, 9)
    return _limit(f"{a}*x^2 + {b}*x + {c}", rng.randint(0, 4), "Limit of a polynomial function", 'polynomial')


def _rational_zero_over_zero_limit(rng):
    a = rng.randint(1, 5)
    return _limit(f"(x^2 - {a * a}) / (x - {a})", a,
                  "Limit with a 0/0 indetermination (difference of squares)", 'rational_0_0')


def _rational_infinity_limit(rng):
    a, b = rng.randint(1, 5), rng.randint(1, 5)
    return _limit(f"({a}*x^2 + {b}) / (x^2 + 1)", "infinity",
                  "Limit at infinity with an ∞/∞ indetermination", 'rational_inf_inf')


def _radical_limit(rng):
    a = rng.randint(1, 5)
    return _limit(f"(sqrt(x + {a}) - sqrt({a})) / x", 0, "Limit with radicals", 'radical')


def _trigonometric_limit(rng):
    return _limit("sin(x) / x", 0, "Classic trigonometric limit", 'trigonometric')


LIMIT_GENERATORS = {
    'polynomial': _polynomial_limit,
    'rational_0_0': _rational_zero_over_zero_limit,
    'rational_inf_inf': _rational_infinity_limit,
    'radical': _radical_limit,
    'trigonometric': _trigonometric_limit,
}


def _generate(generators, category, rng, kind):
    rng = _rng(rng)
    if category is None:
        category = rng.choice(sorted(generators))
    try:
        generator = generators[category]
    except KeyError:
        raise ValueError(f"Unknown {kind} exercise category '{category}'. "
                         f"Choose one of: {', '.join(generators)}")
    return generator(rng)


def generate_derivative_exercise(category=None, rng=None):
    """Returns a random derivative exercise, optionally of a given category."""
    return _generate(DERIVATIVE_GENERATORS, category, rng, 'derivative')


def generate_limit_exercise(category=None, rng=None):
    """Returns a random limit exercise, optionally of a given category."""
    return _generate(LIMIT_GENERATORS, category, rng, 'limit')
