# classifier.py
# Structural classification of an expression tree, used to pick a differentiation rule.

from expression_tree import BinaryOp, Negation, Node, UnaryFunction, parse_tree

SUM = 'sum'
PRODUCT = 'product'
QUOTIENT = 'quotient'
POWER = 'power'
CHAIN = 'chain'
SIMPLE = 'simple'

CHAIN_FUNCTIONS = ('sin', 'cos', 'tan', 'ln', 'log', 'exp', 'sqrt')

_OPERATOR_TAGS = {'+': SUM, '-': SUM, '*': PRODUCT, '/': QUOTIENT, '^': POWER}


def unwrap_negation(node):
    """Strips leading negations; returns (sign, operand)."""
    sign = 1
    while isinstance(node, Negation):
        sign = -sign
        node = node.operand
    return sign, node


def classify(expression, variable='x'):
    """
    Returns one of sum / product / quotient / power / chain / simple for the
    top-level node of the expression. A leading minus sign is looked through.
    """
    node = expression if isinstance(expression, Node) else parse_tree(expression)
    _, node = unwrap_negation(node)
    if isinstance(node, BinaryOp):
        return _OPERATOR_TAGS[node.op]
    if isinstance(node, UnaryFunction) and node.name in CHAIN_FUNCTIONS:
        return CHAIN
    return SIMPLE


def split_terms(node):
    """
    Flattens a top-level sum into signed terms [(+1, a), (-1, b), ...].
    Only the left spine is flattened: a parenthesized group on the right of
    an operator stays a single term.
    """
    if isinstance(node, BinaryOp) and node.op in '+-':
        terms = split_terms(node.left)
        sign, term = unwrap_negation(node.right)
        if node.op == '-':
            sign = -sign
        terms.append((sign, term))
        return terms
    return [unwrap_negation(node)]


def split_factors(node):
    """Flattens a top-level product into its factors, left spine only."""
    if isinstance(node, BinaryOp) and node.op == '*':
        return split_factors(node.left) + [node.right]
    return [node]
