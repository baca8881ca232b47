# expression_tree.py
# Immutable expression tree (Literal / Symbol / BinaryOp / UnaryFunction / Negation)
# and a small recursive-descent parser over the calculator grammar.

import re
from dataclasses import dataclass

from expression_adapter import FUNCTION_NAMES, ExpressionParseError, normalize_expression

KNOWN_FUNCTIONS = tuple(FUNCTION_NAMES)
KNOWN_CONSTANTS = ('pi', 'E', 'e')

# Binding strength used when rendering back to text
_PRECEDENCE = {'+': 1, '-': 1, '*': 2, '/': 2, '^': 4}

_TOKEN_RE = re.compile(r"\s*(?:(\d+\.?\d*|\.\d+)|([A-Za-z_][A-Za-z_0-9]*)|(\*\*|[-+*/^()]))")


class ExpressionSyntaxError(ExpressionParseError):
    """Raised when a string does not follow the expression grammar."""


class Node:
    precedence = 5

    def __str__(self):
        return self.render()

    def contains(self, name):
        return name in self.symbols()

    def symbols(self):
        return frozenset()


@dataclass(frozen=True)
class Literal(Node):
    value: str

    def render(self):
        return self.value


@dataclass(frozen=True)
class Symbol(Node):
    name: str

    def render(self):
        return self.name

    def symbols(self):
        return frozenset([self.name])


@dataclass(frozen=True)
class BinaryOp(Node):
    op: str
    left: Node
    right: Node

    @property
    def precedence(self):
        return _PRECEDENCE[self.op]

    def render(self):
        left = self.left.render()
        right = self.right.render()
        if self.op == '^':
            # right associative: parenthesize a compound base, or a compound exponent
            if self.left.precedence <= self.precedence:
                left = f"({left})"
            if self.right.precedence < 5:
                right = f"({right})"
            return f"{left}^{right}"
        if self.left.precedence < self.precedence:
            left = f"({left})"
        # left associative: a same-level right operand needs parentheses for - and /
        if self.right.precedence < self.precedence or (
                self.right.precedence == self.precedence and self.op in '-/'):
            right = f"({right})"
        if self.op in '+-':
            return f"{left} {self.op} {right}"
        return f"{left}{self.op}{right}"

    def symbols(self):
        return self.left.symbols() | self.right.symbols()


@dataclass(frozen=True)
class UnaryFunction(Node):
    name: str
    argument: Node

    def render(self):
        return f"{self.name}({self.argument.render()})"

    def symbols(self):
        return self.argument.symbols()


@dataclass(frozen=True)
class Negation(Node):
    operand: Node
    precedence = 3

    def render(self):
        inner = self.operand.render()
        if self.operand.precedence <= self.precedence:
            inner = f"({inner})"
        return f"-{inner}"

    def symbols(self):
        return self.operand.symbols()


# --- Tokenizer ---

def _tokenize(text):
    tokens = []
    position = 0
    text = text.rstrip()
    while position < len(text):
        match = _TOKEN_RE.match(text, position)
        if not match:
            raise ExpressionSyntaxError(f"Unexpected character '{text[position]}' at position {position}")
        number, name, operator = match.groups()
        if number is not None:
            tokens.append(('number', number))
        elif name is not None:
            tokens.append(('name', name))
        else:
            tokens.append(('op', '^' if operator == '**' else operator))
        position = match.end()
    return tokens


class _Parser:
    """
    expr   := term (('+' | '-') term)*
    term   := unary (('*' | '/') unary)*
    unary  := ('-' | '+') unary | power
    power  := atom ('^' unary)?
    atom   := number | name '(' expr ')' | name | '(' expr ')'
    """

    def __init__(self, tokens, source):
        self.tokens = tokens
        self.source = source
        self.index = 0

    def peek(self):
        if self.index < len(self.tokens):
            return self.tokens[self.index]
        return (None, None)

    def take(self):
        token = self.peek()
        self.index += 1
        return token

    def expect(self, value):
        kind, token = self.take()
        if token != value:
            found = token if token is not None else 'end of input'
            raise ExpressionSyntaxError(f"Expected '{value}' but found '{found}' in '{self.source}'")

    def parse(self):
        if not self.tokens:
            raise ExpressionSyntaxError("Expression cannot be empty.")
        node = self.expr()
        if self.index != len(self.tokens):
            raise ExpressionSyntaxError(f"Unexpected '{self.peek()[1]}' in '{self.source}'")
        return node

    def expr(self):
        node = self.term()
        while self.peek() in (('op', '+'), ('op', '-')):
            op = self.take()[1]
            node = BinaryOp(op, node, self.term())
        return node

    def term(self):
        node = self.unary()
        while self.peek() in (('op', '*'), ('op', '/')):
            op = self.take()[1]
            node = BinaryOp(op, node, self.unary())
        return node

    def unary(self):
        if self.peek() == ('op', '-'):
            self.take()
            return Negation(self.unary())
        if self.peek() == ('op', '+'):
            self.take()
            return self.unary()
        return self.power()

    def power(self):
        base = self.atom()
        if self.peek() == ('op', '^'):
            self.take()
            return BinaryOp('^', base, self.unary())
        return base

    def atom(self):
        kind, value = self.take()
        if kind == 'number':
            return Literal(value)
        if kind == 'name':
            if value in KNOWN_FUNCTIONS and self.peek() == ('op', '('):
                self.take()
                argument = self.expr()
                self.expect(')')
                return UnaryFunction(value, argument)
            if value in KNOWN_CONSTANTS:
                return Literal('E' if value == 'e' else value)
            return Symbol(value)
        if value == '(':
            node = self.expr()
            self.expect(')')
            return node
        found = value if value is not None else 'end of input'
        raise ExpressionSyntaxError(f"Unexpected '{found}' in '{self.source}'")


def parse_tree(text):
    """
    Parses a user expression into an immutable tree.
    The text goes through the same normalization as the SymPy parser, so `2x`
    and `x²` are accepted here as well.
    """
    if isinstance(text, Node):
        return text
    normalized = normalize_expression(text)
    return _Parser(_tokenize(normalized), text.strip()).parse()


# --- Builders ---

def product_of(factors):
    """Rebuilds a left-nested product from a list of factors."""
    if not factors:
        return Literal('1')
    node = factors[0]
    for factor in factors[1:]:
        node = BinaryOp('*', node, factor)
    return node
