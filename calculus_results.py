# calculus_results.py
# Step records and the result objects returned by the derivative and limit engines.

import math
from dataclasses import dataclass
from typing import Optional, Tuple, FrozenSet

from expression_adapter import to_display


@dataclass(frozen=True)
class Step:
    """One narrated inference of a solution."""
    title: str
    content: str
    result: Optional[str] = None
    final: bool = False
    error: bool = False

    def to_dict(self):
        data = {'title': self.title, 'content': self.content}
        if self.result is not None:
            data['result'] = self.result
        if self.final:
            data['final'] = True
        if self.error:
            data['error'] = True
        return data


class StepLog:
    """
    Append-only builder of steps. Each top-level engine call owns exactly one
    log; helpers receive it by reference and only ever append to it.
    """

    def __init__(self):
        self._steps = []

    def add(self, title, content, result=None, final=False, error=False):
        if final and error:
            raise ValueError("A step cannot be both final and an error")
        step = Step(title, content, result=result, final=final, error=error)
        self._steps.append(step)
        return step

    def extend(self, drafts):
        """Appends (title, content) pairs produced by a strategy."""
        for title, content in drafts:
            self.add(title, content)

    def error(self, title, content):
        return self.add(title, content, error=True)

    def freeze(self):
        return tuple(self._steps)

    def __len__(self):
        return len(self._steps)


def _number_to_json(value):
    if value is None:
        return None
    if math.isinf(value):
        return 'infinity' if value > 0 else '-infinity'
    return value


@dataclass(frozen=True)
class DerivationResult:
    result: Optional[str]
    steps: Tuple[Step, ...]
    rules: FrozenSet[str]
    expression: str
    variable: str
    order: int = 1
    implicit: bool = False
    latex: Optional[str] = None
    isolated: bool = True

    @property
    def ok(self):
        return self.result is not None and not self.steps[-1].error

    def to_dict(self):
        return {
            'result': self.result,
            'display': to_display(self.result) if self.result is not None else None,
            'latex': self.latex,
            'steps': [step.to_dict() for step in self.steps],
            'rules': sorted(self.rules),
            'expression': self.expression,
            'variable': self.variable,
            'order': self.order,
            'implicit': self.implicit,
            'isolated': self.isolated,
        }


@dataclass(frozen=True)
class LimitResult:
    result: Optional[float]
    steps: Tuple[Step, ...]
    expression: str
    variable: str
    point: Optional[float]
    indetermination: Optional[str] = None
    factorization_method: Optional[str] = None

    @property
    def ok(self):
        return self.result is not None

    def to_dict(self):
        return {
            'result': _number_to_json(self.result),
            'steps': [step.to_dict() for step in self.steps],
            'indetermination': self.indetermination,
            'factorizationMethod': self.factorization_method,
            'expression': self.expression,
            'variable': self.variable,
            'point': _number_to_json(self.point),
        }
