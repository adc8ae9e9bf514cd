"""
Expression Module
=================
A tiny arithmetic tree shared by the numeric calculator and the
spreadsheet formula renderer.

Every node can be evaluated against a mapping of variable values, or
rendered as spreadsheet formula text against a mapping of variable names
to cell references. Both walks visit the same nodes, so a quantity has a
single definition no matter how it is presented.

Supported nodes:
- Const    literal number
- Var      named input
- BinOp    + - * / ^
- Max      MAX(a, b, ...)
- IfZero   IF(test=0, then, otherwise), evaluating only the chosen branch
"""

import math
import operator
from dataclasses import dataclass
from typing import Mapping

# Spreadsheet operator precedence (higher binds tighter)
PREC_ADD = 3
PREC_MUL = 4
PREC_POW = 5
PREC_ATOM = 9


def _power(base, exponent):
    """``^`` that overflows to a signed infinity, as float ``*`` already does."""
    try:
        return operator.pow(base, exponent)
    except OverflowError:
        odd = float(exponent).is_integer() and int(exponent) % 2 == 1
        return -math.inf if base < 0 and odd else math.inf


_OPERATORS = {
    "+": (operator.add, PREC_ADD),
    "-": (operator.sub, PREC_ADD),
    "*": (operator.mul, PREC_MUL),
    "/": (operator.truediv, PREC_MUL),
    "^": (_power, PREC_POW),
}


def format_number(value) -> str:
    """Shortest exact text for a numeric literal (``100``, ``0.1``, ``9.80665``)."""
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return repr(value)


def as_expr(value) -> "Expr":
    if isinstance(value, Expr):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return Const(value)
    raise TypeError(f"Cannot use {value!r} in an expression")


class Expr:
    """Base node. Subclasses implement evaluate, render and variables."""

    precedence = PREC_ATOM

    def evaluate(self, values: Mapping[str, float]) -> float:
        raise NotImplementedError

    def render(self, refs: Mapping[str, str]) -> str:
        raise NotImplementedError

    def variables(self) -> set:
        raise NotImplementedError

    # -- operator sugar ----------------------------------------------------

    def __add__(self, other):
        return BinOp("+", self, as_expr(other))

    def __radd__(self, other):
        return BinOp("+", as_expr(other), self)

    def __sub__(self, other):
        return BinOp("-", self, as_expr(other))

    def __rsub__(self, other):
        return BinOp("-", as_expr(other), self)

    def __mul__(self, other):
        return BinOp("*", self, as_expr(other))

    def __rmul__(self, other):
        return BinOp("*", as_expr(other), self)

    def __truediv__(self, other):
        return BinOp("/", self, as_expr(other))

    def __rtruediv__(self, other):
        return BinOp("/", as_expr(other), self)

    def __pow__(self, other):
        return BinOp("^", self, as_expr(other))


@dataclass(frozen=True, eq=False)
class Const(Expr):
    value: float

    def evaluate(self, values):
        return self.value

    def render(self, refs):
        text = format_number(self.value)
        # unary minus binds tighter than ^ in spreadsheets; keep it explicit
        return f"({text})" if self.value < 0 else text

    def variables(self):
        return set()


@dataclass(frozen=True, eq=False)
class Var(Expr):
    name: str

    def evaluate(self, values):
        return values[self.name]

    def render(self, refs):
        return refs[self.name]

    def variables(self):
        return {self.name}


@dataclass(frozen=True, eq=False)
class BinOp(Expr):
    op: str
    left: Expr
    right: Expr

    def __post_init__(self):
        if self.op not in _OPERATORS:
            raise ValueError(f"Unsupported operator: {self.op}")

    @property
    def precedence(self):
        return _OPERATORS[self.op][1]

    def evaluate(self, values):
        func = _OPERATORS[self.op][0]
        return func(self.left.evaluate(values), self.right.evaluate(values))

    def render(self, refs):
        left = self.left.render(refs)
        if self.left.precedence < self.precedence:
            left = f"({left})"
        right = self.right.render(refs)
        if self.right.precedence <= self.precedence:
            right = f"({right})"
        return f"{left}{self.op}{right}"

    def variables(self):
        return self.left.variables() | self.right.variables()


@dataclass(frozen=True, eq=False)
class Max(Expr):
    args: tuple

    def __init__(self, *args):
        object.__setattr__(self, "args", tuple(as_expr(a) for a in args))

    def evaluate(self, values):
        return max(arg.evaluate(values) for arg in self.args)

    def render(self, refs):
        return "MAX(" + ",".join(arg.render(refs) for arg in self.args) + ")"

    def variables(self):
        names = set()
        for arg in self.args:
            names |= arg.variables()
        return names


@dataclass(frozen=True, eq=False)
class IfZero(Expr):
    test: Expr
    then: Expr
    otherwise: Expr

    def __post_init__(self):
        object.__setattr__(self, "test", as_expr(self.test))
        object.__setattr__(self, "then", as_expr(self.then))
        object.__setattr__(self, "otherwise", as_expr(self.otherwise))

    def evaluate(self, values):
        if self.test.evaluate(values) == 0:
            return self.then.evaluate(values)
        return self.otherwise.evaluate(values)

    def render(self, refs):
        return (f"IF({self.test.render(refs)}=0,"
                f"{self.then.render(refs)},{self.otherwise.render(refs)})")

    def variables(self):
        return self.test.variables() | self.then.variables() | self.otherwise.variables()
