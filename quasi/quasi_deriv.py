"""
Symbolic differentiation.

Every sub-expression resolves to a Dual holding the sub-expression itself and
its derivative with respect to one variable, so each rule sees both the
operands and their derivatives. Derivatives are built with light constant
folding so `x^2` differentiates to `2 * x` rather than `2 * x^1 * 1`.
"""
import math
import operator
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

from quasi.quasi_datatypes import Node, Literal, Identifier, Call, is_number
from quasi.quasi_interpreter import LENIENT, MISSING
from quasi.quasi_printer import Printer
from quasi.quasi_runtime import resolve


@dataclass(frozen=True)
class Dual:
    expr: Node
    d: Node


def _is(node: Node, k) -> bool:
    return is_number(node) and node.value == k


def _num(v):
    # Keep exact ints where the arithmetic allows it.
    if isinstance(v, float) and v.is_integer() and abs(v) < 1e15:
        return int(v)
    return v


def _fold(f: Callable, a: Literal, b: Literal) -> Optional[Literal]:
    """Fold two numeric literals, or None when the result is not a finite real."""
    try:
        v = f(a.value, b.value)
    except (OverflowError, ZeroDivisionError):
        return None
    if isinstance(v, complex) or (isinstance(v, float) and not math.isfinite(v)):
        return None
    return Literal(_num(v))


def _dual(value: Any) -> Dual:
    if isinstance(value, Dual):
        return value
    if isinstance(value, Node):
        return Dual(value, Literal(0))
    return Dual(Literal(value), Literal(0))


# =================================================================
# Simplifying constructors
# =================================================================

def add(a: Node, b: Node) -> Node:
    if is_number(a) and is_number(b):
        folded = _fold(operator.add, a, b)
        if folded is not None:
            return folded
    if _is(a, 0):
        return b
    if _is(b, 0):
        return a
    return Call('+', (a, b))


def sub(a: Node, b: Node) -> Node:
    if is_number(a) and is_number(b):
        folded = _fold(operator.sub, a, b)
        if folded is not None:
            return folded
    if _is(b, 0):
        return a
    if _is(a, 0):
        return neg(b)
    return Call('-', (a, b))


def neg(a: Node) -> Node:
    if is_number(a):
        return Literal(-a.value)
    if isinstance(a, Call) and a.op == '-' and len(a.args) == 1 and not a.kwargs:
        return a.args[0]
    return Call('-', (a,))


def mul(a: Node, b: Node) -> Node:
    if is_number(a) and is_number(b):
        folded = _fold(operator.mul, a, b)
        if folded is not None:
            return folded
    if _is(a, 0) or _is(b, 0):
        return Literal(0)
    if _is(a, 1):
        return b
    if _is(b, 1):
        return a
    return Call('*', (a, b))


def div(a: Node, b: Node) -> Node:
    if is_number(a) and is_number(b):
        folded = _fold(operator.truediv, a, b)
        if folded is not None:
            return folded
    if _is(a, 0):
        return Literal(0)
    if _is(b, 1):
        return a
    return Call('/', (a, b))


def power(a: Node, b: Node) -> Node:
    if is_number(a) and is_number(b):
        folded = _fold(operator.pow, a, b)
        if folded is not None:
            return folded
    if _is(b, 0):
        return Literal(1)
    if _is(b, 1):
        return a
    return Call('^', (a, b))


def fn(name: str, *args: Node) -> Node:
    return Call(name, tuple(args))


# =================================================================
# Rules
# =================================================================

def d_plus(e1, e2=MISSING) -> Dual:
    u = _dual(e1)
    if e2 is MISSING:
        return Dual(Call('+', (u.expr,)), u.d)
    v = _dual(e2)
    return Dual(Call('+', (u.expr, v.expr)), add(u.d, v.d))


def d_minus(e1, e2=MISSING) -> Dual:
    u = _dual(e1)
    if e2 is MISSING:
        return Dual(Call('-', (u.expr,)), neg(u.d))
    v = _dual(e2)
    return Dual(Call('-', (u.expr, v.expr)), sub(u.d, v.d))


def d_times(e1, e2) -> Dual:
    u, v = _dual(e1), _dual(e2)
    return Dual(Call('*', (u.expr, v.expr)), add(mul(u.expr, v.d), mul(v.expr, u.d)))


def d_divide(e1, e2) -> Dual:
    u, v = _dual(e1), _dual(e2)
    d = div(sub(mul(u.d, v.expr), mul(u.expr, v.d)), power(v.expr, Literal(2)))
    return Dual(Call('/', (u.expr, v.expr)), d)


def d_power(e1, e2) -> Dual:
    u, v = _dual(e1), _dual(e2)
    expr = Call('^', (u.expr, v.expr))
    if _is(u.d, 0) and _is(v.d, 0):
        d = Literal(0)
    elif _is(v.d, 0):
        # Power rule: d(u^n) = n * u^(n - 1) * u'
        d = mul(mul(v.expr, power(u.expr, sub(v.expr, Literal(1)))), u.d)
    elif _is(u.d, 0):
        # Exponential: d(a^v) = a^v * log(a) * v'
        d = mul(mul(expr, fn('log', u.expr)), v.d)
    else:
        # General: d(u^v) = u^v * (v' * log(u) + v * u' / u)
        inner = add(mul(v.d, fn('log', u.expr)), div(mul(v.expr, u.d), u.expr))
        d = mul(expr, inner)
    return Dual(expr, d)


def _chain(name: str, outer: Callable[[Node], Node]) -> Callable:
    # d f(u) = f'(u) * u'
    def rule(e1) -> Dual:
        u = _dual(e1)
        return Dual(fn(name, u.expr), mul(outer(u.expr), u.d))
    rule.__name__ = f"d_{name}"
    return rule


def d_group(e1) -> Dual:
    u = _dual(e1)
    return Dual(Call('(', (u.expr,)), u.d)


def derivative_rules() -> Dict[str, Callable]:
    return {
        '+': d_plus,
        '-': d_minus,
        '*': d_times,
        '/': d_divide,
        '^': d_power,
        '(': d_group,
        'exp': _chain('exp', lambda u: fn('exp', u)),
        'log': _chain('log', lambda u: div(Literal(1), u)),
        'sin': _chain('sin', lambda u: fn('cos', u)),
        'cos': _chain('cos', lambda u: neg(fn('sin', u))),
        'tan': _chain('tan', lambda u: div(Literal(1), power(fn('cos', u), Literal(2)))),
        'sqrt': _chain('sqrt', lambda u: div(Literal(1), mul(Literal(2), fn('sqrt', u)))),
    }


def unknown_function(op: str) -> Callable:
    """Chain rule through a function with no known derivative.

    The derivative of f in its i-th argument is written as a call to
    `D_f` (one argument) or `D<i>_f` (several), counting keyword arguments
    after the positional ones.
    """
    def rule(*args, **kwargs) -> Dual:
        duals = [_dual(a) for a in args]
        named = [(k, _dual(v)) for k, v in kwargs.items()]
        exprs = tuple(u.expr for u in duals)
        kw_exprs = tuple((k, u.expr) for k, u in named)
        every = duals + [u for _, u in named]
        d: Node = Literal(0)
        for i, u in enumerate(every, start=1):
            name = f"D_{op}" if len(every) == 1 else f"D{i}_{op}"
            d = add(d, mul(Call(name, exprs, kw_exprs), u.d))
        return Dual(Call(op, exprs, kw_exprs), d)
    return rule


# =================================================================
# Entry points
# =================================================================

def deriv(expr: Union[str, Node], wrt: str = "x", strict: str = LENIENT,
          side_effects: Optional[List[Dict[str, Any]]] = None) -> Node:
    """Differentiate `expr` with respect to the variable `wrt`."""
    def variable(name: str) -> Dual:
        return Dual(Identifier(name), Literal(1 if name == wrt else 0))

    result = resolve(expr, derivative_rules(), {}, fallback=unknown_function,
                     default_symbol=variable, strict=strict, side_effects=side_effects)
    return _dual(result).d


def run(source, *, side_effects=None, strict: str = LENIENT, wrt: str = "x") -> str:
    return Printer().pformat(deriv(source, wrt=wrt, strict=strict, side_effects=side_effects))
