r"""
Translates R-style math expressions into LaTeX math.

    >>> to_math("sin(x + pi / 2)")
    '\\sin(x + \\pi / 2)'
"""
from typing import Any, Callable, Dict, List, Optional, Union

from quasi.quasi_datatypes import Node
from quasi.quasi_interpreter import (
    LENIENT, MISSING, binary_op, unary_op, template_op, paste
)
from quasi.quasi_runtime import resolve
from quasi.quasi_tables import load_table


def greek_symbols() -> Dict[str, str]:
    return {name: "\\" + name for name in load_table("latex")["greek"]}


def _signed(sep: str, prefix: str):
    # Binary when given two operands, prefix sign when given one.
    def resolve_sign(e1, e2=MISSING):
        if e2 is MISSING:
            return f"{prefix}{e1}"
        return f"{e1}{sep}{e2}"
    return resolve_sign


def frac(a, b):
    return f"\\frac{{{a}}}{{{b}}}"


def latex_operators() -> Dict[str, Callable]:
    table = load_table("latex")
    ops: Dict[str, Callable] = {}
    for op, sep in table["binary"].items():
        ops[op] = binary_op(sep)
    for op, (left, right) in table["unary"].items():
        ops[op] = unary_op(left, right)
    ops["+"] = _signed(table["binary"]["+"], "+")
    ops["-"] = _signed(table["binary"]["-"], "-")
    ops["!"] = unary_op("\\neg ", "")
    ops["frac"] = frac
    ops["paste"] = paste
    return ops


def latex_fallback(op: str) -> Callable:
    return template_op(load_table("latex")["unknown"], op)


def to_math(expr: Union[str, Node], strict: str = LENIENT,
            side_effects: Optional[List[Dict[str, Any]]] = None) -> str:
    """Render `expr` as LaTeX math.

    Greek letter names become their LaTeX commands, other identifiers are
    kept as they are written, and functions with no translation are shown
    as `\\mathtt{f} \\left( ... \\right )`.
    """
    return resolve(expr, latex_operators(), greek_symbols(),
                   fallback=latex_fallback, strict=strict, side_effects=side_effects)


def run(source, *, side_effects=None, strict: str = LENIENT) -> str:
    return to_math(source, strict=strict, side_effects=side_effects)
