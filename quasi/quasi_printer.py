"""
A pretty-printer that turns expression trees back into quasi source.
"""
import math
import re

from quasi.quasi_datatypes import Node, Literal, Identifier, Call
from quasi.quasi_transformer import INFIX_POWER, PREFIX_POWER, RIGHT_ASSOC, infix_power

ATOM_POWER = 100
_NAME_RE = re.compile(r'[A-Za-z_.][A-Za-z0-9_.]*\Z')
# Operators printed without surrounding spaces, as R's deparse does.
_TIGHT = frozenset({'^', ':'})


def _is_infix(op: str) -> bool:
    return op in INFIX_POWER or (len(op) >= 2 and op[0] == op[-1] == '%')


class Printer:
    """Formats expression nodes into readable, valid quasi source strings."""

    def __init__(self):
        self._handlers = {
            Literal: self._pformat_literal,
            Identifier: self._pformat_identifier,
            Call: self._pformat_call,
        }

    def pformat(self, obj) -> str:
        """Public entry point to format a node (or a plain value)."""
        handler = self._handlers.get(type(obj))
        if handler is None:
            if isinstance(obj, Node):
                return repr(obj)
            return self._pformat_literal(Literal(obj))
        return handler(obj)

    # --- Atoms ---

    def _pformat_literal(self, node: Literal) -> str:
        v = node.value
        if v is True: return 'TRUE'
        if v is False: return 'FALSE'
        if v is None: return 'NULL'
        if isinstance(v, str):
            escaped = v.replace('\\', '\\\\').replace('"', '\\"').replace('\n', '\\n').replace('\t', '\\t')
            return f'"{escaped}"'
        if isinstance(v, float):
            if math.isnan(v): return 'NaN'
            if math.isinf(v): return 'Inf' if v > 0 else '-Inf'
            if v.is_integer() and abs(v) < 1e15:
                return str(int(v))
        return repr(v)

    def _pformat_identifier(self, node: Identifier) -> str:
        return self._name(node.name)

    def _name(self, name: str) -> str:
        if _NAME_RE.match(name):
            return name
        return f"`{name}`"

    # --- Calls ---

    def power(self, node) -> int:
        """Binding power of the outermost construct of `node`."""
        if isinstance(node, Call) and not node.kwargs:
            if len(node.args) == 2 and _is_infix(node.op):
                return infix_power(node.op)
            if len(node.args) == 1 and node.op in PREFIX_POWER:
                return PREFIX_POWER[node.op]
        if isinstance(node, Literal) and isinstance(node.value, (int, float)) \
                and not isinstance(node.value, bool) and node.value < 0:
            # Printed with a leading minus sign.
            return PREFIX_POWER['-']
        return ATOM_POWER

    def _wrap(self, node, needs_parens: bool) -> str:
        text = self.pformat(node)
        return f"({text})" if needs_parens else text

    def _pformat_call(self, node: Call) -> str:
        op, args = node.op, node.args
        if not node.kwargs:
            if op == '(' and len(args) == 1:
                return f"({self.pformat(args[0])})"
            if op == '{' and len(args) == 1:
                return f"{{{self.pformat(args[0])}}}"
            if len(args) == 2 and _is_infix(op):
                return self._pformat_infix(node)
            if len(args) == 1 and op in PREFIX_POWER:
                p = PREFIX_POWER[op]
                return f"{op}{self._wrap(args[0], self.power(args[0]) < p)}"
        if op == '[' and args:
            target = self._wrap(args[0], self.power(args[0]) < ATOM_POWER)
            return f"{target}[{self._arglist(args[1:], node.kwargs)}]"
        return f"{self._name(op)}({self._arglist(args, node.kwargs)})"

    def _pformat_infix(self, node: Call) -> str:
        op = node.op
        left, right = node.args
        p = infix_power(op)
        lp, rp = self.power(left), self.power(right)
        if op in RIGHT_ASSOC:
            lhs = self._wrap(left, lp <= p)
            rhs = self._wrap(right, rp < p)
        else:
            lhs = self._wrap(left, lp < p)
            rhs = self._wrap(right, rp <= p)
        if op in _TIGHT:
            return f"{lhs}{op}{rhs}"
        return f"{lhs} {op} {rhs}"

    def _arglist(self, args, kwargs) -> str:
        parts = [self.pformat(a) for a in args]
        parts += [f"{self._name(k)} = {self.pformat(v)}" for k, v in kwargs]
        return ", ".join(parts)
