"""
Transforms the raw parser AST into expression nodes using quasi_datatypes.
"""

import re
from typing import Any, List, Optional, Tuple

from quasi.quasi_datatypes import Node, Literal, Identifier, Call, ParseError


# Binding powers, loosest first. Mirrors R's operator precedence.
INFIX_POWER = {
    '~': 2,
    '|': 4, '||': 4,
    '&': 6, '&&': 6,
    '==': 10, '!=': 10, '<': 10, '>': 10, '<=': 10, '>=': 10,
    '+': 12, '-': 12,
    '*': 14, '/': 14,
    # %op% operators: 16
    ':': 18,
    '^': 22,
}
SPECIAL_POWER = 16
PREFIX_POWER = {'~': 2, '!': 8, '-': 20, '+': 20}
RIGHT_ASSOC = frozenset({'^'})

NAMED_LITERALS = {
    'TRUE': True,
    'FALSE': False,
    'NULL': None,
    'Inf': float('inf'),
    'NaN': float('nan'),
}

_ESCAPES = {'n': '\n', 't': '\t', 'r': '\r', '0': '\0', '\\': '\\', '"': '"', "'": "'"}
_ESCAPE_RE = re.compile(r'\\(.)')


def infix_power(op: str) -> int:
    if op.startswith('%') and op.endswith('%') and len(op) >= 2:
        return SPECIAL_POWER
    return INFIX_POWER[op]


def _unescape(text: str) -> str:
    return _ESCAPE_RE.sub(lambda m: _ESCAPES.get(m.group(1), m.group(1)), text)


Token = Tuple[str, Any, Optional[dict]]


class _Folder:
    """Precedence-climbing over a flat token list (prefix ops, atoms, infix ops)."""

    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.pos = 0

    def fold(self) -> Node:
        node = self._parse(0)
        if self.pos != len(self.tokens):
            kind, val, loc = self.tokens[self.pos]
            raise ParseError(f"unexpected {kind} {val!r}")
        return node

    def _parse(self, min_power: int) -> Node:
        if self.pos >= len(self.tokens):
            raise ParseError("expression ended early")
        kind, val, loc = self.tokens[self.pos]
        self.pos += 1
        if kind == 'prefix':
            operand = self._parse(PREFIX_POWER[val])
            lhs = Call(val, (operand,), loc=loc)
        elif kind == 'atom':
            lhs = val
        else:
            raise ParseError(f"operator {val!r} is missing its left operand")

        while self.pos < len(self.tokens):
            kind, op, loc = self.tokens[self.pos]
            if kind != 'infix':
                raise ParseError(f"expected an operator, found {kind}")
            power = infix_power(op)
            if power < min_power:
                break
            self.pos += 1
            rhs = self._parse(power if op in RIGHT_ASSOC else power + 1)
            lhs = Call(op, (lhs, rhs), loc=loc)
        return lhs


class QuasiTransformer:
    def _loc(self, node: dict) -> Optional[dict]:
        line = node.get('line'); col = node.get('col')
        if line is None or col is None:
            return None
        return {'line': line, 'col': col}

    def _children(self, node: dict) -> List[Any]:
        """Child nodes with quantifier lists flattened and empties dropped."""
        raw = node.get('children', [])
        if isinstance(raw, dict):
            raw = list(raw.values())
        out = []
        stack = [raw]
        while stack:
            item = stack.pop()
            if isinstance(item, list):
                stack.extend(reversed(item))
            elif item is not None:
                out.append(item)
        return out

    def transform(self, node: Any) -> Any:
        if isinstance(node, list):
            return [self.transform(n) for n in node]

        if not isinstance(node, dict):
            return node

        tag = node.get('tag')
        children = self._children(node)

        match tag:
            case 'expr':
                return self._fold(children)
            case 'postfix':
                return self._postfix(children)
            case 'call':
                return self._call(node, children)
            case 'group':
                return Call('(', (self._single(children),), loc=self._loc(node))
            case 'block':
                return Call('{', (self._single(children),), loc=self._loc(node))

            # Atomics
            case 'number':
                return Literal(self._number(node))
            case 'string':
                text = node.get('text', '')
                return Literal(_unescape(text[1:-1]))
            case 'name':
                text = node.get('text', '')
                if text in NAMED_LITERALS:
                    return Literal(NAMED_LITERALS[text])
                return Identifier(self._name_text(text))

            case 'args':
                return [self._arg(c) for c in children]
            case 'subscript':
                items = []
                for c in children:
                    out = self.transform(c)
                    items.extend(out if isinstance(out, list) else [out])
                return items
            case 'keyword':
                return self._arg(node)

        # Wrapper rules (program, primary, arg, operand, ...) that were not promoted
        if len(children) == 1:
            return self.transform(children[0])
        raise ParseError(f"cannot transform node with tag {tag!r}")

    def _single(self, children: List[Any]) -> Node:
        if len(children) != 1:
            raise ParseError(f"expected one expression, found {len(children)}")
        return self.transform(children[0])

    def _number(self, node: dict):
        # Integers stay exact ints; anything with a point or exponent is a float.
        txt = node.get('text')
        if isinstance(txt, str):
            if re.fullmatch(r'\d+', txt):
                return int(txt)
            return float(txt)
        return node['value']

    def _name_text(self, text: str) -> str:
        if len(text) >= 2 and text[0] == text[-1] == '`':
            return text[1:-1]
        return text

    def _tokens(self, children: List[Any]) -> List[Token]:
        tokens: List[Token] = []
        for child in children:
            tag = child.get('tag') if isinstance(child, dict) else None
            if tag == 'operator':
                tokens.append(('infix', child['text'], self._loc(child)))
            elif tag == 'operand':
                tokens.extend(self._tokens(self._children(child)))
            elif tag == 'prefix':
                tokens.append(('prefix', child['text'], self._loc(child)))
            else:
                tokens.append(('atom', self.transform(child), None))
        return tokens

    def _fold(self, children: List[Any]) -> Node:
        return _Folder(self._tokens(children)).fold()

    def _postfix(self, children: List[Any]) -> Node:
        head, *subscripts = children
        node = self.transform(head)
        for sub in subscripts:
            args, kwargs = self._split(self.transform(sub))
            node = Call('[', (node,) + args, kwargs, loc=self._loc(sub))
        return node

    def _call(self, node: dict, children: List[Any]) -> Call:
        head, *rest = children
        op = self._name_text(head.get('text', ''))
        items: List[Any] = []
        for r in rest:
            out = self.transform(r)
            items.extend(out if isinstance(out, list) else [out])
        args, kwargs = self._split(items)
        return Call(op, args, kwargs, loc=self._loc(node))

    def _arg(self, node: Any):
        if isinstance(node, dict) and node.get('tag') == 'keyword':
            name_node, value = self._children(node)
            return ('kw', self._name_text(name_node.get('text', '')), self.transform(value))
        return self.transform(node)

    def _split(self, items: Any) -> Tuple[tuple, tuple]:
        if not isinstance(items, list):
            items = [items]
        args = []
        kwargs = []
        for item in items:
            if isinstance(item, tuple) and item and item[0] == 'kw':
                kwargs.append((item[1], item[2]))
            else:
                args.append(item)
        return tuple(args), tuple(kwargs)
