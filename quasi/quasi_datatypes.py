"""
Defines the core data types for quasi.

This module provides the expression node classes produced by capture,
the read-only Layer and Environment types used for name resolution, and
the error classes raised across the package.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional, Tuple


# =================================================================
# Errors
# =================================================================

class QuasiError(Exception):
    """Base class for all quasi errors."""
    pass


class ParseError(QuasiError):
    def __init__(self, message: str, line: Optional[int] = None, col: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.line = line
        self.col = col

    def __str__(self) -> str:
        if self.line is not None and self.col is not None:
            return f"{self.message} (line {self.line}, col {self.col})"
        return self.message


class ArityError(QuasiError):
    """A resolver was invoked with arguments it does not accept."""
    def __init__(self, op: str, expected: str, got: int, loc: Optional[Dict[str, Any]] = None,
                 problem: Optional[str] = None):
        self.op = op
        self.expected = expected
        self.got = got
        self.loc = loc
        where = ""
        if loc and loc.get('line') is not None:
            where = f" at line {loc['line']}, col {loc.get('col')}"
        problem = problem or f"expects {expected} argument(s), got {got}"
        super().__init__(f"({op}) {problem}{where}")


class UnknownOperatorError(QuasiError):
    """Raised in strict mode when an operator has no specific resolver."""
    def __init__(self, op: str, loc: Optional[Dict[str, Any]] = None):
        self.op = op
        self.loc = loc
        super().__init__(f"unknown operator: {op}")


class NameNotBound(KeyError):
    def __init__(self, name: str):
        super().__init__(name)
        self.name = name


# =================================================================
# Expression nodes
# =================================================================

class Node:
    """Abstract base class for captured expression nodes."""
    __slots__ = ()


@dataclass(frozen=True)
class Literal(Node):
    value: Any

    def __repr__(self) -> str:
        return f"Literal({self.value!r})"


@dataclass(frozen=True)
class Identifier(Node):
    name: str

    def __repr__(self) -> str:
        return f"Identifier({self.name!r})"


@dataclass(frozen=True)
class Call(Node):
    """A call of operator `op` over positional and keyword argument nodes.

    `kwargs` is a tuple of (name, node) pairs so source order survives and
    the node stays hashable. `loc` is source position metadata only.
    """
    op: str
    args: Tuple[Node, ...] = ()
    kwargs: Tuple[Tuple[str, Node], ...] = ()
    loc: Optional[Mapping[str, Any]] = field(default=None, compare=False, hash=False, repr=False)

    def __post_init__(self):
        # Accept lists from callers but store tuples.
        object.__setattr__(self, 'args', tuple(self.args))
        object.__setattr__(self, 'kwargs', tuple((k, v) for k, v in self.kwargs))

    def children(self) -> Iterator[Node]:
        yield from self.args
        for _, v in self.kwargs:
            yield v

    def __repr__(self) -> str:
        parts = [repr(self.op)] + [repr(a) for a in self.args]
        parts += [f"{k}={v!r}" for k, v in self.kwargs]
        return f"Call({', '.join(parts)})"


def as_node(value: Any) -> Node:
    """Wrap a plain Python value as a Literal unless it is already a node."""
    if isinstance(value, Node):
        return value
    return Literal(value)


def call(op: str, *args: Any, **kwargs: Any) -> Call:
    """Builds a Call node programmatically; plain values become Literals."""
    return Call(op, tuple(as_node(a) for a in args),
                tuple((k, as_node(v)) for k, v in kwargs.items()))


def is_number(node: Any) -> bool:
    return (isinstance(node, Literal)
            and isinstance(node.value, (int, float))
            and not isinstance(node.value, bool))


# =================================================================
# Resolution environment
# =================================================================

class Layer(Mapping):
    """A single read-only scope mapping names to values or resolvers."""

    def __init__(self, bindings: Optional[Mapping[str, Any]] = None, label: str = ""):
        self._bindings = MappingProxyType(dict(bindings or {}))
        self.label = label

    def __getitem__(self, key: str) -> Any:
        return self._bindings[key]

    def __iter__(self):
        return iter(self._bindings)

    def __len__(self) -> int:
        return len(self._bindings)

    def __repr__(self) -> str:
        return f"<Layer {self.label or '?'} ({len(self)} names)>"


class Chain:
    """An ordered sequence of layers, consulted innermost first."""

    def __init__(self, layers: Iterable[Layer] = ()):
        self.layers: Tuple[Layer, ...] = tuple(layers)

    def find_layer(self, name: str) -> Optional[Layer]:
        """Returns the first layer that binds `name`, or None."""
        for layer in self.layers:
            if name in layer:
                return layer
        return None

    def lookup(self, name: str) -> Any:
        layer = self.find_layer(name)
        if layer is None:
            raise NameNotBound(name)
        return layer[name]

    def __contains__(self, name: str) -> bool:
        return self.find_layer(name) is not None

    def layered(self, layer: Layer) -> 'Chain':
        """Returns a new chain with `layer` in front; this chain is untouched."""
        return Chain((layer,) + self.layers)

    def __repr__(self) -> str:
        return f"Chain({', '.join(l.label or '?' for l in self.layers)})"


class Environment:
    """The resolution environment for one expression.

    Identifiers and call heads are looked up in separate chains, the way R
    looks up a function name by skipping non-function bindings.
    """

    def __init__(self, symbols: Chain, operators: Chain):
        self.symbols = symbols
        self.operators = operators

    def lookup_symbol(self, name: str) -> Any:
        return self.symbols.lookup(name)

    def lookup_operator(self, name: str) -> Any:
        return self.operators.lookup(name)

    def __repr__(self) -> str:
        return f"<Environment symbols={self.symbols!r} operators={self.operators!r}>"
