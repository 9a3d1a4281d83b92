"""
The core quasi interpreter: name discovery, the environment chain builder,
resolver combinators and the recursive Resolver.
"""
import inspect
from typing import Any, Callable, Dict, List, Mapping, Optional, Set

import pystache

from quasi.quasi_datatypes import (
    Node, Literal, Identifier, Call,
    Layer, Chain, Environment,
    ArityError, UnknownOperatorError
)

# Layer labels, most specific first.
KNOWN_SYMBOLS = "known-symbols"
IDENTIFIERS = "identifiers"
KNOWN_OPERATORS = "known-operators"
FALLBACK = "fallback"

LENIENT = "lenient"
WARN = "warn"
STRICT = "strict"
STRICT_MODES = (LENIENT, WARN, STRICT)

UNKNOWN_OP_TEMPLATE = r"\mathtt{<%op%>} \left( <%args%> \right )"

# Marks an absent optional operand. NULL resolves to None.
MISSING = object()


# =================================================================
# Discovery
# =================================================================

def _walk(expr: Node):
    stack = [expr]
    while stack:
        node = stack.pop()
        yield node
        if isinstance(node, Call):
            stack.extend(reversed(list(node.children())))


def collect_identifiers(expr: Node) -> Set[str]:
    """Distinct identifier names referenced anywhere in `expr`.

    Call heads are operators, not identifiers.
    """
    return {n.name for n in _walk(expr) if isinstance(n, Identifier)}


def collect_operators(expr: Node) -> Set[str]:
    """Distinct call-head names referenced anywhere in `expr`."""
    return {n.op for n in _walk(expr) if isinstance(n, Call)}


# =================================================================
# Resolver combinators
# =================================================================

def render_template(template: str, context: Mapping[str, Any]) -> str:
    """Render a Mustache template written with <% %> delimiters.

    LaTeX leans on curly braces, so the default {{ }} delimiters are swapped
    out before rendering. No HTML escaping is applied.
    """
    renderer = pystache.Renderer(escape=lambda u: u)
    return renderer.render("{{=<% %>=}}" + template, context)


def passthrough():
    def resolve(x):
        return x
    return resolve


def unary_op(left: str, right: str):
    def resolve(e1):
        return f"{left}{e1}{right}"
    return resolve


def binary_op(sep: str):
    def resolve(e1, e2):
        return f"{e1}{sep}{e2}"
    return resolve


def template_op(template: str, op: str = ""):
    """A variadic resolver rendering `template` with `op` and the joined args."""
    def resolve(*args, **kwargs):
        values = list(args) + list(kwargs.values())
        return render_template(template, {'op': op, 'args': ", ".join(str(v) for v in values)})
    return resolve


def unknown_op(op: str):
    """Default fallback: render `op` as a typewriter-face function application."""
    return template_op(UNKNOWN_OP_TEMPLATE, op)


def paste(*args, sep: str = " "):
    return sep.join(str(a) for a in args)


# =================================================================
# Environment chain builder
# =================================================================

def build_environment(expr: Node,
                      known_operators: Optional[Mapping[str, Callable]] = None,
                      known_symbols: Optional[Mapping[str, Any]] = None,
                      fallback: Callable[[str], Callable] = unknown_op,
                      default_symbol: Callable[[str], Any] = str) -> Environment:
    """
    Assemble the resolution environment for one expression.

    Symbols resolve through known symbols, then every identifier in `expr`
    bound to `default_symbol(name)`. Operators resolve through known
    operators, then every remaining operator in `expr` bound to
    `fallback(name)`. Every name in the expression is therefore bound.
    """
    known_operators = known_operators or {}
    known_symbols = known_symbols or {}

    names = collect_identifiers(expr)
    identifier_layer = Layer({n: default_symbol(n) for n in names}, IDENTIFIERS)
    symbols = Chain([Layer(known_symbols, KNOWN_SYMBOLS), identifier_layer])

    unknown = collect_operators(expr) - set(known_operators)
    fallback_layer = Layer({op: fallback(op) for op in unknown}, FALLBACK)
    operators = Chain([Layer(known_operators, KNOWN_OPERATORS), fallback_layer])

    return Environment(symbols, operators)


# =================================================================
# Resolver
# =================================================================

def _describe_arity(sig: inspect.Signature) -> str:
    required = 0
    maximum = 0
    variadic = False
    for p in sig.parameters.values():
        if p.kind is p.VAR_POSITIONAL:
            variadic = True
        elif p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD):
            maximum += 1
            if p.default is p.empty:
                required += 1
    if variadic:
        return f"at least {required}"
    if required == maximum:
        return str(required)
    return f"{required} to {maximum}"


def _unexpected_keywords(sig: inspect.Signature, kwargs: dict) -> List[str]:
    params = sig.parameters.values()
    if any(p.kind is p.VAR_KEYWORD for p in params):
        return []
    named = {p.name for p in params if p.kind in (p.POSITIONAL_OR_KEYWORD, p.KEYWORD_ONLY)}
    return [k for k in kwargs if k not in named]


class Resolver:
    """Resolves an expression tree against an Environment, children first."""

    def __init__(self, environment: Environment, strict: str = LENIENT):
        if strict not in STRICT_MODES:
            raise ValueError(f"strict must be one of {STRICT_MODES}, not {strict!r}")
        self.environment = environment
        self.strict = strict
        self.side_effects: List[Dict[str, Any]] = []
        # Number of environment lookups performed; literals never look anything up.
        self.lookups = 0

    def resolve(self, node: Node) -> Any:
        match node:
            case Literal():
                return node.value
            case Identifier():
                self.lookups += 1
                return self.environment.lookup_symbol(node.name)
            case Call():
                return self._resolve_call(node)
            case _:
                raise TypeError(f"cannot resolve {type(node).__name__}: {node!r}")

    def _resolve_call(self, node: Call) -> Any:
        seen = set()
        for k, _ in node.kwargs:
            if k in seen:
                raise ArityError(node.op, "", len(node.args) + len(node.kwargs), node.loc,
                                 problem=f"got keyword argument '{k}' more than once")
            seen.add(k)
        args = [self.resolve(a) for a in node.args]
        kwargs = {k: self.resolve(v) for k, v in node.kwargs}

        self.lookups += 1
        func = self.environment.lookup_operator(node.op)
        if self.strict != LENIENT:
            layer = self.environment.operators.find_layer(node.op)
            if layer is not None and layer.label == FALLBACK:
                self._unknown(node)

        self._check_arity(node, func, args, kwargs)
        return func(*args, **kwargs)

    def _unknown(self, node: Call):
        if self.strict == STRICT:
            raise UnknownOperatorError(node.op, node.loc)
        self.side_effects.append({
            'topics': ['warning'],
            'message': f"no resolver for ({node.op}); using fallback",
        })

    def _check_arity(self, node: Call, func: Callable, args: list, kwargs: dict):
        try:
            sig = inspect.signature(func)
        except (TypeError, ValueError):
            # Some builtins expose no signature; let the call decide.
            return
        try:
            sig.bind(*args, **kwargs)
        except TypeError:
            got = len(args) + len(kwargs)
            unexpected = _unexpected_keywords(sig, kwargs)
            if unexpected:
                raise ArityError(node.op, _describe_arity(sig), got, node.loc,
                                 problem=f"does not accept keyword argument(s) {', '.join(unexpected)}")
            raise ArityError(node.op, _describe_arity(sig), got, node.loc)
