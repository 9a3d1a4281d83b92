"""
Capture, the public `resolve` entry point, and the ExpressionRunner that runs
a named DSL end to end and reports errors as structured results.
"""
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Literal as Lit, Mapping, Optional, Union

from koine import Parser

from quasi.quasi_datatypes import (
    Node, ParseError, ArityError, UnknownOperatorError, QuasiError
)
from quasi.quasi_transformer import QuasiTransformer
from quasi.quasi_interpreter import Resolver, build_environment, unknown_op, LENIENT

GRAMMAR_PATH = Path(__file__).parent / "grammar" / "quasi_grammar.yaml"

_parser: Optional[Parser] = None
_transformer: Optional[QuasiTransformer] = None


def _get_parser() -> Parser:
    # Parsed once per process; the grammar is read-only.
    global _parser
    if _parser is None:
        _parser = Parser.from_file(str(GRAMMAR_PATH))
    return _parser


def _get_transformer() -> QuasiTransformer:
    global _transformer
    if _transformer is None:
        _transformer = QuasiTransformer()
    return _transformer


# ===================================================================
# Capture
# ===================================================================

def capture(source: Union[str, Node]) -> Node:
    """Parse `source` into an expression tree without evaluating anything.

    A node passed in is returned as is.
    """
    if isinstance(source, Node):
        return source
    if not isinstance(source, str):
        raise TypeError(f"expected source text or an expression node, not {type(source).__name__}")

    try:
        parse_out = _get_parser().parse(source)
    except Exception as e:
        line = getattr(e, 'line', None)
        col = getattr(e, 'column', None)
        raise ParseError(
            str(e) or "parse failed",
            line() if callable(line) else line,
            col() if callable(col) else col,
        ) from e

    if isinstance(parse_out, dict) and 'status' in parse_out:
        if parse_out.get('status') != 'success':
            node = parse_out.get('error_node') or {}
            message = parse_out.get('error_message') or parse_out.get('message') or "parse failed"
            raise ParseError(message, node.get('line'), node.get('col'))
        ast_node = parse_out.get('ast')
        if ast_node is None:
            raise ParseError("missing AST in parser result")
    else:
        ast_node = parse_out

    return _get_transformer().transform(ast_node)


# ===================================================================
# Public entry point
# ===================================================================

def resolve(expression_source: Union[str, Node],
            known_operators: Optional[Mapping[str, Callable]] = None,
            known_symbols: Optional[Mapping[str, Any]] = None,
            *,
            fallback: Callable[[str], Callable] = unknown_op,
            default_symbol: Callable[[str], Any] = str,
            strict: str = LENIENT,
            side_effects: Optional[List[Dict[str, Any]]] = None) -> Any:
    """
    Capture `expression_source`, build its environment and resolve it.

    The output type is whatever the bound resolvers return. Errors propagate
    unchanged. Warnings raised in "warn" mode are appended to `side_effects`
    when a list is given.
    """
    expr = capture(expression_source)
    env = build_environment(expr, known_operators, known_symbols,
                            fallback=fallback, default_symbol=default_symbol)
    resolver = Resolver(env, strict=strict)
    try:
        return resolver.resolve(expr)
    finally:
        if side_effects is not None:
            side_effects.extend(resolver.side_effects)


# ===================================================================
# Runner
# ===================================================================

Token = Dict[str, Any]


@dataclass
class ExecutionResult:
    """The structured result of running an expression through a DSL."""
    status: Lit['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    error_token: Optional[Token] = None
    side_effects: List[Dict] = field(default_factory=list)

    def format_error(self) -> str:
        """Formats an error message with line and column if available."""
        if self.status != 'error':
            return ""
        msg = str(self.error_message or "Unknown error")
        if self.error_token and self.error_token.get('line') is not None:
            line = self.error_token.get('line')
            col = self.error_token.get('col')
            if not msg.startswith("Error on line "):
                col_info = f", col {col}" if col is not None else ""
                return f"Error on line {line}{col_info}: {msg}"
        return msg


def _dsl_registry() -> Dict[str, Callable]:
    from quasi import quasi_latex, quasi_html, quasi_deriv, quasi_subset
    return {
        'latex': quasi_latex.run,
        'html': quasi_html.run,
        'deriv': quasi_deriv.run,
        'subset': quasi_subset.run,
    }


def available_dsls() -> List[str]:
    return sorted(_dsl_registry())


class ExpressionRunner:
    """Captures, resolves and formats expressions for one named DSL."""

    def __init__(self, dsl: str, **options: Any):
        registry = _dsl_registry()
        if dsl not in registry:
            raise ValueError(f"unknown dsl {dsl!r}; expected one of {sorted(registry)}")
        self.dsl = dsl
        self.options = options
        self._run = registry[dsl]

    def run(self, source: str) -> ExecutionResult:
        side_effects: List[Dict[str, Any]] = []
        try:
            value = self._run(source, side_effects=side_effects, **self.options)
        except QuasiError as e:
            msg, token = self._format_error(e, source)
            side_effects.append({'topics': ['stderr'], 'message': msg})
            return ExecutionResult(
                status='error',
                error_message=msg,
                error_token=token,
                side_effects=side_effects,
            )
        except (TypeError, ValueError, ArithmeticError) as e:
            msg = f"{type(e).__name__}: {e}"
            side_effects.append({'topics': ['stderr'], 'message': msg})
            return ExecutionResult(status='error', error_message=msg, side_effects=side_effects)
        return ExecutionResult(status='success', value=value, side_effects=side_effects)

    def _format_error(self, e: QuasiError, source: str):
        match e:
            case ParseError():
                line, col = e.line, e.col
                msg = f"ParseError: {e.message}"
            case ArityError() | UnknownOperatorError():
                loc = e.loc or {}
                line, col = loc.get('line'), loc.get('col')
                msg = f"{type(e).__name__}: {e}"
            case _:
                line = col = None
                msg = f"{type(e).__name__}: {e}"

        token = None
        if line is not None:
            token = {'line': line, 'col': col}
            context = self._source_context(source, line, col)
            if context:
                msg = f"{msg}\n{context}"
        return msg, token

    def _source_context(self, source: str, line: int, col: Optional[int], radius: int = 2) -> str:
        lines = source.splitlines()
        if not line or line < 1 or line > len(lines):
            return ""
        start = max(1, line - radius)
        end = min(len(lines), line + radius)
        width = len(str(end))
        out = []
        for i in range(start, end + 1):
            prefix = ">" if i == line else " "
            ln = str(i).rjust(width)
            out.append(f"{prefix} {ln} | {lines[i - 1]}")
            if i == line and col is not None:
                caret = " " * max(col - 1, 0)
                out.append(f"  {' ' * width} | {caret}^")
        return "\n".join(out)
