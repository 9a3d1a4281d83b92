"""
Row filtering and column selection over record lists, R `subset()` style.

Conditions are evaluated column-wise: each column name resolves to the whole
column as a list, operators work element by element and recycle scalars.
`None` plays the part of NA.
"""
import math
import operator
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from quasi.quasi_datatypes import Node
from quasi.quasi_interpreter import MISSING, STRICT, passthrough
from quasi.quasi_runtime import resolve

Rows = List[Dict[str, Any]]


def columns_of(rows: Sequence[Mapping[str, Any]]) -> Dict[str, List[Any]]:
    """Column vectors keyed by name, in first-seen order; gaps become None."""
    names: List[str] = []
    for row in rows:
        for k in row:
            if k not in names:
                names.append(k)
    return {name: [row.get(name) for row in rows] for name in names}


def _is_na(v) -> bool:
    return v is None or (isinstance(v, float) and math.isnan(v))


def _recycle(*values):
    vectors = [v if isinstance(v, list) else [v] for v in values]
    if any(len(v) == 0 for v in vectors):
        return []
    n = max(len(v) for v in vectors)
    return [tuple(v[i % len(v)] for v in vectors) for i in range(n)]


def _scalar_result(values, out):
    # Scalars in, scalar out.
    if any(isinstance(v, list) for v in values):
        return out
    return out[0]


def elementwise(f: Callable) -> Callable:
    """Lift a binary function over recycled vectors, propagating NA."""
    def apply(e1, e2):
        out = [None if (_is_na(a) or _is_na(b)) else f(a, b) for a, b in _recycle(e1, e2)]
        return _scalar_result((e1, e2), out)
    apply.__name__ = getattr(f, '__name__', 'elementwise')
    return apply


def _unary(f: Callable) -> Callable:
    def apply(e1):
        out = [None if _is_na(a) else f(a) for (a,) in _recycle(e1)]
        return _scalar_result((e1,), out)
    return apply


def _signed(binary: Callable, prefix: Callable) -> Callable:
    unary = _unary(prefix)
    def apply(e1, e2=MISSING):
        if e2 is MISSING:
            return unary(e1)
        return binary(e1, e2)
    return apply


def _and(e1, e2):
    def one(a, b):
        if a is False or b is False:
            return False
        if _is_na(a) or _is_na(b):
            return None
        return bool(a) and bool(b)
    return _scalar_result((e1, e2), [one(a, b) for a, b in _recycle(e1, e2)])


def _or(e1, e2):
    def one(a, b):
        if a is True or b is True:
            return True
        if _is_na(a) or _is_na(b):
            return None
        return bool(a) or bool(b)
    return _scalar_result((e1, e2), [one(a, b) for a, b in _recycle(e1, e2)])


def _first(v):
    if isinstance(v, list):
        if not v:
            raise ValueError("invalid 'length(0)' argument in scalar logical operator")
        return v[0]
    return v


def _and_scalar(e1, e2):
    return _and(_first(e1), _first(e2))


def _or_scalar(e1, e2):
    return _or(_first(e1), _first(e2))


def _in(e1, e2):
    table = e2 if isinstance(e2, list) else [e2]
    out = [a in table for (a,) in _recycle(e1)]
    return _scalar_result((e1,), out)


def _is_na_vec(e1):
    return _scalar_result((e1,), [_is_na(a) for (a,) in _recycle(e1)])


def _c(*args):
    out: List[Any] = []
    for a in args:
        out.extend(a if isinstance(a, list) else [a])
    return out


def _divide(a, b):
    # R: x / 0 is Inf or -Inf, 0 / 0 is NaN.
    if b == 0:
        if a == 0:
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b


def _mod(a, b):
    if b == 0:
        return None
    return a % b


def _int_div(a, b):
    if b == 0:
        return None
    return a // b


def _power(a, b):
    try:
        out = a ** b
    except ZeroDivisionError:
        return math.inf
    except OverflowError:
        odd = float(b).is_integer() and int(b) % 2 == 1
        return math.copysign(math.inf, a) if odd else math.inf
    if isinstance(out, complex):
        return math.nan
    return out


def subset_operators() -> Dict[str, Callable]:
    return {
        '+': _signed(elementwise(operator.add), operator.pos),
        '-': _signed(elementwise(operator.sub), operator.neg),
        '*': elementwise(operator.mul),
        '/': elementwise(_divide),
        '^': elementwise(_power),
        '%%': elementwise(_mod),
        '%/%': elementwise(_int_div),
        '==': elementwise(operator.eq),
        '!=': elementwise(operator.ne),
        '<': elementwise(operator.lt),
        '>': elementwise(operator.gt),
        '<=': elementwise(operator.le),
        '>=': elementwise(operator.ge),
        '&': _and,
        '|': _or,
        '&&': _and_scalar,
        '||': _or_scalar,
        '!': _unary(operator.not_),
        '%in%': _in,
        'is.na': _is_na_vec,
        'abs': _unary(abs),
        'nchar': _unary(lambda s: len(str(s))),
        'tolower': _unary(lambda s: str(s).lower()),
        'toupper': _unary(lambda s: str(s).upper()),
        'c': _c,
        '(': passthrough(),
    }


def subset(rows: Sequence[Mapping[str, Any]], condition: Union[str, Node],
           variables: Optional[Mapping[str, Any]] = None, strict: str = STRICT,
           side_effects: Optional[List[Dict[str, Any]]] = None) -> Rows:
    """Return the rows for which `condition` is TRUE.

    Column names win over `variables` of the same name. Rows where the
    condition is NA are dropped.
    """
    rows = list(rows)
    symbols = dict(variables or {})
    symbols.update(columns_of(rows))

    mask = resolve(condition, subset_operators(), symbols,
                   strict=strict, side_effects=side_effects)
    if not isinstance(mask, list):
        mask = [mask] * len(rows)
    if len(mask) != len(rows):
        if not mask or len(rows) % len(mask):
            raise ValueError(f"condition has length {len(mask)}, expected {len(rows)}")
        mask = mask * (len(rows) // len(mask))
    if any(not (keep is None or isinstance(keep, bool)) for keep in mask):
        raise ValueError("'subset' must be logical")
    return [dict(row) for row, keep in zip(rows, mask) if keep is True]


# =================================================================
# Column selection
# =================================================================

def _span(e1, e2):
    a, b = int(e1), int(e2)
    step = 1 if b >= a else -1
    return list(range(a, b + step, step))


def select_operators() -> Dict[str, Callable]:
    return {
        ':': _span,
        'c': _c,
        '-': lambda e1: [-i for i in _c(e1)],
        '(': passthrough(),
    }


def select(rows: Sequence[Mapping[str, Any]], columns: Union[str, Node],
           strict: str = STRICT,
           side_effects: Optional[List[Dict[str, Any]]] = None) -> Rows:
    """Keep the columns picked by `columns`, e.g. "a:c", "c(a, d)" or "-b".

    Column names stand for their 1-based positions, so ranges and
    exclusions work the way they do in R's `subset(select = ...)`.
    """
    rows = list(rows)
    names = list(columns_of(rows))
    positions = {name: i for i, name in enumerate(names, start=1)}

    picked = _c(resolve(columns, select_operators(), positions,
                        strict=strict, side_effects=side_effects))
    for p in picked:
        if isinstance(p, str):
            raise ValueError(f"undefined columns selected: {p}")
        if isinstance(p, bool) or not isinstance(p, int) or p == 0 or abs(p) > len(names):
            raise ValueError(f"column position out of range: {p}")
    if all(p < 0 for p in picked):
        dropped = {names[-p - 1] for p in picked}
        keep = [n for n in names if n not in dropped]
    elif all(p > 0 for p in picked):
        keep = [names[p - 1] for p in picked]
    else:
        raise ValueError("can't mix positive and negative column positions")
    return [{k: row.get(k) for k in keep} for row in rows]


def run(source, *, side_effects=None, strict: str = STRICT, data=None) -> Rows:
    return subset(data or [], source, strict=strict, side_effects=side_effects)
