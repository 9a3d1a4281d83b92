import pytest

from quasi.quasi_datatypes import (
    Literal, Identifier, Call, call, ArityError, UnknownOperatorError
)
from quasi.quasi_interpreter import (
    collect_identifiers, collect_operators, build_environment, Resolver,
    passthrough, unary_op, binary_op, template_op, unknown_op, paste, render_template,
    KNOWN_SYMBOLS, IDENTIFIERS, KNOWN_OPERATORS, FALLBACK, LENIENT, WARN, STRICT
)
from quasi.quasi_runtime import resolve

a, b, c, x, y = (Identifier(n) for n in "abcxy")

# --- Discovery ---

def test_collect_identifiers_visits_every_subtree():
    expr = call('+', a, call('f', b, call('g', a), k=c))
    assert collect_identifiers(expr) == {'a', 'b', 'c'}


def test_collect_operators_includes_nested_and_keyword_calls():
    expr = call('+', a, call('f', b, k=call('h', c)))
    assert collect_operators(expr) == {'+', 'f', 'h'}


def test_call_heads_are_not_identifiers():
    assert collect_identifiers(call('f', Literal(1))) == set()


def test_literal_has_no_names():
    assert collect_identifiers(Literal(3)) == set()
    assert collect_operators(Literal(3)) == set()

# --- Environment chain ---

def test_environment_layer_order():
    expr = call('+', Identifier('pi'), call('foo', x))
    env = build_environment(expr, {'+': binary_op(" + ")}, {'pi': "\\pi"})
    assert [l.label for l in env.symbols.layers] == [KNOWN_SYMBOLS, IDENTIFIERS]
    assert [l.label for l in env.operators.layers] == [KNOWN_OPERATORS, FALLBACK]
    assert env.symbols.find_layer('pi').label == KNOWN_SYMBOLS
    assert env.symbols.find_layer('x').label == IDENTIFIERS
    assert env.operators.find_layer('+').label == KNOWN_OPERATORS
    assert env.operators.find_layer('foo').label == FALLBACK


def test_identifier_layer_only_holds_names_in_expression():
    env = build_environment(call('f', x), {}, {})
    assert set(env.symbols.layers[1]) == {'x'}
    assert set(env.operators.layers[1]) == {'f'}


def test_default_symbol_is_configurable():
    env = build_environment(x, {}, {}, default_symbol=lambda n: n.upper())
    assert env.lookup_symbol('x') == 'X'

# --- Resolver ---

def test_literal_resolves_to_itself_without_lookups():
    for value in (1, 2.5, "text", True, None):
        resolver = Resolver(build_environment(Literal(value)))
        assert resolver.resolve(Literal(value)) == value
        assert resolver.lookups == 0


def test_known_symbols_win_over_identifier_default():
    expr = call('+', Identifier('alpha'), Identifier('beta'))
    out = resolve(expr, {'+': binary_op(" + ")}, {'alpha': "A", 'beta': "B"})
    assert out == "A + B"


def test_resolution_is_post_order_and_keeps_argument_order():
    seen = []

    def record(*args, **kwargs):
        seen.append((args, kwargs))
        return f"r{len(seen)}"

    out = resolve(call('outer', call('inner', a), b, k=c, j=a),
                  {'outer': record, 'inner': record}, {})
    assert seen[0] == (('a',), {})
    assert seen[1] == (('r1', 'b'), {'k': 'c', 'j': 'a'})
    assert list(seen[1][1]) == ['k', 'j']
    assert out == "r2"


def test_resolving_twice_gives_identical_output():
    expr = call('f', call('+', a, Identifier('pi')))
    ops = lambda: {'+': binary_op(" + ")}
    syms = lambda: {'pi': "\\pi"}
    assert resolve(expr, ops(), syms()) == resolve(expr, ops(), syms())


def test_unknown_operator_routes_to_fallback():
    out = resolve(call('mystery', a), {}, {}, fallback=lambda op: (lambda *args: f"<{op}>"))
    assert out == "<mystery>"


def test_resolver_rejects_bad_strict_value():
    with pytest.raises(ValueError):
        Resolver(build_environment(a), strict="loud")


def test_resolver_rejects_non_nodes():
    with pytest.raises(TypeError):
        Resolver(build_environment(a)).resolve("a")


def test_type_error_inside_resolver_is_not_an_arity_error():
    def boom(e1):
        raise TypeError("inner failure")

    with pytest.raises(TypeError, match="inner failure"):
        resolve(call('boom', a), {'boom': boom}, {})

# --- Scenarios ---

def test_scenario_a_binary_operator():
    assert resolve("a + b", {"+": binary_op(" + ")}, {}) == "a + b"


def test_scenario_b_unary_operator():
    assert resolve("sin(x)", {"sin": unary_op("\\sin(", ")")}, {}) == "\\sin(x)"


def test_scenario_c_unknown_function_uses_fallback_template():
    assert resolve("foo(x, y)", {}, {}) == "\\mathtt{foo} \\left( x, y \\right )"


def test_scenario_d_known_symbol():
    assert resolve("pi", {}, {"pi": "\\pi"}) == "\\pi"


def test_scenario_e_arity_mismatch():
    with pytest.raises(ArityError) as exc:
        resolve(call('+', a, b, c), {"+": binary_op(" + ")}, {})
    assert exc.value.op == '+'
    assert exc.value.expected == "2"
    assert exc.value.got == 3


def test_arity_mismatch_from_source():
    with pytest.raises(ArityError):
        resolve("`+`(a, b, c)", {"+": binary_op(" + ")}, {})

# --- Strict modes ---

def test_strict_mode_raises_for_fallback():
    with pytest.raises(UnknownOperatorError) as exc:
        resolve(call('foo', a), {}, {}, strict=STRICT)
    assert exc.value.op == 'foo'


def test_strict_mode_allows_known_operators():
    assert resolve(call('+', a, b), {'+': binary_op("+")}, {}, strict=STRICT) == "a+b"


def test_warn_mode_records_side_effect():
    effects = []
    out = resolve(call('foo', a), {}, {}, strict=WARN, side_effects=effects)
    assert out == "\\mathtt{foo} \\left( a \\right )"
    assert len(effects) == 1
    assert effects[0]['topics'] == ['warning']
    assert 'foo' in effects[0]['message']


def test_lenient_mode_records_nothing():
    effects = []
    resolve(call('foo', a), {}, {}, strict=LENIENT, side_effects=effects)
    assert effects == []

# --- Combinators ---

def test_passthrough_returns_argument():
    assert passthrough()(5) == 5


def test_template_op_renders_with_pystache():
    assert template_op("<%op%>[<%args%>]", "f")(1, 2, k=3) == "f[1, 2, 3]"
    assert unknown_op("g")("x") == "\\mathtt{g} \\left( x \\right )"


def test_render_template_leaves_braces_alone():
    assert render_template("\\frac{<%a%>}{2}", {'a': "x"}) == "\\frac{x}{2}"


def test_paste():
    assert paste("a", 1, "b") == "a 1 b"
    assert paste("a", "b", sep="") == "ab"


def test_repeated_keyword_raises():
    node = Call('f', (), (('a', Literal(1)), ('a', Literal(2))))
    with pytest.raises(ArityError, match="keyword argument 'a' more than once"):
        resolve(node, {}, {})
    with pytest.raises(ArityError):
        resolve("f(a = 1, a = 2)", {}, {})


def test_unexpected_keyword_is_named_in_error():
    with pytest.raises(ArityError, match="does not accept keyword argument\\(s\\) k"):
        resolve("sin(x, k = 2)", {"sin": unary_op("\\sin(", ")")}, {})
