import pytest

from quasi.quasi_datatypes import Literal, Identifier, Call, UnknownOperatorError
from quasi.quasi_deriv import deriv, run, add, mul, power, neg
from quasi.quasi_interpreter import STRICT

x = Identifier('x')

DERIV_TEST_CASES = [
    ("constant", "5", "0"),
    ("other_variable", "y", "0"),
    ("variable", "x", "1"),
    ("square", "x^2", "2 * x"),
    ("cube", "x^3", "3 * x^2"),
    ("sum_of_same", "x + x", "2"),
    ("cos", "cos(x)", "-sin(x)"),
    ("log", "log(x)", "1 / x"),
    ("exp_chain", "exp(2 * x)", "exp(2 * x) * 2"),
    ("product_rule", "sin(x) * x", "sin(x) + x * cos(x)"),
    ("grouped_base", "(x + 1)^2", "2 * (x + 1)"),
    ("exponential", "2^x", "2^x * log(2)"),
    ("quotient_rule", "x / y", "y / y^2"),
    ("chain_rule", "sin(x^2)", "cos(x^2) * (2 * x)"),
    ("unknown_function", "f(x)", "D_f(x)"),
]


@pytest.mark.parametrize(
    "test_id, source, expected",
    DERIV_TEST_CASES,
    ids=[t[0] for t in DERIV_TEST_CASES]
)
def test_deriv(test_id, source, expected):
    assert run(source) == expected


def test_deriv_returns_nodes():
    assert deriv("x^2") == Call('*', (Literal(2), x))


def test_deriv_with_respect_to_other_variable():
    assert run("x * y", wrt="y") == "x"
    assert run("sin(t) * t", wrt="t") == "sin(t) + t * cos(t)"


def test_unknown_function_of_several_arguments():
    assert run("g(x, y)") == "D1_g(x, y)"


def test_strict_rejects_unknown_functions():
    with pytest.raises(UnknownOperatorError):
        deriv("f(x)", strict=STRICT)


def test_simplifying_constructors():
    assert add(Literal(0), x) == x
    assert add(Literal(1), Literal(2)) == Literal(3)
    assert mul(Literal(1), x) == x
    assert mul(x, Literal(0)) == Literal(0)
    assert power(x, Literal(1)) == x
    assert neg(neg(x)) == x


def test_constant_power_that_overflows_differentiates_to_zero():
    assert run("2.5^1000") == "0"
    assert power(Literal(2.5), Literal(1000)) == Call('^', (Literal(2.5), Literal(1000)))


def test_unknown_function_with_keyword_arguments():
    assert run("f(x, k = 2)") == "D1_f(x, k = 2)"
    assert run("f(k = x)") == "D_f(k = x)"


def test_null_right_operand_keeps_binary_minus():
    assert run("x - NULL") == "1"
