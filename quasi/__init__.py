from quasi.quasi_datatypes import (
    Node, Literal, Identifier, Call, call,
    Layer, Chain, Environment,
    QuasiError, ParseError, ArityError, UnknownOperatorError, NameNotBound
)
from quasi.quasi_interpreter import (
    collect_identifiers, collect_operators, build_environment, Resolver,
    passthrough, unary_op, binary_op, template_op, unknown_op,
    LENIENT, WARN, STRICT
)
from quasi.quasi_runtime import capture, resolve, ExpressionRunner, ExecutionResult
