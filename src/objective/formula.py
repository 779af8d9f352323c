"""
Objective Formula Compiler

Compiles a scoring formula written in Python expression syntax into a
small tagged expression tree. Only a closed grammar is accepted:

- Field access on ``request.<field>`` and ``offer.<field>``
- Numeric literals and named constants bound at compile time
- ``+``, ``*``, ``/`` and ``%`` (``-`` is rewritten to ``+`` and ``* -1``)
- ``count(value, offer.<multiset field>)``

The right operand of ``%`` must be a constant. There are no loops,
conditionals, comparisons or other calls, so every formula evaluates in
time linear in the size of the offer's multisets.
"""

import ast
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from .errors import DivisionByZeroError, FormulaError
from .gas_meter import GasMeter

logger = logging.getLogger(__name__)

Number = Union[int, float]

# Fields that may take part in arithmetic
NUMERIC_FIELDS = {
    "request": frozenset({
        "required_memory_mb",
        "required_disk_mb",
        "app_id",
        "instance_number",
        "total_instances",
    }),
    "offer": frozenset({
        "available_memory_mb",
        "available_disk_mb",
        "total_memory_mb",
        "total_disk_mb",
        "zone_id",
    }),
}

# Opaque fields, only usable as the value argument of count()
TEXT_FIELDS = {
    "request": frozenset({"source_artifact_id", "stack"}),
    "offer": frozenset({"stack"}),
}

MULTISET_FIELDS = {
    "request": frozenset(),
    "offer": frozenset({"running_app_ids", "cached_artifact_ids"}),
}

RECORDS = ("request", "offer")


class Node:
    """Base class for expression tree nodes"""

    def evaluate(self, env: Mapping[str, Any], meter: GasMeter) -> Any:
        raise NotImplementedError


@dataclass(frozen=True)
class Const(Node):
    value: Number

    def evaluate(self, env, meter):
        meter.consume_constant()
        return self.value


@dataclass(frozen=True)
class FieldRef(Node):
    record: str
    name: str

    def evaluate(self, env, meter):
        meter.consume_field_access(f"{self.record}.{self.name}")
        return getattr(env[self.record], self.name)


@dataclass(frozen=True)
class BinOp(Node):
    op: str
    left: Node
    right: Node

    def evaluate(self, env, meter):
        left = self.left.evaluate(env, meter)
        right = self.right.evaluate(env, meter)
        meter.consume_arithmetic(self.op)

        if self.op == "+":
            return left + right
        if self.op == "*":
            return left * right
        if self.op == "/":
            if right == 0:
                raise DivisionByZeroError(f"division by zero in '{self.right}'")
            return left / right
        if self.op == "%":
            return left % right
        raise FormulaError(f"unknown operator {self.op!r}")


@dataclass(frozen=True)
class Count(Node):
    value: Node
    record: str
    name: str

    def evaluate(self, env, meter):
        needle = self.value.evaluate(env, meter)
        haystack = getattr(env[self.record], self.name)
        meter.consume_count(len(haystack))
        if isinstance(haystack, (set, frozenset)):
            return 1 if needle in haystack else 0
        return sum(1 for item in haystack if item == needle)


_BINARY_OPS = {
    ast.Add: "+",
    ast.Mult: "*",
    ast.Div: "/",
    ast.Mod: "%",
}

_MINUS_ONE = Const(-1)


class _Compiler:
    """Translates a Python AST into the closed expression grammar"""

    def __init__(self, constants: Mapping[str, Number]):
        self.constants = constants

    def compile(self, node: ast.AST) -> Node:
        if isinstance(node, ast.Expression):
            return self.compile(node.body)

        if isinstance(node, ast.Constant):
            if isinstance(node.value, bool) or not isinstance(node.value, (int, float)):
                raise FormulaError(f"only numeric literals are allowed, got {node.value!r}")
            return Const(node.value)

        if isinstance(node, ast.Name):
            if node.id in self.constants:
                return Const(self.constants[node.id])
            raise FormulaError(f"unknown name '{node.id}'")

        if isinstance(node, ast.Attribute):
            record, name = self._field(node)
            if name not in NUMERIC_FIELDS[record]:
                raise FormulaError(f"{record}.{name} cannot be used in arithmetic")
            return FieldRef(record, name)

        if isinstance(node, ast.UnaryOp):
            if isinstance(node.op, ast.USub):
                operand = self.compile(node.operand)
                if isinstance(operand, Const):
                    return Const(-operand.value)
                return BinOp("*", _MINUS_ONE, operand)
            if isinstance(node.op, ast.UAdd):
                return self.compile(node.operand)
            raise FormulaError(f"unsupported unary operator {type(node.op).__name__}")

        if isinstance(node, ast.BinOp):
            return self._binop(node)

        if isinstance(node, ast.Call):
            return self._count(node)

        raise FormulaError(f"unsupported syntax: {type(node).__name__}")

    def _field(self, node: ast.Attribute):
        if not isinstance(node.value, ast.Name) or node.value.id not in RECORDS:
            raise FormulaError("field access is only allowed on 'request' and 'offer'")
        record = node.value.id
        name = node.attr
        known = NUMERIC_FIELDS[record] | TEXT_FIELDS[record] | MULTISET_FIELDS[record]
        if name not in known:
            raise FormulaError(f"unknown field {record}.{name}")
        return record, name

    def _binop(self, node: ast.BinOp) -> Node:
        left = self.compile(node.left)
        right = self.compile(node.right)

        if isinstance(node.op, ast.Sub):
            return BinOp("+", left, BinOp("*", _MINUS_ONE, right))

        op = _BINARY_OPS.get(type(node.op))
        if op is None:
            raise FormulaError(f"unsupported operator {type(node.op).__name__}")

        if op == "%":
            if not isinstance(right, Const):
                raise FormulaError("the modulo operand must be a constant")
            if right.value == 0:
                raise DivisionByZeroError("modulo by zero")

        return BinOp(op, left, right)

    def _count(self, node: ast.Call) -> Node:
        if not isinstance(node.func, ast.Name) or node.func.id != "count":
            raise FormulaError("count() is the only function available")
        if node.keywords or len(node.args) != 2:
            raise FormulaError("count() takes exactly two positional arguments")

        value_node, target = node.args
        if not isinstance(target, ast.Attribute):
            raise FormulaError("count() needs a multiset field as its second argument")
        record, name = self._field(target)
        if name not in MULTISET_FIELDS[record]:
            raise FormulaError(f"{record}.{name} is not a multiset field")

        if isinstance(value_node, ast.Attribute):
            value_record, value_name = self._field(value_node)
            if value_name in MULTISET_FIELDS[value_record]:
                raise FormulaError("count() value must be a scalar")
            value = FieldRef(value_record, value_name)
        else:
            value = self.compile(value_node)

        return Count(value, record, name)


class Formula:
    """
    A compiled objective formula.

    Evaluates a (request, offer) pair to a float. Evaluation is pure and
    metered; each call gets a fresh gas meter.
    """

    def __init__(self, source: str, root: Node, constants: Dict[str, Number]):
        self.source = source
        self.root = root
        self.constants = constants

    def evaluate(self, request: Any, offer: Any, gas_limit: int = 10000) -> float:
        """
        Evaluate the formula.

        Args:
            request: Record exposing the request fields
            offer: Record exposing the offer fields
            gas_limit: Maximum gas for this evaluation

        Returns:
            Score as a float

        Raises:
            DivisionByZeroError: If a divisor evaluates to zero
            GasExceededError: If evaluation cost exceeds gas_limit
        """
        meter = GasMeter(gas_limit)
        value = self.root.evaluate({"request": request, "offer": offer}, meter)
        return float(value)

    def __repr__(self) -> str:
        return f"Formula({self.source!r})"


def compile_formula(source: str, constants: Optional[Mapping[str, Number]] = None) -> Formula:
    """
    Compile formula source into a Formula.

    Args:
        source: Formula text in Python expression syntax
        constants: Named constants the formula may refer to

    Returns:
        Compiled Formula

    Raises:
        FormulaError: If the text is not in the accepted grammar
    """
    bound = dict(constants or {})
    for name, value in bound.items():
        if name in RECORDS or name == "count":
            raise FormulaError(f"constant name '{name}' is reserved")
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise FormulaError(f"constant '{name}' must be numeric, got {value!r}")

    try:
        tree = ast.parse(source.strip(), mode="eval")
    except SyntaxError as e:
        raise FormulaError(f"formula is not a valid expression: {e.msg}") from e

    root = _Compiler(bound).compile(tree)
    logger.debug(f"Compiled formula: {source.strip()}")
    return Formula(source.strip(), root, bound)
