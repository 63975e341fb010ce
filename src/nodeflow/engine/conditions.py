"""Restricted predicate language for condition, switch and while_loop nodes.

Uses Python's ast module to parse and evaluate a small whitelisted subset
of Python expressions. This is NOT eval(): anything outside the whitelist
is rejected when the expression is parsed, which happens at compile time.

Names available to an expression:
- value: the node's input
- variables: the run's variables
- context: workflow constants overlaid by context variables
- True/False/None (and the lowercase spellings true/false/null)

Shorthand form: an expression that starts with a comparison operator is
applied to the input, so ">= 10" means "value >= 10". In shorthand form an
input mapping with a "value" key is unwrapped first, and a comparison the
input's type does not support is simply false instead of an error.

Examples:
    Condition("> 3").test(5)                                  # True
    Condition("value['status'] == 'ok'").test({"status": "ok"})  # True
    Condition("variables.get('retries', 0) < 3").test(None, variables={})
"""

from __future__ import annotations

import ast
import functools
import operator
from collections.abc import Mapping
from typing import Any

from nodeflow.contracts.errors import ConditionEvaluationError


class ConditionSecurityError(Exception):
    """Raised when an expression contains forbidden constructs."""


class ConditionSyntaxError(Exception):
    """Raised when an expression is not valid syntax."""


_DATA_NAMES = frozenset({"value", "variables", "context"})

_LITERAL_NAMES: dict[str, Any] = {
    "True": True,
    "False": False,
    "None": None,
    "true": True,
    "false": False,
    "null": None,
}

_SHORTHAND_PREFIXES = ("==", "!=", ">=", "<=", ">", "<")

_COMPARISON_OPS: dict[type[ast.cmpop], Any] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
}

_BINARY_OPS: dict[type[ast.operator], Any] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
}

_UNARY_OPS: dict[type[ast.unaryop], Any] = {
    ast.Not: operator.not_,
    ast.USub: operator.neg,
    ast.UAdd: operator.pos,
}


def _is_get_call(node: ast.expr) -> bool:
    return (
        isinstance(node, ast.Call)
        and isinstance(node.func, ast.Attribute)
        and isinstance(node.func.value, ast.Name)
        and node.func.value.id in _DATA_NAMES
        and node.func.attr == "get"
    )


class _ConditionValidator(ast.NodeVisitor):
    """Collects every forbidden construct in an expression."""

    def __init__(self) -> None:
        self.errors: list[str] = []
        self._in_call_func = False

    def _is_data_derived(self, node: ast.expr) -> bool:
        if isinstance(node, ast.Name) and node.id in _DATA_NAMES:
            return True
        if isinstance(node, ast.Subscript):
            return self._is_data_derived(node.value)
        return _is_get_call(node)

    def visit_Name(self, node: ast.Name) -> None:
        if node.id not in _DATA_NAMES and node.id not in _LITERAL_NAMES:
            self.errors.append(f"Forbidden name: {node.id!r}")

    def visit_Subscript(self, node: ast.Subscript) -> None:
        if isinstance(node.slice, ast.Slice):
            self.errors.append("Slice syntax (e.g., [1:3]) is forbidden")
        if not self._is_data_derived(node.value):
            self.errors.append("Subscript access is only allowed on value, variables or context")
        self.generic_visit(node)

    def visit_Slice(self, node: ast.Slice) -> None:
        self.errors.append("Slice syntax (e.g., [1:3]) is forbidden")

    def visit_Attribute(self, node: ast.Attribute) -> None:
        if isinstance(node.value, ast.Name) and node.value.id in _DATA_NAMES:
            if node.attr != "get":
                self.errors.append(f"Forbidden attribute: {node.attr!r} (only 'get' is allowed)")
            elif not self._in_call_func:
                self.errors.append(f"Bare '{node.value.id}.get' is forbidden; call it with a key")
        else:
            self.errors.append(f"Forbidden attribute access: {node.attr!r}")
        self.generic_visit(node)

    def visit_Call(self, node: ast.Call) -> None:
        if _is_get_call(node):
            if len(node.args) < 1 or len(node.args) > 2:
                self.errors.append(f"get() requires 1 or 2 arguments, got {len(node.args)}")
            if node.keywords:
                self.errors.append("get() does not accept keyword arguments")
            self._in_call_func = True
            self.visit(node.func)
            self._in_call_func = False
            for arg in node.args:
                self.visit(arg)
            return
        self.errors.append(f"Forbidden function call: {ast.unparse(node.func)}")

    def visit_Compare(self, node: ast.Compare) -> None:
        for op in node.ops:
            if type(op) not in _COMPARISON_OPS:
                self.errors.append(f"Forbidden comparison operator: {type(op).__name__}")
        self.generic_visit(node)

    def visit_BinOp(self, node: ast.BinOp) -> None:
        if type(node.op) not in _BINARY_OPS:
            self.errors.append(f"Forbidden binary operator: {type(node.op).__name__}")
        self.generic_visit(node)

    def visit_UnaryOp(self, node: ast.UnaryOp) -> None:
        if type(node.op) not in _UNARY_OPS:
            self.errors.append(f"Forbidden unary operator: {type(node.op).__name__}")
        self.generic_visit(node)

    def visit_Constant(self, node: ast.Constant) -> None:
        if node.value is not None and not isinstance(node.value, str | int | float | bool):
            self.errors.append(f"Forbidden constant type: {type(node.value).__name__}")

    def visit_Dict(self, node: ast.Dict) -> None:
        for key in node.keys:
            if key is None:
                self.errors.append("Dict spread (**) is forbidden")
        self.generic_visit(node)

    def visit_Lambda(self, node: ast.Lambda) -> None:
        self.errors.append("Lambda expressions are forbidden")

    def visit_ListComp(self, node: ast.ListComp) -> None:
        self.errors.append("Comprehensions are forbidden")

    visit_SetComp = visit_ListComp
    visit_DictComp = visit_ListComp
    visit_GeneratorExp = visit_ListComp

    def visit_NamedExpr(self, node: ast.NamedExpr) -> None:
        self.errors.append("Assignment expressions (:=) are forbidden")

    def visit_JoinedStr(self, node: ast.JoinedStr) -> None:
        self.errors.append("F-strings are forbidden")

    def visit_Starred(self, node: ast.Starred) -> None:
        self.errors.append("Starred expressions (*) are forbidden")

    def visit_Await(self, node: ast.Await) -> None:
        self.errors.append("Await expressions are forbidden")

    def visit_Yield(self, node: ast.Yield) -> None:
        self.errors.append("Yield expressions are forbidden")

    visit_YieldFrom = visit_Yield


class _ConditionEvaluator(ast.NodeVisitor):
    """Evaluates a validated expression tree."""

    def __init__(self, names: Mapping[str, Any]) -> None:
        self._names = names

    def visit_Expression(self, node: ast.Expression) -> Any:
        return self.visit(node.body)

    def visit_Name(self, node: ast.Name) -> Any:
        if node.id in _LITERAL_NAMES:
            return _LITERAL_NAMES[node.id]
        return self._names[node.id]

    def visit_Constant(self, node: ast.Constant) -> Any:
        return node.value

    def visit_Subscript(self, node: ast.Subscript) -> Any:
        container = self.visit(node.value)
        key = self.visit(node.slice)
        try:
            return container[key]
        except KeyError as e:
            if isinstance(container, dict):
                msg = f"Field '{key}' not found. Available fields: {list(container.keys())}"
            else:
                msg = f"Key '{key}' not found in {type(container).__name__}"
            raise ConditionEvaluationError(msg) from e
        except IndexError as e:
            msg = f"Index {key} out of range for {type(container).__name__} of length {len(container)}"
            raise ConditionEvaluationError(msg) from e
        except TypeError as e:
            msg = f"Cannot access '{key}' on {type(container).__name__}: {e}"
            raise ConditionEvaluationError(msg) from e

    def visit_Call(self, node: ast.Call) -> Any:
        assert isinstance(node.func, ast.Attribute) and isinstance(node.func.value, ast.Name)
        target = self._names[node.func.value.id]
        args = [self.visit(arg) for arg in node.args]
        if not isinstance(target, Mapping):
            raise ConditionEvaluationError(f"get() requires a mapping, got {type(target).__name__}")
        try:
            return target.get(*args)
        except TypeError as e:
            raise ConditionEvaluationError(f"invalid argument to get(): {e}") from e

    def visit_Compare(self, node: ast.Compare) -> Any:
        left = self.visit(node.left)
        for op, comparator in zip(node.ops, node.comparators, strict=True):
            right = self.visit(comparator)
            try:
                if not _COMPARISON_OPS[type(op)](left, right):
                    return False
            except TypeError as e:
                msg = f"cannot compare {type(left).__name__} and {type(right).__name__} with {type(op).__name__}"
                raise ConditionEvaluationError(msg) from e
            left = right
        return True

    def visit_BoolOp(self, node: ast.BoolOp) -> Any:
        result: Any = None
        for value in node.values:
            result = self.visit(value)
            if isinstance(node.op, ast.And) and not result:
                return result
            if isinstance(node.op, ast.Or) and result:
                return result
        return result

    def visit_BinOp(self, node: ast.BinOp) -> Any:
        left = self.visit(node.left)
        right = self.visit(node.right)
        try:
            return _BINARY_OPS[type(node.op)](left, right)
        except ZeroDivisionError as e:
            raise ConditionEvaluationError(f"division by zero in {type(node.op).__name__}") from e
        except TypeError as e:
            msg = f"cannot apply {type(node.op).__name__} to {type(left).__name__} and {type(right).__name__}"
            raise ConditionEvaluationError(msg) from e

    def visit_UnaryOp(self, node: ast.UnaryOp) -> Any:
        operand = self.visit(node.operand)
        try:
            return _UNARY_OPS[type(node.op)](operand)
        except TypeError as e:
            raise ConditionEvaluationError(f"cannot apply {type(node.op).__name__} to {type(operand).__name__}") from e

    def visit_IfExp(self, node: ast.IfExp) -> Any:
        if self.visit(node.test):
            return self.visit(node.body)
        return self.visit(node.orelse)

    def visit_List(self, node: ast.List) -> Any:
        return [self.visit(elt) for elt in node.elts]

    def visit_Tuple(self, node: ast.Tuple) -> Any:
        return tuple(self.visit(elt) for elt in node.elts)

    def visit_Set(self, node: ast.Set) -> Any:
        try:
            return {self.visit(elt) for elt in node.elts}
        except TypeError as e:
            raise ConditionEvaluationError(f"cannot create set literal: {e}") from e

    def visit_Dict(self, node: ast.Dict) -> Any:
        try:
            return {self.visit(k): self.visit(v) for k, v in zip(node.keys, node.values, strict=True) if k is not None}
        except TypeError as e:
            raise ConditionEvaluationError(f"cannot create dict literal: {e}") from e


class Condition:
    """A parsed, validated predicate.

    Args:
        expression: Predicate source, full or shorthand form

    Raises:
        ConditionSyntaxError: If the expression does not parse
        ConditionSecurityError: If the expression uses forbidden constructs
    """

    def __init__(self, expression: str) -> None:
        self._expression = expression
        text = expression.strip()
        self._shorthand = text.startswith(_SHORTHAND_PREFIXES)
        source = f"value {text}" if self._shorthand else text

        try:
            self._ast = ast.parse(source, mode="eval")
        except SyntaxError as e:
            raise ConditionSyntaxError(f"Invalid syntax in {expression!r}: {e.msg}") from e

        validator = _ConditionValidator()
        validator.visit(self._ast)
        if validator.errors:
            raise ConditionSecurityError("; ".join(validator.errors))

    @property
    def expression(self) -> str:
        return self._expression

    @property
    def is_shorthand(self) -> bool:
        return self._shorthand

    def evaluate(
        self,
        value: Any,
        *,
        variables: Mapping[str, Any] | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> Any:
        """Evaluate against an input value and the run's names.

        Raises:
            ConditionEvaluationError: If evaluation fails (full form only)
        """
        if self._shorthand and isinstance(value, Mapping) and "value" in value:
            value = value["value"]
        names = {"value": value, "variables": variables or {}, "context": context or {}}
        try:
            return _ConditionEvaluator(names).visit(self._ast)
        except ConditionEvaluationError:
            if self._shorthand:
                return False
            raise

    def test(
        self,
        value: Any,
        *,
        variables: Mapping[str, Any] | None = None,
        context: Mapping[str, Any] | None = None,
    ) -> bool:
        """Evaluate and coerce the outcome to bool."""
        return bool(self.evaluate(value, variables=variables, context=context))

    def __repr__(self) -> str:
        return f"Condition({self._expression!r})"


@functools.lru_cache(maxsize=256)
def compile_condition(expression: str) -> Condition:
    """Parse an expression once and reuse the validated tree."""
    return Condition(expression)


def validate_condition(expression: str) -> str:
    """Pydantic-friendly validator: re-raise parse problems as ValueError."""
    try:
        compile_condition(expression)
    except (ConditionSyntaxError, ConditionSecurityError) as e:
        raise ValueError(str(e)) from e
    return expression
