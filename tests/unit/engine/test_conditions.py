# tests/unit/engine/test_conditions.py
"""Tests for the restricted predicate language."""

from __future__ import annotations

import pytest

from nodeflow.contracts.errors import ConditionEvaluationError
from nodeflow.engine.conditions import (
    Condition,
    ConditionSecurityError,
    ConditionSyntaxError,
    compile_condition,
    validate_condition,
)


class TestShorthand:
    """Expressions starting with a comparison apply to the input."""

    @pytest.mark.parametrize(
        ("expression", "value", "expected"),
        [
            ("> 3", 5, True),
            ("> 3", 2, False),
            (">= 10", 10, True),
            ("== 'ok'", "ok", True),
            ("!= 0", 0, False),
            ("< 5", 4.5, True),
        ],
    )
    def test_comparison(self, expression: str, value: object, expected: bool) -> None:
        condition = Condition(expression)
        assert condition.is_shorthand
        assert condition.test(value) is expected

    def test_unwraps_value_key(self) -> None:
        """Node results shaped {"value": ...} compare on their value."""
        assert Condition("< 5").test({"operation": "increment", "value": 3.0})

    def test_type_mismatch_is_false(self) -> None:
        assert Condition("> 3").test("hello") is False


class TestFullForm:
    """Full expressions over value, variables and context."""

    def test_field_access(self) -> None:
        assert Condition("value['status'] == 'ok'").test({"status": "ok"})

    def test_boolean_operators(self) -> None:
        condition = Condition("value > 1 and value < 10 or value == 100")
        assert condition.test(5)
        assert condition.test(100)
        assert not condition.test(50)

    def test_variables_and_context(self) -> None:
        condition = Condition("variables.get('retries', 0) < context['max_retries']")
        assert condition.test(None, variables={"retries": 1}, context={"max_retries": 3})
        assert not condition.test(None, variables={"retries": 3}, context={"max_retries": 3})

    def test_lowercase_literals(self) -> None:
        assert Condition("value == true").test(True)
        assert Condition("value == null").test(None)

    def test_membership(self) -> None:
        assert Condition("'b' in value").test(["a", "b"])

    def test_missing_field_raises(self) -> None:
        with pytest.raises(ConditionEvaluationError, match="status"):
            Condition("value['status'] == 'ok'").evaluate({"code": 1})

    def test_type_mismatch_raises(self) -> None:
        with pytest.raises(ConditionEvaluationError):
            Condition("value > 3").evaluate("hello")


class TestRestrictions:
    """Anything outside the whitelist is rejected at parse time."""

    @pytest.mark.parametrize(
        "expression",
        [
            "__import__('os')",
            "value.__class__",
            "open('x')",
            "[x for x in value]",
            "lambda: 1",
            "value[1:3]",
            "len(value) > 2",
            "f'{value}'",
            "secret == 1",
        ],
    )
    def test_forbidden(self, expression: str) -> None:
        with pytest.raises(ConditionSecurityError):
            Condition(expression)

    def test_syntax_error(self) -> None:
        with pytest.raises(ConditionSyntaxError):
            Condition("value >")

    def test_validate_condition_raises_value_error(self) -> None:
        """Pydantic validators see parse problems as ValueError."""
        with pytest.raises(ValueError):
            validate_condition("open('x')")
        assert validate_condition("> 1") == "> 1"

    def test_compile_condition_is_cached(self) -> None:
        assert compile_condition("> 1") is compile_condition("> 1")
