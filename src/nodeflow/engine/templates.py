"""Placeholder interpolation for templated node configuration.

Placeholders use double braces with optional inner whitespace:

    "Hello {{ name }}"          -> merged lookup
    "{{const.region}}"          -> workflow constants only
    "{{context.tenant}}"        -> context variables only
    "{{variable.total}}"        -> variables only ("var." is accepted too)

The merged lookup consults workflow constants, then context variables,
then variables; a later source wins when a name exists in more than one.
A placeholder whose name resolves nowhere is left exactly as written.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import Any

_PLACEHOLDER_PATTERN = re.compile(r"\{\{\s*(?:(const|context|variable|var)\.)?([A-Za-z_][A-Za-z0-9_]*)\s*\}\}")


def _render(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool) or value is None:
        return json.dumps(value)
    if isinstance(value, dict | list):
        return json.dumps(value, sort_keys=True, default=str)
    return str(value)


def interpolate(
    template: str,
    *,
    constants: Mapping[str, Any],
    context_variables: Mapping[str, Any],
    variables: Mapping[str, Any],
) -> str:
    """Substitute placeholders in template.

    Args:
        template: Text containing {{name}} placeholders
        constants: Workflow constants (lowest priority)
        context_variables: Context variables
        variables: Run variables (highest priority)

    Returns:
        The interpolated text. Never raises for unknown names.
    """
    scoped: dict[str, Mapping[str, Any]] = {
        "const": constants,
        "context": context_variables,
        "variable": variables,
        "var": variables,
    }
    merged: dict[str, Any] = {**constants, **context_variables, **variables}

    def replacer(match: re.Match[str]) -> str:
        scope, name = match.group(1), match.group(2)
        source = merged if scope is None else scoped[scope]
        if name not in source:
            return match.group(0)
        return _render(source[name])

    return _PLACEHOLDER_PATTERN.sub(replacer, template)
