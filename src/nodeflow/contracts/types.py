"""Semantic type aliases for compile-time type safety.

NewType creates distinct types that mypy treats as incompatible,
preventing accidental misuse of semantically different string values.
"""

from typing import NewType

NodeID = NewType("NodeID", str)
"""Unique node identifier within one workflow graph (e.g., 'extract_user')"""

RunID = NewType("RunID", str)
"""Identifier of one end-to-end execution of a compiled graph"""
