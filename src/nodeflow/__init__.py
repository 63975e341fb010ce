"""nodeflow: workflow execution engine for typed node graphs."""

__version__ = "0.1.0"
