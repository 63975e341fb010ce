"""Logging setup shared by the engine and the CLI.

Engine modules log either through structlog (event names plus key/value
fields) or through logging.getLogger(__name__) with %-style messages.
configure_logging installs one stderr handler whose ProcessorFormatter
renders both kinds of record through the same processor chain, so a run
produces a single console or JSON stream.

WorkflowEngine.run binds run_id and workflow_id as structlog contextvars;
every record emitted while the run is active carries them.
"""

import logging
import sys
from typing import Any, TextIO

import structlog
from structlog.stdlib import ProcessorFormatter

# Dependencies that chatter at DEBUG. They never go below WARNING.
_QUIET_DEPENDENCIES: tuple[str, ...] = (
    "dynaconf",
    "markdown_it",
)

_LEVEL_NAMES: tuple[str, ...] = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _strip_formatter_keys(
    logger: logging.Logger | None,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Drop the _record and _from_structlog keys ProcessorFormatter injects."""
    del event_dict["_record"]
    del event_dict["_from_structlog"]
    return event_dict


def _resolve_level(level: str) -> int:
    name = level.upper()
    if name not in _LEVEL_NAMES:
        raise ValueError(f"Unknown log level {level!r}; expected one of {', '.join(_LEVEL_NAMES)}")
    return logging.getLevelNamesMapping()[name]


def _pre_chain() -> list[Any]:
    """Processors every record passes through before rendering."""
    return [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
    ]


def _render_chain(json_output: bool) -> list[Any]:
    if json_output:
        return [_strip_formatter_keys, structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    # No colours: output goes to stderr, which is often a CI log file
    return [_strip_formatter_keys, structlog.dev.ConsoleRenderer(colors=False)]


def configure_logging(
    *,
    json_output: bool = False,
    level: str = "INFO",
    stream: TextIO | None = None,
) -> None:
    """Route structlog and stdlib logging to one handler.

    Calling it again replaces the previous configuration; the CLI does so
    once the settings file has been read.

    Args:
        json_output: Render one JSON object per line instead of console text
        level: Root level name, case-insensitive
        stream: Destination; stderr when omitted, keeping stdout for results

    Raises:
        ValueError: If level is not a standard level name
    """
    root_level = _resolve_level(level)
    pre_chain = _pre_chain()

    structlog.configure(
        processors=[*pre_chain, ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        # Reconfiguration must reach loggers created earlier
        cache_logger_on_first_use=False,
    )

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(ProcessorFormatter(processors=_render_chain(json_output), foreign_pre_chain=pre_chain))

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(root_level)

    for name in _QUIET_DEPENDENCIES:
        logging.getLogger(name).setLevel(max(root_level, logging.WARNING))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return the structlog logger for a module name."""
    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger
