"""nodeflow command line: validate, run and node-types.

Results go to stdout. Logs and error panels go to stderr, and any
configuration or run failure exits with status 1.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING, Any

import typer
from pydantic import ValidationError

from nodeflow import __version__
from nodeflow.contracts.errors import GraphValidationError, NodeConfigurationError
from nodeflow.core.config import EngineSettings, WorkflowDefinition, load_settings, load_workflow

if TYPE_CHECKING:
    from nodeflow.contracts.results import RunResult
    from nodeflow.nodes.registry import NodeRegistry

__all__ = ["app"]

_OUTPUT_FORMATS = ("console", "json")

app = typer.Typer(
    name="nodeflow",
    help="nodeflow: compile and run visual workflow graphs.",
    no_args_is_help=True,
)

# Logging options given on the root command; run reapplies them over the
# settings file's log_level/log_json.
_log_options: dict[str, Any] = {"verbose": False, "json_logs": False}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"nodeflow version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose/debug logging.",
    ),
    json_logs: bool = typer.Option(
        False,
        "--json-logs",
        help="Output structured JSON logs (for machine processing).",
    ),
) -> None:
    """nodeflow: compile and run visual workflow graphs."""
    from nodeflow.core.logging import configure_logging

    _log_options.update(verbose=verbose, json_logs=json_logs)
    # Command output goes to stdout; logs stay quiet unless asked for
    configure_logging(json_output=json_logs, level="DEBUG" if verbose else "WARNING")


def _print_error(
    title: str,
    message: str,
    hint: str | None = None,
    details: list[str] | None = None,
) -> None:
    """Print an error panel on stderr; stdout stays reserved for results."""
    from rich.console import Console, Group
    from rich.panel import Panel
    from rich.text import Text

    body: list[Text] = [Text(message)]
    if details:
        body.append(Text("\n".join(f"- {detail}" for detail in details), style="dim"))
    if hint:
        body.append(Text.assemble(("hint: ", "bold cyan"), hint))

    Console(stderr=True).print(
        Panel(
            Group(*body),
            title=f"[bold]{title}[/]",
            title_align="left",
            border_style="red",
            expand=False,
        )
    )


def _build_registry() -> NodeRegistry:
    from nodeflow.nodes.registry import build_default_registry

    return build_default_registry()


def _load_workflow_or_exit(workflow_path: Path) -> WorkflowDefinition:
    try:
        return load_workflow(workflow_path)
    except FileNotFoundError:
        _print_error(
            title="File Not Found",
            message=f"Workflow file does not exist: {workflow_path}",
            hint="Check the path and ensure the file exists.",
        )
        raise typer.Exit(1) from None
    except ValidationError as e:
        details = [f"{'.'.join(str(x) for x in error['loc'])}: {error['msg']}" for error in e.errors()]
        _print_error(
            title="Workflow Validation Failed",
            message=f"Invalid workflow definition in {workflow_path.name}",
            details=details,
            hint="Check node ids, types, and edge endpoints.",
        )
        raise typer.Exit(1) from None
    except NodeConfigurationError as e:
        _print_error(
            title="Workflow Parse Error",
            message=str(e),
            hint="Workflows are JSON (.json) or YAML documents with a top-level mapping.",
        )
        raise typer.Exit(1) from None


def _load_settings_or_exit(settings_path: Path | None) -> EngineSettings:
    try:
        return load_settings(settings_path)
    except FileNotFoundError:
        _print_error(
            title="File Not Found",
            message=f"Settings file does not exist: {settings_path}",
            hint="Check the path and ensure the file exists.",
        )
        raise typer.Exit(1) from None
    except ValidationError as e:
        details = [f"{'.'.join(str(x) for x in error['loc'])}: {error['msg']}" for error in e.errors()]
        _print_error(
            title="Configuration Validation Failed",
            message="Invalid engine settings",
            details=details,
            hint="Check field names, types, and required values.",
        )
        raise typer.Exit(1) from None
    except ValueError as e:
        # Environment variable expansion errors
        _print_error(title="Configuration Error", message=str(e))
        raise typer.Exit(1) from None


def _parse_constants(pairs: list[str]) -> dict[str, Any]:
    """Parse KEY=VALUE pairs; values are JSON when they parse, strings otherwise."""
    constants: dict[str, Any] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint="--const")
        try:
            constants[key.strip()] = json.loads(raw)
        except json.JSONDecodeError:
            constants[key.strip()] = raw
    return constants


def _print_run_result(result: RunResult) -> None:
    from nodeflow.core.durations import format_duration

    typer.echo(f"Run {result.run_id} {result.status} in {format_duration(round(result.duration_seconds, 3))}")
    typer.echo(f"  Nodes executed: {result.nodes_executed}")
    if result.skipped_nodes:
        typer.echo(f"  Skipped: {', '.join(result.skipped_nodes)}")
    if result.succeeded:
        typer.echo("Final output:")
        typer.echo(json.dumps(result.final_output, indent=2, default=str))


@app.command()
def validate(
    workflow: Path = typer.Argument(..., help="Path to a workflow file (JSON or YAML)."),
) -> None:
    """Validate a workflow without running it."""
    from nodeflow.engine import WorkflowEngine

    definition = _load_workflow_or_exit(workflow)
    engine = WorkflowEngine(_build_registry())
    try:
        graph = engine.compile(definition)
    except GraphValidationError as e:
        _print_error(
            title="Graph Validation Failed",
            message=str(e),
            hint="Workflows must be acyclic and every edge must reference existing nodes.",
        )
        raise typer.Exit(1) from None
    except NodeConfigurationError as e:
        _print_error(
            title="Node Configuration Error",
            message=str(e),
            hint="Run 'nodeflow node-types' to list the available node types.",
        )
        raise typer.Exit(1) from None

    typer.echo(f"Workflow '{graph.workflow_id}' is valid ({graph.node_count} nodes, {graph.edge_count} edges)")
    typer.echo(f"  Execution order: {' -> '.join(graph.topological_order())}")


@app.command()
def run(
    workflow: Path = typer.Argument(..., help="Path to a workflow file (JSON or YAML)."),
    settings: Path | None = typer.Option(
        None,
        "--settings",
        "-s",
        help="Path to engine settings YAML file.",
    ),
    const: list[str] = typer.Option(
        [],
        "--const",
        "-c",
        help="Workflow constant as KEY=VALUE (repeatable).",
    ),
    output_format: str = typer.Option(
        "console",
        "--format",
        "-f",
        help="Output format: 'console' (human-readable) or 'json' (structured JSON).",
    ),
) -> None:
    """Execute a workflow and print its result."""
    from nodeflow.core.logging import configure_logging
    from nodeflow.engine import WorkflowEngine

    if output_format not in _OUTPUT_FORMATS:
        raise typer.BadParameter(f"must be one of {', '.join(_OUTPUT_FORMATS)}", param_hint="--format")
    constants = _parse_constants(const)

    definition = _load_workflow_or_exit(workflow)
    engine_settings = _load_settings_or_exit(settings)
    if settings is not None and not _log_options["verbose"]:
        configure_logging(
            json_output=_log_options["json_logs"] or engine_settings.log_json,
            level=engine_settings.log_level,
        )

    engine = WorkflowEngine(_build_registry(), engine_settings)
    try:
        graph = engine.compile(definition)
    except NodeConfigurationError as e:
        _print_error(title="Workflow Validation Failed", message=str(e))
        raise typer.Exit(1) from None

    result = engine.run(graph, constants=constants)

    if output_format == "json":
        typer.echo(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        _print_run_result(result)
        if result.failure is not None:
            _print_error(
                title=f"Run {result.status.capitalize()}",
                message=result.failure.describe(),
            )

    if not result.succeeded:
        raise typer.Exit(1)


@app.command("node-types")
def node_types() -> None:
    """List available node types."""
    registry = _build_registry()
    for node_type in registry.list_types():
        executor = registry.get(node_type)
        doc = (type(executor).__doc__ or "").strip()
        description = doc.splitlines()[0] if doc else "No description available"
        typer.echo(f"  {node_type:<18} - {description}")


if __name__ == "__main__":
    app()
