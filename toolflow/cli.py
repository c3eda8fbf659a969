"""Command line interface for running toolflow workflows."""

from __future__ import annotations

import asyncio
import inspect
import logging
from pathlib import Path
from typing import Optional

import typer
import yaml
from pydantic import ValidationError

from toolflow.cache import get_cache_store
from toolflow.cli_utils.workflow import (
    _check_references,
    _format_step_result,
    _load_object,
    _load_workflow_file,
)
from toolflow.config import load_config
from toolflow.events import EventChannel, log_events
from toolflow.runner import WorkflowRunner
from toolflow.tools import ToolInvoker

app = typer.Typer(help="CLI for toolflow workflows")

# Command groups
workflow_app = typer.Typer(help="Commands for running and validating workflows")
cache_app = typer.Typer(help="Commands for inspecting and clearing the step cache")

app.add_typer(workflow_app, name="workflow")
app.add_typer(cache_app, name="cache")


@app.callback()
def main() -> None:
    """toolflow CLI entry point."""
    pass


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _resolve_invoker(spec: str) -> ToolInvoker:
    obj = _load_object(spec)
    if inspect.isclass(obj):
        obj = obj()
    if not isinstance(obj, ToolInvoker):
        raise TypeError(f"{spec} does not provide an async run_tool(tool_id, inputs)")
    return obj


def _read_workflow(workflow_path: Path):
    if not workflow_path.exists():
        typer.secho(f"Workflow file not found: {workflow_path}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    try:
        return _load_workflow_file(workflow_path)
    except ValidationError as exc:
        typer.secho(f"Invalid workflow definition:\n{exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)
    except (ValueError, yaml.YAMLError) as exc:
        typer.secho(f"Could not parse {workflow_path}: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


@workflow_app.command("run")
def workflow_run(
    workflow_path: Path,
    invoker: str = typer.Option(..., help="Tool invoker as 'module:attribute'"),
    clear_cache: bool = typer.Option(False, help="Purge cached step outputs first"),
    config: Optional[Path] = typer.Option(None, help="Path to a toolflow.yaml"),
) -> None:
    """
    Run a workflow definition file.

    Example:
        toolflow workflow run ./region.yaml --invoker my_tools:invoker
        # Output: Workflow region-select: completed
        #         - capture (screen-capture): ok [cached]
        #         - read (ocr): ok
    """
    settings = load_config(str(config) if config else None)
    _configure_logging(settings.log_level)

    workflow = _read_workflow(workflow_path)
    if clear_cache:
        workflow.clear_cache = True

    try:
        tool_invoker = _resolve_invoker(invoker)
    except (ImportError, AttributeError, TypeError, ValueError) as exc:
        typer.secho(f"Could not load invoker {invoker}: {exc}", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    events = EventChannel()
    log_events(events)
    runner = WorkflowRunner(
        tool_invoker,
        cache=get_cache_store(config=settings),
        events=events,
        backoff_base=settings.retry.backoff_base,
    )
    result = asyncio.run(runner.run(workflow))

    status = "completed" if result.success else "failed"
    typer.echo(f"Workflow {result.workflow_id}: {status}")
    for step_result in result.step_results.values():
        typer.echo(_format_step_result(step_result))
    stats = result.cache_stats
    typer.echo(f"Cache: hits={stats.cache_hits} misses={stats.cache_misses}")
    if not result.success:
        typer.secho(f"Error: {result.error}", fg=typer.colors.RED)
        raise typer.Exit(code=1)


@workflow_app.command("validate")
def workflow_validate(workflow_path: Path) -> None:
    """Validate a workflow definition and its semantic references."""

    workflow = _read_workflow(workflow_path)
    problems = _check_references(workflow)
    if problems:
        for problem in problems:
            typer.secho(problem, fg=typer.colors.RED)
        raise typer.Exit(code=1)
    typer.echo(f"Workflow {workflow.id} is valid ({len(workflow.steps)} steps)")


@cache_app.command("stats")
def cache_stats(
    workflow_id: str,
    config: Optional[Path] = typer.Option(None, help="Path to a toolflow.yaml"),
) -> None:
    """Show how many cached step outputs a workflow has."""

    store = get_cache_store(config=load_config(str(config) if config else None))
    stats = asyncio.run(store.stats(workflow_id))
    typer.echo(f"Workflow {workflow_id}: {stats.entries} entries ({stats.memory_entries} in memory)")


@cache_app.command("clear")
def cache_clear(
    workflow_id: Optional[str] = typer.Argument(None),
    all_: bool = typer.Option(False, "--all", help="Clear every workflow's cache"),
    config: Optional[Path] = typer.Option(None, help="Path to a toolflow.yaml"),
) -> None:
    """Clear cached step outputs for one workflow, or all of them."""

    if not workflow_id and not all_:
        typer.secho("Specify a workflow id or --all", fg=typer.colors.RED)
        raise typer.Exit(code=1)

    store = get_cache_store(config=load_config(str(config) if config else None))
    if all_:
        asyncio.run(store.clear_all())
        typer.echo("Cleared all workflow caches")
    else:
        asyncio.run(store.clear_workflow_cache(workflow_id))
        typer.echo(f"Cleared cache for {workflow_id}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    app()
