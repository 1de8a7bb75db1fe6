# -*- coding: utf-8 -*-
from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .dsl import load_registry, parse_assignments
from .errors import StepkitError, ValidationError
from .orchestrator import Runner, RunResult
from .services import Services
from .step import StepStatus
from .task import TaskRegistry


app = typer.Typer(add_completion=False, help="stepkit: declarative scaffolding task runner")

console = Console()

_STATUS_STYLE = {
    StepStatus.SUCCEEDED: "green",
    StepStatus.SKIPPED: "yellow",
    StepStatus.FAILED: "red",
    StepStatus.PENDING: "dim",
}

_ROOT_OPT = typer.Option(Path("."), "--root", help="Project root (configs/, tasks/)")
_FILE_OPT = typer.Option(None, "--file", "-f", help="Taskfile path or name from tasks/ (default: stepkit.yaml)")
_PROFILE_OPT = typer.Option(None, help="Profile name from configs/profiles")
_SET_OPT = typer.Option(None, "--set", help="Config overrides key.path=value (repeatable)")


def _load(root: Path, file: Optional[str], profile: Optional[str], override: Optional[List[str]]) -> TaskRegistry:
    try:
        return load_registry(root.resolve(), file, profile, override or [])
    except ValidationError as exc:
        console.print("[red]Errors:[/]")
        for e in str(exc).split("; "):
            console.print(f" - {escape(e)}")
        raise typer.Exit(code=2)


@app.command(name="list")
def list_tasks(
    root: Path = _ROOT_OPT,
    file: Optional[str] = _FILE_OPT,
    profile: Optional[str] = _PROFILE_OPT,
    override: List[str] = _SET_OPT,
) -> None:
    """List the tasks declared in the taskfile."""
    registry = _load(root, file, profile, override)
    table = Table(title="Tasks")
    table.add_column("Name")
    table.add_column("Description")
    table.add_column("Options")
    for t in registry:
        opts = ", ".join(f"{o.name}={o.default!r}" for o in t.options)
        table.add_row(t.name, t.description, opts)
    console.print(table)


@app.command()
def show(
    task: str = typer.Argument(..., help="Task name"),
    root: Path = _ROOT_OPT,
    file: Optional[str] = _FILE_OPT,
    profile: Optional[str] = _PROFILE_OPT,
    override: List[str] = _SET_OPT,
) -> None:
    """Show a task: options, steps with their bullets, guards and actions."""
    registry = _load(root, file, profile, override)
    try:
        t = registry.get(task)
    except StepkitError as exc:
        console.print(f"[red]{escape(str(exc))}[/]")
        raise typer.Exit(code=2)

    console.rule(f"[bold cyan]{escape(t.name)}")
    if t.description:
        console.print(escape(t.description))
    if t.options:
        table = Table(title="Options")
        for col in ("Name", "Type", "Default", "Help"):
            table.add_column(col)
        for o in t.options:
            table.add_row(o.name, o.type, repr(o.default), o.help)
        console.print(table)
    for idx, step in enumerate(t.steps, 1):
        guard = f"  [yellow]if {escape(step.guard.describe())}[/]" if step.guard else ""
        console.print(f"[bold]{idx}. {escape(step.name)}[/]{guard}")
        for b in step.bullets:
            console.print(f"   • {escape(b)}", highlight=False)
        for a in step.actions:
            console.print(f"   [dim]› {escape(a.label())}[/]", highlight=False)
    for ref in t.subtasks:
        guard = f"  [yellow]if {escape(ref.guard.describe())}[/]" if ref.guard else ""
        console.print(f"[bold]→ {escape(ref.task)}[/]{guard}")


@app.command()
def check(
    root: Path = _ROOT_OPT,
    file: Optional[str] = _FILE_OPT,
    profile: Optional[str] = _PROFILE_OPT,
    override: List[str] = _SET_OPT,
) -> None:
    """Validate the taskfile: load, imports, references, action kinds."""
    registry = _load(root, file, profile, override)
    steps = sum(len(t.steps) for t in registry)
    console.print(f"[green]OK[/]: tasks={len(registry)} steps={steps}")


@app.command()
def run(
    task: str = typer.Argument(..., help="Task name, e.g. barcode:demo"),
    opt: List[str] = typer.Option(None, "--opt", "-o", help="Task option name=value (repeatable)"),
    root: Path = _ROOT_OPT,
    file: Optional[str] = _FILE_OPT,
    profile: Optional[str] = _PROFILE_OPT,
    dry_run: bool = typer.Option(False, "--dry-run", help="Print what would run, change nothing"),
    continue_on_error: bool = typer.Option(
        False, "--continue-on-error", help="Keep running the remaining actions of a failing step"
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Answer yes to confirmation guards"),
    override: List[str] = _SET_OPT,
) -> None:
    """
    Run a task: load the taskfile, resolve options, execute steps fail-fast.
    """
    registry = _load(root, file, profile, override)
    try:
        provided = parse_assignments(opt or [])
    except ValidationError as exc:
        console.print(f"[red]{escape(str(exc))}[/]")
        raise typer.Exit(code=2)

    try:
        services = Services.from_settings(registry.settings, console=console, assume_yes=yes)
        runner = Runner(
            registry,
            services,
            console=console,
            dry_run=dry_run,
            continue_on_error=continue_on_error,
        )
        result = runner.run(task, provided)
    except StepkitError as exc:
        console.print(f"[red]{escape(str(exc))}[/]")
        raise typer.Exit(code=2)

    _print_summary(result)
    if not result.ok:
        console.print(f"[red]Failed:[/] {escape(str(result.failure()))}")
        raise typer.Exit(code=1)


def _print_summary(result: RunResult) -> None:
    table = Table(title="Summary")
    table.add_column("Task")
    table.add_column("Step")
    table.add_column("Outcome")
    for r in result.iter_runs():
        if r.skipped:
            table.add_row(r.task, "", "[yellow]skipped[/]")
            continue
        for s in r.steps:
            style = _STATUS_STYLE[s.status]
            table.add_row(r.task, s.step.name, f"[{style}]{s.status.value}[/]")
        if r.error is not None and not r.steps:
            table.add_row(r.task, "", f"[red]{escape(str(r.error))}[/]")
    console.print(table)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
