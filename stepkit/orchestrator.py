# -*- coding: utf-8 -*-
from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from time import perf_counter
from typing import Any, Iterator, List, Mapping, Optional, Tuple

from rich.console import Console
from rich.markup import escape

from .context import Context, derive_context
from .errors import (
    GuardEvaluationError,
    RunCancelled,
    StepkitError,
    TaskFailure,
    ValidationError,
)
from .guards import evaluate
from .services import Services
from .step import Step, StepResult, StepStatus, run_step, should_run
from .task import SubtaskRef, Task, TaskRegistry, resolve_options
from .templating import render_value


@dataclass(frozen=True)
class FailureCause:
    task: str
    step: Optional[str] = None
    action_index: Optional[int] = None
    action_kind: Optional[str] = None
    error: Optional[BaseException] = None

    def __str__(self) -> str:
        parts = [self.task]
        if self.step:
            parts.append(self.step)
        if self.action_index is not None:
            parts.append(f"action #{self.action_index} ({self.action_kind})")
        where = " › ".join(parts)
        return f"{where}: {self.error}" if self.error else where


@dataclass
class RunResult:
    """Outcome of one task run; sub-task runs are nested in `subtasks`."""

    task: str
    context: Optional[Context] = None
    steps: List[StepResult] = field(default_factory=list)
    subtasks: List["RunResult"] = field(default_factory=list)
    skipped: bool = False
    error: Optional[StepkitError] = None
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return (
            self.error is None
            and all(s.ok for s in self.steps)
            and all(r.ok for r in self.subtasks)
        )

    def outcomes(self) -> List[Tuple[str, StepStatus]]:
        return [(s.step.name, s.status) for s in self.steps]

    def iter_runs(self) -> Iterator["RunResult"]:
        yield self
        for sub in self.subtasks:
            yield from sub.iter_runs()

    def failure(self) -> Optional[FailureCause]:
        for s in self.steps:
            if s.status is StepStatus.FAILED:
                act = s.failure
                return FailureCause(
                    self.task,
                    s.step.name,
                    s.failed_index,
                    act.action.kind if act else None,
                    s.error,
                )
        for sub in self.subtasks:
            cause = sub.failure()
            if cause is not None:
                return cause
        if self.error is not None:
            return FailureCause(self.task, error=self.error)
        return None

    def raise_for_failure(self) -> None:
        cause = self.failure()
        if cause is None:
            return
        raise TaskFailure(
            cause.task, cause.step, cause.action_index, message=str(cause)
        ) from cause.error


class Runner:
    """
    Runs tasks from a registry: steps in declaration order, guards first,
    fail-fast on the first failed step, then composite sub-tasks, again
    fail-fast. No state survives between run() calls besides the cancel flag.
    """

    def __init__(
        self,
        registry: TaskRegistry,
        services: Optional[Services] = None,
        *,
        console: Optional[Console] = None,
        dry_run: bool = False,
        continue_on_error: bool = False,
    ) -> None:
        self.registry = registry
        self.console = console or Console()
        self.services = services or Services.from_settings(registry.settings, console=self.console)
        self.dry_run = dry_run
        self.continue_on_error = continue_on_error
        self._cancel = threading.Event()

    def cancel(self) -> None:
        """Stops the current run before its next step or sub-task."""
        self._cancel.set()

    def run(self, task: Task | str, provided: Optional[Mapping[str, Any]] = None) -> RunResult:
        self._cancel.clear()
        t = self.registry.get(task) if isinstance(task, str) else task
        try:
            ctx = self.registry.invoke(t, provided or {}, console=self.console, dry_run=self.dry_run)
        except ValidationError as exc:
            self.console.print(f"[red]{escape(str(exc))}[/]")
            return RunResult(t.name, error=exc)
        return self._run_task(t, ctx, ())

    # ---------- internals ----------

    def _run_task(self, task: Task, ctx: Context, stack: Tuple[str, ...]) -> RunResult:
        t0 = perf_counter()
        result = RunResult(task.name, ctx)
        if task.name in stack:
            result.error = ValidationError(
                "subtask cycle: " + " → ".join((*stack, task.name))
            )
            return result

        ctx.console.rule(f"[bold cyan]{escape(task.name)}[/]  [dim]{escape(task.description)}[/]")
        for idx, step in enumerate(task.steps, 1):
            if self._cancel.is_set():
                result.error = RunCancelled(f"cancelled before step {step.name!r}")
                break
            outcome = self._run_step(idx, step, ctx)
            result.steps.append(outcome)
            if not outcome.ok:
                break

        if result.ok:
            for ref in task.subtasks:
                if self._cancel.is_set():
                    result.error = RunCancelled(f"cancelled before subtask {ref.task!r}")
                    break
                sub = self._run_subtask(ref, ctx, (*stack, task.name))
                result.subtasks.append(sub)
                if not sub.ok:
                    break

        result.duration = perf_counter() - t0
        if result.ok and task.composite:
            ctx.console.print(f"[green]{escape(task.name)} done[/] ({result.duration:.2f}s)")
        return result

    def _run_step(self, idx: int, step: Step, ctx: Context) -> StepResult:
        ctx.console.rule(f"[bold]Step {idx}[/] — {escape(step.name)}")
        if step.description:
            ctx.console.print(f"[dim]{escape(step.description)}[/]")
        for bullet in step.bullets:
            ctx.console.print(f"  • {escape(bullet)}", highlight=False)

        try:
            go = should_run(step, ctx, self.services)
        except GuardEvaluationError as exc:
            ctx.console.print(f"[red]{escape(str(exc))}[/]")
            return StepResult(step, StepStatus.FAILED, error=exc)
        if not go:
            ctx.console.print(f"[yellow]skipped[/] (guard: {escape(step.guard.describe())})")
            return StepResult(step, StepStatus.SKIPPED)

        outcome = run_step(step, ctx, self.services, continue_on_error=self.continue_on_error)
        if outcome.ok:
            ctx.console.print(f"[green]OK[/] ({outcome.duration:.2f}s)")
        return outcome

    def _run_subtask(self, ref: SubtaskRef, ctx: Context, stack: Tuple[str, ...]) -> RunResult:
        try:
            sub = self.registry.get(ref.task)
        except StepkitError as exc:
            return RunResult(ref.task, error=exc)

        if ref.guard is not None:
            try:
                go = evaluate(ref.guard, ctx, self.services)
            except GuardEvaluationError as exc:
                return RunResult(sub.name, error=exc)
            if not go:
                ctx.console.print(
                    f"[yellow]skipped[/] {escape(sub.name)} (guard: {escape(ref.guard.describe())})"
                )
                return RunResult(sub.name, skipped=True)

        try:
            sub_ctx = self._narrow(sub, ref, ctx)
        except ValidationError as exc:
            ctx.console.print(f"[red]{escape(str(exc))}[/]")
            return RunResult(sub.name, error=exc)
        return self._run_task(sub, sub_ctx, stack)

    def _narrow(self, sub: Task, ref: SubtaskRef, ctx: Context) -> Context:
        """
        Same context as the parent, options narrowed to what the sub-task
        declares; a sub-task bound to another named context moves there.
        """
        # an unset parent option leaves the sub-task default in place
        provided = {o.name: ctx.options[o.name] for o in sub.options if ctx.options.get(o.name) is not None}
        provided.update(render_value(dict(ref.options), ctx.template_vars(), native=True))
        options = resolve_options(sub, provided)

        overrides: dict = {}
        cdef = self.registry.contexts.get(sub.context) if sub.context else None
        if cdef is not None and cdef.name != ctx.name:
            overrides.update(
                working_dir=cdef.ensure(self.registry.base_dir, dry_run=ctx.dry_run),
                env=cdef.env,
                name=cdef.name,
            )
        return replace(derive_context(ctx, overrides), options=options)
