# -*- coding: utf-8 -*-
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from time import perf_counter
from typing import Any, List, Mapping, Optional, Tuple

from rich.markup import escape

from .actions import Action, ActionResult, action_from_dict, execute_action
from .context import Context
from .errors import StepkitError, ValidationError
from .guards import Guard, evaluate
from .services import Services


class StepStatus(str, Enum):
    PENDING = "pending"
    SKIPPED = "skipped"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class Step:
    """
    One documented phase of a task. Bullets are documentation only; actions
    run strictly in order.
    """

    name: str
    description: str = ""
    bullets: Tuple[str, ...] = ()
    guard: Optional[Guard] = None
    actions: Tuple[Action, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "bullets", tuple(str(b) for b in self.bullets))
        object.__setattr__(self, "actions", tuple(self.actions))
        object.__setattr__(self, "guard", Guard.parse(self.guard))

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> "Step":
        if not isinstance(doc, Mapping):
            raise ValidationError(f"step must be a mapping, got {doc!r}")
        if not doc.get("name"):
            raise ValidationError("step is missing 'name'")
        actions = doc.get("actions") or []
        if not isinstance(actions, list):
            raise ValidationError(f"step {doc['name']!r}: actions must be a list")
        return cls(
            name=str(doc["name"]),
            description=str(doc.get("description") or ""),
            bullets=tuple(doc.get("bullets") or ()),
            guard=doc.get("if", doc.get("guard")),
            actions=tuple(action_from_dict(a) for a in actions),
        )


@dataclass(frozen=True)
class StepResult:
    step: Step
    status: StepStatus
    results: Tuple[ActionResult, ...] = ()
    failed_index: Optional[int] = None
    error: Optional[StepkitError] = None
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status is not StepStatus.FAILED

    @property
    def failure(self) -> Optional[ActionResult]:
        if self.failed_index is None or self.failed_index >= len(self.results):
            return None
        return self.results[self.failed_index]


def should_run(step: Step, ctx: Context, services: Services) -> bool:
    if step.guard is None:
        return True
    return evaluate(step.guard, ctx, services)


def run_step(
    step: Step,
    ctx: Context,
    services: Services,
    *,
    continue_on_error: bool = False,
) -> StepResult:
    """
    Executes the actions in order. The first failing action stops the step
    unless continue_on_error; either way the step fails at that index.
    """
    t0 = perf_counter()
    results: List[ActionResult] = []
    failed_index: Optional[int] = None
    error: Optional[StepkitError] = None

    for idx, action in enumerate(step.actions):
        ctx.console.print(f"[dim]›[/] {escape(action.label())}", highlight=False)
        res = execute_action(action, ctx, services)
        results.append(res)
        for w in res.warnings:
            ctx.console.print(f"[yellow]warning:[/] {escape(w)}")
        if res.ok:
            continue
        ctx.console.print(f"[red]action #{idx} ({action.kind}) failed:[/] {escape(str(res.error))}")
        if failed_index is None:
            failed_index, error = idx, res.error
        if not continue_on_error:
            break

    return StepResult(
        step,
        StepStatus.FAILED if failed_index is not None else StepStatus.SUCCEEDED,
        results=tuple(results),
        failed_index=failed_index,
        error=error,
        duration=perf_counter() - t0,
    )
