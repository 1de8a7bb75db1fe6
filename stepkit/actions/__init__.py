# -*- coding: utf-8 -*-
from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from time import perf_counter
from typing import TYPE_CHECKING, Any, ClassVar, Dict, Mapping, Optional, Tuple, Type

from ..errors import ActionIOError, StepkitError, ValidationError
from ..templating import render_value

if TYPE_CHECKING:
    from ..context import Context
    from ..services import Services

REGISTRY: Dict[str, Type["Action"]] = {}


def register(*names: str):
    def deco(cls: Type["Action"]) -> Type["Action"]:
        cls.kind = names[0]
        for name in names:
            REGISTRY[name] = cls
        return cls

    return deco


@dataclass(frozen=True)
class ActionResult:
    action: "Action"
    ok: bool
    output: str = ""
    exit_code: Optional[int] = None
    error: Optional[StepkitError] = None
    warnings: Tuple[str, ...] = ()
    duration: float = 0.0


class Action:
    """
    Description of one external effect. Subclasses are frozen dataclasses,
    one per kind; `templated` fields are rendered with Jinja2 against the
    Context right before execution, `native_templated` keep value types.
    """

    kind: ClassVar[str] = ""
    templated: ClassVar[Tuple[str, ...]] = ()
    native_templated: ClassVar[Tuple[str, ...]] = ()
    best_effort: ClassVar[bool] = False

    def execute(self, ctx: "Context", services: "Services") -> ActionResult:
        raise NotImplementedError

    def describe(self) -> str:
        return self.kind

    def label(self) -> str:
        return getattr(self, "note", None) or self.describe()

    def render(self, ctx: "Context") -> "Action":
        if not self.templated and not self.native_templated:
            return self
        tv = ctx.template_vars()
        changes: Dict[str, Any] = {}
        for name in self.templated:
            changes[name] = render_value(getattr(self, name), tv)
        for name in self.native_templated:
            changes[name] = render_value(getattr(self, name), tv, native=True)
        return dataclasses.replace(self, **changes)  # type: ignore[type-var]


def execute_action(action: Action, ctx: "Context", services: "Services") -> ActionResult:
    """
    Single entry point for every kind: render, run, and turn raised
    StepkitError/OSError into a failed result. Best-effort kinds never fail.
    """
    t0 = perf_counter()
    subject = action
    try:
        subject = action.render(ctx)
        result = subject.execute(ctx, services)
    except StepkitError as exc:
        result = ActionResult(
            subject,
            ok=False,
            output=getattr(exc, "output", "") or "",
            exit_code=getattr(exc, "exit_code", None),
            error=exc,
        )
    except OSError as exc:
        err = ActionIOError(str(exc), path=getattr(exc, "filename", None))
        err.__cause__ = exc
        result = ActionResult(subject, ok=False, error=err)

    if not result.ok and subject.best_effort:
        result = dataclasses.replace(
            result, ok=True, error=None, warnings=(*result.warnings, str(result.error))
        )
    return dataclasses.replace(result, duration=perf_counter() - t0)


def action_from_dict(doc: Mapping[str, Any]) -> Action:
    """
    {action: <kind>, ...params} → Action instance.
    Unknown kinds, unknown or missing params raise ValidationError.
    """
    if not isinstance(doc, Mapping):
        raise ValidationError(f"action must be a mapping, got {doc!r}")
    kind = doc.get("action")
    if not kind:
        raise ValidationError(f"action is missing 'action': {dict(doc)!r}")
    cls = REGISTRY.get(str(kind))
    if cls is None:
        raise ValidationError(f"Unknown action: {kind}")
    params = {k: v for k, v in doc.items() if k != "action"}
    allowed = {f.name for f in dataclasses.fields(cls)}  # type: ignore[arg-type]
    unknown = sorted(set(params) - allowed)
    if unknown:
        raise ValidationError(f"{kind}: unknown parameter(s) {', '.join(unknown)}")
    try:
        return cls(**params)
    except TypeError as exc:
        raise ValidationError(f"{kind}: {exc}") from exc


# the kinds register themselves on import
from . import run  # noqa: E402,F401
from . import files  # noqa: E402,F401
from . import deps  # noqa: E402,F401
from . import display  # noqa: E402,F401
