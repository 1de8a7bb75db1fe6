# -*- coding: utf-8 -*-
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from ..context import Context
from ..errors import DependencyError, ValidationError
from ..services import Services
from . import Action, ActionResult, register
from .files import _as_tuple


@register("require", "composer_require")
@dataclass(frozen=True)
class Require(Action):
    """
    params:
      packages: str | [str, ...]
      dev?: bool (dev-only dependency, default: false)
      manager?: str (settings.dependency_managers key, default: composer)
    """

    packages: Any
    dev: bool = False
    manager: str = "composer"
    note: Optional[str] = None

    templated = ("packages",)

    def __post_init__(self) -> None:
        object.__setattr__(self, "packages", _as_tuple(self.packages, f"{self.kind}: packages"))

    def describe(self) -> str:
        dev = " --dev" if self.dev else ""
        return f"{self.manager} require{dev} {' '.join(self.packages)}"

    def execute(self, ctx: Context, services: Services) -> ActionResult:
        if not self.packages:
            raise ValidationError(f"{self.kind}: 'packages' is required")
        argv = services.deps.argv(self.packages, dev=self.dev, manager=self.manager)
        if ctx.dry_run:
            ctx.console.print(f"[cyan]DRY[/] {self.kind}: {' '.join(argv)}")
            return ActionResult(self, ok=True)

        out = services.deps.require(
            self.packages,
            dev=self.dev,
            cwd=ctx.working_dir,
            env=ctx.process_env(),
            manager=self.manager,
        )
        if out.exit_code != 0:
            if out.stderr:
                ctx.console.print(out.stderr, markup=False)
            raise DependencyError(self.packages, out.exit_code, out.stdout + out.stderr)
        return ActionResult(self, ok=True, output=out.stdout, exit_code=0)


@register("importmap_require")
@dataclass(frozen=True)
class ImportmapRequire(Require):
    """Front-end packages through the asset importmap (no dev flag)."""

    manager: str = "importmap"
