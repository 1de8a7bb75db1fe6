# -*- coding: utf-8 -*-
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from rich.markup import escape

from ..context import Context
from ..errors import ProcessFailure
from ..services import Services
from ..utils.timeparse import parse_duration
from . import Action, ActionResult, register


@register("bash", "shell")
@dataclass(frozen=True)
class Bash(Action):
    """
    params:
      command: str (run by the shell in the working directory)
      timeout?: duration (overrides settings.defaults.timeout)
      env?: {k: v} (on top of the context env)
      show_output?: bool (print captured stdout on success)
    """

    command: str
    timeout: Any = None
    env: Dict[str, str] = field(default_factory=dict)
    show_output: bool = False
    note: Optional[str] = None

    templated = ("command", "env")

    def describe(self) -> str:
        return f"$ {self.command}"

    def execute(self, ctx: Context, services: Services) -> ActionResult:
        timeout = parse_duration(self.timeout)
        if ctx.dry_run:
            ctx.console.print(
                f"[cyan]DRY[/] bash: {escape(self.command)} cwd={ctx.working_dir} timeout={timeout}"
            )
            return ActionResult(self, ok=True)

        out = services.shell.run(
            self.command, ctx.working_dir, env=ctx.process_env(self.env), timeout=timeout
        )
        if out.exit_code != 0:
            ctx.console.print(f"[red]bash non-zero exit {out.exit_code}[/]")
            if out.stdout:
                ctx.console.print("[dim]stdout:[/]")
                ctx.console.print(out.stdout, markup=False)
            if out.stderr:
                ctx.console.print("[dim]stderr:[/]")
                ctx.console.print(out.stderr, markup=False)
            raise ProcessFailure(self.command, out.exit_code, out.stdout, out.stderr)

        if self.show_output and out.stdout:
            ctx.console.print(out.stdout.rstrip("\n"), markup=False, highlight=False)
        return ActionResult(self, ok=True, output=out.stdout, exit_code=0)
