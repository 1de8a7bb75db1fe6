# -*- coding: utf-8 -*-
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from rich.panel import Panel
from rich.syntax import Syntax

from ..context import Context
from ..errors import ActionIOError
from ..services import Services
from . import Action, ActionResult, register

_LEXERS = {
    ".php": "php",
    ".twig": "twig",
    ".yaml": "yaml",
    ".yml": "yaml",
    ".py": "python",
    ".js": "javascript",
    ".json": "json",
    ".env": "bash",
}


@register("display_code")
@dataclass(frozen=True)
class DisplayCode(Action):
    """
    params:
      path: str
      lang?: str (lexer name, guessed from the suffix when omitted)
    Feedback only: a missing file is a warning.
    """

    path: str
    lang: Optional[str] = None
    note: Optional[str] = None

    templated = ("path",)
    best_effort = True

    def describe(self) -> str:
        return f"show {self.path}"

    def execute(self, ctx: Context, services: Services) -> ActionResult:
        target = ctx.path(self.path)
        if not services.fs.exists(target):
            if ctx.dry_run:
                ctx.console.print(f"[cyan]DRY[/] display_code: {target}")
                return ActionResult(self, ok=True)
            raise ActionIOError(f"nothing to display, {self.path} not found", path=str(target))

        code = services.fs.read_text(target)
        lexer = self.lang or _LEXERS.get(target.suffix.lower(), "text")
        ctx.console.print(
            Panel(
                Syntax(code, lexer, line_numbers=True, word_wrap=True),
                title=self.note or self.path,
                title_align="left",
            )
        )
        return ActionResult(self, ok=True, output=code)


@register("browser_visit")
@dataclass(frozen=True)
class BrowserVisit(Action):
    """
    params:
      path?: str (default: /)
      host?: str (e.g. http://barcode.wip; falls back to vars.base_url)
    """

    path: str = "/"
    host: Optional[str] = None
    note: Optional[str] = None

    templated = ("path", "host")
    best_effort = True

    def url(self, ctx: Context) -> str:
        host = self.host or ctx.vars.get("base_url") or ""
        if not host:
            return self.path
        return str(host).rstrip("/") + "/" + self.path.lstrip("/")

    def describe(self) -> str:
        return f"open {self.host or ''}{self.path}"

    def execute(self, ctx: Context, services: Services) -> ActionResult:
        url = self.url(ctx)
        if ctx.dry_run:
            ctx.console.print(f"[cyan]DRY[/] browser_visit: {url}")
            return ActionResult(self, ok=True, output=url)
        if not services.browser.open(url):
            return ActionResult(self, ok=True, output=url, warnings=(f"could not open {url}",))
        ctx.console.print(f"Opened {url}")
        return ActionResult(self, ok=True, output=url)


@register("log")
@dataclass(frozen=True)
class Log(Action):
    message: str = ""
    style: Optional[str] = None

    templated = ("message",)

    def execute(self, ctx: Context, services: Services) -> ActionResult:
        msg = str(self.message)
        ctx.console.print(msg, style=self.style, markup=False)
        return ActionResult(self, ok=True, output=msg)
