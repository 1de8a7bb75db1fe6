# -*- coding: utf-8 -*-
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ..context import Context
from ..errors import ActionIOError, ValidationError
from ..services import Services
from ..templating import render_value
from ..utils.data import deep_merge
from . import Action, ActionResult, register


def _as_tuple(value: Any, what: str) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, (list, tuple)):
        return tuple(str(v) for v in value)
    raise ValidationError(f"{what} must be a string or a list, got {value!r}")


@register("file_write")
@dataclass(frozen=True)
class FileWrite(Action):
    """
    params:
      path: str (relative to the working directory)
      content: str
      interpolate?: bool (render content as a Jinja2 template, default: false)
    """

    path: str
    content: str
    interpolate: bool = False
    note: Optional[str] = None

    templated = ("path",)

    def describe(self) -> str:
        return f"write {self.path}"

    def render(self, ctx: Context) -> "FileWrite":
        out = super().render(ctx)
        if self.interpolate:
            out = replace(out, content=render_value(self.content, ctx.template_vars()))
        return out  # type: ignore[return-value]

    def execute(self, ctx: Context, services: Services) -> ActionResult:
        target = ctx.path(self.path)
        if ctx.dry_run:
            ctx.console.print(f"[cyan]DRY[/] file_write: {target} ({len(self.content)} chars)")
            return ActionResult(self, ok=True, output=str(target))
        services.fs.write_text(target, self.content)
        ctx.console.print(f"[green]wrote[/] {self.path}")
        return ActionResult(self, ok=True, output=str(target))


@register("file_append")
@dataclass(frozen=True)
class FileAppend(Action):
    """
    params:
      path: str
      content: str (a trailing newline is added when missing)
    """

    path: str
    content: str
    note: Optional[str] = None

    templated = ("path", "content")

    def describe(self) -> str:
        return f"append to {self.path}"

    def execute(self, ctx: Context, services: Services) -> ActionResult:
        target = ctx.path(self.path)
        text = self.content if self.content.endswith("\n") else self.content + "\n"
        if ctx.dry_run:
            ctx.console.print(f"[cyan]DRY[/] file_append: {target}")
            return ActionResult(self, ok=True, output=str(target))
        services.fs.append_text(target, text)
        ctx.console.print(f"[green]appended[/] {self.path}")
        return ActionResult(self, ok=True, output=str(target))


@register("yaml_write")
@dataclass(frozen=True)
class YamlWrite(Action):
    """
    params:
      path: str
      data: mapping (placeholders keep native types: "{{ options.height }}" → 120)
      merge?: bool (deep-merge into the existing file, default: false = overwrite)
    """

    path: str
    data: Dict[str, Any]
    merge: bool = False
    note: Optional[str] = None

    templated = ("path",)
    native_templated = ("data",)

    def describe(self) -> str:
        return f"yaml {self.path}{' (merge)' if self.merge else ''}"

    def execute(self, ctx: Context, services: Services) -> ActionResult:
        if not isinstance(self.data, dict):
            raise ValidationError(f"yaml_write: 'data' must be a mapping, got {self.data!r}")
        target = ctx.path(self.path)
        payload: Dict[str, Any] = dict(self.data)

        if self.merge and services.fs.exists(target):
            try:
                existing = services.serializer.load(services.fs.read_text(target)) or {}
            except yaml.YAMLError as exc:
                raise ActionIOError(f"cannot parse {target}: {exc}", path=str(target)) from exc
            if not isinstance(existing, dict):
                raise ActionIOError(f"cannot merge into non-mapping YAML: {target}", path=str(target))
            payload = deep_merge(existing, payload)

        try:
            text = services.serializer.dump(payload)
        except yaml.YAMLError as exc:
            raise ActionIOError(f"cannot serialize data for {target}: {exc}", path=str(target)) from exc

        if ctx.dry_run:
            ctx.console.print(f"[cyan]DRY[/] yaml_write: {target} merge={self.merge}")
            return ActionResult(self, ok=True, output=text)
        services.fs.write_text(target, text)
        ctx.console.print(f"[green]wrote[/] {self.path}")
        return ActionResult(self, ok=True, output=text)


@register("mkdir")
@dataclass(frozen=True)
class MakeDirs(Action):
    """
    params:
      paths: [str, ...] (existing directories are reported, not an error)
    """

    paths: Any
    note: Optional[str] = None

    templated = ("paths",)

    def __post_init__(self) -> None:
        object.__setattr__(self, "paths", _as_tuple(self.paths, "mkdir: paths"))

    def describe(self) -> str:
        return f"mkdir {' '.join(self.paths)}"

    def execute(self, ctx: Context, services: Services) -> ActionResult:
        created: List[str] = []
        for raw in self.paths:
            target = ctx.path(raw)
            if services.fs.exists(target):
                ctx.console.print(f"[dim]{raw} already exists[/]")
                continue
            if ctx.dry_run:
                ctx.console.print(f"[cyan]DRY[/] mkdir: {target}")
            else:
                services.fs.mkdir_all(target)
                ctx.console.print(f"[green]created[/] {raw}")
            created.append(raw)
        return ActionResult(self, ok=True, output="\n".join(created))


@register("copy")
@dataclass(frozen=True)
class CopyFiles(Action):
    """
    params:
      source: str (root to copy from; missing root fails the action)
      files: [str, ...] (paths relative to source; a missing one is a warning)
      target?: str (destination root, default: working directory)
    """

    source: str
    files: Any
    target: str = "."
    note: Optional[str] = None

    templated = ("source", "files", "target")

    def __post_init__(self) -> None:
        object.__setattr__(self, "files", _as_tuple(self.files, "copy: files"))

    def describe(self) -> str:
        return f"copy {len(self.files)} file(s) from {self.source}"

    def execute(self, ctx: Context, services: Services) -> ActionResult:
        base = ctx.path(self.source)
        if not services.fs.exists(base):
            raise ActionIOError(f"source path not found: {base}", path=str(base))

        dest_root = ctx.path(self.target)
        warnings: List[str] = []
        copied: List[str] = []
        for rel in self.files:
            src = base / rel
            if not services.fs.exists(src):
                msg = f"source file not found: {src}"
                ctx.console.print(f"[yellow]{msg}[/]")
                warnings.append(msg)
                continue
            if ctx.dry_run:
                ctx.console.print(f"[cyan]DRY[/] copy: {src} → {dest_root / rel}")
            else:
                services.fs.copy(src, dest_root / rel)
                ctx.console.print(f"[green]copied[/] {rel}")
            copied.append(rel)
        return ActionResult(self, ok=True, output="\n".join(copied), warnings=tuple(warnings))


@register("remove")
@dataclass(frozen=True)
class Remove(Action):
    """
    params:
      paths: [str, ...] (missing paths are ignored)
    """

    paths: Any
    note: Optional[str] = None

    templated = ("paths",)

    def __post_init__(self) -> None:
        object.__setattr__(self, "paths", _as_tuple(self.paths, "remove: paths"))

    def describe(self) -> str:
        return f"remove {' '.join(self.paths)}"

    def execute(self, ctx: Context, services: Services) -> ActionResult:
        removed: List[str] = []
        for raw in self.paths:
            target = ctx.path(raw)
            if not services.fs.exists(target):
                continue
            if ctx.dry_run:
                ctx.console.print(f"[cyan]DRY[/] remove: {target}")
            elif services.fs.remove(target):
                ctx.console.print(f"[green]removed[/] {raw}")
            removed.append(raw)
        return ActionResult(self, ok=True, output="\n".join(removed))
