# -*- coding: utf-8 -*-
from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from rich.console import Console

_MERGED = ("options", "env", "vars")
_REPLACED = ("name", "dry_run")


@dataclass(frozen=True)
class Context:
    """
    Execution parameters of one task run: working directory, resolved
    options, environment overrides and taskfile vars. Frozen; nested task
    calls get a derived copy. The console is the run's log sink.
    """

    working_dir: Path
    options: Mapping[str, Any] = field(default_factory=dict)
    env: Mapping[str, str] = field(default_factory=dict)
    vars: Mapping[str, Any] = field(default_factory=dict)
    extra: Mapping[str, Any] = field(default_factory=dict)
    name: str = "default"
    dry_run: bool = False
    console: Console = field(default_factory=Console, compare=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "working_dir", Path(self.working_dir))
        for attr in ("options", "env", "vars", "extra"):
            object.__setattr__(self, attr, MappingProxyType(dict(getattr(self, attr))))

    def path(self, p: str | Path) -> Path:
        q = Path(p)
        return q if q.is_absolute() else self.working_dir / q

    def process_env(self, extra: Optional[Mapping[str, str]] = None) -> Optional[Dict[str, str]]:
        """Environment for child processes, None when nothing is overridden."""
        overrides = {**self.env, **(extra or {})}
        if not overrides:
            return None
        return {**os.environ, **{k: str(v) for k, v in overrides.items()}}

    def template_vars(self) -> Dict[str, Any]:
        return {
            **self.extra,
            "options": dict(self.options),
            "vars": dict(self.vars),
            "env": {**os.environ, **self.env},
            "cwd": str(self.working_dir),
            "context": self.name,
        }


def derive_context(base: Context, overrides: Mapping[str, Any]) -> Context:
    """
    New Context with overrides merged on top of base; base is left untouched.
    options/env/vars merge key by key, working_dir/name/dry_run replace,
    unknown keys are kept in extra for actions that read them.
    """
    changes: Dict[str, Any] = {}
    extra = dict(base.extra)
    for key, value in overrides.items():
        if key in _MERGED:
            changes[key] = {**getattr(base, key), **dict(value or {})}
        elif key == "working_dir":
            changes[key] = base.path(value)
        elif key in _REPLACED:
            changes[key] = value
        else:
            extra[key] = value
    changes["extra"] = extra
    return replace(base, **changes)
