# -*- coding: utf-8 -*-
from __future__ import annotations

import os
from pathlib import Path


def anchor(raw: str | Path, base: str | Path) -> Path:
    """
    Resolves a path the way taskfiles write them:
      - absolute path     → as is
      - '~/...'           → home directory
      - anything else     → relative to base (the declaring taskfile's folder)
    """
    p = Path(os.path.expanduser(str(raw)))
    if p.is_absolute():
        return p
    return Path(base) / p


def anchor_str(raw: str, base: str | Path) -> str:
    """Like anchor(), but a path that starts with a Jinja2 template is left for later rendering."""
    if raw.lstrip().startswith(("{{", "{%")):
        return raw
    return str(anchor(raw, base))


def resolve_taskfile(project_root: Path, taskfile: str | None) -> Path:
    """
    taskfile: explicit path, a bare name looked up in tasks/, or None for
    stepkit.yaml in the project root.
    """
    if not taskfile:
        return (project_root / "stepkit.yaml").resolve()
    s = Path(taskfile)
    if not s.suffix:
        # bare name → tasks/<name>.yaml
        s = project_root / "tasks" / f"{s.name}.yaml"
    if not s.is_absolute():
        s = (project_root / s).resolve()
    return s
