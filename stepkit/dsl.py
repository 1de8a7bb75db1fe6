# -*- coding: utf-8 -*-
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from .actions import REGISTRY
from .errors import ValidationError
from .guards import Guard
from .task import ContextDef, Task, TaskRegistry
from .templating import render_value
from .utils.data import deep_merge, parse_scalar
from .utils.paths import anchor, anchor_str, resolve_taskfile


# ---------- basic utils ----------


def parse_overrides(pairs: List[str]) -> Dict[str, Any]:
    """
    Turns ["settings.defaults.timeout=20s", "settings.vars.port=8000"]
    into {"settings": {"defaults": {"timeout": "20s"}, "vars": {"port": 8000}}}
    """
    root: Dict[str, Any] = {}
    for p in pairs:
        if "=" not in p:
            raise ValidationError(f"Override must be key=value, got: {p}")
        key, raw = p.split("=", 1)
        keys = key.strip().split(".")
        val = parse_scalar(raw)
        cur = root
        for k in keys[:-1]:
            nxt = cur.setdefault(k, {})
            if not isinstance(nxt, dict):
                raise ValidationError(f"Override path collides at {k} in {p}")
            cur = nxt
        cur[keys[-1]] = val
    return root


def parse_assignments(pairs: List[str]) -> Dict[str, str]:
    """["version=7.4", "no-start=true"] → flat dict; values stay strings for Option.convert."""
    out: Dict[str, str] = {}
    for p in pairs:
        if "=" not in p:
            raise ValidationError(f"Option must be name=value, got: {p}")
        k, v = p.split("=", 1)
        out[k.strip()] = v
    return out


def load_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as exc:
        raise ValidationError(f"Invalid YAML in {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValidationError(f"YAML root must be a mapping: {path}")
    return data


def validate_taskfile(doc: Dict[str, Any]) -> List[str]:
    errors: List[str] = []
    if doc.get("version") != 1:
        errors.append("version must be 1")
    tasks = doc.get("tasks")
    if not isinstance(tasks, dict) or not tasks:
        errors.append("tasks must be a non-empty mapping")
        return errors
    contexts = doc.get("contexts") or {}
    if not isinstance(contexts, dict):
        errors.append("contexts must be a mapping")
        contexts = {}

    for name, task in tasks.items():
        if not isinstance(task, dict):
            errors.append(f"task {name!r} must be a mapping")
            continue
        if task.get("context") and task["context"] not in contexts:
            errors.append(f"task {name!r}: unknown context {task['context']!r}")
        for ref in task.get("subtasks") or []:
            target = ref.get("task") if isinstance(ref, dict) else ref
            if target not in tasks:
                errors.append(f"task {name!r}: unknown subtask {target!r}")
        steps = task.get("steps") or []
        if not isinstance(steps, list):
            errors.append(f"task {name!r}: steps must be a list")
            continue
        for i, st in enumerate(steps, 1):
            if not isinstance(st, dict):
                errors.append(f"task {name!r} step #{i} must be a mapping")
                continue
            if "name" not in st:
                errors.append(f"task {name!r} step #{i} missing 'name'")
            guard = st.get("if", st.get("guard"))
            if guard is not None:
                try:
                    Guard.parse(guard)
                except ValidationError as exc:
                    errors.append(f"task {name!r} step #{i}: {exc}")
            for j, act in enumerate(st.get("actions") or [], 1):
                if not isinstance(act, dict) or "action" not in act:
                    errors.append(f"task {name!r} step #{i} action #{j} missing 'action'")
                elif act["action"] not in REGISTRY:
                    errors.append(f"task {name!r} step #{i} action #{j}: unknown action {act['action']!r}")
    return errors


# ---------- loading a taskfile set ----------


def resolve_paths(
    project_root: Path,
    taskfile: str | None,
    profile: str | None,
) -> Tuple[Path, Path | None, Path]:
    """
    Returns (defaults.yaml, profile.yaml?, taskfile)
    """
    defaults = project_root / "configs" / "defaults.yaml"
    prof = (
        project_root / "configs" / "profiles" / f"{profile}.yaml" if profile else None
    )
    return defaults, prof, resolve_taskfile(project_root, taskfile)


def _anchor_contexts(doc: Dict[str, Any], base: Path) -> Dict[str, Any]:
    # context dirs are relative to the file that declares them
    contexts = doc.get("contexts")
    if not isinstance(contexts, dict):
        return doc
    fixed = {}
    for name, c in contexts.items():
        c = dict(c or {})
        c["working_dir"] = anchor_str(str(c.get("working_dir", ".")), base)
        fixed[name] = c
    return {**doc, "contexts": fixed}


def _load_tree(path: Path, seen: Tuple[Path, ...] = ()) -> Dict[str, Any]:
    """
    A taskfile with its `imports:` merged underneath it (the importer wins).
    Tasks are not merged: two imports declaring the same task is an error,
    and a task declared by the importer replaces the imported one whole.
    """
    path = path.resolve()
    if path in seen:
        raise ValidationError(f"import cycle: {' → '.join(str(p) for p in (*seen, path))}")
    if not path.exists():
        raise ValidationError(f"Taskfile not found: {path}")
    doc = _anchor_contexts(load_yaml(path), path.parent)
    imports = doc.pop("imports", None) or []
    if isinstance(imports, str):
        imports = [imports]

    merged: Dict[str, Any] = {}
    tasks: Dict[str, Any] = {}
    origin: Dict[str, Path] = {}
    for item in imports:
        sub_path = anchor(item, path.parent)
        tree = _load_tree(sub_path, (*seen, path))
        sub_tasks = tree.pop("tasks", None) or {}
        if not isinstance(sub_tasks, dict):
            raise ValidationError(f"tasks must be a mapping in {sub_path}")
        for name in sub_tasks:
            if name in origin:
                raise ValidationError(
                    f"task {name!r} is defined in both {origin[name]} and {sub_path}"
                )
            origin[name] = sub_path
        tasks.update(sub_tasks)
        merged = deep_merge(merged, tree)

    own = doc.pop("tasks", None)
    merged = deep_merge(merged, doc)
    if isinstance(own, dict):
        merged["tasks"] = {**tasks, **own}
    elif own is not None:
        merged["tasks"] = own
    elif tasks:
        merged["tasks"] = tasks
    return merged


def _render_templates(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Renders Jinja2 placeholders in settings and contexts with settings.vars.
    Tasks are rendered later, per run, against the Context.
    """
    vars_ = ((cfg.get("settings") or {}).get("vars") or {}).copy()
    out = dict(cfg)
    for section in ("settings", "contexts"):
        if section in out:
            out[section] = render_value(out[section], {"vars": vars_, **vars_})
    return out


def load_config(
    project_root: Path,
    taskfile: str | None,
    profile: str | None,
    overrides: List[str],
) -> Tuple[Dict[str, Any], Path]:
    """
    Loads defaults → profile → taskfile (+imports) → CLI overrides, then
    renders Jinja2 placeholders. Returns (config, taskfile directory).
    """
    defaults_p, profile_p, taskfile_p = resolve_paths(project_root, taskfile, profile)

    result: Dict[str, Any] = {}

    if defaults_p.exists():
        result = deep_merge(result, load_yaml(defaults_p))

    if profile_p is not None:
        if not profile_p.exists():
            raise ValidationError(f"Profile not found: {profile_p}")
        result = deep_merge(result, load_yaml(profile_p))

    result = deep_merge(result, _load_tree(taskfile_p))

    if overrides:
        result = deep_merge(result, parse_overrides(overrides))

    result = _render_templates(result)
    return result, taskfile_p.parent


def build_registry(cfg: Dict[str, Any], base_dir: Optional[Path] = None) -> TaskRegistry:
    settings = cfg.get("settings") or {}
    registry = TaskRegistry(base_dir=base_dir, vars=settings.get("vars") or {}, settings=settings)
    for name, doc in (cfg.get("contexts") or {}).items():
        registry.add_context(ContextDef.from_dict(name, doc))
    for name, doc in (cfg.get("tasks") or {}).items():
        registry.add(Task.from_dict(name, doc))
    problems = registry.validate()
    if problems:
        raise ValidationError("; ".join(problems))
    return registry


def load_registry(
    project_root: Path,
    taskfile: str | None = None,
    profile: str | None = None,
    overrides: Optional[List[str]] = None,
) -> TaskRegistry:
    cfg, base_dir = load_config(project_root, taskfile, profile, overrides or [])
    errors = validate_taskfile(cfg)
    if errors:
        raise ValidationError("; ".join(errors))
    return build_registry(cfg, base_dir)
