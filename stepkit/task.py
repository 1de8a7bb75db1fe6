# -*- coding: utf-8 -*-
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from rich.console import Console

from .actions import Action
from .context import Context
from .errors import UnknownTaskError, ValidationError
from .guards import Guard
from .step import Step
from .utils.paths import anchor

_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}


def _to_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    s = str(value).strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _to_int(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"not an integer: {value!r}")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"not an integer: {value!r}")
    return int(value)


_CONVERTERS: Dict[str, Callable[[Any], Any]] = {
    "str": str,
    "int": _to_int,
    "float": float,
    "bool": _to_bool,
}
_TYPE_ALIASES: Dict[Any, str] = {
    "string": "str",
    "integer": "int",
    "boolean": "bool",
    str: "str",
    int: "int",
    float: "float",
    bool: "bool",
}


def _option_key(name: str) -> str:
    return name.replace("-", "_")


@dataclass(frozen=True)
class Option:
    name: str
    type: Any = "str"
    default: Any = None
    help: str = ""

    def __post_init__(self) -> None:
        kind = _TYPE_ALIASES.get(self.type, self.type)
        if kind not in _CONVERTERS:
            raise ValidationError(f"option {self.name!r}: unknown type {self.type!r}")
        object.__setattr__(self, "type", kind)
        object.__setattr__(self, "name", _option_key(self.name))

    def convert(self, value: Any) -> Any:
        if value is None:
            return None
        try:
            return _CONVERTERS[self.type](value)
        except (TypeError, ValueError) as exc:
            raise ValidationError(
                f"option {self.name!r} expects {self.type}, got {value!r}"
            ) from exc

    @classmethod
    def from_dict(cls, doc: Mapping[str, Any]) -> "Option":
        if not doc.get("name"):
            raise ValidationError(f"option is missing 'name': {dict(doc)!r}")
        default = doc.get("default")
        # type defaults to the type of the default value
        kind = doc.get("type") or (type(default) if default is not None else "str")
        return cls(str(doc["name"]), kind, default, str(doc.get("help") or ""))


@dataclass(frozen=True)
class SubtaskRef:
    task: str
    guard: Optional[Guard] = None
    options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "guard", Guard.parse(self.guard))

    @classmethod
    def parse(cls, spec: Any) -> "SubtaskRef":
        """'task:name' or {task: name, if: <guard>, options: {...}}"""
        if isinstance(spec, str):
            return cls(spec)
        if isinstance(spec, Mapping) and spec.get("task"):
            return cls(
                str(spec["task"]),
                guard=spec.get("if", spec.get("guard")),
                options=dict(spec.get("options") or {}),
            )
        raise ValidationError(f"subtask must be a name or a mapping with 'task', got {spec!r}")


@dataclass(frozen=True)
class ContextDef:
    """Named execution context: where tasks run and which env they get."""

    name: str
    working_dir: str = "."
    env: Mapping[str, str] = field(default_factory=dict)
    default: bool = False
    create: bool = False

    def resolve_dir(self, base_dir: Optional[Path] = None) -> Path:
        return anchor(self.working_dir, base_dir or Path.cwd())

    def ensure(self, base_dir: Optional[Path] = None, *, dry_run: bool = False) -> Path:
        wd = self.resolve_dir(base_dir)
        if self.create and not dry_run:
            wd.mkdir(parents=True, exist_ok=True)
        return wd

    @classmethod
    def from_dict(cls, name: str, doc: Mapping[str, Any]) -> "ContextDef":
        doc = doc or {}
        return cls(
            name=name,
            working_dir=str(doc.get("working_dir", ".")),
            env={k: str(v) for k, v in (doc.get("env") or {}).items()},
            default=bool(doc.get("default", False)),
            create=bool(doc.get("create", False)),
        )


@dataclass(frozen=True)
class Task:
    name: str
    description: str = ""
    options: Tuple[Option, ...] = ()
    steps: Tuple[Step, ...] = ()
    subtasks: Tuple[SubtaskRef, ...] = ()
    context: Optional[str] = None

    def __post_init__(self) -> None:
        names = [o.name for o in self.options]
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise ValidationError(f"task {self.name!r}: duplicate option(s) {', '.join(dupes)}")
        object.__setattr__(self, "options", tuple(self.options))
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(
            self, "subtasks", tuple(SubtaskRef.parse(s) if not isinstance(s, SubtaskRef) else s for s in self.subtasks)
        )

    @property
    def composite(self) -> bool:
        return bool(self.subtasks)

    def option(self, name: str) -> Optional[Option]:
        key = _option_key(name)
        for o in self.options:
            if o.name == key:
                return o
        return None

    @classmethod
    def from_dict(cls, name: str, doc: Mapping[str, Any]) -> "Task":
        doc = doc or {}
        raw_options = doc.get("options") or []
        if isinstance(raw_options, Mapping):
            # {name: {type, default, help}} shorthand
            raw_options = [{"name": k, **(v or {})} for k, v in raw_options.items()]
        steps = doc.get("steps") or []
        if not isinstance(steps, list):
            raise ValidationError(f"task {name!r}: steps must be a list")
        try:
            return cls(
                name=name,
                description=str(doc.get("description") or ""),
                options=tuple(Option.from_dict(o) for o in raw_options),
                steps=tuple(Step.from_dict(s) for s in steps),
                subtasks=tuple(SubtaskRef.parse(s) for s in (doc.get("subtasks") or [])),
                context=doc.get("context"),
            )
        except ValidationError as exc:
            raise ValidationError(f"task {name!r}: {exc}") from exc


def resolve_options(task: Task, provided: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Declared defaults for everything not provided, declared type for
    everything provided. Undeclared names are rejected.
    """
    given = {_option_key(k): v for k, v in (provided or {}).items()}
    unknown = sorted(k for k in given if task.option(k) is None)
    if unknown:
        raise ValidationError(f"task {task.name!r} has no option(s): {', '.join(unknown)}")
    out: Dict[str, Any] = {}
    for opt in task.options:
        out[opt.name] = opt.convert(given[opt.name]) if opt.name in given else opt.default
    return out


def invoke(
    task: Task,
    provided: Mapping[str, Any],
    *,
    contexts: Optional[Mapping[str, ContextDef]] = None,
    base_dir: Optional[Path] = None,
    vars: Optional[Mapping[str, Any]] = None,
    console: Optional[Console] = None,
    dry_run: bool = False,
) -> Context:
    """Builds the Context a task runs in: its declared (or default) context plus resolved options."""
    options = resolve_options(task, provided)
    cdef = _pick_context(task, contexts or {})
    if cdef is None:
        wd, env, name = Path(base_dir or Path.cwd()), {}, "default"
    else:
        wd, env, name = cdef.ensure(base_dir, dry_run=dry_run), cdef.env, cdef.name
    return Context(
        working_dir=wd,
        options=options,
        env=env,
        vars=vars or {},
        name=name,
        dry_run=dry_run,
        console=console or Console(),
    )


def _pick_context(task: Task, contexts: Mapping[str, ContextDef]) -> Optional[ContextDef]:
    if task.context:
        if task.context not in contexts:
            raise ValidationError(f"task {task.name!r}: unknown context {task.context!r}")
        return contexts[task.context]
    for cdef in contexts.values():
        if cdef.default:
            return cdef
    return None


class TaskBuilder:
    """
    Fluent definition of a task:

        TaskBuilder("barcode:install", "Require bundles")
            .option("dev", bool, True)
            .step("Install bundles", Require(["survos/barcode-bundle"]))
            .build()
    """

    def __init__(self, name: str, description: str = "", *, context: Optional[str] = None) -> None:
        self.name = name
        self.description = description
        self.context = context
        self._options: List[Option] = []
        self._steps: List[Step] = []
        self._subtasks: List[SubtaskRef] = []

    def option(self, name: str, type: Any = "str", default: Any = None, help: str = "") -> "TaskBuilder":
        self._options.append(Option(name, type, default, help))
        return self

    def step(
        self,
        name: str,
        *actions: Action,
        description: str = "",
        bullets: Tuple[str, ...] = (),
        guard: Any = None,
    ) -> "TaskBuilder":
        self._steps.append(Step(name, description, tuple(bullets), guard, tuple(actions)))
        return self

    def subtask(self, task: str, *, guard: Any = None, **options: Any) -> "TaskBuilder":
        self._subtasks.append(SubtaskRef(task, guard, options))
        return self

    def build(self) -> Task:
        return Task(
            self.name,
            self.description,
            tuple(self._options),
            tuple(self._steps),
            tuple(self._subtasks),
            self.context,
        )


class TaskRegistry:
    """Tasks and contexts declared by the loaded taskfiles, in declaration order."""

    def __init__(
        self,
        *,
        base_dir: Optional[Path] = None,
        vars: Optional[Mapping[str, Any]] = None,
        settings: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.base_dir = base_dir
        self.vars: Dict[str, Any] = dict(vars or {})
        self.settings: Dict[str, Any] = dict(settings or {})
        self.tasks: Dict[str, Task] = {}
        self.contexts: Dict[str, ContextDef] = {}

    def add(self, task: Task) -> Task:
        if task.name in self.tasks:
            raise ValidationError(f"task {task.name!r} is already defined")
        self.tasks[task.name] = task
        return task

    def add_context(self, cdef: ContextDef) -> ContextDef:
        self.contexts[cdef.name] = cdef
        return cdef

    def get(self, name: str) -> Task:
        try:
            return self.tasks[name]
        except KeyError:
            raise UnknownTaskError(name, self.tasks) from None

    def __contains__(self, name: object) -> bool:
        return name in self.tasks

    def __iter__(self) -> Iterator[Task]:
        return iter(self.tasks.values())

    def __len__(self) -> int:
        return len(self.tasks)

    def invoke(
        self,
        task: Task | str,
        provided: Optional[Mapping[str, Any]] = None,
        *,
        console: Optional[Console] = None,
        dry_run: bool = False,
    ) -> Context:
        t = self.get(task) if isinstance(task, str) else task
        return invoke(
            t,
            provided or {},
            contexts=self.contexts,
            base_dir=self.base_dir,
            vars=self.vars,
            console=console,
            dry_run=dry_run,
        )

    def validate(self) -> List[str]:
        """Dangling sub-task/context references and composite cycles."""
        errors: List[str] = []
        defaults = [c.name for c in self.contexts.values() if c.default]
        if len(defaults) > 1:
            errors.append(f"more than one default context: {', '.join(defaults)}")
        for t in self.tasks.values():
            if t.context and t.context not in self.contexts:
                errors.append(f"task {t.name!r}: unknown context {t.context!r}")
            for ref in t.subtasks:
                if ref.task not in self.tasks:
                    errors.append(f"task {t.name!r}: unknown subtask {ref.task!r}")
        errors.extend(self._cycles())
        return errors

    def _cycles(self) -> List[str]:
        found: List[str] = []
        done: set = set()

        def visit(name: str, path: Tuple[str, ...]) -> None:
            if name in path:
                found.append("subtask cycle: " + " → ".join((*path[path.index(name):], name)))
                return
            if name in done or name not in self.tasks:
                return
            for ref in self.tasks[name].subtasks:
                visit(ref.task, (*path, name))
            done.add(name)

        for name in self.tasks:
            visit(name, ())
        return found
