# -*- coding: utf-8 -*-
from __future__ import annotations

import os
import re
import shutil
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

import psutil

from .context import Context
from .errors import GuardEvaluationError, ValidationError
from .services import Services

GUARDS: Dict[str, Callable[..., bool]] = {}
_PRIMARY: Dict[str, str] = {}


def guard(name: str, *, arg: Optional[str] = None):
    """Registers a predicate; `arg` names the parameter filled by 'kind:value'."""

    def deco(func: Callable[..., bool]) -> Callable[..., bool]:
        GUARDS[name] = func
        if arg:
            _PRIMARY[name] = arg
        return func

    return deco


@dataclass(frozen=True)
class Guard:
    kind: str = ""
    params: Mapping[str, Any] = field(default_factory=dict)
    negate: bool = False
    predicate: Optional[Callable[[Context], bool]] = field(default=None, compare=False)

    @classmethod
    def parse(cls, spec: Any) -> Optional["Guard"]:
        """
        spec forms:
          "dir_empty" | "not exists:.env.local" | "!option:no_start"
          {type: exists, path: .env.local, negate: true}
          a callable taking the Context
        """
        if spec is None or isinstance(spec, Guard):
            return spec
        if callable(spec):
            return cls(kind=getattr(spec, "__name__", "predicate"), predicate=spec)
        if isinstance(spec, str):
            text = spec.strip()
            negate = False
            if text.startswith("!"):
                negate, text = True, text[1:].strip()
            elif text.startswith("not "):
                negate, text = True, text[4:].strip()
            kind, _, value = text.partition(":")
            params: Dict[str, Any] = {}
            if value:
                primary = _PRIMARY.get(kind)
                if primary is None:
                    raise ValidationError(f"guard {kind!r} takes no inline argument")
                params[primary] = value.strip()
            return cls._checked(kind.strip(), params, negate)
        if isinstance(spec, Mapping):
            doc = dict(spec)
            kind = str(doc.pop("type", "") or "").strip()
            negate = bool(doc.pop("negate", False))
            negate = bool(doc.pop("not", False)) or negate
            return cls._checked(kind, doc, negate)
        raise ValidationError(f"guard must be a string or a mapping, got {spec!r}")

    @classmethod
    def _checked(cls, kind: str, params: Dict[str, Any], negate: bool) -> "Guard":
        if kind not in GUARDS:
            raise ValidationError(f"unknown guard type: {kind!r}")
        return cls(kind=kind, params=params, negate=negate)

    def describe(self) -> str:
        args = ", ".join(f"{k}={v!r}" for k, v in self.params.items())
        body = f"{self.kind}({args})" if args else self.kind
        return f"not {body}" if self.negate else body


def evaluate(g: Guard, ctx: Context, services: Services) -> bool:
    """Answers the guard; any exception from the predicate becomes GuardEvaluationError."""
    try:
        if g.predicate is not None:
            answer = bool(g.predicate(ctx))
        else:
            fn = GUARDS.get(g.kind)
            if fn is None:
                raise GuardEvaluationError(f"unknown guard type: {g.kind!r}")
            answer = bool(fn(ctx, services, **dict(g.params)))
    except GuardEvaluationError:
        raise
    except Exception as exc:
        raise GuardEvaluationError(f"guard {g.describe()} failed: {exc}") from exc
    return not answer if g.negate else answer


# ===================== predicates =====================


@guard("dir_empty", arg="path")
def _dir_empty(ctx: Context, services: Services, path: str = ".") -> bool:
    return services.fs.is_empty_dir(ctx.path(path))


@guard("exists", arg="path")
def _exists(ctx: Context, services: Services, path: str) -> bool:
    return services.fs.exists(ctx.path(path))


@guard("missing", arg="path")
def _missing(ctx: Context, services: Services, path: str) -> bool:
    return not services.fs.exists(ctx.path(path))


@guard("option", arg="name")
def _option(ctx: Context, services: Services, name: str, equals: Any = None) -> bool:
    if name not in ctx.options:
        raise KeyError(f"no option named {name!r}")
    value = ctx.options[name]
    if equals is not None:
        return value == equals
    return bool(value)


@guard("env", arg="name")
def _env(ctx: Context, services: Services, name: str, equals: Optional[str] = None) -> bool:
    value = ctx.env.get(name, os.environ.get(name))
    if equals is not None:
        return value == str(equals)
    return bool(value)


@guard("command_available", arg="name")
def _command_available(ctx: Context, services: Services, name: str) -> bool:
    return shutil.which(name) is not None


@guard("process_running", arg="name")
def _process_running(ctx: Context, services: Services, name: str) -> bool:
    name_re = re.compile(name, re.IGNORECASE)
    for p in psutil.process_iter(["name"]):
        try:
            nm = p.info.get("name") or ""
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
        if name_re.search(nm) is not None:
            return True
    return False


@guard("confirm", arg="message")
def _confirm(ctx: Context, services: Services, message: str = "Continue?", default: bool = False) -> bool:
    return services.prompter.confirm(message, default=bool(default))
