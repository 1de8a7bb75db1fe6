from __future__ import annotations

import os
import re

import psutil
import pytest

from stepkit.context import Context
from stepkit.errors import GuardEvaluationError, ValidationError
from stepkit.guards import Guard, evaluate
from stepkit.services import Prompter, Services


def test_parse_string_forms() -> None:
    g = Guard.parse("not exists:.env.local")
    assert g == Guard("exists", {"path": ".env.local"}, negate=True)

    assert Guard.parse("!option:no_start") == Guard("option", {"name": "no_start"}, negate=True)
    assert Guard.parse("dir_empty") == Guard("dir_empty")
    assert Guard.parse(None) is None


def test_parse_mapping_form() -> None:
    g = Guard.parse({"type": "confirm", "message": "Continue?", "default": False})
    assert g == Guard("confirm", {"message": "Continue?", "default": False})

    assert Guard.parse({"type": "missing", "path": "x", "not": True}).negate is True


def test_parse_rejects_unknown_kinds() -> None:
    with pytest.raises(ValidationError, match="unknown guard"):
        Guard.parse("fs.workingDirIsEmpty")
    with pytest.raises(ValidationError):
        Guard.parse(42)


def test_dir_empty(ctx: Context, services: Services) -> None:
    g = Guard.parse("dir_empty")
    assert evaluate(g, ctx, services) is True

    (ctx.working_dir / "composer.json").write_text("{}")
    assert evaluate(g, ctx, services) is False
    assert evaluate(Guard.parse("not dir_empty"), ctx, services) is True


def test_exists_and_missing(ctx: Context, services: Services) -> None:
    assert evaluate(Guard.parse("missing:.env.local"), ctx, services) is True
    (ctx.working_dir / ".env.local").write_text("")
    assert evaluate(Guard.parse("exists:.env.local"), ctx, services) is True
    assert evaluate(Guard.parse("missing:.env.local"), ctx, services) is False


def test_option_guard(ctx: Context, services: Services, tmp_path) -> None:
    c = Context(working_dir=tmp_path, options={"with_config": True, "no_start": False})

    assert evaluate(Guard.parse("option:with_config"), c, services) is True
    assert evaluate(Guard.parse("not option:no_start"), c, services) is True
    assert evaluate(Guard.parse({"type": "option", "name": "with_config", "equals": False}), c, services) is False


def test_predicate_exception_becomes_guard_evaluation_error(ctx: Context, services: Services) -> None:
    with pytest.raises(GuardEvaluationError, match="no option named"):
        evaluate(Guard.parse("option:nope"), ctx, services)

    def broken(_ctx):
        raise RuntimeError("collaborator down")

    with pytest.raises(GuardEvaluationError, match="collaborator down"):
        evaluate(Guard.parse(broken), ctx, services)


def test_callable_predicate(ctx: Context, services: Services) -> None:
    g = Guard.parse(lambda c: c.options["version"] == "7.3")
    assert evaluate(g, ctx, services) is True


def test_env_guard(ctx: Context, services: Services, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STEPKIT_CI", "1")
    monkeypatch.delenv("STEPKIT_NOPE", raising=False)

    assert evaluate(Guard.parse("env:STEPKIT_CI"), ctx, services) is True
    assert evaluate(Guard.parse("env:STEPKIT_NOPE"), ctx, services) is False


def test_process_running(ctx: Context, services: Services) -> None:
    me = psutil.Process(os.getpid()).name()

    assert evaluate(Guard("process_running", {"name": "^" + re.escape(me) + "$"}), ctx, services)
    assert not evaluate(Guard.parse("process_running:^no-such-process-xyz$"), ctx, services)


def test_confirm_uses_prompter(ctx: Context, console) -> None:
    yes = Services(prompter=Prompter(console, assume_yes=True))
    assert evaluate(Guard.parse("confirm:Remove files?"), ctx, yes) is True


def test_confirm_without_stdin_takes_default(ctx: Context, services: Services, monkeypatch: pytest.MonkeyPatch) -> None:
    def _eof(*args, **kwargs):
        raise EOFError

    monkeypatch.setattr("stepkit.services.Confirm.ask", _eof)

    g = Guard.parse({"type": "confirm", "message": "Continue?", "default": False})
    assert evaluate(g, ctx, services) is False


def test_command_available(ctx: Context, services: Services, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("stepkit.guards.shutil.which", lambda name: "/usr/bin/" + name if name == "composer" else None)

    assert evaluate(Guard.parse("command_available:composer"), ctx, services) is True
    assert evaluate(Guard.parse("not command_available:symfony"), ctx, services) is True
