from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest

from stepkit.context import Context, derive_context


def test_derive_merges_and_keeps_base_untouched(tmp_path: Path) -> None:
    base = Context(working_dir=tmp_path, options={"a": 1, "b": 2}, env={"X": "1"})

    child = derive_context(base, {"options": {"b": 3, "c": 4}, "env": {"Y": "2"}})

    assert dict(child.options) == {"a": 1, "b": 3, "c": 4}
    assert dict(child.env) == {"X": "1", "Y": "2"}
    assert dict(base.options) == {"a": 1, "b": 2}
    assert dict(base.env) == {"X": "1"}


def test_derive_keeps_unknown_keys_as_extra(tmp_path: Path) -> None:
    base = Context(working_dir=tmp_path)

    child = derive_context(base, {"ticket": "ABC-1", "dry_run": True})

    assert child.extra["ticket"] == "ABC-1"
    assert child.dry_run is True
    assert child.template_vars()["ticket"] == "ABC-1"
    assert "ticket" not in base.extra


def test_derive_anchors_relative_working_dir(tmp_path: Path) -> None:
    base = Context(working_dir=tmp_path)

    assert derive_context(base, {"working_dir": "sub"}).working_dir == tmp_path / "sub"
    assert derive_context(base, {"working_dir": "/abs"}).working_dir == Path("/abs")


def test_context_is_frozen(tmp_path: Path) -> None:
    ctx = Context(working_dir=tmp_path, options={"a": 1})

    with pytest.raises(dataclasses.FrozenInstanceError):
        ctx.working_dir = tmp_path / "x"  # type: ignore[misc]
    with pytest.raises(TypeError):
        ctx.options["a"] = 2  # type: ignore[index]


def test_process_env_only_when_overridden(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("KEEP", "yes")
    plain = Context(working_dir=tmp_path)
    assert plain.process_env() is None

    ctx = Context(working_dir=tmp_path, env={"APP_ENV": "dev"})
    env = ctx.process_env({"EXTRA": "1"})
    assert env is not None
    assert env["APP_ENV"] == "dev"
    assert env["EXTRA"] == "1"
    assert env["KEEP"] == "yes"
