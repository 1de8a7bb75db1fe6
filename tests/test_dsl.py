from __future__ import annotations

from pathlib import Path
from textwrap import dedent

import pytest

from stepkit.dsl import (
    build_registry,
    load_config,
    load_registry,
    parse_assignments,
    parse_overrides,
    validate_taskfile,
)
from stepkit.errors import ValidationError

REPO = Path(__file__).resolve().parents[1]


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dedent(text), encoding="utf-8")
    return path


def test_parse_overrides_nests_and_types_values() -> None:
    assert parse_overrides(["settings.defaults.timeout=20s", "settings.vars.port=8000", "settings.assume_yes=true"]) == {
        "settings": {"defaults": {"timeout": "20s"}, "vars": {"port": 8000}, "assume_yes": True}
    }
    with pytest.raises(ValidationError):
        parse_overrides(["novalue"])


def test_parse_assignments_keeps_strings() -> None:
    assert parse_assignments(["version=7.4", "no-start=true"]) == {"version": "7.4", "no-start": "true"}
    with pytest.raises(ValidationError):
        parse_assignments(["version"])


def test_validate_taskfile_reports_every_problem() -> None:
    errors = validate_taskfile(
        {
            "version": 2,
            "tasks": {
                "a": {
                    "context": "nowhere",
                    "subtasks": ["ghost"],
                    "steps": [
                        {"actions": [{"action": "teleport"}]},
                        {"name": "guarded", "if": "moon_is_full"},
                    ],
                }
            },
        }
    )

    assert "version must be 1" in errors
    assert any("unknown context 'nowhere'" in e for e in errors)
    assert any("unknown subtask 'ghost'" in e for e in errors)
    assert any("missing 'name'" in e for e in errors)
    assert any("unknown action 'teleport'" in e for e in errors)
    assert any("unknown guard" in e for e in errors)


def test_validate_taskfile_requires_tasks() -> None:
    assert validate_taskfile({"version": 1}) == ["tasks must be a non-empty mapping"]


def test_layering_defaults_profile_taskfile_overrides(tmp_path: Path) -> None:
    _write(
        tmp_path / "configs/defaults.yaml",
        """
        settings:
          shell: bash
          defaults: {timeout: null}
          vars: {greeting: hello, port: 8000}
        """,
    )
    _write(tmp_path / "configs/profiles/ci.yaml", "settings:\n  defaults: {timeout: 15m}\n")
    _write(
        tmp_path / "stepkit.yaml",
        """
        version: 1
        settings:
          vars: {greeting: hi}
        tasks:
          t: {}
        """,
    )

    cfg, base = load_config(tmp_path, None, "ci", ["settings.vars.port=9000"])

    assert base == tmp_path.resolve()
    assert cfg["settings"]["shell"] == "bash"
    assert cfg["settings"]["defaults"]["timeout"] == "15m"
    assert cfg["settings"]["vars"] == {"greeting": "hi", "port": 9000}

    with pytest.raises(ValidationError, match="Profile not found"):
        load_config(tmp_path, None, "nope", [])


def test_imports_merge_underneath_and_anchor_contexts(tmp_path: Path) -> None:
    _write(
        tmp_path / "tasks/barcode.yaml",
        """
        version: 1
        settings:
          vars: {base_url: "http://barcode.wip", app: demo}
        contexts:
          barcode: {working_dir: "../demos/{{ app }}", default: true}
        tasks:
          barcode:new:
            description: imported
          shared:
            description: from import
        """,
    )
    _write(
        tmp_path / "stepkit.yaml",
        """
        version: 1
        imports: [tasks/barcode.yaml]
        tasks:
          shared:
            description: from root
          hello:
            subtasks: [barcode:new]
        """,
    )

    registry = load_registry(tmp_path)

    assert [t.name for t in registry] == ["barcode:new", "shared", "hello"]
    assert registry.get("shared").description == "from root"
    assert registry.vars["base_url"] == "http://barcode.wip"
    cdef = registry.contexts["barcode"]
    assert Path(cdef.working_dir) == (tmp_path / "tasks").resolve() / "../demos/demo"


def test_import_cycle_and_missing_file(tmp_path: Path) -> None:
    _write(tmp_path / "a.yaml", "version: 1\nimports: [b.yaml]\ntasks: {a: {}}\n")
    _write(tmp_path / "b.yaml", "version: 1\nimports: [a.yaml]\ntasks: {b: {}}\n")

    with pytest.raises(ValidationError, match="import cycle"):
        load_config(tmp_path, "a.yaml", None, [])
    with pytest.raises(ValidationError, match="Taskfile not found"):
        load_config(tmp_path, "missing.yaml", None, [])


def test_bare_name_is_looked_up_in_tasks_dir(tmp_path: Path) -> None:
    _write(tmp_path / "tasks/demo.yaml", "version: 1\ntasks: {setup: {}}\n")

    assert "setup" in load_registry(tmp_path, "demo")


def test_invalid_yaml_is_a_validation_error(tmp_path: Path) -> None:
    _write(tmp_path / "stepkit.yaml", "tasks: [unclosed\n")

    with pytest.raises(ValidationError, match="Invalid YAML"):
        load_registry(tmp_path)


def test_build_registry_rejects_cycles() -> None:
    cfg = {"version": 1, "tasks": {"a": {"subtasks": ["b"]}, "b": {"subtasks": ["a"]}}}

    with pytest.raises(ValidationError, match="cycle"):
        build_registry(cfg)


def test_shipped_taskfiles_load() -> None:
    registry = load_registry(REPO, profile="ci")

    assert {"hello", "barcode:demo", "barcode:config", "build", "clean"} <= {t.name for t in registry}
    assert registry.settings["defaults"]["timeout"] == "15m"
    assert registry.vars["skeleton"] == "vendor/survos/barcode-bundle/castor/skeleton"
    assert registry.contexts["barcode"].default

    demo = registry.get("barcode:demo")
    assert [r.task for r in demo.subtasks][-2:] == ["barcode:config", "barcode:start"]
    assert demo.steps[0].actions == ()


def test_same_task_in_two_imports_is_rejected(tmp_path: Path) -> None:
    _write(tmp_path / "tasks/a.yaml", "version: 1\ntasks:\n  build: {description: from a}\n")
    _write(tmp_path / "tasks/b.yaml", "version: 1\ntasks:\n  build: {steps: [{name: s}]}\n")
    _write(tmp_path / "stepkit.yaml", "version: 1\nimports: [tasks/a.yaml, tasks/b.yaml]\ntasks: {hello: {}}\n")

    with pytest.raises(ValidationError, match="'build' is defined in both"):
        load_registry(tmp_path)


def test_importer_replaces_imported_task_whole(tmp_path: Path) -> None:
    _write(
        tmp_path / "tasks/a.yaml",
        "version: 1\ntasks:\n  build:\n    description: from a\n    options: [{name: fast, type: bool, default: false}]\n",
    )
    _write(tmp_path / "stepkit.yaml", "version: 1\nimports: [tasks/a.yaml]\ntasks:\n  build: {description: mine}\n")

    build = load_registry(tmp_path).get("build")

    assert build.description == "mine"
    assert build.options == ()
