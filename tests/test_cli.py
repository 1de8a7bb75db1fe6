from __future__ import annotations

from pathlib import Path
from textwrap import dedent

import pytest
from typer.testing import CliRunner

from stepkit.cli import app

runner = CliRunner()

TASKFILE = """
version: 1
settings:
  vars: {name: stepkit}
tasks:
  greet:
    description: Write a greeting
    options:
      - {name: who, type: str, default: world}
    steps:
      - name: Write
        actions:
          - {action: bash, command: "echo hello {{ options.who }} > out.txt"}
  broken:
    steps:
      - name: Explode
        actions:
          - {action: bash, command: "exit 3"}
      - name: Never
        actions:
          - {action: bash, command: "touch never.txt"}
  all:
    subtasks: [greet, broken]
"""


@pytest.fixture()
def project(tmp_path: Path) -> Path:
    (tmp_path / "stepkit.yaml").write_text(dedent(TASKFILE), encoding="utf-8")
    return tmp_path


def test_list(project: Path) -> None:
    result = runner.invoke(app, ["list", "--root", str(project)])

    assert result.exit_code == 0, result.output
    assert "greet" in result.output
    assert "broken" in result.output


def test_check(project: Path) -> None:
    result = runner.invoke(app, ["check", "--root", str(project)])

    assert result.exit_code == 0, result.output
    assert "tasks=3 steps=3" in result.output


def test_check_reports_errors(tmp_path: Path) -> None:
    (tmp_path / "stepkit.yaml").write_text("version: 1\ntasks:\n  a:\n    subtasks: [ghost]\n")

    result = runner.invoke(app, ["check", "--root", str(tmp_path)])

    assert result.exit_code == 2
    assert "ghost" in result.output


def test_show(project: Path) -> None:
    result = runner.invoke(app, ["show", "greet", "--root", str(project)])

    assert result.exit_code == 0, result.output
    assert "Write" in result.output
    assert "who" in result.output


def test_run_executes_in_project_dir(project: Path) -> None:
    result = runner.invoke(app, ["run", "greet", "-o", "who=cli", "--root", str(project)])

    assert result.exit_code == 0, result.output
    assert (project / "out.txt").read_text().strip() == "hello cli"


def test_run_dry_run_changes_nothing(project: Path) -> None:
    result = runner.invoke(app, ["run", "greet", "--dry-run", "--root", str(project)])

    assert result.exit_code == 0, result.output
    assert not (project / "out.txt").exists()
    assert "DRY" in result.output


def test_run_failure_exit_code(project: Path) -> None:
    result = runner.invoke(app, ["run", "all", "--root", str(project)])

    assert result.exit_code == 1
    assert (project / "out.txt").exists()
    assert not (project / "never.txt").exists()
    assert "Failed" in result.output


def test_run_unknown_task_and_bad_option(project: Path) -> None:
    unknown = runner.invoke(app, ["run", "gret", "--root", str(project)])
    assert unknown.exit_code == 2
    assert "greet" in unknown.output

    bad = runner.invoke(app, ["run", "greet", "-o", "colour=red", "--root", str(project)])
    assert bad.exit_code == 1


def test_run_with_bad_timeout_setting_exits_2(project: Path) -> None:
    result = runner.invoke(app, ["run", "greet", "--root", str(project), "--set", "settings.defaults.timeout=abc"])

    assert result.exit_code == 2
    assert "not a duration" in result.output
    assert not (project / "out.txt").exists()
