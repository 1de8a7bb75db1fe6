"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import io
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest
from rich.console import Console

from stepkit.context import Context
from stepkit.services import Browser, Prompter, Services, Shell, ShellOutcome


class FakeShell(Shell):
    """Records every command; exit codes come from `exit_codes` (substring → code)."""

    def __init__(self, exit_codes: Optional[Dict[str, int]] = None) -> None:
        super().__init__(executable=None)
        self.exit_codes = dict(exit_codes or {})
        self.calls: List[str] = []
        self.cwds: List[Path] = []
        self.envs: List[Optional[Dict[str, str]]] = []

    def _outcome(self, command: str) -> ShellOutcome:
        for needle, code in self.exit_codes.items():
            if needle in command:
                return ShellOutcome(code, f"ran {command}\n", "boom\n" if code else "")
        return ShellOutcome(0, f"ran {command}\n", "")

    def run(self, command, cwd, env=None, timeout=None) -> ShellOutcome:
        self.calls.append(command)
        self.cwds.append(Path(cwd))
        self.envs.append(env)
        return self._outcome(command)

    def run_argv(self, argv: Sequence[str], cwd, env=None, timeout=None) -> ShellOutcome:
        return self.run(" ".join(argv), cwd, env=env, timeout=timeout)


class RecordingBrowser(Browser):
    def __init__(self, result: bool = True) -> None:
        self.result = result
        self.opened: List[str] = []

    def open(self, url: str) -> bool:
        self.opened.append(url)
        return self.result


@pytest.fixture
def output() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def console(output: io.StringIO) -> Console:
    return Console(file=output, width=120, color_system=None)


@pytest.fixture
def shell() -> FakeShell:
    return FakeShell()


@pytest.fixture
def browser() -> RecordingBrowser:
    return RecordingBrowser()


@pytest.fixture
def services(shell: FakeShell, browser: RecordingBrowser, console: Console) -> Services:
    return Services(shell=shell, browser=browser, prompter=Prompter(console, assume_yes=False))


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    d = tmp_path / "app"
    d.mkdir()
    return d


@pytest.fixture
def ctx(workdir: Path, console: Console) -> Context:
    return Context(working_dir=workdir, options={"version": "7.3"}, console=console)
