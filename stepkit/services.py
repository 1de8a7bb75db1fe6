# -*- coding: utf-8 -*-
"""
External collaborators used by actions and guards. The runner receives
them bundled in a Services object so tests can swap any of them.
"""
from __future__ import annotations

import os
import shutil
import signal
import subprocess
import webbrowser
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml
from rich.console import Console
from rich.prompt import Confirm

from .errors import ActionIOError, ActionTimeout, ValidationError
from .utils.timeparse import parse_duration

# own process group, so a timeout can kill what the shell forked
_NEW_SESSION = os.name == "posix"
_DRAIN_TIMEOUT = 1.0


@dataclass(frozen=True)
class ShellOutcome:
    exit_code: int
    stdout: str = ""
    stderr: str = ""


class Shell:
    """Runs commands synchronously and captures their output."""

    def __init__(self, executable: Optional[str] = None, timeout: Optional[float] = None) -> None:
        # None means the platform default shell (/bin/sh)
        self.executable = executable if executable is not None else shutil.which("bash")
        self.timeout = timeout

    def run(
        self,
        command: str,
        cwd: Path,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> ShellOutcome:
        proc = subprocess.Popen(
            command,
            cwd=str(cwd),
            env=env,
            shell=True,
            executable=self.executable,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            start_new_session=_NEW_SESSION,
        )
        return self._communicate(proc, command, timeout)

    def run_argv(
        self,
        argv: Sequence[str],
        cwd: Path,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> ShellOutcome:
        proc = subprocess.Popen(
            list(argv),
            cwd=str(cwd),
            env=env,
            shell=False,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            start_new_session=_NEW_SESSION,
        )
        return self._communicate(proc, " ".join(argv), timeout)

    def _communicate(
        self, proc: subprocess.Popen, command: str, timeout: Optional[float]
    ) -> ShellOutcome:
        limit = timeout if timeout is not None else self.timeout
        try:
            out, err = proc.communicate(timeout=limit)
        except subprocess.TimeoutExpired:
            _kill_tree(proc)
            try:
                out, err = proc.communicate(timeout=_DRAIN_TIMEOUT)
            except subprocess.TimeoutExpired:
                out, err = "", ""
            raise ActionTimeout(command, float(limit or 0.0), out or "", err or "")
        return ShellOutcome(proc.returncode, out or "", err or "")


def _kill_tree(proc: subprocess.Popen) -> None:
    if not _NEW_SESSION:
        proc.kill()
        return
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


class FileSystem:
    def exists(self, path: Path) -> bool:
        return Path(path).exists()

    def is_empty_dir(self, path: Path) -> bool:
        # a directory that does not exist yet counts as empty
        p = Path(path)
        if not p.exists():
            return True
        return p.is_dir() and not any(p.iterdir())

    def mkdir_all(self, path: Path) -> None:
        Path(path).mkdir(parents=True, exist_ok=True)

    def read_text(self, path: Path) -> str:
        try:
            return Path(path).read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise ActionIOError(f"{path} is not UTF-8 text: {exc}", path=str(path)) from exc

    def write_text(self, path: Path, content: str) -> None:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        with p.open("w", encoding="utf-8", newline="") as f:
            f.write(content)

    def append_text(self, path: Path, content: str) -> None:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        with p.open("a", encoding="utf-8", newline="") as f:
            f.write(content)

    def copy(self, src: Path, dst: Path) -> None:
        s, d = Path(src), Path(dst)
        d.parent.mkdir(parents=True, exist_ok=True)
        if s.is_dir():
            shutil.copytree(s, d, dirs_exist_ok=True)
        else:
            shutil.copy2(s, d)

    def remove(self, path: Path) -> bool:
        p = Path(path)
        if p.is_dir() and not p.is_symlink():
            shutil.rmtree(p)
            return True
        if p.exists() or p.is_symlink():
            p.unlink()
            return True
        return False


class ConfigSerializer:
    """YAML in and out, keeping key order the way it was declared."""

    def dump(self, data: Mapping[str, Any]) -> str:
        return yaml.safe_dump(
            dict(data), sort_keys=False, default_flow_style=False, allow_unicode=True
        )

    def load(self, text: str) -> Any:
        return yaml.safe_load(text)


DEFAULT_MANAGERS: Dict[str, Dict[str, Any]] = {
    "composer": {"command": ["composer", "require"], "dev_flag": "--dev"},
    "importmap": {"command": ["php", "bin/console", "importmap:require"], "dev_flag": None},
}


class DependencyManager:
    """
    Builds 'require' command lines per manager and runs them through the shell.
    Managers can be redefined in settings.dependency_managers.
    """

    def __init__(self, shell: Shell, managers: Optional[Mapping[str, Mapping[str, Any]]] = None) -> None:
        self.shell = shell
        self.managers: Dict[str, Dict[str, Any]] = {k: dict(v) for k, v in DEFAULT_MANAGERS.items()}
        for name, conf in (managers or {}).items():
            self.managers[name] = {**self.managers.get(name, {}), **dict(conf)}

    def argv(self, packages: Sequence[str], *, dev: bool = False, manager: str = "composer") -> List[str]:
        conf = self.managers.get(manager)
        if not conf or not conf.get("command"):
            raise ValidationError(f"unknown dependency manager: {manager!r}")
        command = conf["command"]
        cmd: List[str] = command.split() if isinstance(command, str) else [str(c) for c in command]
        if dev:
            flag = conf.get("dev_flag")
            if not flag:
                raise ValidationError(f"{manager} has no dev-only install")
            cmd.append(str(flag))
        return [*cmd, *packages]

    def require(
        self,
        packages: Sequence[str],
        *,
        dev: bool = False,
        cwd: Path,
        env: Optional[Dict[str, str]] = None,
        manager: str = "composer",
    ) -> ShellOutcome:
        return self.shell.run_argv(self.argv(packages, dev=dev, manager=manager), cwd, env=env)


class Browser:
    def open(self, url: str) -> bool:
        return webbrowser.open(url)


class Prompter:
    def __init__(self, console: Optional[Console] = None, assume_yes: bool = False) -> None:
        self.console = console
        self.assume_yes = assume_yes

    def confirm(self, message: str, default: bool = False) -> bool:
        if self.assume_yes:
            return True
        try:
            return Confirm.ask(message, default=default, console=self.console)
        except EOFError:
            # no stdin (CI, pipes): take the default answer
            return default


@dataclass
class Services:
    shell: Shell = field(default_factory=Shell)
    fs: FileSystem = field(default_factory=FileSystem)
    serializer: ConfigSerializer = field(default_factory=ConfigSerializer)
    browser: Browser = field(default_factory=Browser)
    prompter: Prompter = field(default_factory=Prompter)
    deps: Optional[DependencyManager] = None

    def __post_init__(self) -> None:
        if self.deps is None:
            self.deps = DependencyManager(self.shell)

    @classmethod
    def from_settings(
        cls,
        settings: Mapping[str, Any],
        *,
        console: Optional[Console] = None,
        assume_yes: bool = False,
    ) -> "Services":
        """
        settings keys used:
          shell?: executable for shell commands
          defaults.timeout?: duration applied to every shell command
          dependency_managers?: {name: {command: [...], dev_flag: ...}}
          assume_yes?: answer yes to confirm guards
        """
        defaults = settings.get("defaults") or {}
        shell = Shell(
            executable=settings.get("shell"),
            timeout=parse_duration(defaults.get("timeout")),
        )
        return cls(
            shell=shell,
            prompter=Prompter(console, assume_yes=assume_yes or bool(settings.get("assume_yes"))),
            deps=DependencyManager(shell, settings.get("dependency_managers") or {}),
        )
