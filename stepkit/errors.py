# -*- coding: utf-8 -*-
from __future__ import annotations

import difflib
from typing import Iterable, Optional, Sequence


class StepkitError(Exception):
    """Base class for every failure reported as a run outcome."""


class ValidationError(StepkitError, ValueError):
    """Malformed taskfile, unknown kind or an option value of the wrong type."""


class UnknownTaskError(StepkitError, LookupError):
    def __init__(self, name: str, known: Iterable[str] = ()) -> None:
        self.name = name
        msg = f"Unknown task: {name!r}"
        hint = difflib.get_close_matches(name, list(known), n=1)
        if hint:
            msg += f" (did you mean {hint[0]!r}?)"
        super().__init__(msg)


class ProcessFailure(StepkitError):
    """An external command exited with a non-zero status."""

    def __init__(
        self,
        command: str,
        exit_code: Optional[int],
        output: str = "",
        stderr: str = "",
        message: Optional[str] = None,
    ) -> None:
        self.command = command
        self.exit_code = exit_code
        self.output = output
        self.stderr = stderr
        super().__init__(message or f"exit code {exit_code}: {command}")


class ActionTimeout(ProcessFailure):
    def __init__(
        self, command: str, timeout: float, output: str = "", stderr: str = ""
    ) -> None:
        self.timeout = timeout
        super().__init__(
            command,
            None,
            output,
            stderr,
            message=f"timeout after {timeout:.1f}s: {command}",
        )


class ActionIOError(StepkitError):
    """Filesystem read/write or serialization failure."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        self.path = path
        super().__init__(message)


class DependencyError(StepkitError):
    def __init__(
        self, packages: Sequence[str], exit_code: int, output: str = ""
    ) -> None:
        self.packages = tuple(packages)
        self.exit_code = exit_code
        self.output = output
        super().__init__(
            f"dependency manager exited with {exit_code} requiring {' '.join(packages)}"
        )


class GuardEvaluationError(StepkitError):
    """A guard predicate raised instead of answering."""


class RunCancelled(StepkitError):
    pass


class TaskFailure(StepkitError):
    """Raised by RunResult.raise_for_failure; __cause__ is the underlying error."""

    def __init__(
        self,
        task: str,
        step: Optional[str] = None,
        action_index: Optional[int] = None,
        message: str = "",
    ) -> None:
        self.task = task
        self.step = step
        self.action_index = action_index
        super().__init__(message or f"task {task!r} failed")
