"""Exceptions raised by the task engine."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dev_toolkit.engine.models import Task
    from dev_toolkit.engine.tasks import TaskList


class ToolkitError(RuntimeError):
    """Base class for engine errors."""


class SkipSignal(Exception):  # noqa: N818
    """Raised by a task body to end itself as skipped rather than failed."""

    def __init__(self, reason: str | None = None) -> None:
        super().__init__(reason or "skipped")
        self.reason = reason


class TaskFailure(ToolkitError):
    """A required task failed after its retries were exhausted."""

    def __init__(self, task: Task, cause: BaseException | None) -> None:
        super().__init__(f"Task {task.title!r} failed: {cause}")
        self.task = task
        self.cause = cause


class TaskListError(ToolkitError):
    """Invalid use of a task list, for example adding to a started one."""


class PromptContextError(ToolkitError):
    """Interactive input was requested with no running task to host it."""


class ProcessError(ToolkitError):
    """Subprocess failure with a short report for the owning task."""

    def __init__(
        self,
        message: str,
        *,
        command: str,
        args: tuple[str, ...],
        cwd: Path,
        report: list[str],
    ) -> None:
        super().__init__(message)
        self.command = command
        self.arguments = args
        self.cwd = cwd
        self.report = report

    @property
    def command_line(self) -> str:
        return " ".join((self.command, *self.arguments))


class ProcessExitError(ProcessError):
    """Subprocess ran and exited non-zero (or was killed by a signal)."""

    def __init__(  # noqa: PLR0913
        self,
        *,
        command: str,
        args: tuple[str, ...],
        cwd: Path,
        returncode: int,
        signal: str | None,
        log_file: Path | None,
        report: list[str],
    ) -> None:
        reason = f"signal {signal}" if signal is not None else f"code {returncode}"
        super().__init__(
            f"Process exited with {reason}",
            command=command,
            args=args,
            cwd=cwd,
            report=report,
        )
        self.returncode = returncode
        self.signal = signal
        self.log_file = log_file


class ProcessSpawnError(ProcessError):
    """Subprocess could not be started at all."""

    def __init__(  # noqa: PLR0913
        self,
        message: str,
        *,
        command: str,
        args: tuple[str, ...],
        cwd: Path,
        errno: int | None,
        code: str | None,
        path: str | None,
        report: list[str],
    ) -> None:
        super().__init__(message, command=command, args=args, cwd=cwd, report=report)
        self.errno = errno
        self.code = code
        self.path = path


class RunError(ToolkitError):
    """Run-level unrecovered failure."""

    def __init__(self, cause: BaseException, tasks: TaskList) -> None:
        super().__init__(str(cause))
        self.cause = cause
        self.tasks = tasks
