"""Capability object handed to task bodies."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Any

from dev_toolkit.engine.errors import TaskListError
from dev_toolkit.engine.models import (
    RetryPolicy,
    RollbackFn,
    SkipOption,
    Task,
    TaskKind,
    TaskOptions,
    TaskSpec,
)
from dev_toolkit.engine.process import LineHandler, StdioMode
from dev_toolkit.engine.prompts import Choice, Separator, Validator

if TYPE_CHECKING:
    from dev_toolkit.config import Settings
    from dev_toolkit.engine.tasks import Orchestrator, TaskList


class Context:
    """What a step may do: declare children, spawn, report status, prompt.

    A context is bound to at most one task. The root context of a run has no
    task: status updates are dropped there and prompts raise
    :class:`~dev_toolkit.engine.errors.PromptContextError`.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        task: Task | None,
        task_list: TaskList | None,
    ) -> None:
        self._orchestrator = orchestrator
        self._task = task
        self._list = task_list

    @property
    def current_task(self) -> Task | None:
        return self._task

    @property
    def shared(self) -> dict[str, Any]:
        """Run-scoped state, also handed to ``skip`` predicates."""

        return self._orchestrator.shared

    @property
    def settings(self) -> Settings:
        return self._orchestrator.settings

    # -- declaring children ---------------------------------------------------

    def add(self, spec: TaskSpec) -> Task:
        if self._list is None:
            owner = self._task.title if self._task is not None else "<root>"
            raise TaskListError(f"Leaf task {owner!r} cannot declare child tasks.")
        return self._list.add(spec)

    def task(  # noqa: PLR0913
        self,
        title: str,
        fn: Callable[[], Any],
        *,
        exit_on_error: bool = True,
        skip: SkipOption = False,
        retry: RetryPolicy | int | None = None,
        rollback: RollbackFn | None = None,
    ) -> Task:
        """Declare a leaf step; ``fn`` takes no arguments."""

        return self._declare(TaskKind.LEAF, title, fn, exit_on_error, skip, retry, rollback)

    def sequence(  # noqa: PLR0913
        self,
        title: str,
        fn: Callable[[Context], Any],
        *,
        exit_on_error: bool = True,
        skip: SkipOption = False,
        retry: RetryPolicy | int | None = None,
        rollback: RollbackFn | None = None,
    ) -> Task:
        """Declare a composite step whose children run one after another."""

        return self._declare(TaskKind.SEQUENCE, title, fn, exit_on_error, skip, retry, rollback)

    def parallel(  # noqa: PLR0913
        self,
        title: str,
        fn: Callable[[Context], Any],
        *,
        exit_on_error: bool = True,
        skip: SkipOption = False,
        retry: RetryPolicy | int | None = None,
        rollback: RollbackFn | None = None,
    ) -> Task:
        """Declare a composite step whose children all start together."""

        return self._declare(TaskKind.PARALLEL, title, fn, exit_on_error, skip, retry, rollback)

    def _declare(  # noqa: PLR0913
        self,
        kind: TaskKind,
        title: str,
        fn: Callable[..., Any],
        exit_on_error: bool,
        skip: SkipOption,
        retry: RetryPolicy | int | None,
        rollback: RollbackFn | None,
    ) -> Task:
        options = TaskOptions(
            exit_on_error=exit_on_error,
            skip=skip,
            retry=retry,
            rollback=rollback,
        )
        return self.add(TaskSpec(title=title, body=fn, kind=kind, options=options))

    # -- status -----------------------------------------------------------------

    def title(self, new_title: str) -> None:
        if self._task is not None:
            self._orchestrator.set_title(self._task, new_title)

    def log(self, message: str) -> None:
        if self._task is not None:
            self._orchestrator.set_output(self._task, message)

    def _report(self, lines: list[str]) -> None:
        if self._task is not None:
            self._orchestrator.report_failure(self._task, lines)

    # -- processes --------------------------------------------------------------

    async def spawn(  # noqa: PLR0913
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        stdio: StdioMode = "pipe",
        on_line: LineHandler | None = None,
    ) -> None:
        """Run an external command on behalf of this context's task."""

        return await self._orchestrator.processes.spawn(
            command,
            args,
            cwd=cwd,
            env=env,
            stdio=stdio,
            line_handler=on_line,
            on_status=self.log if self.settings.verbose else None,
            report=self._report,
        )

    # -- prompts ----------------------------------------------------------------

    async def select(
        self,
        message: str,
        choices: Sequence[Choice | Separator | Any],
        *,
        default: Any = None,
    ) -> Any:
        return await self._orchestrator.prompts.select(
            self._task,
            message,
            choices,
            default=default,
        )

    async def input(
        self,
        message: str,
        *,
        default: str | None = None,
        required: bool = False,
        validate: Validator | None = None,
    ) -> str:
        return await self._orchestrator.prompts.input(
            self._task,
            message,
            default=default,
            required=required,
            validate=validate,
        )

    async def prompt(self, prompt_fn: Callable[..., Any], **options: Any) -> Any:
        """Run an arbitrary prompt callable with the terminal handed over."""

        return await self._orchestrator.prompts.prompt(self._task, prompt_fn, options)
