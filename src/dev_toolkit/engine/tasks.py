"""Task tree execution: sequential lists, concurrent groups and task policy."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Iterable
from typing import Any

from dev_toolkit.config import Settings
from dev_toolkit.engine.context import Context
from dev_toolkit.engine.errors import (
    ProcessError,
    SkipSignal,
    TaskFailure,
    TaskListError,
)
from dev_toolkit.engine.models import Task, TaskKind, TaskSpec, TaskState
from dev_toolkit.engine.process import ProcessRunner
from dev_toolkit.engine.prompts import PromptBridge
from dev_toolkit.engine.render import SilentRenderer, TaskEvent, TaskRenderer

logger = logging.getLogger(__name__)


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


class TaskList:
    """Ordered task members run one at a time or all at once.

    Membership is fixed once :meth:`run` starts. A failed member whose own
    ``exit_on_error`` and the list's ``exit_on_error`` are both set is fatal:
    a sequential list starts no further members and :meth:`run` raises its
    :class:`TaskFailure` once started members have settled. Other failures are
    collected in :attr:`errors` only.
    """

    def __init__(
        self,
        orchestrator: Orchestrator,
        *,
        concurrent: bool = False,
        exit_on_error: bool = True,
    ) -> None:
        self.orchestrator = orchestrator
        self.concurrent = concurrent
        self.exit_on_error = exit_on_error
        self.tasks: list[Task] = []
        self.errors: list[TaskFailure] = []
        self._started = False
        self._fatal: TaskFailure | None = None

    @property
    def started(self) -> bool:
        return self._started

    def add(self, spec: TaskSpec) -> Task:
        if self._started:
            raise TaskListError(
                f"Cannot add {spec.title!r}: the task list has already started.",
            )
        task = Task.from_spec(spec)
        self.tasks.append(task)
        return task

    def extend(self, specs: Iterable[TaskSpec]) -> list[Task]:
        return [self.add(spec) for spec in specs]

    def absorb(self, declared: Any) -> None:
        """Register whatever a step body returned.

        ``None`` and tasks registered through the context are already
        accounted for; a :class:`TaskSpec` or an iterable of them is added.
        """

        if declared is None or isinstance(declared, Task):
            return
        if isinstance(declared, TaskSpec):
            self.add(declared)
            return
        if isinstance(declared, str | bytes) or not isinstance(declared, Iterable):
            raise TypeError(
                f"A step may return None, a Task or TaskSpecs, got {type(declared).__name__}.",
            )
        items = list(declared)
        for item in items:
            if not isinstance(item, Task | TaskSpec):
                raise TypeError(
                    f"A step may return only Task or TaskSpec items, got {type(item).__name__}.",
                )
        self.extend(item for item in items if isinstance(item, TaskSpec))

    async def run(self) -> None:
        if self._started:
            raise TaskListError("A task list can only run once.")
        self._started = True
        if self.concurrent:
            await asyncio.gather(*(self.orchestrator.execute(task) for task in self.tasks))
            for task in self.tasks:
                self._record(task)
        else:
            for task in self.tasks:
                await self.orchestrator.execute(task)
                if self._record(task):
                    break
        if self._fatal is not None:
            raise self._fatal

    def _record(self, task: Task) -> bool:
        if task.state is not TaskState.FAILED:
            return False
        failure = TaskFailure(task, task.error)
        self.errors.append(failure)
        if not (self.exit_on_error and task.options.exit_on_error):
            logger.info("Continuing after tolerated failure of %r", task.title)
            return False
        if self._fatal is None:
            self._fatal = failure
        return True


class Orchestrator:
    """Shared engine state of one run: renderer, process runner, prompts."""

    def __init__(
        self,
        *,
        settings: Settings | None = None,
        renderer: TaskRenderer | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.renderer = renderer or SilentRenderer()
        self.processes = ProcessRunner(
            tmp_dir=self.settings.process.tmp_dir,
            error_log_prefix=self.settings.process.error_log_prefix,
            suspend=self.renderer.suspended,
        )
        self.prompts = PromptBridge(self.renderer)
        self.shared: dict[str, Any] = {}

    def new_list(self, *, concurrent: bool = False, exit_on_error: bool = True) -> TaskList:
        return TaskList(self, concurrent=concurrent, exit_on_error=exit_on_error)

    # -- task record mutation -------------------------------------------------

    def set_title(self, task: Task, title: str) -> None:
        if not task.is_running:
            return
        task.title = title
        self.renderer.notify(task, TaskEvent.TITLE)

    def set_output(self, task: Task, output: str) -> None:
        if not task.is_running:
            return
        task.output = output
        self.renderer.notify(task, TaskEvent.OUTPUT)

    def report_failure(self, task: Task, report: list[str]) -> None:
        if task.is_terminal or task.failure_reported:
            return
        task.failure_reported = True
        task.output = "\n".join(report)
        self.renderer.notify(task, TaskEvent.OUTPUT)

    def _transition(self, task: Task, state: TaskState, event: TaskEvent) -> None:
        task.state = state
        logger.debug("Task %r -> %s", task.title, state.value)
        self.renderer.notify(task, event)

    # -- execution ------------------------------------------------------------

    async def execute(self, task: Task) -> None:
        """Run one task to a terminal state; never raises for task failures."""

        try:
            skip_reason = await self._skip_reason(task)
        except Exception as error:  # noqa: BLE001
            await self._fail(task, error, Context(self, task, None))
            return
        if skip_reason is not None:
            self._skip(task, skip_reason)
            return

        policy = task.options.retry_policy
        while True:
            task.attempts += 1
            task.failure_reported = False
            children = (
                self.new_list(concurrent=task.kind is TaskKind.PARALLEL)
                if task.is_composite
                else None
            )
            context = Context(self, task, children)
            self._transition(
                task,
                TaskState.RUNNING,
                TaskEvent.STARTED if task.attempts == 1 else TaskEvent.RETRY,
            )
            try:
                await self._run_body(task, context, children)
            except SkipSignal as signal:
                self._skip(task, signal.reason or "")
                return
            except Exception as error:  # noqa: BLE001
                if task.attempts < policy.tries:
                    logger.warning(
                        "Task %r failed on attempt %d/%d: %s",
                        task.title,
                        task.attempts,
                        policy.tries,
                        error,
                    )
                    if policy.delay:
                        await asyncio.sleep(policy.delay)
                    continue
                await self._fail(task, error, context)
                return
            self._transition(task, TaskState.SUCCEEDED, TaskEvent.SUCCEEDED)
            return

    async def _run_body(self, task: Task, context: Context, children: TaskList | None) -> None:
        if children is None:
            await maybe_await(task.body())
            return
        task.children = children.tasks
        children.absorb(await maybe_await(task.body(context)))
        await children.run()

    async def _skip_reason(self, task: Task) -> str | None:
        skip = task.options.skip
        if callable(skip):
            skip = await maybe_await(skip(self.shared))
        if isinstance(skip, str):
            return skip if skip else None
        return "" if skip else None

    def _skip(self, task: Task, reason: str) -> None:
        task.skip_reason = reason or None
        self._transition(task, TaskState.SKIPPED, TaskEvent.SKIPPED)

    async def _fail(self, task: Task, error: BaseException, context: Context) -> None:
        """Record ``error``, roll back while the task is still live, then fail it."""

        task.error = error
        if isinstance(error, ProcessError):
            self.report_failure(task, error.report)
        logger.debug("Task %r failed", task.title, exc_info=error)
        if task.options.rollback is not None:
            await self._rollback(task, context)
        self._transition(task, TaskState.FAILED, TaskEvent.FAILED)

    async def _rollback(self, task: Task, context: Context) -> None:
        try:
            await maybe_await(task.options.rollback(context))
        except Exception as rollback_error:  # noqa: BLE001
            task.rollback_error = rollback_error
            logger.warning("Rollback of %r failed: %s", task.title, rollback_error)
            self.renderer.notify(task, TaskEvent.ROLLBACK_FAILED)
            return
        task.rolled_back = True
        self.renderer.notify(task, TaskEvent.ROLLBACK)
