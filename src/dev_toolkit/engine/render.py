"""Progress renderers fed by task events.

The engine never draws anything itself: it mutates :class:`Task` records and
calls :meth:`TaskRenderer.notify`. ``TreeRenderer`` redraws the whole tree
from those records on every refresh, ``VerboseRenderer`` prints one line per
event, ``SilentRenderer`` ignores everything.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from enum import Enum
from typing import TYPE_CHECKING, Protocol

from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.spinner import Spinner
from rich.text import Text
from rich.tree import Tree

from dev_toolkit.config import Settings
from dev_toolkit.engine.models import Task, TaskState

if TYPE_CHECKING:
    from dev_toolkit.engine.tasks import TaskList


class TaskEvent(str, Enum):
    """Renderer notifications."""

    STARTED = "started"
    RETRY = "retry"
    TITLE = "title"
    OUTPUT = "output"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    ROLLBACK = "rollback"
    ROLLBACK_FAILED = "rollback_failed"


class TaskRenderer(Protocol):
    """Protocol implemented by progress renderers."""

    def start(self, tasks: TaskList) -> None:
        """Begin rendering the run-level list."""

    def stop(self) -> None:
        """Flush the final state and release the terminal."""

    def notify(self, task: Task, event: TaskEvent) -> None:
        """React to one task change."""

    def suspended(self) -> AbstractContextManager[None]:
        """Give the terminal to a prompt or passthrough process."""


class SilentRenderer:
    """Renderer that draws nothing."""

    def start(self, tasks: TaskList) -> None:
        return None

    def stop(self) -> None:
        return None

    def notify(self, task: Task, event: TaskEvent) -> None:
        return None

    @contextmanager
    def suspended(self) -> Iterator[None]:
        yield


_VERBOSE_TAGS = {
    TaskEvent.STARTED: ("STARTED", "cyan"),
    TaskEvent.RETRY: ("RETRY", "yellow"),
    TaskEvent.TITLE: ("TITLE", "cyan"),
    TaskEvent.OUTPUT: ("DATA", "white"),
    TaskEvent.SUCCEEDED: ("SUCCESS", "green"),
    TaskEvent.FAILED: ("FAILED", "red"),
    TaskEvent.SKIPPED: ("SKIPPED", "yellow"),
    TaskEvent.ROLLBACK: ("ROLLBACK", "magenta"),
    TaskEvent.ROLLBACK_FAILED: ("ROLLBACK FAILED", "red"),
}


class VerboseRenderer:
    """One line per event, title changes included."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def start(self, tasks: TaskList) -> None:
        return None

    def stop(self) -> None:
        return None

    def notify(self, task: Task, event: TaskEvent) -> None:
        tag, style = _VERBOSE_TAGS[event]
        if event is TaskEvent.OUTPUT:
            message = task.output or ""
        elif event is TaskEvent.SKIPPED and task.skip_reason:
            message = task.skip_reason
        elif event is TaskEvent.RETRY:
            message = f"{task.title} (attempt {task.attempts})"
        elif event is TaskEvent.FAILED:
            message = f"{task.title}: {task.error}"
            if task.output:
                message = f"{message}\n{task.output}"
        else:
            message = task.title
        line = Text.assemble((f"[{tag}] ", style), message)
        self.console.print(line, highlight=False)

    @contextmanager
    def suspended(self) -> Iterator[None]:
        yield


_STATE_MARKS = {
    TaskState.PENDING: ("◻", "dim"),
    TaskState.SUCCEEDED: ("✔", "green"),
    TaskState.FAILED: ("✖", "red"),
    TaskState.SKIPPED: ("↓", "yellow"),
}


class TreeRenderer:
    """Live tree view with persistent task output."""

    def __init__(self, console: Console | None = None, *, refresh_per_second: float = 10.0) -> None:
        self.console = console or Console()
        self._refresh_per_second = refresh_per_second
        self._tasks: TaskList | None = None
        self._live: Live | None = None
        self._suspend_depth = 0
        self._spinners: dict[str, Spinner] = {}

    def start(self, tasks: TaskList) -> None:
        self._tasks = tasks
        self._live = Live(
            console=self.console,
            refresh_per_second=self._refresh_per_second,
            transient=False,
            get_renderable=self.render,
        )
        self._live.start()

    def stop(self) -> None:
        if self._live is None:
            return
        self._live.refresh()
        self._live.stop()
        self._live = None

    def notify(self, task: Task, event: TaskEvent) -> None:
        if self._live is not None and self._suspend_depth == 0:
            self._live.refresh()

    @contextmanager
    def suspended(self) -> Iterator[None]:
        live = self._live
        if live is None:
            yield
            return
        if self._suspend_depth == 0:
            live.stop()
        self._suspend_depth += 1
        try:
            yield
        finally:
            self._suspend_depth -= 1
            if self._suspend_depth == 0 and self._live is live:
                live.start()

    def render(self) -> RenderableType:
        root = Tree("", hide_root=True, guide_style="dim")
        if self._tasks is not None:
            for task in self._tasks.tasks:
                _add_task_node(root, task, self._spinners)
        return root


def _add_task_node(parent: Tree, task: Task, spinners: dict[str, Spinner]) -> None:
    node = parent.add(_task_label(task, spinners))
    for child in task.children or ():
        _add_task_node(node, child, spinners)


def _task_label(task: Task, spinners: dict[str, Spinner]) -> RenderableType:
    if task.state is TaskState.RUNNING:
        title = task.title if task.attempts <= 1 else f"{task.title} [retry {task.attempts}]"
        spinner = spinners.setdefault(task.task_id, Spinner("dots", style="yellow"))
        spinner.update(text=Text(title))
        heading: RenderableType = spinner
    else:
        mark, style = _STATE_MARKS[task.state]
        heading = Text.assemble((f"{mark} ", style), task.title)
        if task.state is TaskState.SKIPPED and task.skip_reason:
            heading.append(f" [SKIPPED: {task.skip_reason}]", style="dim")
        if task.rollback_error is not None:
            heading.append(f" [ROLLBACK FAILED: {task.rollback_error}]", style="red")
        elif task.rolled_back:
            heading.append(" [ROLLED BACK]", style="magenta")
    if not task.output:
        return heading
    output = Text("\n".join(f"› {line}" for line in task.output.splitlines()), style="dim")
    return Group(heading, output)


def build_renderer(settings: Settings, console: Console | None = None) -> TaskRenderer:
    """Pick the renderer for the configured verbosity."""

    if settings.render.verbose:
        return VerboseRenderer(console)
    return TreeRenderer(console, refresh_per_second=settings.render.refresh_per_second)
