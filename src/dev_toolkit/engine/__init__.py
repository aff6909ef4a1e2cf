"""Task tree engine for interactive command-line tools.

A root step receives a :class:`Context` and declares tasks through it. Leaf
tasks are plain callables; composite tasks receive their own context and
declare children that run one at a time (``sequence``) or together
(``parallel``). Tasks may be skipped, retried and rolled back, spawn
external processes whose failures are written to per-failure log files, and
prompt the user while they are running.
"""

from dev_toolkit.engine.context import Context
from dev_toolkit.engine.errors import (
    ProcessError,
    ProcessExitError,
    ProcessSpawnError,
    PromptContextError,
    RunError,
    SkipSignal,
    TaskFailure,
    TaskListError,
    ToolkitError,
)
from dev_toolkit.engine.models import RetryPolicy, Task, TaskKind, TaskOptions, TaskSpec, TaskState
from dev_toolkit.engine.process import ProcessRunner, SpawnCompletion
from dev_toolkit.engine.prompts import Choice, PromptBridge, Separator
from dev_toolkit.engine.render import (
    SilentRenderer,
    TaskEvent,
    TaskRenderer,
    TreeRenderer,
    VerboseRenderer,
)
from dev_toolkit.engine.runner import run_tasks, task_action
from dev_toolkit.engine.tasks import Orchestrator, TaskList

__all__ = [
    "Choice",
    "Context",
    "Orchestrator",
    "ProcessError",
    "ProcessExitError",
    "ProcessRunner",
    "ProcessSpawnError",
    "PromptBridge",
    "PromptContextError",
    "RetryPolicy",
    "RunError",
    "Separator",
    "SilentRenderer",
    "SkipSignal",
    "SpawnCompletion",
    "Task",
    "TaskEvent",
    "TaskFailure",
    "TaskKind",
    "TaskList",
    "TaskListError",
    "TaskOptions",
    "TaskRenderer",
    "TaskSpec",
    "TaskState",
    "ToolkitError",
    "TreeRenderer",
    "VerboseRenderer",
    "run_tasks",
    "task_action",
]
