"""Domain models for the task tree."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import uuid4

if TYPE_CHECKING:
    from dev_toolkit.engine.context import Context


class TaskState(str, Enum):
    """Task lifecycle states."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


TERMINAL_STATES = frozenset({TaskState.SUCCEEDED, TaskState.FAILED, TaskState.SKIPPED})


class TaskKind(str, Enum):
    """How a task body is invoked.

    ``LEAF`` bodies take no arguments. ``SEQUENCE`` and ``PARALLEL`` bodies
    receive a child :class:`Context` and their declared children run
    one at a time or all at once.
    """

    LEAF = "leaf"
    SEQUENCE = "sequence"
    PARALLEL = "parallel"


SkipResult = bool | str
SkipOption = SkipResult | Callable[[dict[str, Any]], SkipResult | Awaitable[SkipResult]]
RollbackFn = Callable[["Context"], Any]


@dataclass(slots=True, frozen=True)
class RetryPolicy:
    """Attempt budget for one task.

    ``tries`` counts the first attempt. ``delay`` is the pause between
    attempts in seconds, so ``RetryPolicy(tries=3, delay=0.01)`` waits 10 ms.
    """

    tries: int = 1
    delay: float = 0.0

    def __post_init__(self) -> None:
        if self.tries < 1:
            raise ValueError(f"Retry tries must be >= 1, got {self.tries}.")
        if self.delay < 0:
            raise ValueError(f"Retry delay must be >= 0, got {self.delay}.")

    @classmethod
    def coerce(cls, value: RetryPolicy | int | None) -> RetryPolicy:
        if value is None:
            return cls()
        if isinstance(value, RetryPolicy):
            return value
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"Unsupported retry option: {value!r}")
        return cls(tries=value)


@dataclass(slots=True)
class TaskOptions:
    """Per-task failure policy."""

    exit_on_error: bool = True
    skip: SkipOption = False
    retry: RetryPolicy | int | None = None
    rollback: RollbackFn | None = None
    retry_policy: RetryPolicy = field(init=False)

    def __post_init__(self) -> None:
        self.retry_policy = RetryPolicy.coerce(self.retry)


@dataclass(slots=True)
class TaskSpec:
    """Declaration of a task that is not registered yet.

    Composite bodies may return an iterable of specs to extend their subtree.
    """

    title: str
    body: Callable[..., Any]
    kind: TaskKind = TaskKind.LEAF
    options: TaskOptions = field(default_factory=TaskOptions)

    @classmethod
    def leaf(cls, title: str, body: Callable[[], Any], **options: Any) -> TaskSpec:
        return cls(title=title, body=body, kind=TaskKind.LEAF, options=TaskOptions(**options))

    @classmethod
    def sequence(cls, title: str, body: Callable[[Context], Any], **options: Any) -> TaskSpec:
        return cls(title=title, body=body, kind=TaskKind.SEQUENCE, options=TaskOptions(**options))

    @classmethod
    def parallel(cls, title: str, body: Callable[[Context], Any], **options: Any) -> TaskSpec:
        return cls(title=title, body=body, kind=TaskKind.PARALLEL, options=TaskOptions(**options))


@dataclass(slots=True, eq=False)
class Task:
    """Registered task with its live, renderer-visible state."""

    title: str
    kind: TaskKind
    options: TaskOptions
    body: Callable[..., Any] = field(repr=False)
    state: TaskState = TaskState.PENDING
    output: str | None = None
    children: list[Task] | None = None
    attempts: int = 0
    skip_reason: str | None = None
    error: BaseException | None = field(default=None, repr=False)
    rolled_back: bool = False
    rollback_error: BaseException | None = field(default=None, repr=False)
    failure_reported: bool = False
    task_id: str = field(default_factory=lambda: uuid4().hex[:8])

    @classmethod
    def from_spec(cls, spec: TaskSpec) -> Task:
        return cls(title=spec.title, kind=spec.kind, options=spec.options, body=spec.body)

    @property
    def is_composite(self) -> bool:
        return self.kind is not TaskKind.LEAF

    @property
    def is_running(self) -> bool:
        return self.state is TaskState.RUNNING

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES
