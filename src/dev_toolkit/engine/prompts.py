"""Interactive prompts routed through the running task's display slot."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, TypeVar

import click

from dev_toolkit.engine.errors import PromptContextError
from dev_toolkit.engine.models import Task
from dev_toolkit.engine.render import SilentRenderer, TaskRenderer

logger = logging.getLogger(__name__)

T = TypeVar("T")

ValidateResult = bool | str
Validator = Callable[[str], ValidateResult | Awaitable[ValidateResult]]


@dataclass(slots=True, frozen=True)
class Choice:
    """One selectable option."""

    value: Any
    name: str | None = None
    description: str | None = None

    @property
    def label(self) -> str:
        return self.name if self.name is not None else str(self.value)


@dataclass(slots=True, frozen=True)
class Separator:
    """Non-selectable divider line between choices."""

    text: str = "──────────────"


class PromptBridge:
    """Runs prompts one at a time while the renderer is suspended.

    Every request names the task it is issued from; without a running task
    there is no slot to host the prompt and :class:`PromptContextError` is
    raised before anything touches the terminal.
    """

    def __init__(self, renderer: TaskRenderer | None = None) -> None:
        self._renderer = renderer or SilentRenderer()
        self._lock = asyncio.Lock()

    async def select(
        self,
        task: Task | None,
        message: str,
        choices: Sequence[Choice | Separator | Any],
        *,
        default: Any = None,
    ) -> Any:
        _require_running_task(task, "select")
        options = [
            option if isinstance(option, Choice | Separator) else Choice(value=option)
            for option in choices
        ]
        selectable = [option for option in options if isinstance(option, Choice)]
        if not selectable:
            raise ValueError("select() needs at least one choice.")
        default_index = next(
            (index for index, option in enumerate(selectable, 1) if option.value == default),
            None,
        )

        def ask() -> Any:
            click.secho(message, bold=True)
            index = 0
            for option in options:
                if isinstance(option, Separator):
                    click.echo(f"   {option.text}")
                    continue
                index += 1
                line = f"  {index}) {option.label}"
                if option.description:
                    line = f"{line} - {option.description}"
                click.echo(line)
            picked = click.prompt(
                "Choice",
                type=click.IntRange(1, len(selectable)),
                default=default_index,
            )
            return selectable[picked - 1].value

        async with self._slot(task):
            return await asyncio.to_thread(ask)

    async def input(
        self,
        task: Task | None,
        message: str,
        *,
        default: str | None = None,
        required: bool = False,
        validate: Validator | None = None,
    ) -> str:
        _require_running_task(task, "input")
        async with self._slot(task):
            while True:
                answer = await asyncio.to_thread(
                    click.prompt,
                    message,
                    default=default if default is not None else "",
                    show_default=default is not None,
                )
                if required and not answer.strip():
                    click.secho("A value is required.", fg="red")
                    continue
                if validate is None:
                    return answer
                verdict = validate(answer)
                if inspect.isawaitable(verdict):
                    verdict = await verdict
                if verdict is True:
                    return answer
                click.secho(verdict if isinstance(verdict, str) else "Invalid value.", fg="red")

    async def prompt(
        self,
        task: Task | None,
        prompt_fn: Callable[..., T | Awaitable[T]],
        options: dict[str, Any],
    ) -> T:
        _require_running_task(task, "prompt")
        async with self._slot(task):
            if inspect.iscoroutinefunction(prompt_fn):
                return await prompt_fn(**options)
            return await asyncio.to_thread(prompt_fn, **options)

    @asynccontextmanager
    async def _slot(self, task: Task) -> AsyncIterator[None]:
        async with self._lock:
            logger.debug("Prompt opened for task %r", task.title)
            with self._renderer.suspended():
                yield


def _require_running_task(task: Task | None, kind: str) -> None:
    if task is None:
        raise PromptContextError(f"{kind}() can only be called within a task.")
    if not task.is_running:
        raise PromptContextError(
            f"{kind}() called for task {task.title!r} which is {task.state.value}, not running.",
        )
