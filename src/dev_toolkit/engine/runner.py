"""Top-level invocation surface of the task engine."""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable
from typing import Any

from dev_toolkit.config import Settings
from dev_toolkit.engine.context import Context
from dev_toolkit.engine.errors import RunError
from dev_toolkit.engine.render import TaskRenderer, build_renderer
from dev_toolkit.engine.tasks import Orchestrator, TaskList, maybe_await

logger = logging.getLogger(__name__)

RootStep = Callable[[Context], Any]
Action = Callable[[dict[str, Any], Context], Any]


async def run_tasks(
    root_step: RootStep,
    *,
    settings: Settings | None = None,
    renderer: TaskRenderer | None = None,
    concurrent: bool = False,
    exit_on_error: bool = True,
) -> TaskList:
    """Let ``root_step`` declare the run-level list, then drain it.

    Returns the run-level list on success and raises :class:`RunError` on
    the first unrecovered failure, whether it happens while declaring or
    while running.
    """

    settings = settings or Settings.from_env()
    orchestrator = Orchestrator(
        settings=settings,
        renderer=renderer or build_renderer(settings),
    )
    root = orchestrator.new_list(concurrent=concurrent, exit_on_error=exit_on_error)
    context = Context(orchestrator, None, root)
    try:
        root.absorb(await maybe_await(root_step(context)))
        if root.tasks:
            orchestrator.renderer.start(root)
            try:
                await root.run()
            finally:
                orchestrator.renderer.stop()
        await orchestrator.processes.drain()
    except Exception as error:
        logger.debug("Run failed", exc_info=error)
        raise RunError(error, root) from error
    return root


def task_action(fn: Action) -> Callable[..., None]:
    """Turn ``async def action(options, ctx)`` into a click callback.

    Click options arrive as ``options``; a set ``verbose`` flag overrides
    ``DEV_TOOLKIT_VERBOSE``. An unrecovered failure exits with status 1.
    """

    @functools.wraps(fn)
    def command(**options: Any) -> None:
        settings = Settings.from_env(verbose=True if options.get("verbose") else None)
        settings.validate()
        try:
            asyncio.run(run_tasks(lambda ctx: fn(options, ctx), settings=settings))
        except RunError as error:
            logger.error("%s", error)
            raise SystemExit(1) from error

    return command
