"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from contextlib import contextmanager

import pytest

from dev_toolkit.config import ProcessSettings, RenderSettings, Settings
from dev_toolkit.engine import TaskEvent, run_tasks


class RecordingRenderer:
    """Renderer that keeps ``(title, event)`` pairs for assertions."""

    def __init__(self) -> None:
        self.events: list[tuple[str, TaskEvent]] = []
        self.started = False
        self.stopped = False
        self.suspensions = 0

    def start(self, tasks) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def notify(self, task, event: TaskEvent) -> None:
        self.events.append((task.title, event))

    @contextmanager
    def suspended(self):
        self.suspensions += 1
        yield

    def titles(self, event: TaskEvent) -> list[str]:
        return [title for title, recorded in self.events if recorded is event]


@pytest.fixture()
def error_dir(tmp_path):
    path = tmp_path / "errors"
    path.mkdir()
    return path


@pytest.fixture()
def settings(error_dir) -> Settings:
    return Settings(process=ProcessSettings(tmp_dir=error_dir))


@pytest.fixture()
def verbose_settings(error_dir) -> Settings:
    return Settings(
        render=RenderSettings(verbose=True),
        process=ProcessSettings(tmp_dir=error_dir),
    )


@pytest.fixture()
def renderer() -> RecordingRenderer:
    return RecordingRenderer()


@pytest.fixture()
def run(settings, renderer):
    """Run a root step to completion with the recording renderer."""

    def _run(root_step, **kwargs):
        kwargs.setdefault("settings", settings)
        return asyncio.run(run_tasks(root_step, renderer=renderer, **kwargs))

    return _run
