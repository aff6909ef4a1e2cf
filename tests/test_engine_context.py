from __future__ import annotations

import asyncio

import allure
import click
import pytest

from dev_toolkit.engine import (
    Choice,
    Context,
    Orchestrator,
    PromptBridge,
    PromptContextError,
    RunError,
    Separator,
    Task,
    TaskSpec,
    TaskState,
)

pytestmark = [
    allure.epic("Task Engine"),
    allure.feature("Context & Prompts"),
]


def _answers(monkeypatch, *answers):
    """Feed ``click.prompt`` a fixed sequence of answers."""

    pending = list(answers)
    asked: list[dict] = []

    def fake_prompt(text, **kwargs):
        asked.append({"text": text, **kwargs})
        return pending.pop(0)

    monkeypatch.setattr(click, "prompt", fake_prompt)
    return asked


@pytest.mark.parametrize("kind", ["select", "input", "prompt"])
def test_prompts_at_root_raise_context_error(run, kind) -> None:
    async def root(ctx):
        if kind == "select":
            await ctx.select("Pick", ["a", "b"])
        elif kind == "input":
            await ctx.input("Name")
        else:
            await ctx.prompt(lambda: "value")

    with pytest.raises(RunError) as excinfo:
        run(root)

    assert isinstance(excinfo.value.cause, PromptContextError)
    assert f"{kind}() can only be called within a task" in str(excinfo.value)


def test_prompt_for_finished_task_raises_context_error() -> None:
    task = Task.from_spec(TaskSpec.leaf("done", lambda: None))
    task.state = TaskState.SUCCEEDED
    bridge = PromptBridge()

    with pytest.raises(PromptContextError, match="not running"):
        asyncio.run(bridge.input(task, "Name"))


def test_select_returns_value_of_chosen_option(run, renderer, monkeypatch) -> None:
    asked = _answers(monkeypatch, 2)
    picked = {}

    async def body(step) -> None:
        picked["value"] = await step.select(
            "Release channel",
            [
                Choice("stable", name="Stable"),
                Separator(),
                Choice("beta", name="Beta", description="weekly"),
            ],
            default="beta",
        )

    run(lambda ctx: ctx.sequence("Choose", body))

    assert picked["value"] == "beta"
    assert asked[0]["default"] == 2
    assert renderer.suspensions == 1


def test_select_accepts_plain_values(run, monkeypatch) -> None:
    _answers(monkeypatch, 1)
    picked = {}

    async def body(step) -> None:
        picked["value"] = await step.select("Pick", ["first", "second"])

    run(lambda ctx: ctx.sequence("Choose", body))

    assert picked["value"] == "first"


def test_input_repeats_until_validator_accepts(run, monkeypatch, capsys) -> None:
    asked = _answers(monkeypatch, "", "bad name", "good-name")
    answer = {}

    async def validate(value: str):
        return True if "-" in value else "Use a dash."

    async def body(step) -> None:
        answer["value"] = await step.input("Package name", required=True, validate=validate)

    run(lambda ctx: ctx.sequence("Ask", body))

    assert answer["value"] == "good-name"
    assert len(asked) == 3
    output = capsys.readouterr().out
    assert "A value is required." in output
    assert "Use a dash." in output


def test_input_default_is_passed_to_click(run, monkeypatch) -> None:
    asked = _answers(monkeypatch, "0.1.0")

    async def body(step) -> None:
        await step.input("Version", default="0.1.0")

    run(lambda ctx: ctx.sequence("Ask", body))

    assert asked[0]["default"] == "0.1.0"
    assert asked[0]["show_default"] is True


def test_custom_prompt_runs_sync_and_async_callables(run) -> None:
    results = []

    def sync_prompt(*, question: str) -> str:
        return f"sync:{question}"

    async def async_prompt(*, question: str) -> str:
        return f"async:{question}"

    async def body(step) -> None:
        results.append(await step.prompt(sync_prompt, question="a"))
        results.append(await step.prompt(async_prompt, question="b"))

    run(lambda ctx: ctx.sequence("Ask", body))

    assert results == ["sync:a", "async:b"]


def test_concurrent_prompts_are_serialized(run) -> None:
    active = []
    overlaps = []

    async def guarded_prompt(*, name: str) -> str:
        active.append(name)
        overlaps.append(len(active))
        await asyncio.sleep(0.01)
        active.remove(name)
        return name

    def members(group):
        for name in ("one", "two", "three"):

            async def ask(step, name=name) -> None:
                await step.prompt(guarded_prompt, name=name)

            group.sequence(name, ask)

    run(lambda ctx: ctx.parallel("Prompts", members))

    assert overlaps == [1, 1, 1]


def test_context_exposes_shared_state_and_settings(settings) -> None:
    orchestrator = Orchestrator(settings=settings)
    root_list = orchestrator.new_list()
    ctx = Context(orchestrator, None, root_list)
    ctx.shared["key"] = "value"

    assert orchestrator.shared == {"key": "value"}
    assert ctx.settings is settings
    assert ctx.current_task is None
