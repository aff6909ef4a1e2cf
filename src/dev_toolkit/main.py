"""CLI entrypoint for dev-toolkit."""

import logging
from typing import Any

import rich_click as click
from rich.logging import RichHandler

from dev_toolkit import __version__, commands
from dev_toolkit.config import Settings
from dev_toolkit.engine import Context, task_action
from dev_toolkit.patches import apply_default_patches

click.rich_click.USE_MARKDOWN = True

verbose_option = click.option(
    "--verbose",
    is_flag=True,
    default=False,
    help="Print one line per task event instead of the live tree.",
)


@click.group()
@click.version_option(version=__version__, prog_name="dev-toolkit")
def dev_toolkit() -> None:
    """Monorepo maintenance tasks: lint, bump, publish, init, prepare."""

    try:
        settings = Settings.from_env()
        settings.validate()
    except ValueError as error:
        raise click.ClickException(str(error)) from error
    _configure_logging(settings.log_level)
    if settings.patches.enabled:
        _emit_lines([f"Patched {path}" for path in apply_default_patches(settings.patches)])


@dev_toolkit.command()
@click.option("--fix", is_flag=True, default=False, help="Auto-fix linting errors.")
@verbose_option
@task_action
async def lint(options: dict[str, Any], ctx: Context) -> None:
    """Run the configured linter on the codebase."""

    await commands.lint(options, ctx)


@dev_toolkit.command()
@verbose_option
@task_action
async def bump(options: dict[str, Any], ctx: Context) -> None:
    """Bump versions of packages with staged changes and sync templates."""

    await commands.bump(options, ctx)


@dev_toolkit.command()
@verbose_option
@task_action
async def publish(options: dict[str, Any], ctx: Context) -> None:
    """Build and publish packages and templates bumped by the last commit."""

    await commands.publish(options, ctx)


@dev_toolkit.command()
@verbose_option
@task_action
async def init(options: dict[str, Any], ctx: Context) -> None:
    """Initialize a monorepo in the current directory."""

    await commands.init(options, ctx)


@dev_toolkit.command()
@verbose_option
@task_action
async def prepare(options: dict[str, Any], ctx: Context) -> None:
    """Install the pre-commit hook (lint, then bump)."""

    await commands.prepare(options, ctx)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    dev_toolkit()
