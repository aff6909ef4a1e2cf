"""Monorepo maintenance actions run through the task engine.

Every action has the ``async def action(options, ctx)`` shape expected by
:func:`dev_toolkit.engine.task_action`. Packages live in
``packages/<name>/pyproject.toml``, templates in
``templates/<name>/pyproject.toml``.
"""

from __future__ import annotations

import functools
import logging
import re
import shlex
import shutil
import subprocess
from pathlib import Path
from typing import Any

from dev_toolkit.engine import Context, ToolkitError
from dev_toolkit.workspace import (
    ProjectInfo,
    bump_project_version,
    pin_dependency,
    read_project,
    version_changed,
)

logger = logging.getLogger(__name__)

SCAFFOLD_DIR = Path(__file__).parent / "scaffold"
PACKAGES_DIR = "packages"
TEMPLATES_DIR = "templates"

_TEMPLATE_PATH_RE = re.compile(rf"^{TEMPLATES_DIR}/([^/]+)/")

PRE_COMMIT_HOOK = """#!/usr/bin/env sh
[ -z "$(git diff --cached --name-only)" ] && exit 0

{install}
dev-toolkit lint --fix || exit 1
dev-toolkit bump
"""


# -- lint -------------------------------------------------------------------


async def lint(options: dict[str, Any], ctx: Context) -> None:
    command, *args = ctx.settings.commands.argv("lint")
    if options.get("fix"):
        args.append("--fix")
    await ctx.spawn(command, args, stdio="inherit")


# -- bump -------------------------------------------------------------------


async def bump(options: dict[str, Any], ctx: Context) -> None:
    root = Path.cwd()
    staged: list[str] = []
    templates_to_bump: set[str] = set()

    def collect_staged() -> None:
        staged.extend(_git_lines(["diff", "--cached", "--name-only"], cwd=root))
        for path in staged:
            match = _TEMPLATE_PATH_RE.match(path)
            if match:
                templates_to_bump.add(match.group(1))
        logger.debug("Staged files: %s", staged)

    def declare_packages(group: Context) -> None:
        for pyproject in _project_files(root / PACKAGES_DIR):
            prefix = f"{PACKAGES_DIR}/{pyproject.parent.name}/"
            if not any(path.startswith(prefix) for path in staged):
                continue
            project = read_project(pyproject)
            group.sequence(
                project.name,
                functools.partial(_bump_package, project, root, templates_to_bump),
            )

    async def bump_templates(task_ctx: Context) -> None:
        for name in sorted(templates_to_bump):
            pyproject = root / TEMPLATES_DIR / name / "pyproject.toml"
            if not pyproject.is_file():
                continue
            version = bump_project_version(pyproject)
            await task_ctx.spawn("git", ["add", "pyproject.toml"], cwd=pyproject.parent)
            task_ctx.log(f"📦 {read_project(pyproject).name} → {version}")

    ctx.task("Getting staged files", collect_staged)
    ctx.parallel("Bumping packages", declare_packages, skip=lambda _shared: not staged)
    ctx.sequence("Bumping templates", bump_templates, skip=lambda _shared: not templates_to_bump)


async def _bump_package(
    project: ProjectInfo,
    root: Path,
    templates_to_bump: set[str],
    ctx: Context,
) -> None:
    version = bump_project_version(project.path)
    await ctx.spawn("git", ["add", "pyproject.toml"], cwd=project.path.parent)
    ctx.log(f"📦 Bumped to {version}")

    for template in _project_files(root / TEMPLATES_DIR):
        info = read_project(template)
        if not info.depends_on(project.name):
            continue
        if pin_dependency(template, project.name, version):
            templates_to_bump.add(template.parent.name)
            ctx.log(f"📝 Synced {info.name}")


# -- publish ----------------------------------------------------------------


async def publish(options: dict[str, Any], ctx: Context) -> None:
    root = Path.cwd()
    ctx.sequence(
        "Publishing packages",
        functools.partial(_declare_publishing, root, root / PACKAGES_DIR, rename_gitignore=False),
    )
    ctx.sequence(
        "Publishing templates",
        functools.partial(_declare_publishing, root, root / TEMPLATES_DIR, rename_gitignore=True),
    )


def _declare_publishing(
    root: Path,
    directory: Path,
    ctx: Context,
    *,
    rename_gitignore: bool,
) -> None:
    if not _has_parent_commit(root):
        logger.info("HEAD has no parent commit, no version changes to publish")
        return
    for pyproject in _project_files(directory):
        diff = _git_output(["diff", "HEAD~1", "HEAD", "--", str(pyproject)], cwd=root)
        if not version_changed(diff):
            continue
        project = read_project(pyproject)
        ctx.sequence(
            project.name,
            functools.partial(_publish_project, project, rename_gitignore=rename_gitignore),
        )


async def _publish_project(project: ProjectInfo, ctx: Context, *, rename_gitignore: bool) -> None:
    path = project.path.parent
    dotfile, plain = path / ".gitignore", path / "gitignore"
    renamed = rename_gitignore and dotfile.exists()
    if renamed:
        dotfile.rename(plain)
    try:
        for name in ("build", "publish"):
            command, *args = ctx.settings.commands.argv(name)
            await ctx.spawn(command, args, cwd=path)
    finally:
        if renamed and plain.exists():
            plain.rename(dotfile)
    ctx.log(f"✅ Published {project.version}")


# -- init -------------------------------------------------------------------


async def init(options: dict[str, Any], ctx: Context) -> None:
    target = Path.cwd()

    async def git_init() -> None:
        await ctx.spawn("git", ["init"], cwd=target)

    def copy_scaffold(task_ctx: Context) -> None:
        for item in sorted(SCAFFOLD_DIR.iterdir()):
            destination = target / (".gitignore" if item.name == "gitignore" else item.name)
            if item.is_dir():
                shutil.copytree(item, destination, dirs_exist_ok=True)
            else:
                shutil.copy2(item, destination)
        task_ctx.log("✅ Copied all template files")

    async def install() -> None:
        command, *args = ctx.settings.commands.argv("install")
        await ctx.spawn(command, args, cwd=target)

    ctx.task("Initializing git repository", git_init)
    ctx.sequence("Copying template files", copy_scaffold)
    ctx.task("Installing dependencies", install)


# -- prepare ----------------------------------------------------------------


async def prepare(options: dict[str, Any], ctx: Context) -> None:
    git_dir = Path.cwd() / ".git"

    def write_hook() -> None:
        if not git_dir.is_dir():
            raise ToolkitError(f"Not a git repository: {git_dir.parent}")
        hook = git_dir / "hooks" / "pre-commit"
        hook.parent.mkdir(parents=True, exist_ok=True)
        install = shlex.join(ctx.settings.commands.argv("install"))
        hook.write_text(PRE_COMMIT_HOOK.format(install=install), "utf-8")
        hook.chmod(0o755)

    ctx.task("Creating pre-commit hook", write_hook)


# -- helpers ----------------------------------------------------------------


def _project_files(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    return sorted(path for path in directory.glob("*/pyproject.toml") if path.is_file())


def _git_output(args: list[str], *, cwd: Path) -> str:
    completed = subprocess.run(  # noqa: S603
        ["git", *args],  # noqa: S607
        cwd=cwd,
        check=True,
        capture_output=True,
        text=True,
    )
    return completed.stdout


def _has_parent_commit(root: Path) -> bool:
    completed = subprocess.run(  # noqa: S603
        ["git", "rev-parse", "--verify", "--quiet", "HEAD~1"],  # noqa: S607
        cwd=root,
        check=False,
        capture_output=True,
    )
    return completed.returncode == 0


def _git_lines(args: list[str], *, cwd: Path) -> list[str]:
    return [line for line in _git_output(args, cwd=cwd).splitlines() if line.strip()]
