from __future__ import annotations

import shlex
import shutil
import stat
import subprocess
import sys
from pathlib import Path

import allure
import pytest
from click.testing import CliRunner

from dev_toolkit import __version__
from dev_toolkit.main import dev_toolkit
from dev_toolkit.workspace import read_project

pytestmark = [
    allure.epic("Monorepo Commands"),
    allure.feature("CLI"),
]

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")

PYTHON = shlex.quote(sys.executable)


def _python_command(code: str) -> str:
    return f"{PYTHON} -c {shlex.quote(code)}"


@pytest.fixture()
def workspace(tmp_path: Path, monkeypatch) -> Path:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DEV_TOOLKIT_PATCHES", "0")
    monkeypatch.setenv("DEV_TOOLKIT_VERBOSE", "1")
    monkeypatch.setenv("DEV_TOOLKIT_INSTALL_COMMAND", _python_command("pass"))
    for variable in ("GIT_AUTHOR", "GIT_COMMITTER"):
        monkeypatch.setenv(f"{variable}_NAME", "Toolkit Tests")
        monkeypatch.setenv(f"{variable}_EMAIL", "tests@example.com")
    return tmp_path


def _git(cwd: Path, *args: str) -> None:
    subprocess.run(["git", *args], cwd=cwd, check=True, capture_output=True)  # noqa: S603, S607


def _project(path: Path, name: str, version: str, dependencies: tuple[str, ...] = ()) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    deps = ", ".join(f'"{dep}"' for dep in dependencies)
    pyproject = path / "pyproject.toml"
    pyproject.write_text(
        f'[project]\nname = "{name}"\nversion = "{version}"\ndependencies = [{deps}]\n',
        "utf-8",
    )
    return pyproject


def test_version() -> None:
    assert __version__


def test_version_option() -> None:
    runner = CliRunner()
    result = runner.invoke(dev_toolkit, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_invalid_configuration_is_reported(workspace: Path, monkeypatch) -> None:
    monkeypatch.setenv("DEV_TOOLKIT_LOG_LEVEL", "chatty")

    result = CliRunner().invoke(dev_toolkit, ["prepare"])

    assert result.exit_code != 0
    assert "DEV_TOOLKIT_LOG_LEVEL" in result.output


def test_prepare_writes_executable_pre_commit_hook(workspace: Path) -> None:
    (workspace / ".git").mkdir()

    result = CliRunner().invoke(dev_toolkit, ["prepare"])

    assert result.exit_code == 0, result.output
    hook = workspace / ".git" / "hooks" / "pre-commit"
    script = hook.read_text("utf-8")
    assert script.startswith("#!/usr/bin/env sh\n")
    assert "dev-toolkit lint --fix || exit 1" in script
    assert script.rstrip().endswith("dev-toolkit bump")
    assert hook.stat().st_mode & stat.S_IXUSR


def test_prepare_outside_git_repository_fails(workspace: Path) -> None:
    result = CliRunner().invoke(dev_toolkit, ["prepare"])

    assert result.exit_code == 1


def test_lint_passes_fix_flag_and_exit_status(workspace: Path, monkeypatch) -> None:
    record = workspace / "lint-args.txt"
    monkeypatch.setenv(
        "DEV_TOOLKIT_LINT_COMMAND",
        _python_command(
            "import sys, pathlib; "
            f"pathlib.Path({str(record)!r}).write_text(' '.join(sys.argv[1:]))",
        ),
    )

    result = CliRunner().invoke(dev_toolkit, ["lint", "--fix"])

    assert result.exit_code == 0, result.output
    assert record.read_text() == "--fix"


def test_lint_failure_exits_non_zero(workspace: Path, monkeypatch) -> None:
    monkeypatch.setenv("DEV_TOOLKIT_LINT_COMMAND", _python_command("raise SystemExit(3)"))

    result = CliRunner().invoke(dev_toolkit, ["lint"])

    assert result.exit_code == 1


@requires_git
def test_init_copies_scaffold_and_runs_install(workspace: Path, monkeypatch) -> None:
    marker = workspace / "installed"
    monkeypatch.setenv(
        "DEV_TOOLKIT_INSTALL_COMMAND",
        _python_command(f"import pathlib; pathlib.Path({str(marker)!r}).touch()"),
    )

    result = CliRunner().invoke(dev_toolkit, ["init"])

    assert result.exit_code == 0, result.output
    assert (workspace / ".git").is_dir()
    assert (workspace / ".gitignore").is_file()
    assert not (workspace / "gitignore").exists()
    assert (workspace / "pyproject.toml").is_file()
    assert (workspace / "packages").is_dir()
    assert marker.exists()


@requires_git
def test_bump_updates_staged_packages_and_dependent_templates(workspace: Path) -> None:
    _git(workspace, "init")
    core = _project(workspace / "packages" / "core", "acme-core", "0.1.0")
    untouched = _project(workspace / "packages" / "extras", "acme-extras", "1.0.0")
    template = _project(workspace / "templates" / "app", "acme-app", "0.3.0", ("acme-core>=0.1.0",))
    (core.parent / "module.py").write_text("VALUE = 1\n", "utf-8")
    _git(workspace, "add", "packages/core/module.py")

    result = CliRunner().invoke(dev_toolkit, ["bump"])

    assert result.exit_code == 0, result.output
    assert read_project(core).version == "0.1.1"
    assert read_project(untouched).version == "1.0.0"
    assert read_project(template).dependencies == ["acme-core>=0.1.1"]
    assert read_project(template).version == "0.3.1"
    assert "📦 Bumped to 0.1.1" in result.output
    assert "📝 Synced acme-app" in result.output
    assert "📦 acme-app → 0.3.1" in result.output


@requires_git
def test_bump_without_staged_files_skips_everything(workspace: Path) -> None:
    _git(workspace, "init")
    core = _project(workspace / "packages" / "core", "acme-core", "0.1.0")

    result = CliRunner().invoke(dev_toolkit, ["bump"])

    assert result.exit_code == 0, result.output
    assert read_project(core).version == "0.1.0"
    assert result.output.count("[SKIPPED]") == 2


@requires_git
def test_publish_builds_projects_whose_version_changed(workspace: Path, monkeypatch) -> None:
    monkeypatch.setenv(
        "DEV_TOOLKIT_BUILD_COMMAND",
        _python_command("import pathlib; pathlib.Path('built').touch()"),
    )
    monkeypatch.setenv(
        "DEV_TOOLKIT_PUBLISH_COMMAND",
        _python_command(
            "import pathlib\n"
            "if pathlib.Path('gitignore').exists(): pathlib.Path('saw-gitignore').touch()\n"
            "pathlib.Path('published').touch()",
        ),
    )
    _git(workspace, "init")
    core = _project(workspace / "packages" / "core", "acme-core", "0.1.0")
    stale = _project(workspace / "packages" / "stale", "acme-stale", "0.1.0")
    template = _project(workspace / "templates" / "app", "acme-app", "0.3.0")
    (template.parent / ".gitignore").write_text("*.pyc\n", "utf-8")
    _git(workspace, "add", ".")
    _git(workspace, "-c", "commit.gpgsign=false", "commit", "-m", "initial")
    _project(core.parent, "acme-core", "0.1.1")
    _project(template.parent, "acme-app", "0.3.1")
    _git(workspace, "-c", "commit.gpgsign=false", "commit", "-am", "release")

    result = CliRunner().invoke(dev_toolkit, ["publish"])

    assert result.exit_code == 0, result.output
    assert (core.parent / "published").exists()
    assert (template.parent / "published").exists()
    assert (template.parent / "saw-gitignore").exists()
    assert not (core.parent / "saw-gitignore").exists()
    assert not (stale.parent / "built").exists()
    assert (template.parent / ".gitignore").exists()
    assert not (template.parent / "gitignore").exists()
    assert "✅ Published 0.1.1" in result.output
    assert "✅ Published 0.3.1" in result.output


@requires_git
def test_publish_in_single_commit_repository_publishes_nothing(
    workspace: Path,
    monkeypatch,
) -> None:
    monkeypatch.setenv(
        "DEV_TOOLKIT_BUILD_COMMAND",
        _python_command("import pathlib; pathlib.Path('built').touch()"),
    )
    _git(workspace, "init")
    core = _project(workspace / "packages" / "core", "acme-core", "0.1.0")
    _git(workspace, "add", ".")
    _git(workspace, "-c", "commit.gpgsign=false", "commit", "-m", "initial")

    result = CliRunner().invoke(dev_toolkit, ["publish"])

    assert result.exit_code == 0, result.output
    assert not (core.parent / "built").exists()
    assert "Published" not in result.output.replace("Publishing", "")
