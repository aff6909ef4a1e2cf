"""pyproject.toml helpers for monorepo packages and templates."""

from __future__ import annotations

import re
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

_VERSION_RE = re.compile(r"^(\d+)\.(\d+)\.(\d+)$")
_PROJECT_HEADER_RE = re.compile(r"^\[project\]\s*$", re.MULTILINE)
_TABLE_HEADER_RE = re.compile(r"^\[", re.MULTILINE)
_VERSION_LINE_RE = re.compile(r'^(version\s*=\s*)(["\'])([^"\']*)\2', re.MULTILINE)
_REQUIREMENT_NAME_RE = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")
_DIFF_VERSION_RE = re.compile(r"^\+\s*version\s*=", re.MULTILINE)
_DEPENDENCIES_RE = re.compile(
    r"""^dependencies\s*=\s*\[(?:\s|#[^\n]*|"[^"\n]*"|'[^'\n]*'|,)*\]""",
    re.MULTILINE,
)


@dataclass(slots=True)
class ProjectInfo:
    """The ``[project]`` fields the bundled commands care about."""

    path: Path
    name: str
    version: str
    dependencies: list[str] = field(default_factory=list)

    def depends_on(self, name: str) -> bool:
        wanted = normalize_name(name)
        return any(requirement_name(dep) == wanted for dep in self.dependencies)


def normalize_name(name: str) -> str:
    return re.sub(r"[-_.]+", "-", name).lower()


def requirement_name(requirement: str) -> str | None:
    match = _REQUIREMENT_NAME_RE.match(requirement)
    return normalize_name(match.group(1)) if match else None


def read_project(pyproject: Path) -> ProjectInfo:
    """Load ``[project]`` metadata; raise ``ValueError`` if it is incomplete."""

    data = tomllib.loads(pyproject.read_text("utf-8"))
    project = data.get("project")
    if not isinstance(project, dict):
        raise ValueError(f"{pyproject} has no [project] table.")
    name = project.get("name")
    version = project.get("version")
    if not isinstance(name, str) or not isinstance(version, str):
        raise ValueError(f"{pyproject} must define project.name and project.version.")
    dependencies = project.get("dependencies") or []
    return ProjectInfo(
        path=pyproject,
        name=name,
        version=version,
        dependencies=[str(dep) for dep in dependencies],
    )


def bump_patch(version: str) -> str:
    match = _VERSION_RE.match(version.strip())
    if match is None:
        raise ValueError(f"Not a MAJOR.MINOR.PATCH version: {version!r}")
    major, minor, patch = (int(part) for part in match.groups())
    return f"{major}.{minor}.{patch + 1}"


def set_project_version(pyproject: Path, version: str) -> None:
    """Rewrite ``version = ...`` inside ``[project]`` keeping the rest verbatim."""

    text = pyproject.read_text("utf-8")
    start, end = _project_table_span(text, pyproject)
    table = text[start:end]
    updated, count = _VERSION_LINE_RE.subn(
        lambda match: f"{match.group(1)}{match.group(2)}{version}{match.group(2)}",
        table,
        count=1,
    )
    if count == 0:
        raise ValueError(f"{pyproject} has no version line in [project].")
    pyproject.write_text(text[:start] + updated + text[end:], "utf-8")


def bump_project_version(pyproject: Path) -> str:
    new_version = bump_patch(read_project(pyproject).version)
    set_project_version(pyproject, new_version)
    return new_version


def pin_dependency(pyproject: Path, name: str, version: str) -> bool:
    """Point every ``project.dependencies`` entry on ``name`` at ``>=version``.

    Returns False when nothing had to change.
    """

    wanted = normalize_name(name)
    text = pyproject.read_text("utf-8")
    start, end = _project_table_span(text, pyproject)
    array = _DEPENDENCIES_RE.search(text, start, end)
    if array is None:
        return False
    start, end = array.span()
    block = text[start:end]

    def replace(match: re.Match[str]) -> str:
        quote, requirement = match.group(1), match.group(2)
        if requirement_name(requirement) != wanted:
            return match.group(0)
        return f"{quote}{name}>={version}{quote}"

    updated = re.sub(r"""(["'])([^"'\n]+)\1""", replace, block)
    if updated == block:
        return False
    pyproject.write_text(text[:start] + updated + text[end:], "utf-8")
    return True


def version_changed(diff_text: str) -> bool:
    """True when a unified diff of a pyproject adds a ``version =`` line."""

    return _DIFF_VERSION_RE.search(diff_text) is not None


def _project_table_span(text: str, pyproject: Path) -> tuple[int, int]:
    header = _PROJECT_HEADER_RE.search(text)
    if header is None:
        raise ValueError(f"{pyproject} has no [project] table.")
    next_header = _TABLE_HEADER_RE.search(text, header.end())
    return header.end(), next_header.start() if next_header else len(text)
