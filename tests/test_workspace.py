from __future__ import annotations

from pathlib import Path

import allure
import pytest

from dev_toolkit.workspace import (
    bump_patch,
    bump_project_version,
    pin_dependency,
    read_project,
    set_project_version,
    version_changed,
)

pytestmark = [
    allure.epic("Monorepo Commands"),
    allure.feature("Project Versions"),
]

PYPROJECT = """\
[project]
name = "acme-widgets"
version = "1.2.3"
dependencies = [
    "acme_core>=1.0",
    "rich>=13",
]

[tool.example]
version = "9.9.9"
"""


def _write(tmp_path: Path, text: str = PYPROJECT) -> Path:
    path = tmp_path / "pyproject.toml"
    path.write_text(text, "utf-8")
    return path


def test_read_project_returns_name_version_and_dependencies(tmp_path: Path) -> None:
    project = read_project(_write(tmp_path))

    assert project.name == "acme-widgets"
    assert project.version == "1.2.3"
    assert project.dependencies == ["acme_core>=1.0", "rich>=13"]
    assert project.depends_on("acme-core")
    assert not project.depends_on("acme")


def test_read_project_requires_project_table(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match=r"no \[project\] table"):
        read_project(_write(tmp_path, "[tool.other]\nkey = 1\n"))


@pytest.mark.parametrize(
    ("version", "expected"),
    [("0.0.0", "0.0.1"), ("1.2.9", "1.2.10"), (" 2.0.1 ", "2.0.2")],
)
def test_bump_patch(version: str, expected: str) -> None:
    assert bump_patch(version) == expected


@pytest.mark.parametrize("version", ["1.2", "1.2.3rc1", "latest"])
def test_bump_patch_rejects_non_semver(version: str) -> None:
    with pytest.raises(ValueError, match="MAJOR.MINOR.PATCH"):
        bump_patch(version)


def test_set_project_version_only_touches_project_table(tmp_path: Path) -> None:
    path = _write(tmp_path)

    set_project_version(path, "2.0.0")

    text = path.read_text("utf-8")
    assert 'version = "2.0.0"' in text
    assert 'version = "9.9.9"' in text
    assert read_project(path).version == "2.0.0"


def test_bump_project_version_returns_new_version(tmp_path: Path) -> None:
    path = _write(tmp_path)

    assert bump_project_version(path) == "1.2.4"
    assert read_project(path).version == "1.2.4"


def test_pin_dependency_rewrites_matching_requirement(tmp_path: Path) -> None:
    path = _write(tmp_path)

    assert pin_dependency(path, "acme-core", "1.4.0") is True

    assert read_project(path).dependencies == ["acme-core>=1.4.0", "rich>=13"]


def test_pin_dependency_reports_no_change(tmp_path: Path) -> None:
    path = _write(tmp_path)
    before = path.read_text("utf-8")

    assert pin_dependency(path, "missing-package", "1.0.0") is False
    assert path.read_text("utf-8") == before


def test_version_changed_detects_added_version_line() -> None:
    diff = """\
--- a/packages/core/pyproject.toml
+++ b/packages/core/pyproject.toml
@@ -1,3 +1,3 @@
 name = "core"
-version = "0.1.0"
+version = "0.1.1"
"""
    assert version_changed(diff)
    assert not version_changed(diff.replace('+version = "0.1.1"', "+description = 'x'"))
    assert not version_changed("")
