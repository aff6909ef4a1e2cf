"""Find/replace patches for installed third-party sources.

A ``*.patches`` file holds sections::

    === package/module.py ===
    ---
    text to find
    +++
    replacement text

Each file under ``site-packages`` is patched at most once; a
``<file>.dev-toolkit-patched`` marker records that it was done.
"""

from __future__ import annotations

import logging
import re
import sysconfig
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from dev_toolkit.config import PatchSettings

logger = logging.getLogger(__name__)

MARKER_SUFFIX = ".dev-toolkit-patched"

_SECTION_RE = re.compile(r"^=== (.+?) ===$", re.MULTILINE)
_FIND_RE = re.compile(r"^---", re.MULTILINE)
_REPLACE_RE = re.compile(r"^\+\+\+", re.MULTILINE)


@dataclass(slots=True, frozen=True)
class Patch:
    find: str
    replace: str


PatchSet = dict[str, list[Patch]]


def parse_patches(text: str) -> PatchSet:
    """Parse patch text into ``{relative_path: [Patch, ...]}``.

    Entries missing either side are ignored, as are sections without entries.
    """

    parts = _SECTION_RE.split(text)[1:]
    patches: PatchSet = {}
    for target, body in zip(parts[::2], parts[1::2], strict=False):
        entries: list[Patch] = []
        for chunk in _FIND_RE.split(body)[1:]:
            find, *rest = _REPLACE_RE.split(chunk, maxsplit=1)
            if not rest:
                continue
            find, replace = find.strip(), rest[0].strip()
            if find and replace:
                entries.append(Patch(find=find, replace=replace))
        if entries:
            patches[target.strip()] = entries
    return patches


def parse_patch_file(path: Path) -> PatchSet:
    return parse_patches(path.read_text("utf-8"))


def load_patches(dirs: Iterable[Path]) -> PatchSet:
    """Merge every ``*.patches`` file found in ``dirs``; later files win."""

    merged: PatchSet = {}
    for directory in dirs:
        if not directory.is_dir():
            continue
        for patch_file in sorted(directory.glob("*.patches")):
            logger.debug("Loading patches from %s", patch_file)
            merged.update(parse_patch_file(patch_file))
    return merged


def default_patch_dirs(settings: PatchSettings, cwd: Path | None = None) -> list[Path]:
    return [(cwd or Path.cwd()) / "patches", *settings.extra_dirs]


def find_site_packages() -> Path:
    return Path(sysconfig.get_paths()["purelib"])


def apply_patches(patches: PatchSet, site_packages: Path) -> list[Path]:
    """Apply ``patches`` below ``site_packages``; return the files changed."""

    patched: list[Path] = []
    for relative_path, entries in patches.items():
        target = site_packages / relative_path
        marker = target.with_name(target.name + MARKER_SUFFIX)
        if not target.is_file() or marker.exists():
            continue
        content = target.read_text("utf-8")
        for entry in entries:
            content = content.replace(entry.find, entry.replace)
        target.write_text(content, "utf-8")
        marker.write_text(f"Patched at {datetime.now(UTC).isoformat()}\n", "utf-8")
        logger.info("Patched %s", target)
        patched.append(target)
    return patched


def apply_default_patches(settings: PatchSettings) -> list[Path]:
    patches = load_patches(default_patch_dirs(settings))
    if not patches:
        return []
    return apply_patches(patches, find_site_packages())
