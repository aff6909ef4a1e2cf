"""Runtime configuration for the task engine and the bundled commands."""

from __future__ import annotations

import logging
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(slots=True)
class RenderSettings:
    """Progress rendering settings."""

    verbose: bool = False
    refresh_per_second: float = 10.0


@dataclass(slots=True)
class ProcessSettings:
    """Subprocess capture settings."""

    tmp_dir: Path | None = None
    error_log_prefix: str = "spawn-error-"


@dataclass(slots=True)
class CommandSettings:
    """External commands used by the bundled CLI commands."""

    lint_command: str = "ruff check ."
    build_command: str = "uv build"
    publish_command: str = "uv publish"
    install_command: str = "uv sync"

    def argv(self, name: str) -> list[str]:
        """Split one configured command template into argv."""

        return shlex.split(getattr(self, f"{name}_command"))


@dataclass(slots=True)
class PatchSettings:
    """Third-party source patching settings."""

    enabled: bool = True
    extra_dirs: tuple[Path, ...] = ()


@dataclass(slots=True)
class Settings:
    """Application settings grouped by concern."""

    log_level: str = "WARNING"
    render: RenderSettings = field(default_factory=RenderSettings)
    process: ProcessSettings = field(default_factory=ProcessSettings)
    commands: CommandSettings = field(default_factory=CommandSettings)
    patches: PatchSettings = field(default_factory=PatchSettings)

    @classmethod
    def from_env(cls, *, verbose: bool | None = None) -> Settings:
        """Load settings from environment, an explicit ``verbose`` flag wins."""

        tmp_dir = os.getenv("DEV_TOOLKIT_TMP_DIR", "").strip()
        return cls(
            log_level=os.getenv("DEV_TOOLKIT_LOG_LEVEL", "WARNING").strip().upper(),
            render=RenderSettings(
                verbose=(
                    verbose
                    if verbose is not None
                    else _env_bool("DEV_TOOLKIT_VERBOSE", default=False)
                ),
                refresh_per_second=float(os.getenv("DEV_TOOLKIT_REFRESH_PER_SECOND", "10")),
            ),
            process=ProcessSettings(
                tmp_dir=Path(tmp_dir) if tmp_dir else None,
                error_log_prefix=os.getenv("DEV_TOOLKIT_ERROR_LOG_PREFIX", "spawn-error-"),
            ),
            commands=CommandSettings(
                lint_command=os.getenv("DEV_TOOLKIT_LINT_COMMAND", "ruff check ."),
                build_command=os.getenv("DEV_TOOLKIT_BUILD_COMMAND", "uv build"),
                publish_command=os.getenv("DEV_TOOLKIT_PUBLISH_COMMAND", "uv publish"),
                install_command=os.getenv("DEV_TOOLKIT_INSTALL_COMMAND", "uv sync"),
            ),
            patches=PatchSettings(
                enabled=_env_bool("DEV_TOOLKIT_PATCHES", default=True),
                extra_dirs=_collect_patch_dirs(),
            ),
        )

    @property
    def verbose(self) -> bool:
        return self.render.verbose

    def validate(self) -> None:
        """Raise configuration error on values the engine cannot work with."""

        if not isinstance(logging.getLevelName(self.log_level), int):
            raise ValueError(f"DEV_TOOLKIT_LOG_LEVEL is not a logging level: {self.log_level!r}")
        if self.render.refresh_per_second <= 0:
            raise ValueError("DEV_TOOLKIT_REFRESH_PER_SECOND must be > 0.")
        if not self.process.error_log_prefix.strip():
            raise ValueError("DEV_TOOLKIT_ERROR_LOG_PREFIX must not be empty.")
        if self.process.tmp_dir is not None and not self.process.tmp_dir.is_dir():
            raise ValueError(
                f"DEV_TOOLKIT_TMP_DIR must be an existing directory: {self.process.tmp_dir}",
            )
        for name in ("lint", "build", "publish", "install"):
            if not self.commands.argv(name):
                raise ValueError(f"DEV_TOOLKIT_{name.upper()}_COMMAND must not be empty.")


def _collect_patch_dirs() -> tuple[Path, ...]:
    raw = os.getenv("DEV_TOOLKIT_PATCH_DIRS", "").strip()
    if not raw:
        return ()
    return tuple(Path(part.strip()) for part in raw.split(os.pathsep) if part.strip())


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
        return True
    if normalized in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value for {name}: {value!r}")
