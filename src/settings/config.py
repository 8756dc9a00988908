from __future__ import annotations

import tomllib
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from contract.artifacts import DEFAULT_INDEX_DIR

CONFIG_FILENAME = "symindex.toml"


class SymIndexConfig(BaseModel):
    """Configuration for building, updating and querying a symbol index."""

    model_config = ConfigDict(extra="forbid")

    index_dir: str = Field(
        default=DEFAULT_INDEX_DIR,
        description="Directory (relative to the root) holding the index snapshot",
    )
    extension: str = Field(
        default=".rb",
        description="Extension of the source files to index",
    )
    ignore_prefixes: list[str] = Field(
        default_factory=lambda: ["vendor/", "tmp/"],
        description="Case-insensitive relative path prefixes that are never indexed",
    )
    exclude: list[str] = Field(
        default_factory=list,
        description="Glob patterns for files to exclude",
    )
    respect_gitignore: bool = Field(
        default=False,
        description="Skip files matched by the root .gitignore",
    )
    max_workers: int | None = Field(
        default=None,
        ge=1,
        description="Extraction worker threads (default: cpu count clamped to 2..8)",
    )
    queue_capacity: int = Field(
        default=100,
        ge=1,
        description="Pending extraction tasks before the submitter runs work itself",
    )
    task_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Seconds to wait for one file's extraction before skipping it",
    )
    editor_command: list[str] = Field(
        default_factory=lambda: ["zed", "{file}:{line}"],
        description="Editor argv; {file} and {line} are substituted",
    )
    watch_debounce: float = Field(
        default=0.5,
        ge=0,
        description="Seconds to coalesce file-system events into one batch",
    )

    @field_validator("extension")
    @classmethod
    def validate_extension(cls, v: str) -> str:
        if not v.startswith(".") or len(v) < 2:
            msg = f"extension must look like '.rb', got {v!r}"
            raise ValueError(msg)
        return v

    @field_validator("editor_command")
    @classmethod
    def validate_editor_command(cls, v: list[str]) -> list[str]:
        if not v:
            msg = "editor_command must contain at least the executable"
            raise ValueError(msg)
        return v


class ConfigError(Exception):
    """Raised when config file exists but cannot be parsed."""


def resolve_index_dir(root: Path, index_dir: str) -> Path:
    """Resolve a config-provided index_dir safely within the repo root.

    The index_dir must be a non-empty relative path that remains within the
    root after resolution. Absolute paths and paths that escape the root
    are rejected.
    """
    if not index_dir:
        msg = "index_dir must be a non-empty relative path"
        raise ConfigError(msg)

    if index_dir.startswith("~"):
        msg = "index_dir must be a relative path within the repo root"
        raise ConfigError(msg)

    index_path = Path(index_dir)
    if index_path.is_absolute():
        msg = "index_dir must be a relative path within the repo root"
        raise ConfigError(msg)

    try:
        resolved_root = root.resolve()
        resolved_index = (resolved_root / index_path).resolve()
    except OSError as exc:
        msg = f"Failed to resolve index_dir '{index_dir}': {exc}"
        raise ConfigError(msg) from exc

    try:
        resolved_index.relative_to(resolved_root)
    except ValueError as exc:
        msg = f"index_dir '{index_dir}' escapes the repository root"
        raise ConfigError(msg) from exc

    if resolved_index == resolved_root:
        msg = "index_dir must not be the repository root itself"
        raise ConfigError(msg)

    return resolved_index


def load_config(root: Path) -> SymIndexConfig:
    """Load configuration from symindex.toml if it exists."""
    config_path = Path(root) / CONFIG_FILENAME

    if not config_path.is_file():
        return SymIndexConfig()

    try:
        with config_path.open("rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        msg = f"Invalid TOML in {config_path}: {e}"
        raise ConfigError(msg) from e

    try:
        return SymIndexConfig.model_validate(data)
    except Exception as e:
        msg = f"Invalid config in {config_path}: {e}"
        raise ConfigError(msg) from e
