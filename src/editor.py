"""Jump to a search result in an external editor."""

from __future__ import annotations

import logging
import subprocess
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_EDITOR_COMMAND = ("zed", "{file}:{line}")


def build_editor_command(
    file: str | Path, line: int, command: Sequence[str] = DEFAULT_EDITOR_COMMAND
) -> list[str]:
    """Substitute ``{file}`` and ``{line}`` into each argument of ``command``.

    Examples:
        >>> build_editor_command("app/models/user.rb", 3)
        ['zed', 'app/models/user.rb:3']
        >>> build_editor_command("a.rb", 7, ["code", "-g", "{file}:{line}"])
        ['code', '-g', 'a.rb:7']
    """
    return [
        part.replace("{file}", str(file)).replace("{line}", str(line))
        for part in command
    ]


def open_in_editor(
    file: str | Path,
    line: int,
    command: Sequence[str] = DEFAULT_EDITOR_COMMAND,
    *,
    cwd: Path | None = None,
) -> bool:
    """Launch the editor without waiting for it. Returns False if it cannot start."""
    argv = build_editor_command(file, line, command)
    try:
        subprocess.Popen(argv, cwd=cwd)
    except OSError as exc:
        logger.error("Cannot launch editor %r: %s", argv[0], exc)
        return False
    return True


__all__ = ["DEFAULT_EDITOR_COMMAND", "build_editor_command", "open_in_editor"]
