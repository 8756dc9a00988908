"""Shared utilities for symindex."""

from __future__ import annotations

import os
from pathlib import Path


def to_relative_posix(file_path: str | Path, root: Path) -> str | None:
    """Convert a file path to a POSIX path relative to ``root``.

    Args:
        file_path: Absolute path, or a path relative to ``root``
        root: Resolved root directory

    Returns:
        Relative POSIX path, or None when the path lies outside ``root``.

    Examples:
        >>> to_relative_posix("app/models/user.rb", Path("/srv/app"))
        'app/models/user.rb'
        >>> to_relative_posix("/srv/app/lib/a.rb", Path("/srv/app"))
        'lib/a.rb'
        >>> to_relative_posix("/elsewhere/a.rb", Path("/srv/app")) is None
        True
    """
    path = Path(os.fsdecode(file_path))
    if not path.is_absolute():
        path = root / path

    try:
        relative = Path(os.path.normpath(path)).relative_to(root)
    except ValueError:
        return None

    rel_str = relative.as_posix()
    if rel_str in ("", ".") or rel_str.startswith("../"):
        return None
    return rel_str
