"""Write-then-rename helpers so readers never observe partial files."""

from __future__ import annotations

import os
from pathlib import Path


def temp_path_for(path: Path) -> Path:
    """Hidden sibling used while ``path`` is being written."""

    return path.with_name(f".{path.name}.tmp")


def atomic_write_text(path: Path, text: str) -> Path:
    """Write ``text`` to ``path`` through a hidden temp file and ``os.replace``.

    The temp file is removed when the write fails; the original ``OSError``
    propagates to the caller.
    """

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = temp_path_for(path)
    try:
        with tmp.open("w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp, path)
    except OSError:
        tmp.unlink(missing_ok=True)
        raise
    return path


__all__ = ["atomic_write_text", "temp_path_for"]
