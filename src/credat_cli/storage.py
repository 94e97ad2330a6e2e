"""Local storage hardening helpers."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any


PRIVATE_DIR_MODE = 0o700
PRIVATE_FILE_MODE = 0o600


def ensure_private_dir(path: Path) -> None:
    path.mkdir(mode=PRIVATE_DIR_MODE, parents=True, exist_ok=True)
    os.chmod(path, PRIVATE_DIR_MODE)


def ensure_private_file(path: Path) -> None:
    if not path.exists():
        path.touch(mode=PRIVATE_FILE_MODE)
    os.chmod(path, PRIVATE_FILE_MODE)


def write_private_json(path: Path, payload: Any) -> None:
    """Write JSON to a file that is never readable by group or other.

    New files are created with 0600 at open time; existing files are
    tightened before they are truncated and rewritten.
    """
    if path.exists():
        os.chmod(path, PRIVATE_FILE_MODE)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, PRIVATE_FILE_MODE)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)
        f.write("\n")
        f.flush()
        os.fsync(f.fileno())
    ensure_private_file(path)
