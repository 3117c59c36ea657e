from __future__ import annotations

import os
from pathlib import Path

from credverify.core.time import compact_utc_stamp


def ensure_directory(path: Path) -> None:
    path.mkdir(parents=True, exist_ok=True)


def write_text_atomic(path: Path, text: str) -> None:
    ensure_directory(path.parent)
    temp_path = path.parent / f".{path.name}.tmp"
    with temp_path.open("w", encoding="utf-8") as f:
        f.write(text)
        f.flush()
        os.fsync(f.fileno())
    os.replace(temp_path, path)


def quarantine_file(path: Path) -> Path:
    """Move an unreadable file aside so it can be inspected later.

    Never replaces an earlier quarantined copy: a numeric suffix is added when
    the stamped name is already taken.
    """
    base = f"{path.name}.corrupt-{compact_utc_stamp()}"
    target = path.with_name(base)
    attempt = 1
    while target.exists():
        target = path.with_name(f"{base}-{attempt}")
        attempt += 1
    os.replace(path, target)
    return target
