"""Small JSON file helpers shared by the on-disk stores."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def atomic_save(path: Path, data: bytes) -> None:
    """Write *data* to *path* atomically.

    Steps:
    1. Write to .tmp + fsync
    2. os.replace .tmp → target (atomic on POSIX)
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with open(tmp, "wb") as f:
        f.write(data)
        f.flush()
        os.fsync(f.fileno())
    os.replace(tmp, path)


def save_json(path: Path, obj: Any) -> None:
    atomic_save(path, (json.dumps(obj, ensure_ascii=False, indent=2) + "\n").encode("utf-8"))


def load_json(path: Path, default: Any) -> Any:
    """Read JSON from *path*; *default* when missing or corrupt."""
    if not path.exists():
        return default
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        logger.error("Failed to read %s: %s", path, exc)
        return default
