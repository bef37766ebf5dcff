"""
Crash-safe file writes.

Data goes to a sibling ``<name>.tmp`` first and is renamed over the
destination, so readers see either the old file or the new one. A crash
mid-write leaves at most a stray ``.tmp`` behind.
"""

import json
import os
from pathlib import Path
from typing import Any

from .errors import SerializationError, StorageIOError


def temp_path_for(path: Path) -> Path:
    """Sibling temp file used while writing ``path``."""
    return path.with_name(path.name + ".tmp")


def write_atomic(path: Path, data: bytes) -> None:
    """Write bytes to ``path`` atomically.

    Raises:
        StorageIOError: If writing the temp file or the rename fails
    """
    path = Path(path)
    tmp = temp_path_for(path)
    try:
        with open(tmp, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
    except OSError as e:
        raise StorageIOError(f"write temp {path.name}", e) from e

    try:
        # os.replace overwrites an existing destination in one step,
        # including on Windows
        os.replace(tmp, path)
    except OSError as e:
        raise StorageIOError(f"rename {path.name}", e) from e


def dumps_json(obj: Any) -> bytes:
    """Serialize to pretty-printed UTF-8 JSON."""
    try:
        return json.dumps(obj, indent=2, ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise SerializationError(f"serialize failed: {e}") from e


def write_json_atomic(path: Path, obj: Any) -> None:
    """Serialize ``obj`` as JSON and write it atomically."""
    write_atomic(path, dumps_json(obj))
