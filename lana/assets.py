"""
Image assets stored alongside a board document.

Paths handed back to callers are relative to the board directory
(``assets/<file>``) so documents stay portable between machines.
"""

import logging
from typing import Callable, Optional

from .atomic import write_atomic
from .board_store import ASSETS_DIRNAME, BoardStore
from .errors import SerializationError
from .types import now_millis

logger = logging.getLogger(__name__)


def sanitize_filename(filename: str) -> str:
    """Neutralize path separators and parent references in a filename."""
    return filename.replace("\\", "_").replace("/", "_").replace("..", "_")


class AssetStore:
    """Writes files into a board's ``assets/`` directory."""

    def __init__(self, boards: BoardStore, clock: Optional[Callable[[], int]] = None):
        self._boards = boards
        self._clock = clock or now_millis

    def save(self, board_id: str, data: bytes, extension: str) -> str:
        """Store fetched bytes under a timestamped name (``link-<millis><ext>``)."""
        if extension and not extension.startswith("."):
            extension = f".{extension}"
        return self.save_named(board_id, f"link-{self._clock()}{extension}", data)

    def save_named(self, board_id: str, filename: str, data: bytes) -> str:
        """
        Store bytes under a caller-supplied filename.

        Returns:
            Path relative to the board document, e.g. ``assets/photo.png``
        """
        safe_name = sanitize_filename(filename)
        if safe_name in ("", "."):
            raise SerializationError(f"invalid asset filename: {filename!r}")
        assets_dir = self._boards.assets_dir(board_id)
        write_atomic(assets_dir / safe_name, data)
        logger.debug("Saved asset %s for board %s (%d bytes)", safe_name, board_id, len(data))
        return f"{ASSETS_DIRNAME}/{safe_name}"
