"""
Board documents on disk.

Each board owns one directory::

    <root>/<board_id>/board.json
    <root>/<board_id>/chat.json      (optional)
    <root>/<board_id>/assets/

Deleting a board moves the whole directory to ``<root>/trash/<board_id>``;
restoring moves it back. Every mutation goes through the atomic writer and
then updates the index.

Whenever a timestamp is recorded in the index, the document's mtime is set
to the same millisecond so the next reconcile sees no drift.

Not safe for concurrent writers in separate processes: two writers to the
same board race and the last rename wins.
"""

import json
import logging
import shutil
from dataclasses import replace
from pathlib import Path
from typing import Callable, NamedTuple, Optional

from .atomic import write_json_atomic
from .board_index import (
    BOARD_FILENAME,
    BoardIndexStore,
    read_board_name,
    set_mtime_millis,
)
from .errors import (
    AlreadyDeletedError,
    AlreadyExistsError,
    IdMismatchError,
    NotFoundError,
    SerializationError,
    StorageIOError,
)
from .types import (
    DEFAULT_BOARD_NAME,
    Board,
    BoardIndex,
    BoardMeta,
    ChatStore,
    now_millis,
)

logger = logging.getLogger(__name__)

CHAT_FILENAME = "chat.json"
ASSETS_DIRNAME = "assets"


class BoardPaths(NamedTuple):
    dir: Path
    file: Path
    chat: Path
    assets_dir: Path


class BoardStore:
    """Create, load, save, trash and restore board documents."""

    def __init__(self, index_store: BoardIndexStore, clock: Optional[Callable[[], int]] = None):
        self.index = index_store
        self._clock = clock or now_millis

    @property
    def root(self) -> Path:
        return self.index.root

    def paths(self, board_id: str) -> BoardPaths:
        """Paths for an active board. Validates the id."""
        board_dir = self.index.board_dir(board_id)
        return BoardPaths(
            dir=board_dir,
            file=board_dir / BOARD_FILENAME,
            chat=board_dir / CHAT_FILENAME,
            assets_dir=board_dir / ASSETS_DIRNAME,
        )

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _write_board(self, paths: BoardPaths, board: Board) -> None:
        write_json_atomic(paths.file, board.to_dict())

    def _stamp(self, board_file: Path) -> int:
        """Set the document mtime to now and return that time."""
        now = self._clock()
        set_mtime_millis(board_file, now)
        return now

    def _record(self, index: BoardIndex, board_id: str, name: str, paths: BoardPaths) -> BoardMeta:
        """Stamp the document and write a matching active index entry."""
        updated = self._stamp(paths.file)
        self.index.upsert(index, board_id, name, updated)
        self.index.write(index)
        return replace(index.find(board_id))

    def _open(self, board_id: str) -> tuple[BoardIndex, str, BoardPaths]:
        """
        Validate an id and make sure the board exists in the active area.

        Creates an empty board (and its index entry) for unknown ids, as
        the UI may reference a board before its first save. Trashed boards
        are refused so an id never lives in both areas.
        """
        paths = self.paths(board_id)
        index = self.index.read()
        meta = index.find(board_id)
        if meta is not None and meta.is_deleted:
            raise AlreadyDeletedError(f"board is deleted: {board_id}")
        name = meta.name if meta is not None else DEFAULT_BOARD_NAME
        self.ensure(board_id, name)
        if meta is None:
            self._record(index, board_id, name, paths)
        return index, name, paths

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def ensure(self, board_id: str, name: str) -> bool:
        """
        Create the board directory, its assets directory and an empty
        document if missing.

        Returns:
            True if a new document was written
        """
        paths = self.paths(board_id)
        try:
            paths.dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError("create board dir", e) from e
        try:
            paths.assets_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError("create assets dir", e) from e
        if paths.file.exists():
            return False
        self._write_board(paths, Board.empty(board_id, name))
        return True

    def create(self, name: str) -> BoardMeta:
        """Create a new empty board with a generated id."""
        index = self.index.read()
        board_id = self.index.generate_id(index)
        safe_name = name.strip() or DEFAULT_BOARD_NAME
        paths = self.paths(board_id)
        self.ensure(board_id, safe_name)
        meta = self._record(index, board_id, safe_name, paths)
        logger.info("Created board %s (%s)", board_id, safe_name)
        return meta

    def load(self, board_id: str) -> Board:
        """
        Load a board document.

        An embedded id that differs from ``board_id`` is corrected on disk.
        An unparsable document is replaced by a fresh empty one.
        """
        index, name, paths = self._open(board_id)
        try:
            raw = paths.file.read_bytes()
        except OSError as e:
            raise StorageIOError("read board", e) from e

        try:
            board = Board.from_dict(json.loads(raw))
        except ValueError as e:
            logger.warning("Board %s is unreadable, starting over: %s", board_id, e)
            board = Board.empty(board_id, name)
            self._write_board(paths, board)
            self._record(index, board_id, board.name, paths)
            return board

        if board.id != board_id:
            logger.info("Correcting embedded id %r of board %s", board.id, board_id)
            board.id = board_id
            self._write_board(paths, board)
            self._record(index, board_id, board.name, paths)
        return board

    def save(self, board_id: str, board: Board) -> BoardMeta:
        """
        Write a board document and update its index entry.

        Raises:
            IdMismatchError: If board.id differs from board_id
            AlreadyDeletedError: If the board is in the trash
        """
        paths = self.paths(board_id)
        if board.id != board_id:
            raise IdMismatchError(board.id, board_id)
        index = self.index.read()
        meta = index.find(board_id)
        if meta is not None and meta.is_deleted:
            raise AlreadyDeletedError(f"board is deleted: {board_id}")
        self.ensure(board_id, board.name)
        self._write_board(paths, board)
        return self._record(index, board_id, board.name, paths)

    def trash(self, board_id: str) -> None:
        """
        Move an active board into the trash.

        Raises:
            NotFoundError: If the id is not a known active board
        """
        paths = self.paths(board_id)
        index = self.index.read()
        meta = index.find(board_id)
        if meta is None or meta.is_deleted:
            raise NotFoundError(f"board not found: {board_id}")

        now = self._clock()
        self.index.mark_deleted(index, board_id, now)
        self.index.write(index)

        if not paths.dir.exists():
            return
        try:
            self.index.trash_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError("create trash dir", e) from e
        dest = self.index.trashed_board_dir(board_id)
        if dest.exists():
            try:
                shutil.rmtree(dest)
            except OSError as e:
                raise StorageIOError("clear trash entry", e) from e
        try:
            paths.dir.rename(dest)
        except OSError as e:
            raise StorageIOError("move board to trash", e) from e

        trashed_file = dest / BOARD_FILENAME
        if trashed_file.exists():
            set_mtime_millis(trashed_file, now)
        logger.info("Moved board %s to trash", board_id)

    def restore(self, board_id: str) -> BoardMeta:
        """
        Move a board back from the trash.

        Raises:
            NotFoundError: If the board is not in the trash
            AlreadyExistsError: If an active board with this id exists
        """
        src = self.index.trashed_board_dir(board_id)
        paths = self.paths(board_id)
        if not src.exists():
            raise NotFoundError(f"board not found in trash: {board_id}")
        if paths.dir.exists():
            raise AlreadyExistsError(f"board already exists: {board_id}")
        try:
            src.rename(paths.dir)
        except OSError as e:
            raise StorageIOError("restore board", e) from e

        name = read_board_name(paths.file) or board_id
        self.ensure(board_id, name)
        index = self.index.read()
        meta = self._record(index, board_id, name, paths)
        logger.info("Restored board %s from trash", board_id)
        return meta

    def empty_trash(self) -> None:
        """Permanently delete every trashed board."""
        index = self.index.read()
        purged = self.index.remove_deleted(index)
        self.index.write(index)

        if self.index.trash_dir.exists():
            try:
                shutil.rmtree(self.index.trash_dir)
            except OSError as e:
                raise StorageIOError("empty trash", e) from e
        logger.info("Emptied trash: %d boards", purged)

    # -------------------------------------------------------------------------
    # Per-board files
    # -------------------------------------------------------------------------

    def assets_dir(self, board_id: str) -> Path:
        """Absolute assets directory of a board, created if needed."""
        _, _, paths = self._open(board_id)
        return paths.assets_dir

    def load_chat(self, board_id: str) -> ChatStore:
        """Load a board's chat transcript, or an empty one if absent."""
        _, _, paths = self._open(board_id)
        if not paths.chat.exists():
            return ChatStore()
        try:
            raw = paths.chat.read_bytes()
        except OSError as e:
            raise StorageIOError("read chat", e) from e
        try:
            return ChatStore.from_dict(json.loads(raw))
        except ValueError as e:
            raise SerializationError(f"parse chat failed: {e}") from e

    def save_chat(self, board_id: str, chat: ChatStore) -> None:
        """Write a board's chat transcript atomically."""
        _, _, paths = self._open(board_id)
        write_json_atomic(paths.chat, chat.to_dict())
