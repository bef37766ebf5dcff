"""
Board index: a rebuildable cache of board metadata.

The filesystem is the source of truth for which boards exist: one
directory per board id under the root, or under ``trash/`` once deleted.
``boards.json`` caches names and timestamps so listing boards doesn't need
to open every document. Any drift between the two is repaired on read.

Two ways to bring the index in line with the disk:
- rebuild(): full scan, discards whatever the index said
- reconcile(): diff an existing index against a scan, write only on change

Both converge on the same result for the same filesystem state.
"""

import json
import logging
import os
from dataclasses import replace
from pathlib import Path
from typing import Callable, Iterator, NamedTuple, Optional

from .atomic import write_json_atomic
from .errors import InvalidIdentifierError, StorageIOError
from .types import (
    INDEX_VERSION,
    Board,
    BoardIndex,
    BoardMeta,
    is_valid_board_id,
    now_millis,
    validate_board_id,
)

logger = logging.getLogger(__name__)

INDEX_FILENAME = "boards.json"
BOARD_FILENAME = "board.json"
TRASH_DIRNAME = "trash"


class ScannedBoard(NamedTuple):
    """A board directory observed on disk."""
    id: str
    name: str
    modified: int


def mtime_millis(path: Path) -> Optional[int]:
    """File modification time truncated to milliseconds, or None."""
    try:
        return path.stat().st_mtime_ns // 1_000_000
    except OSError:
        return None


def set_mtime_millis(path: Path, millis: int) -> None:
    """Set a file's access and modification time to an exact millisecond."""
    ns = millis * 1_000_000
    try:
        os.utime(path, ns=(ns, ns))
    except OSError as e:
        raise StorageIOError(f"set time on {path.name}", e) from e


def read_board_name(board_file: Path) -> Optional[str]:
    """Name embedded in a board document, or None if unreadable."""
    try:
        data = json.loads(board_file.read_bytes())
        return Board.from_dict(data).name
    except (OSError, ValueError):
        return None


class BoardIndexStore:
    """
    Reads, repairs and writes ``boards.json`` under a boards root.

    Holds no index state of its own: every operation takes and returns an
    explicit BoardIndex value.
    """

    def __init__(self, root: Path, clock: Optional[Callable[[], int]] = None):
        """
        Args:
            root: Directory holding board directories and boards.json
            clock: Millisecond clock, defaults to wall time
        """
        self.root = Path(root)
        self.index_path = self.root / INDEX_FILENAME
        self.trash_dir = self.root / TRASH_DIRNAME
        self._clock = clock or now_millis

    # -------------------------------------------------------------------------
    # Paths
    # -------------------------------------------------------------------------

    def board_dir(self, board_id: str) -> Path:
        """Active directory for a board. Validates the id."""
        validate_board_id(board_id)
        if board_id == TRASH_DIRNAME:
            raise InvalidIdentifierError(board_id)
        return self.root / board_id

    def trashed_board_dir(self, board_id: str) -> Path:
        """Trash directory for a board. Validates the id."""
        validate_board_id(board_id)
        return self.trash_dir / board_id

    def ensure_root(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageIOError("create boards dir", e) from e

    # -------------------------------------------------------------------------
    # Read / write
    # -------------------------------------------------------------------------

    def read(self) -> BoardIndex:
        """
        Load the index and bring it in line with the filesystem.

        A missing, unparsable or empty index is rebuilt from scratch;
        otherwise the stored index is reconciled.
        """
        self.ensure_root()
        index = self._load_file()
        if index is None or not index.boards:
            return self.rebuild()
        return self.reconcile(index)

    def _load_file(self) -> Optional[BoardIndex]:
        if not self.index_path.exists():
            return None
        try:
            raw = self.index_path.read_bytes()
        except OSError as e:
            raise StorageIOError("read index", e) from e
        try:
            return BoardIndex.from_dict(json.loads(raw))
        except ValueError as e:
            logger.warning("Board index is unreadable, rebuilding: %s", e)
            return None

    def write(self, index: BoardIndex) -> None:
        """Persist the index atomically."""
        write_json_atomic(self.index_path, index.to_dict())

    # -------------------------------------------------------------------------
    # Rebuild / reconcile
    # -------------------------------------------------------------------------

    def _scan(self, directory: Path) -> Iterator[ScannedBoard]:
        """Yield board directories in ``directory`` that hold a document."""
        if not directory.is_dir():
            return
        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError as e:
            raise StorageIOError(f"read {directory.name} dir", e) from e
        for entry in entries:
            if not entry.is_dir(follow_symlinks=False):
                continue
            board_id = entry.name
            if not is_valid_board_id(board_id):
                continue
            if directory == self.root and board_id == TRASH_DIRNAME:
                continue
            board_file = Path(entry.path) / BOARD_FILENAME
            if not board_file.is_file():
                continue
            name = read_board_name(board_file) or board_id
            modified = mtime_millis(board_file)
            if modified is None:
                modified = self._clock()
            yield ScannedBoard(board_id, name, modified)

    def rebuild(self) -> BoardIndex:
        """Reconstruct the index from a full scan and write it."""
        self.ensure_root()
        boards = []
        active_ids = set()
        for found in self._scan(self.root):
            active_ids.add(found.id)
            boards.append(BoardMeta(found.id, found.name, found.modified))
        for found in self._scan(self.trash_dir):
            if found.id in active_ids:
                continue
            boards.append(BoardMeta(found.id, found.name, found.modified, found.modified))
        index = BoardIndex(version=INDEX_VERSION, boards=boards)
        self.write(index)
        logger.info("Rebuilt board index: %d boards", len(boards))
        return index

    def reconcile(self, index: BoardIndex) -> BoardIndex:
        """
        Diff ``index`` against the filesystem and return the repaired copy.

        Observed boards are added or updated (name, timestamp, location);
        entries whose claimed location was not observed are pruned. An id
        present in both areas counts as active. The input is not modified.
        Writes only when something changed.
        """
        changed = False
        boards: list[BoardMeta] = []
        by_id: dict[str, BoardMeta] = {}
        for meta in index.boards:
            if meta.id in by_id:
                changed = True
                continue
            copy = replace(meta)
            boards.append(copy)
            by_id[copy.id] = copy

        active_ids = set()
        for found in self._scan(self.root):
            active_ids.add(found.id)
            meta = by_id.get(found.id)
            if meta is None:
                meta = BoardMeta(found.id, found.name, found.modified)
                boards.append(meta)
                by_id[meta.id] = meta
                changed = True
            elif (meta.name != found.name
                  or meta.updated_at != found.modified
                  or meta.deleted_at is not None):
                meta.name = found.name
                meta.updated_at = found.modified
                meta.deleted_at = None
                changed = True

        trash_ids = set()
        for found in self._scan(self.trash_dir):
            if found.id in active_ids:
                continue
            trash_ids.add(found.id)
            meta = by_id.get(found.id)
            if meta is None:
                meta = BoardMeta(found.id, found.name, found.modified, found.modified)
                boards.append(meta)
                by_id[meta.id] = meta
                changed = True
            elif (meta.name != found.name
                  or meta.updated_at != found.modified
                  or meta.deleted_at != found.modified):
                meta.name = found.name
                meta.updated_at = found.modified
                meta.deleted_at = found.modified
                changed = True

        kept = [
            m for m in boards
            if (m.id in trash_ids if m.is_deleted else m.id in active_ids)
        ]
        if len(kept) != len(boards):
            changed = True

        result = BoardIndex(version=index.version, boards=kept)
        if changed:
            self.write(result)
            logger.info("Board index reconciled with filesystem: %d boards", len(kept))
        return result

    # -------------------------------------------------------------------------
    # Entry updates
    # -------------------------------------------------------------------------

    def upsert(
        self,
        index: BoardIndex,
        board_id: str,
        name: str,
        updated_at: Optional[int] = None,
    ) -> BoardIndex:
        """
        Mark a board active with the given name and timestamp.

        Appends an entry if the id is absent. Does not write.
        """
        when = self._clock() if updated_at is None else updated_at
        meta = index.find(board_id)
        if meta is None:
            index.boards.append(BoardMeta(board_id, name, when))
        else:
            meta.name = name
            meta.updated_at = when
            meta.deleted_at = None
        return index

    def mark_deleted(self, index: BoardIndex, board_id: str, when: int) -> BoardMeta:
        """Flag an entry as trashed at ``when``. Does not write."""
        meta = index.find(board_id)
        if meta is None:
            raise KeyError(board_id)
        meta.deleted_at = when
        meta.updated_at = when
        return meta

    def remove_deleted(self, index: BoardIndex) -> int:
        """Drop all trashed entries. Does not write.

        Returns:
            Number of entries removed
        """
        before = len(index.boards)
        index.boards = index.active()
        return before - len(index.boards)

    def generate_id(self, index: BoardIndex) -> str:
        """
        New board id of the form ``board-<millis>``.

        Appends ``-1``, ``-2``, ... while the candidate is taken in the index
        or on disk. The disk check matters because the index may be stale.
        """
        base = f"board-{self._clock()}"
        candidate = base
        suffix = 0
        while self._is_taken(index, candidate):
            suffix += 1
            candidate = f"{base}-{suffix}"
        return candidate

    def _is_taken(self, index: BoardIndex, board_id: str) -> bool:
        return (
            index.contains(board_id)
            or (self.root / board_id).exists()
            or (self.trash_dir / board_id).exists()
        )
