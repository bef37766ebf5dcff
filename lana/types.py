"""
Data types for board storage.

Board documents come from the UI layer as JSON. Cards and columns are
semi-structured: the fields storage relies on are typed, everything else is
kept in ``extra`` and written back verbatim.
"""

import re
import time
from dataclasses import dataclass, field
from typing import Any, Optional

from .errors import InvalidIdentifierError, SerializationError


INDEX_VERSION = 1
CHAT_VERSION = 1

MAX_BOARD_ID_LENGTH = 64
DEFAULT_BOARD_NAME = "Untitled"
DEFAULT_COLUMN_NAME = "List"

_BOARD_ID_RE = re.compile(r'[A-Za-z0-9_-]+')


def now_millis() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return time.time_ns() // 1_000_000


def is_valid_board_id(board_id: str) -> bool:
    """Check that a board id is safe to use as a directory name."""
    if not isinstance(board_id, str):
        return False
    if not board_id or len(board_id) > MAX_BOARD_ID_LENGTH:
        return False
    if "/" in board_id or "\\" in board_id or ".." in board_id:
        return False
    return _BOARD_ID_RE.fullmatch(board_id) is not None


def validate_board_id(board_id: str) -> None:
    """Raise InvalidIdentifierError unless the id is safe for paths."""
    if not is_valid_board_id(board_id):
        raise InvalidIdentifierError(board_id)


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------

def _require(data: dict, key: str, kind, what: str):
    if key not in data:
        raise SerializationError(f"{what}: missing field {key!r}")
    value = data[key]
    # bool is an int subclass; JSON booleans are never coordinates
    if isinstance(value, bool) and kind is not bool:
        raise SerializationError(f"{what}: field {key!r} has wrong type")
    if not isinstance(value, kind):
        raise SerializationError(f"{what}: field {key!r} has wrong type")
    return value


def _optional(data: dict, key: str, kind, what: str):
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, kind) or (isinstance(value, bool) and kind is not bool):
        raise SerializationError(f"{what}: field {key!r} has wrong type")
    return value


def _expect_dict(data: Any, what: str) -> dict:
    if not isinstance(data, dict):
        raise SerializationError(f"{what}: expected an object")
    return data


_NUMBER = (int, float)


# ---------------------------------------------------------------------------
# Board documents
# ---------------------------------------------------------------------------

_CARD_FIELDS = ("id", "type", "x", "y", "width", "height")


@dataclass
class Card:
    """A canvas card (text, image or link). Type-specific fields live in extra."""
    id: str
    type: str
    x: float
    y: float
    width: float
    height: float
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "type": self.type,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
        }
        d.update(self.extra)
        return d

    @classmethod
    def from_dict(cls, data: Any) -> "Card":
        data = _expect_dict(data, "card")
        return cls(
            id=_require(data, "id", str, "card"),
            type=_require(data, "type", str, "card"),
            x=_require(data, "x", _NUMBER, "card"),
            y=_require(data, "y", _NUMBER, "card"),
            width=_require(data, "width", _NUMBER, "card"),
            height=_require(data, "height", _NUMBER, "card"),
            extra={k: v for k, v in data.items() if k not in _CARD_FIELDS},
        )


_COLUMN_FIELDS = ("id", "name", "x", "y", "width", "gap", "cardIds")


@dataclass
class Column:
    """A column grouping cards on the canvas."""
    id: str
    x: float
    y: float
    width: float
    gap: float
    card_ids: list[str] = field(default_factory=list)
    name: str = DEFAULT_COLUMN_NAME
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "name": self.name,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "gap": self.gap,
            "cardIds": list(self.card_ids),
        }
        d.update(self.extra)
        return d

    @classmethod
    def from_dict(cls, data: Any) -> "Column":
        data = _expect_dict(data, "column")
        card_ids = _require(data, "cardIds", list, "column")
        if not all(isinstance(c, str) for c in card_ids):
            raise SerializationError("column: cardIds must be strings")
        return cls(
            id=_require(data, "id", str, "column"),
            name=_optional(data, "name", str, "column") or DEFAULT_COLUMN_NAME,
            x=_require(data, "x", _NUMBER, "column"),
            y=_require(data, "y", _NUMBER, "column"),
            width=_require(data, "width", _NUMBER, "column"),
            gap=_require(data, "gap", _NUMBER, "column"),
            card_ids=list(card_ids),
            extra={k: v for k, v in data.items() if k not in _COLUMN_FIELDS},
        )


@dataclass
class Board:
    """A board document as stored in board.json."""
    id: str
    name: str
    cards: list[Card] = field(default_factory=list)
    columns: list[Column] = field(default_factory=list)

    @classmethod
    def empty(cls, board_id: str, name: str) -> "Board":
        return cls(id=board_id, name=name)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "cards": [c.to_dict() for c in self.cards],
            "columns": [c.to_dict() for c in self.columns],
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Board":
        """Parse a board document. Raises SerializationError on bad shape."""
        data = _expect_dict(data, "board")
        cards = _require(data, "cards", list, "board")
        columns = data.get("columns")
        if columns is None:
            columns = []
        elif not isinstance(columns, list):
            raise SerializationError("board: field 'columns' has wrong type")
        return cls(
            id=_require(data, "id", str, "board"),
            name=_require(data, "name", str, "board"),
            cards=[Card.from_dict(c) for c in cards],
            columns=[Column.from_dict(c) for c in columns],
        )


# ---------------------------------------------------------------------------
# Index
# ---------------------------------------------------------------------------

@dataclass
class BoardMeta:
    """
    Index entry for one board.

    ``deleted_at`` set means the board is in the trash; for trashed boards
    ``updated_at`` carries the same value.
    """
    id: str
    name: str
    updated_at: int
    deleted_at: Optional[int] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def to_dict(self) -> dict:
        d = {"id": self.id, "name": self.name, "updatedAt": self.updated_at}
        if self.deleted_at is not None:
            d["deletedAt"] = self.deleted_at
        return d

    @classmethod
    def from_dict(cls, data: Any) -> "BoardMeta":
        data = _expect_dict(data, "board meta")
        return cls(
            id=_require(data, "id", str, "board meta"),
            name=_require(data, "name", str, "board meta"),
            updated_at=_require(data, "updatedAt", int, "board meta"),
            deleted_at=_optional(data, "deletedAt", int, "board meta"),
        )


@dataclass
class BoardIndex:
    """Cached listing of all boards (boards.json)."""
    version: int = INDEX_VERSION
    boards: list[BoardMeta] = field(default_factory=list)

    def find(self, board_id: str) -> Optional[BoardMeta]:
        for meta in self.boards:
            if meta.id == board_id:
                return meta
        return None

    def contains(self, board_id: str) -> bool:
        return self.find(board_id) is not None

    def active(self) -> list[BoardMeta]:
        return [b for b in self.boards if not b.is_deleted]

    def trashed(self) -> list[BoardMeta]:
        return [b for b in self.boards if b.is_deleted]

    def to_dict(self) -> dict:
        return {"version": self.version, "boards": [b.to_dict() for b in self.boards]}

    @classmethod
    def from_dict(cls, data: Any) -> "BoardIndex":
        data = _expect_dict(data, "index")
        boards = _require(data, "boards", list, "index")
        return cls(
            version=_require(data, "version", int, "index"),
            boards=[BoardMeta.from_dict(b) for b in boards],
        )


# ---------------------------------------------------------------------------
# Chat transcript
# ---------------------------------------------------------------------------

@dataclass
class ChatEntry:
    id: str
    role: str
    content: str
    created_at: int
    session_id: Optional[str] = None

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "createdAt": self.created_at,
        }
        if self.session_id is not None:
            d["sessionId"] = self.session_id
        return d

    @classmethod
    def from_dict(cls, data: Any) -> "ChatEntry":
        data = _expect_dict(data, "chat entry")
        return cls(
            id=_require(data, "id", str, "chat entry"),
            role=_require(data, "role", str, "chat entry"),
            content=_require(data, "content", str, "chat entry"),
            created_at=_require(data, "createdAt", int, "chat entry"),
            session_id=_optional(data, "sessionId", str, "chat entry"),
        )


@dataclass
class ChatStore:
    """Per-board chat transcript (chat.json)."""
    version: int = CHAT_VERSION
    messages: list[ChatEntry] = field(default_factory=list)
    summary: Optional[str] = None
    summary_up_to: int = 0
    last_session_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "messages": [m.to_dict() for m in self.messages],
            "summary": self.summary,
            "summaryUpTo": self.summary_up_to,
            "lastSessionId": self.last_session_id,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "ChatStore":
        data = _expect_dict(data, "chat")
        messages = _require(data, "messages", list, "chat")
        return cls(
            version=_require(data, "version", int, "chat"),
            messages=[ChatEntry.from_dict(m) for m in messages],
            summary=_optional(data, "summary", str, "chat"),
            summary_up_to=_optional(data, "summaryUpTo", int, "chat") or 0,
            last_session_id=_optional(data, "lastSessionId", str, "chat"),
        )


# ---------------------------------------------------------------------------
# Network results
# ---------------------------------------------------------------------------

@dataclass
class LinkMetadata:
    """Preview data for a pasted link. ``image`` is relative to the board."""
    url: str
    title: str
    image: Optional[str] = None
    site_name: Optional[str] = None

    def to_dict(self) -> dict:
        d = {"url": self.url, "title": self.title}
        if self.image is not None:
            d["image"] = self.image
        if self.site_name is not None:
            d["siteName"] = self.site_name
        return d


@dataclass
class ChatMessage:
    role: str
    content: str

    def to_dict(self) -> dict:
        return {"role": self.role, "content": self.content}

    @classmethod
    def from_dict(cls, data: Any) -> "ChatMessage":
        data = _expect_dict(data, "chat message")
        return cls(
            role=_require(data, "role", str, "chat message"),
            content=_require(data, "content", str, "chat message"),
        )
