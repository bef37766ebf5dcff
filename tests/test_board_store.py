"""
Tests for the board lifecycle: create, load, save, trash, restore, empty trash.
"""

import json
from unittest.mock import patch

import pytest

from conftest import board_dict, card_dict
from lana.api import Boards
from lana.config import StoreConfig
from lana.errors import (
    AlreadyDeletedError,
    AlreadyExistsError,
    IdMismatchError,
    InvalidIdentifierError,
    NotFoundError,
    SerializationError,
)
from lana.types import Board, BoardMeta, ChatStore


def read_json(path):
    return json.loads(path.read_text(encoding="utf-8"))


def assert_locations_consistent(boards: Boards) -> None:
    """Each indexed board lives in exactly the area its entry claims."""
    root = boards.root
    index = read_json(root / "boards.json")
    for entry in index["boards"]:
        active = (root / entry["id"] / "board.json").exists()
        trashed = (root / "trash" / entry["id"] / "board.json").exists()
        if "deletedAt" in entry:
            assert trashed and not active, entry
        else:
            assert active and not trashed, entry


# ---------------------------------------------------------------------------
# Full lifecycle
# ---------------------------------------------------------------------------


def test_lifecycle_scenario(boards: Boards) -> None:
    """Create, save, delete, restore, delete again, empty the trash."""
    meta = boards.create_board("Trip")
    assert meta == BoardMeta("board-1000", "Trip", 1000)

    board = boards.load_board("board-1000")
    board.cards = Board.from_dict(board_dict("board-1000", cards=[card_dict()])).cards
    boards.save_board("board-1000", board)

    boards.delete_board("board-1000")
    assert [b.id for b in boards.list_trashed_boards()] == ["board-1000"]
    assert boards.list_boards() == []
    assert_locations_consistent(boards)

    restored = boards.restore_board("board-1000")
    assert restored.name == "Trip"
    assert [b.id for b in boards.list_boards()] == ["board-1000"]
    assert boards.load_board("board-1000").to_dict()["cards"] == [card_dict()]
    assert_locations_consistent(boards)

    boards.delete_board("board-1000")
    boards.empty_trash()
    assert boards.list_trashed_boards() == []
    assert boards.list_boards() == []
    assert not (boards.root / "trash").exists()
    assert not (boards.root / "board-1000").exists()


def test_reopen_sees_same_boards(boards: Boards, root, clock) -> None:
    boards.create_board("One")
    clock.advance()
    boards.create_board("Two")
    reopened = Boards(root, config=StoreConfig(path=root), clock=clock)
    assert [b.name for b in reopened.list_boards()] == ["One", "Two"]


def test_listing_after_mutations_does_not_rewrite_index(boards: Boards, clock) -> None:
    """Recorded timestamps match document mtimes, so reconcile finds no drift."""
    boards.create_board("A")
    clock.advance(10)
    boards.create_board("B")
    clock.advance(10)
    boards.save_board("board-1000", board_dict("board-1000", "A renamed"))
    clock.advance(10)
    boards.delete_board("board-1010")
    with patch.object(boards.index, "write") as write:
        boards.list_boards()
        boards.list_trashed_boards()
    write.assert_not_called()


# ---------------------------------------------------------------------------
# Create / load / save
# ---------------------------------------------------------------------------


class TestCreate:

    def test_writes_empty_document(self, boards: Boards, root) -> None:
        boards.create_board("Trip")
        assert read_json(root / "board-1000" / "board.json") == {
            "id": "board-1000", "name": "Trip", "cards": [], "columns": [],
        }
        assert (root / "board-1000" / "assets").is_dir()

    def test_blank_name_becomes_untitled(self, boards: Boards) -> None:
        assert boards.create_board("   ").name == "Untitled"

    def test_same_millisecond_gets_suffix(self, boards: Boards) -> None:
        assert boards.create_board("A").id == "board-1000"
        assert boards.create_board("B").id == "board-1000-1"

    def test_index_entry_written(self, boards: Boards, root) -> None:
        boards.create_board("Trip")
        assert read_json(root / "boards.json") == {
            "version": 1,
            "boards": [{"id": "board-1000", "name": "Trip", "updatedAt": 1000}],
        }


class TestLoad:

    def test_unknown_id_creates_untitled_board(self, boards: Boards, root) -> None:
        board = boards.load_board("fresh")
        assert board.to_dict() == {"id": "fresh", "name": "Untitled", "cards": [], "columns": []}
        assert [b.id for b in boards.list_boards()] == ["fresh"]
        assert (root / "fresh" / "assets").is_dir()

    def test_corrupt_document_is_replaced(self, boards: Boards, root) -> None:
        boards.create_board("Trip")
        (root / "board-1000" / "board.json").write_text("{ truncated")
        board = boards.load_board("board-1000")
        assert board.id == "board-1000"
        assert board.cards == []
        # Unreadable documents are indexed under their id
        assert board.name == "board-1000"
        assert read_json(root / "board-1000" / "board.json") == board.to_dict()
        assert [b.name for b in boards.list_boards()] == ["board-1000"]

    def test_embedded_id_is_corrected(self, boards: Boards, root) -> None:
        boards.create_board("Trip")
        (root / "board-1000" / "board.json").write_text(
            json.dumps(board_dict("something-else", "Trip", cards=[card_dict()]))
        )
        board = boards.load_board("board-1000")
        assert board.id == "board-1000"
        assert len(board.cards) == 1
        assert read_json(root / "board-1000" / "board.json")["id"] == "board-1000"

    def test_trashed_board_is_refused(self, boards: Boards) -> None:
        boards.create_board("Trip")
        boards.delete_board("board-1000")
        with pytest.raises(AlreadyDeletedError):
            boards.load_board("board-1000")

    @pytest.mark.parametrize("board_id", ["../x", "", "a/b", "trash"])
    def test_invalid_id(self, boards: Boards, board_id) -> None:
        with pytest.raises(InvalidIdentifierError):
            boards.load_board(board_id)


class TestSave:

    def test_round_trip_preserves_unknown_fields(self, boards: Boards) -> None:
        data = board_dict(
            "board-1000",
            cards=[card_dict(imagePath="assets/x.png", zIndex=3)],
            columns=[{"id": "col", "name": "Todo", "x": 0, "y": 0,
                      "width": 300, "gap": 8, "cardIds": ["card-1"], "collapsed": True}],
        )
        boards.save_board("board-1000", data)
        assert boards.load_board("board-1000").to_dict() == data

    def test_updates_index_name_and_time(self, boards: Boards, clock) -> None:
        boards.create_board("Trip")
        clock.advance(500)
        meta = boards.save_board("board-1000", board_dict("board-1000", "Holiday"))
        assert meta == BoardMeta("board-1000", "Holiday", 1500)
        assert boards.list_boards() == [meta]

    def test_unknown_id_is_created(self, boards: Boards) -> None:
        boards.save_board("new-board", board_dict("new-board", "New"))
        assert [b.name for b in boards.list_boards()] == ["New"]

    def test_id_mismatch(self, boards: Boards, root) -> None:
        with pytest.raises(IdMismatchError):
            boards.save_board("board-a", board_dict("board-b"))
        assert not (root / "board-a").exists()

    def test_trashed_board_is_refused(self, boards: Boards) -> None:
        boards.create_board("Trip")
        boards.delete_board("board-1000")
        with pytest.raises(AlreadyDeletedError):
            boards.save_board("board-1000", board_dict("board-1000"))

    def test_malformed_payload(self, boards: Boards) -> None:
        with pytest.raises(SerializationError):
            boards.save_board("board-a", {"id": "board-a", "name": "x"})

    def test_invalid_id(self, boards: Boards) -> None:
        with pytest.raises(InvalidIdentifierError):
            boards.save_board("../up", board_dict("../up"))


# ---------------------------------------------------------------------------
# Trash / restore
# ---------------------------------------------------------------------------


class TestTrash:

    def test_moves_directory(self, boards: Boards, root, clock) -> None:
        boards.create_board("Trip")
        clock.advance(99)
        boards.delete_board("board-1000")
        assert not (root / "board-1000").exists()
        assert (root / "trash" / "board-1000" / "board.json").exists()
        assert boards.list_trashed_boards() == [BoardMeta("board-1000", "Trip", 1099, 1099)]

    def test_unknown_board(self, boards: Boards) -> None:
        with pytest.raises(NotFoundError):
            boards.delete_board("nope")

    def test_already_trashed(self, boards: Boards) -> None:
        boards.create_board("Trip")
        boards.delete_board("board-1000")
        with pytest.raises(NotFoundError):
            boards.delete_board("board-1000")

    def test_trash_sorted_most_recent_first(self, boards: Boards, clock) -> None:
        boards.create_board("A")
        clock.advance()
        boards.create_board("B")
        boards.delete_board("board-1001")
        clock.advance()
        boards.delete_board("board-1000")
        assert [b.id for b in boards.list_trashed_boards()] == ["board-1000", "board-1001"]


class TestRestore:

    def test_not_in_trash(self, boards: Boards) -> None:
        with pytest.raises(NotFoundError):
            boards.restore_board("board-1000")

    def test_active_board_in_the_way(self, boards: Boards, root) -> None:
        boards.save_board("board-a", board_dict("board-a", "Active"))
        (root / "trash" / "board-a").mkdir(parents=True)
        (root / "trash" / "board-a" / "board.json").write_text(
            json.dumps(board_dict("board-a", "Trashed"))
        )
        with pytest.raises(AlreadyExistsError):
            boards.restore_board("board-a")

    def test_restore_keeps_assets_and_chat(self, boards: Boards, root) -> None:
        boards.create_board("Trip")
        path = boards.save_image("board-1000", "p.png", "aGVsbG8=")
        boards.save_chat("board-1000", {"version": 1, "messages": []})
        boards.delete_board("board-1000")
        boards.restore_board("board-1000")
        assert (root / "board-1000" / path).read_bytes() == b"hello"
        assert (root / "board-1000" / "chat.json").exists()

    def test_restore_without_document(self, boards: Boards, root) -> None:
        """A trash entry missing its document comes back as an empty board."""
        (root / "trash" / "orphan").mkdir(parents=True)
        meta = boards.restore_board("orphan")
        assert meta.name == "orphan"
        assert boards.load_board("orphan").cards == []

    def test_invalid_id(self, boards: Boards) -> None:
        with pytest.raises(InvalidIdentifierError):
            boards.restore_board("..")


def test_empty_trash_keeps_active_boards(boards: Boards, clock) -> None:
    boards.create_board("Keep")
    clock.advance()
    boards.create_board("Drop")
    boards.delete_board("board-1001")
    boards.empty_trash()
    assert [b.name for b in boards.list_boards()] == ["Keep"]
    assert boards.list_trashed_boards() == []


def test_empty_trash_when_empty(boards: Boards) -> None:
    boards.empty_trash()
    assert boards.list_trashed_boards() == []


def test_reindex_recovers_lost_index(boards: Boards, root) -> None:
    boards.create_board("Trip")
    (root / "boards.json").unlink()
    index = boards.reindex()
    assert [b.name for b in index.boards] == ["Trip"]


# ---------------------------------------------------------------------------
# Chat transcript
# ---------------------------------------------------------------------------


class TestChat:

    def test_absent_chat_is_default(self, boards: Boards) -> None:
        boards.create_board("Trip")
        assert boards.load_chat("board-1000") == ChatStore()

    def test_round_trip(self, boards: Boards) -> None:
        data = {
            "version": 1,
            "messages": [{"id": "m1", "role": "user", "content": "hi", "createdAt": 5}],
            "summary": None,
            "summaryUpTo": 0,
            "lastSessionId": "s1",
        }
        boards.save_chat("board-a", data)
        assert boards.load_chat("board-a").to_dict() == data

    def test_corrupt_chat(self, boards: Boards, root) -> None:
        boards.create_board("Trip")
        (root / "board-1000" / "chat.json").write_text("nope")
        with pytest.raises(SerializationError, match="parse chat failed"):
            boards.load_chat("board-1000")

    def test_trashed_board_is_refused(self, boards: Boards) -> None:
        boards.create_board("Trip")
        boards.delete_board("board-1000")
        with pytest.raises(AlreadyDeletedError):
            boards.save_chat("board-1000", ChatStore())
