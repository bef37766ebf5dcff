"""Tests for board id validation."""

import re

import pytest

from lana.errors import InvalidIdentifierError
from lana.types import is_valid_board_id, validate_board_id


_SAFE_ID = re.compile(r'[A-Za-z0-9_-]{1,64}')


@pytest.mark.parametrize("board_id", [
    "board-1712345678901",
    "board-1712345678901-3",
    "a",
    "A_b-C_9",
    "x" * 64,
])
def test_valid_ids(board_id):
    assert is_valid_board_id(board_id) is True
    validate_board_id(board_id)


@pytest.mark.parametrize("board_id", [
    "",
    "x" * 65,
    "../etc",
    "..",
    "a..b",
    "a/b",
    "a\\b",
    "/abs",
    "with space",
    "dot.ted",
    "tab\t",
    "nul\x00",
    "trailing\n",
    "ümlaut",
    "emoji-🙂",
])
def test_invalid_ids(board_id):
    assert is_valid_board_id(board_id) is False
    with pytest.raises(InvalidIdentifierError):
        validate_board_id(board_id)


def test_non_string_is_invalid():
    assert is_valid_board_id(None) is False
    assert is_valid_board_id(42) is False


@pytest.mark.parametrize("board_id", [
    "board-1", "a" * 64, "a" * 65, "a..b", "a.b", "a-b_c", "", "é", "a b", "--", "__",
])
def test_matches_safe_pattern(board_id):
    """Valid exactly when the id is 1-64 safe chars with no '..'."""
    expected = bool(_SAFE_ID.fullmatch(board_id)) and ".." not in board_id
    assert is_valid_board_id(board_id) is expected


def test_error_carries_id():
    with pytest.raises(InvalidIdentifierError) as exc_info:
        validate_board_id("../secret")
    assert exc_info.value.board_id == "../secret"
    assert "../secret" in str(exc_info.value)
