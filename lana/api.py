"""
Command surface for the board UI.

One method per UI command; each call returns a result or raises a
LanaError subclass. This is the only place that wires the stores,
the fetcher and the network providers together.
"""

import base64
import binascii
from pathlib import Path
from typing import Callable, Iterable, Optional, Union
from urllib.parse import urlparse

from .assets import AssetStore
from .board_index import BoardIndexStore
from .board_store import BoardStore
from .config import StoreConfig, get_default_root, load_config
from .errors import InvalidUrlError, SerializationError, UnsupportedSchemeError
from .launcher import ExternalLauncher, default_launcher
from .providers.links import ALLOWED_SCHEMES, LinkMetadataFetcher
from .providers.ollama import ollama_chat
from .types import (
    Board,
    BoardIndex,
    BoardMeta,
    ChatMessage,
    ChatStore,
    LinkMetadata,
    now_millis,
)


class Boards:
    """
    Board storage for one root directory.

    Opening a root creates it if needed and repairs the index, so the
    first listing reflects what is actually on disk.
    """

    def __init__(
        self,
        root: Optional[Path] = None,
        *,
        config: Optional[StoreConfig] = None,
        launcher: Optional[ExternalLauncher] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        """
        Args:
            root: Boards directory; defaults to LANA_BOARDS_PATH or
                ~/Documents/LANA/boards
            config: Settings; read from <root>/lana.toml when omitted
            launcher: URL opener; defaults to the one for this OS
            clock: Millisecond clock, for deterministic ids and timestamps
        """
        if root is None:
            root = config.path if config is not None else get_default_root()
        self.root = Path(root).expanduser()
        if config is None:
            config = self._load_config(self.root)
        self.config = config
        self._clock = clock or now_millis
        self._launcher = launcher

        self.index = BoardIndexStore(self.root, clock=self._clock)
        self.store = BoardStore(self.index, clock=self._clock)
        self.assets = AssetStore(self.store, clock=self._clock)
        self.fetcher = LinkMetadataFetcher(
            self.assets,
            timeout=config.fetch.timeout,
            max_image_bytes=config.fetch.max_image_bytes,
            max_page_bytes=config.fetch.max_page_bytes,
            user_agent=config.fetch.user_agent,
        )

        self.index.read()

    @staticmethod
    def _load_config(root: Path) -> StoreConfig:
        try:
            return load_config(root)
        except FileNotFoundError:
            return StoreConfig(path=root)

    @property
    def launcher(self) -> ExternalLauncher:
        if self._launcher is None:
            self._launcher = default_launcher()
        return self._launcher

    # -------------------------------------------------------------------------
    # Listing
    # -------------------------------------------------------------------------

    def list_boards(self) -> list[BoardMeta]:
        """Active boards in index order."""
        return self.index.read().active()

    def list_trashed_boards(self) -> list[BoardMeta]:
        """Trashed boards, most recently deleted first."""
        trashed = self.index.read().trashed()
        trashed.sort(key=lambda b: b.deleted_at or 0, reverse=True)
        return trashed

    def reindex(self) -> BoardIndex:
        """Discard the cached index and rebuild it from disk."""
        return self.index.rebuild()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def create_board(self, name: str) -> BoardMeta:
        return self.store.create(name)

    def delete_board(self, board_id: str) -> None:
        self.store.trash(board_id)

    def restore_board(self, board_id: str) -> BoardMeta:
        return self.store.restore(board_id)

    def empty_trash(self) -> None:
        self.store.empty_trash()

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    def load_board(self, board_id: str) -> Board:
        return self.store.load(board_id)

    def save_board(self, board_id: str, board: Union[Board, dict]) -> BoardMeta:
        """Save a board given as a Board or its JSON dict form."""
        if not isinstance(board, Board):
            board = Board.from_dict(board)
        return self.store.save(board_id, board)

    def load_chat(self, board_id: str) -> ChatStore:
        return self.store.load_chat(board_id)

    def save_chat(self, board_id: str, chat: Union[ChatStore, dict]) -> None:
        if not isinstance(chat, ChatStore):
            chat = ChatStore.from_dict(chat)
        self.store.save_chat(board_id, chat)

    def get_assets_dir(self, board_id: str) -> str:
        """Absolute path of the board's assets directory."""
        return str(self.store.assets_dir(board_id))

    def save_image(self, board_id: str, filename: str, bytes_base64: str) -> str:
        """
        Store an uploaded image given as base64.

        Returns:
            Path relative to the board document, e.g. ``assets/photo.png``
        """
        try:
            data = base64.b64decode(bytes_base64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise SerializationError(f"base64 decode failed: {e}") from e
        return self.assets.save_named(board_id, filename, data)

    # -------------------------------------------------------------------------
    # Network
    # -------------------------------------------------------------------------

    def fetch_link_metadata(self, board_id: str, url: str) -> LinkMetadata:
        return self.fetcher.fetch(board_id, url)

    def ollama_chat(self, model: str, messages: Iterable[Union[ChatMessage, dict]]) -> ChatMessage:
        return ollama_chat(
            model,
            messages,
            base_url=self.config.ollama.base_url,
            timeout=self.config.ollama.timeout,
            user_agent=self.config.fetch.user_agent,
        )

    def open_external_url(self, url: str) -> None:
        """Open an http(s) URL in the user's browser."""
        try:
            parsed = urlparse(url)
        except ValueError as e:
            raise InvalidUrlError(f"invalid url: {e}") from e
        if not parsed.scheme:
            raise InvalidUrlError(f"invalid url: {url!r}")
        if parsed.scheme.lower() not in ALLOWED_SCHEMES:
            raise UnsupportedSchemeError("unsupported url scheme")
        if not parsed.netloc:
            raise InvalidUrlError(f"invalid url: {url!r}")
        self.launcher.open(url)
