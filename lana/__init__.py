"""
LANA board storage.

Local-first persistence for visual note boards: board documents on disk,
a self-healing index, a trash lifecycle, and a guarded link-preview fetcher.
"""

__version__ = "0.1.0"

from .api import Boards
from .types import Board, BoardMeta, ChatStore, LinkMetadata

__all__ = ["Boards", "Board", "BoardMeta", "ChatStore", "LinkMetadata", "__version__"]
