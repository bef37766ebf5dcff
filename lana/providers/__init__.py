"""
Outbound network providers: link previews and the local chat endpoint.
"""

from .links import LinkMetadataFetcher, check_url, is_safe_url
from .ollama import ollama_chat

__all__ = ["LinkMetadataFetcher", "check_url", "is_safe_url", "ollama_chat"]
