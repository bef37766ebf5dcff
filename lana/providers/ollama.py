"""
Chat passthrough to a local Ollama server.
"""

import logging
from typing import Iterable, Optional, Union

import requests

from ..config import DEFAULT_OLLAMA_TIMEOUT, DEFAULT_OLLAMA_URL
from ..errors import NetworkError, SerializationError, UpstreamError
from ..types import ChatMessage

logger = logging.getLogger(__name__)


def ollama_chat(
    model: str,
    messages: Iterable[Union[ChatMessage, dict]],
    base_url: str = DEFAULT_OLLAMA_URL,
    timeout: float = DEFAULT_OLLAMA_TIMEOUT,
    user_agent: Optional[str] = None,
) -> ChatMessage:
    """Send a non-streaming chat request and return the assistant message.

    Raises:
        ValueError: If model is blank
        SerializationError: If a message is malformed or the reply can't be parsed
        NetworkError: If Ollama is unreachable
        UpstreamError: If Ollama answers with a non-2xx status
    """
    if not model or not model.strip():
        raise ValueError("model is required")

    payload_messages = []
    for m in messages:
        if not isinstance(m, ChatMessage):
            m = ChatMessage.from_dict(m)
        payload_messages.append(m.to_dict())

    headers = {"User-Agent": user_agent} if user_agent else None
    url = f"{base_url.rstrip('/')}/api/chat"
    logger.debug("Ollama chat: model=%s messages=%d", model, len(payload_messages))
    try:
        resp = requests.post(
            url,
            json={"model": model, "messages": payload_messages, "stream": False},
            headers=headers,
            timeout=timeout,
        )
    except requests.RequestException as e:
        raise NetworkError(
            f"ollama request failed: {e}. "
            "Is Ollama running? Start it with: ollama serve"
        ) from e

    if not 200 <= resp.status_code < 300:
        raise UpstreamError(resp.status_code, resp.text)

    try:
        return ChatMessage.from_dict(resp.json()["message"])
    except (ValueError, KeyError, TypeError) as e:
        raise SerializationError(f"ollama parse failed: {e}") from e
