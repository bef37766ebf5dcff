"""
Error types for board storage, and error logging for the lana CLI.

Logs full stack traces for debugging while showing clean messages to users.
"""

import os
import traceback
from datetime import datetime, timezone
from pathlib import Path


class LanaError(Exception):
    """Base class for all board storage errors."""


class InvalidIdentifierError(LanaError, ValueError):
    """Board id is not safe to embed in a filesystem path."""

    def __init__(self, board_id: str):
        self.board_id = board_id
        super().__init__(f"invalid board id: {board_id!r}")


class NotFoundError(LanaError, LookupError):
    """Board (or trash entry) does not exist."""

    def __str__(self) -> str:
        # LookupError would repr() the message
        return str(self.args[0]) if self.args else "not found"


class AlreadyExistsError(LanaError):
    """Restore target already exists in the active area."""


class AlreadyDeletedError(LanaError):
    """Board is in the trash and cannot be written."""


class IdMismatchError(LanaError, ValueError):
    """Payload id differs from the requested board id."""

    def __init__(self, payload_id: str, expected_id: str):
        self.payload_id = payload_id
        self.expected_id = expected_id
        super().__init__(
            f"board id mismatch (payload {payload_id}, expected {expected_id})"
        )


class SerializationError(LanaError, ValueError):
    """Payload could not be serialized or parsed."""


class StorageIOError(LanaError):
    """Filesystem operation failed.

    Carries the name of the failing operation so callers can tell a failed
    rename from a failed read.
    """

    def __init__(self, operation: str, cause: OSError):
        self.operation = operation
        self.cause = cause
        super().__init__(f"{operation} failed: {cause}")


class UnsupportedSchemeError(LanaError, ValueError):
    """URL scheme is not http or https."""


class BlockedHostError(LanaError, ValueError):
    """URL targets a local or internal network address."""


class InvalidUrlError(LanaError, ValueError):
    """URL could not be parsed."""


class NetworkError(LanaError):
    """Request to a remote host failed in transport."""


class UpstreamError(LanaError):
    """Chat endpoint answered with a non-2xx status."""

    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"ollama error ({status}): {body}")


class LaunchError(LanaError):
    """The OS could not open a URL."""


def _error_log_path() -> Path:
    """Resolve error log path, respecting LANA_BOARDS_PATH."""
    store = os.environ.get("LANA_BOARDS_PATH")
    if store:
        return Path(store) / "lana-errors.log"
    return Path.home() / ".lana" / "lana-errors.log"


def log_exception(exc: Exception, context: str = "") -> Path:
    """
    Log exception with full traceback to file.

    Args:
        exc: The exception that occurred
        context: Optional context string (e.g., command name)

    Returns:
        Path to the error log file
    """
    log_path = _error_log_path()
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(log_path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"[{timestamp}]")
            if context:
                f.write(f" {context}")
            f.write("\n")
            f.write("".join(traceback.format_exception(type(exc), exc, exc.__traceback__)))
    except OSError:
        pass  # Can't write error log; don't crash over it
    return log_path
