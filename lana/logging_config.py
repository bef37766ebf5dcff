"""
Logging setup for the lana command line.

Library loggers (HTTP connection pools, charset sniffing, HTML parser
warnings) stay quiet unless debug output is requested. Board operations
always go to a rotating log file inside the boards root.
"""

import logging
import os
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

OPS_LOG_FILENAME = "lana-ops.log"
OPS_LOG_MAX_BYTES = 1_000_000
OPS_LOG_BACKUPS = 3

# Loggers that chatter about connections and parsing at INFO/DEBUG
_NOISY_LOGGERS = ("urllib3", "requests", "charset_normalizer", "bs4")

_DEBUG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_OPS_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def configure_quiet_mode(quiet: bool = True):
    """
    Hide library chatter and warnings from the terminal.

    Args:
        quiet: False restores library loggers and warnings to their defaults
    """
    level = logging.ERROR if quiet else logging.NOTSET
    warnings.filterwarnings("ignore" if quiet else "default")
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(level)


def _writes_to_stderr(handler: logging.Handler) -> bool:
    return isinstance(handler, logging.StreamHandler) and handler.stream is sys.stderr


def enable_debug_mode():
    """Send DEBUG records from lana and its HTTP stack to stderr."""
    warnings.filterwarnings("default")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    if not any(_writes_to_stderr(h) for h in root_logger.handlers):
        stderr = logging.StreamHandler(sys.stderr)
        stderr.setLevel(logging.DEBUG)
        stderr.setFormatter(logging.Formatter(_DEBUG_FORMAT, datefmt="%H:%M:%S"))
        root_logger.addHandler(stderr)

    for name in ("lana", *_NOISY_LOGGERS):
        logging.getLogger(name).setLevel(logging.DEBUG)


def configure_ops_log(root) -> RotatingFileHandler:
    """
    Record board operations in ``<root>/lana-ops.log``.

    Index rebuilds, trash and restore, and dropped preview images are logged
    at INFO and above regardless of --verbose. Calling this again for the
    same root returns the handler already attached.
    """
    log_path = Path(root) / OPS_LOG_FILENAME
    log_path.parent.mkdir(parents=True, exist_ok=True)
    target = os.path.abspath(log_path)

    lana_logger = logging.getLogger("lana")
    for handler in lana_logger.handlers:
        if isinstance(handler, RotatingFileHandler) and handler.baseFilename == target:
            return handler

    handler = RotatingFileHandler(
        target,
        maxBytes=OPS_LOG_MAX_BYTES,
        backupCount=OPS_LOG_BACKUPS,
        encoding="utf-8",
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(_OPS_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    lana_logger.addHandler(handler)

    # INFO must reach the file even when the root logger is quieter
    if lana_logger.level == logging.NOTSET or lana_logger.level > logging.INFO:
        lana_logger.setLevel(logging.INFO)
    return handler
