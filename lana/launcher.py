"""
Opening URLs in the user's browser.

The platform-specific command sits behind the ExternalLauncher protocol;
default_launcher() picks one for the running OS.
"""

import logging
import os
import platform
import subprocess
from typing import Protocol, runtime_checkable

from .errors import LaunchError

logger = logging.getLogger(__name__)


@runtime_checkable
class ExternalLauncher(Protocol):
    """Hands a URL to the operating system."""

    def open(self, url: str) -> None:
        """Open ``url``. Raises LaunchError on failure."""
        ...


class CommandLauncher:
    """Runs a fixed command with the URL as its last argument."""

    command: tuple[str, ...] = ()

    def open(self, url: str) -> None:
        argv = [*self.command, url]
        logger.debug("Opening %s with %s", url, argv[0])
        try:
            subprocess.run(argv, check=True)
        except (OSError, subprocess.CalledProcessError) as e:
            raise LaunchError(f"open failed: {e}") from e


class MacLauncher(CommandLauncher):
    command = ("open",)


class WindowsLauncher:
    """Opens URLs through the shell's registered handler via os.startfile.

    No command line is built, so cmd.exe metacharacters in the URL stay
    part of the URL.
    """

    def open(self, url: str) -> None:
        logger.debug("Opening %s with startfile", url)
        try:
            os.startfile(url)
        except OSError as e:
            raise LaunchError(f"open failed: {e}") from e


class XdgLauncher(CommandLauncher):
    command = ("xdg-open",)


def default_launcher(system: str | None = None) -> ExternalLauncher:
    """Launcher for the given (or current) ``platform.system()`` name."""
    system = system or platform.system()
    if system == "Darwin":
        return MacLauncher()
    if system == "Windows":
        return WindowsLauncher()
    return XdgLauncher()
