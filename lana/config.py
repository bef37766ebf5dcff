"""
Configuration management for a boards root.

Settings live in ``lana.toml`` next to the board directories and only cover
the network side: link fetch limits and the local chat endpoint. A root
without the file runs on defaults.
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

# tomllib only reads; writing needs tomli_w
try:
    import tomli_w
except ImportError:
    tomli_w = None  # type: ignore


CONFIG_FILENAME = "lana.toml"
CONFIG_VERSION = 1

DEFAULT_FETCH_TIMEOUT = 10.0
DEFAULT_MAX_IMAGE_BYTES = 5 * 1024 * 1024
DEFAULT_MAX_PAGE_BYTES = 10_000_000
DEFAULT_OLLAMA_URL = "http://127.0.0.1:11434"
DEFAULT_OLLAMA_TIMEOUT = 120.0


def _default_user_agent() -> str:
    from . import __version__
    return f"LANA/{__version__}"


@dataclass
class FetchConfig:
    """Settings for outbound link and image fetches."""
    timeout: float = DEFAULT_FETCH_TIMEOUT
    max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES
    max_page_bytes: int = DEFAULT_MAX_PAGE_BYTES
    user_agent: str = field(default_factory=_default_user_agent)


@dataclass
class OllamaConfig:
    """Settings for the local chat endpoint."""
    base_url: str = DEFAULT_OLLAMA_URL
    timeout: float = DEFAULT_OLLAMA_TIMEOUT


@dataclass
class StoreConfig:
    """Everything configurable for one boards root."""
    path: Path
    version: int = CONFIG_VERSION
    fetch: FetchConfig = field(default_factory=FetchConfig)
    ollama: OllamaConfig = field(default_factory=OllamaConfig)

    @property
    def config_path(self) -> Path:
        return self.path / CONFIG_FILENAME

    def exists(self) -> bool:
        return self.config_path.exists()


def get_default_root() -> Path:
    """
    Resolve the boards root directory.

    Priority:
    1. LANA_BOARDS_PATH environment variable
    2. ~/Documents/LANA/boards
    """
    env_path = os.environ.get("LANA_BOARDS_PATH")
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / "Documents" / "LANA" / "boards"


def _parse_fetch(section: dict[str, Any]) -> FetchConfig:
    defaults = FetchConfig()
    return FetchConfig(
        timeout=float(section.get("timeout", defaults.timeout)),
        max_image_bytes=int(section.get("max_image_bytes", defaults.max_image_bytes)),
        max_page_bytes=int(section.get("max_page_bytes", defaults.max_page_bytes)),
        user_agent=str(section.get("user_agent", defaults.user_agent)),
    )


def _parse_ollama(section: dict[str, Any]) -> OllamaConfig:
    return OllamaConfig(
        base_url=str(section.get("base_url", DEFAULT_OLLAMA_URL)).rstrip("/"),
        timeout=float(section.get("timeout", DEFAULT_OLLAMA_TIMEOUT)),
    )


def _to_toml_dict(config: StoreConfig) -> dict[str, Any]:
    return {
        "store": {"version": config.version},
        "fetch": {
            "timeout": config.fetch.timeout,
            "max_image_bytes": config.fetch.max_image_bytes,
            "max_page_bytes": config.fetch.max_page_bytes,
            "user_agent": config.fetch.user_agent,
        },
        "ollama": {
            "base_url": config.ollama.base_url,
            "timeout": config.ollama.timeout,
        },
    }


def load_config(root: Path) -> StoreConfig:
    """
    Read ``lana.toml`` from a boards root.

    Missing keys take their defaults.

    Raises:
        FileNotFoundError: If the root has no lana.toml
        ValueError: If the file is not valid TOML or its version is too new
    """
    root = Path(root)
    path = root / CONFIG_FILENAME
    if not path.exists():
        raise FileNotFoundError(f"No {CONFIG_FILENAME} in {root}")

    with open(path, "rb") as f:
        data = tomllib.load(f)

    version = data.get("store", {}).get("version", CONFIG_VERSION)
    if version > CONFIG_VERSION:
        raise ValueError(
            f"{CONFIG_FILENAME} version {version} is newer than this lana supports ({CONFIG_VERSION})"
        )

    return StoreConfig(
        path=root,
        version=version,
        fetch=_parse_fetch(data.get("fetch", {})),
        ollama=_parse_ollama(data.get("ollama", {})),
    )


def save_config(config: StoreConfig) -> None:
    """Write ``lana.toml``, creating the boards root if needed."""
    if tomli_w is None:
        raise RuntimeError("Saving lana.toml needs tomli_w. Install with: pip install tomli-w")

    config.path.mkdir(parents=True, exist_ok=True)
    with open(config.config_path, "wb") as f:
        tomli_w.dump(_to_toml_dict(config), f)


def load_or_create_config(root: Path) -> StoreConfig:
    """Read the root's config, writing one with defaults on first use."""
    root = Path(root)
    try:
        return load_config(root)
    except FileNotFoundError:
        config = StoreConfig(path=root)
        save_config(config)
        return config
