"""
Shared pytest fixtures for lana tests.

Provides a controllable clock, a boards root under tmp_path, and a fake
web so link fetching never touches the network.
"""

from pathlib import Path
from unittest.mock import patch

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from lana.api import Boards
from lana.config import StoreConfig


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = 1000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, millis: int = 1) -> int:
        self.now += millis
        return self.now


class FakeLauncher:
    """Records URLs instead of opening a browser."""

    def __init__(self):
        self.opened: list[str] = []

    def open(self, url: str) -> None:
        self.opened.append(url)


class FakeResponse:
    """Just enough of requests.Response for streamed reads."""

    def __init__(
        self,
        url: str,
        body: bytes | str = b"",
        status_code: int = 200,
        headers: dict | None = None,
    ):
        self.url = url
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        self.status_code = status_code
        self.headers = CaseInsensitiveDict(headers or {})
        self.closed = False

    @property
    def is_redirect(self) -> bool:
        return "location" in self.headers and self.status_code in (301, 302, 303, 307, 308)

    def iter_content(self, chunk_size: int = 1):
        for i in range(0, len(self._body), chunk_size):
            yield self._body[i:i + chunk_size]

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class FakeWeb:
    """URL → response table standing in for requests.get."""

    def __init__(self):
        self.routes: dict[str, FakeResponse] = {}
        self.requested: list[str] = []
        self.kwargs: list[dict] = []

    def add(self, url: str, body: bytes | str = b"", **kwargs) -> FakeResponse:
        resp = FakeResponse(url, body, **kwargs)
        self.routes[url] = resp
        return resp

    def page(self, url: str, html: str) -> FakeResponse:
        return self.add(url, html, headers={"Content-Type": "text/html; charset=utf-8"})

    def redirect(self, url: str, location: str, status_code: int = 302) -> FakeResponse:
        return self.add(url, b"", status_code=status_code, headers={"Location": location})

    def get(self, url, **kwargs):
        self.requested.append(url)
        self.kwargs.append(kwargs)
        if url not in self.routes:
            raise requests.ConnectionError(f"no route to {url}")
        return self.routes[url]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def root(tmp_path) -> Path:
    return tmp_path / "boards"


@pytest.fixture
def launcher():
    return FakeLauncher()


@pytest.fixture
def boards(root, clock, launcher) -> Boards:
    """Boards over an empty root with a fixed clock."""
    return Boards(root, config=StoreConfig(path=root), launcher=launcher, clock=clock)


@pytest.fixture
def web():
    """Patch requests.get with a FakeWeb."""
    fake = FakeWeb()
    with patch("requests.get", side_effect=fake.get):
        yield fake


def card_dict(card_id: str = "card-1", **extra) -> dict:
    d = {
        "id": card_id,
        "type": "text",
        "x": 10,
        "y": 20,
        "width": 200,
        "height": 120,
        "text": "hello",
    }
    d.update(extra)
    return d


def board_dict(board_id: str, name: str = "Trip", cards=None, columns=None) -> dict:
    return {
        "id": board_id,
        "name": name,
        "cards": cards if cards is not None else [],
        "columns": columns if columns is not None else [],
    }
