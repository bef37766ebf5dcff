"""
Link preview metadata for pasted URLs.

Fetches a page, reads its Open Graph / Twitter card tags and mirrors the
preview image into the board's assets. Outbound requests are refused for
local and internal hosts.
"""

import ipaddress
import logging
import socket
from typing import Optional, Union
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup

from ..assets import AssetStore
from ..config import DEFAULT_FETCH_TIMEOUT, DEFAULT_MAX_IMAGE_BYTES, DEFAULT_MAX_PAGE_BYTES
from ..errors import (
    BlockedHostError,
    InvalidUrlError,
    LanaError,
    NetworkError,
    UnsupportedSchemeError,
)
from ..types import LinkMetadata, validate_board_id

logger = logging.getLogger(__name__)

ALLOWED_SCHEMES = ("http", "https")
FALLBACK_TITLE = "Link"

_MAX_REDIRECTS = 5
_CHUNK_SIZE = 65536

_IMAGE_EXTENSIONS = (
    ("image/jpeg", ".jpg"),
    ("image/jpg", ".jpg"),
    ("image/png", ".png"),
    ("image/webp", ".webp"),
    ("image/gif", ".gif"),
)
DEFAULT_IMAGE_EXTENSION = ".img"


# ---------------------------------------------------------------------------
# Safety gate
# ---------------------------------------------------------------------------

def _parse_ip_literal(host: str):
    """Return an ip_address for a literal host, or None for names."""
    try:
        return ipaddress.ip_address(host)
    except ValueError:
        pass
    # Shorthand IPv4 forms ("127.1", "2130706433", "0x7f.0.0.1") still
    # connect to the address they spell
    try:
        return ipaddress.IPv4Address(socket.inet_aton(host))
    except (OSError, ValueError):
        return None


def _is_internal_address(addr) -> bool:
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        addr = addr.ipv4_mapped
    return (addr.is_private or addr.is_loopback or addr.is_link_local
            or addr.is_unspecified or addr.is_multicast or addr.is_reserved)


def is_safe_url(url: str) -> bool:
    """Check that a URL does not point at a local or internal host.

    Hostname and IP-literal heuristic only: names are not resolved, so a
    public name resolving to a private address (DNS rebinding) gets through.
    """
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return False
    if not hostname:
        return False

    host = hostname.rstrip(".").lower()
    if host == "localhost" or host.endswith(".localhost") or host.endswith(".local"):
        return False

    addr = _parse_ip_literal(host)
    if addr is None:
        return True
    return not _is_internal_address(addr)


def check_url(url: str) -> None:
    """
    Validate a URL for outbound fetching.

    Raises:
        InvalidUrlError: If the URL cannot be parsed
        UnsupportedSchemeError: If the scheme is not http/https
        BlockedHostError: If the host is local or internal
    """
    try:
        parsed = urlparse(url)
        parsed.port  # raises on a malformed port
    except ValueError as e:
        raise InvalidUrlError(f"invalid url: {e}") from e
    if not parsed.scheme:
        raise InvalidUrlError(f"invalid url: {url!r}")
    if parsed.scheme.lower() not in ALLOWED_SCHEMES:
        raise UnsupportedSchemeError(f"unsupported url scheme: {parsed.scheme}")
    if not is_safe_url(url):
        raise BlockedHostError(f"blocked url host: {url}")


# ---------------------------------------------------------------------------
# HTML extraction
# ---------------------------------------------------------------------------

def _clean_text(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    trimmed = value.strip()
    return trimmed or None


def _meta_content(soup: BeautifulSoup, **attrs) -> Optional[str]:
    tag = soup.find("meta", attrs=attrs)
    if tag is None:
        return None
    return _clean_text(tag.get("content"))


def _title_text(soup: BeautifulSoup) -> Optional[str]:
    if soup.title is None:
        return None
    return _clean_text(soup.title.get_text())


def extract_metadata(
    markup: Union[str, bytes],
    page_url: str,
    from_encoding: Optional[str] = None,
) -> tuple[str, Optional[str], Optional[str]]:
    """
    Pull title, site name and image URL out of a page.

    Raw bytes are decoded by BeautifulSoup: ``from_encoding`` when given,
    otherwise the page's own <meta charset> or a sniffed encoding.

    Title falls back from og:title to twitter:title, <title>, the page
    hostname and finally "Link".

    Returns:
        (title, site_name, image_url) with image_url unresolved
    """
    soup = BeautifulSoup(markup, "html.parser", from_encoding=from_encoding)
    host = urlparse(page_url).hostname

    title = (
        _meta_content(soup, property="og:title")
        or _meta_content(soup, name="twitter:title")
        or _title_text(soup)
        or host
        or FALLBACK_TITLE
    )
    site_name = _meta_content(soup, property="og:site_name") or host
    image_url = (
        _meta_content(soup, property="og:image")
        or _meta_content(soup, name="twitter:image")
    )
    return title, site_name, image_url


def image_extension(content_type: str) -> str:
    """File extension for an image content type, ``.img`` if unknown."""
    ct = content_type.lower()
    for prefix, ext in _IMAGE_EXTENSIONS:
        if ct.startswith(prefix):
            return ext
    return DEFAULT_IMAGE_EXTENSION


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------

def _read_limited(resp, limit: int) -> tuple[bytes, bool]:
    """Read a streamed body up to ``limit`` bytes.

    Returns:
        (data, overflowed) where data holds at most ``limit`` bytes
    """
    chunks: list[bytes] = []
    downloaded = 0
    for chunk in resp.iter_content(chunk_size=_CHUNK_SIZE):
        downloaded += len(chunk)
        if downloaded > limit:
            chunks.append(chunk[:limit - (downloaded - len(chunk))])
            return b"".join(chunks), True
        chunks.append(chunk)
    return b"".join(chunks), False


def _declared_charset(content_type: str) -> Optional[str]:
    """Charset parameter of a Content-Type header, or None if it names none.

    requests fills ``resp.encoding`` with ISO-8859-1 for any text/* type
    without a charset, so it cannot tell a declared charset from a default.
    """
    for param in content_type.split(";")[1:]:
        key, _, value = param.partition("=")
        if key.strip().lower() == "charset":
            return value.strip().strip("'\"") or None
    return None


class LinkMetadataFetcher:
    """
    Fetches link previews for a board.

    Every request, each redirect hop and the preview image URL pass the
    safety gate. Failures while mirroring the image only drop the image.
    """

    def __init__(
        self,
        assets: AssetStore,
        timeout: float = DEFAULT_FETCH_TIMEOUT,
        max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES,
        max_page_bytes: int = DEFAULT_MAX_PAGE_BYTES,
        user_agent: Optional[str] = None,
    ):
        """
        Args:
            assets: Where mirrored preview images are stored
            timeout: Per-request timeout in seconds
            max_image_bytes: Larger preview images are dropped
            max_page_bytes: Pages are truncated to this size before parsing
            user_agent: User-Agent header for outbound requests
        """
        self.assets = assets
        self.timeout = timeout
        self.max_image_bytes = max_image_bytes
        self.max_page_bytes = max_page_bytes
        if user_agent is None:
            from .. import __version__
            user_agent = f"LANA/{__version__}"
        self.user_agent = user_agent

    def _get(self, url: str):
        """GET with redirects followed by hand so each hop is checked.

        Returns:
            (response, final_url); the caller closes the response
        """
        check_url(url)
        target = url
        for _ in range(_MAX_REDIRECTS + 1):
            try:
                resp = requests.get(
                    target,
                    timeout=self.timeout,
                    headers={"User-Agent": self.user_agent},
                    stream=True,
                    allow_redirects=False,
                )
            except requests.RequestException as e:
                raise NetworkError(f"fetch failed: {e}") from e
            if resp.is_redirect:
                location = resp.headers.get("Location", "")
                resp.close()
                target = urljoin(target, location)
                check_url(target)
                continue
            final_url = resp.url or target
            check_url(final_url)
            return resp, final_url
        raise NetworkError(f"too many redirects fetching {url}")

    def fetch(self, board_id: str, url: str) -> LinkMetadata:
        """
        Fetch preview metadata for ``url`` on behalf of a board.

        Raises:
            InvalidIdentifierError: If board_id is invalid
            InvalidUrlError, UnsupportedSchemeError, BlockedHostError:
                If the URL is refused
            NetworkError: If the page cannot be fetched
        """
        validate_board_id(board_id)
        check_url(url)

        resp, final_url = self._get(url)
        try:
            with resp:
                raw, truncated = _read_limited(resp, self.max_page_bytes)
                charset = _declared_charset(resp.headers.get("Content-Type", ""))
        except requests.RequestException as e:
            raise NetworkError(f"read body failed: {e}") from e
        if truncated:
            logger.debug("Page %s truncated at %d bytes", final_url, self.max_page_bytes)

        title, site_name, image_url = extract_metadata(raw, final_url, from_encoding=charset)

        image = None
        if image_url:
            image = self._mirror_image(board_id, image_url, final_url)

        return LinkMetadata(url=final_url, title=title, image=image, site_name=site_name)

    def _mirror_image(self, board_id: str, image_url: str, page_url: str) -> Optional[str]:
        """Download a preview image into the board's assets, or None."""
        try:
            resolved = urljoin(page_url, image_url)
            resp, _ = self._get(resolved)
            with resp:
                if not 200 <= resp.status_code < 300:
                    logger.info("Preview image %s: HTTP %s", resolved, resp.status_code)
                    return None
                content_type = resp.headers.get("Content-Type", "")
                if not content_type.lower().startswith("image/"):
                    logger.info("Preview image %s: not an image (%s)", resolved, content_type)
                    return None
                declared = resp.headers.get("Content-Length")
                if declared and declared.isdigit() and int(declared) > self.max_image_bytes:
                    logger.info("Preview image %s: too large (%s bytes)", resolved, declared)
                    return None
                data, overflowed = _read_limited(resp, self.max_image_bytes)
                if overflowed:
                    logger.info("Preview image %s: exceeds %d bytes", resolved, self.max_image_bytes)
                    return None
            return self.assets.save(board_id, data, image_extension(content_type))
        except (LanaError, requests.RequestException, OSError, ValueError) as e:
            logger.warning("Dropping preview image %s: %s", image_url, e)
            return None
