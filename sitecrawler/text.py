"""Text tokenising and URL helpers shared by the crawler."""

from __future__ import annotations

import hashlib
import unicodedata
from urllib.parse import unquote, urlsplit

_KEPT_CATEGORIES = frozenset("LNP")
_DIGITS = frozenset("0123456789")


def tokenize(text: str) -> list[str]:
    """Split text into words made of letters, numbers and punctuation.

    Every other character (spaces, symbols, controls) acts as a separator.
    """
    cleaned = "".join(
        ch if unicodedata.category(ch)[0] in _KEPT_CATEGORIES else " " for ch in text
    )
    return cleaned.split()


def hash_url(url: str) -> str:
    """Return the hex SHA-256 digest of a URL string."""
    return hashlib.sha256(url.encode("utf-8")).hexdigest()


def normalize_url(url: str) -> str:
    """Drop a single trailing slash so that ``/x`` and ``/x/`` compare equal."""
    return url[:-1] if url.endswith("/") else url


def _hostname(netloc: str) -> str:
    """Host part of a network location, without user info, port or brackets."""
    host = netloc.rpartition("@")[2]
    if host.startswith("["):
        end = host.find("]")
        return host[1:end] if end != -1 else host[1:]
    head, sep, port = host.rpartition(":")
    if sep and all(ch in _DIGITS for ch in port):
        return head
    return host


def is_same_domain(base: str, link: str) -> bool:
    """Tell whether ``link`` points at the host of ``base``.

    A leading ``www.`` on the link's host is ignored. Links without a host,
    such as relative paths, never match.
    """
    try:
        base_parts = urlsplit(base)
        link_parts = urlsplit(link)
    except ValueError:
        return False
    host = _hostname(link_parts.netloc).removeprefix("www.")
    return _hostname(base_parts.netloc) == host


def url_path(url: str) -> str:
    """Return the decoded path of a URL, or an empty string if it cannot be parsed."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return ""
    return unquote(parts.path)