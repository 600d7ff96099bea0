"""HTTP fetching and robots.txt checks."""

from __future__ import annotations

import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Callable, Mapping
from urllib.parse import urlsplit
from urllib.robotparser import RobotFileParser

USER_AGENT = "Mozilla/5.0 (compatible; MyCrawler/1.0)"


class RobotsDisallowed(Exception):
    """Raised when robots.txt forbids crawling a URL."""

    def __init__(self, url: str) -> None:
        super().__init__(f"cannot crawl url: {url}")
        self.url = url


@dataclass(frozen=True)
class Response:
    """A fetched HTTP response, body fully read."""

    url: str
    status: int
    body: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict)


def send_request(url: str, timeout: float | None = None) -> Response:
    """GET ``url`` with the crawler's User-Agent.

    Error statuses are returned, not raised; network failures raise OSError
    and malformed URLs raise ValueError.
    """
    request = urllib.request.Request(url, headers={"User-Agent": USER_AGENT}, method="GET")
    kwargs = {} if timeout is None else {"timeout": timeout}
    try:
        with urllib.request.urlopen(request, **kwargs) as resp:
            return Response(
                url=resp.geturl(),
                status=resp.status,
                body=resp.read(),
                headers=dict(resp.headers.items()),
            )
    except urllib.error.HTTPError as err:
        with err:
            body = err.read()
        return Response(
            url=url,
            status=err.code,
            body=body,
            headers=dict(err.headers.items()) if err.headers else {},
        )


def _parser_for(response: Response) -> RobotFileParser:
    parser = RobotFileParser()
    status = response.status
    if 200 <= status < 300:
        parser.parse(response.body.decode("utf-8", errors="replace").splitlines())
    elif 400 <= status < 500:
        parser.allow_all = True
    elif 500 <= status < 600:
        parser.disallow_all = True
    else:
        raise ValueError(f"unexpected status: {status}")
    parser.modified()
    return parser


def check_robots(uri: str, fetch: Callable[[str], Response] = send_request) -> str:
    """Return ``uri`` if the site's robots.txt lets any agent crawl it.

    Raises ValueError for an empty or host-less URI, RobotsDisallowed when the
    URI is forbidden, and whatever ``fetch`` raises when robots.txt cannot be read.
    """
    if not uri:
        raise ValueError("empty URI")
    try:
        parts = urlsplit(uri)
    except ValueError as err:
        raise ValueError(f"invalid URL: {uri}") from err
    host = parts.netloc.rpartition("@")[2]
    if not parts.scheme or not host:
        raise ValueError(f"invalid URL: {uri}")

    parser = _parser_for(fetch(f"{parts.scheme}://{host}/robots.txt"))
    if parser.can_fetch("*", uri):
        return uri
    raise RobotsDisallowed(uri)