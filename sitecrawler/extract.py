"""Pull the title, body words and same-site links out of an HTML page."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from html.parser import HTMLParser

from .text import is_same_domain, tokenize, url_path

MAX_WORDS = 1000

SKIP_TAGS = frozenset(
    {
        "script",
        "style",
        "noscript",
        "template",
        "iframe",
        "canvas",
        "svg",
        "meta",
        "link",
        "head",
        "object",
        "embed",
        "javascript",
        "nav",
        "footer",
        "form",
        "span",
        "img",
    }
)


class _Kind(Enum):
    START = "start"
    END = "end"
    TEXT = "text"
    OTHER = "other"


@dataclass(frozen=True)
class _Token:
    kind: _Kind
    data: str
    attrs: tuple[tuple[str, str], ...] = ()


class _Collector(HTMLParser):
    """Turns parser callbacks into a flat list of tokens."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.tokens: list[_Token] = []

    def _tag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        pairs = tuple((key, value or "") for key, value in attrs)
        self.tokens.append(_Token(_Kind.START, tag, pairs))

    def handle_starttag(self, tag, attrs):
        self._tag(tag, attrs)

    def handle_startendtag(self, tag, attrs):
        self._tag(tag, attrs)

    def handle_endtag(self, tag):
        self.tokens.append(_Token(_Kind.END, tag))

    def handle_data(self, data):
        if self.tokens and self.tokens[-1].kind is _Kind.TEXT:
            self.tokens[-1] = _Token(_Kind.TEXT, self.tokens[-1].data + data)
        else:
            self.tokens.append(_Token(_Kind.TEXT, data))

    def handle_comment(self, data):
        self.tokens.append(_Token(_Kind.OTHER, data))

    def handle_decl(self, decl):
        self.tokens.append(_Token(_Kind.OTHER, decl))

    def handle_pi(self, data):
        self.tokens.append(_Token(_Kind.OTHER, data))

    def unknown_decl(self, data):
        self.tokens.append(_Token(_Kind.OTHER, data))


def _tokens(content: bytes | str) -> list[_Token]:
    if isinstance(content, (bytes, bytearray)):
        content = bytes(content).decode("utf-8", errors="replace")
    collector = _Collector()
    collector.feed(content)
    collector.close()
    return collector.tokens


@dataclass
class PageContent:
    """What was extracted from one page."""

    title: str = ""
    body: str = ""
    path: str = ""
    added_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    links: list[str] = field(default_factory=list)


def _same_site_href(token: _Token, seed_url: str) -> str:
    for key, value in token.attrs:
        if key == "href" and is_same_domain(seed_url, value):
            return value
    return ""


def extract_page(content: bytes | str, seed_url: str, url: str = "") -> PageContent:
    """Extract the title, up to 1000 body words and same-site links of a page.

    The token right after a skipped tag, and right after an ``<a>`` tag, is
    consumed without being looked at, so script bodies and link texts never
    reach the body text.
    """
    title = ""
    words: list[str] = []
    links: list[str] = []
    in_title = in_body = False

    stream = iter(_tokens(content))
    for token in stream:
        if token.kind is _Kind.START:
            if token.data in SKIP_TAGS:
                next(stream, None)
                continue
            if token.data == "title":
                in_title = True
            if token.data == "body":
                in_body = True
            if token.data == "a":
                next(stream, None)
                href = _same_site_href(token, seed_url).strip()
                if href:
                    links.append(href)
        elif token.kind is _Kind.END:
            if token.data == "title":
                in_title = False
            if token.data == "body":
                in_body = False
        elif token.kind is _Kind.TEXT:
            if in_title and not title:
                title = token.data.strip()
            if in_body and len(words) < MAX_WORDS:
                words.extend(tokenize(token.data.strip())[: MAX_WORDS - len(words)])

    return PageContent(
        title=title,
        body=" ".join(words),
        path=url_path(url) if url else "",
        links=links,
    )


def extract_body_text(content: bytes | str) -> str:
    """Concatenate every text chunk inside ``<body>``, each followed by a space."""
    in_body = False
    parts: list[str] = []
    for token in _tokens(content):
        if token.kind is _Kind.START and token.data == "body":
            in_body = True
        elif token.kind is _Kind.END and token.data == "body":
            in_body = False
        elif token.kind is _Kind.TEXT and in_body:
            parts.append(token.data + " ")
    return "".join(parts)