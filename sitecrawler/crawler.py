"""Polite single-site crawler that stores page text in MongoDB."""

from __future__ import annotations

import argparse
import logging
import math
import threading
import time
from dataclasses import dataclass, field
from queue import Empty, Full, Queue
from typing import Any, Callable, Sequence

from pymongo.errors import PyMongoError

from .extract import PageContent, extract_page
from .queue import UrlQueue, VisitedSet
from .robots import Response, RobotsDisallowed, check_robots, send_request
from .storage import COLLECTION_CONTENT, ContentStore, load_credentials

log = logging.getLogger(__name__)

SEED_URL = "https://nexford.edu/"
DEFAULT_TIMEOUT = 100.0
BUFFER_SIZE = 10
_POLL = 0.05


def _divide(numerator: float, denominator: float) -> float:
    if denominator:
        return numerator / denominator
    if numerator == 0 or math.isnan(numerator):
        return math.nan
    return math.copysign(math.inf, numerator)


def _format(value: float, digits: int) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    return f"{value:.{digits}f}"


@dataclass
class CrawlStats:
    """Counters gathered during one crawl."""

    seed_url: str = SEED_URL
    visited: VisitedSet = field(default_factory=VisitedSet)
    page_count: int = 0
    skipped_pages_robots: int = 0
    start_time: float = field(default_factory=time.monotonic)

    @property
    def crawl_size(self) -> int:
        return len(self.visited)

    def report(self, queue: UrlQueue) -> str:
        """Summary printed once the crawl has finished."""
        minutes = (time.monotonic() - self.start_time) / 60
        return "\n".join(
            [
                "-------------------------------> finished crawling data... "
                f"from provided seed url: {self.seed_url} "
                "<--------------------------------- ",
                f"queue size after crawl {len(queue)}",
                f"Pages Crawled: {self.page_count}",
                f"Crawl Minute per Page: {_format(_divide(minutes, self.page_count), 4)}s",
                "Crawl Success Ratio: "
                f"{_format(_divide(self.page_count, self.crawl_size), 2)}",
                f"queue size {queue.total_size()}",
                f"crawl size {self.crawl_size}",
                f"skipped page robots.txt: {self.skipped_pages_robots}",
            ]
        )


class Crawler:
    """Crawls the site of ``seed_url`` one request per interval.

    The crawl stops when nothing has been pending for ``idle_limit`` idle
    checks in a row, or when the timeout given to ``run`` runs out.
    """

    def __init__(
        self,
        seed_url: str = SEED_URL,
        store: ContentStore | Any | None = None,
        fetcher: Callable[[str], Response] = send_request,
        *,
        request_interval: float = 1.0,
        idle_interval: float = 5.0,
        idle_limit: int = 3,
    ) -> None:
        self.seed_url = seed_url
        self.store = store
        self.queue = UrlQueue()
        self.stats = CrawlStats(seed_url)
        self.request_interval = request_interval
        self.idle_interval = idle_interval
        self.idle_limit = idle_limit
        self._fetcher = fetcher
        self._lock = threading.Lock()
        self._pending = 0

    @property
    def visited(self) -> VisitedSet:
        return self.stats.visited

    def fetch(self, url: str) -> bytes:
        """Return the body of ``url``, or empty bytes if it may not or cannot be fetched."""
        try:
            allowed = check_robots(url, self._fetcher)
        except RobotsDisallowed as err:
            with self._lock:
                self.stats.skipped_pages_robots += 1
            log.warning("%s -> %s violated robots.txt", err, url)
            return b""
        except (ValueError, OSError) as err:
            log.warning("%s -> %s violated robots.txt", err, url)
            return b""
        try:
            response = self._fetcher(allowed)
        except (ValueError, OSError) as err:
            log.warning("unexpected error while sending request: %s", err)
            return b""
        log.info("sent request to -> %s", allowed)
        return response.body

    def process(self, content: bytes | str, url: str = "") -> PageContent:
        """Extract a page, queue its unseen same-site links and store its text."""
        page = extract_page(content, self.seed_url, url)
        for href in page.links:
            if self.visited.try_mark(href):
                log.info("added %s to queue: queue size is %d", href, len(self.queue))
                self.queue.enqueue(href)
        with self._lock:
            self.stats.page_count += 1
        if self.store is not None:
            try:
                self.store.add(COLLECTION_CONTENT, page)
            except PyMongoError as err:
                log.error("inserting data error: %s", err)
        return page

    def _produce(self, stop: threading.Event, buffer: Queue) -> None:
        while not stop.wait(self.request_interval):
            with self._lock:
                try:
                    url = self.queue.dequeue()
                except IndexError:
                    continue
                self._pending += 1
            content = self.fetch(url)
            while not stop.is_set():
                try:
                    buffer.put((url, content), timeout=_POLL)
                    break
                except Full:
                    continue

    def _consume(self, stop: threading.Event, buffer: Queue) -> None:
        while not stop.is_set():
            try:
                url, content = buffer.get(timeout=_POLL)
            except Empty:
                continue
            try:
                if content:
                    self.process(content, url)
            finally:
                with self._lock:
                    self._pending -= 1

    def _watch(self, stop: threading.Event) -> None:
        idle = 1
        while not stop.wait(self.idle_interval):
            with self._lock:
                quiet = self.queue.is_empty() and self._pending == 0
            if quiet:
                idle += 1
                if idle > self.idle_limit:
                    stop.set()
            else:
                idle = 0

    def run(self, timeout: float | None = DEFAULT_TIMEOUT) -> CrawlStats:
        """Crawl from the seed URL until idle or out of time; return the stats."""
        self.queue.enqueue(self.seed_url)
        self.visited.try_mark(self.seed_url)
        seed = self.queue.dequeue()
        self.process(self.fetch(seed), seed)

        stop = threading.Event()
        buffer: Queue = Queue(maxsize=BUFFER_SIZE)
        workers = [
            threading.Thread(target=self._produce, args=(stop, buffer), daemon=True),
            threading.Thread(target=self._consume, args=(stop, buffer), daemon=True),
            threading.Thread(target=self._watch, args=(stop,), daemon=True),
        ]
        for worker in workers:
            worker.start()
        stop.wait(timeout)
        stop.set()
        for worker in workers:
            worker.join()
        return self.stats


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Crawl one site and store its page text.")
    parser.add_argument("--seed", default=SEED_URL, help="URL to start crawling from")
    parser.add_argument(
        "--timeout", type=float, default=DEFAULT_TIMEOUT, help="seconds before giving up"
    )
    parser.add_argument("--env-file", default=".env", help="file holding DBCred")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    store = None
    credentials = load_credentials(args.env_file)
    if credentials:
        try:
            store = ContentStore.connect(credentials)
        except ConnectionError as err:
            print(err)

    crawler = Crawler(args.seed, store)
    stats = crawler.run(args.timeout)
    print(stats.report(crawler.queue))
    return 0