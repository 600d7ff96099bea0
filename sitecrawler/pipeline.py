"""Three-stage crawl pipeline: fetch pages, extract their text, store it."""

from __future__ import annotations

import argparse
import logging
import os
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from queue import Queue
from typing import Any, Callable, Sequence

from pymongo.errors import PyMongoError

from .extract import PageContent, extract_page
from .pubsub import PubSub
from .queue import VisitedSet, WorkQueue
from .robots import Response, RobotsDisallowed, check_robots, send_request
from .storage import (
    COLLECTION_CONTENT,
    CREDENTIALS_VARIABLE,
    ContentStore,
    load_credentials,
)

log = logging.getLogger(__name__)

SEED_URL = "https://nexford.edu/"
CONTENT_TOPIC = "add_content"
METADATA_TOPIC = "add_metadata"
BODY_BUFFER = 10
CONTENT_BUFFER = 100
IDLE_WAIT = 0.5
IDLE_LIMIT = 3


@dataclass
class CrawledURL:
    """A URL waiting to be crawled, or a crawled page with its raw HTML."""

    url: str
    domain: str = ""
    html_raw: bytes = b""
    crawled_at: datetime | None = None


@dataclass
class PipelineStats:
    """Counters shared by the pipeline stages."""

    visited: VisitedSet = field(default_factory=VisitedSet)
    page_count: int = 0
    total_crawl_size: int = 0
    skipped_pages_robots: int = 0
    start_time: float = field(default_factory=time.monotonic)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def _count_page(self) -> None:
        with self._lock:
            self.page_count += 1

    def _count_skipped(self) -> None:
        with self._lock:
            self.skipped_pages_robots += 1

    def report(self, queued: int, now: float | None = None) -> str:
        """Summary of the crawl; ``now`` is a ``time.monotonic`` reading."""
        if now is None:
            now = time.monotonic()
        minutes = (now - self.start_time) / 60
        return "\n".join(
            [
                f"total queued {queued}",
                f"total crawl sized: {self.total_crawl_size}",
                f"total number of page crawled: {self.page_count}",
                f"total crawld time in min: {minutes:.2f}",
                f"number of page skipped due to robots.txt: {self.skipped_pages_robots}",
            ]
        )


def crawl_web_page(
    queue: WorkQueue[CrawledURL],
    bodies: Queue,
    stats: PipelineStats,
    visited: VisitedSet | None = None,
    fetch: Callable[[str], Response] = send_request,
    idle_wait: float = IDLE_WAIT,
) -> None:
    """Fetch queued URLs and put successful pages on ``bodies``.

    Stops after the queue has been found empty more than three times in a
    row, and then puts None on ``bodies`` to mark the end.
    """
    if visited is None:
        visited = stats.visited
    idle = 0
    while True:
        popped = queue.dequeue()
        if popped is None:
            time.sleep(idle_wait)
            idle += 1
            if idle > IDLE_LIMIT:
                bodies.put(None)
                return
            continue
        idle = 0

        try:
            allowed = check_robots(popped.url, fetch)
        except RobotsDisallowed as err:
            log.info("%s", err)
            continue
        except (ValueError, OSError) as err:
            log.warning("robots.txt check failed for %s: %s", popped.url, err)
            stats._count_skipped()
            continue

        if allowed in visited:
            continue
        try:
            response = fetch(allowed)
        except (ValueError, OSError) as err:
            log.warning("%s: added url back to queue error: %s", allowed, err)
            queue.enqueue(popped)
            continue
        visited.mark(allowed)
        if response.status == 200:
            bodies.put(CrawledURL(url=allowed, html_raw=response.body))


def extract_text_data(
    bodies: Queue,
    queue: WorkQueue[CrawledURL],
    pubsub: PubSub,
    stats: PipelineStats,
    visited: VisitedSet | None = None,
    seed_url: str = SEED_URL,
) -> None:
    """Extract every page from ``bodies`` until None arrives.

    Unvisited same-site links go back on ``queue`` and the page text is
    published on the content topic.
    """
    if visited is None:
        visited = stats.visited
    for crawled in iter(bodies.get, None):
        page = extract_page(crawled.html_raw, seed_url, crawled.url)
        for href in page.links:
            if href not in visited:
                queue.enqueue(CrawledURL(url=href))
        stats._count_page()
        pubsub.publish(CONTENT_TOPIC, page)


def _store_content(subscription: Any, store: Any | None) -> None:
    for content in subscription:
        if isinstance(content, PageContent) and store is not None:
            try:
                store.add(COLLECTION_CONTENT, content)
            except PyMongoError as err:
                log.error("inserting data error: %s", err)


def run_pipeline(
    seed_url: str = SEED_URL,
    store: Any | None = None,
    fetch: Callable[[str], Response] = send_request,
) -> PipelineStats:
    """Crawl from ``seed_url`` with one fetching, one extracting and one storing thread."""
    queue: WorkQueue[CrawledURL] = WorkQueue()
    queue.enqueue(CrawledURL(url=seed_url))
    bodies: Queue = Queue(maxsize=BODY_BUFFER)
    stats = PipelineStats()
    pubsub: PubSub[Any] = PubSub()
    content = pubsub.subscribe(CONTENT_TOPIC, CONTENT_BUFFER)

    def extract() -> None:
        try:
            extract_text_data(bodies, queue, pubsub, stats, stats.visited, seed_url)
        finally:
            pubsub.shutdown()

    workers = [
        threading.Thread(target=_store_content, args=(content, store), daemon=True),
        threading.Thread(
            target=crawl_web_page,
            args=(queue, bodies, stats, stats.visited, fetch, IDLE_WAIT),
            daemon=True,
        ),
        threading.Thread(target=extract, daemon=True),
    ]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()
    return stats


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Crawl one site through a staged pipeline.")
    parser.add_argument("--seed", default=SEED_URL, help="URL to start crawling from")
    parser.add_argument("--env-file", default=".env", help="file holding DBCred")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    credentials = load_credentials(args.env_file) or os.environ.get(CREDENTIALS_VARIABLE)
    store = None
    if credentials:
        try:
            store = ContentStore.connect(credentials)
        except ConnectionError as err:
            print(err)
    else:
        print("no db cred provided, continuing...")

    stats = run_pipeline(args.seed, store)
    print(
        "-------------------------------> finished crawling data... "
        f"from provided seed url: {args.seed} <--------------------------------- "
    )
    print(stats.report(len(stats.visited)))
    return 0