"""MongoDB storage for crawled pages and credential loading."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pymongo import ASCENDING, TEXT, MongoClient
from pymongo.errors import PyMongoError

from .extract import PageContent

log = logging.getLogger(__name__)

DB_NAME = "crawledContent"
COLLECTION_CONTENT = "content"
COLLECTION_METADATA = "url_metadata"
CREDENTIALS_VARIABLE = "DBCred"
PING_TIMEOUT_MS = 2000

_INDEXES = (
    (
        COLLECTION_CONTENT,
        [("title", TEXT), ("body", TEXT)],
        {},
        "unable to create text index on collection",
    ),
    (
        COLLECTION_METADATA,
        [("path", ASCENDING)],
        {"unique": True},
        "unable to create unique index on url",
    ),
    (
        COLLECTION_METADATA,
        [("url", ASCENDING)],
        {"unique": True},
        "unable to create unique index on url",
    ),
)


def _document(document: Any) -> dict[str, Any]:
    """Turn a page, a dataclass or a mapping into a fresh MongoDB document."""
    if isinstance(document, PageContent):
        return {
            "title": document.title,
            "body": document.body,
            "path": document.path,
            "added_at": document.added_at,
        }
    if is_dataclass(document) and not isinstance(document, type):
        return asdict(document)
    if isinstance(document, Mapping):
        return dict(document)
    raise TypeError(f"cannot store a {type(document).__name__} as a document")


class ContentStore:
    """Writes crawled documents into the crawler's MongoDB database."""

    def __init__(self, client: Any, db_name: str = DB_NAME) -> None:
        self.client = client
        self.db_name = db_name
        self._database = client[db_name]

    @classmethod
    def connect(cls, conn_str: str) -> ContentStore:
        """Connect, ping the server and make sure the indexes exist.

        Raises ConnectionError when the client cannot be created or the
        server does not answer the ping.
        """
        try:
            client = MongoClient(conn_str, serverSelectionTimeoutMS=PING_TIMEOUT_MS)
        except (PyMongoError, ValueError) as err:
            raise ConnectionError(f"could not connect to mongodb: {err}") from err
        try:
            client.admin.command("ping")
        except PyMongoError as err:
            client.close()
            raise ConnectionError(f"could not ping: {err}") from err
        store = cls(client)
        store.ensure_indexes()
        log.info("database connected successfully")
        return store

    def ensure_indexes(self) -> list[str]:
        """Create the text and unique indexes; return the names that were created.

        An index that cannot be created is logged and skipped.
        """
        created: list[str] = []
        for collection, keys, options, message in _INDEXES:
            try:
                created.append(self._database[collection].create_index(keys, **options))
            except PyMongoError as err:
                log.error("%s: %s", message, err)
        return created

    def add(self, collection: str, document: Any) -> Any:
        """Insert one document and return its id; insert failures are re-raised."""
        try:
            result = self._database[collection].insert_one(_document(document))
        except PyMongoError as err:
            log.error("failed to insert data in mongo: %s", err)
            raise
        log.info("Data added to database")
        return result.inserted_id


def load_credentials(env_file: str | os.PathLike[str] = ".env") -> str | None:
    """Load ``env_file`` and return the database connection string, if any.

    Without the file nothing is read and None is returned. Variables already
    present in the environment win over those in the file.
    """
    path = Path(env_file)
    if not path.is_file():
        log.info("no environment file set skipping...")
        return None
    load_dotenv(path)
    return os.environ.get(CREDENTIALS_VARIABLE) or None