"""Path-addressed document store used for nudge history, responses and insights.

Backends raise on I/O failure; callers in the service layer catch and degrade.
"""

import copy
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

import structlog

from nudge_engine.config import get_settings
from nudge_engine.database import ensure_database

logger = structlog.get_logger(__name__)


@dataclass
class DocumentSnapshot:
    """Result of a document read."""

    exists: bool
    data: dict[str, Any] = field(default_factory=dict)

    def get_field(self, key: str) -> Any:
        """Top-level value, or None when the document is missing or not an object."""
        if not self.exists or not isinstance(self.data, dict):
            return None
        return self.data.get(key)


class DocumentStore(ABC):
    """Async per-user document store contract."""

    @abstractmethod
    async def get(self, path: str) -> DocumentSnapshot:
        """Read a document. Missing documents return ``exists=False``."""

    @abstractmethod
    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        """Write a document. With ``merge`` top-level keys are merged into the existing document."""

    @abstractmethod
    async def batch_set(self, writes: Sequence[tuple[str, dict[str, Any]]]) -> None:
        """Overwrite several documents atomically."""


class InMemoryDocumentStore(DocumentStore):
    """Process-local store for development and single-process deployments."""

    def __init__(self):
        self._documents: dict[str, dict[str, Any]] = {}

    async def get(self, path: str) -> DocumentSnapshot:
        data = self._documents.get(path)
        if data is None:
            return DocumentSnapshot(exists=False)
        return DocumentSnapshot(exists=True, data=copy.deepcopy(data))

    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        if merge and path in self._documents:
            self._documents[path] = {**self._documents[path], **copy.deepcopy(data)}
        else:
            self._documents[path] = copy.deepcopy(data)

    async def batch_set(self, writes: Sequence[tuple[str, dict[str, Any]]]) -> None:
        for path, data in writes:
            self._documents[path] = copy.deepcopy(data)

    def paths(self, prefix: str = "") -> list[str]:
        """Stored paths under a prefix, sorted."""
        return sorted(p for p in self._documents if p.startswith(prefix))


class PostgresDocumentStore(DocumentStore):
    """Documents stored as JSONB rows in the ``documents`` table."""

    async def get(self, path: str) -> DocumentSnapshot:
        pool = await ensure_database()

        async with pool.acquire() as conn:
            data = await conn.fetchval(
                "SELECT data FROM documents WHERE path = $1",
                path,
            )

        if data is None:
            return DocumentSnapshot(exists=False)

        parsed = json.loads(data) if isinstance(data, str) else data
        if not isinstance(parsed, dict):
            # The column accepts any JSONB value; only objects are documents
            logger.warning("document_not_an_object", path=path, kind=type(parsed).__name__)
            parsed = {}
        return DocumentSnapshot(exists=True, data=parsed)

    async def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        pool = await ensure_database()

        if merge:
            query = """
                INSERT INTO documents (path, data, updated_at)
                VALUES ($1, $2::jsonb, NOW())
                ON CONFLICT (path) DO UPDATE
                SET data = documents.data || EXCLUDED.data, updated_at = NOW()
            """
        else:
            query = """
                INSERT INTO documents (path, data, updated_at)
                VALUES ($1, $2::jsonb, NOW())
                ON CONFLICT (path) DO UPDATE
                SET data = EXCLUDED.data, updated_at = NOW()
            """

        async with pool.acquire() as conn:
            await conn.execute(query, path, json.dumps(data, default=str))

    async def batch_set(self, writes: Sequence[tuple[str, dict[str, Any]]]) -> None:
        if not writes:
            return

        pool = await ensure_database()

        async with pool.acquire() as conn:
            async with conn.transaction():
                await conn.executemany(
                    """
                    INSERT INTO documents (path, data, updated_at)
                    VALUES ($1, $2::jsonb, NOW())
                    ON CONFLICT (path) DO UPDATE
                    SET data = EXCLUDED.data, updated_at = NOW()
                    """,
                    [(path, json.dumps(data, default=str)) for path, data in writes],
                )

        logger.debug("documents_batch_written", count=len(writes))


_store: Optional[DocumentStore] = None


def get_document_store() -> DocumentStore:
    """Get the configured document store backend (cached)."""
    global _store

    if _store is None:
        backend = get_settings().document_store_backend.lower()
        if backend == "memory":
            _store = InMemoryDocumentStore()
        else:
            _store = PostgresDocumentStore()
        logger.info("document_store_selected", backend=type(_store).__name__)

    return _store


def reset_document_store() -> None:
    """Drop the cached backend so the next call re-reads settings."""
    global _store
    _store = None
