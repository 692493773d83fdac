from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncContextManager, Callable, Protocol

from psycopg.types.json import Jsonb

from app.db import get_connection

logger = logging.getLogger(__name__)

ROSTER_COLLECTION = "roster_snapshots"
WINNER_COLLECTION = "election_winners"
PLEDGE_COLLECTION = "governor_pledges"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class StoredDocument:
    payload: dict[str, Any]
    expires_at: datetime | None = None

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at is not None and self.expires_at <= (now or _utc_now())


class CacheStore(Protocol):
    async def find_by_id(
        self, collection: str, doc_id: str, *, include_expired: bool = False
    ) -> StoredDocument | None: ...

    async def upsert(
        self, collection: str, doc_id: str, payload: dict[str, Any], *, expires_at: datetime | None = None
    ) -> None: ...

    async def delete(self, collection: str, doc_id: str) -> bool: ...

    async def delete_collection(self, collection: str, *, prefix: str | None = None) -> int: ...


class InMemoryCacheStore:
    """Process-local store used when no DATABASE_URL is configured."""

    def __init__(self):
        self._docs: dict[tuple[str, str], StoredDocument] = {}

    async def find_by_id(
        self, collection: str, doc_id: str, *, include_expired: bool = False
    ) -> StoredDocument | None:
        doc = self._docs.get((collection, doc_id))
        if doc is None:
            return None
        if doc.is_expired() and not include_expired:
            self._docs.pop((collection, doc_id), None)
            return None
        return StoredDocument(payload=copy.deepcopy(doc.payload), expires_at=doc.expires_at)

    async def upsert(
        self, collection: str, doc_id: str, payload: dict[str, Any], *, expires_at: datetime | None = None
    ) -> None:
        self._docs[(collection, doc_id)] = StoredDocument(payload=copy.deepcopy(payload), expires_at=expires_at)

    async def delete(self, collection: str, doc_id: str) -> bool:
        return self._docs.pop((collection, doc_id), None) is not None

    async def delete_collection(self, collection: str, *, prefix: str | None = None) -> int:
        keys = [
            key for key in self._docs if key[0] == collection and (prefix is None or key[1].startswith(prefix))
        ]
        for key in keys:
            self._docs.pop(key, None)
        return len(keys)


ConnectionFactory = Callable[[], AsyncContextManager[Any]]


class PostgresCacheStore:
    def __init__(self, connection_factory: ConnectionFactory = get_connection):
        self._connection_factory = connection_factory

    async def find_by_id(
        self, collection: str, doc_id: str, *, include_expired: bool = False
    ) -> StoredDocument | None:
        async with self._connection_factory() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT payload, expires_at
                    FROM cache_documents
                    WHERE collection = %s AND doc_id = %s
                    """,
                    (collection, doc_id),
                )
                row = await cur.fetchone()
            if row is None:
                return None

            doc = StoredDocument(payload=row["payload"], expires_at=row["expires_at"])
            if doc.is_expired() and not include_expired:
                async with conn.cursor() as cur:
                    await cur.execute(
                        """
                        DELETE FROM cache_documents
                        WHERE collection = %s AND doc_id = %s AND expires_at <= now()
                        """,
                        (collection, doc_id),
                    )
                await conn.commit()
                logger.debug("cache_document_expired collection=%s doc_id=%s", collection, doc_id)
                return None
            return doc

    async def upsert(
        self, collection: str, doc_id: str, payload: dict[str, Any], *, expires_at: datetime | None = None
    ) -> None:
        async with self._connection_factory() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO cache_documents (collection, doc_id, payload, expires_at, updated_at)
                    VALUES (%s, %s, %s, %s, now())
                    ON CONFLICT (collection, doc_id) DO UPDATE
                    SET payload = EXCLUDED.payload,
                        expires_at = EXCLUDED.expires_at,
                        updated_at = now()
                    """,
                    (collection, doc_id, Jsonb(payload), expires_at),
                )
            await conn.commit()

    async def delete(self, collection: str, doc_id: str) -> bool:
        async with self._connection_factory() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    "DELETE FROM cache_documents WHERE collection = %s AND doc_id = %s",
                    (collection, doc_id),
                )
                deleted = cur.rowcount
            await conn.commit()
        return bool(deleted and deleted > 0)

    async def delete_collection(self, collection: str, *, prefix: str | None = None) -> int:
        async with self._connection_factory() as conn:
            async with conn.cursor() as cur:
                if prefix is None:
                    await cur.execute("DELETE FROM cache_documents WHERE collection = %s", (collection,))
                else:
                    await cur.execute(
                        "DELETE FROM cache_documents WHERE collection = %s AND doc_id LIKE %s",
                        (collection, f"{prefix}%"),
                    )
                deleted = cur.rowcount
            await conn.commit()
        return max(int(deleted or 0), 0)
