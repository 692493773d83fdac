import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

from psycopg.types.json import Jsonb

from app.services.cache_store import PLEDGE_COLLECTION, WINNER_COLLECTION, InMemoryCacheStore, PostgresCacheStore


def _now() -> datetime:
    return datetime.now(timezone.utc)


def test_in_memory_store_round_trip_returns_copies():
    store = InMemoryCacheStore()
    payload = {"official_name": "오세훈", "pledges": [{"rank": 1}]}

    asyncio.run(store.upsert(PLEDGE_COLLECTION, "오세훈", payload))
    payload["pledges"].append({"rank": 2})
    doc = asyncio.run(store.find_by_id(PLEDGE_COLLECTION, "오세훈"))

    assert doc.payload == {"official_name": "오세훈", "pledges": [{"rank": 1}]}
    doc.payload["pledges"].clear()
    again = asyncio.run(store.find_by_id(PLEDGE_COLLECTION, "오세훈"))
    assert again.payload["pledges"] == [{"rank": 1}]


def test_in_memory_store_hides_and_purges_expired_documents():
    store = InMemoryCacheStore()
    asyncio.run(store.upsert(PLEDGE_COLLECTION, "old", {"x": 1}, expires_at=_now() - timedelta(seconds=1)))

    assert asyncio.run(store.find_by_id(PLEDGE_COLLECTION, "old", include_expired=True)) is not None
    assert asyncio.run(store.find_by_id(PLEDGE_COLLECTION, "old")) is None
    assert asyncio.run(store.find_by_id(PLEDGE_COLLECTION, "old", include_expired=True)) is None


def test_in_memory_store_delete_collection_with_prefix():
    store = InMemoryCacheStore()
    for doc_id in ("20220601-3", "20220601-4", "20180613-3"):
        asyncio.run(store.upsert(WINNER_COLLECTION, doc_id, {"id": doc_id}))
    asyncio.run(store.upsert(PLEDGE_COLLECTION, "20220601-x", {}))

    assert asyncio.run(store.delete_collection(WINNER_COLLECTION, prefix="20220601")) == 2
    assert asyncio.run(store.find_by_id(WINNER_COLLECTION, "20180613-3")) is not None
    assert asyncio.run(store.find_by_id(PLEDGE_COLLECTION, "20220601-x")) is not None
    assert asyncio.run(store.delete(WINNER_COLLECTION, "20180613-3")) is True
    assert asyncio.run(store.delete(WINNER_COLLECTION, "20180613-3")) is False


class FakeCursor:
    def __init__(self, conn: "FakeConnection"):
        self.conn = conn
        self.rowcount = 0

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):  # noqa: ANN001
        return False

    async def execute(self, query, params=None):  # noqa: ANN001
        self.conn.executed.append((" ".join(query.split()), params))
        if query.strip().startswith("DELETE"):
            self.rowcount = self.conn.rowcount

    async def fetchone(self):
        return self.conn.row


class FakeConnection:
    def __init__(self, row=None, rowcount: int = 0):  # noqa: ANN001
        self.row = row
        self.rowcount = rowcount
        self.executed: list[tuple[str, object]] = []
        self.commits = 0

    def cursor(self):
        return FakeCursor(self)

    async def commit(self):
        self.commits += 1


def _factory(conn: FakeConnection):
    @asynccontextmanager
    async def connect():
        yield conn

    return connect


def test_postgres_store_upsert_wraps_payload_as_jsonb():
    conn = FakeConnection()
    store = PostgresCacheStore(_factory(conn))
    expires_at = _now() + timedelta(days=7)

    asyncio.run(store.upsert(PLEDGE_COLLECTION, "오세훈", {"a": 1}, expires_at=expires_at))

    query, params = conn.executed[0]
    assert query.startswith("INSERT INTO cache_documents")
    assert "ON CONFLICT (collection, doc_id) DO UPDATE" in query
    assert params[0] == PLEDGE_COLLECTION
    assert params[1] == "오세훈"
    assert isinstance(params[2], Jsonb)
    assert params[3] == expires_at
    assert conn.commits == 1


def test_postgres_store_find_returns_live_document():
    expires_at = _now() + timedelta(hours=1)
    conn = FakeConnection(row={"payload": {"a": 1}, "expires_at": expires_at})
    store = PostgresCacheStore(_factory(conn))

    doc = asyncio.run(store.find_by_id(PLEDGE_COLLECTION, "오세훈"))

    assert doc.payload == {"a": 1}
    assert doc.expires_at == expires_at
    assert len(conn.executed) == 1


def test_postgres_store_find_deletes_expired_document():
    conn = FakeConnection(row={"payload": {"a": 1}, "expires_at": _now() - timedelta(minutes=1)}, rowcount=1)
    store = PostgresCacheStore(_factory(conn))

    assert asyncio.run(store.find_by_id(PLEDGE_COLLECTION, "오세훈")) is None
    assert conn.executed[1][0].startswith("DELETE FROM cache_documents")
    assert conn.commits == 1


def test_postgres_store_find_can_include_expired():
    conn = FakeConnection(row={"payload": {"a": 1}, "expires_at": _now() - timedelta(minutes=1)})
    store = PostgresCacheStore(_factory(conn))

    doc = asyncio.run(store.find_by_id(PLEDGE_COLLECTION, "오세훈", include_expired=True))

    assert doc is not None
    assert len(conn.executed) == 1


def test_postgres_store_delete_reports_rowcount():
    conn = FakeConnection(rowcount=3)
    store = PostgresCacheStore(_factory(conn))

    assert asyncio.run(store.delete(WINNER_COLLECTION, "20220601-3")) is True
    assert asyncio.run(store.delete_collection(WINNER_COLLECTION, prefix="20220601")) == 3
    assert conn.executed[-1][1] == (WINNER_COLLECTION, "20220601%")
