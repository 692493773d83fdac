import asyncio

from app.services.cache_store import InMemoryCacheStore
from app.services.errors import SourceUnavailable
from app.services.predecessor_lookup import PredecessorLookup
from app.services.roster_models import OfficialRecord, RosterSnapshot, RosterType, utc_now
from app.services.roster_store import RosterStore


class FakeResolver:
    def __init__(self, results: dict[str, list[dict]], failing: set[str] | None = None):
        self.results = results
        self.failing = failing or set()
        self.searched: list[str] = []

    async def search_candidates(self, name: str):
        self.searched.append(name)
        if name in self.failing:
            raise SourceUnavailable("timeout")
        return self.results.get(name, [])


def _item(name, sg_id, *, huboid, sido="경기도", typecode="3", elected="Y"):  # noqa: ANN001
    return {
        "name": name,
        "sgId": sg_id,
        "sgTypecode": typecode,
        "huboid": huboid,
        "sidoName": sido,
        "sggName": sido,
        "jdName": "정당",
        "elcoYn": elected,
    }


def _store_with(roster_type: RosterType, officials: list[OfficialRecord]) -> RosterStore:
    store = RosterStore(InMemoryCacheStore())
    snapshot = RosterSnapshot(
        roster_type=roster_type,
        officials=tuple(officials),
        last_updated=utc_now(),
        source_count=len(officials),
    )
    asyncio.run(store.publish(snapshot))
    return store


def test_previous_governors_sorted_newest_first_and_filtered():
    store = _store_with(
        RosterType.METROPOLITAN,
        [
            OfficialRecord(region="경기도", position="경기도지사", name="김동연"),
            OfficialRecord(region="서울특별시", position="서울특별시장", name="오세훈"),
        ],
    )
    resolver = FakeResolver(
        {
            "김동연": [
                _item("김동연", "20220601", huboid="a"),
                _item("김동연", "20220601", huboid="a"),
                _item("김동연", "20180613", huboid="b", elected="N"),
                _item("김동연", "20200415", huboid="c", typecode="2"),
                _item("김동연", "20140604", huboid="d", sido="서울특별시"),
                _item("김동연", "20100602", huboid="e"),
            ]
        }
    )

    winners = asyncio.run(PredecessorLookup(store, resolver).find_predecessors("경기"))

    assert resolver.searched == ["김동연"]
    assert [(row.huboid, row.sg_id) for row in winners] == [("a", "20220601"), ("e", "20100602")]


def test_previous_governors_also_searches_attached_predecessor():
    store = _store_with(
        RosterType.METROPOLITAN,
        [
            OfficialRecord(
                region="부산광역시",
                position="부산광역시장",
                name="박형준 → 이성권(대행)",
                notes="권한대행",
                previous_governor="박형준",
            )
        ],
    )
    resolver = FakeResolver({"박형준": [_item("박형준", "20220601", huboid="p", sido="부산광역시")]})

    winners = asyncio.run(PredecessorLookup(store, resolver).find_predecessors("부산광역시"))

    assert resolver.searched == ["이성권", "박형준"]
    assert [row.name for row in winners] == ["박형준"]


def test_previous_basic_governors_use_basic_typecode():
    store = _store_with(
        RosterType.BASIC,
        [OfficialRecord(region="경기도", position="수원시장", name="이재준")],
    )
    resolver = FakeResolver(
        {
            "이재준": [
                _item("이재준", "20220601", huboid="x", typecode="4"),
                _item("이재준", "20220601", huboid="y", typecode="3"),
            ]
        }
    )

    winners = asyncio.run(PredecessorLookup(store, resolver).find_predecessors("수원", is_basic=True))

    assert [row.huboid for row in winners] == ["x"]


def test_previous_governors_search_failure_is_contained():
    store = _store_with(
        RosterType.METROPOLITAN,
        [OfficialRecord(region="경기도", position="경기도지사", name="김동연")],
    )
    resolver = FakeResolver({}, failing={"김동연"})

    assert asyncio.run(PredecessorLookup(store, resolver).find_predecessors("경기도")) == []


def test_previous_governors_without_snapshot_or_match_is_empty():
    empty_store = RosterStore(InMemoryCacheStore())
    resolver = FakeResolver({})
    assert asyncio.run(PredecessorLookup(empty_store, resolver).find_predecessors("경기도")) == []

    store = _store_with(
        RosterType.METROPOLITAN,
        [OfficialRecord(region="경기도", position="경기도지사", name="김동연")],
    )
    assert asyncio.run(PredecessorLookup(store, resolver).find_predecessors("제주")) == []
    assert resolver.searched == []
