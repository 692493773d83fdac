from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable

from app.services.cache_store import PLEDGE_COLLECTION, CacheStore
from app.services.errors import MalformedSource, NotFound, NotResolved
from app.services.region_names import clean_person_name
from app.services.roster_models import CandidateInfo, PledgeCacheEntry, PledgeItem, utc_now
from app.services.source_fetcher import SourceFetcher

logger = logging.getLogger(__name__)

# 3 = 시·도지사, 4 = 구·시·군의 장
REGIONAL_EXECUTIVE_TYPECODES = frozenset({"3", "4"})
MAX_PLEDGE_ITEMS = 10


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _sg_id_value(item: dict[str, Any]) -> int:
    try:
        return int(_text(item.get("sgId")) or "0")
    except ValueError:
        return 0


def is_elected_regional_executive(item: dict[str, Any], type_codes: frozenset[str] = REGIONAL_EXECUTIVE_TYPECODES) -> bool:
    return _text(item.get("sgTypecode")) in type_codes and _text(item.get("elcoYn")).upper() == "Y"


def select_latest_candidate(items: list[dict[str, Any]]) -> CandidateInfo | None:
    """Most recent elected regional-executive candidacy; first one wins on equal sgId."""
    latest: dict[str, Any] | None = None
    for item in items:
        if not is_elected_regional_executive(item):
            continue
        if latest is None or _sg_id_value(item) > _sg_id_value(latest):
            latest = item
    if latest is None or not _text(latest.get("huboid")):
        return None
    return CandidateInfo(
        huboid=_text(latest.get("huboid")),
        sg_id=_text(latest.get("sgId")),
        sg_typecode=_text(latest.get("sgTypecode")),
        name=_text(latest.get("name")),
        party=_text(latest.get("jdName")),
        sido_name=_text(latest.get("sidoName")),
        sgg_name=_text(latest.get("sggName")),
    )


def parse_pledges(item: dict[str, Any]) -> list[PledgeItem]:
    """Turn the numbered prmsOrd{i}/prmsRealmName{i}/prmsTitle{i}/prmmCont{i} fields into a list.

    Enumeration stops at the first index without a rank.
    """
    pledges: list[PledgeItem] = []
    for idx in range(1, MAX_PLEDGE_ITEMS + 1):
        rank_text = _text(item.get(f"prmsOrd{idx}"))
        if not rank_text:
            break
        try:
            rank = int(rank_text)
        except ValueError:
            rank = idx
        pledges.append(
            PledgeItem(
                rank=rank,
                domain=_text(item.get(f"prmsRealmName{idx}")),
                title=_text(item.get(f"prmsTitle{idx}")),
                # upstream spells the body field "prmmCont"
                text=_text(item.get(f"prmmCont{idx}") or item.get(f"prmsCont{idx}")),
            )
        )
    return pledges


@dataclass(frozen=True)
class PledgeResolverConfig:
    candidate_search_url: str
    pledge_url: str
    service_key: str | None
    search_num_of_rows: int = 50
    cache_ttl: timedelta = timedelta(days=7)


class PledgeResolver:
    def __init__(
        self,
        config: PledgeResolverConfig,
        fetcher: SourceFetcher,
        store: CacheStore,
        *,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self.fetcher = fetcher
        self.store = store
        self._clock = clock

    def is_configured(self) -> bool:
        return bool(self.config.candidate_search_url and self.config.pledge_url and self.config.service_key)

    async def search_candidates(self, name: str) -> list[dict[str, Any]]:
        params = {
            "serviceKey": self.config.service_key or "",
            "name": name,
            "numOfRows": str(self.config.search_num_of_rows),
            "pageNo": "1",
            "resultType": "json",
        }
        return await self.fetcher.fetch_items(self.config.candidate_search_url, params)

    async def search_candidate(self, name: str) -> CandidateInfo | None:
        try:
            items = await self.search_candidates(name)
        except MalformedSource as exc:
            logger.warning("candidate_search_malformed name=%s error=%s", name, exc)
            return None
        return select_latest_candidate(items)

    async def fetch_pledge_item(self, candidate: CandidateInfo) -> dict[str, Any] | None:
        params = {
            "serviceKey": self.config.service_key or "",
            "sgId": candidate.sg_id,
            "sgTypecode": candidate.sg_typecode,
            "cnddtId": candidate.huboid,
            "numOfRows": "100",
            "pageNo": "1",
            "resultType": "json",
        }
        try:
            items = await self.fetcher.fetch_items(self.config.pledge_url, params)
        except MalformedSource as exc:
            logger.warning("pledge_fetch_malformed huboid=%s error=%s", candidate.huboid, exc)
            return None
        return items[0] if items else None

    async def cached_entry(self, official_name: str) -> PledgeCacheEntry | None:
        try:
            doc = await self.store.find_by_id(PLEDGE_COLLECTION, official_name)
        except Exception as exc:  # noqa: BLE001
            logger.warning("pledge_cache_load_failed name=%s error=%s", official_name, exc)
            return None
        if doc is None:
            return None
        try:
            entry = PledgeCacheEntry.from_dict(doc.payload)
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("pledge_cache_malformed name=%s error=%s", official_name, exc)
            return None
        if entry.is_expired(self._clock()):
            return None
        return entry

    async def resolve(self, official_name: str) -> PledgeCacheEntry:
        cached = await self.cached_entry(official_name)
        if cached is not None:
            logger.debug("pledge_cache_hit name=%s", official_name)
            return cached

        lookup_name = clean_person_name(official_name)
        if not lookup_name:
            raise NotResolved(f"no candidate for empty name: {official_name!r}")

        candidate = await self.search_candidate(lookup_name)
        if candidate is None:
            logger.info("pledge_candidate_not_resolved name=%s lookup=%s", official_name, lookup_name)
            raise NotResolved(f"no elected regional-executive candidate named {lookup_name}")

        item = await self.fetch_pledge_item(candidate)
        if item is None:
            logger.info("pledge_data_not_found name=%s huboid=%s sg_id=%s", official_name, candidate.huboid, candidate.sg_id)
            raise NotFound(f"no pledge data for {lookup_name} ({candidate.sg_id})")

        entry = PledgeCacheEntry.build(
            official_name,
            candidate,
            parse_pledges(item),
            ttl=self.config.cache_ttl,
            headline=item,
            now=self._clock(),
        )
        try:
            await self.store.upsert(PLEDGE_COLLECTION, official_name, entry.to_dict(), expires_at=entry.expires_at)
        except Exception as exc:  # noqa: BLE001
            logger.warning("pledge_cache_save_failed name=%s error=%s", official_name, exc)
        logger.info("pledge_resolved name=%s huboid=%s pledges=%s", official_name, candidate.huboid, len(entry.pledges))
        return entry

    async def debug_entry(self, official_name: str) -> PledgeCacheEntry | None:
        doc = await self.store.find_by_id(PLEDGE_COLLECTION, official_name, include_expired=True)
        if doc is None:
            return None
        return PledgeCacheEntry.from_dict(doc.payload)

    async def delete_entry(self, official_name: str) -> bool:
        deleted = await self.store.delete(PLEDGE_COLLECTION, official_name)
        logger.info("pledge_cache_deleted name=%s deleted=%s", official_name, deleted)
        return deleted
