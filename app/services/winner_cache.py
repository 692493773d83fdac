from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from app.services.cache_store import WINNER_COLLECTION, CacheStore
from app.services.roster_models import WinnerCachePartition, WinnerRecord, utc_now, winner_partition_id
from app.services.source_fetcher import SourceFetcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WinnerLookupConfig:
    endpoint_url: str
    service_key: str | None
    sg_id: str = "20220601"
    page_size: int = 100
    max_pages: int = 10
    page_delay_sec: float = 0.3


class WinnerLookupCache:
    """Election winners per election-type code, kept until explicitly cleared."""

    def __init__(
        self,
        config: WinnerLookupConfig,
        fetcher: SourceFetcher,
        store: CacheStore,
        *,
        sleep_fn: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config
        self.fetcher = fetcher
        self.store = store
        self._sleep = sleep_fn
        self._partitions: dict[str, WinnerCachePartition] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def is_configured(self) -> bool:
        return bool(self.config.endpoint_url and self.config.service_key)

    def partition(self, type_code: str) -> WinnerCachePartition | None:
        return self._partitions.get(winner_partition_id(self.config.sg_id, type_code))

    async def winners_for(self, type_code: str) -> tuple[WinnerRecord, ...]:
        cache_id = winner_partition_id(self.config.sg_id, type_code)
        hit = self._partitions.get(cache_id)
        if hit is not None and hit.winners:
            return hit.winners

        lock = self._locks.setdefault(cache_id, asyncio.Lock())
        async with lock:
            hit = self._partitions.get(cache_id)
            if hit is not None and hit.winners:
                return hit.winners

            stored = await self._load_partition(cache_id)
            if stored is not None and stored.winners:
                self._partitions[cache_id] = stored
                return stored.winners

            if not self.is_configured():
                logger.warning("winner_lookup_not_configured sg_typecode=%s", type_code)
                return ()

            partition = await self._fetch_partition(type_code)
            if partition.winners:
                self._partitions[cache_id] = partition
                await self._save_partition(partition)
            return partition.winners

    async def clear(self, type_code: str | None = None) -> int:
        if type_code is None:
            cleared = len(self._partitions)
            self._partitions = {}
            removed = await self.store.delete_collection(WINNER_COLLECTION)
            logger.info("winner_cache_cleared scope=all memory=%s store=%s", cleared, removed)
            return max(cleared, removed)

        cache_id = winner_partition_id(self.config.sg_id, type_code)
        in_memory = self._partitions.pop(cache_id, None) is not None
        in_store = await self.store.delete(WINNER_COLLECTION, cache_id)
        logger.info("winner_cache_cleared scope=%s memory=%s store=%s", cache_id, in_memory, in_store)
        return int(in_memory or in_store)

    async def _fetch_partition(self, type_code: str) -> WinnerCachePartition:
        winners: list[WinnerRecord] = []
        complete = True
        page_no = 1
        while True:
            params = {
                "serviceKey": self.config.service_key or "",
                "sgId": self.config.sg_id,
                "sgTypecode": type_code,
                "numOfRows": str(self.config.page_size),
                "pageNo": str(page_no),
                "resultType": "json",
            }
            try:
                items = await self.fetcher.fetch_items(self.config.endpoint_url, params)
            except Exception as exc:  # noqa: BLE001
                logger.warning(
                    "winner_lookup_page_failed sg_typecode=%s page=%s kept=%s error=%s",
                    type_code,
                    page_no,
                    len(winners),
                    exc,
                )
                complete = False
                break

            for item in items:
                record = WinnerRecord.from_item(item, default_elected=True)
                if record.elected and record.name:
                    winners.append(record)

            if len(items) < self.config.page_size:
                break
            if page_no >= self.config.max_pages:
                logger.warning("winner_lookup_page_cap_hit sg_typecode=%s pages=%s", type_code, page_no)
                complete = False
                break
            page_no += 1
            if self.config.page_delay_sec > 0:
                await self._sleep(self.config.page_delay_sec)

        logger.info(
            "winner_lookup_fetched sg_typecode=%s count=%s pages=%s complete=%s",
            type_code,
            len(winners),
            page_no,
            complete,
        )
        return WinnerCachePartition(
            sg_id=self.config.sg_id,
            sg_typecode=type_code,
            winners=tuple(winners),
            cached_at=utc_now(),
            complete=complete,
        )

    async def _load_partition(self, cache_id: str) -> WinnerCachePartition | None:
        try:
            doc = await self.store.find_by_id(WINNER_COLLECTION, cache_id)
            if doc is None:
                return None
            return WinnerCachePartition.from_dict(doc.payload)
        except Exception as exc:  # noqa: BLE001
            logger.warning("winner_cache_load_failed cache_id=%s error=%s", cache_id, exc)
            return None

    async def _save_partition(self, partition: WinnerCachePartition) -> None:
        try:
            await self.store.upsert(WINNER_COLLECTION, partition.cache_id, partition.to_dict())
        except Exception as exc:  # noqa: BLE001
            logger.warning("winner_cache_save_failed cache_id=%s error=%s", partition.cache_id, exc)
