from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from app.config import Settings
from app.jobs.refresh_scheduler import DailySchedule, RefreshScheduler, ScheduledJob
from app.services.acting_matcher import ActingOfficialMatcher
from app.services.cache_store import CacheStore, InMemoryCacheStore, PostgresCacheStore
from app.services.pledge_resolver import PledgeResolver, PledgeResolverConfig
from app.services.predecessor_lookup import PredecessorLookup
from app.services.roster_models import RosterType
from app.services.roster_refresh import RosterRefreshService, RosterSourceConfig
from app.services.roster_store import RosterStore
from app.services.source_fetcher import SourceFetcher, SourceFetcherConfig
from app.services.winner_cache import WinnerLookupCache, WinnerLookupConfig

logger = logging.getLogger(__name__)


@dataclass
class RosterEngine:
    fetcher: SourceFetcher
    store: CacheStore
    winner_cache: WinnerLookupCache
    roster_store: RosterStore
    refresher: RosterRefreshService
    pledge_resolver: PledgeResolver
    predecessors: PredecessorLookup

    async def load_snapshots(self) -> dict[str, bool]:
        return {roster_type.value: await self.roster_store.load(roster_type) for roster_type in RosterType}


def build_store(settings: Settings) -> CacheStore:
    if str(settings.database_url or "").strip():
        return PostgresCacheStore()
    logger.warning("cache_store_in_memory reason=database_url_not_set")
    return InMemoryCacheStore()


def build_engine(settings: Settings, *, store: CacheStore | None = None, fetcher: SourceFetcher | None = None) -> RosterEngine:
    store = store if store is not None else build_store(settings)
    fetcher = fetcher or SourceFetcher(
        SourceFetcherConfig(
            timeout_sec=settings.data_go_timeout_sec,
            navigation_timeout_sec=settings.wiki_navigation_timeout_sec,
            max_retries=settings.data_go_max_retries,
            requests_per_sec=settings.data_go_requests_per_sec,
            user_agent=settings.wiki_user_agent,
        )
    )
    winner_cache = WinnerLookupCache(
        WinnerLookupConfig(
            endpoint_url=settings.data_go_winner_endpoint_url,
            service_key=settings.data_go_kr_key,
            sg_id=settings.winner_sg_id,
            page_size=settings.winner_page_size,
            max_pages=settings.winner_max_pages,
            page_delay_sec=settings.winner_page_delay_sec,
        ),
        fetcher,
        store,
    )
    roster_store = RosterStore(store)
    refresher = RosterRefreshService(
        fetcher,
        roster_store,
        ActingOfficialMatcher(winner_cache),
        RosterSourceConfig(
            metropolitan_url=settings.wiki_metropolitan_url,
            basic_url=settings.wiki_basic_url,
            table_selector=settings.wiki_table_selector,
        ),
    )
    pledge_resolver = PledgeResolver(
        PledgeResolverConfig(
            candidate_search_url=settings.data_go_candidate_search_endpoint_url,
            pledge_url=settings.data_go_pledge_endpoint_url,
            service_key=settings.data_go_kr_key,
            search_num_of_rows=settings.candidate_search_num_of_rows,
            cache_ttl=timedelta(days=settings.pledge_cache_ttl_days),
        ),
        fetcher,
        store,
    )
    return RosterEngine(
        fetcher=fetcher,
        store=store,
        winner_cache=winner_cache,
        roster_store=roster_store,
        refresher=refresher,
        pledge_resolver=pledge_resolver,
        predecessors=PredecessorLookup(roster_store, pledge_resolver),
    )


def build_scheduler(engine: RosterEngine, settings: Settings) -> RefreshScheduler:
    jobs: list[ScheduledJob] = []
    times = {
        RosterType.METROPOLITAN: settings.metropolitan_refresh_time,
        RosterType.BASIC: settings.basic_refresh_time,
    }
    for roster_type, at in times.items():
        jobs.append(
            ScheduledJob(
                name=f"{roster_type.value}_roster",
                run=lambda rt=roster_type: engine.refresher.refresh_roster(rt),
                schedule=DailySchedule.parse(at, settings.scheduler_timezone),
                needs_cold_start=lambda rt=roster_type: not engine.roster_store.has_snapshot(rt),
            )
        )
    if settings.winner_cache_warmup:
        for roster_type in RosterType:
            jobs.append(
                ScheduledJob(
                    name=f"winner_cache_{roster_type.sg_typecode}",
                    run=lambda rt=roster_type: engine.winner_cache.winners_for(rt.sg_typecode),
                    needs_cold_start=lambda rt=roster_type: engine.winner_cache.partition(rt.sg_typecode) is None,
                )
            )
    return RefreshScheduler(jobs)
