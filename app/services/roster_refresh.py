from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Iterable

from app.services.acting_matcher import ActingOfficialMatcher
from app.services.errors import MalformedSource
from app.services.roster_extractor import BASIC_TABLE_LAYOUT, ExtractionResult, TableRegionLayout, extractor_for
from app.services.roster_models import RosterSnapshot, RosterType, utc_now
from app.services.roster_store import RosterStore
from app.services.source_fetcher import SourceFetcher
from app.services.table_scraper import ScrapedTable, extract_table_rows

logger = logging.getLogger(__name__)

ScrapeFn = Callable[[str, str], list[ScrapedTable]]


@dataclass(frozen=True)
class RosterSourceConfig:
    metropolitan_url: str
    basic_url: str
    table_selector: str = "table.wikitable"

    def url_for(self, roster_type: RosterType) -> str:
        if roster_type is RosterType.METROPOLITAN:
            return self.metropolitan_url
        return self.basic_url


@dataclass
class RefreshOutcome:
    roster_type: str
    status: str
    count: int = 0
    dropped_count: int = 0
    below_expected: bool = False
    stale_serving: bool = False
    detail: str | None = None
    started_at: str | None = None
    finished_at: str | None = None
    duration_seconds: float | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class RefreshReport:
    outcomes: list[RefreshOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.outcomes) and all(row.status in {"success", "skipped"} for row in self.outcomes)

    @property
    def status(self) -> str:
        return "success" if self.success else "partial_failure"

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "status": self.status,
            "outcomes": [row.to_dict() for row in self.outcomes],
        }


class RosterRefreshService:
    """Scrape, reconcile and publish one roster type at a time.

    A failure at any step leaves the previously published snapshot live.
    """

    def __init__(
        self,
        fetcher: SourceFetcher,
        roster_store: RosterStore,
        matcher: ActingOfficialMatcher,
        sources: RosterSourceConfig,
        *,
        layout: TableRegionLayout = BASIC_TABLE_LAYOUT,
        scrape_fn: ScrapeFn = extract_table_rows,
    ):
        self.fetcher = fetcher
        self.roster_store = roster_store
        self.matcher = matcher
        self.sources = sources
        self.layout = layout
        self._scrape = scrape_fn
        self._in_flight: set[RosterType] = set()

    def is_refreshing(self, roster_type: RosterType) -> bool:
        return roster_type in self._in_flight

    async def _build_snapshot(self, roster_type: RosterType) -> tuple[RosterSnapshot, ExtractionResult, bool]:
        url = self.sources.url_for(roster_type)
        html = await self.fetcher.fetch_document(url)
        tables = await asyncio.to_thread(self._scrape, html, self.sources.table_selector)

        extractor = extractor_for(roster_type, layout=self.layout)
        result = extractor.extract(tables)
        if not result.officials:
            raise MalformedSource(f"no {roster_type.value} officials extracted", source=url)

        reconciled = await self.matcher.reconcile(result.officials, roster_type)
        snapshot = RosterSnapshot(
            roster_type=roster_type,
            officials=tuple(reconciled),
            last_updated=utc_now(),
            source_count=len(result.officials),
            source_url=url,
        )
        return snapshot, result, len(result.officials) < extractor.warn_below

    async def refresh_roster(self, roster_type: RosterType) -> RefreshOutcome:
        started_at = utc_now()
        started_monotonic = time.monotonic()
        if roster_type in self._in_flight:
            logger.info("roster_refresh_skipped roster_type=%s reason=in_flight", roster_type.value)
            return RefreshOutcome(
                roster_type=roster_type.value,
                status="skipped",
                detail="refresh already in progress",
                started_at=started_at.isoformat(),
                finished_at=started_at.isoformat(),
                duration_seconds=0.0,
            )

        self._in_flight.add(roster_type)
        logger.info("roster_refresh_start roster_type=%s", roster_type.value)
        try:
            snapshot, extraction, below_expected = await self._build_snapshot(roster_type)
            await self.roster_store.publish(snapshot)
        except Exception as exc:  # noqa: BLE001
            stale = self.roster_store.has_snapshot(roster_type)
            logger.exception(
                "roster_refresh_failed roster_type=%s stale_serving=%s error=%s",
                roster_type.value,
                stale,
                exc,
            )
            return RefreshOutcome(
                roster_type=roster_type.value,
                status="failed",
                stale_serving=stale,
                detail=f"{exc.__class__.__name__}: {exc}",
                started_at=started_at.isoformat(),
                finished_at=utc_now().isoformat(),
                duration_seconds=round(time.monotonic() - started_monotonic, 3),
            )
        finally:
            self._in_flight.discard(roster_type)

        return RefreshOutcome(
            roster_type=roster_type.value,
            status="success",
            count=len(snapshot.officials),
            dropped_count=extraction.to_summary()["dropped_count"],
            below_expected=below_expected,
            started_at=started_at.isoformat(),
            finished_at=utc_now().isoformat(),
            duration_seconds=round(time.monotonic() - started_monotonic, 3),
        )

    async def refresh_all(self, roster_types: Iterable[RosterType] = tuple(RosterType)) -> RefreshReport:
        report = RefreshReport()
        for roster_type in roster_types:
            report.outcomes.append(await self.refresh_roster(roster_type))
        logger.info(
            "roster_refresh_all_done status=%s outcomes=%s",
            report.status,
            ",".join(f"{row.roster_type}:{row.status}" for row in report.outcomes),
        )
        return report
