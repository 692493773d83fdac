from __future__ import annotations

import logging
from typing import Any

from app.services.pledge_resolver import PledgeResolver
from app.services.region_names import clean_person_name, normalize_region_name, strip_region_suffix
from app.services.roster_models import OfficialRecord, RosterType, WinnerRecord
from app.services.roster_store import RosterStore

logger = logging.getLogger(__name__)


def _official_in_region(official: OfficialRecord, region: str, *, is_basic: bool) -> bool:
    if official.region == region:
        return True
    if is_basic:
        return region in official.region or region in official.position
    return region in official.position


def _sido_matches(item: dict[str, Any], regions: set[str]) -> bool:
    sido = str(item.get("sidoName") or "").strip()
    if not sido:
        return False
    for region in regions:
        if sido == region:
            return True
        base = strip_region_suffix(region)
        if base and base in sido:
            return True
    return False


class PredecessorLookup:
    """Past elected officeholders for a region, found via the candidate search API.

    Every official currently listed for the region (and any predecessor already
    attached to an acting official) is searched by name; only elected
    candidacies of the matching election type in the same 시·도 are kept.
    """

    def __init__(self, roster_store: RosterStore, resolver: PledgeResolver):
        self.roster_store = roster_store
        self.resolver = resolver

    def _search_names(self, officials: list[OfficialRecord]) -> list[str]:
        names: list[str] = []
        for official in officials:
            for name in (clean_person_name(official.name), clean_person_name(official.previous_governor)):
                if name and name not in names:
                    names.append(name)
        return names

    async def find_predecessors(self, region: str, is_basic: bool = False) -> list[WinnerRecord]:
        normalized = normalize_region_name(region)
        roster_type = RosterType.BASIC if is_basic else RosterType.METROPOLITAN
        snapshot = self.roster_store.peek(roster_type)
        if snapshot is None or not normalized:
            return []

        officials = [row for row in snapshot.officials if _official_in_region(row, normalized, is_basic=is_basic)]
        if not officials:
            return []

        type_code = roster_type.sg_typecode
        regions = {row.region for row in officials if row.region}
        collected: dict[str, WinnerRecord] = {}
        for name in self._search_names(officials):
            try:
                items = await self.resolver.search_candidates(name)
            except Exception as exc:  # noqa: BLE001
                logger.info("predecessor_search_failed name=%s error=%s", name, exc)
                continue
            for item in items:
                if str(item.get("sgTypecode") or "").strip() != type_code:
                    continue
                if str(item.get("elcoYn") or "").strip().upper() != "Y":
                    continue
                if not _sido_matches(item, regions):
                    continue
                record = WinnerRecord.from_item(item, default_elected=False)
                collected.setdefault(record.huboid or f"{record.name}|{record.sg_id}", record)

        winners = sorted(collected.values(), key=lambda row: row.sg_id_value, reverse=True)
        logger.info(
            "predecessor_lookup region=%s is_basic=%s searched=%s found=%s",
            normalized,
            is_basic,
            len(officials),
            len(winners),
        )
        return winners
