from __future__ import annotations

import logging
from typing import Any, Iterable, Protocol, Sequence

from app.services.region_names import (
    strip_acting_marker,
    strip_basic_unit,
    strip_office_title,
    strip_region_suffix,
)
from app.services.roster_models import OfficialRecord, RosterType, WinnerRecord

logger = logging.getLogger(__name__)


class WinnerSource(Protocol):
    async def winners_for(self, type_code: str) -> Sequence[WinnerRecord]: ...


def _contains_either_way(left: str, right: str) -> bool:
    if not left or not right:
        return False
    return left in right or right in left


def _coerce_winners(winners: Iterable[Any] | None) -> list[WinnerRecord]:
    coerced: list[WinnerRecord] = []
    for item in winners or []:
        if isinstance(item, WinnerRecord):
            winner = item
        elif isinstance(item, dict):
            winner = WinnerRecord.from_item(item)
        else:
            continue
        if winner.elected and winner.name:
            coerced.append(winner)
    return coerced


def _metropolitan_rank(official: OfficialRecord, winner: WinnerRecord) -> tuple[int, int] | None:
    base = strip_region_suffix(official.region)
    winner_base = strip_region_suffix(winner.sd_name)
    if not _contains_either_way(base, winner_base):
        return None
    return (0 if base == winner_base else 1, 0)


def _basic_rank(official: OfficialRecord, winner: WinnerRecord) -> tuple[int, int] | None:
    base = strip_office_title(official.position)
    names = [name for name in (winner.wiw_name, winner.sgg_name) if name]
    if not any(_contains_either_way(base, name) for name in names):
        return None
    exact = any(strip_basic_unit(name) == strip_basic_unit(base) for name in names)
    official_metro = strip_region_suffix(official.region)
    winner_metro = strip_region_suffix(winner.sd_name)
    same_metro = bool(official_metro and winner_metro and official_metro == winner_metro)
    return (0 if exact else 1, 0 if same_metro else 1)


def find_predecessor(
    official: OfficialRecord,
    winners: Sequence[WinnerRecord],
    *,
    is_basic: bool,
) -> WinnerRecord | None:
    """Pick the elected winner an acting official stands in for.

    Exact base-name matches beat containment matches; for basic-level offices
    a winner from the same metropolitan region beats one from elsewhere.
    Remaining ties go to the first winner in source order.
    """
    rank_fn = _basic_rank if is_basic else _metropolitan_rank
    best: tuple[tuple[int, int, int], WinnerRecord] | None = None
    for idx, winner in enumerate(winners):
        rank = rank_fn(official, winner)
        if rank is None:
            continue
        key = (*rank, idx)
        if best is None or key < best[0]:
            best = (key, winner)
    return best[1] if best else None


def format_acting_name(predecessor: str, current_name: str) -> str:
    return f"{predecessor} → {strip_acting_marker(current_name)}(대행)"


def annotate_predecessors(
    roster: Sequence[OfficialRecord],
    winners: Iterable[Any] | None,
    *,
    is_basic: bool,
) -> list[OfficialRecord]:
    candidates = _coerce_winners(winners)
    if not candidates:
        return list(roster)

    annotated: list[OfficialRecord] = []
    for official in roster:
        if not official.is_acting:
            annotated.append(official)
            continue
        try:
            winner = find_predecessor(official, candidates, is_basic=is_basic)
        except Exception as exc:  # noqa: BLE001
            logger.warning("acting_match_record_failed position=%s error=%s", official.position, exc)
            winner = None
        if winner is None:
            logger.info("acting_match_missing position=%s name=%s", official.position, official.name)
            annotated.append(official)
            continue
        annotated.append(official.with_predecessor(format_acting_name(winner.name, official.name), winner.name))
    return annotated


class ActingOfficialMatcher:
    def __init__(self, winner_source: WinnerSource):
        self.winner_source = winner_source

    async def reconcile(self, roster: Sequence[OfficialRecord], roster_type: RosterType) -> list[OfficialRecord]:
        acting = [official for official in roster if official.is_acting]
        if not acting:
            return list(roster)

        try:
            winners = await self.winner_source.winners_for(roster_type.sg_typecode)
            matched = annotate_predecessors(roster, winners, is_basic=roster_type is RosterType.BASIC)
        except Exception:  # noqa: BLE001
            logger.exception("acting_match_failed roster_type=%s acting_count=%s", roster_type.value, len(acting))
            return list(roster)

        resolved = sum(1 for row in matched if row.previous_governor)
        logger.info(
            "acting_match_done roster_type=%s acting_count=%s resolved=%s",
            roster_type.value,
            len(acting),
            resolved,
        )
        return matched
