from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence

from app.services.region_names import (
    is_metropolitan_region,
    looks_like_region_header,
    metro_region_from_position,
    normalize_region_name,
)
from app.services.roster_models import DEFAULT_INAUGURATION_DATE, DEFAULT_PARTY, OfficialRecord, RosterType
from app.services.table_scraper import ScrapedRow, ScrapedTable

logger = logging.getLogger(__name__)

MIN_DATA_CELLS = 4
UNCLASSIFIED_REGION = "미분류"


@dataclass(frozen=True)
class TableRegionLayout:
    """Ordered mapping from table position on the basic-level page to its region."""

    version: str
    regions: tuple[str, ...]
    skipped_regions: tuple[str, ...] = ()
    fallback_region: str = UNCLASSIFIED_REGION

    def region_for_table(self, index: int) -> str:
        if 0 <= index < len(self.regions):
            return self.regions[index]
        return self.fallback_region


# 세종특별자치시 has no basic-level offices, so the page has no table for it.
BASIC_TABLE_LAYOUT = TableRegionLayout(
    version="2024-01",
    regions=(
        "서울특별시",
        "부산광역시",
        "대구광역시",
        "인천광역시",
        "광주광역시",
        "대전광역시",
        "울산광역시",
        "경기도",
        "강원특별자치도",
        "충청북도",
        "충청남도",
        "전북특별자치도",
        "전라남도",
        "경상북도",
        "경상남도",
    ),
    skipped_regions=("세종특별자치시",),
)


@dataclass
class ExtractionResult:
    roster_type: RosterType
    officials: list[OfficialRecord] = field(default_factory=list)
    diagnostics: list[dict[str, Any]] = field(default_factory=list)
    table_count: int = 0

    def to_summary(self) -> dict[str, Any]:
        return {
            "roster_type": self.roster_type.value,
            "official_count": len(self.officials),
            "table_count": self.table_count,
            "dropped_count": sum(1 for row in self.diagnostics if row.get("reason")),
        }


def _record_from_row(row: ScrapedRow, region: str) -> OfficialRecord:
    # cell layout: position | party colour | party | name | notes
    return OfficialRecord(
        region=region,
        position=row.cell(0),
        name=row.cell(3),
        party=row.cell(2) or DEFAULT_PARTY,
        notes=row.cell(4),
        inauguration_date=DEFAULT_INAUGURATION_DATE,
    )


class RosterExtractor:
    roster_type: RosterType
    expected_count: int
    warn_below: int

    def extract(self, tables: Sequence[ScrapedTable]) -> ExtractionResult:
        result = ExtractionResult(roster_type=self.roster_type, table_count=len(tables))
        for table_idx, table in enumerate(tables):
            self._extract_table(table_idx, table, result)
        self._check_cardinality(result)
        return result

    def _extract_table(self, table_idx: int, table: ScrapedTable, result: ExtractionResult) -> None:
        raise NotImplementedError

    def _drop_row(self, result: ExtractionResult, table_idx: int, row_idx: int, reason: str, **fields: Any) -> None:
        result.diagnostics.append({"table_idx": table_idx, "row_idx": row_idx, **fields, "reason": reason})
        logger.info(
            "roster_row_dropped roster_type=%s table_idx=%s row_idx=%s position=%s name=%s reason=%s",
            self.roster_type.value,
            table_idx,
            row_idx,
            fields.get("position"),
            fields.get("name"),
            reason,
        )

    def _check_cardinality(self, result: ExtractionResult) -> None:
        count = len(result.officials)
        logger.info("roster_extracted roster_type=%s count=%s tables=%s", self.roster_type.value, count, result.table_count)
        if count < self.warn_below:
            logger.warning(
                "roster_count_low roster_type=%s count=%s expected=%s",
                self.roster_type.value,
                count,
                self.expected_count,
            )


class MetropolitanRosterExtractor(RosterExtractor):
    roster_type = RosterType.METROPOLITAN
    expected_count = 17
    warn_below = 17

    def _extract_table(self, table_idx: int, table: ScrapedTable, result: ExtractionResult) -> None:
        valid_count = 0
        for row_idx, row in enumerate(table):
            if row.is_header or len(row.cells) < MIN_DATA_CELLS:
                continue

            position = row.cell(0)
            name = row.cell(3)
            region = metro_region_from_position(position)
            if region and name and is_metropolitan_region(region):
                result.officials.append(_record_from_row(row, region))
                valid_count += 1
                continue

            if position and name:
                self._drop_row(
                    result,
                    table_idx,
                    row_idx,
                    "invalid_metropolitan_region",
                    position=position,
                    name=name,
                    region=region,
                )
        result.diagnostics.append({"table_idx": table_idx, "total_rows": len(table), "valid_count": valid_count})

    def _check_cardinality(self, result: ExtractionResult) -> None:
        super()._check_cardinality(result)
        if len(result.officials) > self.expected_count:
            logger.warning(
                "roster_count_mismatch roster_type=%s count=%s expected=%s",
                self.roster_type.value,
                len(result.officials),
                self.expected_count,
            )


class BasicRosterExtractor(RosterExtractor):
    roster_type = RosterType.BASIC
    expected_count = 226
    warn_below = 200

    def __init__(self, layout: TableRegionLayout = BASIC_TABLE_LAYOUT):
        self.layout = layout

    def _extract_table(self, table_idx: int, table: ScrapedTable, result: ExtractionResult) -> None:
        current_region = self.layout.region_for_table(table_idx)
        row_count = 0
        for row_idx, row in enumerate(table):
            if row.is_header:
                continue

            if len(row.cells) <= 2:
                text = row.cell(0)
                if looks_like_region_header(text):
                    logger.debug("basic_roster_section_header table_idx=%s region=%s", table_idx, text)
                    current_region = normalize_region_name(text)
                continue

            if len(row.cells) < MIN_DATA_CELLS:
                continue

            position, name = row.cell(0), row.cell(3)
            if not position or not name:
                if position or name:
                    self._drop_row(result, table_idx, row_idx, "incomplete_row", position=position, name=name)
                continue
            result.officials.append(_record_from_row(row, current_region or self.layout.fallback_region))
            row_count += 1

        result.diagnostics.append(
            {
                "table_idx": table_idx,
                "region": current_region,
                "data_count": row_count,
                "layout_version": self.layout.version,
            }
        )


def extractor_for(roster_type: RosterType, *, layout: TableRegionLayout = BASIC_TABLE_LAYOUT) -> RosterExtractor:
    if roster_type is RosterType.METROPOLITAN:
        return MetropolitanRosterExtractor()
    return BasicRosterExtractor(layout)
