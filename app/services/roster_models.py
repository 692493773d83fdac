from __future__ import annotations

from dataclasses import asdict, dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any

DEFAULT_PARTY = "무소속"
DEFAULT_INAUGURATION_DATE = "2022-07-01"
ACTING_MARKERS = ("권한대행", "직무대행", "(대행)")

STATUS_INCUMBENT = "재임"
STATUS_ACTING = "권한대행"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RosterType(str, Enum):
    METROPOLITAN = "metropolitan"
    BASIC = "basic"

    @property
    def sg_typecode(self) -> str:
        # data.go.kr election-type codes: 3 = 시·도지사, 4 = 구·시·군의 장
        return "3" if self is RosterType.METROPOLITAN else "4"

    @property
    def label(self) -> str:
        return "광역단체장" if self is RosterType.METROPOLITAN else "기초단체장"


def derive_status(notes: str | None, name: str | None) -> str:
    text = f"{notes or ''} {name or ''}"
    if any(marker in text for marker in ACTING_MARKERS):
        return STATUS_ACTING
    return STATUS_INCUMBENT


@dataclass(frozen=True)
class OfficialRecord:
    region: str
    position: str
    name: str
    party: str = DEFAULT_PARTY
    notes: str = ""
    inauguration_date: str = DEFAULT_INAUGURATION_DATE
    previous_governor: str | None = None

    @property
    def status(self) -> str:
        return derive_status(self.notes, self.name)

    @property
    def is_acting(self) -> bool:
        return self.status == STATUS_ACTING

    def with_predecessor(self, display_name: str, predecessor: str) -> OfficialRecord:
        return replace(self, name=display_name, previous_governor=predecessor)

    def to_dict(self) -> dict[str, Any]:
        # status is derived from notes/name and never persisted
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OfficialRecord:
        return cls(
            region=str(data.get("region") or ""),
            position=str(data.get("position") or ""),
            name=str(data.get("name") or ""),
            party=str(data.get("party") or DEFAULT_PARTY),
            notes=str(data.get("notes") or ""),
            inauguration_date=str(data.get("inauguration_date") or DEFAULT_INAUGURATION_DATE),
            previous_governor=data.get("previous_governor") or None,
        )


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


@dataclass(frozen=True)
class WinnerRecord:
    name: str
    sd_name: str
    sg_typecode: str
    sg_id: str
    huboid: str = ""
    sg_name: str = ""
    sgg_name: str = ""
    wiw_name: str = ""
    party: str = ""
    elected: bool = True

    @classmethod
    def from_item(cls, item: dict[str, Any], *, default_elected: bool = True) -> WinnerRecord:
        elco = _text(item.get("elcoYn")).upper()
        elected = default_elected if not elco else elco == "Y"
        return cls(
            name=_text(item.get("name")),
            sd_name=_text(item.get("sdName") or item.get("sidoName")),
            sg_typecode=_text(item.get("sgTypecode")),
            sg_id=_text(item.get("sgId")),
            huboid=_text(item.get("huboid")),
            sg_name=_text(item.get("sgName")),
            sgg_name=_text(item.get("sggName")),
            wiw_name=_text(item.get("wiwName")),
            party=_text(item.get("jdName")),
            elected=elected,
        )

    @property
    def sg_id_value(self) -> int:
        try:
            return int(self.sg_id or "0")
        except ValueError:
            return 0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WinnerRecord:
        return cls(**{key: data[key] for key in cls.__dataclass_fields__ if key in data})


@dataclass(frozen=True)
class RosterSnapshot:
    roster_type: RosterType
    officials: tuple[OfficialRecord, ...]
    last_updated: datetime
    source_count: int
    source_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "roster_type": self.roster_type.value,
            "officials": [row.to_dict() for row in self.officials],
            "last_updated": self.last_updated.isoformat(),
            "source_count": self.source_count,
            "source_url": self.source_url,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RosterSnapshot:
        return cls(
            roster_type=RosterType(data["roster_type"]),
            officials=tuple(OfficialRecord.from_dict(row) for row in data.get("officials") or []),
            last_updated=datetime.fromisoformat(data["last_updated"]),
            source_count=int(data.get("source_count") or 0),
            source_url=data.get("source_url"),
        )


@dataclass(frozen=True)
class WinnerCachePartition:
    sg_id: str
    sg_typecode: str
    winners: tuple[WinnerRecord, ...]
    cached_at: datetime
    complete: bool = True

    @property
    def cache_id(self) -> str:
        return winner_partition_id(self.sg_id, self.sg_typecode)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sg_id": self.sg_id,
            "sg_typecode": self.sg_typecode,
            "winners": [row.to_dict() for row in self.winners],
            "cached_at": self.cached_at.isoformat(),
            "complete": self.complete,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> WinnerCachePartition:
        return cls(
            sg_id=str(data["sg_id"]),
            sg_typecode=str(data["sg_typecode"]),
            winners=tuple(WinnerRecord.from_dict(row) for row in data.get("winners") or []),
            cached_at=datetime.fromisoformat(data["cached_at"]),
            complete=bool(data.get("complete", True)),
        )


def winner_partition_id(sg_id: str, sg_typecode: str) -> str:
    return f"{sg_id}-{sg_typecode}"


@dataclass(frozen=True)
class PledgeItem:
    rank: int
    domain: str
    title: str
    text: str


@dataclass(frozen=True)
class CandidateInfo:
    huboid: str
    sg_id: str
    sg_typecode: str
    name: str = ""
    party: str = ""
    sido_name: str = ""
    sgg_name: str = ""


@dataclass(frozen=True)
class PledgeCacheEntry:
    official_name: str
    candidate_info: CandidateInfo
    pledges: tuple[PledgeItem, ...]
    cached_at: datetime
    expires_at: datetime
    kr_name: str = ""
    party_name: str = ""
    sido_name: str = ""
    sgg_name: str = ""
    pledge_count: int = 0

    @classmethod
    def build(
        cls,
        official_name: str,
        candidate_info: CandidateInfo,
        pledges: list[PledgeItem],
        *,
        ttl: timedelta,
        headline: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> PledgeCacheEntry:
        cached_at = now or utc_now()
        headline = headline or {}
        return cls(
            official_name=official_name,
            candidate_info=candidate_info,
            pledges=tuple(pledges),
            cached_at=cached_at,
            expires_at=cached_at + ttl,
            kr_name=_text(headline.get("krName")),
            party_name=_text(headline.get("partyName")),
            sido_name=_text(headline.get("sidoName")),
            sgg_name=_text(headline.get("sggName")),
            pledge_count=_to_int(headline.get("prmsCnt"), default=len(pledges)),
        )

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires_at <= (now or utc_now())

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["cached_at"] = self.cached_at.isoformat()
        data["expires_at"] = self.expires_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PledgeCacheEntry:
        return cls(
            official_name=str(data["official_name"]),
            candidate_info=CandidateInfo(**data["candidate_info"]),
            pledges=tuple(PledgeItem(**row) for row in data.get("pledges") or []),
            cached_at=datetime.fromisoformat(data["cached_at"]),
            expires_at=datetime.fromisoformat(data["expires_at"]),
            kr_name=str(data.get("kr_name") or ""),
            party_name=str(data.get("party_name") or ""),
            sido_name=str(data.get("sido_name") or ""),
            sgg_name=str(data.get("sgg_name") or ""),
            pledge_count=int(data.get("pledge_count") or 0),
        )


def _to_int(value: Any, *, default: int = 0) -> int:
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        return default
