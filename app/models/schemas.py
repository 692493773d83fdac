from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


class OfficialOut(BaseModel):
    region: str
    position: str
    name: str
    party: str
    status: Literal["재임", "권한대행"]
    notes: str = ""
    inauguration_date: str
    previous_governor: str | None = None


class RosterOut(BaseModel):
    roster_type: Literal["metropolitan", "basic"]
    governors: list[OfficialOut] = Field(default_factory=list)
    count: int
    source_count: int
    last_updated: datetime
    refreshing: bool = False


class RefreshOutcomeOut(BaseModel):
    roster_type: str
    status: Literal["success", "failed", "skipped"]
    count: int = 0
    dropped_count: int = 0
    below_expected: bool = False
    stale_serving: bool = False
    detail: str | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    duration_seconds: float | None = None


class RefreshReportOut(BaseModel):
    success: bool
    status: Literal["success", "partial_failure"]
    outcomes: list[RefreshOutcomeOut] = Field(default_factory=list)


class PredecessorOut(BaseModel):
    name: str
    party: str = ""
    sg_id: str
    sg_name: str = ""
    sg_typecode: str
    huboid: str = ""
    sd_name: str = ""
    sgg_name: str = ""


class PredecessorsOut(BaseModel):
    region: str
    is_basic: bool
    governors: list[PredecessorOut] = Field(default_factory=list)
    count: int


class PledgeOut(BaseModel):
    rank: int
    domain: str = ""
    title: str = ""
    text: str = ""


class CandidateInfoOut(BaseModel):
    huboid: str
    sg_id: str
    sg_typecode: str
    name: str = ""
    party: str = ""
    sido_name: str = ""
    sgg_name: str = ""


class PledgesOut(BaseModel):
    official_name: str
    kr_name: str = ""
    party_name: str = ""
    sido_name: str = ""
    sgg_name: str = ""
    pledge_count: int = 0
    pledges: list[PledgeOut] = Field(default_factory=list)
    candidate_info: CandidateInfoOut
    cached_at: datetime
    expires_at: datetime


class PledgeDebugOut(PledgesOut):
    expired: bool


class WinnerCacheClearOut(BaseModel):
    scope: str
    cleared: int
