import logging
import re
import unicodedata
from urllib.parse import unquote_plus

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse

from app.api.dependencies import get_engine, require_internal_job_token
from app.models.schemas import (
    PledgeDebugOut,
    PledgesOut,
    PredecessorsOut,
    RefreshReportOut,
    RosterOut,
    WinnerCacheClearOut,
)
from app.services.errors import NotFound, NotReady, NotResolved, SourceUnavailable
from app.services.region_names import normalize_region_name
from app.services.roster_models import OfficialRecord, PledgeCacheEntry, RosterSnapshot, RosterType

router = APIRouter(prefix="/api/v1", tags=["v1"])
logger = logging.getLogger(__name__)

CANDIDATE_NOT_FOUND_SUGGESTION = "이름을 정확히 입력했는지 확인해주세요"


def _decode_query_text(value: str) -> str:
    if "%" not in value and "+" not in value:
        return value
    return unquote_plus(value)


def _normalize_path_text(raw_value: str | None) -> str:
    text = str(raw_value or "").replace("　", " ").strip()
    if not text:
        return ""

    # Some clients send double-encoded non-ASCII path segments.
    for _ in range(2):
        decoded = _decode_query_text(text)
        if decoded == text:
            break
        text = decoded

    text = unicodedata.normalize("NFC", text)
    return re.sub(r"\s+", " ", text).strip()


def _official_out(row: OfficialRecord) -> dict:
    data = row.to_dict()
    data["status"] = row.status
    return data


def _roster_out(snapshot: RosterSnapshot, officials: list[OfficialRecord], *, refreshing: bool) -> dict:
    return {
        "roster_type": snapshot.roster_type.value,
        "governors": [_official_out(row) for row in officials],
        "count": len(officials),
        "source_count": snapshot.source_count,
        "last_updated": snapshot.last_updated,
        "refreshing": refreshing,
    }


def _pledges_out(entry: PledgeCacheEntry) -> dict:
    data = entry.to_dict()
    data["cached_at"] = entry.cached_at
    data["expires_at"] = entry.expires_at
    return data


def _get_snapshot(engine, roster_type: RosterType) -> RosterSnapshot:
    try:
        return engine.roster_store.get(roster_type)
    except NotReady as exc:
        raise HTTPException(status_code=503, detail={"reason": "not_ready", "message": str(exc)}) from exc


@router.get("/governors/metropolitan", response_model=RosterOut)
def get_metropolitan_governors(
    region: str | None = Query(default=None),
    engine=Depends(get_engine),
):
    snapshot = _get_snapshot(engine, RosterType.METROPOLITAN)
    officials = list(snapshot.officials)
    if region:
        target = normalize_region_name(_normalize_path_text(region))
        officials = [row for row in officials if row.region == target or target in row.position]
    return _roster_out(snapshot, officials, refreshing=engine.refresher.is_refreshing(RosterType.METROPOLITAN))


@router.get("/governors/basic", response_model=RosterOut)
def get_basic_governors(
    metro: str | None = Query(default=None),
    engine=Depends(get_engine),
):
    snapshot = _get_snapshot(engine, RosterType.BASIC)
    officials = list(snapshot.officials)
    if metro:
        target = normalize_region_name(_normalize_path_text(metro))
        officials = [row for row in officials if row.region == target]
    return _roster_out(snapshot, officials, refreshing=engine.refresher.is_refreshing(RosterType.BASIC))


@router.post("/governors/refresh", response_model=RefreshReportOut)
async def refresh_governors(
    roster_type: RosterType | None = Query(default=None),
    _=Depends(require_internal_job_token),
    engine=Depends(get_engine),
):
    roster_types = (roster_type,) if roster_type is not None else tuple(RosterType)
    report = await engine.refresher.refresh_all(roster_types)
    payload = RefreshReportOut.model_validate(report.to_dict())
    if not report.success:
        logger.warning("governors_refresh_partial_failure status=%s", report.status)
        return JSONResponse(status_code=500, content=payload.model_dump(mode="json"))
    return payload


@router.get("/governors/previous/{region}", response_model=PredecessorsOut)
async def get_previous_governors(
    region: str,
    is_basic: bool = Query(default=False),
    engine=Depends(get_engine),
):
    region_text = _normalize_path_text(region)
    try:
        winners = await engine.predecessors.find_predecessors(region_text, is_basic=is_basic)
    except SourceUnavailable as exc:
        raise HTTPException(status_code=502, detail={"reason": "source_unavailable", "message": str(exc)}) from exc
    if not winners:
        raise HTTPException(
            status_code=404,
            detail={"reason": "predecessors_not_found", "message": "previous governors not found", "region": region_text},
        )
    return {
        "region": region_text,
        "is_basic": is_basic,
        "governors": [row.to_dict() for row in winners],
        "count": len(winners),
    }


@router.get("/governors/pledges/{name}", response_model=PledgesOut)
async def get_governor_pledges(name: str, engine=Depends(get_engine)):
    official_name = _normalize_path_text(name)
    try:
        entry = await engine.pledge_resolver.resolve(official_name)
    except NotResolved as exc:
        raise HTTPException(
            status_code=404,
            detail={
                "reason": "candidate_not_found",
                "message": str(exc),
                "suggestion": CANDIDATE_NOT_FOUND_SUGGESTION,
            },
        ) from exc
    except NotFound as exc:
        raise HTTPException(status_code=404, detail={"reason": "pledges_not_found", "message": str(exc)}) from exc
    except SourceUnavailable as exc:
        raise HTTPException(status_code=502, detail={"reason": "source_unavailable", "message": str(exc)}) from exc
    return _pledges_out(entry)


@router.get("/governors/pledges-debug/{name}", response_model=PledgeDebugOut)
async def get_governor_pledges_debug(
    name: str,
    _=Depends(require_internal_job_token),
    engine=Depends(get_engine),
):
    official_name = _normalize_path_text(name)
    entry = await engine.pledge_resolver.debug_entry(official_name)
    if entry is None:
        raise HTTPException(status_code=404, detail={"reason": "cache_entry_not_found", "name": official_name})
    data = _pledges_out(entry)
    data["expired"] = entry.is_expired()
    return data


@router.delete("/governors/pledges-debug/{name}")
async def delete_governor_pledges_cache(
    name: str,
    _=Depends(require_internal_job_token),
    engine=Depends(get_engine),
):
    official_name = _normalize_path_text(name)
    deleted = await engine.pledge_resolver.delete_entry(official_name)
    if not deleted:
        raise HTTPException(status_code=404, detail={"reason": "cache_entry_not_found", "name": official_name})
    return {"name": official_name, "deleted": True}


@router.delete("/governors/winners-cache", response_model=WinnerCacheClearOut)
async def clear_winner_cache(
    sg_typecode: str | None = Query(default=None, pattern="^[34]$"),
    _=Depends(require_internal_job_token),
    engine=Depends(get_engine),
):
    cleared = await engine.winner_cache.clear(sg_typecode)
    return {"scope": sg_typecode or "all", "cleared": cleared}
