from __future__ import annotations

import asyncio
import os
from pathlib import Path

from app.db import is_database_configured, run_schema

_TRUTHY = {"1", "true", "yes", "y", "on"}
_FALSY = {"0", "false", "no", "n", "off"}
_SCHEMA_MISMATCH_SQLSTATE = {"42P01", "42703"}  # undefined_table, undefined_column
SCHEMA_PATH = Path(__file__).resolve().parents[1] / "db" / "schema.sql"

_schema_heal_lock = asyncio.Lock()
_schema_healed_once = False

DB_BOOTSTRAP_STATE: dict[str, object] = {
    "enabled": False,
    "attempted": False,
    "ok": None,
    "detail": None,
}


def _parse_bool_env(value: str | None) -> bool | None:
    if value is None:
        return None
    token = value.strip().lower()
    if token in _TRUTHY:
        return True
    if token in _FALSY:
        return False
    return None


def should_auto_apply_schema_on_startup() -> bool:
    explicit = _parse_bool_env(os.getenv("AUTO_APPLY_SCHEMA_ON_STARTUP"))
    if explicit is not None:
        return explicit
    # cache_documents is the only table; creating it is idempotent.
    return is_database_configured()


async def apply_schema_bootstrap() -> dict[str, object]:
    enabled = should_auto_apply_schema_on_startup()
    DB_BOOTSTRAP_STATE["enabled"] = enabled
    if not enabled:
        DB_BOOTSTRAP_STATE["attempted"] = False
        DB_BOOTSTRAP_STATE["ok"] = None
        DB_BOOTSTRAP_STATE["detail"] = "disabled"
        return DB_BOOTSTRAP_STATE

    DB_BOOTSTRAP_STATE["attempted"] = True
    try:
        await run_schema(SCHEMA_PATH)
    except Exception as exc:  # noqa: BLE001
        DB_BOOTSTRAP_STATE["ok"] = False
        DB_BOOTSTRAP_STATE["detail"] = f"{type(exc).__name__}: {exc}"
        return DB_BOOTSTRAP_STATE

    DB_BOOTSTRAP_STATE["ok"] = True
    DB_BOOTSTRAP_STATE["detail"] = "schema applied"
    return DB_BOOTSTRAP_STATE


def is_schema_mismatch_sqlstate(sqlstate: str | None) -> bool:
    return sqlstate in _SCHEMA_MISMATCH_SQLSTATE


async def heal_schema_once() -> bool:
    global _schema_healed_once  # noqa: PLW0603

    async with _schema_heal_lock:
        if _schema_healed_once:
            return False
        await run_schema(SCHEMA_PATH)
        _schema_healed_once = True
        return True
