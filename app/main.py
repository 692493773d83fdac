import os
import logging

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import psycopg

from app.api.dependencies import get_engine
from app.api.routes import router as api_router
from app.config import get_settings
from app.db import DatabaseConfigurationError, DatabaseConnectionError, get_connection
from app.runtime_db_guard import DB_BOOTSTRAP_STATE, apply_schema_bootstrap, heal_schema_once, is_schema_mismatch_sqlstate
from app.services.engine import build_scheduler

DEFAULT_CORS_ALLOW_ORIGINS = (
    "http://127.0.0.1:3000,"
    "http://localhost:3000,"
    "http://127.0.0.1:5173,"
    "http://localhost:5173"
)

logger = logging.getLogger(__name__)


def _resolve_cors_allow_origins() -> list[str]:
    raw = os.getenv("CORS_ALLOW_ORIGINS", DEFAULT_CORS_ALLOW_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, str(level or "INFO").upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


app = FastAPI(title="Civic Roster Backend", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=_resolve_cors_allow_origins(),
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(api_router)


@app.on_event("startup")
async def startup_engine():
    settings = get_settings()
    configure_logging(settings.log_level)

    state = await apply_schema_bootstrap()
    logger.info(
        "startup_schema_bootstrap enabled=%s attempted=%s ok=%s detail=%s",
        state.get("enabled"),
        state.get("attempted"),
        state.get("ok"),
        state.get("detail"),
    )

    engine = get_engine()
    loaded = await engine.load_snapshots()
    logger.info("startup_snapshots_loaded %s", " ".join(f"{key}={value}" for key, value in loaded.items()))

    app.state.scheduler = None
    if settings.scheduler_enabled:
        scheduler = build_scheduler(engine, settings)
        scheduler.start()
        app.state.scheduler = scheduler


@app.on_event("shutdown")
async def shutdown_engine():
    scheduler = getattr(app.state, "scheduler", None)
    if scheduler is not None:
        await scheduler.stop()


@app.exception_handler(psycopg.Error)
async def handle_psycopg_error(_, exc: psycopg.Error):  # noqa: ANN001
    detail = "database query failed"
    sqlstate = getattr(exc, "sqlstate", None)

    if is_schema_mismatch_sqlstate(sqlstate):
        try:
            healed = await heal_schema_once()
        except Exception as heal_exc:  # noqa: BLE001
            logger.exception("schema_auto_heal_failed: %s", heal_exc)
            healed = False
        if healed:
            detail = "database schema auto-healed; retry request"
        else:
            detail = "database schema mismatch detected"
    elif sqlstate:
        detail = f"database query failed ({sqlstate})"

    return JSONResponse(status_code=503, content={"detail": detail})


@app.get("/health")
def health_check():
    scheduler = getattr(app.state, "scheduler", None)
    return {
        "status": "ok",
        "scheduler": "running" if scheduler is not None and scheduler.running else "stopped",
    }


@app.get("/health/db")
async def health_db_check():
    try:
        async with get_connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute("SELECT 1 AS ok")
                row = await cur.fetchone() or {}
    except DatabaseConfigurationError as exc:
        return JSONResponse(
            status_code=503,
            content={
                "status": "degraded",
                "db": "error",
                "reason": "database_not_configured",
                "detail": str(exc),
                "bootstrap": DB_BOOTSTRAP_STATE,
            },
        )
    except DatabaseConnectionError as exc:
        return JSONResponse(
            status_code=503,
            content={
                "status": "degraded",
                "db": "error",
                "reason": "database_connection_failed",
                "detail": str(exc),
                "bootstrap": DB_BOOTSTRAP_STATE,
            },
        )
    except psycopg.Error as exc:
        return JSONResponse(
            status_code=503,
            content={
                "status": "degraded",
                "db": "error",
                "reason": "database_query_failed",
                "sqlstate": exc.sqlstate,
                "bootstrap": DB_BOOTSTRAP_STATE,
            },
        )

    return {
        "status": "ok",
        "db": "ok",
        "ping": row.get("ok") == 1,
        "bootstrap": DB_BOOTSTRAP_STATE,
    }
