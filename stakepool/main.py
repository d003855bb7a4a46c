from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from stakepool.core.config import get_settings
from stakepool.core.errors import StakingError
from stakepool.core.staking.events import DomainEvent, EventBus
from stakepool.core.staking.service import unix_now
from stakepool.monitoring import run_checks
from stakepool.routers import admin, staking

log = logging.getLogger("stakepool")

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, (settings.LOG_LEVEL or "INFO").upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

# -------------------------
# App: define FIRST, with health endpoint that never touches the DB
# -------------------------
app = FastAPI(
    title="stakepool",
    version=settings.BUILD_ID or "dev",
)

app.state.events = EventBus()
app.state.clock = unix_now

_BOOT: dict[str, Any] = {
    "db_ready": False,
    "errors": [],
}


def _record_error(where: str, e: Exception) -> None:
    msg = f"{where}: {type(e).__name__}: {e}"
    _BOOT["errors"].append(msg)
    log.exception(msg)


@app.exception_handler(StakingError)
async def _staking_error(request: Request, exc: StakingError) -> JSONResponse:
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.get("/health")
def health() -> dict[str, Any]:
    # Must never touch DB. Only return cheap info.
    return {"ok": True, "build_id": settings.BUILD_ID}


@app.get("/ready")
def ready() -> dict[str, Any]:
    return run_checks()


@app.get("/status")
def status() -> dict[str, Any]:
    return dict(_BOOT)


@app.on_event("startup")
def _startup_best_effort() -> None:
    """
    Best-effort init only; tables normally come from alembic.
    """
    try:
        from stakepool.database import init_db  # lazy import

        init_db()
        _BOOT["db_ready"] = True
    except Exception as e:
        _record_error("db_init", e)


def _log_event(evt: DomainEvent) -> None:
    log.info("event %s %s", type(evt).__name__, evt)


app.state.events.subscribe(_log_event)

app.include_router(staking.router)
app.include_router(admin.router)
