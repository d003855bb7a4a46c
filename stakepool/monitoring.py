import logging
from typing import Any, Dict

from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError

from stakepool.core.config import get_settings
from stakepool.core.ledger import SqlReserveLedger
from stakepool.database import Base, SessionLocal, engine

log = logging.getLogger("stakepool.monitoring")


def _check_database(checks: Dict[str, Any]) -> str:
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            tables = sorted(inspect(conn).get_table_names())
        missing = [t for t in Base.metadata.tables if t not in tables]
        checks["database"] = {"ok": not missing, "dialect": engine.dialect.name, "missing_tables": missing}
        return "ok" if not missing else "degraded"
    except SQLAlchemyError as e:
        log.warning("readiness: database check failed: %s", e)
        checks["database"] = {"ok": False, "error": str(e)}
        return "degraded"


def _check_env(checks: Dict[str, Any]) -> str:
    # admin routes answer 500 without a key; the rest of the API still works
    missing = [] if (get_settings().ADMIN_API_KEY or "").strip() else ["ADMIN_API_KEY"]
    checks["env"] = {"ok": not missing, "missing": missing}
    return "ok" if not missing else "degraded"


def _check_reserve(checks: Dict[str, Any]) -> str:
    try:
        db = SessionLocal()
        try:
            ledger = SqlReserveLedger(db, get_settings().RESERVE_ADDRESS)
            checks["reserve"] = {"ok": True, "account": ledger.reserve_account, "balance": str(ledger.balance_of_reserve())}
        finally:
            db.close()
        return "ok"
    except Exception as e:
        checks["reserve"] = {"ok": False, "error": str(e)}
        return "degraded"


def run_checks() -> Dict[str, Any]:
    checks: Dict[str, Any] = {}
    statuses = [
        _check_database(checks),
        _check_env(checks),
        _check_reserve(checks),
    ]
    overall = "ok" if all(s == "ok" for s in statuses) else "degraded"
    return {"status": overall, "checks": checks}
