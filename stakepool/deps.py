from __future__ import annotations

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from stakepool.core.config import get_settings
from stakepool.core.ledger import SqlReserveLedger
from stakepool.core.staking.events import EventBus
from stakepool.core.staking.service import Clock, StakingService
from stakepool.database import get_db


def get_event_bus(request: Request) -> EventBus:
    return request.app.state.events


def get_clock(request: Request) -> Clock:
    return request.app.state.clock


def get_ledger(db: Session = Depends(get_db)) -> SqlReserveLedger:
    return SqlReserveLedger(db, get_settings().RESERVE_ADDRESS)


def get_service(
    db: Session = Depends(get_db),
    ledger: SqlReserveLedger = Depends(get_ledger),
    events: EventBus = Depends(get_event_bus),
    clock: Clock = Depends(get_clock),
) -> StakingService:
    return StakingService(db, ledger, events=events, clock=clock)


def require_admin_key(x_admin_key: str | None = Header(default=None, alias="X-Admin-Key")) -> None:
    expected = (get_settings().ADMIN_API_KEY or "").strip()
    if not expected:
        raise HTTPException(status_code=500, detail="ADMIN_API_KEY not set")
    if not x_admin_key or x_admin_key.strip() != expected:
        raise HTTPException(status_code=401, detail="unauthorized")
