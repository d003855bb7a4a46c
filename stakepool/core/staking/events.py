from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Callable, Union

from sqlalchemy import event
from sqlalchemy.orm import Session

from stakepool.models_staking import StakingEvent, StakingEventType

log = logging.getLogger("stakepool.events")

_PENDING_KEY = "stakepool.pending_events"


@dataclass(frozen=True)
class StakeUpdate:
    account: str
    package_id: int
    principal: int
    accrued_profit: int
    occurred_at: int


@dataclass(frozen=True)
class StakeReleased:
    account: str
    package_id: int
    principal: int
    total_profit: int
    occurred_at: int


DomainEvent = Union[StakeUpdate, StakeReleased]
Listener = Callable[[DomainEvent], None]


class EventBus:
    """
    In-process fan-out for indexers/UIs. Events are queued on the session and
    delivered only after the surrounding transaction commits; a rollback drops them.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def subscribe(self, fn: Listener) -> Listener:
        self._listeners.append(fn)
        return fn

    def unsubscribe(self, fn: Listener) -> None:
        self._listeners.remove(fn)

    def dispatch(self, evt: DomainEvent) -> None:
        for fn in list(self._listeners):
            try:
                fn(evt)
            except Exception:
                # a broken subscriber must not affect committed state or other subscribers
                log.exception("event listener failed: %s", type(evt).__name__)

    def emit(self, db: Session, evt: DomainEvent) -> None:
        db.add(_to_row(evt))
        db.info.setdefault(_PENDING_KEY, []).append((self, evt))


def _to_row(evt: DomainEvent) -> StakingEvent:
    if isinstance(evt, StakeUpdate):
        return StakingEvent(
            event_type=StakingEventType.STAKE_UPDATE.value,
            account=evt.account,
            package_id=evt.package_id,
            principal=evt.principal,
            profit=evt.accrued_profit,
            occurred_at=evt.occurred_at,
            details={k: str(v) for k, v in asdict(evt).items()},
        )
    return StakingEvent(
        event_type=StakingEventType.STAKE_RELEASED.value,
        account=evt.account,
        package_id=evt.package_id,
        principal=evt.principal,
        profit=evt.total_profit,
        occurred_at=evt.occurred_at,
        details={k: str(v) for k, v in asdict(evt).items()},
    )


@event.listens_for(Session, "after_commit")
def _deliver_pending(session: Session) -> None:
    pending = session.info.pop(_PENDING_KEY, [])
    for bus, evt in pending:
        bus.dispatch(evt)


@event.listens_for(Session, "after_rollback")
def _drop_pending(session: Session) -> None:
    session.info.pop(_PENDING_KEY, None)
