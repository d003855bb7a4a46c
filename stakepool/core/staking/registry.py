from __future__ import annotations

import logging
import time
from typing import Callable

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stakepool.core.errors import (
    AlreadyRemoved,
    InvalidLockDuration,
    InvalidMinStaking,
    InvalidRate,
    UnknownPackage,
)
from stakepool.models_staking import StakePackage, StakingEvent, StakingEventType, utcnow

log = logging.getLogger("stakepool.staking")


class PackageRegistry:
    """
    Append-only package table. Ids are sequential from 1 and never reused;
    removal only flips `active` to False. Both changes are journaled in
    staking_events.
    """

    def __init__(self, db: Session, clock: Callable[[], int] | None = None) -> None:
        self.db = db
        self.clock = clock or (lambda: int(time.time()))

    def _journal(self, event_type: StakingEventType, pkg: StakePackage) -> None:
        self.db.add(
            StakingEvent(
                event_type=event_type.value,
                package_id=pkg.id,
                occurred_at=self.clock(),
                details={
                    "rate": str(pkg.rate),
                    "rate_decimal": str(pkg.rate_decimal),
                    "min_staking": str(pkg.min_staking),
                    "lock_duration": str(pkg.lock_duration),
                },
            )
        )

    def add_package(self, rate: int, rate_decimal: int, min_staking: int, lock_duration: int) -> int:
        if rate <= 0:
            raise InvalidRate("Invalid package rate", value=rate)
        if min_staking <= 0:
            raise InvalidMinStaking("Invalid min staking", value=min_staking)
        if lock_duration <= 0:
            raise InvalidLockDuration("Invalid lock time", value=lock_duration)
        if rate_decimal < 0:
            raise InvalidRate("Invalid rate decimal", value=rate_decimal)

        next_id = int(self.db.execute(select(func.coalesce(func.max(StakePackage.id), 0))).scalar_one()) + 1
        pkg = StakePackage(
            id=next_id,
            rate=int(rate),
            rate_decimal=int(rate_decimal),
            min_staking=int(min_staking),
            lock_duration=int(lock_duration),
            active=True,
        )
        self.db.add(pkg)
        self._journal(StakingEventType.PACKAGE_ADDED, pkg)
        self.db.flush()
        log.info(
            "package added id=%s rate=%s decimal=%s min=%s lock=%ss",
            pkg.id, rate, rate_decimal, min_staking, lock_duration,
        )
        return pkg.id

    def get(self, package_id: int) -> StakePackage:
        pkg = self.db.get(StakePackage, int(package_id))
        if pkg is None:
            raise UnknownPackage("Invalid package ID", package_id=package_id)
        return pkg

    def remove_package(self, package_id: int) -> StakePackage:
        pkg = self.get(package_id)
        if not pkg.active:
            raise AlreadyRemoved("This stake package is already removed", package_id=package_id)
        pkg.active = False
        pkg.removed_at = utcnow()
        self._journal(StakingEventType.PACKAGE_REMOVED, pkg)
        self.db.flush()
        log.info("package removed id=%s", pkg.id)
        return pkg

    def list_packages(self, active_only: bool = False) -> list[StakePackage]:
        q = select(StakePackage).order_by(StakePackage.id.asc())
        if active_only:
            q = q.where(StakePackage.active.is_(True))
        return list(self.db.execute(q).scalars())
