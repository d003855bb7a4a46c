from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Iterator

from sqlalchemy.orm import Session

from stakepool.core.accounts import is_zero_address, normalize_account
from stakepool.core.errors import (
    BelowMinimum,
    InsufficientBalance,
    LockNotElapsed,
    NoPosition,
    PackageOffline,
    ZeroAddress,
)
from stakepool.core.ledger import ReserveLedger
from stakepool.core.staking.calculator import reward
from stakepool.core.staking.events import EventBus, StakeReleased, StakeUpdate
from stakepool.core.staking.positions import PositionBook
from stakepool.core.staking.registry import PackageRegistry
from stakepool.core.staking.state import PositionState, assert_transition, lock_elapsed, state_of
from stakepool.models_staking import StakePosition

log = logging.getLogger("stakepool.staking")

Clock = Callable[[], int]


def unix_now() -> int:
    return int(time.time())


class PositionLocks:
    """
    Serializes operations on the same (account, package_id) within this process.
    Entries are dropped once no caller holds or waits on them.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[tuple[str, int], list] = {}  # key -> [lock, holders + waiters]

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, account: str, package_id: int) -> Iterator[None]:
        key = (account.lower(), int(package_id))
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]


_LOCKS = PositionLocks()


@dataclass(frozen=True)
class PositionView:
    account: str
    package_id: int
    start_time: int
    time_point: int
    principal: int
    accrued_profit: int

    @property
    def state(self) -> PositionState:
        return state_of(self.principal)

    @classmethod
    def of(cls, pos: StakePosition) -> "PositionView":
        return cls(
            account=pos.account,
            package_id=int(pos.package_id),
            start_time=int(pos.start_time),
            time_point=int(pos.time_point),
            principal=int(pos.principal),
            accrued_profit=int(pos.accrued_profit),
        )

    @classmethod
    def empty(cls, account: str, package_id: int) -> "PositionView":
        return cls(account=account, package_id=int(package_id), start_time=0, time_point=0, principal=0, accrued_profit=0)


class StakingService:
    """
    Stake/unstake orchestration over one session. Each mutating call is its
    own transaction: validation runs before the first mutation, and the
    position lock is held until the commit (or rollback) has finished.
    """

    def __init__(
        self,
        db: Session,
        ledger: ReserveLedger,
        events: EventBus | None = None,
        clock: Clock | None = None,
        locks: PositionLocks | None = None,
    ) -> None:
        self.db = db
        self.ledger = ledger
        self.events = events or EventBus()
        self.clock = clock or unix_now
        self.locks = locks or _LOCKS
        self.packages = PackageRegistry(db, clock=self.clock)
        self.positions = PositionBook(db)

    @contextmanager
    def _unit_of_work(self, account: str, package_id: int) -> Iterator[None]:
        # take the lock before the session touches the database, so a waiter
        # never sits on an open transaction the holder needs
        with self.locks.hold(str(account), package_id):
            try:
                yield
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

    def stake(self, account: str, amount: int, package_id: int) -> StakeUpdate:
        amount = int(amount)

        with self._unit_of_work(account, package_id):
            pkg = self.packages.get(package_id)
            if not pkg.active:
                raise PackageOffline("Package is offline", account=account, package_id=package_id)
            if is_zero_address(account):
                raise ZeroAddress("Sender must not be zero address", package_id=package_id)

            acct = normalize_account(account)
            balance = self.ledger.balance_of(acct)
            if balance < amount:
                raise InsufficientBalance(
                    f"insufficient balance: {balance} < {amount}",
                    account=acct,
                    package_id=pkg.id,
                    value=amount,
                )
            if amount < pkg.min_staking:
                raise BelowMinimum(
                    f"amount below package minimum {pkg.min_staking}",
                    account=acct,
                    package_id=pkg.id,
                    value=amount,
                )

            now = self.clock()
            pos = self.positions.load_for_update(acct, pkg.id, create=True)
            before = state_of(pos.principal)
            assert_transition(before, PositionState.OPEN)

            if before is PositionState.EMPTY:
                PositionBook.open(pos, now)
            else:
                # roll the existing principal's reward forward before adding the deposit
                delta = reward(pos.principal, now - pos.time_point, pkg.rate, pkg.rate_decimal)
                pos.accrued_profit = pos.accrued_profit + delta
                pos.time_point = now

            pos.principal = pos.principal + amount

            self.ledger.transfer(acct, self.ledger.reserve_account, amount, kind="stake")

            evt = StakeUpdate(
                account=acct,
                package_id=pkg.id,
                principal=int(pos.principal),
                accrued_profit=int(pos.accrued_profit),
                occurred_at=now,
            )
            self.events.emit(self.db, evt)
            self.db.flush()

        log.info(
            "stake account=%s package=%s amount=%s principal=%s accrued=%s",
            evt.account, evt.package_id, amount, evt.principal, evt.accrued_profit,
        )
        return evt

    def unstake(self, account: str, package_id: int) -> StakeReleased:
        with self._unit_of_work(account, package_id):
            # removed packages stay withdrawable, so only existence is checked
            pkg = self.packages.get(package_id)
            acct = normalize_account(account)

            pos = self.positions.load_for_update(acct, pkg.id)
            if pos is None or state_of(pos.principal) is PositionState.EMPTY:
                raise NoPosition("No stake position for this package", account=acct, package_id=pkg.id)

            now = self.clock()
            if not lock_elapsed(now, pos.start_time, pkg.lock_duration):
                raise LockNotElapsed(
                    f"lock ends at {pos.start_time + pkg.lock_duration}",
                    account=acct,
                    package_id=pkg.id,
                    value=pos.start_time + pkg.lock_duration - now,
                )

            principal = int(pos.principal)
            final_delta = reward(principal, now - pos.time_point, pkg.rate, pkg.rate_decimal)
            total_profit = int(pos.accrued_profit) + final_delta

            reserve = self.ledger.reserve_account
            available = self.ledger.balance_of_reserve()
            if available < principal + total_profit:
                raise InsufficientBalance(
                    f"reserve underfunded: {available} < {principal + total_profit}",
                    account=reserve,
                    package_id=pkg.id,
                    value=principal + total_profit,
                )

            assert_transition(PositionState.OPEN, PositionState.EMPTY)
            self.ledger.transfer(reserve, acct, principal, kind="unstake_principal")
            if total_profit > 0:
                self.ledger.transfer(reserve, acct, total_profit, kind="unstake_profit")

            PositionBook.close(pos)

            evt = StakeReleased(
                account=acct,
                package_id=pkg.id,
                principal=principal,
                total_profit=total_profit,
                occurred_at=now,
            )
            self.events.emit(self.db, evt)
            self.db.flush()

        log.info(
            "unstake account=%s package=%s principal=%s profit=%s",
            evt.account, evt.package_id, evt.principal, evt.total_profit,
        )
        return evt

    def get_position(self, account: str, package_id: int) -> PositionView:
        pkg = self.packages.get(package_id)
        acct = normalize_account(account)
        pos = self.positions.find(acct, pkg.id)
        if pos is None:
            return PositionView.empty(acct, pkg.id)
        return PositionView.of(pos)

    def pending_reward(self, account: str, package_id: int) -> int:
        """Accrued profit plus what the current principal has earned since the last deposit."""
        pkg = self.packages.get(package_id)
        view = self.get_position(account, package_id)
        if view.state is PositionState.EMPTY:
            return 0
        return view.accrued_profit + reward(view.principal, self.clock() - view.time_point, pkg.rate, pkg.rate_decimal)

    def list_positions(self, account: str) -> list[PositionView]:
        acct = normalize_account(account)
        return [PositionView.of(p) for p in self.positions.for_account(acct)]
