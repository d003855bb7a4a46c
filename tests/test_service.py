"""
Tests for the stake/unstake orchestrator.

Covers validation order, the empty -> open -> empty position lifecycle,
accrual roll-forward on top-ups, lock timing, event delivery and rollback.
"""
import threading

import pytest

from stakepool.core.accounts import ZERO_ADDRESS
from stakepool.core.errors import (
    BelowMinimum,
    InsufficientBalance,
    LockNotElapsed,
    NoPosition,
    PackageOffline,
    UnknownPackage,
    ZeroAddress,
)
from stakepool.core.staking.calculator import reward
from stakepool.core.staking.events import StakeReleased, StakeUpdate
from stakepool.core.staking.service import PositionLocks
from stakepool.core.staking.state import PositionState
from stakepool.models_staking import StakingEvent

from tests.conftest import DAY, OTHER, STAKER, TOKEN

STAKE = 500 * TOKEN


@pytest.fixture
def received(bus):
    events = []
    bus.subscribe(events.append)
    return events


class TestStakeValidation:
    def test_unknown_package(self, svc, package_id, funded):
        with pytest.raises(UnknownPackage):
            svc.stake(STAKER, STAKE, 2)

    def test_removed_package_is_offline(self, svc, package_id, funded):
        svc.packages.remove_package(package_id)
        with pytest.raises(PackageOffline):
            svc.stake(STAKER, STAKE, package_id)

    def test_zero_address(self, svc, package_id, funded):
        with pytest.raises(ZeroAddress):
            svc.stake(ZERO_ADDRESS, STAKE, package_id)

    def test_empty_identity_is_zero_address(self, svc, package_id, funded):
        with pytest.raises(ZeroAddress):
            svc.stake("", STAKE, package_id)

    def test_insufficient_balance(self, svc, package_id, ledger):
        ledger.mint(STAKER, 200 * TOKEN)
        with pytest.raises(InsufficientBalance) as exc:
            svc.stake(STAKER, STAKE, package_id)
        assert exc.value.account == STAKER
        assert exc.value.value == STAKE

    def test_balance_checked_before_minimum(self, svc, package_id, ledger):
        ledger.mint(STAKER, 10 * TOKEN)
        with pytest.raises(InsufficientBalance):
            svc.stake(STAKER, 50 * TOKEN, package_id)

    def test_below_minimum(self, svc, package_id, funded):
        with pytest.raises(BelowMinimum):
            svc.stake(STAKER, 99 * TOKEN, package_id)

    def test_failed_stake_leaves_no_position(self, svc, package_id, funded):
        with pytest.raises(BelowMinimum):
            svc.stake(STAKER, 99 * TOKEN, package_id)
        assert svc.positions.find(STAKER, package_id) is None


class TestStake:
    def test_first_deposit_opens_position(self, svc, package_id, funded, clock, ledger):
        evt = svc.stake(STAKER, STAKE, package_id)
        pos = svc.get_position(STAKER, package_id)

        assert pos.state is PositionState.OPEN
        assert pos.start_time == pos.time_point == clock.now
        assert pos.accrued_profit == 0
        assert pos.principal == STAKE
        assert evt == StakeUpdate(STAKER, package_id, STAKE, 0, clock.now)
        assert ledger.balance_of(STAKER) == 1500 * TOKEN
        assert ledger.balance_of_reserve() == 100 * TOKEN + STAKE

    def test_top_up_rolls_accrual_forward(self, svc, package_id, funded, clock):
        svc.stake(STAKER, STAKE, package_id)
        opened_at = clock.now
        clock.advance(10 * DAY)

        evt = svc.stake(STAKER, 300 * TOKEN, package_id)
        pos = svc.get_position(STAKER, package_id)

        expected = reward(STAKE, 10 * DAY, 3, 0)
        assert pos.accrued_profit == expected
        assert pos.start_time == opened_at
        assert pos.time_point == clock.now
        assert pos.principal == 800 * TOKEN
        assert evt.accrued_profit == expected

    def test_new_deposit_does_not_earn_for_past_time(self, svc, package_id, funded, clock):
        svc.stake(STAKER, STAKE, package_id)
        clock.advance(10 * DAY)
        svc.stake(STAKER, STAKE, package_id)
        clock.advance(5 * DAY)
        svc.stake(STAKER, STAKE, package_id)

        pos = svc.get_position(STAKER, package_id)
        assert pos.accrued_profit == reward(STAKE, 10 * DAY, 3, 0) + reward(2 * STAKE, 5 * DAY, 3, 0)

    def test_same_second_top_up_accrues_nothing(self, svc, package_id, funded):
        svc.stake(STAKER, STAKE, package_id)
        svc.stake(STAKER, STAKE, package_id)
        assert svc.get_position(STAKER, package_id).accrued_profit == 0

    def test_positions_are_per_account_and_package(self, svc, package_id, funded, ledger):
        other_pkg = svc.packages.add_package(12, 0, TOKEN, DAY)
        ledger.mint(OTHER, STAKE)
        svc.stake(STAKER, STAKE, package_id)
        svc.stake(STAKER, 100 * TOKEN, other_pkg)
        svc.stake(OTHER, STAKE, package_id)

        assert [p.package_id for p in svc.list_positions(STAKER)] == [package_id, other_pkg]
        assert svc.get_position(OTHER, other_pkg).state is PositionState.EMPTY


class TestUnstake:
    def test_unknown_package(self, svc, package_id, funded):
        with pytest.raises(UnknownPackage):
            svc.unstake(STAKER, 9)

    def test_no_position(self, svc, package_id, funded):
        with pytest.raises(NoPosition):
            svc.unstake(STAKER, package_id)

    def test_lock_not_elapsed(self, svc, package_id, funded, clock):
        svc.stake(STAKER, STAKE, package_id)
        clock.advance(30 * DAY - 1)
        with pytest.raises(LockNotElapsed) as exc:
            svc.unstake(STAKER, package_id)
        assert exc.value.value == 1

    def test_exactly_at_lock_end_succeeds(self, svc, package_id, funded, clock):
        svc.stake(STAKER, STAKE, package_id)
        clock.advance(30 * DAY)
        evt = svc.unstake(STAKER, package_id)
        assert evt.principal == STAKE
        assert evt.total_profit == reward(STAKE, 30 * DAY, 3, 0)

    def test_top_up_does_not_extend_lock(self, svc, package_id, funded, clock):
        svc.stake(STAKER, STAKE, package_id)
        clock.advance(29 * DAY)
        svc.stake(STAKER, STAKE, package_id)
        clock.advance(DAY)
        evt = svc.unstake(STAKER, package_id)
        assert evt.principal == 2 * STAKE

    def test_pays_principal_and_profit_then_closes(self, svc, package_id, funded, clock, ledger):
        svc.stake(STAKER, STAKE, package_id)
        clock.advance(40 * DAY)
        evt = svc.unstake(STAKER, package_id)

        profit = reward(STAKE, 40 * DAY, 3, 0)
        assert ledger.balance_of(STAKER) == 2000 * TOKEN + profit
        assert ledger.balance_of_reserve() == 100 * TOKEN - profit

        pos = svc.get_position(STAKER, package_id)
        assert (pos.start_time, pos.time_point, pos.principal, pos.accrued_profit) == (0, 0, 0, 0)
        assert evt.total_profit == profit

        with pytest.raises(NoPosition):
            svc.unstake(STAKER, package_id)

    def test_removed_package_can_still_be_unwound(self, svc, package_id, funded, clock):
        svc.stake(STAKER, STAKE, package_id)
        svc.packages.remove_package(package_id)
        clock.advance(30 * DAY)
        evt = svc.unstake(STAKER, package_id)
        assert evt.principal == STAKE

    def test_underfunded_reserve_changes_nothing(self, svc, package_id, ledger, clock, db):
        ledger.mint(STAKER, STAKE)
        svc.stake(STAKER, STAKE, package_id)
        db.commit()
        clock.advance(365 * DAY)

        with pytest.raises(InsufficientBalance):
            svc.unstake(STAKER, package_id)

        pos = svc.get_position(STAKER, package_id)
        assert pos.principal == STAKE
        assert ledger.balance_of_reserve() == STAKE
        assert ledger.balance_of(STAKER) == 0

    def test_reopen_after_close(self, svc, package_id, funded, clock):
        svc.stake(STAKER, STAKE, package_id)
        clock.advance(30 * DAY)
        svc.unstake(STAKER, package_id)
        clock.advance(DAY)
        svc.stake(STAKER, STAKE, package_id)

        pos = svc.get_position(STAKER, package_id)
        assert pos.start_time == clock.now
        assert pos.accrued_profit == 0


class TestPendingReward:
    def test_empty_position(self, svc, package_id):
        assert svc.pending_reward(STAKER, package_id) == 0

    def test_includes_accrued_and_running(self, svc, package_id, funded, clock):
        svc.stake(STAKER, STAKE, package_id)
        clock.advance(10 * DAY)
        svc.stake(STAKER, STAKE, package_id)
        clock.advance(3 * DAY)
        assert svc.pending_reward(STAKER, package_id) == (
            reward(STAKE, 10 * DAY, 3, 0) + reward(2 * STAKE, 3 * DAY, 3, 0)
        )


class TestEvents:
    def test_stake_commits_before_returning(self, svc, package_id, funded, received, db):
        svc.stake(STAKER, STAKE, package_id)
        assert len(received) == 1
        assert isinstance(received[0], StakeUpdate)

        db.rollback()
        assert svc.get_position(STAKER, package_id).principal == STAKE

    def test_dropped_on_rollback(self, bus, received, db, clock):
        bus.emit(db, StakeUpdate(STAKER, 1, STAKE, 0, clock.now))
        db.rollback()
        db.commit()
        assert received == []

    def test_failed_unstake_delivers_nothing(self, svc, package_id, ledger, clock, received, db):
        ledger.mint(STAKER, STAKE)
        svc.stake(STAKER, STAKE, package_id)
        received.clear()
        clock.advance(365 * DAY)

        with pytest.raises(InsufficientBalance):
            svc.unstake(STAKER, package_id)
        assert received == []
        assert db.query(StakingEvent).filter_by(event_type="STAKE_RELEASED").count() == 0

    def test_persisted(self, svc, package_id, funded, clock, db):
        svc.stake(STAKER, STAKE, package_id)
        clock.advance(30 * DAY)
        svc.unstake(STAKER, package_id)
        db.commit()
        rows = (
            db.query(StakingEvent)
            .filter(StakingEvent.account.isnot(None))
            .order_by(StakingEvent.occurred_at.asc())
            .all()
        )
        assert [r.event_type for r in rows] == ["STAKE_UPDATE", "STAKE_RELEASED"]
        assert rows[1].principal == STAKE

    def test_broken_listener_does_not_block_others(self, svc, bus, package_id, funded, received, db):
        def boom(evt):
            raise RuntimeError("listener down")

        bus.subscribe(boom)
        later = []
        bus.subscribe(later.append)
        svc.stake(STAKER, STAKE, package_id)
        db.commit()
        assert len(received) == 1
        assert len(later) == 1


def test_concrete_scenario(svc, package_id, ledger, clock, received, db):
    """rate=3, decimal=0, lock=30 days, min=100: stake 500, +10d stake 500, +30d unstake."""
    ledger.mint(STAKER, 1000 * TOKEN)
    ledger.mint(svc.ledger.reserve_account, 10 * TOKEN)
    db.commit()

    svc.stake(STAKER, STAKE, package_id)
    db.commit()

    clock.advance(10 * DAY)
    svc.stake(STAKER, STAKE, package_id)
    db.commit()
    accrued = 500 * TOKEN * 864000 * 3 // (31536000 * 100)

    clock.advance(30 * DAY)
    svc.unstake(STAKER, package_id)
    db.commit()
    total = accrued + reward(1000 * TOKEN, 30 * DAY, 3, 0)

    assert received == [
        StakeUpdate(STAKER, package_id, 500 * TOKEN, 0, clock.now - 40 * DAY),
        StakeUpdate(STAKER, package_id, 1000 * TOKEN, accrued, clock.now - 30 * DAY),
        StakeReleased(STAKER, package_id, 1000 * TOKEN, total, clock.now),
    ]
    assert accrued == 30 * TOKEN // 73
    assert total == 30 * TOKEN // 73 + 180 * TOKEN // 73
    assert ledger.balance_of(STAKER) == 1000 * TOKEN + total
    assert svc.get_position(STAKER, package_id).state is PositionState.EMPTY


class TestPositionLocks:
    def test_released_entries_are_evicted(self):
        locks = PositionLocks()
        with locks.hold(STAKER, 1):
            assert len(locks) == 1
        assert len(locks) == 0

    def test_key_ignores_address_case(self):
        locks = PositionLocks()
        addr = "0xAbCdEf0000000000000000000000000000000001"
        entered = threading.Event()

        def other_spelling():
            with locks.hold(addr.lower(), 1):
                entered.set()

        with locks.hold(addr, 1):
            t = threading.Thread(target=other_spelling)
            t.start()
            assert not entered.wait(0.1)
        t.join(5)
        assert entered.is_set()
        assert len(locks) == 0

    def test_service_leaves_no_entries_behind(self, svc, package_id, funded, clock):
        svc.stake(STAKER, STAKE, package_id)
        with pytest.raises(InsufficientBalance):
            svc.stake(OTHER, TOKEN, package_id)
        clock.advance(30 * DAY)
        svc.unstake(STAKER, package_id)
        assert len(svc.locks) == 0
