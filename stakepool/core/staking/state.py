from __future__ import annotations

import enum


class PositionState(str, enum.Enum):
    EMPTY = "EMPTY"
    OPEN = "OPEN"


class StakingStateError(RuntimeError):
    pass


ALLOWED = {
    (PositionState.EMPTY, PositionState.OPEN),   # first deposit
    (PositionState.OPEN, PositionState.OPEN),    # top-up
    (PositionState.OPEN, PositionState.EMPTY),   # full withdrawal
}


def state_of(principal: int) -> PositionState:
    return PositionState.OPEN if principal > 0 else PositionState.EMPTY


def assert_transition(from_state: PositionState, to_state: PositionState) -> None:
    if (from_state, to_state) not in ALLOWED:
        raise StakingStateError(f"Invalid transition: {from_state.value} -> {to_state.value}")


def lock_elapsed(now: int, start_time: int, lock_duration: int) -> bool:
    # lock window is anchored at the first deposit; top-ups do not extend it
    return now - start_time >= lock_duration
