from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, HTTPException

from stakepool.core.accounts import normalize_account
from stakepool.core.ledger import SqlReserveLedger
from stakepool.core.staking.service import PositionView, StakingService
from stakepool.deps import get_ledger, get_service
from stakepool.models_staking import StakePackage
from stakepool.schemas_staking import (
    BalanceOut,
    PackageOut,
    PositionOut,
    StakeIn,
    StakeReleasedOut,
    StakeUpdateOut,
    UnstakeIn,
)

router = APIRouter(tags=["staking"])


def package_out(p: StakePackage) -> PackageOut:
    return PackageOut(
        id=p.id,
        rate=p.rate,
        rate_decimal=p.rate_decimal,
        min_staking=int(p.min_staking),
        lock_duration=int(p.lock_duration),
        active=p.active,
    )


def _position_out(view: PositionView, pending: int | None = None, lock_duration: int | None = None) -> PositionOut:
    unlocks_at = None
    if view.principal > 0 and lock_duration is not None:
        unlocks_at = view.start_time + lock_duration
    return PositionOut(
        account=view.account,
        package_id=view.package_id,
        state=view.state.value,
        start_time=view.start_time,
        time_point=view.time_point,
        principal=view.principal,
        accrued_profit=view.accrued_profit,
        pending_reward=pending,
        unlocks_at=unlocks_at,
    )


@router.get("/packages", response_model=list[PackageOut])
def list_packages(active_only: bool = False, svc: StakingService = Depends(get_service)):
    return [package_out(p) for p in svc.packages.list_packages(active_only=active_only)]


@router.get("/packages/{package_id}", response_model=PackageOut)
def get_package(package_id: int, svc: StakingService = Depends(get_service)):
    return package_out(svc.packages.get(package_id))


@router.post("/staking/stake", response_model=StakeUpdateOut)
def stake(body: StakeIn, svc: StakingService = Depends(get_service)):
    # the service commits (or rolls back) while it still holds the position lock
    try:
        evt = svc.stake(body.account, body.amount, body.package_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return StakeUpdateOut(**asdict(evt))


@router.post("/staking/unstake", response_model=StakeReleasedOut)
def unstake(body: UnstakeIn, svc: StakingService = Depends(get_service)):
    try:
        evt = svc.unstake(body.account, body.package_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return StakeReleasedOut(**asdict(evt))


def _checked_account(account: str) -> str:
    try:
        return normalize_account(account)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))


@router.get("/staking/positions/{account}", response_model=list[PositionOut])
def list_positions(account: str, svc: StakingService = Depends(get_service)):
    acct = _checked_account(account)
    return [_position_out(v) for v in svc.list_positions(acct)]


@router.get("/staking/positions/{account}/{package_id}", response_model=PositionOut)
def get_position(account: str, package_id: int, svc: StakingService = Depends(get_service)):
    acct = _checked_account(account)
    view = svc.get_position(acct, package_id)
    pkg = svc.packages.get(package_id)
    return _position_out(view, pending=svc.pending_reward(acct, package_id), lock_duration=int(pkg.lock_duration))


@router.get("/ledger/balances/{account}", response_model=BalanceOut)
def get_balance(account: str, ledger: SqlReserveLedger = Depends(get_ledger)):
    acct = _checked_account(account)
    return BalanceOut(account=acct, balance=ledger.balance_of(acct))
