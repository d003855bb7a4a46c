from __future__ import annotations

from fastapi import APIRouter, Depends

from stakepool.core.errors import StakingError
from stakepool.core.ledger import SqlReserveLedger
from stakepool.core.staking.service import StakingService
from stakepool.deps import get_ledger, get_service, require_admin_key
from stakepool.routers.staking import package_out
from stakepool.schemas_staking import BalanceOut, MintIn, PackageIn, PackageOut

router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin_key)])


@router.post("/packages", response_model=PackageOut, status_code=201)
def add_package(body: PackageIn, svc: StakingService = Depends(get_service)):
    try:
        package_id = svc.packages.add_package(body.rate, body.rate_decimal, body.min_staking, body.lock_duration)
        svc.db.commit()
    except StakingError:
        svc.db.rollback()
        raise
    return package_out(svc.packages.get(package_id))


@router.delete("/packages/{package_id}", response_model=PackageOut)
def remove_package(package_id: int, svc: StakingService = Depends(get_service)):
    try:
        pkg = svc.packages.remove_package(package_id)
        svc.db.commit()
    except StakingError:
        svc.db.rollback()
        raise
    return package_out(pkg)


@router.post("/ledger/mint", response_model=BalanceOut)
def mint(body: MintIn, ledger: SqlReserveLedger = Depends(get_ledger)):
    """
    Credit an account (or the reserve) out of thin air. Used to pre-fund
    the reserve that pays rewards.
    """
    ledger.mint(body.account, body.amount, memo=body.memo)
    ledger.db.commit()
    return BalanceOut(account=body.account, balance=ledger.balance_of(body.account))
