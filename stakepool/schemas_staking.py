from __future__ import annotations

from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel, Field

from stakepool.core.accounts import normalize_account


# EIP-55 checksum form; malformed input becomes a 422
Account = Annotated[str, AfterValidator(normalize_account)]


class PackageIn(BaseModel):
    rate: int
    rate_decimal: int = 0  # range checked by the registry (InvalidRate)
    min_staking: int
    lock_duration: int  # seconds


class PackageOut(BaseModel):
    id: int
    rate: int
    rate_decimal: int
    min_staking: int
    lock_duration: int
    active: bool


class StakeIn(BaseModel):
    account: Account
    package_id: int = Field(..., ge=1)
    amount: int = Field(..., gt=0)


class UnstakeIn(BaseModel):
    account: Account
    package_id: int = Field(..., ge=1)


class StakeUpdateOut(BaseModel):
    account: str
    package_id: int
    principal: int
    accrued_profit: int
    occurred_at: int


class StakeReleasedOut(BaseModel):
    account: str
    package_id: int
    principal: int
    total_profit: int
    occurred_at: int


class PositionOut(BaseModel):
    account: str
    package_id: int
    state: str
    start_time: int
    time_point: int
    principal: int
    accrued_profit: int
    pending_reward: Optional[int] = None
    unlocks_at: Optional[int] = None


class MintIn(BaseModel):
    account: Account
    amount: int = Field(..., gt=0)
    memo: Optional[str] = Field(None, max_length=200)


class BalanceOut(BaseModel):
    account: str
    balance: int
