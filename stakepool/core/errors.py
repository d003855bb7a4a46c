from __future__ import annotations

from typing import Any


class StakingError(Exception):
    """
    Base for every validation failure of the staking core.
    Raised before any mutation; callers decide whether to retry.
    """

    code = "staking_error"
    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        account: str | None = None,
        package_id: int | None = None,
        value: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.account = account
        self.package_id = package_id
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"error": self.code, "detail": self.message}
        if self.account is not None:
            out["account"] = self.account
        if self.package_id is not None:
            out["package_id"] = self.package_id
        if self.value is not None:
            out["value"] = str(self.value)
        return out


# --- package creation ---

class InvalidRate(StakingError):
    code = "invalid_rate"


class InvalidMinStaking(StakingError):
    code = "invalid_min_staking"


class InvalidLockDuration(StakingError):
    code = "invalid_lock_duration"


# --- package lifecycle ---

class UnknownPackage(StakingError):
    code = "unknown_package"
    status_code = 404


class AlreadyRemoved(StakingError):
    code = "already_removed"
    status_code = 409


# --- staking lifecycle ---

class PackageOffline(StakingError):
    code = "package_offline"
    status_code = 409


class ZeroAddress(StakingError):
    code = "zero_address"


class InsufficientBalance(StakingError):
    code = "insufficient_balance"
    status_code = 409


class BelowMinimum(StakingError):
    code = "below_minimum"


class NoPosition(StakingError):
    code = "no_position"
    status_code = 404


class LockNotElapsed(StakingError):
    code = "lock_not_elapsed"
    status_code = 409
