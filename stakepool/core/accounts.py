from __future__ import annotations

from web3 import Web3

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def is_zero_address(account: str | None) -> bool:
    if account is None:
        return True
    a = account.strip()
    if not a:
        return True
    return a.lower() == ZERO_ADDRESS


def normalize_account(account: str) -> str:
    """
    EIP-55 checksum form, so the same holder never maps to two positions.
    The null identity passes through unchanged; callers reject it with ZeroAddress.
    """
    if is_zero_address(account):
        return ZERO_ADDRESS
    a = account.strip()
    if not Web3.is_address(a):
        raise ValueError(f"not an address: {account!r}")
    return Web3.to_checksum_address(a)
