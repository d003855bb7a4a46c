from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from stakepool.core.accounts import normalize_account
from stakepool.core.errors import InsufficientBalance
from stakepool.models_staking import LedgerBalance, LedgerTransfer, utcnow

log = logging.getLogger("stakepool.ledger")


class ReserveLedger(Protocol):
    """Balance service the staking core moves tokens through."""

    reserve_account: str

    def balance_of(self, account: str) -> int: ...

    def balance_of_reserve(self) -> int: ...

    def transfer(self, from_account: str, to_account: str, amount: int, kind: str = "transfer") -> int: ...


class SqlReserveLedger:
    """
    Balance rows + transfer journal in the same database as the positions,
    so a stake/unstake and its token movements commit or roll back together.
    """

    def __init__(self, db: Session, reserve_account: str) -> None:
        self.db = db
        self.reserve_account = normalize_account(reserve_account)

    def _row_for_update(self, account: str) -> LedgerBalance:
        row = self.db.execute(
            select(LedgerBalance).where(LedgerBalance.account == account).with_for_update()
        ).scalar_one_or_none()
        if row is None:
            row = LedgerBalance(account=account, amount=0)
            self.db.add(row)
            self.db.flush()
        return row

    def balance_of(self, account: str) -> int:
        acct = normalize_account(account)
        row = self.db.get(LedgerBalance, acct)
        return int(row.amount) if row else 0

    def balance_of_reserve(self) -> int:
        return self.balance_of(self.reserve_account)

    def transfer(self, from_account: str, to_account: str, amount: int, kind: str = "transfer") -> int:
        amount = int(amount)
        if amount < 0:
            raise ValueError("amount must be >= 0")
        src = normalize_account(from_account)
        dst = normalize_account(to_account)

        # lock both rows in a stable order
        first, second = sorted({src, dst})
        rows = {first: self._row_for_update(first)}
        if second != first:
            rows[second] = self._row_for_update(second)

        if rows[src].amount < amount:
            raise InsufficientBalance(
                f"insufficient balance: {rows[src].amount} < {amount}",
                account=src,
                value=amount,
            )

        now = utcnow()
        rows[src].amount = rows[src].amount - amount
        rows[src].updated_at = now
        rows[dst].amount = rows[dst].amount + amount
        rows[dst].updated_at = now

        tx = LedgerTransfer(from_account=src, to_account=dst, amount=amount, kind=kind)
        self.db.add(tx)
        self.db.flush()
        return int(tx.id)

    def mint(self, to_account: str, amount: int, memo: str | None = None) -> int:
        """Admin credit (faucet / reserve pre-funding)."""
        amount = int(amount)
        if amount <= 0:
            raise ValueError("amount must be > 0")
        dst = normalize_account(to_account)
        row = self._row_for_update(dst)
        row.amount = row.amount + amount
        row.updated_at = utcnow()

        tx = LedgerTransfer(from_account=None, to_account=dst, amount=amount, kind="mint", memo=memo)
        self.db.add(tx)
        self.db.flush()
        log.info("ledger mint to=%s amount=%s", dst, amount)
        return int(tx.id)

    def history(self, account: str, limit: int = 10) -> list[LedgerTransfer]:
        limit = max(1, min(int(limit), 50))
        acct = normalize_account(account)
        return list(
            self.db.execute(
                select(LedgerTransfer)
                .where((LedgerTransfer.to_account == acct) | (LedgerTransfer.from_account == acct))
                .order_by(LedgerTransfer.id.desc())
                .limit(limit)
            ).scalars()
        )
