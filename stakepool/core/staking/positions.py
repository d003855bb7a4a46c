from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from stakepool.models_staking import StakePosition, uuid_str

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class PositionBook:
    """One row per (account, package_id); a zero principal means the position is empty."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def _query(self, account: str, package_id: int):
        return select(StakePosition).where(
            StakePosition.account == account,
            StakePosition.package_id == int(package_id),
        )

    def _insert_empty(self, account: str, package_id: int) -> None:
        # a concurrent first deposit may insert the same row; keep whichever landed first
        dialect = self.db.get_bind().dialect.name
        insert = _UPSERT_INSERTS.get(dialect)
        if insert is None:
            raise RuntimeError(f"unsupported database dialect for positions: {dialect}")
        stmt = (
            insert(StakePosition)
            .values(
                id=uuid_str(),
                account=account,
                package_id=int(package_id),
                start_time=0,
                time_point=0,
                principal=0,
                accrued_profit=0,
            )
            .on_conflict_do_nothing(index_elements=["account", "package_id"])
        )
        self.db.execute(stmt)

    def find(self, account: str, package_id: int) -> StakePosition | None:
        return self.db.execute(self._query(account, package_id)).scalar_one_or_none()

    def load_for_update(self, account: str, package_id: int, create: bool = False) -> StakePosition | None:
        """
        Locked row for the duration of the transaction. With create=True an
        empty row is added on first touch (deposits only).
        """
        pos = self.db.execute(self._query(account, package_id).with_for_update()).scalar_one_or_none()
        if pos is None and create:
            self._insert_empty(account, package_id)
            pos = self.db.execute(self._query(account, package_id).with_for_update()).scalar_one()
        return pos

    def for_account(self, account: str, open_only: bool = True) -> list[StakePosition]:
        rows = self.db.execute(
            select(StakePosition)
            .where(StakePosition.account == account)
            .order_by(StakePosition.package_id.asc())
        ).scalars()
        # principal is stored as text on sqlite, so filter in python
        return [p for p in rows if p.principal > 0 or not open_only]

    @staticmethod
    def open(pos: StakePosition, now: int) -> None:
        pos.start_time = now
        pos.time_point = now
        pos.accrued_profit = 0

    @staticmethod
    def close(pos: StakePosition) -> None:
        pos.start_time = 0
        pos.time_point = 0
        pos.principal = 0
        pos.accrued_profit = 0
