from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.types import JSON, TypeDecorator

from stakepool.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def uuid_str() -> str:
    return str(uuid.uuid4())


class TokenAmount(TypeDecorator):
    """
    Integer token amount in the smallest unit (uint256 range).
    NUMERIC(78, 0) on PostgreSQL; decimal text elsewhere (SQLite has no exact
    integer type wider than 64 bits). Always surfaced to Python as int.
    """

    impl = Numeric(78, 0)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(Numeric(78, 0))
        return dialect.type_descriptor(String(80))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "postgresql":
            return int(value)
        return str(int(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return int(value)


class StakingEventType(str, enum.Enum):
    PACKAGE_ADDED = "PACKAGE_ADDED"
    PACKAGE_REMOVED = "PACKAGE_REMOVED"
    STAKE_UPDATE = "STAKE_UPDATE"
    STAKE_RELEASED = "STAKE_RELEASED"


class StakePackage(Base):
    __tablename__ = "stake_packages"

    # assigned sequentially by the registry, starting at 1
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)

    rate: Mapped[int] = mapped_column(Integer, nullable=False)
    rate_decimal: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # rate=350, decimal=2 => 3.50%
    min_staking: Mapped[int] = mapped_column(TokenAmount, nullable=False)
    lock_duration: Mapped[int] = mapped_column(BigInteger, nullable=False)  # seconds

    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    removed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    positions: Mapped[list["StakePosition"]] = relationship(back_populates="package")

    __table_args__ = (
        CheckConstraint("rate > 0", name="ck_stake_packages_rate_positive"),
        CheckConstraint("rate_decimal >= 0", name="ck_stake_packages_rate_decimal_nonneg"),
        CheckConstraint("lock_duration > 0", name="ck_stake_packages_lock_positive"),
        CheckConstraint("min_staking > 0", name="ck_stake_packages_min_staking_positive"),
    )


class StakePosition(Base):
    __tablename__ = "stake_positions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=uuid_str)

    account: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    package_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("stake_packages.id", ondelete="RESTRICT"), nullable=False
    )

    # unix seconds; 0 while the position is empty
    start_time: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    time_point: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    principal: Mapped[int] = mapped_column(TokenAmount, nullable=False, default=0)
    accrued_profit: Mapped[int] = mapped_column(TokenAmount, nullable=False, default=0)

    package: Mapped["StakePackage"] = relationship(back_populates="positions")

    __table_args__ = (
        UniqueConstraint("account", "package_id", name="uq_stake_positions_account_package"),
        CheckConstraint("principal >= 0", name="ck_stake_positions_principal_nonneg"),
        CheckConstraint("accrued_profit >= 0", name="ck_stake_positions_accrued_nonneg"),
    )


class StakingEvent(Base):
    __tablename__ = "staking_events"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=uuid_str)

    event_type: Mapped[str] = mapped_column(String(40), nullable=False, index=True)

    account: Mapped[str | None] = mapped_column(String(42), nullable=True, index=True)
    package_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    principal: Mapped[int | None] = mapped_column(TokenAmount, nullable=True)
    profit: Mapped[int | None] = mapped_column(TokenAmount, nullable=True)

    occurred_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    details: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        Index("ix_staking_events_account_time", "account", "occurred_at"),
        CheckConstraint("event_type <> ''", name="ck_staking_events_type_nonempty"),
    )


class LedgerBalance(Base):
    __tablename__ = "ledger_balances"

    account: Mapped[str] = mapped_column(String(42), primary_key=True)
    amount: Mapped[int] = mapped_column(TokenAmount, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_ledger_balances_amount_nonneg"),
    )


class LedgerTransfer(Base):
    __tablename__ = "ledger_transfers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    from_account: Mapped[str | None] = mapped_column(String(42), nullable=True, index=True)  # NULL => mint
    to_account: Mapped[str] = mapped_column(String(42), nullable=False, index=True)
    amount: Mapped[int] = mapped_column(TokenAmount, nullable=False)

    kind: Mapped[str] = mapped_column(String(32), nullable=False)  # mint, stake, unstake_principal, unstake_profit
    memo: Mapped[str | None] = mapped_column(String(200), nullable=True)

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_ledger_transfers_amount_nonneg"),
    )
