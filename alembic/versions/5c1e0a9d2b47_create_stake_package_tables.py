"""create_stake_package_tables

Revision ID: 5c1e0a9d2b47
Revises:
Create Date: 2026-10-19 10:12:41.204417

"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "5c1e0a9d2b47"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- stake_packages (append-only; id assigned by the registry) ---
    op.create_table(
        "stake_packages",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=False, nullable=False),
        sa.Column("rate", sa.Integer(), nullable=False),
        sa.Column("rate_decimal", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("min_staking", sa.Numeric(78, 0), nullable=False),
        sa.Column("lock_duration", sa.BigInteger(), nullable=False),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("timezone('utc', now())"),
        ),
        sa.Column("removed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("rate > 0", name="ck_stake_packages_rate_positive"),
        sa.CheckConstraint("rate_decimal >= 0", name="ck_stake_packages_rate_decimal_nonneg"),
        sa.CheckConstraint("lock_duration > 0", name="ck_stake_packages_lock_positive"),
        sa.CheckConstraint("min_staking > 0", name="ck_stake_packages_min_staking_positive"),
    )
    op.create_index("ix_stake_packages_active", "stake_packages", ["active"], unique=False)

    # --- stake_positions ---
    op.create_table(
        "stake_positions",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("account", sa.String(length=42), nullable=False),
        sa.Column(
            "package_id",
            sa.Integer(),
            sa.ForeignKey("stake_packages.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("start_time", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("time_point", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("principal", sa.Numeric(78, 0), nullable=False, server_default=sa.text("0")),
        sa.Column("accrued_profit", sa.Numeric(78, 0), nullable=False, server_default=sa.text("0")),
        sa.CheckConstraint("principal >= 0", name="ck_stake_positions_principal_nonneg"),
        sa.CheckConstraint("accrued_profit >= 0", name="ck_stake_positions_accrued_nonneg"),
        sa.UniqueConstraint("account", "package_id", name="uq_stake_positions_account_package"),
    )
    op.create_index("ix_stake_positions_account", "stake_positions", ["account"], unique=False)

    # --- staking_events ---
    op.create_table(
        "staking_events",
        sa.Column("id", sa.String(length=36), primary_key=True, nullable=False),
        sa.Column("event_type", sa.String(length=40), nullable=False),
        sa.Column("account", sa.String(length=42), nullable=True),
        sa.Column("package_id", sa.Integer(), nullable=True),
        sa.Column("principal", sa.Numeric(78, 0), nullable=True),
        sa.Column("profit", sa.Numeric(78, 0), nullable=True),
        sa.Column("occurred_at", sa.BigInteger(), nullable=False),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.CheckConstraint("event_type <> ''", name="ck_staking_events_type_nonempty"),
    )
    op.create_index("ix_staking_events_event_type", "staking_events", ["event_type"], unique=False)
    op.create_index("ix_staking_events_account", "staking_events", ["account"], unique=False)
    op.create_index("ix_staking_events_package_id", "staking_events", ["package_id"], unique=False)
    op.create_index(
        "ix_staking_events_account_time",
        "staking_events",
        ["account", "occurred_at"],
        unique=False,
    )

    # --- reserve ledger ---
    op.create_table(
        "ledger_balances",
        sa.Column("account", sa.String(length=42), primary_key=True, nullable=False),
        sa.Column("amount", sa.Numeric(78, 0), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("timezone('utc', now())"),
        ),
        sa.CheckConstraint("amount >= 0", name="ck_ledger_balances_amount_nonneg"),
    )

    op.create_table(
        "ledger_transfers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("timezone('utc', now())"),
        ),
        sa.Column("from_account", sa.String(length=42), nullable=True),  # NULL => mint
        sa.Column("to_account", sa.String(length=42), nullable=False),
        sa.Column("amount", sa.Numeric(78, 0), nullable=False),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("memo", sa.String(length=200), nullable=True),
        sa.CheckConstraint("amount >= 0", name="ck_ledger_transfers_amount_nonneg"),
    )
    op.create_index("ix_ledger_transfers_from_account", "ledger_transfers", ["from_account"], unique=False)
    op.create_index("ix_ledger_transfers_to_account", "ledger_transfers", ["to_account"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_ledger_transfers_to_account", table_name="ledger_transfers")
    op.drop_index("ix_ledger_transfers_from_account", table_name="ledger_transfers")
    op.drop_table("ledger_transfers")
    op.drop_table("ledger_balances")

    op.drop_index("ix_staking_events_account_time", table_name="staking_events")
    op.drop_index("ix_staking_events_package_id", table_name="staking_events")
    op.drop_index("ix_staking_events_account", table_name="staking_events")
    op.drop_index("ix_staking_events_event_type", table_name="staking_events")
    op.drop_table("staking_events")

    op.drop_index("ix_stake_positions_account", table_name="stake_positions")
    op.drop_table("stake_positions")

    op.drop_index("ix_stake_packages_active", table_name="stake_packages")
    op.drop_table("stake_packages")
