from __future__ import annotations
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "pool_snapshots",
        sa.Column("idx", sa.Integer(), primary_key=True, autoincrement=False, nullable=False),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        sa.Column("reward_received", sa.BigInteger(), nullable=False),
        sa.Column("total_shares", sa.BigInteger(), nullable=False),
        sa.CheckConstraint("reward_received >= 0", name="ck_pool_snapshots_reward_nonneg"),
        sa.CheckConstraint("total_shares >= 0", name="ck_pool_snapshots_total_nonneg"),
    )
    op.create_table(
        "pool_seats",
        sa.Column("participant_id", sa.String(length=128), primary_key=True, nullable=False),
        sa.Column("shares", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("settlement_time", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.CheckConstraint("shares >= 0", name="ck_pool_seats_shares_nonneg"),
    )
    op.create_table(
        "pool_events",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("participant_id", sa.String(length=128), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("at", sa.BigInteger(), nullable=False),
        sa.Column("snapshot_idx", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
    )
    op.create_index("ix_pool_events_participant_id", "pool_events", ["participant_id"])
    op.create_index("ix_pool_events_at", "pool_events", ["at"])
    op.create_table(
        "wallet_entries",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("account_id", sa.String(length=128), nullable=False),
        sa.Column("asset", sa.String(length=16), nullable=False),
        sa.Column("type", sa.String(length=16), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("external_id", sa.String(length=64), nullable=True),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.UniqueConstraint("external_id", name="uq_wallet_external_id"),
    )
    op.create_index("ix_wallet_entries_account_id", "wallet_entries", ["account_id"])

def downgrade() -> None:
    op.drop_index("ix_wallet_entries_account_id", table_name="wallet_entries")
    op.drop_table("wallet_entries")
    op.drop_index("ix_pool_events_at", table_name="pool_events")
    op.drop_index("ix_pool_events_participant_id", table_name="pool_events")
    op.drop_table("pool_events")
    op.drop_table("pool_seats")
    op.drop_table("pool_snapshots")
