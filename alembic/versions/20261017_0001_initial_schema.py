"""Initial schema for subjects, trades, wallets and achievement unlocks.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-17 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Launched subjects
    op.create_table(
        "subjects",
        sa.Column("mint", sa.String(64), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("symbol", sa.String(32), nullable=False),
        sa.Column("deployer", sa.String(64), nullable=True),
        sa.Column("quote_mint", sa.String(64), nullable=True),
        sa.Column("pool", sa.String(64), nullable=True),
        sa.Column("image_url", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("migrated", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("migrated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("unicorn_hunter_awarded", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint("mint"),
    )
    op.create_index("idx_subjects_deployer", "subjects", ["deployer"])
    op.create_index("idx_subjects_migrated", "subjects", ["migrated"])

    # Ingested trades
    op.create_table(
        "trades",
        sa.Column("signature", sa.String(128), nullable=False),
        sa.Column("subject_id", sa.String(64), nullable=False),
        sa.Column("wallet_address", sa.String(64), nullable=False),
        sa.Column("side", sa.String(4), nullable=False),
        sa.Column("native_volume", sa.Numeric(30, 9), nullable=False),
        sa.Column("usd_volume", sa.Numeric(30, 6), nullable=False),
        sa.Column("ts", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("signature"),
    )
    op.create_index("idx_trades_wallet_ts", "trades", ["wallet_address", "ts"])
    op.create_index("idx_trades_subject_side_ts", "trades", ["subject_id", "side", "ts"])

    # Wallet quest statistics
    op.create_table(
        "wallets",
        sa.Column("address", sa.String(64), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_volume", sa.Numeric(30, 9), nullable=False, server_default="0"),
        sa.Column("profitable_flips", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("flip_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("deployed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("snipe_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("comment_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("address"),
    )
    op.create_index("idx_wallets_points", "wallets", ["points"])

    # Achievement unlocks
    op.create_table(
        "wallet_achievements",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("address", sa.String(64), nullable=False),
        sa.Column("achievement_id", sa.String(64), nullable=False),
        sa.Column("points", sa.Integer(), nullable=False),
        sa.Column("unlocked_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("address", "achievement_id", name="uq_wallet_achievements_unlock"),
    )
    op.create_index("idx_wallet_achievements_address", "wallet_achievements", ["address"])


def downgrade() -> None:
    op.drop_index("idx_wallet_achievements_address", table_name="wallet_achievements")
    op.drop_table("wallet_achievements")
    op.drop_index("idx_wallets_points", table_name="wallets")
    op.drop_table("wallets")
    op.drop_index("idx_trades_subject_side_ts", table_name="trades")
    op.drop_index("idx_trades_wallet_ts", table_name="trades")
    op.drop_table("trades")
    op.drop_index("idx_subjects_migrated", table_name="subjects")
    op.drop_index("idx_subjects_deployer", table_name="subjects")
    op.drop_table("subjects")
