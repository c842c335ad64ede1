"""Owner-confirmed daily settlements and creditor flags

Revision ID: 20261019_owner_settlements
Revises: 20261019_initial_settlement
Create Date: 2026-10-19 15:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_owner_settlements"
down_revision = "20261019_initial_settlement"
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table("creditors", schema=None) as batch_op:
        batch_op.add_column(sa.Column("is_flagged", sa.Boolean(), nullable=False, server_default=sa.false()))
        batch_op.add_column(sa.Column("flag_reason", sa.String(length=255), nullable=True))
        batch_op.add_column(sa.Column("flagged_at", sa.DateTime(timezone=True), nullable=True))
        batch_op.create_index("ix_creditors_is_flagged", ["is_flagged"], unique=False)

    op.create_table(
        "daily_settlements",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("station_id", sa.Integer(), nullable=False),
        sa.Column("settlement_date", sa.Date(), nullable=False),
        sa.Column("final_station_id", sa.Integer(), nullable=True),
        sa.Column("transactions_count", sa.Integer(), nullable=False),
        sa.Column("reported_cash_cents", sa.BigInteger(), nullable=False),
        sa.Column("reported_online_cents", sa.BigInteger(), nullable=False),
        sa.Column("reported_credit_cents", sa.BigInteger(), nullable=False),
        sa.Column("actual_cash_cents", sa.BigInteger(), nullable=False),
        sa.Column("actual_online_cents", sa.BigInteger(), nullable=False),
        sa.Column("actual_credit_cents", sa.BigInteger(), nullable=False),
        sa.Column("cash_variance_cents", sa.BigInteger(), nullable=False),
        sa.Column("online_variance_cents", sa.BigInteger(), nullable=False),
        sa.Column("credit_variance_cents", sa.BigInteger(), nullable=False),
        sa.Column("is_final", sa.Boolean(), nullable=False),
        sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("recorded_by_user_id", sa.Integer(), nullable=True),
        sa.Column(
            "recorded_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
        ),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["station_id"], ["stations.id"], name="fk_daily_settlements_station_id_stations"),
        sa.ForeignKeyConstraint(
            ["recorded_by_user_id"], ["users.id"], name="fk_daily_settlements_recorded_by_user_id_users"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_daily_settlements"),
        sa.UniqueConstraint("final_station_id", "settlement_date", name="uq_daily_settlements_final"),
        sqlite_autoincrement=True,
    )
    op.create_index(
        "ix_daily_settlements_station_date", "daily_settlements", ["station_id", "settlement_date"], unique=False
    )


def downgrade():
    op.drop_index("ix_daily_settlements_station_date", table_name="daily_settlements")
    op.drop_table("daily_settlements")

    with op.batch_alter_table("creditors", schema=None) as batch_op:
        batch_op.drop_index("ix_creditors_is_flagged")
        batch_op.drop_column("flagged_at")
        batch_op.drop_column("flag_reason")
        batch_op.drop_column("is_flagged")
