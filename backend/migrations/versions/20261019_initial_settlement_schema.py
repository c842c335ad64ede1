"""Initial settlement schema: stations, readings, transactions, credit ledger, shifts, handovers

Revision ID: 20261019_initial_settlement
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_initial_settlement"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name, nullable=False):
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=nullable)


def upgrade():
    op.create_table(
        "stations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("code", sa.String(length=32), nullable=False),
        sa.Column("manager_user_id", sa.Integer(), nullable=True),
        sa.Column("owner_user_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _timestamp("created_at"),
        sa.PrimaryKeyConstraint("id", name="pk_stations"),
        sa.UniqueConstraint("code", name="uq_stations_code"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_stations_manager_user_id", "stations", ["manager_user_id"], unique=False)
    op.create_index("ix_stations_owner_user_id", "stations", ["owner_user_id"], unique=False)

    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("station_id", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["station_id"], ["stations.id"], name="fk_users_station_id_stations"),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_users_role", "users", ["role"], unique=False)
    op.create_index("ix_users_station_id", "users", ["station_id"], unique=False)

    op.create_table(
        "nozzles",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("station_id", sa.Integer(), nullable=False),
        sa.Column("label", sa.String(length=32), nullable=False),
        sa.Column("fuel_type", sa.String(length=32), nullable=False),
        sa.Column("initial_reading", sa.Numeric(14, 3), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("last_reading_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["station_id"], ["stations.id"], name="fk_nozzles_station_id_stations"),
        sa.PrimaryKeyConstraint("id", name="pk_nozzles"),
        sa.UniqueConstraint("station_id", "label", name="uq_nozzles_station_label"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_nozzles_station_id", "nozzles", ["station_id"], unique=False)
    op.create_index("ix_nozzles_fuel_type", "nozzles", ["fuel_type"], unique=False)

    op.create_table(
        "fuel_prices",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("station_id", sa.Integer(), nullable=False),
        sa.Column("fuel_type", sa.String(length=32), nullable=False),
        sa.Column("price_cents", sa.BigInteger(), nullable=False),
        sa.Column("effective_from", sa.Date(), nullable=False),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["station_id"], ["stations.id"], name="fk_fuel_prices_station_id_stations"),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], name="fk_fuel_prices_created_by_user_id_users"),
        sa.PrimaryKeyConstraint("id", name="pk_fuel_prices"),
        sa.UniqueConstraint("station_id", "fuel_type", "effective_from", name="uq_fuel_prices_station_fuel_from"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_fuel_prices_station_id", "fuel_prices", ["station_id"], unique=False)
    op.create_index("ix_fuel_prices_effective_from", "fuel_prices", ["effective_from"], unique=False)

    op.create_table(
        "creditors",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("station_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=128), nullable=False),
        sa.Column("contact_person", sa.String(length=128), nullable=True),
        sa.Column("contact_number", sa.String(length=32), nullable=True),
        sa.Column("credit_limit_cents", sa.BigInteger(), nullable=False),
        sa.Column("credit_period_days", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("last_entry_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(["station_id"], ["stations.id"], name="fk_creditors_station_id_stations"),
        sa.PrimaryKeyConstraint("id", name="pk_creditors"),
        sa.UniqueConstraint("station_id", "name", name="uq_creditors_station_name"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_creditors_station_id", "creditors", ["station_id"], unique=False)

    op.create_table(
        "shifts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("employee_id", sa.Integer(), nullable=False),
        sa.Column("station_id", sa.Integer(), nullable=False),
        sa.Column("active_employee_id", sa.Integer(), nullable=True),
        sa.Column("shift_date", sa.Date(), nullable=False),
        sa.Column("shift_type", sa.String(length=16), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("ended_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("readings_count", sa.Integer(), nullable=False),
        sa.Column("total_litres_sold", sa.Numeric(14, 3), nullable=False),
        sa.Column("total_sales_cents", sa.BigInteger(), nullable=False),
        sa.Column("online_cents", sa.BigInteger(), nullable=False),
        sa.Column("credit_cents", sa.BigInteger(), nullable=False),
        sa.Column("expected_cash_cents", sa.BigInteger(), nullable=False),
        sa.Column("actual_cash_cents", sa.BigInteger(), nullable=True),
        sa.Column("actual_online_cents", sa.BigInteger(), nullable=True),
        sa.Column("cash_difference_cents", sa.BigInteger(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("end_notes", sa.Text(), nullable=True),
        sa.Column("ended_by_user_id", sa.Integer(), nullable=True),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["employee_id"], ["users.id"], name="fk_shifts_employee_id_users"),
        sa.ForeignKeyConstraint(["station_id"], ["stations.id"], name="fk_shifts_station_id_stations"),
        sa.ForeignKeyConstraint(["ended_by_user_id"], ["users.id"], name="fk_shifts_ended_by_user_id_users"),
        sa.PrimaryKeyConstraint("id", name="pk_shifts"),
        # NULL once the shift leaves ACTIVE, so at most one ACTIVE shift per employee
        sa.UniqueConstraint("active_employee_id", name="uq_shifts_active_employee_id"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_shifts_employee_id", "shifts", ["employee_id"], unique=False)
    op.create_index("ix_shifts_status", "shifts", ["status"], unique=False)
    op.create_index("ix_shifts_station_date", "shifts", ["station_id", "shift_date"], unique=False)

    op.create_table(
        "daily_transactions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("station_id", sa.Integer(), nullable=False),
        sa.Column("shift_id", sa.Integer(), nullable=True),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("readings_count", sa.Integer(), nullable=False),
        sa.Column("total_litres", sa.Numeric(14, 3), nullable=False),
        sa.Column("sale_value_cents", sa.BigInteger(), nullable=False),
        sa.Column("cash_cents", sa.BigInteger(), nullable=False),
        sa.Column("online_cents", sa.BigInteger(), nullable=False),
        sa.Column("credit_cents", sa.BigInteger(), nullable=False),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.CheckConstraint("cash_cents >= 0", name="ck_daily_transactions_cash_non_negative"),
        sa.CheckConstraint("online_cents >= 0", name="ck_daily_transactions_online_non_negative"),
        sa.CheckConstraint("credit_cents >= 0", name="ck_daily_transactions_credit_non_negative"),
        sa.ForeignKeyConstraint(["station_id"], ["stations.id"], name="fk_daily_transactions_station_id_stations"),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"], name="fk_daily_transactions_shift_id_shifts"),
        sa.ForeignKeyConstraint(
            ["created_by_user_id"], ["users.id"], name="fk_daily_transactions_created_by_user_id_users"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_daily_transactions"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_daily_transactions_shift_id", "daily_transactions", ["shift_id"], unique=False)
    op.create_index(
        "ix_daily_transactions_created_by_user_id", "daily_transactions", ["created_by_user_id"], unique=False
    )
    op.create_index(
        "ix_daily_transactions_station_date", "daily_transactions", ["station_id", "transaction_date"], unique=False
    )

    op.create_table(
        "nozzle_readings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("station_id", sa.Integer(), nullable=False),
        sa.Column("nozzle_id", sa.Integer(), nullable=False),
        sa.Column("fuel_type", sa.String(length=32), nullable=False),
        sa.Column("entered_value", sa.Numeric(14, 3), nullable=False),
        sa.Column("comparison_value", sa.Numeric(14, 3), nullable=False),
        sa.Column("litres_sold", sa.Numeric(14, 3), nullable=False),
        sa.Column("price_cents", sa.BigInteger(), nullable=False),
        sa.Column("sale_value_cents", sa.BigInteger(), nullable=False),
        sa.Column("reading_date", sa.Date(), nullable=False),
        sa.Column("reading_time", sa.Time(), nullable=True),
        sa.Column("entered_by_user_id", sa.Integer(), nullable=True),
        sa.Column("transaction_id", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        sa.CheckConstraint(
            "entered_value > comparison_value", name="ck_nozzle_readings_reading_advances_meter"
        ),
        sa.ForeignKeyConstraint(["station_id"], ["stations.id"], name="fk_nozzle_readings_station_id_stations"),
        sa.ForeignKeyConstraint(["nozzle_id"], ["nozzles.id"], name="fk_nozzle_readings_nozzle_id_nozzles"),
        sa.ForeignKeyConstraint(
            ["entered_by_user_id"], ["users.id"], name="fk_nozzle_readings_entered_by_user_id_users"
        ),
        sa.ForeignKeyConstraint(
            ["transaction_id"], ["daily_transactions.id"], name="fk_nozzle_readings_transaction_id_daily_transactions"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_nozzle_readings"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_nozzle_readings_nozzle_id", "nozzle_readings", ["nozzle_id"], unique=False)
    op.create_index("ix_nozzle_readings_entered_by_user_id", "nozzle_readings", ["entered_by_user_id"], unique=False)
    op.create_index("ix_nozzle_readings_transaction_id", "nozzle_readings", ["transaction_id"], unique=False)
    op.create_index("ix_nozzle_readings_nozzle_created", "nozzle_readings", ["nozzle_id", "id"], unique=False)
    op.create_index("ix_nozzle_readings_station_date", "nozzle_readings", ["station_id", "reading_date"], unique=False)

    op.create_table(
        "credit_allocations",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("transaction_id", sa.Integer(), nullable=False),
        sa.Column("creditor_id", sa.Integer(), nullable=False),
        sa.Column("amount_cents", sa.BigInteger(), nullable=False),
        sa.CheckConstraint("amount_cents > 0", name="ck_credit_allocations_amount_positive"),
        sa.ForeignKeyConstraint(
            ["transaction_id"], ["daily_transactions.id"], name="fk_credit_allocations_transaction_id_daily_transactions"
        ),
        sa.ForeignKeyConstraint(["creditor_id"], ["creditors.id"], name="fk_credit_allocations_creditor_id_creditors"),
        sa.PrimaryKeyConstraint("id", name="pk_credit_allocations"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_credit_allocations_transaction_id", "credit_allocations", ["transaction_id"], unique=False)
    op.create_index("ix_credit_allocations_creditor_id", "credit_allocations", ["creditor_id"], unique=False)

    op.create_table(
        "credit_ledger_entries",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("creditor_id", sa.Integer(), nullable=False),
        sa.Column("station_id", sa.Integer(), nullable=False),
        sa.Column("entry_type", sa.String(length=16), nullable=False),
        sa.Column("delta_cents", sa.BigInteger(), nullable=False),
        sa.Column("cause_type", sa.String(length=32), nullable=False),
        sa.Column("cause_id", sa.Integer(), nullable=True),
        sa.Column("entry_date", sa.Date(), nullable=False),
        sa.Column("reference", sa.String(length=128), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("entered_by_user_id", sa.Integer(), nullable=True),
        _timestamp("occurred_at"),
        sa.CheckConstraint(
            "(entry_type = 'CREDIT' AND delta_cents > 0) OR (entry_type = 'SETTLEMENT' AND delta_cents < 0)",
            name="ck_credit_ledger_entries_delta_sign_matches_type",
        ),
        sa.ForeignKeyConstraint(
            ["creditor_id"], ["creditors.id"], name="fk_credit_ledger_entries_creditor_id_creditors"
        ),
        sa.ForeignKeyConstraint(["station_id"], ["stations.id"], name="fk_credit_ledger_entries_station_id_stations"),
        sa.ForeignKeyConstraint(
            ["entered_by_user_id"], ["users.id"], name="fk_credit_ledger_entries_entered_by_user_id_users"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_credit_ledger_entries"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_credit_ledger_entries_station_id", "credit_ledger_entries", ["station_id"], unique=False)
    op.create_index(
        "ix_credit_ledger_creditor_date", "credit_ledger_entries", ["creditor_id", "entry_date"], unique=False
    )

    op.create_table(
        "cash_handovers",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("station_id", sa.Integer(), nullable=False),
        sa.Column("handover_type", sa.String(length=32), nullable=False),
        sa.Column("handover_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("from_user_id", sa.Integer(), nullable=False),
        sa.Column("to_user_id", sa.Integer(), nullable=True),
        sa.Column("shift_id", sa.Integer(), nullable=True),
        sa.Column("previous_handover_id", sa.Integer(), nullable=True),
        sa.Column("expected_amount_cents", sa.BigInteger(), nullable=False),
        sa.Column("actual_amount_cents", sa.BigInteger(), nullable=True),
        sa.Column("difference_cents", sa.BigInteger(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("dispute_notes", sa.Text(), nullable=True),
        sa.Column("resolution_notes", sa.Text(), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_by_user_id", sa.Integer(), nullable=True),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("resolved_by_user_id", sa.Integer(), nullable=True),
        sa.Column("bank_name", sa.String(length=128), nullable=True),
        sa.Column("deposit_reference", sa.String(length=128), nullable=True),
        sa.Column("created_by_user_id", sa.Integer(), nullable=True),
        _timestamp("created_at"),
        sa.Column("version_id", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["station_id"], ["stations.id"], name="fk_cash_handovers_station_id_stations"),
        sa.ForeignKeyConstraint(["from_user_id"], ["users.id"], name="fk_cash_handovers_from_user_id_users"),
        sa.ForeignKeyConstraint(["to_user_id"], ["users.id"], name="fk_cash_handovers_to_user_id_users"),
        sa.ForeignKeyConstraint(["shift_id"], ["shifts.id"], name="fk_cash_handovers_shift_id_shifts"),
        sa.ForeignKeyConstraint(
            ["previous_handover_id"], ["cash_handovers.id"], name="fk_cash_handovers_previous_handover_id_cash_handovers"
        ),
        sa.ForeignKeyConstraint(
            ["confirmed_by_user_id"], ["users.id"], name="fk_cash_handovers_confirmed_by_user_id_users"
        ),
        sa.ForeignKeyConstraint(["resolved_by_user_id"], ["users.id"], name="fk_cash_handovers_resolved_by_user_id_users"),
        sa.ForeignKeyConstraint(["created_by_user_id"], ["users.id"], name="fk_cash_handovers_created_by_user_id_users"),
        sa.PrimaryKeyConstraint("id", name="pk_cash_handovers"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_cash_handovers_handover_type", "cash_handovers", ["handover_type"], unique=False)
    op.create_index("ix_cash_handovers_status", "cash_handovers", ["status"], unique=False)
    op.create_index("ix_cash_handovers_from_user_id", "cash_handovers", ["from_user_id"], unique=False)
    op.create_index("ix_cash_handovers_shift_id", "cash_handovers", ["shift_id"], unique=False)
    op.create_index("ix_cash_handovers_station_date", "cash_handovers", ["station_id", "handover_date"], unique=False)
    op.create_index("ix_cash_handovers_to_status", "cash_handovers", ["to_user_id", "status"], unique=False)

    op.create_table(
        "audit_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("station_id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("event_category", sa.String(length=32), nullable=False),
        sa.Column("entity_type", sa.String(length=64), nullable=False),
        sa.Column("entity_id", sa.Integer(), nullable=False),
        sa.Column("actor_user_id", sa.Integer(), nullable=True),
        _timestamp("occurred_at"),
        _timestamp("created_at"),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.Column("payload", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(["station_id"], ["stations.id"], name="fk_audit_events_station_id_stations"),
        sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"], name="fk_audit_events_actor_user_id_users"),
        sa.PrimaryKeyConstraint("id", name="pk_audit_events"),
        sqlite_autoincrement=True,
    )
    op.create_index("ix_audit_events_event_type", "audit_events", ["event_type"], unique=False)
    op.create_index("ix_audit_events_event_category", "audit_events", ["event_category"], unique=False)
    op.create_index("ix_audit_events_actor_user_id", "audit_events", ["actor_user_id"], unique=False)
    op.create_index("ix_audit_events_station_occurred", "audit_events", ["station_id", "occurred_at"], unique=False)
    op.create_index("ix_audit_events_entity", "audit_events", ["entity_type", "entity_id"], unique=False)


def downgrade():
    op.drop_table("audit_events")
    op.drop_table("cash_handovers")
    op.drop_table("credit_ledger_entries")
    op.drop_table("credit_allocations")
    op.drop_table("nozzle_readings")
    op.drop_table("daily_transactions")
    op.drop_table("shifts")
    op.drop_table("creditors")
    op.drop_table("fuel_prices")
    op.drop_table("nozzles")
    op.drop_table("users")
    op.drop_table("stations")
