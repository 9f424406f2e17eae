"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa


revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None


def _inspector():
    from sqlalchemy import inspect as sa_inspect
    return sa_inspect(op.get_bind())


def upgrade() -> None:
    if op.get_bind().dialect.name == "postgresql":
        op.execute(sa.text("ALTER TABLE alembic_version ALTER COLUMN version_num TYPE VARCHAR(64)"))

    inspector = _inspector()
    existing_tables = set(inspector.get_table_names())

    def existing_indexes(table: str) -> set[str]:
        if table not in existing_tables:
            return set()
        return {idx["name"] for idx in inspector.get_indexes(table)}

    if "profiles" not in existing_tables:
        op.create_table(
            "profiles",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("email", sa.String(), nullable=True),
            sa.Column("role", sa.String(), nullable=True),
            sa.Column("display_name", sa.String(), nullable=True),
            sa.Column("phone_number", sa.String(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
        )
    idxs = existing_indexes("profiles")
    if "ix_profiles_id" not in idxs:
        op.create_index("ix_profiles_id", "profiles", ["id"])
    if "ix_profiles_email" not in idxs:
        op.create_index("ix_profiles_email", "profiles", ["email"])
    if "ix_profiles_role" not in idxs:
        op.create_index("ix_profiles_role", "profiles", ["role"])

    if "payment_claims" not in existing_tables:
        op.create_table(
            "payment_claims",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("subject_id", sa.String(), nullable=False),
            sa.Column("amount", sa.Numeric(12, 2), nullable=False),
            sa.Column("expected_amount", sa.Numeric(12, 2), nullable=True),
            sa.Column("currency_context", sa.String(), nullable=True),
            sa.Column("external_reference", sa.String(), nullable=False),
            sa.Column("phone_number", sa.String(), nullable=True),
            sa.Column("purpose", sa.String(), nullable=False),
            sa.Column("tier", sa.String(), nullable=True),
            sa.Column("duration_type", sa.String(), nullable=True),
            sa.Column("state", sa.String(), nullable=False, server_default="pending"),
            sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("verified_by", sa.String(), nullable=True),
            sa.Column("review_note", sa.Text(), nullable=True),
        )
    idxs = existing_indexes("payment_claims")
    if "ix_payment_claims_id" not in idxs:
        op.create_index("ix_payment_claims_id", "payment_claims", ["id"])
    if "ix_payment_claims_subject_id" not in idxs:
        op.create_index("ix_payment_claims_subject_id", "payment_claims", ["subject_id"])
    if "ix_payment_claims_external_reference" not in idxs:
        op.create_index("ix_payment_claims_external_reference", "payment_claims", ["external_reference"])
    if "ix_payment_claims_purpose" not in idxs:
        op.create_index("ix_payment_claims_purpose", "payment_claims", ["purpose"])
    if "ix_payment_claims_state" not in idxs:
        op.create_index("ix_payment_claims_state", "payment_claims", ["state"])
    if "uq_payment_claims_pending_reference" not in idxs:
        op.create_index(
            "uq_payment_claims_pending_reference",
            "payment_claims",
            ["subject_id", "purpose", "external_reference"],
            unique=True,
            sqlite_where=sa.text("state = 'pending'"),
            postgresql_where=sa.text("state = 'pending'"),
        )

    if "tier_packages" not in existing_tables:
        op.create_table(
            "tier_packages",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("tier_name", sa.String(), nullable=False),
            sa.Column("duration_type", sa.String(), nullable=False),
            sa.Column("price", sa.Numeric(12, 2), nullable=False),
            sa.Column("features", sa.JSON(), nullable=True),
            sa.Column("upload_limit", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
        )
    idxs = existing_indexes("tier_packages")
    if "ix_tier_packages_id" not in idxs:
        op.create_index("ix_tier_packages_id", "tier_packages", ["id"])
    if "ix_tier_packages_tier_name" not in idxs:
        op.create_index("ix_tier_packages_tier_name", "tier_packages", ["tier_name"])
    if "ix_tier_packages_duration_type" not in idxs:
        op.create_index("ix_tier_packages_duration_type", "tier_packages", ["duration_type"])
    if "uq_tier_packages_active_pair" not in idxs:
        op.create_index(
            "uq_tier_packages_active_pair",
            "tier_packages",
            ["tier_name", "duration_type"],
            unique=True,
            sqlite_where=sa.text("is_active = 1"),
            postgresql_where=sa.text("is_active"),
        )

    if "subscriptions" not in existing_tables:
        op.create_table(
            "subscriptions",
            sa.Column("id", sa.String(), primary_key=True),
            sa.Column("subject_id", sa.String(), nullable=False),
            sa.Column("tier", sa.String(), nullable=False),
            sa.Column("duration_type", sa.String(), nullable=False),
            sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("amount_paid", sa.Numeric(12, 2), nullable=False, server_default="0"),
            sa.Column("funding_claim_id", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)")),
        )
    idxs = existing_indexes("subscriptions")
    if "ix_subscriptions_subject_id" not in idxs:
        op.create_index("ix_subscriptions_subject_id", "subscriptions", ["subject_id"], unique=True)
    if "ix_subscriptions_tier" not in idxs:
        op.create_index("ix_subscriptions_tier", "subscriptions", ["tier"])
    if "ix_subscriptions_end_at" not in idxs:
        op.create_index("ix_subscriptions_end_at", "subscriptions", ["end_at"])
    if "ix_subscriptions_funding_claim_id" not in idxs:
        op.create_index("ix_subscriptions_funding_claim_id", "subscriptions", ["funding_claim_id"])

    if "subscription_reminder_logs" not in existing_tables:
        op.create_table(
            "subscription_reminder_logs",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("subject_id", sa.String(), nullable=False),
            sa.Column("subscription_id", sa.String(), nullable=False),
            sa.Column("reminder_type", sa.String(), nullable=False),
            sa.Column("status", sa.String(), nullable=False, server_default="queued"),
            sa.Column("destination", sa.String(), nullable=True),
            sa.Column("message_body", sa.Text(), nullable=True),
            sa.Column("external_message_id", sa.String(), nullable=True),
            sa.Column("error", sa.Text(), nullable=True),
            sa.Column("sent_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
            sa.UniqueConstraint("subscription_id", "reminder_type", name="uq_reminder_logs_subscription_type"),
        )
    idxs = existing_indexes("subscription_reminder_logs")
    if "ix_subscription_reminder_logs_id" not in idxs:
        op.create_index("ix_subscription_reminder_logs_id", "subscription_reminder_logs", ["id"])
    if "ix_subscription_reminder_logs_subject_id" not in idxs:
        op.create_index("ix_subscription_reminder_logs_subject_id", "subscription_reminder_logs", ["subject_id"])
    if "ix_subscription_reminder_logs_subscription_id" not in idxs:
        op.create_index("ix_subscription_reminder_logs_subscription_id", "subscription_reminder_logs", ["subscription_id"])
    if "ix_subscription_reminder_logs_status" not in idxs:
        op.create_index("ix_subscription_reminder_logs_status", "subscription_reminder_logs", ["status"])


def downgrade() -> None:
    op.drop_index("ix_subscription_reminder_logs_status", table_name="subscription_reminder_logs")
    op.drop_index("ix_subscription_reminder_logs_subscription_id", table_name="subscription_reminder_logs")
    op.drop_index("ix_subscription_reminder_logs_subject_id", table_name="subscription_reminder_logs")
    op.drop_index("ix_subscription_reminder_logs_id", table_name="subscription_reminder_logs")
    op.drop_table("subscription_reminder_logs")

    op.drop_index("ix_subscriptions_funding_claim_id", table_name="subscriptions")
    op.drop_index("ix_subscriptions_end_at", table_name="subscriptions")
    op.drop_index("ix_subscriptions_tier", table_name="subscriptions")
    op.drop_index("ix_subscriptions_subject_id", table_name="subscriptions")
    op.drop_table("subscriptions")

    op.drop_index("uq_tier_packages_active_pair", table_name="tier_packages")
    op.drop_index("ix_tier_packages_duration_type", table_name="tier_packages")
    op.drop_index("ix_tier_packages_tier_name", table_name="tier_packages")
    op.drop_index("ix_tier_packages_id", table_name="tier_packages")
    op.drop_table("tier_packages")

    op.drop_index("uq_payment_claims_pending_reference", table_name="payment_claims")
    op.drop_index("ix_payment_claims_state", table_name="payment_claims")
    op.drop_index("ix_payment_claims_purpose", table_name="payment_claims")
    op.drop_index("ix_payment_claims_external_reference", table_name="payment_claims")
    op.drop_index("ix_payment_claims_subject_id", table_name="payment_claims")
    op.drop_index("ix_payment_claims_id", table_name="payment_claims")
    op.drop_table("payment_claims")

    op.drop_index("ix_profiles_role", table_name="profiles")
    op.drop_index("ix_profiles_email", table_name="profiles")
    op.drop_index("ix_profiles_id", table_name="profiles")
    op.drop_table("profiles")
