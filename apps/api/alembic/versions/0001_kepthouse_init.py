"""kepthouse init

Revision ID: 0001_kepthouse_init
Revises:
Create Date: 2026-10-19 00:00:00
"""

from typing import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "0001_kepthouse_init"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ROLE_VALUES = ("agent", "client", "shopper", "vendor")
JOB_STAGE_VALUES = (
    "walkthrough",
    "staging",
    "online_sale",
    "estate_sale",
    "donations",
    "hauling",
    "payout_processing",
    "closing",
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("role", sa.Enum(*ROLE_VALUES, name="role_enum"), nullable=False),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("ix_users_created_at", "users", ["created_at"], unique=False)

    op.create_table(
        "jobs",
        sa.Column("client_id", sa.Uuid(), nullable=False),
        sa.Column("account_manager_id", sa.Uuid(), nullable=True),
        sa.Column("contract_signor", sa.String(length=255), nullable=False),
        sa.Column("property_address", sa.String(length=500), nullable=False),
        sa.Column("contact_phone", sa.String(length=50), nullable=False),
        sa.Column("contact_email", sa.String(length=320), nullable=False),
        sa.Column("desired_completion_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("services_json", sa.JSON(), nullable=False),
        sa.Column("scope_notes", sa.Text(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("awaiting_deposit", "active", "completed", "cancelled", name="job_status_enum"),
            nullable=False,
        ),
        sa.Column("stage", sa.Enum(*JOB_STAGE_VALUES, name="job_stage_enum"), nullable=False),
        sa.Column("service_fee", sa.Float(), nullable=False),
        sa.Column("deposit_amount", sa.Float(), nullable=False),
        sa.Column("deposit_paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deposit_payment_ref", sa.String(length=255), nullable=True),
        sa.Column("is_online_sale_active", sa.Boolean(), nullable=False),
        sa.Column("online_sale_start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("online_sale_end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("estate_sale_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("finance_gross", sa.Float(), nullable=False),
        sa.Column("finance_fees", sa.Float(), nullable=False),
        sa.Column("finance_hauling_cost", sa.Float(), nullable=False),
        sa.Column("finance_net", sa.Float(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["client_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["account_manager_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_jobs_client_id", "jobs", ["client_id"], unique=False)
    op.create_index("ix_jobs_stage", "jobs", ["stage"], unique=False)
    op.create_index("ix_jobs_created_at", "jobs", ["created_at"], unique=False)

    op.create_table(
        "job_finance_entries",
        sa.Column("job_id", sa.Uuid(), nullable=False),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("kind", sa.Enum("revenue", "expense", "refund", name="finance_entry_kind_enum"), nullable=False),
        sa.Column("label", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("external_ref", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["job_id"], ["jobs.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("job_id", "seq", name="uq_job_finance_entries_job_seq"),
        sa.UniqueConstraint("job_id", "external_ref", name="uq_job_finance_entries_job_ref"),
    )
    op.create_index("ix_job_finance_entries_job_id", "job_finance_entries", ["job_id"], unique=False)

    op.create_table(
        "job_stage_notes",
        sa.Column("job_id", sa.Uuid(), nullable=False),
        sa.Column("stage", postgresql.ENUM(*JOB_STAGE_VALUES, name="job_stage_enum", create_type=False), nullable=False),
        sa.Column("note", sa.Text(), nullable=False),
        sa.Column("author_id", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["job_id"], ["jobs.id"]),
        sa.ForeignKeyConstraint(["author_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_job_stage_notes_job_id", "job_stage_notes", ["job_id"], unique=False)

    op.create_table(
        "item_documents",
        sa.Column("job_id", sa.Uuid(), nullable=False),
        sa.Column("uploader_id", sa.Uuid(), nullable=True),
        sa.Column("uploader_role", postgresql.ENUM(*ROLE_VALUES, name="role_enum", create_type=False), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("draft", "needs_review", "approved", "sold", name="item_status_enum"),
            nullable=False,
        ),
        sa.Column("photos", sa.JSON(), nullable=False),
        sa.Column("analyzed_photo_indices", sa.JSON(), nullable=False),
        sa.Column("ai_suggestions", sa.JSON(), nullable=False),
        sa.Column("reopen_history", sa.JSON(), nullable=False),
        sa.Column("sold_photo_indices", sa.JSON(), nullable=False),
        sa.Column("donated_photo_indices", sa.JSON(), nullable=False),
        sa.Column("hauled_photo_indices", sa.JSON(), nullable=False),
        sa.Column("sold_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("donated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("hauled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["job_id"], ["jobs.id"]),
        sa.ForeignKeyConstraint(["uploader_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_item_documents_job_id", "item_documents", ["job_id"], unique=False)
    op.create_index("ix_item_documents_status", "item_documents", ["status"], unique=False)
    op.create_index("ix_item_documents_created_at", "item_documents", ["created_at"], unique=False)

    op.create_table(
        "approved_items",
        sa.Column("item_id", sa.Uuid(), nullable=False),
        sa.Column("item_number", sa.Integer(), nullable=False),
        sa.Column("photo_indices", sa.JSON(), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("price", sa.Float(), nullable=True),
        sa.Column("price_low", sa.Float(), nullable=True),
        sa.Column("price_high", sa.Float(), nullable=True),
        sa.Column("estate_sale_price", sa.Float(), nullable=True),
        sa.Column("weight_lb", sa.Float(), nullable=True),
        sa.Column(
            "disposition",
            sa.Enum("available", "sold", "donated", "hauled", name="item_disposition_enum"),
            nullable=False,
        ),
        sa.Column("disposition_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("disposition_by", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["item_id"], ["item_documents.id"]),
        sa.ForeignKeyConstraint(["disposition_by"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("item_id", "item_number", name="uq_approved_items_item_number"),
    )
    op.create_index("ix_approved_items_item_id", "approved_items", ["item_id"], unique=False)

    op.create_table(
        "carts",
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("items_json", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", name="uq_carts_user_id"),
    )

    op.create_table(
        "orders",
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("job_id", sa.Uuid(), nullable=False),
        sa.Column("items_json", sa.JSON(), nullable=False),
        sa.Column("currency", sa.String(length=10), nullable=False),
        sa.Column("subtotal", sa.Float(), nullable=False),
        sa.Column("delivery_fee", sa.Float(), nullable=False),
        sa.Column("tax_amount", sa.Float(), nullable=False),
        sa.Column("total_amount", sa.Float(), nullable=False),
        sa.Column(
            "payment_status",
            sa.Enum("pending", "paid", "failed", "refunded", "canceled", name="order_payment_status_enum"),
            nullable=False,
        ),
        sa.Column("payment_provider", sa.String(length=50), nullable=False),
        sa.Column("stripe_session_id", sa.String(length=255), nullable=True),
        sa.Column("stripe_payment_intent_id", sa.String(length=255), nullable=True),
        sa.Column("customer_email", sa.String(length=320), nullable=True),
        sa.Column("delivery_details_json", sa.JSON(), nullable=False),
        sa.Column("shipping_details_json", sa.JSON(), nullable=True),
        sa.Column(
            "fulfillment_status",
            sa.Enum(
                "pending",
                "processing",
                "ready",
                "shipped",
                "delivered",
                "picked_up",
                name="fulfillment_status_enum",
            ),
            nullable=False,
        ),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["job_id"], ["jobs.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("stripe_session_id", name="uq_orders_stripe_session_id"),
    )
    op.create_index("ix_orders_user_id", "orders", ["user_id"], unique=False)
    op.create_index("ix_orders_job_id", "orders", ["job_id"], unique=False)
    op.create_index("ix_orders_payment_status", "orders", ["payment_status"], unique=False)

    op.create_table(
        "vendors",
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("company_name", sa.String(length=255), nullable=True),
        sa.Column(
            "type",
            sa.Enum("donation_partner", "hauler", "cleaner", "other", name="vendor_type_enum"),
            nullable=False,
        ),
        sa.Column(
            "service_type",
            sa.Enum("hauling", "donation", "both", name="vendor_service_type_enum"),
            nullable=False,
        ),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("service_area", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_vendors_service_type", "vendors", ["service_type"], unique=False)
    op.create_index("ix_vendors_created_at", "vendors", ["created_at"], unique=False)

    op.create_table(
        "bids",
        sa.Column("job_id", sa.Uuid(), nullable=False),
        sa.Column("vendor_id", sa.Uuid(), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("timeline_days", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.Enum("submitted", "accepted", "rejected", name="bid_status_enum"), nullable=False),
        sa.Column("bid_type", sa.Enum("donation", "hauling", name="bid_type_enum"), nullable=True),
        sa.Column("payment_method", sa.Enum("cash", "cashapp", "bank", name="payment_method_enum"), nullable=False),
        sa.Column("cash_app_handle", sa.String(length=100), nullable=True),
        sa.Column("bank_details_json", sa.JSON(), nullable=True),
        sa.Column("work_completed", sa.Boolean(), nullable=False),
        sa.Column("work_completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_paid", sa.Boolean(), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_amount", sa.Float(), nullable=True),
        sa.Column("receipt_url", sa.String(length=1000), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(["job_id"], ["jobs.id"]),
        sa.ForeignKeyConstraint(["vendor_id"], ["vendors.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_bids_job_id", "bids", ["job_id"], unique=False)
    op.create_index("ix_bids_vendor_id", "bids", ["vendor_id"], unique=False)
    op.create_index("ix_bids_status", "bids", ["status"], unique=False)

    op.create_table(
        "events",
        sa.Column("source", sa.String(length=100), nullable=False),
        sa.Column("channel", sa.String(length=100), nullable=False),
        sa.Column("type", sa.String(length=100), nullable=False),
        sa.Column("job_id", sa.String(length=255), nullable=True),
        sa.Column("actor_id", sa.String(length=255), nullable=True),
        sa.Column("payload_json", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_events_type", "events", ["type"], unique=False)
    op.create_index("ix_events_created_at", "events", ["created_at"], unique=False)

    op.create_table(
        "audit_logs",
        sa.Column("actor_user_id", sa.Uuid(), nullable=True),
        sa.Column("action", sa.String(length=100), nullable=False),
        sa.Column("target_type", sa.String(length=100), nullable=False),
        sa.Column("target_id", sa.String(length=255), nullable=False),
        sa.Column("metadata_json", sa.JSON(), nullable=False),
        *_timestamps(),
        sa.ForeignKeyConstraint(["actor_user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audit_logs_created_at", "audit_logs", ["created_at"], unique=False)


def downgrade() -> None:
    for table in (
        "audit_logs",
        "events",
        "bids",
        "vendors",
        "orders",
        "carts",
        "approved_items",
        "item_documents",
        "job_stage_notes",
        "job_finance_entries",
        "jobs",
        "users",
    ):
        op.drop_table(table)
    bind = op.get_bind()
    for enum_name in (
        "payment_method_enum",
        "bid_type_enum",
        "bid_status_enum",
        "vendor_service_type_enum",
        "vendor_type_enum",
        "fulfillment_status_enum",
        "order_payment_status_enum",
        "item_disposition_enum",
        "item_status_enum",
        "finance_entry_kind_enum",
        "job_stage_enum",
        "job_status_enum",
        "role_enum",
    ):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
