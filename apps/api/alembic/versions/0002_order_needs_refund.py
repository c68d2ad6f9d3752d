"""order needs_refund payment status

Revision ID: 0002_order_needs_refund
Revises: 0001_kepthouse_init
Create Date: 2026-10-19 12:00:00
"""

from typing import Sequence

from alembic import op

revision: str = "0002_order_needs_refund"
down_revision: str | None = "0001_kepthouse_init"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.execute("ALTER TYPE order_payment_status_enum ADD VALUE IF NOT EXISTS 'needs_refund'")


def downgrade() -> None:
    # Postgres cannot drop an enum value; park flagged orders on an existing one.
    op.execute("UPDATE orders SET payment_status = 'failed' WHERE payment_status = 'needs_refund'")
