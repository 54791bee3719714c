"""create billings and audit_logs tables

Revision ID: 1a2b3c4d5e6f
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "1a2b3c4d5e6f"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

billing_status = sa.Enum("pending", "authorized", "captured", name="billingstatus")
audit_action = sa.Enum(
    "billing_created",
    "payment_authorized",
    "payment_captured",
    "payment_failed",
    name="auditaction",
)


def upgrade() -> None:
    op.create_table(
        "billings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("identifier", sa.String(length=64), nullable=False),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("gateway", sa.String(length=32), nullable=False),
        sa.Column("status", billing_status, nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("capture_id", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
    )
    op.create_index(
        "ix_billings_identifier", "billings", ["identifier"], unique=True
    )

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("billing_id", sa.Integer(), sa.ForeignKey("billings.id")),
        sa.Column("action", audit_action),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_audit_logs_billing_id", "audit_logs", ["billing_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_action", table_name="audit_logs")
    op.drop_index("ix_audit_logs_billing_id", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_billings_identifier", table_name="billings")
    op.drop_table("billings")
    billing_status.drop(op.get_bind(), checkfirst=True)
    audit_action.drop(op.get_bind(), checkfirst=True)
