"""create stores, audits and audit_issues

Revision ID: 20261018_000001
Revises:
Create Date: 2026-10-18 00:00:01.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261018_000001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_STATUS_CLAUSE = sa.text("status IN ('PENDING', 'RUNNING')")


def upgrade() -> None:
    op.create_table(
        "stores",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("shop_domain", sa.String(), nullable=False),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("shop_domain"),
    )

    op.create_table(
        "audits",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("store_id", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("progress", sa.Integer(), nullable=False),
        sa.Column("total_urls", sa.Integer(), nullable=False),
        sa.Column("completed_urls", sa.Integer(), nullable=False),
        sa.Column("critical_issues", sa.Integer(), nullable=False),
        sa.Column("high_issues", sa.Integer(), nullable=False),
        sa.Column("medium_issues", sa.Integer(), nullable=False),
        sa.Column("low_issues", sa.Integer(), nullable=False),
        sa.Column("total_issues", sa.Integer(), nullable=False),
        sa.Column("overall_score", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.String(), nullable=True),
        sa.Column("queue_job_id", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["store_id"], ["stores.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_audits_store_created", "audits", ["store_id", "created_at"], unique=False)
    op.create_index(
        "uq_audits_active_store",
        "audits",
        ["store_id"],
        unique=True,
        sqlite_where=ACTIVE_STATUS_CLAUSE,
        postgresql_where=ACTIVE_STATUS_CLAUSE,
    )

    op.create_table(
        "audit_issues",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("audit_id", sa.String(), nullable=False),
        sa.Column("resource_type", sa.String(), nullable=False),
        sa.Column("resource_id", sa.String(), nullable=False),
        sa.Column("resource_title", sa.String(), nullable=True),
        sa.Column("resource_handle", sa.String(), nullable=True),
        sa.Column("url", sa.String(), nullable=True),
        sa.Column("issue_type", sa.String(), nullable=False),
        sa.Column("severity", sa.String(), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("suggestion", sa.Text(), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("is_fixed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.ForeignKeyConstraint(["audit_id"], ["audits.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_audit_issues_audit_id"), "audit_issues", ["audit_id"], unique=False)
    op.create_index(op.f("ix_audit_issues_issue_type"), "audit_issues", ["issue_type"], unique=False)
    op.create_index(op.f("ix_audit_issues_severity"), "audit_issues", ["severity"], unique=False)


def downgrade() -> None:
    op.drop_index(op.f("ix_audit_issues_severity"), table_name="audit_issues")
    op.drop_index(op.f("ix_audit_issues_issue_type"), table_name="audit_issues")
    op.drop_index(op.f("ix_audit_issues_audit_id"), table_name="audit_issues")
    op.drop_table("audit_issues")
    op.drop_index("uq_audits_active_store", table_name="audits")
    op.drop_index("ix_audits_store_created", table_name="audits")
    op.drop_table("audits")
    op.drop_table("stores")
