"""create catalog, sync and renewal tables

Revision ID: 20261019_000001
Revises: 
Create Date: 2026-10-19 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "20261019_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "catalog_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("product_id", sa.String(length=200), nullable=True),
        sa.Column("product", sa.String(length=300), nullable=False),
        sa.Column("external_row_id", sa.String(length=200), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=200), nullable=True),
        sa.Column("subject", sa.String(length=200), nullable=True),
        sa.Column("department", sa.String(length=200), nullable=True),
        sa.Column("division", sa.String(length=200), nullable=True),
        sa.Column("audience", sa.JSON(), nullable=True),
        sa.Column("website", sa.String(length=500), nullable=True),
        sa.Column("tutorial_link", sa.String(length=500), nullable=True),
        sa.Column("logo_url", sa.String(length=500), nullable=True),
        sa.Column("sso_enabled", sa.Boolean(), nullable=True),
        sa.Column("mobile_app", sa.Boolean(), nullable=True),
        sa.Column("grade_levels", sa.String(length=200), nullable=True),
        sa.Column("is_new", sa.Boolean(), nullable=True),
        sa.Column("vendor", sa.String(length=200), nullable=True),
        sa.Column("license_type", sa.String(length=100), nullable=True),
        sa.Column("renewal_date", sa.Date(), nullable=True),
        sa.Column("annual_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("licenses", sa.Integer(), nullable=True),
        sa.Column("utilization", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(length=50), nullable=True),
        sa.Column("enterprise", sa.Boolean(), nullable=True),
        sa.Column("budget", sa.String(length=200), nullable=True),
        sa.Column("support_email", sa.String(length=200), nullable=True),
        sa.Column("date_added", sa.Date(), nullable=True),
        sa.Column("is_whole_school", sa.Boolean(), nullable=True),
        sa.Column("synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    )
    op.create_index("ix_catalog_entries_product_id", "catalog_entries", ["product_id"])

    op.create_table(
        "sync_runs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "direction",
            sa.Enum("pull", "push", "bidirectional", name="sync_direction_enum"),
            nullable=False,
        ),
        sa.Column(
            "status",
            sa.Enum("pending", "in_progress", "completed", "failed", name="sync_run_status_enum"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("records_synced", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("records_failed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("failures", sa.JSON(), nullable=True),
        sa.Column("triggered_by", sa.String(length=200), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "renewal_assessments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("app_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("cycle_year", sa.Integer(), nullable=False),
        sa.Column("submitter_email", sa.String(length=200), nullable=False),
        sa.Column("submitter_name", sa.String(length=200), nullable=True),
        sa.Column("submitter_department", sa.String(length=200), nullable=True),
        sa.Column("submitter_division", sa.String(length=200), nullable=True),
        sa.Column("submission_date", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column(
            "recommendation",
            sa.Enum("renew", "renew_with_changes", "replace", "retire", name="assessment_recommendation_enum"),
            nullable=False,
        ),
        sa.Column("justification", sa.Text(), nullable=False),
        sa.Column("usage_frequency", sa.String(length=100), nullable=True),
        sa.Column("primary_use_cases", sa.Text(), nullable=True),
        sa.Column("learning_impact", sa.Text(), nullable=True),
        sa.Column("workflow_integration", sa.Text(), nullable=True),
        sa.Column("alternatives_considered", sa.Text(), nullable=True),
        sa.Column("unique_value", sa.Text(), nullable=True),
        sa.Column("stakeholder_feedback", sa.Text(), nullable=True),
        sa.Column("proposed_changes", sa.Text(), nullable=True),
        sa.Column("proposed_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("proposed_licenses", sa.Integer(), nullable=True),
        sa.Column("current_renewal_date", sa.Date(), nullable=True),
        sa.Column("current_annual_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("current_licenses", sa.Integer(), nullable=True),
        sa.Column(
            "status",
            sa.Enum(
                "submitted",
                "in_review",
                "approved",
                "rejected",
                "completed",
                name="assessment_status_enum",
            ),
            nullable=False,
            server_default="submitted",
        ),
        sa.Column("admin_notes", sa.Text(), nullable=True),
        sa.Column("reviewed_by", sa.String(length=200), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["app_id"], ["catalog_entries.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_renewal_assessments_app_id", "renewal_assessments", ["app_id"])

    op.create_table(
        "renewal_decisions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("app_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("cycle_year", sa.Integer(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "collecting",
                "summarizing",
                "assessor_review",
                "final_review",
                "decided",
                "implemented",
                name="renewal_decision_status_enum",
            ),
            nullable=False,
            server_default="collecting",
        ),
        sa.Column("total_submissions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("renew_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("renew_with_changes_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("replace_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("retire_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("ai_summary", sa.Text(), nullable=True),
        sa.Column("ai_summary_generated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("assessor_email", sa.String(length=200), nullable=True),
        sa.Column("assessor_name", sa.String(length=200), nullable=True),
        sa.Column("assessor_comment", sa.Text(), nullable=True),
        sa.Column("assessor_recommendation", sa.String(length=50), nullable=True),
        sa.Column("assessor_reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approver_email", sa.String(length=200), nullable=True),
        sa.Column("approver_name", sa.String(length=200), nullable=True),
        sa.Column("approver_comment", sa.Text(), nullable=True),
        sa.Column("final_decision", sa.String(length=50), nullable=True),
        sa.Column("final_decided_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("new_renewal_date", sa.Date(), nullable=True),
        sa.Column("new_annual_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("new_licenses", sa.Integer(), nullable=True),
        sa.Column("implementation_notes", sa.Text(), nullable=True),
        sa.Column("implemented_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["app_id"], ["catalog_entries.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("app_id", "cycle_year", name="uq_renewal_decisions_app_cycle"),
    )
    op.create_index("ix_renewal_decisions_app_id", "renewal_decisions", ["app_id"])


def downgrade() -> None:
    op.drop_index("ix_renewal_decisions_app_id", table_name="renewal_decisions")
    op.drop_table("renewal_decisions")
    op.drop_index("ix_renewal_assessments_app_id", table_name="renewal_assessments")
    op.drop_table("renewal_assessments")
    op.drop_table("sync_runs")
    op.drop_index("ix_catalog_entries_product_id", table_name="catalog_entries")
    op.drop_table("catalog_entries")

    bind = op.get_bind()
    for enum_name in (
        "renewal_decision_status_enum",
        "assessment_status_enum",
        "assessment_recommendation_enum",
        "sync_run_status_enum",
        "sync_direction_enum",
    ):
        sa.Enum(name=enum_name).drop(bind, checkfirst=True)
