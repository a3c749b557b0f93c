"""Initial schema: source aggregates, forms, secrets, dossier jobs, assignments.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # -- Secrets vault --
    op.create_table(
        "integration_secrets",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("service", sa.String(100), nullable=False),
        sa.Column("key", sa.String(100), nullable=False),
        sa.Column("encrypted_value", sa.Text, nullable=False),
        sa.Column("iv", sa.String(32), nullable=False),
        sa.Column("is_sensitive", sa.Boolean, server_default=sa.true(), nullable=False),
        sa.Column("updated_by", UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("service", "key", name="uq_integration_secrets_service_key"),
    )

    # -- Source aggregates --
    op.create_table(
        "organizations",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    for table in ("org_departments", "org_locations"):
        op.create_table(
            table,
            sa.Column("id", UUID(as_uuid=True), primary_key=True),
            sa.Column("organization_id", UUID(as_uuid=True), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
        )
        op.create_index(f"ix_{table}_organization_id", table, ["organization_id"])

    op.create_table(
        "employees",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("organization_id", UUID(as_uuid=True), nullable=False),
        sa.Column("first_name", sa.String(255), nullable=False),
        sa.Column("last_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("position", sa.String(255), nullable=True),
        sa.Column("department_id", UUID(as_uuid=True),
                  sa.ForeignKey("org_departments.id"), nullable=True),
        sa.Column("location_id", UUID(as_uuid=True),
                  sa.ForeignKey("org_locations.id"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_employees_organization_id", "employees", ["organization_id"])

    op.create_table(
        "analyses",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("organization_id", UUID(as_uuid=True), nullable=False),
        sa.Column("employee_id", UUID(as_uuid=True),
                  sa.ForeignKey("employees.id"), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_analyses_organization_id", "analyses", ["organization_id"])

    op.create_table(
        "analysis_recordings",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("analysis_id", UUID(as_uuid=True),
                  sa.ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("filename", sa.String(500), nullable=True),
        sa.Column("language", sa.String(10), server_default="de", nullable=False),
        sa.Column("final_transcript", sa.Text, nullable=True),
        sa.Column("live_transcript", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_analysis_recordings_analysis_id", "analysis_recordings", ["analysis_id"])

    op.create_table(
        "analysis_documents",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("analysis_id", UUID(as_uuid=True),
                  sa.ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("extracted_text", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_analysis_documents_analysis_id", "analysis_documents", ["analysis_id"])

    # -- Forms --
    op.create_table(
        "forms",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("organization_id", UUID(as_uuid=True), nullable=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("status", sa.String(20), server_default="draft", nullable=False),
        sa.Column("visibility", sa.String(30), server_default="assigned", nullable=False),
        sa.Column("current_version", sa.Integer, server_default="1", nullable=False),
        sa.Column("completion_type", sa.String(30), server_default="thank_you", nullable=False),
        sa.Column("completion_title", sa.String(255), nullable=True),
        sa.Column("completion_message", sa.Text, nullable=True),
        sa.Column("completion_redirect_url", sa.String(2000), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "form_versions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("form_id", UUID(as_uuid=True), sa.ForeignKey("forms.id"), nullable=False),
        sa.Column("version_number", sa.Integer, nullable=False),
        sa.Column("schema", JSONB, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("form_id", "version_number", name="uq_form_versions_form_version"),
    )

    op.create_table(
        "form_organization_grants",
        sa.Column("form_id", UUID(as_uuid=True), sa.ForeignKey("forms.id"), primary_key=True),
        sa.Column("organization_id", UUID(as_uuid=True), primary_key=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    # -- Append-only submissions --
    op.create_table(
        "form_submissions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("form_id", UUID(as_uuid=True), sa.ForeignKey("forms.id"), nullable=False),
        sa.Column("form_version_id", UUID(as_uuid=True),
                  sa.ForeignKey("form_versions.id"), nullable=False),
        sa.Column("organization_id", UUID(as_uuid=True), nullable=False),
        sa.Column("submitted_by", UUID(as_uuid=True), nullable=True),
        sa.Column("data", JSONB, nullable=False),
        sa.Column("metadata", JSONB, nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_form_submissions_organization_id", "form_submissions", ["organization_id"])

    # -- Token-gated assignments --
    op.create_table(
        "form_assignments",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("analysis_id", UUID(as_uuid=True),
                  sa.ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("form_id", UUID(as_uuid=True), sa.ForeignKey("forms.id"), nullable=False),
        sa.Column("form_version_id", UUID(as_uuid=True),
                  sa.ForeignKey("form_versions.id"), nullable=False),
        sa.Column("organization_id", UUID(as_uuid=True), nullable=False),
        sa.Column("employee_id", UUID(as_uuid=True),
                  sa.ForeignKey("employees.id"), nullable=False),
        sa.Column("token", sa.String(128), nullable=False, unique=True),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("assigned_by", UUID(as_uuid=True), nullable=False),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("opened_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("submission_id", UUID(as_uuid=True),
                  sa.ForeignKey("form_submissions.id"), nullable=True),
        sa.Column("reminder_count", sa.Integer, server_default="0", nullable=False),
        sa.Column("last_reminder_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("analysis_id", "form_id", name="uq_form_assignments_analysis_form"),
    )
    op.create_index("ix_form_assignments_analysis_id", "form_assignments", ["analysis_id"])
    op.create_index("ix_form_assignments_organization_id", "form_assignments", ["organization_id"])

    # -- Dossier jobs --
    op.create_table(
        "dossier_jobs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("analysis_id", UUID(as_uuid=True),
                  sa.ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False),
        sa.Column("organization_id", UUID(as_uuid=True), nullable=False),
        sa.Column("status", sa.String(20), server_default="pending", nullable=False),
        sa.Column("prompt_text", sa.Text, nullable=False),
        sa.Column("result_data", JSONB, nullable=True),
        sa.Column("error_message", sa.Text, nullable=True),
        sa.Column("model_used", sa.String(200), nullable=True),
        sa.Column("token_usage", JSONB, nullable=True),
        sa.Column("requested_by", UUID(as_uuid=True), nullable=False),
        sa.Column("is_test", sa.Boolean, server_default=sa.false(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_dossier_jobs_analysis_id", "dossier_jobs", ["analysis_id"])
    op.create_index("ix_dossier_jobs_organization_id", "dossier_jobs", ["organization_id"])
    # Single-flight: at most one in-flight job per (organization, analysis)
    op.create_index(
        "uq_dossier_jobs_in_flight",
        "dossier_jobs",
        ["organization_id", "analysis_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'processing')"),
    )


def downgrade() -> None:
    op.drop_table("dossier_jobs")
    op.drop_table("form_assignments")
    op.drop_table("form_submissions")
    op.drop_table("form_organization_grants")
    op.drop_table("form_versions")
    op.drop_table("forms")
    op.drop_table("analysis_documents")
    op.drop_table("analysis_recordings")
    op.drop_table("analyses")
    op.drop_table("employees")
    op.drop_table("org_locations")
    op.drop_table("org_departments")
    op.drop_table("organizations")
    op.drop_table("integration_secrets")
