"""SQLAlchemy ORM table models for the orchestration core.

All tables defined in a single file. Uses FlexJSON (JSONB on Postgres,
JSON on SQLite) for opaque structured payloads.

Categories:
- SOURCE: UserRow, OrganizationRow, AnalysisRow, EmployeeRow, OrgDepartmentRow, OrgLocationRow,
          AnalysisRecordingRow, AnalysisDocumentRow, FormRow, FormVersionRow,
          FormOrganizationGrantRow (read by the dispatcher and assignments)
- APPEND-ONLY: FormSubmissionRow, NotificationRow
- OPERATIONAL: IntegrationSecretRow, DossierJobRow, FormAssignmentRow
               (status updates allowed, guarded by transition tables)
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import JSON

from anivise.db.session import Base

# JSONB on PostgreSQL, plain JSON on SQLite (for tests)
FlexJSON = JSONB().with_variant(JSON(), "sqlite")

# Partial-index predicate shared by Postgres and SQLite
_IN_FLIGHT_PREDICATE = "status IN ('pending', 'processing')"


# ---------------------------------------------------------------------------
# Secrets vault
# ---------------------------------------------------------------------------


class IntegrationSecretRow(Base):
    """Encrypted third-party credential, one row per (service, key).

    encrypted_value holds base64(ciphertext) + "." + base64(tag);
    iv holds the base64 12-byte nonce.
    """

    __tablename__ = "integration_secrets"

    id: Mapped[UUID] = mapped_column(primary_key=True)
    service: Mapped[str] = mapped_column(String(100), nullable=False)
    key: Mapped[str] = mapped_column(String(100), nullable=False)
    encrypted_value: Mapped[str] = mapped_column(Text, nullable=False)
    iv: Mapped[str] = mapped_column(String(32), nullable=False)
    is_sensitive: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    updated_by: Mapped[UUID | None] = mapped_column(nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("service", "key", name="uq_integration_secrets_service_key"),
    )


# ---------------------------------------------------------------------------
# Source aggregates
# ---------------------------------------------------------------------------


class OrganizationRow(Base):
    """Tenant. Only the display name is needed by the orchestration core."""

    __tablename__ = "organizations"

    id: Mapped[UUID] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class UserRow(Base):
    """Platform account. platform_role is 'superadmin', 'staff' or NULL."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    platform_role: Mapped[str | None] = mapped_column(String(20), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class OrgDepartmentRow(Base):
    __tablename__ = "org_departments"

    id: Mapped[UUID] = mapped_column(primary_key=True)
    organization_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class OrgLocationRow(Base):
    __tablename__ = "org_locations"

    id: Mapped[UUID] = mapped_column(primary_key=True)
    organization_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class EmployeeRow(Base):
    __tablename__ = "employees"

    id: Mapped[UUID] = mapped_column(primary_key=True)
    organization_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    first_name: Mapped[str] = mapped_column(String(255), nullable=False)
    last_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(320), nullable=True)
    position: Mapped[str | None] = mapped_column(String(255), nullable=True)
    department_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("org_departments.id"), nullable=True,
    )
    location_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("org_locations.id"), nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class AnalysisRow(Base):
    """Parent entity of dossier jobs and form assignments."""

    __tablename__ = "analyses"

    id: Mapped[UUID] = mapped_column(primary_key=True)
    organization_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class AnalysisRecordingRow(Base):
    __tablename__ = "analysis_recordings"

    id: Mapped[UUID] = mapped_column(primary_key=True)
    analysis_id: Mapped[UUID] = mapped_column(
        ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    filename: Mapped[str | None] = mapped_column(String(500), nullable=True)
    language: Mapped[str] = mapped_column(String(10), default="de", nullable=False)
    final_transcript: Mapped[str | None] = mapped_column(Text, nullable=True)
    live_transcript: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class AnalysisDocumentRow(Base):
    __tablename__ = "analysis_documents"

    id: Mapped[UUID] = mapped_column(primary_key=True)
    analysis_id: Mapped[UUID] = mapped_column(
        ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    extracted_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Forms
# ---------------------------------------------------------------------------


class FormRow(Base):
    """Task definition handed out through form assignments.

    visibility: 'all_organizations' or 'assigned' (owner + explicit grants).
    """

    __tablename__ = "forms"

    id: Mapped[UUID] = mapped_column(primary_key=True)
    organization_id: Mapped[UUID | None] = mapped_column(nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="draft", nullable=False)
    visibility: Mapped[str] = mapped_column(String(30), default="assigned", nullable=False)
    current_version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    completion_type: Mapped[str] = mapped_column(String(30), default="thank_you", nullable=False)
    completion_title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    completion_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    completion_redirect_url: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class FormVersionRow(Base):
    """Immutable published schema of a form."""

    __tablename__ = "form_versions"

    id: Mapped[UUID] = mapped_column(primary_key=True)
    form_id: Mapped[UUID] = mapped_column(ForeignKey("forms.id"), nullable=False)
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    schema_json = mapped_column("schema", FlexJSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("form_id", "version_number", name="uq_form_versions_form_version"),
    )


class FormOrganizationGrantRow(Base):
    """Explicit per-tenant access grant for an 'assigned' form."""

    __tablename__ = "form_organization_grants"

    form_id: Mapped[UUID] = mapped_column(ForeignKey("forms.id"), primary_key=True)
    organization_id: Mapped[UUID] = mapped_column(primary_key=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class FormSubmissionRow(Base):
    """Append-only form answers. submitted_by is NULL for token submissions."""

    __tablename__ = "form_submissions"

    id: Mapped[UUID] = mapped_column(primary_key=True)
    form_id: Mapped[UUID] = mapped_column(ForeignKey("forms.id"), nullable=False)
    form_version_id: Mapped[UUID] = mapped_column(ForeignKey("form_versions.id"), nullable=False)
    organization_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    submitted_by: Mapped[UUID | None] = mapped_column(nullable=True)
    data = mapped_column(FlexJSON, nullable=False)
    metadata_json = mapped_column("metadata", FlexJSON, nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# Token-gated assignments (operational)
# ---------------------------------------------------------------------------


class FormAssignmentRow(Base):
    """A form handed to one employee for one analysis via a bearer token."""

    __tablename__ = "form_assignments"

    id: Mapped[UUID] = mapped_column(primary_key=True)
    analysis_id: Mapped[UUID] = mapped_column(
        ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    form_id: Mapped[UUID] = mapped_column(ForeignKey("forms.id"), nullable=False)
    form_version_id: Mapped[UUID] = mapped_column(ForeignKey("form_versions.id"), nullable=False)
    organization_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    employee_id: Mapped[UUID] = mapped_column(ForeignKey("employees.id"), nullable=False)
    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    token_expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    assigned_by: Mapped[UUID] = mapped_column(nullable=False)
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    opened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    submission_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("form_submissions.id"), nullable=True,
    )
    reminder_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_reminder_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("analysis_id", "form_id", name="uq_form_assignments_analysis_form"),
    )


# ---------------------------------------------------------------------------
# Dossier jobs (operational)
# ---------------------------------------------------------------------------


class DossierJobRow(Base):
    """One attempt to produce an externally generated dossier for an analysis.

    The partial unique index allows at most one pending/processing job per
    (organization, analysis); terminal rows are never updated again.
    """

    __tablename__ = "dossier_jobs"

    id: Mapped[UUID] = mapped_column(primary_key=True)
    analysis_id: Mapped[UUID] = mapped_column(
        ForeignKey("analyses.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    organization_id: Mapped[UUID] = mapped_column(nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)
    prompt_text: Mapped[str] = mapped_column(Text, nullable=False)
    result_data = mapped_column(FlexJSON, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    model_used: Mapped[str | None] = mapped_column(String(200), nullable=True)
    token_usage = mapped_column(FlexJSON, nullable=True)
    requested_by: Mapped[UUID] = mapped_column(nullable=False)
    is_test: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index(
            "uq_dossier_jobs_in_flight",
            "organization_id",
            "analysis_id",
            unique=True,
            postgresql_where=text(_IN_FLIGHT_PREDICATE),
            sqlite_where=text(_IN_FLIGHT_PREDICATE),
        ),
    )


# ---------------------------------------------------------------------------
# Notifications (append-only)
# ---------------------------------------------------------------------------


class NotificationRow(Base):
    """In-app notification; only is_read/read_at change after insert."""

    __tablename__ = "notifications"

    id: Mapped[UUID] = mapped_column(primary_key=True)
    recipient_id: Mapped[UUID] = mapped_column(
        ForeignKey("users.id"), nullable=False, index=True,
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str | None] = mapped_column(Text, nullable=True)
    link: Mapped[str | None] = mapped_column(String(2000), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    metadata_json = mapped_column("metadata", FlexJSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    read_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
