"""Form, form version, access grant and submission repository."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from anivise.db.tables import (
    FormOrganizationGrantRow,
    FormRow,
    FormSubmissionRow,
    FormVersionRow,
    OrganizationRow,
)
from anivise.models.common import new_uuid7

PUBLISHED = "published"
VISIBLE_TO_ALL = "all_organizations"


class FormRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, form_id: UUID) -> FormRow | None:
        return await self._session.get(FormRow, form_id)

    async def get_published(self, form_id: UUID) -> FormRow | None:
        result = await self._session.execute(
            select(FormRow).where(
                FormRow.id == form_id,
                FormRow.status == PUBLISHED,
                FormRow.deleted_at.is_(None),
            )
        )
        return result.scalar_one_or_none()

    async def list_published(self) -> list[FormRow]:
        result = await self._session.execute(
            select(FormRow)
            .where(FormRow.status == PUBLISHED, FormRow.deleted_at.is_(None))
            .order_by(FormRow.title)
        )
        return list(result.scalars().all())

    async def granted_form_ids(self, organization_id: UUID) -> set[UUID]:
        result = await self._session.execute(
            select(FormOrganizationGrantRow.form_id).where(
                FormOrganizationGrantRow.organization_id == organization_id,
            )
        )
        return set(result.scalars().all())

    async def has_access(self, form: FormRow, organization_id: UUID) -> bool:
        """Visible to all tenants, owned by the tenant, or explicitly granted."""
        if form.visibility == VISIBLE_TO_ALL or form.organization_id == organization_id:
            return True
        result = await self._session.execute(
            select(FormOrganizationGrantRow).where(
                FormOrganizationGrantRow.form_id == form.id,
                FormOrganizationGrantRow.organization_id == organization_id,
            )
        )
        return result.scalar_one_or_none() is not None

    async def get_version(self, form_id: UUID, version_number: int) -> FormVersionRow | None:
        result = await self._session.execute(
            select(FormVersionRow).where(
                FormVersionRow.form_id == form_id,
                FormVersionRow.version_number == version_number,
            )
        )
        return result.scalar_one_or_none()

    async def get_version_by_id(self, version_id: UUID) -> FormVersionRow | None:
        return await self._session.get(FormVersionRow, version_id)

    async def get_organization_name(self, organization_id: UUID) -> str | None:
        row = await self._session.get(OrganizationRow, organization_id)
        return row.name if row is not None else None

    async def create_submission(self, *, form_id: UUID, form_version_id: UUID,
                                organization_id: UUID, data: dict,
                                metadata: dict | None,
                                submitted_at: datetime) -> FormSubmissionRow:
        row = FormSubmissionRow(
            id=new_uuid7(), form_id=form_id, form_version_id=form_version_id,
            organization_id=organization_id, submitted_by=None,
            data=data, metadata_json=metadata, submitted_at=submitted_at,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def get_submission(self, submission_id: UUID) -> FormSubmissionRow | None:
        return await self._session.get(FormSubmissionRow, submission_id)
