"""Read-side repository over the analysis source aggregates.

Everything here is tenant-scoped by the caller passing organization_id
where the row carries one.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from anivise.db.tables import (
    AnalysisDocumentRow,
    AnalysisRecordingRow,
    AnalysisRow,
    EmployeeRow,
    FormAssignmentRow,
    FormRow,
    FormSubmissionRow,
    OrgDepartmentRow,
    OrgLocationRow,
)


class AnalysisRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_for_org(self, analysis_id: UUID,
                          organization_id: UUID) -> AnalysisRow | None:
        """Live (not soft-deleted) analysis inside the tenant."""
        result = await self._session.execute(
            select(AnalysisRow).where(
                AnalysisRow.id == analysis_id,
                AnalysisRow.organization_id == organization_id,
                AnalysisRow.deleted_at.is_(None),
            )
        )
        return result.scalar_one_or_none()

    async def get_employee(self, employee_id: UUID) -> EmployeeRow | None:
        return await self._session.get(EmployeeRow, employee_id)

    async def get_department_name(self, department_id: UUID | None) -> str | None:
        if department_id is None:
            return None
        row = await self._session.get(OrgDepartmentRow, department_id)
        return row.name if row is not None else None

    async def get_location_name(self, location_id: UUID | None) -> str | None:
        if location_id is None:
            return None
        row = await self._session.get(OrgLocationRow, location_id)
        return row.name if row is not None else None

    async def list_recordings(self, analysis_id: UUID) -> list[AnalysisRecordingRow]:
        result = await self._session.execute(
            select(AnalysisRecordingRow)
            .where(AnalysisRecordingRow.analysis_id == analysis_id)
            .order_by(AnalysisRecordingRow.created_at)
        )
        return list(result.scalars().all())

    async def list_documents(self, analysis_id: UUID) -> list[AnalysisDocumentRow]:
        result = await self._session.execute(
            select(AnalysisDocumentRow)
            .where(AnalysisDocumentRow.analysis_id == analysis_id)
            .order_by(AnalysisDocumentRow.created_at)
        )
        return list(result.scalars().all())

    async def list_completed_form_responses(
        self, analysis_id: UUID,
    ) -> list[tuple[str, dict]]:
        """(form title, submission data) for completed assignments only."""
        result = await self._session.execute(
            select(FormRow.title, FormSubmissionRow.data)
            .select_from(FormAssignmentRow)
            .join(FormRow, FormAssignmentRow.form_id == FormRow.id)
            .join(FormSubmissionRow, FormAssignmentRow.submission_id == FormSubmissionRow.id)
            .where(
                FormAssignmentRow.analysis_id == analysis_id,
                FormAssignmentRow.status == "completed",
            )
            .order_by(FormAssignmentRow.completed_at)
        )
        return [(title, data or {}) for title, data in result.all()]
