"""Form assignment repository.

Status writes are checked against the assignment transition table.
Deleting a completed assignment is refused here as well as in the service.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from anivise.assignments.state import AssignmentStatus, ensure_assignment_transition
from anivise.db.tables import EmployeeRow, FormAssignmentRow, FormRow, FormSubmissionRow
from anivise.models.common import new_uuid7


class FormAssignmentRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, *, analysis_id: UUID, form_id: UUID,
                     form_version_id: UUID, organization_id: UUID,
                     employee_id: UUID, token: str, token_expires_at: datetime,
                     assigned_by: UUID, due_date: datetime | None,
                     now: datetime) -> FormAssignmentRow:
        row = FormAssignmentRow(
            id=new_uuid7(), analysis_id=analysis_id, form_id=form_id,
            form_version_id=form_version_id, organization_id=organization_id,
            employee_id=employee_id, token=token,
            token_expires_at=token_expires_at, assigned_by=assigned_by,
            due_date=due_date, status=AssignmentStatus.PENDING.value,
            reminder_count=0, created_at=now, updated_at=now,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def get_for_org(self, assignment_id: UUID,
                          organization_id: UUID) -> FormAssignmentRow | None:
        result = await self._session.execute(
            select(FormAssignmentRow).where(
                FormAssignmentRow.id == assignment_id,
                FormAssignmentRow.organization_id == organization_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_by_token(self, token: str) -> FormAssignmentRow | None:
        result = await self._session.execute(
            select(FormAssignmentRow).where(FormAssignmentRow.token == token)
        )
        return result.scalar_one_or_none()

    async def exists(self, analysis_id: UUID, form_id: UUID) -> bool:
        result = await self._session.execute(
            select(FormAssignmentRow.id).where(
                FormAssignmentRow.analysis_id == analysis_id,
                FormAssignmentRow.form_id == form_id,
            )
        )
        return result.first() is not None

    async def assigned_form_ids(self, analysis_id: UUID) -> set[UUID]:
        result = await self._session.execute(
            select(FormAssignmentRow.form_id).where(
                FormAssignmentRow.analysis_id == analysis_id,
            )
        )
        return set(result.scalars().all())

    async def list_for_analysis(self, analysis_id: UUID, organization_id: UUID):
        """Rows of (assignment, form title, first name, last name, submission data)."""
        result = await self._session.execute(
            select(
                FormAssignmentRow,
                FormRow.title,
                EmployeeRow.first_name,
                EmployeeRow.last_name,
                FormSubmissionRow.data,
            )
            .join(FormRow, FormAssignmentRow.form_id == FormRow.id)
            .join(EmployeeRow, FormAssignmentRow.employee_id == EmployeeRow.id)
            .outerjoin(
                FormSubmissionRow,
                FormAssignmentRow.submission_id == FormSubmissionRow.id,
            )
            .where(
                FormAssignmentRow.analysis_id == analysis_id,
                FormAssignmentRow.organization_id == organization_id,
            )
            .order_by(FormAssignmentRow.created_at.desc())
        )
        return list(result.all())

    async def set_status(self, row: FormAssignmentRow, status: AssignmentStatus,
                         now: datetime) -> FormAssignmentRow:
        ensure_assignment_transition(row.status, status)
        row.status = status.value
        if status == AssignmentStatus.SENT:
            row.sent_at = now
        elif status == AssignmentStatus.OPENED:
            row.opened_at = now
        elif status == AssignmentStatus.COMPLETED:
            row.completed_at = now
        row.updated_at = now
        await self._session.flush()
        return row

    async def claim_completion(self, row: FormAssignmentRow, now: datetime) -> bool:
        """Move the row to completed unless another request got there first.

        The conditional UPDATE is the single-use guard: of two concurrent
        submits only one sees rowcount 1.
        """
        result = await self._session.execute(
            update(FormAssignmentRow)
            .where(
                FormAssignmentRow.id == row.id,
                FormAssignmentRow.status != AssignmentStatus.COMPLETED.value,
            )
            .values(
                status=AssignmentStatus.COMPLETED.value,
                completed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        await self._session.refresh(row)
        return True

    async def link_submission(self, row: FormAssignmentRow,
                              submission_id: UUID) -> FormAssignmentRow:
        row.submission_id = submission_id
        await self._session.flush()
        return row

    async def record_reminder(self, row: FormAssignmentRow,
                              now: datetime) -> FormAssignmentRow:
        row.reminder_count += 1
        row.last_reminder_at = now
        row.updated_at = now
        await self._session.flush()
        return row

    async def delete(self, row: FormAssignmentRow) -> None:
        if row.status == AssignmentStatus.COMPLETED:
            msg = f"Completed assignment {row.id} is an audit record and cannot be deleted."
            raise ValueError(msg)
        await self._session.delete(row)
        await self._session.flush()
