"""Dossier job repository.

Status writes go through ensure_job_transition so no caller can move a
job out of a terminal state.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from anivise.db.tables import DossierJobRow
from anivise.jobs.state import IN_FLIGHT_STATUSES, JobStatus, ensure_job_transition
from anivise.models.common import new_uuid7


class JobAlreadyInProgressError(Exception):
    """Another pending/processing job exists for the same analysis."""


class DossierJobRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_pending(self, *, analysis_id: UUID, organization_id: UUID,
                             prompt_text: str, requested_by: UUID,
                             is_test: bool, now: datetime) -> DossierJobRow:
        """Insert a pending job inside a SAVEPOINT.

        The partial unique index uq_dossier_jobs_in_flight rejects a second
        in-flight job; that violation is raised as JobAlreadyInProgressError
        and leaves the outer transaction usable.
        """
        row = DossierJobRow(
            id=new_uuid7(), analysis_id=analysis_id,
            organization_id=organization_id,
            status=JobStatus.PENDING.value, prompt_text=prompt_text,
            requested_by=requested_by, is_test=is_test,
            created_at=now, updated_at=now,
        )
        try:
            async with self._session.begin_nested():
                self._session.add(row)
                await self._session.flush()
        except IntegrityError as exc:
            raise JobAlreadyInProgressError(str(analysis_id)) from exc
        return row

    async def get_for_org(self, job_id: UUID,
                          organization_id: UUID) -> DossierJobRow | None:
        result = await self._session.execute(
            select(DossierJobRow).where(
                DossierJobRow.id == job_id,
                DossierJobRow.organization_id == organization_id,
            )
        )
        return result.scalar_one_or_none()

    async def get_in_flight(self, analysis_id: UUID,
                            organization_id: UUID) -> DossierJobRow | None:
        result = await self._session.execute(
            select(DossierJobRow).where(
                DossierJobRow.analysis_id == analysis_id,
                DossierJobRow.organization_id == organization_id,
                DossierJobRow.status.in_([s.value for s in IN_FLIGHT_STATUSES]),
            ).limit(1)
        )
        return result.scalar_one_or_none()

    async def get_latest(self, analysis_id: UUID,
                         organization_id: UUID) -> DossierJobRow | None:
        result = await self._session.execute(
            select(DossierJobRow)
            .where(
                DossierJobRow.analysis_id == analysis_id,
                DossierJobRow.organization_id == organization_id,
            )
            .order_by(DossierJobRow.created_at.desc(), DossierJobRow.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def list_for_analysis(self, analysis_id: UUID,
                                organization_id: UUID) -> list[DossierJobRow]:
        result = await self._session.execute(
            select(DossierJobRow)
            .where(
                DossierJobRow.analysis_id == analysis_id,
                DossierJobRow.organization_id == organization_id,
            )
            .order_by(DossierJobRow.created_at.desc(), DossierJobRow.id.desc())
        )
        return list(result.scalars().all())

    async def list_processing_started_before(
        self, organization_id: UUID, cutoff: datetime,
    ) -> list[DossierJobRow]:
        result = await self._session.execute(
            select(DossierJobRow)
            .where(
                DossierJobRow.organization_id == organization_id,
                DossierJobRow.status == JobStatus.PROCESSING.value,
                DossierJobRow.started_at < cutoff,
            )
            .order_by(DossierJobRow.started_at)
        )
        return list(result.scalars().all())

    async def mark_processing(self, row: DossierJobRow, now: datetime) -> DossierJobRow:
        ensure_job_transition(row.status, JobStatus.PROCESSING)
        row.status = JobStatus.PROCESSING.value
        row.started_at = now
        row.updated_at = now
        await self._session.flush()
        return row

    async def mark_failed(self, row: DossierJobRow, error_message: str | None,
                          now: datetime) -> DossierJobRow:
        ensure_job_transition(row.status, JobStatus.FAILED)
        row.status = JobStatus.FAILED.value
        row.error_message = error_message
        row.completed_at = now
        row.updated_at = now
        await self._session.flush()
        return row

    async def mark_completed(self, row: DossierJobRow, *, result_data: dict | None,
                             model_used: str | None, token_usage: dict | None,
                             now: datetime) -> DossierJobRow:
        ensure_job_transition(row.status, JobStatus.COMPLETED)
        row.status = JobStatus.COMPLETED.value
        row.result_data = result_data
        row.model_used = model_used
        row.token_usage = token_usage
        row.completed_at = now
        row.updated_at = now
        await self._session.flush()
        return row

    async def refresh(self, row: DossierJobRow) -> DossierJobRow:
        """Reload the row; a callback may have written it from another session."""
        await self._session.refresh(row)
        return row
