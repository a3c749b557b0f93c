"""Dossier job lifecycle: request, retry, callback, polling.

Every operation returns a typed result carrying a JobError tag instead of
raising, so routers translate outcomes to HTTP without try/except.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any, Protocol
from uuid import UUID

from anivise.db.tables import DossierJobRow
from anivise.dispatch.dispatcher import DOSSIER_TASK_TYPE, DispatchResult
from anivise.dispatch.resolver import WebhookTargetResolver
from anivise.jobs.notifications import DossierNotifier
from anivise.jobs.prompts import DOSSIER_PROMPT
from anivise.jobs.state import JobStatus, is_terminal
from anivise.models.common import Clock, as_utc, utc_now
from anivise.repositories.analyses import AnalysisRepository
from anivise.repositories.dossiers import DossierJobRepository, JobAlreadyInProgressError

logger = logging.getLogger(__name__)


class JobError(StrEnum):
    NOT_FOUND = "not_found"
    ALREADY_IN_PROGRESS = "already_in_progress"
    NOT_FAILED = "not_failed"
    INVALID_STATUS = "invalid_status"


class Dispatcher(Protocol):
    async def dispatch(self, job_id: UUID, analysis_id: UUID,
                       organization_id: UUID, prompt: str) -> DispatchResult:
        ...


@dataclass(frozen=True)
class RequestJobResult:
    job_id: UUID | None = None
    status: JobStatus | None = None
    error: JobError | None = None
    dispatch_error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None and self.dispatch_error is None


@dataclass(frozen=True)
class CallbackResult:
    applied: bool
    error: JobError | None = None


@dataclass(frozen=True)
class JobSummary:
    """Polling view of one dossier job."""

    id: UUID
    analysis_id: UUID
    status: JobStatus
    is_test: bool
    error_message: str | None
    result_data: dict[str, Any] | None
    model_used: str | None
    token_usage: dict[str, Any] | None
    started_at: datetime | None
    completed_at: datetime | None
    created_at: datetime
    age_seconds: float | None
    stale: bool


class DossierJobService:
    """Owns every status write on dossier jobs."""

    def __init__(
        self,
        *,
        jobs: DossierJobRepository,
        analyses: AnalysisRepository,
        resolver: WebhookTargetResolver,
        dispatcher: Dispatcher,
        notifier: DossierNotifier | None = None,
        commit: Callable[[], Awaitable[None]] | None = None,
        stale_after: timedelta = timedelta(minutes=30),
        clock: Clock = utc_now,
    ) -> None:
        self._jobs = jobs
        self._analyses = analyses
        self._resolver = resolver
        self._dispatcher = dispatcher
        self._notifier = notifier
        self._commit_hook = commit
        self._stale_after = stale_after
        self._clock = clock

    async def _commit(self) -> None:
        if self._commit_hook is not None:
            await self._commit_hook()

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def request_job(
        self,
        organization_id: UUID,
        analysis_id: UUID,
        requested_by: UUID,
        prompt: str = DOSSIER_PROMPT,
    ) -> RequestJobResult:
        """Create a pending job, dispatch it, and record the outcome.

        Returns the job id whether or not the dispatch succeeded.
        """
        analysis = await self._analyses.get_for_org(analysis_id, organization_id)
        if analysis is None:
            return RequestJobResult(error=JobError.NOT_FOUND)

        if await self._jobs.get_in_flight(analysis_id, organization_id) is not None:
            return RequestJobResult(error=JobError.ALREADY_IN_PROGRESS)

        # Environment is fixed at creation; later toggles do not relabel the job.
        target = await self._resolver.resolve(DOSSIER_TASK_TYPE)
        is_test = target.is_test if target is not None else False

        try:
            row = await self._jobs.create_pending(
                analysis_id=analysis_id, organization_id=organization_id,
                prompt_text=prompt, requested_by=requested_by,
                is_test=is_test, now=self._clock(),
            )
        except JobAlreadyInProgressError:
            logger.info("Concurrent dossier request for analysis %s rejected", analysis_id)
            return RequestJobResult(error=JobError.ALREADY_IN_PROGRESS)

        # The callback handler must be able to see the pending row.
        await self._commit()

        outcome = await self._dispatcher.dispatch(row.id, analysis_id, organization_id, prompt)

        # A fast callback may already have finished the job from another session.
        await self._jobs.refresh(row)
        if outcome.success:
            if row.status == JobStatus.PENDING:
                await self._jobs.mark_processing(row, self._clock())
                if self._notifier is not None:
                    await self._notifier.dispatched(row, self._clock())
            await self._commit()
            return RequestJobResult(job_id=row.id, status=JobStatus(row.status))

        error_message = outcome.error or "Failed to trigger n8n webhook"
        if not is_terminal(row.status):
            await self._jobs.mark_failed(row, error_message, self._clock())
            await self._commit()
        logger.warning("Dossier %s failed at dispatch: %s", row.id, error_message)
        return RequestJobResult(
            job_id=row.id, status=JobStatus(row.status), dispatch_error=error_message,
        )

    async def retry_job(
        self, organization_id: UUID, job_id: UUID, requested_by: UUID,
    ) -> RequestJobResult:
        """Start a fresh job from a failed one; the failed row stays as-is."""
        row = await self._jobs.get_for_org(job_id, organization_id)
        if row is None:
            return RequestJobResult(error=JobError.NOT_FOUND)
        if row.status != JobStatus.FAILED:
            return RequestJobResult(error=JobError.NOT_FAILED)
        return await self.request_job(
            organization_id, row.analysis_id, requested_by, prompt=row.prompt_text,
        )

    async def apply_callback(
        self,
        job_id: UUID,
        organization_id: UUID,
        status: JobStatus,
        *,
        result_data: dict[str, Any] | None = None,
        model_used: str | None = None,
        token_usage: dict[str, Any] | None = None,
        error_message: str | None = None,
    ) -> CallbackResult:
        """Apply the terminal outcome reported by the workflow engine.

        Redelivery for a job that is already terminal is a no-op.
        """
        if status not in (JobStatus.COMPLETED, JobStatus.FAILED):
            return CallbackResult(applied=False, error=JobError.INVALID_STATUS)

        row = await self._jobs.get_for_org(job_id, organization_id)
        if row is None:
            return CallbackResult(applied=False, error=JobError.NOT_FOUND)
        if is_terminal(row.status):
            logger.info("Ignoring repeated callback for dossier %s (%s)", job_id, row.status)
            return CallbackResult(applied=False)

        now = self._clock()
        if status == JobStatus.FAILED:
            await self._jobs.mark_failed(row, error_message, now)
            if self._notifier is not None:
                await self._notifier.failed(row, error_message, now)
        else:
            if row.status == JobStatus.PENDING:
                await self._jobs.mark_processing(row, now)
            await self._jobs.mark_completed(
                row, result_data=result_data, model_used=model_used,
                token_usage=token_usage, now=now,
            )
            if self._notifier is not None:
                await self._notifier.completed(row, now)
        logger.info("Dossier %s marked %s by callback", job_id, status)
        return CallbackResult(applied=True)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_status(self, organization_id: UUID, analysis_id: UUID) -> JobSummary | None:
        """Latest job for the analysis by creation time, or None."""
        row = await self._jobs.get_latest(analysis_id, organization_id)
        return self._summarize(row) if row is not None else None

    async def list_jobs(self, organization_id: UUID, analysis_id: UUID) -> list[JobSummary]:
        rows = await self._jobs.list_for_analysis(analysis_id, organization_id)
        return [self._summarize(r) for r in rows]

    async def list_stale(
        self, organization_id: UUID, older_than: timedelta | None = None,
    ) -> list[JobSummary]:
        """Processing jobs whose callback is overdue. Never auto-failed."""
        cutoff = self._clock() - (older_than or self._stale_after)
        rows = await self._jobs.list_processing_started_before(organization_id, cutoff)
        return [self._summarize(r) for r in rows]

    def _summarize(self, row: DossierJobRow) -> JobSummary:
        status = JobStatus(row.status)
        started_at = as_utc(row.started_at)
        age_seconds = None
        stale = False
        if started_at is not None:
            age_seconds = (self._clock() - started_at).total_seconds()
            stale = (
                status == JobStatus.PROCESSING
                and age_seconds > self._stale_after.total_seconds()
            )
        return JobSummary(
            id=row.id,
            analysis_id=row.analysis_id,
            status=status,
            is_test=row.is_test,
            error_message=row.error_message,
            result_data=row.result_data,
            model_used=row.model_used,
            token_usage=row.token_usage,
            started_at=started_at,
            completed_at=as_utc(row.completed_at),
            created_at=as_utc(row.created_at),
            age_seconds=age_seconds,
            stale=stale,
        )
