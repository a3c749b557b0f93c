"""FastAPI dossier job endpoints.

POST /v1/organizations/{org_id}/analyses/{analysis_id}/dossiers         - request
GET  /v1/organizations/{org_id}/analyses/{analysis_id}/dossiers         - history
GET  /v1/organizations/{org_id}/analyses/{analysis_id}/dossiers/latest  - poll
POST /v1/organizations/{org_id}/dossiers/{dossier_id}/retry             - retry failed
GET  /v1/organizations/{org_id}/dossiers/stale                          - overdue callbacks

Polling is read-only and safe to repeat.
"""

from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from anivise.api.dependencies import get_dossier_service
from anivise.jobs.service import DossierJobService, JobError, JobSummary, RequestJobResult

router = APIRouter(prefix="/v1/organizations", tags=["dossiers"])

_ERROR_STATUS: dict[JobError, int] = {
    JobError.NOT_FOUND: 404,
    JobError.ALREADY_IN_PROGRESS: 409,
    JobError.NOT_FAILED: 409,
    JobError.INVALID_STATUS: 400,
}


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------


class RequestDossierRequest(BaseModel):
    requested_by: UUID


class RequestDossierResponse(BaseModel):
    dossier_id: str
    status: str
    success: bool
    error: str | None = None


class DossierResponse(BaseModel):
    dossier_id: str
    analysis_id: str
    status: str
    is_test: bool
    error_message: str | None = None
    result_data: dict[str, Any] | None = None
    model_used: str | None = None
    token_usage: dict[str, Any] | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime
    age_seconds: float | None = None
    stale: bool = False


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _raise_for_error(error: JobError) -> None:
    raise HTTPException(status_code=_ERROR_STATUS[error], detail={"error": error.value})


def _request_response(result: RequestJobResult) -> RequestDossierResponse:
    if result.error is not None:
        _raise_for_error(result.error)
    return RequestDossierResponse(
        dossier_id=str(result.job_id),
        status=result.status.value,
        success=result.success,
        error=result.dispatch_error,
    )


def _summary_to_response(s: JobSummary) -> DossierResponse:
    return DossierResponse(
        dossier_id=str(s.id),
        analysis_id=str(s.analysis_id),
        status=s.status.value,
        is_test=s.is_test,
        error_message=s.error_message,
        result_data=s.result_data,
        model_used=s.model_used,
        token_usage=s.token_usage,
        started_at=s.started_at,
        completed_at=s.completed_at,
        created_at=s.created_at,
        age_seconds=s.age_seconds,
        stale=s.stale,
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/{org_id}/analyses/{analysis_id}/dossiers",
    status_code=201,
    response_model=RequestDossierResponse,
)
async def request_dossier(
    org_id: UUID,
    analysis_id: UUID,
    body: RequestDossierRequest,
    service: DossierJobService = Depends(get_dossier_service),
) -> RequestDossierResponse:
    """Create a dossier job and dispatch it.

    A failed dispatch still returns 201 with status "failed"; the job row
    exists and can be retried.
    """
    result = await service.request_job(org_id, analysis_id, body.requested_by)
    return _request_response(result)


@router.get(
    "/{org_id}/analyses/{analysis_id}/dossiers",
    response_model=list[DossierResponse],
)
async def list_dossiers(
    org_id: UUID,
    analysis_id: UUID,
    service: DossierJobService = Depends(get_dossier_service),
) -> list[DossierResponse]:
    return [_summary_to_response(s) for s in await service.list_jobs(org_id, analysis_id)]


@router.get(
    "/{org_id}/analyses/{analysis_id}/dossiers/latest",
    response_model=DossierResponse,
)
async def get_latest_dossier(
    org_id: UUID,
    analysis_id: UUID,
    service: DossierJobService = Depends(get_dossier_service),
) -> DossierResponse:
    summary = await service.get_status(org_id, analysis_id)
    if summary is None:
        raise HTTPException(status_code=404, detail={"error": JobError.NOT_FOUND.value})
    return _summary_to_response(summary)


@router.post(
    "/{org_id}/dossiers/{dossier_id}/retry",
    status_code=201,
    response_model=RequestDossierResponse,
)
async def retry_dossier(
    org_id: UUID,
    dossier_id: UUID,
    body: RequestDossierRequest,
    service: DossierJobService = Depends(get_dossier_service),
) -> RequestDossierResponse:
    result = await service.retry_job(org_id, dossier_id, body.requested_by)
    return _request_response(result)


@router.get("/{org_id}/dossiers/stale", response_model=list[DossierResponse])
async def list_stale_dossiers(
    org_id: UUID,
    older_than_minutes: int | None = Query(default=None, ge=1),
    service: DossierJobService = Depends(get_dossier_service),
) -> list[DossierResponse]:
    older_than = timedelta(minutes=older_than_minutes) if older_than_minutes else None
    return [_summary_to_response(s) for s in await service.list_stale(org_id, older_than)]
