"""FastAPI form assignment endpoints (staff side).

POST   /v1/organizations/{org_id}/analyses/{analysis_id}/assignments          - assign form
GET    /v1/organizations/{org_id}/analyses/{analysis_id}/assignments          - list
GET    /v1/organizations/{org_id}/analyses/{analysis_id}/available-forms      - assignable forms
POST   /v1/organizations/{org_id}/assignments/{assignment_id}/remind          - reminder
DELETE /v1/organizations/{org_id}/assignments/{assignment_id}                 - remove
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel

from anivise.api.dependencies import get_assignment_service
from anivise.assignments.service import (
    AssignmentError,
    AssignmentSummary,
    FormAssignmentService,
)

router = APIRouter(prefix="/v1/organizations", tags=["assignments"])

_ERROR_STATUS: dict[AssignmentError, int] = {
    AssignmentError.ANALYSIS_NOT_FOUND: 404,
    AssignmentError.FORM_NOT_FOUND: 404,
    AssignmentError.NO_FORM_ACCESS: 403,
    AssignmentError.NO_FORM_VERSION: 422,
    AssignmentError.EMPLOYEE_NOT_FOUND: 404,
    AssignmentError.ALREADY_ASSIGNED: 409,
    AssignmentError.NOT_FOUND: 404,
    AssignmentError.INVALID_STATUS: 409,
    AssignmentError.NO_EMPLOYEE_EMAIL: 422,
    AssignmentError.DELIVERY_FAILED: 502,
    AssignmentError.CANNOT_REMOVE_COMPLETED: 409,
}


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------


class CreateAssignmentRequest(BaseModel):
    form_id: UUID
    assigned_by: UUID
    recipient_id: UUID | None = None
    due_date: datetime | None = None


class CreateAssignmentResponse(BaseModel):
    assignment_id: str
    status: str


class AssignmentActionResponse(BaseModel):
    success: bool
    status: str | None = None


class AssignmentResponse(BaseModel):
    assignment_id: str
    analysis_id: str
    form_id: str
    form_title: str
    employee_name: str
    status: str
    expired: bool
    due_date: datetime | None = None
    token_expires_at: datetime
    sent_at: datetime | None = None
    opened_at: datetime | None = None
    completed_at: datetime | None = None
    reminder_count: int
    last_reminder_at: datetime | None = None
    created_at: datetime
    submission_data: dict[str, Any] | None = None


class AvailableFormResponse(BaseModel):
    form_id: str
    title: str
    description: str | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _raise_for_error(error: AssignmentError) -> None:
    raise HTTPException(status_code=_ERROR_STATUS[error], detail={"error": error.value})


def _summary_to_response(s: AssignmentSummary) -> AssignmentResponse:
    return AssignmentResponse(
        assignment_id=str(s.id),
        analysis_id=str(s.analysis_id),
        form_id=str(s.form_id),
        form_title=s.form_title,
        employee_name=s.employee_name,
        status=s.status.value,
        expired=s.expired,
        due_date=s.due_date,
        token_expires_at=s.token_expires_at,
        sent_at=s.sent_at,
        opened_at=s.opened_at,
        completed_at=s.completed_at,
        reminder_count=s.reminder_count,
        last_reminder_at=s.last_reminder_at,
        created_at=s.created_at,
        submission_data=s.submission_data,
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post(
    "/{org_id}/analyses/{analysis_id}/assignments",
    status_code=201,
    response_model=CreateAssignmentResponse,
)
async def create_assignment(
    org_id: UUID,
    analysis_id: UUID,
    body: CreateAssignmentRequest,
    service: FormAssignmentService = Depends(get_assignment_service),
) -> CreateAssignmentResponse:
    """Assign a form. Delivery failure still returns 201 with status pending."""
    result = await service.create_assignment(
        org_id, analysis_id, body.form_id, body.assigned_by,
        recipient_id=body.recipient_id, due_date=body.due_date,
    )
    if result.error is not None:
        _raise_for_error(result.error)
    return CreateAssignmentResponse(
        assignment_id=str(result.assignment_id), status=result.status.value,
    )


@router.get(
    "/{org_id}/analyses/{analysis_id}/assignments",
    response_model=list[AssignmentResponse],
)
async def list_assignments(
    org_id: UUID,
    analysis_id: UUID,
    service: FormAssignmentService = Depends(get_assignment_service),
) -> list[AssignmentResponse]:
    summaries = await service.list_for_analysis(org_id, analysis_id)
    return [_summary_to_response(s) for s in summaries]


@router.get(
    "/{org_id}/analyses/{analysis_id}/available-forms",
    response_model=list[AvailableFormResponse],
)
async def list_available_forms(
    org_id: UUID,
    analysis_id: UUID,
    service: FormAssignmentService = Depends(get_assignment_service),
) -> list[AvailableFormResponse]:
    forms = await service.list_available_forms(org_id, analysis_id)
    return [
        AvailableFormResponse(form_id=str(f.id), title=f.title, description=f.description)
        for f in forms
    ]


@router.post(
    "/{org_id}/assignments/{assignment_id}/remind",
    response_model=AssignmentActionResponse,
)
async def remind_assignment(
    org_id: UUID,
    assignment_id: UUID,
    service: FormAssignmentService = Depends(get_assignment_service),
) -> AssignmentActionResponse:
    result = await service.remind(org_id, assignment_id)
    if result.error is not None:
        _raise_for_error(result.error)
    return AssignmentActionResponse(success=True, status=result.status.value)


@router.delete("/{org_id}/assignments/{assignment_id}", status_code=204)
async def remove_assignment(
    org_id: UUID,
    assignment_id: UUID,
    service: FormAssignmentService = Depends(get_assignment_service),
) -> Response:
    result = await service.remove(org_id, assignment_id)
    if result.error is not None:
        _raise_for_error(result.error)
    return Response(status_code=204)
