"""Public token-gated form endpoints. The bearer token is the only credential.

GET  /v1/form-fill/{token}  - load form (pending/sent → opened)
POST /v1/form-fill/{token}  - submit once (→ completed)

invalid, expired and already_completed stay distinct so the page can show
the matching message.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from anivise.api.dependencies import get_assignment_service
from anivise.assignments.service import FormAssignmentService, FormCompletion, TokenError

router = APIRouter(prefix="/v1/form-fill", tags=["form-fill"])

_ERROR_STATUS: dict[TokenError, int] = {
    TokenError.INVALID: 404,
    TokenError.EXPIRED: 410,
    TokenError.ALREADY_COMPLETED: 409,
}


class CompletionResponse(BaseModel):
    completion_type: str
    completion_title: str | None = None
    completion_message: str | None = None
    completion_redirect_url: str | None = None


class FormFillResponse(BaseModel):
    assignment_id: str
    status: str
    employee_name: str
    organization_name: str
    form_id: str
    form_title: str
    form_description: str | None = None
    form_schema: dict[str, Any]
    completion: CompletionResponse


class SubmitFormRequest(BaseModel):
    data: dict[str, Any]
    metadata: dict[str, Any] | None = None


class SubmitFormResponse(BaseModel):
    success: bool
    submission_id: str
    completion: CompletionResponse


def _raise_for_error(error: TokenError) -> None:
    raise HTTPException(status_code=_ERROR_STATUS[error], detail={"error": error.value})


def _completion(c: FormCompletion) -> CompletionResponse:
    return CompletionResponse(
        completion_type=c.completion_type,
        completion_title=c.completion_title,
        completion_message=c.completion_message,
        completion_redirect_url=c.completion_redirect_url,
    )


@router.get("/{token}", response_model=FormFillResponse)
async def get_form_by_token(
    token: str,
    service: FormAssignmentService = Depends(get_assignment_service),
) -> FormFillResponse:
    result = await service.resolve_by_token(token)
    if result.error is not None:
        _raise_for_error(result.error)
    view = result.view
    return FormFillResponse(
        assignment_id=str(view.assignment_id),
        status=view.status.value,
        employee_name=view.employee_name,
        organization_name=view.organization_name,
        form_id=str(view.form_id),
        form_title=view.form_title,
        form_description=view.form_description,
        form_schema=view.schema,
        completion=_completion(view.completion),
    )


@router.post("/{token}", status_code=201, response_model=SubmitFormResponse)
async def submit_form_by_token(
    token: str,
    body: SubmitFormRequest,
    service: FormAssignmentService = Depends(get_assignment_service),
) -> SubmitFormResponse:
    result = await service.submit(token, body.data, body.metadata)
    if result.error is not None:
        _raise_for_error(result.error)
    return SubmitFormResponse(
        success=True,
        submission_id=str(result.submission_id),
        completion=_completion(result.completion),
    )
