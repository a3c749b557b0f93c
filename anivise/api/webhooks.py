"""Inbound workflow-engine callbacks.

POST /v1/webhooks/n8n/dossier-complete

Order of checks: shared-secret header (401), JSON body (400), payload
shape (400), job in the claimed tenant (404). Redelivery for a job that
is already terminal answers 200 with applied=false.
"""

import hmac
from typing import Any, Literal
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from anivise.api.dependencies import get_dossier_service, get_secrets_vault
from anivise.config.settings import Settings, get_settings
from anivise.dispatch.dispatcher import load_signing_header
from anivise.jobs.service import DossierJobService, JobError
from anivise.jobs.state import JobStatus
from anivise.models.common import AniviseBase
from anivise.vault.store import SecretsVault

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

router = APIRouter(prefix="/v1/webhooks", tags=["webhooks"])


class TokenUsage(AniviseBase):
    prompt_tokens: int
    completion_tokens: int


class DossierCallback(AniviseBase):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
    )

    dossier_id: UUID
    organization_id: UUID
    status: Literal["completed", "failed"]
    result_data: dict[str, Any] | None = None
    model_used: str | None = None
    token_usage: TokenUsage | None = None
    error_message: str | None = None


@router.post("/n8n/dossier-complete")
async def dossier_complete(
    request: Request,
    vault: SecretsVault = Depends(get_secrets_vault),
    settings: Settings = Depends(get_settings),
    service: DossierJobService = Depends(get_dossier_service),
) -> dict:
    header = await load_signing_header(vault, settings)
    received = request.headers.get(header.name) if header is not None else None
    if (
        header is None
        or not received
        or not hmac.compare_digest(received.encode(), header.value.encode())
    ):
        logger.warning("dossier_callback_unauthorized")
        raise HTTPException(status_code=401, detail={"error": "unauthorized"})

    try:
        body = await request.json()
    except ValueError as exc:
        raise HTTPException(status_code=400, detail={"error": "invalid_json"}) from exc

    try:
        payload = DossierCallback.model_validate(body)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail={"error": "invalid_payload"}) from exc

    result = await service.apply_callback(
        payload.dossier_id,
        payload.organization_id,
        JobStatus(payload.status),
        result_data=payload.result_data,
        model_used=payload.model_used,
        token_usage=payload.token_usage.model_dump() if payload.token_usage else None,
        error_message=payload.error_message,
    )
    if result.error == JobError.NOT_FOUND:
        raise HTTPException(status_code=404, detail={"error": JobError.NOT_FOUND.value})
    if result.error is not None:
        raise HTTPException(status_code=400, detail={"error": "invalid_payload"})

    logger.info(
        "dossier_callback_received",
        dossier_id=str(payload.dossier_id),
        status=payload.status,
        applied=result.applied,
    )
    return {"success": True, "applied": result.applied}
