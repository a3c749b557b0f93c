"""Administrative integration secrets and health endpoints.

PUT /v1/admin/integrations/{service}/secrets  - save (masked values skipped)
GET /v1/admin/integrations/{service}/secrets  - masked metadata
GET /v1/admin/integrations/health             - n8n / resend status
POST /v1/admin/integrations/n8n/rotate-secret - new n8n signing secret
POST /v1/admin/integrations/{service}/load-from-env - import settings fallbacks
"""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from anivise.api.dependencies import get_integration_health_checker, get_secrets_vault
from anivise.config.settings import Settings, get_settings
from anivise.models.common import as_utc
from anivise.observability.health import IntegrationHealthChecker
from anivise.vault.crypto import is_masked
from anivise.vault.store import SecretsVault

router = APIRouter(prefix="/v1/admin/integrations", tags=["integrations"])


class SecretInput(BaseModel):
    key: str = Field(min_length=1, max_length=100)
    value: str
    sensitive: bool = True


class SaveSecretsRequest(BaseModel):
    updated_by: UUID
    secrets: list[SecretInput]


class SaveSecretsResponse(BaseModel):
    service: str
    saved: list[str]
    skipped: list[str]


class SecretMetadataResponse(BaseModel):
    key: str
    is_sensitive: bool
    masked_value: str
    updated_at: datetime


class ActorRequest(BaseModel):
    updated_by: UUID


class RotateSecretResponse(BaseModel):
    new_secret: str


class LoadFromSettingsResponse(BaseModel):
    service: str
    count: int


@router.put("/{service}/secrets", response_model=SaveSecretsResponse)
async def save_secrets(
    service: str,
    body: SaveSecretsRequest,
    vault: SecretsVault = Depends(get_secrets_vault),
) -> SaveSecretsResponse:
    """Upsert secrets. Empty values and untouched masked placeholders are skipped."""
    saved: list[str] = []
    skipped: list[str] = []
    for item in body.secrets:
        if not item.value or is_masked(item.value):
            skipped.append(item.key)
            continue
        await vault.put(
            service, item.key, item.value,
            sensitive=item.sensitive, actor_id=body.updated_by,
        )
        saved.append(item.key)
    vault.invalidate(service)
    return SaveSecretsResponse(service=service, saved=saved, skipped=skipped)


@router.get("/{service}/secrets", response_model=list[SecretMetadataResponse])
async def list_secrets(
    service: str,
    vault: SecretsVault = Depends(get_secrets_vault),
) -> list[SecretMetadataResponse]:
    return [
        SecretMetadataResponse(
            key=m.key,
            is_sensitive=m.is_sensitive,
            masked_value=m.masked_value,
            updated_at=as_utc(m.updated_at),
        )
        for m in await vault.list_metadata(service)
    ]


@router.get("/health")
async def integration_health(
    checker: IntegrationHealthChecker = Depends(get_integration_health_checker),
) -> dict:
    report = await checker.check_all()
    return report.to_dict()


@router.post("/n8n/rotate-secret", response_model=RotateSecretResponse)
async def rotate_n8n_secret(
    body: ActorRequest,
    vault: SecretsVault = Depends(get_secrets_vault),
) -> RotateSecretResponse:
    """Generate a new signing secret. It is shown once, in this response."""
    new_secret = await vault.rotate_signing_secret(actor_id=body.updated_by)
    return RotateSecretResponse(new_secret=new_secret)


@router.post("/{service}/load-from-env", response_model=LoadFromSettingsResponse)
async def load_from_env(
    service: str,
    body: ActorRequest,
    vault: SecretsVault = Depends(get_secrets_vault),
    settings: Settings = Depends(get_settings),
) -> LoadFromSettingsResponse:
    count = await vault.load_from_settings(service, settings, actor_id=body.updated_by)
    if count is None:
        raise HTTPException(status_code=404, detail={"error": "unknown_service"})
    return LoadFromSettingsResponse(service=service, count=count)
