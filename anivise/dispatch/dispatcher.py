"""JobDispatcher: signed, single-attempt POST of a dossier envelope to n8n.

The dispatcher only answers "could we hand the job to n8n". It never
touches job state; the job service interprets the DispatchResult.
"""

import logging
from dataclasses import dataclass
from uuid import UUID

import httpx

from anivise.config.settings import Settings
from anivise.dispatch.payload import AnalysisNotFoundError, DossierPayloadBuilder
from anivise.dispatch.resolver import N8N_SERVICE, CachedSecretSource, WebhookTargetResolver

logger = logging.getLogger(__name__)

DOSSIER_TASK_TYPE = "dossier"
DEFAULT_AUTH_HEADER_NAME = "X-Anivise-Secret"
CALLBACK_PATH = "/v1/webhooks/n8n/dossier-complete"


@dataclass(frozen=True)
class DispatchResult:
    success: bool
    is_test: bool = False
    error: str | None = None


@dataclass(frozen=True)
class SigningHeader:
    name: str
    value: str


async def load_signing_header(
    secrets: CachedSecretSource, settings: Settings,
) -> SigningHeader | None:
    """Shared-secret header used both to sign dispatches and verify callbacks."""
    value = (
        await secrets.get_cached(N8N_SERVICE, "auth_header_value")
        or settings.N8N_WEBHOOK_SECRET
    )
    if not value:
        return None
    name = await secrets.get_cached(N8N_SERVICE, "auth_header_name")
    return SigningHeader(name=name or DEFAULT_AUTH_HEADER_NAME, value=value)


def callback_url(settings: Settings) -> str:
    return settings.PUBLIC_API_URL.rstrip("/") + CALLBACK_PATH


class JobDispatcher:
    """Hand a dossier job to the external workflow engine.

    Exactly one HTTP attempt per call, bounded by DISPATCH_TIMEOUT_S.
    Retrying is a user action that creates a new job.
    """

    def __init__(
        self,
        *,
        secrets: CachedSecretSource,
        resolver: WebhookTargetResolver,
        builder: DossierPayloadBuilder,
        settings: Settings,
    ) -> None:
        self._secrets = secrets
        self._resolver = resolver
        self._builder = builder
        self._settings = settings

    async def dispatch(
        self,
        job_id: UUID,
        analysis_id: UUID,
        organization_id: UUID,
        prompt: str,
    ) -> DispatchResult:
        target = await self._resolver.resolve(DOSSIER_TASK_TYPE)
        if target is None:
            return DispatchResult(
                success=False, error="n8n dossier webhook URL not configured",
            )

        header = await load_signing_header(self._secrets, self._settings)
        if header is None:
            return DispatchResult(
                success=False, is_test=target.is_test,
                error="n8n auth secret not configured",
            )

        try:
            envelope = await self._builder.build(
                dossier_id=job_id,
                analysis_id=analysis_id,
                organization_id=organization_id,
                callback_url=callback_url(self._settings),
                prompt=prompt,
            )
        except AnalysisNotFoundError:
            return DispatchResult(
                success=False, is_test=target.is_test, error="Analysis not found",
            )

        headers = {"Content-Type": "application/json", header.name: header.value}
        try:
            async with httpx.AsyncClient(timeout=self._settings.DISPATCH_TIMEOUT_S) as client:
                resp = await client.post(target.url, json=envelope.to_wire(), headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL, UnicodeEncodeError) as exc:
            # Non-ASCII header values and malformed stored URLs fail before sending
            logger.warning("Dossier %s dispatch failed: %s", job_id, exc)
            return DispatchResult(
                success=False, is_test=target.is_test,
                error=f"Failed to reach n8n: {exc}",
            )

        if not resp.is_success:
            logger.warning(
                "Dossier %s dispatch rejected with status %d", job_id, resp.status_code,
            )
            return DispatchResult(
                success=False, is_test=target.is_test,
                error=f"n8n responded with status {resp.status_code}",
            )

        logger.info(
            "Dossier %s dispatched (%s)", job_id, "test" if target.is_test else "production",
        )
        return DispatchResult(success=True, is_test=target.is_test)
