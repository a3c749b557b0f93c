"""Integration health checks for the external services the core depends on.

Each check reads its credentials through the secrets vault and reports
one of connected / error / not_configured. A missing secret is never an
exception here; it is the not_configured status.
"""

import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Protocol

import httpx

from anivise.config.settings import Settings
from anivise.dispatch.dispatcher import DEFAULT_AUTH_HEADER_NAME

RESEND_DOMAINS_URL = "https://api.resend.com/domains"
_CHECK_TIMEOUT_S = 5.0


class IntegrationStatus(StrEnum):
    CONNECTED = "connected"
    ERROR = "error"
    NOT_CONFIGURED = "not_configured"


class SecretSource(Protocol):
    async def get(self, service: str, key: str) -> str | None:
        ...


@dataclass
class IntegrationHealth:
    """Status of a single external integration."""

    service: str
    status: IntegrationStatus
    latency_ms: int | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return {
            "service": self.service,
            "status": self.status.value,
            "latency_ms": self.latency_ms,
            "error": self.error,
        }


@dataclass
class HealthReport:
    """Overall integration report."""

    overall_status: str  # "healthy" | "degraded"
    integrations: list[IntegrationHealth] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "overall_status": self.overall_status,
            "integrations": [i.to_dict() for i in self.integrations],
        }


class IntegrationHealthChecker:
    """Check n8n and Resend with the credentials stored in the vault."""

    def __init__(self, secrets: SecretSource, settings: Settings) -> None:
        self._secrets = secrets
        self._settings = settings

    async def check_all(self) -> HealthReport:
        results = [await self.check_n8n(), await self.check_resend()]
        # not_configured is a deployment choice, not an outage
        degraded = any(r.status == IntegrationStatus.ERROR for r in results)
        return HealthReport(
            overall_status="degraded" if degraded else "healthy",
            integrations=results,
        )

    async def check_n8n(self) -> IntegrationHealth:
        health_url = await self._secrets.get("n8n", "health_url")
        if health_url:
            header_name = (
                await self._secrets.get("n8n", "auth_header_name")
                or DEFAULT_AUTH_HEADER_NAME
            )
            header_value = (
                await self._secrets.get("n8n", "auth_header_value")
                or self._settings.N8N_WEBHOOK_SECRET
            )
            headers = {header_name: header_value} if header_value else {}
            return await self._check_endpoint("n8n", health_url, headers)

        api_url = await self._secrets.get("n8n", "api_url")
        api_key = await self._secrets.get("n8n", "api_key")
        if not api_url or not api_key:
            return IntegrationHealth("n8n", IntegrationStatus.NOT_CONFIGURED)
        return await self._check_endpoint(
            "n8n",
            f"{api_url.rstrip('/')}/api/v1/workflows?limit=1",
            {"X-N8N-API-KEY": api_key},
        )

    async def check_resend(self) -> IntegrationHealth:
        api_key = (
            await self._secrets.get("resend", "api_key")
            or self._settings.RESEND_API_KEY
        )
        if not api_key:
            return IntegrationHealth("resend", IntegrationStatus.NOT_CONFIGURED)
        # Send-only keys answer 401/403 "restricted"; the key itself is valid.
        return await self._check_endpoint(
            "resend", RESEND_DOMAINS_URL,
            {"Authorization": f"Bearer {api_key}"},
            accept_restricted=True,
        )

    async def _check_endpoint(
        self,
        service: str,
        url: str,
        headers: dict[str, str],
        *,
        accept_restricted: bool = False,
    ) -> IntegrationHealth:
        start = time.monotonic()
        try:
            async with httpx.AsyncClient(timeout=_CHECK_TIMEOUT_S) as client:
                resp = await client.get(url, headers=headers)
        except (httpx.HTTPError, httpx.InvalidURL, UnicodeEncodeError) as exc:
            return IntegrationHealth(
                service, IntegrationStatus.ERROR,
                latency_ms=_elapsed_ms(start), error=str(exc) or "Connection failed",
            )

        latency = _elapsed_ms(start)
        if resp.is_success:
            return IntegrationHealth(service, IntegrationStatus.CONNECTED, latency_ms=latency)
        if (
            accept_restricted
            and resp.status_code in (401, 403)
            and "restricted" in resp.text
        ):
            return IntegrationHealth(service, IntegrationStatus.CONNECTED, latency_ms=latency)
        return IntegrationHealth(
            service, IntegrationStatus.ERROR,
            latency_ms=latency, error=f"HTTP {resp.status_code}",
        )


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)
