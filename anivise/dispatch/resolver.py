"""Webhook target resolution: test vs production n8n endpoint per task type.

Lookup order (all in service "n8n"):
- environment: webhook_env_{task_type}, then webhook_env, default "production"
- test URL:    {task_type}_webhook_url_test, then webhook_url_test
- prod URL:    {task_type}_webhook_url, then webhook_url, then N8N_WEBHOOK_URL
"""

from dataclasses import dataclass
from typing import Protocol

from anivise.config.settings import Settings

N8N_SERVICE = "n8n"
TEST_ENVIRONMENT = "test"
PRODUCTION_ENVIRONMENT = "production"


class CachedSecretSource(Protocol):
    async def get_cached(self, service: str, key: str) -> str | None:
        ...


@dataclass(frozen=True)
class WebhookTarget:
    """Resolved endpoint. is_test is persisted onto the job it creates."""

    url: str
    is_test: bool


class WebhookTargetResolver:
    """Pick the n8n webhook URL for a task type from the environment toggle."""

    def __init__(self, secrets: CachedSecretSource, settings: Settings) -> None:
        self._secrets = secrets
        self._settings = settings

    async def _first(self, *keys: str) -> str | None:
        for key in keys:
            value = await self._secrets.get_cached(N8N_SERVICE, key)
            if value:
                return value
        return None

    async def environment(self, task_type: str) -> str:
        env = await self._first(f"webhook_env_{task_type}", "webhook_env")
        return (env or PRODUCTION_ENVIRONMENT).strip().lower()

    async def resolve(self, task_type: str) -> WebhookTarget | None:
        is_test = await self.environment(task_type) == TEST_ENVIRONMENT

        if is_test:
            url = await self._first(
                f"{task_type}_webhook_url_test", "webhook_url_test",
            )
        else:
            url = await self._first(f"{task_type}_webhook_url", "webhook_url")
            url = url or self._settings.N8N_WEBHOOK_URL or None

        if not url:
            return None
        return WebhookTarget(url=url, is_test=is_test)
