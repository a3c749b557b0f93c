"""Secrets vault: encrypted (service, key) credential store.

Absence is a soft signal: every read returns None when a secret is not
stored, cannot be looked up, or fails to decrypt. Callers treat None as
"feature not configured", never as a hard error.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from anivise.config.settings import Settings
from anivise.repositories.secrets import IntegrationSecretRepository
from anivise.vault.cache import SecretCache
from anivise.vault.crypto import SecretCipher, SecretDecryptionError, mask_secret

logger = logging.getLogger(__name__)

DECRYPTION_ERROR_MARKER = "(decryption error)"

# service -> (secret key, Settings field, sensitive)
SETTINGS_IMPORTS: dict[str, list[tuple[str, str, bool]]] = {
    "resend": [
        ("api_key", "RESEND_API_KEY", True),
        ("from_email", "MAIL_FROM", False),
    ],
    "n8n": [
        ("webhook_url", "N8N_WEBHOOK_URL", False),
        ("auth_header_value", "N8N_WEBHOOK_SECRET", True),
    ],
}


@dataclass
class SecretMetadata:
    """Display view of a stored secret (never the raw sensitive value)."""

    key: str
    is_sensitive: bool
    masked_value: str
    updated_at: datetime


class SecretsVault:
    """Encrypt-on-write, decrypt-on-read access to integration secrets."""

    def __init__(
        self,
        repo: IntegrationSecretRepository,
        cipher: SecretCipher,
        cache: SecretCache,
    ) -> None:
        self._repo = repo
        self._cipher = cipher
        self._cache = cache

    async def put(
        self,
        service: str,
        key: str,
        plaintext: str,
        *,
        sensitive: bool = True,
        actor_id: UUID | None = None,
    ) -> None:
        """Encrypt and upsert a secret, then drop its cache entry."""
        sealed = self._cipher.encrypt(plaintext)
        await self._repo.upsert(
            service=service, key=key,
            encrypted_value=sealed.encrypted_value, iv=sealed.iv,
            is_sensitive=sensitive, updated_by=actor_id,
        )
        self._cache.invalidate(service, key)
        logger.info("Stored integration secret %s/%s", service, key)

    async def get(self, service: str, key: str) -> str | None:
        try:
            row = await self._repo.get(service, key)
        except SQLAlchemyError:
            logger.exception("Secret lookup failed for %s/%s", service, key)
            return None
        if row is None:
            return None
        try:
            return self._cipher.decrypt(row.encrypted_value, row.iv)
        except SecretDecryptionError as exc:
            logger.error("Secret %s/%s could not be decrypted: %s", service, key, exc)
            return None

    async def get_cached(self, service: str, key: str) -> str | None:
        return await self._cache.get_or_load(service, key, self.get)

    def invalidate(self, service: str, key: str | None = None) -> None:
        self._cache.invalidate(service, key)

    async def get_all_for_service(self, service: str) -> dict[str, str]:
        """Decrypt every secret of a service, skipping corrupt rows."""
        result: dict[str, str] = {}
        for row in await self._repo.list_by_service(service):
            try:
                result[row.key] = self._cipher.decrypt(row.encrypted_value, row.iv)
            except SecretDecryptionError:
                logger.error("Skipping undecryptable secret %s/%s", service, row.key)
        return result

    async def get_masked(self, service: str, key: str) -> str | None:
        value = await self.get(service, key)
        if not value:
            return None
        return mask_secret(value)

    async def list_metadata(self, service: str) -> list[SecretMetadata]:
        items: list[SecretMetadata] = []
        for row in await self._repo.list_by_service(service):
            try:
                value = self._cipher.decrypt(row.encrypted_value, row.iv)
                masked = mask_secret(value) if row.is_sensitive else value
            except SecretDecryptionError:
                masked = DECRYPTION_ERROR_MARKER
            items.append(SecretMetadata(
                key=row.key,
                is_sensitive=row.is_sensitive,
                masked_value=masked,
                updated_at=row.updated_at,
            ))
        return items

    async def rotate_signing_secret(self, actor_id: UUID | None = None) -> str:
        """Replace the n8n signing header value with a fresh random secret.

        The new value is returned once so it can be copied into the workflow.
        """
        new_secret = secrets.token_hex(32)
        await self.put("n8n", "auth_header_value", new_secret,
                       sensitive=True, actor_id=actor_id)
        self.invalidate("n8n")
        logger.info("Rotated n8n signing secret")
        return new_secret

    async def load_from_settings(self, service: str, settings: Settings,
                                 actor_id: UUID | None = None) -> int | None:
        """Copy a service's settings fallbacks into the vault.

        Empty settings are skipped. Returns the number stored, or None for
        a service without a settings mapping.
        """
        mappings = SETTINGS_IMPORTS.get(service)
        if mappings is None:
            return None
        count = 0
        for key, field_name, sensitive in mappings:
            value = getattr(settings, field_name)
            if not value:
                continue
            await self.put(service, key, value, sensitive=sensitive, actor_id=actor_id)
            count += 1
        self.invalidate(service)
        logger.info("Imported %d %s secret(s) from settings", count, service)
        return count
