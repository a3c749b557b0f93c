"""Tests for SecretsVault against the SQLite test database.

Covers: encrypt-on-write, soft absence, corrupt rows, cache
invalidation on write, masked metadata, signing-secret rotation and
import of settings fallbacks.
"""

from uuid import uuid4

import pytest

from anivise.config.settings import Settings
from anivise.db.tables import IntegrationSecretRow
from anivise.models.common import utc_now
from anivise.repositories.secrets import IntegrationSecretRepository
from anivise.vault.store import DECRYPTION_ERROR_MARKER, SecretsVault


# ===================================================================
# Read / write
# ===================================================================


class TestPutGet:
    """put stores ciphertext only; get decrypts."""

    @pytest.mark.anyio
    async def test_put_then_get(self, vault: SecretsVault) -> None:
        await vault.put("n8n", "webhook_url", "https://n8n.example.com/webhook/x")
        assert await vault.get("n8n", "webhook_url") == "https://n8n.example.com/webhook/x"

    @pytest.mark.anyio
    async def test_plaintext_never_stored(self, vault: SecretsVault, db_session) -> None:
        await vault.put("resend", "api_key", "re_plaintext_value")
        row = await IntegrationSecretRepository(db_session).get("resend", "api_key")
        assert row is not None
        assert "re_plaintext_value" not in row.encrypted_value
        assert "." in row.encrypted_value

    @pytest.mark.anyio
    async def test_put_overwrites(self, vault: SecretsVault, db_session) -> None:
        actor = uuid4()
        await vault.put("n8n", "api_key", "first")
        await vault.put("n8n", "api_key", "second", actor_id=actor)
        assert await vault.get("n8n", "api_key") == "second"
        rows = await IntegrationSecretRepository(db_session).list_by_service("n8n")
        assert len(rows) == 1
        assert rows[0].updated_by == actor

    @pytest.mark.anyio
    async def test_missing_is_none(self, vault: SecretsVault) -> None:
        """An unconfigured secret is a soft None, never an exception."""
        assert await vault.get("n8n", "api_key") is None
        assert await vault.get_cached("n8n", "api_key") is None
        assert await vault.get_masked("n8n", "api_key") is None

    @pytest.mark.anyio
    async def test_corrupt_row_is_none(self, vault: SecretsVault, db_session) -> None:
        await vault.put("n8n", "api_key", "valid")
        row = await IntegrationSecretRepository(db_session).get("n8n", "api_key")
        row.encrypted_value = "AAAA.AAAAAAAAAAAAAAAAAAAAAA=="
        await db_session.flush()
        assert await vault.get("n8n", "api_key") is None


# ===================================================================
# Cache interaction
# ===================================================================


class TestCachedReads:
    """get_cached serves from cache; put invalidates."""

    @pytest.mark.anyio
    async def test_put_invalidates_cache(self, vault: SecretsVault, secret_cache) -> None:
        await vault.put("n8n", "webhook_env", "production")
        assert await vault.get_cached("n8n", "webhook_env") == "production"
        await vault.put("n8n", "webhook_env", "test")
        assert await vault.get_cached("n8n", "webhook_env") == "test"

    @pytest.mark.anyio
    async def test_invalidate_service_reloads(
        self, vault: SecretsVault, secret_cache,
    ) -> None:
        await vault.put("n8n", "webhook_url", "https://a")
        assert await vault.get_cached("n8n", "webhook_url") == "https://a"
        secret_cache.store("n8n", "webhook_url", "https://cached")
        assert await vault.get_cached("n8n", "webhook_url") == "https://cached"
        vault.invalidate("n8n")
        assert await vault.get_cached("n8n", "webhook_url") == "https://a"


# ===================================================================
# Bulk and display reads
# ===================================================================


class TestServiceViews:
    """get_all_for_service and list_metadata."""

    @pytest.mark.anyio
    async def test_get_all_skips_corrupt(self, vault: SecretsVault, db_session) -> None:
        await vault.put("resend", "api_key", "re_1234567890")
        await vault.put("resend", "from_email", "hr@example.com", sensitive=False)
        db_session.add(IntegrationSecretRow(
            id=uuid4(), service="resend", key="broken",
            encrypted_value="garbage", iv="garbage",
            is_sensitive=True, created_at=utc_now(), updated_at=utc_now(),
        ))
        await db_session.flush()

        values = await vault.get_all_for_service("resend")
        assert values == {"api_key": "re_1234567890", "from_email": "hr@example.com"}

    @pytest.mark.anyio
    async def test_list_metadata_masks_sensitive(self, vault: SecretsVault, db_session) -> None:
        await vault.put("resend", "api_key", "re_1234567890")
        await vault.put("resend", "from_email", "hr@example.com", sensitive=False)
        db_session.add(IntegrationSecretRow(
            id=uuid4(), service="resend", key="zz_broken",
            encrypted_value="garbage", iv="garbage",
            is_sensitive=True, created_at=utc_now(), updated_at=utc_now(),
        ))
        await db_session.flush()

        items = {m.key: m for m in await vault.list_metadata("resend")}
        assert items["api_key"].masked_value == "••••••••••••7890"
        assert items["from_email"].masked_value == "hr@example.com"
        assert items["zz_broken"].masked_value == DECRYPTION_ERROR_MARKER

    @pytest.mark.anyio
    async def test_get_masked(self, vault: SecretsVault) -> None:
        await vault.put("n8n", "api_key", "n8n_key_abcd")
        assert await vault.get_masked("n8n", "api_key") == "••••••••••••abcd"



# ===================================================================
# Rotation and settings import
# ===================================================================


class TestRotateSigningSecret:
    """rotate_signing_secret replaces the n8n signing header value."""

    @pytest.mark.anyio
    async def test_new_secret_stored_encrypted(self, vault: SecretsVault, db_session) -> None:
        actor = uuid4()
        await vault.put("n8n", "auth_header_value", "old-secret")

        new_secret = await vault.rotate_signing_secret(actor_id=actor)

        assert len(new_secret) == 64
        int(new_secret, 16)
        assert new_secret != "old-secret"
        assert await vault.get("n8n", "auth_header_value") == new_secret
        row = await IntegrationSecretRepository(db_session).get("n8n", "auth_header_value")
        assert row.is_sensitive is True
        assert row.updated_by == actor
        assert new_secret not in row.encrypted_value

    @pytest.mark.anyio
    async def test_cached_value_replaced(self, vault: SecretsVault) -> None:
        await vault.put("n8n", "auth_header_value", "old-secret")
        assert await vault.get_cached("n8n", "auth_header_value") == "old-secret"

        new_secret = await vault.rotate_signing_secret()
        assert await vault.get_cached("n8n", "auth_header_value") == new_secret

    @pytest.mark.anyio
    async def test_each_rotation_differs(self, vault: SecretsVault) -> None:
        first = await vault.rotate_signing_secret()
        second = await vault.rotate_signing_secret()
        assert first != second


class TestLoadFromSettings:
    """load_from_settings copies non-empty fallbacks into the vault."""

    @pytest.mark.anyio
    async def test_n8n_fallbacks_imported(self, vault: SecretsVault, db_session) -> None:
        settings = Settings(
            N8N_WEBHOOK_URL="https://n8n.example.com/webhook/dossier",
            N8N_WEBHOOK_SECRET="env-secret",
        )
        count = await vault.load_from_settings("n8n", settings, actor_id=uuid4())

        assert count == 2
        assert await vault.get("n8n", "webhook_url") == "https://n8n.example.com/webhook/dossier"
        assert await vault.get("n8n", "auth_header_value") == "env-secret"
        by_key = {m.key: m for m in await vault.list_metadata("n8n")}
        assert by_key["webhook_url"].is_sensitive is False
        assert by_key["auth_header_value"].is_sensitive is True

    @pytest.mark.anyio
    async def test_empty_values_skipped(self, vault: SecretsVault) -> None:
        await vault.put("resend", "api_key", "re_stored")
        settings = Settings(RESEND_API_KEY="", MAIL_FROM="Anivise <hr@anivise.example>")

        count = await vault.load_from_settings("resend", settings)

        assert count == 1
        assert await vault.get("resend", "api_key") == "re_stored"
        assert await vault.get("resend", "from_email") == "Anivise <hr@anivise.example>"

    @pytest.mark.anyio
    async def test_unknown_service(self, vault: SecretsVault) -> None:
        assert await vault.load_from_settings("supabase", Settings()) is None
