"""Integration secret repository.

Stores ciphertext only; encryption happens in the vault service.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from anivise.db.tables import IntegrationSecretRow
from anivise.models.common import new_uuid7, utc_now


class IntegrationSecretRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, service: str, key: str) -> IntegrationSecretRow | None:
        result = await self._session.execute(
            select(IntegrationSecretRow).where(
                IntegrationSecretRow.service == service,
                IntegrationSecretRow.key == key,
            )
        )
        return result.scalar_one_or_none()

    async def list_by_service(self, service: str) -> list[IntegrationSecretRow]:
        result = await self._session.execute(
            select(IntegrationSecretRow)
            .where(IntegrationSecretRow.service == service)
            .order_by(IntegrationSecretRow.key)
        )
        return list(result.scalars().all())

    async def upsert(self, *, service: str, key: str, encrypted_value: str,
                     iv: str, is_sensitive: bool,
                     updated_by: UUID | None) -> IntegrationSecretRow:
        now = utc_now()
        row = await self.get(service, key)
        if row is None:
            row = IntegrationSecretRow(
                id=new_uuid7(), service=service, key=key,
                encrypted_value=encrypted_value, iv=iv,
                is_sensitive=is_sensitive, updated_by=updated_by,
                created_at=now, updated_at=now,
            )
            self._session.add(row)
        else:
            row.encrypted_value = encrypted_value
            row.iv = iv
            row.is_sensitive = is_sensitive
            row.updated_by = updated_by
            row.updated_at = now
        await self._session.flush()
        return row
