"""Notification repository. Append-only inserts."""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from anivise.db.tables import NotificationRow, UserRow
from anivise.models.common import new_uuid7

SUPERADMIN_ROLE = "superadmin"


class NotificationRepository:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, *, recipient_id: UUID, type: str, title: str,
                     body: str | None, link: str | None,
                     metadata: dict[str, Any] | None,
                     now: datetime) -> NotificationRow:
        row = NotificationRow(
            id=new_uuid7(), recipient_id=recipient_id, type=type,
            title=title, body=body, link=link, is_read=False,
            metadata_json=metadata, created_at=now,
        )
        self._session.add(row)
        await self._session.flush()
        return row

    async def create_for_superadmins(self, *, type: str, title: str,
                                     body: str | None, link: str | None,
                                     metadata: dict[str, Any] | None,
                                     now: datetime) -> int:
        """Broadcast one row per superadmin. Returns the number inserted."""
        result = await self._session.execute(
            select(UserRow.id).where(UserRow.platform_role == SUPERADMIN_ROLE)
        )
        recipients = list(result.scalars().all())
        self._session.add_all([
            NotificationRow(
                id=new_uuid7(), recipient_id=recipient_id, type=type,
                title=title, body=body, link=link, is_read=False,
                metadata_json=metadata, created_at=now,
            )
            for recipient_id in recipients
        ])
        await self._session.flush()
        return len(recipients)
