"""In-app notifications for dossier job outcomes.

The requester hears about every outcome. Superadmins additionally get a
broadcast for failures of production jobs; test-mode jobs carry a
"[TEST]" title prefix and never reach superadmins.
"""

from datetime import datetime
from enum import StrEnum

from anivise.db.tables import DossierJobRow
from anivise.repositories.notifications import NotificationRepository

TEST_PREFIX = "[TEST] "


class NotificationType(StrEnum):
    SYSTEM_INFO = "system.info"
    ANALYSIS_COMPLETED = "analysis.completed"
    ANALYSIS_FAILED = "analysis.failed"


def _short(value) -> str:
    return f"{str(value)[:8]}..."


def _analysis_link(job: DossierJobRow) -> str:
    return f"/analyses/{job.analysis_id}"


class DossierNotifier:
    def __init__(self, notifications: NotificationRepository) -> None:
        self._notifications = notifications

    def _title(self, job: DossierJobRow, title: str) -> str:
        return TEST_PREFIX + title if job.is_test else title

    async def dispatched(self, job: DossierJobRow, now: datetime) -> None:
        await self._notifications.create(
            recipient_id=job.requested_by,
            type=NotificationType.SYSTEM_INFO,
            title=self._title(job, "Dossier wird generiert"),
            body=(
                "Die KI-Analyse wurde gestartet. Sie werden benachrichtigt, "
                "sobald das Ergebnis vorliegt."
            ),
            link=_analysis_link(job),
            metadata={"dossierId": str(job.id)},
            now=now,
        )

    async def completed(self, job: DossierJobRow, now: datetime) -> None:
        await self._notifications.create(
            recipient_id=job.requested_by,
            type=NotificationType.ANALYSIS_COMPLETED,
            title=self._title(job, "Dossier erstellt"),
            body=f"Das Dossier für Analyse {_short(job.analysis_id)} wurde erfolgreich erstellt.",
            link=_analysis_link(job),
            metadata={"dossierId": str(job.id)},
            now=now,
        )

    async def failed(self, job: DossierJobRow, error_message: str | None,
                     now: datetime) -> None:
        await self._notifications.create(
            recipient_id=job.requested_by,
            type=NotificationType.ANALYSIS_FAILED,
            title=self._title(job, "Dossier fehlgeschlagen"),
            body=error_message or f"Dossier {_short(job.id)} ist fehlgeschlagen.",
            link=_analysis_link(job),
            metadata={"dossierId": str(job.id)},
            now=now,
        )
        if job.is_test:
            return
        await self._notifications.create_for_superadmins(
            type=NotificationType.ANALYSIS_FAILED,
            title="Dossier-Generierung fehlgeschlagen",
            body=(
                f"Dossier {_short(job.id)} in Org {_short(job.organization_id)} "
                f"fehlgeschlagen: {error_message or 'Unbekannter Fehler'}"
            ),
            link=None,
            metadata={"dossierId": str(job.id), "organizationId": str(job.organization_id)},
            now=now,
        )
