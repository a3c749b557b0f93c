"""Form assignment e-mail delivery through the Resend HTTP API.

Plain-text only. Delivery reports success as a bool; a failure never
raises into the assignment flow.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

import httpx

from anivise.config.settings import Settings
from anivise.dispatch.resolver import CachedSecretSource

logger = logging.getLogger(__name__)

RESEND_SERVICE = "resend"
RESEND_API_URL = "https://api.resend.com/emails"
_TIMEOUT_S = 10.0


@dataclass(frozen=True)
class AssignmentEmail:
    to: str
    employee_name: str
    form_title: str
    organization_name: str
    fill_link: str
    due_date: datetime | None = None
    reminder: bool = False

    @property
    def subject(self) -> str:
        prefix = "Erinnerung: " if self.reminder else ""
        return f"{prefix}Bitte füllen Sie \"{self.form_title}\" aus"

    def body(self) -> str:
        lines = [
            f"Hallo {self.employee_name},",
            "",
            f"{self.organization_name} bittet Sie, den Fragebogen "
            f"\"{self.form_title}\" auszufüllen.",
        ]
        if self.due_date is not None:
            lines.append(f"Bitte bis zum {self.due_date:%d.%m.%Y}.")
        lines += ["", f"Zum Formular: {self.fill_link}", ""]
        return "\n".join(lines)


class AssignmentMailer(Protocol):
    async def send(self, message: AssignmentEmail) -> bool:
        ...


def build_fill_link(settings: Settings, token: str) -> str:
    return f"{settings.APP_URL.rstrip('/')}/{settings.FORM_FILL_LOCALE}/form-fill/{token}"


class ResendMailer:
    """Send assignment mails with the Resend API key from the vault."""

    def __init__(self, secrets: CachedSecretSource, settings: Settings) -> None:
        self._secrets = secrets
        self._settings = settings

    async def send(self, message: AssignmentEmail) -> bool:
        api_key = (
            await self._secrets.get_cached(RESEND_SERVICE, "api_key")
            or self._settings.RESEND_API_KEY
        )
        if not api_key:
            logger.warning("Resend API key not configured; assignment mail not sent")
            return False

        from_address = (
            await self._secrets.get_cached(RESEND_SERVICE, "from_email")
            or self._settings.MAIL_FROM
        )
        body = {
            "from": from_address,
            "to": [message.to],
            "subject": message.subject,
            "text": message.body(),
        }
        try:
            async with httpx.AsyncClient(timeout=_TIMEOUT_S) as client:
                resp = await client.post(
                    RESEND_API_URL,
                    json=body,
                    headers={"Authorization": f"Bearer {api_key}"},
                )
        except (httpx.HTTPError, httpx.InvalidURL, UnicodeEncodeError) as exc:
            logger.warning("Assignment mail to recipient failed: %s", exc)
            return False

        if not resp.is_success:
            logger.warning("Resend rejected assignment mail with status %d", resp.status_code)
            return False
        return True
