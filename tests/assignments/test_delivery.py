"""Tests for assignment mail composition and the Resend mailer.

httpx is mocked; no real mail is sent.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from anivise.assignments.delivery import (
    RESEND_API_URL,
    AssignmentEmail,
    ResendMailer,
    build_fill_link,
)
from anivise.config.settings import Settings


class FakeSecrets:
    def __init__(self, values: dict[tuple[str, str], str]) -> None:
        self.values = values

    async def get_cached(self, service: str, key: str) -> str | None:
        return self.values.get((service, key))


def _message(**overrides) -> AssignmentEmail:
    values = {
        "to": "erika@example.com",
        "employee_name": "Erika Mustermann",
        "form_title": "Selbsteinschätzung",
        "organization_name": "Muster GmbH",
        "fill_link": "https://app.anivise.test/de/form-fill/abc",
    }
    values.update(overrides)
    return AssignmentEmail(**values)


def _mock_client(response: httpx.Response | None = None, exc: Exception | None = None):
    mock_client = AsyncMock()
    if exc is not None:
        mock_client.post.side_effect = exc
    else:
        mock_client.post.return_value = response
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    return mock_client


# ===================================================================
# Message composition
# ===================================================================


class TestAssignmentEmail:
    def test_subject(self) -> None:
        assert _message().subject == 'Bitte füllen Sie "Selbsteinschätzung" aus'

    def test_reminder_subject(self) -> None:
        assert _message(reminder=True).subject.startswith("Erinnerung: ")

    def test_body_contains_link_and_greeting(self) -> None:
        body = _message().body()
        assert body.startswith("Hallo Erika Mustermann,")
        assert "Muster GmbH" in body
        assert "https://app.anivise.test/de/form-fill/abc" in body
        assert "Bitte bis zum" not in body

    def test_body_due_date(self) -> None:
        body = _message(due_date=datetime(2026, 5, 7, tzinfo=timezone.utc)).body()
        assert "Bitte bis zum 07.05.2026." in body

    def test_fill_link(self) -> None:
        settings = Settings(APP_URL="https://app.anivise.test/", FORM_FILL_LOCALE="de")
        assert build_fill_link(settings, "tok123") == (
            "https://app.anivise.test/de/form-fill/tok123"
        )


# ===================================================================
# Resend mailer
# ===================================================================


class TestResendMailer:
    """Success only on a 2xx from Resend; failures return False."""

    @pytest.mark.anyio
    async def test_send_success(self) -> None:
        mock_client = _mock_client(httpx.Response(200, json={"id": "msg_1"}))
        mailer = ResendMailer(
            FakeSecrets({
                ("resend", "api_key"): "re_live_key",
                ("resend", "from_email"): "HR <hr@muster.de>",
            }),
            Settings(RESEND_API_KEY=""),
        )
        with patch(
            "anivise.assignments.delivery.httpx.AsyncClient", return_value=mock_client,
        ):
            assert await mailer.send(_message()) is True

        args, kwargs = mock_client.post.call_args
        assert args[0] == RESEND_API_URL
        assert kwargs["headers"]["Authorization"] == "Bearer re_live_key"
        assert kwargs["json"]["from"] == "HR <hr@muster.de>"
        assert kwargs["json"]["to"] == ["erika@example.com"]
        assert "form-fill/abc" in kwargs["json"]["text"]

    @pytest.mark.anyio
    async def test_settings_fallbacks(self) -> None:
        mock_client = _mock_client(httpx.Response(200))
        mailer = ResendMailer(
            FakeSecrets({}),
            Settings(RESEND_API_KEY="re_env", MAIL_FROM="Anivise <noreply@anivise.com>"),
        )
        with patch(
            "anivise.assignments.delivery.httpx.AsyncClient", return_value=mock_client,
        ):
            assert await mailer.send(_message()) is True
        kwargs = mock_client.post.call_args.kwargs
        assert kwargs["headers"]["Authorization"] == "Bearer re_env"
        assert kwargs["json"]["from"] == "Anivise <noreply@anivise.com>"

    @pytest.mark.anyio
    async def test_no_api_key(self) -> None:
        mailer = ResendMailer(FakeSecrets({}), Settings(RESEND_API_KEY=""))
        with patch("anivise.assignments.delivery.httpx.AsyncClient") as client_cls:
            assert await mailer.send(_message()) is False
        client_cls.assert_not_called()

    @pytest.mark.anyio
    async def test_rejected(self) -> None:
        mock_client = _mock_client(httpx.Response(422))
        mailer = ResendMailer(
            FakeSecrets({("resend", "api_key"): "re_key"}), Settings(RESEND_API_KEY=""),
        )
        with patch(
            "anivise.assignments.delivery.httpx.AsyncClient", return_value=mock_client,
        ):
            assert await mailer.send(_message()) is False

    @pytest.mark.anyio
    async def test_network_error(self) -> None:
        mock_client = _mock_client(exc=httpx.ReadTimeout("timed out"))
        mailer = ResendMailer(
            FakeSecrets({("resend", "api_key"): "re_key"}), Settings(RESEND_API_KEY=""),
        )
        with patch(
            "anivise.assignments.delivery.httpx.AsyncClient", return_value=mock_client,
        ):
            assert await mailer.send(_message()) is False

    @pytest.mark.anyio
    async def test_non_ascii_api_key(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200)

        real_client = httpx.AsyncClient
        mailer = ResendMailer(
            FakeSecrets({("resend", "api_key"): "re_schlüssel"}), Settings(RESEND_API_KEY=""),
        )
        with patch(
            "anivise.assignments.delivery.httpx.AsyncClient",
            side_effect=lambda **kw: real_client(transport=httpx.MockTransport(handler), **kw),
        ):
            assert await mailer.send(_message()) is False
        assert seen == []
