"""Tests for the staff assignment endpoints and public form-fill endpoints.

Resend is mocked at httpx.AsyncClient; the API key is stored through the
vault fixture.
"""

from datetime import timedelta
from unittest.mock import AsyncMock, patch
from uuid import UUID

import httpx
import pytest

from anivise.db.tables import FormAssignmentRow
from anivise.models.common import new_uuid7, utc_now


def _mock_client(status_code: int = 200):
    mock_client = AsyncMock()
    mock_client.post.return_value = httpx.Response(status_code, json={"id": "msg"})
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    return mock_client


@pytest.fixture
async def resend_configured(vault):
    await vault.put("resend", "api_key", "re_test_key")
    await vault.put("resend", "from_email", "HR <hr@muster.de>", sensitive=False)


def _base(seed) -> str:
    return f"/v1/organizations/{seed.organization_id}"


async def _assign(client, seed, mock_client=None, **extra):
    body = {"form_id": str(seed.form_id), "assigned_by": str(seed.user_id), **extra}
    with patch(
        "anivise.assignments.delivery.httpx.AsyncClient",
        return_value=mock_client or _mock_client(),
    ):
        return await client.post(
            f"{_base(seed)}/analyses/{seed.analysis_id}/assignments", json=body,
        )


async def _token(db_session, assignment_id: str) -> str:
    row = await db_session.get(FormAssignmentRow, UUID(assignment_id))
    return row.token


# ===================================================================
# Staff endpoints
# ===================================================================


class TestCreateAssignmentAPI:
    """POST .../assignments."""

    @pytest.mark.anyio
    async def test_create_sends_mail(self, client, seed, resend_configured) -> None:
        mock_client = _mock_client(200)
        resp = await _assign(client, seed, mock_client)
        assert resp.status_code == 201
        assert resp.json()["status"] == "sent"

        kwargs = mock_client.post.call_args.kwargs
        assert kwargs["json"]["to"] == ["erika@example.com"]
        assert "/de/form-fill/" in kwargs["json"]["text"]

    @pytest.mark.anyio
    async def test_create_without_mail_config_is_pending(self, client, seed) -> None:
        resp = await _assign(client, seed)
        assert resp.status_code == 201
        assert resp.json()["status"] == "pending"

    @pytest.mark.anyio
    async def test_duplicate_conflicts(self, client, seed, resend_configured) -> None:
        await _assign(client, seed)
        resp = await _assign(client, seed)
        assert resp.status_code == 409
        assert resp.json()["detail"]["error"] == "already_assigned"

    @pytest.mark.anyio
    async def test_unknown_form(self, client, seed) -> None:
        resp = await client.post(
            f"{_base(seed)}/analyses/{seed.analysis_id}/assignments",
            json={"form_id": str(new_uuid7()), "assigned_by": str(seed.user_id)},
        )
        assert resp.status_code == 404
        assert resp.json()["detail"]["error"] == "form_not_found"

    @pytest.mark.anyio
    async def test_other_tenant_analysis(self, client, seed) -> None:
        resp = await client.post(
            f"/v1/organizations/{seed.other_organization_id}"
            f"/analyses/{seed.analysis_id}/assignments",
            json={"form_id": str(seed.form_id), "assigned_by": str(seed.user_id)},
        )
        assert resp.status_code == 404
        assert resp.json()["detail"]["error"] == "analysis_not_found"


class TestManageAssignmentsAPI:
    """List, remind, remove, available forms."""

    @pytest.mark.anyio
    async def test_list(self, client, seed, resend_configured) -> None:
        created = await _assign(client, seed)
        resp = await client.get(f"{_base(seed)}/analyses/{seed.analysis_id}/assignments")
        assert resp.status_code == 200
        items = resp.json()
        assert len(items) == 1
        assert items[0]["assignment_id"] == created.json()["assignment_id"]
        assert items[0]["form_title"] == "Selbsteinschätzung"
        assert items[0]["employee_name"] == "Erika Mustermann"
        assert items[0]["expired"] is False
        assert "token" not in items[0]

    @pytest.mark.anyio
    async def test_remind(self, client, seed, resend_configured) -> None:
        created = await _assign(client, seed)
        assignment_id = created.json()["assignment_id"]
        mock_client = _mock_client(200)
        with patch(
            "anivise.assignments.delivery.httpx.AsyncClient", return_value=mock_client,
        ):
            resp = await client.post(f"{_base(seed)}/assignments/{assignment_id}/remind")
        assert resp.status_code == 200
        assert resp.json() == {"success": True, "status": "sent"}
        assert mock_client.post.call_args.kwargs["json"]["subject"].startswith("Erinnerung: ")

        listing = await client.get(f"{_base(seed)}/analyses/{seed.analysis_id}/assignments")
        assert listing.json()[0]["reminder_count"] == 1

    @pytest.mark.anyio
    async def test_remind_delivery_failure(self, client, seed, resend_configured) -> None:
        created = await _assign(client, seed)
        with patch(
            "anivise.assignments.delivery.httpx.AsyncClient", return_value=_mock_client(500),
        ):
            resp = await client.post(
                f"{_base(seed)}/assignments/{created.json()['assignment_id']}/remind",
            )
        assert resp.status_code == 502
        assert resp.json()["detail"]["error"] == "delivery_failed"

    @pytest.mark.anyio
    async def test_remind_unknown(self, client, seed) -> None:
        resp = await client.post(f"{_base(seed)}/assignments/{new_uuid7()}/remind")
        assert resp.status_code == 404

    @pytest.mark.anyio
    async def test_remove(self, client, seed, resend_configured) -> None:
        created = await _assign(client, seed)
        resp = await client.delete(
            f"{_base(seed)}/assignments/{created.json()['assignment_id']}",
        )
        assert resp.status_code == 204
        listing = await client.get(f"{_base(seed)}/analyses/{seed.analysis_id}/assignments")
        assert listing.json() == []

    @pytest.mark.anyio
    async def test_remove_completed_conflicts(
        self, client, db_session, seed, resend_configured,
    ) -> None:
        created = await _assign(client, seed)
        assignment_id = created.json()["assignment_id"]
        token = await _token(db_session, assignment_id)
        await client.post(f"/v1/form-fill/{token}", json={"data": {"q1": "Ja"}})

        resp = await client.delete(f"{_base(seed)}/assignments/{assignment_id}")
        assert resp.status_code == 409
        assert resp.json()["detail"]["error"] == "cannot_remove_completed"

    @pytest.mark.anyio
    async def test_available_forms(self, client, seed, resend_configured) -> None:
        url = f"{_base(seed)}/analyses/{seed.analysis_id}/available-forms"
        before = await client.get(url)
        assert [f["form_id"] for f in before.json()] == [str(seed.form_id)]

        await _assign(client, seed)
        after = await client.get(url)
        assert after.json() == []


# ===================================================================
# Public form-fill endpoints
# ===================================================================


class TestFormFillAPI:
    """GET/POST /v1/form-fill/{token}."""

    @pytest.mark.anyio
    async def test_unknown_token(self, client) -> None:
        resp = await client.get(f"/v1/form-fill/{'0' * 64}")
        assert resp.status_code == 404
        assert resp.json()["detail"]["error"] == "invalid"

    @pytest.mark.anyio
    async def test_open_then_submit(self, client, db_session, seed, resend_configured) -> None:
        created = await _assign(client, seed)
        token = await _token(db_session, created.json()["assignment_id"])

        opened = await client.get(f"/v1/form-fill/{token}")
        assert opened.status_code == 200
        data = opened.json()
        assert data["status"] == "opened"
        assert data["organization_name"] == "Muster GmbH"
        assert data["form_schema"] == {"steps": [{"fields": [{"id": "q1", "type": "text"}]}]}
        assert data["completion"]["completion_type"] == "thank_you"

        submitted = await client.post(
            f"/v1/form-fill/{token}",
            json={"data": {"q1": "Ja"}, "metadata": {"userAgent": "pytest"}},
        )
        assert submitted.status_code == 201
        assert submitted.json()["success"] is True
        assert submitted.json()["submission_id"]

        again = await client.post(f"/v1/form-fill/{token}", json={"data": {"q1": "Nein"}})
        assert again.status_code == 409
        assert again.json()["detail"]["error"] == "already_completed"

        reopened = await client.get(f"/v1/form-fill/{token}")
        assert reopened.status_code == 409

    @pytest.mark.anyio
    async def test_expired_token(self, client, db_session, seed) -> None:
        created = await _assign(client, seed)
        assignment_id = created.json()["assignment_id"]
        token = await _token(db_session, assignment_id)

        row = await db_session.get(FormAssignmentRow, UUID(assignment_id))
        row.token_expires_at = utc_now() - timedelta(minutes=1)
        await db_session.flush()

        resp = await client.get(f"/v1/form-fill/{token}")
        assert resp.status_code == 410
        assert resp.json()["detail"]["error"] == "expired"

        submit = await client.post(f"/v1/form-fill/{token}", json={"data": {}})
        assert submit.status_code == 410
        assert row.status == "pending"
