"""Shared pytest fixtures for the orchestration test suite.

Provides:
- db_engine: in-memory SQLite async engine with all tables
- db_session: SAVEPOINT-isolated async session (app commits don't leak)
- cipher / secret_cache / vault: secrets vault wired to the test session
- seed: one tenant with an employee, an analysis and its source data, plus
  a requesting user and a superadmin
- client: AsyncClient with dependency overrides for DB-backed testing
"""

import base64
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID

import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from anivise.db.session import Base, get_async_session
from anivise.db.tables import (
    AnalysisDocumentRow,
    AnalysisRecordingRow,
    AnalysisRow,
    EmployeeRow,
    FormRow,
    FormVersionRow,
    OrganizationRow,
    OrgDepartmentRow,
    OrgLocationRow,
    UserRow,
)
from anivise.models.common import new_uuid7
from anivise.repositories.secrets import IntegrationSecretRepository
from anivise.vault.cache import SecretCache
from anivise.vault.crypto import SecretCipher
from anivise.vault.store import SecretsVault

SEED_TIME = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite async engine with all tables."""
    eng = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
async def db_session(db_engine):
    """Provide a SAVEPOINT-isolated session.

    The outer transaction is never committed; it rolls back at teardown.
    Application code calling session.commit() triggers a SAVEPOINT release,
    which is then restarted so subsequent operations stay in the same
    outer transaction.
    """
    async with db_engine.connect() as conn:
        trans = await conn.begin()
        session = AsyncSession(bind=conn, expire_on_commit=False)

        nested = await conn.begin_nested()

        @event.listens_for(session.sync_session, "after_transaction_end")
        def restart_savepoint(sync_session, transaction):  # noqa: ARG001
            nonlocal nested
            if transaction.nested and not transaction._parent.nested:
                nested = conn.sync_connection.begin_nested()

        yield session

        await session.close()
        await trans.rollback()


# ---------------------------------------------------------------------------
# Secrets vault
# ---------------------------------------------------------------------------


@pytest.fixture
def master_key() -> str:
    return base64.b64encode(AESGCM.generate_key(bit_length=256)).decode("ascii")


@pytest.fixture
def cipher(master_key) -> SecretCipher:
    return SecretCipher(base64.b64decode(master_key))


@pytest.fixture
def secret_cache() -> SecretCache:
    return SecretCache(ttl_seconds=300)


@pytest.fixture
def vault(db_session, cipher, secret_cache) -> SecretsVault:
    return SecretsVault(IntegrationSecretRepository(db_session), cipher, secret_cache)


# ---------------------------------------------------------------------------
# Seed data
# ---------------------------------------------------------------------------


@dataclass
class Seed:
    organization_id: UUID
    other_organization_id: UUID
    employee_id: UUID
    analysis_id: UUID
    form_id: UUID
    form_version_id: UUID
    user_id: UUID
    superadmin_id: UUID


@pytest.fixture
async def seed(db_session) -> Seed:
    """One tenant, one employee with an analysis, transcripts, a document and a form."""
    org_id = new_uuid7()
    other_org_id = new_uuid7()
    dept_id = new_uuid7()
    loc_id = new_uuid7()
    emp_id = new_uuid7()
    analysis_id = new_uuid7()
    form_id = new_uuid7()
    version_id = new_uuid7()
    user_id = new_uuid7()
    superadmin_id = new_uuid7()

    db_session.add_all([
        UserRow(id=user_id, email="hr@muster.example", platform_role=None, created_at=SEED_TIME),
        UserRow(id=superadmin_id, email="ops@anivise.example", platform_role="superadmin",
                created_at=SEED_TIME),
        OrganizationRow(id=org_id, name="Muster GmbH", created_at=SEED_TIME),
        OrganizationRow(id=other_org_id, name="Andere AG", created_at=SEED_TIME),
        OrgDepartmentRow(id=dept_id, organization_id=org_id, name="Vertrieb"),
        OrgLocationRow(id=loc_id, organization_id=org_id, name="Berlin"),
    ])
    await db_session.flush()
    db_session.add(EmployeeRow(
        id=emp_id, organization_id=org_id, first_name="Erika",
        last_name="Mustermann", email="erika@example.com",
        position="Teamleiterin", department_id=dept_id, location_id=loc_id,
        created_at=SEED_TIME,
    ))
    await db_session.flush()
    db_session.add(AnalysisRow(
        id=analysis_id, organization_id=org_id, employee_id=emp_id,
        name="Führungsanalyse 2026", created_at=SEED_TIME,
    ))
    await db_session.flush()
    db_session.add_all([
        AnalysisRecordingRow(
            id=new_uuid7(), analysis_id=analysis_id, filename="interview-1.m4a",
            language="de", final_transcript="Finales Transkript.",
            live_transcript="Live-Notizen.", created_at=SEED_TIME,
        ),
        AnalysisRecordingRow(
            id=new_uuid7(), analysis_id=analysis_id, filename="interview-2.m4a",
            language="de", final_transcript=None, live_transcript="Nur live.",
            created_at=SEED_TIME + timedelta(minutes=1),
        ),
        AnalysisRecordingRow(
            id=new_uuid7(), analysis_id=analysis_id, filename="leer.m4a",
            language="de", final_transcript="   ", live_transcript=None,
            created_at=SEED_TIME + timedelta(minutes=2),
        ),
        AnalysisDocumentRow(
            id=new_uuid7(), analysis_id=analysis_id, name="lebenslauf.pdf",
            extracted_text="Berufserfahrung: 12 Jahre.", created_at=SEED_TIME,
        ),
        AnalysisDocumentRow(
            id=new_uuid7(), analysis_id=analysis_id, name="scan.pdf",
            extracted_text=None, created_at=SEED_TIME,
        ),
        FormRow(
            id=form_id, organization_id=org_id, title="Selbsteinschätzung",
            description="Kurzer Fragebogen", status="published",
            visibility="assigned", current_version=1,
            completion_type="thank_you", created_at=SEED_TIME,
        ),
    ])
    await db_session.flush()
    db_session.add(FormVersionRow(
        id=version_id, form_id=form_id, version_number=1,
        schema_json={"steps": [{"fields": [{"id": "q1", "type": "text"}]}]},
        created_at=SEED_TIME,
    ))
    await db_session.flush()

    return Seed(
        organization_id=org_id,
        other_organization_id=other_org_id,
        employee_id=emp_id,
        analysis_id=analysis_id,
        form_id=form_id,
        form_version_id=version_id,
        user_id=user_id,
        superadmin_id=superadmin_id,
    )


# ---------------------------------------------------------------------------
# HTTP client
# ---------------------------------------------------------------------------


@pytest.fixture
async def client(db_session, cipher, secret_cache):
    """AsyncClient with the DB session and vault key overridden for tests."""
    from anivise.api.dependencies import get_secret_cipher
    from anivise.api.main import app

    async def _override_session():
        yield db_session

    app.dependency_overrides[get_async_session] = _override_session
    app.dependency_overrides[get_secret_cipher] = lambda: cipher
    app.state.secret_cache = secret_cache

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
