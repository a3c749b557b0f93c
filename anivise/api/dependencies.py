"""FastAPI dependency injection factories for repositories and services.

Each repository factory takes AsyncSession via Depends(get_async_session).
Services are assembled per request from those repositories, the shared
SecretCache on app.state, and the process-wide SecretCipher.
"""

from datetime import timedelta
from functools import partial

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from anivise.assignments.delivery import ResendMailer, build_fill_link
from anivise.assignments.service import FormAssignmentService
from anivise.config.settings import Settings, get_settings
from anivise.db.session import get_async_session
from anivise.dispatch.dispatcher import JobDispatcher
from anivise.dispatch.payload import DossierPayloadBuilder
from anivise.dispatch.resolver import WebhookTargetResolver
from anivise.jobs.notifications import DossierNotifier
from anivise.jobs.service import DossierJobService
from anivise.observability.health import IntegrationHealthChecker
from anivise.repositories.analyses import AnalysisRepository
from anivise.repositories.assignments import FormAssignmentRepository
from anivise.repositories.dossiers import DossierJobRepository
from anivise.repositories.forms import FormRepository
from anivise.repositories.notifications import NotificationRepository
from anivise.repositories.secrets import IntegrationSecretRepository
from anivise.vault.cache import SecretCache
from anivise.vault.crypto import SecretCipher
from anivise.vault.store import SecretsVault

# ---------------------------------------------------------------------------
# Secrets vault
# ---------------------------------------------------------------------------


def get_secret_cache(request: Request) -> SecretCache:
    return request.app.state.secret_cache


def get_secret_cipher(settings: Settings = Depends(get_settings)) -> SecretCipher:
    return SecretCipher.from_settings(settings)


async def get_secret_repo(
    session: AsyncSession = Depends(get_async_session),
) -> IntegrationSecretRepository:
    return IntegrationSecretRepository(session)


async def get_secrets_vault(
    repo: IntegrationSecretRepository = Depends(get_secret_repo),
    cipher: SecretCipher = Depends(get_secret_cipher),
    cache: SecretCache = Depends(get_secret_cache),
) -> SecretsVault:
    return SecretsVault(repo, cipher, cache)


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


async def get_analysis_repo(
    session: AsyncSession = Depends(get_async_session),
) -> AnalysisRepository:
    return AnalysisRepository(session)


async def get_dossier_job_repo(
    session: AsyncSession = Depends(get_async_session),
) -> DossierJobRepository:
    return DossierJobRepository(session)


async def get_form_repo(
    session: AsyncSession = Depends(get_async_session),
) -> FormRepository:
    return FormRepository(session)


async def get_assignment_repo(
    session: AsyncSession = Depends(get_async_session),
) -> FormAssignmentRepository:
    return FormAssignmentRepository(session)


# ---------------------------------------------------------------------------
# Dispatch / dossier jobs
# ---------------------------------------------------------------------------


async def get_webhook_resolver(
    vault: SecretsVault = Depends(get_secrets_vault),
    settings: Settings = Depends(get_settings),
) -> WebhookTargetResolver:
    return WebhookTargetResolver(vault, settings)


async def get_job_dispatcher(
    vault: SecretsVault = Depends(get_secrets_vault),
    resolver: WebhookTargetResolver = Depends(get_webhook_resolver),
    analyses: AnalysisRepository = Depends(get_analysis_repo),
    settings: Settings = Depends(get_settings),
) -> JobDispatcher:
    return JobDispatcher(
        secrets=vault,
        resolver=resolver,
        builder=DossierPayloadBuilder(analyses),
        settings=settings,
    )


async def get_dossier_service(
    jobs: DossierJobRepository = Depends(get_dossier_job_repo),
    analyses: AnalysisRepository = Depends(get_analysis_repo),
    resolver: WebhookTargetResolver = Depends(get_webhook_resolver),
    dispatcher: JobDispatcher = Depends(get_job_dispatcher),
    settings: Settings = Depends(get_settings),
    session: AsyncSession = Depends(get_async_session),
) -> DossierJobService:
    return DossierJobService(
        jobs=jobs,
        analyses=analyses,
        resolver=resolver,
        dispatcher=dispatcher,
        notifier=DossierNotifier(NotificationRepository(session)),
        commit=session.commit,
        stale_after=timedelta(minutes=settings.STALE_JOB_AFTER_MINUTES),
    )


# ---------------------------------------------------------------------------
# Form assignments
# ---------------------------------------------------------------------------


async def get_assignment_service(
    assignments: FormAssignmentRepository = Depends(get_assignment_repo),
    forms: FormRepository = Depends(get_form_repo),
    analyses: AnalysisRepository = Depends(get_analysis_repo),
    vault: SecretsVault = Depends(get_secrets_vault),
    settings: Settings = Depends(get_settings),
) -> FormAssignmentService:
    return FormAssignmentService(
        assignments=assignments,
        forms=forms,
        analyses=analyses,
        mailer=ResendMailer(vault, settings),
        link_builder=partial(build_fill_link, settings),
        token_ttl=timedelta(days=settings.ASSIGNMENT_TOKEN_TTL_DAYS),
    )


# ---------------------------------------------------------------------------
# Observability
# ---------------------------------------------------------------------------


async def get_integration_health_checker(
    vault: SecretsVault = Depends(get_secrets_vault),
    settings: Settings = Depends(get_settings),
) -> IntegrationHealthChecker:
    return IntegrationHealthChecker(vault, settings)
