"""Token-gated form assignment lifecycle.

Staff create, remind, list and remove assignments inside their tenant.
The anonymous recipient holds only the bearer token and can do exactly
two things with it: open the form and submit it once.
"""

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum
from typing import Any
from uuid import UUID

from anivise.assignments.delivery import AssignmentEmail, AssignmentMailer
from anivise.assignments.state import (
    REMINDABLE_STATUSES,
    AssignmentStatus,
    TokenState,
    evaluate_token,
)
from anivise.db.tables import EmployeeRow, FormAssignmentRow, FormRow
from anivise.models.common import Clock, as_utc, utc_now
from anivise.repositories.analyses import AnalysisRepository
from anivise.repositories.assignments import FormAssignmentRepository
from anivise.repositories.forms import VISIBLE_TO_ALL, FormRepository

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32
DEFAULT_ORGANIZATION_NAME = "Organisation"


class AssignmentError(StrEnum):
    ANALYSIS_NOT_FOUND = "analysis_not_found"
    FORM_NOT_FOUND = "form_not_found"
    NO_FORM_ACCESS = "no_form_access"
    NO_FORM_VERSION = "no_form_version"
    EMPLOYEE_NOT_FOUND = "employee_not_found"
    ALREADY_ASSIGNED = "already_assigned"
    NOT_FOUND = "not_found"
    INVALID_STATUS = "invalid_status"
    NO_EMPLOYEE_EMAIL = "no_employee_email"
    DELIVERY_FAILED = "delivery_failed"
    CANNOT_REMOVE_COMPLETED = "cannot_remove_completed"


class TokenError(StrEnum):
    INVALID = "invalid"
    EXPIRED = "expired"
    ALREADY_COMPLETED = "already_completed"


_TOKEN_STATE_ERRORS = {
    TokenState.EXPIRED: TokenError.EXPIRED,
    TokenState.ALREADY_COMPLETED: TokenError.ALREADY_COMPLETED,
}


@dataclass(frozen=True)
class CreateAssignmentResult:
    assignment_id: UUID | None = None
    status: AssignmentStatus | None = None
    error: AssignmentError | None = None


@dataclass(frozen=True)
class AssignmentActionResult:
    success: bool
    status: AssignmentStatus | None = None
    error: AssignmentError | None = None


@dataclass(frozen=True)
class FormCompletion:
    completion_type: str
    completion_title: str | None
    completion_message: str | None
    completion_redirect_url: str | None


@dataclass(frozen=True)
class TokenFormView:
    """Everything the public form-fill page needs for one token."""

    assignment_id: UUID
    status: AssignmentStatus
    employee_name: str
    organization_name: str
    form_id: UUID
    form_title: str
    form_description: str | None
    schema: dict[str, Any]
    completion: FormCompletion


@dataclass(frozen=True)
class ResolveTokenResult:
    view: TokenFormView | None = None
    error: TokenError | None = None


@dataclass(frozen=True)
class SubmitResult:
    submission_id: UUID | None = None
    completion: FormCompletion | None = None
    error: TokenError | None = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class AssignmentSummary:
    id: UUID
    analysis_id: UUID
    form_id: UUID
    form_title: str
    employee_name: str
    status: AssignmentStatus
    due_date: datetime | None
    token_expires_at: datetime
    expired: bool
    sent_at: datetime | None
    opened_at: datetime | None
    completed_at: datetime | None
    reminder_count: int
    last_reminder_at: datetime | None
    created_at: datetime
    submission_data: dict[str, Any] | None = None


@dataclass(frozen=True)
class AvailableForm:
    id: UUID
    title: str
    description: str | None = None


def _full_name(first_name: str, last_name: str) -> str:
    return f"{first_name} {last_name}"


def _completion(form: FormRow | None) -> FormCompletion:
    if form is None:
        return FormCompletion("thank_you", None, None, None)
    return FormCompletion(
        completion_type=form.completion_type,
        completion_title=form.completion_title,
        completion_message=form.completion_message,
        completion_redirect_url=form.completion_redirect_url,
    )


class FormAssignmentService:
    """Create and drive form assignments; resolve and submit by token."""

    def __init__(
        self,
        *,
        assignments: FormAssignmentRepository,
        forms: FormRepository,
        analyses: AnalysisRepository,
        mailer: AssignmentMailer,
        link_builder: Callable[[str], str],
        token_ttl: timedelta = timedelta(days=30),
        clock: Clock = utc_now,
    ) -> None:
        self._assignments = assignments
        self._forms = forms
        self._analyses = analyses
        self._mailer = mailer
        self._link_builder = link_builder
        self._token_ttl = token_ttl
        self._clock = clock

    # ------------------------------------------------------------------
    # Staff operations
    # ------------------------------------------------------------------

    async def create_assignment(
        self,
        organization_id: UUID,
        analysis_id: UUID,
        form_id: UUID,
        assigned_by: UUID,
        *,
        recipient_id: UUID | None = None,
        due_date: datetime | None = None,
    ) -> CreateAssignmentResult:
        analysis = await self._analyses.get_for_org(analysis_id, organization_id)
        if analysis is None:
            return CreateAssignmentResult(error=AssignmentError.ANALYSIS_NOT_FOUND)

        form = await self._forms.get_published(form_id)
        if form is None:
            return CreateAssignmentResult(error=AssignmentError.FORM_NOT_FOUND)
        if not await self._forms.has_access(form, organization_id):
            return CreateAssignmentResult(error=AssignmentError.NO_FORM_ACCESS)

        version = await self._forms.get_version(form.id, form.current_version)
        if version is None:
            return CreateAssignmentResult(error=AssignmentError.NO_FORM_VERSION)

        employee = await self._analyses.get_employee(recipient_id or analysis.employee_id)
        if employee is None or employee.organization_id != organization_id:
            return CreateAssignmentResult(error=AssignmentError.EMPLOYEE_NOT_FOUND)

        if await self._assignments.exists(analysis_id, form.id):
            return CreateAssignmentResult(error=AssignmentError.ALREADY_ASSIGNED)

        now = self._clock()
        row = await self._assignments.create(
            analysis_id=analysis_id, form_id=form.id,
            form_version_id=version.id, organization_id=organization_id,
            employee_id=employee.id, token=secrets.token_hex(TOKEN_BYTES),
            token_expires_at=now + self._token_ttl, assigned_by=assigned_by,
            due_date=due_date, now=now,
        )
        logger.info("Form %s assigned on analysis %s", form.id, analysis_id)

        if employee.email and await self._deliver(row, employee, form.title):
            await self._assignments.set_status(row, AssignmentStatus.SENT, self._clock())

        return CreateAssignmentResult(
            assignment_id=row.id, status=AssignmentStatus(row.status),
        )

    async def remind(self, organization_id: UUID, assignment_id: UUID) -> AssignmentActionResult:
        """Re-send the original link.

        From sent/opened a successful send counts as a reminder. A pending
        assignment (first delivery never went out) is delivered instead and
        advances to sent without counting.
        """
        row = await self._assignments.get_for_org(assignment_id, organization_id)
        if row is None:
            return AssignmentActionResult(success=False, error=AssignmentError.NOT_FOUND)

        status = AssignmentStatus(row.status)
        if status not in REMINDABLE_STATUSES and status != AssignmentStatus.PENDING:
            return AssignmentActionResult(
                success=False, status=status, error=AssignmentError.INVALID_STATUS,
            )

        employee = await self._analyses.get_employee(row.employee_id)
        if employee is None or not employee.email:
            return AssignmentActionResult(
                success=False, status=status, error=AssignmentError.NO_EMPLOYEE_EMAIL,
            )

        form = await self._forms.get(row.form_id)
        form_title = form.title if form is not None else ""
        reminder = status in REMINDABLE_STATUSES
        if not await self._deliver(row, employee, form_title, reminder=reminder):
            return AssignmentActionResult(
                success=False, status=status, error=AssignmentError.DELIVERY_FAILED,
            )

        if reminder:
            await self._assignments.record_reminder(row, self._clock())
        else:
            await self._assignments.set_status(row, AssignmentStatus.SENT, self._clock())
        return AssignmentActionResult(success=True, status=AssignmentStatus(row.status))

    async def remove(self, organization_id: UUID, assignment_id: UUID) -> AssignmentActionResult:
        row = await self._assignments.get_for_org(assignment_id, organization_id)
        if row is None:
            return AssignmentActionResult(success=False, error=AssignmentError.NOT_FOUND)
        if row.status == AssignmentStatus.COMPLETED:
            return AssignmentActionResult(
                success=False, status=AssignmentStatus.COMPLETED,
                error=AssignmentError.CANNOT_REMOVE_COMPLETED,
            )
        await self._assignments.delete(row)
        logger.info("Form assignment %s removed", assignment_id)
        return AssignmentActionResult(success=True)

    async def list_for_analysis(
        self, organization_id: UUID, analysis_id: UUID,
    ) -> list[AssignmentSummary]:
        now = self._clock()
        summaries = []
        for row, form_title, first, last, data in await self._assignments.list_for_analysis(
            analysis_id, organization_id,
        ):
            summaries.append(AssignmentSummary(
                id=row.id,
                analysis_id=row.analysis_id,
                form_id=row.form_id,
                form_title=form_title,
                employee_name=_full_name(first, last),
                status=AssignmentStatus(row.status),
                due_date=as_utc(row.due_date),
                token_expires_at=as_utc(row.token_expires_at),
                expired=evaluate_token(row.status, row.token_expires_at, now)
                == TokenState.EXPIRED,
                sent_at=as_utc(row.sent_at),
                opened_at=as_utc(row.opened_at),
                completed_at=as_utc(row.completed_at),
                reminder_count=row.reminder_count,
                last_reminder_at=as_utc(row.last_reminder_at),
                created_at=as_utc(row.created_at),
                submission_data=data,
            ))
        return summaries

    async def list_available_forms(
        self, organization_id: UUID, analysis_id: UUID,
    ) -> list[AvailableForm]:
        """Published forms the tenant may use that this analysis lacks."""
        assigned = await self._assignments.assigned_form_ids(analysis_id)
        granted = await self._forms.granted_form_ids(organization_id)
        return [
            AvailableForm(id=f.id, title=f.title, description=f.description)
            for f in await self._forms.list_published()
            if f.id not in assigned and (
                f.visibility == VISIBLE_TO_ALL
                or f.organization_id == organization_id
                or f.id in granted
            )
        ]

    # ------------------------------------------------------------------
    # Bearer-token operations
    # ------------------------------------------------------------------

    async def resolve_by_token(self, token: str) -> ResolveTokenResult:
        """Load the form for a token; pending/sent advance to opened."""
        row = await self._assignments.get_by_token(token)
        if row is None:
            return ResolveTokenResult(error=TokenError.INVALID)

        now = self._clock()
        state = evaluate_token(row.status, row.token_expires_at, now)
        if state != TokenState.USABLE:
            return ResolveTokenResult(error=_TOKEN_STATE_ERRORS[state])

        if row.status in (AssignmentStatus.PENDING, AssignmentStatus.SENT):
            await self._assignments.set_status(row, AssignmentStatus.OPENED, now)

        form = await self._forms.get(row.form_id)
        version = await self._forms.get_version_by_id(row.form_version_id)
        employee = await self._analyses.get_employee(row.employee_id)
        org_name = await self._forms.get_organization_name(row.organization_id)
        return ResolveTokenResult(view=TokenFormView(
            assignment_id=row.id,
            status=AssignmentStatus(row.status),
            employee_name=_full_name(employee.first_name, employee.last_name)
            if employee is not None else "",
            organization_name=org_name or DEFAULT_ORGANIZATION_NAME,
            form_id=row.form_id,
            form_title=form.title if form is not None else "",
            form_description=form.description if form is not None else None,
            schema=(version.schema_json if version is not None else None) or {},
            completion=_completion(form),
        ))

    async def submit(
        self,
        token: str,
        data: dict[str, Any],
        metadata: dict[str, Any] | None = None,
    ) -> SubmitResult:
        """Store the answers once; the token cannot be used again."""
        row = await self._assignments.get_by_token(token)
        if row is None:
            return SubmitResult(error=TokenError.INVALID)

        now = self._clock()
        state = evaluate_token(row.status, row.token_expires_at, now)
        if state != TokenState.USABLE:
            return SubmitResult(error=_TOKEN_STATE_ERRORS[state])

        if not await self._assignments.claim_completion(row, now):
            logger.info("Concurrent submit for form assignment %s rejected", row.id)
            return SubmitResult(error=TokenError.ALREADY_COMPLETED)

        submission = await self._forms.create_submission(
            form_id=row.form_id, form_version_id=row.form_version_id,
            organization_id=row.organization_id, data=data,
            metadata=metadata, submitted_at=now,
        )
        await self._assignments.link_submission(row, submission.id)
        logger.info("Form assignment %s completed", row.id)

        form = await self._forms.get(row.form_id)
        return SubmitResult(submission_id=submission.id, completion=_completion(form))

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def _deliver(
        self,
        row: FormAssignmentRow,
        employee: EmployeeRow,
        form_title: str,
        *,
        reminder: bool = False,
    ) -> bool:
        org_name = await self._forms.get_organization_name(row.organization_id)
        message = AssignmentEmail(
            to=employee.email,
            employee_name=_full_name(employee.first_name, employee.last_name),
            form_title=form_title,
            organization_name=org_name or DEFAULT_ORGANIZATION_NAME,
            fill_link=self._link_builder(row.token),
            due_date=as_utc(row.due_date),
            reminder=reminder,
        )
        delivered = await self._mailer.send(message)
        if not delivered:
            logger.warning("Delivery failed for form assignment %s", row.id)
        return delivered
