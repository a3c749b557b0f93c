"""Dossier envelope assembly from the analysis source aggregates.

Three independent inputs are gathered per analysis: transcripts (final
transcript, else live transcript), extracted document text, and the
answers of completed form assignments. Empty items are dropped and the
text of a non-completed assignment is never included.
"""

from typing import Any
from uuid import UUID

from pydantic import ConfigDict, Field
from pydantic.alias_generators import to_camel

from anivise.models.common import AniviseBase
from anivise.repositories.analyses import AnalysisRepository

UNKNOWN_SUBJECT = "Unknown"


class _EnvelopeModel(AniviseBase):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=(),
    )


class SubjectMetadata(_EnvelopeModel):
    name: str
    email: str | None = None
    position: str | None = None
    department: str | None = None
    location: str | None = None


class TranscriptItem(_EnvelopeModel):
    id: UUID
    filename: str | None = None
    language: str
    text: str


class DocumentItem(_EnvelopeModel):
    id: UUID
    name: str
    text: str


class FormResponseItem(_EnvelopeModel):
    form_title: str
    data: dict[str, Any] = Field(default_factory=dict)


class DossierEnvelope(_EnvelopeModel):
    """Opaque body POSTed to the workflow engine."""

    dossier_id: UUID
    analysis_id: UUID
    organization_id: UUID
    callback_url: str
    subject: SubjectMetadata
    transcripts: list[TranscriptItem] = Field(default_factory=list)
    documents: list[DocumentItem] = Field(default_factory=list)
    form_responses: list[FormResponseItem] = Field(default_factory=list)
    prompt: str

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class AnalysisNotFoundError(LookupError):
    """Analysis does not exist inside the requesting organization."""


class DossierPayloadBuilder:
    """Gather source data for one analysis into a DossierEnvelope."""

    def __init__(self, repo: AnalysisRepository) -> None:
        self._repo = repo

    async def build(
        self,
        *,
        dossier_id: UUID,
        analysis_id: UUID,
        organization_id: UUID,
        callback_url: str,
        prompt: str,
    ) -> DossierEnvelope:
        analysis = await self._repo.get_for_org(analysis_id, organization_id)
        if analysis is None:
            raise AnalysisNotFoundError(f"Analysis {analysis_id} not found.")

        return DossierEnvelope(
            dossier_id=dossier_id,
            analysis_id=analysis_id,
            organization_id=organization_id,
            callback_url=callback_url,
            subject=await self._subject(analysis.employee_id),
            transcripts=await self._transcripts(analysis_id),
            documents=await self._documents(analysis_id),
            form_responses=await self._form_responses(analysis_id),
            prompt=prompt,
        )

    async def _subject(self, employee_id: UUID) -> SubjectMetadata:
        emp = await self._repo.get_employee(employee_id)
        if emp is None:
            return SubjectMetadata(name=UNKNOWN_SUBJECT)
        return SubjectMetadata(
            name=f"{emp.first_name} {emp.last_name}",
            email=emp.email,
            position=emp.position,
            department=await self._repo.get_department_name(emp.department_id),
            location=await self._repo.get_location_name(emp.location_id),
        )

    async def _transcripts(self, analysis_id: UUID) -> list[TranscriptItem]:
        items = []
        for rec in await self._repo.list_recordings(analysis_id):
            text = rec.final_transcript or rec.live_transcript or ""
            if text.strip():
                items.append(TranscriptItem(
                    id=rec.id, filename=rec.filename,
                    language=rec.language, text=text,
                ))
        return items

    async def _documents(self, analysis_id: UUID) -> list[DocumentItem]:
        return [
            DocumentItem(id=doc.id, name=doc.name, text=doc.extracted_text)
            for doc in await self._repo.list_documents(analysis_id)
            if doc.extracted_text and doc.extracted_text.strip()
        ]

    async def _form_responses(self, analysis_id: UUID) -> list[FormResponseItem]:
        return [
            FormResponseItem(form_title=title, data=data)
            for title, data in await self._repo.list_completed_form_responses(analysis_id)
        ]
