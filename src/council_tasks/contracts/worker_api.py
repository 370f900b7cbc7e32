"""
Payload'ы задач внешнего воркера, которые читает/строит сам сервис.

Остальные результаты (transcribe, summarize, ...) разбираются обработчиками
как dict: воркер владеет их схемой.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# =============================================================================
# pollDecisions
# =============================================================================
class PollDecisionsSubject(_CamelModel):
    subject_id: str = Field(alias="subjectId")
    name: str


class PollDecisionsRequest(_CamelModel):
    meeting_date: str = Field(alias="meetingDate")
    diavgeia_uid: str = Field(alias="diavgeiaUid")
    diavgeia_unit_ids: list[str] | None = Field(default=None, alias="diavgeiaUnitIds")
    subjects: list[PollDecisionsSubject]

    def to_body(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class DecisionMatch(_CamelModel):
    subject_id: str = Field(alias="subjectId")
    pdf_url: str = Field(alias="pdfUrl")
    ada: str | None = None
    protocol_number: str | None = Field(default=None, alias="protocolNumber")
    decision_title: str | None = Field(default=None, alias="decisionTitle")
    issue_date: str | None = Field(default=None, alias="issueDate")


class UnmatchedSubject(_CamelModel):
    subject_id: str = Field(alias="subjectId")
    reason: str | None = None


class AmbiguousCandidate(_CamelModel):
    ada: str | None = None
    title: str | None = None
    score: float | None = None


class AmbiguousSubject(_CamelModel):
    subject_id: str = Field(alias="subjectId")
    candidates: list[AmbiguousCandidate] = Field(default_factory=list)


class PollDecisionsResult(_CamelModel):
    matches: list[DecisionMatch] = Field(default_factory=list)
    unmatched_subjects: list[UnmatchedSubject] = Field(
        default_factory=list, alias="unmatchedSubjects"
    )
    ambiguous_subjects: list[AmbiguousSubject] = Field(
        default_factory=list, alias="ambiguousSubjects"
    )
