from __future__ import annotations

from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from boaz.core.types import UTCDateTime


ProgramType = Literal["NPS", "CSAT", "Post-interaction"]
ProgramChannel = Literal["Email", "In-app", "Link"]
ProgramStatus = Literal["Draft", "Active", "Paused"]
ProgramSortField = Literal["createdAt", "updatedAt", "name", "lastSentAt"]


class SurveyQuestion(BaseModel):
    id: str = Field(min_length=1)
    label: str = Field(min_length=1, max_length=500)
    required: bool = False
    order: int = 0


class SurveyProgramCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    type: ProgramType
    channel: ProgramChannel
    status: ProgramStatus
    description: str | None = Field(default=None, max_length=2000)
    question_text: str | None = Field(default=None, max_length=500)
    scale_help_text: str | None = Field(default=None, max_length=500)
    questions: list[SurveyQuestion] | None = None


class SurveyProgramUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    type: ProgramType | None = None
    channel: ProgramChannel | None = None
    status: ProgramStatus | None = None
    description: str | None = Field(default=None, max_length=2000)
    question_text: str | None = Field(default=None, max_length=500)
    scale_help_text: str | None = Field(default=None, max_length=500)
    questions: list[SurveyQuestion] | None = None


class SurveyProgramRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    type: str
    channel: str
    status: str
    description: str | None
    question_text: str | None
    scale_help_text: str | None
    questions: list[SurveyQuestion]
    last_sent_at: UTCDateTime | None
    response_rate: float | None
    created_at: UTCDateTime
    updated_at: UTCDateTime


class SurveyAnswer(BaseModel):
    question_id: str = Field(min_length=1)
    score: float = Field(ge=0, le=10)


class SurveyResponseCreate(BaseModel):
    score: float | None = Field(default=None, ge=0, le=10)
    answers: list[SurveyAnswer] | None = None
    comment: str | None = Field(default=None, max_length=4000)
    contact_id: UUID | None = None
    account_id: UUID | None = None
    ticket_id: UUID | None = None
    outreach_enrollment_id: UUID | None = None

    @model_validator(mode="after")
    def _require_score_or_answers(self) -> SurveyResponseCreate:
        if self.score is None and not self.answers:
            raise ValueError("score_or_answers_required")
        return self


class QuestionSummary(BaseModel):
    question_id: str
    label: str
    average_score: float
    responses: int


class ProgramSummary(BaseModel):
    total_responses: int
    detractors: int | None = None
    passives: int | None = None
    promoters: int | None = None
    detractors_pct: float | None = None
    passives_pct: float | None = None
    promoters_pct: float | None = None
    nps: int | None = None
    average_score: float | None = None
    distribution: dict[str, int] | None = None
    questions: list[QuestionSummary] | None = None


class ProgramMetricsItem(BaseModel):
    program_id: UUID
    name: str
    type: str
    status: str
    summary: ProgramSummary


class TicketSurveyResponseItem(BaseModel):
    id: UUID
    program_id: UUID
    program_name: str
    program_type: str
    score: float
    comment: str | None
    created_at: UTCDateTime


class SurveyLinkCreate(BaseModel):
    contact_id: UUID | None = None
    campaign_id: UUID | None = None
    email: str | None = Field(default=None, max_length=320)


class SurveyLinkRead(BaseModel):
    url: str
    token: str


class PublicSurveyProgram(BaseModel):
    name: str
    type: str
    scale_help_text: str | None
    questions: list[SurveyQuestion]


class PublicSurveyView(BaseModel):
    program: PublicSurveyProgram


class SubmitResult(BaseModel):
    ok: bool = True
