from __future__ import annotations

import logging
import secrets
import uuid
from dataclasses import dataclass
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import delete, func, or_, select
from sqlalchemy.orm import Session

from boaz.core.config import get_settings
from boaz.core.database import utcnow
from boaz.crm.service import ticket_service
from boaz.crm.surveys.models import SurveyLink, SurveyProgram, SurveyResponse
from boaz.crm.surveys.schemas import (
    ProgramMetricsItem,
    ProgramSummary,
    PublicSurveyProgram,
    PublicSurveyView,
    SurveyLinkCreate,
    SurveyLinkRead,
    SurveyProgramCreate,
    SurveyProgramRead,
    SurveyProgramUpdate,
    SurveyQuestion,
    SurveyResponseCreate,
    TicketSurveyResponseItem,
)
from boaz.crm.surveys.scoring import build_program_summary, overall_score
from boaz.metrics import observe_survey_response
from boaz.platform.tenancy.context import TenantContext
from boaz.platform.tenancy.repository import BaseRepository


logger = logging.getLogger("boaz.crm.surveys")

PROGRAM_LIST_LIMIT = 500
SUMMARY_RESPONSE_LIMIT = 1000
METRICS_PROGRAM_LIMIT = 200
TICKET_RESPONSE_LIMIT = 100

_SORT_COLUMNS = {
    "createdAt": SurveyProgram.created_at,
    "updatedAt": SurveyProgram.updated_at,
    "name": SurveyProgram.name,
    "lastSentAt": SurveyProgram.last_sent_at,
}


class SurveyProgramRepository(BaseRepository):
    resource = "crm.survey_program"


class SurveyResponseRepository(BaseRepository):
    resource = "crm.survey_response"


def _program_read(program: SurveyProgram) -> SurveyProgramRead:
    questions = program.questions or []
    if not questions and program.question_text:
        # single-question programs created before multi-question support
        questions = [{"id": "q1", "label": program.question_text, "required": True, "order": 0}]
    read = SurveyProgramRead.model_validate(program)
    return read.model_copy(update={"questions": [SurveyQuestion.model_validate(item) for item in questions]})


@dataclass(slots=True)
class SurveyService:
    program_repository: SurveyProgramRepository = SurveyProgramRepository()
    response_repository: SurveyResponseRepository = SurveyResponseRepository()

    def _get_program(self, session: Session, ctx: TenantContext, program_id: uuid.UUID) -> SurveyProgram:
        stmt = self.program_repository.apply_scope_query(select(SurveyProgram).where(SurveyProgram.id == program_id), ctx)
        program = session.scalar(stmt)
        if program is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="program_not_found")
        return program

    def list_programs(
        self,
        session: Session,
        ctx: TenantContext,
        *,
        program_type: str | None = None,
        status_filter: str | None = None,
        q: str | None = None,
        sort: str = "createdAt",
        direction: str = "desc",
    ) -> list[SurveyProgramRead]:
        stmt = self.program_repository.apply_scope_query(select(SurveyProgram), ctx)
        if program_type:
            stmt = stmt.where(SurveyProgram.type == program_type)
        if status_filter:
            stmt = stmt.where(SurveyProgram.status == status_filter)
        if q and q.strip():
            pattern = f"%{q.strip().lower()}%"
            stmt = stmt.where(
                or_(func.lower(SurveyProgram.name).like(pattern), func.lower(SurveyProgram.description).like(pattern))
            )
        column = _SORT_COLUMNS.get(sort, SurveyProgram.created_at)
        stmt = stmt.order_by(column.asc() if direction.lower() == "asc" else column.desc()).limit(PROGRAM_LIST_LIMIT)
        return [_program_read(program) for program in session.scalars(stmt).all()]

    def create_program(self, session: Session, ctx: TenantContext, dto: SurveyProgramCreate) -> SurveyProgramRead:
        payload = dto.model_dump(mode="python")
        payload["questions"] = payload.get("questions") or []
        program = SurveyProgram(**self.program_repository.stamp_tenant(payload, ctx))
        session.add(program)
        session.commit()
        session.refresh(program)
        return _program_read(program)

    def update_program(
        self,
        session: Session,
        ctx: TenantContext,
        program_id: uuid.UUID,
        dto: SurveyProgramUpdate,
    ) -> SurveyProgramRead:
        program = self._get_program(session, ctx, program_id)
        changes = dto.model_dump(mode="python", exclude_unset=True)
        if "questions" in changes:
            changes["questions"] = changes["questions"] or []
        for key, value in changes.items():
            setattr(program, key, value)
        program.updated_at = utcnow()
        session.commit()
        session.refresh(program)
        return _program_read(program)

    def delete_program(self, session: Session, ctx: TenantContext, program_id: uuid.UUID) -> None:
        program = self._get_program(session, ctx, program_id)
        session.execute(delete(SurveyResponse).where(SurveyResponse.program_id == program.id))
        session.execute(delete(SurveyLink).where(SurveyLink.program_id == program.id))
        session.delete(program)
        session.commit()

    def _store_response(
        self,
        session: Session,
        program: SurveyProgram,
        dto: SurveyResponseCreate,
        *,
        source: str,
        overrides: dict[str, Any] | None = None,
    ) -> SurveyResponse:
        answers = [answer.model_dump(mode="python") for answer in dto.answers] if dto.answers else None
        links = {
            "contact_id": dto.contact_id,
            "account_id": dto.account_id,
            "ticket_id": dto.ticket_id,
            "outreach_enrollment_id": dto.outreach_enrollment_id,
        }
        links.update(overrides or {})
        response = SurveyResponse(
            tenant_id=program.tenant_id,
            program_id=program.id,
            type=program.type,
            channel=program.channel,
            score=overall_score(dto.score, answers),
            answers=answers,
            comment=dto.comment,
            source=source,
            **links,
        )
        session.add(response)
        session.flush()
        observe_survey_response(program.type, source)
        return response

    def submit_response(
        self,
        session: Session,
        ctx: TenantContext,
        program_id: uuid.UUID,
        dto: SurveyResponseCreate,
    ) -> SurveyResponse:
        program = self._get_program(session, ctx, program_id)
        response = self._store_response(session, program, dto, source="internal")
        session.commit()

        if response.ticket_id is not None:
            self._log_on_ticket(session, program, response)
        return response

    def _log_on_ticket(self, session: Session, program: SurveyProgram, response: SurveyResponse) -> None:
        body = f'Survey response logged for "{program.name}" (type: {program.type}) with score {response.score:g}'
        if response.comment:
            body = f"{body} - {response.comment}"
        try:
            appended = ticket_service.add_system_comment(session, program.tenant_id, response.ticket_id, body)
            session.commit()
        except Exception as exc:
            session.rollback()
            logger.warning(
                "survey.ticket_comment_failed",
                extra={"ticket_id": str(response.ticket_id), "program_id": str(program.id), "error": str(exc)},
            )
            return
        if not appended:
            logger.info("survey.ticket_missing", extra={"ticket_id": str(response.ticket_id)})

    def ticket_responses(self, session: Session, ctx: TenantContext, ticket_id: uuid.UUID) -> list[TicketSurveyResponseItem]:
        stmt = self.response_repository.apply_scope_query(
            select(SurveyResponse, SurveyProgram)
            .join(SurveyProgram, SurveyProgram.id == SurveyResponse.program_id)
            .where(SurveyResponse.ticket_id == ticket_id)
            .order_by(SurveyResponse.created_at.desc())
            .limit(TICKET_RESPONSE_LIMIT),
            ctx,
        )
        latest: dict[uuid.UUID, TicketSurveyResponseItem] = {}
        for response, program in session.execute(stmt).all():
            if response.program_id in latest:
                continue
            latest[response.program_id] = TicketSurveyResponseItem(
                id=response.id,
                program_id=program.id,
                program_name=program.name,
                program_type=program.type,
                score=response.score,
                comment=response.comment,
                created_at=response.created_at,
            )
        return list(latest.values())

    def _summarize(self, session: Session, program: SurveyProgram) -> ProgramSummary:
        stmt = (
            select(SurveyResponse)
            .where(SurveyResponse.tenant_id == program.tenant_id, SurveyResponse.program_id == program.id)
            .order_by(SurveyResponse.created_at.desc())
            .limit(SUMMARY_RESPONSE_LIMIT)
        )
        responses = list(session.scalars(stmt).all())
        return build_program_summary(program.type, responses, program.questions or [])

    def program_summary(self, session: Session, ctx: TenantContext, program_id: uuid.UUID) -> ProgramSummary:
        return self._summarize(session, self._get_program(session, ctx, program_id))

    def program_metrics(self, session: Session, ctx: TenantContext, status_filter: str | None = "Active") -> list[ProgramMetricsItem]:
        stmt = self.program_repository.apply_scope_query(select(SurveyProgram), ctx)
        if status_filter:
            stmt = stmt.where(SurveyProgram.status == status_filter)
        programs = session.scalars(stmt.order_by(SurveyProgram.created_at.asc()).limit(METRICS_PROGRAM_LIMIT)).all()
        return [
            ProgramMetricsItem(
                program_id=program.id,
                name=program.name,
                type=program.type,
                status=program.status,
                summary=self._summarize(session, program),
            )
            for program in programs
        ]

    def generate_link(
        self,
        session: Session,
        ctx: TenantContext,
        program_id: uuid.UUID,
        dto: SurveyLinkCreate,
    ) -> SurveyLinkRead:
        program = self._get_program(session, ctx, program_id)
        token = secrets.token_hex(24)
        session.add(
            SurveyLink(
                tenant_id=program.tenant_id,
                token=token,
                program_id=program.id,
                contact_id=dto.contact_id,
                campaign_id=dto.campaign_id,
                email=(dto.email or "").strip() or None,
            )
        )
        program.last_sent_at = utcnow()
        session.commit()
        url = f"{get_settings().primary_origin}/surveys/respond/{token}"
        return SurveyLinkRead(url=url, token=token)

    def _resolve_link(self, session: Session, token: str) -> tuple[SurveyLink, SurveyProgram]:
        cleaned = token.strip()
        if not cleaned:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_token")
        link = session.scalar(select(SurveyLink).where(SurveyLink.token == cleaned))
        if link is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="survey_link_not_found")
        program = session.scalar(
            select(SurveyProgram).where(SurveyProgram.id == link.program_id, SurveyProgram.tenant_id == link.tenant_id)
        )
        if program is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="program_not_found")
        return link, program

    def public_view(self, session: Session, token: str) -> PublicSurveyView:
        _, program = self._resolve_link(session, token)
        read = _program_read(program)
        return PublicSurveyView(
            program=PublicSurveyProgram(
                name=program.name,
                type=program.type,
                scale_help_text=program.scale_help_text,
                questions=read.questions,
            )
        )

    def public_submit(self, session: Session, token: str, dto: SurveyResponseCreate) -> SurveyResponse:
        link, program = self._resolve_link(session, token)
        response = self._store_response(
            session,
            program,
            dto,
            source="link",
            overrides={
                key: value
                for key, value in (("contact_id", link.contact_id), ("outreach_enrollment_id", link.campaign_id))
                if value is not None
            },
        )
        session.commit()
        logger.info("survey.public_response", extra={"program_id": str(program.id)})
        return response


survey_service = SurveyService()
