from __future__ import annotations

import uuid
from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from boaz.core.database import get_db
from boaz.core.envelope import Envelope, ItemList, ok, ok_items
from boaz.crm.surveys.schemas import (
    ProgramMetricsItem,
    ProgramSummary,
    PublicSurveyView,
    SubmitResult,
    SurveyLinkCreate,
    SurveyLinkRead,
    SurveyProgramCreate,
    SurveyProgramRead,
    SurveyProgramUpdate,
    SurveyResponseCreate,
    TicketSurveyResponseItem,
)
from boaz.crm.surveys.service import survey_service
from boaz.platform.tenancy.context import TenantContext
from boaz.platform.tenancy.deps import get_tenant_context


router = APIRouter(prefix="/api/crm/surveys", tags=["crm.surveys"])
public_router = APIRouter(prefix="/api/crm/surveys", tags=["crm.surveys.public"])


@router.get("/programs", response_model=Envelope[ItemList[SurveyProgramRead]])
def list_programs(
    program_type: str | None = Query(default=None, alias="type"),
    status_filter: str | None = Query(default=None, alias="status"),
    q: str | None = Query(default=None),
    sort: str = Query(default="createdAt"),
    direction: Literal["asc", "desc"] = Query(default="desc", alias="dir"),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    items = survey_service.list_programs(
        db,
        ctx,
        program_type=program_type,
        status_filter=status_filter,
        q=q,
        sort=sort,
        direction=direction,
    )
    return ok_items(items)


@router.post("/programs", response_model=Envelope[SurveyProgramRead], status_code=status.HTTP_201_CREATED)
def create_program(
    payload: SurveyProgramCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(survey_service.create_program(db, ctx, payload))


@router.get("/programs/metrics", response_model=Envelope[ItemList[ProgramMetricsItem]])
def program_metrics(
    status_filter: str = Query(default="Active", alias="status"),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok_items(survey_service.program_metrics(db, ctx, status_filter.strip() or None))


@router.put("/programs/{program_id}", response_model=Envelope[SurveyProgramRead])
def update_program(
    program_id: uuid.UUID,
    payload: SurveyProgramUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(survey_service.update_program(db, ctx, program_id, payload))


@router.delete("/programs/{program_id}", response_model=Envelope[SubmitResult])
def delete_program(
    program_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    survey_service.delete_program(db, ctx, program_id)
    return ok({"ok": True})


@router.post("/programs/{program_id}/responses", response_model=Envelope[SubmitResult], status_code=status.HTTP_201_CREATED)
def submit_response(
    program_id: uuid.UUID,
    payload: SurveyResponseCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    survey_service.submit_response(db, ctx, program_id, payload)
    return ok({"ok": True})


@router.get("/programs/{program_id}/summary", response_model=Envelope[ProgramSummary])
def program_summary(
    program_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(survey_service.program_summary(db, ctx, program_id))


@router.post("/programs/{program_id}/generate-link", response_model=Envelope[SurveyLinkRead])
def generate_link(
    program_id: uuid.UUID,
    payload: SurveyLinkCreate | None = None,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(survey_service.generate_link(db, ctx, program_id, payload or SurveyLinkCreate()))


@router.get("/tickets/{ticket_id}/responses", response_model=Envelope[ItemList[TicketSurveyResponseItem]])
def ticket_responses(
    ticket_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok_items(survey_service.ticket_responses(db, ctx, ticket_id))


@public_router.get("/respond/{token}", response_model=Envelope[PublicSurveyView])
def public_survey(token: str, db: Session = Depends(get_db)) -> dict:
    return ok(survey_service.public_view(db, token))


@public_router.post("/respond/{token}", response_model=Envelope[SubmitResult], status_code=status.HTTP_201_CREATED)
def public_submit(token: str, payload: SurveyResponseCreate, db: Session = Depends(get_db)) -> dict:
    survey_service.public_submit(db, token, payload)
    return ok({"ok": True})
