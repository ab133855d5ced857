from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from boaz.auth.api_keys import require_api_key
from boaz.core.database import get_db
from boaz.core.envelope import Envelope, ok
from boaz.integrations.schemas import InboundAccount, InboundContact, InboundDeal, InboundResult, InboundTicket
from boaz.integrations.service import inbound_service
from boaz.platform.tenancy.context import TenantContext


INBOUND_SCOPE = "integrations:write"

router = APIRouter(prefix="/api/integrations/inbound", tags=["integrations.inbound"])


@router.post("/accounts", response_model=Envelope[InboundResult])
def upsert_account(
    payload: InboundAccount,
    request: Request,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_api_key(INBOUND_SCOPE)),
) -> dict:
    return ok(inbound_service.upsert_account(db, request, ctx, payload))


@router.post("/contacts", response_model=Envelope[InboundResult])
def upsert_contact(
    payload: InboundContact,
    request: Request,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_api_key(INBOUND_SCOPE)),
) -> dict:
    return ok(inbound_service.upsert_contact(db, request, ctx, payload))


@router.post("/deals", response_model=Envelope[InboundResult])
def upsert_deal(
    payload: InboundDeal,
    request: Request,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_api_key(INBOUND_SCOPE)),
) -> dict:
    return ok(inbound_service.upsert_deal(db, request, ctx, payload))


@router.post("/tickets", response_model=Envelope[InboundResult])
def upsert_ticket(
    payload: InboundTicket,
    request: Request,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(require_api_key(INBOUND_SCOPE)),
) -> dict:
    return ok(inbound_service.upsert_ticket(db, request, ctx, payload))
