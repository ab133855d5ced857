"""Upserts pushed by external systems through API keys.

Records are matched on ``(tenant_id, external_source, external_id)``; contacts
prefer a case-insensitive email match when an email is supplied. Every call,
successful or not, is written to ``integration_inbound_event``.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from decimal import Decimal
from typing import Any, Callable

from fastapi import HTTPException, Request, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from boaz.core.database import Base, utcnow
from boaz.crm.models import CrmAccount, CrmContact, Deal, SupportTicket
from boaz.crm.service import (
    DEAL_NUMBER_START,
    TICKET_DESCRIPTION_LIMIT,
    TICKET_NUMBER_START,
    next_sequence_value,
)
from boaz.integrations.models import IntegrationInboundEvent
from boaz.integrations.schemas import (
    InboundAccount,
    InboundBase,
    InboundContact,
    InboundDeal,
    InboundResult,
    InboundTicket,
)
from boaz.platform.tenancy.context import TenantContext


logger = logging.getLogger("boaz.integrations.inbound")


def _clean(value: str | None) -> str:
    return (value or "").strip()


def _noon_utc(value: date | None) -> datetime | None:
    if value is None:
        return None
    return datetime.combine(value, time(12, 0), tzinfo=timezone.utc)


def _drop_empty(values: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None and value != ""}


@dataclass(slots=True)
class InboundService:
    def _log(
        self,
        session: Session,
        request: Request,
        ctx: TenantContext,
        *,
        kind: str,
        status_code: int,
        dto: InboundBase,
        record_id: uuid.UUID | None = None,
        error: str | None = None,
    ) -> None:
        api_key = getattr(request.state, "api_key", None)
        session.add(
            IntegrationInboundEvent(
                tenant_id=ctx.tenant_id,
                path=request.url.path,
                method=request.method,
                api_key_prefix=getattr(api_key, "prefix", None),
                api_key_name=getattr(api_key, "name", None),
                kind=kind,
                status=status_code,
                record_id=record_id,
                error=error,
                payload=dto.model_dump(mode="json", exclude_none=True),
            )
        )
        session.commit()

    def _run(
        self,
        session: Session,
        request: Request,
        ctx: TenantContext,
        kind: str,
        dto: InboundBase,
        upsert: Callable[[], tuple[Base, bool]],
    ) -> InboundResult:
        try:
            record, created = upsert()
            session.flush()
            record_id = record.id
            session.commit()
        except HTTPException as exc:
            session.rollback()
            self._log(session, request, ctx, kind=kind, status_code=exc.status_code, dto=dto, error=str(exc.detail))
            raise
        except Exception as exc:
            session.rollback()
            logger.exception("inbound.failed", extra={"entity": kind, "source": dto.external_source})
            self._log(session, request, ctx, kind=kind, status_code=500, dto=dto, error=str(exc))
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=f"inbound_{kind}s_error")

        self._log(session, request, ctx, kind=kind, status_code=200, dto=dto, record_id=record_id)
        logger.info(
            "inbound.upserted",
            extra={"entity": kind, "source": dto.external_source, "count": int(created)},
        )
        return InboundResult(id=record_id, created=created)

    @staticmethod
    def _require_external(dto: InboundBase, *required: str | None) -> tuple[str, str]:
        source = _clean(dto.external_source)
        external_id = _clean(dto.external_id)
        if not source or not external_id or not all(_clean(value) for value in required):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing_required_fields")
        return source, external_id

    @staticmethod
    def _find_external(session: Session, model: type[Base], tenant_id: str, source: str, external_id: str) -> Any:
        return session.scalar(
            select(model).where(
                model.tenant_id == tenant_id,
                model.external_source == source,
                model.external_id == external_id,
            )
        )

    def _linked_account_id(self, session: Session, tenant_id: str, dto: InboundBase) -> uuid.UUID | None:
        source = _clean(dto.account_external_source or dto.external_source)
        external_id = _clean(dto.account_external_id)
        if not source or not external_id:
            return None
        account = self._find_external(session, CrmAccount, tenant_id, source, external_id)
        return account.id if account is not None else None

    @staticmethod
    def _apply(record: Base, values: dict[str, Any]) -> None:
        for key, value in values.items():
            setattr(record, key, value)

    def upsert_account(self, session: Session, request: Request, ctx: TenantContext, dto: InboundAccount) -> InboundResult:
        def upsert() -> tuple[Base, bool]:
            source, external_id = self._require_external(dto, dto.name)
            values = _drop_empty(
                {
                    "name": _clean(dto.name),
                    "domain": _clean(dto.domain),
                    "industry": _clean(dto.industry),
                    "website": _clean(dto.website),
                    "phone": _clean(dto.phone),
                }
            )
            account = self._find_external(session, CrmAccount, ctx.tenant_id, source, external_id)
            if account is not None:
                self._apply(account, values)
                account.updated_at = utcnow()
                return account, False
            account = CrmAccount(tenant_id=ctx.tenant_id, external_source=source, external_id=external_id, **values)
            session.add(account)
            return account, True

        return self._run(session, request, ctx, "account", dto, upsert)

    def upsert_contact(self, session: Session, request: Request, ctx: TenantContext, dto: InboundContact) -> InboundResult:
        def upsert() -> tuple[Base, bool]:
            source = _clean(dto.external_source)
            external_id = _clean(dto.external_id)
            email = _clean(dto.email).lower()
            if not email and (not source or not external_id):
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="missing_identifier")

            values = _drop_empty(
                {
                    "name": _clean(dto.name),
                    "email": email,
                    "phone": _clean(dto.phone),
                    "title": _clean(dto.title),
                    "account_id": self._linked_account_id(session, ctx.tenant_id, dto),
                    "external_source": source,
                    "external_id": external_id,
                }
            )
            if email:
                contact = session.scalar(
                    select(CrmContact).where(CrmContact.tenant_id == ctx.tenant_id, func.lower(CrmContact.email) == email)
                )
            else:
                contact = self._find_external(session, CrmContact, ctx.tenant_id, source, external_id)
            if contact is not None:
                self._apply(contact, values)
                contact.updated_at = utcnow()
                return contact, False
            values.setdefault("name", email or external_id)
            contact = CrmContact(tenant_id=ctx.tenant_id, **values)
            session.add(contact)
            return contact, True

        return self._run(session, request, ctx, "contact", dto, upsert)

    def upsert_deal(self, session: Session, request: Request, ctx: TenantContext, dto: InboundDeal) -> InboundResult:
        def upsert() -> tuple[Base, bool]:
            source, external_id = self._require_external(dto, dto.title)
            values = _drop_empty(
                {
                    "title": _clean(dto.title),
                    "amount": Decimal(str(dto.amount)) if dto.amount is not None else None,
                    "stage": _clean(dto.stage),
                    "account_id": self._linked_account_id(session, ctx.tenant_id, dto),
                    "close_date": _noon_utc(dto.close_date),
                    "forecasted_close_date": _noon_utc(dto.forecasted_close_date),
                }
            )
            deal = self._find_external(session, Deal, ctx.tenant_id, source, external_id)
            if deal is not None:
                if "stage" in values and values["stage"] != deal.stage:
                    deal.stage_changed_at = utcnow()
                self._apply(deal, values)
                deal.updated_at = utcnow()
                return deal, False
            deal = Deal(
                tenant_id=ctx.tenant_id,
                deal_number=next_sequence_value(session, ctx.tenant_id, "deal_number", DEAL_NUMBER_START),
                external_source=source,
                external_id=external_id,
                stage_changed_at=utcnow(),
                **values,
            )
            session.add(deal)
            return deal, True

        return self._run(session, request, ctx, "deal", dto, upsert)

    def upsert_ticket(self, session: Session, request: Request, ctx: TenantContext, dto: InboundTicket) -> InboundResult:
        def upsert() -> tuple[Base, bool]:
            source, external_id = self._require_external(dto, dto.short_description)
            values = {
                "short_description": _clean(dto.short_description),
                "description": _clean(dto.description)[:TICKET_DESCRIPTION_LIMIT] or None,
                "status": _clean(dto.status) or "open",
                "priority": _clean(dto.priority) or "normal",
                "requester_email": _clean(dto.requester_email).lower() or None,
                "account_id": self._linked_account_id(session, ctx.tenant_id, dto),
            }
            ticket = self._find_external(session, SupportTicket, ctx.tenant_id, source, external_id)
            if ticket is not None:
                self._apply(ticket, values)
                ticket.updated_at = utcnow()
                return ticket, False
            ticket = SupportTicket(
                tenant_id=ctx.tenant_id,
                ticket_number=next_sequence_value(session, ctx.tenant_id, "ticket_number", TICKET_NUMBER_START),
                external_source=source,
                external_id=external_id,
                **values,
            )
            session.add(ticket)
            return ticket, True

        return self._run(session, request, ctx, "ticket", dto, upsert)


inbound_service = InboundService()
