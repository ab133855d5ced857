from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, ClassVar

from fastapi import HTTPException, status
from sqlalchemy import Select, func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from boaz.core.database import Base, ensure_utc, utcnow
from boaz.crm.models import (
    CrmAccount,
    CrmContact,
    CrmSequence,
    CrmTask,
    Deal,
    Invoice,
    Quote,
    QuoteAcceptance,
    Renewal,
    SupportTicket,
    TicketComment,
)
from boaz.crm.repository import (
    AccountRepository,
    ContactRepository,
    DealRepository,
    RevenueRepository,
    TaskRepository,
    TicketRepository,
)
from boaz.crm.schemas import (
    InvoiceCreate,
    QuoteAcceptRequest,
    QuoteCreate,
    RenewalCreate,
    TicketCommentCreate,
    TicketCreate,
    TicketMetrics,
    TicketUpdate,
)
from boaz.platform.tenancy.context import TenantContext
from boaz.platform.tenancy.repository import BaseRepository


logger = logging.getLogger("boaz.crm")

TICKET_NUMBER_START = 200001
DEAL_NUMBER_START = 100001
TICKET_DESCRIPTION_LIMIT = 2500
TICKET_ACTIVE_STATUSES = ("open", "pending")


def next_sequence_value(session: Session, tenant_id: str, name: str, start: int) -> int:
    stmt = select(CrmSequence).where(CrmSequence.tenant_id == tenant_id, CrmSequence.name == name).with_for_update()
    counter = session.scalar(stmt)
    if counter is None:
        counter = CrmSequence(tenant_id=tenant_id, name=name, value=start)
        session.add(counter)
    else:
        counter.value += 1
    session.flush()
    return counter.value


def _to_decimal(value: float | None) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))


@dataclass(slots=True)
class RecordService:
    """List/create/get/update/delete for a tenant-owned CRM table."""

    model: ClassVar[type[Base]]
    search_fields: ClassVar[tuple[str, ...]] = ()
    order_field: ClassVar[str] = "created_at"
    not_found: ClassVar[str] = "not_found"
    repository: BaseRepository = BaseRepository()

    def _scoped(self, ctx: TenantContext) -> Select[Any]:
        return self.repository.apply_scope_query(select(self.model), ctx)

    def _prepare(self, session: Session, ctx: TenantContext, payload: dict[str, Any], *, creating: bool) -> dict[str, Any]:
        return payload

    def list(self, session: Session, ctx: TenantContext, *, q: str | None = None, limit: int = 200) -> list[Any]:
        stmt = self._scoped(ctx)
        if q and self.search_fields:
            pattern = f"%{q.strip().lower()}%"
            stmt = stmt.where(or_(*[func.lower(getattr(self.model, name)).like(pattern) for name in self.search_fields]))
        stmt = stmt.order_by(getattr(self.model, self.order_field).desc()).limit(limit)
        return list(session.scalars(stmt).all())

    def get(self, session: Session, ctx: TenantContext, record_id: uuid.UUID) -> Any:
        record = session.scalar(self._scoped(ctx).where(self.model.id == record_id))
        if record is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=self.not_found)
        return record

    def create(self, session: Session, ctx: TenantContext, dto: Any) -> Any:
        payload = self._prepare(session, ctx, dto.model_dump(mode="python"), creating=True)
        record = self.model(**self.repository.stamp_tenant(payload, ctx))
        session.add(record)
        self._commit(session)
        session.refresh(record)
        return record

    def update(self, session: Session, ctx: TenantContext, record_id: uuid.UUID, dto: Any) -> Any:
        record = self.get(session, ctx, record_id)
        changes = self._prepare(session, ctx, dto.model_dump(mode="python", exclude_unset=True), creating=False)
        self._apply_changes(record, changes)
        self._commit(session)
        session.refresh(record)
        return record

    def delete(self, session: Session, ctx: TenantContext, record_id: uuid.UUID) -> None:
        record = self.get(session, ctx, record_id)
        session.delete(record)
        session.commit()

    def _apply_changes(self, record: Any, changes: dict[str, Any]) -> None:
        for key, value in changes.items():
            setattr(record, key, value)

    @staticmethod
    def _commit(session: Session) -> None:
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="duplicate_record")


@dataclass(slots=True)
class AccountService(RecordService):
    model: ClassVar[type[Base]] = CrmAccount
    search_fields: ClassVar[tuple[str, ...]] = ("name", "domain")
    repository: BaseRepository = AccountRepository()


@dataclass(slots=True)
class ContactService(RecordService):
    model: ClassVar[type[Base]] = CrmContact
    search_fields: ClassVar[tuple[str, ...]] = ("name", "email")
    repository: BaseRepository = ContactRepository()


@dataclass(slots=True)
class DealService(RecordService):
    model: ClassVar[type[Base]] = Deal
    search_fields: ClassVar[tuple[str, ...]] = ("title",)
    repository: BaseRepository = DealRepository()

    def _prepare(self, session: Session, ctx: TenantContext, payload: dict[str, Any], *, creating: bool) -> dict[str, Any]:
        if "amount" in payload:
            payload["amount"] = _to_decimal(payload["amount"]) or Decimal("0")
        if creating:
            payload["deal_number"] = next_sequence_value(session, ctx.tenant_id, "deal_number", DEAL_NUMBER_START)
            if payload.get("stage"):
                payload["stage_changed_at"] = utcnow()
        return payload

    def _apply_changes(self, record: Any, changes: dict[str, Any]) -> None:
        if "stage" in changes and changes["stage"] != record.stage:
            record.stage_changed_at = utcnow()
        for key, value in changes.items():
            setattr(record, key, value)


@dataclass(slots=True)
class TaskService(RecordService):
    model: ClassVar[type[Base]] = CrmTask
    search_fields: ClassVar[tuple[str, ...]] = ("subject",)
    repository: BaseRepository = TaskRepository()

    def _apply_changes(self, record: Any, changes: dict[str, Any]) -> None:
        new_status = changes.get("status")
        if new_status == "done" and record.status != "done":
            record.completed_at = utcnow()
        elif new_status is not None and new_status != "done":
            record.completed_at = None
        for key, value in changes.items():
            setattr(record, key, value)

    def list_for_owner(
        self,
        session: Session,
        ctx: TenantContext,
        *,
        status_filter: str | None = None,
        mine: bool = False,
        limit: int = 200,
    ) -> list[CrmTask]:
        stmt = self._scoped(ctx)
        if status_filter:
            stmt = stmt.where(CrmTask.status == status_filter)
        if mine:
            stmt = stmt.where(CrmTask.owner_user_id == ctx.user_id)
        stmt = stmt.order_by(CrmTask.due_at.asc().nulls_last(), CrmTask.created_at.desc()).limit(limit)
        return list(session.scalars(stmt).all())


@dataclass(slots=True)
class TicketService:
    repository: TicketRepository = TicketRepository()

    def _scoped(self, ctx: TenantContext) -> Select[tuple[SupportTicket]]:
        stmt = select(SupportTicket).options(selectinload(SupportTicket.comments))
        return self.repository.apply_scope_query(stmt, ctx)

    def get(self, session: Session, ctx: TenantContext, ticket_id: uuid.UUID) -> SupportTicket:
        ticket = session.scalar(self._scoped(ctx).where(SupportTicket.id == ticket_id))
        if ticket is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not_found")
        return ticket

    def list(
        self,
        session: Session,
        ctx: TenantContext,
        *,
        q: str | None = None,
        status_filter: str | None = None,
        priority: str | None = None,
        breached: bool = False,
        due_within_minutes: int | None = None,
        now: datetime | None = None,
        limit: int = 200,
    ) -> list[SupportTicket]:
        now = now or utcnow()
        stmt = self._scoped(ctx)
        if q:
            pattern = f"%{q.strip().lower()}%"
            stmt = stmt.where(
                or_(
                    func.lower(SupportTicket.short_description).like(pattern),
                    func.lower(SupportTicket.description).like(pattern),
                )
            )
        if status_filter:
            stmt = stmt.where(SupportTicket.status == status_filter)
        if priority:
            stmt = stmt.where(SupportTicket.priority == priority)
        if breached:
            stmt = stmt.where(
                SupportTicket.sla_due_at.is_not(None),
                SupportTicket.sla_due_at < now,
            )
        if due_within_minutes is not None and due_within_minutes > 0:
            stmt = stmt.where(
                SupportTicket.sla_due_at.is_not(None),
                SupportTicket.sla_due_at >= now,
                SupportTicket.sla_due_at <= now + timedelta(minutes=due_within_minutes),
            )
        stmt = stmt.order_by(SupportTicket.created_at.desc()).limit(limit)
        return list(session.scalars(stmt).all())

    def create(self, session: Session, ctx: TenantContext, dto: TicketCreate) -> SupportTicket:
        short_description = (dto.short_description or dto.title or "").strip()
        if not short_description:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_payload")

        ticket = SupportTicket(
            tenant_id=ctx.tenant_id,
            ticket_number=next_sequence_value(session, ctx.tenant_id, "ticket_number", TICKET_NUMBER_START),
            short_description=short_description,
            description=(dto.description or "")[:TICKET_DESCRIPTION_LIMIT] or None,
            status=dto.status,
            priority=dto.priority,
            account_id=dto.account_id,
            contact_id=dto.contact_id,
            assignee=dto.assignee,
            requester_email=dto.requester_email,
            sla_due_at=dto.sla_due_at,
        )
        session.add(ticket)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="ticket_number_conflict")
        logger.info("ticket.created", extra={"ticket_id": str(ticket.id)})
        return self.get(session, ctx, ticket.id)

    def update(self, session: Session, ctx: TenantContext, ticket_id: uuid.UUID, dto: TicketUpdate) -> SupportTicket:
        ticket = self.get(session, ctx, ticket_id)
        changes = dto.model_dump(mode="python", exclude_unset=True)
        if "description" in changes and changes["description"] is not None:
            changes["description"] = changes["description"][:TICKET_DESCRIPTION_LIMIT]
        for key, value in changes.items():
            setattr(ticket, key, value)
        session.commit()
        return self.get(session, ctx, ticket_id)

    def delete(self, session: Session, ctx: TenantContext, ticket_id: uuid.UUID) -> None:
        session.delete(self.get(session, ctx, ticket_id))
        session.commit()

    def add_comment(
        self,
        session: Session,
        ctx: TenantContext,
        ticket_id: uuid.UUID,
        dto: TicketCommentCreate,
    ) -> SupportTicket:
        ticket = self.get(session, ctx, ticket_id)
        author = dto.author or ctx.email or ctx.user_id
        ticket.comments.append(TicketComment(author=author, body=dto.body))
        ticket.updated_at = utcnow()
        session.commit()
        return self.get(session, ctx, ticket_id)

    def add_system_comment(self, session: Session, tenant_id: str, ticket_id: uuid.UUID, body: str) -> bool:
        ticket = session.scalar(
            select(SupportTicket).where(SupportTicket.id == ticket_id, SupportTicket.tenant_id == tenant_id)
        )
        if ticket is None:
            return False
        session.add(TicketComment(ticket_id=ticket.id, author="system", body=body))
        ticket.updated_at = utcnow()
        session.flush()
        return True

    def metrics(self, session: Session, ctx: TenantContext, now: datetime | None = None) -> TicketMetrics:
        now = now or utcnow()
        stmt = self.repository.apply_scope_query(
            select(SupportTicket.sla_due_at).where(SupportTicket.status.in_(TICKET_ACTIVE_STATUSES)),
            ctx,
        )
        due_dates = [ensure_utc(value) for value in session.scalars(stmt).all()]
        horizon = now + timedelta(minutes=60)
        return TicketMetrics(
            open=len(due_dates),
            breached=sum(1 for due in due_dates if due is not None and due < now),
            due_next_60=sum(1 for due in due_dates if due is not None and now <= due <= horizon),
        )


@dataclass(slots=True)
class RevenueRecordService:
    """Invoices, quotes and renewals; stored here so reporting can aggregate them."""

    repository: RevenueRepository = RevenueRepository()

    def create_invoice(self, session: Session, ctx: TenantContext, dto: InvoiceCreate) -> Invoice:
        payload = dto.model_dump(mode="python")
        total = _to_decimal(payload.pop("total")) or Decimal("0")
        balance = _to_decimal(payload.pop("balance"))
        invoice = Invoice(tenant_id=ctx.tenant_id, total=total, balance=total if balance is None else balance, **payload)
        session.add(invoice)
        session.commit()
        session.refresh(invoice)
        return invoice

    def list_invoices(self, session: Session, ctx: TenantContext, limit: int = 200) -> list[Invoice]:
        stmt = self.repository.apply_scope_query(select(Invoice), ctx).order_by(Invoice.created_at.desc()).limit(limit)
        return list(session.scalars(stmt).all())

    def create_quote(self, session: Session, ctx: TenantContext, dto: QuoteCreate) -> Quote:
        quote = Quote(
            tenant_id=ctx.tenant_id,
            title=dto.title,
            account_id=dto.account_id,
            total=_to_decimal(dto.total) or Decimal("0"),
        )
        session.add(quote)
        session.commit()
        session.refresh(quote)
        return quote

    def list_quotes(self, session: Session, ctx: TenantContext, limit: int = 200) -> list[Quote]:
        stmt = self.repository.apply_scope_query(select(Quote), ctx).order_by(Quote.created_at.desc()).limit(limit)
        return list(session.scalars(stmt).all())

    def accept_quote(self, session: Session, ctx: TenantContext, quote_id: uuid.UUID, dto: QuoteAcceptRequest) -> Quote:
        quote = session.scalar(self.repository.apply_scope_query(select(Quote).where(Quote.id == quote_id), ctx))
        if quote is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="quote_not_found")
        if quote.status == "accepted":
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="quote_already_accepted")
        quote.status = "accepted"
        session.add(
            QuoteAcceptance(
                tenant_id=ctx.tenant_id,
                quote_id=quote.id,
                signer_name=dto.signer_name,
                signer_email=dto.signer_email,
            )
        )
        session.commit()
        session.refresh(quote)
        return quote

    def create_renewal(self, session: Session, ctx: TenantContext, dto: RenewalCreate) -> Renewal:
        payload = dto.model_dump(mode="python")
        payload["mrr"] = _to_decimal(payload["mrr"])
        payload["arr"] = _to_decimal(payload["arr"])
        renewal = Renewal(tenant_id=ctx.tenant_id, **payload)
        session.add(renewal)
        session.commit()
        session.refresh(renewal)
        return renewal

    def list_renewals(self, session: Session, ctx: TenantContext, limit: int = 200) -> list[Renewal]:
        stmt = self.repository.apply_scope_query(select(Renewal), ctx).order_by(Renewal.renewal_date.asc()).limit(limit)
        return list(session.scalars(stmt).all())


account_service = AccountService()
contact_service = ContactService()
deal_service = DealService()
task_service = TaskService()
ticket_service = TicketService()
revenue_record_service = RevenueRecordService()
