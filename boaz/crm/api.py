from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from boaz.core.database import get_db
from boaz.core.envelope import Envelope, ItemList, ok, ok_items
from boaz.crm.schemas import (
    AccountCreate,
    AccountRead,
    AccountUpdate,
    ContactCreate,
    ContactRead,
    ContactUpdate,
    DealCreate,
    DealRead,
    DealUpdate,
    InvoiceCreate,
    InvoiceRead,
    QuoteAcceptRequest,
    QuoteCreate,
    QuoteRead,
    RenewalCreate,
    RenewalRead,
    TaskCreate,
    TaskRead,
    TaskUpdate,
    TicketCommentCreate,
    TicketCreate,
    TicketMetrics,
    TicketRead,
    TicketUpdate,
)
from boaz.crm.service import (
    account_service,
    contact_service,
    deal_service,
    revenue_record_service,
    task_service,
    ticket_service,
)
from boaz.platform.tenancy.context import TenantContext
from boaz.platform.tenancy.deps import get_tenant_context


accounts_router = APIRouter(prefix="/api/crm/accounts", tags=["crm.accounts"])
contacts_router = APIRouter(prefix="/api/crm/contacts", tags=["crm.contacts"])
deals_router = APIRouter(prefix="/api/crm/deals", tags=["crm.deals"])
tasks_router = APIRouter(prefix="/api/crm/tasks", tags=["crm.tasks"])
tickets_router = APIRouter(prefix="/api/crm/support/tickets", tags=["crm.support"])
revenue_router = APIRouter(prefix="/api/crm", tags=["crm.revenue"])


def _dump(schema, rows) -> list[dict]:  # type: ignore[no-untyped-def]
    return [schema.model_validate(row).model_dump(mode="json") for row in rows]


@accounts_router.get("", response_model=Envelope[ItemList[AccountRead]])
def list_accounts(
    q: str | None = Query(default=None),
    limit: int = Query(default=200, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok_items(_dump(AccountRead, account_service.list(db, ctx, q=q, limit=limit)))


@accounts_router.post("", response_model=Envelope[AccountRead], status_code=status.HTTP_201_CREATED)
def create_account(payload: AccountCreate, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return ok(AccountRead.model_validate(account_service.create(db, ctx, payload)))


@accounts_router.get("/{account_id}", response_model=Envelope[AccountRead])
def get_account(account_id: uuid.UUID, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return ok(AccountRead.model_validate(account_service.get(db, ctx, account_id)))


@accounts_router.put("/{account_id}", response_model=Envelope[AccountRead])
def update_account(
    account_id: uuid.UUID,
    payload: AccountUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(AccountRead.model_validate(account_service.update(db, ctx, account_id, payload)))


@accounts_router.delete("/{account_id}", response_model=Envelope[dict])
def delete_account(account_id: uuid.UUID, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    account_service.delete(db, ctx, account_id)
    return ok({"ok": True})


@contacts_router.get("", response_model=Envelope[ItemList[ContactRead]])
def list_contacts(
    q: str | None = Query(default=None),
    limit: int = Query(default=200, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok_items(_dump(ContactRead, contact_service.list(db, ctx, q=q, limit=limit)))


@contacts_router.post("", response_model=Envelope[ContactRead], status_code=status.HTTP_201_CREATED)
def create_contact(payload: ContactCreate, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return ok(ContactRead.model_validate(contact_service.create(db, ctx, payload)))


@contacts_router.get("/{contact_id}", response_model=Envelope[ContactRead])
def get_contact(contact_id: uuid.UUID, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return ok(ContactRead.model_validate(contact_service.get(db, ctx, contact_id)))


@contacts_router.put("/{contact_id}", response_model=Envelope[ContactRead])
def update_contact(
    contact_id: uuid.UUID,
    payload: ContactUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(ContactRead.model_validate(contact_service.update(db, ctx, contact_id, payload)))


@contacts_router.delete("/{contact_id}", response_model=Envelope[dict])
def delete_contact(contact_id: uuid.UUID, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    contact_service.delete(db, ctx, contact_id)
    return ok({"ok": True})


@deals_router.get("", response_model=Envelope[ItemList[DealRead]])
def list_deals(
    q: str | None = Query(default=None),
    limit: int = Query(default=200, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok_items(_dump(DealRead, deal_service.list(db, ctx, q=q, limit=limit)))


@deals_router.post("", response_model=Envelope[DealRead], status_code=status.HTTP_201_CREATED)
def create_deal(payload: DealCreate, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return ok(DealRead.model_validate(deal_service.create(db, ctx, payload)))


@deals_router.get("/{deal_id}", response_model=Envelope[DealRead])
def get_deal(deal_id: uuid.UUID, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return ok(DealRead.model_validate(deal_service.get(db, ctx, deal_id)))


@deals_router.put("/{deal_id}", response_model=Envelope[DealRead])
def update_deal(
    deal_id: uuid.UUID,
    payload: DealUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(DealRead.model_validate(deal_service.update(db, ctx, deal_id, payload)))


@deals_router.delete("/{deal_id}", response_model=Envelope[dict])
def delete_deal(deal_id: uuid.UUID, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    deal_service.delete(db, ctx, deal_id)
    return ok({"ok": True})


@tasks_router.get("", response_model=Envelope[ItemList[TaskRead]])
def list_tasks(
    status_filter: str | None = Query(default=None, alias="status"),
    mine: bool = Query(default=False),
    limit: int = Query(default=200, ge=1, le=500),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    rows = task_service.list_for_owner(db, ctx, status_filter=status_filter, mine=mine, limit=limit)
    return ok_items(_dump(TaskRead, rows))


@tasks_router.post("", response_model=Envelope[TaskRead], status_code=status.HTTP_201_CREATED)
def create_task(payload: TaskCreate, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    if payload.owner_user_id is None:
        payload = payload.model_copy(update={"owner_user_id": ctx.user_id})
    return ok(TaskRead.model_validate(task_service.create(db, ctx, payload)))


@tasks_router.put("/{task_id}", response_model=Envelope[TaskRead])
def update_task(
    task_id: uuid.UUID,
    payload: TaskUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(TaskRead.model_validate(task_service.update(db, ctx, task_id, payload)))


@tasks_router.delete("/{task_id}", response_model=Envelope[dict])
def delete_task(task_id: uuid.UUID, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    task_service.delete(db, ctx, task_id)
    return ok({"ok": True})


@tickets_router.get("", response_model=Envelope[ItemList[TicketRead]])
def list_tickets(
    q: str | None = Query(default=None),
    status_filter: str | None = Query(default=None, alias="status"),
    priority: str | None = Query(default=None),
    breached: str | None = Query(default=None),
    due_within: int | None = Query(default=None, alias="dueWithin", ge=1),
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    rows = ticket_service.list(
        db,
        ctx,
        q=q,
        status_filter=status_filter,
        priority=priority,
        breached=breached in {"1", "true"},
        due_within_minutes=due_within,
    )
    return ok_items(_dump(TicketRead, rows))


@tickets_router.get("/metrics", response_model=Envelope[TicketMetrics])
def ticket_metrics(db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return ok(ticket_service.metrics(db, ctx))


@tickets_router.post("", response_model=Envelope[TicketRead], status_code=status.HTTP_201_CREATED)
def create_ticket(payload: TicketCreate, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return ok(TicketRead.model_validate(ticket_service.create(db, ctx, payload)))


@tickets_router.get("/{ticket_id}", response_model=Envelope[TicketRead])
def get_ticket(ticket_id: uuid.UUID, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return ok(TicketRead.model_validate(ticket_service.get(db, ctx, ticket_id)))


@tickets_router.put("/{ticket_id}", response_model=Envelope[TicketRead])
def update_ticket(
    ticket_id: uuid.UUID,
    payload: TicketUpdate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(TicketRead.model_validate(ticket_service.update(db, ctx, ticket_id, payload)))


@tickets_router.delete("/{ticket_id}", response_model=Envelope[dict])
def delete_ticket(ticket_id: uuid.UUID, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    ticket_service.delete(db, ctx, ticket_id)
    return ok({"ok": True})


@tickets_router.post("/{ticket_id}/comments", response_model=Envelope[TicketRead], status_code=status.HTTP_201_CREATED)
def add_ticket_comment(
    ticket_id: uuid.UUID,
    payload: TicketCommentCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(TicketRead.model_validate(ticket_service.add_comment(db, ctx, ticket_id, payload)))


@revenue_router.get("/invoices", response_model=Envelope[ItemList[InvoiceRead]])
def list_invoices(db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return ok_items(_dump(InvoiceRead, revenue_record_service.list_invoices(db, ctx)))


@revenue_router.post("/invoices", response_model=Envelope[InvoiceRead], status_code=status.HTTP_201_CREATED)
def create_invoice(payload: InvoiceCreate, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return ok(InvoiceRead.model_validate(revenue_record_service.create_invoice(db, ctx, payload)))


@revenue_router.get("/quotes", response_model=Envelope[ItemList[QuoteRead]])
def list_quotes(db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return ok_items(_dump(QuoteRead, revenue_record_service.list_quotes(db, ctx)))


@revenue_router.post("/quotes", response_model=Envelope[QuoteRead], status_code=status.HTTP_201_CREATED)
def create_quote(payload: QuoteCreate, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return ok(QuoteRead.model_validate(revenue_record_service.create_quote(db, ctx, payload)))


@revenue_router.post("/quotes/{quote_id}/accept", response_model=Envelope[QuoteRead])
def accept_quote(
    quote_id: uuid.UUID,
    payload: QuoteAcceptRequest,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(QuoteRead.model_validate(revenue_record_service.accept_quote(db, ctx, quote_id, payload)))


@revenue_router.get("/renewals", response_model=Envelope[ItemList[RenewalRead]])
def list_renewals(db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return ok_items(_dump(RenewalRead, revenue_record_service.list_renewals(db, ctx)))


@revenue_router.post("/renewals", response_model=Envelope[RenewalRead], status_code=status.HTTP_201_CREATED)
def create_renewal(payload: RenewalCreate, db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return ok(RenewalRead.model_validate(revenue_record_service.create_renewal(db, ctx, payload)))
