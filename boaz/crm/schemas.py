from __future__ import annotations

from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from boaz.core.types import UTCDateTime


TaskType = Literal["todo", "call", "meeting", "email"]
TaskStatus = Literal["open", "in_progress", "done", "cancelled"]
TicketStatus = Literal["open", "pending", "in_progress", "resolved", "closed"]
TicketPriority = Literal["low", "normal", "high", "urgent"]
ChurnRisk = Literal["Low", "Medium", "High"]


class AccountCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    domain: str | None = Field(default=None, max_length=255)
    industry: str | None = Field(default=None, max_length=120)
    website: str | None = Field(default=None, max_length=512)
    phone: str | None = Field(default=None, max_length=64)
    owner_id: str | None = None


class AccountUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    domain: str | None = Field(default=None, max_length=255)
    industry: str | None = Field(default=None, max_length=120)
    website: str | None = Field(default=None, max_length=512)
    phone: str | None = Field(default=None, max_length=64)
    owner_id: str | None = None


class AccountRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    domain: str | None
    industry: str | None
    website: str | None
    phone: str | None
    owner_id: str | None
    external_source: str | None
    external_id: str | None
    created_at: UTCDateTime
    updated_at: UTCDateTime


class ContactCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=64)
    title: str | None = Field(default=None, max_length=120)
    account_id: UUID | None = None


class ContactUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    email: EmailStr | None = None
    phone: str | None = Field(default=None, max_length=64)
    title: str | None = Field(default=None, max_length=120)
    account_id: UUID | None = None


class ContactRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    account_id: UUID | None
    name: str
    email: str | None
    phone: str | None
    title: str | None
    external_source: str | None
    external_id: str | None
    created_at: UTCDateTime
    updated_at: UTCDateTime


class DealCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    amount: float = Field(default=0, ge=0)
    stage: str | None = Field(default=None, max_length=120)
    owner_id: str | None = None
    account_id: UUID | None = None
    forecasted_close_date: UTCDateTime | None = None
    close_date: UTCDateTime | None = None


class DealUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    amount: float | None = Field(default=None, ge=0)
    stage: str | None = Field(default=None, max_length=120)
    owner_id: str | None = None
    account_id: UUID | None = None
    forecasted_close_date: UTCDateTime | None = None
    close_date: UTCDateTime | None = None


class DealRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    deal_number: int | None
    account_id: UUID | None
    title: str
    amount: float
    stage: str | None
    owner_id: str | None
    forecasted_close_date: UTCDateTime | None
    close_date: UTCDateTime | None
    stage_changed_at: UTCDateTime | None
    created_at: UTCDateTime
    updated_at: UTCDateTime


class TaskCreate(BaseModel):
    type: TaskType = "todo"
    subject: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=4000)
    status: TaskStatus = "open"
    priority: str = Field(default="normal", max_length=32)
    due_at: UTCDateTime | None = None
    owner_user_id: str | None = None
    related_type: str | None = Field(default=None, max_length=64)
    related_id: str | None = Field(default=None, max_length=128)


class TaskUpdate(BaseModel):
    type: TaskType | None = None
    subject: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=4000)
    status: TaskStatus | None = None
    priority: str | None = Field(default=None, max_length=32)
    due_at: UTCDateTime | None = None
    owner_user_id: str | None = None


class TaskRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    type: str
    subject: str
    description: str | None
    status: str
    priority: str
    due_at: UTCDateTime | None
    owner_user_id: str | None
    related_type: str | None
    related_id: str | None
    completed_at: UTCDateTime | None
    created_at: UTCDateTime
    updated_at: UTCDateTime


class TicketCreate(BaseModel):
    short_description: str | None = Field(default=None, max_length=255)
    title: str | None = Field(default=None, max_length=255)
    description: str | None = None
    status: TicketStatus = "open"
    priority: TicketPriority = "normal"
    account_id: UUID | None = None
    contact_id: UUID | None = None
    assignee: str | None = Field(default=None, max_length=255)
    requester_email: EmailStr | None = None
    sla_due_at: UTCDateTime | None = None


class TicketUpdate(BaseModel):
    short_description: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    status: TicketStatus | None = None
    priority: TicketPriority | None = None
    assignee: str | None = Field(default=None, max_length=255)
    sla_due_at: UTCDateTime | None = None


class TicketCommentCreate(BaseModel):
    body: str = Field(min_length=1, max_length=4000)
    author: str | None = Field(default=None, max_length=255)


class TicketCommentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    author: str
    body: str
    created_at: UTCDateTime


class TicketRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    ticket_number: int
    short_description: str
    description: str | None
    status: str
    priority: str
    account_id: UUID | None
    contact_id: UUID | None
    assignee: str | None
    requester_email: str | None
    sla_due_at: UTCDateTime | None
    comments: list[TicketCommentRead] = Field(default_factory=list)
    created_at: UTCDateTime
    updated_at: UTCDateTime


class TicketMetrics(BaseModel):
    open: int
    breached: int
    due_next_60: int


class InvoiceCreate(BaseModel):
    invoice_number: str | None = Field(default=None, max_length=64)
    title: str | None = Field(default=None, max_length=255)
    account_id: UUID | None = None
    status: str = Field(default="open", max_length=32)
    total: float = Field(default=0, ge=0)
    balance: float | None = Field(default=None, ge=0)
    issued_at: UTCDateTime | None = None
    due_date: UTCDateTime | None = None
    paid_at: UTCDateTime | None = None


class InvoiceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    invoice_number: str | None
    title: str | None
    account_id: UUID | None
    status: str
    total: float
    balance: float
    issued_at: UTCDateTime | None
    due_date: UTCDateTime | None
    paid_at: UTCDateTime | None
    created_at: UTCDateTime


class QuoteCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    account_id: UUID | None = None
    total: float = Field(default=0, ge=0)


class QuoteAcceptRequest(BaseModel):
    signer_name: str | None = Field(default=None, max_length=255)
    signer_email: EmailStr | None = None


class QuoteRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    title: str
    account_id: UUID | None
    status: str
    total: float
    created_at: UTCDateTime


class RenewalCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    account_id: UUID | None = None
    status: str = Field(default="Active", max_length=32)
    renewal_date: UTCDateTime | None = None
    mrr: float | None = Field(default=None, ge=0)
    arr: float | None = Field(default=None, ge=0)
    churn_risk: ChurnRisk | None = None


class RenewalRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    account_id: UUID | None
    status: str
    renewal_date: UTCDateTime | None
    mrr: float | None
    arr: float | None
    churn_risk: str | None
    created_at: UTCDateTime
