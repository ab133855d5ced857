from __future__ import annotations

from datetime import date
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class InboundBase(BaseModel):
    model_config = ConfigDict(extra="ignore")

    external_source: str | None = Field(
        default=None, max_length=64, validation_alias=AliasChoices("external_source", "source")
    )
    external_id: str | None = Field(default=None, max_length=255, validation_alias=AliasChoices("external_id", "id"))
    account_external_source: str | None = Field(default=None, max_length=64)
    account_external_id: str | None = Field(default=None, max_length=255)


class InboundAccount(InboundBase):
    name: str | None = Field(default=None, max_length=255, validation_alias=AliasChoices("name", "account_name"))
    domain: str | None = Field(default=None, max_length=255)
    industry: str | None = Field(default=None, max_length=120)
    website: str | None = Field(default=None, max_length=512)
    phone: str | None = Field(default=None, max_length=64)


class InboundContact(InboundBase):
    name: str | None = Field(default=None, max_length=255, validation_alias=AliasChoices("name", "full_name"))
    email: str | None = Field(default=None, max_length=320)
    phone: str | None = Field(default=None, max_length=64)
    title: str | None = Field(default=None, max_length=120)


class InboundDeal(InboundBase):
    title: str | None = Field(default=None, max_length=255, validation_alias=AliasChoices("title", "name"))
    amount: float | None = None
    stage: str | None = Field(default=None, max_length=120)
    close_date: date | None = None
    forecasted_close_date: date | None = None


class InboundTicket(InboundBase):
    short_description: str | None = Field(
        default=None,
        max_length=255,
        validation_alias=AliasChoices("short_description", "subject", "title"),
    )
    description: str | None = None
    status: str | None = Field(default=None, max_length=32)
    priority: str | None = Field(default=None, max_length=32)
    requester_email: str | None = Field(default=None, max_length=320)


class InboundResult(BaseModel):
    ok: bool = True
    id: UUID
    created: bool
