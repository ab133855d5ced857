from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class UserSessionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tenant_id: str
    jti: str
    user_id: str
    email: str
    ip_address: str | None
    user_agent: str | None
    created_at: datetime
    last_used_at: datetime
    revoked: bool


class SessionRevokeResult(BaseModel):
    revoked: bool


class SessionRevokeCount(BaseModel):
    count: int


class BulkRevokeRequest(BaseModel):
    jtis: list[str] = Field(default_factory=list, max_length=1000)


class ApiKeyCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    scopes: list[str] | None = Field(default=None, max_length=50)


class ApiKeyRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    prefix: str
    scopes: list[str]
    created_at: datetime
    created_by_email: str | None
    last_used_at: datetime | None
    revoked_at: datetime | None


class ApiKeyCreated(BaseModel):
    item: ApiKeyRead
    api_key: str
