from __future__ import annotations

import base64
import hashlib
import logging
import secrets
import uuid
from collections.abc import Callable
from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from boaz.auth.models import ApiKey
from boaz.auth.schemas import ApiKeyCreate, ApiKeyCreated, ApiKeyRead
from boaz.core.database import get_db, utcnow
from boaz.metrics import observe_api_key_failure
from boaz.platform.tenancy.context import TenantContext
from boaz.platform.tenancy.repository import BaseRepository


logger = logging.getLogger("boaz.auth.api_keys")

API_KEY_PREFIX = "boaz_sk_"
PREFIX_LENGTH = 12


def generate_api_key() -> str:
    raw = base64.urlsafe_b64encode(secrets.token_bytes(32)).decode("ascii").rstrip("=")
    return f"{API_KEY_PREFIX}{raw}"


def hash_api_key(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def extract_api_key(request: Request) -> str | None:
    for header in ("x-boaz-api-key", "x-api-key"):
        value = request.headers.get(header)
        if value and value.strip():
            return value.strip()
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header.replace("Bearer ", "", 1).strip()
        return token or None
    return None


def scopes_allow(granted: list[str], required: list[str]) -> bool:
    if "*" in granted:
        return True
    return all(scope in granted for scope in required)


class ApiKeyRepository(BaseRepository):
    resource = "auth.api_key"


@dataclass(slots=True)
class ApiKeyService:
    repository: ApiKeyRepository = ApiKeyRepository()

    def list_active(self, session: Session, ctx: TenantContext) -> list[ApiKeyRead]:
        stmt = select(ApiKey).where(ApiKey.revoked_at.is_(None)).order_by(ApiKey.created_at.desc()).limit(200)
        rows = session.scalars(self.repository.apply_scope_query(stmt, ctx)).all()
        return [ApiKeyRead.model_validate(row) for row in rows]

    def create(self, session: Session, ctx: TenantContext, dto: ApiKeyCreate) -> ApiKeyCreated:
        scopes = [scope.strip() for scope in (dto.scopes or []) if scope.strip()] or ["*"]
        full_key = generate_api_key()
        record = ApiKey(
            tenant_id=ctx.tenant_id,
            name=dto.name.strip(),
            prefix=full_key[:PREFIX_LENGTH],
            key_hash=hash_api_key(full_key),
            scopes=scopes,
            created_by_user_id=ctx.user_id,
            created_by_email=ctx.email,
        )
        session.add(record)
        session.commit()
        session.refresh(record)
        logger.info("api_key.created", extra={"user_id": ctx.user_id})
        return ApiKeyCreated(item=ApiKeyRead.model_validate(record), api_key=full_key)

    def revoke(self, session: Session, ctx: TenantContext, key_id: uuid.UUID) -> ApiKeyRead:
        stmt = self.repository.apply_scope_query(select(ApiKey).where(ApiKey.id == key_id), ctx)
        record = session.scalar(stmt)
        if record is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not_found")
        if record.revoked_at is None:
            record.revoked_at = utcnow()
            session.commit()
            session.refresh(record)
        return ApiKeyRead.model_validate(record)

    def authenticate(self, session: Session, raw_key: str | None, required_scopes: list[str]) -> ApiKey:
        if not raw_key:
            observe_api_key_failure("missing")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing_api_key")
        if not raw_key.startswith(API_KEY_PREFIX):
            observe_api_key_failure("invalid")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_api_key")

        record = session.scalar(select(ApiKey).where(ApiKey.key_hash == hash_api_key(raw_key)))
        if record is None or record.revoked_at is not None:
            observe_api_key_failure("invalid")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_api_key")

        if not scopes_allow(list(record.scopes or []), required_scopes):
            observe_api_key_failure("scope")
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="insufficient_scope")

        record.last_used_at = utcnow()
        session.commit()
        return record


api_key_service = ApiKeyService()


def require_api_key(*scopes: str) -> Callable[..., TenantContext]:
    """Dependency authenticating an integration call; yields the key's tenant scope."""

    def checker(request: Request, db: Session = Depends(get_db)) -> TenantContext:
        record = api_key_service.authenticate(db, extract_api_key(request), list(scopes))
        request.state.api_key = record
        return TenantContext(
            user_id=f"api_key:{record.id}",
            tenant_id=record.tenant_id,
            email=record.created_by_email,
            roles=["integration"],
            correlation_id=getattr(request.state, "correlation_id", None),
        )

    return checker
