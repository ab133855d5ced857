from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from boaz.auth.api_keys import api_key_service
from boaz.auth.schemas import (
    ApiKeyCreate,
    ApiKeyCreated,
    ApiKeyRead,
    BulkRevokeRequest,
    SessionRevokeCount,
    SessionRevokeResult,
    UserSessionRead,
)
from boaz.auth.sessions import session_service
from boaz.core.auth import AuthUser, get_current_user
from boaz.core.database import get_db
from boaz.core.envelope import Envelope, ItemList, ok, ok_items
from boaz.core.rbac import require_roles
from boaz.platform.tenancy.context import TenantContext
from boaz.platform.tenancy.deps import get_tenant_context


sessions_router = APIRouter(prefix="/api/auth/sessions", tags=["auth.sessions"])
admin_sessions_router = APIRouter(prefix="/api/auth/admin/sessions", tags=["auth.admin"])
api_keys_router = APIRouter(prefix="/api/crm/integrations/api-keys", tags=["integrations.api_keys"])


def _sessions(rows) -> list[dict]:  # type: ignore[no-untyped-def]
    return [UserSessionRead.model_validate(row).model_dump(mode="json") for row in rows]


@sessions_router.get("", response_model=Envelope[ItemList[UserSessionRead]])
def list_my_sessions(db: Session = Depends(get_db), user: AuthUser = Depends(get_current_user)) -> dict:
    return ok_items(_sessions(session_service.get_user_sessions(db, user.sub)))


@sessions_router.delete("/{jti}", response_model=Envelope[SessionRevokeResult])
def revoke_my_session(jti: str, db: Session = Depends(get_db), user: AuthUser = Depends(get_current_user)) -> dict:
    if not session_service.revoke_session(db, jti, user.sub):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="session_not_found")
    return ok({"revoked": True})


@sessions_router.post("/revoke-others", response_model=Envelope[SessionRevokeCount])
def revoke_other_sessions(db: Session = Depends(get_db), user: AuthUser = Depends(get_current_user)) -> dict:
    count = session_service.revoke_all_user_sessions(db, user.sub, exclude_jti=user.jti)
    return ok({"count": count})


@admin_sessions_router.get("", response_model=Envelope[ItemList[UserSessionRead]])
def admin_list_sessions(
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
    _: AuthUser = Depends(require_roles("admin")),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok_items(_sessions(session_service.get_all_sessions(db, ctx, limit=limit)))


@admin_sessions_router.get("/users/{user_id}", response_model=Envelope[ItemList[UserSessionRead]])
def admin_list_user_sessions(
    user_id: str,
    db: Session = Depends(get_db),
    _: AuthUser = Depends(require_roles("admin")),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok_items(_sessions(session_service.get_sessions_by_user_id(db, ctx, user_id)))


@admin_sessions_router.delete("/{jti}", response_model=Envelope[SessionRevokeResult])
def admin_revoke_session(
    jti: str,
    db: Session = Depends(get_db),
    _: AuthUser = Depends(require_roles("admin")),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    if not session_service.admin_revoke_session(db, ctx, jti):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="session_not_found")
    return ok({"revoked": True})


@admin_sessions_router.post("/bulk-revoke", response_model=Envelope[SessionRevokeCount])
def admin_bulk_revoke(
    payload: BulkRevokeRequest,
    db: Session = Depends(get_db),
    _: AuthUser = Depends(require_roles("admin")),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok({"count": session_service.admin_bulk_revoke_sessions(db, ctx, payload.jtis)})


@admin_sessions_router.post("/revoke-all", response_model=Envelope[SessionRevokeCount])
def admin_revoke_all(
    db: Session = Depends(get_db),
    user: AuthUser = Depends(require_roles("admin")),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok({"count": session_service.admin_revoke_all_sessions(db, ctx, exclude_jti=user.jti)})


@api_keys_router.get("", response_model=Envelope[ItemList[ApiKeyRead]])
def list_api_keys(db: Session = Depends(get_db), ctx: TenantContext = Depends(get_tenant_context)) -> dict:
    return ok_items(api_key_service.list_active(db, ctx))


@api_keys_router.post("", response_model=Envelope[ApiKeyCreated], status_code=status.HTTP_201_CREATED)
def create_api_key(
    payload: ApiKeyCreate,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(api_key_service.create(db, ctx, payload))


@api_keys_router.delete("/{key_id}", response_model=Envelope[ApiKeyRead])
def revoke_api_key(
    key_id: uuid.UUID,
    db: Session = Depends(get_db),
    ctx: TenantContext = Depends(get_tenant_context),
) -> dict:
    return ok(api_key_service.revoke(db, ctx, key_id))
