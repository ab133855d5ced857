from __future__ import annotations

from fastapi import Depends, Request

from boaz.context import get_correlation_id
from boaz.core.auth import AuthUser, get_current_user
from boaz.core.config import get_settings
from boaz.platform.tenancy.context import TenantContext


def get_tenant_context(
    request: Request,
    auth_user: AuthUser = Depends(get_current_user),
) -> TenantContext:
    correlation_id = get_correlation_id() or getattr(getattr(request.state, "context", None), "request_id", None)
    # the x-tenant-id header never overrides the token
    tenant_id = auth_user.tenant_id or get_settings().default_tenant_id
    context = getattr(request.state, "context", None)
    if context is not None:
        context.user_id = auth_user.sub
        context.tenant_id = tenant_id
    return TenantContext(
        user_id=auth_user.sub,
        tenant_id=tenant_id,
        email=auth_user.email,
        roles=list(auth_user.roles),
        correlation_id=correlation_id,
    )


def get_public_tenant_id(request: Request) -> str:
    """Tenant for unauthenticated routes, resolved by the request context middleware."""
    context = getattr(request.state, "context", None)
    return getattr(context, "tenant_id", None) or get_settings().default_tenant_id
