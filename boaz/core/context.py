from dataclasses import dataclass

from jose import JWTError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from boaz.context import reset_tenant_id, set_tenant_id
from boaz.core.auth import decode_token, extract_bearer_token
from boaz.core.config import get_settings


@dataclass
class RequestContext:
    request_id: str
    correlation_id: str
    user_id: str | None
    tenant_id: str


def _resolve_tenant_id(request: Request) -> str:
    """A signed-in caller is pinned to its token's tenant; only anonymous requests may name one."""
    default_tenant = get_settings().default_tenant_id
    token = extract_bearer_token(request)
    if token:
        try:
            claims = decode_token(token)
        except JWTError:
            claims = None
        if claims is not None:
            return str(claims.get("tenant_id") or default_tenant)
    return request.headers.get("x-tenant-id") or default_tenant


class RequestContextMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        correlation_id = getattr(request.state, "correlation_id", None)
        tenant_id = _resolve_tenant_id(request)
        request.state.context = RequestContext(
            request_id=correlation_id or "",
            correlation_id=correlation_id or "",
            user_id=None,
            tenant_id=tenant_id,
        )
        token = set_tenant_id(tenant_id)
        try:
            response = await call_next(request)
        finally:
            reset_tenant_id(token)
        response.headers["x-request-id"] = request.state.context.request_id
        return response
