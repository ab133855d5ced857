from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass
from typing import Any

from fastapi.responses import JSONResponse
from jose import JWTError
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from boaz.auth.api_keys import API_KEY_PREFIX, extract_api_key, hash_api_key
from boaz.context import get_correlation_id
from boaz.core.auth import decode_token, extract_bearer_token
from boaz.core.config import get_settings


@dataclass
class _BucketState:
    tokens: float
    last_refill: float


class _TokenBucketLimiter:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._buckets: dict[tuple[str, str], _BucketState] = {}

    def take(self, caller_id: str, route_group: str, capacity: int, window_seconds: int) -> tuple[bool, int]:
        if capacity <= 0:
            return False, window_seconds

        now = time.monotonic()
        refill_rate = capacity / float(window_seconds)
        key = (caller_id, route_group)

        with self._lock:
            current = self._buckets.get(key)
            if current is None:
                current = _BucketState(tokens=float(capacity), last_refill=now)
                self._buckets[key] = current

            elapsed = max(0.0, now - current.last_refill)
            current.tokens = min(float(capacity), current.tokens + (elapsed * refill_rate))
            current.last_refill = now

            if current.tokens < 1.0:
                retry_after = max(1, math.ceil((1.0 - current.tokens) / refill_rate))
                return False, retry_after

            current.tokens -= 1.0
            return True, 0

    def clear(self) -> None:
        with self._lock:
            self._buckets.clear()


_limiter = _TokenBucketLimiter()


class MutationRateLimitMiddleware(BaseHTTPMiddleware):
    """Token bucket per caller and route group for mutating /api requests."""

    mutating_methods = {"POST", "PUT", "PATCH", "DELETE"}

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        settings = get_settings()
        if settings.rate_limit_disabled:
            return await call_next(request)

        path = request.url.path
        if not path.startswith("/api/") or request.method.upper() not in self.mutating_methods:
            return await call_next(request)

        allowed, retry_after = _limiter.take(
            caller_id=_resolve_caller_id(request),
            route_group=_resolve_route_group(path),
            capacity=settings.rate_limit_mutations_per_minute,
            window_seconds=60,
        )
        if allowed:
            return await call_next(request)

        response = JSONResponse(status_code=429, content={"data": None, "error": "rate_limited"})
        response.headers["Retry-After"] = str(retry_after)
        correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
        if correlation_id:
            response.headers["x-correlation-id"] = correlation_id
        return response


def _resolve_route_group(path: str) -> str:
    parts = [part for part in path.split("/") if part]
    # /api/<module>/<resource>/...
    return ".".join(parts[1:3]) or "api"


def _resolve_caller_id(request: Request) -> str:
    api_key = extract_api_key(request)
    from_header = bool(request.headers.get("x-boaz-api-key") or request.headers.get("x-api-key"))
    if api_key and (from_header or api_key.startswith(API_KEY_PREFIX)):
        # keys share a short public prefix, so bucket on the digest
        return f"key:{hash_api_key(api_key)[:24]}"

    token = extract_bearer_token(request)
    if not token:
        client = request.client
        return f"ip:{client.host}" if client is not None else "anonymous"

    try:
        payload: dict[str, Any] = decode_token(token)
    except JWTError:
        return "anonymous"

    subject = payload.get("sub")
    if subject is None:
        return "anonymous"
    return str(subject)


def reset_rate_limiter() -> None:
    _limiter.clear()
