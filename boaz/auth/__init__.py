from boaz.auth.api_keys import ApiKeyService, api_key_service, require_api_key
from boaz.auth.models import ApiKey, UserSession
from boaz.auth.sessions import SessionService, session_service

__all__ = [
    "ApiKey",
    "UserSession",
    "ApiKeyService",
    "api_key_service",
    "require_api_key",
    "SessionService",
    "session_service",
]
