from dataclasses import dataclass, field

from fastapi import Depends, HTTPException, status
from jose import JWTError, jwt
from sqlalchemy.orm import Session
from starlette.requests import Request

from boaz.auth.sessions import session_service
from boaz.core.config import get_settings
from boaz.core.database import get_db


@dataclass
class AuthUser:
    sub: str
    email: str | None = None
    roles: list[str] = field(default_factory=list)
    tenant_id: str | None = None
    jti: str | None = None


def extract_bearer_token(request: Request) -> str:
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header.replace("Bearer ", "", 1).strip()
    return request.cookies.get("token", "")


def decode_token(token: str) -> dict:
    settings = get_settings()
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])


def issue_token(claims: dict) -> str:
    settings = get_settings()
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def get_current_user(request: Request, db: Session = Depends(get_db)) -> AuthUser:
    token = extract_bearer_token(request)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")

    try:
        payload = decode_token(token)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")

    subject = payload.get("sub")
    if not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="unauthorized")

    jti = payload.get("jti")
    if jti:
        if session_service.is_session_revoked(db, str(jti)):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="session_revoked")
        session_service.update_session_last_used(db, str(jti))

    roles = payload.get("roles", ["user"])
    if not isinstance(roles, list):
        roles = ["user"]
    tenant_id = payload.get("tenant_id")
    return AuthUser(
        sub=str(subject),
        email=payload.get("email"),
        roles=[str(role) for role in roles],
        tenant_id=str(tenant_id) if tenant_id else None,
        jti=str(jti) if jti else None,
    )
