from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session
from sqlalchemy.sql import Select

from boaz.auth.models import UserSession
from boaz.core.database import utcnow
from boaz.platform.tenancy.context import TenantContext
from boaz.platform.tenancy.repository import BaseRepository


logger = logging.getLogger("boaz.auth.sessions")


class SessionRepository(BaseRepository):
    resource = "auth.session"


@dataclass(slots=True)
class SessionService:
    """Server-side records of issued JWTs, keyed by the token's jti claim."""

    repository: SessionRepository = SessionRepository()

    def create_session(
        self,
        session: Session,
        *,
        jti: str,
        user_id: str,
        email: str,
        tenant_id: str,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> UserSession:
        if not user_id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="invalid_user_id")
        now = utcnow()
        record = UserSession(
            tenant_id=tenant_id,
            jti=jti,
            user_id=user_id,
            email=email,
            ip_address=ip_address,
            user_agent=user_agent[:512] if user_agent else None,
            created_at=now,
            last_used_at=now,
            revoked=False,
        )
        session.add(record)
        session.commit()
        session.refresh(record)
        logger.info("session.created", extra={"user_id": user_id, "jti": jti})
        return record

    def update_session_last_used(self, session: Session, jti: str) -> None:
        session.execute(
            update(UserSession)
            .where(UserSession.jti == jti, UserSession.revoked.is_(False))
            .values(last_used_at=utcnow())
        )
        session.commit()

    def revoke_session(self, session: Session, jti: str, user_id: str) -> bool:
        result = session.execute(
            update(UserSession)
            .where(UserSession.jti == jti, UserSession.user_id == user_id, UserSession.revoked.is_(False))
            .values(revoked=True)
        )
        session.commit()
        revoked = (result.rowcount or 0) > 0
        if revoked:
            logger.info("session.revoked", extra={"user_id": user_id, "jti": jti})
        return revoked

    def revoke_all_user_sessions(self, session: Session, user_id: str, exclude_jti: str | None = None) -> int:
        stmt = update(UserSession).where(UserSession.user_id == user_id, UserSession.revoked.is_(False))
        if exclude_jti:
            stmt = stmt.where(UserSession.jti != exclude_jti)
        result = session.execute(stmt.values(revoked=True))
        session.commit()
        count = result.rowcount or 0
        logger.info("session.revoked_all", extra={"user_id": user_id, "count": count})
        return count

    def get_user_sessions(self, session: Session, user_id: str) -> list[UserSession]:
        stmt = (
            select(UserSession)
            .where(UserSession.user_id == user_id, UserSession.revoked.is_(False))
            .order_by(UserSession.last_used_at.desc())
        )
        return list(session.scalars(stmt).all())

    def is_session_revoked(self, session: Session, jti: str) -> bool:
        record = session.scalar(select(UserSession).where(UserSession.jti == jti))
        return bool(record is not None and record.revoked)

    # admin operations, confined to the admin's tenant

    def _scoped_ids(self, ctx: TenantContext, *criteria: Any) -> Select[Any]:
        return self.repository.apply_scope_query(select(UserSession.id).where(*criteria), ctx)

    def _revoke_where(self, session: Session, ctx: TenantContext, *criteria: Any) -> int:
        ids = self._scoped_ids(ctx, UserSession.revoked.is_(False), *criteria)
        stmt = update(UserSession).where(UserSession.id.in_(ids)).values(revoked=True)
        result = session.execute(stmt.execution_options(synchronize_session=False))
        session.commit()
        return result.rowcount or 0

    def get_all_sessions(self, session: Session, ctx: TenantContext, limit: int = 100) -> list[UserSession]:
        stmt = (
            select(UserSession)
            .where(UserSession.revoked.is_(False))
            .order_by(UserSession.last_used_at.desc())
            .limit(limit)
        )
        return list(session.scalars(self.repository.apply_scope_query(stmt, ctx)).all())

    def get_sessions_by_user_id(self, session: Session, ctx: TenantContext, user_id: str) -> list[UserSession]:
        stmt = select(UserSession).where(UserSession.user_id == user_id).order_by(UserSession.last_used_at.desc())
        return list(session.scalars(self.repository.apply_scope_query(stmt, ctx)).all())

    def admin_revoke_session(self, session: Session, ctx: TenantContext, jti: str) -> bool:
        return self._revoke_where(session, ctx, UserSession.jti == jti) > 0

    def admin_bulk_revoke_sessions(self, session: Session, ctx: TenantContext, jtis: list[str]) -> int:
        if not jtis:
            return 0
        return self._revoke_where(session, ctx, UserSession.jti.in_(jtis))

    def admin_revoke_all_sessions(self, session: Session, ctx: TenantContext, exclude_jti: str | None = None) -> int:
        criteria = [UserSession.jti != exclude_jti] if exclude_jti else []
        count = self._revoke_where(session, ctx, *criteria)
        logger.warning("session.admin_revoked_all", extra={"count": count})
        return count

    def cleanup_old_sessions(self, session: Session, retention_days: int = 30, now: datetime | None = None) -> int:
        cutoff = (now or utcnow()) - timedelta(days=retention_days)
        result = session.execute(
            delete(UserSession).where(UserSession.revoked.is_(True), UserSession.last_used_at < cutoff)
        )
        session.commit()
        return result.rowcount or 0


session_service = SessionService()
