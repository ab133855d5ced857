from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from sqlalchemy import select, union
from sqlalchemy.orm import Session, sessionmaker

from boaz.auth.sessions import session_service
from boaz.context import reset_correlation_id, set_correlation_id
from boaz.core.config import get_settings
from boaz.core.database import SessionLocal, utcnow
from boaz.crm.models import CrmAccount, Deal, Invoice, Quote, QuoteAcceptance, Renewal, SupportTicket
from boaz.crm.reporting.service import reporting_service
from boaz.crm.surveys.models import SurveyResponse
from boaz.marketing.models import MarketingEvent, MarketingUnsubscribe
from boaz.metrics import observe_job
from boaz.platform.tenancy.context import TenantContext
from boaz.scheduler.service import scheduler_service


logger = logging.getLogger("boaz.jobs")
tracer = trace.get_tracer("boaz.jobs")

REPORTING_SNAPSHOTS = "reporting.snapshots"
SCHEDULER_REMINDERS = "scheduler.reminders"
SESSION_CLEANUP = "auth.session_cleanup"

SYSTEM_USER = "system:jobs"


def known_tenant_ids(session: Session) -> list[str]:
    stmt = union(
        select(CrmAccount.tenant_id),
        select(Deal.tenant_id),
        select(SupportTicket.tenant_id),
        select(Quote.tenant_id),
        select(QuoteAcceptance.tenant_id),
        select(Invoice.tenant_id),
        select(Renewal.tenant_id),
        select(MarketingEvent.tenant_id),
        select(MarketingUnsubscribe.tenant_id),
        select(SurveyResponse.tenant_id),
    )
    tenant_ids = {str(value) for value in session.scalars(stmt).all() if value}
    tenant_ids.add(get_settings().default_tenant_id)
    return sorted(tenant_ids)


def run_reporting_snapshots(session: Session, now: datetime | None = None) -> int:
    if get_settings().reporting_snapshots_disabled:
        return 0
    created = 0
    for tenant_id in known_tenant_ids(session):
        ctx = TenantContext(user_id=SYSTEM_USER, tenant_id=tenant_id, roles=["system"])
        _, was_created = reporting_service.run_daily(session, ctx, now=now)
        created += int(was_created)
    return created


def run_scheduler_reminders(session: Session, now: datetime | None = None) -> int:
    return scheduler_service.send_due_reminders(session, now=now)


def run_session_cleanup(session: Session, now: datetime | None = None) -> int:
    return session_service.cleanup_old_sessions(session, get_settings().session_retention_days, now=now or utcnow())


JOBS: dict[str, Callable[[Session, datetime | None], int]] = {
    REPORTING_SNAPSHOTS: run_reporting_snapshots,
    SCHEDULER_REMINDERS: run_scheduler_reminders,
    SESSION_CLEANUP: run_session_cleanup,
}


@dataclass(slots=True)
class JobRunner:
    session_factory: sessionmaker = SessionLocal

    def run(self, job_type: str, now: datetime | None = None) -> int:
        job = JOBS[job_type]
        job_id = str(uuid.uuid4())
        token = set_correlation_id(job_id)
        started = time.perf_counter()
        final_status = "Failed"

        with tracer.start_as_current_span("boaz.job.run") as span:
            span.set_attribute("job_id", job_id)
            span.set_attribute("job_type", job_type)
            logger.info(
                "job.started",
                extra={"job_id": job_id, "job_type": job_type, "status": "Running", "duration_ms": 0.0},
            )
            session = self.session_factory()
            try:
                count = job(session, now)
                final_status = "Succeeded"
                logger.info(
                    "job.finished",
                    extra={
                        "job_id": job_id,
                        "job_type": job_type,
                        "status": final_status,
                        "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                        "count": count,
                    },
                )
                return count
            except Exception as exc:
                session.rollback()
                span.record_exception(exc)
                span.set_status(Status(StatusCode.ERROR, str(exc)))
                logger.error(
                    "job.finished",
                    extra={
                        "job_id": job_id,
                        "job_type": job_type,
                        "status": final_status,
                        "duration_ms": round((time.perf_counter() - started) * 1000, 2),
                        "error": str(exc)[:2000],
                    },
                )
                raise
            finally:
                session.close()
                observe_job(job_type, final_status, time.perf_counter() - started)
                reset_correlation_id(token)


job_runner = JobRunner()
