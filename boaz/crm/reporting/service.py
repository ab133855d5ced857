"""Cross-module KPI overview and stored snapshots of it.

All date math is UTC. A range is half-open: ``[start, end_exclusive)``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from boaz.core.database import ensure_utc, utcnow
from boaz.crm.models import Deal, Invoice, Quote, QuoteAcceptance, Renewal, SupportTicket
from boaz.crm.reporting.models import ReportingSnapshot
from boaz.crm.reporting.schemas import (
    AgingBucket,
    EngagedSegmentItem,
    PipelineDealItem,
    ReportingKpis,
    ReportingLists,
    ReportingOverview,
    ReportRange,
)
from boaz.crm.surveys.models import SurveyResponse
from boaz.marketing.models import MarketingEvent, MarketingSegment, MarketingUnsubscribe
from boaz.platform.tenancy.context import TenantContext
from boaz.platform.tenancy.repository import BaseRepository


logger = logging.getLogger("boaz.crm.reporting")

CLOSED_WON_STAGES = frozenset({"Closed Won", "Contract Signed / Closed Won"})
CLOSED_LOST_STAGES = frozenset({"Closed Lost"})
OPEN_TICKET_STATUSES = ("open", "in_progress")
ACTIVE_RENEWAL_STATUSES = ("Active", "Pending Renewal")
CLOSED_INVOICE_STATUSES = ("void", "uncollectible")
AGING_BUCKETS = ("current", "1_30", "31_60", "61_90", "90_plus")
DEFAULT_RANGE_DAYS = 30
SNAPSHOT_LIST_DEFAULT = 20
SNAPSHOT_LIST_MAX = 100
ROW_LIMIT = 5000


class SnapshotRepository(BaseRepository):
    resource = "crm.reporting_snapshot"


def _number(value: Decimal | float | int | None) -> float:
    if value is None:
        return 0.0
    result = float(value)
    return result if math.isfinite(result) else 0.0


def _parse_day(raw: str | None, field: str) -> date | None:
    if raw is None or not raw.strip():
        return None
    value = raw.strip()
    try:
        if len(value) == 10:
            return date.fromisoformat(value)
        return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00"))).date()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"invalid_{field}")


def _day_start(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def get_range(
    start_raw: str | None = None,
    end_raw: str | None = None,
    *,
    now: datetime | None = None,
) -> tuple[datetime, datetime]:
    """Resolve ``startDate``/``endDate`` query values to ``(start, end_exclusive)``.

    With both dates the range covers whole days ``start..end``. Otherwise it is the
    30 days ending at the start of tomorrow.
    """
    start_day = _parse_day(start_raw, "startDate")
    end_day = _parse_day(end_raw, "endDate")
    if start_day is not None and end_day is not None:
        return _day_start(start_day), _day_start(end_day + timedelta(days=1))
    current = ensure_utc(now) if now is not None else utcnow()
    end_exclusive = _day_start(current.date() + timedelta(days=1))
    return end_exclusive - timedelta(days=DEFAULT_RANGE_DAYS), end_exclusive


def _renewal_mrr(renewal: Renewal) -> float:
    if renewal.mrr is not None:
        return _number(renewal.mrr)
    if renewal.arr is not None:
        return _number(renewal.arr) / 12
    return 0.0


def _renewal_arr(renewal: Renewal) -> float:
    if renewal.arr is not None:
        return _number(renewal.arr)
    if renewal.mrr is not None:
        return _number(renewal.mrr) * 12
    return 0.0


def _aging_bucket(overdue_days: int) -> str:
    if overdue_days <= 0:
        return "current"
    if overdue_days <= 30:
        return "1_30"
    if overdue_days <= 60:
        return "31_60"
    if overdue_days <= 90:
        return "61_90"
    return "90_plus"


class OverviewRepository(BaseRepository):
    resource = "crm.reporting_overview"


_overview_repository = OverviewRepository()


def _count(session: Session, ctx: TenantContext, column: Any, *criteria: Any) -> int:
    scoped = _overview_repository.apply_scope_query(select(column).where(*criteria), ctx)
    return int(session.scalar(select(func.count()).select_from(scoped.subquery())) or 0)


def compute_overview(
    session: Session,
    ctx: TenantContext,
    start: datetime,
    end_exclusive: datetime,
    now: datetime | None = None,
) -> ReportingOverview:
    now = ensure_utc(now) if now is not None else utcnow()
    today_start = _day_start(now.date())
    range_days = max(1, math.ceil((end_exclusive - start).total_seconds() / 86400))

    def scoped(stmt: Any) -> Any:
        return _overview_repository.apply_scope_query(stmt, ctx)

    deal_close = func.coalesce(Deal.forecasted_close_date, Deal.close_date)
    deals = session.scalars(
        scoped(select(Deal).where(deal_close >= start, deal_close < end_exclusive).limit(ROW_LIMIT))
    ).all()
    pipeline = [deal for deal in deals if (deal.stage or "") not in CLOSED_WON_STAGES | CLOSED_LOST_STAGES]
    won = [deal for deal in deals if (deal.stage or "") in CLOSED_WON_STAGES]

    tickets = session.scalars(
        scoped(
            select(SupportTicket).where(
                SupportTicket.created_at >= start,
                SupportTicket.created_at < end_exclusive,
                SupportTicket.status.in_(OPEN_TICKET_STATUSES),
            )
        )
    ).all()
    breached = [ticket for ticket in tickets if ticket.sla_due_at is not None and ensure_utc(ticket.sla_due_at) < now]
    open_by_priority: dict[str, int] = {}
    for ticket in tickets:
        priority = ticket.priority or "normal"
        open_by_priority[priority] = open_by_priority.get(priority, 0) + 1

    event_counts = dict(
        session.execute(
            scoped(
                select(MarketingEvent.event, func.count())
                .where(MarketingEvent.at >= start, MarketingEvent.at < end_exclusive)
                .group_by(MarketingEvent.event)
            )
        ).all()
    )
    opens = int(event_counts.get("open", 0))
    clicks = int(event_counts.get("click", 0))
    unsubscribes = _count(
        session,
        ctx,
        MarketingUnsubscribe.id,
        MarketingUnsubscribe.at >= start,
        MarketingUnsubscribe.at < end_exclusive,
    )
    engaged_segments = session.scalars(
        scoped(select(MarketingSegment).where(MarketingSegment.engagement_campaign_id.is_not(None)).limit(200))
    ).all()

    survey_responses = _count(
        session,
        ctx,
        SurveyResponse.id,
        SurveyResponse.created_at >= start,
        SurveyResponse.created_at < end_exclusive,
    )

    quotes_created = _count(session, ctx, Quote.id, Quote.created_at >= start, Quote.created_at < end_exclusive)
    quotes_accepted = _count(
        session,
        ctx,
        QuoteAcceptance.id,
        QuoteAcceptance.accepted_at >= start,
        QuoteAcceptance.accepted_at < end_exclusive,
    )

    invoices_created = _count(session, ctx, Invoice.id, Invoice.created_at >= start, Invoice.created_at < end_exclusive)
    invoiced_revenue = sum(
        _number(total)
        for total in session.scalars(
            scoped(
                select(Invoice.total)
                .where(Invoice.issued_at >= start, Invoice.issued_at < end_exclusive)
                .limit(ROW_LIMIT)
            )
        ).all()
    )

    paid_days: list[int] = []
    for issued_at, paid_at in session.execute(
        scoped(
            select(Invoice.issued_at, Invoice.paid_at)
            .where(Invoice.paid_at >= start, Invoice.paid_at < end_exclusive)
            .limit(ROW_LIMIT)
        )
    ).all():
        if issued_at is None or paid_at is None:
            continue
        elapsed = (ensure_utc(paid_at) - ensure_utc(issued_at)).total_seconds()
        paid_days.append(max(0, math.ceil(elapsed / 86400)))
    avg_days_to_pay = sum(paid_days) / len(paid_days) if paid_days else None

    aging = {name: AgingBucket() for name in AGING_BUCKETS}
    outstanding = 0.0
    overdue = 0.0
    open_invoices = session.scalars(
        scoped(
            select(Invoice)
            .where(Invoice.balance > 0, Invoice.status.not_in(CLOSED_INVOICE_STATUSES))
            .limit(2000)
        )
    ).all()
    for invoice in open_invoices:
        balance = _number(invoice.balance)
        outstanding += balance
        due = ensure_utc(invoice.due_date)
        bucket_name = "current" if due is None else _aging_bucket((today_start - _day_start(due.date())).days)
        if bucket_name != "current":
            overdue += balance
        aging[bucket_name].count += 1
        aging[bucket_name].balance += balance
    dso_days = outstanding / (invoiced_revenue / range_days) if invoiced_revenue > 0 else None

    renewals = session.scalars(
        scoped(select(Renewal).where(Renewal.status.in_(ACTIVE_RENEWAL_STATUSES)).limit(ROW_LIMIT))
    ).all()
    next_30 = now + timedelta(days=30)
    next_90 = now + timedelta(days=90)
    total_mrr = total_arr = mrr_next_30 = mrr_next_90 = due_mrr = 0.0
    high_churn = due_count = 0
    for renewal in renewals:
        mrr = _renewal_mrr(renewal)
        total_mrr += mrr
        total_arr += _renewal_arr(renewal)
        if renewal.churn_risk == "High":
            high_churn += 1
        renewal_date = ensure_utc(renewal.renewal_date)
        if renewal_date is None:
            continue
        if now <= renewal_date <= next_30:
            mrr_next_30 += mrr
        if now <= renewal_date <= next_90:
            mrr_next_90 += mrr
        if start <= renewal_date < end_exclusive:
            due_count += 1
            due_mrr += mrr

    kpis = ReportingKpis(
        pipeline_deals=len(pipeline),
        pipeline_value=sum(_number(deal.amount) for deal in pipeline),
        closed_won_deals=len(won),
        closed_won_value=sum(_number(deal.amount) for deal in won),
        open_tickets=len(tickets),
        breached_tickets=len(breached),
        tickets_open_by_priority=open_by_priority,
        marketing_opens=opens,
        marketing_clicks=clicks,
        marketing_unsubscribes=unsubscribes,
        marketing_click_through_rate=clicks / opens if opens > 0 else 0.0,
        engaged_segments=len(engaged_segments),
        engaged_emails=sum(len(segment.emails or []) for segment in engaged_segments),
        survey_responses=survey_responses,
        quotes_created=quotes_created,
        quotes_accepted=quotes_accepted,
        quote_acceptance_rate=quotes_accepted / quotes_created if quotes_created > 0 else 0.0,
        invoices_created=invoices_created,
        invoiced_revenue=invoiced_revenue,
        receivables_outstanding=outstanding,
        receivables_overdue=overdue,
        receivables_aging=aging,
        dso_days=dso_days,
        avg_days_to_pay=avg_days_to_pay,
        total_active_mrr=total_mrr,
        total_active_arr=total_arr,
        renewals_mrr_next_30=mrr_next_30,
        renewals_mrr_next_90=mrr_next_90,
        renewals_high_churn_risk=high_churn,
        renewals_due_count=due_count,
        renewals_due_mrr=due_mrr,
    )
    top_pipeline = sorted(pipeline, key=lambda deal: _number(deal.amount), reverse=True)[:10]
    lists = ReportingLists(
        engaged_segments=[
            EngagedSegmentItem(
                id=segment.id,
                name=segment.name,
                email_count=len(segment.emails or []),
                updated_at=segment.updated_at,
            )
            for segment in engaged_segments
        ],
        top_pipeline=[
            PipelineDealItem(
                id=deal.id,
                deal_number=deal.deal_number,
                title=deal.title or "Untitled",
                stage=deal.stage,
                amount=_number(deal.amount),
                owner_id=deal.owner_id,
                forecasted_close_date=deal.forecasted_close_date,
            )
            for deal in top_pipeline
        ],
    )
    return ReportingOverview(
        range=ReportRange(start_date=start, end_date=end_exclusive - timedelta(milliseconds=1)),
        kpis=kpis,
        lists=lists,
    )


def daily_schedule_key(now: datetime) -> str:
    return f"daily:{ensure_utc(now).date().isoformat()}"


@dataclass(slots=True)
class ReportingService:
    repository: SnapshotRepository = SnapshotRepository()

    def overview(
        self,
        session: Session,
        ctx: TenantContext,
        start_raw: str | None = None,
        end_raw: str | None = None,
    ) -> ReportingOverview:
        start, end_exclusive = get_range(start_raw, end_raw)
        return compute_overview(session, ctx, start, end_exclusive)

    def _snapshot(self, ctx: TenantContext, overview: ReportingOverview, *, kind: str, schedule_key: str | None) -> ReportingSnapshot:
        return ReportingSnapshot(
            tenant_id=ctx.tenant_id,
            kind=kind,
            schedule_key=schedule_key,
            range_start=overview.range.start_date,
            range_end=overview.range.end_date,
            kpis=overview.kpis.model_dump(mode="json"),
            created_by_user_id=ctx.user_id if kind == "manual" else None,
        )

    def create_snapshot(
        self,
        session: Session,
        ctx: TenantContext,
        start_raw: str | None = None,
        end_raw: str | None = None,
    ) -> ReportingSnapshot:
        overview = self.overview(session, ctx, start_raw, end_raw)
        snapshot = self._snapshot(ctx, overview, kind="manual", schedule_key=None)
        session.add(snapshot)
        session.commit()
        session.refresh(snapshot)
        logger.info("reporting.snapshot_created", extra={"user_id": ctx.user_id})
        return snapshot

    def _find_scheduled(self, session: Session, ctx: TenantContext, schedule_key: str) -> ReportingSnapshot | None:
        stmt = select(ReportingSnapshot).where(ReportingSnapshot.schedule_key == schedule_key)
        return session.scalar(self.repository.apply_scope_query(stmt, ctx))

    def run_daily(self, session: Session, ctx: TenantContext, now: datetime | None = None) -> tuple[ReportingSnapshot, bool]:
        """Store today's scheduled snapshot once per tenant; returns ``(snapshot, created)``."""
        now = ensure_utc(now) if now is not None else utcnow()
        schedule_key = daily_schedule_key(now)
        existing = self._find_scheduled(session, ctx, schedule_key)
        if existing is not None:
            return existing, False

        end_day = now.date()
        start, end_exclusive = get_range(
            (end_day - timedelta(days=DEFAULT_RANGE_DAYS - 1)).isoformat(),
            end_day.isoformat(),
        )
        overview = compute_overview(session, ctx, start, end_exclusive, now=now)
        snapshot = self._snapshot(ctx, overview, kind="scheduled", schedule_key=schedule_key)
        session.add(snapshot)
        try:
            session.commit()
        except IntegrityError:
            # another worker stored the same key first
            session.rollback()
            existing = self._find_scheduled(session, ctx, schedule_key)
            if existing is None:
                raise
            return existing, False
        session.refresh(snapshot)
        logger.info("reporting.snapshot_scheduled", extra={"schedule_key": schedule_key})
        return snapshot, True

    def list_snapshots(self, session: Session, ctx: TenantContext, limit: int | None = None) -> list[ReportingSnapshot]:
        size = SNAPSHOT_LIST_DEFAULT if limit is None else min(max(limit, 1), SNAPSHOT_LIST_MAX)
        stmt = self.repository.apply_scope_query(select(ReportingSnapshot), ctx)
        return list(session.scalars(stmt.order_by(ReportingSnapshot.created_at.desc()).limit(size)).all())


reporting_service = ReportingService()
