from __future__ import annotations

from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from boaz.core.types import UTCDateTime


SnapshotKind = Literal["manual", "scheduled"]


class ReportRange(BaseModel):
    start_date: UTCDateTime
    end_date: UTCDateTime


class AgingBucket(BaseModel):
    count: int = 0
    balance: float = 0.0


class ReportingKpis(BaseModel):
    pipeline_deals: int
    pipeline_value: float
    closed_won_deals: int
    closed_won_value: float
    open_tickets: int
    breached_tickets: int
    tickets_open_by_priority: dict[str, int]
    marketing_opens: int
    marketing_clicks: int
    marketing_unsubscribes: int
    marketing_click_through_rate: float
    engaged_segments: int
    engaged_emails: int
    survey_responses: int
    quotes_created: int
    quotes_accepted: int
    quote_acceptance_rate: float
    invoices_created: int
    invoiced_revenue: float
    receivables_outstanding: float
    receivables_overdue: float
    receivables_aging: dict[str, AgingBucket]
    dso_days: float | None
    avg_days_to_pay: float | None
    total_active_mrr: float
    total_active_arr: float
    renewals_mrr_next_30: float
    renewals_mrr_next_90: float
    renewals_high_churn_risk: int
    renewals_due_count: int
    renewals_due_mrr: float


class EngagedSegmentItem(BaseModel):
    id: UUID
    name: str
    email_count: int
    updated_at: UTCDateTime | None


class PipelineDealItem(BaseModel):
    id: UUID
    deal_number: int | None
    title: str
    stage: str | None
    amount: float
    owner_id: str | None
    forecasted_close_date: UTCDateTime | None


class ReportingLists(BaseModel):
    engaged_segments: list[EngagedSegmentItem]
    top_pipeline: list[PipelineDealItem]


class ReportingOverview(BaseModel):
    range: ReportRange
    kpis: ReportingKpis
    lists: ReportingLists


class SnapshotCreate(BaseModel):
    start_date: str | None = Field(default=None, alias="startDate")
    end_date: str | None = Field(default=None, alias="endDate")

    model_config = ConfigDict(populate_by_name=True)


class SnapshotRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    kind: SnapshotKind
    schedule_key: str | None
    range_start: UTCDateTime
    range_end: UTCDateTime
    kpis: ReportingKpis
    created_by_user_id: str | None
    created_at: UTCDateTime


class DailySnapshotResult(BaseModel):
    ok: bool = True
    schedule_key: str
    created: bool
