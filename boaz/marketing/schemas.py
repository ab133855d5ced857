from __future__ import annotations

from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from boaz.core.types import UTCDateTime


SocialPlatform = Literal["facebook", "twitter", "linkedin", "instagram"]
SocialPostStatus = Literal["draft", "scheduled", "published"]
CampaignSortField = Literal["createdAt", "updatedAt", "name", "status"]
TrackedEvent = Literal["open", "click", "visit"]


class CampaignCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    subject: str = Field(default="", max_length=255)
    html: str = ""
    mjml: str = ""
    preview_text: str = Field(default="", max_length=255)
    segment_id: UUID | None = None
    status: str = Field(default="draft", max_length=32)

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("name_required")
        return stripped


class CampaignUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    subject: str | None = Field(default=None, max_length=255)
    html: str | None = None
    mjml: str | None = None
    preview_text: str | None = Field(default=None, max_length=255)
    segment_id: UUID | None = None
    status: str | None = Field(default=None, max_length=32)


class CampaignRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    subject: str
    html: str
    mjml: str
    preview_text: str
    segment_id: UUID | None
    status: str
    created_at: UTCDateTime
    updated_at: UTCDateTime


def _valid_emails(values: list[str]) -> list[str]:
    return [value.strip().lower() for value in values if isinstance(value, str) and "@" in value]


class SegmentCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str = ""
    rules: list[dict] = Field(default_factory=list)
    emails: list[str] = Field(default_factory=list)
    engagement_campaign_id: UUID | None = None

    @field_validator("emails")
    @classmethod
    def _clean_emails(cls, value: list[str]) -> list[str]:
        return _valid_emails(value)


class SegmentUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    rules: list[dict] | None = None
    emails: list[str] | None = None
    engagement_campaign_id: UUID | None = None

    @field_validator("emails")
    @classmethod
    def _clean_emails(cls, value: list[str] | None) -> list[str] | None:
        return None if value is None else _valid_emails(value)


class SegmentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    description: str
    rules: list[dict]
    emails: list[str]
    engagement_campaign_id: UUID | None
    created_at: UTCDateTime
    updated_at: UTCDateTime


class TrackEventCreate(BaseModel):
    event: TrackedEvent = "visit"
    campaign_id: UUID | None = None
    recipient: str | None = Field(default=None, max_length=320)
    url: str | None = Field(default=None, max_length=2048)
    utm_source: str | None = Field(default=None, max_length=120)
    utm_medium: str | None = Field(default=None, max_length=120)
    utm_campaign: str | None = Field(default=None, max_length=120)


class CampaignEngagement(BaseModel):
    campaign_id: UUID | None
    opens: int
    clicks: int
    visits: int


class UnsubscribeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    email: str
    campaign_id: UUID | None
    at: UTCDateTime


class SocialPostCreate(BaseModel):
    content: str = Field(min_length=1, max_length=5000)
    platforms: list[SocialPlatform]
    account_ids: list[str] = Field(default_factory=list)
    images: list[str] | None = None
    video_url: str | None = Field(default=None, max_length=2048)
    link: str | None = Field(default=None, max_length=2048)
    link_title: str | None = Field(default=None, max_length=255)
    link_description: str | None = None
    hashtags: list[str] | None = None
    status: SocialPostStatus = "draft"
    scheduled_for: UTCDateTime | None = None
    campaign_id: UUID | None = None


class PlatformMetrics(BaseModel):
    likes: int = 0
    shares: int = 0
    comments: int = 0
    clicks: int = 0
    reach: int = 0
    impressions: int = 0


class SocialPostUpdate(BaseModel):
    content: str | None = Field(default=None, min_length=1, max_length=5000)
    platforms: list[SocialPlatform] | None = None
    account_ids: list[str] | None = None
    images: list[str] | None = None
    video_url: str | None = Field(default=None, max_length=2048)
    link: str | None = Field(default=None, max_length=2048)
    link_title: str | None = Field(default=None, max_length=255)
    link_description: str | None = None
    hashtags: list[str] | None = None
    status: SocialPostStatus | None = None
    scheduled_for: UTCDateTime | None = None
    published_at: UTCDateTime | None = None
    metrics: dict[str, PlatformMetrics] | None = None
    platform_post_ids: dict[str, str] | None = None
    error: str | None = None


class SocialPostRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    content: str
    platforms: list[str]
    account_ids: list[str]
    images: list[str] | None
    video_url: str | None
    link: str | None
    link_title: str | None
    link_description: str | None
    hashtags: list[str] | None
    status: str
    scheduled_for: UTCDateTime | None
    published_at: UTCDateTime | None
    campaign_id: UUID | None
    metrics: dict[str, PlatformMetrics] | None
    platform_post_ids: dict[str, str] | None
    error: str | None
    created_by: str
    created_at: UTCDateTime
    updated_at: UTCDateTime


class PlatformAnalytics(PlatformMetrics):
    posts: int = 0


class SocialAnalytics(BaseModel):
    total_posts: int
    by_platform: dict[str, PlatformAnalytics]
    total_engagement: PlatformMetrics
