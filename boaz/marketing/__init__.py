from boaz.marketing.models import (
    MarketingCampaign,
    MarketingEvent,
    MarketingSegment,
    MarketingUnsubscribe,
    SocialPost,
)
from boaz.marketing.service import (
    campaign_service,
    segment_service,
    social_post_service,
    tracking_service,
)

__all__ = [
    "MarketingCampaign",
    "MarketingEvent",
    "MarketingSegment",
    "MarketingUnsubscribe",
    "SocialPost",
    "campaign_service",
    "segment_service",
    "social_post_service",
    "tracking_service",
]
