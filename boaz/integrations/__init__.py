from boaz.integrations.models import IntegrationInboundEvent
from boaz.integrations.service import InboundService, inbound_service

__all__ = ["IntegrationInboundEvent", "InboundService", "inbound_service"]
