from boaz.crm.reporting.models import ReportingSnapshot
from boaz.crm.reporting.service import ReportingService, compute_overview, get_range, reporting_service

__all__ = ["ReportingSnapshot", "ReportingService", "compute_overview", "get_range", "reporting_service"]
