from boaz.calendar.service import CalendarService, calendar_service

__all__ = ["CalendarService", "calendar_service"]
