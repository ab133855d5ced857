from boaz.scheduler.models import Appointment, AppointmentType, Availability
from boaz.scheduler.service import SchedulerService, scheduler_service
from boaz.scheduler.slots import generate_booking_slots

__all__ = [
    "Appointment",
    "AppointmentType",
    "Availability",
    "SchedulerService",
    "scheduler_service",
    "generate_booking_slots",
]
