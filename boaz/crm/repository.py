from __future__ import annotations

from boaz.platform.tenancy.repository import BaseRepository


class AccountRepository(BaseRepository):
    resource = "crm.account"


class ContactRepository(BaseRepository):
    resource = "crm.contact"


class DealRepository(BaseRepository):
    resource = "crm.deal"


class TaskRepository(BaseRepository):
    resource = "crm.task"


class TicketRepository(BaseRepository):
    resource = "crm.support_ticket"


class RevenueRepository(BaseRepository):
    resource = "crm.revenue"
