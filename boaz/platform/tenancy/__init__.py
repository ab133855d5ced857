from boaz.platform.tenancy.context import TenantContext
from boaz.platform.tenancy.repository import BaseRepository

__all__ = ["TenantContext", "BaseRepository"]
