from __future__ import annotations

from typing import Any

from sqlalchemy.sql import Select

from boaz.platform.tenancy.context import TenantContext


class BaseRepository:
    resource = ""

    def apply_scope_query(self, query: Select[Any], ctx: TenantContext) -> Select[Any]:
        scoped = query
        seen: set[type] = set()
        for description in query.column_descriptions:
            entity = description.get("entity")
            if entity is None or entity in seen:
                continue
            seen.add(entity)
            tenant_column = getattr(entity, "tenant_id", None)
            if tenant_column is not None:
                scoped = scoped.where(tenant_column == ctx.tenant_id)
        return scoped

    @staticmethod
    def stamp_tenant(payload: dict[str, Any], ctx: TenantContext) -> dict[str, Any]:
        return {**payload, "tenant_id": ctx.tenant_id}
