from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(slots=True)
class TenantContext:
    """Caller identity and tenant scope every service call runs under."""

    user_id: str
    tenant_id: str
    email: str | None = None
    roles: list[str] = field(default_factory=list)
    correlation_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return "admin" in {role.lower() for role in self.roles}
