from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from boaz.auth.api import admin_sessions_router, api_keys_router, sessions_router
from boaz.calendar.api import router as calendar_router
from boaz.core.auth import AuthUser, get_current_user
from boaz.core.config import get_settings
from boaz.core.envelope import ok
from boaz.crm.api import (
    accounts_router,
    contacts_router,
    deals_router,
    revenue_router,
    tasks_router,
    tickets_router,
)
from boaz.crm.reporting.api import router as reporting_router
from boaz.crm.surveys.api import public_router as surveys_public_router
from boaz.crm.surveys.api import router as surveys_router
from boaz.integrations.api import router as inbound_router
from boaz.marketing.api import public_router as marketing_public_router
from boaz.marketing.api import router as marketing_router
from boaz.metrics import generate_metrics_payload, metrics_content_type
from boaz.scheduler.api import public_router as scheduler_public_router
from boaz.scheduler.api import router as scheduler_router

router = APIRouter()
router.include_router(sessions_router)
router.include_router(admin_sessions_router)
router.include_router(api_keys_router)
router.include_router(inbound_router)
router.include_router(accounts_router)
router.include_router(contacts_router)
router.include_router(deals_router)
router.include_router(tasks_router)
router.include_router(tickets_router)
router.include_router(revenue_router)
router.include_router(surveys_router)
router.include_router(surveys_public_router)
router.include_router(reporting_router)
router.include_router(marketing_router)
router.include_router(marketing_public_router)
router.include_router(scheduler_router)
router.include_router(scheduler_public_router)
router.include_router(calendar_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
async def me(user: AuthUser = Depends(get_current_user)) -> dict:
    return ok(
        {
            "sub": user.sub,
            "email": user.email,
            "roles": user.roles,
            "tenant_id": user.tenant_id,
        }
    )


@router.get("/metrics", tags=["system"])
def metrics(user: AuthUser = Depends(get_current_user)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not_found")
    if "system.metrics.read" not in user.roles:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
