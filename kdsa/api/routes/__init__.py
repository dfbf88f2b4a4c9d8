"""API Routes.

Aggregates all API routers.
"""

from fastapi import APIRouter

from kdsa.api.routes.audit import router as audit_router
from kdsa.api.routes.decisions import router as decisions_router
from kdsa.api.routes.health import router as health_router
from kdsa.api.routes.risk import router as risk_router

router = APIRouter()

router.include_router(health_router, tags=["Health"])
router.include_router(risk_router, tags=["Risk Sensing"])
router.include_router(decisions_router, prefix="/decision", tags=["Decision Engine"])
router.include_router(audit_router, prefix="/audit", tags=["Audit Ledger"])

__all__ = ["router"]
