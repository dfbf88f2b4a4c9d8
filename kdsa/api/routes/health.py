"""Health Check Endpoints.

Reports per-module status:
- sensing: pure functions, always healthy
- decision_engine: degraded when running on fallback content only
- ledger: entry count, tail hash and chain validity
"""

from datetime import datetime
from typing import Optional

import structlog
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from kdsa.api.deps import get_app_settings, get_ledger, get_orchestrator
from kdsa.audit.ledger import AuditLedger
from kdsa.core.config import Settings
from kdsa.decision.orchestrator import DecisionOrchestrator

logger = structlog.get_logger(__name__)

router = APIRouter()


# ============================================================================
# SCHEMAS
# ============================================================================


class ComponentHealth(BaseModel):
    """Health status of a module."""

    name: str
    status: str  # healthy, degraded, unhealthy
    message: Optional[str] = None
    details: Optional[dict] = None


class HealthResponse(BaseModel):
    status: str = Field(description="Overall health status")
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    version: str
    components: list[ComponentHealth] = Field(default_factory=list)


# ============================================================================
# CHECKS
# ============================================================================


async def check_ledger(ledger: AuditLedger) -> ComponentHealth:
    try:
        verification = await ledger.verify_chain()
    except Exception as e:
        logger.error("ledger_health_check_failed", error=str(e))
        return ComponentHealth(
            name="ledger",
            status="unhealthy",
            message=f"Ledger backend error: {str(e)[:100]}",
        )

    if not verification.valid:
        return ComponentHealth(
            name="ledger",
            status="unhealthy",
            message="Chain integrity violation",
            details={
                "broken_at_sequence": verification.broken_at_sequence,
                "error_type": verification.error_type,
            },
        )

    return ComponentHealth(
        name="ledger",
        status="healthy",
        details={
            "backend": ledger.repository.name,
            "entries": verification.entries_checked,
            "tail_hash": ledger.tail_hash,
        },
    )


def check_decision_engine(orchestrator: DecisionOrchestrator) -> ComponentHealth:
    if orchestrator.pre_mortem.is_available:
        return ComponentHealth(name="decision_engine", status="healthy")
    return ComponentHealth(
        name="decision_engine",
        status="degraded",
        message="Generation service not configured, using fallback scenarios",
    )


# ============================================================================
# ENDPOINTS
# ============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check(
    settings: Settings = Depends(get_app_settings),
    ledger: AuditLedger = Depends(get_ledger),
    orchestrator: DecisionOrchestrator = Depends(get_orchestrator),
) -> HealthResponse:
    components = [
        ComponentHealth(name="sensing", status="healthy"),
        check_decision_engine(orchestrator),
        await check_ledger(ledger),
    ]

    statuses = {c.status for c in components}
    if "unhealthy" in statuses:
        overall = "unhealthy"
    elif "degraded" in statuses:
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        version=settings.app_version,
        components=components,
    )
