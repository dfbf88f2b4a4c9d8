"""
Decision Engine API Routes.

Provides endpoints for:
- Full decision analysis (scored, de-biased, logged to the ledger)
- Stand-alone bias detection

A decision that was analyzed but could not be logged returns 503 with
the unlogged decision id in the error details.
"""

import structlog
from fastapi import APIRouter, Depends

from kdsa.api.deps import get_bias_detector, get_orchestrator
from kdsa.decision.biases import BiasDetector
from kdsa.decision.orchestrator import DecisionOrchestrator
from kdsa.decision.schemas import (
    BiasDetectionRequest,
    BiasFinding,
    DecisionRecord,
    DecisionRequest,
)

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post(
    "/analyze",
    response_model=DecisionRecord,
    summary="Analyze a decision",
    description="""
Run the de-biasing decision flow:

1. Score the risk flag (a neutral default is used when none is supplied)
2. Detect cognitive biases in the decision text
3. Select de-biasing protocols and risk level
4. Generate pre-mortem scenarios and verify determinism when required
5. Append the decision record to the governance ledger
    """,
)
async def analyze_decision(
    request: DecisionRequest,
    orchestrator: DecisionOrchestrator = Depends(get_orchestrator),
) -> DecisionRecord:
    return await orchestrator.analyze(request)


@router.post(
    "/detect-biases",
    response_model=list[BiasFinding],
    summary="Detect cognitive biases",
)
async def detect_biases(
    request: BiasDetectionRequest,
    detector: BiasDetector = Depends(get_bias_detector),
) -> list[BiasFinding]:
    findings = detector.detect(request.text)
    logger.info("bias_detection_requested", findings=len(findings))
    return findings
