"""
Risk Sensing API Routes.

POST /risk-flag turns raw assessment inputs into a RiskFlag. Range
violations are rejected by the request model (422) before scoring.
"""

from fastapi import APIRouter, Depends

from kdsa.api.deps import get_flag_builder
from kdsa.sensing.schemas import AssessmentInput, RiskFlag
from kdsa.sensing.service import RiskFlagBuilder

router = APIRouter()


@router.post(
    "/risk-flag",
    response_model=RiskFlag,
    summary="Build a risk flag",
    description="Compute the composite score, zone and trigger conditions for an assessment.",
)
async def create_risk_flag(
    assessment: AssessmentInput,
    builder: RiskFlagBuilder = Depends(get_flag_builder),
) -> RiskFlag:
    return builder.build(assessment)
