"""
Human-factor risk sensing (M1).

Pure scoring and limiting-factor analysis plus the RiskFlag builder.
"""

from kdsa.sensing.limiting import (
    identify_limiting_factors,
    identify_scarf_threats,
    min_scarf_dimension,
)
from kdsa.sensing.schemas import (
    AssessmentInput,
    ComponentScores,
    LimitingFactor,
    RiskFlag,
    RiskFlagSummary,
    RiskZone,
    ScarfProfile,
    TriggerCondition,
)
from kdsa.sensing.scoring import classify_zone, compute_score
from kdsa.sensing.service import RiskFlagBuilder

__all__ = [
    "AssessmentInput",
    "ComponentScores",
    "LimitingFactor",
    "RiskFlag",
    "RiskFlagBuilder",
    "RiskFlagSummary",
    "RiskZone",
    "ScarfProfile",
    "TriggerCondition",
    "classify_zone",
    "compute_score",
    "identify_limiting_factors",
    "identify_scarf_threats",
    "min_scarf_dimension",
]
