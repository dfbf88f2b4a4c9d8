"""
Sensing Schemas.

Immutable input snapshots and the RiskFlag produced by the human-factor
risk sensor (M1). Range constraints live on the models: out-of-range
scores are rejected at construction, never clamped.
"""

from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional

from pydantic import BaseModel, Field, computed_field


# ============================================================================
# ENUMS
# ============================================================================


class RiskZone(str, Enum):
    """Composite score band."""

    EXPANSION = "expansion"    # >= 85
    RESILIENT = "resilient"    # >= 70
    STRAINED = "strained"      # >= 55
    CRITICAL = "critical"      # < 55


class LimitingFactor(str, Enum):
    """Sub-score currently capping the composite score."""

    ENVIRONMENT_CAP = "environment_cap"
    VALIDATION_VETO = "validation_veto"
    NEURAL_BRAKE = "neural_brake"


class ScarfDimension(str, Enum):
    STATUS = "status"
    CERTAINTY = "certainty"
    AUTONOMY = "autonomy"
    RELATEDNESS = "relatedness"
    FAIRNESS = "fairness"


class TriggerCondition(str, Enum):
    """Condition that activates the risk flag."""

    ATRI_CRITICAL_ZONE = "atri_critical_zone"
    ORS_ENVIRONMENT_CONSTRAINT = "ors_environment_constraint"
    RACQ_CONSTRAINED_CAPACITY = "racq_constrained_capacity"
    SCARF_STATUS_THREAT = "scarf_status_threat"
    SCARF_CERTAINTY_THREAT = "scarf_certainty_threat"
    SCARF_AUTONOMY_THREAT = "scarf_autonomy_threat"
    SCARF_RELATEDNESS_THREAT = "scarf_relatedness_threat"
    SCARF_FAIRNESS_THREAT = "scarf_fairness_threat"
    SIMULATION_SAY_DO_GAP = "simulation_say_do_gap"


# ============================================================================
# INPUT SNAPSHOTS
# ============================================================================


class ComponentScores(BaseModel):
    """Sub-scores of one risk-assessment event."""

    model_config = {"frozen": True}

    environment_score: float = Field(ge=0, le=100, description="ORS-II environment score")
    adaptive_capacity: float = Field(ge=0, le=5, description="RACQ adaptive capacity (0-5)")
    validation_score: float = Field(ge=0, le=100, description="Simulation validation score")
    neural_coefficient: float = Field(ge=0, le=1, description="SCARF neural coefficient")


class ScarfProfile(BaseModel):
    """Five-dimension SCARF snapshot, each dimension in [0, 1]."""

    model_config = {"frozen": True}

    status: float = Field(ge=0, le=1)
    certainty: float = Field(ge=0, le=1)
    autonomy: float = Field(ge=0, le=1)
    relatedness: float = Field(ge=0, le=1)
    fairness: float = Field(ge=0, le=1)

    def dimensions(self) -> dict[str, float]:
        return {d.value: getattr(self, d.value) for d in ScarfDimension}


class AssessmentInput(BaseModel):
    """Raw assessment inputs for POST /risk-flag."""

    component_scores: ComponentScores
    scarf_profile: ScarfProfile


# ============================================================================
# RISK FLAG
# ============================================================================


class RiskFlag(BaseModel):
    """
    Output of the risk sensor.

    Consumed read-only by the decision engine and never mutated after
    creation.
    """

    model_config = {"frozen": True}

    risk_active: bool
    primary_driver: str = "none"
    score: float = Field(ge=0, le=100)
    zone: RiskZone
    component_scores: ComponentScores
    scarf_profile: ScarfProfile
    trigger_conditions: FrozenSet[TriggerCondition] = frozenset()
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @computed_field
    @property
    def trigger_count(self) -> int:
        return len(self.trigger_conditions)


class RiskFlagSummary(BaseModel):
    """Risk flag digest embedded in a decision record."""

    model_config = {"frozen": True}

    risk_active: bool
    primary_driver: str
    score: float
    zone: RiskZone
    limiting_factors: list[LimitingFactor]
    scarf_threats: list[str]
    min_scarf: Optional[float] = None
