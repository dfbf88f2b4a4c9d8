"""
Decision Engine Schemas.

Models for the de-biasing decision flow (M2):
- Bias findings and protocols
- Pre-mortem failure scenarios and contrarian analysis
- Determinism reports
- DecisionRequest / DecisionRecord

A DecisionRecord is created once per analysis, is immutable, and is
the payload appended to the governance ledger.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, computed_field, field_validator

from kdsa.sensing.schemas import RiskFlag, RiskFlagSummary


# ============================================================================
# ENUMS
# ============================================================================


class BiasType(str, Enum):
    ANCHORING = "anchoring"
    OVERCONFIDENCE = "overconfidence"
    STATUS_QUO = "status_quo"
    CONFIRMATION = "confirmation"
    AVAILABILITY = "availability"
    GROUPTHINK = "groupthink"
    SUNK_COST = "sunk_cost"
    FRAMING = "framing"


class BiasSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class DebiasProtocol(str, Enum):
    """Required analytical intervention."""

    STANDARD = "standard"
    CONSIDER_OPPOSITE = "consider_opposite"
    PRE_MORTEM_ADVISORY = "pre_mortem_advisory"
    PRE_MORTEM_MANDATORY = "pre_mortem_mandatory"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RiskCategory(str, Enum):
    OPERATIONAL = "operational"
    FINANCIAL = "financial"
    REPUTATIONAL = "reputational"
    REGULATORY = "regulatory"
    STRATEGIC = "strategic"


class ContentSource(str, Enum):
    """Whether content came from the generation service or the fixed fallback."""

    GENERATED = "generated"
    FALLBACK = "fallback"
    NONE = "none"


class DeterminismTier(str, Enum):
    DETERMINISTIC = "deterministic"
    CONSTRAINED = "constrained"
    STOCHASTIC = "stochastic"


class DecisionOutcome(str, Enum):
    PROCEED = "proceed"
    PROCEED_WITH_CONTROLS = "proceed_with_controls"
    DELAY_PENDING_REVIEW = "delay_pending_review"
    ABORT_RECOMMENDED = "abort_recommended"


class ContrarianAction(str, Enum):
    PROCEED = "proceed"
    MODIFY = "modify"
    RECONSIDER = "reconsider"


class DecisionState(str, Enum):
    """Lifecycle of a single analysis request."""

    IDLE = "idle"
    SCORING_COMPLETE = "scoring_complete"
    SCENARIO_GENERATION_IN_FLIGHT = "scenario_generation_in_flight"
    DETERMINISM_VERIFIED = "determinism_verified"
    RECORD_ASSEMBLED = "record_assembled"
    LOGGED = "logged"


# ============================================================================
# FINDINGS AND GENERATED CONTENT
# ============================================================================


class BiasFinding(BaseModel):
    model_config = {"frozen": True}

    type: BiasType
    severity: BiasSeverity
    description: str
    mitigation: str
    evidence: str


class FailureScenario(BaseModel):
    """One pre-mortem failure scenario."""

    model_config = {"frozen": True}

    title: str
    probability: float = Field(ge=0, le=1)
    description: str
    mitigation_strategy: str
    category: RiskCategory


class ContrarianAnalysis(BaseModel):
    """Consider-the-opposite output for a stated prior conclusion."""

    model_config = {"frozen": True}

    counter_arguments: list[str]
    alternative_hypothesis: str
    disconfirming_evidence: str
    recommended_action: ContrarianAction
    content_source: ContentSource
    output_hash: str


class DeterminismReport(BaseModel):
    model_config = {"frozen": True}

    verification_id: str
    iterations: int = Field(ge=1)
    seed: int
    unique_output_hashes: int = Field(ge=1)
    consistency_rate: float = Field(ge=0, le=1)
    tier: DeterminismTier
    iteration_hashes: list[str]

    @computed_field
    @property
    def is_fully_deterministic(self) -> bool:
        return self.tier == DeterminismTier.DETERMINISTIC


class Recommendation(BaseModel):
    model_config = {"frozen": True}

    outcome: DecisionOutcome
    confidence_score: float = Field(ge=0, le=1)
    causal_path: list[str]
    logic_trace_id: str


# ============================================================================
# REQUEST / RECORD
# ============================================================================


class DecisionRequest(BaseModel):
    """Body of POST /decision/analyze."""

    decision_text: str = Field(min_length=1, max_length=20000)
    known_risks: list[str] = Field(default_factory=list)
    risk_flag: Optional[RiskFlag] = None
    prior_conclusion: Optional[str] = None
    supporting_evidence: list[str] = Field(default_factory=list)

    @field_validator("decision_text")
    @classmethod
    def decision_text_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("decision_text must not be blank")
        return v

    @field_validator("known_risks")
    @classmethod
    def drop_blank_risks(cls, v: list[str]) -> list[str]:
        return [r.strip() for r in v if r.strip()]

    @field_validator("prior_conclusion")
    @classmethod
    def blank_conclusion_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class BiasDetectionRequest(BaseModel):
    text: str = Field(max_length=20000)


class DecisionRecord(BaseModel):
    """
    Complete record of one decision analysis.

    The unit persisted to the ledger. ``scenario_source`` tells auditors
    whether the pre-mortem was generated or is the fixed fallback set;
    ``determinism_verified`` is False whenever no generated content was
    verified.
    """

    model_config = {"frozen": True}

    decision_id: str
    record_type: str = "decision_record"
    timestamp: datetime
    decision_text: str
    known_risks: list[str]
    input_risk_flag: RiskFlagSummary
    risk_level: RiskLevel
    protocols: list[DebiasProtocol]
    protocol_rule: str
    bias_findings: list[BiasFinding]
    recommendation: Recommendation
    scenarios: list[FailureScenario]
    scenario_source: ContentSource
    contrarian: Optional[ContrarianAnalysis] = None
    determinism: Optional[DeterminismReport] = None
    determinism_tier: DeterminismTier
    determinism_verified: bool
    executive_summary: str
    input_hash: str
    output_hash: str
    seed: int
    compliance_tags: list[str]

    @computed_field
    @property
    def chosen_protocol(self) -> DebiasProtocol:
        """The strongest protocol selected."""
        return self.protocols[0]
