"""
Pre-Mortem and Consider-the-Opposite Generators.

Prompt construction, strict response validation and the fixed fallback
content for the two generated outputs of a decision analysis.

Responses are validated against closed schemas (unknown or missing
keys are a GenerationParseError, never silently defaulted). Fallbacks
are exposed as plain functions; the orchestrator decides when to use
them so that fallback content is always labelled as such.
"""

import asyncio
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator
import structlog

from kdsa.common.exceptions import GenerationParseError, GenerationTimeoutError
from kdsa.common.hashing import content_hash
from kdsa.decision.generation import GenerationService
from kdsa.decision.schemas import (
    ContentSource,
    ContrarianAction,
    ContrarianAnalysis,
    FailureScenario,
    RiskCategory,
)

logger = structlog.get_logger(__name__)


SCENARIO_COUNT = 3
PROBABILITY_DECIMALS = 3


# ============================================================================
# REQUESTS
# ============================================================================


class PreMortemRequest(BaseModel):
    """Everything the pre-mortem prompt is built from. Hashed as the input hash."""

    model_config = {"frozen": True}

    decision_text: str
    known_risks: list[str] = Field(default_factory=list)
    score: float
    zone: str
    scarf_threats: list[str] = Field(default_factory=list)
    limiting_factors: list[str] = Field(default_factory=list)
    detected_biases: list[str] = Field(default_factory=list)


class ContrarianRequest(BaseModel):
    model_config = {"frozen": True}

    prior_conclusion: str
    supporting_evidence: list[str] = Field(default_factory=list)
    detected_biases: list[str] = Field(default_factory=list)


# ============================================================================
# RESPONSE SCHEMAS
# ============================================================================


class _GeneratedScenario(BaseModel):
    model_config = {"extra": "forbid"}

    title: str = Field(min_length=1)
    probability: float = Field(ge=0, le=1)
    description: str
    mitigation_strategy: str
    risk_category: RiskCategory

    @field_validator("risk_category", mode="before")
    @classmethod
    def lower_category(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v


class _GeneratedContrarian(BaseModel):
    model_config = {"extra": "forbid"}

    counterArguments: list[str] = Field(min_length=1)
    alternativeHypothesis: str
    disconfirmingEvidence: str
    recommendedAction: ContrarianAction

    @field_validator("recommendedAction", mode="before")
    @classmethod
    def lower_action(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v


SCENARIO_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "ARRAY",
    "items": {
        "type": "OBJECT",
        "properties": {
            "title": {"type": "STRING"},
            "probability": {"type": "NUMBER"},
            "description": {"type": "STRING"},
            "mitigation_strategy": {"type": "STRING"},
            "risk_category": {"type": "STRING"},
        },
        "required": ["title", "probability", "description", "mitigation_strategy", "risk_category"],
    },
}

CONTRARIAN_RESPONSE_SCHEMA: dict[str, Any] = {
    "type": "OBJECT",
    "properties": {
        "counterArguments": {"type": "ARRAY", "items": {"type": "STRING"}},
        "alternativeHypothesis": {"type": "STRING"},
        "disconfirmingEvidence": {"type": "STRING"},
        "recommendedAction": {"type": "STRING"},
    },
    "required": [
        "counterArguments",
        "alternativeHypothesis",
        "disconfirmingEvidence",
        "recommendedAction",
    ],
}


# ============================================================================
# PROMPTS
# ============================================================================


def build_pre_mortem_prompt(request: PreMortemRequest) -> str:
    scarf_context = (
        f"Active SCARF Threats: {', '.join(request.scarf_threats)}"
        if request.scarf_threats
        else "No active SCARF threats"
    )
    limiting_context = (
        f"Active Limiting Factors: {', '.join(request.limiting_factors)}"
        if request.limiting_factors
        else "No limiting factors active"
    )

    return f"""
You are a Decision Science Analyst performing a Pre-Mortem analysis per the Meehl-Dawes Doctrine.

## Context
Decision: {request.decision_text}
Known Risks: {', '.join(request.known_risks) or 'None specified'}
ATRI Score: {request.score:.1f} (Zone: {request.zone})
{scarf_context}
{limiting_context}
Detected Cognitive Biases: {', '.join(request.detected_biases) or 'None detected'}

## Task (Pre-Mortem Protocol)
Assume this decision was implemented and FAILED SPECTACULARLY 12 months from now.
Generate exactly 3 failure scenarios that explain what went wrong.

For each scenario, provide:
1. title: A concise name for the failure mode (max 50 characters)
2. probability: Likelihood as a decimal (0.0 to 1.0), must sum to approximately 1.0
3. description: What went wrong and why (100-200 words)
4. mitigation_strategy: Specific, actionable steps to prevent this failure (3-5 bullet points)
5. risk_category: One of [OPERATIONAL, FINANCIAL, REPUTATIONAL, REGULATORY, STRATEGIC]

## Output Format
Respond ONLY with valid JSON matching the schema. No preamble, no markdown, no explanation.""".strip()


def build_contrarian_prompt(request: ContrarianRequest) -> str:
    return f"""
You are a Decision Science Analyst performing Consider-the-Opposite analysis.

## Context
Initial Conclusion: {request.prior_conclusion}
Supporting Evidence: {', '.join(request.supporting_evidence) or 'None provided'}
Detected Biases: {', '.join(request.detected_biases) or 'None detected'}

## Task (Consider-the-Opposite Protocol)
Generate compelling counter-arguments that challenge the initial conclusion.
Force articulation of the case AGAINST the proposed decision.

Provide:
1. counterArguments: Array of 3 strong arguments against the initial conclusion
2. alternativeHypothesis: A plausible alternative interpretation of the evidence
3. disconfirmingEvidence: What data would disprove the initial conclusion
4. recommendedAction: One of [PROCEED, MODIFY, RECONSIDER]

## Output Format
Respond ONLY with valid JSON matching the schema. No preamble, no markdown.""".strip()


# ============================================================================
# PARSING
# ============================================================================


def normalize_probabilities(scenarios: list[FailureScenario]) -> list[FailureScenario]:
    """Scale probabilities to sum to 1.0, rounded to 3 decimals."""
    total = sum(s.probability for s in scenarios)
    if total <= 0:
        raise GenerationParseError(
            "Scenario probabilities sum to zero",
            details={"probabilities": [s.probability for s in scenarios]},
        )
    return [
        s.model_copy(update={"probability": round(s.probability / total, PROBABILITY_DECIMALS)})
        for s in scenarios
    ]


def parse_scenarios(raw: Any) -> list[FailureScenario]:
    if not isinstance(raw, list):
        raise GenerationParseError(
            "Expected a JSON array of scenarios",
            details={"received_type": type(raw).__name__},
        )
    if len(raw) != SCENARIO_COUNT:
        raise GenerationParseError(
            f"Expected exactly {SCENARIO_COUNT} scenarios, got {len(raw)}",
            details={"count": len(raw)},
        )

    try:
        items = [_GeneratedScenario.model_validate(item) for item in raw]
    except ValidationError as e:
        raise GenerationParseError(
            "Scenario does not match the response schema",
            details={"errors": e.errors(include_url=False, include_context=False)},
        )

    scenarios = [
        FailureScenario(
            title=item.title,
            probability=item.probability,
            description=item.description,
            mitigation_strategy=item.mitigation_strategy,
            category=item.risk_category,
        )
        for item in items
    ]
    return normalize_probabilities(scenarios)


def parse_contrarian(raw: Any) -> ContrarianAnalysis:
    try:
        item = _GeneratedContrarian.model_validate(raw)
    except ValidationError as e:
        raise GenerationParseError(
            "Contrarian analysis does not match the response schema",
            details={"errors": e.errors(include_url=False, include_context=False)},
        )

    body = {
        "counter_arguments": item.counterArguments,
        "alternative_hypothesis": item.alternativeHypothesis,
        "disconfirming_evidence": item.disconfirmingEvidence,
        "recommended_action": item.recommendedAction.value,
    }
    return ContrarianAnalysis(
        **body,
        content_source=ContentSource.GENERATED,
        output_hash=content_hash(body),
    )


# ============================================================================
# FALLBACKS
# ============================================================================


FALLBACK_SCENARIOS: tuple[FailureScenario, ...] = (
    FailureScenario(
        title="Organizational Resistance",
        probability=0.35,
        description=(
            "Key stakeholders resist change due to cultural inertia and fear of disruption "
            "to established workflows. This leads to passive resistance, workarounds, and "
            "ultimately project abandonment."
        ),
        mitigation_strategy=(
            "Implement structured change management with ADKAR framework. Conduct stakeholder "
            "mapping and address concerns proactively. Establish executive sponsorship with "
            "visible commitment."
        ),
        category=RiskCategory.OPERATIONAL,
    ),
    FailureScenario(
        title="Resource Underestimation",
        probability=0.35,
        description=(
            "Project scope expanded beyond initial estimates, depleting resources and extending "
            "timelines. Budget overruns caused loss of executive confidence and eventual defunding."
        ),
        mitigation_strategy=(
            "Establish strict scope governance with change control board. Create 20% buffer for "
            "unexpected requirements. Use agile methodology with regular reassessment points."
        ),
        category=RiskCategory.FINANCIAL,
    ),
    FailureScenario(
        title="Market Timing Failure",
        probability=0.30,
        description=(
            "External market conditions shifted unexpectedly, making the initiative less relevant "
            "or valuable. Competitor actions or regulatory changes undermined the strategic rationale."
        ),
        mitigation_strategy=(
            "Continuous market monitoring with monthly reviews. Build pivot capabilities into "
            "project design. Define clear go/no-go decision points with objective criteria."
        ),
        category=RiskCategory.STRATEGIC,
    ),
)


def fallback_scenarios() -> list[FailureScenario]:
    return list(FALLBACK_SCENARIOS)


def fallback_contrarian() -> ContrarianAnalysis:
    body = {
        "counter_arguments": [
            "The proposed approach may overlook critical stakeholder concerns",
            "Alternative solutions have not been adequately explored",
            "The risk assessment may underestimate potential negative outcomes",
        ],
        "alternative_hypothesis": (
            "The current approach may not be optimal given the constraints and context."
        ),
        "disconfirming_evidence": (
            "Historical data shows similar initiatives have faced significant challenges."
        ),
        "recommended_action": ContrarianAction.RECONSIDER.value,
    }
    return ContrarianAnalysis(
        **body,
        content_source=ContentSource.FALLBACK,
        output_hash=content_hash(body),
    )


# ============================================================================
# GENERATORS
# ============================================================================


class PreMortemGenerator:
    """
    One pre-mortem generation call: prompt, bounded wait, strict parse.

    Raises GenerationError on any failure; never falls back itself.
    """

    def __init__(self, service: GenerationService, timeout_seconds: float = 30.0):
        self.service = service
        self.timeout_seconds = timeout_seconds

    @property
    def is_available(self) -> bool:
        return self.service.is_available

    async def generate(self, request: PreMortemRequest, seed: int) -> list[FailureScenario]:
        prompt = build_pre_mortem_prompt(request)
        try:
            raw = await asyncio.wait_for(
                self.service.generate(prompt, SCENARIO_RESPONSE_SCHEMA, seed, temperature=0.0),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise GenerationTimeoutError(self.timeout_seconds)

        return parse_scenarios(raw)


class ContrarianGenerator:
    """Consider-the-opposite generation call. Raises GenerationError on failure."""

    def __init__(self, service: GenerationService, timeout_seconds: float = 30.0):
        self.service = service
        self.timeout_seconds = timeout_seconds

    async def generate(self, request: ContrarianRequest, seed: int) -> ContrarianAnalysis:
        prompt = build_contrarian_prompt(request)
        try:
            raw = await asyncio.wait_for(
                self.service.generate(prompt, CONTRARIAN_RESPONSE_SCHEMA, seed, temperature=0.0),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise GenerationTimeoutError(self.timeout_seconds)

        return parse_contrarian(raw)


def scenarios_hash(scenarios: Optional[list[FailureScenario]]) -> str:
    """Content hash used for determinism comparison and record output hashes."""
    return content_hash(scenarios or [])
