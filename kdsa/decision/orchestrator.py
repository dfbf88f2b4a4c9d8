"""
Decision Orchestrator.

Runs one decision analysis through its lifecycle:

    idle -> scoring_complete
         -> [scenario_generation_in_flight -> [determinism_verified]]
         -> record_assembled -> logged

1. Scoring: recompute the composite score, limiting factors, SCARF
   threats, bias findings, protocols and risk level
2. Pre-mortem (when a pre-mortem protocol is selected): one generation
   call for three failure scenarios, then determinism verification of
   generated content. Any generation failure falls back to the fixed
   scenario set, labelled as fallback
3. Consider-the-opposite (when selected and a prior conclusion exists)
4. Assemble the immutable DecisionRecord
5. Append it to the ledger

Generation failures are never fatal. Ledger failures are: the caller
receives LedgerWriteError and should retry ``log``, not re-analyze.
"""

import uuid
from datetime import datetime
from typing import Optional, Sequence

import structlog

from kdsa.audit.ledger import AuditLedger
from kdsa.audit.schemas import LedgerEntry
from kdsa.common.exceptions import GenerationError, InvalidStateTransitionError
from kdsa.common.hashing import content_hash, generate_trace_id
from kdsa.decision.biases import BiasDetector
from kdsa.decision.determinism import DeterminismVerifier
from kdsa.decision.premortem import (
    ContrarianGenerator,
    ContrarianRequest,
    PreMortemGenerator,
    PreMortemRequest,
    fallback_contrarian,
    fallback_scenarios,
)
from kdsa.decision.protocol import ProtocolSelection, ProtocolSelector, determine_outcome
from kdsa.decision.schemas import (
    BiasFinding,
    ContentSource,
    ContrarianAnalysis,
    DecisionOutcome,
    DecisionRecord,
    DecisionRequest,
    DecisionState,
    DeterminismReport,
    DeterminismTier,
    FailureScenario,
    Recommendation,
    RiskLevel,
)
from kdsa.sensing.limiting import (
    identify_limiting_factors,
    identify_scarf_threats,
    min_scarf_dimension,
)
from kdsa.sensing.schemas import LimitingFactor, RiskFlag, RiskFlagSummary
from kdsa.sensing.scoring import classify_zone, compute_score
from kdsa.sensing.service import RiskFlagBuilder

logger = structlog.get_logger(__name__)


DEFAULT_COMPLIANCE_TAGS = (
    "EU AI Act Art 10",
    "EU AI Act Art 13",
    "EU AI Act Art 14",
    "DORA Pillar 3",
    "NIST AI RMF Map 1.2",
)

BIAS_CONFIDENCE_PENALTY = 0.05
SCORE_TOLERANCE = 1e-6


# ============================================================================
# STATE MACHINE
# ============================================================================


ALLOWED_TRANSITIONS: dict[DecisionState, frozenset[DecisionState]] = {
    DecisionState.IDLE: frozenset({DecisionState.SCORING_COMPLETE}),
    DecisionState.SCORING_COMPLETE: frozenset(
        {DecisionState.SCENARIO_GENERATION_IN_FLIGHT, DecisionState.RECORD_ASSEMBLED}
    ),
    DecisionState.SCENARIO_GENERATION_IN_FLIGHT: frozenset(
        {DecisionState.DETERMINISM_VERIFIED, DecisionState.RECORD_ASSEMBLED}
    ),
    DecisionState.DETERMINISM_VERIFIED: frozenset({DecisionState.RECORD_ASSEMBLED}),
    DecisionState.RECORD_ASSEMBLED: frozenset({DecisionState.LOGGED}),
    DecisionState.LOGGED: frozenset(),
}


class DecisionRun:
    """Lifecycle tracker for a single analysis request."""

    def __init__(self, decision_id: str):
        self.decision_id = decision_id
        self.state = DecisionState.IDLE
        self.history: list[DecisionState] = [DecisionState.IDLE]

    def advance(self, target: DecisionState) -> None:
        if target not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidStateTransitionError(self.state.value, target.value)
        self.state = target
        self.history.append(target)
        logger.debug("decision_state_changed", decision_id=self.decision_id, state=target.value)


# ============================================================================
# HELPERS
# ============================================================================


def compute_confidence(bias_count: int, consistency_rate: Optional[float] = None) -> float:
    confidence = max(0.0, 1.0 - bias_count * BIAS_CONFIDENCE_PENALTY)
    if consistency_rate is not None:
        confidence *= consistency_rate
    return round(confidence, 3)


def build_causal_path(
    risk_flag: RiskFlag,
    selection: ProtocolSelection,
    limiting_factors: Sequence[LimitingFactor],
    scarf_threats: Sequence[str],
    biases: Sequence[BiasFinding],
    scenario_source: ContentSource,
    determinism: Optional[DeterminismReport],
    outcome: DecisionOutcome,
    overridden: bool,
) -> list[str]:
    """Ordered tokens recording which inputs and rules drove the outcome."""
    path = [
        f"M1_INPUT:ATRI={risk_flag.score:.1f}|Zone={risk_flag.zone.value}"
        f"|RiskFlag={str(risk_flag.risk_active).lower()}",
    ]
    if limiting_factors:
        path.append(f"LIMITING_FACTORS:{','.join(f.value for f in limiting_factors)}")
    if scarf_threats:
        path.append(f"SCARF_THREATS:{','.join(scarf_threats)}")
    if biases:
        path.append(f"BIASES_DETECTED:{','.join(b.type.value for b in biases)}")

    path.append(f"RULE:{selection.rule}")
    path.append(f"PROTOCOLS:{','.join(p.value for p in selection.protocols)}")
    path.append(f"RISK_LEVEL:{selection.risk_level.value}")

    if scenario_source != ContentSource.NONE:
        path.append(f"SCENARIO_SOURCE:{scenario_source.value}")
    if determinism is not None:
        path.append(
            f"DETERMINISM:{determinism.tier.value}|consistency={determinism.consistency_rate}"
        )
    if overridden:
        path.append("OVERRIDE:stochastic_output")

    path.append(f"OUTCOME:{outcome.value}")
    return path


def build_executive_summary(
    risk_level: RiskLevel,
    limiting_factors: Sequence[LimitingFactor],
    biases: Sequence[BiasFinding],
    scenarios: Sequence[FailureScenario],
    scenario_source: ContentSource,
) -> str:
    parts = [f"Risk Level: {risk_level.value.upper()}"]
    if limiting_factors:
        parts.append(f"Limiting Factors: {', '.join(f.value for f in limiting_factors)}")
    if biases:
        parts.append(f"Biases: {', '.join(b.type.value for b in biases)}")
    if scenarios:
        highest = max(scenarios, key=lambda s: s.probability)
        label = " [fallback]" if scenario_source == ContentSource.FALLBACK else ""
        parts.append(f"Primary Risk: {highest.title} ({round(highest.probability * 100)}%){label}")
    return " | ".join(parts)


# ============================================================================
# ORCHESTRATOR
# ============================================================================


class DecisionOrchestrator:
    """
    Coordinates scoring, generation, verification and logging.

    All collaborators are injected; one instance serves every request.
    """

    def __init__(
        self,
        ledger: AuditLedger,
        pre_mortem: PreMortemGenerator,
        contrarian: ContrarianGenerator,
        verifier: DeterminismVerifier,
        seed: int = 42,
        determinism_iterations: int = 3,
        compliance_tags: Sequence[str] = DEFAULT_COMPLIANCE_TAGS,
        bias_detector: Optional[BiasDetector] = None,
        selector: Optional[ProtocolSelector] = None,
        flag_builder: Optional[RiskFlagBuilder] = None,
    ):
        self.ledger = ledger
        self.pre_mortem = pre_mortem
        self.contrarian = contrarian
        self.verifier = verifier
        self.seed = seed
        self.determinism_iterations = determinism_iterations
        self.compliance_tags = list(compliance_tags)
        self.bias_detector = bias_detector or BiasDetector()
        self.selector = selector or ProtocolSelector()
        self.flag_builder = flag_builder or RiskFlagBuilder()

    async def analyze(self, request: DecisionRequest) -> DecisionRecord:
        """Run the full lifecycle and return the logged record."""
        run, record = await self.assess(request)
        await self.log(record)
        run.advance(DecisionState.LOGGED)

        logger.info(
            "decision_analyzed",
            decision_id=record.decision_id,
            outcome=record.recommendation.outcome.value,
            risk_level=record.risk_level.value,
            scenario_source=record.scenario_source.value,
            determinism_tier=record.determinism_tier.value,
        )
        return record

    async def log(self, record: DecisionRecord) -> LedgerEntry:
        """
        Append a record to the ledger.

        Raises LedgerWriteError if storage fails; the record itself stays
        valid and can be passed here again.
        """
        return await self.ledger.append(record)

    async def assess(self, request: DecisionRequest) -> tuple[DecisionRun, DecisionRecord]:
        """Everything up to record assembly. Nothing is written."""
        decision_id = f"dec_{datetime.utcnow().strftime('%Y%m%d%H%M%S')}_{uuid.uuid4().hex[:8]}"
        run = DecisionRun(decision_id)

        # ---- Scoring ------------------------------------------------------
        risk_flag = self._resolve_risk_flag(request.risk_flag, decision_id)
        limiting_factors = sorted(
            identify_limiting_factors(risk_flag.component_scores), key=lambda f: f.value
        )
        scarf_threats = sorted(identify_scarf_threats(risk_flag.scarf_profile))
        biases = self.bias_detector.detect(request.decision_text)
        selection = self.selector.select(risk_flag, limiting_factors, scarf_threats)
        run.advance(DecisionState.SCORING_COMPLETE)

        # ---- Pre-mortem ---------------------------------------------------
        scenarios: list[FailureScenario] = []
        scenario_source = ContentSource.NONE
        determinism: Optional[DeterminismReport] = None

        if selection.requires_pre_mortem:
            run.advance(DecisionState.SCENARIO_GENERATION_IN_FLIGHT)
            pm_request = PreMortemRequest(
                decision_text=request.decision_text,
                known_risks=request.known_risks,
                score=risk_flag.score,
                zone=risk_flag.zone.value,
                scarf_threats=scarf_threats,
                limiting_factors=[f.value for f in limiting_factors],
                detected_biases=[b.type.value for b in biases],
            )
            scenarios, scenario_source = await self._generate_scenarios(pm_request, decision_id)

            if scenario_source == ContentSource.GENERATED:
                determinism = await self.verifier.verify(
                    pm_request, self.seed, self.determinism_iterations
                )
                run.advance(DecisionState.DETERMINISM_VERIFIED)

        # ---- Consider the opposite ----------------------------------------
        contrarian: Optional[ContrarianAnalysis] = None
        if selection.requires_consider_opposite and request.prior_conclusion:
            contrarian = await self._generate_contrarian(
                ContrarianRequest(
                    prior_conclusion=request.prior_conclusion,
                    supporting_evidence=request.supporting_evidence,
                    detected_biases=[b.type.value for b in biases],
                ),
                decision_id,
            )

        # ---- Assembly -----------------------------------------------------
        outcome = determine_outcome(selection.risk_level, len(limiting_factors))
        overridden = False
        if determinism is not None and determinism.tier == DeterminismTier.STOCHASTIC:
            overridden = outcome != DecisionOutcome.DELAY_PENDING_REVIEW
            outcome = DecisionOutcome.DELAY_PENDING_REVIEW

        input_hash = content_hash(
            {
                "decision_text": request.decision_text,
                "known_risks": request.known_risks,
                "prior_conclusion": request.prior_conclusion,
                "supporting_evidence": request.supporting_evidence,
                "risk_flag": risk_flag.model_dump(exclude={"created_at"}),
                "seed": self.seed,
            }
        )

        recommendation = Recommendation(
            outcome=outcome,
            confidence_score=compute_confidence(
                len(biases), determinism.consistency_rate if determinism else None
            ),
            causal_path=build_causal_path(
                risk_flag,
                selection,
                limiting_factors,
                scarf_threats,
                biases,
                scenario_source,
                determinism,
                outcome,
                overridden,
            ),
            logic_trace_id=generate_trace_id(input_hash, self.seed),
        )

        output_hash = content_hash(
            {
                "risk_level": selection.risk_level,
                "protocols": selection.protocols,
                "bias_findings": biases,
                "scenarios": scenarios,
                "contrarian": contrarian,
                "recommendation": recommendation,
            }
        )

        record = DecisionRecord(
            decision_id=decision_id,
            timestamp=datetime.utcnow(),
            decision_text=request.decision_text,
            known_risks=request.known_risks,
            input_risk_flag=RiskFlagSummary(
                risk_active=risk_flag.risk_active,
                primary_driver=risk_flag.primary_driver,
                score=round(risk_flag.score, 3),
                zone=risk_flag.zone,
                limiting_factors=limiting_factors,
                scarf_threats=scarf_threats,
                min_scarf=min_scarf_dimension(risk_flag.scarf_profile),
            ),
            risk_level=selection.risk_level,
            protocols=selection.protocols,
            protocol_rule=selection.rule,
            bias_findings=biases,
            recommendation=recommendation,
            scenarios=scenarios,
            scenario_source=scenario_source,
            contrarian=contrarian,
            determinism=determinism,
            determinism_tier=determinism.tier if determinism else DeterminismTier.DETERMINISTIC,
            determinism_verified=determinism is not None,
            executive_summary=build_executive_summary(
                selection.risk_level, limiting_factors, biases, scenarios, scenario_source
            ),
            input_hash=input_hash,
            output_hash=output_hash,
            seed=self.seed,
            compliance_tags=self.compliance_tags,
        )
        run.advance(DecisionState.RECORD_ASSEMBLED)

        return run, record

    # =========================================================================
    # PRIVATE
    # =========================================================================

    def _resolve_risk_flag(self, risk_flag: Optional[RiskFlag], decision_id: str) -> RiskFlag:
        if risk_flag is None:
            return self.flag_builder.default_flag()

        # Score and zone are always derived from the component scores
        score = compute_score(risk_flag.component_scores)
        zone = classify_zone(score)
        if abs(score - risk_flag.score) > SCORE_TOLERANCE or zone != risk_flag.zone:
            logger.warning(
                "risk_flag_mismatch",
                decision_id=decision_id,
                supplied_score=risk_flag.score,
                computed_score=round(score, 3),
                supplied_zone=risk_flag.zone.value,
                computed_zone=zone.value,
            )
            risk_flag = risk_flag.model_copy(update={"score": score, "zone": zone})
        return risk_flag

    async def _generate_scenarios(
        self,
        request: PreMortemRequest,
        decision_id: str,
    ) -> tuple[list[FailureScenario], ContentSource]:
        try:
            scenarios = await self.pre_mortem.generate(request, self.seed)
            return scenarios, ContentSource.GENERATED
        except GenerationError as e:
            logger.warning(
                "pre_mortem_fallback",
                decision_id=decision_id,
                error_code=e.code.value,
                error=e.message,
            )
            return fallback_scenarios(), ContentSource.FALLBACK

    async def _generate_contrarian(
        self,
        request: ContrarianRequest,
        decision_id: str,
    ) -> ContrarianAnalysis:
        try:
            return await self.contrarian.generate(request, self.seed)
        except GenerationError as e:
            logger.warning(
                "contrarian_fallback",
                decision_id=decision_id,
                error_code=e.code.value,
                error=e.message,
            )
            return fallback_contrarian()
