"""
De-biasing Protocol Selector.

An ordered first-match-wins rule table maps the risk flag, limiting
factors and SCARF threats to the required protocols. Risk level is
computed independently by ``determine_risk_level``, the single
risk-level function used across the engine.

Rules (in order):
1. Risk flag active                      -> pre-mortem mandatory
2. Score < 55                            -> pre-mortem mandatory
3. Score < 60 and min SCARF < 0.5        -> pre-mortem mandatory
4. Min SCARF < 0.5                       -> pre-mortem advisory + consider opposite
5. Two or more limiting factors          -> pre-mortem advisory + consider opposite
6. Exactly one limiting factor           -> consider opposite
7. Score < 70                            -> consider opposite
8. Otherwise                             -> standard
"""

from dataclasses import dataclass
from typing import Callable, Collection

import structlog

from kdsa.decision.schemas import DebiasProtocol, DecisionOutcome, RiskLevel
from kdsa.sensing.limiting import SCARF_THREAT_THRESHOLD, min_scarf_dimension
from kdsa.sensing.schemas import LimitingFactor, RiskFlag

logger = structlog.get_logger(__name__)


CRITICAL_SCORE = 55.0
CRITICAL_SCARF_SCORE = 60.0
HIGH_SCORE = 70.0
MEDIUM_SCORE = 85.0
HIGH_THREAT_DOMAINS = 3


@dataclass(frozen=True)
class RuleContext:
    """Inputs every rule predicate sees."""

    risk_active: bool
    score: float
    min_scarf: float
    limiting_factor_count: int
    threat_count: int


@dataclass(frozen=True)
class ProtocolRule:
    name: str
    predicate: Callable[[RuleContext], bool]
    protocols: tuple[DebiasProtocol, ...]


@dataclass(frozen=True)
class ProtocolSelection:
    protocols: list[DebiasProtocol]
    risk_level: RiskLevel
    rule: str

    @property
    def requires_pre_mortem(self) -> bool:
        return any(
            p in (DebiasProtocol.PRE_MORTEM_MANDATORY, DebiasProtocol.PRE_MORTEM_ADVISORY)
            for p in self.protocols
        )

    @property
    def requires_consider_opposite(self) -> bool:
        return DebiasProtocol.CONSIDER_OPPOSITE in self.protocols


_MANDATORY = (DebiasProtocol.PRE_MORTEM_MANDATORY,)
_ADVISORY = (DebiasProtocol.PRE_MORTEM_ADVISORY, DebiasProtocol.CONSIDER_OPPOSITE)
_OPPOSITE = (DebiasProtocol.CONSIDER_OPPOSITE,)

PROTOCOL_RULES: tuple[ProtocolRule, ...] = (
    ProtocolRule("risk_flag_active", lambda c: c.risk_active, _MANDATORY),
    ProtocolRule("critical_score", lambda c: c.score < CRITICAL_SCORE, _MANDATORY),
    ProtocolRule(
        "low_score_with_scarf_threat",
        lambda c: c.score < CRITICAL_SCARF_SCORE and c.min_scarf < SCARF_THREAT_THRESHOLD,
        _MANDATORY,
    ),
    ProtocolRule("scarf_threat", lambda c: c.min_scarf < SCARF_THREAT_THRESHOLD, _ADVISORY),
    ProtocolRule("multiple_limiting_factors", lambda c: c.limiting_factor_count >= 2, _ADVISORY),
    ProtocolRule("single_limiting_factor", lambda c: c.limiting_factor_count == 1, _OPPOSITE),
    ProtocolRule("below_resilient", lambda c: c.score < HIGH_SCORE, _OPPOSITE),
    ProtocolRule("default", lambda c: True, (DebiasProtocol.STANDARD,)),
)


def determine_risk_level(
    score: float,
    scarf_threats: Collection[str],
    min_scarf: float,
) -> RiskLevel:
    """The one risk-level function. Evaluated independently of the rule table."""
    scarf_threatened = min_scarf < SCARF_THREAT_THRESHOLD

    if score < CRITICAL_SCORE or (score < CRITICAL_SCARF_SCORE and scarf_threatened):
        return RiskLevel.CRITICAL
    if len(scarf_threats) >= HIGH_THREAT_DOMAINS or score < HIGH_SCORE or scarf_threatened:
        return RiskLevel.HIGH
    if score < MEDIUM_SCORE:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def determine_outcome(risk_level: RiskLevel, limiting_factor_count: int) -> DecisionOutcome:
    """Outcome implied by risk level alone (before any determinism override)."""
    if risk_level == RiskLevel.CRITICAL:
        return DecisionOutcome.ABORT_RECOMMENDED
    if risk_level == RiskLevel.HIGH and limiting_factor_count >= 2:
        return DecisionOutcome.DELAY_PENDING_REVIEW
    if risk_level in (RiskLevel.HIGH, RiskLevel.MEDIUM):
        return DecisionOutcome.PROCEED_WITH_CONTROLS
    return DecisionOutcome.PROCEED


class ProtocolSelector:
    """Evaluates the ordered rule table."""

    def __init__(self, rules: tuple[ProtocolRule, ...] = PROTOCOL_RULES):
        self._rules = rules

    def select(
        self,
        risk_flag: RiskFlag,
        limiting_factors: Collection[LimitingFactor],
        scarf_threats: Collection[str],
    ) -> ProtocolSelection:
        context = RuleContext(
            risk_active=risk_flag.risk_active,
            score=risk_flag.score,
            min_scarf=min_scarf_dimension(risk_flag.scarf_profile),
            limiting_factor_count=len(limiting_factors),
            threat_count=len(scarf_threats),
        )

        rule = next(r for r in self._rules if r.predicate(context))
        risk_level = determine_risk_level(context.score, scarf_threats, context.min_scarf)

        logger.debug(
            "protocol_selected",
            rule=rule.name,
            protocols=[p.value for p in rule.protocols],
            risk_level=risk_level.value,
        )

        return ProtocolSelection(
            protocols=list(rule.protocols),
            risk_level=risk_level,
            rule=rule.name,
        )
