"""
Risk Flag Builder.

Turns an assessment snapshot into an immutable RiskFlag:
1. Compute the composite score and zone
2. Derive trigger conditions from zone, sub-scores and SCARF profile
3. Flag is active when any trigger fired; primary driver is the
   highest-priority trigger
"""

from datetime import datetime
from typing import Optional

import structlog

from kdsa.sensing.limiting import (
    ENVIRONMENT_CAP_THRESHOLD,
    VALIDATION_VETO_THRESHOLD,
    identify_scarf_threats,
)
from kdsa.sensing.schemas import (
    AssessmentInput,
    ComponentScores,
    RiskFlag,
    RiskZone,
    ScarfProfile,
    TriggerCondition,
)
from kdsa.sensing.scoring import classify_zone, compute_score

logger = structlog.get_logger(__name__)


# Adaptive capacity below this (on the 0-5 scale) is constrained
RACQ_CONSTRAINED_THRESHOLD = 2.0

# Highest priority first; the first present trigger becomes the primary driver
TRIGGER_PRIORITY: tuple[TriggerCondition, ...] = (
    TriggerCondition.ATRI_CRITICAL_ZONE,
    TriggerCondition.SIMULATION_SAY_DO_GAP,
    TriggerCondition.ORS_ENVIRONMENT_CONSTRAINT,
    TriggerCondition.RACQ_CONSTRAINED_CAPACITY,
    TriggerCondition.SCARF_STATUS_THREAT,
    TriggerCondition.SCARF_CERTAINTY_THREAT,
    TriggerCondition.SCARF_AUTONOMY_THREAT,
    TriggerCondition.SCARF_RELATEDNESS_THREAT,
    TriggerCondition.SCARF_FAIRNESS_THREAT,
)

# Used by the decision engine when a caller supplies no risk flag
DEFAULT_COMPONENT_SCORES = ComponentScores(
    environment_score=70.0,
    adaptive_capacity=3.5,
    validation_score=75.0,
    neural_coefficient=0.9,
)
DEFAULT_SCARF_PROFILE = ScarfProfile(
    status=0.7,
    certainty=0.7,
    autonomy=0.7,
    relatedness=0.7,
    fairness=0.7,
)


def identify_trigger_conditions(
    scores: ComponentScores,
    profile: ScarfProfile,
    zone: RiskZone,
) -> frozenset[TriggerCondition]:
    triggers = set()
    if zone == RiskZone.CRITICAL:
        triggers.add(TriggerCondition.ATRI_CRITICAL_ZONE)
    if scores.environment_score < ENVIRONMENT_CAP_THRESHOLD:
        triggers.add(TriggerCondition.ORS_ENVIRONMENT_CONSTRAINT)
    if scores.adaptive_capacity < RACQ_CONSTRAINED_THRESHOLD:
        triggers.add(TriggerCondition.RACQ_CONSTRAINED_CAPACITY)
    if scores.validation_score < VALIDATION_VETO_THRESHOLD:
        triggers.add(TriggerCondition.SIMULATION_SAY_DO_GAP)
    for dimension in identify_scarf_threats(profile):
        triggers.add(TriggerCondition(f"scarf_{dimension}_threat"))
    return frozenset(triggers)


def primary_driver_for(triggers: frozenset[TriggerCondition]) -> str:
    for trigger in TRIGGER_PRIORITY:
        if trigger in triggers:
            return trigger.value
    return "none"


class RiskFlagBuilder:
    """Builds RiskFlags from assessment inputs."""

    def build(
        self,
        assessment: AssessmentInput,
        created_at: Optional[datetime] = None,
    ) -> RiskFlag:
        scores = assessment.component_scores
        profile = assessment.scarf_profile

        score = compute_score(scores)
        zone = classify_zone(score)
        triggers = identify_trigger_conditions(scores, profile, zone)

        flag = RiskFlag(
            risk_active=bool(triggers),
            primary_driver=primary_driver_for(triggers),
            score=score,
            zone=zone,
            component_scores=scores,
            scarf_profile=profile,
            trigger_conditions=triggers,
            created_at=created_at or datetime.utcnow(),
        )

        logger.info(
            "risk_flag_built",
            score=flag.score,
            zone=zone.value,
            risk_active=flag.risk_active,
            primary_driver=flag.primary_driver,
            triggers=sorted(t.value for t in triggers),
        )

        return flag

    def default_flag(self) -> RiskFlag:
        """Neutral flag for analyses that arrive without sensor input."""
        return self.build(
            AssessmentInput(
                component_scores=DEFAULT_COMPONENT_SCORES,
                scarf_profile=DEFAULT_SCARF_PROFILE,
            )
        )
