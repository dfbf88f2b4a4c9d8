"""
Limiting factor and SCARF threat analysis.

All rules are independent and order-insensitive, so results are sets.
"""

from typing import FrozenSet

from kdsa.sensing.schemas import ComponentScores, LimitingFactor, ScarfProfile


ENVIRONMENT_CAP_THRESHOLD = 40.0
VALIDATION_VETO_THRESHOLD = 50.0
NEURAL_BRAKE_THRESHOLD = 1.0
SCARF_THREAT_THRESHOLD = 0.5


def identify_limiting_factors(scores: ComponentScores) -> FrozenSet[LimitingFactor]:
    factors = set()
    if scores.environment_score < ENVIRONMENT_CAP_THRESHOLD:
        factors.add(LimitingFactor.ENVIRONMENT_CAP)
    if scores.validation_score < VALIDATION_VETO_THRESHOLD:
        factors.add(LimitingFactor.VALIDATION_VETO)
    if scores.neural_coefficient < NEURAL_BRAKE_THRESHOLD:
        factors.add(LimitingFactor.NEURAL_BRAKE)
    return frozenset(factors)


def identify_scarf_threats(profile: ScarfProfile) -> FrozenSet[str]:
    """Names of the SCARF dimensions below the threat threshold."""
    return frozenset(
        name
        for name, value in profile.dimensions().items()
        if value < SCARF_THREAT_THRESHOLD
    )


def min_scarf_dimension(profile: ScarfProfile) -> float:
    return min(profile.dimensions().values())
