"""
Composite resilience score (ATRI-style).

    normalized_capacity = adaptive_capacity / 5 * 100
    raw   = environment * 0.30 + normalized_capacity * 0.30 + validation * 0.40
    score = raw * neural_coefficient

Weights are fixed policy. Inputs are range-checked by ComponentScores;
these functions assume valid inputs.
"""

from kdsa.sensing.schemas import ComponentScores, RiskZone


ENVIRONMENT_WEIGHT = 0.30
CAPACITY_WEIGHT = 0.30
VALIDATION_WEIGHT = 0.40
CAPACITY_SCALE = 5.0

# Inclusive lower bounds, checked top-down
ZONE_THRESHOLDS: tuple[tuple[float, RiskZone], ...] = (
    (85.0, RiskZone.EXPANSION),
    (70.0, RiskZone.RESILIENT),
    (55.0, RiskZone.STRAINED),
)


def normalize_capacity(adaptive_capacity: float) -> float:
    return adaptive_capacity / CAPACITY_SCALE * 100.0


def compute_score(scores: ComponentScores) -> float:
    """Composite score in [0, 100]."""
    raw = (
        scores.environment_score * ENVIRONMENT_WEIGHT
        + normalize_capacity(scores.adaptive_capacity) * CAPACITY_WEIGHT
        + scores.validation_score * VALIDATION_WEIGHT
    )
    # Float error can push a perfect raw score a hair past 100
    return min(raw * scores.neural_coefficient, 100.0)


def classify_zone(score: float) -> RiskZone:
    for threshold, zone in ZONE_THRESHOLDS:
        if score >= threshold:
            return zone
    return RiskZone.CRITICAL
