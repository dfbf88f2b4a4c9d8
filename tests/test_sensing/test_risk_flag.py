"""
Risk Flag Builder Tests.
"""

from datetime import datetime

import pytest
from pydantic import ValidationError

from kdsa.sensing.schemas import (
    AssessmentInput,
    ComponentScores,
    RiskZone,
    TriggerCondition,
)
from kdsa.sensing.service import RiskFlagBuilder, primary_driver_for


class TestRiskFlagBuilder:
    """Test RiskFlag construction from assessment inputs."""

    def test_healthy_flag_inactive(self, healthy_flag):
        """No triggers -> inactive flag with no primary driver."""
        assert healthy_flag.score == pytest.approx(96.5)
        assert healthy_flag.zone == RiskZone.EXPANSION
        assert healthy_flag.risk_active is False
        assert healthy_flag.primary_driver == "none"
        assert healthy_flag.trigger_conditions == frozenset()

    def test_critical_flag_triggers(self, critical_flag):
        """Critical zone, environment constraint and say-do gap all trigger."""
        assert critical_flag.score == pytest.approx(26.95)
        assert critical_flag.zone == RiskZone.CRITICAL
        assert critical_flag.risk_active is True
        assert critical_flag.trigger_conditions == {
            TriggerCondition.ATRI_CRITICAL_ZONE,
            TriggerCondition.ORS_ENVIRONMENT_CONSTRAINT,
            TriggerCondition.SIMULATION_SAY_DO_GAP,
        }
        assert critical_flag.primary_driver == "atri_critical_zone"

    def test_constrained_capacity(self, flag_builder, calm_profile):
        """Adaptive capacity below 2.0 triggers the capacity condition."""
        flag = flag_builder.build(
            AssessmentInput(
                component_scores=ComponentScores(
                    environment_score=90,
                    adaptive_capacity=1.5,
                    validation_score=90,
                    neural_coefficient=1.0,
                ),
                scarf_profile=calm_profile,
            )
        )
        assert flag.trigger_conditions == {TriggerCondition.RACQ_CONSTRAINED_CAPACITY}
        assert flag.primary_driver == "racq_constrained_capacity"

    def test_scarf_triggers(self, flag_builder, healthy_scores, threatened_profile):
        """Each threatened SCARF dimension becomes a trigger."""
        flag = flag_builder.build(
            AssessmentInput(component_scores=healthy_scores, scarf_profile=threatened_profile)
        )
        assert flag.trigger_conditions == {
            TriggerCondition.SCARF_STATUS_THREAT,
            TriggerCondition.SCARF_CERTAINTY_THREAT,
            TriggerCondition.SCARF_RELATEDNESS_THREAT,
        }
        assert flag.primary_driver == "scarf_status_threat"
        assert flag.trigger_count == 3

    def test_primary_driver_priority(self):
        """Critical zone outranks SCARF threats."""
        triggers = frozenset(
            {TriggerCondition.SCARF_FAIRNESS_THREAT, TriggerCondition.ATRI_CRITICAL_ZONE}
        )
        assert primary_driver_for(triggers) == "atri_critical_zone"

    def test_default_flag(self):
        """Neutral default is strained and inactive."""
        flag = RiskFlagBuilder().default_flag()
        assert flag.score == pytest.approx(64.8)
        assert flag.zone == RiskZone.STRAINED
        assert flag.risk_active is False

    def test_created_at_passthrough(self, flag_builder, healthy_scores, calm_profile):
        """Explicit creation time is kept."""
        ts = datetime(2026, 1, 1, 12, 0, 0)
        flag = flag_builder.build(
            AssessmentInput(component_scores=healthy_scores, scarf_profile=calm_profile),
            created_at=ts,
        )
        assert flag.created_at == ts

    def test_flag_is_immutable(self, healthy_flag):
        """Risk flags cannot be mutated after creation."""
        with pytest.raises(ValidationError):
            healthy_flag.score = 10.0
