"""
Protocol Selector Tests.

Covers the ordered rule table, the risk-level function, the outcome
table, and the consistency between risk level and selected protocols.
"""

import pytest
from hypothesis import given, settings as hyp_settings
from hypothesis import strategies as st

from kdsa.decision.protocol import ProtocolSelector, determine_outcome, determine_risk_level
from kdsa.decision.schemas import DebiasProtocol, DecisionOutcome, RiskLevel
from kdsa.sensing.limiting import identify_scarf_threats
from kdsa.sensing.schemas import ComponentScores, LimitingFactor, RiskFlag, ScarfProfile
from kdsa.sensing.scoring import classify_zone


def make_flag(score: float, risk_active: bool = False, scarf: float = 0.8, **dims) -> RiskFlag:
    profile = ScarfProfile(
        **{d: dims.get(d, scarf) for d in ("status", "certainty", "autonomy", "relatedness", "fairness")}
    )
    return RiskFlag(
        risk_active=risk_active,
        score=score,
        zone=classify_zone(score),
        component_scores=ComponentScores(
            environment_score=80,
            adaptive_capacity=4,
            validation_score=75,
            neural_coefficient=1.0,
        ),
        scarf_profile=profile,
    )


TWO_FACTORS = [LimitingFactor.ENVIRONMENT_CAP, LimitingFactor.NEURAL_BRAKE]
ONE_FACTOR = [LimitingFactor.NEURAL_BRAKE]


class TestProtocolRules:
    """First matching rule wins."""

    def setup_method(self):
        self.selector = ProtocolSelector()

    def select(self, flag, factors=()):
        return self.selector.select(flag, list(factors), sorted(identify_scarf_threats(flag.scarf_profile)))

    def test_active_flag_short_circuits(self):
        """An active flag forces a mandatory pre-mortem regardless of score."""
        selection = self.select(make_flag(95.0, risk_active=True))
        assert selection.rule == "risk_flag_active"
        assert selection.protocols == [DebiasProtocol.PRE_MORTEM_MANDATORY]
        assert selection.risk_level == RiskLevel.LOW

    def test_critical_score(self):
        selection = self.select(make_flag(50.0))
        assert selection.rule == "critical_score"
        assert selection.protocols == [DebiasProtocol.PRE_MORTEM_MANDATORY]
        assert selection.risk_level == RiskLevel.CRITICAL

    def test_low_score_with_scarf_threat(self):
        """Score under 60 with a SCARF threat is critical."""
        selection = self.select(make_flag(58.0, status=0.4))
        assert selection.rule == "low_score_with_scarf_threat"
        assert selection.protocols == [DebiasProtocol.PRE_MORTEM_MANDATORY]
        assert selection.risk_level == RiskLevel.CRITICAL

    def test_scarf_threat(self):
        selection = self.select(make_flag(80.0, certainty=0.4))
        assert selection.rule == "scarf_threat"
        assert selection.protocols == [
            DebiasProtocol.PRE_MORTEM_ADVISORY,
            DebiasProtocol.CONSIDER_OPPOSITE,
        ]
        assert selection.risk_level == RiskLevel.HIGH

    def test_multiple_limiting_factors(self):
        selection = self.select(make_flag(80.0), TWO_FACTORS)
        assert selection.rule == "multiple_limiting_factors"
        assert selection.requires_pre_mortem
        assert selection.requires_consider_opposite
        assert selection.risk_level == RiskLevel.MEDIUM

    def test_single_limiting_factor(self):
        selection = self.select(make_flag(80.0), ONE_FACTOR)
        assert selection.rule == "single_limiting_factor"
        assert selection.protocols == [DebiasProtocol.CONSIDER_OPPOSITE]
        assert not selection.requires_pre_mortem

    def test_below_resilient(self):
        selection = self.select(make_flag(65.0))
        assert selection.rule == "below_resilient"
        assert selection.protocols == [DebiasProtocol.CONSIDER_OPPOSITE]
        assert selection.risk_level == RiskLevel.HIGH

    def test_default_standard(self):
        selection = self.select(make_flag(90.0))
        assert selection.rule == "default"
        assert selection.protocols == [DebiasProtocol.STANDARD]
        assert selection.risk_level == RiskLevel.LOW

    def test_scarf_boundary_not_a_threat(self):
        """min SCARF of exactly 0.5 does not trigger the SCARF rules."""
        selection = self.select(make_flag(90.0, scarf=0.5))
        assert selection.rule == "default"


class TestRiskLevel:
    """Test the single risk-level function."""

    @pytest.mark.parametrize(
        "score,threats,min_scarf,expected",
        [
            (54.9, [], 0.8, RiskLevel.CRITICAL),
            (59.9, ["status"], 0.4, RiskLevel.CRITICAL),
            (60.0, ["status"], 0.4, RiskLevel.HIGH),
            (90.0, ["status", "certainty", "autonomy"], 0.1, RiskLevel.HIGH),
            (69.9, [], 0.8, RiskLevel.HIGH),
            (70.0, [], 0.8, RiskLevel.MEDIUM),
            (84.9, [], 0.8, RiskLevel.MEDIUM),
            (85.0, [], 0.8, RiskLevel.LOW),
        ],
    )
    def test_levels(self, score, threats, min_scarf, expected):
        assert determine_risk_level(score, threats, min_scarf) == expected


class TestOutcome:
    """Outcome derived from risk level and limiting factor count."""

    @pytest.mark.parametrize(
        "level,factors,expected",
        [
            (RiskLevel.CRITICAL, 0, DecisionOutcome.ABORT_RECOMMENDED),
            (RiskLevel.HIGH, 2, DecisionOutcome.DELAY_PENDING_REVIEW),
            (RiskLevel.HIGH, 1, DecisionOutcome.PROCEED_WITH_CONTROLS),
            (RiskLevel.MEDIUM, 3, DecisionOutcome.PROCEED_WITH_CONTROLS),
            (RiskLevel.LOW, 0, DecisionOutcome.PROCEED),
        ],
    )
    def test_outcomes(self, level, factors, expected):
        assert determine_outcome(level, factors) == expected


dimension = st.floats(min_value=0, max_value=1, allow_nan=False, allow_infinity=False)


class TestConsistency:
    """Risk level never contradicts the selected protocols."""

    @given(
        score=st.floats(min_value=0, max_value=100, allow_nan=False, allow_infinity=False),
        dims=st.lists(dimension, min_size=5, max_size=5),
        factor_count=st.integers(min_value=0, max_value=3),
    )
    @hyp_settings(max_examples=300)
    def test_level_matches_protocols(self, score, dims, factor_count):
        """Critical iff mandatory pre-mortem; High implies consider-the-opposite."""
        flag = make_flag(
            score,
            status=dims[0],
            certainty=dims[1],
            autonomy=dims[2],
            relatedness=dims[3],
            fairness=dims[4],
        )
        factors = list(LimitingFactor)[:factor_count]
        threats = sorted(identify_scarf_threats(flag.scarf_profile))
        selection = ProtocolSelector().select(flag, factors, threats)

        mandatory = DebiasProtocol.PRE_MORTEM_MANDATORY in selection.protocols
        assert (selection.risk_level == RiskLevel.CRITICAL) == mandatory
        if selection.risk_level == RiskLevel.HIGH:
            assert DebiasProtocol.CONSIDER_OPPOSITE in selection.protocols

    @given(score=st.floats(min_value=0, max_value=100, allow_nan=False, allow_infinity=False))
    @hyp_settings(max_examples=100)
    def test_active_flag_always_mandatory(self, score):
        """An active flag selects the mandatory pre-mortem at any score."""
        selection = ProtocolSelector().select(make_flag(score, risk_active=True), [], [])
        assert selection.protocols == [DebiasProtocol.PRE_MORTEM_MANDATORY]
