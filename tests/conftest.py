"""
Pytest Configuration and Fixtures.

Provides reusable fixtures for testing the decision engine:
- Scripted generation service (no network)
- In-memory ledger
- Sample sensing inputs
- Fully wired orchestrator
"""

import os
from typing import Any, Optional

import pytest
import pytest_asyncio

# Keep tests independent of any local .env
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FORMAT", "console")
os.environ.setdefault("LEDGER_BACKEND", "memory")

from kdsa.audit.ledger import AuditLedger
from kdsa.audit.repository import InMemoryLedgerRepository
from kdsa.common.exceptions import GenerationError
from kdsa.decision.determinism import DeterminismVerifier
from kdsa.decision.generation import GenerationService
from kdsa.decision.orchestrator import DecisionOrchestrator
from kdsa.decision.premortem import ContrarianGenerator, PreMortemGenerator
from kdsa.sensing.schemas import (
    AssessmentInput,
    ComponentScores,
    ScarfProfile,
)
from kdsa.sensing.service import RiskFlagBuilder


# ============================================================================
# GENERATION FAKES
# ============================================================================


GENERATED_SCENARIOS = [
    {
        "title": "Adoption Stall",
        "probability": 0.5,
        "description": "Teams never moved off the legacy process.",
        "mitigation_strategy": "Stage the rollout and measure adoption weekly.",
        "risk_category": "OPERATIONAL",
    },
    {
        "title": "Regulatory Pushback",
        "probability": 0.3,
        "description": "The regulator rejected the new control design.",
        "mitigation_strategy": "Pre-clear the design with the supervisor.",
        "risk_category": "REGULATORY",
    },
    {
        "title": "Cost Overrun",
        "probability": 0.2,
        "description": "Vendor costs doubled after the first quarter.",
        "mitigation_strategy": "Fix-price the first two phases.",
        "risk_category": "FINANCIAL",
    },
]

GENERATED_CONTRARIAN = {
    "counterArguments": ["Demand is seasonal", "The pilot was too small", "Costs are understated"],
    "alternativeHypothesis": "Growth came from a one-off contract.",
    "disconfirmingEvidence": "Two more quarters of flat demand.",
    "recommendedAction": "MODIFY",
}


class ScriptedGenerationService(GenerationService):
    """
    Generation service returning queued responses.

    Each queued item is returned (or raised, if an exception) in order;
    when the queue is empty the default response is used.
    """

    def __init__(self, default: Any = None, responses: Optional[list] = None):
        self.default = default
        self.responses = list(responses or [])
        self.calls: list[dict] = []

    async def generate(self, prompt, schema, seed, temperature=0.0):
        self.calls.append(
            {"prompt": prompt, "schema": schema, "seed": seed, "temperature": temperature}
        )
        item = self.responses.pop(0) if self.responses else self.default
        if isinstance(item, Exception):
            raise item
        if item is None:
            raise GenerationError("no scripted response")
        return item


class RoutingGenerationService(GenerationService):
    """Answers pre-mortem and contrarian prompts with fixed content."""

    def __init__(self, scenarios=None, contrarian=None):
        self.scenarios = scenarios if scenarios is not None else GENERATED_SCENARIOS
        self.contrarian = contrarian if contrarian is not None else GENERATED_CONTRARIAN
        self.calls: list[str] = []

    async def generate(self, prompt, schema, seed, temperature=0.0):
        if "Pre-Mortem" in prompt:
            self.calls.append("pre_mortem")
            return self.scenarios
        self.calls.append("contrarian")
        return self.contrarian


# ============================================================================
# SENSING FIXTURES
# ============================================================================


@pytest.fixture
def healthy_scores() -> ComponentScores:
    """Scores in the expansion zone with no limiting factors."""
    return ComponentScores(
        environment_score=95.0,
        adaptive_capacity=5.0,
        validation_score=95.0,
        neural_coefficient=1.0,
    )


@pytest.fixture
def calm_profile() -> ScarfProfile:
    return ScarfProfile(status=0.8, certainty=0.8, autonomy=0.8, relatedness=0.8, fairness=0.8)


@pytest.fixture
def threatened_profile() -> ScarfProfile:
    return ScarfProfile(status=0.3, certainty=0.4, autonomy=0.6, relatedness=0.2, fairness=0.8)


@pytest.fixture
def flag_builder() -> RiskFlagBuilder:
    return RiskFlagBuilder()


@pytest.fixture
def healthy_flag(flag_builder, healthy_scores, calm_profile):
    return flag_builder.build(
        AssessmentInput(component_scores=healthy_scores, scarf_profile=calm_profile)
    )


@pytest.fixture
def critical_flag(flag_builder, calm_profile):
    """Risk-active flag in the critical zone."""
    return flag_builder.build(
        AssessmentInput(
            component_scores=ComponentScores(
                environment_score=35.0,
                adaptive_capacity=2.0,
                validation_score=40.0,
                neural_coefficient=0.7,
            ),
            scarf_profile=calm_profile,
        )
    )


# ============================================================================
# LEDGER / ORCHESTRATOR FIXTURES
# ============================================================================


@pytest.fixture
def memory_repo() -> InMemoryLedgerRepository:
    return InMemoryLedgerRepository()


@pytest_asyncio.fixture
async def ledger(memory_repo) -> AuditLedger:
    ledger = AuditLedger(memory_repo)
    await ledger.initialize()
    return ledger


def make_orchestrator(
    ledger: AuditLedger,
    service: GenerationService,
    iterations: int = 3,
) -> DecisionOrchestrator:
    pre_mortem = PreMortemGenerator(service, timeout_seconds=2.0)
    return DecisionOrchestrator(
        ledger=ledger,
        pre_mortem=pre_mortem,
        contrarian=ContrarianGenerator(service, timeout_seconds=2.0),
        verifier=DeterminismVerifier(pre_mortem),
        seed=42,
        determinism_iterations=iterations,
    )


@pytest.fixture
def routing_service() -> RoutingGenerationService:
    return RoutingGenerationService()


@pytest.fixture
def orchestrator(ledger, routing_service) -> DecisionOrchestrator:
    return make_orchestrator(ledger, routing_service)
