"""
Determinism Verifier.

Replays scenario generation with a fixed seed and identical input and
classifies how stable the output is:

- Deterministic: every iteration produced the same content hash
- Constrained:   the most frequent hash covers at least 95% of runs
- Stochastic:    anything less

A failed iteration contributes an ``error:<ExceptionType>`` marker in
place of a content hash, so failures count as divergent output rather
than aborting verification.
"""

import uuid
from collections import Counter
from datetime import datetime

import structlog

from kdsa.common.exceptions import GenerationError, ValidationError
from kdsa.decision.premortem import PreMortemGenerator, PreMortemRequest, scenarios_hash
from kdsa.decision.schemas import DeterminismReport, DeterminismTier

logger = structlog.get_logger(__name__)


CONSTRAINED_THRESHOLD = 0.95


def classify_tier(iteration_hashes: list[str]) -> tuple[DeterminismTier, float, int]:
    """Return (tier, consistency_rate, unique_hash_count)."""
    counts = Counter(iteration_hashes)
    unique = len(counts)
    consistency = counts.most_common(1)[0][1] / len(iteration_hashes)

    if unique == 1:
        tier = DeterminismTier.DETERMINISTIC
    elif consistency >= CONSTRAINED_THRESHOLD:
        tier = DeterminismTier.CONSTRAINED
    else:
        tier = DeterminismTier.STOCHASTIC

    return tier, consistency, unique


class DeterminismVerifier:
    """Verifies reproducibility of pre-mortem generation."""

    def __init__(self, generator: PreMortemGenerator):
        self.generator = generator

    async def verify(
        self,
        request: PreMortemRequest,
        seed: int,
        iterations: int = 3,
    ) -> DeterminismReport:
        if iterations < 1:
            raise ValidationError(
                "iterations must be at least 1",
                field="iterations",
                details={"iterations": iterations},
            )

        verification_id = (
            f"det_{datetime.utcnow().strftime('%Y%m%d%H%M%S')}_{uuid.uuid4().hex[:8]}"
        )

        # Iterations run one after another, never concurrently
        hashes: list[str] = []
        for _ in range(iterations):
            try:
                scenarios = await self.generator.generate(request, seed)
                hashes.append(scenarios_hash(scenarios))
            except GenerationError as e:
                hashes.append(f"error:{type(e).__name__}")

        tier, consistency, unique = classify_tier(hashes)

        report = DeterminismReport(
            verification_id=verification_id,
            iterations=iterations,
            seed=seed,
            unique_output_hashes=unique,
            consistency_rate=round(consistency, 3),
            tier=tier,
            iteration_hashes=hashes,
        )

        log = logger.warning if tier == DeterminismTier.STOCHASTIC else logger.info
        log(
            "determinism_verified",
            verification_id=verification_id,
            tier=tier.value,
            consistency_rate=report.consistency_rate,
            unique_output_hashes=unique,
            iterations=iterations,
        )

        return report
