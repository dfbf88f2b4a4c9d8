"""
Cognitive Bias Detector.

Lexical pattern table over free text. Each of the eight bias types has a
fixed pattern, severity, description and mitigation; a type that matches
at least once yields exactly one finding carrying up to three matched
substrings as evidence.

Matching is purely lexical and will produce false positives (e.g. any
mention of "risk" reads as framing language). That precision/recall
trade-off is accepted: findings prompt reflection, they do not block.
"""

import re
from dataclasses import dataclass

import structlog

from kdsa.decision.schemas import BiasFinding, BiasSeverity, BiasType

logger = structlog.get_logger(__name__)


MAX_EVIDENCE_MATCHES = 3


@dataclass(frozen=True)
class BiasPattern:
    bias_type: BiasType
    pattern: re.Pattern
    severity: BiasSeverity
    description: str
    mitigation: str


BIAS_PATTERNS: tuple[BiasPattern, ...] = (
    BiasPattern(
        bias_type=BiasType.ANCHORING,
        pattern=re.compile(r"\$[\d,]+(?:\.\d+)?[kmb]?|\d+%|\b\d{2,}[kmb]\b", re.IGNORECASE),
        severity=BiasSeverity.MEDIUM,
        description="Specific numerical figures detected - potential anchoring bias",
        mitigation="Consider the Opposite: What if this number were 50% different?",
    ),
    BiasPattern(
        bias_type=BiasType.OVERCONFIDENCE,
        pattern=re.compile(
            r"\b(?:definitely|certainly|guarantee[ds]?|impossible|always|never|zero chance)\b"
            r"|\b100\s?%(?!\w)",
            re.IGNORECASE,
        ),
        severity=BiasSeverity.HIGH,
        description="Absolute language detected - potential overconfidence bias",
        mitigation="Pre-Mortem: Imagine this decision failed spectacularly. What went wrong?",
    ),
    BiasPattern(
        bias_type=BiasType.STATUS_QUO,
        pattern=re.compile(
            r"\b(?:current|existing|traditional|always done|usual|standard practice)\b",
            re.IGNORECASE,
        ),
        severity=BiasSeverity.LOW,
        description="Status quo references detected - potential resistance to change",
        mitigation="Consider: What would a new competitor do without legacy constraints?",
    ),
    BiasPattern(
        bias_type=BiasType.CONFIRMATION,
        pattern=re.compile(
            r"\b(?:clearly|obviously|everyone knows|proven fact|undeniable)\b",
            re.IGNORECASE,
        ),
        severity=BiasSeverity.MEDIUM,
        description="Assumed certainty detected - potential confirmation bias",
        mitigation="Seek Disconfirming Evidence: What data would change your mind?",
    ),
    BiasPattern(
        bias_type=BiasType.AVAILABILITY,
        pattern=re.compile(
            r"\b(?:just happened|recently|last (?:week|month|quarter)|heard about)\b",
            re.IGNORECASE,
        ),
        severity=BiasSeverity.LOW,
        description="Recent/anecdotal references detected - potential availability bias",
        mitigation="Base Rate Check: What does the historical data show?",
    ),
    BiasPattern(
        bias_type=BiasType.GROUPTHINK,
        pattern=re.compile(
            r"\b(?:everyone agrees|unanimous|no objections|whole team thinks)\b",
            re.IGNORECASE,
        ),
        severity=BiasSeverity.HIGH,
        description="Unanimous consensus language detected - potential groupthink",
        mitigation="Devil's Advocate: Assign someone to argue the opposing position",
    ),
    BiasPattern(
        bias_type=BiasType.SUNK_COST,
        pattern=re.compile(
            r"\b(?:already invested|spent so much|too far to|can't stop now)\b",
            re.IGNORECASE,
        ),
        severity=BiasSeverity.MEDIUM,
        description="Past investment justification detected - potential sunk cost fallacy",
        mitigation="Zero-Base Thinking: If starting fresh today, would you make this decision?",
    ),
    BiasPattern(
        bias_type=BiasType.FRAMING,
        pattern=re.compile(
            r"\b(?:opportunity|threat|gain|loss|risk|reward)\b",
            re.IGNORECASE,
        ),
        severity=BiasSeverity.LOW,
        description="Framing language detected - consider alternative framings",
        mitigation="Reframe: How would this look as an opportunity vs. a threat?",
    ),
)


class BiasDetector:
    """Stateless detector over a fixed pattern table."""

    def __init__(self, patterns: tuple[BiasPattern, ...] = BIAS_PATTERNS):
        self._patterns = patterns

    def detect(self, text: str) -> list[BiasFinding]:
        findings: list[BiasFinding] = []

        for entry in self._patterns:
            matches = []
            for match in entry.pattern.finditer(text):
                matches.append(match.group(0))
                if len(matches) == MAX_EVIDENCE_MATCHES:
                    break
            if not matches:
                continue

            findings.append(
                BiasFinding(
                    type=entry.bias_type,
                    severity=entry.severity,
                    description=entry.description,
                    mitigation=entry.mitigation,
                    evidence=", ".join(matches),
                )
            )

        logger.debug(
            "biases_detected",
            text_length=len(text),
            bias_types=[f.type.value for f in findings],
        )

        return findings
