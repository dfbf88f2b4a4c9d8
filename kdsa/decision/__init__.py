"""
De-biasing decision engine (M2).

Bias detection, protocol selection, pre-mortem and contrarian
generation, determinism verification and the decision orchestrator.
"""

from kdsa.decision.biases import BiasDetector
from kdsa.decision.determinism import DeterminismVerifier
from kdsa.decision.orchestrator import DecisionOrchestrator
from kdsa.decision.protocol import ProtocolSelector, determine_outcome, determine_risk_level

__all__ = [
    "BiasDetector",
    "DecisionOrchestrator",
    "DeterminismVerifier",
    "ProtocolSelector",
    "determine_outcome",
    "determine_risk_level",
]
