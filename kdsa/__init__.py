"""
KDSA Decision Engine.

Three cooperating modules:
- M1 sensing: human-factor risk score, zone, limiting factors, SCARF threats
- M2 decision: bias detection, de-biasing protocols, pre-mortem, determinism
- M3 audit: hash-chained governance ledger
"""

__version__ = "1.0.0"
