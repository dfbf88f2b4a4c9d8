"""
Governance ledger (M3).

Hash-chained, append-only record of decisions and governance events.
"""

from kdsa.audit.ledger import AuditLedger
from kdsa.audit.repository import (
    BaserowLedgerRepository,
    InMemoryLedgerRepository,
    LedgerRepository,
    SqlLedgerRepository,
)
from kdsa.audit.schemas import (
    GENESIS_HASH,
    AuditEventRequest,
    ChainVerification,
    LedgerEntry,
    LedgerFilter,
)

__all__ = [
    "AuditEventRequest",
    "AuditLedger",
    "BaserowLedgerRepository",
    "ChainVerification",
    "GENESIS_HASH",
    "InMemoryLedgerRepository",
    "LedgerEntry",
    "LedgerFilter",
    "LedgerRepository",
    "SqlLedgerRepository",
]
