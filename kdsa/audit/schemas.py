"""
Audit Ledger Schemas.

Entries form a SHA-256 hash chain:

    self_hash     = sha256(canonicalize(payload) + previous_hash)
    previous_hash = self_hash of the prior entry, GENESIS_HASH for entry 0

Entries are append-only; no update or delete exists anywhere in the
ledger API.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field

from kdsa.common.hashing import canonicalize, sha256_hex


GENESIS_HASH = "GENESIS_HASH_0000000000000000"


class ChainErrorType(str, Enum):
    SEQUENCE_GAP = "sequence_gap"
    RECORD_TAMPERED = "record_tampered"
    CHAIN_BROKEN = "chain_broken"


class AuditModule(str, Enum):
    """Originating module of a manual governance event."""

    M1 = "M1"
    M2 = "M2"
    M3 = "M3"


def compute_entry_hash(payload: dict[str, Any], previous_hash: str) -> str:
    return sha256_hex(canonicalize(payload) + previous_hash)


class LedgerEntry(BaseModel):
    """One link in the chain."""

    model_config = {"frozen": True}

    sequence_number: int = Field(ge=0)
    payload: dict[str, Any]
    self_hash: str
    previous_hash: str

    @property
    def record_type(self) -> Optional[str]:
        return self.payload.get("record_type")

    def verify_integrity(self) -> bool:
        """Recompute the hash from the stored payload and compare."""
        return compute_entry_hash(self.payload, self.previous_hash) == self.self_hash


class ChainVerification(BaseModel):
    """
    Result of verifying the ledger.

    ``broken_at_sequence`` is the first entry that fails any check.
    """

    valid: bool
    entries_checked: int = Field(ge=0)
    broken_at_sequence: Optional[int] = None
    error_type: Optional[ChainErrorType] = None
    error_message: Optional[str] = None
    tail_hash: Optional[str] = None
    verified_at: datetime = Field(default_factory=datetime.utcnow)


class LedgerFilter(BaseModel):
    """Query filter. Results are oldest first unless ``newest_first``."""

    record_type: Optional[str] = None
    start_sequence: Optional[int] = Field(default=None, ge=0)
    end_sequence: Optional[int] = Field(default=None, ge=0)
    newest_first: bool = False
    limit: Optional[int] = Field(default=None, ge=1, le=1000)


class AuditEventRequest(BaseModel):
    """Body of POST /audit/events."""

    module: AuditModule
    action: str = Field(min_length=1, max_length=200)
    details: dict[str, Any] = Field(default_factory=dict)
    compliance_tags: list[str] = Field(default_factory=list)


class AuditEvent(BaseModel):
    """Manual governance event payload."""

    model_config = {"frozen": True}

    event_id: str
    record_type: str = "audit_event"
    module: AuditModule
    action: str
    details: dict[str, Any]
    compliance_tags: list[str]
    timestamp: datetime
