"""
Audit Ledger - hash-chained, append-only governance record.

Every decision record and governance event becomes one LedgerEntry
whose hash covers its payload and the previous entry's hash. Any later
modification of a stored payload is detectable by ``verify_chain``.

Concurrency: appends are linearized by one asyncio.Lock per ledger, so
"read tail, compute hash, write" is atomic with respect to other
writers. Reads take no lock and may miss an in-flight append.

Integrity violations are reported and logged at critical level. They
are never repaired.
"""

import asyncio
import json
import uuid
from datetime import datetime
from typing import Any, Optional

import structlog

from kdsa.audit.repository import LedgerRepository
from kdsa.audit.schemas import (
    GENESIS_HASH,
    AuditEvent,
    AuditEventRequest,
    ChainErrorType,
    ChainVerification,
    LedgerEntry,
    LedgerFilter,
    compute_entry_hash,
)
from kdsa.common.exceptions import LedgerWriteError
from kdsa.common.hashing import canonicalize

logger = structlog.get_logger(__name__)


class AuditLedger:
    """
    Append-only hash chain over a storage repository.

    The tail (sequence and hash) is cached in memory and loaded from the
    repository on first use.
    """

    def __init__(self, repository: LedgerRepository):
        self._repo = repository
        self._lock = asyncio.Lock()
        self._initialized = False
        self._next_sequence = 0
        self._tail_hash = GENESIS_HASH

    @property
    def repository(self) -> LedgerRepository:
        return self._repo

    @property
    def tail_hash(self) -> str:
        return self._tail_hash

    async def initialize(self) -> None:
        """Load the chain tail from storage."""
        async with self._lock:
            await self._load_tail()

    async def _load_tail(self) -> None:
        if self._initialized:
            return

        tail = await self._repo.get_tail()
        if tail:
            self._next_sequence = tail.sequence_number + 1
            self._tail_hash = tail.self_hash

        self._initialized = True
        logger.info(
            "audit_ledger_initialized",
            backend=self._repo.name,
            next_sequence=self._next_sequence,
            tail_hash=self._tail_hash[:16],
        )

    # =========================================================================
    # APPEND
    # =========================================================================

    async def append(self, payload: Any) -> LedgerEntry:
        """
        Append a payload as the new chain tail.

        ``payload`` may be a pydantic model or a JSON-compatible dict; it is
        stored in canonical JSON form.

        Raises:
            LedgerWriteError: storage refused or failed the write. The tail
                is not advanced and the payload travels on the exception.
        """
        data = self._to_payload(payload)

        async with self._lock:
            try:
                await self._load_tail()
            except Exception as e:
                logger.error("ledger_tail_load_failed", backend=self._repo.name, error=str(e))
                raise LedgerWriteError(
                    f"Ledger backend error: {e}",
                    pending=data,
                    details={"backend": self._repo.name},
                ) from e

            sequence = self._next_sequence
            previous_hash = self._tail_hash
            entry = LedgerEntry(
                sequence_number=sequence,
                payload=data,
                self_hash=compute_entry_hash(data, previous_hash),
                previous_hash=previous_hash,
            )

            try:
                stored = await self._repo.append(entry)
            except Exception as e:
                logger.error(
                    "ledger_append_failed",
                    sequence=sequence,
                    backend=self._repo.name,
                    error=str(e),
                )
                raise LedgerWriteError(
                    f"Ledger backend error: {e}",
                    pending=data,
                    details={"sequence": sequence, "backend": self._repo.name},
                ) from e

            if not stored:
                logger.error("ledger_append_rejected", sequence=sequence, backend=self._repo.name)
                raise LedgerWriteError(
                    "Ledger backend rejected the entry",
                    pending=data,
                    details={"sequence": sequence, "backend": self._repo.name},
                )

            self._next_sequence = sequence + 1
            self._tail_hash = entry.self_hash

        logger.info(
            "ledger_entry_appended",
            sequence=sequence,
            record_type=entry.record_type,
            self_hash=entry.self_hash[:16],
        )
        return entry

    async def record_event(self, request: AuditEventRequest) -> LedgerEntry:
        """Append a manual governance event."""
        event = AuditEvent(
            event_id=f"aud_{datetime.utcnow().strftime('%Y%m%d%H%M%S')}_{uuid.uuid4().hex[:8]}",
            module=request.module,
            action=request.action,
            details=request.details,
            compliance_tags=request.compliance_tags,
            timestamp=datetime.utcnow(),
        )
        return await self.append(event)

    @staticmethod
    def _to_payload(payload: Any) -> dict[str, Any]:
        if hasattr(payload, "model_dump"):
            payload = payload.model_dump(mode="json")
        if not isinstance(payload, dict):
            raise TypeError(f"Ledger payload must be a mapping, got {type(payload).__name__}")
        # Stored payload is exactly what was hashed
        return json.loads(canonicalize(payload))

    # =========================================================================
    # VERIFY
    # =========================================================================

    async def verify_chain(self) -> ChainVerification:
        """
        Walk the chain from genesis.

        Checks per entry, in order:
        1. Sequence numbers are contiguous from 0
        2. Recomputed hash matches the stored self_hash
        3. previous_hash matches the prior entry's self_hash

        The first failing sequence is reported.
        """
        entries = await self._repo.get_all()

        expected_previous = GENESIS_HASH
        for index, entry in enumerate(entries):
            failure: Optional[tuple[ChainErrorType, str]] = None

            if entry.sequence_number != index:
                failure = (
                    ChainErrorType.SEQUENCE_GAP,
                    f"Expected sequence {index}, got {entry.sequence_number}",
                )
            elif not entry.verify_integrity():
                failure = (
                    ChainErrorType.RECORD_TAMPERED,
                    f"Entry hash mismatch at sequence {entry.sequence_number}",
                )
            elif entry.previous_hash != expected_previous:
                failure = (
                    ChainErrorType.CHAIN_BROKEN,
                    f"Chain broken at sequence {entry.sequence_number}: expected previous_hash "
                    f"{expected_previous[:16]}..., got {entry.previous_hash[:16]}...",
                )

            if failure:
                error_type, message = failure
                logger.critical(
                    "audit_chain_integrity_violation",
                    broken_at_sequence=index,
                    error_type=error_type.value,
                    entries_checked=index,
                    backend=self._repo.name,
                )
                return ChainVerification(
                    valid=False,
                    entries_checked=index,
                    broken_at_sequence=index,
                    error_type=error_type,
                    error_message=message,
                )

            expected_previous = entry.self_hash

        logger.info("chain_verification_complete", entries_checked=len(entries), valid=True)

        return ChainVerification(
            valid=True,
            entries_checked=len(entries),
            tail_hash=expected_previous if entries else None,
        )

    # =========================================================================
    # QUERY
    # =========================================================================

    async def query(self, ledger_filter: Optional[LedgerFilter] = None) -> list[LedgerEntry]:
        """Entries in insertion order, oldest first unless the filter says otherwise."""
        ledger_filter = ledger_filter or LedgerFilter()
        entries = await self._repo.get_all()

        if ledger_filter.record_type is not None:
            entries = [e for e in entries if e.record_type == ledger_filter.record_type]
        if ledger_filter.start_sequence is not None:
            entries = [e for e in entries if e.sequence_number >= ledger_filter.start_sequence]
        if ledger_filter.end_sequence is not None:
            entries = [e for e in entries if e.sequence_number <= ledger_filter.end_sequence]
        if ledger_filter.newest_first:
            entries = list(reversed(entries))
        if ledger_filter.limit is not None:
            entries = entries[: ledger_filter.limit]

        return entries

    async def count(self) -> int:
        return await self._repo.count()

    async def close(self) -> None:
        await self._repo.close()
