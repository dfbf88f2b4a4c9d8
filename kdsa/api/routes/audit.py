"""
Audit Ledger API Routes.

Provides endpoints for:
- Ledger entry retrieval (filtered, ordered)
- Chain integrity verification
- Manual governance events

IMPORTANT: The ledger is append-only. There are no update or delete routes.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from kdsa.api.deps import get_ledger
from kdsa.audit.ledger import AuditLedger
from kdsa.audit.schemas import (
    AuditEventRequest,
    ChainVerification,
    LedgerEntry,
    LedgerFilter,
)

router = APIRouter()


class LedgerLogsResponse(BaseModel):
    total: int
    entries: list[LedgerEntry]


@router.get(
    "/logs",
    response_model=LedgerLogsResponse,
    summary="List ledger entries",
)
async def list_logs(
    record_type: Optional[str] = Query(None, description="decision_record or audit_event"),
    start_sequence: Optional[int] = Query(None, ge=0),
    end_sequence: Optional[int] = Query(None, ge=0),
    newest_first: bool = Query(False),
    limit: Optional[int] = Query(None, ge=1, le=1000),
    ledger: AuditLedger = Depends(get_ledger),
) -> LedgerLogsResponse:
    entries = await ledger.query(
        LedgerFilter(
            record_type=record_type,
            start_sequence=start_sequence,
            end_sequence=end_sequence,
            newest_first=newest_first,
            limit=limit,
        )
    )
    return LedgerLogsResponse(total=len(entries), entries=entries)


@router.get(
    "/verify",
    response_model=ChainVerification,
    summary="Verify ledger chain integrity",
    description="Recompute every entry hash and link from genesis and report the first break.",
)
async def verify_chain(ledger: AuditLedger = Depends(get_ledger)) -> ChainVerification:
    return await ledger.verify_chain()


@router.post(
    "/events",
    response_model=LedgerEntry,
    status_code=201,
    summary="Record a governance event",
)
async def record_event(
    request: AuditEventRequest,
    ledger: AuditLedger = Depends(get_ledger),
) -> LedgerEntry:
    return await ledger.record_event(request)
