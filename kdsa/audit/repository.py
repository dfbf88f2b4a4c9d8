"""
Ledger Repositories - storage backends for ledger entries.

The ledger needs two operations from storage:

    append(entry) -> bool      False (or an exception) means not durable
    get_all()     -> entries   ordered by sequence number

Backends:
- InMemoryLedgerRepository: tests and single-process development
- SqlLedgerRepository: SQLAlchemy async (PostgreSQL / SQLite)
- BaserowLedgerRepository: no-code table over its REST rows API

Backends store entries verbatim; hashing and chaining stay in the ledger.
"""

import json
from abc import ABC, abstractmethod
from typing import Optional

import httpx
import structlog
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kdsa.audit.models import LedgerEntryModel
from kdsa.audit.schemas import LedgerEntry
from kdsa.common.exceptions import LedgerReadError

logger = structlog.get_logger(__name__)


class LedgerRepository(ABC):
    """Storage contract for the audit ledger."""

    name: str = "abstract"

    @abstractmethod
    async def append(self, entry: LedgerEntry) -> bool:
        """Persist one entry. Return False if it was not stored."""

    @abstractmethod
    async def get_all(self) -> list[LedgerEntry]:
        """All entries, oldest first."""

    async def get_tail(self) -> Optional[LedgerEntry]:
        entries = await self.get_all()
        return entries[-1] if entries else None

    async def count(self) -> int:
        return len(await self.get_all())

    async def close(self) -> None:
        return None


# ============================================================================
# IN-MEMORY
# ============================================================================


class InMemoryLedgerRepository(LedgerRepository):
    """
    In-memory ledger storage.

    NOT FOR PRODUCTION USE - data is lost on restart.
    """

    name = "memory"

    def __init__(self):
        self._entries: list[LedgerEntry] = []

    async def append(self, entry: LedgerEntry) -> bool:
        self._entries.append(entry)
        return True

    async def get_all(self) -> list[LedgerEntry]:
        return sorted(self._entries, key=lambda e: e.sequence_number)

    async def get_tail(self) -> Optional[LedgerEntry]:
        if self._entries:
            return max(self._entries, key=lambda e: e.sequence_number)
        return None

    async def count(self) -> int:
        return len(self._entries)


# ============================================================================
# SQL
# ============================================================================


class SqlLedgerRepository(LedgerRepository):
    """
    Ledger storage in a relational database.

    Append-only: rows are inserted, never updated or deleted.
    """

    name = "sql"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def append(self, entry: LedgerEntry) -> bool:
        model = LedgerEntryModel(
            sequence_number=entry.sequence_number,
            record_type=entry.record_type or "unknown",
            payload=entry.payload,
            previous_hash=entry.previous_hash,
            self_hash=entry.self_hash,
        )

        async with self._session_factory() as session:
            try:
                session.add(model)
                await session.commit()
            except SQLAlchemyError as e:
                await session.rollback()
                logger.error(
                    "ledger_sql_append_failed",
                    sequence=entry.sequence_number,
                    error=str(e),
                )
                return False

        logger.debug("ledger_entry_stored", sequence=entry.sequence_number, backend=self.name)
        return True

    async def get_all(self) -> list[LedgerEntry]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(LedgerEntryModel).order_by(LedgerEntryModel.sequence_number)
            )
            return [self._model_to_entry(m) for m in result.scalars().all()]

    async def get_tail(self) -> Optional[LedgerEntry]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(LedgerEntryModel)
                .order_by(LedgerEntryModel.sequence_number.desc())
                .limit(1)
            )
            model = result.scalar_one_or_none()
        return self._model_to_entry(model) if model else None

    async def count(self) -> int:
        async with self._session_factory() as session:
            result = await session.execute(select(func.count(LedgerEntryModel.id)))
            return result.scalar_one()

    async def close(self) -> None:
        engine = self._session_factory.kw.get("bind")
        if engine is not None:
            await engine.dispose()

    @staticmethod
    def _model_to_entry(model: LedgerEntryModel) -> LedgerEntry:
        return LedgerEntry(
            sequence_number=model.sequence_number,
            payload=model.payload,
            self_hash=model.self_hash,
            previous_hash=model.previous_hash,
        )


# ============================================================================
# BASEROW
# ============================================================================


class BaserowLedgerRepository(LedgerRepository):
    """
    Ledger storage in a Baserow table.

    Expected table fields (user field names): Sequence_Number, Record_Type,
    Payload (long text, canonical JSON), Previous_Hash, Self_Hash.
    """

    name = "baserow"
    page_size = 200

    def __init__(
        self,
        base_url: str,
        token: str,
        table_id: int,
        timeout_seconds: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.table_id = table_id
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Token {token}"},
            timeout=timeout_seconds,
            transport=transport,
        )

    @property
    def rows_path(self) -> str:
        return f"/api/database/rows/table/{self.table_id}/"

    async def append(self, entry: LedgerEntry) -> bool:
        row = {
            "Sequence_Number": entry.sequence_number,
            "Record_Type": entry.record_type or "unknown",
            "Payload": json.dumps(entry.payload, sort_keys=True, default=str),
            "Previous_Hash": entry.previous_hash,
            "Self_Hash": entry.self_hash,
        }

        try:
            response = await self._client.post(
                self.rows_path,
                params={"user_field_names": "true"},
                json=row,
            )
        except httpx.HTTPError as e:
            logger.error(
                "ledger_baserow_connection_failed",
                sequence=entry.sequence_number,
                error=str(e),
            )
            return False

        if response.is_error:
            logger.error(
                "ledger_baserow_append_failed",
                sequence=entry.sequence_number,
                status_code=response.status_code,
                body=response.text[:200],
            )
            return False

        return True

    async def get_all(self) -> list[LedgerEntry]:
        entries: list[LedgerEntry] = []
        page = 1

        while True:
            try:
                response = await self._client.get(
                    self.rows_path,
                    params={"user_field_names": "true", "page": page, "size": self.page_size},
                )
                response.raise_for_status()
                data = response.json()
                entries.extend(self._row_to_entry(row) for row in data.get("results", []))
            except httpx.HTTPStatusError as e:
                logger.error(
                    "ledger_baserow_read_failed",
                    page=page,
                    status_code=e.response.status_code,
                )
                raise LedgerReadError(
                    f"Baserow returned HTTP {e.response.status_code}",
                    details={"backend": self.name, "status_code": e.response.status_code},
                ) from e
            except httpx.HTTPError as e:
                logger.error("ledger_baserow_connection_failed", page=page, error=str(e))
                raise LedgerReadError(
                    f"Baserow request failed: {e}",
                    details={"backend": self.name},
                ) from e
            except (ValueError, KeyError, TypeError, AttributeError) as e:
                logger.error("ledger_baserow_bad_rows", page=page, error=str(e))
                raise LedgerReadError(
                    "Baserow rows could not be read as ledger entries",
                    details={"backend": self.name},
                ) from e

            if not data.get("next"):
                break
            page += 1

        entries.sort(key=lambda e: e.sequence_number)
        return entries

    async def close(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _row_to_entry(row: dict) -> LedgerEntry:
        # Number fields come back as strings
        return LedgerEntry(
            sequence_number=int(row["Sequence_Number"]),
            payload=json.loads(row["Payload"]),
            self_hash=row["Self_Hash"],
            previous_hash=row["Previous_Hash"],
        )
