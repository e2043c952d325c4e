"""
Batch upsert sink.

Records are grouped into fixed-size batches and each batch is written with
one idempotent upsert keyed by the dataset's natural key. A failing batch is
recorded as ``"Batch <n>: <message>"`` and the remaining batches still run.
Batches are awaited one after another; none are issued concurrently. Each
batch is also pulled off the record iterator in a worker thread, so parsing
and transforming never run on the event loop.
"""

import asyncio
import itertools
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Protocol, Sequence

import structlog
from sqlalchemy import func, select, text
from sqlalchemy.dialects import postgresql, sqlite

from cms_fee_import import models  # noqa: F401  (registers tables on Base.metadata)
from cms_fee_import.database import Base, SessionLocal

logger = structlog.get_logger(__name__)

Row = Dict[str, Any]


class UpsertStore(Protocol):
    """The only storage operations the pipeline needs."""

    def upsert(self, table: str, key_columns: Sequence[str], rows: List[Row]) -> int:
        ...

    def count(self, table: str) -> int:
        ...


_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class SqlAlchemyUpsertStore:
    """
    Upserts through ``INSERT ... ON CONFLICT (natural key) DO UPDATE``.

    Uses one short-lived session (and transaction) per batch.
    """

    def __init__(self, session_factory: Callable = SessionLocal):
        self.session_factory = session_factory

    def upsert(self, table: str, key_columns: Sequence[str], rows: List[Row]) -> int:
        if not rows:
            return 0
        target = Base.metadata.tables[table]
        with self.session_factory() as session:
            dialect = session.get_bind().dialect.name
            try:
                insert = _DIALECT_INSERTS[dialect]
            except KeyError:
                raise NotImplementedError(f"Upsert not supported for dialect '{dialect}'") from None

            stmt = insert(target)
            updates = {
                name: stmt.excluded[name]
                for name in rows[0]
                if name not in key_columns
            }
            for stamp in ("imported_at", "updated_at"):
                if stamp in target.c:
                    updates[stamp] = stmt.excluded[stamp]
            stmt = stmt.on_conflict_do_update(index_elements=list(key_columns), set_=updates)

            session.execute(stmt, rows)
            session.commit()
        return len(rows)

    def count(self, table: str) -> int:
        target = Base.metadata.tables[table]
        with self.session_factory() as session:
            return session.execute(select(func.count()).select_from(target)).scalar_one()

    def ping(self) -> None:
        with self.session_factory() as session:
            session.execute(text("SELECT 1"))


def dedupe_by_key(rows: List[Row], key_columns: Sequence[str]) -> List[Row]:
    """Collapse rows sharing a natural key; the last one wins, first position is kept."""
    unique: Dict[tuple, Row] = {}
    for row in rows:
        unique[tuple(row[k] for k in key_columns)] = row
    return list(unique.values())


def _error_text(exc: Exception) -> str:
    message = str(exc).strip().splitlines()
    return message[0] if message else exc.__class__.__name__


@dataclass
class SinkResult:
    imported: int = 0
    batches_completed: int = 0
    errors: List[str] = field(default_factory=list)


class BatchUpsertSink:

    def __init__(
        self,
        store: Optional[UpsertStore],
        table: str,
        key_columns: Sequence[str],
        batch_size: int = 500,
        dry_run: bool = False,
    ):
        if store is None and not dry_run:
            raise ValueError("A live import needs a store")
        self.store = store
        self.table = table
        self.key_columns = tuple(key_columns)
        self.batch_size = batch_size
        self.dry_run = dry_run
        self.result = SinkResult()

    def _next_batch(self, records: Iterator[Any]) -> List[Row]:
        return [record.to_row() for record in itertools.islice(records, self.batch_size)]

    async def write_all(self, records: Iterable[Any]) -> SinkResult:
        """Drain ``records`` (objects with ``to_row()``) into batches."""
        records = iter(records)
        while True:
            batch = await asyncio.to_thread(self._next_batch, records)
            if not batch:
                break
            await self._flush(batch)

        logger.info(
            "sink_complete",
            table=self.table,
            dry_run=self.dry_run,
            imported=self.result.imported,
            batches=self.result.batches_completed,
            failed_batches=len(self.result.errors),
        )
        return self.result

    async def _flush(self, rows: List[Row]) -> None:
        batch_index = self.result.batches_completed + 1
        rows = dedupe_by_key(rows, self.key_columns)

        if not self.dry_run:
            try:
                written = await asyncio.to_thread(self.store.upsert, self.table, self.key_columns, rows)
            except Exception as exc:
                logger.error(
                    "batch_upsert_failed",
                    table=self.table,
                    batch_index=batch_index,
                    rows=len(rows),
                    error=str(exc),
                )
                self.result.errors.append(f"Batch {batch_index}: {_error_text(exc)}")
            else:
                self.result.imported += written
                logger.debug("batch_upserted", table=self.table, batch_index=batch_index, rows=written)

        self.result.batches_completed += 1
