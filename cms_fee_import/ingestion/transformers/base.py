"""
Shared transformer machinery.

A transformer receives the detected header and the row iterator positioned
just after it, and lazily yields normalized records. Row-level problems are
signalled internally with ``SkipRow`` and tallied by reason; they never
escape ``transform``.
"""

from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple

import structlog

from cms_fee_import.ingestion.header_detector import HeaderMatch
from cms_fee_import.ingestion.normalizers import (
    HCPCS,
    CellValue,
    CodeFormat,
    is_blank,
    normalize_code,
    parse_string,
)

logger = structlog.get_logger(__name__)


class SkipRow(Exception):
    """Internal signal: drop the current row for ``reason``."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


@dataclass(frozen=True)
class TransformContext:
    dataset: str
    year: int
    source_file: str
    opps_conversion_factor: float = 89.46
    mpfs_conversion_factor: float = 34.6062
    sample_code_limit: int = 20
    sample_row_limit: int = 10
    progress_log_interval: int = 2000


@dataclass
class TransformStats:
    rows_read: int = 0
    valid_rows: int = 0
    skipped_reasons: Counter = field(default_factory=Counter)
    sample_codes: List[str] = field(default_factory=list)
    sample_rows: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return sum(self.skipped_reasons.values())


class DatasetTransformer:
    """Base class; subclasses implement ``transform_row``."""

    def __init__(self, header: HeaderMatch, context: TransformContext):
        self.header = header
        self.columns = header.column_map
        self.context = context
        self.stats = TransformStats()

    def transform(self, rows: Iterable[Tuple[int, List[CellValue]]]) -> Iterator[Any]:
        stats = self.stats
        for index, row in rows:
            if all(is_blank(cell) for cell in row):
                continue
            stats.rows_read += 1
            if stats.rows_read % self.context.progress_log_interval == 0:
                logger.info(
                    "transform_progress",
                    dataset=self.context.dataset,
                    row_index=index,
                    rows_read=stats.rows_read,
                    valid_rows=stats.valid_rows,
                    skipped=stats.skipped,
                )
            try:
                records = self.transform_row(row)
            except SkipRow as skip:
                stats.skipped_reasons[skip.reason] += 1
                continue
            for record in records:
                self._accept(record)
                yield record

    def transform_row(self, row: List[CellValue]) -> List[Any]:
        raise NotImplementedError

    def _accept(self, record) -> None:
        stats = self.stats
        stats.valid_rows += 1
        if len(stats.sample_codes) < self.context.sample_code_limit:
            stats.sample_codes.append(record.sample_code)
        if len(stats.sample_rows) < self.context.sample_row_limit:
            stats.sample_rows.append(record.to_row())

    # Cell helpers

    def cell(self, row: List[CellValue], name: str) -> CellValue:
        index = self.columns.get(name)
        if index is None or index >= len(row):
            return None
        return row[index]

    def cell_at(self, row: List[CellValue], index: Optional[int]) -> CellValue:
        if index is None or index >= len(row):
            return None
        return row[index]

    def text(self, row: List[CellValue], name: str) -> Optional[str]:
        return parse_string(self.cell(row, name))

    def require_code(
        self,
        row: List[CellValue],
        name: str,
        fmt: CodeFormat = HCPCS,
        missing: str = "missing_code",
        invalid: str = "invalid_code",
    ) -> str:
        raw = self.cell(row, name)
        if is_blank(raw):
            raise SkipRow(missing)
        code = normalize_code(raw, fmt)
        if code is None:
            raise SkipRow(invalid)
        return code


def modifier_text(raw: CellValue) -> str:
    """Modifiers are short codes; blank becomes "" so they can sit in a natural key."""
    text = parse_string(raw)
    return text.upper() if text else ""
