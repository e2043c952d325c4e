"""
Header row detection.

CMS workbooks put title banners, footnotes and blank rows above the real
column header, and the header's exact wording drifts between releases. The
detector scans a bounded window of leading rows for a row the dataset's
detection rule accepts, then maps canonical field names to column indexes.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

import structlog

from cms_fee_import.ingestion.errors import HeaderNotFoundError, MissingColumnError
from cms_fee_import.ingestion.normalizers import CellValue, normalize_header, parse_string
from cms_fee_import.ingestion.synonyms import DatasetSynonyms

logger = structlog.get_logger(__name__)

DEFAULT_SCAN_ROWS = 50


@dataclass(frozen=True)
class HeaderMatch:
    """The detected header row and its canonical column map."""

    row_index: int
    column_map: Mapping[str, int]
    header_cells: Tuple[Optional[str], ...]

    @property
    def columns_detected(self) -> List[str]:
        return list(self.column_map)


def build_column_map(normalized: List[str], rules: DatasetSynonyms) -> Mapping[str, int]:
    """
    Map canonical fields to zero-based column indexes.

    Each header cell goes to the first field (in contract order) that matches
    it and is still unassigned, so a field keeps the first column it matched.
    The result is ordered by column index and read-only.
    """
    mapping: Dict[str, int] = {}
    for index, header in enumerate(normalized):
        if not header:
            continue
        for rule in rules.fields:
            if rule.name not in mapping and rule.matches(header):
                mapping[rule.name] = index
                break
    return MappingProxyType(mapping)


def _diagnostic_row(row: List[CellValue]) -> List[Optional[str]]:
    return [parse_string(cell) for cell in row]


def detect_header(
    rows: Iterator[Tuple[int, List[CellValue]]],
    rules: DatasetSynonyms,
    dataset: str,
    scan_rows: int = DEFAULT_SCAN_ROWS,
    diagnostic_rows: int = 5,
) -> HeaderMatch:
    """
    Consume rows until the header is found.

    Only rows with index ``< scan_rows`` are considered. On success the
    iterator is left positioned just after the header row, ready for the
    transformer.

    Raises:
        HeaderNotFoundError: no qualifying row within the window
        MissingColumnError: header found but the anchor or another required
            field has no column
    """
    leading: List[List[Optional[str]]] = []

    for index, row in rows:
        if index >= scan_rows:
            break
        if len(leading) < diagnostic_rows:
            leading.append(_diagnostic_row(row))

        normalized = [normalize_header(cell) for cell in row]
        if not rules.detection.is_header(normalized):
            continue

        column_map = build_column_map(normalized, rules)
        header_cells = tuple(parse_string(cell) for cell in row)
        missing = [f for f in rules.required_fields if f not in column_map]
        if missing:
            logger.warning(
                "header_missing_columns",
                dataset=dataset,
                row_index=index,
                missing=missing,
                header=list(header_cells),
            )
            raise MissingColumnError(
                dataset,
                missing,
                sample_rows=leading,
                details={"headerRowIndex": index, "columnsDetected": list(column_map)},
            )

        logger.info(
            "header_detected",
            dataset=dataset,
            row_index=index,
            columns=dict(column_map),
        )
        return HeaderMatch(row_index=index, column_map=column_map, header_cells=header_cells)

    logger.warning("header_not_found", dataset=dataset, scan_rows=scan_rows)
    raise HeaderNotFoundError(
        dataset,
        f"Could not find a {dataset} header row in the first {scan_rows} rows",
        sample_rows=leading,
    )
