"""
Row sources: sequential access to raw cell rows from a CSV buffer or a workbook sheet.

Both implementations satisfy the same small contract, ``iter_rows(start)``,
yielding ``(row_index, cells)`` pairs. The orchestrator opens one iterator and
hands it first to the header detector and then, from wherever the detector
stopped, to the transformer, so a file is read in a single pass.
"""

import re
from io import BytesIO
from typing import Iterator, List, Optional, Protocol, Sequence, Tuple

import structlog
from openpyxl import load_workbook

from cms_fee_import.ingestion.errors import SpreadsheetReadError
from cms_fee_import.ingestion.normalizers import CellValue

logger = structlog.get_logger(__name__)

Row = List[CellValue]

# Number formats such as "00000" that CMS uses to keep leading zeros on numeric codes
_ZERO_PAD_FORMAT = re.compile(r"^0+$")


class RowSource(Protocol):
    """Anything that can yield raw rows by zero-based index."""

    sheet_name: Optional[str]

    def iter_rows(self, start: int = 0) -> Iterator[Tuple[int, Row]]:
        ...


# ============================================================================
# CSV
# ============================================================================

def detect_encoding(content: bytes) -> Tuple[str, bytes]:
    """
    Detect encoding and strip a BOM.

    Tries UTF-8, then CP1252 (Excel's default export on Windows), then
    Latin-1, which accepts any byte sequence.

    Returns:
        (encoding, content_without_bom)
    """
    if content.startswith(b'\xef\xbb\xbf'):  # UTF-8 BOM
        return 'utf-8', content[3:]
    if content.startswith(b'\xff\xfe'):  # UTF-16 LE BOM
        return 'utf-16-le', content[2:]
    if content.startswith(b'\xfe\xff'):  # UTF-16 BE BOM
        return 'utf-16-be', content[2:]

    for encoding in ('utf-8', 'cp1252'):
        try:
            content.decode(encoding)
            return encoding, content
        except UnicodeDecodeError:
            continue
    return 'latin-1', content


def tokenize_csv(text: str) -> Iterator[List[str]]:
    """
    Single-pass character-level CSV tokenizer.

    Handles quoted fields with embedded commas and newlines, ``""`` escapes,
    and LF, CRLF or bare CR line endings. Emits one list of strings per logical
    row as soon as the row is complete; physically empty lines are dropped.
    """
    row: List[str] = []
    field: List[str] = []
    in_quotes = False
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]
        if in_quotes:
            if ch == '"':
                if i + 1 < n and text[i + 1] == '"':
                    field.append('"')
                    i += 1
                else:
                    in_quotes = False
            else:
                field.append(ch)
        elif ch == '"':
            in_quotes = True
        elif ch == ',':
            row.append(''.join(field))
            field = []
        elif ch == '\n' or ch == '\r':
            row.append(''.join(field))
            field = []
            if row != ['']:
                yield row
            row = []
            if ch == '\r' and i + 1 < n and text[i + 1] == '\n':
                i += 1
        else:
            field.append(ch)
        i += 1

    if field or row:
        row.append(''.join(field))
        if row != ['']:
            yield row


class CsvRowSource:
    """Rows from an uploaded CSV file."""

    sheet_name = None

    def __init__(self, content: bytes):
        self.encoding, raw = detect_encoding(content)
        self._text = raw.decode(self.encoding)
        logger.debug("csv_source_opened", encoding=self.encoding, chars=len(self._text))

    def iter_rows(self, start: int = 0) -> Iterator[Tuple[int, Row]]:
        for index, row in enumerate(tokenize_csv(self._text)):
            if index >= start:
                yield index, row


# ============================================================================
# Spreadsheet (XLSX)
# ============================================================================

def _cell_value(cell) -> CellValue:
    value = cell.value
    if value is None or isinstance(value, (str, int, float)):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            fmt = getattr(cell, "number_format", None) or ""
            if _ZERO_PAD_FORMAT.match(fmt) and float(value).is_integer():
                return str(int(value)).zfill(len(fmt))
        return value
    # Dates, times and anything else exotic are passed on as text
    return str(value)


def _sheet_row_count(ws) -> int:
    ws.calculate_dimension(force=True)
    return ws.max_row or 0


def select_sheet_name(sheet_names: Sequence[str], hints: Sequence[str], row_counts) -> str:
    """
    Pick the sheet to import.

    Hints are tried in priority order; for each, the first sheet whose name
    contains it (case-insensitive) wins. Otherwise the sheet with the most
    rows. ``row_counts`` is a callable ``name -> int`` so sizes are only
    computed when needed.
    """
    for hint in hints:
        hint = hint.lower()
        for name in sheet_names:
            if hint in name.lower():
                return name
    if len(sheet_names) == 1:
        return sheet_names[0]
    return max(sheet_names, key=row_counts)


class SpreadsheetRowSource:
    """
    Rows from one worksheet of an XLSX workbook.

    The workbook is opened in openpyxl's read-only streaming mode with cached
    formula values; the occupied range is computed once and rows are read by
    address, padded to the sheet width.
    """

    def __init__(self, content: bytes, sheet_hints: Sequence[str] = ()):
        try:
            self._workbook = load_workbook(BytesIO(content), read_only=True, data_only=True)
        except Exception as exc:
            raise SpreadsheetReadError(f"Could not open spreadsheet: {exc}") from exc

        names = self._workbook.sheetnames
        if not names:
            self.close()
            raise SpreadsheetReadError("Workbook contains no sheets")

        self.sheet_name = select_sheet_name(
            names, sheet_hints, lambda name: _sheet_row_count(self._workbook[name])
        )
        self._sheet = self._workbook[self.sheet_name]
        self._sheet.calculate_dimension(force=True)
        self.max_row = self._sheet.max_row or 0
        self.max_column = self._sheet.max_column or 0
        logger.info(
            "spreadsheet_sheet_selected",
            sheet=self.sheet_name,
            sheets=names,
            max_row=self.max_row,
            max_column=self.max_column,
        )

    def iter_rows(self, start: int = 0) -> Iterator[Tuple[int, Row]]:
        if self.max_row == 0 or self.max_column == 0 or start >= self.max_row:
            return
        rows = self._sheet.iter_rows(
            min_row=start + 1, max_row=self.max_row, max_col=self.max_column
        )
        for offset, cells in enumerate(rows):
            yield start + offset, [_cell_value(cell) for cell in cells]

    def close(self) -> None:
        self._workbook.close()
