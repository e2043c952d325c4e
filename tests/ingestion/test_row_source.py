"""Row source tests: CSV tokenizer, encoding detection and XLSX sheet reading"""

import pytest

from cms_fee_import.ingestion.errors import SpreadsheetReadError
from cms_fee_import.ingestion.row_source import (
    CsvRowSource,
    SpreadsheetRowSource,
    detect_encoding,
    select_sheet_name,
    tokenize_csv,
)


# ============================================================================
# CSV
# ============================================================================

def test_tokenize_quotes_and_line_endings():
    text = 'a,"b,c",d\r\n"x ""q"" y",2\r3,4'
    assert list(tokenize_csv(text)) == [
        ["a", "b,c", "d"],
        ['x "q" y', "2"],
        ["3", "4"],
    ]


def test_tokenize_embedded_newline_in_quotes():
    text = 'HCPCS,Desc\n99284,"Emergency\nvisit"\n'
    assert list(tokenize_csv(text)) == [
        ["HCPCS", "Desc"],
        ["99284", "Emergency\nvisit"],
    ]


def test_tokenize_drops_physically_empty_lines():
    assert list(tokenize_csv("a,b\n\n\nc,d\n")) == [["a", "b"], ["c", "d"]]


def test_tokenize_keeps_empty_fields():
    assert list(tokenize_csv(",5\n")) == [["", "5"]]


@pytest.mark.parametrize("content,encoding", [
    (b"\xef\xbb\xbfHCPCS", "utf-8"),
    (b"HCPCS", "utf-8"),
    (b"caf\xe9", "cp1252"),
    (b"\x81\x8d", "latin-1"),
])
def test_detect_encoding(content, encoding):
    assert detect_encoding(content)[0] == encoding


def test_csv_source_strips_bom_and_honours_start():
    source = CsvRowSource(b"\xef\xbb\xbfHCPCS,Rate\n00501,1.00\n0001U,2.00\n")

    rows = list(source.iter_rows())
    assert rows[0] == (0, ["HCPCS", "Rate"])
    assert rows[1] == (1, ["00501", "1.00"])

    assert list(source.iter_rows(start=2)) == [(2, ["0001U", "2.00"])]
    assert source.sheet_name is None


# ============================================================================
# Spreadsheet
# ============================================================================

def test_select_sheet_name_prefers_hint():
    counts = {"Notes": 1, "Addendum B": 5, "Big": 100}
    assert select_sheet_name(list(counts), ["addendum b"], counts.get) == "Addendum B"


def test_select_sheet_name_hint_order_is_priority():
    sheets = ["RVU notes", "MPFS 2026"]
    assert select_sheet_name(sheets, ("MPFS", "Fee Schedule", "RVU"), len) == "MPFS 2026"


def test_select_sheet_name_falls_back_to_largest():
    counts = {"Notes": 1, "Data": 100, "Other": 7}
    assert select_sheet_name(list(counts), ["GPCI"], counts.get) == "Data"


def test_spreadsheet_zero_pad_format_keeps_leading_zeros(xlsx_bytes):
    content = xlsx_bytes(
        {
            "Notes": [["Read me"]],
            "Addendum B": [["HCPCS", "Payment Rate"], [501, 12.5]],
        },
        number_formats={"Addendum B": {"A2": "00000"}},
    )
    source = SpreadsheetRowSource(content, sheet_hints=("Addendum B",))
    try:
        assert source.sheet_name == "Addendum B"
        rows = list(source.iter_rows())
    finally:
        source.close()

    assert rows == [(0, ["HCPCS", "Payment Rate"]), (1, ["00501", 12.5])]


def test_spreadsheet_rows_are_padded_to_sheet_width(xlsx_bytes):
    content = xlsx_bytes({"Data": [["a", "b", "c"], ["x"]]})
    source = SpreadsheetRowSource(content)
    try:
        rows = list(source.iter_rows(start=1))
    finally:
        source.close()

    assert rows == [(1, ["x", None, None])]


@pytest.mark.negative
def test_spreadsheet_unreadable_content():
    with pytest.raises(SpreadsheetReadError) as exc_info:
        SpreadsheetRowSource(b"this is not a workbook")
    assert exc_info.value.error_code == "XLSX_PARSE_FAILED"
