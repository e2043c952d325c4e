"""
Field normalizers.

Pure functions turning raw cell values (``None``, a number, or text, exactly as
the row sources yield them) into typed domain values. Code identifiers
(HCPCS, ZIP, locality, carrier) are only ever handled as strings: they are
never run through numeric parsing, so ``"00501"`` stays ``"00501"``.
"""

import math
import re
from dataclasses import dataclass
from typing import NamedTuple, Optional, Pattern, Union

CellValue = Union[None, str, int, float]

# Values CMS uses for "no value" in numeric columns
NUMERIC_SENTINELS = frozenset({"", "-", "n/a", "not found"})

_CURRENCY_NOISE = re.compile(r"[$,()\s]")
_UNICODE_SPACES = re.compile("[\u00a0\u2007\u202f\u200b\ufeff]")
_HEADER_NOISE = re.compile(r"[^a-z0-9]")
_CODE_PREFIX = re.compile(r"^(?:CPT|HCPCS|CODE|#)[\s:#-]*")
_WIDE_STATE_HEADER = re.compile(r"^([A-Z]{2})\s*\((NR|R)\)$")

# 50 states, DC, Puerto Rico and the Virgin Islands
STATE_CODES = frozenset({
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA",
    "HI", "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD",
    "MA", "MI", "MN", "MS", "MO", "MT", "NE", "NV", "NH", "NJ",
    "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI", "SC",
    "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI", "WY",
    "DC", "PR", "VI",
})

STATE_NAMES = {
    "ALABAMA": "AL", "ALASKA": "AK", "ARIZONA": "AZ", "ARKANSAS": "AR",
    "CALIFORNIA": "CA", "COLORADO": "CO", "CONNECTICUT": "CT", "DELAWARE": "DE",
    "FLORIDA": "FL", "GEORGIA": "GA", "HAWAII": "HI", "IDAHO": "ID",
    "ILLINOIS": "IL", "INDIANA": "IN", "IOWA": "IA", "KANSAS": "KS",
    "KENTUCKY": "KY", "LOUISIANA": "LA", "MAINE": "ME", "MARYLAND": "MD",
    "MASSACHUSETTS": "MA", "MICHIGAN": "MI", "MINNESOTA": "MN", "MISSISSIPPI": "MS",
    "MISSOURI": "MO", "MONTANA": "MT", "NEBRASKA": "NE", "NEVADA": "NV",
    "NEW HAMPSHIRE": "NH", "NEW JERSEY": "NJ", "NEW MEXICO": "NM", "NEW YORK": "NY",
    "NORTH CAROLINA": "NC", "NORTH DAKOTA": "ND", "OHIO": "OH", "OKLAHOMA": "OK",
    "OREGON": "OR", "PENNSYLVANIA": "PA", "RHODE ISLAND": "RI", "SOUTH CAROLINA": "SC",
    "SOUTH DAKOTA": "SD", "TENNESSEE": "TN", "TEXAS": "TX", "UTAH": "UT",
    "VERMONT": "VT", "VIRGINIA": "VA", "WASHINGTON": "WA", "WEST VIRGINIA": "WV",
    "WISCONSIN": "WI", "WYOMING": "WY", "DISTRICT OF COLUMBIA": "DC",
    "PUERTO RICO": "PR", "VIRGIN ISLANDS": "VI",
}


def _cell_text(raw: CellValue) -> str:
    """Render a raw cell as text; integral floats lose their ``.0``."""
    if raw is None or isinstance(raw, bool):
        return ""
    if isinstance(raw, float):
        if not math.isfinite(raw):
            return ""
        if raw.is_integer():
            return str(int(raw))
        return repr(raw)
    return str(raw)


def is_blank(raw: CellValue) -> bool:
    return not _UNICODE_SPACES.sub(" ", _cell_text(raw)).strip()


def parse_numeric(raw: CellValue) -> Optional[float]:
    """
    Parse a currency/number cell.

    Strips ``$``, commas, parentheses and whitespace. Blank, ``-``, ``n/a`` and
    ``not found`` are treated as "no value". Any other non-numeric residue
    yields None rather than raising.

    Examples:
        >>> parse_numeric("$1,234.50")
        1234.5
        >>> parse_numeric("n/a") is None
        True
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        value = float(raw)
        return value if math.isfinite(value) else None

    text = _UNICODE_SPACES.sub(" ", str(raw)).strip()
    if text.lower() in NUMERIC_SENTINELS:
        return None
    cleaned = _CURRENCY_NOISE.sub("", text)
    if not cleaned:
        return None
    try:
        value = float(cleaned)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def parse_string(raw: CellValue) -> Optional[str]:
    """Trim text, mapping no-break/narrow/zero-width spaces to plain spaces; blank -> None."""
    text = _UNICODE_SPACES.sub(" ", _cell_text(raw)).strip()
    return text or None


def normalize_header(raw: CellValue) -> str:
    """Lowercase and drop everything but ``[a-z0-9]``: ``"Short Descriptor"`` -> ``"shortdescriptor"``."""
    return _HEADER_NOISE.sub("", _cell_text(raw).lower())


@dataclass(frozen=True)
class CodeFormat:
    """How a code identifier is cleaned and validated."""

    name: str
    pattern: Pattern
    length: Optional[int] = None  # pad/truncate target
    min_length: int = 1
    min_digits: int = 1  # all-digit values shorter than this are not padded, just rejected
    max_length: Optional[int] = None  # reject longer values before truncation
    digits_only: bool = False
    strip_prefixes: bool = False
    reject_inner_space: bool = False


HCPCS = CodeFormat(
    name="hcpcs",
    pattern=re.compile(r"^[A-Z0-9]{5}$"),
    length=5,
    min_length=4,
    min_digits=3,
    max_length=7,
    strip_prefixes=True,
    reject_inner_space=True,
)
ZIP5 = CodeFormat(name="zip5", pattern=re.compile(r"^\d{5}$"), length=5, digits_only=True)
LOCALITY = CodeFormat(
    name="locality",
    pattern=re.compile(r"^[A-Z0-9]{2,7}$"),
    max_length=7,
    reject_inner_space=True,
)
CARRIER = CodeFormat(name="carrier", pattern=re.compile(r"^\d{5}$"), length=5, digits_only=True)


def normalize_code(raw: CellValue, fmt: CodeFormat = HCPCS) -> Optional[str]:
    """
    Normalize a code identifier without ever treating it as a number.

    HCPCS handling: uppercase, drop a leading ``CPT``/``HCPCS``/``CODE`` label,
    reject values that still contain whitespace (a description rather than a
    code), strip punctuation, left-pad all-digit values that lost their
    leading zeros in a spreadsheet (three digits or more, so
    ``100`` -> ``00100`` but ``12`` is rejected), truncate to five characters
    (``99284-26`` -> ``99284``) and validate ``^[A-Z0-9]{5}$``.

    ZIP and carrier codes keep only digits, then are zero-padded or truncated
    to five. Localities are zero-padded to two digits.

    Returns:
        The normalized code, or None when the value is blank or invalid.

    Examples:
        >>> normalize_code("00501")
        '00501'
        >>> normalize_code(501.0)
        '00501'
        >>> normalize_code("office visit") is None
        True
    """
    text = _UNICODE_SPACES.sub(" ", _cell_text(raw)).strip().upper()
    if not text:
        return None

    if fmt.digits_only:
        text = re.sub(r"\D", "", text)
    else:
        if fmt.strip_prefixes:
            text = _CODE_PREFIX.sub("", text).strip()
        if fmt.reject_inner_space and re.search(r"\s", text):
            return None
        text = re.sub(r"[^A-Z0-9]", "", text)

    if not text:
        return None
    if text.isdigit():
        if len(text) < fmt.min_digits:
            return None
        text = text.zfill(fmt.length if fmt.length is not None else 2)
    if len(text) < fmt.min_length:
        return None
    if fmt.max_length is not None and len(text) > fmt.max_length:
        return None
    if fmt.length is not None:
        text = text[:fmt.length]

    return text if fmt.pattern.match(text) else None


class StateColumn(NamedTuple):
    state: str
    is_rental: bool


def parse_state_wide_column_header(header: CellValue) -> Optional[StateColumn]:
    """
    Recognize DMEPOS-style per-state fee columns.

    Examples:
        >>> parse_state_wide_column_header("CA (NR)")
        StateColumn(state='CA', is_rental=False)
        >>> parse_state_wide_column_header("ZZ (R)") is None
        True
    """
    text = parse_string(header)
    if text is None:
        return None
    match = _WIDE_STATE_HEADER.match(text.upper())
    if not match or match.group(1) not in STATE_CODES:
        return None
    return StateColumn(state=match.group(1), is_rental=match.group(2) == "R")


def normalize_state_abbr(raw: CellValue) -> Optional[str]:
    """Accept a USPS abbreviation or a full state name; anything else -> None."""
    text = parse_string(raw)
    if text is None:
        return None
    text = re.sub(r"\s+", " ", text.upper().replace(".", ""))
    if text in STATE_CODES:
        return text
    return STATE_NAMES.get(text)
