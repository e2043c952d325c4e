"""ZIP-to-locality crosswalk."""

import re
from typing import List, Optional, Set

from cms_fee_import.ingestion.header_detector import HeaderMatch
from cms_fee_import.ingestion.normalizers import (
    CARRIER,
    LOCALITY,
    ZIP5,
    CellValue,
    normalize_code,
    normalize_state_abbr,
    parse_string,
)
from cms_fee_import.ingestion.transformers.base import DatasetTransformer, SkipRow, TransformContext
from cms_fee_import.ingestion.transformers.records import ZipLocalityRecord

SOURCE = "CMS ZIP-to-locality"

_YEAR = re.compile(r"^(\d{4})")


def _parse_year(raw: CellValue) -> Optional[int]:
    # Accepts "2026" as well as CMS "YEAR/QTR" values like "20261"
    text = parse_string(raw)
    match = _YEAR.match(text) if text else None
    if not match:
        return None
    year = int(match.group(1))
    return year if 1900 <= year <= 2100 else None


class ZipCrosswalkTransformer(DatasetTransformer):
    """
    One record per ZIP5, first valid occurrence wins.

    Later rows for an already-seen ZIP5 are skipped as ``duplicate_zip`` even
    when their locality differs.
    """

    def __init__(self, header: HeaderMatch, context: TransformContext):
        super().__init__(header, context)
        self._seen: Set[str] = set()

    def transform_row(self, row: List[CellValue]) -> List[ZipLocalityRecord]:
        zip5 = self.require_code(row, "zip5", ZIP5, missing="missing_zip", invalid="invalid_zip")
        locality = self.require_code(
            row, "locality", LOCALITY, missing="missing_locality", invalid="invalid_locality"
        )
        if zip5 in self._seen:
            raise SkipRow("duplicate_zip")
        self._seen.add(zip5)

        return [ZipLocalityRecord(
            zip5=zip5,
            state_abbr=normalize_state_abbr(self.cell(row, "state")),
            locality_num=locality,
            carrier_num=normalize_code(self.cell(row, "carrier"), CARRIER),
            county_name=self.text(row, "county"),
            city_name=self.text(row, "city"),
            effective_year=_parse_year(self.cell(row, "effective_year")) or self.context.year,
            source=SOURCE,
            source_file=self.context.source_file,
        )]
