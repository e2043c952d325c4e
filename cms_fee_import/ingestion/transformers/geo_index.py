"""GPCI localities: a row is only usable when all three indices are present."""

from typing import List

from cms_fee_import.ingestion.normalizers import (
    LOCALITY,
    CellValue,
    normalize_state_abbr,
    parse_numeric,
)
from cms_fee_import.ingestion.transformers.base import DatasetTransformer, SkipRow
from cms_fee_import.ingestion.transformers.records import GpciRecord

UNKNOWN_STATE = "XX"


class GpciTransformer(DatasetTransformer):

    def transform_row(self, row: List[CellValue]) -> List[GpciRecord]:
        locality = self.require_code(
            row, "locality_num", LOCALITY, missing="missing_locality", invalid="invalid_locality"
        )

        work = parse_numeric(self.cell(row, "work_gpci"))
        pe = parse_numeric(self.cell(row, "pe_gpci"))
        mp = parse_numeric(self.cell(row, "mp_gpci"))
        if work is None or pe is None or mp is None:
            raise SkipRow("incomplete_gpci")

        return [GpciRecord(
            locality_num=locality,
            locality_name=self.text(row, "locality_name") or locality,
            state_abbr=normalize_state_abbr(self.cell(row, "state_abbr")) or UNKNOWN_STATE,
            work_gpci=work,
            pe_gpci=pe,
            mp_gpci=mp,
            source_file=self.context.source_file,
        )]
