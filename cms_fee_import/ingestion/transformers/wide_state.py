"""
DMEPOS / DMEPEN fee schedules.

These files carry one pair of columns per state, ``"CA (NR)"`` (purchase,
non-rental) and ``"CA (R)"`` (rental). Each data row fans out into one
record per state that has at least one of the two fees.
"""

from typing import Dict, List

import structlog

from cms_fee_import.ingestion.header_detector import HeaderMatch
from cms_fee_import.ingestion.normalizers import CellValue, parse_numeric, parse_state_wide_column_header
from cms_fee_import.ingestion.transformers.base import (
    DatasetTransformer,
    SkipRow,
    TransformContext,
    modifier_text,
)
from cms_fee_import.ingestion.transformers.records import DmeFeeRecord

logger = structlog.get_logger(__name__)


def find_state_columns(header_cells) -> Dict[str, Dict[bool, int]]:
    """``{state: {is_rental: column_index}}`` in header order; first column per slot wins."""
    states: Dict[str, Dict[bool, int]] = {}
    for index, label in enumerate(header_cells):
        parsed = parse_state_wide_column_header(label)
        if parsed is None:
            continue
        states.setdefault(parsed.state, {}).setdefault(parsed.is_rental, index)
    return states


class WideStateTransformer(DatasetTransformer):

    def __init__(self, header: HeaderMatch, context: TransformContext):
        super().__init__(header, context)
        self.state_columns = find_state_columns(header.header_cells)
        logger.info(
            "wide_state_columns",
            dataset=context.dataset,
            states=len(self.state_columns),
            national_fallback=not self.state_columns,
        )

    def transform_row(self, row: List[CellValue]) -> List[DmeFeeRecord]:
        hcpcs = self.require_code(row, "hcpcs")
        ceiling = parse_numeric(self.cell(row, "ceiling"))
        floor = parse_numeric(self.cell(row, "floor"))

        common = dict(
            year=self.context.year,
            hcpcs=hcpcs,
            modifier=modifier_text(self.cell(row, "modifier")),
            modifier2=modifier_text(self.cell(row, "modifier2")),
            jurisdiction=self.text(row, "jurisdiction"),
            category=self.text(row, "category"),
            description=self.text(row, "description"),
            ceiling=ceiling,
            floor=floor,
            source_file=self.context.source_file,
        )

        if not self.state_columns:
            national_fee = ceiling if ceiling is not None else floor
            return [DmeFeeRecord(state_abbr="", fee=national_fee, fee_rental=None, **common)]

        records = []
        for state, columns in self.state_columns.items():
            fee = parse_numeric(self.cell_at(row, columns.get(False)))
            rental = parse_numeric(self.cell_at(row, columns.get(True)))
            if fee is None and rental is None:
                continue
            records.append(DmeFeeRecord(state_abbr=state, fee=fee, fee_rental=rental, **common))

        if not records:
            raise SkipRow("no_state_fees")
        return records
