"""Single-row-per-code fee schedules: OPPS Addendum B, MPFS and CLFS."""

from typing import List, Optional

from cms_fee_import.ingestion.normalizers import CellValue, parse_numeric, parse_string
from cms_fee_import.ingestion.transformers.base import DatasetTransformer, modifier_text
from cms_fee_import.ingestion.transformers.records import ClfsRecord, MpfsRecord, OppsRecord


def _derived_fee(cf: float, *rvus: Optional[float]) -> Optional[float]:
    if any(rvu is None for rvu in rvus):
        return None
    return round(sum(rvus) * cf, 2)


def _global_days(raw: CellValue) -> Optional[str]:
    # "000", "010", "090", "XXX", "ZZZ"; numeric cells lose the padding
    text = parse_string(raw)
    if text is None:
        return None
    return text.zfill(3) if text.isdigit() else text.upper()


class OppsTransformer(DatasetTransformer):
    """
    OPPS Addendum B.

    When the payment rate column is absent or blank but a relative weight is
    present, the rate is derived from the OPPS conversion factor.
    """

    def transform_row(self, row: List[CellValue]) -> List[OppsRecord]:
        hcpcs = self.require_code(row, "hcpcs")

        relative_weight = parse_numeric(self.cell(row, "relative_weight"))
        payment_rate = parse_numeric(self.cell(row, "payment_rate"))
        if payment_rate is None and relative_weight is not None:
            payment_rate = round(relative_weight * self.context.opps_conversion_factor, 2)

        return [OppsRecord(
            year=self.context.year,
            hcpcs=hcpcs,
            apc=self.text(row, "apc"),
            status_indicator=self.text(row, "status_indicator"),
            payment_rate=payment_rate,
            relative_weight=relative_weight,
            short_desc=self.text(row, "short_desc"),
            long_desc=self.text(row, "long_desc"),
            national_unadjusted_copayment=parse_numeric(self.cell(row, "national_copay")),
            minimum_unadjusted_copayment=parse_numeric(self.cell(row, "minimum_copay")),
            source_file=self.context.source_file,
        )]


class MpfsTransformer(DatasetTransformer):
    """Physician fee schedule RVUs; fees are derived as (work + PE + MP) x CF when missing."""

    def transform_row(self, row: List[CellValue]) -> List[MpfsRecord]:
        hcpcs = self.require_code(row, "hcpcs")

        work = parse_numeric(self.cell(row, "work_rvu"))
        nonfac_pe = parse_numeric(self.cell(row, "nonfac_pe_rvu"))
        fac_pe = parse_numeric(self.cell(row, "fac_pe_rvu"))
        mp = parse_numeric(self.cell(row, "mp_rvu"))
        cf = parse_numeric(self.cell(row, "conversion_factor")) or self.context.mpfs_conversion_factor

        nonfac_fee = parse_numeric(self.cell(row, "nonfac_fee"))
        if nonfac_fee is None:
            nonfac_fee = _derived_fee(cf, work, nonfac_pe, mp)
        fac_fee = parse_numeric(self.cell(row, "fac_fee"))
        if fac_fee is None:
            fac_fee = _derived_fee(cf, work, fac_pe, mp)

        return [MpfsRecord(
            year=self.context.year,
            hcpcs=hcpcs,
            modifier=modifier_text(self.cell(row, "modifier")),
            description=self.text(row, "description"),
            status=self.text(row, "status"),
            work_rvu=work,
            nonfac_pe_rvu=nonfac_pe,
            fac_pe_rvu=fac_pe,
            mp_rvu=mp,
            nonfac_fee=nonfac_fee,
            fac_fee=fac_fee,
            conversion_factor=cf,
            pctc=self.text(row, "pctc"),
            global_days=_global_days(self.cell(row, "global_days")),
            mult_surgery_indicator=self.text(row, "mult_surgery_indicator"),
            qp_status="nonQP",
            source="CMS MPFS",
            source_file=self.context.source_file,
        )]


class ClfsTransformer(DatasetTransformer):
    """Clinical lab fee schedule."""

    def transform_row(self, row: List[CellValue]) -> List[ClfsRecord]:
        hcpcs = self.require_code(row, "hcpcs")
        modifier = self.text(row, "modifier")
        return [ClfsRecord(
            year=self.context.year,
            hcpcs=hcpcs,
            modifier=modifier.upper() if modifier else None,
            payment_amount=parse_numeric(self.cell(row, "payment_amount")),
            short_desc=self.text(row, "short_desc"),
            long_desc=self.text(row, "long_desc"),
            source_file=self.context.source_file,
        )]
