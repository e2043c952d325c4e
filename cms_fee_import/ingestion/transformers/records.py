"""Normalized output records, one frozen dataclass per target table shape."""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional


class _Record:
    code_field = "hcpcs"

    def to_row(self) -> Dict[str, Any]:
        return asdict(self)

    @property
    def sample_code(self) -> str:
        return getattr(self, self.code_field)


@dataclass(frozen=True)
class OppsRecord(_Record):
    year: int
    hcpcs: str
    apc: Optional[str]
    status_indicator: Optional[str]
    payment_rate: Optional[float]
    relative_weight: Optional[float]
    short_desc: Optional[str]
    long_desc: Optional[str]
    national_unadjusted_copayment: Optional[float]
    minimum_unadjusted_copayment: Optional[float]
    source_file: str


@dataclass(frozen=True)
class MpfsRecord(_Record):
    year: int
    hcpcs: str
    modifier: str
    description: Optional[str]
    status: Optional[str]
    work_rvu: Optional[float]
    nonfac_pe_rvu: Optional[float]
    fac_pe_rvu: Optional[float]
    mp_rvu: Optional[float]
    nonfac_fee: Optional[float]
    fac_fee: Optional[float]
    conversion_factor: float
    pctc: Optional[str]
    global_days: Optional[str]
    mult_surgery_indicator: Optional[str]
    qp_status: str
    source: str
    source_file: str


@dataclass(frozen=True)
class ClfsRecord(_Record):
    year: int
    hcpcs: str
    modifier: Optional[str]
    payment_amount: Optional[float]
    short_desc: Optional[str]
    long_desc: Optional[str]
    source_file: str


@dataclass(frozen=True)
class DmeFeeRecord(_Record):
    year: int
    hcpcs: str
    modifier: str
    modifier2: str
    state_abbr: str  # "" for the national fallback record
    jurisdiction: Optional[str]
    category: Optional[str]
    description: Optional[str]
    fee: Optional[float]
    fee_rental: Optional[float]
    ceiling: Optional[float]
    floor: Optional[float]
    source_file: str


@dataclass(frozen=True)
class GpciRecord(_Record):
    code_field = "locality_num"

    locality_num: str
    locality_name: str
    state_abbr: str
    work_gpci: float
    pe_gpci: float
    mp_gpci: float
    source_file: str


@dataclass(frozen=True)
class ZipLocalityRecord(_Record):
    code_field = "zip5"

    zip5: str
    state_abbr: Optional[str]
    locality_num: str
    carrier_num: Optional[str]
    county_name: Optional[str]
    city_name: Optional[str]
    effective_year: int
    source: str
    source_file: str
