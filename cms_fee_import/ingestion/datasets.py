"""
Dataset registry.

Each importable dataset is described once by a ``DatasetSpec``: where its
records go, which columns form its natural key, how to find its sheet and
header, and which transformer family shapes its rows. The orchestrator looks
the ``DatasetSpec`` up once per request.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple, Type

from cms_fee_import.ingestion.errors import UnknownDatasetError
from cms_fee_import.ingestion.transformers import (
    ClfsTransformer,
    DatasetTransformer,
    GpciTransformer,
    MpfsTransformer,
    OppsTransformer,
    WideStateTransformer,
    ZipCrosswalkTransformer,
)


class DatasetType(str, Enum):
    MPFS = "mpfs"
    GPCI = "gpci"
    OPPS = "opps"
    DMEPOS = "dmepos"
    DMEPEN = "dmepen"
    CLFS = "clfs"
    ZIP_CROSSWALK = "zip-crosswalk"
    SELF_TEST = "self-test"


@dataclass(frozen=True)
class DatasetSpec:
    dataset: DatasetType
    table: str
    natural_key: Tuple[str, ...]
    sheet_hints: Tuple[str, ...]
    default_year: int
    source_file_template: str
    transformer: Type[DatasetTransformer]
    synonym_set: str
    reports_sample_codes: bool = True

    def source_file(self, year: int) -> str:
        return self.source_file_template.format(year=year, yy=f"{year % 100:02d}")


_DME_KEY = ("hcpcs", "modifier", "modifier2", "state_abbr", "year", "source_file")

DATASETS: Dict[DatasetType, DatasetSpec] = {
    spec.dataset: spec
    for spec in (
        DatasetSpec(
            dataset=DatasetType.OPPS,
            table="opps_addendum_b",
            natural_key=("year", "hcpcs"),
            sheet_hints=("Addendum B", "AddB"),
            default_year=2025,
            source_file_template="opps_addendum_b_{year}",
            transformer=OppsTransformer,
            synonym_set="opps",
        ),
        DatasetSpec(
            dataset=DatasetType.MPFS,
            table="mpfs_benchmarks",
            natural_key=("hcpcs", "modifier", "year"),
            sheet_hints=("MPFS", "Fee Schedule", "RVU"),
            default_year=2026,
            source_file_template="CMS_MPFS_{year}",
            transformer=MpfsTransformer,
            synonym_set="mpfs",
        ),
        DatasetSpec(
            dataset=DatasetType.CLFS,
            table="clfs_fee_schedule",
            natural_key=("hcpcs", "year"),
            sheet_hints=("CLFS", "Lab", "Clinical"),
            default_year=2026,
            source_file_template="CLFS_{year}",
            transformer=ClfsTransformer,
            synonym_set="clfs",
        ),
        DatasetSpec(
            dataset=DatasetType.DMEPOS,
            table="dmepos_fee_schedule",
            natural_key=_DME_KEY,
            sheet_hints=("DMEPOS",),
            default_year=2026,
            source_file_template="DMEPOS{yy}",
            transformer=WideStateTransformer,
            synonym_set="dmepos",
        ),
        DatasetSpec(
            dataset=DatasetType.DMEPEN,
            table="dmepen_fee_schedule",
            natural_key=_DME_KEY,
            sheet_hints=("DMEPEN",),
            default_year=2026,
            source_file_template="DMEPEN{yy}",
            transformer=WideStateTransformer,
            synonym_set="dmepos",
        ),
        DatasetSpec(
            dataset=DatasetType.GPCI,
            table="gpci_localities",
            natural_key=("locality_num",),
            sheet_hints=("GPCI", "Locality"),
            default_year=2026,
            source_file_template="GPCI_{year}",
            transformer=GpciTransformer,
            synonym_set="gpci",
            reports_sample_codes=False,
        ),
        DatasetSpec(
            dataset=DatasetType.ZIP_CROSSWALK,
            table="zip_to_locality",
            natural_key=("zip5",),
            sheet_hints=("ZIP", "Crosswalk"),
            default_year=2026,
            source_file_template="ZIP_LOCALITY_{year}",
            transformer=ZipCrosswalkTransformer,
            synonym_set="zip-crosswalk",
            reports_sample_codes=False,
        ),
    )
}


def parse_dataset_type(value: str) -> DatasetType:
    try:
        return DatasetType((value or "").strip().lower())
    except ValueError:
        allowed = ", ".join(d.value for d in DatasetType)
        raise UnknownDatasetError(
            f"Unknown dataType '{value}'. Expected one of: {allowed}"
        ) from None


def get_dataset_spec(dataset: DatasetType) -> DatasetSpec:
    try:
        return DATASETS[dataset]
    except KeyError:
        raise UnknownDatasetError(f"'{dataset.value}' is not an importable dataset") from None
