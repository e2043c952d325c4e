"""Database models for the CMS fee-schedule importer"""

from .fee_schedules import (
    OppsAddendumB, MpfsBenchmark, ClfsFeeSchedule, DmeposFeeSchedule,
    DmepenFeeSchedule, GpciLocality, ZipToLocality
)
from .imports import ImportLog, GpciStateAverage

__all__ = [
    "OppsAddendumB", "MpfsBenchmark", "ClfsFeeSchedule", "DmeposFeeSchedule",
    "DmepenFeeSchedule", "GpciLocality", "ZipToLocality",
    "ImportLog", "GpciStateAverage",
]
