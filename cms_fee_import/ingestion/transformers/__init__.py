"""Dataset transformers, one per dataset family."""

from .base import DatasetTransformer, SkipRow, TransformContext, TransformStats
from .crosswalk import ZipCrosswalkTransformer
from .fee_schedule import ClfsTransformer, MpfsTransformer, OppsTransformer
from .geo_index import GpciTransformer
from .wide_state import WideStateTransformer

__all__ = [
    "DatasetTransformer", "SkipRow", "TransformContext", "TransformStats",
    "OppsTransformer", "MpfsTransformer", "ClfsTransformer",
    "WideStateTransformer", "GpciTransformer", "ZipCrosswalkTransformer",
]
