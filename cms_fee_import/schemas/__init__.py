"""Pydantic schemas for the import API"""

from .common import ErrorResponse
from .imports import GpciStateAverageSummary, ImportDetails, ImportLogEntry, ImportResponse

__all__ = ["ErrorResponse", "GpciStateAverageSummary", "ImportDetails", "ImportLogEntry", "ImportResponse"]
