"""
Import API schemas.

Field names are snake_case in Python and camelCase on the wire; responses are
serialized with ``model_dump(by_alias=True, exclude_none=True)``.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ImportDetails(CamelModel):
    """Aggregated outcome of one import run"""
    total_rows_read: int = Field(0, description="Non-blank data rows read after the header")
    valid_rows: int = Field(0, description="Normalized records produced")
    imported: int = Field(0, description="Records written by successful batches (0 for dry runs)")
    skipped: int = Field(0, description="Rows dropped at row level")
    skipped_reasons: Optional[Dict[str, int]] = Field(None, description="Skip count per reason")
    header_row_index: Optional[int] = Field(None, description="Zero-based index of the detected header row")
    sheet_name: Optional[str] = Field(None, description="Worksheet used (spreadsheet uploads only)")
    columns_detected: List[str] = Field(default_factory=list, description="Canonical fields mapped from the header")
    sample_codes: Optional[List[str]] = None
    sample_rows: Optional[List[Dict[str, Any]]] = None
    batches_completed: int = 0
    batch_errors: Optional[List[str]] = None
    dry_run: bool = False


class ImportResponse(CamelModel):
    """Envelope returned by every import request"""
    ok: bool
    error_code: Optional[str] = None
    message: str
    # Plain dicts (error diagnostics, self-test) must not be coerced into ImportDetails
    details: Optional[Union[Dict[str, Any], ImportDetails]] = Field(None, union_mode="left_to_right")
    status_code: int = Field(200, exclude=True)

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class ImportLogEntry(CamelModel):
    """One past import run"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: int
    dataset_name: str
    file_name: Optional[str] = None
    dry_run: bool
    rows_imported: int
    rows_skipped: int
    valid_rows: int
    status: str
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    imported_at: datetime


class GpciStateAverageSummary(CamelModel):
    """Result of recomputing per-state GPCI averages"""
    ok: bool
    status: str = Field(..., description="success, warning or error")
    message: str
    states_computed: int = 0
    localities_read: int = 0
    localities_used: int = 0
    skipped_invalid_state: int = 0
    skipped_invalid_gpci: int = 0
    missing_states: List[str] = Field(default_factory=list)
    invalid_state_examples: List[str] = Field(default_factory=list)
    dry_run: bool = False
