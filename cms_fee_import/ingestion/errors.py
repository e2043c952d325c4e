"""
Import pipeline exceptions.

Run-level failures raise a subclass of ImportPipelineError; the HTTP layer and
the CLI turn them into the structured response envelope. Row-level problems
never surface here (transformers tally them as skip reasons) and batch-level
write failures are collected by the sink.
"""

from typing import Any, Dict, List, Optional


class ImportPipelineError(Exception):
    """Base exception for run-level import failures."""

    error_code = "IMPORT_FAILED"
    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        self.details = details or {}


def parse_failed_code(dataset: str) -> str:
    """Error code for a dataset-specific parse failure, e.g. ``ZIP_CROSSWALK_PARSE_FAILED``."""
    return f"{dataset.upper().replace('-', '_')}_PARSE_FAILED"


class _DatasetParseError(ImportPipelineError):
    def __init__(
        self,
        dataset: str,
        message: str,
        sample_rows: Optional[List[List[Any]]] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        details = dict(details or {})
        if sample_rows is not None:
            details["sampleRows"] = sample_rows
        super().__init__(message, error_code=parse_failed_code(dataset), details=details)
        self.dataset = dataset


class HeaderNotFoundError(_DatasetParseError):
    """No row inside the scan window qualified as the header."""


class MissingColumnError(_DatasetParseError):
    """A header row was found but it lacks a required column."""

    def __init__(self, dataset: str, missing: List[str], **kwargs):
        super().__init__(
            dataset,
            f"Header row is missing required column(s): {', '.join(missing)}",
            **kwargs,
        )
        self.missing = missing


class NoValidRowsError(_DatasetParseError):
    """Every data row was skipped."""


class SpreadsheetReadError(ImportPipelineError):
    error_code = "XLSX_PARSE_FAILED"


class FileTooLargeError(ImportPipelineError):
    error_code = "FILE_TOO_LARGE"


class MissingFileError(ImportPipelineError):
    error_code = "NO_FILE"


class UnknownDatasetError(ImportPipelineError):
    error_code = "INVALID_DATA_TYPE"


class StoreUnavailableError(ImportPipelineError):
    error_code = "DB_CONNECTION_FAILED"
    status_code = 500
