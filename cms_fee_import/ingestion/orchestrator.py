"""
Import orchestrator.

Wires row source -> header detector -> transformer -> sink for one request
and assembles the response envelope:

- ``.csv`` uploads take the CSV fast path; everything else is opened as an
  XLSX workbook and the best-matching sheet is used.
- Run-level failures (no file, unreadable workbook, header not found, no
  valid rows) return ``ok: false`` with a structured error code and never
  reach the store.
- Batch write failures downgrade the run to ``PARTIAL_IMPORT``.
- ``self-test`` skips parsing and only checks that the store answers.
"""

import asyncio
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

import structlog

from cms_fee_import.config import Settings, settings as default_settings
from cms_fee_import.ingestion.datasets import DatasetSpec, DatasetType, get_dataset_spec
from cms_fee_import.ingestion.errors import (
    FileTooLargeError,
    ImportPipelineError,
    MissingFileError,
    NoValidRowsError,
    StoreUnavailableError,
)
from cms_fee_import.ingestion.header_detector import detect_header
from cms_fee_import.ingestion.import_log import PARTIAL_IMPORT, ImportLogWriter
from cms_fee_import.ingestion.normalizers import parse_string
from cms_fee_import.ingestion.row_source import CsvRowSource, SpreadsheetRowSource
from cms_fee_import.ingestion.sink import BatchUpsertSink, SqlAlchemyUpsertStore, UpsertStore
from cms_fee_import.ingestion.synonyms import SynonymCatalog, load_synonyms
from cms_fee_import.ingestion.transformers import TransformContext
from cms_fee_import.schemas.imports import ImportDetails, ImportResponse

logger = structlog.get_logger(__name__)

SELF_TEST_TABLE = "mpfs_benchmarks"


@dataclass(frozen=True)
class ImportRequest:
    dataset: DatasetType
    year: Optional[int] = None
    dry_run: bool = False
    content: Optional[bytes] = None
    file_name: Optional[str] = None


def is_csv_upload(file_name: Optional[str], content: bytes) -> bool:
    if file_name:
        return file_name.lower().endswith(".csv")
    # No name: anything that is not a zip container (XLSX) is read as CSV
    return not content.startswith(b"PK\x03\x04")


def error_response(exc: ImportPipelineError) -> ImportResponse:
    return ImportResponse(
        ok=False,
        error_code=exc.error_code,
        message=exc.message,
        details=exc.details or None,
        status_code=exc.status_code,
    )


def _recording(rows: Iterator[Tuple[int, list]], into: List[list], limit: int):
    """Pass rows through, keeping the first ``limit`` as text for diagnostics."""
    for index, row in rows:
        if len(into) < limit:
            into.append([parse_string(cell) for cell in row])
        yield index, row


class ImportOrchestrator:

    def __init__(
        self,
        store: Optional[UpsertStore] = None,
        import_log: Optional[ImportLogWriter] = None,
        settings: Settings = default_settings,
        synonyms: Optional[SynonymCatalog] = None,
    ):
        self.store = store
        self.import_log = import_log
        self.settings = settings
        self.synonyms = synonyms or load_synonyms()

    async def run(self, request: ImportRequest) -> ImportResponse:
        log = logger.bind(dataset=request.dataset.value, file_name=request.file_name, dry_run=request.dry_run)

        if request.dataset is DatasetType.SELF_TEST:
            try:
                return await self._self_test()
            except ImportPipelineError as exc:
                log.error("self_test_failed", error=exc.message)
                return error_response(exc)

        try:
            spec = get_dataset_spec(request.dataset)
            response = await self._import(spec, request)
        except ImportPipelineError as exc:
            log.warning("import_failed", error_code=exc.error_code, error=exc.message)
            response = error_response(exc)

        await self._log_run(request, response)
        return response

    async def _self_test(self) -> ImportResponse:
        if self.store is None:
            raise StoreUnavailableError("No store configured")
        try:
            count = await asyncio.to_thread(self.store.count, SELF_TEST_TABLE)
        except Exception as exc:
            raise StoreUnavailableError(f"Database connection failed: {exc}") from exc
        logger.info("self_test_ok", table=SELF_TEST_TABLE, rows=count)
        return ImportResponse(
            ok=True,
            message="Database connection OK",
            details={"table": SELF_TEST_TABLE, "rowCount": count},
        )

    def _open_source(self, spec: DatasetSpec, request: ImportRequest):
        content = request.content
        if is_csv_upload(request.file_name, content):
            return CsvRowSource(content)

        if len(content) > self.settings.max_spreadsheet_bytes:
            raise FileTooLargeError(
                f"Spreadsheet is {len(content)} bytes (limit {self.settings.max_spreadsheet_bytes}). "
                "Save the sheet as CSV and upload that instead.",
                details={"fileSize": len(content), "maxBytes": self.settings.max_spreadsheet_bytes},
            )
        return SpreadsheetRowSource(content, spec.sheet_hints)

    async def _import(self, spec: DatasetSpec, request: ImportRequest) -> ImportResponse:
        if not request.content:
            raise MissingFileError("No file provided")

        cfg = self.settings
        dataset = spec.dataset.value
        year = request.year or spec.default_year
        context = TransformContext(
            dataset=dataset,
            year=year,
            source_file=spec.source_file(year),
            opps_conversion_factor=cfg.opps_conversion_factor,
            mpfs_conversion_factor=cfg.mpfs_conversion_factor,
            sample_code_limit=cfg.sample_code_limit,
            sample_row_limit=cfg.sample_row_limit,
            progress_log_interval=cfg.progress_log_interval,
        )
        logger.info(
            "import_started",
            dataset=dataset,
            year=year,
            file_name=request.file_name,
            size_bytes=len(request.content),
            dry_run=request.dry_run,
        )

        # Decoding, workbook loading and row iteration are blocking; keep them off the event loop
        source = await asyncio.to_thread(self._open_source, spec, request)
        try:
            leading: List[list] = []
            rows = _recording(source.iter_rows(), leading, cfg.diagnostic_row_limit)
            header = await asyncio.to_thread(
                detect_header,
                rows,
                self.synonyms.for_dataset(spec.synonym_set),
                dataset,
                scan_rows=cfg.header_scan_rows,
                diagnostic_rows=cfg.diagnostic_row_limit,
            )
            transformer = spec.transformer(header, context)
            sink = BatchUpsertSink(
                self.store,
                spec.table,
                spec.natural_key,
                batch_size=cfg.import_batch_size,
                dry_run=request.dry_run,
            )
            result = await sink.write_all(transformer.transform(rows))
        finally:
            close = getattr(source, "close", None)
            if close is not None:
                close()

        stats = transformer.stats
        details = ImportDetails(
            total_rows_read=stats.rows_read,
            valid_rows=stats.valid_rows,
            imported=0 if request.dry_run else result.imported,
            skipped=stats.skipped,
            skipped_reasons=dict(stats.skipped_reasons) or None,
            header_row_index=header.row_index,
            sheet_name=source.sheet_name,
            columns_detected=header.columns_detected,
            sample_codes=stats.sample_codes if spec.reports_sample_codes else None,
            sample_rows=None if spec.reports_sample_codes else stats.sample_rows,
            batches_completed=result.batches_completed,
            batch_errors=result.errors or None,
            dry_run=request.dry_run,
        )
        logger.info(
            "import_finished",
            dataset=dataset,
            rows_read=stats.rows_read,
            valid_rows=stats.valid_rows,
            imported=details.imported,
            skipped=stats.skipped,
            batch_errors=len(result.errors),
        )

        if stats.valid_rows == 0:
            raise NoValidRowsError(
                dataset,
                f"No valid {dataset} rows found after the header row",
                sample_rows=leading,
                details=details.model_dump(by_alias=True, exclude_none=True),
            )

        if result.errors:
            return ImportResponse(
                ok=False,
                error_code=PARTIAL_IMPORT,
                message=(
                    f"Imported {details.imported} of {stats.valid_rows} {dataset} records; "
                    f"{len(result.errors)} batch(es) failed"
                ),
                details=details,
                status_code=400,
            )

        verb = "Validated" if request.dry_run else "Imported"
        count = stats.valid_rows if request.dry_run else details.imported
        return ImportResponse(
            ok=True,
            message=f"{verb} {count} {dataset} records ({stats.skipped} rows skipped)",
            details=details,
        )

    async def _log_run(self, request: ImportRequest, response: ImportResponse) -> None:
        if self.import_log is None:
            return
        try:
            await asyncio.to_thread(
                self.import_log.record,
                request.dataset.value,
                request.file_name,
                request.dry_run,
                response,
            )
        except Exception as exc:
            # The import itself already finished; history is best effort
            logger.error("import_log_failed", dataset=request.dataset.value, error=str(exc), exc_info=True)


def default_orchestrator() -> ImportOrchestrator:
    """Orchestrator bound to the configured database."""
    return ImportOrchestrator(store=SqlAlchemyUpsertStore(), import_log=ImportLogWriter())
