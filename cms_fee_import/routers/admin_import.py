"""Admin import endpoints"""

from typing import Any, List, Mapping, Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from starlette.datastructures import UploadFile

from cms_fee_import.database import get_db
from cms_fee_import.ingestion.datasets import parse_dataset_type
from cms_fee_import.ingestion.errors import ImportPipelineError
from cms_fee_import.ingestion.gpci_state_avg import recompute_gpci_state_averages
from cms_fee_import.ingestion.import_log import list_import_logs
from cms_fee_import.ingestion.orchestrator import (
    ImportOrchestrator,
    ImportRequest,
    default_orchestrator,
    error_response,
)
from cms_fee_import.schemas.imports import GpciStateAverageSummary, ImportLogEntry, ImportResponse

logger = structlog.get_logger()

router = APIRouter()

_TRUE_VALUES = {"true", "1", "yes", "on"}


def get_orchestrator() -> ImportOrchestrator:
    """Dependency to get the import orchestrator"""
    return default_orchestrator()


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _TRUE_VALUES


def _parse_year(value: Any) -> Optional[int]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        year = int(str(value).strip())
    except ValueError:
        raise ImportPipelineError(f"Invalid year '{value}'", error_code="INVALID_YEAR") from None
    if not 1990 <= year <= 2100:
        raise ImportPipelineError(f"Year {year} is out of range", error_code="INVALID_YEAR")
    return year


async def parse_import_request(request: Request) -> ImportRequest:
    """Build an ImportRequest from a multipart form or a JSON body."""
    content_type = request.headers.get("content-type", "")
    content: Optional[bytes] = None
    file_name: Optional[str] = None

    if content_type.startswith("multipart/form-data") or content_type.startswith(
        "application/x-www-form-urlencoded"
    ):
        form: Mapping[str, Any] = await request.form()
        upload = form.get("file")
        if isinstance(upload, UploadFile):
            content = await upload.read()
            file_name = upload.filename
    else:
        try:
            form = await request.json()
        except ValueError:
            raise ImportPipelineError("Request body must be JSON or multipart form data",
                                      error_code="INVALID_REQUEST") from None
        if not isinstance(form, dict):
            raise ImportPipelineError("Request body must be a JSON object", error_code="INVALID_REQUEST")

    return ImportRequest(
        dataset=parse_dataset_type(form.get("dataType")),
        year=_parse_year(form.get("year")),
        dry_run=_parse_bool(form.get("dryRun")),
        content=content,
        file_name=file_name,
    )


@router.post("/import")
async def admin_import(
    request: Request,
    orchestrator: ImportOrchestrator = Depends(get_orchestrator),
):
    """Import one CMS fee-schedule file (or run the store self-test)"""
    run_id = getattr(request.state, "run_id", None)
    try:
        import_request = await parse_import_request(request)
        response = await orchestrator.run(import_request)
    except ImportPipelineError as exc:
        response = error_response(exc)
    except Exception as exc:
        logger.error("Import request failed", run_id=run_id, error=str(exc), exc_info=True)
        response = ImportResponse(
            ok=False,
            error_code="INTERNAL_ERROR",
            message="Unexpected error during import; see server logs",
            status_code=500,
        )
    return JSONResponse(status_code=response.status_code, content=response.to_payload())


@router.get("/import-logs", response_model=List[ImportLogEntry])
def import_logs(
    dataset: Optional[str] = Query(None, description="Filter by dataType"),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    """Recent import runs, newest first"""
    return [ImportLogEntry.model_validate(entry) for entry in list_import_logs(db, dataset, limit)]


@router.post("/gpci/state-averages", response_model=GpciStateAverageSummary)
def gpci_state_averages(dry_run: bool = Query(False, alias="dryRun")):
    """Recompute per-state GPCI averages from the imported localities"""
    summary = recompute_gpci_state_averages(dry_run=dry_run)
    return JSONResponse(
        status_code=200 if summary.ok else 400,
        content=summary.model_dump(mode="json", by_alias=True),
    )
