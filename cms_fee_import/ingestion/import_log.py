"""Import history: one ``import_logs`` row per import run."""

from typing import Callable, List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from cms_fee_import.database import SessionLocal
from cms_fee_import.models.imports import ImportLog
from cms_fee_import.schemas.imports import ImportResponse

logger = structlog.get_logger(__name__)

PARTIAL_IMPORT = "PARTIAL_IMPORT"


def run_status(response: ImportResponse) -> str:
    if response.ok:
        return "success"
    if response.error_code == PARTIAL_IMPORT:
        return "partial"
    return "failed"


def _counts(response: ImportResponse) -> dict:
    # Failed runs carry a plain dict of diagnostics, successful ones ImportDetails
    details = response.details
    if details is None:
        return {}
    if isinstance(details, dict):
        return details
    return details.model_dump(by_alias=True)


class ImportLogWriter:

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal):
        self.session_factory = session_factory

    def record(
        self,
        dataset: str,
        file_name: Optional[str],
        dry_run: bool,
        response: ImportResponse,
    ) -> int:
        counts = _counts(response)
        entry = ImportLog(
            dataset_name=dataset,
            file_name=file_name,
            dry_run=dry_run,
            rows_imported=counts.get("imported", 0),
            rows_skipped=counts.get("skipped", 0),
            valid_rows=counts.get("validRows", 0),
            status=run_status(response),
            error_code=response.error_code,
            error_message=None if response.ok else response.message,
        )
        with self.session_factory() as session:
            session.add(entry)
            session.commit()
            logger.info(
                "import_logged",
                import_log_id=entry.id,
                dataset=dataset,
                status=entry.status,
                rows_imported=entry.rows_imported,
            )
            return entry.id


def list_import_logs(db: Session, dataset: Optional[str] = None, limit: int = 50) -> List[ImportLog]:
    """Most recent runs first."""
    query = select(ImportLog)
    if dataset:
        query = query.where(ImportLog.dataset_name == dataset)
    query = query.order_by(ImportLog.imported_at.desc(), ImportLog.id.desc()).limit(limit)
    return list(db.execute(query).scalars())
