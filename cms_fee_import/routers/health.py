"""Health check endpoints"""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from cms_fee_import.database import get_db
from cms_fee_import.schemas.common import ErrorResponse

router = APIRouter()

SERVICE_NAME = "cms-fee-import"


@router.get("/healthz")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": SERVICE_NAME}


@router.get("/readyz")
def readiness_check(db: Session = Depends(get_db)):
    """Readiness check: the database must answer"""
    try:
        db.execute(text("SELECT 1"))
    except Exception as exc:
        error = ErrorResponse(error=f"Service not ready: {exc}", code="DB_CONNECTION_FAILED")
        return JSONResponse(status_code=503, content=error.model_dump(exclude_none=True))

    return {
        "status": "ready",
        "service": SERVICE_NAME,
        "dependencies": {"database": "healthy"},
    }
