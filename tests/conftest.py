"""
Test configuration and fixtures.

Every test runs against a fresh in-memory SQLite database. DATABASE_URL is
set before the package is imported so the module-level engine picks it up.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_FORMAT", "console")

from io import BytesIO  # noqa: E402
from typing import Dict, List, Optional, Sequence  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from openpyxl import Workbook  # noqa: E402

from cms_fee_import import models  # noqa: E402,F401
from cms_fee_import.database import Base, SessionLocal, engine  # noqa: E402
from cms_fee_import.ingestion.import_log import ImportLogWriter  # noqa: E402
from cms_fee_import.ingestion.orchestrator import ImportOrchestrator  # noqa: E402
from cms_fee_import.ingestion.sink import SqlAlchemyUpsertStore  # noqa: E402
from cms_fee_import.main import app  # noqa: E402


def build_xlsx(
    sheets: Dict[str, Sequence[Sequence]],
    number_formats: Optional[Dict[str, Dict[str, str]]] = None,
) -> bytes:
    """
    Build an XLSX workbook in memory.

    Args:
        sheets: sheet name -> rows (lists of cell values), in sheet order
        number_formats: sheet name -> {cell address: number format}
    """
    wb = Workbook()
    wb.remove(wb.active)
    for name, rows in sheets.items():
        ws = wb.create_sheet(title=name)
        for row in rows:
            ws.append(list(row))
        for address, fmt in (number_formats or {}).get(name, {}).items():
            ws[address].number_format = fmt
    buffer = BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def build_csv(rows: List[str]) -> bytes:
    return ("\n".join(rows) + "\n").encode("utf-8")


@pytest.fixture(autouse=True)
def fresh_database():
    """Recreate all tables around each test"""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def store() -> SqlAlchemyUpsertStore:
    return SqlAlchemyUpsertStore(SessionLocal)


@pytest.fixture
def orchestrator(store) -> ImportOrchestrator:
    return ImportOrchestrator(store=store, import_log=ImportLogWriter(SessionLocal))


@pytest.fixture
def xlsx_bytes():
    return build_xlsx


@pytest.fixture
def csv_bytes():
    return build_csv


@pytest.fixture
def client() -> TestClient:
    """FastAPI TestClient (runs the app lifespan)"""
    with TestClient(app) as test_client:
        yield test_client
