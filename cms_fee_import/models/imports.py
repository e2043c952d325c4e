"""Import bookkeeping tables"""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Float, Index, Integer, String, Text

from cms_fee_import.database import Base


class ImportLog(Base):
    """One row per import run (dry runs included)"""

    __tablename__ = "import_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    dataset_name = Column(String(30), nullable=False)
    file_name = Column(String(255), nullable=True)
    dry_run = Column(Boolean, nullable=False, default=False)
    rows_imported = Column(Integer, nullable=False, default=0)
    rows_skipped = Column(Integer, nullable=False, default=0)
    valid_rows = Column(Integer, nullable=False, default=0)
    status = Column(String(10), nullable=False)  # success, partial, failed
    error_code = Column(String(50), nullable=True)
    error_message = Column(Text, nullable=True)
    imported_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_import_logs_dataset_time", "dataset_name", "imported_at"),
    )


class GpciStateAverage(Base):
    """Per-state mean of the locality GPCIs"""

    __tablename__ = "gpci_state_averages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    state_abbr = Column(String(2), nullable=False, unique=True)
    avg_work_gpci = Column(Float, nullable=False)
    avg_pe_gpci = Column(Float, nullable=False)
    avg_mp_gpci = Column(Float, nullable=False)
    n_rows = Column(Integer, nullable=False)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)
