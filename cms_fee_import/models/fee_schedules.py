"""Fee schedule tables, one per imported CMS dataset.

Every table carries a unique constraint on the dataset's natural key; the
import sink upserts against that constraint.
"""

from datetime import datetime

from sqlalchemy import Column, DateTime, Float, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import declared_attr

from cms_fee_import.database import Base


class OppsAddendumB(Base):
    """Hospital Outpatient PPS Addendum B payment rates"""

    __tablename__ = "opps_addendum_b"

    id = Column(Integer, primary_key=True, autoincrement=True)
    year = Column(Integer, nullable=False)
    hcpcs = Column(String(5), nullable=False)
    apc = Column(String(10), nullable=True)
    status_indicator = Column(String(5), nullable=True)
    payment_rate = Column(Float, nullable=True)
    relative_weight = Column(Float, nullable=True)
    short_desc = Column(String(255), nullable=True)
    long_desc = Column(Text, nullable=True)
    national_unadjusted_copayment = Column(Float, nullable=True)
    minimum_unadjusted_copayment = Column(Float, nullable=True)
    source_file = Column(String(100), nullable=False)
    imported_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("year", "hcpcs", name="uq_opps_year_hcpcs"),
        Index("idx_opps_hcpcs", "hcpcs"),
    )


class MpfsBenchmark(Base):
    """Medicare Physician Fee Schedule RVUs and national fees"""

    __tablename__ = "mpfs_benchmarks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    year = Column(Integer, nullable=False)
    hcpcs = Column(String(5), nullable=False)
    modifier = Column(String(5), nullable=False, default="")
    description = Column(Text, nullable=True)
    status = Column(String(5), nullable=True)
    work_rvu = Column(Float, nullable=True)
    nonfac_pe_rvu = Column(Float, nullable=True)  # Non-facility PE RVU
    fac_pe_rvu = Column(Float, nullable=True)  # Facility PE RVU
    mp_rvu = Column(Float, nullable=True)  # Malpractice RVU
    nonfac_fee = Column(Float, nullable=True)
    fac_fee = Column(Float, nullable=True)
    conversion_factor = Column(Float, nullable=True)
    pctc = Column(String(5), nullable=True)
    global_days = Column(String(5), nullable=True)
    mult_surgery_indicator = Column(String(5), nullable=True)
    qp_status = Column(String(10), nullable=False, default="nonQP")
    source = Column(String(50), nullable=False, default="CMS MPFS")
    source_file = Column(String(100), nullable=False)
    imported_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("hcpcs", "modifier", "year", name="uq_mpfs_hcpcs_modifier_year"),
    )


class ClfsFeeSchedule(Base):
    """Clinical Laboratory Fee Schedule payment amounts"""

    __tablename__ = "clfs_fee_schedule"

    id = Column(Integer, primary_key=True, autoincrement=True)
    year = Column(Integer, nullable=False)
    hcpcs = Column(String(5), nullable=False)
    modifier = Column(String(5), nullable=True)
    payment_amount = Column(Float, nullable=True)
    short_desc = Column(String(255), nullable=True)
    long_desc = Column(Text, nullable=True)
    source_file = Column(String(100), nullable=False)
    imported_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("hcpcs", "year", name="uq_clfs_hcpcs_year"),
    )


class _DmeFeeColumns:
    """Shared layout of the DMEPOS and DMEPEN tables (one row per code, modifiers and state)"""

    id = Column(Integer, primary_key=True, autoincrement=True)
    year = Column(Integer, nullable=False)
    hcpcs = Column(String(5), nullable=False)
    modifier = Column(String(5), nullable=False, default="")
    modifier2 = Column(String(5), nullable=False, default="")
    state_abbr = Column(String(2), nullable=False, default="")  # "" for national rows
    jurisdiction = Column(String(5), nullable=True)
    category = Column(String(20), nullable=True)
    description = Column(Text, nullable=True)
    fee = Column(Float, nullable=True)
    fee_rental = Column(Float, nullable=True)
    ceiling = Column(Float, nullable=True)
    floor = Column(Float, nullable=True)
    source_file = Column(String(100), nullable=False)
    imported_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    @declared_attr
    def __table_args__(cls):
        return (
            UniqueConstraint(
                "hcpcs", "modifier", "modifier2", "state_abbr", "year", "source_file",
                name=f"uq_{cls.__tablename__}_natural_key",
            ),
        )


class DmeposFeeSchedule(_DmeFeeColumns, Base):
    """DMEPOS fee schedule, expanded to one row per state"""

    __tablename__ = "dmepos_fee_schedule"


class DmepenFeeSchedule(_DmeFeeColumns, Base):
    """Enteral/parenteral nutrition (DMEPEN) fee schedule"""

    __tablename__ = "dmepen_fee_schedule"


class GpciLocality(Base):
    """Geographic Practice Cost Indices per payment locality"""

    __tablename__ = "gpci_localities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    locality_num = Column(String(10), nullable=False, unique=True)
    locality_name = Column(String(150), nullable=False)
    state_abbr = Column(String(2), nullable=False, default="XX")
    work_gpci = Column(Float, nullable=False)
    pe_gpci = Column(Float, nullable=False)
    mp_gpci = Column(Float, nullable=False)
    source_file = Column(String(100), nullable=False)
    imported_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class ZipToLocality(Base):
    """ZIP5 to carrier/locality crosswalk"""

    __tablename__ = "zip_to_locality"

    id = Column(Integer, primary_key=True, autoincrement=True)
    zip5 = Column(String(5), nullable=False, unique=True)
    state_abbr = Column(String(2), nullable=True)
    locality_num = Column(String(10), nullable=False)
    carrier_num = Column(String(5), nullable=True)
    county_name = Column(String(100), nullable=True)
    city_name = Column(String(100), nullable=True)
    effective_year = Column(Integer, nullable=False)
    source = Column(String(50), nullable=False, default="CMS ZIP-to-locality")
    source_file = Column(String(100), nullable=False)
    imported_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("idx_zip_locality", "locality_num"),
    )
