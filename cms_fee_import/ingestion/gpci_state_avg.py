"""
GPCI state averages.

Benchmarks that only know a patient's state (not the locality) price against
the mean of that state's locality GPCIs. This recomputes the
``gpci_state_averages`` table from ``gpci_localities``; run it after every
GPCI import.
"""

from typing import Callable, Optional

import pandas as pd
import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from cms_fee_import.config import settings
from cms_fee_import.database import SessionLocal
from cms_fee_import.ingestion.normalizers import STATE_CODES, normalize_state_abbr
from cms_fee_import.ingestion.sink import SqlAlchemyUpsertStore, UpsertStore
from cms_fee_import.models.fee_schedules import GpciLocality
from cms_fee_import.schemas.imports import GpciStateAverageSummary

logger = structlog.get_logger(__name__)

GPCI_COLUMNS = ["work_gpci", "pe_gpci", "mp_gpci"]
TARGET_TABLE = "gpci_state_averages"
INVALID_EXAMPLE_LIMIT = 20


def load_localities(session_factory: Callable[[], Session] = SessionLocal) -> pd.DataFrame:
    query = select(
        GpciLocality.locality_num,
        GpciLocality.state_abbr,
        GpciLocality.work_gpci,
        GpciLocality.pe_gpci,
        GpciLocality.mp_gpci,
    )
    with session_factory() as session:
        rows = session.execute(query).all()
    return pd.DataFrame.from_records(
        [tuple(r) for r in rows],
        columns=["locality_num", "state_abbr", *GPCI_COLUMNS],
    )


def compute_state_averages(localities: pd.DataFrame) -> pd.DataFrame:
    """
    Average the three GPCIs per state.

    Rows whose state cannot be normalized (abbreviation or full name) or whose
    indices are missing or non-positive are left out.

    Returns:
        One row per state: ``state_abbr``, ``avg_work_gpci``, ``avg_pe_gpci``,
        ``avg_mp_gpci``, ``n_rows``, sorted by state.
    """
    df = localities.copy()
    df["state"] = df["state_abbr"].map(normalize_state_abbr)
    gpcis = df[GPCI_COLUMNS].apply(pd.to_numeric, errors="coerce")
    usable = df["state"].notna() & gpcis.gt(0).all(axis=1)

    used = df.loc[usable, ["state"]].join(gpcis.loc[usable])
    grouped = (
        used.groupby("state")
        .agg(
            avg_work_gpci=("work_gpci", "mean"),
            avg_pe_gpci=("pe_gpci", "mean"),
            avg_mp_gpci=("mp_gpci", "mean"),
            n_rows=("work_gpci", "size"),
        )
        .reset_index()
        .rename(columns={"state": "state_abbr"})
        .sort_values("state_abbr")
    )
    return grouped


def recompute_gpci_state_averages(
    session_factory: Callable[[], Session] = SessionLocal,
    store: Optional[UpsertStore] = None,
    dry_run: bool = False,
    min_expected_states: Optional[int] = None,
) -> GpciStateAverageSummary:
    min_expected = min_expected_states or settings.gpci_min_expected_states
    localities = load_localities(session_factory)
    total = len(localities)
    logger.info("gpci_state_avg_started", localities=total, dry_run=dry_run)

    if total == 0:
        return GpciStateAverageSummary(
            ok=False,
            status="error",
            message="No GPCI localities found; import GPCI data first",
            dry_run=dry_run,
        )

    states = localities["state_abbr"].map(normalize_state_abbr)
    invalid_state = states.isna()
    invalid_examples = (
        localities.loc[invalid_state, "state_abbr"].dropna().astype(str).unique().tolist()
    )[:INVALID_EXAMPLE_LIMIT]

    averages = compute_state_averages(localities)
    used = int(averages["n_rows"].sum()) if not averages.empty else 0
    records = [
        {
            "state_abbr": row.state_abbr,
            "avg_work_gpci": round(float(row.avg_work_gpci), 4),
            "avg_pe_gpci": round(float(row.avg_pe_gpci), 4),
            "avg_mp_gpci": round(float(row.avg_mp_gpci), 4),
            "n_rows": int(row.n_rows),
        }
        for row in averages.itertuples(index=False)
    ]

    if records and not dry_run:
        store = store or SqlAlchemyUpsertStore(session_factory)
        store.upsert(TARGET_TABLE, ("state_abbr",), records)

    computed = len(records)
    summary = dict(
        states_computed=computed,
        localities_read=total,
        localities_used=used,
        skipped_invalid_state=int(invalid_state.sum()),
        skipped_invalid_gpci=total - used - int(invalid_state.sum()),
        missing_states=sorted(STATE_CODES - {r["state_abbr"] for r in records}),
        invalid_state_examples=invalid_examples,
        dry_run=dry_run,
    )

    if computed == 0:
        logger.error("gpci_state_avg_empty", localities=total)
        return GpciStateAverageSummary(
            ok=False,
            status="error",
            message="No valid states could be computed; check state_abbr in gpci_localities",
            **summary,
        )
    if computed < min_expected:
        logger.warning("gpci_state_avg_incomplete", states=computed, expected_min=min_expected)
        return GpciStateAverageSummary(
            ok=True,
            status="warning",
            message=(
                f"GPCI state averages look incomplete: only {computed} states computed "
                f"(expected at least {min_expected})"
            ),
            **summary,
        )

    logger.info("gpci_state_avg_complete", states=computed, localities_used=used)
    return GpciStateAverageSummary(
        ok=True,
        status="success",
        message=f"Computed GPCI state averages for {computed} states",
        **summary,
    )
