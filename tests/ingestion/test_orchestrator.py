"""
Import orchestrator tests.

End-to-end runs through row source, header detection, transformer and sink
against the in-memory database, plus the run-level failure envelopes.
"""

import asyncio

import pytest
from sqlalchemy import select

from cms_fee_import.config import Settings
from cms_fee_import.ingestion.datasets import DatasetType
from cms_fee_import.ingestion.orchestrator import ImportOrchestrator, ImportRequest, is_csv_upload
from cms_fee_import.models import DmeposFeeSchedule, ImportLog, OppsAddendumB, ZipToLocality

OPPS_CSV = b"HCPCS,Payment Rate\n99284,125.50\nbad!!,10\n,5\n"


class FlakyStore:
    """Store whose N-th upsert call fails."""

    def __init__(self, fail_call):
        self.fail_call = fail_call
        self.calls = 0

    def upsert(self, table, key_columns, rows):
        self.calls += 1
        if self.calls == self.fail_call:
            raise RuntimeError("connection reset by peer")
        return len(rows)

    def count(self, table):
        return 0


def opps_request(content=OPPS_CSV, **kwargs):
    return ImportRequest(dataset=DatasetType.OPPS, content=content, file_name="addendum_b.csv", **kwargs)


# ============================================================================
# Happy paths
# ============================================================================

@pytest.mark.integration
@pytest.mark.asyncio
async def test_csv_import_end_to_end(orchestrator, db_session):
    response = await orchestrator.run(opps_request())
    payload = response.to_payload()

    assert response.ok is True
    assert response.status_code == 200
    assert payload["message"] == "Imported 1 opps records (2 rows skipped)"

    details = payload["details"]
    assert details["totalRowsRead"] == 3
    assert details["validRows"] == 1
    assert details["imported"] == 1
    assert details["skipped"] == 2
    assert details["skippedReasons"] == {"invalid_code": 1, "missing_code": 1}
    assert details["headerRowIndex"] == 0
    assert details["columnsDetected"] == ["hcpcs", "payment_rate"]
    assert details["sampleCodes"] == ["99284"]
    assert details["batchesCompleted"] == 1
    assert "sheetName" not in details

    row = db_session.execute(select(OppsAddendumB)).scalar_one()
    assert row.hcpcs == "99284"
    assert row.payment_rate == 125.5
    assert row.year == 2025
    assert row.source_file == "opps_addendum_b_2025"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_reimport_is_idempotent(orchestrator, store):
    first = await orchestrator.run(opps_request(year=2026))
    second = await orchestrator.run(opps_request(year=2026))

    assert first.ok and second.ok
    assert first.details.imported == second.details.imported == 1
    assert store.count("opps_addendum_b") == 1


@pytest.mark.asyncio
async def test_large_import_yields_to_event_loop(store):
    rows = b"".join(b"%05d,1.00\n" % code for code in range(10000, 30000))
    orchestrator = ImportOrchestrator(store=store)
    ticks = 0

    async def ticker():
        nonlocal ticks
        while True:
            ticks += 1
            await asyncio.sleep(0)

    task = asyncio.create_task(ticker())
    try:
        response = await orchestrator.run(opps_request(b"HCPCS,Payment Rate\n" + rows, dry_run=True))
    finally:
        task.cancel()

    assert response.ok is True
    assert response.details.valid_rows == 20000
    # A dry run never touches the store, so every tick happened while parsing
    assert ticks > 10


@pytest.mark.integration
@pytest.mark.asyncio
async def test_dry_run_matches_live_run_without_writing(orchestrator, store):
    dry = (await orchestrator.run(opps_request(dry_run=True))).to_payload()

    assert dry["ok"] is True
    assert dry["message"] == "Validated 1 opps records (2 rows skipped)"
    assert dry["details"]["imported"] == 0
    assert dry["details"]["dryRun"] is True
    assert store.count("opps_addendum_b") == 0

    live = (await orchestrator.run(opps_request())).to_payload()
    for key in ("totalRowsRead", "validRows", "skipped", "skippedReasons", "sampleCodes"):
        assert dry["details"][key] == live["details"][key]


@pytest.mark.integration
@pytest.mark.asyncio
async def test_spreadsheet_wide_state_import(orchestrator, db_session, xlsx_bytes):
    content = xlsx_bytes({
        "Read Me": [["About this file"]],
        "DMEPOS26_JAN": [
            ["2026 DMEPOS Fee Schedule"],
            [],
            ["HCPCS", "Mod", "Mod2", "Ceiling", "Floor", "CA (NR)", "CA (R)", "NY (NR)", "NY (R)"],
            ["E0114", "NU", None, 150, 100, 120, None, 95.5, None],
            ["E0260", "RR", None, None, None, None, 45.1, None, None],
        ],
    })
    request = ImportRequest(dataset=DatasetType.DMEPOS, content=content, file_name="DMEPOS26.xlsx")

    payload = (await orchestrator.run(request)).to_payload()

    assert payload["ok"] is True
    details = payload["details"]
    assert details["sheetName"] == "DMEPOS26_JAN"
    assert details["headerRowIndex"] == 2
    assert details["totalRowsRead"] == 2
    assert details["validRows"] == 3
    assert details["imported"] == 3

    rows = db_session.execute(
        select(DmeposFeeSchedule).order_by(DmeposFeeSchedule.hcpcs, DmeposFeeSchedule.state_abbr)
    ).scalars().all()
    assert [(r.hcpcs, r.state_abbr, r.fee, r.fee_rental) for r in rows] == [
        ("E0114", "CA", 120.0, None),
        ("E0114", "NY", 95.5, None),
        ("E0260", "CA", None, 45.1),
    ]
    assert rows[0].source_file == "DMEPOS26"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_zip_crosswalk_reports_sample_rows(orchestrator, db_session, csv_bytes):
    content = csv_bytes([
        "STATE,ZIP CODE,CARRIER,LOCALITY,YEAR/QTR",
        "NJ,07001,12402,01,20261",
        "NJ,07001,12402,99,20261",
    ])
    request = ImportRequest(dataset=DatasetType.ZIP_CROSSWALK, content=content, file_name="zip.csv")

    payload = (await orchestrator.run(request)).to_payload()

    assert payload["ok"] is True
    assert "sampleCodes" not in payload["details"]
    assert payload["details"]["sampleRows"][0]["zip5"] == "07001"
    assert payload["details"]["skippedReasons"] == {"duplicate_zip": 1}
    row = db_session.execute(select(ZipToLocality)).scalar_one()
    assert row.locality_num == "01"


@pytest.mark.integration
@pytest.mark.asyncio
async def test_runs_are_logged(orchestrator, db_session):
    await orchestrator.run(opps_request(dry_run=True))
    await orchestrator.run(opps_request(content=None))

    logs = db_session.execute(select(ImportLog).order_by(ImportLog.id)).scalars().all()
    assert [(log.status, log.dry_run, log.valid_rows) for log in logs] == [
        ("success", True, 1),
        ("failed", False, 0),
    ]
    assert logs[1].error_code == "NO_FILE"


# ============================================================================
# Failures
# ============================================================================

@pytest.mark.negative
@pytest.mark.asyncio
async def test_batch_failure_is_partial_import():
    orchestrator = ImportOrchestrator(
        store=FlakyStore(fail_call=2),
        settings=Settings(import_batch_size=1),
    )
    content = b"HCPCS,Payment Rate\n99281,10\n99282,20\n99283,30\n"

    response = await orchestrator.run(opps_request(content=content))
    payload = response.to_payload()

    assert response.ok is False
    assert response.status_code == 400
    assert payload["errorCode"] == "PARTIAL_IMPORT"
    assert payload["details"]["imported"] == 2
    assert payload["details"]["batchesCompleted"] == 3
    assert payload["details"]["batchErrors"] == ["Batch 2: connection reset by peer"]


@pytest.mark.negative
@pytest.mark.asyncio
async def test_missing_file(orchestrator):
    payload = (await orchestrator.run(opps_request(content=None))).to_payload()
    assert payload["ok"] is False
    assert payload["errorCode"] == "NO_FILE"


@pytest.mark.negative
@pytest.mark.asyncio
async def test_spreadsheet_over_size_limit(store, xlsx_bytes):
    orchestrator = ImportOrchestrator(store=store, settings=Settings(max_spreadsheet_bytes=10))
    content = xlsx_bytes({"Addendum B": [["HCPCS"], ["99284"]]})
    request = ImportRequest(dataset=DatasetType.OPPS, content=content, file_name="addb.xlsx")

    payload = (await orchestrator.run(request)).to_payload()

    assert payload["errorCode"] == "FILE_TOO_LARGE"
    assert payload["details"]["maxBytes"] == 10


@pytest.mark.negative
@pytest.mark.asyncio
async def test_unreadable_spreadsheet(orchestrator):
    request = ImportRequest(dataset=DatasetType.OPPS, content=b"not a zip", file_name="addb.xlsx")
    payload = (await orchestrator.run(request)).to_payload()
    assert payload["errorCode"] == "XLSX_PARSE_FAILED"


@pytest.mark.negative
@pytest.mark.asyncio
async def test_header_not_found(orchestrator, store):
    content = b"Code,Rate\n99284,10\n"
    payload = (await orchestrator.run(opps_request(content=content))).to_payload()

    assert payload["errorCode"] == "OPPS_PARSE_FAILED"
    assert payload["details"]["sampleRows"] == [["Code", "Rate"], ["99284", "10"]]
    assert store.count("opps_addendum_b") == 0


@pytest.mark.negative
@pytest.mark.asyncio
async def test_no_valid_rows(orchestrator, store):
    content = b"Banner\nHCPCS,Payment Rate\nbad!!,10\n"
    response = await orchestrator.run(opps_request(content=content))
    payload = response.to_payload()

    assert response.ok is False
    assert payload["errorCode"] == "OPPS_PARSE_FAILED"
    assert payload["details"]["skippedReasons"] == {"invalid_code": 1}
    assert payload["details"]["sampleRows"][1] == ["HCPCS", "Payment Rate"]
    assert store.count("opps_addendum_b") == 0


# ============================================================================
# Self-test and upload sniffing
# ============================================================================

@pytest.mark.asyncio
async def test_self_test(orchestrator):
    response = await orchestrator.run(ImportRequest(dataset=DatasetType.SELF_TEST))
    assert response.ok is True
    assert response.details == {"table": "mpfs_benchmarks", "rowCount": 0}


@pytest.mark.negative
@pytest.mark.asyncio
async def test_self_test_without_store():
    response = await ImportOrchestrator().run(ImportRequest(dataset=DatasetType.SELF_TEST))
    assert response.ok is False
    assert response.error_code == "DB_CONNECTION_FAILED"
    assert response.status_code == 500


@pytest.mark.parametrize("name,content,expected", [
    ("fees.CSV", b"PK\x03\x04", True),
    ("fees.xlsx", b"HCPCS,Rate", False),
    (None, b"HCPCS,Rate", True),
    (None, b"PK\x03\x04rest", False),
])
def test_is_csv_upload(name, content, expected):
    assert is_csv_upload(name, content) is expected
