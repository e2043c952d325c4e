"""
Admin import API tests.

Exercises the multipart and JSON request forms, the error envelope, import
history and the GPCI state-average trigger.
"""

import pytest
from fastapi.testclient import TestClient

from cms_fee_import.main import app
from cms_fee_import.routers.admin_import import get_orchestrator

OPPS_CSV = b"HCPCS,Payment Rate\n99284,125.50\nbad!!,10\n,5\n"

pytestmark = pytest.mark.api


@pytest.fixture
def override_orchestrator():
    def _override(orchestrator):
        app.dependency_overrides[get_orchestrator] = lambda: orchestrator

    yield _override
    app.dependency_overrides.pop(get_orchestrator, None)


def upload(client, data_type="opps", content=OPPS_CSV, file_name="addendum_b.csv", **form):
    return client.post(
        "/admin/import",
        data={"dataType": data_type, **form},
        files={"file": (file_name, content, "text/csv")},
    )


@pytest.mark.integration
def test_multipart_upload_imports_file(client: TestClient):
    response = upload(client, year="2026")

    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True
    assert body["message"] == "Imported 1 opps records (2 rows skipped)"
    assert body["details"]["validRows"] == 1
    assert body["details"]["imported"] == 1
    assert body["details"]["skippedReasons"] == {"invalid_code": 1, "missing_code": 1}


@pytest.mark.integration
def test_multipart_dry_run(client: TestClient):
    response = upload(client, dryRun="true")

    body = response.json()
    assert response.status_code == 200
    assert body["details"]["dryRun"] is True
    assert body["details"]["imported"] == 0


def test_json_self_test(client: TestClient):
    response = client.post("/admin/import", json={"dataType": "self-test"})

    assert response.status_code == 200
    assert response.json()["ok"] is True
    assert response.json()["details"]["table"] == "mpfs_benchmarks"


@pytest.mark.negative
def test_unknown_data_type(client: TestClient):
    response = client.post("/admin/import", json={"dataType": "rvu"})

    assert response.status_code == 400
    body = response.json()
    assert body["ok"] is False
    assert body["errorCode"] == "INVALID_DATA_TYPE"


@pytest.mark.negative
def test_invalid_year(client: TestClient):
    response = upload(client, year="twenty")
    assert response.status_code == 400
    assert response.json()["errorCode"] == "INVALID_YEAR"


@pytest.mark.negative
def test_form_without_file(client: TestClient):
    response = client.post("/admin/import", data={"dataType": "gpci"})
    assert response.status_code == 400
    assert response.json()["errorCode"] == "NO_FILE"


@pytest.mark.negative
def test_body_that_is_neither_json_nor_form(client: TestClient):
    response = client.post(
        "/admin/import", content=b"dataType=opps;", headers={"content-type": "text/plain"}
    )
    assert response.status_code == 400
    assert response.json()["errorCode"] == "INVALID_REQUEST"


@pytest.mark.negative
def test_header_not_found_envelope(client: TestClient):
    response = upload(client, data_type="zip-crosswalk", content=b"foo,bar\n1,2\n", file_name="zip.csv")

    assert response.status_code == 400
    body = response.json()
    assert body["errorCode"] == "ZIP_CROSSWALK_PARSE_FAILED"
    assert body["details"]["sampleRows"] == [["foo", "bar"], ["1", "2"]]


@pytest.mark.negative
def test_unexpected_error_is_internal_error(client: TestClient, override_orchestrator):
    class BrokenOrchestrator:
        async def run(self, request):
            raise RuntimeError("boom")

    override_orchestrator(BrokenOrchestrator())

    response = client.post("/admin/import", json={"dataType": "opps"})

    assert response.status_code == 500
    assert response.json()["errorCode"] == "INTERNAL_ERROR"
    assert "boom" not in response.json()["message"]


@pytest.mark.integration
def test_import_logs_newest_first(client: TestClient):
    upload(client, dryRun="true")
    upload(client, data_type="gpci", content=b"nothing here\n", file_name="gpci.csv")

    logs = client.get("/admin/import-logs").json()
    assert [(e["datasetName"], e["status"]) for e in logs] == [
        ("gpci", "failed"),
        ("opps", "success"),
    ]
    assert logs[0]["errorCode"] == "GPCI_PARSE_FAILED"
    assert logs[1]["dryRun"] is True
    assert logs[1]["validRows"] == 1

    filtered = client.get("/admin/import-logs", params={"dataset": "opps"}).json()
    assert len(filtered) == 1


@pytest.mark.integration
def test_gpci_import_then_state_averages(client: TestClient):
    gpci_csv = (
        b"State,Locality Number,Locality Name,PW GPCI,PE GPCI,MP GPCI\n"
        b"CA,18,Los Angeles,1.046,1.217,0.683\n"
        b"CA,26,Anaheim,1.040,1.195,0.658\n"
        b"NY,01,Manhattan,1.094,1.389,1.781\n"
    )
    assert upload(client, data_type="gpci", content=gpci_csv, file_name="gpci.csv").json()["ok"]

    response = client.post("/admin/gpci/state-averages", params={"dryRun": "true"})

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "warning"
    assert body["statesComputed"] == 2
    assert body["localitiesUsed"] == 3
    assert body["dryRun"] is True


@pytest.mark.negative
def test_state_averages_without_gpci_data(client: TestClient):
    response = client.post("/admin/gpci/state-averages")

    assert response.status_code == 400
    assert response.json()["status"] == "error"
