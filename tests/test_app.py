import io
import pathlib

import pytest

import backend.app as app_module

DATA_FILE = pathlib.Path(__file__).parent.parent / "backend" / "data" / "readings.json"


@pytest.fixture
def client(tmp_path, monkeypatch):
    monkeypatch.setattr(app_module, "READINGS_FILE", tmp_path / "readings.jsonl")
    monkeypatch.setattr(app_module, "USE_DYNAMODB", False)
    app_module.app.config["TESTING"] = True
    with app_module.app.test_client() as c:
        yield c


def upload(client, content: bytes, filename: str):
    return client.post(
        "/upload",
        data={"file": (io.BytesIO(content), filename)},
        content_type="multipart/form-data",
    )


@pytest.fixture
def loaded_client(client):
    resp = upload(client, DATA_FILE.read_bytes(), "readings.json")
    assert resp.status_code == 202
    return client


def test_overview_empty(client):
    resp = client.get("/overview")
    assert resp.status_code == 200
    assert resp.get_json() == {
        "fleetTotal": 0,
        "totalIncidents": 0,
        "meterCount": 0,
        "meters": [],
    }


def test_upload_reports_counts(client):
    resp = upload(client, DATA_FILE.read_bytes(), "readings.json")
    body = resp.get_json()
    assert resp.status_code == 202
    # duplicates are stored as-is and removed when reconciling
    assert body["processedCount"] == 10
    assert body["storedCount"] == 10


def test_upload_without_file(client):
    resp = client.post("/upload", data={}, content_type="multipart/form-data")
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "No file uploaded"


def test_upload_invalid_content(client):
    resp = upload(client, b"meter_id,timestamp,cumulative_volume\nMTR-001,,5\n", "bad.csv")
    assert resp.status_code == 400

    resp = upload(client, b"not json", "bad.json")
    assert resp.status_code == 400

    resp = upload(client, b"whatever", "readings.txt")
    assert resp.status_code == 400


def test_upload_with_bad_timestamp_is_rejected_and_not_stored(loaded_client):
    resp = upload(loaded_client, b"meter_id,timestamp,cumulative_volume\nMTR-001,yesterday,2\n", "bad.csv")
    assert resp.status_code == 400
    assert "yesterday" in resp.get_json()["error"]

    resp = loaded_client.get("/overview")
    assert resp.status_code == 200
    assert resp.get_json()["meterCount"] == 3
    assert loaded_client.get("/readings").status_code == 200


def test_overview(loaded_client):
    body = loaded_client.get("/").get_json()
    assert body["fleetTotal"] == pytest.approx(495)
    assert body["totalIncidents"] == 8
    assert body["meterCount"] == 3
    assert [m["meterId"] for m in body["meters"]] == ["MTR-001", "MTR-002", "MTR-003"]
    assert body["meters"][0]["status"] == "has_incidents"


def test_list_meters(loaded_client):
    body = loaded_client.get("/meters").get_json()
    assert len(body["meters"]) == 3


def test_meter_detail(loaded_client):
    resp = loaded_client.get("/meters/MTR-001")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["meterId"] == "MTR-001"
    assert body["breakdown"] == {
        "totalConsumption": pytest.approx(150),
        "normalCount": 1,
        "gapCount": 2,
        "resetCount": 1,
    }
    assert [r["flag"] for r in body["readings"]] == [
        "normal", "gap_estimated", "gap_estimated", "counter_reset"
    ]


def test_meter_detail_not_found(loaded_client):
    # MTR-004 has a single reading
    assert loaded_client.get("/meters/MTR-004").status_code == 404
    assert loaded_client.get("/meters/unknown").get_json() == {"error": "Meter not found"}


def test_readings(loaded_client):
    body = loaded_client.get("/readings").get_json()
    keys = [(r["hour"], r["meterId"]) for r in body["readings"]]
    assert len(keys) == 9
    assert keys == sorted(keys)

    body = loaded_client.get("/readings?meter_id=MTR-003").get_json()
    assert body["readings"] == [{
        "meterId": "MTR-003",
        "hour": "2025-02-05T13:00:00Z",
        "consumption": 45.0,
        "flag": "counter_reset",
    }]


def test_csv_upload_adds_to_store(client):
    upload(client, b"meter_id,timestamp,cumulative_volume\nMTR-001,2025-02-05T08:02:00Z,10000\n", "a.csv")
    upload(client, b"meter_id,timestamp,cumulative_volume\nMTR-001,2025-02-05T09:05:00Z,10045\n", "b.csv")

    body = client.get("/readings").get_json()
    assert body["readings"] == [{
        "meterId": "MTR-001",
        "hour": "2025-02-05T08:00:00Z",
        "consumption": 45.0,
        "flag": "normal",
    }]


def test_dynamodb_status(client):
    assert client.get("/dynamodb/status").get_json()["dynamodbEnabled"] is False
