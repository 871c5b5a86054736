import pathlib

import pytest

from backend.lib.meter_core.io import (
    parse_csv_string,
    parse_json_string,
    parse_upload,
    raw_reading_from_dict,
    to_dict,
)
from backend.lib.meter_core.models import MeterSummary, ProcessedReading, RawReading


def test_parse_sample_csv():
    p = pathlib.Path(__file__).parent / "sample.csv"
    readings = parse_csv_string(p.read_text())
    assert len(readings) == 4
    assert readings[0].meter_id == "MTR-001"
    assert readings[0].timestamp == "2025-02-05T08:02:00Z"
    assert readings[0].cumulative_volume == 10000.0


def test_csv_missing_field():
    with pytest.raises(ValueError):
        parse_csv_string("meter_id,timestamp,cumulative_volume\nMTR-001,,10\n")


def test_csv_negative_volume():
    with pytest.raises(ValueError):
        parse_csv_string("meter_id,timestamp,cumulative_volume\nMTR-001,2025-02-05T08:02:00Z,-1\n")


def test_csv_unparsable_timestamp():
    with pytest.raises(ValueError):
        parse_csv_string("meter_id,timestamp,cumulative_volume\nMTR-001,yesterday,2\n")


def test_json_unparsable_timestamp():
    with pytest.raises(ValueError):
        parse_json_string('[{"meterId": "MTR-001", "timestamp": "2025-13-40T08:00:00Z", "cumulativeVolume": 1}]')


def test_timestamp_kept_as_raw_string():
    readings = parse_csv_string("meter_id,timestamp,cumulative_volume\nMTR-001,2025-02-05T10:30:00+01:00,2\n")
    assert readings[0].timestamp == "2025-02-05T10:30:00+01:00"


@pytest.mark.parametrize("volume", ["nan", "inf", "-inf", "NaN"])
def test_csv_non_finite_volume(volume):
    with pytest.raises(ValueError):
        parse_csv_string(f"meter_id,timestamp,cumulative_volume\nMTR-001,2025-02-05T08:02:00Z,{volume}\n")


def test_json_non_finite_volume():
    with pytest.raises(ValueError):
        parse_json_string('[{"meterId": "MTR-001", "timestamp": "2025-02-05T08:02:00Z", "cumulativeVolume": NaN}]')


def test_parse_json_camel_and_snake_case():
    readings = parse_json_string(
        '[{"meterId": "MTR-001", "timestamp": "2025-02-05T08:02:00Z", "cumulativeVolume": 10000},'
        ' {"meter_id": "MTR-002", "timestamp": "2025-02-05T09:00:00Z", "cumulative_volume": 0}]'
    )
    assert readings == [
        RawReading("MTR-001", "2025-02-05T08:02:00Z", 10000.0),
        RawReading("MTR-002", "2025-02-05T09:00:00Z", 0.0),
    ]


def test_parse_json_rejects_non_array():
    with pytest.raises(ValueError):
        parse_json_string('{"meterId": "MTR-001"}')


def test_parse_upload_dispatches_on_extension():
    csv_text = "meter_id,timestamp,cumulative_volume\nMTR-001,2025-02-05T08:02:00Z,5\n"
    assert len(parse_upload("readings.CSV", csv_text)) == 1
    assert len(parse_upload("readings.json", "[]")) == 0
    with pytest.raises(ValueError):
        parse_upload("readings.xlsx", "")


def test_to_dict_uses_camel_case():
    assert to_dict(ProcessedReading("MTR-001", "2025-02-05T08:00:00Z", 45.0, "normal")) == {
        "meterId": "MTR-001",
        "hour": "2025-02-05T08:00:00Z",
        "consumption": 45.0,
        "flag": "normal",
    }
    summary = to_dict(MeterSummary("MTR-001", 1.5, 2, "has_incidents", "2025-02-05T08:00:00Z"))
    assert summary["totalConsumption"] == 1.5
    assert summary["incidentCount"] == 2
    assert summary["lastReading"] == "2025-02-05T08:00:00Z"


def test_raw_reading_from_dict_inverts_to_dict():
    reading = RawReading("MTR-001", "2025-02-05T08:02:00Z", 12.5)
    assert raw_reading_from_dict(to_dict(reading)) == reading
