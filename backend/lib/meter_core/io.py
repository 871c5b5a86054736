import csv
import json
import math
from dataclasses import asdict
from io import StringIO
from typing import Dict, List

from .models import RawReading
from .processor import parse_timestamp

# snake_case field -> camelCase key used in the dashboard JSON
_CAMEL_KEYS = {
    "meter_id": "meterId",
    "timestamp": "timestamp",
    "cumulative_volume": "cumulativeVolume",
    "hour": "hour",
    "consumption": "consumption",
    "flag": "flag",
    "total_consumption": "totalConsumption",
    "incident_count": "incidentCount",
    "status": "status",
    "last_reading": "lastReading",
    "normal_count": "normalCount",
    "gap_count": "gapCount",
    "reset_count": "resetCount",
}


def _make_reading(meter_id, timestamp, volume, row) -> RawReading:
    if meter_id in (None, "") or timestamp in (None, "") or volume in (None, ""):
        raise ValueError(f"Missing field in row: {row}")
    # raises ValueError on an unparsable timestamp; the raw string is what gets stored
    parse_timestamp(str(timestamp))
    volume = float(volume)
    if not math.isfinite(volume):
        raise ValueError(f"cumulative_volume must be a finite number: {row}")
    if volume < 0:
        raise ValueError("cumulative_volume must be >= 0")
    return RawReading(meter_id=str(meter_id), timestamp=str(timestamp), cumulative_volume=volume)


def parse_csv_string(csv_text: str) -> List[RawReading]:
    """
    Parse CSV text with header: meter_id,timestamp,cumulative_volume
    Timestamp should be ISO8601, e.g. 2025-02-05T08:02:00Z and is kept as-is.
    """
    f = StringIO(csv_text.strip())
    reader = csv.DictReader(f)
    readings = []
    for row in reader:
        readings.append(_make_reading(
            row.get("meter_id"), row.get("timestamp"), row.get("cumulative_volume"), row
        ))
    return readings


def parse_json_string(json_text: str) -> List[RawReading]:
    """
    Parse a JSON array of raw readings. Both the dashboard's camelCase keys
    (meterId, timestamp, cumulativeVolume) and snake_case keys are accepted.
    """
    rows = json.loads(json_text)
    if not isinstance(rows, list):
        raise ValueError("Expected a JSON array of readings")

    readings = []
    for row in rows:
        if not isinstance(row, dict):
            raise ValueError(f"Invalid reading: {row}")
        readings.append(_make_reading(
            row.get("meterId", row.get("meter_id")),
            row.get("timestamp"),
            row.get("cumulativeVolume", row.get("cumulative_volume")),
            row,
        ))
    return readings


def parse_upload(filename: str, text: str) -> List[RawReading]:
    name = (filename or "").lower()
    if name.endswith(".json"):
        return parse_json_string(text)
    if name.endswith(".csv"):
        return parse_csv_string(text)
    raise ValueError(f"Unsupported file type: {filename}")


def to_dict(record) -> Dict:
    """Serialize a RawReading, ProcessedReading, MeterSummary or FlagBreakdown with camelCase keys."""
    return {_CAMEL_KEYS[k]: v for k, v in asdict(record).items()}


def raw_reading_from_dict(obj: Dict) -> RawReading:
    """Inverse of to_dict for raw readings; used by the JSON-lines store."""
    return RawReading(
        meter_id=obj["meterId"],
        timestamp=obj["timestamp"],
        cumulative_volume=float(obj["cumulativeVolume"]),
    )
