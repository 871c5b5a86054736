"""
=============================================================================
METER TELEMETRY - FLASK API
=============================================================================
JSON API over the meter reconciliation core. Every request reloads the raw
cumulative-volume readings and reconciles them again; nothing processed is
stored.

Endpoints:
- GET  /  or /overview       fleet total, incident count, per-meter summaries
- GET  /meters               per-meter summaries
- GET  /meters/<meter_id>    hourly records and flag breakdown for one meter
- GET  /readings             all hourly records (optional ?meter_id=)
- POST /upload               add raw readings from a CSV or JSON file
- GET  /dynamodb/status      which storage backend is active

How to run:
    python -m backend.app

Then visit: http://127.0.0.1:5000/overview
=============================================================================
"""

import json
import logging
import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv
from flask import Flask, jsonify, request

from backend.lib.logging_config import setup_logging
from backend.lib.meter_core.io import parse_upload, raw_reading_from_dict, to_dict
from backend.lib.meter_core.models import RawReading
from backend.lib.meter_core.processor import process_meter_readings
from backend.lib.meter_core.summary import calculate_flag_breakdown, summarize

# Must run before any os.getenv below
load_dotenv()

setup_logging(os.getenv('LOG_LEVEL', 'INFO'), os.getenv('LOG_FORMAT', 'text'))
logger = logging.getLogger(__name__)

# =============================================================================
# STORAGE
# =============================================================================
# Raw readings live either in DynamoDB or in a local JSON Lines file.
# If DynamoDB cannot be initialised we fall back to the local file.

USE_DYNAMODB = os.getenv('USE_DYNAMODB', 'false').lower() == 'true'
dynamodb_service = None

if USE_DYNAMODB:
    try:
        from backend.lib.dynamodb_service import DynamoDBService
        dynamodb_service = DynamoDBService()
        dynamodb_service.create_table_if_not_exists()
        logger.info("DynamoDB storage enabled")
    except Exception as e:
        logger.warning(f"DynamoDB initialization failed: {e}. Using local storage.")
        USE_DYNAMODB = False

# One raw reading per line, appended by /upload
READINGS_FILE = Path(os.getenv('READINGS_FILE', 'backend/data/readings.jsonl'))

app = Flask(__name__)


def load_all_readings() -> List[RawReading]:
    """
    Load every raw reading from the active store.

    Duplicates are returned as stored; the reconciler removes them.
    """
    if USE_DYNAMODB and dynamodb_service:
        return dynamodb_service.get_all_readings()

    if not READINGS_FILE.exists():
        return []

    readings = []
    with READINGS_FILE.open("r", encoding="utf-8") as f:
        for line in f:
            if line.strip():
                readings.append(raw_reading_from_dict(json.loads(line)))
    return readings


def store_readings(readings: List[RawReading]) -> int:
    """Append raw readings to the active store. Returns the number written."""
    if USE_DYNAMODB and dynamodb_service:
        return dynamodb_service.put_readings_batch(readings)

    READINGS_FILE.parent.mkdir(parents=True, exist_ok=True)
    with READINGS_FILE.open("a", encoding="utf-8") as f:
        for r in readings:
            f.write(json.dumps(to_dict(r)) + "\n")
    return len(readings)


# =============================================================================
# API ROUTES
# =============================================================================

@app.route("/")
@app.route("/overview")
def overview():
    """
    Fleet overview.

    Example Response:
        {
            "fleetTotal": 1234.5,
            "totalIncidents": 3,
            "meterCount": 2,
            "meters": [{"meterId": "MTR-001", "totalConsumption": 45.0, ...}]
        }
    """
    processed = process_meter_readings(load_all_readings())
    summaries = summarize(processed)

    return jsonify({
        "fleetTotal": sum(r.consumption for r in processed),
        "totalIncidents": sum(s.incident_count for s in summaries),
        "meterCount": len(summaries),
        "meters": [to_dict(s) for s in summaries]
    })


@app.route("/meters", methods=["GET"])
def list_meters():
    summaries = summarize(process_meter_readings(load_all_readings()))
    return jsonify({"meters": [to_dict(s) for s in summaries]})


@app.route("/meters/<meter_id>", methods=["GET"])
def meter_detail(meter_id):
    """
    Hourly records for one meter plus counts per flag.

    Returns 404 when the meter produced no records (unknown meter, or fewer
    than two readings).
    """
    processed = process_meter_readings(load_all_readings())
    readings = [r for r in processed if r.meter_id == meter_id]

    if not readings:
        return jsonify({"error": "Meter not found"}), 404

    return jsonify({
        "meterId": meter_id,
        "breakdown": to_dict(calculate_flag_breakdown(readings)),
        "readings": [to_dict(r) for r in readings]
    })


@app.route("/readings", methods=["GET"])
def get_readings():
    """
    Query Parameters:
        meter_id (optional): only return records for this meter
    """
    processed = process_meter_readings(load_all_readings())

    meter_id = request.args.get("meter_id")
    if meter_id:
        processed = [r for r in processed if r.meter_id == meter_id]

    return jsonify({"readings": [to_dict(r) for r in processed]})


@app.route("/upload", methods=["POST"])
def upload():
    """
    Add raw readings from an uploaded file.

    Accepted formats:
        CSV  (.csv):  meter_id,timestamp,cumulative_volume
        JSON (.json): [{"meterId": ..., "timestamp": ..., "cumulativeVolume": ...}]

    HTTP Status Codes:
        202: Accepted
        400: No file, unsupported type, or invalid content
    """
    if "file" not in request.files:
        return jsonify({"error": "No file uploaded"}), 400

    file = request.files["file"]

    try:
        content = file.read().decode("utf-8")
        readings = parse_upload(file.filename, content)
    except ValueError as e:
        logger.warning(f"Rejected upload {file.filename}: {e}")
        return jsonify({"error": str(e)}), 400

    stored_count = store_readings(readings)
    logger.info(f"Stored {stored_count} readings from {file.filename}")

    return jsonify({
        "uploadId": file.filename,
        "processedCount": len(readings),
        "storedCount": stored_count
    }), 202


@app.route("/dynamodb/status", methods=["GET"])
def dynamodb_status():
    return jsonify({
        "dynamodbEnabled": USE_DYNAMODB,
        "tableName": dynamodb_service.table_name if dynamodb_service else None
    })


if __name__ == "__main__":
    app.run(debug=os.getenv('FLASK_DEBUG', 'false').lower() == 'true')
