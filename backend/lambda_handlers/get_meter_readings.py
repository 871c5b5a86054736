# backend/lambda_handlers/get_meter_readings.py
"""
Lambda function to get reconciled hourly readings
Triggered by API Gateway
"""
import json
import logging
import os

from backend.lib.dynamodb_service import DynamoDBService
from backend.lib.meter_core.io import to_dict
from backend.lib.meter_core.processor import process_meter_readings
from backend.lib.meter_core.summary import summarize

logger = logging.getLogger()
logger.setLevel(os.getenv('LOG_LEVEL', 'INFO'))

db = DynamoDBService()


def lambda_handler(event, context):
    """
    Reconcile raw readings and return hourly records plus summaries.

    Query parameters:
    - meter_id: optional; without it the whole fleet is returned
    """
    logger.info(f"Received event: {json.dumps(event)}")

    try:
        params = event.get('queryStringParameters') or {}
        meter_id = params.get('meter_id')

        if meter_id:
            raw_readings = db.get_readings_for_meter(meter_id)
        else:
            raw_readings = db.get_all_readings()

        processed = process_meter_readings(raw_readings)

        if meter_id and not processed:
            return response(404, {'error': 'Meter not found', 'meterId': meter_id})

        summaries = summarize(processed)
        return response(200, {
            'meterId': meter_id,
            'fleetTotal': sum(r.consumption for r in processed),
            'totalIncidents': sum(s.incident_count for s in summaries),
            'meters': [to_dict(s) for s in summaries],
            'readings': [to_dict(r) for r in processed]
        })

    except Exception as e:
        logger.exception(f"Error: {e}")
        return response(500, {'error': str(e)})


def response(status_code: int, body: dict) -> dict:
    """Create API Gateway response."""
    return {
        'statusCode': status_code,
        'headers': {
            'Content-Type': 'application/json',
            'Access-Control-Allow-Origin': '*',
            'Access-Control-Allow-Methods': 'GET,POST,OPTIONS',
            'Access-Control-Allow-Headers': 'Content-Type'
        },
        'body': json.dumps(body)
    }
