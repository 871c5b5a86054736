# backend/lambda_handlers/process_upload.py
"""
Lambda function to ingest raw reading files from S3
Triggered when a new CSV or JSON file is uploaded to the S3 bucket
"""
import json
import logging
import os
from datetime import datetime, timezone
from decimal import Decimal
from urllib.parse import unquote_plus

import boto3

from backend.lib.meter_core.io import parse_upload
from backend.lib.meter_core.processor import drop_duplicate_readings

logger = logging.getLogger()
logger.setLevel(os.getenv('LOG_LEVEL', 'INFO'))

s3_client = boto3.client('s3')
dynamodb = boto3.resource('dynamodb')

TABLE_NAME = os.getenv('DYNAMODB_TABLE_NAME', 'MeterReadings')


def lambda_handler(event, context):
    """
    Parse the uploaded file and store its raw readings in DynamoDB.

    Triggered by S3 PUT event.
    """
    logger.info(f"Received event: {json.dumps(event)}")

    try:
        bucket = event['Records'][0]['s3']['bucket']['name']
        key = unquote_plus(event['Records'][0]['s3']['object']['key'])

        logger.info(f"Processing file: s3://{bucket}/{key}")

        obj = s3_client.get_object(Bucket=bucket, Key=key)
        content = obj['Body'].read().decode('utf-8')

        readings = parse_upload(key, content)
        logger.info(f"Parsed {len(readings)} readings")

        table = dynamodb.Table(TABLE_NAME)
        stored_count = 0
        processed_at = datetime.now(timezone.utc).isoformat()

        # first reading per (meter_id, timestamp) wins, as in the reconciler
        with table.batch_writer() as batch:
            for reading in drop_duplicate_readings(readings):
                batch.put_item(Item={
                    'meter_id': reading.meter_id,
                    'timestamp': reading.timestamp,
                    'cumulative_volume': Decimal(str(reading.cumulative_volume)),
                    'source_file': key,
                    'created_at': processed_at
                })
                stored_count += 1

        return {
            'statusCode': 200,
            'body': json.dumps({
                'message': 'Successfully processed upload',
                'file': key,
                'readingsCount': len(readings),
                'storedCount': stored_count
            })
        }

    except Exception as e:
        logger.exception(f"Error processing file: {e}")
        return {
            'statusCode': 500,
            'body': json.dumps({
                'error': str(e)
            })
        }
