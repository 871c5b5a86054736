"""
=============================================================================
DYNAMODB SERVICE - Raw meter reading storage
=============================================================================
Stores raw cumulative-volume readings so that the reconciler can be rerun
over the whole fleet on every request. Processed (hourly) records are never
stored; they are recomputed from these rows.

Table Schema:
-------------
Table: MeterReadings
- meter_id (String)          - Partition Key - one partition per meter
- timestamp (String)         - Sort Key      - raw ISO-8601 reading time
- cumulative_volume (Number) - lifetime counter value at `timestamp`
- created_at (String)        - when the row was written

Because (meter_id, timestamp) is the primary key, uploading a reading that
is already stored overwrites the row instead of adding a duplicate. Within
one batch the first occurrence of a key is the one written.

Example Item:
{
    "meter_id": "MTR-001",
    "timestamp": "2025-02-05T08:02:00Z",
    "cumulative_volume": 10000,
    "created_at": "2025-02-06T10:30:00+00:00"
}
=============================================================================
"""

import logging
import os
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

import boto3
from boto3.dynamodb.conditions import Key
from botocore.exceptions import ClientError

from backend.lib.meter_core.models import RawReading
from backend.lib.meter_core.processor import drop_duplicate_readings

logger = logging.getLogger(__name__)


class DynamoDBService:
    """
    Reads and writes raw meter readings in DynamoDB.

    Usage:
        db = DynamoDBService()
        db.create_table_if_not_exists()
        db.put_readings_batch([RawReading("MTR-001", "2025-02-05T08:02:00Z", 10000.0)])
        readings = db.get_all_readings()
    """

    def __init__(self, table_name: Optional[str] = None, dynamodb=None, client=None):
        """
        Args:
            table_name: Table to use. Defaults to DYNAMODB_TABLE_NAME or 'MeterReadings'.
            dynamodb: Optional pre-built boto3 DynamoDB resource.
            client: Optional pre-built boto3 DynamoDB client.

        Credentials come from AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY and the
        optional AWS_SESSION_TOKEN; the region from AWS_REGION.
        """
        self.table_name = table_name or os.getenv('DYNAMODB_TABLE_NAME', 'MeterReadings')
        self.region = os.getenv('AWS_REGION', 'us-east-1')

        session_token = os.getenv('AWS_SESSION_TOKEN')
        credentials = dict(
            region_name=self.region,
            aws_access_key_id=os.getenv('AWS_ACCESS_KEY_ID'),
            aws_secret_access_key=os.getenv('AWS_SECRET_ACCESS_KEY'),
            aws_session_token=session_token if session_token else None,
        )

        # Resource for table operations, client for describe_table
        self.dynamodb = dynamodb or boto3.resource('dynamodb', **credentials)
        self.client = client or boto3.client('dynamodb', **credentials)

        self.table = None

    def _get_table(self):
        if not self.table:
            self.table = self.dynamodb.Table(self.table_name)
        return self.table

    def create_table_if_not_exists(self) -> bool:
        """
        Create the readings table (on-demand billing) unless it already exists.

        Returns:
            bool: True if the table exists or was created
        """
        try:
            self.client.describe_table(TableName=self.table_name)
            self.table = self.dynamodb.Table(self.table_name)
            logger.info(f"DynamoDB table '{self.table_name}' exists")
            return True

        except ClientError as e:
            if e.response['Error']['Code'] != 'ResourceNotFoundException':
                logger.error(f"Error checking table: {e}")
                return False

        try:
            table = self.dynamodb.create_table(
                TableName=self.table_name,
                KeySchema=[
                    {'AttributeName': 'meter_id', 'KeyType': 'HASH'},
                    {'AttributeName': 'timestamp', 'KeyType': 'RANGE'},
                ],
                AttributeDefinitions=[
                    {'AttributeName': 'meter_id', 'AttributeType': 'S'},
                    {'AttributeName': 'timestamp', 'AttributeType': 'S'},
                ],
                BillingMode='PAY_PER_REQUEST'
            )
            table.wait_until_exists()
            self.table = table
            logger.info(f"Created DynamoDB table '{self.table_name}'")
            return True

        except ClientError as create_error:
            logger.error(f"Failed to create table: {create_error}")
            return False

    def put_readings_batch(self, readings: List[RawReading]) -> int:
        """
        Store raw readings in chunks of 25 (the batch_write_item limit).

        Repeated (meter_id, timestamp) keys in `readings` are written once,
        keeping the first, the same rule the reconciler applies.

        Returns:
            int: Number of readings written
        """
        table = self._get_table()
        readings = drop_duplicate_readings(readings)
        success_count = 0
        batch_size = 25

        for i in range(0, len(readings), batch_size):
            batch = readings[i:i + batch_size]
            try:
                with table.batch_writer() as writer:
                    for reading in batch:
                        writer.put_item(Item={
                            'meter_id': reading.meter_id,
                            'timestamp': reading.timestamp,
                            # Decimal via str to keep the value exact
                            'cumulative_volume': Decimal(str(reading.cumulative_volume)),
                            'created_at': datetime.now(timezone.utc).isoformat()
                        })
                success_count += len(batch)

            except ClientError as e:
                logger.error(f"Batch write error: {e}")

        logger.info(f"Stored {success_count} of {len(readings)} readings in {self.table_name}")
        return success_count

    def get_readings_for_meter(self, meter_id: str) -> List[RawReading]:
        """
        Query every reading of one meter, following LastEvaluatedKey pages.

        Returns:
            list: RawReading objects, ordered by timestamp
        """
        table = self._get_table()
        condition = Key('meter_id').eq(meter_id)

        try:
            response = table.query(KeyConditionExpression=condition)
            items = list(response.get('Items', []))

            while 'LastEvaluatedKey' in response:
                response = table.query(
                    KeyConditionExpression=condition,
                    ExclusiveStartKey=response['LastEvaluatedKey']
                )
                items.extend(response.get('Items', []))

            return [item_to_reading(item) for item in items]

        except ClientError as e:
            logger.error(f"Failed to get readings for {meter_id}: {e}")
            return []

    def get_all_readings(self) -> List[RawReading]:
        """
        Scan the whole table. Fine for a fleet that fits in memory, which the
        reconciler needs anyway.
        """
        table = self._get_table()

        try:
            response = table.scan()
            items = list(response.get('Items', []))

            while 'LastEvaluatedKey' in response:
                response = table.scan(ExclusiveStartKey=response['LastEvaluatedKey'])
                items.extend(response.get('Items', []))

            return [item_to_reading(item) for item in items]

        except ClientError as e:
            logger.error(f"Failed to scan readings: {e}")
            return []


def item_to_reading(item: dict) -> RawReading:
    """Convert a DynamoDB item (Decimal volume) back to a RawReading."""
    return RawReading(
        meter_id=item['meter_id'],
        timestamp=item['timestamp'],
        cumulative_volume=float(item['cumulative_volume'])
    )
