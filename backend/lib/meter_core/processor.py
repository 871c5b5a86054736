import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Dict, List

from .models import (
    FLAG_COUNTER_RESET,
    FLAG_GAP_ESTIMATED,
    FLAG_NORMAL,
    ProcessedReading,
    RawReading,
)

logger = logging.getLogger(__name__)


def parse_timestamp(timestamp: str) -> datetime:
    """
    Parse an ISO8601 timestamp such as 2025-02-05T08:02:00Z.
    Naive timestamps are taken as UTC. Raises ValueError when unparsable.
    """
    parsed = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def truncate_to_hour(timestamp: datetime) -> datetime:
    return timestamp.replace(minute=0, second=0, microsecond=0)


def format_hour(hour: datetime) -> str:
    return hour.strftime("%Y-%m-%dT%H:00:00Z")


def hours_between(start: datetime, end: datetime) -> int:
    # whole hours, truncated toward zero
    return int((end - start).total_seconds() / 3600)


def drop_duplicate_readings(readings: List[RawReading]) -> List[RawReading]:
    """
    Keep the first reading per (meter_id, raw timestamp string), in input order.
    """
    seen = set()
    unique = []
    for reading in readings:
        key = (reading.meter_id, reading.timestamp)
        if key in seen:
            continue
        seen.add(key)
        unique.append(reading)

    dropped = len(readings) - len(unique)
    if dropped:
        logger.debug(f"Dropped {dropped} duplicate readings")
    return unique


def sanitize_readings(readings: List[RawReading]) -> List[RawReading]:
    """Drop exact duplicates (first one wins) and sort by timestamp, then meter_id."""
    return sorted(drop_duplicate_readings(readings), key=lambda r: (r.timestamp, r.meter_id))


def group_by_meter(readings: List[RawReading]) -> Dict[str, List[RawReading]]:
    grouped = defaultdict(list)
    for reading in readings:
        grouped[reading.meter_id].append(reading)
    return dict(grouped)


def reconcile_pair(previous: RawReading, current: RawReading) -> List[ProcessedReading]:
    """
    Classify one transition between consecutive readings of the same meter.

    - counter went backwards -> one counter_reset record at the later hour,
      consumption is the new raw counter value
    - adjacent hours         -> one normal record at the earlier hour
    - more than one hour     -> one gap_estimated record per hour, delta split evenly
    - same hour              -> nothing
    """
    meter_id = current.meter_id
    prev_hour = truncate_to_hour(parse_timestamp(previous.timestamp))
    curr_hour = truncate_to_hour(parse_timestamp(current.timestamp))

    if current.cumulative_volume < previous.cumulative_volume:
        logger.debug(
            f"Counter reset on {meter_id}: {previous.cumulative_volume} -> "
            f"{current.cumulative_volume} at {current.timestamp}"
        )
        return [ProcessedReading(meter_id, format_hour(curr_hour),
                                 current.cumulative_volume, FLAG_COUNTER_RESET)]

    delta = current.cumulative_volume - previous.cumulative_volume
    hours_diff = hours_between(prev_hour, curr_hour)

    if hours_diff == 1:
        return [ProcessedReading(meter_id, format_hour(prev_hour), delta, FLAG_NORMAL)]
    if hours_diff > 1:
        return _distribute_gap(meter_id, prev_hour, curr_hour, delta)
    return []


def _distribute_gap(meter_id: str, start_hour: datetime, end_hour: datetime,
                    delta: float) -> List[ProcessedReading]:
    hours_diff = hours_between(start_hour, end_hour)
    if hours_diff <= 0:
        return []

    per_hour = delta / hours_diff
    return [
        ProcessedReading(meter_id, format_hour(start_hour + timedelta(hours=i)),
                         per_hour, FLAG_GAP_ESTIMATED)
        for i in range(hours_diff)
    ]


def reconcile_meter(readings: List[RawReading]) -> List[ProcessedReading]:
    """Walk one meter's chronologically ordered readings pair by pair."""
    processed = []
    for previous, current in zip(readings, readings[1:]):
        processed.extend(reconcile_pair(previous, current))
    return processed


def sort_processed(processed: List[ProcessedReading]) -> List[ProcessedReading]:
    return sorted(processed, key=lambda r: (r.hour, r.meter_id))


def process_meter_readings(raw_readings: List[RawReading]) -> List[ProcessedReading]:
    """
    Reconcile raw cumulative readings into an hourly consumption series.

    Returns records sorted by hour, then meter_id. Meters with fewer than
    two readings contribute nothing.
    """
    if not raw_readings:
        return []

    sanitized = sanitize_readings(raw_readings)
    processed = []
    for meter_id, readings in group_by_meter(sanitized).items():
        if len(readings) < 2:
            logger.debug(f"Skipping {meter_id}: only {len(readings)} reading")
            continue
        processed.extend(reconcile_meter(readings))

    logger.debug(
        f"Reconciled {len(sanitized)} readings into {len(processed)} hourly records"
    )
    return sort_processed(processed)
