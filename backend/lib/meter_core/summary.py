from typing import Dict, List

from .models import (
    FLAG_COUNTER_RESET,
    FLAG_GAP_ESTIMATED,
    FLAG_NORMAL,
    STATUS_HAS_INCIDENTS,
    STATUS_NORMAL,
    FlagBreakdown,
    MeterSummary,
    ProcessedReading,
    RawReading,
)
from .processor import process_meter_readings


def summarize(processed: List[ProcessedReading]) -> List[MeterSummary]:
    """
    Reduce reconciled records to one MeterSummary per meter.

    Summaries come out in order of each meter's first record in `processed`.
    """
    summaries: Dict[str, MeterSummary] = {}
    for reading in processed:
        summary = summaries.get(reading.meter_id)
        if summary is None:
            summary = MeterSummary(
                meter_id=reading.meter_id,
                total_consumption=0.0,
                incident_count=0,
                status=STATUS_NORMAL,
                last_reading=reading.hour,
            )
            summaries[reading.meter_id] = summary

        summary.total_consumption += reading.consumption
        if reading.flag != FLAG_NORMAL:
            summary.incident_count += 1
            summary.status = STATUS_HAS_INCIDENTS
        if reading.hour > summary.last_reading:
            summary.last_reading = reading.hour

    return list(summaries.values())


def calculate_meter_summaries(raw_readings: List[RawReading]) -> List[MeterSummary]:
    return summarize(process_meter_readings(raw_readings))


def get_meter_readings(raw_readings: List[RawReading], meter_id: str) -> List[ProcessedReading]:
    return [r for r in process_meter_readings(raw_readings) if r.meter_id == meter_id]


def calculate_fleet_total(raw_readings: List[RawReading]) -> float:
    return sum(r.consumption for r in process_meter_readings(raw_readings))


def calculate_total_incidents(raw_readings: List[RawReading]) -> int:
    return sum(1 for r in process_meter_readings(raw_readings) if r.flag != FLAG_NORMAL)


def calculate_flag_breakdown(readings: List[ProcessedReading]) -> FlagBreakdown:
    """
    Count records per flag for one meter's reconciled series
    (as returned by get_meter_readings).
    """
    return FlagBreakdown(
        total_consumption=sum(r.consumption for r in readings),
        normal_count=sum(1 for r in readings if r.flag == FLAG_NORMAL),
        gap_count=sum(1 for r in readings if r.flag == FLAG_GAP_ESTIMATED),
        reset_count=sum(1 for r in readings if r.flag == FLAG_COUNTER_RESET),
    )
