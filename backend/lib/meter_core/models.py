from dataclasses import dataclass

FLAG_NORMAL = "normal"
FLAG_GAP_ESTIMATED = "gap_estimated"
FLAG_COUNTER_RESET = "counter_reset"

STATUS_NORMAL = "normal"
STATUS_HAS_INCIDENTS = "has_incidents"


@dataclass
class RawReading:
    meter_id: str
    timestamp: str  # ISO-8601 UTC, kept as the raw string
    cumulative_volume: float


@dataclass
class ProcessedReading:
    meter_id: str
    hour: str  # YYYY-MM-DDTHH:00:00Z
    consumption: float
    flag: str


@dataclass
class MeterSummary:
    meter_id: str
    total_consumption: float
    incident_count: int
    status: str
    last_reading: str


@dataclass
class FlagBreakdown:
    total_consumption: float
    normal_count: int
    gap_count: int
    reset_count: int
