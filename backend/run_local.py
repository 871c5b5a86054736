# backend/run_local.py
import sys
from pathlib import Path

from backend.lib.meter_core.io import parse_upload
from backend.lib.meter_core.processor import process_meter_readings
from backend.lib.meter_core.summary import summarize


def main(path):
    text = Path(path).read_text()
    readings = parse_upload(path, text)
    processed = process_meter_readings(readings)
    print(f"Parsed {len(readings)} raw readings -> {len(processed)} hourly records:")
    for r in processed:
        print(f" - {r.meter_id} @ {r.hour} : {r.consumption:.2f} [{r.flag}]")

    print("Meters:")
    for s in summarize(processed):
        print(
            f" - {s.meter_id}: total={s.total_consumption:.2f} "
            f"incidents={s.incident_count} status={s.status} last={s.last_reading}"
        )


if __name__ == "__main__":
    path = sys.argv[1] if len(sys.argv) > 1 else "tests/sample.csv"
    main(path)
