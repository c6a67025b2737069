#!/usr/bin/env python3
"""Replay a sensor recording through the road anomaly pipeline.

Reads a recording (timestamp, kind, accelerometer/gyroscope/magnetometer
axes, location columns), feeds every row to the pipeline in timestamp order
and writes the classified events as a table.

Usage:
  python -m roadsurp_tools.replay_recording drive.csv -o events.csv
  python -m roadsurp_tools.replay_recording drive.csv.zst --vehicle four_wheeler_car --placement dashboard
"""

import argparse
import sys
from collections import Counter

from tqdm import tqdm

from roadsurp_tools.anomaly_detector.config import load_config, setup_logging
from roadsurp_tools.anomaly_detector.pipeline import RoadAnomalyPipeline
from roadsurp_tools.anomaly_detector.types import MountPlacement, VehicleClass
from roadsurp_tools.data_io import events_to_frame, iter_records, load_recording, save_table


def build_pipeline(config, on_reading=None):
    return RoadAnomalyPipeline(
        config.detector,
        config.profile.vehicle_class,
        config.profile.mount_placement,
        on_reading=on_reading,
    )


def run_replay(df, pipeline, progress=True):
    """Feed a recording DataFrame into the pipeline; return every emitted event."""
    events = []
    records = iter_records(df)
    if progress:
        records = tqdm(records, total=len(df), desc="Replaying", unit="rows")
    for rec in records:
        if rec[0] == "location":
            _, t, lat, lon, accuracy, speed = rec
            pipeline.ingest_location(t, lat, lon, accuracy, speed)
        else:
            _, t, accel, gyro, mag = rec
            event = pipeline.ingest_motion_sample(t, accel, gyro, mag)
            if event is not None:
                events.append(event)
    events.extend(pipeline.flush())
    return events


def main():
    parser = argparse.ArgumentParser(
        description="Replay a motion/location recording and write detected road events.",
    )
    parser.add_argument("input", help="Recording file (CSV, Parquet or .csv.zst)")
    parser.add_argument("-o", "--output", default="events.csv",
                        help="Output events table (default: events.csv)")
    parser.add_argument("--format", choices=["csv", "parquet", "csv.zst"], default=None,
                        help="Output format (default: inferred from extension)")
    parser.add_argument("--config", default=None,
                        help="YAML config file (default: ./roadsurp.yaml if present)")
    parser.add_argument("--vehicle", choices=[v.value for v in VehicleClass], default=None,
                        help="Vehicle class (overrides config)")
    parser.add_argument("--placement", choices=[p.value for p in MountPlacement], default=None,
                        help="Phone mount placement (overrides config)")
    parser.add_argument("--no-progress", action="store_true", help="Disable the progress bar")
    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except ValueError as e:
        print(f"ERROR: Invalid configuration: {e}")
        sys.exit(1)
    if args.vehicle:
        config.profile.vehicle_class = VehicleClass(args.vehicle)
    if args.placement:
        config.profile.mount_placement = MountPlacement(args.placement)
    setup_logging(config.logging)

    df = load_recording(args.input)
    if df is None:
        print(f"ERROR: No recording found at {args.input}")
        sys.exit(1)
    print(f"Loaded {len(df)} rows "
          f"({(df['kind'] == 'motion').sum()} motion, {(df['kind'] == 'location').sum()} location)")

    events = run_replay(df, build_pipeline(config), progress=not args.no_progress)

    counts = Counter(e.type.value for e in events)
    print(f"Detected {len(events)} events")
    for name, n in sorted(counts.items()):
        print(f"  {name:<15} {n}")

    fmt = save_table(events_to_frame(events), args.output, args.format)
    print(f"Saved to {args.output} ({fmt})")


if __name__ == "__main__":
    main()
