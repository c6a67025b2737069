#!/usr/bin/env python3
"""Plot the conditioned vertical trace, adaptive thresholds and detected events.

Replays a recording through the pipeline, keeping every conditioned reading,
and draws a two-panel figure: vertical acceleration with the speed-breaker and
pothole thresholds and event markers on top, estimated speed below.

Usage:
  python -m roadsurp_tools.visualize_events drive.csv -o events.png
  python -m roadsurp_tools.visualize_events drive.parquet --start 25 --end 40
"""

import argparse
import sys

import matplotlib.pyplot as plt
import numpy as np

from roadsurp_tools.anomaly_detector.config import load_config
from roadsurp_tools.anomaly_detector.types import EventType
from roadsurp_tools.data_io import load_recording
from roadsurp_tools.replay_recording import build_pipeline, run_replay

EVENT_STYLE = {
    EventType.SPEED_BREAKER: ("tab:orange", "^", "Speed breaker"),
    EventType.POTHOLE: ("tab:blue", "v", "Pothole"),
    EventType.BROKEN_PATCH: ("tab:red", "X", "Broken patch"),
}


class TraceRecorder:
    """on_reading callback collecting the vertical trace and the thresholds in force."""

    def __init__(self):
        self.pipeline = None
        self.rows = []

    def __call__(self, reading):
        sb, ph = self.pipeline.current_thresholds()
        self.rows.append((reading.timestamp, reading.vertical, reading.speed_kmh, sb, ph))

    def arrays(self):
        if not self.rows:
            return tuple(np.empty(0) for _ in range(5))
        return tuple(np.asarray(col, dtype=float) for col in zip(*self.rows))


def plot_events(trace, events, output_path, start=None, end=None):
    t, vertical, speed, sb, ph = trace
    mask = np.ones(len(t), dtype=bool)
    if start is not None:
        mask &= t >= start
    if end is not None:
        mask &= t <= end
    shown = [e for e in events
             if (start is None or e.timestamp >= start) and (end is None or e.timestamp <= end)]

    fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(16, 8), sharex=True,
                                   gridspec_kw={"height_ratios": [3, 1]})
    fig.suptitle("Road Surface Events", fontsize=14, fontweight="bold")

    ax1.plot(t[mask], vertical[mask], color="0.3", linewidth=0.7, label="Vertical accel")
    ax1.plot(t[mask], sb[mask], color="tab:orange", linestyle="--", linewidth=1,
             label="Speed breaker threshold")
    ax1.plot(t[mask], -ph[mask], color="tab:blue", linestyle="--", linewidth=1,
             label="Pothole threshold")
    for event_type, (color, marker, label) in EVENT_STYLE.items():
        selected = [e for e in shown if e.type == event_type]
        if not selected:
            continue
        ax1.scatter([e.timestamp for e in selected], [e.vertical for e in selected],
                    c=color, marker=marker, s=80, zorder=3,
                    label=f"{label} ({len(selected)})")
        for e in selected:
            ax1.annotate(f"{e.confidence:.2f}", (e.timestamp, e.vertical),
                         textcoords="offset points", xytext=(4, 6), fontsize=7)
    ax1.set_ylabel("Vertical acceleration (m/s²)")
    ax1.legend(loc="upper right", fontsize=8)
    ax1.grid(alpha=0.3)

    ax2.plot(t[mask], speed[mask], color="tab:green", linewidth=1)
    ax2.set_ylabel("Speed (km/h)")
    ax2.set_xlabel("Time (s)")
    ax2.grid(alpha=0.3)

    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches="tight")
    print(f"Saved event plot to {output_path}")
    plt.close()


def main():
    parser = argparse.ArgumentParser(
        description="Visualize detected road events over the vertical acceleration trace.",
    )
    parser.add_argument("input", help="Recording file (CSV, Parquet or .csv.zst)")
    parser.add_argument("-o", "--output", default="events.png",
                        help="Output image path (default: events.png)")
    parser.add_argument("--config", default=None,
                        help="YAML config file (default: ./roadsurp.yaml if present)")
    parser.add_argument("--start", type=float, default=None, help="Plot window start (s)")
    parser.add_argument("--end", type=float, default=None, help="Plot window end (s)")
    args = parser.parse_args()

    try:
        config = load_config(args.config)
    except ValueError as e:
        print(f"ERROR: Invalid configuration: {e}")
        sys.exit(1)

    df = load_recording(args.input)
    if df is None:
        print(f"ERROR: No recording found at {args.input}")
        sys.exit(1)
    print(f"Loaded {len(df)} rows")

    recorder = TraceRecorder()
    recorder.pipeline = build_pipeline(config, on_reading=recorder)
    events = run_replay(df, recorder.pipeline, progress=False)
    print(f"Detected {len(events)} events")

    plot_events(recorder.arrays(), events, args.output, args.start, args.end)


if __name__ == "__main__":
    main()
