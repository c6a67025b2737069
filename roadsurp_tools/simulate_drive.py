#!/usr/bin/env python3
"""Synthesize a sensor recording of a drive over known road anomalies.

The phone lies flat, pointing north, on a vehicle moving north at constant
speed. Speed breakers are an upward jolt followed by a downward rebound,
potholes the reverse, and a broken stretch alternates both every 1.5 s.

Usage:
  python -m roadsurp_tools.simulate_drive -o drive.csv
  python -m roadsurp_tools.simulate_drive -o drive.csv.zst --speed-breakers 10,40 --potholes 25
"""

import argparse
import sys

import numpy as np
import pandas as pd

from roadsurp_tools.data_io import RECORDING_COLUMNS, save_table

GRAVITY = 9.81
METERS_PER_DEG_LAT = 111_195.0
# Flat phone, top edge pointing north (µT)
EARTH_FIELD = (0.0, 30.0, -40.0)


def _parse_times(text):
    if not text:
        return []
    return [float(t) for t in text.split(",")]


def impulse_schedule(speed_breakers, potholes, broken_start=None, broken_count=4,
                     broken_spacing_s=1.5):
    """Sorted (time, kind) pairs; kind is "speed_breaker" or "pothole"."""
    schedule = [(t, "speed_breaker") for t in speed_breakers]
    schedule += [(t, "pothole") for t in potholes]
    if broken_start is not None:
        for i in range(broken_count):
            kind = "speed_breaker" if i % 2 == 0 else "pothole"
            schedule.append((broken_start + i * broken_spacing_s, kind))
    return sorted(schedule)


def vertical_profile(n, fs, schedule, amplitude=5.0, rebound_ratio=0.8, rebound_delay_s=0.1):
    """Raw vertical acceleration offsets (without gravity) for each sample."""
    z = np.zeros(n)
    delay = int(round(rebound_delay_s * fs))
    for t, kind in schedule:
        i = int(round(t * fs))
        sign = 1.0 if kind == "speed_breaker" else -1.0
        if 0 <= i < n:
            z[i] += sign * amplitude
        if 0 <= i + delay < n:
            z[i + delay] -= sign * amplitude * rebound_ratio
    return z


def simulate_drive(duration_s=60.0, fs=60.0, speed_mps=5.0, schedule=(), start_lat=12.9716,
                   start_lon=77.5946, fix_interval_s=1.0, fix_accuracy_m=5.0, noise_std=0.05,
                   with_gyro=False, with_mag=False, seed=0):
    """Build a recording DataFrame with RECORDING_COLUMNS."""
    rng = np.random.default_rng(seed)
    n = int(duration_s * fs)
    t = np.arange(n) / fs
    z = vertical_profile(n, fs, schedule)
    noise = rng.normal(0.0, noise_std, size=(n, 3))

    motion = pd.DataFrame({
        "timestamp": t,
        "kind": "motion",
        "ax": noise[:, 0],
        "ay": noise[:, 1],
        "az": GRAVITY + z + noise[:, 2],
    })
    if with_gyro:
        gyro = rng.normal(0.0, 0.01, size=(n, 3))
        motion["gx"], motion["gy"], motion["gz"] = gyro[:, 0], gyro[:, 1], gyro[:, 2]
    if with_mag:
        motion["mx"], motion["my"], motion["mz"] = EARTH_FIELD

    fix_t = np.arange(0.0, duration_s, fix_interval_s)
    location = pd.DataFrame({
        "timestamp": fix_t,
        "kind": "location",
        "lat": start_lat + speed_mps * fix_t / METERS_PER_DEG_LAT,
        "lon": start_lon,
        "accuracy": fix_accuracy_m,
        "speed": speed_mps,
    })

    # Fixes go first at equal timestamps so the first motion sample sees a speed
    df = pd.concat([location, motion], ignore_index=True)
    df = df.sort_values("timestamp", kind="stable").reset_index(drop=True)
    return df.reindex(columns=RECORDING_COLUMNS)


def main():
    parser = argparse.ArgumentParser(
        description="Synthesize a motion/location recording with known road anomalies.",
    )
    parser.add_argument("-o", "--output", default="drive.csv",
                        help="Output recording (default: drive.csv)")
    parser.add_argument("--duration", type=float, default=60.0,
                        help="Drive length in seconds (default: 60)")
    parser.add_argument("--rate", type=float, default=60.0,
                        help="Motion sample rate in Hz (default: 60)")
    parser.add_argument("--speed", type=float, default=5.0,
                        help="Vehicle speed in m/s (default: 5)")
    parser.add_argument("--speed-breakers", default="10,40",
                        help="Comma-separated speed breaker times in seconds (default: 10,40)")
    parser.add_argument("--potholes", default="20",
                        help="Comma-separated pothole times in seconds (default: 20)")
    parser.add_argument("--broken-start", type=float, default=30.0,
                        help="Start of a broken stretch in seconds, negative to disable (default: 30)")
    parser.add_argument("--noise", type=float, default=0.05,
                        help="Accelerometer noise std in m/s² (default: 0.05)")
    parser.add_argument("--with-gyro", action="store_true", help="Include gyroscope columns")
    parser.add_argument("--with-mag", action="store_true", help="Include magnetometer columns")
    parser.add_argument("--seed", type=int, default=0, help="Random seed (default: 0)")
    args = parser.parse_args()

    try:
        speed_breakers = _parse_times(args.speed_breakers)
        potholes = _parse_times(args.potholes)
    except ValueError:
        print("ERROR: Event times must be comma-separated numbers")
        sys.exit(1)
    if args.duration <= 0 or args.rate <= 0:
        print("ERROR: --duration and --rate must be positive")
        sys.exit(1)

    broken_start = args.broken_start if args.broken_start >= 0 else None
    schedule = impulse_schedule(speed_breakers, potholes, broken_start)
    df = simulate_drive(
        duration_s=args.duration,
        fs=args.rate,
        speed_mps=args.speed,
        schedule=schedule,
        noise_std=args.noise,
        with_gyro=args.with_gyro,
        with_mag=args.with_mag,
        seed=args.seed,
    )

    print(f"Simulated {args.duration:.0f} s at {args.speed * 3.6:.1f} km/h: "
          f"{len(speed_breakers)} speed breakers, {len(potholes)} potholes"
          + (f", broken stretch at {broken_start:.1f} s" if broken_start is not None else ""))
    fmt = save_table(df, args.output)
    print(f"Saved {len(df)} rows to {args.output} ({fmt})")


if __name__ == "__main__":
    main()
