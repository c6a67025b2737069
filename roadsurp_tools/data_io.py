"""Shared recording and event-table I/O for the road-surface tools."""

import io
import os

import numpy as np
import pandas as pd
import zstandard as zstd

RECORDING_COLUMNS = [
    "timestamp", "kind",
    "ax", "ay", "az",
    "gx", "gy", "gz",
    "mx", "my", "mz",
    "lat", "lon", "accuracy", "speed",
]

EVENT_COLUMNS = [
    "timestamp", "type", "confidence", "lat", "lon", "vertical", "speed_kmh",
    "z_next", "z_prev", "time_since_last_event", "variance", "skewness", "prominence",
]

ZSTD_MAGIC = b"\x28\xB5\x2F\xFD"


def load_recording(input_path):
    """Load a recording from CSV, Parquet or zstd-compressed CSV.

    Returns a DataFrame sorted by timestamp, or None if the file is missing
    or does not contain the recording columns.
    """
    if not os.path.isfile(input_path):
        return None

    if input_path.endswith(".parquet"):
        df = pd.read_parquet(input_path)
    else:
        with open(input_path, "rb") as f:
            dat = f.read()
        if dat[:4] == ZSTD_MAGIC:
            dctx = zstd.ZstdDecompressor()
            reader = dctx.stream_reader(dat)
            dat = reader.read()
        df = pd.read_csv(io.BytesIO(dat))

    if "timestamp" not in df.columns or "kind" not in df.columns:
        return None
    for col in RECORDING_COLUMNS:
        if col not in df.columns:
            df[col] = np.nan
    # Stable so a location fix logged at the same instant stays ahead of its motion sample
    return df[RECORDING_COLUMNS].sort_values("timestamp", kind="stable").reset_index(drop=True)


def save_table(df, output_path, fmt=None):
    """Write a DataFrame as CSV, Parquet or zstd-compressed CSV. Returns the format used."""
    if fmt is None:
        if output_path.endswith(".parquet"):
            fmt = "parquet"
        elif output_path.endswith(".zst"):
            fmt = "csv.zst"
        else:
            fmt = "csv"

    if fmt == "parquet":
        df.to_parquet(output_path, index=False)
    elif fmt == "csv.zst":
        cctx = zstd.ZstdCompressor(level=10)
        with open(output_path, "wb") as f:
            f.write(cctx.compress(df.to_csv(index=False).encode()))
    else:
        df.to_csv(output_path, index=False)
    return fmt


def _optional_vector(row, cols):
    values = tuple(row[c] for c in cols)
    if any(pd.isna(v) for v in values):
        return None
    return values


def iter_records(df):
    """Yield ("motion", t, accel, gyro, mag) and ("location", t, lat, lon, accuracy, speed) tuples."""
    for row in df.itertuples(index=False):
        row = row._asdict()
        if row["kind"] == "location":
            speed = None if pd.isna(row["speed"]) else float(row["speed"])
            yield ("location", float(row["timestamp"]), float(row["lat"]), float(row["lon"]),
                   float(row["accuracy"]), speed)
        elif row["kind"] == "motion":
            yield ("motion", float(row["timestamp"]),
                   (float(row["ax"]), float(row["ay"]), float(row["az"])),
                   _optional_vector(row, ("gx", "gy", "gz")),
                   _optional_vector(row, ("mx", "my", "mz")))


def events_to_frame(events):
    """Flatten RoadEvents (with their features) into a DataFrame."""
    rows = []
    for e in events:
        f = e.features
        rows.append({
            "timestamp": e.timestamp,
            "type": e.type.value,
            "confidence": e.confidence,
            "lat": e.lat,
            "lon": e.lon,
            "vertical": e.vertical,
            "speed_kmh": e.speed_kmh,
            "z_next": f.z_next if f is not None else None,
            "z_prev": f.z_prev if f is not None else None,
            "time_since_last_event": f.time_since_last_event if f is not None else None,
            "variance": f.variance if f is not None else None,
            "skewness": f.skewness if f is not None else None,
            "prominence": f.prominence if f is not None else None,
        })
    return pd.DataFrame(rows, columns=EVENT_COLUMNS)
