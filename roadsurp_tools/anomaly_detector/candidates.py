"""Phase 1: threshold crossing, prominence and local-peak gate."""

from dataclasses import dataclass
from typing import Optional

import numpy as np

from roadsurp_tools.anomaly_detector.config import DetectorConfig
from roadsurp_tools.anomaly_detector.types import ConditionedReading, EventType


@dataclass(frozen=True)
class Candidate:
    reading: ConditionedReading
    candidate_type: EventType
    prominence: float
    threshold: float
    search_window_s: float

    @property
    def timestamp(self) -> float:
        return self.reading.timestamp

    @property
    def resolve_at(self) -> float:
        return self.reading.timestamp + self.search_window_s


def peak_prominence(value: float, window) -> float:
    """|value - mean(window)| / max |w - mean(window)|, in [0, 1] when value is in the window.

    Returns 0.0 with fewer than 3 points or a flat window.
    """
    arr = np.asarray(window, dtype=float)
    if len(arr) < 3:
        return 0.0
    center = float(np.mean(arr))
    max_dev = float(np.max(np.abs(arr - center)))
    if max_dev < 1e-9:
        return 0.0
    return abs(value - center) / max_dev


def is_local_extremum(values, idx: int, k: int, maximum: bool) -> bool:
    """True if no neighbour within k samples on either side is more extreme."""
    if idx - k < 0 or idx + k >= len(values):
        return False
    current = values[idx]
    neighbors = list(values[idx - k:idx]) + list(values[idx + 1:idx + k + 1])
    if maximum:
        return all(n <= current for n in neighbors)
    return all(n >= current for n in neighbors)


def within_min_gap(timestamp: float, last_event_time: Optional[float], cfg: DetectorConfig) -> bool:
    """True when `timestamp` is too close to the last emitted event."""
    return last_event_time is not None and timestamp - last_event_time < cfg.min_event_interval_s


def detect_candidate(
    neighborhood: list,
    trailing: list,
    thresholds: tuple,
    last_event_time: Optional[float],
    search_window_s: float,
    cfg: DetectorConfig = None,
) -> Optional[Candidate]:
    """Check the centre reading of `neighborhood` (2k+1 readings) for a candidate.

    `trailing` holds the vertical values of the prominence window ending at the
    centre reading (inclusive). `thresholds` is (speed_breaker, pothole) with the
    pothole threshold given as a positive magnitude.
    """
    if cfg is None:
        cfg = DetectorConfig()

    k = cfg.peak_neighbors
    if len(neighborhood) != 2 * k + 1:
        return None
    center = neighborhood[k]
    if within_min_gap(center.timestamp, last_event_time, cfg):
        return None

    z = center.vertical
    sb_threshold, ph_threshold = thresholds
    if z > sb_threshold:
        candidate_type, threshold, maximum = EventType.SPEED_BREAKER, sb_threshold, True
    elif z < -ph_threshold:
        candidate_type, threshold, maximum = EventType.POTHOLE, ph_threshold, False
    else:
        return None

    prominence = peak_prominence(z, trailing)
    if prominence <= cfg.min_prominence:
        return None

    values = [r.vertical for r in neighborhood]
    if not is_local_extremum(values, k, k, maximum):
        return None

    return Candidate(
        reading=center,
        candidate_type=candidate_type,
        prominence=prominence,
        threshold=threshold,
        search_window_s=search_window_s,
    )
