"""Speed estimation from location fixes, blended with integrated forward acceleration."""

import math
from collections import deque
from typing import Optional

import numpy as np
import structlog

from roadsurp_tools.anomaly_detector.config import DetectorConfig
from roadsurp_tools.anomaly_detector.types import LocationFix

log = structlog.get_logger()

EARTH_RADIUS_M = 6_371_000.0


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in metres."""
    p1 = math.radians(lat1)
    p2 = math.radians(lat2)
    dp = p2 - p1
    dl = math.radians(lon2 - lon1)
    a = math.sin(dp / 2) ** 2 + math.cos(p1) * math.cos(p2) * math.sin(dl / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


def initial_bearing_rad(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Bearing from point 1 to point 2, clockwise from north."""
    p1 = math.radians(lat1)
    p2 = math.radians(lat2)
    dl = math.radians(lon2 - lon1)
    x = math.sin(dl) * math.cos(p2)
    y = math.cos(p1) * math.sin(p2) - math.sin(p1) * math.cos(p2) * math.cos(dl)
    return math.atan2(x, y)


def iqr_filter(values) -> np.ndarray:
    """Drop values outside [Q1 - 1.5·IQR, Q3 + 1.5·IQR]. Needs 4+ values to act."""
    arr = np.asarray(values, dtype=float)
    if len(arr) < 4:
        return arr
    q1, q3 = np.percentile(arr, [25, 75])
    iqr = q3 - q1
    mask = (arr >= q1 - 1.5 * iqr) & (arr <= q3 + 1.5 * iqr)
    return arr[mask]


class SpeedHistory:
    """Count-bounded recent speed samples (km/h) with an outlier-rejecting mean."""

    def __init__(self, max_size: int = 10, min_kmh: float = 0.0, max_kmh: float = 200.0):
        self._values = deque(maxlen=max_size)
        self.min_kmh = min_kmh
        self.max_kmh = max_kmh

    def push(self, speed_kmh: float) -> None:
        self._values.append(float(speed_kmh))

    def clear(self) -> None:
        self._values.clear()

    def __len__(self) -> int:
        return len(self._values)

    def values(self) -> list:
        return list(self._values)

    def latest(self) -> Optional[float]:
        return self._values[-1] if self._values else None

    def average(self) -> float:
        sane = [v for v in self._values
                if math.isfinite(v) and self.min_kmh <= v <= self.max_kmh]
        if not sane:
            return 0.0
        kept = iqr_filter(sane)
        if len(kept) == 0:
            return float(np.mean(sane))
        return float(np.mean(kept))


class SpeedEstimator:
    """Validates location fixes and maintains the smoothed speed signal.

    Between fixes, forward acceleration (earth-frame horizontal acceleration
    projected on the direction of travel) is integrated into an inertial
    estimate. On the next fix it is blended with the GPS speed, weighted
    towards the inertial term as the reported accuracy degrades.
    """

    def __init__(self, cfg: DetectorConfig = None):
        self.cfg = cfg if cfg is not None else DetectorConfig()
        self.history = SpeedHistory(self.cfg.speed_history_size,
                                    self.cfg.min_speed_kmh, self.cfg.max_speed_kmh)
        self.last_fix: Optional[LocationFix] = None
        self.bearing_rad: Optional[float] = None
        self._inertial_delta_kmh = 0.0
        self._integrated = False

    def reset(self) -> None:
        self.history.clear()
        self.last_fix = None
        self.bearing_rad = None
        self._inertial_delta_kmh = 0.0
        self._integrated = False

    def integrate(self, dt: float, east: float, north: float) -> None:
        """Accumulate forward acceleration (m/s²) over dt seconds."""
        if self.bearing_rad is None or dt <= 0 or self.history.latest() is None:
            return
        forward = east * math.sin(self.bearing_rad) + north * math.cos(self.bearing_rad)
        self._inertial_delta_kmh += forward * dt * 3.6
        self._integrated = True

    def _validate(self, fix: LocationFix) -> Optional[str]:
        if not all(math.isfinite(v) for v in (fix.timestamp, fix.lat, fix.lon, fix.accuracy_m)):
            return "non_finite"
        if fix.accuracy_m < 0 or fix.accuracy_m > self.cfg.max_fix_accuracy_m:
            return "poor_accuracy"
        if not (-90.0 <= fix.lat <= 90.0 and -180.0 <= fix.lon <= 180.0):
            return "out_of_range"
        if abs(fix.lat) < 1e-9 and abs(fix.lon) < 1e-9:
            return "null_island"
        if self.last_fix is not None and fix.timestamp <= self.last_fix.timestamp:
            return "stale"
        return None

    def _inertial_weight(self, accuracy_m: float) -> float:
        good = self.cfg.good_fix_accuracy_m
        span = self.cfg.max_fix_accuracy_m - good
        if span <= 0:
            return 0.0
        frac = (accuracy_m - good) / span
        return min(max(frac, 0.0), 1.0) * self.cfg.max_inertial_weight

    def update(self, fix: LocationFix) -> bool:
        """Ingest one fix. Returns False (keeping previous state) when it is rejected."""
        reason = self._validate(fix)
        if reason is not None:
            log.debug("location_rejected", reason=reason, t=fix.timestamp, accuracy_m=fix.accuracy_m)
            return False

        gps_kmh = None
        prev = self.last_fix
        if prev is not None:
            dist = haversine_m(prev.lat, prev.lon, fix.lat, fix.lon)
            implied_kmh = dist / (fix.timestamp - prev.timestamp) * 3.6
            if implied_kmh > self.cfg.max_speed_kmh:
                log.debug("location_rejected", reason="implausible_jump", t=fix.timestamp,
                          dist_m=dist, implied_kmh=implied_kmh)
                return False
            if dist > 0.5:
                self.bearing_rad = initial_bearing_rad(prev.lat, prev.lon, fix.lat, fix.lon)
            gps_kmh = implied_kmh

        reported = fix.reported_speed_mps
        if reported is not None and math.isfinite(reported) and reported >= 0:
            gps_kmh = reported * 3.6

        if gps_kmh is not None:
            speed = gps_kmh
            previous = self.history.latest()
            if self._integrated and previous is not None:
                inertial = previous + self._inertial_delta_kmh
                w = self._inertial_weight(fix.accuracy_m)
                speed = (1.0 - w) * gps_kmh + w * inertial
            speed = min(max(speed, self.cfg.min_speed_kmh), self.cfg.max_speed_kmh)
            self.history.push(speed)

        self._inertial_delta_kmh = 0.0
        self._integrated = False
        self.last_fix = fix
        return True

    def average_kmh(self) -> float:
        return self.history.average()

    def current_kmh(self) -> float:
        """Most recent blended speed, 0 before the first usable fix."""
        latest = self.history.latest()
        return latest if latest is not None else 0.0
