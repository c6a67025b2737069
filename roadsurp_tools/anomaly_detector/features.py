"""Phase 2 feature extraction over the vertical-acceleration history."""

from typing import Optional

import numpy as np

from roadsurp_tools.anomaly_detector.config import DetectorConfig
from roadsurp_tools.anomaly_detector.types import EventFeatures


def search_window_s(speed_kmh: float, cfg: DetectorConfig = None) -> float:
    """Time needed to cover cfg.search_distance_m at this speed, bounded to [min, max]."""
    if cfg is None:
        cfg = DetectorConfig()
    speed_mps = speed_kmh / 3.6
    if speed_mps <= 1e-6:
        return cfg.max_search_window_s
    window = cfg.search_distance_m / speed_mps
    return float(min(max(window, cfg.min_search_window_s), cfg.max_search_window_s))


def find_significant_extremum(values: np.ndarray, order: int = 1) -> Optional[float]:
    """Most significant strict local extremum, ranked by deviation from its neighbourhood mean.

    A point qualifies when its `order` neighbours on both sides are all lower
    (local max) or all higher (local min). Its score is the distance from the
    mean of those same neighbours, so a sharp spike outranks a broad sag.
    Returns None with too few points, when nothing qualifies, or when the two
    best candidates tie.
    """
    values = np.asarray(values, dtype=float)
    n = len(values)
    if n < 2 * order + 1:
        return None

    best = None
    best_score = -1.0
    tied = False
    for i in range(order, n - order):
        v = values[i]
        neighbors = np.concatenate([values[i - order:i], values[i + 1:i + order + 1]])
        if not (np.all(neighbors < v) or np.all(neighbors > v)):
            continue
        score = abs(v - float(np.mean(neighbors)))
        if score > best_score:
            best, best_score, tied = float(v), score, False
        elif score == best_score:
            tied = True

    if best is None or tied:
        return None
    return best


def sample_variance(values: np.ndarray) -> Optional[float]:
    values = np.asarray(values, dtype=float)
    if len(values) < 2:
        return None
    return float(np.var(values, ddof=1))


def skewness(values: np.ndarray) -> Optional[float]:
    """Standardized third moment; None with fewer than 3 points or zero spread."""
    values = np.asarray(values, dtype=float)
    if len(values) < 3:
        return None
    std = np.std(values)
    if std < 1e-9:
        return None
    return float(np.mean(((values - np.mean(values)) / std) ** 3))


def extract_features(
    times: np.ndarray,
    values: np.ndarray,
    t_detect: float,
    z_detect: float,
    speed_kmh: float,
    prominence: float,
    time_since_last_event: Optional[float] = None,
    cfg: DetectorConfig = None,
) -> EventFeatures:
    """Build EventFeatures for a candidate detected at `t_detect`.

    `times`/`values` are the vertical-acceleration history (oldest first),
    ideally extending at least one search window past `t_detect`.
    """
    if cfg is None:
        cfg = DetectorConfig()

    times = np.asarray(times, dtype=float)
    values = np.asarray(values, dtype=float)
    window = search_window_s(speed_kmh, cfg)

    # ── Next extremum: (t, t + window] ────────────────────────────────────
    after = values[(times > t_detect) & (times <= t_detect + window)]
    z_next = find_significant_extremum(after, cfg.extremum_order)

    # ── Previous extremum: [t - window, t) ────────────────────────────────
    before = values[(times >= t_detect - window) & (times < t_detect)]
    z_prev = find_significant_extremum(before, cfg.extremum_order)

    # ── Distribution of the trailing slice ────────────────────────────────
    trailing = values[-cfg.stats_window_samples:] if cfg.stats_window_samples > 0 else values[:0]

    return EventFeatures(
        z_t=float(z_detect),
        z_next=z_next,
        z_prev=z_prev,
        time_since_last_event=time_since_last_event,
        speed_kmh=float(speed_kmh),
        variance=sample_variance(trailing),
        skewness=skewness(trailing),
        prominence=float(prominence),
        search_window_s=window,
    )
