"""Phase 2 decision procedure: ordered gates producing a type and a confidence."""

from itertools import combinations
from typing import Optional

from roadsurp_tools.anomaly_detector.config import DetectorConfig
from roadsurp_tools.anomaly_detector.speed import haversine_m
from roadsurp_tools.anomaly_detector.types import ClassificationResult, EventFeatures, EventType

_IMPULSE_TYPES = (EventType.SPEED_BREAKER, EventType.POTHOLE)


def base_reliability(speed_kmh: float, cfg: DetectorConfig = None) -> float:
    """Speed-dependent starting confidence, maximal inside the optimal band."""
    if cfg is None:
        cfg = DetectorConfig()
    lo, hi = cfg.optimal_speed_band_kmh
    if speed_kmh < lo:
        frac = max(speed_kmh, 0.0) / lo if lo > 0 else 1.0
        return cfg.base_confidence_slow + (cfg.base_confidence_optimal - cfg.base_confidence_slow) * frac
    if speed_kmh <= hi:
        return cfg.base_confidence_optimal
    decayed = cfg.base_confidence_optimal - (speed_kmh - hi) * cfg.base_confidence_decay_per_kmh
    return max(cfg.base_confidence_floor, decayed)


def _is_valid(f: EventFeatures, cfg: DetectorConfig) -> bool:
    if not cfg.min_valid_speed_kmh < f.speed_kmh < cfg.max_valid_speed_kmh:
        return False
    if not cfg.min_valid_amplitude < abs(f.z_t) < cfg.max_valid_amplitude:
        return False
    if f.time_since_last_event is not None and f.time_since_last_event <= cfg.min_valid_elapsed_s:
        return False
    return True


def _signature(f: EventFeatures, candidate: EventType, cfg: DetectorConfig) -> tuple:
    """(multiplier, resulting type) from the shape around the peak."""
    z = f.z_t
    sign = 1.0 if candidate == EventType.SPEED_BREAKER else -1.0
    flipped = EventType.POTHOLE if candidate == EventType.SPEED_BREAKER else EventType.SPEED_BREAKER

    def opposite(x: Optional[float]) -> bool:
        return x is not None and x * sign < 0

    def strong_opposite(x: Optional[float]) -> bool:
        return opposite(x) and abs(x) >= cfg.signature_min_ratio * abs(z)

    if z * sign <= 0:
        return cfg.signature_flip_penalty, flipped

    # Classic shape: peak then strong rebound of opposite polarity
    if strong_opposite(f.z_next):
        return cfg.signature_boost, candidate

    # Reversed shape: the opposite excursion came first
    recent = (f.time_since_last_event is not None
              and f.time_since_last_event < cfg.reversal_max_elapsed_s)
    if strong_opposite(f.z_prev) or (opposite(f.z_prev) and recent):
        return cfg.signature_flip_penalty, flipped

    if f.z_next is None and f.z_prev is None:
        return cfg.signature_missing_penalty, candidate
    return cfg.signature_any_extremum_bonus, candidate


def _statistics(f: EventFeatures, cfg: DetectorConfig) -> float:
    mult = 1.0
    if f.variance is not None:
        if f.variance < cfg.min_variance or f.variance > cfg.max_variance:
            mult *= cfg.variance_penalty
    if f.skewness is not None and abs(f.skewness) > cfg.max_abs_skewness:
        mult *= cfg.skewness_penalty
    if f.prominence < cfg.low_prominence:
        mult *= cfg.low_prominence_penalty
    elif f.prominence > cfg.high_prominence:
        mult *= cfg.high_prominence_boost
    return mult


def _temporal(f: EventFeatures, cfg: DetectorConfig) -> float:
    elapsed = f.time_since_last_event
    if elapsed is None:
        return 1.0
    if elapsed < cfg.cluster_interval_s:
        return cfg.cluster_penalty
    if elapsed < cfg.near_interval_s:
        return cfg.near_penalty
    return 1.0


def is_broken_patch(recent_events, timestamp: float, cfg: DetectorConfig = None) -> bool:
    """True when the events of the trailing window look like a stretch of broken road.

    Requires at least `broken_patch_min_events` events in the window that
    alternate between speed breakers and potholes, with high mean confidence,
    low mean speed and a small mean pairwise distance.
    """
    if cfg is None:
        cfg = DetectorConfig()
    start = timestamp - cfg.broken_patch_window_s
    window = [e for e in recent_events
              if start <= e.timestamp <= timestamp and e.type != EventType.NORMAL]
    if len(window) < cfg.broken_patch_min_events:
        return False

    impulses = [e.type for e in window if e.type in _IMPULSE_TYPES]
    alternations = sum(1 for a, b in zip(impulses, impulses[1:]) if a != b)
    if alternations < cfg.broken_patch_min_alternations:
        return False

    n = len(window)
    if sum(e.confidence for e in window) / n <= cfg.broken_patch_min_confidence:
        return False
    if sum(e.speed_kmh for e in window) / n >= cfg.broken_patch_max_speed_kmh:
        return False

    distances = [haversine_m(a.lat, a.lon, b.lat, b.lon) for a, b in combinations(window, 2)]
    return sum(distances) / len(distances) < cfg.broken_patch_radius_m


def classify_event(
    features: EventFeatures,
    candidate_type: EventType,
    timestamp: float,
    recent_events=(),
    cfg: DetectorConfig = None,
) -> ClassificationResult:
    """Classify a Phase 1 candidate.

    Gates, in order:
      1. validity      out-of-bounds speed, amplitude or spacing gives Normal
      2. base          speed-dependent starting confidence
      3. signature     rebound shape; reversed shape flips the type
      4. statistics    variance, skewness and prominence
      5. temporal      penalty for clustering right after the previous event
      6. broken patch  trailing event cluster upgrades the type

    Confidence is the product of the stage values clamped to [0, 1]. The
    reported stage is "validity", "signature" or "broken_patch" when that gate
    decided the type, and "cascade" when the candidate type passed through.
    """
    if cfg is None:
        cfg = DetectorConfig()

    # ── Stage 1: Validity ─────────────────────────────────────────────────
    if not _is_valid(features, cfg):
        return ClassificationResult(
            event_type=EventType.NORMAL, confidence=cfg.invalid_confidence,
            candidate_type=candidate_type, stage="validity",
        )

    # ── Stage 2: Base reliability ─────────────────────────────────────────
    multipliers = {"base": base_reliability(features.speed_kmh, cfg)}

    # ── Stage 3: Signature ────────────────────────────────────────────────
    multipliers["signature"], event_type = _signature(features, candidate_type, cfg)

    # ── Stage 4: Statistical validation ───────────────────────────────────
    multipliers["statistics"] = _statistics(features, cfg)

    # ── Stage 5: Temporal consistency ─────────────────────────────────────
    multipliers["temporal"] = _temporal(features, cfg)

    confidence = 1.0
    for value in multipliers.values():
        confidence *= value
    confidence = min(max(confidence, 0.0), 1.0)

    # ── Stage 6: Broken patch upgrade ─────────────────────────────────────
    stage = "signature" if event_type != candidate_type else "cascade"
    if is_broken_patch(recent_events, timestamp, cfg):
        event_type = EventType.BROKEN_PATCH
        stage = "broken_patch"

    return ClassificationResult(
        event_type=event_type, confidence=confidence,
        candidate_type=candidate_type, stage=stage, multipliers=multipliers,
    )
