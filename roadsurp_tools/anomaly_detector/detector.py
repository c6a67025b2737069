"""Per-reading orchestration: history writes, Phase 1 detection, deferred Phase 2 resolution.

Phase 1 looks at the reading `peak_neighbors` samples behind the newest one,
so the local-peak test has neighbours on both sides. Each candidate then waits
in a FIFO until the vertical history covers its forward search window, and is
resolved into features and a classification. At most one event is emitted per
processed reading.
"""

from collections import deque
from typing import Optional

import structlog

from roadsurp_tools.anomaly_detector.candidates import Candidate, detect_candidate, within_min_gap
from roadsurp_tools.anomaly_detector.cascade import classify_event
from roadsurp_tools.anomaly_detector.config import DetectorConfig
from roadsurp_tools.anomaly_detector.features import extract_features, search_window_s
from roadsurp_tools.anomaly_detector.history import BoundedTimeWindow, EventHistory
from roadsurp_tools.anomaly_detector.thresholds import (
    DEFAULT_PROFILE,
    NoiseBaseline,
    ThresholdProfile,
    compute_thresholds,
)
from roadsurp_tools.anomaly_detector.types import ConditionedReading, EventType, RoadEvent

log = structlog.get_logger()


class RoadEventDetector:
    """Owns the history buffers, noise baseline, pending candidates and EventHistory."""

    def __init__(self, cfg: DetectorConfig = None, profile: ThresholdProfile = None):
        self.cfg = cfg if cfg is not None else DetectorConfig()
        self.profile = profile if profile is not None else DEFAULT_PROFILE
        self.vertical_history = BoundedTimeWindow(self.cfg.vertical_history_s)
        self.reading_history = BoundedTimeWindow(self.cfg.reading_history_s)
        self.noise = NoiseBaseline(self.cfg.noise_ceiling, self.cfg.noise_alpha, self.cfg.noise_reference)
        self.event_history = EventHistory()
        self.last_event_time: Optional[float] = None
        self._pending = deque()
        self._readings_since_clear = 0

    @property
    def pending(self) -> list:
        return list(self._pending)

    def thresholds(self, avg_speed_kmh: float) -> tuple:
        return compute_thresholds(self.profile, avg_speed_kmh, self.noise.factor(), self.cfg)

    def clear(self, reset_buffers: bool = False) -> None:
        """Forget events, noise baseline, spacing timer and pending candidates."""
        self.event_history.clear()
        self.noise.reset()
        self.last_event_time = None
        self._pending.clear()
        self._readings_since_clear = 0
        if reset_buffers:
            self.vertical_history.clear()
            self.reading_history.clear()

    def process(self, reading: ConditionedReading) -> Optional[RoadEvent]:
        if not self.reading_history.append(reading.timestamp, reading):
            log.debug("reading_dropped", reason="out_of_order", t=reading.timestamp)
            return None
        self.vertical_history.append(reading.timestamp, reading.vertical)
        self._readings_since_clear += 1
        self.noise.update(reading.vertical)

        candidate = self._detect()
        if candidate is not None:
            self._pending.append(candidate)
            log.debug("candidate_detected",
                      t=candidate.timestamp,
                      candidate_type=candidate.candidate_type.value,
                      vertical=round(candidate.reading.vertical, 3),
                      prominence=round(candidate.prominence, 3))

        while self._pending and reading.timestamp >= self._pending[0].resolve_at:
            event = self._resolve(self._pending.popleft())
            if event is not None:
                return event
        return None

    def flush(self) -> list:
        """Resolve every pending candidate with the history available now."""
        events = []
        while self._pending:
            event = self._resolve(self._pending.popleft())
            if event is not None:
                events.append(event)
        return events

    def _detect(self) -> Optional[Candidate]:
        k = self.cfg.peak_neighbors
        if self._readings_since_clear < self.cfg.warmup_readings + k:
            return None
        neighborhood = [r for _, r in self.reading_history.last(2 * k + 1)]
        if len(neighborhood) < 2 * k + 1:
            return None

        center = neighborhood[k]
        trailing = [v for _, v in self.vertical_history.between(
            center.timestamp - self.cfg.prominence_window_s, center.timestamp)]
        return detect_candidate(
            neighborhood,
            trailing,
            self.thresholds(center.avg_speed_kmh),
            self.last_event_time,
            search_window_s(center.speed_kmh, self.cfg),
            self.cfg,
        )

    def _resolve(self, candidate: Candidate) -> Optional[RoadEvent]:
        cfg = self.cfg
        if within_min_gap(candidate.timestamp, self.last_event_time, cfg):
            log.debug("candidate_discarded", reason="min_gap", t=candidate.timestamp)
            return None

        reading = candidate.reading
        elapsed = None
        if self.last_event_time is not None:
            elapsed = candidate.timestamp - self.last_event_time

        times, values = self.vertical_history.arrays()
        features = extract_features(
            times, values,
            t_detect=candidate.timestamp,
            z_detect=reading.vertical,
            speed_kmh=reading.speed_kmh,
            prominence=candidate.prominence,
            time_since_last_event=elapsed,
            cfg=cfg,
        )
        recent = self.event_history.since(candidate.timestamp - cfg.broken_patch_window_s)
        result = classify_event(features, candidate.candidate_type, candidate.timestamp, recent, cfg)

        if result.event_type == EventType.NORMAL:
            log.debug("candidate_rejected", stage=result.stage, t=candidate.timestamp)
            return None
        if result.event_type == EventType.BROKEN_PATCH:
            log.debug("broken_patch_upgrade", t=candidate.timestamp,
                      candidate_type=candidate.candidate_type.value)

        event = RoadEvent(
            type=result.event_type,
            lat=reading.lat,
            lon=reading.lon,
            timestamp=candidate.timestamp,
            confidence=result.confidence,
            vertical=reading.vertical,
            speed_kmh=reading.speed_kmh,
            features=features,
        )
        self.event_history.append(event)
        self.last_event_time = candidate.timestamp
        return event
