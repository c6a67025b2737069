"""Road anomaly pipeline: the public entry point of the detector.

One instance owns all mutable state. Motion samples drive the pipeline
synchronously; location fixes may arrive from another thread and only touch
the speed estimator and the latest speed/position cell, both guarded by a lock.
Timestamps are always supplied by the caller.
"""

import threading
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional

import structlog

from roadsurp_tools.anomaly_detector.config import DetectorConfig
from roadsurp_tools.anomaly_detector.detector import RoadEventDetector
from roadsurp_tools.anomaly_detector.filters import SignalConditioner
from roadsurp_tools.anomaly_detector.speed import SpeedEstimator
from roadsurp_tools.anomaly_detector.thresholds import lookup_profile
from roadsurp_tools.anomaly_detector.types import (
    ConditionedReading,
    LocationFix,
    MountPlacement,
    RawSample,
    RoadEvent,
    VehicleClass,
)

log = structlog.get_logger()


@dataclass(frozen=True)
class LocationState:
    lat: float = 0.0
    lon: float = 0.0
    accuracy_m: float = 0.0
    speed_kmh: float = 0.0
    avg_speed_kmh: float = 0.0
    timestamp: Optional[float] = None


class RoadAnomalyPipeline:
    """Classifies road-surface anomalies from motion samples and location fixes."""

    def __init__(
        self,
        cfg: DetectorConfig = None,
        vehicle_class: VehicleClass = VehicleClass.TWO_WHEELER_SCOOTY,
        mount_placement: MountPlacement = MountPlacement.MOUNTER,
        on_reading: Optional[Callable[[ConditionedReading], None]] = None,
        on_event: Optional[Callable[[RoadEvent], None]] = None,
    ):
        self.cfg = cfg if cfg is not None else DetectorConfig()
        self.on_reading = on_reading
        self.on_event = on_event

        self._lock = threading.Lock()
        self._conditioner = SignalConditioner(self.cfg)
        self._speed = SpeedEstimator(self.cfg)
        self._location = LocationState()
        self._detector = RoadEventDetector(self.cfg)
        self._outbox = deque(maxlen=self.cfg.outbox_size)
        self._running = True
        self._latest_reading: Optional[ConditionedReading] = None
        self._last_motion_t: Optional[float] = None
        self._last_gyro: Optional[tuple] = None
        self.configure(vehicle_class, mount_placement)

    # ── Lifecycle ─────────────────────────────────────────────────────────

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        self._running = True
        log.info("pipeline_started", warm_events=len(self._detector.event_history))

    def stop(self) -> None:
        """Halt sample intake. History and EventHistory are kept."""
        self._running = False
        log.info("pipeline_stopped", events=len(self._detector.event_history))

    def configure(self, vehicle_class, mount_placement) -> None:
        vehicle_class = VehicleClass(vehicle_class)
        mount_placement = MountPlacement(mount_placement)
        self._detector.profile = lookup_profile(vehicle_class, mount_placement)
        self.vehicle_class = vehicle_class
        self.mount_placement = mount_placement
        log.info("profile_configured",
                 vehicle_class=vehicle_class.value,
                 mount_placement=mount_placement.value,
                 speed_breaker_base=self._detector.profile.speed_breaker,
                 pothole_base=self._detector.profile.pothole)

    def clear_history(self, reset_signal: bool = False) -> None:
        """Reset EventHistory, noise baseline and the last-event timer.

        With reset_signal=True the gravity filter, history buffers and speed
        state are reset as well, giving a cold restart.
        """
        self._detector.clear(reset_buffers=reset_signal)
        if reset_signal:
            self._conditioner.reset()
            with self._lock:
                self._speed.reset()
                self._location = LocationState()
            self._latest_reading = None
            self._last_motion_t = None
            self._last_gyro = None
        log.info("history_cleared", reset_signal=reset_signal)

    # ── Inputs ────────────────────────────────────────────────────────────

    def ingest_motion_sample(self, timestamp: float, accel, gyro=None, mag=None) -> Optional[RoadEvent]:
        """Condition, buffer, detect and classify one accelerometer sample."""
        if not self._running:
            return None

        sample = RawSample(
            timestamp=timestamp,
            accel=tuple(accel),
            gyro=tuple(gyro) if gyro is not None else None,
            mag=tuple(mag) if mag is not None else None,
        )
        if self._last_motion_t is not None and timestamp < self._last_motion_t:
            log.debug("sample_dropped", reason="out_of_order", t=timestamp)
            return None
        conditioned = self._conditioner.condition(sample)
        if conditioned is None:
            log.debug("sample_dropped", reason="malformed", t=timestamp)
            return None
        linear, vertical, earth = conditioned

        dt = timestamp - self._last_motion_t if self._last_motion_t is not None else 0.0
        with self._lock:
            if earth is not None:
                self._speed.integrate(dt, earth[0], earth[1])
            location = self._location
        self._last_motion_t = timestamp

        if sample.gyro is not None:
            self._last_gyro = sample.gyro
        reading = ConditionedReading(
            timestamp=timestamp,
            linear_accel=linear,
            vertical=vertical,
            angular_rate=self._last_gyro,
            speed_kmh=location.speed_kmh,
            avg_speed_kmh=location.avg_speed_kmh,
            lat=location.lat,
            lon=location.lon,
            accuracy_m=location.accuracy_m,
        )
        self._latest_reading = reading

        event = self._detector.process(reading)
        if self.on_reading is not None:
            self.on_reading(reading)
        if event is not None:
            self._emit(event)
        return event

    def ingest_location(self, timestamp: float, lat: float, lon: float, accuracy: float,
                        reported_speed: Optional[float] = None) -> bool:
        """Update speed/position from a fix (reported_speed in m/s). Returns False if rejected."""
        fix = LocationFix(timestamp, lat, lon, accuracy, reported_speed)
        with self._lock:
            if not self._speed.update(fix):
                return False
            self._location = LocationState(
                lat=lat,
                lon=lon,
                accuracy_m=accuracy,
                speed_kmh=self._speed.current_kmh(),
                avg_speed_kmh=self._speed.average_kmh(),
                timestamp=timestamp,
            )
        return True

    def flush(self) -> list:
        """Resolve pending candidates at end of stream."""
        events = self._detector.flush()
        for event in events:
            self._emit(event)
        return events

    # ── Outputs ───────────────────────────────────────────────────────────

    def _emit(self, event: RoadEvent) -> None:
        log.info("event_emitted",
                 type=event.type.value,
                 t=event.timestamp,
                 confidence=round(event.confidence, 3),
                 vertical=round(event.vertical, 3),
                 speed_kmh=round(event.speed_kmh, 1))
        if self.on_event is not None:
            self.on_event(event)
        else:
            self._outbox.append(event)

    def events(self):
        """Yield events emitted since the previous call.

        Only used when no on_event callback is set. The queue keeps the newest
        cfg.outbox_size events and drops the oldest beyond that.
        """
        while self._outbox:
            yield self._outbox.popleft()

    def event_history(self) -> list:
        return self._detector.event_history.all()

    def current_thresholds(self) -> tuple:
        """(speed_breaker_threshold, pothole_threshold) at the current average speed."""
        with self._lock:
            avg_speed = self._location.avg_speed_kmh
        return self._detector.thresholds(avg_speed)

    def latest_reading(self) -> Optional[ConditionedReading]:
        return self._latest_reading

    def average_speed_kmh(self) -> float:
        with self._lock:
            return self._location.avg_speed_kmh

    @staticmethod
    def confirm_event(event: RoadEvent) -> RoadEvent:
        return event.confirmed()
