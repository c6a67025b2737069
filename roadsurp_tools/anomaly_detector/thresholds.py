"""Per-(vehicle, mount) base thresholds and the speed/noise adaptive threshold."""

from dataclasses import dataclass

from roadsurp_tools.anomaly_detector.config import DetectorConfig
from roadsurp_tools.anomaly_detector.types import EventType, MountPlacement, VehicleClass


@dataclass(frozen=True)
class ThresholdProfile:
    speed_breaker: float
    pothole: float

    def base_for(self, event_type: EventType) -> float:
        if event_type == EventType.SPEED_BREAKER:
            return self.speed_breaker
        if event_type == EventType.POTHOLE:
            return self.pothole
        raise ValueError(f"No threshold for {event_type}")


# Initial thresholds measured per vehicle and phone placement (m/s² of vertical acceleration)
THRESHOLD_PROFILES = {
    (VehicleClass.TWO_WHEELER_SCOOTY, MountPlacement.MOUNTER): ThresholdProfile(1.8, 0.714),
    (VehicleClass.TWO_WHEELER_SCOOTY, MountPlacement.POCKET): ThresholdProfile(1.57, 0.612),
    (VehicleClass.TWO_WHEELER_BIKE, MountPlacement.MOUNTER): ThresholdProfile(1.73, 0.816),
    (VehicleClass.TWO_WHEELER_BIKE, MountPlacement.POCKET): ThresholdProfile(1.53, 0.714),
    (VehicleClass.THREE_WHEELER_AUTO, MountPlacement.WINDSHIELD): ThresholdProfile(1.47, 0.612),
    (VehicleClass.FOUR_WHEELER_CAR, MountPlacement.WINDSHIELD): ThresholdProfile(1.08, 0.41),
    (VehicleClass.FOUR_WHEELER_CAR, MountPlacement.DASHBOARD): ThresholdProfile(1.08, 0.41),
}

DEFAULT_PROFILE = ThresholdProfile(1.73, 0.816)

AVAILABLE_PLACEMENTS = {
    VehicleClass.TWO_WHEELER_SCOOTY: (MountPlacement.MOUNTER, MountPlacement.POCKET),
    VehicleClass.TWO_WHEELER_BIKE: (MountPlacement.MOUNTER, MountPlacement.POCKET),
    VehicleClass.THREE_WHEELER_AUTO: (MountPlacement.WINDSHIELD, MountPlacement.POCKET),
    VehicleClass.FOUR_WHEELER_CAR: (MountPlacement.WINDSHIELD, MountPlacement.DASHBOARD,
                                    MountPlacement.POCKET),
}


def lookup_profile(vehicle: VehicleClass, placement: MountPlacement) -> ThresholdProfile:
    """Profile for the pair, or DEFAULT_PROFILE when the table has no entry."""
    return THRESHOLD_PROFILES.get((vehicle, placement), DEFAULT_PROFILE)


def available_placements(vehicle: VehicleClass) -> tuple:
    return AVAILABLE_PLACEMENTS.get(vehicle, ())


class NoiseBaseline:
    """Slow running estimate of low-amplitude |vertical| acceleration."""

    def __init__(self, ceiling: float = 0.5, alpha: float = 0.01, reference: float = 0.2):
        self.ceiling = ceiling
        self.alpha = alpha
        self.reference = reference
        self.level = 0.0
        self.updates = 0

    def update(self, vertical: float) -> None:
        magnitude = abs(vertical)
        if magnitude >= self.ceiling:
            return
        if self.updates == 0:
            self.level = magnitude
        else:
            self.level = (1.0 - self.alpha) * self.level + self.alpha * magnitude
        self.updates += 1

    def factor(self) -> float:
        """Threshold multiplier, never below 1."""
        if self.reference <= 0:
            return 1.0
        return max(1.0, self.level / self.reference)

    def reset(self) -> None:
        self.level = 0.0
        self.updates = 0


def adaptive_threshold(base: float, avg_speed_kmh: float, noise_factor: float = 1.0,
                       cfg: DetectorConfig = None) -> float:
    """Tt = T0 + (avg - L)·S when avg > B, else T0; scaled by noise and clamped to [min, max]·T0."""
    if cfg is None:
        cfg = DetectorConfig()
    threshold = base
    if avg_speed_kmh > cfg.threshold_base_point_kmh:
        threshold = base + max(0.0, avg_speed_kmh - cfg.threshold_lower_limit_kmh) * cfg.threshold_scaling
    threshold *= max(1.0, noise_factor)
    lo = cfg.threshold_min_factor * base
    hi = cfg.threshold_max_factor * base
    return min(max(threshold, lo), hi)


def compute_thresholds(profile: ThresholdProfile, avg_speed_kmh: float, noise_factor: float = 1.0,
                       cfg: DetectorConfig = None) -> tuple:
    """(speed_breaker_threshold, pothole_threshold); the pothole one is a magnitude."""
    return (
        adaptive_threshold(profile.speed_breaker, avg_speed_kmh, noise_factor, cfg),
        adaptive_threshold(profile.pothole, avg_speed_kmh, noise_factor, cfg),
    )
