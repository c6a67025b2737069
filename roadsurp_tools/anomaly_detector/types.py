from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional


class EventType(str, Enum):
    SPEED_BREAKER = "speed_breaker"
    POTHOLE = "pothole"
    BROKEN_PATCH = "broken_patch"
    NORMAL = "normal"


class VehicleClass(str, Enum):
    TWO_WHEELER_SCOOTY = "two_wheeler_scooty"
    TWO_WHEELER_BIKE = "two_wheeler_bike"
    THREE_WHEELER_AUTO = "three_wheeler_auto"
    FOUR_WHEELER_CAR = "four_wheeler_car"


class MountPlacement(str, Enum):
    MOUNTER = "mounter"
    POCKET = "pocket"
    WINDSHIELD = "windshield"
    DASHBOARD = "dashboard"


@dataclass(frozen=True)
class RawSample:
    timestamp: float                    # seconds
    accel: tuple                        # m/s², includes gravity
    gyro: Optional[tuple] = None        # rad/s
    mag: Optional[tuple] = None         # µT


@dataclass(frozen=True)
class LocationFix:
    timestamp: float
    lat: float
    lon: float
    accuracy_m: float
    reported_speed_mps: Optional[float] = None


@dataclass(frozen=True)
class ConditionedReading:
    """One gravity-removed, reoriented sample merged with the latest speed/position."""
    timestamp: float
    linear_accel: tuple
    vertical: float
    angular_rate: Optional[tuple] = None
    speed_kmh: float = 0.0
    avg_speed_kmh: float = 0.0         # moving average, drives the thresholds
    lat: float = 0.0
    lon: float = 0.0
    accuracy_m: float = 0.0


@dataclass
class FilterState:
    """Gravity estimate plus, once a magnetometer sample was seen, the device→earth rotation."""
    gravity: Optional[list] = None      # [gx, gy, gz], None until the first valid sample
    rotation: Optional[list] = None     # 3x3 row-major, rows = east, north, up
    last_mag: Optional[tuple] = None
    samples: int = 0


@dataclass(frozen=True)
class EventFeatures:
    z_t: float                              # vertical value at detection
    z_next: Optional[float]                 # most significant extremum after detection
    z_prev: Optional[float]                 # most significant extremum before detection
    time_since_last_event: Optional[float]  # seconds, None when nothing was emitted yet
    speed_kmh: float
    variance: Optional[float]
    skewness: Optional[float]
    prominence: float
    search_window_s: float = 0.0


@dataclass(frozen=True)
class RoadEvent:
    type: EventType
    lat: float
    lon: float
    timestamp: float
    confidence: float
    vertical: float
    speed_kmh: float
    features: Optional[EventFeatures] = None

    def confirmed(self) -> "RoadEvent":
        """Copy with full confidence, for events a user confirmed."""
        return replace(self, confidence=1.0)


@dataclass
class ClassificationResult:
    event_type: EventType
    confidence: float                   # 0.0–1.0
    candidate_type: EventType
    stage: str                          # gate that made the final decision
    multipliers: dict = field(default_factory=dict)
