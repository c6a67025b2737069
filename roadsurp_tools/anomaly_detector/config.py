"""Detector tuning parameters and application configuration.

Loads from roadsurp.yaml if present, with environment variable overrides.
Environment variables use the pattern: ROADSURP_<KEY> (uppercase).
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path

import structlog
import yaml

from roadsurp_tools.anomaly_detector.types import MountPlacement, VehicleClass


@dataclass
class DetectorConfig:
    # Sampling
    sample_rate_hz: float = 60.0

    # Signal conditioning
    gravity_alpha: float = 0.8              # EMA coefficient for the gravity estimate
    max_abs_accel: float = 78.45            # m/s² (8 g); samples above are dropped
    min_gravity_norm: float = 4.9           # m/s²
    max_gravity_norm: float = 14.7          # m/s²

    # History buffers
    vertical_history_s: float = 3.0
    reading_history_s: float = 1.0

    # Speed estimation (km/h unless noted)
    speed_history_size: int = 10
    min_speed_kmh: float = 0.0
    max_speed_kmh: float = 200.0
    max_fix_accuracy_m: float = 50.0
    good_fix_accuracy_m: float = 5.0        # at or below this the GPS speed is trusted fully
    max_inertial_weight: float = 0.7

    # Adaptive threshold: Tt = T0 + (avg - L) * S when avg > B
    threshold_base_point_kmh: float = 20.0      # B
    threshold_lower_limit_kmh: float = 20.0     # L
    threshold_scaling: float = 0.015            # S
    threshold_min_factor: float = 0.5
    threshold_max_factor: float = 3.0

    # Ambient noise baseline
    noise_ceiling: float = 0.5              # only |z| below this updates the baseline
    noise_alpha: float = 0.01
    noise_reference: float = 0.2            # baseline at which the threshold starts growing
    warmup_readings: int = 30

    # Phase 1: candidate detection
    min_event_interval_s: float = 0.5
    prominence_window_s: float = 0.5
    min_prominence: float = 0.5
    peak_neighbors: int = 3                 # readings on each side for the local-peak test

    # Phase 2: feature extraction
    search_distance_m: float = 3.0          # road length spanned by the extremum search
    min_search_window_s: float = 0.3
    max_search_window_s: float = 1.0
    extremum_order: int = 1
    stats_window_samples: int = 90

    # Phase 2: validity gate
    min_valid_speed_kmh: float = 3.0
    max_valid_speed_kmh: float = 120.0
    min_valid_amplitude: float = 0.3
    max_valid_amplitude: float = 50.0
    min_valid_elapsed_s: float = 0.2
    invalid_confidence: float = 0.1

    # Phase 2: base reliability by speed
    optimal_speed_band_kmh: tuple = (5.0, 25.0)
    base_confidence_optimal: float = 0.9
    base_confidence_slow: float = 0.7
    base_confidence_decay_per_kmh: float = 0.004
    base_confidence_floor: float = 0.5

    # Phase 2: signature analysis
    signature_min_ratio: float = 0.3        # opposite extremum must reach this share of |z_t|
    signature_boost: float = 1.15
    signature_flip_penalty: float = 0.75
    signature_missing_penalty: float = 0.85
    signature_any_extremum_bonus: float = 1.05
    reversal_max_elapsed_s: float = 3.0

    # Phase 2: statistical validation
    min_variance: float = 0.01
    max_variance: float = 25.0
    variance_penalty: float = 0.7
    max_abs_skewness: float = 3.0
    skewness_penalty: float = 0.85
    low_prominence: float = 0.6
    high_prominence: float = 0.85
    low_prominence_penalty: float = 0.8
    high_prominence_boost: float = 1.1

    # Phase 2: temporal consistency
    cluster_interval_s: float = 1.0
    cluster_penalty: float = 0.8
    near_interval_s: float = 2.0
    near_penalty: float = 0.9

    # Broken patch upgrade
    broken_patch_window_s: float = 20.0
    broken_patch_min_events: int = 3
    broken_patch_min_alternations: int = 2
    broken_patch_min_confidence: float = 0.6
    broken_patch_max_speed_kmh: float = 25.0
    broken_patch_radius_m: float = 200.0

    # Output queue for events() when no on_event callback is set
    outbox_size: int = 256

    def __post_init__(self):
        if self.sample_rate_hz <= 0:
            raise ValueError(f"sample_rate_hz must be positive, got {self.sample_rate_hz}")
        if not 0.0 < self.gravity_alpha < 1.0:
            raise ValueError(f"gravity_alpha must be in (0, 1), got {self.gravity_alpha}")
        if self.outbox_size < 1:
            raise ValueError(f"outbox_size must be at least 1, got {self.outbox_size}")


@dataclass
class LoggingConfig:
    level: str = "info"
    format: str = "console"  # "console" or "json"


@dataclass
class ProfileSelection:
    vehicle_class: VehicleClass = VehicleClass.TWO_WHEELER_SCOOTY
    mount_placement: MountPlacement = MountPlacement.MOUNTER


@dataclass
class AppConfig:
    detector: DetectorConfig = field(default_factory=DetectorConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    profile: ProfileSelection = field(default_factory=ProfileSelection)


def _apply_section(target, values: dict) -> None:
    names = {f.name for f in fields(target)}
    for k, v in values.items():
        if k in names:
            if isinstance(getattr(target, k), tuple):
                v = tuple(v)
            setattr(target, k, v)


def _apply_env_overrides(config: AppConfig) -> None:
    """Override config values from environment variables."""
    mapping = {
        "ROADSURP_VEHICLE_CLASS": lambda v: setattr(config.profile, "vehicle_class", VehicleClass(v)),
        "ROADSURP_MOUNT_PLACEMENT": lambda v: setattr(config.profile, "mount_placement", MountPlacement(v)),
        "ROADSURP_SAMPLE_RATE_HZ": lambda v: setattr(config.detector, "sample_rate_hz", float(v)),
        "ROADSURP_MIN_EVENT_INTERVAL_S": lambda v: setattr(config.detector, "min_event_interval_s", float(v)),
        "ROADSURP_LOG_LEVEL": lambda v: setattr(config.logging, "level", v),
        "ROADSURP_LOG_FORMAT": lambda v: setattr(config.logging, "format", v),
    }
    for env_key, setter in mapping.items():
        val = os.environ.get(env_key)
        if val is not None:
            setter(val)


def load_config(config_path=None) -> AppConfig:
    """Load configuration from YAML file + environment overrides.

    Unknown vehicle or placement names raise ValueError.
    """
    config = AppConfig()

    if config_path is None:
        config_path = Path("roadsurp.yaml")
    else:
        config_path = Path(config_path)

    if config_path.exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}

        if "detector" in raw:
            _apply_section(config.detector, raw["detector"])
        if "logging" in raw:
            _apply_section(config.logging, raw["logging"])
        if "profile" in raw:
            profile = raw["profile"]
            if "vehicle_class" in profile:
                config.profile.vehicle_class = VehicleClass(profile["vehicle_class"])
            if "mount_placement" in profile:
                config.profile.mount_placement = MountPlacement(profile["mount_placement"])

    # Environment overrides always win
    _apply_env_overrides(config)
    # Re-run dataclass validation on the merged values
    config.detector.__post_init__()
    return config


def setup_logging(config: LoggingConfig) -> None:
    """Configure structlog based on the logging config."""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if config.format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(config.level.upper()),
        ),
    )
