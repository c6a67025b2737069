"""Road anomaly detector: speed breakers, potholes and broken patches from phone motion + location streams."""

from roadsurp_tools.anomaly_detector.cascade import classify_event
from roadsurp_tools.anomaly_detector.config import AppConfig, DetectorConfig, load_config
from roadsurp_tools.anomaly_detector.features import extract_features
from roadsurp_tools.anomaly_detector.pipeline import RoadAnomalyPipeline
from roadsurp_tools.anomaly_detector.types import (
    ConditionedReading,
    EventFeatures,
    EventType,
    MountPlacement,
    RawSample,
    RoadEvent,
    VehicleClass,
)

__all__ = [
    "RawSample",
    "ConditionedReading",
    "EventFeatures",
    "RoadEvent",
    "EventType",
    "VehicleClass",
    "MountPlacement",
    "DetectorConfig",
    "AppConfig",
    "load_config",
    "extract_features",
    "classify_event",
    "RoadAnomalyPipeline",
]
