import numpy as np
import pytest
from roadsurp_tools.anomaly_detector.config import DetectorConfig
from roadsurp_tools.anomaly_detector.thresholds import (
    DEFAULT_PROFILE,
    NoiseBaseline,
    adaptive_threshold,
    available_placements,
    compute_thresholds,
    lookup_profile,
)
from roadsurp_tools.anomaly_detector.types import EventType, MountPlacement, VehicleClass


CFG = DetectorConfig()


class TestProfiles:
    def test_known_pair(self):
        p = lookup_profile(VehicleClass.TWO_WHEELER_SCOOTY, MountPlacement.MOUNTER)
        assert (p.speed_breaker, p.pothole) == (1.8, 0.714)

    def test_car_windshield(self):
        p = lookup_profile(VehicleClass.FOUR_WHEELER_CAR, MountPlacement.WINDSHIELD)
        assert p.base_for(EventType.POTHOLE) == 0.41

    def test_missing_pair_falls_back(self):
        p = lookup_profile(VehicleClass.FOUR_WHEELER_CAR, MountPlacement.MOUNTER)
        assert p == DEFAULT_PROFILE

    def test_base_for_rejects_normal(self):
        with pytest.raises(ValueError):
            DEFAULT_PROFILE.base_for(EventType.NORMAL)

    def test_available_placements(self):
        assert available_placements(VehicleClass.TWO_WHEELER_BIKE) == (
            MountPlacement.MOUNTER, MountPlacement.POCKET)


class TestAdaptiveThreshold:
    def test_constant_below_breakpoint(self):
        values = [adaptive_threshold(1.8, v, cfg=CFG) for v in np.linspace(0, 20, 21)]
        assert all(v == pytest.approx(1.8) for v in values)

    def test_linear_above_breakpoint(self):
        # 1.8 + (60 - 20) * 0.015
        assert adaptive_threshold(1.8, 60.0, cfg=CFG) == pytest.approx(2.4)

    def test_monotonic_in_speed(self):
        speeds = np.linspace(0, 200, 401)
        values = [adaptive_threshold(0.714, v, noise_factor=1.3, cfg=CFG) for v in speeds]
        assert all(b >= a for a, b in zip(values, values[1:]))

    def test_noise_never_lowers_threshold(self):
        assert adaptive_threshold(1.8, 10.0, noise_factor=0.2, cfg=CFG) == pytest.approx(1.8)
        assert adaptive_threshold(1.8, 10.0, noise_factor=1.5, cfg=CFG) == pytest.approx(2.7)

    def test_clamped_to_bounded_multiple(self):
        assert adaptive_threshold(1.0, 5000.0, noise_factor=10.0, cfg=CFG) == pytest.approx(
            CFG.threshold_max_factor)

    def test_compute_thresholds_pair(self):
        sb, ph = compute_thresholds(DEFAULT_PROFILE, 10.0, cfg=CFG)
        assert (sb, ph) == (pytest.approx(1.73), pytest.approx(0.816))


class TestNoiseBaseline:
    def test_ignores_large_values(self):
        nb = NoiseBaseline(ceiling=0.5, alpha=0.1, reference=0.2)
        nb.update(3.0)
        assert nb.updates == 0
        assert nb.factor() == 1.0

    def test_noisy_mount_raises_factor(self):
        nb = NoiseBaseline(ceiling=0.5, alpha=0.1, reference=0.2)
        for _ in range(200):
            nb.update(0.4)
        assert nb.level == pytest.approx(0.4)
        assert nb.factor() == pytest.approx(2.0)

    def test_reset(self):
        nb = NoiseBaseline()
        nb.update(0.3)
        nb.reset()
        assert nb.level == 0.0 and nb.updates == 0
