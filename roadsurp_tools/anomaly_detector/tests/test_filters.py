import math

import pytest
from roadsurp_tools.anomaly_detector.config import DetectorConfig
from roadsurp_tools.anomaly_detector.filters import (
    SignalConditioner,
    euler_vertical,
    rotation_from_gravity_and_field,
)
from roadsurp_tools.anomaly_detector.types import RawSample


CFG = DetectorConfig()


def sample(t, accel, mag=None, gyro=None):
    return RawSample(timestamp=t, accel=accel, gyro=gyro, mag=mag)


class TestGravityFilter:
    def test_first_sample_seeds_gravity(self):
        sc = SignalConditioner(CFG)
        linear, vertical, _ = sc.condition(sample(0.0, (0.0, 0.0, 9.81)))
        assert sc.state.gravity == pytest.approx([0.0, 0.0, 9.81])
        assert linear == pytest.approx((0.0, 0.0, 0.0))
        assert vertical == pytest.approx(0.0)

    def test_step_is_partially_absorbed(self):
        sc = SignalConditioner(CFG)
        sc.condition(sample(0.0, (0.0, 0.0, 9.81)))
        linear, vertical, _ = sc.condition(sample(0.01, (0.0, 0.0, 14.81)))
        # gravity moves by (1 - alpha) of the step
        assert sc.state.gravity[2] == pytest.approx(10.81)
        assert vertical == pytest.approx(4.0)

    def test_gravity_norm_is_clamped(self):
        sc = SignalConditioner(CFG)
        sc.condition(sample(0.0, (0.0, 0.0, 30.0)))
        norm = math.sqrt(sum(c * c for c in sc.state.gravity))
        assert norm == pytest.approx(CFG.max_gravity_norm)


class TestMalformedInput:
    @pytest.mark.parametrize("accel", [
        (float("nan"), 0.0, 9.81),
        (0.0, float("inf"), 9.81),
        (0.0, 0.0, 500.0),
    ])
    def test_rejected_without_touching_state(self, accel):
        sc = SignalConditioner(CFG)
        sc.condition(sample(0.0, (0.0, 0.0, 9.81)))
        before = list(sc.state.gravity)
        assert sc.condition(sample(0.01, accel)) is None
        assert sc.state.gravity == before
        assert sc.state.samples == 1

    def test_non_finite_magnetometer_rejected(self):
        sc = SignalConditioner(CFG)
        assert sc.condition(sample(0.0, (0.0, 0.0, 9.81), mag=(float("nan"), 0.0, 0.0))) is None
        assert sc.state.gravity is None


class TestReorientation:
    def test_flat_device_vertical_is_z(self):
        assert euler_vertical((0.3, -0.2, 1.5), (0.0, 0.0, 9.81)) == pytest.approx(1.5)

    def test_tilted_device_projects_on_gravity(self):
        sc = SignalConditioner(CFG)
        sc.condition(sample(0.0, (0.0, 6.0, 8.0)))
        _, vertical, _ = sc.condition(sample(0.01, (0.0, 6.6, 8.8)))
        assert vertical == pytest.approx(0.8)

    def test_device_on_its_side_is_defined(self):
        # Both gy and gz are zero: roll is undefined, output must still be finite
        v = euler_vertical((1.0, 0.0, 0.0), (9.81, 0.0, 0.0))
        assert v == pytest.approx(1.0)

    def test_downward_jolt_is_negative(self):
        sc = SignalConditioner(CFG)
        sc.condition(sample(0.0, (0.0, 0.0, 9.81)))
        _, vertical, _ = sc.condition(sample(0.01, (0.0, 0.0, 5.81)))
        assert vertical < 0


class TestRotation:
    def test_flat_device_pointing_north_is_identity(self):
        rot = rotation_from_gravity_and_field((0.0, 0.0, 9.81), (0.0, 30.0, -40.0))
        assert rot is not None
        assert rot.tolist()[0] == pytest.approx([1.0, 0.0, 0.0])
        assert rot.tolist()[1] == pytest.approx([0.0, 1.0, 0.0])
        assert rot.tolist()[2] == pytest.approx([0.0, 0.0, 1.0])

    def test_field_parallel_to_gravity_returns_none(self):
        assert rotation_from_gravity_and_field((0.0, 0.0, 9.81), (0.0, 0.0, -40.0)) is None

    def test_magnetometer_path_matches_euler_vertical(self):
        with_mag = SignalConditioner(CFG)
        without = SignalConditioner(CFG)
        for t, z in [(0.0, 9.81), (0.01, 12.0), (0.02, 8.0)]:
            a = with_mag.condition(sample(t, (0.0, 0.0, z), mag=(0.0, 30.0, -40.0)))
            b = without.condition(sample(t, (0.0, 0.0, z)))
        assert a[1] == pytest.approx(b[1])
        assert a[2] is not None
        assert b[2] is None
