"""Gravity removal and mounting-invariant reorientation of accelerometer samples."""

import math
from typing import Optional

import numpy as np

from roadsurp_tools.anomaly_detector.config import DetectorConfig
from roadsurp_tools.anomaly_detector.types import FilterState, RawSample

_EPS = 1e-9


def is_finite_vector(v) -> bool:
    if v is None or len(v) != 3:
        return False
    return all(math.isfinite(float(c)) for c in v)


def rotation_from_gravity_and_field(gravity, field) -> Optional[np.ndarray]:
    """Build the device→earth rotation (rows: east, north, up).

    Returns None when the field is (nearly) parallel to gravity, or either
    vector is degenerate, so the caller can fall back to Euler angles.
    """
    a = np.asarray(gravity, dtype=float)
    e = np.asarray(field, dtype=float)
    a_norm = np.linalg.norm(a)
    if a_norm < _EPS:
        return None
    h = np.cross(e, a)
    h_norm = np.linalg.norm(h)
    # Device close to free fall or field aligned with gravity
    if h_norm < 0.1:
        return None
    h = h / h_norm
    up = a / a_norm
    m = np.cross(up, h)
    return np.vstack([h, m, up])


def euler_vertical(linear, gravity) -> float:
    """Project linear acceleration on the vertical using pitch/roll from gravity.

    a'z = -ax·sin(β) + ay·cos(β)·sin(θ) + az·cos(β)·cos(θ)
    with θ = atan2(gy, gz) and β = atan2(-gx, sqrt(gy² + gz²)).
    """
    ax, ay, az = linear
    gx, gy, gz = gravity
    r = math.sqrt(gy * gy + gz * gz)
    # atan2(0, 0) is defined but the roll is meaningless there; pin it to 0
    theta = math.atan2(gy, gz) if r > _EPS else 0.0
    beta = math.atan2(-gx, r)
    return (-ax * math.sin(beta)
            + ay * math.cos(beta) * math.sin(theta)
            + az * math.cos(beta) * math.cos(theta))


class SignalConditioner:
    """Maintains FilterState and turns a RawSample into linear + vertical acceleration.

    Samples with non-finite or out-of-range values are rejected before they
    touch the gravity estimate; condition() returns None for them.
    """

    def __init__(self, cfg: DetectorConfig = None):
        self.cfg = cfg if cfg is not None else DetectorConfig()
        self.state = FilterState()

    def reset(self) -> None:
        self.state = FilterState()

    def accepts(self, sample: RawSample) -> bool:
        if not math.isfinite(sample.timestamp) or not is_finite_vector(sample.accel):
            return False
        if max(abs(float(c)) for c in sample.accel) > self.cfg.max_abs_accel:
            return False
        if sample.gyro is not None and not is_finite_vector(sample.gyro):
            return False
        if sample.mag is not None and not is_finite_vector(sample.mag):
            return False
        return True

    def _update_gravity(self, accel) -> None:
        alpha = self.cfg.gravity_alpha
        g = self.state.gravity
        if g is None:
            # Seed with the first sample instead of ramping up from zero
            candidate = [float(c) for c in accel]
        else:
            candidate = [alpha * g[i] + (1.0 - alpha) * float(accel[i]) for i in range(3)]

        norm = math.sqrt(sum(c * c for c in candidate))
        if norm < _EPS:
            if g is None:
                self.state.gravity = [0.0, 0.0, self.cfg.min_gravity_norm]
            return
        clamped = min(max(norm, self.cfg.min_gravity_norm), self.cfg.max_gravity_norm)
        if clamped != norm:
            candidate = [c * clamped / norm for c in candidate]
        self.state.gravity = candidate

    def condition(self, sample: RawSample) -> Optional[tuple]:
        """Return (linear_accel, vertical, earth_accel) or None for a rejected sample.

        earth_accel is (east, north, up) when a rotation is available, else None.
        """
        if not self.accepts(sample):
            return None

        self._update_gravity(sample.accel)
        g = self.state.gravity
        linear = tuple(float(sample.accel[i]) - g[i] for i in range(3))

        if sample.mag is not None:
            self.state.last_mag = tuple(float(c) for c in sample.mag)
        if self.state.last_mag is not None:
            rot = rotation_from_gravity_and_field(g, self.state.last_mag)
            self.state.rotation = rot.tolist() if rot is not None else None
        self.state.samples += 1

        if self.state.rotation is not None:
            earth = np.asarray(self.state.rotation) @ np.asarray(linear)
            return linear, float(earth[2]), (float(earth[0]), float(earth[1]), float(earth[2]))
        return linear, euler_vertical(linear, g), None
