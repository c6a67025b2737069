import pytest
from roadsurp_tools.anomaly_detector.cascade import base_reliability, classify_event, is_broken_patch
from roadsurp_tools.anomaly_detector.config import DetectorConfig
from roadsurp_tools.anomaly_detector.tests.synthetic import LAT0, LON0
from roadsurp_tools.anomaly_detector.types import EventFeatures, EventType, RoadEvent


CFG = DetectorConfig()
SB, PH = EventType.SPEED_BREAKER, EventType.POTHOLE


def features(**overrides):
    values = dict(z_t=3.0, z_next=-2.5, z_prev=None, time_since_last_event=None,
                  speed_kmh=15.0, variance=0.5, skewness=0.5, prominence=0.9)
    values.update(overrides)
    return EventFeatures(**values)


def event(t, event_type, lat=LAT0, confidence=0.9, speed=15.0):
    return RoadEvent(type=event_type, lat=lat, lon=LON0, timestamp=t, confidence=confidence,
                     vertical=2.0, speed_kmh=speed)


class TestBaseReliability:
    @pytest.mark.parametrize("speed,expected", [
        (0.0, 0.7), (2.5, 0.8), (15.0, 0.9), (75.0, 0.7), (300.0, 0.5),
    ])
    def test_speed_curve(self, speed, expected):
        assert base_reliability(speed, CFG) == pytest.approx(expected)


class TestValidityGate:
    @pytest.mark.parametrize("overrides", [
        dict(speed_kmh=2.0),
        dict(speed_kmh=130.0),
        dict(z_t=0.2),
        dict(time_since_last_event=0.1),
    ])
    def test_out_of_bounds_is_normal(self, overrides):
        r = classify_event(features(**overrides), SB, 10.0, cfg=CFG)
        assert r.event_type == EventType.NORMAL
        assert r.confidence == pytest.approx(CFG.invalid_confidence)
        assert r.stage == "validity"


class TestSignature:
    def test_classic_speed_breaker(self):
        r = classify_event(features(), SB, 10.0, cfg=CFG)
        assert r.event_type == SB
        assert r.confidence == 1.0  # 0.9 * 1.15 * 1.1, clamped
        assert r.stage == "cascade"

    def test_classic_pothole(self):
        r = classify_event(features(z_t=-3.0, z_next=2.5), PH, 10.0, cfg=CFG)
        assert r.event_type == PH

    def test_opposite_extremum_first_flips_type(self):
        r = classify_event(features(z_next=None, z_prev=-2.0), SB, 10.0, cfg=CFG)
        assert r.event_type == PH
        assert r.stage == "signature"
        assert r.confidence == pytest.approx(0.9 * 0.75 * 1.1)

    def test_weak_reversal_flips_only_after_recent_event(self):
        weak = dict(z_next=None, z_prev=-0.5)
        assert classify_event(features(**weak), SB, 10.0, cfg=CFG).event_type == SB
        r = classify_event(features(time_since_last_event=2.5, **weak), SB, 10.0, cfg=CFG)
        assert r.event_type == PH

    def test_no_extrema_penalised(self):
        r = classify_event(features(z_next=None), SB, 10.0, cfg=CFG)
        assert r.event_type == SB
        assert r.confidence == pytest.approx(0.9 * 0.85 * 1.1)


class TestStatisticsAndTiming:
    def test_flat_variance_and_low_prominence_penalised(self):
        r = classify_event(features(variance=0.001, prominence=0.55), SB, 10.0, cfg=CFG)
        assert r.multipliers["statistics"] == pytest.approx(0.7 * 0.8)

    def test_missing_statistics_are_neutral(self):
        r = classify_event(features(variance=None, skewness=None, prominence=0.7), SB, 10.0, cfg=CFG)
        assert r.multipliers["statistics"] == 1.0

    @pytest.mark.parametrize("elapsed,expected", [(0.5, 0.8), (1.5, 0.9), (5.0, 1.0)])
    def test_temporal_penalty(self, elapsed, expected):
        r = classify_event(features(time_since_last_event=elapsed), SB, 10.0, cfg=CFG)
        assert r.multipliers["temporal"] == pytest.approx(expected)

    @pytest.mark.parametrize("overrides", [
        dict(),
        dict(z_next=None, z_prev=-2.0, variance=100.0, skewness=9.0, prominence=0.51,
             time_since_last_event=0.3, speed_kmh=110.0),
    ])
    def test_confidence_in_unit_interval(self, overrides):
        r = classify_event(features(**overrides), SB, 10.0, cfg=CFG)
        assert 0.0 <= r.confidence <= 1.0


class TestBrokenPatch:
    def test_alternating_cluster_upgrades(self):
        recent = [event(0.0, SB), event(5.0, PH), event(10.0, SB)]
        assert is_broken_patch(recent, 10.0, CFG)
        r = classify_event(features(time_since_last_event=5.0), PH, 15.0, recent, CFG)
        assert r.event_type == EventType.BROKEN_PATCH
        assert r.stage == "broken_patch"

    def test_needs_enough_events(self):
        assert not is_broken_patch([event(0.0, SB), event(5.0, PH)], 5.0, CFG)

    def test_needs_alternation(self):
        assert not is_broken_patch([event(0.0, SB), event(5.0, SB), event(10.0, SB)], 10.0, CFG)

    def test_events_far_apart_do_not_upgrade(self):
        # ~2 km between consecutive events
        recent = [event(0.0, SB, lat=LAT0), event(5.0, PH, lat=LAT0 + 0.018),
                  event(10.0, SB, lat=LAT0 + 0.036)]
        assert not is_broken_patch(recent, 10.0, CFG)

    def test_fast_driving_does_not_upgrade(self):
        recent = [event(0.0, SB, speed=40.0), event(5.0, PH, speed=40.0), event(10.0, SB, speed=40.0)]
        assert not is_broken_patch(recent, 10.0, CFG)

    def test_low_confidence_does_not_upgrade(self):
        recent = [event(0.0, SB, confidence=0.5), event(5.0, PH, confidence=0.5),
                  event(10.0, SB, confidence=0.5)]
        assert not is_broken_patch(recent, 10.0, CFG)

    def test_old_events_outside_window(self):
        recent = [event(0.0, SB), event(5.0, PH), event(10.0, SB)]
        assert not is_broken_patch(recent, 40.0, CFG)
