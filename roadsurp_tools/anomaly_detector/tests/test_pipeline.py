"""End-to-end tests: raw accelerometer + location records → RoadAnomalyPipeline."""

import pytest
from roadsurp_tools.anomaly_detector.config import DetectorConfig
from roadsurp_tools.anomaly_detector.pipeline import RoadAnomalyPipeline
from roadsurp_tools.anomaly_detector.tests.synthetic import (
    GRAVITY,
    LAT0,
    LON0,
    make_raw_drive,
    replay,
)
from roadsurp_tools.anomaly_detector.types import EventType, MountPlacement, VehicleClass


class TestRawDrive:
    def test_two_speed_breakers(self):
        pipeline = RoadAnomalyPipeline()
        events = replay(pipeline, make_raw_drive())
        assert [e.type for e in events] == [EventType.SPEED_BREAKER] * 2
        assert events[0].timestamp == pytest.approx(3.0)
        assert events[1].timestamp == pytest.approx(6.0)
        assert events[0].speed_kmh == pytest.approx(18.0)
        assert events[0].lat != 0.0

    def test_clear_and_replay_is_identical(self):
        records = make_raw_drive()
        pipeline = RoadAnomalyPipeline()
        first = replay(pipeline, records)
        pipeline.clear_history(reset_signal=True)
        second = replay(pipeline, records)
        assert first == second

    def test_events_drained_once(self):
        pipeline = RoadAnomalyPipeline()
        events = replay(pipeline, make_raw_drive())
        assert list(pipeline.events()) == events
        assert list(pipeline.events()) == []

    def test_callbacks(self):
        seen_events, seen_readings = [], []
        pipeline = RoadAnomalyPipeline(on_reading=seen_readings.append, on_event=seen_events.append)
        records = make_raw_drive()
        events = replay(pipeline, records)
        assert seen_events == events
        assert len(seen_readings) == sum(1 for r in records if r[0] == "motion")
        assert pipeline.latest_reading() is seen_readings[-1]

    def test_callback_bypasses_outbox(self):
        seen = []
        pipeline = RoadAnomalyPipeline(on_event=seen.append)
        replay(pipeline, make_raw_drive())
        assert len(seen) == 2
        assert list(pipeline.events()) == []

    def test_outbox_keeps_newest(self):
        pipeline = RoadAnomalyPipeline(DetectorConfig(outbox_size=1))
        events = replay(pipeline, make_raw_drive())
        assert len(events) == 2
        assert list(pipeline.events()) == [events[-1]]


class TestLifecycle:
    def test_stop_drops_samples_and_keeps_history(self):
        records = make_raw_drive()
        pipeline = RoadAnomalyPipeline()
        replay(pipeline, records[: len(records) // 2])
        history = pipeline.event_history()
        assert history

        pipeline.stop()
        assert not pipeline.running
        assert pipeline.ingest_motion_sample(100.0, (0.0, 0.0, GRAVITY + 5.0)) is None
        assert pipeline.latest_reading().timestamp < 100.0

        pipeline.start()
        assert pipeline.event_history() == history

    def test_clear_history_resets_events(self):
        pipeline = RoadAnomalyPipeline()
        replay(pipeline, make_raw_drive())
        pipeline.clear_history()
        assert pipeline.event_history() == []

    def test_confirm_event(self):
        pipeline = RoadAnomalyPipeline()
        event = replay(pipeline, make_raw_drive())[0]
        confirmed = RoadAnomalyPipeline.confirm_event(event)
        assert confirmed.confidence == 1.0
        assert confirmed.type == event.type
        assert event.confidence <= 1.0


class TestInputs:
    def test_malformed_sample_dropped(self):
        pipeline = RoadAnomalyPipeline()
        assert pipeline.ingest_motion_sample(0.0, (float("nan"), 0.0, GRAVITY)) is None
        assert pipeline.latest_reading() is None

    def test_out_of_order_sample_dropped(self):
        pipeline = RoadAnomalyPipeline()
        pipeline.ingest_motion_sample(1.0, (0.0, 0.0, GRAVITY))
        assert pipeline.ingest_motion_sample(0.5, (0.0, 0.0, GRAVITY)) is None
        assert pipeline.latest_reading().timestamp == 1.0

    def test_rejected_fix_leaves_speed(self):
        pipeline = RoadAnomalyPipeline()
        assert not pipeline.ingest_location(0.0, LAT0, LON0, 80.0, 5.0)
        assert pipeline.average_speed_kmh() == 0.0
        assert pipeline.ingest_location(1.0, LAT0, LON0, 5.0, 5.0)
        assert pipeline.average_speed_kmh() == pytest.approx(18.0)

    def test_reading_carries_latest_fix(self):
        pipeline = RoadAnomalyPipeline()
        pipeline.ingest_location(0.0, LAT0, LON0, 4.0, 5.0)
        pipeline.ingest_motion_sample(0.01, (0.0, 0.0, GRAVITY), gyro=(0.0, 0.1, 0.0))
        reading = pipeline.latest_reading()
        assert (reading.lat, reading.lon, reading.accuracy_m) == (LAT0, LON0, 4.0)
        assert reading.speed_kmh == pytest.approx(18.0)
        assert reading.angular_rate == (0.0, 0.1, 0.0)

    def test_reading_separates_instant_and_average_speed(self):
        pipeline = RoadAnomalyPipeline()
        pipeline.ingest_location(0.0, LAT0, LON0, 5.0, 5.0)
        pipeline.ingest_location(1.0, LAT0, LON0, 5.0, 10.0)
        pipeline.ingest_motion_sample(1.01, (0.0, 0.0, GRAVITY))
        reading = pipeline.latest_reading()
        assert reading.speed_kmh == pytest.approx(36.0)
        assert reading.avg_speed_kmh == pytest.approx(27.0)
        assert pipeline.average_speed_kmh() == pytest.approx(27.0)


class TestConfiguration:
    def test_default_thresholds_when_stationary(self):
        pipeline = RoadAnomalyPipeline()
        assert pipeline.current_thresholds() == (pytest.approx(1.8), pytest.approx(0.714))

    def test_configure_switches_profile(self):
        pipeline = RoadAnomalyPipeline()
        pipeline.configure("four_wheeler_car", "windshield")
        assert pipeline.vehicle_class == VehicleClass.FOUR_WHEELER_CAR
        assert pipeline.mount_placement == MountPlacement.WINDSHIELD
        assert pipeline.current_thresholds() == (pytest.approx(1.08), pytest.approx(0.41))

    def test_thresholds_grow_with_speed(self):
        pipeline = RoadAnomalyPipeline()
        pipeline.ingest_location(0.0, LAT0, LON0, 5.0, 25.0)  # 90 km/h
        sb, ph = pipeline.current_thresholds()
        assert sb == pytest.approx(1.8 + 70 * 0.015)
        assert ph == pytest.approx(0.714 + 70 * 0.015)

    def test_unknown_vehicle_rejected(self):
        pipeline = RoadAnomalyPipeline()
        with pytest.raises(ValueError):
            pipeline.configure("truck", "mounter")
