"""Smoke tests: verify all roadsurp_tools modules import successfully."""


def test_import_init():
    import roadsurp_tools  # noqa: F401


def test_import_detector():
    from roadsurp_tools.anomaly_detector import RoadAnomalyPipeline  # noqa: F401


def test_import_data_io():
    import roadsurp_tools.data_io  # noqa: F401


def test_import_replay():
    import roadsurp_tools.replay_recording  # noqa: F401


def test_import_simulate():
    import roadsurp_tools.simulate_drive  # noqa: F401


def test_import_visualize():
    import roadsurp_tools.visualize_events  # noqa: F401
