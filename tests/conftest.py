import sys
import os

# Add project root to sys.path so tests can import from all modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest  # noqa: E402
from hypothesis import settings  # noqa: E402

from detectors.metric_extractor import LEFT_EYE_INDICES, MOUTH_INDICES, RIGHT_EYE_INDICES  # noqa: E402

# CI profile: more examples for thorough testing
settings.register_profile("ci", max_examples=200)
# Dev profile: fewer examples for faster iteration
settings.register_profile("dev", max_examples=100)
# Default to dev profile
settings.load_profile("dev")

NUM_LANDMARKS = 478


def _eye_points(x0, y0, ear, width=30.0):
    """生成 EAR 恰为 ear 的 6 个眼睛关键点"""
    v = ear * width
    return [
        (x0, y0),
        (x0 + 10.0, y0 - v / 2),
        (x0 + 20.0, y0 - v / 2),
        (x0 + width, y0),
        (x0 + 20.0, y0 + v / 2),
        (x0 + 10.0, y0 + v / 2),
    ]


def _mouth_points(x0, y0, mar, width=60.0):
    """生成 MAR 恰为 mar 的 8 个嘴巴关键点"""
    v = mar * width
    return [
        (x0, y0),
        (x0 + 15.0, y0 - v / 2),
        (x0 + 30.0, y0 - v / 2),
        (x0 + 45.0, y0 - v / 2),
        (x0 + width, y0),
        (x0 + 45.0, y0 + v / 2),
        (x0 + 30.0, y0 + v / 2),
        (x0 + 15.0, y0 + v / 2),
    ]


def build_frame(ear=0.3, mar=0.3, num_landmarks=NUM_LANDMARKS):
    points = [(0.0, 0.0)] * num_landmarks
    for idx, p in zip(LEFT_EYE_INDICES, _eye_points(100.0, 100.0, ear)):
        points[idx] = p
    for idx, p in zip(RIGHT_EYE_INDICES, _eye_points(200.0, 100.0, ear)):
        points[idx] = p
    for idx, p in zip(MOUTH_INDICES, _mouth_points(130.0, 200.0, mar)):
        points[idx] = p
    return tuple(points)


@pytest.fixture
def frame_factory():
    """按目标 EAR / MAR 构造 LandmarkFrame"""
    return build_frame
