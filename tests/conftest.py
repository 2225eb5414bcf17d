"""
Shared test doubles for the analyzer tests.

Nothing here touches a camera, a microphone or a real model: the fake
classifier returns scripted results and the sources return fixed data.
"""

import asyncio

import numpy as np
import pytest

from interview_analyzer.classifiers import FrameClassifier
from interview_analyzer.config import (
    Config, EmotionConfig, GestureConfig, StressConfig, ToneConfig
)
from interview_analyzer.models import ExpressionVector, Landmark, LandmarkSet, POSE_LANDMARK_COUNT
from interview_analyzer.sources import AudioSource, FrameSource


class FakeClassifier(FrameClassifier):
    """Scripted classifier that records how it is called."""

    def __init__(self):
        super().__init__("FakeClassifier")
        self.expressions = ExpressionVector()
        self.pose = None
        self.script = []  # expression results returned first, in order
        self.delay = 0.0
        self.fail_load = False
        self.fail_detect = False

        self.load_count = 0
        self.calls = 0
        self.active_calls = 0
        self.max_concurrent = 0

    async def _load(self):
        self.load_count += 1
        if self.fail_load:
            raise RuntimeError("model files missing")

    async def _run(self, value):
        self.calls += 1
        self.active_calls += 1
        self.max_concurrent = max(self.max_concurrent, self.active_calls)
        try:
            await asyncio.sleep(self.delay)
            if self.fail_detect:
                raise RuntimeError("inference failed")
            return value
        finally:
            self.active_calls -= 1

    async def detect_expressions(self, frame):
        value = self.script.pop(0) if self.script else self.expressions
        return await self._run(value)

    async def detect_pose(self, frame):
        return await self._run(self.pose)


class StaticFrameSource(FrameSource):
    def __init__(self):
        self.frame = np.zeros((4, 4, 3), dtype=np.uint8)
        self.closed = False

    def read(self):
        return self.frame

    def close(self):
        self.closed = True


class FakeAudioSource(AudioSource):
    def __init__(self, level: int = 128, bins: int = 1024):
        self.level = level
        self.bins = bins
        self.connect_error = None
        self.connected = False

    @property
    def frequency_bin_count(self):
        return self.bins

    def connect(self):
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    def disconnect(self):
        self.connected = False

    def get_byte_frequency_data(self):
        return np.full(self.bins, self.level, dtype=np.uint8)


def make_pose(**overrides) -> LandmarkSet:
    """
    A 33-point pose with level shoulders, open arms, moderate hand spread
    and a clearly visible face. Override points by landmark name, e.g.
    ``right_shoulder=(0.4, 0.6)`` or ``nose=(0.5, 0.2, 0.3)`` where the third
    value is the visibility.
    """
    points = {
        'nose': (0.5, 0.2, 0.9),
        'left_eye': (0.55, 0.18, 0.9),
        'right_eye': (0.45, 0.18, 0.9),
        'left_shoulder': (0.6, 0.5, 0.9),
        'right_shoulder': (0.4, 0.5, 0.9),
        'left_elbow': (0.7, 0.6, 0.9),
        'right_elbow': (0.3, 0.4, 0.9),
        'left_wrist': (0.75, 0.7, 0.9),
        'right_wrist': (0.25, 0.3, 0.9),
    }
    indices = {
        'nose': 0, 'left_eye': 2, 'right_eye': 5,
        'left_shoulder': 11, 'right_shoulder': 12,
        'left_elbow': 13, 'right_elbow': 14,
        'left_wrist': 15, 'right_wrist': 16,
    }
    for name, value in overrides.items():
        x, y = value[0], value[1]
        visibility = value[2] if len(value) > 2 else points[name][2]
        points[name] = (x, y, visibility)

    landmarks = [Landmark(0.5, 0.5, 0.0, 0.5) for _ in range(POSE_LANDMARK_COUNT)]
    for name, (x, y, visibility) in points.items():
        landmarks[indices[name]] = Landmark(x, y, 0.0, visibility)
    return LandmarkSet(tuple(landmarks))


async def wait_until(predicate, timeout: float = 3.0, interval: float = 0.005) -> bool:
    """Poll predicate on the running loop until it holds or the timeout expires."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(interval)
    return predicate()


@pytest.fixture
def classifier():
    return FakeClassifier()


@pytest.fixture
def frame_source():
    return StaticFrameSource()


@pytest.fixture
def audio_source():
    return FakeAudioSource()


@pytest.fixture
def pose_factory():
    return make_pose


@pytest.fixture
def waiter():
    return wait_until


@pytest.fixture
def stress_config():
    """Stress timings shrunk so a full calibration takes 50 ms."""
    return StressConfig(
        calibration_duration=0.05,
        calibration_samples_target=5,
        detection_interval=0.01,
        timeline_interval=0.01,
    )


@pytest.fixture
def fast_config(stress_config):
    config = Config(session_name="test_session")
    config.stress = stress_config
    config.emotion = EmotionConfig(detection_interval=0.01)
    config.gesture = GestureConfig(capture_interval=0.01)
    config.tone = ToneConfig(frame_interval=0.01)
    return config
