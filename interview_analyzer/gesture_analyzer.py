"""
Body language analysis from pose landmarks.

A PoseStream drives the analyzer: it reads camera frames, runs pose
estimation and hands each LandmarkSet to the analyzer's callback. Four
geometric classifiers turn each set into one sample per category.
"""

import logging
from collections import deque
from typing import Callable, Optional

from .classifiers import FrameClassifier
from .config import GestureConfig
from .models import GestureAnalysis, LandmarkSet, PoseLandmark
from .sources import FrameSource
from .ticker import PeriodicTask
from .utils import calculate_angle, calculate_distance, most_frequent

logger = logging.getLogger(__name__)

PoseCallback = Callable[[LandmarkSet], None]


class PoseStream:
    """Frame-driven pose capture loop that pushes results to a callback."""

    def __init__(self, classifier: FrameClassifier, video_source: FrameSource,
                 on_results: PoseCallback, interval: float = 1.0 / 30):
        self.classifier = classifier
        self.video_source = video_source
        self.on_results = on_results
        self.is_running = False
        self._task = PeriodicTask(interval, self._on_frame, name="pose-stream")

    def start(self) -> None:
        self.is_running = True
        self._task.start()

    def stop(self) -> None:
        self.is_running = False
        self._task.stop()

    async def _on_frame(self) -> None:
        if not self.is_running:
            return
        frame = self.video_source.read()
        if frame is None:
            return
        try:
            landmarks = await self.classifier.detect_pose(frame)
        except Exception as e:
            logger.warning(f"Pose estimation failed: {e}")
            return
        if landmarks is None or not self.is_running:
            return
        self.on_results(landmarks)


class GestureAnalyzer:
    """Classifies posture, hand movement, facial engagement and openness."""

    def __init__(self, classifier: FrameClassifier, config: Optional[GestureConfig] = None):
        self.classifier = classifier
        self.config = config or GestureConfig()
        self.is_analyzing = False
        self._stream: Optional[PoseStream] = None

        size = self.config.sample_buffer_size
        self.posture_samples: deque = deque(maxlen=size)
        self.hand_movement_samples: deque = deque(maxlen=size)
        self.facial_engagement_samples: deque = deque(maxlen=size)
        self.body_language_samples: deque = deque(maxlen=size)

    async def start(self, video_source: FrameSource) -> bool:
        """Start pose capture with empty sample buffers. False if already running."""
        if self.is_analyzing:
            logger.warning("Gesture analysis already running")
            return False

        self._clear_samples()
        try:
            self._stream = PoseStream(
                self.classifier,
                video_source,
                self.process_landmarks,
                interval=self.config.capture_interval
            )
            self.is_analyzing = True
            self._stream.start()
        except Exception as e:
            logger.error(f"Error starting gesture analysis: {e}")
            self.stop()
            return False

        logger.info("Gesture analysis started")
        return True

    def stop(self) -> None:
        self.is_analyzing = False
        if self._stream is not None:
            self._stream.stop()
            self._stream = None

    def reset(self) -> None:
        self.stop()
        self._clear_samples()

    def _clear_samples(self) -> None:
        self.posture_samples.clear()
        self.hand_movement_samples.clear()
        self.facial_engagement_samples.clear()
        self.body_language_samples.clear()

    def process_landmarks(self, landmarks: LandmarkSet) -> None:
        """Add one sample per category from a detected pose."""
        self._analyze_posture(landmarks)
        self._analyze_hand_movements(landmarks)
        self._analyze_facial_engagement(landmarks)
        self._analyze_body_language(landmarks)

    def _analyze_posture(self, landmarks: LandmarkSet) -> None:
        left_shoulder = landmarks.get(PoseLandmark.LEFT_SHOULDER)
        right_shoulder = landmarks.get(PoseLandmark.RIGHT_SHOULDER)
        if left_shoulder is None or right_shoulder is None:
            return

        shoulder_diff = abs(left_shoulder.y - right_shoulder.y)
        self.posture_samples.append('good' if shoulder_diff < self.config.posture_threshold else 'poor')

    def _analyze_hand_movements(self, landmarks: LandmarkSet) -> None:
        left_wrist = landmarks.get(PoseLandmark.LEFT_WRIST)
        right_wrist = landmarks.get(PoseLandmark.RIGHT_WRIST)
        left_elbow = landmarks.get(PoseLandmark.LEFT_ELBOW)
        right_elbow = landmarks.get(PoseLandmark.RIGHT_ELBOW)
        if None in (left_wrist, right_wrist, left_elbow, right_elbow):
            return

        total_movement = (calculate_distance(left_wrist.xy, left_elbow.xy) +
                          calculate_distance(right_wrist.xy, right_elbow.xy))
        if total_movement < self.config.hand_minimal:
            self.hand_movement_samples.append('minimal')
        elif total_movement < self.config.hand_moderate:
            self.hand_movement_samples.append('moderate')
        else:
            self.hand_movement_samples.append('excessive')

    def _analyze_facial_engagement(self, landmarks: LandmarkSet) -> None:
        nose = landmarks.get(PoseLandmark.NOSE)
        left_eye = landmarks.get(PoseLandmark.LEFT_EYE)
        right_eye = landmarks.get(PoseLandmark.RIGHT_EYE)
        if None in (nose, left_eye, right_eye):
            return

        visibility = (nose.visibility + left_eye.visibility + right_eye.visibility) / 3
        if visibility > self.config.engagement_high:
            self.facial_engagement_samples.append('high')
        elif visibility > self.config.engagement_moderate:
            self.facial_engagement_samples.append('moderate')
        else:
            self.facial_engagement_samples.append('low')

    def _analyze_body_language(self, landmarks: LandmarkSet) -> None:
        left_shoulder = landmarks.get(PoseLandmark.LEFT_SHOULDER)
        right_shoulder = landmarks.get(PoseLandmark.RIGHT_SHOULDER)
        left_elbow = landmarks.get(PoseLandmark.LEFT_ELBOW)
        right_elbow = landmarks.get(PoseLandmark.RIGHT_ELBOW)
        if None in (left_shoulder, right_shoulder, left_elbow, right_elbow):
            return

        left_arm_angle = calculate_angle(left_shoulder.xy, left_elbow.xy)
        right_arm_angle = calculate_angle(right_shoulder.xy, right_elbow.xy)
        # Opposite-signed arm angles count as open
        if left_arm_angle * right_arm_angle < 0:
            self.body_language_samples.append('open')
        else:
            self.body_language_samples.append('closed')

    def get_analysis(self) -> GestureAnalysis:
        posture = most_frequent(self.posture_samples)
        hand_movements = most_frequent(self.hand_movement_samples)
        facial_engagement = most_frequent(self.facial_engagement_samples)
        body_language = most_frequent(self.body_language_samples)

        if posture == 'poor':
            feedback = "Try to maintain a straight posture with shoulders level."
        elif hand_movements == 'minimal':
            feedback = "Use more hand gestures to emphasize key points in your answer."
        elif hand_movements == 'excessive':
            feedback = "Reduce excessive hand movements as they may distract from your message."
        elif facial_engagement == 'low':
            feedback = "Increase facial expressions to appear more engaged and confident."
        elif body_language == 'closed':
            feedback = "Adopt a more open posture to appear more confident and approachable."
        else:
            feedback = "Your body language is effective. Continue to match gestures with your message."

        return GestureAnalysis(
            posture=posture,
            hand_movements=hand_movements,
            facial_engagement=facial_engagement,
            body_language=body_language,
            feedback=feedback
        )
