"""
Baseline-relative stress detection.

The detector calibrates a per-session neutral expression profile, scores
each later frame by how far the stress-related expressions rise above that
baseline, and smooths the per-frame results over a short trailing window.

State machine::

    uninitialized -> initialized -> calibrating -> baseline ready
                                                     |      ^
                                                     v      |
                                                   detecting

``reset()`` returns to uninitialized from any state.
"""

import asyncio
import logging
from collections import deque
from typing import Dict, List, Optional, Tuple

from .calibration import BaselineCalibration
from .classifiers import FrameClassifier
from .config import StressConfig
from .exceptions import InitializationError
from .models import DetectionStats, ExpressionVector, StressDetectionResult
from .sources import FrameSource
from .ticker import PeriodicTask
from .utils import clamp, round_confidence

logger = logging.getLogger(__name__)

# Physical cues reported when an expression contributes to the stress score
FEATURE_TAGS: Dict[str, Tuple[str, ...]] = {
    'angry': ('eyebrow tension', 'jaw clenching'),
    'fearful': ('eye widening', 'facial tension'),
    'sad': ('lip compression', 'downturned mouth'),
    'disgusted': ('nose wrinkling', 'upper lip tension'),
    'surprised': ('raised eyebrows', 'eye tension'),
}


def _merge_features(target: List[str], tags) -> None:
    for tag in tags:
        if tag not in target:
            target.append(tag)


class StressDetector:
    """Calibrates a baseline and scores frames against it."""

    def __init__(self, classifier: FrameClassifier, config: Optional[StressConfig] = None):
        self.classifier = classifier
        self.config = config or StressConfig()

        self._video_source: Optional[FrameSource] = None
        self._baseline: Optional[BaselineCalibration] = None

        self._calibrating = False
        self._calibration_run: Optional[object] = None
        self._calibration_samples: List[ExpressionVector] = []

        self._detecting = False
        self._detection_run = 0
        self._detection_task: Optional[PeriodicTask] = None
        self._history: deque = deque(maxlen=2 * self.config.smoothing_window)

    # Lifecycle

    async def initialize(self, video_source: FrameSource) -> bool:
        """Load the classifier and attach the video source."""
        try:
            await self.classifier.load()
        except InitializationError as e:
            logger.error(f"Error initializing stress detector: {e}")
            return False

        self._video_source = video_source
        return True

    @property
    def is_initialized(self) -> bool:
        return self._video_source is not None

    async def start_calibration(self) -> bool:
        """
        Collect expression samples for ``calibration_duration`` seconds and
        finalize the baseline.

        Each sample is awaited before the next one is scheduled, so the
        classifier never sees overlapping calls from calibration. Returns
        True only when a baseline was established.
        """
        if self._video_source is None or self._calibrating:
            return False

        run = object()
        self._calibration_run = run
        self._calibrating = True
        self._calibration_samples = []

        loop = asyncio.get_running_loop()
        start_time = loop.time()
        sample_interval = self.config.calibration_duration / self.config.calibration_samples_target
        logger.info(f"Starting stress baseline calibration ({self.config.calibration_duration:.1f}s)...")

        try:
            while True:
                if self._calibration_run is not run or not self._calibrating:
                    logger.info("Calibration stopped before completion")
                    return False

                if loop.time() - start_time >= self.config.calibration_duration:
                    return self._finish_calibration()

                expressions = await self._classify_current_frame()
                if expressions is not None and self._calibration_run is run and self._calibrating:
                    self._calibration_samples.append(expressions)

                await asyncio.sleep(sample_interval)
        finally:
            if self._calibration_run is run:
                self._calibrating = False

    def _finish_calibration(self) -> bool:
        self._calibrating = False
        if not self._calibration_samples:
            logger.warning("No calibration samples collected")
            return False

        self._baseline = BaselineCalibration.from_samples(self._calibration_samples)
        logger.info(f"Stress detection baseline established with {self._baseline.sample_count} samples")
        return True

    def stop_calibration(self) -> None:
        self._calibrating = False

    def start_detection(self) -> bool:
        """Start the periodic detection loop. Needs a running event loop."""
        if self._video_source is None or self._baseline is None or self._detecting:
            return False

        self._detecting = True
        self._detection_run += 1
        self._history.clear()

        self._detection_task = PeriodicTask(
            self.config.detection_interval,
            self._detect_stress,
            name="stress-detection",
            skip_if_busy=True
        )
        self._detection_task.start()
        logger.info("Stress detection started")
        return True

    def stop_detection(self) -> None:
        self._detecting = False
        if self._detection_task is not None:
            self._detection_task.stop()
            self._detection_task = None

    def reset(self) -> None:
        """Return to the uninitialized state, discarding all derived data."""
        self.stop_detection()
        self.stop_calibration()
        self._calibration_run = None
        self._video_source = None
        self._baseline = None
        self._calibration_samples = []
        self._history.clear()

    # Detection

    async def _classify_current_frame(self) -> Optional[ExpressionVector]:
        frame = self._video_source.read() if self._video_source is not None else None
        if frame is None:
            return None
        try:
            return await self.classifier.detect_expressions(frame)
        except Exception as e:
            logger.warning(f"Expression detection failed: {e}")
            return None

    async def _detect_stress(self) -> None:
        if not self._detecting or self._baseline is None:
            return

        run = self._detection_run
        expressions = await self._classify_current_frame()
        if expressions is None:
            return
        # Detection may have been stopped or restarted while classifying
        if not self._detecting or self._detection_run != run or self._baseline is None:
            return

        result = self.analyze_expressions(expressions)
        self._history.append(result)
        logger.debug(f"Stress tick: stress={result.stress} confidence={result.confidence}")

    def analyze_expressions(self, current: ExpressionVector) -> StressDetectionResult:
        """Score one expression vector against the baseline."""
        if self._baseline is None:
            return StressDetectionResult()

        baseline = self._baseline.average_expressions
        deviations: Dict[str, float] = {}
        features: List[str] = []
        score = 0.0
        total_weight = 0.0

        for label, weight in self.config.stress_weights.items():
            deviation = self._baseline.deviation(current, label)
            deviations[label] = deviation

            # Only increases in stress expressions count
            if deviation > self.config.stress_threshold:
                score += deviation * weight
                total_weight += weight
                _merge_features(features, FEATURE_TAGS.get(label, ()))

        confidence = clamp(score / total_weight) if total_weight > 0 else 0.0
        return StressDetectionResult(
            stress=confidence >= self.config.confidence_threshold,
            confidence=round_confidence(confidence),
            features=tuple(features),
            raw_data={
                'baseline': baseline.to_dict(),
                'current': current.to_dict(),
                'deviations': deviations,
            }
        )

    def get_current_stress_level(self) -> StressDetectionResult:
        """Majority-vote smoothing over the last ``smoothing_window`` results."""
        if not self._history:
            return StressDetectionResult()

        window = list(self._history)[-self.config.smoothing_window:]
        average_confidence = sum(r.confidence for r in window) / len(window)
        stress_count = sum(1 for r in window if r.stress)

        features: List[str] = []
        for result in window:
            _merge_features(features, result.features)

        return StressDetectionResult(
            stress=stress_count > self.config.smoothing_window / 2,
            confidence=round_confidence(average_confidence),
            features=tuple(features)
        )

    def get_detection_stats(self) -> DetectionStats:
        history = list(self._history)
        average_confidence = (sum(r.confidence for r in history) / len(history)) if history else 0.0
        return DetectionStats(
            total_detections=len(history),
            stress_detections=sum(1 for r in history if r.stress),
            average_confidence=round_confidence(average_confidence),
            baseline_age=self._baseline.age() if self._baseline is not None else 0
        )

    # State queries

    def get_calibration_progress(self) -> float:
        """Calibration progress in [0, 1]."""
        if not self._calibrating:
            return 1.0 if self._baseline is not None else 0.0
        return min(len(self._calibration_samples) / self.config.calibration_samples_target, 1.0)

    @property
    def baseline(self) -> Optional[BaselineCalibration]:
        return self._baseline

    def is_baseline_ready(self) -> bool:
        return self._baseline is not None

    def is_calibration_active(self) -> bool:
        return self._calibrating

    def is_detection_active(self) -> bool:
        return self._detecting
