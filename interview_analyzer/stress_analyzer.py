"""
Session-level stress analysis.

Drives a StressDetector through initialize, calibrate and detect, and keeps
a coarse one-second stress timeline for end-of-answer feedback.
"""

import logging
from typing import List, Optional

from .classifiers import FrameClassifier
from .config import StressConfig
from .models import DetectionStats, StressAnalysis, StressDetectionResult, StressTimelineEntry
from .sources import FrameSource
from .stress_detector import StressDetector
from .ticker import PeriodicTask
from .utils import now_ms

logger = logging.getLogger(__name__)

HIGH_STRESS_FEEDBACK = ("High stress levels detected throughout the interview. "
                        "Try deep breathing and relaxation techniques.")
MODERATE_STRESS_FEEDBACK = ("Moderate stress detected. Focus on staying calm and confident "
                            "in your responses.")
SOME_STRESS_FEEDBACK = ("Some stress indicators observed. This is normal - "
                        "try to maintain composure.")
LOW_STRESS_FEEDBACK = ("Excellent stress management! You maintained composure "
                       "throughout the interview.")


def stress_feedback(stress_share: float) -> str:
    """Feedback for the share of timeline entries flagged as stressed."""
    if stress_share > 0.7:
        return HIGH_STRESS_FEEDBACK
    elif stress_share > 0.4:
        return MODERATE_STRESS_FEEDBACK
    elif stress_share > 0.2:
        return SOME_STRESS_FEEDBACK
    return LOW_STRESS_FEEDBACK


class StressAnalyzer:
    """Runs stress detection for one recording session."""

    def __init__(self, classifier: FrameClassifier, config: Optional[StressConfig] = None):
        self.config = config or StressConfig()
        self.detector = StressDetector(classifier, self.config)
        self.is_analyzing = False
        self._timeline: List[StressTimelineEntry] = []
        self._timeline_task: Optional[PeriodicTask] = None
        self._starting = False

    async def start(self, video_source: FrameSource) -> bool:
        """Initialize, calibrate, then start detection and timeline tracking."""
        # is_analyzing is only set once calibration has finished
        if self.is_analyzing or self._starting:
            logger.warning("Stress analysis already running")
            return False

        self._starting = True
        try:
            return await self._start(video_source)
        finally:
            self._starting = False

    async def _start(self, video_source: FrameSource) -> bool:
        self._timeline = []

        if not await self.detector.initialize(video_source):
            logger.error("Error starting stress analysis: failed to initialize stress detector")
            return False

        if not await self.detector.start_calibration():
            logger.error("Error starting stress analysis: failed to calibrate stress detector")
            self.detector.reset()
            return False

        if not self.detector.start_detection():
            logger.error("Error starting stress analysis: failed to start stress detection")
            self.detector.reset()
            return False

        self.is_analyzing = True
        self._timeline_task = PeriodicTask(
            self.config.timeline_interval,
            self._track_timeline,
            name="stress-timeline"
        )
        self._timeline_task.start()
        logger.info("Stress analysis started")
        return True

    def stop(self) -> None:
        """Stop tracking and reset the detector. The timeline is kept for the final report."""
        self.is_analyzing = False
        if self._timeline_task is not None:
            self._timeline_task.stop()
            self._timeline_task = None
        self.detector.reset()

    def reset(self) -> None:
        self.stop()
        self._timeline = []

    def _track_timeline(self) -> None:
        if not self.is_analyzing:
            return

        current = self.detector.get_current_stress_level()
        now = now_ms()
        self._timeline.append(StressTimelineEntry(
            stress=current.stress,
            confidence=current.confidence,
            timestamp=now
        ))

        cutoff = now - int(self.config.timeline_window * 1000)
        self._timeline = [entry for entry in self._timeline if entry.timestamp > cutoff]

    @property
    def timeline(self) -> List[StressTimelineEntry]:
        return list(self._timeline)

    def get_analysis(self) -> StressAnalysis:
        current = self.detector.get_current_stress_level()

        stress_events = sum(1 for entry in self._timeline if entry.stress)
        total_events = len(self._timeline)
        stress_share = stress_events / total_events if total_events > 0 else 0.0

        return StressAnalysis(
            stress=current.stress,
            confidence=current.confidence,
            features=list(current.features),
            timeline=list(self._timeline),
            feedback=stress_feedback(stress_share)
        )

    # Host-facing detector controls

    async def initialize(self, video_source: FrameSource) -> bool:
        return await self.detector.initialize(video_source)

    async def start_calibration(self) -> bool:
        return await self.detector.start_calibration()

    def stop_calibration(self) -> None:
        self.detector.stop_calibration()

    def start_detection(self) -> bool:
        return self.detector.start_detection()

    def stop_detection(self) -> None:
        self.detector.stop_detection()

    def get_current_stress_level(self) -> StressDetectionResult:
        return self.detector.get_current_stress_level()

    def get_detection_stats(self) -> DetectionStats:
        return self.detector.get_detection_stats()

    def get_calibration_progress(self) -> float:
        return self.detector.get_calibration_progress()

    def is_baseline_ready(self) -> bool:
        return self.detector.is_baseline_ready()

    def is_calibration_active(self) -> bool:
        return self.detector.is_calibration_active()

    def is_detection_active(self) -> bool:
        return self.detector.is_detection_active()
