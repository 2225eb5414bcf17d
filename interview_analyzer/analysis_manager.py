"""
Orchestrator for the four analyzers.

The manager loads the shared classifier once, starts every analyzer in a
single concurrent join and aggregates their independent snapshots. A start
is all-or-nothing: when any analyzer fails, the ones that did start are
stopped again before the failure is reported.
"""

import asyncio
import logging
from typing import List, Optional, Tuple

from .classifiers import FrameClassifier, MediaPipeClassifier
from .config import Config
from .emotion_analyzer import EmotionAnalyzer
from .exceptions import AnalyzerStartError, InitializationError, ResourceAcquisitionError
from .gesture_analyzer import GestureAnalyzer
from .models import AnalysisResults
from .sources import AudioSource, FrameSource
from .stress_analyzer import StressAnalyzer
from .tone_analyzer import ToneAnalyzer

logger = logging.getLogger(__name__)


class AnalysisManager:
    """Starts, stops and aggregates the tone, emotion, gesture and stress analyzers."""

    def __init__(self, config: Optional[Config] = None,
                 classifier: Optional[FrameClassifier] = None):
        self.config = config or Config()
        self.classifier = classifier or MediaPipeClassifier(self.config.classifier)

        self.tone_analyzer = ToneAnalyzer(self.config.tone)
        self.emotion_analyzer = EmotionAnalyzer(self.classifier, self.config.emotion)
        self.gesture_analyzer = GestureAnalyzer(self.classifier, self.config.gesture)
        self.stress_analyzer = StressAnalyzer(self.classifier, self.config.stress)

        self.is_analyzing = False

    def _analyzers(self) -> List[Tuple[str, object]]:
        return [
            ('tone', self.tone_analyzer),
            ('emotion', self.emotion_analyzer),
            ('gesture', self.gesture_analyzer),
            ('stress', self.stress_analyzer),
        ]

    async def start(self, video_source: FrameSource, audio_source: AudioSource) -> bool:
        """
        Start all analyzers concurrently.

        Returns False when the classifier cannot be loaded or any analyzer
        fails to start; a ResourceAcquisitionError (camera or microphone) is
        re-raised. Either way nothing is left running.
        """
        if self.is_analyzing:
            logger.warning("Analysis already running")
            return False

        try:
            await self.classifier.load()
        except InitializationError as e:
            logger.error(f"Error starting analysis: {e}")
            return False

        results = await asyncio.gather(
            self.tone_analyzer.start(audio_source),
            self.emotion_analyzer.start(video_source),
            self.gesture_analyzer.start(video_source),
            self.stress_analyzer.start(video_source),
            return_exceptions=True
        )

        failures = []
        resource_error: Optional[ResourceAcquisitionError] = None
        for (name, _), result in zip(self._analyzers(), results):
            if isinstance(result, ResourceAcquisitionError):
                resource_error = resource_error or result
                failures.append(AnalyzerStartError(name, str(result)))
            elif isinstance(result, BaseException):
                failures.append(AnalyzerStartError(name, repr(result)))
            elif result is not True:
                failures.append(AnalyzerStartError(name))

        if failures:
            for failure in failures:
                logger.error(f"Error starting analysis: {failure}")
            self._stop_all()
            if resource_error is not None:
                raise resource_error
            return False

        self.is_analyzing = True
        logger.info("All analyzers started")
        return True

    def _stop_all(self) -> None:
        for name, analyzer in self._analyzers():
            try:
                analyzer.stop()
            except Exception as e:
                logger.warning(f"Error stopping {name} analyzer: {e}")

    def stop(self) -> None:
        """Stop every analyzer, including ones that never started."""
        self._stop_all()
        self.is_analyzing = False
        logger.info("Analysis stopped")

    def reset(self) -> None:
        """Stop every analyzer and discard all collected session data."""
        for name, analyzer in self._analyzers():
            try:
                analyzer.reset()
            except Exception as e:
                logger.warning(f"Error resetting {name} analyzer: {e}")
        self.is_analyzing = False
        logger.info("Analysis reset")

    async def close(self) -> None:
        """Stop analysis and release the classifier."""
        self.stop()
        await self.classifier.close()

    def update_speech_text(self, text: str) -> None:
        self.tone_analyzer.process_speech(text)

    def get_analysis_results(self) -> AnalysisResults:
        return AnalysisResults(
            tone_analysis=self.tone_analyzer.get_analysis(),
            emotion_analysis=self.emotion_analyzer.get_analysis(),
            gesture_analysis=self.gesture_analyzer.get_analysis(),
            stress_analysis=self.stress_analyzer.get_analysis()
        )

    def is_active(self) -> bool:
        return self.is_analyzing
