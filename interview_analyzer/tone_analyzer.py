"""
Vocal tone analysis.

Pitch is approximated by the mean of the microphone's byte spectrum, scaled
to 0-100. Speaking speed comes from the transcribed text the host pushes in.
"""

import logging
import time
from collections import deque
from typing import Optional

import numpy as np

from .config import ToneConfig
from .exceptions import ResourceAcquisitionError
from .models import ToneAnalysis
from .sources import AudioSource
from .ticker import PeriodicTask
from .utils import round_half_up

logger = logging.getLogger(__name__)


def confidence_label(score: float) -> str:
    """Map the 0-100 confidence accumulator onto a delivery label."""
    if score > 80:
        return "confident"
    elif score > 60:
        return "enthusiastic"
    elif score > 40:
        return "authoritative"
    elif score > 20:
        return "hesitant"
    return "nervous"


def tone_feedback(pitch: float, speed: int) -> str:
    if pitch > 75:
        return "Try lowering your pitch for a more authoritative tone."
    elif pitch < 25:
        return "Try varying your pitch more to sound more engaging."
    elif speed > 160:
        return "Consider slowing down to improve clarity."
    elif speed < 100:
        return "Try speaking a bit faster to maintain engagement."
    return "Your tone is well-balanced. Maintain this level of delivery."


class ToneAnalyzer:
    """Tracks pitch, speaking speed and a confidence score."""

    def __init__(self, config: Optional[ToneConfig] = None):
        self.config = config or ToneConfig()
        self.is_analyzing = False

        self._audio_source: Optional[AudioSource] = None
        self._task: Optional[PeriodicTask] = None
        self._pitch_values: deque = deque(maxlen=self.config.pitch_history_size)
        self.word_count = 0
        self.confidence_score = self.config.initial_confidence
        self.start_time = time.time()

    async def start(self, audio_source: AudioSource) -> bool:
        """
        Connect the audio source and start sampling.

        ResourceAcquisitionError from the source propagates to the caller;
        any other failure is logged and reported as False.
        """
        if self.is_analyzing:
            logger.warning("Tone analysis already running")
            return False

        self._clear_session()
        try:
            audio_source.connect()
            self._audio_source = audio_source
            self.is_analyzing = True
            self.start_time = time.time()
            self._task = PeriodicTask(self.config.frame_interval, self._analyze, name="tone-analysis")
            self._task.start()
        except ResourceAcquisitionError:
            self.stop()
            raise
        except Exception as e:
            logger.error(f"Error starting tone analysis: {e}")
            self.stop()
            return False

        logger.info("Tone analysis started")
        return True

    def stop(self) -> None:
        self.is_analyzing = False
        if self._task is not None:
            self._task.stop()
            self._task = None
        if self._audio_source is not None:
            try:
                self._audio_source.disconnect()
            except Exception as e:
                logger.warning(f"Error closing audio source: {e}")
            self._audio_source = None

    def reset(self) -> None:
        self.stop()
        self._clear_session()

    def _clear_session(self) -> None:
        self._pitch_values.clear()
        self.word_count = 0
        self.confidence_score = self.config.initial_confidence

    def process_speech(self, text: str) -> None:
        """Set the word count from the transcript so far."""
        self.word_count = len(text.split())

    def update_confidence(self, delta: float) -> None:
        self.confidence_score = max(0.0, min(100.0, self.confidence_score + delta))

    def _analyze(self) -> None:
        if not self.is_analyzing or self._audio_source is None:
            return

        data = self._audio_source.get_byte_frequency_data()
        if len(data) == 0:
            return
        average_frequency = float(np.mean(data))
        self.add_pitch_sample(min(100.0, average_frequency / 255 * 100))

    def add_pitch_sample(self, value: float) -> None:
        self._pitch_values.append(value)

    @property
    def pitch_values(self):
        return list(self._pitch_values)

    def get_analysis(self) -> ToneAnalysis:
        if self._pitch_values:
            average_pitch = sum(self._pitch_values) / len(self._pitch_values)
        else:
            average_pitch = 50.0

        duration_minutes = (time.time() - self.start_time) / 60
        speed = int(round_half_up(self.word_count / duration_minutes)) if duration_minutes > 0 else 0

        return ToneAnalysis(
            pitch=int(round_half_up(average_pitch)),
            speed=speed,
            confidence=confidence_label(self.confidence_score),
            feedback=tone_feedback(average_pitch, speed)
        )
