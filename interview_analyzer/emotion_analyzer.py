"""
Dominant emotion tracking.

Once a second the current frame's expression vector is reduced to a single
dominant emotion and appended to a rolling one-minute timeline.
"""

import logging
from collections import deque
from typing import Optional, Tuple

from .classifiers import FrameClassifier
from .config import EmotionConfig
from .models import EmotionAnalysis, EmotionTimelineEntry, ExpressionVector
from .sources import FrameSource
from .ticker import PeriodicTask
from .utils import mode_with_count, now_ms, round_half_up

logger = logging.getLogger(__name__)

# Expression label -> emotion name, in tie-break order (earlier wins)
DOMINANT_EMOTIONS: Tuple[Tuple[str, str], ...] = (
    ('neutral', 'neutral'),
    ('happy', 'happiness'),
    ('sad', 'sadness'),
    ('angry', 'anger'),
    ('surprised', 'surprise'),
    ('fearful', 'frustration'),
)

# Order used when counting the timeline mode
EMOTION_VOCABULARY = ['happiness', 'sadness', 'anger', 'surprise', 'frustration', 'neutral']

DEFAULT_FEEDBACK = "Maintain consistent emotional engagement throughout your answer."


def dominant_emotion(expressions: ExpressionVector) -> str:
    """Highest scoring emotion; on a tie the earlier label wins."""
    emotion = 'neutral'
    max_score = expressions.get('neutral')
    for label, name in DOMINANT_EMOTIONS[1:]:
        score = expressions.get(label)
        if score > max_score:
            emotion = name
            max_score = score
    return emotion


def emotion_feedback(primary: str, intensity: float, neutral_count: int) -> str:
    if primary == 'neutral' and intensity > 70:
        return "Try to show more emotional engagement to connect better with your audience."
    elif primary == 'happiness' and intensity > 70:
        return "Your positive demeanor is excellent, but vary your expressions for key points."
    elif primary in ('sadness', 'anger'):
        return "Try to maintain a more positive emotional tone during your responses."
    elif neutral_count < 10:
        return "Your emotional expressiveness is good. Continue to match emotions to content."
    return DEFAULT_FEEDBACK


class EmotionAnalyzer:
    """Samples the dominant emotion at a fixed rate."""

    def __init__(self, classifier: FrameClassifier, config: Optional[EmotionConfig] = None):
        self.classifier = classifier
        self.config = config or EmotionConfig()
        self.is_analyzing = False

        self._run = 0
        self._video_source: Optional[FrameSource] = None
        self._timeline: deque = deque(maxlen=self.config.timeline_size)
        self._task: Optional[PeriodicTask] = None

    async def start(self, video_source: FrameSource) -> bool:
        """Start sampling a fresh timeline. False if already running."""
        if self.is_analyzing:
            logger.warning("Emotion analysis already running")
            return False

        self._run += 1
        self._timeline.clear()
        try:
            self._video_source = video_source
            self.is_analyzing = True
            self._task = PeriodicTask(
                self.config.detection_interval,
                self._detect_emotion,
                name="emotion-detection"
            )
            self._task.start()
        except Exception as e:
            logger.error(f"Error starting emotion analysis: {e}")
            self.stop()
            return False

        logger.info("Emotion analysis started")
        return True

    def stop(self) -> None:
        self.is_analyzing = False
        if self._task is not None:
            self._task.stop()
            self._task = None

    def reset(self) -> None:
        self.stop()
        self._timeline.clear()

    async def _detect_emotion(self) -> None:
        if not self.is_analyzing or self._video_source is None:
            return

        run = self._run
        frame = self._video_source.read()
        if frame is None:
            return
        try:
            expressions = await self.classifier.detect_expressions(frame)
        except Exception as e:
            logger.warning(f"Error detecting emotions: {e}")
            return

        # Drop results that finish after a stop or belong to an earlier session
        if expressions is None or not self.is_analyzing or self._run != run:
            return
        self.record(dominant_emotion(expressions))

    def record(self, emotion: str, timestamp: Optional[int] = None) -> None:
        """Append one emotion sample to the timeline."""
        self._timeline.append(EmotionTimelineEntry(
            emotion=emotion,
            timestamp=now_ms() if timestamp is None else timestamp
        ))

    @property
    def timeline(self):
        return list(self._timeline)

    def get_analysis(self) -> EmotionAnalysis:
        if not self._timeline:
            return EmotionAnalysis(primary='neutral', intensity=50, timeline=[],
                                   feedback=DEFAULT_FEEDBACK)

        emotions = [entry.emotion for entry in self._timeline]
        primary, count = mode_with_count(emotions, EMOTION_VOCABULARY)
        if primary is None:
            primary = 'neutral'
        intensity = int(round_half_up(count / len(emotions) * 100))
        neutral_count = emotions.count('neutral')

        return EmotionAnalysis(
            primary=primary,
            intensity=intensity,
            timeline=list(self._timeline),
            feedback=emotion_feedback(primary, intensity, neutral_count)
        )
