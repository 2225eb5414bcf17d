"""
Data records shared by the analyzers.

Expression vectors and pose landmarks are closed records keyed by fixed
label sets. Analysis snapshots serialise to the camelCase shapes the host
application persists alongside each interview answer.
"""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from .utils import clamp


class ExpressionLabel(str, Enum):
    """Facial expression labels produced by the frame classifier."""
    NEUTRAL = "neutral"
    HAPPY = "happy"
    SAD = "sad"
    ANGRY = "angry"
    FEARFUL = "fearful"
    DISGUSTED = "disgusted"
    SURPRISED = "surprised"


# MediaPipe face blendshapes that make up each expression. Neutral is
# derived as the absence of every other expression.
EXPRESSION_BLENDSHAPES = {
    ExpressionLabel.HAPPY: ("mouthSmileLeft", "mouthSmileRight", "cheekSquintLeft", "cheekSquintRight"),
    ExpressionLabel.SAD: ("mouthFrownLeft", "mouthFrownRight", "browInnerUp", "mouthPressLeft", "mouthPressRight"),
    ExpressionLabel.ANGRY: ("browDownLeft", "browDownRight", "eyeSquintLeft", "eyeSquintRight", "jawForward"),
    ExpressionLabel.FEARFUL: ("eyeWideLeft", "eyeWideRight", "browInnerUp", "mouthStretchLeft", "mouthStretchRight"),
    ExpressionLabel.DISGUSTED: ("noseSneerLeft", "noseSneerRight", "mouthUpperUpLeft", "mouthUpperUpRight"),
    ExpressionLabel.SURPRISED: ("browOuterUpLeft", "browOuterUpRight", "eyeWideLeft", "eyeWideRight", "jawOpen"),
}


@dataclass(frozen=True)
class ExpressionVector:
    """Per-frame expression probabilities, one value in [0, 1] per label."""
    neutral: float = 0.0
    happy: float = 0.0
    sad: float = 0.0
    angry: float = 0.0
    fearful: float = 0.0
    disgusted: float = 0.0
    surprised: float = 0.0

    @classmethod
    def from_mapping(cls, values: Mapping[str, float]) -> 'ExpressionVector':
        """Build a vector from a label mapping, ignoring unknown keys."""
        known = {}
        for label in ExpressionLabel:
            if label.value in values:
                known[label.value] = clamp(float(values[label.value]))
        return cls(**known)

    @classmethod
    def from_blendshapes(cls, scores: Mapping[str, float]) -> 'ExpressionVector':
        """
        Estimate expressions from MediaPipe face blendshape scores.

        Each expression is the mean of its blendshapes (missing ones count as
        0). Neutral is one minus the strongest other expression.
        """
        known = {}
        for label, names in EXPRESSION_BLENDSHAPES.items():
            known[label.value] = clamp(sum(float(scores.get(n, 0.0)) for n in names) / len(names))
        known[ExpressionLabel.NEUTRAL.value] = clamp(1.0 - max(known.values()))
        return cls(**known)

    @classmethod
    def mean(cls, vectors: Sequence['ExpressionVector']) -> 'ExpressionVector':
        """Per-label arithmetic mean over a non-empty sequence of vectors."""
        if not vectors:
            raise ValueError("Cannot average an empty list of expression vectors")
        count = len(vectors)
        return cls(**{
            label.value: sum(v.get(label) for v in vectors) / count
            for label in ExpressionLabel
        })

    def get(self, label) -> float:
        """Value for a label given as an ExpressionLabel or its name."""
        return getattr(self, ExpressionLabel(label).value)

    def to_dict(self) -> Dict[str, float]:
        return {label.value: self.get(label) for label in ExpressionLabel}


class PoseLandmark(IntEnum):
    """Indices into the 33-point MediaPipe body model used by the analyzers."""
    NOSE = 0
    LEFT_EYE_INNER = 1
    LEFT_EYE = 2
    LEFT_EYE_OUTER = 3
    RIGHT_EYE_INNER = 4
    RIGHT_EYE = 5
    RIGHT_EYE_OUTER = 6
    LEFT_EAR = 7
    RIGHT_EAR = 8
    MOUTH_LEFT = 9
    MOUTH_RIGHT = 10
    LEFT_SHOULDER = 11
    RIGHT_SHOULDER = 12
    LEFT_ELBOW = 13
    RIGHT_ELBOW = 14
    LEFT_WRIST = 15
    RIGHT_WRIST = 16


POSE_LANDMARK_COUNT = 33


@dataclass(frozen=True)
class Landmark:
    """A normalised pose landmark."""
    x: float
    y: float
    z: float = 0.0
    visibility: float = 0.0

    @property
    def xy(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass(frozen=True)
class LandmarkSet:
    """Landmarks for one detected body, indexed by PoseLandmark."""
    landmarks: Tuple[Landmark, ...]

    @classmethod
    def from_points(cls, points: Sequence[Any]) -> 'LandmarkSet':
        """Build from objects exposing x, y, z and visibility attributes."""
        return cls(tuple(
            Landmark(
                x=float(p.x),
                y=float(p.y),
                z=float(getattr(p, 'z', 0.0)),
                visibility=float(getattr(p, 'visibility', 0.0)),
            )
            for p in points
        ))

    def get(self, index: int) -> Optional[Landmark]:
        """Landmark at index, or None when the set is too short."""
        if 0 <= index < len(self.landmarks):
            return self.landmarks[index]
        return None

    def __len__(self) -> int:
        return len(self.landmarks)


@dataclass(frozen=True)
class StressDetectionResult:
    """Outcome of one detection tick, or of smoothing over several ticks."""
    stress: bool = False
    confidence: float = 0.0
    features: Tuple[str, ...] = ()
    raw_data: Optional[Dict[str, Any]] = None

    def to_dict(self, include_raw: bool = False) -> Dict[str, Any]:
        result = {
            'stress': self.stress,
            'confidence': self.confidence,
            'features': list(self.features),
        }
        if include_raw and self.raw_data is not None:
            result['rawData'] = self.raw_data
        return result


@dataclass(frozen=True)
class DetectionStats:
    """Summary of the current detection history."""
    total_detections: int = 0
    stress_detections: int = 0
    average_confidence: float = 0.0
    baseline_age: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'totalDetections': self.total_detections,
            'stressDetections': self.stress_detections,
            'averageConfidence': self.average_confidence,
            'baselineAge': self.baseline_age,
        }


@dataclass(frozen=True)
class StressTimelineEntry:
    stress: bool
    confidence: float
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return {'stress': self.stress, 'confidence': self.confidence, 'timestamp': self.timestamp}


@dataclass(frozen=True)
class EmotionTimelineEntry:
    emotion: str
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return {'emotion': self.emotion, 'timestamp': self.timestamp}


@dataclass
class ToneAnalysis:
    """Vocal tone snapshot."""
    pitch: int = 50
    speed: int = 0
    confidence: str = "authoritative"
    feedback: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'pitch': self.pitch,
            'speed': self.speed,
            'confidence': self.confidence,
            'feedback': self.feedback,
        }


@dataclass
class EmotionAnalysis:
    """Dominant emotion snapshot."""
    primary: str = "neutral"
    intensity: int = 50
    timeline: List[EmotionTimelineEntry] = field(default_factory=list)
    feedback: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'primary': self.primary,
            'intensity': self.intensity,
            'timeline': [entry.to_dict() for entry in self.timeline],
            'feedback': self.feedback,
        }


@dataclass
class GestureAnalysis:
    """Body language snapshot."""
    posture: str = "neutral"
    hand_movements: str = "neutral"
    facial_engagement: str = "neutral"
    body_language: str = "neutral"
    feedback: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'posture': self.posture,
            'handMovements': self.hand_movements,
            'facialEngagement': self.facial_engagement,
            'bodyLanguage': self.body_language,
            'feedback': self.feedback,
        }


@dataclass
class StressAnalysis:
    """Stress snapshot with the session timeline."""
    stress: bool = False
    confidence: float = 0.0
    features: List[str] = field(default_factory=list)
    timeline: List[StressTimelineEntry] = field(default_factory=list)
    feedback: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'stress': self.stress,
            'confidence': self.confidence,
            'features': list(self.features),
            'timeline': [entry.to_dict() for entry in self.timeline],
            'feedback': self.feedback,
        }


@dataclass
class AnalysisResults:
    """The four independent analyzer snapshots."""
    tone_analysis: ToneAnalysis
    emotion_analysis: EmotionAnalysis
    gesture_analysis: GestureAnalysis
    stress_analysis: StressAnalysis

    def to_dict(self) -> Dict[str, Any]:
        return {
            'toneAnalysis': self.tone_analysis.to_dict(),
            'emotionAnalysis': self.emotion_analysis.to_dict(),
            'gestureAnalysis': self.gesture_analysis.to_dict(),
            'stressAnalysis': self.stress_analysis.to_dict(),
        }


def build_answer_record(question: str, answer: str, results: AnalysisResults,
                        **extra: Any) -> Dict[str, Any]:
    """
    Assemble the per-answer document stored by the host application.

    The record embeds all four snapshots; the stress timeline travels inside
    ``stressAnalysis``. Extra keyword fields (user id, rating, ...) are copied
    through unchanged.
    """
    record: Dict[str, Any] = {
        'question': question,
        'user_ans': answer,
    }
    record.update(extra)
    record.update(results.to_dict())
    return record
