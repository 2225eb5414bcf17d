"""
Baseline calibration for stress detection.

A baseline is the mean expression profile of a subject over the first
seconds of a session. Deviation scoring measures every later frame against
it, so each session is compared only with itself.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Sequence, Tuple

from .models import ExpressionLabel, ExpressionVector
from .utils import now_ms


@dataclass(frozen=True)
class BaselineCalibration:
    """Baseline expression profile for one session."""
    samples: Tuple[ExpressionVector, ...]
    average_expressions: ExpressionVector
    timestamp: int  # epoch ms when the baseline was finalized

    @classmethod
    def from_samples(cls, samples: Sequence[ExpressionVector],
                     timestamp: Optional[int] = None) -> 'BaselineCalibration':
        """Finalize a baseline from the collected samples."""
        if not samples:
            raise ValueError("Cannot build a baseline from zero samples")
        return cls(
            samples=tuple(samples),
            average_expressions=ExpressionVector.mean(samples),
            timestamp=now_ms() if timestamp is None else timestamp
        )

    @property
    def sample_count(self) -> int:
        return len(self.samples)

    def deviation(self, current: ExpressionVector, label) -> float:
        """Signed difference between current and baseline for one label."""
        return current.get(label) - self.average_expressions.get(label)

    def deviations(self, current: ExpressionVector,
                   labels: Optional[Iterable[str]] = None) -> Dict[str, float]:
        """Signed deviations for the given labels (all labels by default)."""
        if labels is None:
            labels = [label.value for label in ExpressionLabel]
        return {label: self.deviation(current, label) for label in labels}

    def age(self, now: Optional[int] = None) -> int:
        """Milliseconds since the baseline was finalized."""
        return (now_ms() if now is None else now) - self.timestamp
