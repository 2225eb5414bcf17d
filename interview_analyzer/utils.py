"""
Utility functions shared by the analyzers.

Logging setup, clock helpers, rounding that matches the reported precision,
landmark geometry and the frequency helpers used to summarise sample buffers.
"""

import logging
import math
import time
from typing import Dict, Iterable, List, Optional, Tuple

# Third-party loggers that are chatty at INFO level
NOISY_LOGGERS = [
    'absl',
    'mediapipe',
    'aiohttp.access',
    'matplotlib',
]


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging for the analyzer and quiet noisy libraries."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.ERROR)


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


def clamp(value: float, lower: float = 0.0, upper: float = 1.0) -> float:
    """Clamp value into [lower, upper]."""
    return max(lower, min(upper, value))


def round_half_up(value: float, digits: int = 0) -> float:
    """Round with halves going up, unlike Python's banker's rounding."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def round_confidence(value: float) -> float:
    """Round a confidence score to the two decimals that get reported."""
    return round_half_up(value, 2)


def calculate_distance(p1: Tuple[float, float], p2: Tuple[float, float]) -> float:
    """Calculate Euclidean distance between two points."""
    return math.sqrt((p1[0] - p2[0]) ** 2 + (p1[1] - p2[1]) ** 2)


def calculate_angle(origin: Tuple[float, float], point: Tuple[float, float]) -> float:
    """Angle in radians of point relative to origin, as atan2(dy, dx)."""
    return math.atan2(point[1] - origin[1], point[0] - origin[0])


def most_frequent(samples: Iterable[str], default: str = "neutral") -> str:
    """
    Most frequent label in sample order.

    The running leader only changes when a label's count strictly exceeds the
    current maximum, so on a tie the label that reached the count first wins.
    """
    counts: Dict[str, int] = {}
    max_count = 0
    leader = default
    for sample in samples:
        counts[sample] = counts.get(sample, 0) + 1
        if counts[sample] > max_count:
            max_count = counts[sample]
            leader = sample
    return leader


def mode_with_count(samples: Iterable[str], labels: List[str]) -> Tuple[Optional[str], int]:
    """
    Mode over a fixed label vocabulary.

    Labels are scanned in vocabulary order with a strict comparison, so the
    earlier label wins ties. Samples outside the vocabulary are ignored.
    Returns ``(None, 0)`` when nothing matched.
    """
    counts = {label: 0 for label in labels}
    for sample in samples:
        if sample in counts:
            counts[sample] += 1

    best_label = None
    best_count = 0
    for label in labels:
        if counts[label] > best_count:
            best_label = label
            best_count = counts[label]
    return best_label, best_count


def format_duration(seconds: float) -> str:
    """Format duration in HH:MM:SS format."""
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = int(seconds % 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
