"""
Interview Analyzer - real-time multi-modal behavioral analysis for mock interviews.

This package turns live video and audio captured during an interview answer
into calibrated, temporally stable behavioral signals:
- Stress, scored against a per-session baseline and smoothed over time
- Dominant emotion over the last minute
- Body language from pose landmarks (posture, hands, engagement, openness)
- Vocal tone (pitch, speaking speed, confidence)

Modules:
- analysis_manager: Orchestrates the four analyzers
- stress_detector / stress_analyzer: Baseline calibration and stress scoring
- emotion_analyzer, gesture_analyzer, tone_analyzer: The other analyzers
- classifiers, sources: Inference backend and capture devices
- config: Configuration management
"""

__version__ = "1.0.0"

from .analysis_manager import AnalysisManager
from .classifiers import FrameClassifier, MediaPipeClassifier
from .config import Config
from .emotion_analyzer import EmotionAnalyzer
from .exceptions import (
    AnalysisError,
    AnalyzerStartError,
    InitializationError,
    ResourceAcquisitionError,
)
from .gesture_analyzer import GestureAnalyzer
from .stress_analyzer import StressAnalyzer
from .stress_detector import StressDetector
from .tone_analyzer import ToneAnalyzer

__all__ = [
    'AnalysisManager',
    'StressAnalyzer',
    'StressDetector',
    'EmotionAnalyzer',
    'GestureAnalyzer',
    'ToneAnalyzer',
    'FrameClassifier',
    'MediaPipeClassifier',
    'Config',
    'AnalysisError',
    'AnalyzerStartError',
    'InitializationError',
    'ResourceAcquisitionError',
]
