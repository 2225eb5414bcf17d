"""
Configuration management for the Interview Analyzer.

This module provides centralized configuration for every analyzer in the
engine, so thresholds, sampling rates and buffer sizes can be adjusted in
one place and loaded from JSON.
"""

import datetime
import json
import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Optional, Tuple

from .models import ExpressionLabel

FACE_MODEL_URL = ("https://storage.googleapis.com/mediapipe-models/face_landmarker/"
                  "face_landmarker/float16/1/face_landmarker.task")
POSE_MODEL_URL = ("https://storage.googleapis.com/mediapipe-models/pose_landmarker/"
                  "pose_landmarker_full/float16/1/pose_landmarker_full.task")


def _default_stress_weights() -> Dict[str, float]:
    return {
        'angry': 1.0,      # direct stress indicator
        'fearful': 1.0,    # direct stress indicator
        'sad': 0.8,
        'disgusted': 0.7,
        'surprised': 0.3,  # mild, can indicate anxiety
    }


@dataclass
class StressConfig:
    """Configuration for baseline calibration and stress detection."""

    # Calibration
    calibration_duration: float = 5.0  # seconds
    calibration_samples_target: int = 15

    # Scoring
    stress_threshold: float = 0.25  # minimum deviation for a label to contribute
    confidence_threshold: float = 0.6
    stress_weights: Dict[str, float] = field(default_factory=_default_stress_weights)

    # Detection loop and smoothing
    detection_interval: float = 0.333  # seconds, ~3 FPS
    smoothing_window: int = 5

    # Session timeline
    timeline_interval: float = 1.0
    timeline_window: float = 300.0  # seconds kept in the stress timeline

    def __post_init__(self):
        self.validate()

    def validate(self) -> None:
        """Raise ValueError for weights on unknown expressions or below zero."""
        labels = {label.value for label in ExpressionLabel}
        unknown = sorted(key for key in self.stress_weights if key not in labels)
        if unknown:
            raise ValueError(f"Unknown expression labels in stress_weights: {', '.join(unknown)}")
        for label, weight in self.stress_weights.items():
            if weight < 0:
                raise ValueError(f"Stress weight for '{label}' must not be negative, got {weight}")


@dataclass
class EmotionConfig:
    """Configuration for dominant emotion tracking."""

    detection_interval: float = 1.0
    timeline_size: int = 60


@dataclass
class GestureConfig:
    """Configuration for pose-based gesture analysis."""

    capture_interval: float = 1.0 / 30  # pose capture loop period
    sample_buffer_size: int = 30

    posture_threshold: float = 0.05  # max shoulder height difference for good posture
    hand_minimal: float = 0.2
    hand_moderate: float = 0.5
    engagement_high: float = 0.8
    engagement_moderate: float = 0.5


@dataclass
class ToneConfig:
    """Configuration for audio tone analysis."""

    frame_interval: float = 1.0 / 60  # animation-frame rate
    pitch_history_size: int = 100
    initial_confidence: float = 50.0

    # Frequency analysis
    sample_rate: int = 16000
    fft_size: int = 2048
    smoothing_time_constant: float = 0.8
    min_decibels: float = -100.0
    max_decibels: float = -30.0


@dataclass
class ClassifierConfig:
    """Configuration for the inference backends."""

    # MediaPipe task models, downloaded into model_dir on first load unless
    # a local path is given
    model_dir: str = field(default_factory=lambda: os.path.join(
        os.path.expanduser('~'), '.cache', 'interview_analyzer'))
    face_model_url: str = FACE_MODEL_URL
    pose_model_url: str = POSE_MODEL_URL
    face_model_path: Optional[str] = None
    pose_model_path: Optional[str] = None
    download_timeout: float = 120.0  # seconds

    min_detection_confidence: float = 0.5
    min_presence_confidence: float = 0.5


_SECTIONS = ('stress', 'emotion', 'gesture', 'tone', 'classifier')


@dataclass
class Config:
    """Main configuration class that combines all component configurations."""

    stress: StressConfig = field(default_factory=StressConfig)
    emotion: EmotionConfig = field(default_factory=EmotionConfig)
    gesture: GestureConfig = field(default_factory=GestureConfig)
    tone: ToneConfig = field(default_factory=ToneConfig)
    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)

    # Capture settings used by the CLI
    camera_id: int = 0
    resolution: Tuple[int, int] = (640, 480)
    audio_device: Optional[str] = None

    # Global settings
    session_name: Optional[str] = None
    enable_logging: bool = True
    log_level: str = field(default_factory=lambda: os.getenv('LOG_LEVEL', 'INFO'))

    def __post_init__(self):
        if self.session_name is None:
            timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
            self.session_name = f"session_{timestamp}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        result = {name: dict(getattr(self, name).__dict__) for name in _SECTIONS}
        result.update({
            'camera_id': self.camera_id,
            'resolution': list(self.resolution),
            'audio_device': self.audio_device,
            'session_name': self.session_name,
            'enable_logging': self.enable_logging,
            'log_level': self.log_level,
        })
        return result

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'Config':
        """Create configuration from dictionary, ignoring unknown keys."""
        config = cls()

        for name in _SECTIONS:
            section = getattr(config, name)
            known = {f.name for f in fields(section)}
            for key, value in config_dict.get(name, {}).items():
                if key in known:
                    setattr(section, key, value)
        config.stress.validate()

        for f in fields(cls):
            if f.name in _SECTIONS or f.name not in config_dict:
                continue
            value = config_dict[f.name]
            if f.name == 'resolution':
                value = tuple(value)
            setattr(config, f.name, value)

        return config

    def save_to_file(self, filename: str) -> None:
        """Save configuration to JSON file."""
        with open(filename, 'w') as f:
            json.dump(self.to_dict(), f, indent=4)

    @classmethod
    def load_from_file(cls, filename: str) -> 'Config':
        """Load configuration from JSON file."""
        with open(filename, 'r') as f:
            config_dict = json.load(f)
        return cls.from_dict(config_dict)
