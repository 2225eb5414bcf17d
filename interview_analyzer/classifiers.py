"""
Frame classifier capability.

Wraps the external face-expression and body-pose inference libraries behind
one asynchronous interface, so the scoring and smoothing logic never depends
on a particular inference engine.
"""

import asyncio
import logging
import os
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import aiohttp
import numpy as np

from .config import ClassifierConfig
from .exceptions import InitializationError
from .models import ExpressionVector, LandmarkSet

logger = logging.getLogger(__name__)


class FrameClassifier(ABC):
    """Abstract per-frame expression and pose classifier."""

    def __init__(self, name: str):
        self.name = name
        self.is_loaded = False
        self._load_lock = asyncio.Lock()

    async def load(self) -> None:
        """
        Load the underlying models once.

        Safe to call repeatedly and concurrently; only the first call does
        any work. Raises InitializationError when loading fails.
        """
        async with self._load_lock:
            if self.is_loaded:
                return
            logger.info(f"Loading {self.name} models...")
            try:
                await self._load()
            except InitializationError:
                raise
            except Exception as e:
                raise InitializationError(f"Failed to load {self.name}: {e}") from e
            self.is_loaded = True
            logger.info(f"{self.name} models loaded")

    @abstractmethod
    async def _load(self) -> None:
        """Backend-specific model loading."""

    @abstractmethod
    async def detect_expressions(self, frame: np.ndarray) -> Optional[ExpressionVector]:
        """Expression vector for the single most prominent face, or None."""

    @abstractmethod
    async def detect_pose(self, frame: np.ndarray) -> Optional[LandmarkSet]:
        """Body landmarks for the detected person, or None."""

    async def close(self) -> None:
        """Release backend resources."""
        self.is_loaded = False

    def get_info(self) -> Dict[str, Any]:
        return {'name': self.name, 'is_loaded': self.is_loaded}


async def ensure_model(url: str, path: str, timeout: float = 120.0) -> str:
    """Download a model file once and cache it at path."""
    if os.path.exists(path):
        return path

    os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
    logger.info(f"Downloading model {url}")
    client_timeout = aiohttp.ClientTimeout(total=timeout)
    async with aiohttp.ClientSession(timeout=client_timeout) as session:
        async with session.get(url) as response:
            if response.status != 200:
                raise InitializationError(
                    f"Model download returned status {response.status}: {url}")
            data = await response.read()

    # Write to a temporary name first so an interrupted download is not cached
    partial = f"{path}.part"
    with open(partial, 'wb') as f:
        f.write(data)
    os.replace(partial, path)
    logger.info(f"Model saved to {path} ({len(data)} bytes)")
    return path


class MediaPipeClassifier(FrameClassifier):
    """
    MediaPipe Tasks backend: FaceLandmarker blendshapes for expressions and
    PoseLandmarker for the 33-point body model.

    Both landmarkers block, so every call runs in a worker thread.
    """

    def __init__(self, config: Optional[ClassifierConfig] = None):
        super().__init__("MediaPipeClassifier")
        self.config = config or ClassifierConfig()
        self._face = None
        self._pose = None
        # A landmarker graph must not be driven from two threads at once
        self._face_lock = threading.Lock()
        self._pose_lock = threading.Lock()

    def _model_path(self, explicit: Optional[str], url: str) -> str:
        if explicit:
            return explicit
        return os.path.join(self.config.model_dir, os.path.basename(url))

    async def _load(self) -> None:
        face_path = self.config.face_model_path
        if not face_path:
            face_path = await ensure_model(
                self.config.face_model_url,
                self._model_path(None, self.config.face_model_url),
                self.config.download_timeout
            )
        pose_path = self.config.pose_model_path
        if not pose_path:
            pose_path = await ensure_model(
                self.config.pose_model_url,
                self._model_path(None, self.config.pose_model_url),
                self.config.download_timeout
            )
        await asyncio.to_thread(self._create_landmarkers, face_path, pose_path)

    def _create_landmarkers(self, face_path: str, pose_path: str) -> None:
        from mediapipe.tasks import python as mp_python
        from mediapipe.tasks.python import vision as mp_vision

        face_options = mp_vision.FaceLandmarkerOptions(
            base_options=mp_python.BaseOptions(model_asset_path=face_path),
            running_mode=mp_vision.RunningMode.IMAGE,
            output_face_blendshapes=True,
            output_facial_transformation_matrixes=False,
            num_faces=1,
            min_face_detection_confidence=self.config.min_detection_confidence,
            min_face_presence_confidence=self.config.min_presence_confidence,
        )
        pose_options = mp_vision.PoseLandmarkerOptions(
            base_options=mp_python.BaseOptions(model_asset_path=pose_path),
            running_mode=mp_vision.RunningMode.IMAGE,
            output_segmentation_masks=False,
            num_poses=1,
            min_pose_detection_confidence=self.config.min_detection_confidence,
            min_pose_presence_confidence=self.config.min_presence_confidence,
        )
        self._face = mp_vision.FaceLandmarker.create_from_options(face_options)
        self._pose = mp_vision.PoseLandmarker.create_from_options(pose_options)

    @staticmethod
    def _to_image(frame: np.ndarray):
        import cv2
        import mediapipe as mp

        rgb_frame = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        return mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb_frame)

    async def detect_expressions(self, frame: np.ndarray) -> Optional[ExpressionVector]:
        if frame is None or frame.size == 0:
            return None
        return await asyncio.to_thread(self._detect_expressions_sync, frame)

    def _detect_expressions_sync(self, frame: np.ndarray) -> Optional[ExpressionVector]:
        if self._face is None:
            return None
        image = self._to_image(frame)
        with self._face_lock:
            result = self._face.detect(image)

        if not result or not getattr(result, 'face_blendshapes', None):
            return None
        scores = {cat.category_name: float(cat.score) for cat in result.face_blendshapes[0]}
        return ExpressionVector.from_blendshapes(scores)

    async def detect_pose(self, frame: np.ndarray) -> Optional[LandmarkSet]:
        if frame is None or frame.size == 0:
            return None
        return await asyncio.to_thread(self._detect_pose_sync, frame)

    def _detect_pose_sync(self, frame: np.ndarray) -> Optional[LandmarkSet]:
        if self._pose is None:
            return None
        image = self._to_image(frame)
        with self._pose_lock:
            result = self._pose.detect(image)

        if not result or not getattr(result, 'pose_landmarks', None):
            return None
        return LandmarkSet.from_points(result.pose_landmarks[0])

    async def close(self) -> None:
        if self._face is not None:
            with self._face_lock:
                self._face.close()
            self._face = None
        if self._pose is not None:
            with self._pose_lock:
                self._pose.close()
            self._pose = None
        await super().close()

    def get_info(self) -> Dict[str, Any]:
        info = super().get_info()
        info.update({
            'face_model': self._model_path(self.config.face_model_path, self.config.face_model_url),
            'pose_model': self._model_path(self.config.pose_model_path, self.config.pose_model_url),
        })
        return info
