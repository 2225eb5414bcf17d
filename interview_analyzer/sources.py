"""
Capture sources feeding the analyzers.

Sources are shared read-only by every analyzer: the camera publishes its
latest frame from a capture thread and the microphone keeps a rolling sample
window, so concurrent readers never interfere with each other.
"""

import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Optional, Tuple, Union

import numpy as np
from scipy.signal import get_window

from .config import ToneConfig
from .exceptions import ResourceAcquisitionError

logger = logging.getLogger(__name__)


class FrameSource(ABC):
    """A live video feed."""

    @abstractmethod
    def read(self) -> Optional[np.ndarray]:
        """Latest BGR frame, or None when no frame is available yet."""

    def close(self) -> None:
        """Release the capture device."""


class CameraSource(FrameSource):
    """OpenCV webcam capture running on a background thread."""

    close_timeout = 2.0  # seconds to wait for the capture thread

    def __init__(self, camera_id: int = 0, resolution: Tuple[int, int] = (640, 480),
                 mirror: bool = True):
        self.camera_id = camera_id
        self.resolution = resolution
        self.mirror = mirror

        self._cap = None
        self._frame: Optional[np.ndarray] = None
        self._frame_lock = threading.Lock()
        self._running = False
        self._thread: Optional[threading.Thread] = None

    def open(self) -> None:
        """Open the camera and start the capture thread."""
        import cv2

        self._cap = cv2.VideoCapture(self.camera_id)
        if not self._cap.isOpened():
            self._cap.release()
            self._cap = None
            raise ResourceAcquisitionError(f"Could not open camera {self.camera_id}")

        self._cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.resolution[0])
        self._cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.resolution[1])

        self._start_capture(self._cap)
        logger.info(f"Camera {self.camera_id} opened at {self.resolution[0]}x{self.resolution[1]}")

    def _start_capture(self, cap) -> None:
        self._running = True
        self._thread = threading.Thread(target=self._capture_loop, args=(cap,), daemon=True)
        self._thread.start()

    def _capture_loop(self, cap) -> None:
        """Publish frames until stopped. The capture thread owns the device release."""
        consecutive_failures = 0
        try:
            while self._running:
                ret, frame = cap.read()
                if not ret:
                    consecutive_failures += 1
                    if consecutive_failures == 5:
                        logger.warning(f"Camera {self.camera_id} is not returning frames")
                    time.sleep(0.1)
                    continue
                consecutive_failures = 0
                if self.mirror:
                    import cv2
                    frame = cv2.flip(frame, 1)
                with self._frame_lock:
                    self._frame = frame
        finally:
            cap.release()

    def read(self) -> Optional[np.ndarray]:
        with self._frame_lock:
            return None if self._frame is None else self._frame.copy()

    def close(self) -> None:
        self._running = False
        if self._thread is not None:
            self._thread.join(timeout=self.close_timeout)
            if self._thread.is_alive():
                logger.warning(f"Camera {self.camera_id} capture thread still busy; "
                               "it releases the device when its read returns")
            self._thread = None
        self._cap = None
        logger.info(f"Camera {self.camera_id} released")


class AudioSource(ABC):
    """A live audio stream exposing a frequency-domain analysis node."""

    @property
    @abstractmethod
    def frequency_bin_count(self) -> int:
        """Number of frequency bins returned per read."""

    @abstractmethod
    def connect(self) -> None:
        """Start capturing. Raises ResourceAcquisitionError on failure."""

    @abstractmethod
    def disconnect(self) -> None:
        """Stop capturing and release the device."""

    @abstractmethod
    def get_byte_frequency_data(self) -> np.ndarray:
        """Current spectrum as uint8 magnitudes, one per frequency bin."""


class FrequencyAnalyser:
    """
    Spectrum analysis equivalent to a browser AnalyserNode.

    Blackman-windowed FFT magnitudes are smoothed over time, converted to
    decibels and mapped from [min_decibels, max_decibels] onto 0-255.
    """

    def __init__(self, fft_size: int = 2048, smoothing_time_constant: float = 0.8,
                 min_decibels: float = -100.0, max_decibels: float = -30.0):
        if fft_size <= 0 or fft_size & (fft_size - 1):
            raise ValueError(f"fft_size must be a power of two, got {fft_size}")
        if min_decibels >= max_decibels:
            raise ValueError("min_decibels must be below max_decibels")
        self.fft_size = fft_size
        self.smoothing_time_constant = smoothing_time_constant
        self.min_decibels = min_decibels
        self.max_decibels = max_decibels

        self._window = get_window('blackman', fft_size)
        self._smoothed = np.zeros(self.frequency_bin_count, dtype=np.float64)

    @property
    def frequency_bin_count(self) -> int:
        return self.fft_size // 2

    def reset(self) -> None:
        self._smoothed[:] = 0.0

    def analyse(self, samples: np.ndarray) -> np.ndarray:
        """Byte spectrum for the most recent fft_size samples."""
        block = np.zeros(self.fft_size, dtype=np.float64)
        tail = np.asarray(samples, dtype=np.float64)[-self.fft_size:]
        block[self.fft_size - len(tail):] = tail

        spectrum = np.fft.rfft(block * self._window)
        magnitude = np.abs(spectrum[:self.frequency_bin_count]) / self.fft_size

        tau = self.smoothing_time_constant
        self._smoothed = tau * self._smoothed + (1.0 - tau) * magnitude

        decibels = 20.0 * np.log10(np.maximum(self._smoothed, 1e-10))
        scale = 255.0 / (self.max_decibels - self.min_decibels)
        scaled = np.floor((decibels - self.min_decibels) * scale)
        return np.clip(scaled, 0, 255).astype(np.uint8)


class MicrophoneSource(AudioSource):
    """sounddevice microphone input with an attached FrequencyAnalyser."""

    def __init__(self, config: Optional[ToneConfig] = None,
                 device: Optional[Union[int, str]] = None):
        self.config = config or ToneConfig()
        self.device = device
        self.analyser = FrequencyAnalyser(
            fft_size=self.config.fft_size,
            smoothing_time_constant=self.config.smoothing_time_constant,
            min_decibels=self.config.min_decibels,
            max_decibels=self.config.max_decibels
        )

        self._samples = np.zeros(self.config.fft_size, dtype=np.float32)
        self._samples_lock = threading.Lock()
        self._stream = None

    @property
    def frequency_bin_count(self) -> int:
        return self.analyser.frequency_bin_count

    @property
    def is_connected(self) -> bool:
        return self._stream is not None

    def _audio_callback(self, indata, frames, time_info, status):
        """Callback for sounddevice's InputStream."""
        if status:
            logger.debug(f"Audio status: {status}")

        audio = np.mean(indata, axis=1) if indata.ndim > 1 else indata
        audio = audio.astype(np.float32)

        with self._samples_lock:
            self._samples = np.concatenate([self._samples, audio])[-self.config.fft_size:]

    def connect(self) -> None:
        if self._stream is not None:
            return
        try:
            # PortAudio is loaded on import, so a missing system library is
            # also an acquisition failure
            import sounddevice as sd
        except OSError as e:
            raise ResourceAcquisitionError(f"PortAudio is not available: {e}") from e

        stream = None
        try:
            stream = sd.InputStream(
                channels=1,
                samplerate=self.config.sample_rate,
                blocksize=int(0.05 * self.config.sample_rate),
                device=self.device,
                callback=self._audio_callback
            )
            stream.start()
        except (sd.PortAudioError, ValueError) as e:
            if stream is not None:
                stream.close()
            raise ResourceAcquisitionError(f"Could not open microphone: {e}") from e

        self._stream = stream
        self.analyser.reset()
        logger.info(f"Microphone opened at {self.config.sample_rate} Hz")

    def disconnect(self) -> None:
        if self._stream is None:
            return
        try:
            self._stream.stop()
            self._stream.close()
        finally:
            self._stream = None
            logger.info("Microphone closed")

    def get_byte_frequency_data(self) -> np.ndarray:
        with self._samples_lock:
            samples = self._samples.copy()
        return self.analyser.analyse(samples)
