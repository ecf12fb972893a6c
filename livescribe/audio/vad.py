"""
FrameEnergyAnalyzer: voice-activity score per analysis window.

Two detectors behind one capability, detect_activity(frame, threshold, smoothing):
- EnergyDetector: mean squared amplitude. Always available; the fallback.
- WebRtcDetector: webrtcvad on 20ms sub-frames, speech ratio smoothed over frames.

The plug-in detector may be missing (webrtcvad not installed) or may fail at
runtime; the analyzer then falls back to energy for the rest of the session.
"""
from __future__ import annotations

import logging
from typing import Protocol

import numpy as np

from livescribe.audio.types import ActivityScore
from livescribe.config import get_settings

logger = logging.getLogger(__name__)

# Log energy vs threshold once every N frames (debug only)
DEBUG_LOG_EVERY_FRAMES = 100


def frame_energy(frame: np.ndarray) -> float:
    """Mean squared amplitude of float32 samples in [-1, 1]."""
    if frame.size == 0:
        return 0.0
    samples = frame.astype(np.float32, copy=False)
    return float(np.mean(samples * samples))


def float32_to_pcm_bytes(frame: np.ndarray) -> bytes:
    """Convert float32 [-1, 1] to PCM 16-bit mono bytes."""
    samples = (frame * 32767).clip(-32768, 32767).astype(np.int16)
    return samples.tobytes()


class ActivityDetector(Protocol):
    def detect_activity(self, frame: np.ndarray, threshold: float, smoothing: float) -> float:
        """Return a score in [0, 1]; caller compares it to threshold."""
        ...


class EnergyDetector:
    """Energy-based detection. No state; threshold and smoothing are unused."""

    def detect_activity(self, frame: np.ndarray, threshold: float, smoothing: float) -> float:
        return min(1.0, frame_energy(frame))


class WebRtcDetector:
    """
    Wraps webrtcvad. Splits the window into 20ms sub-frames of 16-bit PCM and
    scores the fraction classified as speech, smoothed across windows.
    """

    SUBFRAME_MS = 20

    def __init__(self, aggressiveness: int = 2, sample_rate: int | None = None) -> None:
        """
        aggressiveness: 0 (least aggressive) to 3 (most aggressive).
        Raises ImportError when webrtcvad is not installed.
        """
        import webrtcvad

        self._vad = webrtcvad.Vad(min(max(aggressiveness, 0), 3))
        self._sample_rate = sample_rate or get_settings().SAMPLE_RATE
        self._subframe_samples = self._sample_rate * self.SUBFRAME_MS // 1000
        self._smoothed = 0.0

    def detect_activity(self, frame: np.ndarray, threshold: float, smoothing: float) -> float:
        n = self._subframe_samples
        total = len(frame) // n
        if total == 0:
            return self._smoothed
        speech = 0
        for i in range(total):
            pcm = float32_to_pcm_bytes(frame[i * n : (i + 1) * n])
            if self._vad.is_speech(pcm, self._sample_rate):
                speech += 1
        ratio = speech / total
        self._smoothed = smoothing * self._smoothed + (1.0 - smoothing) * ratio
        return self._smoothed


def load_detector(backend: str | None = None) -> ActivityDetector | None:
    """Load the plug-in detector for VAD_BACKEND. None means energy only."""
    settings = get_settings()
    backend = (backend or settings.VAD_BACKEND or "energy").strip().lower()
    if backend == "energy":
        return None
    if backend == "webrtc":
        try:
            return WebRtcDetector(
                aggressiveness=settings.VAD_WEBRTC_AGGRESSIVENESS,
                sample_rate=settings.SAMPLE_RATE,
            )
        except Exception as e:
            logger.warning("webrtcvad unavailable, using energy detection: %s", e)
            return None
    logger.warning("Unknown VAD_BACKEND=%s; using energy detection", backend)
    return None


class FrameEnergyAnalyzer:
    """
    analyze(frame) -> ActivityScore. Uses the plug-in detector when one is
    set, else energy. Both paths use the same threshold.
    """

    def __init__(
        self,
        detector: ActivityDetector | None = None,
        threshold: float | None = None,
        smoothing: float | None = None,
    ) -> None:
        settings = get_settings()
        self._threshold = threshold if threshold is not None else settings.VAD_THRESHOLD
        self._smoothing = smoothing if smoothing is not None else settings.VAD_SMOOTHING
        self._energy = EnergyDetector()
        self._detector = detector
        self._frames = 0

    @property
    def using_plugin(self) -> bool:
        return self._detector is not None

    @property
    def threshold(self) -> float:
        return self._threshold

    def analyze(self, frame: np.ndarray) -> ActivityScore:
        self._frames += 1
        score = None
        if self._detector is not None:
            try:
                score = self._detector.detect_activity(frame, self._threshold, self._smoothing)
            except Exception as e:
                logger.warning("Activity detector failed, falling back to energy: %s", e)
                self._detector = None
        if score is None:
            score = self._energy.detect_activity(frame, self._threshold, self._smoothing)
        is_speaking = score > self._threshold
        if self._frames % DEBUG_LOG_EVERY_FRAMES == 0:
            logger.debug(
                "Activity score %.6f, threshold %s, plugin=%s, speaking=%s",
                score,
                self._threshold,
                self.using_plugin,
                is_speaking,
            )
        return ActivityScore(score=score, is_speaking=is_speaking)
