"""
Voice activity gating.

Splits the work in two:
- a speech probability source that scores each frame (energy or WebRTC VAD)
- the gate itself, a small hysteresis state machine over those scores
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum

import numpy as np

from hey_llama.core.audio import AudioFrame

logger = logging.getLogger(__name__)


class GateSignal(Enum):
    """Per-frame output of the gate."""

    SILENCE = "silence"
    SPEECH_START = "speech_start"
    SPEECH_CONTINUE = "speech_continue"
    SPEECH_END = "speech_end"


class SpeechProbabilitySource(ABC):
    """Scores a block of samples with a speech probability in [0, 1]."""

    @abstractmethod
    def probability(self, samples: np.ndarray, sample_rate: int) -> float:
        pass

    def reset(self) -> None:
        """Reset any streaming state."""


class EnergyProbabilitySource(SpeechProbabilitySource):
    """
    RMS energy mapped onto a probability.

    Frames at ``energy_threshold`` (int16 RMS units) score 0.5; the score
    saturates at twice the threshold.
    """

    def __init__(self, energy_threshold: float = 500.0):
        self.energy_threshold = energy_threshold

    def probability(self, samples: np.ndarray, sample_rate: int) -> float:
        if len(samples) == 0:
            return 0.0
        rms = float(np.sqrt(np.mean(np.square(samples, dtype=np.float64)))) * 32768
        return float(min(1.0, rms / (2 * self.energy_threshold)))


class WebRTCProbabilitySource(SpeechProbabilitySource):
    """Fraction of 30ms sub-frames WebRTC VAD judges to be speech."""

    def __init__(self, mode: int = 3):
        """
        Args:
            mode: Aggressiveness (0-3, 3 is most aggressive)
        """
        try:
            import webrtcvad
        except ImportError as e:
            raise ImportError(
                "webrtcvad not installed. "
                "Install with: pip install hey-llama[audio]"
            ) from e

        self._vad = webrtcvad.Vad(mode)
        logger.info("Using WebRTC VAD (mode %d)", mode)

    def probability(self, samples: np.ndarray, sample_rate: int) -> float:
        # WebRTC VAD accepts 10, 20 or 30ms frames only
        frame_size = int(sample_rate * 0.03)
        if len(samples) < frame_size:
            return 0.0

        pcm = (np.clip(samples, -1.0, 1.0) * 32767).astype(np.int16)
        speech = 0
        total = 0
        for i in range(0, len(pcm) - frame_size + 1, frame_size):
            if self._vad.is_speech(pcm[i : i + frame_size].tobytes(), sample_rate):
                speech += 1
            total += 1
        return speech / total


def create_probability_source(backend: str = "energy", **kwargs) -> SpeechProbabilitySource:
    """
    Factory for speech probability sources.

    Args:
        backend: "energy" or "webrtc"
        **kwargs: Backend-specific options
    """
    if backend == "energy":
        return EnergyProbabilitySource(**kwargs)
    elif backend == "webrtc":
        return WebRTCProbabilitySource(**kwargs)
    else:
        raise ValueError(f"Unknown VAD backend: {backend}")


class VoiceActivityGate:
    """
    Hysteresis over per-frame speech probabilities.

    A frame scoring above ``threshold`` opens the gate. Once open, the gate
    stays open through short pauses and only closes after
    ``silence_frames`` consecutive low frames (about 300ms at 30ms frames).
    """

    def __init__(
        self,
        source: SpeechProbabilitySource | None = None,
        threshold: float = 0.5,
        silence_frames: int = 10,
    ):
        self.source = source or EnergyProbabilitySource()
        self.threshold = threshold
        self.silence_frames = silence_frames
        self._active = False
        self._silence_count = 0
        self.last_probability = 0.0

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def silence_count(self) -> int:
        return self._silence_count

    def classify(self, frame: AudioFrame) -> GateSignal:
        """Score a frame and advance the state machine."""
        probability = self.source.probability(frame.samples, frame.sample_rate)
        return self.classify_probability(probability)

    def classify_probability(self, probability: float) -> GateSignal:
        self.last_probability = probability

        if probability > self.threshold:
            self._silence_count = 0
            if not self._active:
                self._active = True
                return GateSignal.SPEECH_START
            return GateSignal.SPEECH_CONTINUE

        if not self._active:
            return GateSignal.SILENCE

        self._silence_count += 1
        if self._silence_count >= self.silence_frames:
            self._active = False
            self._silence_count = 0
            return GateSignal.SPEECH_END
        return GateSignal.SPEECH_CONTINUE

    def reset(self) -> None:
        """Return to inactive with a zero silence count."""
        self._active = False
        self._silence_count = 0
        self.last_probability = 0.0
        self.source.reset()
