"""
Audio frames and the rolling capture buffer.
"""

import threading
import time
from dataclasses import dataclass, field

import numpy as np

DEFAULT_SAMPLE_RATE = 16000


@dataclass(frozen=True)
class AudioSource:
    """Where a frame was captured.

    ``kind`` is ``"local"`` for the built-in microphone, or the name of a
    remote origin (``"satellite"``, ``"ios"``) paired with its ``origin_id``.
    """

    kind: str = "local"
    origin_id: str | None = None

    @classmethod
    def local(cls) -> "AudioSource":
        return cls()

    @classmethod
    def remote(cls, kind: str, origin_id: str) -> "AudioSource":
        return cls(kind=kind, origin_id=origin_id)

    @property
    def identifier(self) -> str:
        if self.origin_id is None:
            return self.kind
        return f"{self.kind}-{self.origin_id}"


LOCAL_MIC = AudioSource.local()


def _as_samples(samples) -> np.ndarray:
    array = np.asarray(samples)
    if array.dtype == np.int16:
        array = array.astype(np.float32) / 32768.0
    array = np.ascontiguousarray(array, dtype=np.float32).reshape(-1)
    array.setflags(write=False)
    return array


@dataclass(frozen=True)
class AudioFrame:
    """An immutable block of normalized float32 samples."""

    samples: np.ndarray
    sample_rate: int = DEFAULT_SAMPLE_RATE
    timestamp: float = field(default_factory=time.time)
    source: AudioSource = LOCAL_MIC

    def __post_init__(self):
        object.__setattr__(self, "samples", _as_samples(self.samples))

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def duration(self) -> float:
        """Frame duration in seconds."""
        if self.sample_rate <= 0:
            return 0.0
        return len(self.samples) / self.sample_rate


class AudioBuffer:
    """
    Thread-safe rolling store of recent audio.

    Keeps at most ``max_seconds`` of samples. The capture thread appends
    frames while the pipeline marks where speech started and later pulls the
    utterance out, so every operation runs under one lock.
    """

    def __init__(
        self,
        max_seconds: float = 15.0,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        lookback_ms: int = 300,
        max_samples: int | None = None,
        lookback_samples: int | None = None,
    ):
        self.sample_rate = sample_rate
        self.max_samples = max_samples if max_samples is not None else int(max_seconds * sample_rate)
        self.lookback_samples = (
            lookback_samples
            if lookback_samples is not None
            else int(lookback_ms / 1000 * sample_rate)
        )
        self._samples = np.zeros(0, dtype=np.float32)
        self._speech_start: int | None = None
        self._lock = threading.Lock()

    @property
    def sample_count(self) -> int:
        with self._lock:
            return len(self._samples)

    @property
    def has_speech_start(self) -> bool:
        with self._lock:
            return self._speech_start is not None

    @property
    def speech_start(self) -> int | None:
        with self._lock:
            return self._speech_start

    def append(self, frame: AudioFrame) -> None:
        """Append a frame, dropping the oldest samples beyond capacity."""
        with self._lock:
            self._samples = np.concatenate([self._samples, frame.samples])

            excess = len(self._samples) - self.max_samples
            if excess > 0:
                self._samples = self._samples[excess:]
                if self._speech_start is not None:
                    # An utterance longer than the window keeps its oldest retained sample
                    self._speech_start = max(0, self._speech_start - excess)

    def mark_speech_start(self) -> None:
        """Remember where speech began, including a short pre-roll."""
        with self._lock:
            self._speech_start = max(0, len(self._samples) - self.lookback_samples)

    def extract_since_speech_start(self, source: AudioSource = LOCAL_MIC) -> AudioFrame:
        """Return samples from the speech-start marker to the end and clear the marker."""
        with self._lock:
            start = self._speech_start or 0
            segment = self._samples[start:].copy()
            self._speech_start = None
        return AudioFrame(samples=segment, sample_rate=self.sample_rate, source=source)

    def clear(self) -> None:
        with self._lock:
            self._samples = np.zeros(0, dtype=np.float32)
            self._speech_start = None
