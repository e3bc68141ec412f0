"""
Speaker identification by cosine distance between voice embeddings.

The embedding model itself is supplied by the caller as a function from an
``AudioFrame`` to a 1-D vector, so any speaker-embedding network can be
plugged in.
"""

import logging
import threading
from typing import TYPE_CHECKING, Callable, Optional

import numpy as np

from hey_llama.core.audio import AudioFrame
from hey_llama.speaker.base import Identifier, Speaker, SpeakerError
from hey_llama.stt.base import ModelLoadError

if TYPE_CHECKING:
    from hey_llama.config import SpeakerSettings

logger = logging.getLogger(__name__)

EmbedFn = Callable[[AudioFrame], np.ndarray]


def cosine_distance(a: np.ndarray, b: np.ndarray) -> float:
    """0 for identical direction, 1 for orthogonal, up to 2 for opposite.

    Incompatible or zero vectors count as maximally different (1.0).
    """
    if a.shape != b.shape or a.size == 0:
        return 1.0
    norm_a = float(np.linalg.norm(a))
    norm_b = float(np.linalg.norm(b))
    if norm_a == 0 or norm_b == 0:
        return 1.0
    similarity = float(np.dot(a, b)) / (norm_a * norm_b)
    return 1.0 - max(-1.0, min(1.0, similarity))


class EmbeddingIdentifier(Identifier):
    """
    Nearest-neighbour matching over enrolled speaker embeddings.

    Args:
        embed: Function returning a voice embedding for one segment
        threshold: Maximum cosine distance accepted as a match
        required_samples: Minimum utterances needed to enroll a speaker
        loader: Optional callable run by ``load_model`` (e.g. to download weights)
    """

    def __init__(
        self,
        embed: EmbedFn,
        threshold: float = 0.5,
        required_samples: int = 5,
        loader: Optional[Callable[[], None]] = None,
        speakers: Optional[list[Speaker]] = None,
    ):
        self._embed = embed
        self.threshold = threshold
        self.required_samples = required_samples
        self._loader = loader
        self._speakers: list[Speaker] = list(speakers or [])
        self._loaded = False
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, embed: EmbedFn, settings: "SpeakerSettings", **kwargs) -> "EmbeddingIdentifier":
        return cls(embed, threshold=settings.threshold, required_samples=settings.required_samples, **kwargs)

    def load_model(self) -> None:
        if self._loader is not None:
            try:
                self._loader()
            except Exception as e:
                raise ModelLoadError(str(e)) from e
        self._loaded = True
        logger.info("Speaker model loaded (%d enrolled speaker(s))", len(self._speakers))

    @property
    def is_model_loaded(self) -> bool:
        return self._loaded

    @property
    def enrolled_speakers(self) -> list[Speaker]:
        with self._lock:
            return list(self._speakers)

    def identify(self, segment: AudioFrame, threshold_override: Optional[float] = None) -> Optional[Speaker]:
        if not self._loaded:
            logger.warning("Speaker model not loaded, skipping identification")
            return None

        with self._lock:
            speakers = list(self._speakers)
        if not speakers or len(segment) == 0:
            return None

        vector = np.asarray(self._embed(segment), dtype=np.float32)
        threshold = self.threshold if threshold_override is None else threshold_override

        best: Optional[Speaker] = None
        best_distance = float("inf")
        for speaker in speakers:
            distance = cosine_distance(vector, speaker.embedding)
            if distance < best_distance:
                best, best_distance = speaker, distance

        if best is None or best_distance > threshold:
            logger.debug("No enrolled speaker match (closest distance %.3f)", best_distance)
            return None

        best.command_count += 1
        logger.debug("Speaker identified: %s (distance %.3f)", best.name, best_distance)
        return best

    def enroll(self, name: str, samples: list[AudioFrame]) -> Speaker:
        if not self._loaded:
            raise SpeakerError("Speaker model not loaded")
        if len(samples) < self.required_samples:
            raise SpeakerError(
                f"Enrollment needs {self.required_samples} samples, got {len(samples)}"
            )

        vectors = [np.asarray(self._embed(s), dtype=np.float32) for s in samples]
        if len({v.shape for v in vectors}) != 1:
            raise SpeakerError("Embedding sizes differ between enrollment samples")

        speaker = Speaker(name=name, embedding=np.mean(np.stack(vectors), axis=0))
        with self._lock:
            self._speakers.append(speaker)
        logger.info("Enrolled speaker: %s", name)
        return speaker

    def remove(self, speaker: Speaker) -> None:
        with self._lock:
            if speaker not in self._speakers:
                raise SpeakerError(f"Speaker not found: {speaker.name}")
            self._speakers.remove(speaker)
        logger.info("Removed speaker: %s", speaker.name)
