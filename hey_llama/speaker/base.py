"""
Speaker identification capability.
"""

import time
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from hey_llama.core.audio import AudioFrame


class SpeakerError(RuntimeError):
    """Enrollment or removal failed."""


@dataclass
class Speaker:
    """An enrolled voice."""

    name: str
    embedding: np.ndarray = field(default_factory=lambda: np.zeros(0, dtype=np.float32), repr=False)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    enrolled_at: float = field(default_factory=time.time)
    command_count: int = 0

    def __eq__(self, other) -> bool:
        return isinstance(other, Speaker) and self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)


class Identifier(ABC):
    """Maps an utterance to an enrolled speaker."""

    @abstractmethod
    def load_model(self) -> None:
        """
        Raises:
            ModelLoadError: if the model cannot be loaded
        """
        pass

    @abstractmethod
    def identify(self, segment: AudioFrame, threshold_override: Optional[float] = None) -> Optional[Speaker]:
        """Best matching speaker, or None for an unknown voice."""
        pass

    @abstractmethod
    def enroll(self, name: str, samples: list[AudioFrame]) -> Speaker:
        pass

    @abstractmethod
    def remove(self, speaker: Speaker) -> None:
        pass

    @property
    @abstractmethod
    def enrolled_speakers(self) -> list[Speaker]:
        pass

    @property
    @abstractmethod
    def is_model_loaded(self) -> bool:
        pass


class NullIdentifier(Identifier):
    """Identifier for setups without a speaker model. Everyone is a guest."""

    def __init__(self):
        self._loaded = False

    def load_model(self) -> None:
        self._loaded = True

    def identify(self, segment: AudioFrame, threshold_override: Optional[float] = None) -> Optional[Speaker]:
        return None

    def enroll(self, name: str, samples: list[AudioFrame]) -> Speaker:
        raise SpeakerError("Speaker enrollment is not available without a speaker model")

    def remove(self, speaker: Speaker) -> None:
        raise SpeakerError(f"Speaker not found: {speaker.name}")

    @property
    def enrolled_speakers(self) -> list[Speaker]:
        return []

    @property
    def is_model_loaded(self) -> bool:
        return self._loaded
