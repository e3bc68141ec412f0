"""
Abstract base class for speech recognizers.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from hey_llama.core.audio import AudioFrame


class RecognitionError(RuntimeError):
    """Transcription of a segment failed."""


class ModelLoadError(RuntimeError):
    """A recognition or identification model could not be loaded."""


@dataclass
class WordTiming:
    """A single recognized word with its position in the segment."""

    word: str
    start: float  # Start time in seconds
    end: float  # End time in seconds
    confidence: float = 1.0


@dataclass
class TranscriptionResult:
    """Result from speech transcription."""

    text: str
    confidence: float = 1.0  # 0.0 - 1.0
    language: Optional[str] = None
    elapsed_ms: float = 0.0
    words: list[WordTiming] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "text": self.text,
            "confidence": self.confidence,
            "language": self.language,
            "elapsed_ms": self.elapsed_ms,
            "words": [
                {"word": w.word, "start": w.start, "end": w.end, "confidence": w.confidence}
                for w in self.words
            ],
        }


class Recognizer(ABC):
    """Abstract base class for speech recognizers."""

    name: str = "base"

    def __init__(self):
        self._loaded = False
        self._model = None

    @abstractmethod
    def load_model(self) -> None:
        """
        Load the model into memory.

        Raises:
            ModelLoadError: if the model cannot be loaded
        """
        pass

    @abstractmethod
    def transcribe(self, segment: AudioFrame) -> TranscriptionResult:
        """
        Transcribe one utterance.

        Args:
            segment: Normalized float32 samples of a single utterance

        Raises:
            RecognitionError: if transcription fails
        """
        pass

    @property
    def is_model_loaded(self) -> bool:
        return self._loaded

    def unload(self) -> None:
        """Unload model from memory."""
        self._model = None
        self._loaded = False

    def get_info(self) -> dict[str, Any]:
        return {"name": self.name, "loaded": self._loaded}
