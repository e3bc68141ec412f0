"""
STT (Speech-to-Text) recognizers.
"""

from hey_llama.stt.base import (
    ModelLoadError,
    RecognitionError,
    Recognizer,
    TranscriptionResult,
    WordTiming,
)
from hey_llama.stt.registry import get_recognizer, list_recognizers, register_recognizer

__all__ = [
    "Recognizer",
    "TranscriptionResult",
    "WordTiming",
    "RecognitionError",
    "ModelLoadError",
    "register_recognizer",
    "get_recognizer",
    "list_recognizers",
]
