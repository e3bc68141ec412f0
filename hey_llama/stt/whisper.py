"""
Whisper recognizer using faster-whisper (CTranslate2).
"""

import logging
import math
import time
from typing import Any, Optional

from hey_llama.core.audio import AudioFrame
from hey_llama.stt.base import (
    ModelLoadError,
    RecognitionError,
    Recognizer,
    TranscriptionResult,
    WordTiming,
)
from hey_llama.stt.registry import register_recognizer

logger = logging.getLogger(__name__)

WHISPER_SAMPLE_RATE = 16000


@register_recognizer("whisper")
class WhisperRecognizer(Recognizer):
    """Local Whisper transcription."""

    def __init__(
        self,
        model_size: str = "base",
        language: Optional[str] = "en",
        device: str = "auto",
        compute_type: str = "default",
        word_timestamps: bool = False,
    ):
        """
        Args:
            model_size: Model size ("tiny", "base", "small", "medium", "large-v3"...)
            language: Language code (None to auto-detect)
            device: "cpu", "cuda" or "auto"
            compute_type: CTranslate2 quantization ("int8", "float16"...)
            word_timestamps: Return per-word timings
        """
        super().__init__()
        self.model_size = model_size
        self.language = language
        self.device = device
        self.compute_type = compute_type
        self.word_timestamps = word_timestamps

    def load_model(self) -> None:
        try:
            from faster_whisper import WhisperModel
        except ImportError as e:
            raise ImportError(
                "faster-whisper not installed. "
                "Install with: pip install hey-llama[whisper]"
            ) from e

        logger.info("Loading Whisper (%s)...", self.model_size)
        try:
            self._model = WhisperModel(
                self.model_size, device=self.device, compute_type=self.compute_type
            )
        except Exception as e:
            raise ModelLoadError(str(e)) from e

        self._loaded = True
        logger.info("Whisper model loaded")

    def transcribe(self, segment: AudioFrame) -> TranscriptionResult:
        if not self._loaded or self._model is None:
            raise RecognitionError("Model not loaded. Call load_model() first.")
        if segment.sample_rate != WHISPER_SAMPLE_RATE:
            raise RecognitionError(
                f"Expected {WHISPER_SAMPLE_RATE} Hz audio, got {segment.sample_rate} Hz"
            )

        start = time.perf_counter()
        try:
            segments_gen, info = self._model.transcribe(
                segment.samples,
                language=self.language,
                beam_size=5,
                condition_on_previous_text=False,
                word_timestamps=self.word_timestamps,
            )
            segments = list(segments_gen)
        except Exception as e:
            raise RecognitionError(str(e)) from e
        elapsed_ms = (time.perf_counter() - start) * 1000

        text = " ".join(s.text.strip() for s in segments).strip()

        # avg_logprob is per-token log probability; map the mean back to [0, 1]
        confidence = 0.0
        if segments:
            avg_logprob = sum(s.avg_logprob for s in segments) / len(segments)
            confidence = min(1.0, math.exp(avg_logprob))

        words: list[WordTiming] = []
        if self.word_timestamps:
            for s in segments:
                for w in s.words or []:
                    words.append(
                        WordTiming(word=w.word.strip(), start=w.start, end=w.end, confidence=w.probability)
                    )

        logger.debug("Whisper: %.0fms, confidence=%.2f, text=%r", elapsed_ms, confidence, text)

        return TranscriptionResult(
            text=text,
            confidence=confidence,
            language=getattr(info, "language", self.language),
            elapsed_ms=elapsed_ms,
            words=words,
        )

    def get_info(self) -> dict[str, Any]:
        info = super().get_info()
        info.update({"model_size": self.model_size, "language": self.language, "device": self.device})
        return info
