"""
Tests for the recognizer registry and the Whisper recognizer.
"""

from types import SimpleNamespace

import numpy as np
import pytest


class TestRecognizerRegistry:
    """Tests for recognizer discovery."""

    def test_whisper_registered(self):
        from hey_llama.stt import list_recognizers

        names = [r["name"] for r in list_recognizers()]
        assert "whisper" in names

    def test_get_recognizer_passes_kwargs(self):
        from hey_llama.stt import get_recognizer

        recognizer = get_recognizer("whisper", model_size="tiny", language=None)
        assert recognizer.name == "whisper"
        assert recognizer.model_size == "tiny"
        assert recognizer.language is None
        assert not recognizer.is_model_loaded

    def test_unknown_recognizer(self):
        from hey_llama.stt import get_recognizer

        with pytest.raises(ValueError, match="not found"):
            get_recognizer("nonexistent")


class FakeWhisperModel:
    def __init__(self, segments, language="en", error=None):
        self.segments = segments
        self.language = language
        self.error = error
        self.calls = []

    def transcribe(self, audio, **kwargs):
        self.calls.append((audio, kwargs))
        if self.error is not None:
            raise self.error
        return iter(self.segments), SimpleNamespace(language=self.language)


class TestWhisperRecognizer:
    """Tests for WhisperRecognizer with the model replaced."""

    def _recognizer(self, model, **kwargs):
        from hey_llama.stt.whisper import WhisperRecognizer

        recognizer = WhisperRecognizer(**kwargs)
        recognizer._model = model
        recognizer._loaded = True
        return recognizer

    def _segment(self, sample_rate=16000):
        from hey_llama.core.audio import AudioFrame

        return AudioFrame(samples=np.zeros(1600, dtype=np.float32), sample_rate=sample_rate)

    def test_transcribe_joins_segments(self):
        model = FakeWhisperModel([
            SimpleNamespace(text=" Hey Llama,", avg_logprob=-0.1, words=None),
            SimpleNamespace(text=" what time is it? ", avg_logprob=-0.3, words=None),
        ])
        result = self._recognizer(model).transcribe(self._segment())

        assert result.text == "Hey Llama, what time is it?"
        assert result.confidence == pytest.approx(np.exp(-0.2))
        assert result.language == "en"
        assert model.calls[0][1]["language"] == "en"

    def test_word_timestamps(self):
        words = [
            SimpleNamespace(word=" Hey", start=0.0, end=0.2, probability=0.9),
            SimpleNamespace(word=" Llama", start=0.2, end=0.5, probability=0.8),
        ]
        model = FakeWhisperModel([SimpleNamespace(text="Hey Llama", avg_logprob=0.0, words=words)])
        result = self._recognizer(model, word_timestamps=True).transcribe(self._segment())

        assert [w.word for w in result.words] == ["Hey", "Llama"]
        assert result.to_dict()["words"][1] == {"word": "Llama", "start": 0.2, "end": 0.5, "confidence": 0.8}

    def test_empty_transcript(self):
        result = self._recognizer(FakeWhisperModel([])).transcribe(self._segment())
        assert result.text == ""
        assert result.confidence == 0.0

    def test_not_loaded(self):
        from hey_llama.stt import RecognitionError
        from hey_llama.stt.whisper import WhisperRecognizer

        with pytest.raises(RecognitionError, match="not loaded"):
            WhisperRecognizer().transcribe(self._segment())

    def test_wrong_sample_rate(self):
        from hey_llama.stt import RecognitionError

        recognizer = self._recognizer(FakeWhisperModel([]))
        with pytest.raises(RecognitionError, match="16000"):
            recognizer.transcribe(self._segment(sample_rate=44100))

    def test_model_error(self):
        from hey_llama.stt import RecognitionError

        recognizer = self._recognizer(FakeWhisperModel([], error=RuntimeError("cuda oom")))
        with pytest.raises(RecognitionError, match="cuda oom"):
            recognizer.transcribe(self._segment())

    def test_unload(self):
        recognizer = self._recognizer(FakeWhisperModel([]))
        recognizer.unload()
        assert not recognizer.is_model_loaded
        assert recognizer.get_info()["loaded"] is False
        assert recognizer.get_info()["model_size"] == "base"
