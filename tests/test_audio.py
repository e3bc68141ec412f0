"""
Tests for audio frames, the rolling buffer and voice activity gating.
"""

import threading

import numpy as np
import pytest


def _frame(n, value=0.0, **kwargs):
    from hey_llama.core.audio import AudioFrame

    return AudioFrame(samples=np.full(n, value, dtype=np.float32), **kwargs)


class TestAudioFrame:
    """Tests for AudioFrame."""

    def test_int16_is_normalized(self):
        from hey_llama.core.audio import AudioFrame

        frame = AudioFrame(samples=np.array([16384, -32768], dtype=np.int16))
        assert frame.samples.dtype == np.float32
        assert frame.samples[0] == pytest.approx(0.5)
        assert frame.samples[1] == pytest.approx(-1.0)

    def test_samples_are_read_only(self):
        frame = _frame(10)
        with pytest.raises(ValueError):
            frame.samples[0] = 1.0

    def test_duration(self):
        assert _frame(480, sample_rate=16000).duration == pytest.approx(0.03)
        assert _frame(480, sample_rate=0).duration == 0.0

    def test_source_identifier(self):
        from hey_llama.core.audio import LOCAL_MIC, AudioSource

        assert LOCAL_MIC.identifier == "local"
        assert AudioSource.remote("satellite", "kitchen").identifier == "satellite-kitchen"
        assert AudioSource.local() == LOCAL_MIC


class TestAudioBuffer:
    """Tests for the rolling capture buffer."""

    def _buffer(self, **kwargs):
        from hey_llama.core.audio import AudioBuffer

        kwargs.setdefault("max_samples", 16000)
        kwargs.setdefault("lookback_samples", 480)
        return AudioBuffer(**kwargs)

    def test_marker_includes_lookback(self):
        buf = self._buffer()
        buf.append(_frame(700))
        buf.mark_speech_start()
        assert buf.speech_start == 220

        buf.append(_frame(300))
        segment = buf.extract_since_speech_start()
        assert len(segment) == 780
        assert not buf.has_speech_start

    def test_extract_without_marker_returns_everything(self):
        buf = self._buffer()
        buf.append(_frame(700))
        buf.mark_speech_start()
        buf.append(_frame(300))
        buf.extract_since_speech_start()

        # The first extraction clears the marker but keeps the audio
        assert len(buf.extract_since_speech_start()) == 1000

    def test_marker_floored_at_zero_for_short_buffer(self):
        buf = self._buffer()
        buf.append(_frame(100))
        buf.mark_speech_start()
        assert buf.speech_start == 0

    def test_length_is_bounded(self):
        buf = self._buffer(max_samples=1000)
        for _ in range(5):
            buf.append(_frame(300))
        assert buf.sample_count == 1000

    def test_keeps_newest_samples(self):
        buf = self._buffer(max_samples=4, lookback_samples=0)
        buf.append(_frame(3, 0.1))
        buf.append(_frame(3, 0.2))
        samples = buf.extract_since_speech_start().samples
        np.testing.assert_allclose(samples, [0.1, 0.2, 0.2, 0.2])

    def test_marker_shifts_and_floors_on_trim(self):
        buf = self._buffer(max_samples=1000)
        buf.append(_frame(700))
        buf.mark_speech_start()
        assert buf.speech_start == 220

        buf.append(_frame(500))
        assert buf.speech_start == 20

        buf.append(_frame(100))
        assert buf.speech_start == 0

    def test_extract_carries_source_and_rate(self):
        from hey_llama.core.audio import AudioSource

        buf = self._buffer(sample_rate=8000)
        buf.append(_frame(10))
        source = AudioSource.remote("ios", "phone-1")
        segment = buf.extract_since_speech_start(source)
        assert segment.source == source
        assert segment.sample_rate == 8000

    def test_clear(self):
        buf = self._buffer()
        buf.append(_frame(100))
        buf.mark_speech_start()
        buf.clear()
        assert buf.sample_count == 0
        assert buf.speech_start is None

    def test_concurrent_appends(self):
        buf = self._buffer(max_samples=100000)

        def writer():
            for _ in range(100):
                buf.append(_frame(10))

        threads = [threading.Thread(target=writer) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert buf.sample_count == 4000


class FixedSource:
    """Probability source replaying a fixed script."""

    def __init__(self, probabilities):
        self.probabilities = list(probabilities)
        self.resets = 0

    def probability(self, samples, sample_rate):
        return self.probabilities.pop(0) if self.probabilities else 0.0

    def reset(self):
        self.resets += 1


class TestVoiceActivityGate:
    """Tests for the hysteresis gate."""

    def test_start_continue_end(self):
        from hey_llama.assistant.vad import GateSignal, VoiceActivityGate

        gate = VoiceActivityGate(source=FixedSource([]), threshold=0.5, silence_frames=10)
        signals = [gate.classify_probability(p) for p in [0.8] + [0.1] * 10]

        assert signals[0] == GateSignal.SPEECH_START
        assert signals[1:10] == [GateSignal.SPEECH_CONTINUE] * 9
        assert signals[10] == GateSignal.SPEECH_END
        assert not gate.is_active

    def test_silence_when_inactive(self):
        from hey_llama.assistant.vad import GateSignal, VoiceActivityGate

        gate = VoiceActivityGate(source=FixedSource([]))
        assert gate.classify_probability(0.2) == GateSignal.SILENCE
        # Exactly at threshold is not speech
        assert gate.classify_probability(0.5) == GateSignal.SILENCE

    def test_speech_resets_silence_count(self):
        from hey_llama.assistant.vad import GateSignal, VoiceActivityGate

        gate = VoiceActivityGate(source=FixedSource([]), silence_frames=3)
        gate.classify_probability(0.9)
        gate.classify_probability(0.1)
        gate.classify_probability(0.1)
        assert gate.silence_count == 2
        assert gate.classify_probability(0.9) == GateSignal.SPEECH_CONTINUE
        assert gate.silence_count == 0
        assert gate.classify_probability(0.1) == GateSignal.SPEECH_CONTINUE

    def test_classify_uses_source(self):
        from hey_llama.assistant.vad import GateSignal, VoiceActivityGate

        gate = VoiceActivityGate(source=FixedSource([0.9, 0.0]), silence_frames=1)
        assert gate.classify(_frame(480)) == GateSignal.SPEECH_START
        assert gate.classify(_frame(480)) == GateSignal.SPEECH_END

    def test_reset(self):
        from hey_llama.assistant.vad import VoiceActivityGate

        source = FixedSource([])
        gate = VoiceActivityGate(source=source)
        gate.classify_probability(0.9)
        gate.classify_probability(0.1)
        gate.reset()
        assert not gate.is_active
        assert gate.silence_count == 0
        assert source.resets == 1


class TestProbabilitySources:
    """Tests for speech probability sources."""

    def test_energy_silence_and_speech(self):
        from hey_llama.assistant.vad import EnergyProbabilitySource

        source = EnergyProbabilitySource(energy_threshold=500.0)
        assert source.probability(np.zeros(480, dtype=np.float32), 16000) == 0.0
        assert source.probability(np.zeros(0, dtype=np.float32), 16000) == 0.0

        loud = np.full(480, 0.5, dtype=np.float32)
        assert source.probability(loud, 16000) == 1.0

    def test_energy_at_threshold_is_half(self):
        from hey_llama.assistant.vad import EnergyProbabilitySource

        source = EnergyProbabilitySource(energy_threshold=500.0)
        samples = np.full(480, 500.0 / 32768, dtype=np.float32)
        assert source.probability(samples, 16000) == pytest.approx(0.5, abs=1e-3)

    def test_factory(self):
        from hey_llama.assistant.vad import EnergyProbabilitySource, create_probability_source

        source = create_probability_source("energy", energy_threshold=100.0)
        assert isinstance(source, EnergyProbabilitySource)
        assert source.energy_threshold == 100.0

    def test_factory_unknown_backend(self):
        from hey_llama.assistant.vad import create_probability_source

        with pytest.raises(ValueError, match="Unknown VAD backend"):
            create_probability_source("nonexistent")


class TestCaptureConfig:
    """Tests for microphone capture settings."""

    def test_frame_size(self):
        from hey_llama.assistant.audio_io import CaptureConfig

        assert CaptureConfig(sample_rate=16000, frame_duration_ms=30).frame_size == 480
        assert CaptureConfig(sample_rate=44100, frame_duration_ms=20).frame_size == 882
