"""
Microphone capture for the voice assistant.

Runs on the sounddevice callback thread and hands fixed-size
``AudioFrame`` blocks to a consumer callback.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from hey_llama.core.audio import LOCAL_MIC, AudioFrame, AudioSource

logger = logging.getLogger(__name__)


def _find_usb_audio_device() -> Optional[int]:
    """Pick a USB input device, preferring speakerphones with both directions.

    Returns:
        Device index, or None if no USB device found.
    """
    import sounddevice as sd

    # Virtual/internal devices to skip
    _SKIP = {"HDMI", "HDA", "APE", "DisplayPort"}

    best = None
    best_score = -1

    for i, dev in enumerate(sd.query_devices()):
        name = dev["name"]
        has_in = dev["max_input_channels"] > 0
        has_out = dev["max_output_channels"] > 0

        if any(skip in name for skip in _SKIP) or not has_in:
            continue

        score = 0
        if has_out:
            score += 2
        if "USB" in name:
            score += 1

        if score > best_score:
            best = i
            best_score = score

    return best


@dataclass
class CaptureConfig:
    """Capture configuration."""

    sample_rate: int = 16000
    channels: int = 1
    frame_duration_ms: int = 30

    @property
    def frame_size(self) -> int:
        """Samples per frame."""
        return int(self.sample_rate * self.frame_duration_ms / 1000)


class AudioInput:
    """
    Continuous microphone input.

    Calls ``callback`` with one ``AudioFrame`` per block from the capture
    thread; the callback must not block.
    """

    def __init__(
        self,
        config: Optional[CaptureConfig] = None,
        device: Optional[int] = None,
        source: AudioSource = LOCAL_MIC,
    ):
        """
        Args:
            config: Capture configuration
            device: Input device index (None to auto-detect)
            source: Source tag stamped on every frame
        """
        try:
            import sounddevice as sd
        except ImportError as e:
            raise ImportError(
                "sounddevice not installed. "
                "Install with: pip install hey-llama[audio]"
            ) from e

        self.config = config or CaptureConfig()
        self.source = source
        self._sd = sd
        self._stream = None
        self._callback: Optional[Callable[[AudioFrame], None]] = None
        self._running = False

        if device is None:
            device = _find_usb_audio_device()
            if device is not None:
                logger.info("Auto-detected USB input device: [%d] %s",
                            device, sd.query_devices(device)["name"])
        self.device = device

        if self.device is None:
            device_info = sd.query_devices(kind="input")
        else:
            device_info = sd.query_devices(self.device)
        logger.info("Audio input: %s", device_info["name"])

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self, callback: Callable[[AudioFrame], None]) -> None:
        """Start capture."""
        if self._running:
            return

        self._callback = callback
        self._running = True
        self._stream = self._sd.InputStream(
            samplerate=self.config.sample_rate,
            channels=self.config.channels,
            dtype="float32",
            blocksize=self.config.frame_size,
            device=self.device,
            callback=self._audio_callback,
        )
        self._stream.start()

    def _audio_callback(self, indata, frames, time_info, status):
        if status:
            logger.warning("Audio input status: %s", status)

        if self._callback and self._running:
            audio = indata[:, 0] if indata.ndim > 1 else indata
            self._callback(
                AudioFrame(
                    samples=np.array(audio, dtype=np.float32),
                    sample_rate=self.config.sample_rate,
                    source=self.source,
                )
            )

    def stop(self) -> None:
        """Stop capture."""
        self._running = False
        if self._stream:
            self._stream.stop()
            self._stream.close()
            self._stream = None

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.stop()
