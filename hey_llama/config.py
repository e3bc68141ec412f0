"""
Configuration and settings for Hey Llama.
"""

import os
from pathlib import Path
from typing import Literal, Optional

import yaml
from pydantic import BaseModel, Field

from hey_llama.assistant.phrases import (
    DEFAULT_CLOSING_PHRASES,
    DEFAULT_WAKE_PHRASE,
    DEFAULT_WAKE_VARIANTS,
)

DEFAULT_SYSTEM_PROMPT = (
    "You are Llama, a helpful voice assistant. Keep responses concise "
    "and conversational, suitable for reading on a small UI display. "
    "The current user is {speaker_name}. Be friendly but brief. "
    "You must respond with a single JSON object only. Do not wrap in "
    "code fences or add extra text. Never put tool call JSON inside "
    'the "text" field.'
)


def get_default_config_path() -> Path:
    """Get the default config file location."""
    return Path(os.environ.get("HEY_LLAMA_CONFIG", Path.home() / ".config" / "hey-llama" / "config.yaml"))


def _optional_int_env(name: str) -> Optional[int]:
    value = os.environ.get(name)
    return int(value) if value else None


class AudioSettings(BaseModel):
    """Capture, buffering and voice activity settings."""

    sample_rate: int = Field(default=16000)
    frame_duration_ms: int = Field(default=30)
    buffer_seconds: float = Field(default=15.0)
    lookback_ms: int = Field(default=300)  # Pre-roll kept before detected speech
    vad_backend: str = Field(
        default_factory=lambda: os.environ.get("HEY_LLAMA_VAD_BACKEND", "energy")
    )
    energy_threshold: float = Field(default=500.0)  # int16 RMS units
    webrtc_mode: int = Field(default=3)
    speech_threshold: float = Field(default=0.5)
    silence_frames: int = Field(default=10)  # ~300ms at 30ms frames
    input_device: Optional[int] = Field(
        default_factory=lambda: _optional_int_env("HEY_LLAMA_INPUT_DEVICE")
    )


class WakeSettings(BaseModel):
    """Wake and closing phrases."""

    wake_phrase: str = Field(
        default_factory=lambda: os.environ.get("HEY_LLAMA_WAKE_PHRASE", DEFAULT_WAKE_PHRASE)
    )
    variants: list[str] = Field(default_factory=lambda: list(DEFAULT_WAKE_VARIANTS))
    closing_phrases: list[str] = Field(default_factory=lambda: list(DEFAULT_CLOSING_PHRASES))


class ConversationSettings(BaseModel):
    """History window and follow-up timing."""

    timeout_minutes: float = Field(default=5)
    max_turns: int = Field(default=10)
    follow_up_window_seconds: float = Field(default=15)
    confirmation_timeout_seconds: float = Field(default=30)


class LLMSettings(BaseModel):
    """Language model settings."""

    backend: Literal["openai", "ollama", "simple"] = Field(
        default_factory=lambda: os.environ.get("HEY_LLAMA_LLM_BACKEND", "openai")
    )
    # OpenAI-compatible endpoint (Ollama, LM Studio, vLLM, OpenAI)
    base_url: str = Field(
        default_factory=lambda: os.environ.get("HEY_LLAMA_LLM_BASE_URL", "http://localhost:11434/v1")
    )
    api_key: Optional[str] = Field(
        default_factory=lambda: os.environ.get("HEY_LLAMA_LLM_API_KEY")
    )
    model: str = Field(
        default_factory=lambda: os.environ.get("HEY_LLAMA_LLM_MODEL", "")
    )
    timeout_seconds: float = Field(default=60)
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT)

    @property
    def is_configured(self) -> bool:
        if self.backend == "simple":
            return True
        return bool(self.base_url) and bool(self.model)


class SkillsSettings(BaseModel):
    """Which registered skills the model may call."""

    enabled_skill_ids: list[str] = Field(default_factory=list)


class STTSettings(BaseModel):
    """Speech recognition settings."""

    backend: str = Field(
        default_factory=lambda: os.environ.get("HEY_LLAMA_STT_BACKEND", "whisper")
    )
    model_size: str = Field(
        default_factory=lambda: os.environ.get("HEY_LLAMA_STT_MODEL", "base")
    )
    language: Optional[str] = Field(default="en")
    device: str = Field(default="auto")


class SpeakerSettings(BaseModel):
    """Speaker identification settings."""

    threshold: float = Field(default=0.5)  # Maximum cosine distance for a match
    follow_up_threshold: float = Field(default=0.8)  # Relaxed distance while a follow-up is open
    required_samples: int = Field(default=5)


class AssistantConfig(BaseModel):
    """Main configuration."""

    audio: AudioSettings = Field(default_factory=AudioSettings)
    wake: WakeSettings = Field(default_factory=WakeSettings)
    conversation: ConversationSettings = Field(default_factory=ConversationSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    skills: SkillsSettings = Field(default_factory=SkillsSettings)
    stt: STTSettings = Field(default_factory=STTSettings)
    speaker: SpeakerSettings = Field(default_factory=SpeakerSettings)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "AssistantConfig":
        """Load config from a YAML file.

        Sections or keys missing from the file keep their defaults; unknown
        keys are ignored.
        """
        yaml_path = Path(path).expanduser()
        with open(yaml_path) as f:
            raw = yaml.safe_load(f) or {}
        return cls.model_validate(raw)

    def to_yaml(self, path: str | Path) -> None:
        """Write config to a YAML file, creating parent directories."""
        yaml_path = Path(path).expanduser()
        yaml_path.parent.mkdir(parents=True, exist_ok=True)
        with open(yaml_path, "w") as f:
            yaml.safe_dump(self.model_dump(mode="json"), f, sort_keys=False)


# Global config instance
_config: AssistantConfig | None = None


def get_config() -> AssistantConfig:
    """Get the global configuration."""
    global _config
    if _config is None:
        _config = AssistantConfig()
    return _config


def set_config(config: AssistantConfig) -> None:
    """Set the global configuration."""
    global _config
    _config = config
