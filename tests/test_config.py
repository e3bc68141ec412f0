"""Tests for configuration defaults, environment overrides and YAML files."""

import yaml

import pytest

from hey_llama.config import AssistantConfig, LLMSettings


class TestDefaults:
    def test_sections(self, monkeypatch):
        monkeypatch.delenv("HEY_LLAMA_LLM_BACKEND", raising=False)
        monkeypatch.delenv("HEY_LLAMA_WAKE_PHRASE", raising=False)
        monkeypatch.delenv("HEY_LLAMA_INPUT_DEVICE", raising=False)
        config = AssistantConfig()

        assert config.audio.sample_rate == 16000
        assert config.audio.silence_frames == 10
        assert config.audio.input_device is None
        assert config.wake.wake_phrase == "hey llama"
        assert "thanks" in config.wake.closing_phrases
        assert config.conversation.max_turns == 10
        assert config.conversation.follow_up_window_seconds == 15
        assert config.llm.backend == "openai"
        assert config.skills.enabled_skill_ids == []
        assert config.speaker.threshold == 0.5
        assert config.speaker.follow_up_threshold == 0.8
        assert "{speaker_name}" in config.llm.system_prompt

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("HEY_LLAMA_LLM_BACKEND", "simple")
        monkeypatch.setenv("HEY_LLAMA_LLM_MODEL", "qwen2.5:7b")
        monkeypatch.setenv("HEY_LLAMA_INPUT_DEVICE", "3")
        monkeypatch.setenv("HEY_LLAMA_WAKE_PHRASE", "computer")
        config = AssistantConfig()

        assert config.llm.backend == "simple"
        assert config.llm.model == "qwen2.5:7b"
        assert config.audio.input_device == 3
        assert config.wake.wake_phrase == "computer"

    def test_llm_is_configured(self):
        assert not LLMSettings(backend="openai", model="").is_configured
        assert LLMSettings(backend="openai", model="llama3.2:3b").is_configured
        assert LLMSettings(backend="simple", model="").is_configured

    def test_invalid_backend_rejected(self):
        from pydantic import ValidationError

        with pytest.raises(ValidationError):
            LLMSettings(backend="nonexistent")

    def test_default_config_path(self, monkeypatch, tmp_path):
        from hey_llama.config import get_default_config_path

        monkeypatch.setenv("HEY_LLAMA_CONFIG", str(tmp_path / "custom.yaml"))
        assert get_default_config_path() == tmp_path / "custom.yaml"

        monkeypatch.delenv("HEY_LLAMA_CONFIG")
        assert get_default_config_path().parts[-2:] == ("hey-llama", "config.yaml")


class TestYaml:
    def test_round_trip(self, tmp_path):
        path = tmp_path / "nested" / "config.yaml"
        config = AssistantConfig(llm=LLMSettings(backend="ollama", model="llama3.2:3b"))
        config.to_yaml(path)

        loaded = AssistantConfig.from_yaml(path)
        assert loaded == config

    def test_partial_file_keeps_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(yaml.safe_dump({
            "skills": {"enabled_skill_ids": ["clock.time"]},
            "conversation": {"max_turns": 4},
        }))
        config = AssistantConfig.from_yaml(path)

        assert config.skills.enabled_skill_ids == ["clock.time"]
        assert config.conversation.max_turns == 4
        assert config.conversation.timeout_minutes == 5
        assert config.audio.sample_rate == 16000

    def test_unknown_keys_ignored(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("bogus_key: 123\nllm:\n  model: phi3\n  temperature: 0.2\n")
        config = AssistantConfig.from_yaml(path)

        assert config.llm.model == "phi3"
        assert not hasattr(config, "bogus_key")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert isinstance(AssistantConfig.from_yaml(path), AssistantConfig)


class TestGlobalConfig:
    def test_set_and_get(self):
        from hey_llama import config as config_module

        custom = AssistantConfig(llm=LLMSettings(backend="simple"))
        previous = config_module._config
        try:
            config_module.set_config(custom)
            assert config_module.get_config() is custom
        finally:
            config_module._config = previous
