"""
Tests for language model prompts and backends.
"""

from types import SimpleNamespace
from unittest.mock import patch

import pytest


class TestPrompts:
    """Tests for system prompt and message construction."""

    def test_speaker_name_filled(self):
        from hey_llama.assistant.llm import build_system_prompt

        assert build_system_prompt("User is {speaker_name}.", "Ada") == "User is Ada."
        assert build_system_prompt("User is {speaker_name}.") == "User is Guest."

    def test_manifest_appended(self):
        from hey_llama.assistant.llm import build_system_prompt

        prompt = build_system_prompt("Be brief.", skills_manifest="Available skills: ...")
        assert prompt == "Be brief.\n\nAvailable skills: ..."

    def test_messages_order(self):
        from hey_llama.assistant.conversation import ConversationRole, ConversationTurn
        from hey_llama.assistant.llm import build_messages

        history = [
            ConversationTurn(role=ConversationRole.USER, content="hello"),
            ConversationTurn(role=ConversationRole.ASSISTANT, content="hi"),
        ]
        messages = build_messages("system text", "what's up", history)
        assert messages == [
            {"role": "system", "content": "system text"},
            {"role": "user", "content": "hello"},
            {"role": "assistant", "content": "hi"},
            {"role": "user", "content": "what's up"},
        ]


class TestSimpleResponder:
    def test_known_and_default(self):
        from hey_llama.assistant.llm import SimpleResponder

        responder = SimpleResponder()
        assert responder.complete("Hello there") == SimpleResponder.RESPONSES["hello"]
        assert responder.complete("explain quantum physics") == SimpleResponder.DEFAULT_RESPONSE

    def test_custom_responses(self):
        from hey_llama.assistant.llm import SimpleResponder

        responder = SimpleResponder({"ping": "pong"})
        assert responder.complete("PING") == "pong"
        assert responder.is_configured


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        choices = [] if self.content is None else [SimpleNamespace(message=SimpleNamespace(content=self.content))]
        return SimpleNamespace(choices=choices)


class TestOpenAICompatibleResponder:
    """Tests for the OpenAI-compatible backend with the client replaced."""

    def _responder(self, completions, model="llama3.2:3b"):
        pytest.importorskip("openai")
        from hey_llama.assistant.llm import OpenAICompatibleResponder

        responder = OpenAICompatibleResponder(
            model=model,
            base_url="http://localhost:11434/v1/",
            system_prompt="You help {speaker_name}.",
        )
        responder._client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
        return responder

    def test_complete(self):
        from hey_llama.assistant.core import CommandContext
        from hey_llama.speaker import Speaker

        completions = FakeCompletions(content="  Hi Ada!  ")
        responder = self._responder(completions)
        context = CommandContext(command="hello", speaker=Speaker(name="Ada"))

        assert responder.base_url == "http://localhost:11434/v1"
        assert responder.complete("hello", context=context, skills_manifest="SKILLS") == "Hi Ada!"
        messages = completions.kwargs["messages"]
        assert completions.kwargs["model"] == "llama3.2:3b"
        assert messages[0] == {"role": "system", "content": "You help Ada.\n\nSKILLS"}
        assert messages[-1] == {"role": "user", "content": "hello"}

    def test_system_prompt_override(self):
        completions = FakeCompletions(content="ok")
        responder = self._responder(completions)
        responder.complete("hello", system_prompt="Override for {speaker_name}")
        assert completions.kwargs["messages"][0]["content"] == "Override for Guest"

    def test_not_configured(self):
        from hey_llama.assistant.llm import CompletionError

        responder = self._responder(FakeCompletions(content="ok"), model="")
        assert not responder.is_configured
        with pytest.raises(CompletionError, match="not configured"):
            responder.complete("hello")

    def test_request_failure(self):
        from hey_llama.assistant.llm import CompletionError

        responder = self._responder(FakeCompletions(error=ConnectionError("refused")))
        with pytest.raises(CompletionError, match="refused"):
            responder.complete("hello")

    def test_empty_choices(self):
        from hey_llama.assistant.llm import CompletionError

        responder = self._responder(FakeCompletions(content=None))
        with pytest.raises(CompletionError, match="Invalid response"):
            responder.complete("hello")


class TestCreateResponder:
    """Tests for the responder factory."""

    def test_simple(self):
        from hey_llama.assistant.llm import SimpleResponder, create_responder
        from hey_llama.config import LLMSettings

        assert isinstance(create_responder(LLMSettings(backend="simple")), SimpleResponder)

    def test_openai(self):
        pytest.importorskip("openai")
        from hey_llama.assistant.llm import OpenAICompatibleResponder, create_responder
        from hey_llama.config import LLMSettings

        settings = LLMSettings(backend="openai", model="gpt-4o-mini", base_url="http://example.com/v1")
        responder = create_responder(settings)
        assert isinstance(responder, OpenAICompatibleResponder)
        assert responder.model == "gpt-4o-mini"
        assert responder.system_prompt == settings.system_prompt

    def test_ollama_host_drops_v1(self):
        pytest.importorskip("ollama")
        from hey_llama.assistant.llm import OllamaResponder, create_responder
        from hey_llama.config import LLMSettings

        with patch("ollama.Client") as client:
            responder = create_responder(
                LLMSettings(backend="ollama", model="llama3.2:3b", base_url="http://localhost:11434/v1")
            )
        assert isinstance(responder, OllamaResponder)
        assert responder.host == "http://localhost:11434"
        client.assert_called_once_with(host="http://localhost:11434")

    def test_unknown_backend(self):
        from hey_llama.assistant.llm import create_responder

        with pytest.raises(ValueError, match="Unknown LLM backend"):
            create_responder(SimpleNamespace(backend="nonexistent"))
