"""
Language model integration for the assistant.

Supports:
- OpenAI-compatible chat endpoints (Ollama /v1, LM Studio, vLLM, OpenAI)
- Ollama's native client
- Simple canned replies for running without a model
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Iterable, Optional

from hey_llama.assistant.conversation import ConversationTurn

if TYPE_CHECKING:
    from hey_llama.assistant.core import CommandContext
    from hey_llama.config import LLMSettings

logger = logging.getLogger(__name__)

GUEST_NAME = "Guest"


class CompletionError(RuntimeError):
    """The model could not produce a reply."""


def build_system_prompt(
    template: str,
    speaker_name: Optional[str] = None,
    skills_manifest: Optional[str] = None,
) -> str:
    """Fill ``{speaker_name}`` and append the skills manifest, if any."""
    prompt = template.replace("{speaker_name}", speaker_name or GUEST_NAME)
    if skills_manifest:
        prompt = f"{prompt}\n\n{skills_manifest}"
    return prompt


def build_messages(
    system_prompt: str,
    prompt: str,
    history: Iterable[ConversationTurn] = (),
) -> list[dict]:
    """System message, then prior turns oldest first, then the new user message."""
    messages = [{"role": "system", "content": system_prompt}]
    messages.extend(turn.to_message() for turn in history)
    messages.append({"role": "user", "content": prompt})
    return messages


class Responder(ABC):
    """Abstract base class for language model backends."""

    system_prompt: str = ""

    @abstractmethod
    def complete(
        self,
        prompt: str,
        context: Optional["CommandContext"] = None,
        history: Iterable[ConversationTurn] = (),
        skills_manifest: Optional[str] = None,
        system_prompt: Optional[str] = None,
    ) -> str:
        """
        Generate a reply to the user's prompt.

        Args:
            prompt: User's input text
            context: Command context; its speaker name fills the system prompt
            history: Prior conversation turns, oldest first
            skills_manifest: Description of callable skills, if any are enabled
            system_prompt: Override for the configured system prompt template

        Raises:
            CompletionError: if the backend fails or returns nothing
        """
        pass

    @property
    def is_configured(self) -> bool:
        return True

    def _system_prompt_for(
        self,
        context: Optional["CommandContext"],
        skills_manifest: Optional[str],
        system_prompt: Optional[str],
    ) -> str:
        speaker = context.speaker if context is not None else None
        return build_system_prompt(
            system_prompt or self.system_prompt,
            speaker_name=speaker.name if speaker is not None else None,
            skills_manifest=skills_manifest,
        )


class OpenAICompatibleResponder(Responder):
    """
    Chat completions over the OpenAI API shape.

    Works with Ollama (``http://localhost:11434/v1``), LM Studio, vLLM and
    OpenAI itself.
    """

    def __init__(
        self,
        model: str,
        base_url: str = "http://localhost:11434/v1",
        api_key: Optional[str] = None,
        timeout: float = 60.0,
        system_prompt: str = "",
    ):
        """
        Args:
            model: Model name as known to the server
            base_url: Server URL including the /v1 prefix
            api_key: Bearer token (local servers ignore it)
            timeout: Request timeout in seconds
            system_prompt: Template with an optional {speaker_name} placeholder
        """
        try:
            from openai import OpenAI
        except ImportError as e:
            raise ImportError(
                "OpenAI client not installed. "
                "Install with: pip install hey-llama[openai]"
            ) from e

        self.model = model
        self.base_url = base_url.rstrip("/")
        self.system_prompt = system_prompt
        self._client = OpenAI(
            api_key=api_key or "not-needed",
            base_url=self.base_url,
            timeout=timeout,
        )
        logger.info("OpenAI-compatible LLM ready: %s at %s", model, self.base_url)

    @property
    def is_configured(self) -> bool:
        return bool(self.base_url) and bool(self.model)

    def complete(
        self,
        prompt: str,
        context: Optional["CommandContext"] = None,
        history: Iterable[ConversationTurn] = (),
        skills_manifest: Optional[str] = None,
        system_prompt: Optional[str] = None,
    ) -> str:
        if not self.is_configured:
            raise CompletionError("LLM is not configured")

        messages = build_messages(
            self._system_prompt_for(context, skills_manifest, system_prompt),
            prompt,
            history,
        )

        start = time.perf_counter()
        try:
            response = self._client.chat.completions.create(model=self.model, messages=messages)
        except Exception as e:
            raise CompletionError(str(e)) from e
        latency = (time.perf_counter() - start) * 1000

        if not response.choices or response.choices[0].message.content is None:
            raise CompletionError("Invalid response structure")

        text = response.choices[0].message.content.strip()
        logger.debug("LLM reply in %.0fms: %s", latency, text)
        return text


class OllamaResponder(Responder):
    """
    Local LLM through Ollama's native client.

    Ollama must be running: `ollama serve`
    """

    def __init__(
        self,
        model: str = "llama3.2:3b",
        host: str = "http://localhost:11434",
        system_prompt: str = "",
    ):
        try:
            import ollama
        except ImportError as e:
            raise ImportError(
                "Ollama Python client not installed. "
                "Install with: pip install hey-llama[ollama]"
            ) from e

        self.model = model
        self.host = host
        self.system_prompt = system_prompt
        self._client = ollama.Client(host=host)
        logger.info("Ollama LLM ready: %s", model)

    @property
    def is_configured(self) -> bool:
        return bool(self.model)

    def complete(
        self,
        prompt: str,
        context: Optional["CommandContext"] = None,
        history: Iterable[ConversationTurn] = (),
        skills_manifest: Optional[str] = None,
        system_prompt: Optional[str] = None,
    ) -> str:
        messages = build_messages(
            self._system_prompt_for(context, skills_manifest, system_prompt),
            prompt,
            history,
        )

        start = time.perf_counter()
        try:
            response = self._client.chat(model=self.model, messages=messages)
        except Exception as e:
            raise CompletionError(str(e)) from e
        latency = (time.perf_counter() - start) * 1000

        text = response["message"]["content"].strip()
        logger.debug("Ollama reply in %.0fms: %s", latency, text)
        return text


class SimpleResponder(Responder):
    """
    Canned replies for testing without a real model.

    Replies are plain text, so they pass through the action-plan parser as
    ordinary responses.
    """

    RESPONSES = {
        "hello": "Hello! How can I help you today?",
        "hi": "Hi there! What can I do for you?",
        "how are you": "I'm doing great, thanks for asking!",
        "what time is it": "I'm sorry, I don't have access to the current time.",
        "tell me a joke": "Why do programmers prefer dark mode? Because light attracts bugs!",
    }

    DEFAULT_RESPONSE = "I'm not sure how to respond to that. Try asking me something else!"

    def __init__(self, responses: Optional[dict[str, str]] = None):
        self.responses = dict(responses) if responses is not None else dict(self.RESPONSES)
        logger.info("Using simple rule-based responses (no LLM)")

    def complete(
        self,
        prompt: str,
        context: Optional["CommandContext"] = None,
        history: Iterable[ConversationTurn] = (),
        skills_manifest: Optional[str] = None,
        system_prompt: Optional[str] = None,
    ) -> str:
        prompt_lower = prompt.lower().strip()
        for key, response in self.responses.items():
            if key in prompt_lower:
                return response
        return self.DEFAULT_RESPONSE


def create_responder(settings: "LLMSettings") -> Responder:
    """
    Factory function to create a language model backend.

    Raises:
        ValueError: unknown backend
    """
    if settings.backend == "openai":
        return OpenAICompatibleResponder(
            model=settings.model,
            base_url=settings.base_url,
            api_key=settings.api_key,
            timeout=settings.timeout_seconds,
            system_prompt=settings.system_prompt,
        )
    elif settings.backend == "ollama":
        # Native client talks to the server root, not the /v1 compatibility prefix
        host = settings.base_url.rstrip("/")
        if host.endswith("/v1"):
            host = host[:-3]
        return OllamaResponder(
            model=settings.model or "llama3.2:3b",
            host=host,
            system_prompt=settings.system_prompt,
        )
    elif settings.backend == "simple":
        return SimpleResponder()
    else:
        raise ValueError(f"Unknown LLM backend: {settings.backend}")
