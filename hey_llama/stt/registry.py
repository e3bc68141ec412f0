"""
Recognizer registry for discovery and instantiation.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hey_llama.stt.base import Recognizer

# Registry of available recognizers
_recognizers: dict[str, type["Recognizer"]] = {}


def register_recognizer(name: str):
    """
    Decorator to register a recognizer.

    Args:
        name: Recognizer name (e.g., "whisper")

    Example:
        @register_recognizer("whisper")
        class WhisperRecognizer(Recognizer):
            ...
    """

    def decorator(cls: type["Recognizer"]) -> type["Recognizer"]:
        cls.name = name
        _recognizers[name] = cls
        return cls

    return decorator


def get_recognizer(name: str, **kwargs) -> "Recognizer":
    """
    Get a recognizer instance by name.

    Args:
        name: Recognizer name
        **kwargs: Passed to the recognizer constructor

    Raises:
        ValueError: If recognizer not found
    """
    _discover_recognizers()

    if name not in _recognizers:
        available = ", ".join(_recognizers.keys())
        raise ValueError(f"Recognizer '{name}' not found. Available: {available}")

    return _recognizers[name](**kwargs)


def list_recognizers() -> list[dict]:
    """List registered recognizers."""
    _discover_recognizers()

    return [{"name": name, "class": cls.__name__} for name, cls in _recognizers.items()]


def _discover_recognizers() -> None:
    """Import bundled recognizer modules so they self-register."""
    # The whisper module imports faster-whisper lazily, so this import always succeeds
    from hey_llama.stt import whisper  # noqa: F401
